"""
Risk Core - Data Models.

============================================================
PURPOSE
============================================================
Input snapshots and output value objects.

OWNERSHIP RULES:
- Every model is a frozen dataclass
- Updates produce NEW values (dataclasses.replace)
- The risk core never mutates a snapshot it was given

The same account/market snapshot may be evaluated by
several threads at once. Immutability is what makes that
safe without locks.

============================================================
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

from .config import RiskParameters
from .exceptions import InvalidSnapshotError
from .types import (
    AnomalySeverity,
    CancellationReason,
    CircuitBreakerSeverity,
    ClosureReason,
    ClosureUrgency,
    ExecutionQuality,
    InvalidSizeReason,
    MarketTrend,
    OrderSide,
    OrderType,
    RiskCheckName,
    RiskLevel,
    SlippageReason,
    SystemState,
    VolatilityRegime,
)


# Trading suitability gate
MIN_TRADING_LIQUIDITY = 40.0
MAX_TRADING_SPREAD = 0.02


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================
# MARKET SNAPSHOT
# ============================================================

@dataclass(frozen=True)
class MarketAnomaly:
    """Anomaly reported by the market-data layer."""

    type: str
    severity: AnomalySeverity
    description: str = ""
    impact: float = 0.0
    detected_at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class MarketConditions:
    """
    Market snapshot for one symbol.

    All indicator values are pre-computed by the market-data layer.
    """

    current_price: float
    """Last traded price."""

    volatility: float = 0.02
    """Current volatility as a fraction of price."""

    liquidity: float = 80.0
    """Liquidity score, 0-100."""

    bid_ask_spread: float = 0.0005
    """Spread as a fraction of price."""

    volume_24h: float = 0.0
    """24h traded volume."""

    trend: MarketTrend = MarketTrend.SIDEWAYS
    """Trend classification."""

    volatility_regime: VolatilityRegime = VolatilityRegime.NORMAL
    """Volatility regime."""

    anomalies: Tuple[MarketAnomaly, ...] = ()
    """Detected anomalies."""

    next_event_minutes: Optional[int] = None
    """Minutes until the next scheduled market event, if known."""

    historical_atr: Optional[float] = None
    """Historical ATR as a fraction of price, comparable to volatility."""

    correlations: Dict[str, float] = field(default_factory=dict)
    """Correlation of this symbol with other symbols."""

    assessed_at: datetime = field(default_factory=_utcnow)
    """When the snapshot was taken."""

    def has_severe_anomaly(self, min_severity: AnomalySeverity = AnomalySeverity.HIGH) -> bool:
        """Check for any anomaly at or above a severity."""
        return any(a.severity >= min_severity for a in self.anomalies)

    def is_suitable_for_trading(self) -> bool:
        """Liquidity, spread, volatility and anomaly gate."""
        return (
            self.liquidity >= MIN_TRADING_LIQUIDITY
            and self.bid_ask_spread <= MAX_TRADING_SPREAD
            and self.volatility_regime != VolatilityRegime.EXTREME
            and not self.has_severe_anomaly()
        )

    def calculate_market_risk_score(self) -> float:
        """
        Score market risk from 0 to 100 (higher is riskier).

        Regime (5-40) + liquidity (2-20) + spread (2-20) + event risk (0-20).
        """
        regime_points = {
            VolatilityRegime.LOW: 5.0,
            VolatilityRegime.NORMAL: 15.0,
            VolatilityRegime.HIGH: 30.0,
            VolatilityRegime.EXTREME: 40.0,
        }
        score = regime_points.get(self.volatility_regime, 20.0)

        if self.liquidity >= 80:
            score += 2.0
        elif self.liquidity >= 60:
            score += 5.0
        elif self.liquidity >= 40:
            score += 10.0
        elif self.liquidity >= 20:
            score += 15.0
        else:
            score += 20.0

        if self.bid_ask_spread <= 0.001:
            score += 2.0
        elif self.bid_ask_spread <= 0.005:
            score += 5.0
        elif self.bid_ask_spread <= 0.01:
            score += 10.0
        elif self.bid_ask_spread <= 0.02:
            score += 15.0
        else:
            score += 20.0

        if self.next_event_minutes is not None:
            if self.next_event_minutes < 60:
                score += 20.0
            elif self.next_event_minutes < 240:
                score += 10.0

        return min(score, 100.0)

    def correlation_with(self, symbol: str) -> float:
        """Absolute correlation with another symbol (unknown = 0)."""
        return abs(self.correlations.get(symbol, 0.0))


# ============================================================
# SIGNAL
# ============================================================

@dataclass(frozen=True)
class TradingSignal:
    """Trade proposal from the strategy layer."""

    signal_id: str
    symbol: str
    side: OrderSide
    entry_price: float
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    confidence: float = 50.0
    """Signal confidence, 0-100."""
    generated_at: datetime = field(default_factory=_utcnow)

    @property
    def is_long(self) -> bool:
        return self.side.is_long()

    @property
    def risk_reward_ratio(self) -> Optional[float]:
        """Reward/risk if both levels are set."""
        if self.stop_loss is None or self.take_profit is None:
            return None
        risk = abs(self.entry_price - self.stop_loss)
        if risk <= 0:
            return None
        return abs(self.take_profit - self.entry_price) / risk


# ============================================================
# STOP LEVELS
# ============================================================

@dataclass(frozen=True)
class ProfitTarget:
    """Partial profit-taking level."""

    target_price: float
    percentage_to_close: float
    risk_reward_ratio: float
    description: str = ""


@dataclass(frozen=True)
class StopLossLevels:
    """
    Stop structure of a position.

    Trailing state lives here and only ever moves in the
    position's favour.
    """

    initial_stop_loss: float
    take_profit: Optional[float] = None
    breakeven_level: Optional[float] = None
    emergency_stop: Optional[float] = None
    trailing_stop: Optional[float] = None
    profit_targets: Tuple[ProfitTarget, ...] = ()
    trailing_enabled: bool = True
    trailing_distance: float = 0.005
    trailing_activation: float = 0.01
    risk_per_unit: float = 0.0
    max_acceptable_risk: float = 0.0
    method: str = "PERCENTAGE"
    calculated_at: datetime = field(default_factory=_utcnow, compare=False)

    def effective_stop(self, is_long: bool) -> float:
        """Tightest active stop (highest for longs, lowest for shorts)."""
        stops = [self.initial_stop_loss]
        if self.trailing_stop is not None:
            stops.append(self.trailing_stop)
        return max(stops) if is_long else min(stops)

    def update_trailing_stop(
        self,
        current_price: float,
        entry_price: float,
        is_long: bool,
        distance: Optional[float] = None,
    ) -> "StopLossLevels":
        """
        Trail the stop behind price.

        Returns self when trailing is disabled, not yet active,
        or the candidate would loosen the stop.
        """
        if not self.trailing_enabled or entry_price <= 0 or current_price <= 0:
            return self

        if is_long:
            profit = (current_price - entry_price) / entry_price
        else:
            profit = (entry_price - current_price) / entry_price

        if profit < self.trailing_activation:
            return self

        distance = self.trailing_distance if distance is None else distance

        if is_long:
            candidate = current_price * (1 - distance)
            if self.trailing_stop is None or candidate > self.trailing_stop:
                return replace(self, trailing_stop=candidate)
        else:
            candidate = current_price * (1 + distance)
            if self.trailing_stop is None or candidate < self.trailing_stop:
                return replace(self, trailing_stop=candidate)

        return self


# ============================================================
# POSITION
# ============================================================

@dataclass(frozen=True)
class Position:
    """
    Open position as owned by the execution layer.

    The risk core returns updated copies; persisting them is
    the execution layer's job.
    """

    position_id: str
    symbol: str
    side: OrderSide
    quantity: float
    entry_price: float
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    opened_at: datetime = field(default_factory=_utcnow)
    unrealized_pnl: float = 0.0
    realized_pnl: float = 0.0
    trailing_active: bool = False
    stop_levels: Optional[StopLossLevels] = None

    @property
    def is_long(self) -> bool:
        return self.side.is_long()

    def notional(self, price: Optional[float] = None) -> float:
        """Position value at a price (entry if omitted)."""
        return self.quantity * (self.entry_price if price is None else price)

    def profit_percentage(self, current_price: float) -> float:
        """Unrealized profit as a fraction of entry."""
        if self.entry_price <= 0:
            return 0.0
        if self.is_long:
            return (current_price - self.entry_price) / self.entry_price
        return (self.entry_price - current_price) / self.entry_price

    def risk_amount(self) -> float:
        """Amount lost if the stop is hit (0 without a stop)."""
        if self.stop_loss is None:
            return 0.0
        return abs(self.entry_price - self.stop_loss) * self.quantity


# ============================================================
# ACCOUNT SNAPSHOT
# ============================================================

@dataclass(frozen=True)
class AccountState:
    """
    Account snapshot produced by the execution layer.

    current_drawdown is DERIVED from peak and total equity,
    so it cannot disagree with them.
    """

    total_equity: float
    available_balance: float
    peak_equity: float
    position_value: float = 0.0
    unrealized_pnl: float = 0.0
    daily_realized_pnl: float = 0.0
    max_intraday_drawdown: float = 0.0
    open_positions: Tuple[Position, ...] = ()
    total_exposure_percentage: float = 0.0
    """Fraction of equity at risk across open positions."""
    daily_trade_count: int = 0
    last_trade_time: Optional[datetime] = None
    margin_usage: float = 0.0
    captured_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self):
        ids = [p.position_id for p in self.open_positions]
        if len(ids) != len(set(ids)):
            duplicates = sorted({i for i in ids if ids.count(i) > 1})
            raise InvalidSnapshotError(
                f"Duplicate position ids in account snapshot: {duplicates}",
                context={"duplicates": duplicates},
            )

    @property
    def current_drawdown(self) -> float:
        """(peak - equity) / peak, never negative, 0 without a peak."""
        if self.peak_equity <= 0:
            return 0.0
        return max(0.0, (self.peak_equity - self.total_equity) / self.peak_equity)

    @property
    def open_position_count(self) -> int:
        return len(self.open_positions)

    def daily_loss_percentage(self) -> float:
        """Realized daily LOSS as a fraction of equity (profits count as 0)."""
        loss = max(0.0, -self.daily_realized_pnl)
        if loss == 0:
            return 0.0
        if self.total_equity <= 0:
            return 1.0
        return loss / self.total_equity

    def calculate_risk_exposure(self) -> float:
        """Amount at risk across stopped positions as a fraction of equity."""
        if self.total_equity <= 0:
            return 0.0
        return sum(p.risk_amount() for p in self.open_positions) / self.total_equity

    def is_within_risk_limits(self, parameters: RiskParameters) -> bool:
        """Quick check of account-level limits."""
        return (
            self.current_drawdown <= parameters.max_intraday_drawdown
            and self.total_exposure_percentage <= parameters.max_portfolio_exposure
            and self.open_position_count <= parameters.max_open_positions
            and self.daily_loss_percentage() <= parameters.max_daily_loss
        )


# ============================================================
# TRADE HISTORY
# ============================================================

@dataclass(frozen=True)
class TradeRecord:
    """Completed trade, used for performance and Kelly statistics."""

    trade_id: str
    symbol: str
    side: OrderSide
    entry_price: float
    exit_price: float
    quantity: float
    entry_time: datetime
    exit_time: datetime
    pnl: float
    pnl_percentage: float
    fee: float = 0.0

    @property
    def is_winner(self) -> bool:
        return self.pnl > 0

    @property
    def duration(self) -> timedelta:
        return self.exit_time - self.entry_time


# ============================================================
# ORDERS
# ============================================================

@dataclass(frozen=True)
class PendingOrder:
    """Order waiting for a fill."""

    order_id: str
    symbol: str
    side: OrderSide
    quantity: float
    price: Optional[float] = None
    order_type: OrderType = OrderType.LIMIT
    created_at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class ExecutionReport:
    """Fill summary reported by the execution layer."""

    order_id: str
    average_price: float
    executed_quantity: float
    execution_time: timedelta = timedelta(0)
    total_fees: float = 0.0


# ============================================================
# POSITION SIZING RESULT
# ============================================================

@dataclass(frozen=True)
class PositionSizeResult:
    """Sized order recommendation."""

    quantity: float
    risk_amount: float
    risk_percentage: float
    kelly_optimal_percentage: float = 0.0
    volatility_adjustment: float = 1.0
    drawdown_adjustment: float = 1.0
    final_adjustment: float = 1.0
    is_valid: bool = True
    invalid_reason: Optional[InvalidSizeReason] = None
    expected_profits: Dict[str, float] = field(default_factory=dict)
    risk_reward_ratios: Dict[str, float] = field(default_factory=dict)
    calculated_at: datetime = field(default_factory=_utcnow, compare=False)

    @classmethod
    def failure(
        cls,
        reason: InvalidSizeReason,
        risk_percentage: float = 0.0,
        **kwargs,
    ) -> "PositionSizeResult":
        """Invalid size. Quantity and risk are zero."""
        return cls(
            quantity=0.0,
            risk_amount=0.0,
            risk_percentage=risk_percentage,
            is_valid=False,
            invalid_reason=reason,
            **kwargs,
        )


# ============================================================
# CIRCUIT BREAKER RESULT
# ============================================================

@dataclass(frozen=True)
class CircuitBreakerTrigger:
    """One tripped breaker."""

    name: str
    severity: CircuitBreakerSeverity
    trigger_value: float
    threshold_value: float
    description: str = ""


@dataclass(frozen=True)
class CircuitBreakerResult:
    """Outcome of one circuit breaker evaluation."""

    is_triggered: bool
    system_state: SystemState
    max_severity: CircuitBreakerSeverity = CircuitBreakerSeverity.NONE
    triggers: Tuple[CircuitBreakerTrigger, ...] = ()
    reset_time: Optional[datetime] = None
    cooldown_minutes: int = 0
    recommended_actions: Tuple[str, ...] = ()
    evaluated_at: datetime = field(default_factory=_utcnow, compare=False)

    @classmethod
    def normal(cls, evaluated_at: Optional[datetime] = None) -> "CircuitBreakerResult":
        """Nothing tripped."""
        return cls(
            is_triggered=False,
            system_state=SystemState.NORMAL,
            evaluated_at=evaluated_at or _utcnow(),
        )

    @classmethod
    def triggered(
        cls,
        triggers: List[CircuitBreakerTrigger],
        cooldown_minutes: int,
        now: datetime,
    ) -> "CircuitBreakerResult":
        """Derive severity, state and reset time from tripped breakers."""
        max_severity = max(t.severity for t in triggers)
        state = SystemState.from_severity(max_severity)

        actions = ["Block new entries until cooldown expires"]
        if state == SystemState.EMERGENCY:
            actions.append("Close or reduce open positions")
        actions.append("Review triggers before resuming")

        return cls(
            is_triggered=True,
            system_state=state,
            max_severity=max_severity,
            triggers=tuple(triggers),
            reset_time=now + timedelta(minutes=cooldown_minutes),
            cooldown_minutes=cooldown_minutes,
            recommended_actions=tuple(actions),
            evaluated_at=now,
        )

    @property
    def trigger_names(self) -> List[str]:
        return [t.name for t in self.triggers]


# ============================================================
# VALIDATION RESULT
# ============================================================

@dataclass(frozen=True)
class RiskCheckResult:
    """Outcome of one validation check."""

    name: RiskCheckName
    passed: bool
    score: float = 0.0
    """Risk contribution, 0 when passed."""
    message: str = ""


@dataclass(frozen=True)
class RiskValidationResult:
    """
    Aggregate verdict over all checks.

    Every check is reported, passed or not.
    """

    is_valid: bool
    risk_score: float
    risk_level: RiskLevel
    checks: Tuple[RiskCheckResult, ...] = ()
    failures: Tuple[str, ...] = ()
    recommended_actions: Tuple[str, ...] = ()
    max_recommended_position_size: float = 0.0
    """Fraction of equity to risk at most."""
    confidence: float = 0.0
    validated_at: datetime = field(default_factory=_utcnow, compare=False)

    @property
    def failed_checks(self) -> List[RiskCheckName]:
        return [c.name for c in self.checks if not c.passed]

    def get_check(self, name: RiskCheckName) -> Optional[RiskCheckResult]:
        """Look up a check by name."""
        for check in self.checks:
            if check.name == name:
                return check
        return None


# ============================================================
# CLOSURE RESULT
# ============================================================

@dataclass(frozen=True)
class PositionClosureResult:
    """Close/reduce instruction for the execution layer."""

    should_close: bool
    reason: Optional[ClosureReason] = None
    percentage_to_close: float = 0.0
    urgency: ClosureUrgency = ClosureUrgency.LOW
    description: str = ""
    recommended_order_type: OrderType = OrderType.MARKET
    risk_factors: Tuple[str, ...] = ()

    @classmethod
    def keep_open(cls, description: str = "", risk_factors: Tuple[str, ...] = ()) -> "PositionClosureResult":
        return cls(should_close=False, description=description, risk_factors=risk_factors)

    @classmethod
    def close(
        cls,
        reason: ClosureReason,
        description: str,
        percentage: float = 100.0,
        urgency: ClosureUrgency = ClosureUrgency.NORMAL,
        risk_factors: Tuple[str, ...] = (),
    ) -> "PositionClosureResult":
        # Limit orders are fine unless the exit cannot wait
        order_type = OrderType.MARKET if urgency >= ClosureUrgency.HIGH else OrderType.LIMIT
        return cls(
            should_close=True,
            reason=reason,
            percentage_to_close=percentage,
            urgency=urgency,
            description=description,
            recommended_order_type=order_type,
            risk_factors=risk_factors,
        )


# ============================================================
# EXECUTION HELPER RESULTS
# ============================================================

@dataclass(frozen=True)
class SlippageEstimate:
    """Expected slippage for an order."""

    max_acceptable_slippage: float
    expected_slippage: float
    worst_case_slippage: float
    recommended_limit_price: float
    primary_reason: SlippageReason
    factors: Dict[str, float] = field(default_factory=dict)

    def exceeds_limit(self, max_slippage: float) -> bool:
        """Check expected slippage against a configured cap."""
        return self.expected_slippage > max_slippage


@dataclass(frozen=True)
class OrderTypeRecommendation:
    """Suggested order type for a signal."""

    order_type: OrderType
    limit_price: Optional[float]
    reasoning: str
    confidence: float
    alternative: Optional[OrderType] = None


@dataclass(frozen=True)
class OrderCancellationResult:
    """Whether a pending order should be pulled."""

    should_cancel: bool
    reason: Optional[CancellationReason] = None
    description: str = ""
    urgency_score: float = 0.0
    considerations: Tuple[str, ...] = ()

    @classmethod
    def keep(cls, description: str = "", urgency_score: float = 0.0,
             considerations: Tuple[str, ...] = ()) -> "OrderCancellationResult":
        return cls(
            should_cancel=False,
            description=description,
            urgency_score=urgency_score,
            considerations=considerations,
        )

    @classmethod
    def cancel(cls, reason: CancellationReason, description: str, urgency_score: float,
               considerations: Tuple[str, ...] = ()) -> "OrderCancellationResult":
        return cls(
            should_cancel=True,
            reason=reason,
            description=description,
            urgency_score=urgency_score,
            considerations=considerations,
        )


@dataclass(frozen=True)
class OrderValidationResult:
    """Pre-submission check of a concrete order."""

    is_valid: bool
    risk_level: RiskLevel
    risk_score: float = 0.0
    errors: Tuple[str, ...] = ()
    warnings: Tuple[str, ...] = ()

    @classmethod
    def success(cls, risk_level: RiskLevel, risk_score: float,
                warnings: Tuple[str, ...] = ()) -> "OrderValidationResult":
        return cls(is_valid=True, risk_level=risk_level, risk_score=risk_score, warnings=warnings)

    @classmethod
    def failure(cls, errors: Tuple[str, ...], risk_level: RiskLevel = RiskLevel.VERY_HIGH,
                risk_score: float = 0.0, warnings: Tuple[str, ...] = ()) -> "OrderValidationResult":
        return cls(
            is_valid=False,
            risk_level=risk_level,
            risk_score=risk_score,
            errors=errors,
            warnings=warnings,
        )


@dataclass(frozen=True)
class ExecutionQualityResult:
    """Post-trade execution grade."""

    quality: ExecutionQuality
    actual_slippage: float
    slippage_cost: float
    execution_price: float
    execution_time: timedelta
    issues: Tuple[str, ...] = ()

    @property
    def is_good_execution(self) -> bool:
        return self.quality <= ExecutionQuality.GOOD


# ============================================================
# PERFORMANCE
# ============================================================

@dataclass(frozen=True)
class PerformanceMetrics:
    """Statistics over a trade history."""

    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    total_return: float = 0.0
    total_return_percentage: float = 0.0
    win_rate: float = 0.0
    """Fraction of winning trades, 0-1."""
    average_win: float = 0.0
    average_loss: float = 0.0
    """Absolute value of the average losing trade."""
    average_win_loss_ratio: float = 0.0
    profit_factor: float = 0.0
    sharpe_ratio: float = 0.0
    sortino_ratio: float = 0.0
    max_drawdown: float = 0.0
    """Maximum drawdown of the equity curve as a fraction."""


# ============================================================
# ENGINE OUTPUT
# ============================================================

@dataclass(frozen=True)
class TradeDecision:
    """Full go/no-go answer for a signal."""

    approved: bool
    signal: TradingSignal
    validation: Optional[RiskValidationResult] = None
    sizing: Optional[PositionSizeResult] = None
    stop_levels: Optional[StopLossLevels] = None
    circuit_breaker: Optional[CircuitBreakerResult] = None
    rejection_reasons: Tuple[str, ...] = ()
    evaluation_time_ms: float = field(default=0.0, compare=False)

    @property
    def quantity(self) -> float:
        """Approved order quantity (0 when rejected)."""
        if not self.approved or self.sizing is None:
            return 0.0
        return self.sizing.quantity
