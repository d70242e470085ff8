"""
Risk Core - Risk Manager.

============================================================
PURPOSE
============================================================
Single entry point wiring the risk components together for
the execution layer.

============================================================
CRITICAL BEHAVIOR
============================================================
1. FAIL-SAFE DEFAULT
   - Any internal error on the trade path = REJECT
   - Any internal error on the position path = KEEP OPEN
     (stops stay where they were, nothing is loosened)

2. CONFIGURATION IS CHECKED AT CONSTRUCTION
   - Invalid parameters raise ConfigurationError
   - That is the ONLY exception the manager raises

3. ONE COOLDOWN TRACKER
   - Validator, closure evaluator and monitor share the
     circuit breaker evaluator and its tracker
   - Both the trade path and the position path record
     breaker trips before deciding

4. DETERMINISTIC
   - Same snapshots + same time = same decision

============================================================
"""

from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple
import logging
import time

from .alerting import AlertingService
from .circuit_breaker import CircuitBreakerEvaluator, StateTransition
from .clock import ClockProtocol, SystemClock, ensure_utc
from .closure import PositionClosureEvaluator
from .config import RiskCoreConfig, RiskParameters
from .models import (
    AccountState,
    CircuitBreakerResult,
    MarketConditions,
    Position,
    PositionClosureResult,
    TradeDecision,
    TradeRecord,
    TradingSignal,
)
from .position_sizing import PositionSizingCalculator, volatility_multiplier_for_regime
from .stop_loss import StopLossManager
from .validator import RiskValidator


logger = logging.getLogger(__name__)


class RiskManager:
    """
    The risk decision facade.

    Usage:
        manager = RiskManager(config)
        decision = manager.evaluate_trade(signal, account, market)

        if decision.approved:
            # Submit decision.quantity with decision.stop_levels
            pass
        else:
            # decision.rejection_reasons says why
            pass
    """

    def __init__(
        self,
        config: Optional[RiskCoreConfig] = None,
        clock: Optional[ClockProtocol] = None,
        alerting: Optional[AlertingService] = None,
    ):
        """
        Initialize the risk manager.

        Args:
            config: Master configuration (defaults if None)
            clock: Clock (system clock if None)
            alerting: Alerting service (built from config if None)

        Raises:
            ConfigurationError: If the configuration is invalid
        """
        self._config = (config or RiskCoreConfig()).validate()
        self._clock = clock or SystemClock()

        parameters = self._config.parameters
        self._circuit_breaker = CircuitBreakerEvaluator(parameters, clock=self._clock)
        self._validator = RiskValidator(
            parameters,
            circuit_breaker=self._circuit_breaker,
            clock=self._clock,
        )
        self._sizing = PositionSizingCalculator(parameters)
        self._stops = StopLossManager(parameters)
        self._closure = PositionClosureEvaluator(
            parameters,
            circuit_breaker=self._circuit_breaker,
            clock=self._clock,
        )
        self._alerting = alerting or AlertingService.from_config(self._config.alerting, clock=self._clock)

        logger.info(
            f"RiskManager initialized (max_risk_per_trade={parameters.max_risk_per_trade}, "
            f"max_open_positions={parameters.max_open_positions})"
        )

    # ========================================================
    # ACCESSORS
    # ========================================================

    @property
    def config(self) -> RiskCoreConfig:
        return self._config

    @property
    def parameters(self) -> RiskParameters:
        return self._config.parameters

    @property
    def circuit_breaker(self) -> CircuitBreakerEvaluator:
        return self._circuit_breaker

    @property
    def validator(self) -> RiskValidator:
        return self._validator

    @property
    def sizing(self) -> PositionSizingCalculator:
        return self._sizing

    @property
    def stops(self) -> StopLossManager:
        return self._stops

    @property
    def closure(self) -> PositionClosureEvaluator:
        return self._closure

    @property
    def alerting(self) -> AlertingService:
        return self._alerting

    def _now(self, now: Optional[datetime]) -> datetime:
        return ensure_utc(now) if now is not None else self._clock.now()

    # ========================================================
    # TRADE PATH
    # ========================================================

    def evaluate_trade(
        self,
        signal: TradingSignal,
        account: AccountState,
        market: MarketConditions,
        trade_history: Optional[Sequence[TradeRecord]] = None,
        now: Optional[datetime] = None,
    ) -> TradeDecision:
        """
        Decide whether a signal may trade, and how.

        CRITICAL: This method NEVER throws exceptions.
        Any exception results in a rejected decision.

        Args:
            signal: Trade proposal
            account: Account snapshot
            market: Market snapshot for the signal's symbol
            trade_history: Completed trades for Kelly sizing
            now: Evaluation time (clock if None)

        Returns:
            TradeDecision
        """
        start_time = time.perf_counter()

        try:
            decision = self._evaluate_internal(signal, account, market, trade_history, self._now(now))
        except Exception as e:
            logger.error(f"RiskManager internal error evaluating {signal.signal_id}: {e}", exc_info=True)
            decision = TradeDecision(
                approved=False,
                signal=signal,
                rejection_reasons=(f"Internal error: {e.__class__.__name__}: {e}",),
            )

        elapsed_ms = (time.perf_counter() - start_time) * 1000
        return replace(decision, evaluation_time_ms=elapsed_ms)

    def _evaluate_internal(
        self,
        signal: TradingSignal,
        account: AccountState,
        market: MarketConditions,
        trade_history: Optional[Sequence[TradeRecord]],
        now: datetime,
    ) -> TradeDecision:
        # Record trips first so the cooldown outlives this tick
        breaker = self._circuit_breaker.evaluate(account, market, now)
        validation = self._validator.validate_trade(signal, account, market, now)

        if not validation.is_valid:
            return TradeDecision(
                approved=False,
                signal=signal,
                validation=validation,
                circuit_breaker=breaker,
                rejection_reasons=validation.failures,
            )

        stop_levels = self._stops.calculate_stop_loss_levels(signal.entry_price, signal)

        kelly = None
        if trade_history:
            kelly = self._sizing.calculate_kelly_from_history(trade_history, account.total_equity)

        risk_percentage = min(
            self.parameters.max_risk_per_trade,
            validation.max_recommended_position_size,
        )

        sizing = self._sizing.calculate_position_size(
            account_equity=account.total_equity,
            risk_percentage=risk_percentage,
            entry_price=signal.entry_price,
            stop_loss_price=stop_levels.initial_stop_loss,
            volatility_multiplier=volatility_multiplier_for_regime(market.volatility_regime),
            current_drawdown=account.current_drawdown,
            kelly_percentage=kelly,
            take_profit_price=stop_levels.take_profit,
        )

        if not sizing.is_valid:
            reason = sizing.invalid_reason.value if sizing.invalid_reason else "UNKNOWN"
            logger.warning(f"Signal {signal.signal_id} rejected by sizing: {reason}")
            return TradeDecision(
                approved=False,
                signal=signal,
                validation=validation,
                sizing=sizing,
                stop_levels=stop_levels,
                circuit_breaker=breaker,
                rejection_reasons=(f"Position sizing: {reason}",),
            )

        logger.info(
            f"Signal {signal.signal_id} approved: {signal.side.value} {sizing.quantity} "
            f"{signal.symbol} stop={stop_levels.initial_stop_loss}"
        )
        return TradeDecision(
            approved=True,
            signal=signal,
            validation=validation,
            sizing=sizing,
            stop_levels=stop_levels,
            circuit_breaker=breaker,
        )

    # ========================================================
    # CIRCUIT BREAKERS
    # ========================================================

    def check_circuit_breakers(
        self,
        account: AccountState,
        market: MarketConditions,
        now: Optional[datetime] = None,
    ) -> CircuitBreakerResult:
        """Evaluate breakers and record any trip."""
        return self._circuit_breaker.evaluate(account, market, self._now(now))

    async def monitor(
        self,
        account: AccountState,
        market: MarketConditions,
        now: Optional[datetime] = None,
    ) -> CircuitBreakerResult:
        """
        Periodic breaker evaluation with alerting.

        Intended to run on a timer next to the trade path.
        """
        result = self.check_circuit_breakers(account, market, now)
        if result.is_triggered:
            await self._alerting.alert_circuit_breaker(result)
        return result

    def halt(self, reason: str, operator: str = "operator") -> StateTransition:
        """Manually halt all new entries and position management."""
        return self._circuit_breaker.halt(reason, operator)

    def resume(self, operator: str = "operator") -> StateTransition:
        """Lift a manual halt."""
        return self._circuit_breaker.resume(operator)

    async def halt_with_alert(self, reason: str, operator: str = "operator") -> StateTransition:
        """Halt and notify operators."""
        transition = self.halt(reason, operator)
        await self._alerting.alert_state_transition(transition)
        return transition

    async def resume_with_alert(self, operator: str = "operator") -> StateTransition:
        """Resume and notify operators."""
        transition = self.resume(operator)
        await self._alerting.alert_state_transition(transition)
        return transition

    # ========================================================
    # POSITION PATH
    # ========================================================

    def manage_position(
        self,
        position: Position,
        account: AccountState,
        market: MarketConditions,
        now: Optional[datetime] = None,
    ) -> Tuple[Position, PositionClosureResult]:
        """
        Trail stops and evaluate closure for one position.

        Never throws. On error the position is returned unchanged
        and kept open.

        Returns:
            (possibly updated position, closure instruction)
        """
        try:
            now = self._now(now)

            self._circuit_breaker.evaluate(account, market, now)
            state = self._circuit_breaker.effective_state(now)
            if not state.allows_position_management():
                return position, PositionClosureResult.keep_open(
                    f"Position management suspended: system {state.name}"
                )

            updated = self._stops.update_trailing_stops(position, market.current_price, market)
            closure = self._closure.should_close_position(updated, account, market, now)
            return updated, closure

        except Exception as e:
            logger.error(f"Error managing position {position.position_id}: {e}", exc_info=True)
            return position, PositionClosureResult.keep_open(f"Evaluation error: {e}")

    async def manage_position_with_alerts(
        self,
        position: Position,
        account: AccountState,
        market: MarketConditions,
        now: Optional[datetime] = None,
    ) -> Tuple[Position, PositionClosureResult]:
        """manage_position, alerting on HIGH/EMERGENCY closures."""
        updated, closure = self.manage_position(position, account, market, now)
        if closure.should_close:
            await self._alerting.alert_position_closure(updated, closure)
        return updated, closure

    def manage_positions(
        self,
        account: AccountState,
        markets: Dict[str, MarketConditions],
        now: Optional[datetime] = None,
    ) -> List[Tuple[Position, PositionClosureResult]]:
        """
        manage_position for every open position with a market snapshot.

        Args:
            account: Account snapshot
            markets: Symbol -> MarketConditions
        """
        results = []
        for position in account.open_positions:
            market = markets.get(position.symbol)
            if market is None:
                logger.warning(f"No market snapshot for {position.symbol}, skipping {position.position_id}")
                continue
            results.append(self.manage_position(position, account, market, now))
        return results

    # ========================================================
    # HEALTH
    # ========================================================

    def health_check(self) -> dict:
        """
        Report component status.

        Returns:
            Status dictionary
        """
        now = self._clock.now()
        state = self._circuit_breaker.effective_state(now)
        reset_time = self._circuit_breaker.cooldown_reset_time(now)
        p = self.parameters

        return {
            "status": "OK" if state.allows_new_trades() else "DEGRADED",
            "timestamp": now.isoformat(),
            "system_state": state.name,
            "cooldown_until": reset_time.isoformat() if reset_time else None,
            "halted": self._circuit_breaker.tracker.is_halted,
            "alert_senders": [s.__class__.__name__ for s in self._alerting.senders],
            "config": {
                "risk_management_enabled": p.risk_management_enabled,
                "circuit_breakers_enabled": p.circuit_breakers_enabled,
                "max_risk_per_trade": p.max_risk_per_trade,
                "max_open_positions": p.max_open_positions,
            },
        }


# ============================================================
# CONVENIENCE FUNCTIONS
# ============================================================

def create_risk_manager(
    config: Optional[RiskCoreConfig] = None,
    clock: Optional[ClockProtocol] = None,
) -> RiskManager:
    """
    Create a new RiskManager.

    Args:
        config: Optional configuration

    Returns:
        Configured RiskManager
    """
    return RiskManager(config=config, clock=clock)


def evaluate_trade(
    manager: RiskManager,
    signal: TradingSignal,
    account: AccountState,
    market: MarketConditions,
) -> TradeDecision:
    """Evaluate a trade using the manager."""
    return manager.evaluate_trade(signal, account, market)


def is_trade_allowed(
    manager: RiskManager,
    signal: TradingSignal,
    account: AccountState,
    market: MarketConditions,
) -> bool:
    """
    Quick check if a trade is allowed.

    Returns:
        True if the decision is approved
    """
    return manager.evaluate_trade(signal, account, market).approved
