"""
Risk Core - Order Execution Helpers.

============================================================
PURPOSE
============================================================
Order-level advice for the execution layer. The risk core
never submits or cancels orders itself; these functions only
return recommendations.

- estimate_slippage:           expected/worst-case slippage
- recommend_order_type:        MARKET vs LIMIT
- should_cancel_order:         pull a stale pending order?
- validate_order:              pre-submission order sanity check
- analyze_execution_quality:   grade a fill after the fact

============================================================
SLIPPAGE MODEL
============================================================
max = min(0.0005 * liquidity * volatility * size * time_of_day, 0.05)
expected   = 60% of max
worst case = 150% of max

============================================================
"""

from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple
import logging

from .clock import ClockProtocol, SystemClock, ensure_utc
from .models import (
    AccountState,
    ExecutionQualityResult,
    ExecutionReport,
    MarketConditions,
    OrderCancellationResult,
    OrderTypeRecommendation,
    OrderValidationResult,
    PendingOrder,
    SlippageEstimate,
    TradingSignal,
)
from .types import (
    CancellationReason,
    ExecutionQuality,
    OrderType,
    OrderUrgency,
    RiskLevel,
    SlippageReason,
    VolatilityRegime,
)


logger = logging.getLogger(__name__)

_SYSTEM_CLOCK = SystemClock()


BASE_SLIPPAGE = 0.0005
MAX_SLIPPAGE_CAP = 0.05
EXPECTED_SLIPPAGE_RATIO = 0.6
WORST_CASE_SLIPPAGE_RATIO = 1.5

# (lower bound inclusive, factor), checked in order
LIQUIDITY_FACTORS: Tuple[Tuple[float, float], ...] = (
    (80.0, 1.0),
    (60.0, 1.5),
    (40.0, 2.0),
    (20.0, 3.0),
)
LOW_LIQUIDITY_FACTOR = 5.0

# (upper bound inclusive, factor), checked in order
VOLATILITY_FACTORS: Tuple[Tuple[float, float], ...] = (
    (0.01, 1.0),
    (0.02, 1.2),
    (0.05, 1.5),
    (0.10, 2.0),
)
EXTREME_VOLATILITY_FACTOR = 3.0

ORDER_SIZE_FACTORS: Tuple[Tuple[float, float], ...] = (
    (0.1, 1.0),
    (1.0, 1.1),
    (10.0, 1.3),
)
LARGE_ORDER_FACTOR = 1.5

_FACTOR_REASONS = {
    "liquidity": SlippageReason.LOW_LIQUIDITY,
    "volatility": SlippageReason.HIGH_VOLATILITY,
    "order_size": SlippageReason.LARGE_ORDER_SIZE,
    "time_of_day": SlippageReason.TIME_OF_DAY,
}

# Order type
MARKET_ORDER_VOLATILITY = 0.05
LIMIT_ORDER_LIQUIDITY = 50.0

# Cancellation
BASE_CANCEL_URGENCY = 50.0
VOLATILITY_WARN_CHANGE = 0.02
VOLATILITY_CANCEL_CHANGE = 0.05
LIQUIDITY_WARN_DROP = 20.0
LIQUIDITY_CANCEL_FLOOR = 30.0
SPREAD_WARN_CHANGE = 0.005
ORDER_WARN_AGE = timedelta(minutes=30)
ORDER_TIMEOUT = timedelta(hours=2)

# Execution quality, (upper bound inclusive, grade)
EXECUTION_GRADES: Tuple[Tuple[float, ExecutionQuality], ...] = (
    (0.001, ExecutionQuality.EXCELLENT),
    (0.005, ExecutionQuality.GOOD),
    (0.01, ExecutionQuality.AVERAGE),
    (0.02, ExecutionQuality.POOR),
)
HIGH_SLIPPAGE_ISSUE = 0.01
SLOW_EXECUTION_ISSUE = timedelta(minutes=5)

# Order validation
MAX_ORDER_POSITIONS = 10
ORDER_WARN_LIQUIDITY = 50.0
ORDER_WARN_SPREAD = 0.01
# (upper bound exclusive, level), checked in order
ORDER_RISK_LEVELS: Tuple[Tuple[float, RiskLevel], ...] = (
    (20.0, RiskLevel.LOW),
    (40.0, RiskLevel.MEDIUM),
    (70.0, RiskLevel.HIGH),
)


def _resolve_now(now: Optional[datetime], clock: Optional[ClockProtocol]) -> datetime:
    if now is not None:
        return ensure_utc(now)
    return (clock or _SYSTEM_CLOCK).now()


# ============================================================
# SLIPPAGE
# ============================================================

def liquidity_factor(liquidity: float) -> float:
    for lower, factor in LIQUIDITY_FACTORS:
        if liquidity >= lower:
            return factor
    return LOW_LIQUIDITY_FACTOR


def volatility_factor(volatility: float) -> float:
    for upper, factor in VOLATILITY_FACTORS:
        if volatility <= upper:
            return factor
    return EXTREME_VOLATILITY_FACTOR


def order_size_factor(quantity: float) -> float:
    for upper, factor in ORDER_SIZE_FACTORS:
        if quantity <= upper:
            return factor
    return LARGE_ORDER_FACTOR


def time_of_day_factor(moment: datetime) -> float:
    """Active hours 08-16 UTC, quiet hours 00-06 UTC."""
    hour = moment.astimezone(timezone.utc).hour if moment.tzinfo else moment.hour
    if 8 <= hour <= 16:
        return 1.0
    if 0 <= hour <= 6:
        return 1.5
    return 1.2


def estimate_slippage(
    order: PendingOrder,
    liquidity: float,
    volatility: float,
    now: Optional[datetime] = None,
    clock: Optional[ClockProtocol] = None,
) -> SlippageEstimate:
    """
    Estimate slippage for an order.

    Args:
        order: Order to estimate (price used for the limit suggestion)
        liquidity: Liquidity score, 0-100
        volatility: Volatility as a fraction of price
        now: Time of execution (clock if None)
        clock: Clock for the default time (system clock if None)

    Returns:
        SlippageEstimate
    """
    now = _resolve_now(now, clock)

    factors: Dict[str, float] = {
        "liquidity": liquidity_factor(liquidity),
        "volatility": volatility_factor(volatility),
        "order_size": order_size_factor(order.quantity),
        "time_of_day": time_of_day_factor(now),
    }

    total_factor = 1.0
    for value in factors.values():
        total_factor *= value

    max_slippage = min(BASE_SLIPPAGE * total_factor, MAX_SLIPPAGE_CAP)
    expected = max_slippage * EXPECTED_SLIPPAGE_RATIO
    worst_case = max_slippage * WORST_CASE_SLIPPAGE_RATIO

    price = order.price or 0.0
    if order.side.is_long():
        limit_price = price * (1 + expected)
    else:
        limit_price = price * (1 - expected)

    # First factor wins ties, matching dict order
    primary_key = max(factors, key=lambda k: factors[k])
    primary_reason = _FACTOR_REASONS.get(primary_key, SlippageReason.MARKET_CONDITIONS)

    logger.debug(
        f"Slippage for {order.order_id}: max={max_slippage:.4%} expected={expected:.4%} "
        f"primary={primary_reason.value}"
    )

    return SlippageEstimate(
        max_acceptable_slippage=max_slippage,
        expected_slippage=expected,
        worst_case_slippage=worst_case,
        recommended_limit_price=limit_price,
        primary_reason=primary_reason,
        factors=factors,
    )


# ============================================================
# ORDER TYPE
# ============================================================

def recommend_order_type(
    signal: TradingSignal,
    market: MarketConditions,
    urgency: OrderUrgency = OrderUrgency.NORMAL,
) -> OrderTypeRecommendation:
    """
    Recommend an order type for a signal.

    - CRITICAL urgency or volatility > 5% -> MARKET
    - Liquidity < 50                      -> LIMIT at entry
    - Otherwise                           -> LIMIT at entry
    """
    if urgency >= OrderUrgency.CRITICAL or market.volatility > MARKET_ORDER_VOLATILITY:
        return OrderTypeRecommendation(
            order_type=OrderType.MARKET,
            limit_price=None,
            reasoning="Market order recommended due to high urgency or volatility",
            confidence=90.0,
            alternative=OrderType.LIMIT,
        )

    if market.liquidity < LIMIT_ORDER_LIQUIDITY:
        return OrderTypeRecommendation(
            order_type=OrderType.LIMIT,
            limit_price=signal.entry_price,
            reasoning="Limit order recommended due to low liquidity",
            confidence=85.0,
            alternative=OrderType.MARKET,
        )

    return OrderTypeRecommendation(
        order_type=OrderType.LIMIT,
        limit_price=signal.entry_price,
        reasoning="Limit order recommended for normal market conditions",
        confidence=80.0,
        alternative=OrderType.MARKET,
    )


# ============================================================
# CANCELLATION
# ============================================================

def should_cancel_order(
    order: PendingOrder,
    current: MarketConditions,
    original: MarketConditions,
    now: Optional[datetime] = None,
    clock: Optional[ClockProtocol] = None,
) -> OrderCancellationResult:
    """
    Decide whether a pending order should be cancelled.

    The last cancelling condition found determines the reason.

    Args:
        order: Pending order
        current: Market snapshot now
        original: Market snapshot when the order was placed
        now: Evaluation time (clock if None)
        clock: Clock for the default time (system clock if None)

    Returns:
        OrderCancellationResult
    """
    now = _resolve_now(now, clock)

    considerations: List[str] = []
    urgency = BASE_CANCEL_URGENCY
    reason: Optional[CancellationReason] = None

    volatility_change = current.volatility - original.volatility
    if volatility_change > VOLATILITY_WARN_CHANGE:
        considerations.append(f"Volatility increased by {volatility_change:.1%}")
        urgency += 20.0
        if volatility_change > VOLATILITY_CANCEL_CHANGE:
            reason = CancellationReason.VOLATILITY_TOO_HIGH

    liquidity_drop = original.liquidity - current.liquidity
    if liquidity_drop > LIQUIDITY_WARN_DROP:
        considerations.append(f"Liquidity decreased by {liquidity_drop:.0f} points")
        urgency += 15.0
        if current.liquidity < LIQUIDITY_CANCEL_FLOOR:
            reason = CancellationReason.LIQUIDITY_TOO_LOW

    spread_change = current.bid_ask_spread - original.bid_ask_spread
    if spread_change > SPREAD_WARN_CHANGE:
        considerations.append(f"Bid-ask spread widened by {spread_change:.1%}")
        urgency += 10.0

    age = now - ensure_utc(order.created_at)
    if age > ORDER_WARN_AGE:
        considerations.append(f"Order is {age.total_seconds() / 60:.0f} minutes old")
        urgency += 5.0
        if age > ORDER_TIMEOUT:
            reason = CancellationReason.TIMEOUT_REACHED

    logger.info(
        f"Order cancellation evaluation for {order.order_id}: "
        f"cancel={reason is not None} (urgency: {urgency:.0f})"
    )

    if reason is None:
        return OrderCancellationResult.keep(
            "Order can remain active",
            urgency_score=urgency,
            considerations=tuple(considerations),
        )

    return OrderCancellationResult.cancel(
        reason,
        f"Order should be cancelled due to {reason.value}",
        urgency_score=urgency,
        considerations=tuple(considerations),
    )


# ============================================================
# ORDER VALIDATION
# ============================================================

def order_risk_level(risk_score: float) -> RiskLevel:
    for upper, level in ORDER_RISK_LEVELS:
        if risk_score < upper:
            return level
    return RiskLevel.VERY_HIGH


def validate_order(
    order: PendingOrder,
    account: AccountState,
    market: MarketConditions,
) -> OrderValidationResult:
    """
    Sanity-check a concrete order before it is submitted.

    Errors (order invalid):
    - quantity or limit price not positive
    - notional above the available balance (market orders
      are valued at the current price)
    - position count at the hard cap
    - market not suitable for trading

    Warnings (order valid, risk score raised):
    - EXTREME volatility regime
    - liquidity below 50
    - spread above 1%

    CRITICAL: Never throws. Any exception fails the order.

    Returns:
        OrderValidationResult
    """
    try:
        errors: List[str] = []
        warnings: List[str] = []
        risk_score = 0.0

        if order.quantity <= 0:
            errors.append("Order quantity must be greater than zero")
        if order.price is not None and order.price <= 0:
            errors.append("Order price must be greater than zero")

        price = order.price if order.price is not None else market.current_price
        required_balance = order.quantity * price
        if required_balance > account.available_balance:
            errors.append(
                f"Insufficient balance. Required: {required_balance:.2f}, "
                f"Available: {account.available_balance:.2f}"
            )

        if account.open_position_count >= MAX_ORDER_POSITIONS:
            errors.append("Maximum number of positions reached")

        if not market.is_suitable_for_trading():
            errors.append("Market conditions not suitable for trading")
            risk_score += 50.0

        if market.volatility_regime == VolatilityRegime.EXTREME:
            warnings.append("Extreme volatility detected")
            risk_score += 30.0
        if market.liquidity < ORDER_WARN_LIQUIDITY:
            warnings.append("Low liquidity conditions")
            risk_score += 20.0
        if market.bid_ask_spread > ORDER_WARN_SPREAD:
            warnings.append("Wide bid-ask spread detected")
            risk_score += 15.0

        risk_level = order_risk_level(risk_score)

        if errors:
            logger.warning(f"Order validation failed for {order.order_id}: {', '.join(errors)}")
            return OrderValidationResult.failure(
                tuple(errors),
                risk_level=risk_level,
                risk_score=risk_score,
                warnings=tuple(warnings),
            )

        logger.info(f"Order {order.order_id} validated with risk level {risk_level.name}")
        return OrderValidationResult.success(risk_level, risk_score, warnings=tuple(warnings))

    except Exception as e:
        logger.error(f"Error validating order {order.order_id}: {e}", exc_info=True)
        return OrderValidationResult.failure((f"Validation error: {e}",))


# ============================================================
# EXECUTION QUALITY
# ============================================================

def grade_slippage(slippage: float) -> ExecutionQuality:
    for upper, grade in EXECUTION_GRADES:
        if slippage <= upper:
            return grade
    return ExecutionQuality.TERRIBLE


def analyze_execution_quality(
    order: PendingOrder,
    report: ExecutionReport,
    expected_price: float,
) -> ExecutionQualityResult:
    """
    Grade a fill against the expected price.

    Returns:
        ExecutionQualityResult (TERRIBLE when expected_price is not positive)
    """
    if expected_price <= 0:
        logger.warning(f"Cannot grade {order.order_id}: expected price {expected_price}")
        return ExecutionQualityResult(
            quality=ExecutionQuality.TERRIBLE,
            actual_slippage=0.0,
            slippage_cost=0.0,
            execution_price=report.average_price,
            execution_time=report.execution_time,
            issues=("Expected price must be positive",),
        )

    slippage = abs(report.average_price - expected_price) / expected_price
    slippage_cost = slippage * order.quantity * expected_price
    quality = grade_slippage(slippage)

    issues = []
    if slippage > HIGH_SLIPPAGE_ISSUE:
        issues.append(f"High slippage: {slippage:.2%}")
    if report.execution_time > SLOW_EXECUTION_ISSUE:
        issues.append(f"Slow execution: {report.execution_time.total_seconds() / 60:.1f} minutes")

    logger.info(
        f"Execution quality for {order.order_id}: {quality.name} (slippage: {slippage:.2%})"
    )

    return ExecutionQualityResult(
        quality=quality,
        actual_slippage=slippage,
        slippage_cost=slippage_cost,
        execution_price=report.average_price,
        execution_time=report.execution_time,
        issues=tuple(issues),
    )
