"""
Risk Core - Type Definitions.

============================================================
PURPOSE
============================================================
Enumerations shared by every risk component.

Severities, states and levels are ORDERED enumerations
(IntEnum). Comparing them compares their integer rank,
so "max of triggered severities" is simply max().

============================================================
"""

from enum import Enum, IntEnum


# ============================================================
# ORDER SIDE
# ============================================================

class OrderSide(str, Enum):
    """Direction of a signal, order or position."""

    BUY = "BUY"
    """Long exposure."""

    SELL = "SELL"
    """Short exposure."""

    def is_long(self) -> bool:
        """Check if side is long."""
        return self == OrderSide.BUY


# ============================================================
# MARKET CLASSIFICATION
# ============================================================

class VolatilityRegime(str, Enum):
    """Volatility classification supplied by the market-data layer."""

    LOW = "LOW"
    NORMAL = "NORMAL"
    HIGH = "HIGH"
    EXTREME = "EXTREME"


class MarketTrend(IntEnum):
    """Trend classification."""

    STRONG_BEARISH = -2
    BEARISH = -1
    SIDEWAYS = 0
    BULLISH = 1
    STRONG_BULLISH = 2


class AnomalySeverity(IntEnum):
    """Severity of a detected market anomaly."""

    LOW = 0
    MEDIUM = 1
    HIGH = 2
    CRITICAL = 3


# ============================================================
# CIRCUIT BREAKER
# ============================================================

class CircuitBreakerSeverity(IntEnum):
    """
    Severity of a circuit breaker trigger.

    Higher values are more severe.
    Overall severity of an evaluation is the max of its triggers.
    """

    NONE = 0
    """Nothing triggered."""

    LOW = 1
    """Informational."""

    MEDIUM = 2
    """Market-wide caution (e.g. extreme volatility)."""

    HIGH = 3
    """Account or market limit breached."""

    CRITICAL = 4
    """Loss limit breached. Forces EMERGENCY state."""

    EMERGENCY = 5
    """Reserved for manual escalation."""


class SystemState(IntEnum):
    """
    Operating state derived from circuit breakers.

    NORMAL → RESTRICTED → EMERGENCY are derived automatically.
    HALTED is only ever set manually by an operator.
    """

    NORMAL = 0
    """All trading allowed."""

    RESTRICTED = 1
    """
    A breaker tripped without critical severity.
    New entries rejected until cooldown expires.
    """

    EMERGENCY = 2
    """
    Critical breaker tripped.
    New entries rejected, open positions flagged for exit.
    Monitoring continues.
    """

    HALTED = 3
    """
    Manual halt.
    Nothing resumes until an operator resumes it.
    """

    def allows_new_trades(self) -> bool:
        """Check if state allows opening new positions."""
        return self == SystemState.NORMAL

    def allows_position_management(self) -> bool:
        """Check if stops may still be managed in this state."""
        return self != SystemState.HALTED

    @classmethod
    def from_severity(cls, severity: CircuitBreakerSeverity) -> "SystemState":
        """Derive state from the overall trigger severity."""
        if severity >= CircuitBreakerSeverity.CRITICAL:
            return cls.EMERGENCY
        if severity > CircuitBreakerSeverity.NONE:
            return cls.RESTRICTED
        return cls.NORMAL


# ============================================================
# VALIDATION
# ============================================================

class RiskLevel(IntEnum):
    """Banding of an aggregate risk score (0-100, lower is better)."""

    VERY_LOW = 0
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    VERY_HIGH = 4
    EXTREME = 5

    @classmethod
    def from_score(cls, score: float) -> "RiskLevel":
        """Band a risk score."""
        if score < 20:
            return cls.VERY_LOW
        if score < 40:
            return cls.LOW
        if score < 60:
            return cls.MEDIUM
        if score < 80:
            return cls.HIGH
        if score < 100:
            return cls.VERY_HIGH
        return cls.EXTREME


class RiskCheckName(str, Enum):
    """Names of the individual validation checks."""

    CIRCUIT_BREAKER = "CIRCUIT_BREAKER"
    ACCOUNT_EQUITY = "ACCOUNT_EQUITY"
    POSITION_COUNT = "POSITION_COUNT"
    TRADE_FREQUENCY = "TRADE_FREQUENCY"
    PORTFOLIO_EXPOSURE = "PORTFOLIO_EXPOSURE"
    POSITION_CORRELATION = "POSITION_CORRELATION"
    MARKET_SUITABILITY = "MARKET_SUITABILITY"
    DRAWDOWN = "DRAWDOWN"
    DAILY_LOSS = "DAILY_LOSS"
    SIGNAL_QUALITY = "SIGNAL_QUALITY"


class InvalidSizeReason(str, Enum):
    """Why a position size could not be produced."""

    INVALID_EQUITY = "INVALID_EQUITY"
    """Account equity is zero or negative."""

    INVALID_PRICE = "INVALID_PRICE"
    """Entry or stop price is zero or negative."""

    INVALID_RISK_PERCENTAGE = "INVALID_RISK_PERCENTAGE"
    """Risk percentage is outside (0, 1]."""

    ZERO_STOP_DISTANCE = "ZERO_STOP_DISTANCE"
    """Stop equals entry, per-unit risk is zero."""

    DRAWDOWN_LIMIT = "DRAWDOWN_LIMIT"
    """Drawdown at or beyond threshold forced size to zero."""

    BELOW_EXCHANGE_MINIMUM = "BELOW_EXCHANGE_MINIMUM"
    """Rounded size is below the minimum order quantity."""


# ============================================================
# POSITION CLOSURE
# ============================================================

class ClosureReason(str, Enum):
    """Why a position should be closed or reduced."""

    STOP_LOSS_HIT = "STOP_LOSS_HIT"
    TAKE_PROFIT_HIT = "TAKE_PROFIT_HIT"
    RISK_LIMIT_EXCEEDED = "RISK_LIMIT_EXCEEDED"
    MARKET_CONDITIONS_CHANGED = "MARKET_CONDITIONS_CHANGED"
    TIME_STOP = "TIME_STOP"
    EMERGENCY_EXIT = "EMERGENCY_EXIT"
    VOLATILITY_SPIKE = "VOLATILITY_SPIKE"
    DRAWDOWN_PROTECTION = "DRAWDOWN_PROTECTION"
    MANUAL_OVERRIDE = "MANUAL_OVERRIDE"


class ClosureUrgency(IntEnum):
    """How quickly a closure should be executed."""

    LOW = 0
    NORMAL = 1
    HIGH = 2
    EMERGENCY = 3


# ============================================================
# ORDER HANDLING
# ============================================================

class OrderType(str, Enum):
    """Order types the execution layer understands."""

    MARKET = "MARKET"
    LIMIT = "LIMIT"
    STOP_LOSS = "STOP_LOSS"
    TAKE_PROFIT = "TAKE_PROFIT"


class OrderUrgency(IntEnum):
    """Urgency of an order request."""

    LOW = 0
    NORMAL = 1
    HIGH = 2
    CRITICAL = 3


class SlippageReason(str, Enum):
    """Dominant driver of expected slippage."""

    LOW_LIQUIDITY = "LOW_LIQUIDITY"
    HIGH_VOLATILITY = "HIGH_VOLATILITY"
    LARGE_ORDER_SIZE = "LARGE_ORDER_SIZE"
    TIME_OF_DAY = "TIME_OF_DAY"
    MARKET_CONDITIONS = "MARKET_CONDITIONS"


class CancellationReason(str, Enum):
    """Why a pending order should be cancelled."""

    MARKET_CONDITIONS_CHANGED = "MARKET_CONDITIONS_CHANGED"
    VOLATILITY_TOO_HIGH = "VOLATILITY_TOO_HIGH"
    LIQUIDITY_TOO_LOW = "LIQUIDITY_TOO_LOW"
    TIMEOUT_REACHED = "TIMEOUT_REACHED"


class ExecutionQuality(IntEnum):
    """Grade of a completed execution. Lower is better."""

    EXCELLENT = 0
    GOOD = 1
    AVERAGE = 2
    POOR = 3
    TERRIBLE = 4
