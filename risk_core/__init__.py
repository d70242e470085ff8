"""
Risk Core.

============================================================
THE RISK DECISION CORE
============================================================

Given a trade signal, an account snapshot and a market
snapshot, decides:

- whether the trade is permitted
- how large it should be
- where its stops sit
- whether open positions must be reduced or closed

============================================================
DECISION FLOW
============================================================

Strategy → RISK CORE → Execution
              ↑
        YOU ARE HERE

The core never submits orders, fetches market data or
stores history. It is a library boundary.

============================================================
FAIL-SAFE BEHAVIOR
============================================================

- Invalid configuration → ConfigurationError at startup
- Rejections, trips, invalid sizes → returned as data
- Internal error on the trade path → REJECT

============================================================
USAGE
============================================================

```python
from risk_core import RiskManager, RiskCoreConfig
from risk_core import TradingSignal, AccountState, MarketConditions, OrderSide

manager = RiskManager(RiskCoreConfig.from_env())

decision = manager.evaluate_trade(signal, account, market)

if decision.approved:
    execution.submit(signal.symbol, decision.quantity, decision.stop_levels)
else:
    logger.warning(f"Trade rejected: {decision.rejection_reasons}")

# On a timer
await manager.monitor(account, market)
```

============================================================
"""

# Types
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
    OrderUrgency,
    RiskCheckName,
    RiskLevel,
    SlippageReason,
    SystemState,
    VolatilityRegime,
)

# Exceptions
from .exceptions import (
    ConfigurationError,
    InvalidSnapshotError,
    RiskCoreError,
    Severity,
)

# Clock
from .clock import ClockProtocol, MockClock, SystemClock

# Configuration
from .config import (
    AlertingConfig,
    RiskCoreConfig,
    RiskParameters,
    get_aggressive_config,
    get_conservative_config,
    get_default_config,
    get_testing_config,
    load_config_from_dict,
    load_parameters_from_dict,
    load_parameters_from_env,
)

# Models
from .models import (
    AccountState,
    CircuitBreakerResult,
    CircuitBreakerTrigger,
    ExecutionQualityResult,
    ExecutionReport,
    MarketAnomaly,
    MarketConditions,
    OrderCancellationResult,
    OrderTypeRecommendation,
    OrderValidationResult,
    PendingOrder,
    PerformanceMetrics,
    Position,
    PositionClosureResult,
    PositionSizeResult,
    ProfitTarget,
    RiskCheckResult,
    RiskValidationResult,
    SlippageEstimate,
    StopLossLevels,
    TradeDecision,
    TradeRecord,
    TradingSignal,
)

# Components
from .position_sizing import PositionSizingCalculator
from .circuit_breaker import CircuitBreakerEvaluator, CooldownTracker, StateTransition
from .stop_loss import StopLossManager
from .validator import RiskValidator
from .closure import PositionClosureEvaluator
from .execution import (
    analyze_execution_quality,
    estimate_slippage,
    recommend_order_type,
    should_cancel_order,
    validate_order,
)
from .performance import calculate_kelly_inputs, calculate_performance_metrics

# Alerting
from .alerting import (
    Alert,
    AlertingService,
    AlertPriority,
    AlertSender,
    ConsoleAlertSender,
    LoggingAlertSender,
    TelegramAlertSender,
)

# Engine
from .engine import RiskManager, create_risk_manager, evaluate_trade, is_trade_allowed


__all__ = [
    # Types
    "AnomalySeverity",
    "CancellationReason",
    "CircuitBreakerSeverity",
    "ClosureReason",
    "ClosureUrgency",
    "ExecutionQuality",
    "InvalidSizeReason",
    "MarketTrend",
    "OrderSide",
    "OrderType",
    "OrderUrgency",
    "RiskCheckName",
    "RiskLevel",
    "SlippageReason",
    "SystemState",
    "VolatilityRegime",
    # Exceptions
    "ConfigurationError",
    "InvalidSnapshotError",
    "RiskCoreError",
    "Severity",
    # Clock
    "ClockProtocol",
    "MockClock",
    "SystemClock",
    # Configuration
    "AlertingConfig",
    "RiskCoreConfig",
    "RiskParameters",
    "get_aggressive_config",
    "get_conservative_config",
    "get_default_config",
    "get_testing_config",
    "load_config_from_dict",
    "load_parameters_from_dict",
    "load_parameters_from_env",
    # Models
    "AccountState",
    "CircuitBreakerResult",
    "CircuitBreakerTrigger",
    "ExecutionQualityResult",
    "ExecutionReport",
    "MarketAnomaly",
    "MarketConditions",
    "OrderCancellationResult",
    "OrderTypeRecommendation",
    "OrderValidationResult",
    "PendingOrder",
    "PerformanceMetrics",
    "Position",
    "PositionClosureResult",
    "PositionSizeResult",
    "ProfitTarget",
    "RiskCheckResult",
    "RiskValidationResult",
    "SlippageEstimate",
    "StopLossLevels",
    "TradeDecision",
    "TradeRecord",
    "TradingSignal",
    # Components
    "PositionSizingCalculator",
    "CircuitBreakerEvaluator",
    "CooldownTracker",
    "StateTransition",
    "StopLossManager",
    "RiskValidator",
    "PositionClosureEvaluator",
    "analyze_execution_quality",
    "estimate_slippage",
    "recommend_order_type",
    "should_cancel_order",
    "validate_order",
    "calculate_kelly_inputs",
    "calculate_performance_metrics",
    # Alerting
    "Alert",
    "AlertingService",
    "AlertPriority",
    "AlertSender",
    "ConsoleAlertSender",
    "LoggingAlertSender",
    "TelegramAlertSender",
    # Engine
    "RiskManager",
    "create_risk_manager",
    "evaluate_trade",
    "is_trade_allowed",
]
