"""
Risk Core - Checks Package.

============================================================
CHECKS
============================================================
Each check covers one condition a new trade must satisfy:

- CircuitBreakerCheck:      breaker state allows entries
- AccountEquityCheck:       minimum equity
- PositionCountCheck:       room for another position
- TradeFrequencyCheck:      spacing between trades
- PortfolioExposureCheck:   projected exposure within cap
- PositionCorrelationCheck: correlation with open positions
- MarketSuitabilityCheck:   liquidity/spread/volatility/anomalies
- DrawdownCheck:            drawdown within limit
- DailyLossCheck:           daily loss within limit
- SignalQualityCheck:       signal confidence

============================================================
"""

from typing import List

from .base import BaseRiskCheck, CheckContext, CheckMeta
from .circuit import CircuitBreakerCheck
from .account import (
    AccountEquityCheck,
    DailyLossCheck,
    DrawdownCheck,
    PortfolioExposureCheck,
    PositionCorrelationCheck,
    PositionCountCheck,
    TradeFrequencyCheck,
)
from .market import MarketSuitabilityCheck, SignalQualityCheck


def default_checks() -> List[BaseRiskCheck]:
    """All checks, in reporting order."""
    return [
        CircuitBreakerCheck(),
        AccountEquityCheck(),
        PositionCountCheck(),
        TradeFrequencyCheck(),
        PortfolioExposureCheck(),
        PositionCorrelationCheck(),
        MarketSuitabilityCheck(),
        DrawdownCheck(),
        DailyLossCheck(),
        SignalQualityCheck(),
    ]


__all__ = [
    # Base
    "BaseRiskCheck",
    "CheckContext",
    "CheckMeta",
    "default_checks",
    # Checks
    "CircuitBreakerCheck",
    "AccountEquityCheck",
    "PositionCountCheck",
    "TradeFrequencyCheck",
    "PortfolioExposureCheck",
    "PositionCorrelationCheck",
    "MarketSuitabilityCheck",
    "DrawdownCheck",
    "DailyLossCheck",
    "SignalQualityCheck",
]
