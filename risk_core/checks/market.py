"""
Risk Core - Market and Signal Checks.
"""

from ..models import MAX_TRADING_SPREAD, MIN_TRADING_LIQUIDITY, RiskCheckResult
from ..types import RiskCheckName, VolatilityRegime
from .base import BaseRiskCheck, CheckContext, CheckMeta


class MarketSuitabilityCheck(BaseRiskCheck):
    """Liquidity, spread, volatility and anomaly gate."""

    _META = CheckMeta(
        name=RiskCheckName.MARKET_SUITABILITY,
        description="Market suitable for trading",
        failure_score=20.0,
    )

    @property
    def meta(self) -> CheckMeta:
        return self._META

    def _evaluate(self, context: CheckContext) -> RiskCheckResult:
        market = context.market
        if market.is_suitable_for_trading():
            return self.ok()

        reasons = []
        if market.liquidity < MIN_TRADING_LIQUIDITY:
            reasons.append(f"liquidity {market.liquidity:.0f}")
        if market.bid_ask_spread > MAX_TRADING_SPREAD:
            reasons.append(f"spread {market.bid_ask_spread:.2%}")
        if market.has_severe_anomaly():
            reasons.append("severe anomaly")
        if market.volatility_regime == VolatilityRegime.EXTREME:
            reasons.append("extreme volatility")

        return self.fail("Market not suitable: " + ", ".join(reasons))


class SignalQualityCheck(BaseRiskCheck):
    """
    Minimum signal confidence.

    Failure score scales with the shortfall: (100 - confidence) / 5.
    """

    _META = CheckMeta(
        name=RiskCheckName.SIGNAL_QUALITY,
        description="Signal confidence above minimum",
        failure_score=20.0,
    )

    @property
    def meta(self) -> CheckMeta:
        return self._META

    def _evaluate(self, context: CheckContext) -> RiskCheckResult:
        confidence = context.signal.confidence
        minimum = context.parameters.min_signal_confidence
        if confidence < minimum:
            return self.fail(
                f"Signal confidence {confidence:.0f} below minimum {minimum:.0f}",
                score=max(0.0, (100.0 - confidence) / 5.0),
            )
        return self.ok(f"Confidence {confidence:.0f}")
