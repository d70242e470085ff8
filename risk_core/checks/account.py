"""
Risk Core - Account Checks.

============================================================
CHECKS
============================================================
- AccountEquityCheck:       equity >= min_account_equity
- PositionCountCheck:       open positions < max_open_positions
- TradeFrequencyCheck:      time since last trade >= minimum
- PortfolioExposureCheck:   exposure + new trade risk <= cap
- PositionCorrelationCheck: correlation with open positions <= max
- DrawdownCheck:            drawdown <= max_intraday_drawdown
- DailyLossCheck:           daily loss <= max_daily_loss

============================================================
"""

from ..clock import ensure_utc
from ..models import RiskCheckResult
from ..types import RiskCheckName
from .base import BaseRiskCheck, CheckContext, CheckMeta


# Correlation assumed for an open position in the same symbol
SAME_SYMBOL_CORRELATION = 1.0

# Drawdown failure score = min(cap, drawdown * scale)
DRAWDOWN_SCORE_SCALE = 1000.0
DRAWDOWN_SCORE_CAP = 50.0


class AccountEquityCheck(BaseRiskCheck):
    """Minimum account equity."""

    _META = CheckMeta(
        name=RiskCheckName.ACCOUNT_EQUITY,
        description="Account equity above minimum",
        failure_score=30.0,
    )

    @property
    def meta(self) -> CheckMeta:
        return self._META

    def _evaluate(self, context: CheckContext) -> RiskCheckResult:
        equity = context.account.total_equity
        minimum = context.parameters.min_account_equity
        if equity < minimum:
            return self.fail(f"Account equity {equity:.2f} below minimum {minimum:.2f}")
        return self.ok()


class PositionCountCheck(BaseRiskCheck):
    """Maximum number of open positions."""

    _META = CheckMeta(
        name=RiskCheckName.POSITION_COUNT,
        description="Room for another open position",
        failure_score=25.0,
    )

    @property
    def meta(self) -> CheckMeta:
        return self._META

    def _evaluate(self, context: CheckContext) -> RiskCheckResult:
        count = context.account.open_position_count
        limit = context.parameters.max_open_positions
        if count >= limit:
            return self.fail(f"Maximum open positions reached ({count}/{limit})")
        return self.ok(f"{count}/{limit} positions open")


class TradeFrequencyCheck(BaseRiskCheck):
    """Minimum spacing between trades."""

    _META = CheckMeta(
        name=RiskCheckName.TRADE_FREQUENCY,
        description="Minimum time since last trade elapsed",
        failure_score=15.0,
    )

    @property
    def meta(self) -> CheckMeta:
        return self._META

    def _evaluate(self, context: CheckContext) -> RiskCheckResult:
        last_trade = context.account.last_trade_time
        if last_trade is None:
            return self.ok("No previous trade")

        elapsed = (context.now - ensure_utc(last_trade)).total_seconds()
        minimum = context.parameters.min_time_between_trades_seconds
        if elapsed < minimum:
            return self.fail(
                f"Only {elapsed:.0f}s since last trade, minimum is {minimum}s"
            )
        return self.ok()


class PortfolioExposureCheck(BaseRiskCheck):
    """
    Projected portfolio exposure.

    Exposure is risk (amount lost at the stops) as a fraction
    of equity. The new trade adds at most max_risk_per_trade.
    """

    _META = CheckMeta(
        name=RiskCheckName.PORTFOLIO_EXPOSURE,
        description="Projected exposure within portfolio cap",
        failure_score=20.0,
    )

    @property
    def meta(self) -> CheckMeta:
        return self._META

    def _evaluate(self, context: CheckContext) -> RiskCheckResult:
        p = context.parameters
        projected = context.account.total_exposure_percentage + p.max_risk_per_trade
        # Float tolerance so that exactly-at-cap passes
        if projected > p.max_portfolio_exposure + 1e-12:
            return self.fail(
                f"Projected exposure {projected:.2%} exceeds cap {p.max_portfolio_exposure:.2%}"
            )
        return self.ok(f"Projected exposure {projected:.2%}")


class PositionCorrelationCheck(BaseRiskCheck):
    """Correlation of the signal's symbol with open positions."""

    _META = CheckMeta(
        name=RiskCheckName.POSITION_CORRELATION,
        description="Correlation with open positions within limit",
        failure_score=15.0,
    )

    @property
    def meta(self) -> CheckMeta:
        return self._META

    def _evaluate(self, context: CheckContext) -> RiskCheckResult:
        symbol = context.signal.symbol
        highest = 0.0
        highest_symbol = None

        for position in context.account.open_positions:
            if position.symbol == symbol:
                correlation = SAME_SYMBOL_CORRELATION
            else:
                correlation = context.market.correlation_with(position.symbol)
            if correlation > highest:
                highest = correlation
                highest_symbol = position.symbol

        limit = context.parameters.max_position_correlation
        if highest > limit:
            return self.fail(
                f"{symbol} correlation with open {highest_symbol} is {highest:.2f} (max {limit:.2f})"
            )
        return self.ok(f"Max correlation {highest:.2f}")


class DrawdownCheck(BaseRiskCheck):
    """Account drawdown from peak."""

    _META = CheckMeta(
        name=RiskCheckName.DRAWDOWN,
        description="Drawdown within limit",
        failure_score=DRAWDOWN_SCORE_CAP,
    )

    @property
    def meta(self) -> CheckMeta:
        return self._META

    def _evaluate(self, context: CheckContext) -> RiskCheckResult:
        drawdown = context.account.current_drawdown
        limit = context.parameters.max_intraday_drawdown
        if drawdown > limit:
            return self.fail(
                f"Drawdown {drawdown:.2%} exceeds limit {limit:.2%}",
                score=min(DRAWDOWN_SCORE_CAP, drawdown * DRAWDOWN_SCORE_SCALE),
            )
        return self.ok(f"Drawdown {drawdown:.2%}")


class DailyLossCheck(BaseRiskCheck):
    """Realized daily loss."""

    _META = CheckMeta(
        name=RiskCheckName.DAILY_LOSS,
        description="Daily loss within limit",
        failure_score=20.0,
    )

    @property
    def meta(self) -> CheckMeta:
        return self._META

    def _evaluate(self, context: CheckContext) -> RiskCheckResult:
        loss = context.account.daily_loss_percentage()
        limit = context.parameters.max_daily_loss
        if loss > limit:
            return self.fail(f"Daily loss {loss:.2%} exceeds limit {limit:.2%}")
        return self.ok()
