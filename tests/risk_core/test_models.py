"""
Tests for Risk Core snapshots.

============================================================
TEST SCENARIOS
============================================================
1. Market risk score components and cap
2. Trading suitability gate
3. Derived drawdown and daily loss
4. Risk exposure and account limits
5. Duplicate position ids are rejected
6. Signal and position helpers

============================================================
"""

import pytest

from risk_core.checks.base import CheckContext
from risk_core.checks.market import MarketSuitabilityCheck
from risk_core.config import RiskParameters
from risk_core.exceptions import InvalidSnapshotError
from risk_core.models import (
    AccountState,
    MAX_TRADING_SPREAD,
    MIN_TRADING_LIQUIDITY,
    MarketAnomaly,
    MarketConditions,
    Position,
    TradingSignal,
)
from risk_core.types import AnomalySeverity, OrderSide, RiskLevel, SystemState, VolatilityRegime


# ============================================================
# FIXTURES
# ============================================================

def make_position(position_id: str, stop_loss=2940.0, side=OrderSide.BUY) -> Position:
    return Position(
        position_id=position_id,
        symbol="ETHUSDT",
        side=side,
        quantity=0.1,
        entry_price=3000.0,
        stop_loss=stop_loss,
    )


def make_account(**overrides) -> AccountState:
    values = dict(total_equity=10000.0, available_balance=10000.0, peak_equity=10000.0)
    values.update(overrides)
    return AccountState(**values)


# ============================================================
# MARKET CONDITIONS
# ============================================================

class TestMarketRiskScore:
    """Tests for calculate_market_risk_score."""

    def test_calm_market(self):
        """Normal regime, deep book, tight spread."""
        market = MarketConditions(current_price=100.0)

        assert market.calculate_market_risk_score() == pytest.approx(19.0)

    def test_mid_range_components(self):
        """High regime, thin book and a nearby event add up."""
        market = MarketConditions(
            current_price=100.0,
            liquidity=50.0,
            bid_ask_spread=0.005,
            volatility_regime=VolatilityRegime.HIGH,
            next_event_minutes=120,
        )

        assert market.calculate_market_risk_score() == pytest.approx(55.0)

    def test_distant_event_adds_nothing(self):
        """Events four hours out carry no event risk."""
        market = MarketConditions(current_price=100.0, next_event_minutes=240)

        assert market.calculate_market_risk_score() == pytest.approx(19.0)

    def test_worst_case_is_capped(self):
        """Every component at its maximum stays at 100."""
        market = MarketConditions(
            current_price=100.0,
            liquidity=10.0,
            bid_ask_spread=0.05,
            volatility_regime=VolatilityRegime.EXTREME,
            next_event_minutes=30,
        )

        score = market.calculate_market_risk_score()

        assert score == 100.0
        assert RiskLevel.from_score(score) == RiskLevel.EXTREME


class TestSuitability:
    """Tests for is_suitable_for_trading."""

    def test_default_market_is_suitable(self):
        assert MarketConditions(current_price=100.0).is_suitable_for_trading()

    def test_thin_liquidity_is_unsuitable(self):
        market = MarketConditions(current_price=100.0, liquidity=39.0)

        assert not market.is_suitable_for_trading()

    def test_wide_spread_is_unsuitable(self):
        market = MarketConditions(current_price=100.0, bid_ask_spread=0.021)

        assert not market.is_suitable_for_trading()

    def test_anomaly_severity_threshold(self):
        """Only HIGH or worse anomalies block trading."""
        medium = MarketConditions(
            current_price=100.0,
            anomalies=(MarketAnomaly(type="volume_spike", severity=AnomalySeverity.MEDIUM),),
        )
        high = MarketConditions(
            current_price=100.0,
            anomalies=(MarketAnomaly(type="flash_crash", severity=AnomalySeverity.HIGH),),
        )

        assert medium.is_suitable_for_trading()
        assert not high.is_suitable_for_trading()
        assert medium.has_severe_anomaly(AnomalySeverity.MEDIUM)

    @pytest.mark.parametrize("liquidity,spread,reason", [
        (MIN_TRADING_LIQUIDITY - 1.0, 0.0005, "liquidity"),
        (80.0, MAX_TRADING_SPREAD + 0.001, "spread"),
    ])
    def test_check_reasons_follow_verdict(self, liquidity, spread, reason):
        """The suitability check names the threshold the market broke."""
        market = MarketConditions(current_price=100.0, liquidity=liquidity, bid_ask_spread=spread)
        context = CheckContext(
            signal=TradingSignal(signal_id="s1", symbol="BTCUSDT", side=OrderSide.BUY, entry_price=100.0),
            account=make_account(),
            market=market,
            parameters=RiskParameters(),
            system_state=SystemState.NORMAL,
            now=market.assessed_at,
        )

        result = MarketSuitabilityCheck().run(context)

        assert not market.is_suitable_for_trading()
        assert not result.passed
        assert reason in result.message

    def test_thresholds_are_inclusive(self):
        market = MarketConditions(
            current_price=100.0,
            liquidity=MIN_TRADING_LIQUIDITY,
            bid_ask_spread=MAX_TRADING_SPREAD,
        )

        assert market.is_suitable_for_trading()

    def test_correlation_is_absolute(self):
        market = MarketConditions(current_price=100.0, correlations={"ETHUSDT": -0.8})

        assert market.correlation_with("ETHUSDT") == pytest.approx(0.8)
        assert market.correlation_with("SOLUSDT") == 0.0


# ============================================================
# ACCOUNT STATE
# ============================================================

class TestAccountState:
    """Tests for derived account values."""

    def test_drawdown_is_derived_from_peak(self):
        account = make_account(total_equity=9500.0)

        assert account.current_drawdown == pytest.approx(0.05)

    def test_drawdown_never_negative(self):
        """Equity above the recorded peak means no drawdown."""
        assert make_account(total_equity=10500.0).current_drawdown == 0.0
        assert make_account(peak_equity=0.0).current_drawdown == 0.0

    def test_daily_loss_ignores_profit(self):
        assert make_account(daily_realized_pnl=-200.0).daily_loss_percentage() == pytest.approx(0.02)
        assert make_account(daily_realized_pnl=300.0).daily_loss_percentage() == 0.0

    def test_daily_loss_with_zero_equity(self):
        account = make_account(total_equity=0.0, daily_realized_pnl=-50.0)

        assert account.daily_loss_percentage() == 1.0

    def test_risk_exposure_counts_stopped_positions(self):
        account = make_account(
            open_positions=(make_position("p1"), make_position("p2", stop_loss=None)),
        )

        assert account.calculate_risk_exposure() == pytest.approx(0.0006)
        assert account.open_position_count == 2

    def test_within_risk_limits(self):
        params = RiskParameters()

        assert make_account(total_equity=9700.0).is_within_risk_limits(params)
        assert not make_account(total_equity=9400.0).is_within_risk_limits(params)
        assert not make_account(daily_realized_pnl=-600.0).is_within_risk_limits(params)

    def test_duplicate_position_ids_rejected(self):
        with pytest.raises(InvalidSnapshotError):
            make_account(open_positions=(make_position("p1"), make_position("p1")))


# ============================================================
# SIGNAL AND POSITION
# ============================================================

class TestSignalAndPosition:
    """Tests for signal and position helpers."""

    def test_risk_reward_ratio(self):
        signal = TradingSignal(
            signal_id="s1", symbol="BTCUSDT", side=OrderSide.BUY,
            entry_price=100.0, stop_loss=95.0, take_profit=110.0,
        )

        assert signal.risk_reward_ratio == pytest.approx(2.0)

    def test_risk_reward_requires_both_levels(self):
        no_target = TradingSignal(
            signal_id="s2", symbol="BTCUSDT", side=OrderSide.BUY,
            entry_price=100.0, stop_loss=95.0,
        )
        zero_risk = TradingSignal(
            signal_id="s3", symbol="BTCUSDT", side=OrderSide.BUY,
            entry_price=100.0, stop_loss=100.0, take_profit=110.0,
        )

        assert no_target.risk_reward_ratio is None
        assert zero_risk.risk_reward_ratio is None

    def test_short_profit_percentage(self):
        position = make_position("p1", stop_loss=3060.0, side=OrderSide.SELL)

        assert position.profit_percentage(2700.0) == pytest.approx(0.1)
        assert position.risk_amount() == pytest.approx(6.0)
        assert position.notional() == pytest.approx(300.0)
