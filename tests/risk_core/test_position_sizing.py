"""
Tests for Position Sizing.

============================================================
TEST SCENARIOS
============================================================
1. Fixed-risk sizing: quantity * stop distance ~= equity * risk
2. 10000 equity, 2% risk, 50000/49000 -> 0.2
3. Kelly clamped to [min, max] for every input
4. Kelly only ever lowers the risk percentage
5. Volatility adjustment band [0.5, 2.0], never above raw size
6. Drawdown adjustment non-increasing, zero at threshold
7. Degenerate inputs return invalid results, never raise
8. Quantities are rounded DOWN to the exchange step

============================================================
"""

from datetime import datetime, timedelta, timezone

import pytest

from risk_core.config import RiskParameters
from risk_core.models import TradeRecord
from risk_core.position_sizing import (
    PositionSizingCalculator,
    round_down_to_step,
    volatility_multiplier_for_regime,
)
from risk_core.types import InvalidSizeReason, OrderSide, VolatilityRegime


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def calculator():
    """Calculator with default parameters."""
    return PositionSizingCalculator(RiskParameters())


def make_trade(trade_id: str, pnl: float) -> TradeRecord:
    entry_time = datetime(2024, 1, 1, tzinfo=timezone.utc) + timedelta(hours=int(trade_id))
    return TradeRecord(
        trade_id=trade_id,
        symbol="BTCUSDT",
        side=OrderSide.BUY,
        entry_price=50000.0,
        exit_price=50000.0 + pnl,
        quantity=1.0,
        entry_time=entry_time,
        exit_time=entry_time + timedelta(minutes=30),
        pnl=pnl,
        pnl_percentage=pnl / 50000.0,
    )


# ============================================================
# FIXED-RISK SIZING
# ============================================================

class TestFixedRiskSizing:
    """Tests for the core sizing formula."""

    def test_reference_scenario(self, calculator):
        """10000 equity, 2% risk, 1000 per-unit risk -> 0.2."""
        result = calculator.calculate_position_size(
            account_equity=10000,
            risk_percentage=0.02,
            entry_price=50000,
            stop_loss_price=49000,
        )

        assert result.is_valid
        assert result.quantity == pytest.approx(0.2)
        assert result.risk_amount == pytest.approx(200.0)
        assert result.invalid_reason is None

    @pytest.mark.parametrize("risk_pct", [0.001, 0.005, 0.01, 0.02, 0.05, 0.1])
    @pytest.mark.parametrize("entry,stop", [
        (50000.0, 49000.0),
        (50000.0, 51234.5),
        (3000.0, 2950.0),
        (1.2345, 1.2001),
    ])
    def test_risk_matches_budget(self, calculator, risk_pct, entry, stop):
        """Quantity times stop distance equals the risk budget within one step."""
        equity = 25000.0
        result = calculator.calculate_position_size(equity, risk_pct, entry, stop)

        distance = abs(entry - stop)
        budget = equity * risk_pct
        step = calculator.parameters.quantity_step

        assert result.is_valid
        assert result.quantity * distance <= budget + 1e-9
        assert budget - result.quantity * distance <= step * distance + 1e-9

    def test_short_side_sizes_the_same(self, calculator):
        """A stop above entry sizes like a stop below entry."""
        long_result = calculator.calculate_position_size(10000, 0.02, 50000, 49000)
        short_result = calculator.calculate_position_size(10000, 0.02, 50000, 51000)

        assert long_result.quantity == short_result.quantity

    def test_quantity_rounded_down(self, calculator):
        """Sizes are floored to the quantity step."""
        # 200 / 300 = 0.6666...
        result = calculator.calculate_position_size(10000, 0.02, 50000, 49700)

        assert result.quantity == pytest.approx(0.66666)
        assert result.quantity <= 200 / 300

    def test_expected_profits_and_ratios(self, calculator):
        """R-multiple tables are built from the actual risk."""
        result = calculator.calculate_position_size(
            10000, 0.02, 50000, 49000, take_profit_price=52000,
        )

        assert result.expected_profits["1R"] == pytest.approx(200.0)
        assert result.expected_profits["3R"] == pytest.approx(600.0)
        assert result.risk_reward_ratios["target"] == pytest.approx(2.0)


# ============================================================
# DEGENERATE INPUTS
# ============================================================

class TestDegenerateInputs:
    """Degenerate inputs are reported, never raised."""

    def test_zero_stop_distance(self, calculator):
        """Stop equal to entry is invalid."""
        result = calculator.calculate_position_size(10000, 0.02, 50000, 50000)

        assert not result.is_valid
        assert result.invalid_reason == InvalidSizeReason.ZERO_STOP_DISTANCE
        assert result.quantity == 0

    def test_zero_equity(self, calculator):
        """Zero equity is invalid."""
        result = calculator.calculate_position_size(0, 0.02, 50000, 49000)

        assert result.invalid_reason == InvalidSizeReason.INVALID_EQUITY

    def test_non_positive_price(self, calculator):
        """Prices must be positive."""
        result = calculator.calculate_position_size(10000, 0.02, -1, 49000)

        assert result.invalid_reason == InvalidSizeReason.INVALID_PRICE

    @pytest.mark.parametrize("risk_pct", [0.0, -0.01, 1.5])
    def test_invalid_risk_percentage(self, calculator, risk_pct):
        """Risk percentage must be in (0, 1]."""
        result = calculator.calculate_position_size(10000, risk_pct, 50000, 49000)

        assert result.invalid_reason == InvalidSizeReason.INVALID_RISK_PERCENTAGE

    def test_below_exchange_minimum(self, calculator):
        """Sizes that round to below the minimum are invalid."""
        result = calculator.calculate_position_size(0.1, 0.01, 50000, 49000)

        assert not result.is_valid
        assert result.invalid_reason == InvalidSizeReason.BELOW_EXCHANGE_MINIMUM
        assert result.quantity == 0


# ============================================================
# KELLY CRITERION
# ============================================================

class TestKellyCriterion:
    """Tests for fractional Kelly."""

    def test_quarter_kelly_inside_bounds(self, calculator):
        """raw 0.25 scaled by 0.25 is 0.0625, inside the bounds."""
        kelly = calculator.calculate_kelly_optimal_size(0.55, 150, 100, 10000)

        assert kelly == pytest.approx(0.0625)

    def test_small_edge_clamped_to_floor(self, calculator):
        """raw 0.0833 scaled to 0.0208 is lifted to the 0.05 floor."""
        kelly = calculator.calculate_kelly_optimal_size(0.5, 120, 100, 10000)

        assert kelly == pytest.approx(0.05)

    def test_no_losses_is_high_but_clamped(self, calculator):
        """avg_loss = 0 does not produce infinity."""
        kelly = calculator.calculate_kelly_optimal_size(1.0, 150, 0, 10000)

        assert kelly == pytest.approx(0.25)

    def test_no_history_is_zero(self, calculator):
        """Kelly is 0 with no trade history."""
        assert calculator.calculate_kelly_from_history([], 10000) == 0.0
        assert calculator.calculate_kelly_optimal_size(0.0, 0.0, 0.0, 10000) == 0.0

    @pytest.mark.parametrize("win_rate", [0.0, 0.1, 0.35, 0.5, 0.65, 0.9, 1.0])
    @pytest.mark.parametrize("avg_win,avg_loss", [
        (100, 100), (300, 50), (10, 500), (150, 0), (0, 80),
    ])
    def test_kelly_always_within_bounds(self, calculator, win_rate, avg_win, avg_loss):
        """Kelly output never leaves [min_kelly, max_kelly]."""
        params = calculator.parameters
        kelly = calculator.calculate_kelly_optimal_size(win_rate, avg_win, avg_loss, 10000)

        assert params.min_kelly_criterion <= kelly <= params.max_kelly_criterion

    def test_kelly_from_history(self, calculator):
        """History with 55% winners of 150 and losers of 100 gives 0.0625."""
        trades = [make_trade(str(i), 150.0) for i in range(11)]
        trades += [make_trade(str(i), -100.0) for i in range(11, 20)]

        kelly = calculator.calculate_kelly_from_history(trades, 10000)

        assert kelly == pytest.approx(0.0625)

    def test_kelly_lowers_risk(self, calculator):
        """A Kelly fraction below the fixed risk shrinks the position."""
        result = calculator.calculate_position_size(
            10000, 0.02, 50000, 49000, kelly_percentage=0.01,
        )

        assert result.risk_percentage == pytest.approx(0.01)
        assert result.quantity == pytest.approx(0.1)
        assert result.kelly_optimal_percentage == pytest.approx(0.01)

    def test_kelly_never_raises_risk(self, calculator):
        """A Kelly fraction above the fixed risk is ignored."""
        result = calculator.calculate_position_size(
            10000, 0.02, 50000, 49000, kelly_percentage=0.25,
        )

        assert result.risk_percentage == pytest.approx(0.02)
        assert result.quantity == pytest.approx(0.2)

    def test_kelly_disabled(self):
        """With Kelly disabled the fraction is ignored."""
        calculator = PositionSizingCalculator(RiskParameters(kelly_criterion_enabled=False))

        result = calculator.calculate_position_size(
            10000, 0.02, 50000, 49000, kelly_percentage=0.01,
        )

        assert result.quantity == pytest.approx(0.2)
        assert result.kelly_optimal_percentage == 0.0


# ============================================================
# VOLATILITY
# ============================================================

class TestVolatilityAdjustment:
    """Tests for the volatility multiplier."""

    def test_high_volatility_shrinks(self, calculator):
        """Multiplier 2 halves the size."""
        result = calculator.calculate_position_size(
            10000, 0.02, 50000, 49000, volatility_multiplier=2.0,
        )

        assert result.volatility_adjustment == pytest.approx(0.5)
        assert result.quantity == pytest.approx(0.1)

    def test_adjustment_floor(self, calculator):
        """Very high volatility never cuts below half size."""
        result = calculator.calculate_position_size(
            10000, 0.02, 50000, 49000, volatility_multiplier=4.0,
        )

        assert result.volatility_adjustment == pytest.approx(0.5)
        assert result.quantity == pytest.approx(0.1)

    def test_low_volatility_never_exceeds_raw(self, calculator):
        """Low volatility does not grow the size past the fixed-risk size."""
        result = calculator.calculate_position_size(
            10000, 0.02, 50000, 49000, volatility_multiplier=0.5,
        )

        assert result.volatility_adjustment == pytest.approx(2.0)
        assert result.quantity == pytest.approx(0.2)

    def test_regime_multipliers(self):
        """Regimes map to increasing multipliers."""
        multipliers = [
            volatility_multiplier_for_regime(regime)
            for regime in (
                VolatilityRegime.LOW,
                VolatilityRegime.NORMAL,
                VolatilityRegime.HIGH,
                VolatilityRegime.EXTREME,
            )
        ]

        assert multipliers == sorted(multipliers)
        assert volatility_multiplier_for_regime(VolatilityRegime.NORMAL) == 1.0


# ============================================================
# DRAWDOWN
# ============================================================

class TestDrawdownAdjustment:
    """Tests for drawdown de-risking."""

    def test_half_threshold_halves_size(self, calculator):
        """Drawdown at half the threshold halves the size."""
        result = calculator.calculate_position_size(
            10000, 0.02, 50000, 49000, current_drawdown=0.025,
        )

        assert result.drawdown_adjustment == pytest.approx(0.5)
        assert result.quantity == pytest.approx(0.1)

    @pytest.mark.parametrize("drawdown", [0.05, 0.06, 0.5])
    def test_zero_at_threshold(self, calculator, drawdown):
        """At or beyond the threshold the size is zero."""
        result = calculator.calculate_position_size(
            10000, 0.02, 50000, 49000, current_drawdown=drawdown,
        )

        assert not result.is_valid
        assert result.invalid_reason == InvalidSizeReason.DRAWDOWN_LIMIT
        assert result.quantity == 0
        assert calculator.adjust_for_drawdown(1.0, drawdown, 0.05) == 0

    def test_monotonically_non_increasing(self, calculator):
        """Adjusted size never grows as drawdown grows."""
        drawdowns = [i / 1000 for i in range(0, 80)]
        sizes = [calculator.adjust_for_drawdown(1.0, dd, 0.05) for dd in drawdowns]

        assert all(a >= b for a, b in zip(sizes, sizes[1:]))
        assert sizes[0] == 1.0


# ============================================================
# ROUNDING
# ============================================================

class TestRounding:
    """Tests for exchange rounding."""

    def test_round_down(self):
        assert round_down_to_step(0.123456789, 0.001) == pytest.approx(0.123)
        assert round_down_to_step(0.2, 0.00001) == pytest.approx(0.2)

    def test_non_positive(self):
        assert round_down_to_step(-1.0, 0.001) == 0.0
        assert round_down_to_step(1.0, 0.0) == 0.0
