"""
Tests for Risk Validator.

============================================================
TEST SCENARIOS
============================================================
1. Healthy snapshot -> valid, every check reported
2. Every failing check is reported (no short-circuit)
3. Score, level, size and confidence aggregation
4. Cooldown rejects after the market normalizes
5. RESTRICTED permission, EMERGENCY/HALTED always reject
6. Correlation and exposure limits
7. A raising check fails closed
8. Identical inputs give equal results

============================================================
"""

from datetime import datetime, timedelta, timezone

import pytest

from risk_core.checks import BaseRiskCheck, CheckMeta, default_checks
from risk_core.circuit_breaker import CircuitBreakerEvaluator
from risk_core.clock import MockClock
from risk_core.config import RiskParameters
from risk_core.models import AccountState, MarketConditions, Position, TradingSignal
from risk_core.types import OrderSide, RiskCheckName, RiskLevel, VolatilityRegime
from risk_core.validator import RiskValidator


START = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def clock():
    return MockClock(START)


@pytest.fixture
def params():
    return RiskParameters()


@pytest.fixture
def breaker(params, clock):
    return CircuitBreakerEvaluator(params, clock=clock)


@pytest.fixture
def validator(params, breaker, clock):
    return RiskValidator(params, circuit_breaker=breaker, clock=clock)


def make_signal(confidence: float = 80.0, symbol: str = "BTCUSDT") -> TradingSignal:
    return TradingSignal(
        signal_id="sig-1",
        symbol=symbol,
        side=OrderSide.BUY,
        entry_price=50000.0,
        stop_loss=49000.0,
        confidence=confidence,
    )


def make_position(position_id: str, symbol: str) -> Position:
    return Position(
        position_id=position_id,
        symbol=symbol,
        side=OrderSide.BUY,
        quantity=0.1,
        entry_price=3000.0,
        stop_loss=2940.0,
    )


def make_account(**overrides) -> AccountState:
    values = dict(total_equity=10000.0, available_balance=10000.0, peak_equity=10000.0)
    values.update(overrides)
    return AccountState(**values)


def make_market(**overrides) -> MarketConditions:
    values = dict(current_price=50000.0, volatility=0.02, liquidity=80.0)
    values.update(overrides)
    return MarketConditions(**values)


class ExplodingCheck(BaseRiskCheck):
    """Check whose logic raises."""

    @property
    def meta(self) -> CheckMeta:
        return CheckMeta(
            name=RiskCheckName.SIGNAL_QUALITY,
            description="Always raises",
            failure_score=20.0,
        )

    def _evaluate(self, context):
        raise ZeroDivisionError("division by zero")


# ============================================================
# AGGREGATION
# ============================================================

class TestAggregation:
    """Tests for score and verdict aggregation."""

    def test_healthy_snapshot_valid(self, validator):
        """All checks pass -> valid with full size."""
        result = validator.validate_trade(make_signal(), make_account(), make_market())

        assert result.is_valid
        assert len(result.checks) == 10
        assert all(c.passed for c in result.checks)
        assert result.risk_score == 0.0
        assert result.risk_level == RiskLevel.VERY_LOW
        assert result.max_recommended_position_size == pytest.approx(0.02)
        assert result.confidence == 100.0
        assert result.failures == ()

    def test_checks_reported_in_order(self, validator):
        """Checks come back in the default order."""
        result = validator.validate_trade(make_signal(), make_account(), make_market())

        assert [c.name for c in result.checks] == [c.meta.name for c in default_checks()]

    def test_drawdown_breach(self, validator):
        """6% drawdown fails both the breaker gate and the drawdown check."""
        result = validator.validate_trade(
            make_signal(), make_account(total_equity=9400.0), make_market()
        )

        assert not result.is_valid
        assert set(result.failed_checks) == {RiskCheckName.CIRCUIT_BREAKER, RiskCheckName.DRAWDOWN}
        assert result.risk_score == pytest.approx(90.0)
        assert result.risk_level == RiskLevel.VERY_HIGH
        assert result.max_recommended_position_size == 0.0
        assert result.confidence == pytest.approx(10.0)
        assert "Reduce position size" in result.recommended_actions
        assert "Monitor drawdown closely" in result.recommended_actions
        assert "Wait for better market conditions" in result.recommended_actions

    def test_no_short_circuit(self, validator):
        """Several failures are all reported."""
        account = make_account(
            total_equity=500.0,
            peak_equity=500.0,
            last_trade_time=START - timedelta(seconds=10),
        )

        result = validator.validate_trade(make_signal(confidence=40.0), account, make_market())

        assert set(result.failed_checks) == {
            RiskCheckName.ACCOUNT_EQUITY,
            RiskCheckName.TRADE_FREQUENCY,
            RiskCheckName.SIGNAL_QUALITY,
        }
        assert len(result.failures) == 3
        assert len(result.checks) == 10

    def test_signal_quality_score(self, validator):
        """Confidence 50 contributes (100 - 50) / 5 = 10."""
        result = validator.validate_trade(make_signal(confidence=50.0), make_account(), make_market())

        check = result.get_check(RiskCheckName.SIGNAL_QUALITY)
        assert not check.passed
        assert check.score == pytest.approx(10.0)
        assert result.risk_score == pytest.approx(10.0)

    def test_weights(self, params, breaker, clock):
        """Weights scale individual check scores."""
        validator = RiskValidator(
            params, circuit_breaker=breaker, clock=clock,
            weights={RiskCheckName.SIGNAL_QUALITY: 2.0},
        )

        result = validator.validate_trade(make_signal(confidence=50.0), make_account(), make_market())

        assert result.risk_score == pytest.approx(20.0)

    def test_score_capped(self, validator):
        """Aggregate score never exceeds 100."""
        account = make_account(
            total_equity=500.0,
            peak_equity=10000.0,
            daily_realized_pnl=-2000.0,
            total_exposure_percentage=0.5,
        )
        market = make_market(liquidity=5.0, volatility_regime=VolatilityRegime.EXTREME)

        result = validator.validate_trade(make_signal(confidence=10.0), account, market)

        assert result.risk_score == 100.0
        assert result.risk_level == RiskLevel.EXTREME
        assert result.confidence == 0.0

    def test_size_capped(self, clock):
        """Recommended size never exceeds 5% of equity."""
        params = RiskParameters(max_risk_per_trade=0.08)
        validator = RiskValidator(params, clock=clock)

        result = validator.validate_trade(make_signal(), make_account(), make_market())

        assert result.max_recommended_position_size == pytest.approx(0.05)

    def test_disabled(self, clock):
        """Disabled risk management validates everything."""
        validator = RiskValidator(RiskParameters(risk_management_enabled=False), clock=clock)

        result = validator.validate_trade(
            make_signal(confidence=1.0), make_account(total_equity=1.0), make_market()
        )

        assert result.is_valid
        assert result.risk_level == RiskLevel.LOW
        assert result.confidence == 100.0
        assert result.max_recommended_position_size == pytest.approx(0.02)

    def test_idempotent(self, validator):
        """Same inputs and time -> equal results."""
        signal, account, market = make_signal(confidence=60.0), make_account(), make_market()

        first = validator.validate_trade(signal, account, market, now=START)
        second = validator.validate_trade(signal, account, market, now=START)

        assert first == second

    def test_raising_check_fails_closed(self, params, breaker, clock):
        """An exception inside a check is a failed check."""
        validator = RiskValidator(params, circuit_breaker=breaker, clock=clock, checks=[ExplodingCheck()])

        result = validator.validate_trade(make_signal(), make_account(), make_market())

        assert not result.is_valid
        assert result.checks[0].score == 20.0
        assert "ZeroDivisionError" in result.failures[0]


# ============================================================
# CIRCUIT BREAKER STATE
# ============================================================

class TestSystemState:
    """Tests for the breaker gate."""

    def test_cooldown_rejects_after_recovery(self, validator, breaker, clock):
        """A trip keeps rejecting until its reset time."""
        breaker.evaluate(make_account(total_equity=9400.0), make_market())

        clock.advance(minutes=30)
        during = validator.validate_trade(make_signal(), make_account(), make_market())

        clock.advance(minutes=31)
        after = validator.validate_trade(make_signal(), make_account(), make_market())

        assert not during.is_valid
        assert during.failed_checks == [RiskCheckName.CIRCUIT_BREAKER]
        assert after.is_valid

    def test_validation_does_not_record(self, validator, breaker):
        """Validating a bad snapshot does not start a cooldown."""
        validator.validate_trade(make_signal(), make_account(total_equity=9400.0), make_market())

        assert breaker.tracker.history == []

    def test_restricted_permission(self, clock):
        """allow_trading_when_restricted lets RESTRICTED through."""
        params = RiskParameters(allow_trading_when_restricted=True)
        breaker = CircuitBreakerEvaluator(params, clock=clock)
        validator = RiskValidator(params, circuit_breaker=breaker, clock=clock)

        breaker.evaluate(make_account(total_equity=9400.0), make_market())
        result = validator.validate_trade(make_signal(), make_account(), make_market())

        assert result.is_valid

    def test_emergency_always_rejects(self, clock):
        """EMERGENCY ignores the RESTRICTED permission."""
        params = RiskParameters(allow_trading_when_restricted=True)
        breaker = CircuitBreakerEvaluator(params, clock=clock)
        validator = RiskValidator(params, circuit_breaker=breaker, clock=clock)

        breaker.evaluate(make_account(daily_realized_pnl=-800.0), make_market())
        result = validator.validate_trade(make_signal(), make_account(), make_market())

        assert result.failed_checks == [RiskCheckName.CIRCUIT_BREAKER]

    def test_halted_rejects(self, validator, breaker):
        """Manual halts reject every entry."""
        breaker.halt("maintenance")

        result = validator.validate_trade(make_signal(), make_account(), make_market())

        assert not result.is_valid
        assert "HALTED" in result.failures[0]


# ============================================================
# PORTFOLIO LIMITS
# ============================================================

class TestPortfolioLimits:
    """Tests for count, exposure and correlation limits."""

    def test_position_count(self, validator):
        """Max positions reached -> reject."""
        positions = tuple(make_position(f"p{i}", f"SYM{i}USDT") for i in range(3))

        result = validator.validate_trade(
            make_signal(), make_account(open_positions=positions), make_market()
        )

        assert result.failed_checks == [RiskCheckName.POSITION_COUNT]

    def test_exposure_at_cap_passes(self, validator):
        """13% + 2% lands exactly on the 15% cap."""
        result = validator.validate_trade(
            make_signal(), make_account(total_exposure_percentage=0.13), make_market()
        )

        assert result.is_valid

    def test_exposure_over_cap(self, validator):
        """14% + 2% exceeds the cap."""
        result = validator.validate_trade(
            make_signal(), make_account(total_exposure_percentage=0.14), make_market()
        )

        assert result.failed_checks == [RiskCheckName.PORTFOLIO_EXPOSURE]

    @pytest.mark.parametrize("correlation,valid", [(0.85, False), (-0.9, False), (0.5, True)])
    def test_correlation(self, validator, correlation, valid):
        """Absolute correlation above 0.7 rejects."""
        account = make_account(open_positions=(make_position("p1", "ETHUSDT"),))
        market = make_market(correlations={"ETHUSDT": correlation})

        result = validator.validate_trade(make_signal(), account, market)

        assert result.is_valid is valid

    def test_same_symbol_is_fully_correlated(self, validator):
        """An open position in the same symbol counts as correlation 1."""
        account = make_account(open_positions=(make_position("p1", "BTCUSDT"),))

        result = validator.validate_trade(make_signal(), account, make_market())

        assert result.failed_checks == [RiskCheckName.POSITION_CORRELATION]

    def test_unknown_correlation_passes(self, validator):
        """Missing correlation data counts as uncorrelated."""
        account = make_account(open_positions=(make_position("p1", "SOLUSDT"),))

        result = validator.validate_trade(make_signal(), account, make_market())

        assert result.is_valid
