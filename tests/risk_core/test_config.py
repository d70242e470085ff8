"""
Tests for Risk Core Configuration.

============================================================
TEST SCENARIOS
============================================================
1. Defaults are valid
2. Every violated bound is reported
3. Presets are valid
4. Dict loader rejects unknown keys and bad bounds
5. Environment loader parses RISK_* variables
6. Unparseable environment values raise ConfigurationError
7. Telegram enabled without credentials is rejected

============================================================
"""

from dataclasses import FrozenInstanceError
import os

import pytest

from risk_core.config import (
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
from risk_core.exceptions import ConfigurationError, Severity


ENV_PREFIXES = ("RISK_", "TELEGRAM_")


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def clean_env(monkeypatch):
    """Remove any RISK_ / TELEGRAM_ variables around the test."""
    for key in list(os.environ):
        if key.startswith(ENV_PREFIXES):
            monkeypatch.delenv(key, raising=False)

    yield monkeypatch

    # load_dotenv writes straight into os.environ
    for key in list(os.environ):
        if key.startswith(ENV_PREFIXES):
            del os.environ[key]


# ============================================================
# RISK PARAMETERS
# ============================================================

class TestRiskParameters:
    """Tests for RiskParameters bounds."""

    def test_defaults_are_valid(self):
        """Default parameters pass validation."""
        params = RiskParameters()

        assert params.is_valid()
        assert params.validate() is params
        assert params.max_risk_per_trade == 0.02
        assert params.max_open_positions == 3

    def test_risk_per_trade_above_ten_percent_invalid(self):
        """max_risk_per_trade must be at most 10%."""
        params = RiskParameters(max_risk_per_trade=0.11)

        assert not params.is_valid()
        with pytest.raises(ConfigurationError) as exc_info:
            params.validate()
        assert any("max_risk_per_trade" in e for e in exc_info.value.errors)

    def test_kelly_bounds_must_be_ordered(self):
        """min_kelly_criterion must be below max_kelly_criterion."""
        params = RiskParameters(min_kelly_criterion=0.3, max_kelly_criterion=0.25)

        assert not params.is_valid()

    def test_all_errors_reported_together(self):
        """Every violated bound appears in one error."""
        params = RiskParameters(
            max_risk_per_trade=0.5,
            max_open_positions=0,
            max_position_correlation=1.5,
        )

        errors = params.validation_errors()

        assert len(errors) == 3

    def test_configuration_error_is_fatal(self):
        """ConfigurationError is critical and not recoverable."""
        with pytest.raises(ConfigurationError) as exc_info:
            RiskParameters(max_daily_loss=0).validate()

        error = exc_info.value
        assert error.severity == Severity.CRITICAL
        assert error.recoverable is False
        assert error.to_dict()["type"] == "ConfigurationError"

    def test_with_overrides_validates(self):
        """with_overrides returns a validated copy."""
        params = RiskParameters().with_overrides(max_open_positions=5)

        assert params.max_open_positions == 5

        with pytest.raises(ConfigurationError):
            RiskParameters().with_overrides(max_open_positions=50)

    def test_parameters_are_immutable(self):
        """RiskParameters is frozen."""
        params = RiskParameters()

        with pytest.raises(FrozenInstanceError):
            params.max_risk_per_trade = 0.05


# ============================================================
# PRESETS
# ============================================================

class TestPresets:
    """Tests for preset factories."""

    @pytest.mark.parametrize("factory", [
        get_default_config,
        get_conservative_config,
        get_aggressive_config,
        get_testing_config,
    ])
    def test_presets_are_valid(self, factory):
        """Every preset validates."""
        config = factory()

        assert config.validate() is config

    def test_conservative_is_tighter_than_default(self):
        """Conservative limits are tighter."""
        default = get_default_config().parameters
        conservative = get_conservative_config().parameters

        assert conservative.max_risk_per_trade < default.max_risk_per_trade
        assert conservative.max_daily_loss < default.max_daily_loss
        assert conservative.max_open_positions < default.max_open_positions

    def test_testing_config_disables_alerts(self):
        """Testing preset has no alerts and no trade spacing."""
        config = get_testing_config()

        assert config.alerting.enabled is False
        assert config.parameters.min_time_between_trades_seconds == 0


# ============================================================
# DICT LOADING
# ============================================================

class TestLoadFromDict:
    """Tests for dictionary loaders."""

    def test_load_parameters(self):
        """Known keys override defaults."""
        params = load_parameters_from_dict({"max_risk_per_trade": 0.01, "max_open_positions": 2})

        assert params.max_risk_per_trade == 0.01
        assert params.max_open_positions == 2
        assert params.max_daily_loss == 0.05

    def test_unknown_key_rejected(self):
        """Typos do not silently fall back to defaults."""
        with pytest.raises(ConfigurationError) as exc_info:
            load_parameters_from_dict({"max_risk_per_trad": 0.01})

        assert "max_risk_per_trad" in str(exc_info.value)

    def test_out_of_bounds_rejected(self):
        """Invalid values raise."""
        with pytest.raises(ConfigurationError):
            load_parameters_from_dict({"max_portfolio_exposure": 2.0})

    def test_load_config_with_alerting(self):
        """Nested alerting options are applied."""
        config = load_config_from_dict({
            "parameters": {"circuit_breaker_cooldown_minutes": 30},
            "alerting": {"repeat_alert_minutes": 15, "alert_on_restricted": False},
        })

        assert config.parameters.circuit_breaker_cooldown_minutes == 30
        assert config.alerting.repeat_alert_minutes == 15
        assert config.alerting.alert_on_restricted is False

    def test_unknown_alerting_option_rejected(self):
        """Unknown alerting keys raise."""
        with pytest.raises(ConfigurationError):
            load_config_from_dict({"alerting": {"pager": True}})

    def test_to_dict_omits_secrets(self):
        """Serialized config never contains the bot token."""
        config = RiskCoreConfig(
            alerting=AlertingConfig(
                telegram_enabled=True,
                telegram_bot_token="secret-token",
                telegram_chat_id="42",
            )
        )

        assert "secret-token" not in str(config.to_dict())


# ============================================================
# ENVIRONMENT LOADING
# ============================================================

class TestLoadFromEnv:
    """Tests for environment loading."""

    def test_env_overrides(self, clean_env):
        """RISK_* variables override defaults with the right types."""
        clean_env.setenv("RISK_MAX_RISK_PER_TRADE", "0.01")
        clean_env.setenv("RISK_MAX_OPEN_POSITIONS", "4")
        clean_env.setenv("RISK_CIRCUIT_BREAKERS_ENABLED", "false")

        params = load_parameters_from_env()

        assert params.max_risk_per_trade == 0.01
        assert params.max_open_positions == 4
        assert isinstance(params.max_open_positions, int)
        assert params.circuit_breakers_enabled is False

    def test_unparseable_number(self, clean_env):
        """Non-numeric values raise ConfigurationError."""
        clean_env.setenv("RISK_MAX_DAILY_LOSS", "five percent")

        with pytest.raises(ConfigurationError) as exc_info:
            load_parameters_from_env()

        assert exc_info.value.context["config_key"] == "RISK_MAX_DAILY_LOSS"

    def test_unparseable_bool(self, clean_env):
        """Unknown boolean spellings raise."""
        clean_env.setenv("RISK_KELLY_CRITERION_ENABLED", "maybe")

        with pytest.raises(ConfigurationError):
            load_parameters_from_env()

    def test_out_of_bounds_env_value(self, clean_env):
        """Parsed but invalid values raise."""
        clean_env.setenv("RISK_MAX_RISK_PER_TRADE", "0.5")

        with pytest.raises(ConfigurationError):
            load_parameters_from_env()

    def test_from_env_enables_telegram(self, clean_env, tmp_path):
        """Telegram credentials turn on Telegram alerting."""
        clean_env.setenv("TELEGRAM_BOT_TOKEN", "token")
        clean_env.setenv("TELEGRAM_CHAT_ID", "123")
        clean_env.setenv("RISK_ALERTS_ENABLED", "yes")

        config = RiskCoreConfig.from_env(dotenv_path=str(tmp_path / "missing.env"))

        assert config.alerting.telegram_enabled is True
        assert config.alerting.telegram_chat_id == "123"
        assert config.alerting.enabled is True

    def test_from_env_reads_dotenv_file(self, clean_env, tmp_path):
        """Values in a .env file are honoured."""
        env_file = tmp_path / ".env"
        env_file.write_text("RISK_MAX_OPEN_POSITIONS=2\n")

        config = RiskCoreConfig.from_env(dotenv_path=str(env_file))

        assert config.parameters.max_open_positions == 2

    def test_telegram_without_credentials_rejected(self):
        """Telegram enabled without token/chat id is a configuration error."""
        config = RiskCoreConfig(alerting=AlertingConfig(telegram_enabled=True))

        with pytest.raises(ConfigurationError):
            config.validate()
