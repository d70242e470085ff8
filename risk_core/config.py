"""
Risk Core - Configuration.

============================================================
PURPOSE
============================================================
Risk limits, sizing parameters and feature toggles.

Every limit is expressed as a FRACTION of equity or price
(0.02 = 2%), never as an absolute amount, so the same
configuration works for any account size.

============================================================
LOADING RULES
============================================================
1. Parameters are validated ONCE, when loaded
2. Invalid parameters raise ConfigurationError
3. The system refuses to start on ConfigurationError
4. Nothing re-validates mid-evaluation

Environment variables use the RISK_ prefix followed by the
upper-cased field name, e.g. RISK_MAX_RISK_PER_TRADE=0.01.
A .env file is honoured via python-dotenv.

============================================================
"""

from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, List, Optional
import logging
import os

from dotenv import load_dotenv

from .exceptions import ConfigurationError


logger = logging.getLogger(__name__)

ENV_PREFIX = "RISK_"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


# ============================================================
# RISK PARAMETERS
# ============================================================

@dataclass(frozen=True)
class RiskParameters:
    """
    Immutable risk configuration bundle.

    Leaf dependency of every risk component.
    """

    # Per-trade and portfolio limits
    max_risk_per_trade: float = 0.02
    """
    Fraction of equity risked on a single trade.
    Default: 2%. Must be in (0, 0.10].
    """

    max_portfolio_exposure: float = 0.15
    """Maximum fraction of equity at risk across all open positions."""

    max_daily_loss: float = 0.05
    """Realized daily loss (fraction of equity) that trips a CRITICAL breaker."""

    max_intraday_drawdown: float = 0.05
    """
    Drawdown from peak equity that trips a HIGH breaker.
    Also the threshold at which new position size reaches zero.
    """

    # Kelly sizing
    kelly_multiplier: float = 0.25
    """Fractional Kelly scale (0.25 = quarter Kelly)."""

    min_kelly_criterion: float = 0.05
    """Lower clamp for the scaled Kelly fraction."""

    max_kelly_criterion: float = 0.25
    """Upper clamp for the scaled Kelly fraction."""

    # Volatility
    volatility_adjustment_factor: float = 1.5
    """Trailing distance multiplier in HIGH/EXTREME volatility regimes."""

    min_volatility_adjustment: float = 0.5
    """Lower clamp of the 1/volatility size multiplier."""

    max_volatility_adjustment: float = 2.0
    """Upper clamp of the 1/volatility size multiplier."""

    max_slippage: float = 0.001
    """Maximum acceptable slippage as a fraction of price."""

    # Stops
    initial_stop_loss_percentage: float = 0.02
    """Distance of the initial stop from entry."""

    take_profit_reward_multiple: float = 2.0
    """Take profit distance as a multiple of the stop distance."""

    trailing_stop_activation: float = 0.01
    """Unrealized profit fraction required before trailing starts."""

    trailing_stop_distance: float = 0.005
    """Distance of the trailing stop behind price."""

    # Portfolio structure
    max_open_positions: int = 3
    """Maximum number of simultaneously open positions."""

    max_position_correlation: float = 0.7
    """Maximum absolute correlation with any open position."""

    min_time_between_trades_seconds: int = 300
    """Minimum spacing between trades."""

    circuit_breaker_cooldown_minutes: int = 60
    """How long a tripped breaker blocks new entries."""

    # Validation thresholds
    min_account_equity: float = 1000.0
    """Accounts below this equity may not open new trades."""

    min_signal_confidence: float = 70.0
    """Minimum signal confidence (0-100)."""

    min_liquidity_score: float = 20.0
    """Liquidity score below which the LOW_LIQUIDITY breaker trips."""

    # Exchange constraints
    quantity_step: float = 0.00001
    """Order quantity increment. Sizes are rounded DOWN to it."""

    min_order_quantity: float = 0.00001
    """Exchange minimum order quantity."""

    # Position closure
    volatility_spike_multiple: float = 2.0
    """Volatility above this multiple of historical ATR is a spike."""

    volatility_spike_close_percentage: float = 50.0
    """Percentage of a position closed on a volatility spike."""

    max_position_age_hours: float = 168.0
    """Time stop. Default: 7 days."""

    # Feature toggles
    risk_management_enabled: bool = True
    """When False every trade validates (use only in testing)."""

    circuit_breakers_enabled: bool = True
    """When False breakers never trip."""

    kelly_criterion_enabled: bool = True
    """When False sizing ignores Kelly."""

    trailing_stops_enabled: bool = True
    """When False stops never trail."""

    allow_trading_when_restricted: bool = False
    """
    Permission to keep trading in RESTRICTED state.
    EMERGENCY and HALTED always reject.
    """

    def validation_errors(self) -> List[str]:
        """
        Collect every violated bound.

        Returns:
            Human-readable error messages (empty if valid)
        """
        errors: List[str] = []

        def check(condition: bool, message: str) -> None:
            if not condition:
                errors.append(message)

        check(0 < self.max_risk_per_trade <= 0.10,
              f"max_risk_per_trade must be in (0, 0.10], got {self.max_risk_per_trade}")
        check(0 < self.max_portfolio_exposure <= 1.0,
              f"max_portfolio_exposure must be in (0, 1], got {self.max_portfolio_exposure}")
        check(0 < self.max_daily_loss <= 0.20,
              f"max_daily_loss must be in (0, 0.20], got {self.max_daily_loss}")
        check(0 < self.max_intraday_drawdown <= 0.50,
              f"max_intraday_drawdown must be in (0, 0.50], got {self.max_intraday_drawdown}")
        check(0 < self.kelly_multiplier <= 1.0,
              f"kelly_multiplier must be in (0, 1], got {self.kelly_multiplier}")
        check(0 <= self.min_kelly_criterion < self.max_kelly_criterion <= 1.0,
              "Kelly bounds must satisfy 0 <= min_kelly_criterion < max_kelly_criterion <= 1, "
              f"got [{self.min_kelly_criterion}, {self.max_kelly_criterion}]")
        check(self.volatility_adjustment_factor >= 1.0,
              f"volatility_adjustment_factor must be >= 1, got {self.volatility_adjustment_factor}")
        check(0 < self.min_volatility_adjustment <= 1.0 <= self.max_volatility_adjustment,
              "volatility adjustment band must satisfy 0 < min <= 1 <= max, "
              f"got [{self.min_volatility_adjustment}, {self.max_volatility_adjustment}]")
        check(0 <= self.max_slippage <= 0.05,
              f"max_slippage must be in [0, 0.05], got {self.max_slippage}")
        check(0 < self.initial_stop_loss_percentage < 1.0,
              f"initial_stop_loss_percentage must be in (0, 1), got {self.initial_stop_loss_percentage}")
        check(self.take_profit_reward_multiple > 0,
              f"take_profit_reward_multiple must be > 0, got {self.take_profit_reward_multiple}")
        check(self.trailing_stop_activation >= 0,
              f"trailing_stop_activation must be >= 0, got {self.trailing_stop_activation}")
        check(0 < self.trailing_stop_distance < 1.0,
              f"trailing_stop_distance must be in (0, 1), got {self.trailing_stop_distance}")
        check(0 < self.max_open_positions <= 10,
              f"max_open_positions must be in (0, 10], got {self.max_open_positions}")
        check(0 <= self.max_position_correlation <= 1.0,
              f"max_position_correlation must be in [0, 1], got {self.max_position_correlation}")
        check(self.min_time_between_trades_seconds >= 0,
              "min_time_between_trades_seconds must be >= 0")
        check(self.circuit_breaker_cooldown_minutes >= 0,
              "circuit_breaker_cooldown_minutes must be >= 0")
        check(self.min_account_equity >= 0, "min_account_equity must be >= 0")
        check(0 <= self.min_signal_confidence <= 100,
              f"min_signal_confidence must be in [0, 100], got {self.min_signal_confidence}")
        check(0 <= self.min_liquidity_score <= 100,
              f"min_liquidity_score must be in [0, 100], got {self.min_liquidity_score}")
        check(self.quantity_step > 0, f"quantity_step must be > 0, got {self.quantity_step}")
        check(self.min_order_quantity > 0,
              f"min_order_quantity must be > 0, got {self.min_order_quantity}")
        check(self.volatility_spike_multiple > 1.0,
              f"volatility_spike_multiple must be > 1, got {self.volatility_spike_multiple}")
        check(0 < self.volatility_spike_close_percentage <= 100,
              "volatility_spike_close_percentage must be in (0, 100]")
        check(self.max_position_age_hours > 0, "max_position_age_hours must be > 0")

        return errors

    def is_valid(self) -> bool:
        """Check all bounds."""
        return not self.validation_errors()

    def validate(self) -> "RiskParameters":
        """
        Validate bounds.

        Returns:
            self, for chaining

        Raises:
            ConfigurationError: If any bound is violated
        """
        errors = self.validation_errors()
        if errors:
            raise ConfigurationError(
                f"Invalid risk parameters ({len(errors)} errors): " + "; ".join(errors),
                errors=errors,
            )
        return self

    def with_overrides(self, **overrides: Any) -> "RiskParameters":
        """Return a validated copy with some fields replaced."""
        return replace(self, **overrides).validate()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {f.name: getattr(self, f.name) for f in fields(self)}


# ============================================================
# ALERTING CONFIGURATION
# ============================================================

@dataclass
class AlertingConfig:
    """
    Configuration for circuit breaker and closure alerts.
    """

    enabled: bool = True
    """Whether alerting is enabled."""

    telegram_enabled: bool = False
    """Whether to send Telegram alerts."""

    telegram_bot_token: Optional[str] = None
    """Telegram bot token."""

    telegram_chat_id: Optional[str] = None
    """Telegram chat to alert."""

    alert_on_restricted: bool = True
    """Alert when breakers put the system in RESTRICTED state."""

    alert_on_closure: bool = True
    """Alert on HIGH/EMERGENCY urgency position closures."""

    repeat_alert_minutes: int = 5
    """Identical alerts are suppressed for this long."""


# ============================================================
# MASTER CONFIGURATION
# ============================================================

@dataclass
class RiskCoreConfig:
    """
    Master configuration for the risk core.
    """

    parameters: RiskParameters = field(default_factory=RiskParameters)
    """Risk limits and toggles."""

    alerting: AlertingConfig = field(default_factory=AlertingConfig)
    """Alerting configuration."""

    def validate(self) -> "RiskCoreConfig":
        """Validate nested parameters."""
        self.parameters.validate()
        if self.alerting.telegram_enabled and not (
            self.alerting.telegram_bot_token and self.alerting.telegram_chat_id
        ):
            raise ConfigurationError(
                "Telegram alerting enabled without bot token and chat id",
                config_key="alerting.telegram_enabled",
            )
        return self

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "RiskCoreConfig":
        """
        Load configuration from environment variables.

        Environment variables:
        - RISK_<FIELD> for every RiskParameters field
        - TELEGRAM_BOT_TOKEN
        - TELEGRAM_CHAT_ID
        - RISK_ALERTS_ENABLED

        Raises:
            ConfigurationError: On unparseable or out-of-bounds values
        """
        load_dotenv(dotenv_path)

        config = cls(parameters=load_parameters_from_env())

        bot_token = os.getenv("TELEGRAM_BOT_TOKEN")
        chat_id = os.getenv("TELEGRAM_CHAT_ID")
        if bot_token and chat_id:
            config.alerting.telegram_enabled = True
            config.alerting.telegram_bot_token = bot_token
            config.alerting.telegram_chat_id = chat_id

        alerts_enabled = os.getenv("RISK_ALERTS_ENABLED")
        if alerts_enabled is not None:
            config.alerting.enabled = _parse_bool("RISK_ALERTS_ENABLED", alerts_enabled)

        return config.validate()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization (secrets omitted)."""
        return {
            "parameters": self.parameters.to_dict(),
            "alerting": {
                "enabled": self.alerting.enabled,
                "telegram_enabled": self.alerting.telegram_enabled,
                "alert_on_restricted": self.alerting.alert_on_restricted,
                "alert_on_closure": self.alerting.alert_on_closure,
                "repeat_alert_minutes": self.alerting.repeat_alert_minutes,
            },
        }


# ============================================================
# PRESET FACTORIES
# ============================================================

def get_default_config() -> RiskCoreConfig:
    """
    Get default configuration.

    Defaults suitable for production.
    """
    return RiskCoreConfig()


def get_conservative_config() -> RiskCoreConfig:
    """
    Get conservative configuration.

    Tighter limits for drawdown recovery or high-risk periods.
    """
    parameters = RiskParameters(
        max_risk_per_trade=0.01,
        max_portfolio_exposure=0.08,
        max_daily_loss=0.03,
        max_intraday_drawdown=0.03,
        kelly_multiplier=0.15,
        max_open_positions=2,
        max_position_correlation=0.5,
        min_time_between_trades_seconds=900,
        circuit_breaker_cooldown_minutes=120,
        min_signal_confidence=80.0,
    )
    return RiskCoreConfig(parameters=parameters.validate())


def get_aggressive_config() -> RiskCoreConfig:
    """
    Get aggressive configuration.

    Wider limits. Use only with proven strategies.
    """
    parameters = RiskParameters(
        max_risk_per_trade=0.03,
        max_portfolio_exposure=0.30,
        max_daily_loss=0.08,
        max_intraday_drawdown=0.08,
        kelly_multiplier=0.5,
        max_open_positions=5,
        min_time_between_trades_seconds=60,
        circuit_breaker_cooldown_minutes=30,
        min_signal_confidence=60.0,
    )
    return RiskCoreConfig(parameters=parameters.validate())


def get_testing_config() -> RiskCoreConfig:
    """
    Get testing configuration.

    No trade spacing, short cooldown, alerts off.
    NOT FOR PRODUCTION.
    """
    config = RiskCoreConfig(
        parameters=RiskParameters(
            min_time_between_trades_seconds=0,
            circuit_breaker_cooldown_minutes=1,
            min_account_equity=0.0,
        ),
    )
    config.alerting.enabled = False
    return config


# ============================================================
# LOADERS
# ============================================================

def load_parameters_from_dict(data: Dict[str, Any]) -> RiskParameters:
    """
    Load risk parameters from a dictionary.

    Unknown keys are rejected so that typos cannot
    silently fall back to defaults.

    Args:
        data: Mapping of field name to value

    Returns:
        Validated RiskParameters

    Raises:
        ConfigurationError: On unknown keys or violated bounds
    """
    known = {f.name for f in fields(RiskParameters)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigurationError(
            f"Unknown risk parameters: {', '.join(unknown)}",
            errors=[f"unknown key: {key}" for key in unknown],
        )

    return RiskParameters(**data).validate()


def load_config_from_dict(data: Dict[str, Any]) -> RiskCoreConfig:
    """
    Load master configuration from a dictionary.

    Args:
        data: {"parameters": {...}, "alerting": {...}}

    Returns:
        Validated RiskCoreConfig
    """
    config = get_default_config()

    if "parameters" in data:
        config.parameters = load_parameters_from_dict(data["parameters"])

    if "alerting" in data:
        alerting = data["alerting"]
        for key, value in alerting.items():
            if not hasattr(config.alerting, key):
                raise ConfigurationError(f"Unknown alerting option: {key}", config_key=key)
            setattr(config.alerting, key, value)

    return config.validate()


def load_parameters_from_env(prefix: str = ENV_PREFIX) -> RiskParameters:
    """
    Load risk parameters from RISK_* environment variables.

    Fields without a variable keep their defaults.

    Raises:
        ConfigurationError: On unparseable or out-of-bounds values
    """
    overrides: Dict[str, Any] = {}

    for f in fields(RiskParameters):
        env_key = f"{prefix}{f.name.upper()}"
        raw = os.getenv(env_key)
        if raw is None or raw.strip() == "":
            continue
        overrides[f.name] = _parse_value(env_key, raw.strip(), f.type)

    if overrides:
        logger.info(f"Risk parameters overridden from environment: {sorted(overrides)}")

    return RiskParameters(**overrides).validate()


def _parse_value(env_key: str, raw: str, field_type: Any) -> Any:
    """Parse an environment string according to the field type."""
    if field_type is bool:
        return _parse_bool(env_key, raw)

    try:
        if field_type is int:
            return int(raw)
        return float(raw)
    except ValueError:
        raise ConfigurationError(
            f"Cannot parse {env_key}={raw!r} as {getattr(field_type, '__name__', field_type)}",
            config_key=env_key,
            actual_value=raw,
        )


def _parse_bool(env_key: str, raw: str) -> bool:
    """Parse a boolean environment value."""
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ConfigurationError(
        f"Cannot parse {env_key}={raw!r} as bool",
        config_key=env_key,
        actual_value=raw,
    )
