"""
Risk Core - Alerting.

============================================================
PURPOSE
============================================================
Turn circuit breaker trips, urgent position closures and
manual halts into operator alerts.

The decision core never depends on this module. It only
consumes result objects the core already returns.

ALERT PRIORITIES:
- RESTRICTED trip / HIGH closure:       HIGH
- EMERGENCY trip / EMERGENCY closure:   URGENT
- Manual halt:                          URGENT
- Resume / cooldown cleared:            MEDIUM

============================================================
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, TextIO
import logging
import sys

import aiohttp

from .circuit_breaker import StateTransition
from .clock import ClockProtocol, SystemClock
from .config import AlertingConfig
from .models import CircuitBreakerResult, Position, PositionClosureResult
from .types import ClosureUrgency, SystemState


logger = logging.getLogger(__name__)


TELEGRAM_MAX_MESSAGE_LENGTH = 4096
TELEGRAM_TIMEOUT_SECONDS = 10
DEDUP_CACHE_EXPIRY = timedelta(hours=1)


# ============================================================
# ALERT TYPES
# ============================================================

class AlertPriority(Enum):
    """Alert priority levels."""

    LOW = "low"
    """Informational only."""

    MEDIUM = "medium"
    """Warning, requires attention."""

    HIGH = "high"
    """Critical, requires immediate attention."""

    URGENT = "urgent"
    """Emergency, requires immediate action."""


@dataclass
class Alert:
    """Alert to be sent."""

    priority: AlertPriority
    """Alert priority."""

    title: str
    """Alert title."""

    message: str
    """Alert message (Markdown)."""

    details: Dict[str, Any] = field(default_factory=dict)
    """Additional details."""

    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    """When alert was created."""

    @property
    def dedup_key(self) -> str:
        return f"{self.title}:{self.message[:100]}"


# ============================================================
# ALERT FORMATTERS
# ============================================================

def format_circuit_breaker_alert(result: CircuitBreakerResult) -> Alert:
    """
    Format a circuit breaker trip as an alert.

    Args:
        result: Triggered circuit breaker result

    Returns:
        Formatted alert
    """
    if result.system_state >= SystemState.EMERGENCY:
        priority = AlertPriority.URGENT
        emoji = "🚨"
    else:
        priority = AlertPriority.HIGH
        emoji = "🛑"

    title = f"{emoji} CIRCUIT BREAKER: {result.system_state.name}"

    lines = [
        f"**State:** {result.system_state.name}",
        f"**Severity:** {result.max_severity.name}",
        f"**Time:** {result.evaluated_at.strftime('%Y-%m-%d %H:%M:%S UTC')}",
    ]
    if result.reset_time is not None:
        lines.append(f"**Cooldown until:** {result.reset_time.strftime('%Y-%m-%d %H:%M:%S UTC')}")

    lines.append("")
    lines.append("**Triggers:**")
    for trigger in result.triggers:
        lines.append(f"• `{trigger.name}` [{trigger.severity.name}]: {trigger.description}")

    if result.recommended_actions:
        lines.append("")
        lines.append("**Actions:**")
        for action in result.recommended_actions:
            lines.append(f"• {action}")

    return Alert(
        priority=priority,
        title=title,
        message="\n".join(lines),
        details={
            "triggers": result.trigger_names,
            "cooldown_minutes": result.cooldown_minutes,
        },
        timestamp=result.evaluated_at,
    )


def format_position_closure_alert(
    position: Position,
    result: PositionClosureResult,
    timestamp: Optional[datetime] = None,
) -> Alert:
    """
    Format a close/reduce instruction as an alert.

    Args:
        position: Position being closed
        result: Closure instruction
        timestamp: Alert time (current UTC if None)

    Returns:
        Formatted alert
    """
    if result.urgency >= ClosureUrgency.EMERGENCY:
        priority = AlertPriority.URGENT
        emoji = "🚨"
    elif result.urgency >= ClosureUrgency.HIGH:
        priority = AlertPriority.HIGH
        emoji = "⚠️"
    else:
        priority = AlertPriority.MEDIUM
        emoji = "ℹ️"

    reason = result.reason.value if result.reason else "UNKNOWN"
    title = f"{emoji} CLOSE {position.symbol}: {reason}"

    lines = [
        f"**Position:** `{position.position_id}`",
        f"**Side:** {position.side.value}",
        f"**Quantity:** {position.quantity}",
        f"**Entry:** {position.entry_price}",
        f"**Close:** {result.percentage_to_close:.0f}%",
        f"**Urgency:** {result.urgency.name}",
        f"**Order type:** {result.recommended_order_type.value}",
        "",
        f"**Reason:** {result.description}",
    ]

    if result.risk_factors:
        lines.append("")
        lines.append("**Risk factors:**")
        for factor in result.risk_factors:
            lines.append(f"• {factor}")

    kwargs = {"timestamp": timestamp} if timestamp is not None else {}
    return Alert(
        priority=priority,
        title=title,
        message="\n".join(lines),
        details={
            "position_id": position.position_id,
            "reason": reason,
            "percentage_to_close": result.percentage_to_close,
        },
        **kwargs,
    )


def format_state_transition_alert(transition: StateTransition) -> Alert:
    """
    Format a state transition (manual halt, resume, override) as an alert.

    Args:
        transition: State transition

    Returns:
        Formatted alert
    """
    if transition.to_state == SystemState.HALTED:
        priority = AlertPriority.URGENT
        title = "⛔ TRADING HALTED"
    elif transition.to_state < transition.from_state:
        priority = AlertPriority.MEDIUM
        title = f"✅ STATE: {transition.from_state.name} → {transition.to_state.name}"
    else:
        priority = AlertPriority.HIGH
        title = f"⚠️ STATE: {transition.from_state.name} → {transition.to_state.name}"

    lines = [
        f"**From:** {transition.from_state.name}",
        f"**To:** {transition.to_state.name}",
        f"**Time:** {transition.timestamp.strftime('%Y-%m-%d %H:%M:%S UTC')}",
        f"**Automatic:** {'Yes' if transition.is_automatic else 'No'}",
        "",
        f"**Reason:** {transition.reason}",
    ]

    if transition.to_state == SystemState.HALTED:
        lines.append("")
        lines.append("**ACTION REQUIRED:** Review and resume manually")

    return Alert(
        priority=priority,
        title=title,
        message="\n".join(lines),
        details={
            "from_state": transition.from_state.name,
            "to_state": transition.to_state.name,
        },
        timestamp=transition.timestamp,
    )


# ============================================================
# ALERT SENDERS
# ============================================================

# Delivery order of priorities, lowest first
PRIORITY_RANK = {
    AlertPriority.LOW: 0,
    AlertPriority.MEDIUM: 1,
    AlertPriority.HIGH: 2,
    AlertPriority.URGENT: 3,
}


def render_plain_text(alert: Alert) -> str:
    """Markdown-free rendering for logs and terminals."""
    body = alert.message.replace("**", "").replace("`", "")
    lines = [
        f"[{alert.priority.value.upper()}] {alert.title}",
        f"at {alert.timestamp.isoformat()}",
        body,
    ]
    if alert.details:
        lines.append(", ".join(f"{key}={value}" for key, value in sorted(alert.details.items())))
    return "\n".join(lines)


class AlertSender(ABC):
    """
    Delivers operator alerts.

    Senders report delivery as a bool. The AlertingService
    isolates senders that raise.
    """

    @abstractmethod
    async def send(self, alert: Alert) -> bool:
        """Deliver one alert. True when it went out."""


class TelegramAlertSender(AlertSender):
    """
    Posts alerts to a Telegram chat through the Bot API.

    Alerts below min_audible_priority are delivered silently
    so that only trips and urgent exits wake an operator.
    """

    def __init__(
        self,
        bot_token: str,
        chat_id: str,
        parse_mode: str = "Markdown",
        min_audible_priority: AlertPriority = AlertPriority.HIGH,
    ):
        """
        Args:
            bot_token: Bot API token
            chat_id: Operator chat
            parse_mode: Telegram parse mode for the message body
            min_audible_priority: Lowest priority that notifies with sound
        """
        self._chat_id = chat_id
        self._parse_mode = parse_mode
        self._min_audible_rank = PRIORITY_RANK[min_audible_priority]
        self._api_url = f"https://api.telegram.org/bot{bot_token}/sendMessage"

    def build_payload(self, alert: Alert) -> Dict[str, Any]:
        text = f"*{alert.title}*\n\n{alert.message}"
        if len(text) > TELEGRAM_MAX_MESSAGE_LENGTH:
            text = text[:TELEGRAM_MAX_MESSAGE_LENGTH - 3] + "..."

        return {
            "chat_id": self._chat_id,
            "text": text,
            "parse_mode": self._parse_mode,
            "disable_notification": PRIORITY_RANK[alert.priority] < self._min_audible_rank,
        }

    async def send(self, alert: Alert) -> bool:
        payload = self.build_payload(alert)
        timeout = aiohttp.ClientTimeout(total=TELEGRAM_TIMEOUT_SECONDS)

        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(self._api_url, json=payload) as response:
                    if response.status == 200:
                        logger.info(f"Telegram alert delivered: {alert.title}")
                        return True

                    error = await response.text()
                    if response.status == 429:
                        logger.warning(f"Telegram rate limited alert '{alert.title}': {error}")
                    else:
                        logger.error(f"Telegram rejected alert '{alert.title}': {response.status} - {error}")
                    return False

        except aiohttp.ClientError as e:
            logger.error(f"Telegram unreachable for alert '{alert.title}': {e}")
            return False


class ConsoleAlertSender(AlertSender):
    """Writes alerts to a text stream (stdout by default). Development use."""

    def __init__(self, stream: Optional[TextIO] = None):
        self._stream = stream

    async def send(self, alert: Alert) -> bool:
        stream = self._stream or sys.stdout
        separator = "=" * 60
        stream.write(f"\n{separator}\n{render_plain_text(alert)}\n{separator}\n")
        stream.flush()
        return True


class LoggingAlertSender(AlertSender):
    """Writes alerts to the log. Default when Telegram is not configured."""

    _LEVELS = {
        AlertPriority.LOW: logging.INFO,
        AlertPriority.MEDIUM: logging.INFO,
        AlertPriority.HIGH: logging.WARNING,
        AlertPriority.URGENT: logging.CRITICAL,
    }

    async def send(self, alert: Alert) -> bool:
        logger.log(self._LEVELS.get(alert.priority, logging.WARNING), render_plain_text(alert))
        return True


# ============================================================
# ALERTING SERVICE
# ============================================================

class AlertingService:
    """
    Alerting service for the risk core.

    Manages alert sending with:
    - Deduplication (identical alerts within repeat window)
    - Per-event filtering from AlertingConfig
    - Sender isolation (one failing sender does not stop others)
    """

    def __init__(
        self,
        config: Optional[AlertingConfig] = None,
        senders: Optional[List[AlertSender]] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        """
        Initialize alerting service.

        Args:
            config: Alerting configuration
            senders: List of alert senders
            clock: Clock for deduplication windows
        """
        self._config = config or AlertingConfig()
        self._senders: List[AlertSender] = list(senders or [])
        self._clock = clock or SystemClock()
        self._recent_alerts: Dict[str, datetime] = {}

    @classmethod
    def from_config(
        cls,
        config: AlertingConfig,
        clock: Optional[ClockProtocol] = None,
    ) -> "AlertingService":
        """Build a service with Telegram when configured, else logging."""
        senders: List[AlertSender] = []
        if config.telegram_enabled and config.telegram_bot_token and config.telegram_chat_id:
            senders.append(TelegramAlertSender(config.telegram_bot_token, config.telegram_chat_id))
        else:
            senders.append(LoggingAlertSender())
        return cls(config, senders, clock)

    @property
    def senders(self) -> List[AlertSender]:
        return list(self._senders)

    def add_sender(self, sender: AlertSender) -> None:
        """Add an alert sender."""
        self._senders.append(sender)

    async def alert_circuit_breaker(self, result: CircuitBreakerResult) -> bool:
        """
        Send alert for a circuit breaker trip.

        Returns:
            True if an alert went out
        """
        if not self._config.enabled or not result.is_triggered:
            return False

        if result.system_state == SystemState.RESTRICTED and not self._config.alert_on_restricted:
            return False

        return await self._send_alert(format_circuit_breaker_alert(result))

    async def alert_position_closure(
        self,
        position: Position,
        result: PositionClosureResult,
    ) -> bool:
        """
        Send alert for an urgent close/reduce instruction.

        Only HIGH and EMERGENCY urgency closures are alerted.
        """
        if not self._config.enabled or not self._config.alert_on_closure:
            return False

        if not result.should_close or result.urgency < ClosureUrgency.HIGH:
            return False

        return await self._send_alert(
            format_position_closure_alert(position, result, timestamp=self._clock.now())
        )

    async def alert_state_transition(self, transition: StateTransition) -> bool:
        """Send alert for a manual halt, resume or cooldown override."""
        if not self._config.enabled:
            return False

        return await self._send_alert(format_state_transition_alert(transition))

    async def _send_alert(self, alert: Alert) -> bool:
        """Send alert through all configured senders."""
        key = alert.dedup_key
        now = self._clock.now()

        last_sent = self._recent_alerts.get(key)
        if last_sent is not None:
            if now - last_sent < timedelta(minutes=self._config.repeat_alert_minutes):
                logger.debug(f"Skipping duplicate alert: {alert.title}")
                return False

        delivered = False
        for sender in self._senders:
            try:
                delivered = await sender.send(alert) or delivered
            except Exception as e:
                logger.error(f"Alert sender {sender.__class__.__name__} failed: {e}", exc_info=True)

        self._recent_alerts[key] = now
        self._cleanup_recent_alerts(now)
        return delivered

    def _cleanup_recent_alerts(self, now: datetime) -> None:
        """Remove old entries from deduplication cache."""
        expired = [
            key for key, timestamp in self._recent_alerts.items()
            if now - timestamp > DEDUP_CACHE_EXPIRY
        ]
        for key in expired:
            del self._recent_alerts[key]
