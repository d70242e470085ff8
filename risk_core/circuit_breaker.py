"""
Risk Core - Circuit Breakers.

============================================================
PURPOSE
============================================================
Inspect account and market snapshots for threshold breaches
and derive the system operating state.

TRIGGERS (independent, all evaluated every cycle):
- MAX_INTRADAY_DRAWDOWN: drawdown > max_intraday_drawdown  -> HIGH
- MAX_DAILY_LOSS:        daily loss > max_daily_loss       -> CRITICAL
- EXTREME_VOLATILITY:    regime == EXTREME                 -> MEDIUM
- MARKET_ANOMALY:        any anomaly severity >= HIGH      -> HIGH
- LOW_LIQUIDITY:         liquidity < min_liquidity_score   -> MEDIUM

STATE DERIVATION:
- max severity >= CRITICAL -> EMERGENCY
- anything triggered       -> RESTRICTED
- nothing                  -> NORMAL
- HALTED                   -> manual only, never derived

COOLDOWN:
A trip holds its state until reset_time = now + cooldown,
even if later evaluations come back clean. The cooldown
lives in CooldownTracker, the ONLY mutable state in the
risk core, guarded by a lock because breaker evaluation
runs on a timer while validations arrive concurrently.

============================================================
"""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional
import logging
import threading

from .clock import ClockProtocol, SystemClock, ensure_utc
from .config import RiskParameters
from .models import (
    AccountState,
    CircuitBreakerResult,
    CircuitBreakerTrigger,
    MarketConditions,
)
from .types import (
    AnomalySeverity,
    CircuitBreakerSeverity,
    SystemState,
    VolatilityRegime,
)


logger = logging.getLogger(__name__)


# Trigger names
MAX_INTRADAY_DRAWDOWN = "MAX_INTRADAY_DRAWDOWN"
MAX_DAILY_LOSS = "MAX_DAILY_LOSS"
EXTREME_VOLATILITY = "EXTREME_VOLATILITY"
MARKET_ANOMALY = "MARKET_ANOMALY"
LOW_LIQUIDITY = "LOW_LIQUIDITY"

# Volatility reference reported with EXTREME_VOLATILITY
EXTREME_VOLATILITY_REFERENCE = 0.10


# ============================================================
# STATE TRANSITIONS
# ============================================================

@dataclass(frozen=True)
class StateTransition:
    """Record of a change in the tracked system state."""

    from_state: SystemState
    to_state: SystemState
    timestamp: datetime
    reason: str
    is_automatic: bool = True
    reset_time: Optional[datetime] = None


# ============================================================
# COOLDOWN TRACKER
# ============================================================

class CooldownTracker:
    """
    Remembers the last trip until its reset time.

    Many readers (validations), few writers (breaker
    evaluations, operators). Every access holds the lock.
    """

    def __init__(self, max_history_size: int = 100):
        self._lock = threading.RLock()
        self._cooldown_state = SystemState.NORMAL
        self._reset_time: Optional[datetime] = None
        self._trigger_names: List[str] = []
        self._halted = False
        self._halt_reason: Optional[str] = None
        self._history: List[StateTransition] = []
        self._max_history_size = max_history_size

    def state_at(self, now: datetime) -> SystemState:
        """Effective state at a moment."""
        with self._lock:
            if self._halted:
                return SystemState.HALTED
            if self._reset_time is not None and now < self._reset_time:
                return self._cooldown_state
            return SystemState.NORMAL

    def reset_time_at(self, now: datetime) -> Optional[datetime]:
        """Reset time of the active cooldown, if any."""
        with self._lock:
            if self._reset_time is not None and now < self._reset_time:
                return self._reset_time
            return None

    def active_triggers_at(self, now: datetime) -> List[str]:
        """Names of the triggers behind the active cooldown."""
        with self._lock:
            if self.reset_time_at(now) is None:
                return []
            return list(self._trigger_names)

    @property
    def is_halted(self) -> bool:
        with self._lock:
            return self._halted

    @property
    def halt_reason(self) -> Optional[str]:
        with self._lock:
            return self._halt_reason

    @property
    def history(self) -> List[StateTransition]:
        with self._lock:
            return list(self._history)

    def record(self, result: CircuitBreakerResult) -> Optional[StateTransition]:
        """
        Record a triggered evaluation.

        Within an active window the more severe state wins and
        the reset time only ever moves later.

        Returns:
            StateTransition if the effective state changed
        """
        if not result.is_triggered or result.reset_time is None:
            return None

        now = result.evaluated_at
        with self._lock:
            before = self.state_at(now)
            active = self._reset_time is not None and now < self._reset_time

            if active:
                if result.system_state > self._cooldown_state:
                    self._cooldown_state = result.system_state
                self._reset_time = max(self._reset_time, result.reset_time)
                for name in result.trigger_names:
                    if name not in self._trigger_names:
                        self._trigger_names.append(name)
            else:
                self._cooldown_state = result.system_state
                self._reset_time = result.reset_time
                self._trigger_names = result.trigger_names

            after = self.state_at(now)
            if after == before:
                return None

            return self._append_transition(
                before,
                after,
                now,
                reason=f"Circuit breakers: {', '.join(result.trigger_names)}",
                is_automatic=True,
            )

    def halt(self, reason: str, operator: str, now: datetime) -> StateTransition:
        """Manually halt. Stays halted until resume()."""
        with self._lock:
            before = self.state_at(now)
            self._halted = True
            self._halt_reason = reason
            logger.warning(f"MANUAL HALT by {operator}: {reason}")
            return self._append_transition(
                before, SystemState.HALTED, now,
                reason=f"Manual halt by {operator}: {reason}",
                is_automatic=False,
            )

    def resume(self, operator: str, now: datetime) -> StateTransition:
        """Lift a manual halt. An active cooldown still applies."""
        with self._lock:
            before = self.state_at(now)
            self._halted = False
            self._halt_reason = None
            after = self.state_at(now)
            return self._append_transition(
                before, after, now,
                reason=f"Manual resume by {operator}",
                is_automatic=False,
            )

    def clear_cooldown(self, operator: str, now: datetime) -> Optional[StateTransition]:
        """Drop the active cooldown (operator override)."""
        with self._lock:
            before = self.state_at(now)
            self._cooldown_state = SystemState.NORMAL
            self._reset_time = None
            self._trigger_names = []
            after = self.state_at(now)
            if after == before:
                return None
            return self._append_transition(
                before, after, now,
                reason=f"Cooldown cleared by {operator}",
                is_automatic=False,
            )

    def _append_transition(
        self,
        from_state: SystemState,
        to_state: SystemState,
        now: datetime,
        reason: str,
        is_automatic: bool,
    ) -> StateTransition:
        transition = StateTransition(
            from_state=from_state,
            to_state=to_state,
            timestamp=now,
            reason=reason,
            is_automatic=is_automatic,
            reset_time=self._reset_time,
        )

        self._history.append(transition)
        if len(self._history) > self._max_history_size:
            self._history = self._history[-self._max_history_size:]

        logger.info(
            f"State transition: {from_state.name} -> {to_state.name} "
            f"(reason: {reason}, auto: {is_automatic})"
        )
        return transition


# ============================================================
# EVALUATOR
# ============================================================

class CircuitBreakerEvaluator:
    """
    Evaluates circuit breakers and tracks cooldowns.

    Usage:
        evaluator = CircuitBreakerEvaluator(parameters)
        result = evaluator.evaluate(account, market)

        if not evaluator.effective_state().allows_new_trades():
            # Reject new entries
            pass
    """

    def __init__(
        self,
        parameters: Optional[RiskParameters] = None,
        clock: Optional[ClockProtocol] = None,
        tracker: Optional[CooldownTracker] = None,
    ):
        """
        Initialize evaluator.

        Args:
            parameters: Risk parameters (defaults if None)
            clock: Clock for reset times (system clock if None)
            tracker: Shared cooldown tracker (new one if None)
        """
        self._parameters = parameters or RiskParameters()
        self._clock = clock or SystemClock()
        self._tracker = tracker or CooldownTracker()

    @property
    def tracker(self) -> CooldownTracker:
        return self._tracker

    def _now(self, now: Optional[datetime]) -> datetime:
        return ensure_utc(now) if now is not None else self._clock.now()

    def assess(
        self,
        account: AccountState,
        market: MarketConditions,
        now: Optional[datetime] = None,
    ) -> CircuitBreakerResult:
        """
        Evaluate triggers without touching the cooldown.

        Pure function of its inputs.
        """
        now = self._now(now)

        if not self._parameters.circuit_breakers_enabled:
            return CircuitBreakerResult.normal(evaluated_at=now)

        checks = [
            self._check_intraday_drawdown(account),
            self._check_daily_loss(account),
            self._check_extreme_volatility(market),
            self._check_market_anomalies(market),
            self._check_liquidity(market),
        ]
        triggers = [t for t in checks if t is not None]

        if not triggers:
            return CircuitBreakerResult.normal(evaluated_at=now)

        return CircuitBreakerResult.triggered(
            triggers,
            cooldown_minutes=self._parameters.circuit_breaker_cooldown_minutes,
            now=now,
        )

    def evaluate(
        self,
        account: AccountState,
        market: MarketConditions,
        now: Optional[datetime] = None,
    ) -> CircuitBreakerResult:
        """
        Evaluate triggers and record any trip in the cooldown tracker.

        Returns:
            CircuitBreakerResult (never raises for business reasons)
        """
        result = self.assess(account, market, now)

        if result.is_triggered:
            logger.warning(
                f"Circuit breakers triggered: {result.trigger_names} "
                f"(severity={result.max_severity.name}, state={result.system_state.name}, "
                f"reset={result.reset_time.isoformat()})"
            )
            self._tracker.record(result)
        else:
            logger.debug("Circuit breakers: all clear")

        return result

    def effective_state(self, now: Optional[datetime] = None) -> SystemState:
        """State including active cooldowns and manual halts."""
        return self._tracker.state_at(self._now(now))

    def cooldown_reset_time(self, now: Optional[datetime] = None) -> Optional[datetime]:
        """When the active cooldown ends, if any."""
        return self._tracker.reset_time_at(self._now(now))

    def halt(self, reason: str, operator: str = "operator") -> StateTransition:
        """Manually halt trading."""
        return self._tracker.halt(reason, operator, self._clock.now())

    def resume(self, operator: str = "operator") -> StateTransition:
        """Lift a manual halt."""
        return self._tracker.resume(operator, self._clock.now())

    def clear_cooldown(self, operator: str = "operator") -> Optional[StateTransition]:
        """Drop the active cooldown early."""
        return self._tracker.clear_cooldown(operator, self._clock.now())

    # ========================================================
    # TRIGGER CHECKS
    # ========================================================

    def _check_intraday_drawdown(self, account: AccountState) -> Optional[CircuitBreakerTrigger]:
        drawdown = account.current_drawdown
        limit = self._parameters.max_intraday_drawdown
        if drawdown > limit:
            return CircuitBreakerTrigger(
                name=MAX_INTRADAY_DRAWDOWN,
                severity=CircuitBreakerSeverity.HIGH,
                trigger_value=drawdown,
                threshold_value=limit,
                description=f"Drawdown {drawdown:.2%} exceeds limit {limit:.2%}",
            )
        return None

    def _check_daily_loss(self, account: AccountState) -> Optional[CircuitBreakerTrigger]:
        daily_loss = account.daily_loss_percentage()
        limit = self._parameters.max_daily_loss
        if daily_loss > limit:
            return CircuitBreakerTrigger(
                name=MAX_DAILY_LOSS,
                severity=CircuitBreakerSeverity.CRITICAL,
                trigger_value=daily_loss,
                threshold_value=limit,
                description=f"Daily loss {daily_loss:.2%} exceeds limit {limit:.2%}",
            )
        return None

    def _check_extreme_volatility(self, market: MarketConditions) -> Optional[CircuitBreakerTrigger]:
        if market.volatility_regime == VolatilityRegime.EXTREME:
            return CircuitBreakerTrigger(
                name=EXTREME_VOLATILITY,
                severity=CircuitBreakerSeverity.MEDIUM,
                trigger_value=market.volatility,
                threshold_value=EXTREME_VOLATILITY_REFERENCE,
                description="Extreme market volatility detected",
            )
        return None

    def _check_market_anomalies(self, market: MarketConditions) -> Optional[CircuitBreakerTrigger]:
        severe = [a for a in market.anomalies if a.severity >= AnomalySeverity.HIGH]
        if severe:
            worst = max(a.severity for a in severe)
            return CircuitBreakerTrigger(
                name=MARKET_ANOMALY,
                severity=CircuitBreakerSeverity.HIGH,
                trigger_value=float(worst),
                threshold_value=float(AnomalySeverity.HIGH),
                description="Market anomalies: " + ", ".join(a.type for a in severe),
            )
        return None

    def _check_liquidity(self, market: MarketConditions) -> Optional[CircuitBreakerTrigger]:
        floor = self._parameters.min_liquidity_score
        if market.liquidity < floor:
            return CircuitBreakerTrigger(
                name=LOW_LIQUIDITY,
                severity=CircuitBreakerSeverity.MEDIUM,
                trigger_value=market.liquidity,
                threshold_value=floor,
                description=f"Market liquidity {market.liquidity:.0f} below {floor:.0f}",
            )
        return None
