"""
Risk Core - Risk Validator.

============================================================
PURPOSE
============================================================
Go/no-go decision for a proposed trade.

============================================================
FLOW
============================================================
1. Resolve the system state: the tracked cooldown/halt state
   combined with a pure breaker assessment of the snapshots
2. Run EVERY check (no short-circuit)
3. Aggregate score = sum(weight * score), capped at 100
4. Valid only if every check passed

max_recommended_position_size
    = min(max_risk_per_trade * max(0.1, 1 - score / 200), 0.05)
      when valid, else 0
confidence = clamp(100 - score, 0, 100)

The validator never records anything in the cooldown tracker.
Identical snapshots and evaluation time give equal results.

============================================================
"""

from datetime import datetime
from typing import Dict, List, Optional, Sequence
import logging

from .checks import BaseRiskCheck, CheckContext, default_checks
from .circuit_breaker import CircuitBreakerEvaluator
from .clock import ClockProtocol, SystemClock, ensure_utc
from .config import RiskParameters
from .models import (
    AccountState,
    MarketConditions,
    RiskCheckResult,
    RiskValidationResult,
    TradingSignal,
)
from .types import RiskCheckName, RiskLevel, SystemState


logger = logging.getLogger(__name__)


MAX_RISK_SCORE = 100.0
MAX_RECOMMENDED_POSITION_SIZE = 0.05
MIN_SIZE_SCALE = 0.1
SIZE_SCALE_DIVISOR = 200.0

DRAWDOWN_WARNING_RATIO = 0.8
WAIT_SCORE_THRESHOLD = 70.0


class RiskValidator:
    """
    Runs all risk checks against a signal.

    Usage:
        validator = RiskValidator(parameters, circuit_breaker=evaluator)
        result = validator.validate_trade(signal, account, market)

        if result.is_valid:
            # Size and submit
            pass
    """

    def __init__(
        self,
        parameters: Optional[RiskParameters] = None,
        circuit_breaker: Optional[CircuitBreakerEvaluator] = None,
        clock: Optional[ClockProtocol] = None,
        weights: Optional[Dict[RiskCheckName, float]] = None,
        checks: Optional[Sequence[BaseRiskCheck]] = None,
    ):
        """
        Initialize validator.

        Args:
            parameters: Risk parameters (defaults if None)
            circuit_breaker: Evaluator whose cooldown state is consulted
            clock: Clock for "now" (system clock if None)
            weights: Per-check score weights (1.0 if absent)
            checks: Override the check list
        """
        self._parameters = parameters or RiskParameters()
        self._clock = clock or SystemClock()
        self._circuit_breaker = circuit_breaker or CircuitBreakerEvaluator(
            self._parameters, clock=self._clock
        )
        self._weights: Dict[RiskCheckName, float] = dict(weights or {})
        self._checks: List[BaseRiskCheck] = list(checks) if checks is not None else default_checks()

    @property
    def parameters(self) -> RiskParameters:
        return self._parameters

    def weight_for(self, name: RiskCheckName) -> float:
        return self._weights.get(name, 1.0)

    def resolve_system_state(
        self,
        account: AccountState,
        market: MarketConditions,
        now: datetime,
    ) -> SystemState:
        """Tracked state combined with the snapshot's own breaker state."""
        tracked = self._circuit_breaker.effective_state(now)
        current = self._circuit_breaker.assess(account, market, now).system_state
        return max(tracked, current)

    def validate_trade(
        self,
        signal: TradingSignal,
        account: AccountState,
        market: MarketConditions,
        now: Optional[datetime] = None,
    ) -> RiskValidationResult:
        """
        Validate a proposed trade.

        Args:
            signal: Trade proposal
            account: Account snapshot
            market: Market snapshot for the signal's symbol
            now: Evaluation time (clock if None)

        Returns:
            RiskValidationResult listing every check
        """
        now = ensure_utc(now) if now is not None else self._clock.now()
        p = self._parameters

        if not p.risk_management_enabled:
            logger.debug(f"Risk management disabled, {signal.signal_id} passes unchecked")
            return RiskValidationResult(
                is_valid=True,
                risk_score=0.0,
                risk_level=RiskLevel.LOW,
                max_recommended_position_size=min(p.max_risk_per_trade, MAX_RECOMMENDED_POSITION_SIZE),
                confidence=100.0,
                validated_at=now,
            )

        context = CheckContext(
            signal=signal,
            account=account,
            market=market,
            parameters=p,
            system_state=self.resolve_system_state(account, market, now),
            now=now,
        )

        results: List[RiskCheckResult] = [check.run(context) for check in self._checks]

        raw_score = sum(self.weight_for(r.name) * r.score for r in results)
        risk_score = min(raw_score, MAX_RISK_SCORE)
        risk_level = RiskLevel.from_score(risk_score)
        failures = tuple(r.message for r in results if not r.passed)
        is_valid = not failures

        if is_valid:
            scale = max(MIN_SIZE_SCALE, 1 - risk_score / SIZE_SCALE_DIVISOR)
            max_size = min(p.max_risk_per_trade * scale, MAX_RECOMMENDED_POSITION_SIZE)
        else:
            max_size = 0.0

        confidence = min(max(MAX_RISK_SCORE - risk_score, 0.0), MAX_RISK_SCORE)

        result = RiskValidationResult(
            is_valid=is_valid,
            risk_score=risk_score,
            risk_level=risk_level,
            checks=tuple(results),
            failures=failures,
            recommended_actions=tuple(self._recommend_actions(account, risk_score, risk_level)),
            max_recommended_position_size=max_size,
            confidence=confidence,
            validated_at=now,
        )

        if is_valid:
            logger.info(
                f"Signal {signal.signal_id} ({signal.symbol}) validated: "
                f"score={risk_score:.1f} level={risk_level.name}"
            )
        else:
            logger.warning(
                f"Signal {signal.signal_id} ({signal.symbol}) rejected: "
                f"{[r.name.value for r in results if not r.passed]}"
            )

        return result

    def _recommend_actions(
        self,
        account: AccountState,
        risk_score: float,
        risk_level: RiskLevel,
    ) -> List[str]:
        actions = []
        if risk_level >= RiskLevel.HIGH:
            actions.append("Reduce position size")
        if account.current_drawdown > self._parameters.max_intraday_drawdown * DRAWDOWN_WARNING_RATIO:
            actions.append("Monitor drawdown closely")
        if risk_score > WAIT_SCORE_THRESHOLD:
            actions.append("Wait for better market conditions")
        return actions
