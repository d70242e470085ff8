"""
Risk Core - Circuit Breaker Check.

Rejects new entries unless the effective system state is
NORMAL, or RESTRICTED with allow_trading_when_restricted.
EMERGENCY and HALTED always reject.
"""

from ..models import RiskCheckResult
from ..types import RiskCheckName, SystemState
from .base import BaseRiskCheck, CheckContext, CheckMeta


class CircuitBreakerCheck(BaseRiskCheck):
    """Gate on the circuit breaker state."""

    _META = CheckMeta(
        name=RiskCheckName.CIRCUIT_BREAKER,
        description="Circuit breakers allow new entries",
        failure_score=40.0,
    )

    @property
    def meta(self) -> CheckMeta:
        return self._META

    def _evaluate(self, context: CheckContext) -> RiskCheckResult:
        state = context.system_state

        if state.allows_new_trades():
            return self.ok()

        if state == SystemState.RESTRICTED and context.parameters.allow_trading_when_restricted:
            return self.ok("RESTRICTED, trading permitted by configuration")

        return self.fail(f"Circuit breakers active: system state {state.name}")
