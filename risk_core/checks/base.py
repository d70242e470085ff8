"""
Risk Core - Base Risk Check.

============================================================
PURPOSE
============================================================
Abstract base class for validation checks.

Each check covers ONE condition and is:
- Stateless (no side effects)
- Deterministic (same context = same result)
- Fail-safe (an exception = failed check)

Checks never short-circuit each other. The validator runs
all of them so the caller sees every failing condition.

============================================================
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Optional
import logging

from ..config import RiskParameters
from ..models import AccountState, MarketConditions, RiskCheckResult, TradingSignal
from ..types import RiskCheckName, SystemState


logger = logging.getLogger(__name__)


# ============================================================
# CHECK INPUT
# ============================================================

@dataclass(frozen=True)
class CheckContext:
    """
    Everything a check may look at.

    system_state is resolved by the validator before the checks
    run so that every check sees the same breaker state.
    """

    signal: TradingSignal
    account: AccountState
    market: MarketConditions
    parameters: RiskParameters
    system_state: SystemState
    now: datetime


# ============================================================
# CHECK INTERFACE
# ============================================================

@dataclass(frozen=True)
class CheckMeta:
    """
    Metadata about a check.
    """

    name: RiskCheckName
    """Check identifier."""

    description: str
    """What this check verifies."""

    failure_score: float
    """Risk score contributed on failure (unless the check computes its own)."""


class BaseRiskCheck(ABC):
    """
    Abstract base class for risk checks.

    Subclasses implement meta and _evaluate. Callers use run().
    """

    @property
    @abstractmethod
    def meta(self) -> CheckMeta:
        """Get check metadata."""
        pass

    @abstractmethod
    def _evaluate(self, context: CheckContext) -> RiskCheckResult:
        """
        Internal check logic.

        Args:
            context: Snapshots and parameters

        Returns:
            RiskCheckResult
        """
        pass

    def run(self, context: CheckContext) -> RiskCheckResult:
        """
        Execute the check.

        Returns:
            RiskCheckResult (always returns, never throws)
        """
        try:
            return self._evaluate(context)
        except Exception as e:
            logger.error(
                f"Risk check {self.meta.name.value} raised {e.__class__.__name__}: {e}",
                exc_info=True,
            )
            return self.fail(f"Internal error in check: {e.__class__.__name__}: {e}")

    def ok(self, message: str = "OK") -> RiskCheckResult:
        """Create a passing result."""
        return RiskCheckResult(name=self.meta.name, passed=True, score=0.0, message=message)

    def fail(self, message: str, score: Optional[float] = None) -> RiskCheckResult:
        """Create a failing result (default score from meta)."""
        return RiskCheckResult(
            name=self.meta.name,
            passed=False,
            score=self.meta.failure_score if score is None else score,
            message=message,
        )
