"""
Risk Core - Position Closure.

============================================================
PURPOSE
============================================================
Decide whether an open position must be closed or reduced.

============================================================
PRIORITY (first match wins)
============================================================
1. Stop loss hit                      full close, HIGH
2. Take profit hit                    full close, NORMAL
3. Drawdown > max_intraday_drawdown   full close, EMERGENCY
4. Circuit breaker EMERGENCY          full close, EMERGENCY
5. Volatility spike                   partial close, HIGH
   (volatility > multiple * historical ATR, or EXTREME regime)
6. Position age > max_position_age    full close, NORMAL

Otherwise the position stays open (LOW urgency) with any
risk factors worth watching.

============================================================
"""

from datetime import datetime
from typing import List, Optional
import logging

from .circuit_breaker import CircuitBreakerEvaluator
from .clock import ClockProtocol, SystemClock, ensure_utc
from .config import RiskParameters
from .models import AccountState, MarketConditions, Position, PositionClosureResult
from .types import ClosureReason, ClosureUrgency, SystemState, VolatilityRegime


logger = logging.getLogger(__name__)


DRAWDOWN_WARNING_RATIO = 0.9


class PositionClosureEvaluator:
    """
    Evaluates open positions for closure.

    Usage:
        evaluator = PositionClosureEvaluator(parameters, circuit_breaker=breakers)
        result = evaluator.should_close_position(position, account, market)

        if result.should_close:
            # Hand to the execution layer
            pass
    """

    def __init__(
        self,
        parameters: Optional[RiskParameters] = None,
        circuit_breaker: Optional[CircuitBreakerEvaluator] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        self._parameters = parameters or RiskParameters()
        self._clock = clock or SystemClock()
        self._circuit_breaker = circuit_breaker or CircuitBreakerEvaluator(
            self._parameters, clock=self._clock
        )

    def should_close_position(
        self,
        position: Position,
        account: AccountState,
        market: MarketConditions,
        now: Optional[datetime] = None,
    ) -> PositionClosureResult:
        """
        Evaluate one position.

        Args:
            position: Open position
            account: Account snapshot
            market: Market snapshot for the position's symbol
            now: Evaluation time (clock if None)

        Returns:
            PositionClosureResult
        """
        now = ensure_utc(now) if now is not None else self._clock.now()
        p = self._parameters
        price = market.current_price
        risk_factors: List[str] = []

        stop = self._effective_stop(position)
        if stop is not None:
            hit = price <= stop if position.is_long else price >= stop
            if hit:
                return self._close(
                    position,
                    ClosureReason.STOP_LOSS_HIT,
                    f"Stop loss hit at {stop}",
                    urgency=ClosureUrgency.HIGH,
                )

        target = self._take_profit(position)
        if target is not None:
            hit = price >= target if position.is_long else price <= target
            if hit:
                return self._close(
                    position,
                    ClosureReason.TAKE_PROFIT_HIT,
                    f"Take profit hit at {target}",
                    urgency=ClosureUrgency.NORMAL,
                )

        drawdown = account.current_drawdown
        if drawdown > p.max_intraday_drawdown * DRAWDOWN_WARNING_RATIO:
            risk_factors.append(f"Account drawdown approaching limit: {drawdown:.2%}")
            if drawdown > p.max_intraday_drawdown:
                return self._close(
                    position,
                    ClosureReason.DRAWDOWN_PROTECTION,
                    f"Maximum drawdown exceeded ({drawdown:.2%})",
                    urgency=ClosureUrgency.EMERGENCY,
                    risk_factors=risk_factors,
                )

        state = max(
            self._circuit_breaker.effective_state(now),
            self._circuit_breaker.assess(account, market, now).system_state,
        )
        if state == SystemState.EMERGENCY:
            return self._close(
                position,
                ClosureReason.EMERGENCY_EXIT,
                "Circuit breaker emergency - exit position",
                urgency=ClosureUrgency.EMERGENCY,
                risk_factors=risk_factors,
            )

        spike = self._volatility_spike(market)
        if spike is not None:
            risk_factors.append(spike)
            return self._close(
                position,
                ClosureReason.VOLATILITY_SPIKE,
                f"{spike} - protective partial closure",
                percentage=p.volatility_spike_close_percentage,
                urgency=ClosureUrgency.HIGH,
                risk_factors=risk_factors,
            )

        age_hours = (now - ensure_utc(position.opened_at)).total_seconds() / 3600
        if age_hours > p.max_position_age_hours:
            risk_factors.append(f"Position age: {age_hours / 24:.1f} days")
            return self._close(
                position,
                ClosureReason.TIME_STOP,
                "Position held too long",
                urgency=ClosureUrgency.NORMAL,
                risk_factors=risk_factors,
            )

        logger.debug(f"Position {position.position_id} stays open ({len(risk_factors)} risk factors)")
        return PositionClosureResult.keep_open("All risk checks passed", tuple(risk_factors))

    # ========================================================
    # HELPERS
    # ========================================================

    @staticmethod
    def _effective_stop(position: Position) -> Optional[float]:
        """Tightest of the position stop and its stop structure."""
        stops = []
        if position.stop_loss is not None:
            stops.append(position.stop_loss)
        if position.stop_levels is not None:
            stops.append(position.stop_levels.effective_stop(position.is_long))
        if not stops:
            return None
        return max(stops) if position.is_long else min(stops)

    @staticmethod
    def _take_profit(position: Position) -> Optional[float]:
        if position.take_profit is not None:
            return position.take_profit
        if position.stop_levels is not None:
            return position.stop_levels.take_profit
        return None

    def _volatility_spike(self, market: MarketConditions) -> Optional[str]:
        if market.volatility_regime == VolatilityRegime.EXTREME:
            return "Extreme market volatility detected"

        atr = market.historical_atr
        multiple = self._parameters.volatility_spike_multiple
        if atr is not None and atr > 0 and market.volatility > multiple * atr:
            return f"Volatility {market.volatility:.2%} above {multiple:.1f}x ATR {atr:.2%}"
        return None

    def _close(
        self,
        position: Position,
        reason: ClosureReason,
        description: str,
        percentage: float = 100.0,
        urgency: ClosureUrgency = ClosureUrgency.NORMAL,
        risk_factors: Optional[List[str]] = None,
    ) -> PositionClosureResult:
        logger.warning(
            f"Close {percentage:.0f}% of {position.position_id} ({position.symbol}): "
            f"{reason.value} urgency={urgency.name}"
        )
        return PositionClosureResult.close(
            reason,
            description,
            percentage=percentage,
            urgency=urgency,
            risk_factors=tuple(risk_factors or ()),
        )
