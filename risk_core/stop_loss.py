"""
Risk Core - Stop Loss Management.

============================================================
PURPOSE
============================================================
Place initial protective levels for a new trade and trail
stops on open positions.

============================================================
LEVELS (long shown, short mirrored)
============================================================
stop        = entry * (1 - initial_stop_loss_percentage)
              unless the signal supplies a stop below entry
take_profit = entry + distance * take_profit_reward_multiple
              unless the signal supplies a target above entry
breakeven   = entry * 1.01
emergency   = entry - 2 * distance
targets     = 1R close 25%, 2R close 50%, 3R close 25%

============================================================
TRAILING
============================================================
- Activates once unrealized profit >= trailing_stop_activation
- Long:  stop = max(existing, price * (1 - distance))
- Short: stop = min(existing, price * (1 + distance))
- HIGH/EXTREME regimes widen the distance by
  volatility_adjustment_factor
- The stop NEVER moves against the position

Positions are never mutated. An unchanged position is
returned as the same object.

============================================================
"""

from dataclasses import replace
from typing import Optional, Tuple
import logging

from .config import RiskParameters
from .models import MarketConditions, Position, ProfitTarget, StopLossLevels, TradingSignal
from .types import VolatilityRegime


logger = logging.getLogger(__name__)


BREAKEVEN_OFFSET = 0.01
EMERGENCY_STOP_MULTIPLE = 2.0

# (R multiple, percentage to close)
PROFIT_TARGET_PLAN: Tuple[Tuple[float, float], ...] = (
    (1.0, 25.0),
    (2.0, 50.0),
    (3.0, 25.0),
)


class StopLossManager:
    """
    Computes stop structures and trails stops.

    Stateless. Safe to share between threads.
    """

    def __init__(self, parameters: Optional[RiskParameters] = None):
        self._parameters = parameters or RiskParameters()

    @property
    def parameters(self) -> RiskParameters:
        return self._parameters

    # ========================================================
    # INITIAL LEVELS
    # ========================================================

    def calculate_stop_loss_levels(
        self,
        entry_price: float,
        signal: TradingSignal,
        risk_parameters: Optional[RiskParameters] = None,
    ) -> StopLossLevels:
        """
        Compute the stop structure for a new trade.

        Args:
            entry_price: Planned entry
            signal: Signal being traded (side, optional stop/target)
            risk_parameters: Override parameters for this call

        Returns:
            StopLossLevels
        """
        p = risk_parameters or self._parameters
        is_long = signal.is_long
        direction = 1.0 if is_long else -1.0

        default_stop = entry_price * (1 - direction * p.initial_stop_loss_percentage)
        stop_loss = default_stop
        method = "PERCENTAGE"
        if signal.stop_loss is not None and self._is_protective(signal.stop_loss, entry_price, is_long):
            stop_loss = signal.stop_loss
            method = "SIGNAL"

        distance = abs(entry_price - stop_loss)

        take_profit = entry_price + direction * distance * p.take_profit_reward_multiple
        if signal.take_profit is not None and self._is_favourable(signal.take_profit, entry_price, is_long):
            take_profit = signal.take_profit

        profit_targets = tuple(
            ProfitTarget(
                target_price=entry_price + direction * distance * r_multiple,
                percentage_to_close=percentage,
                risk_reward_ratio=r_multiple,
                description=f"{r_multiple:.0f}R target",
            )
            for r_multiple, percentage in PROFIT_TARGET_PLAN
        )

        levels = StopLossLevels(
            initial_stop_loss=stop_loss,
            take_profit=take_profit,
            breakeven_level=entry_price * (1 + direction * BREAKEVEN_OFFSET),
            emergency_stop=entry_price - direction * distance * EMERGENCY_STOP_MULTIPLE,
            trailing_stop=None,
            profit_targets=profit_targets,
            trailing_enabled=p.trailing_stops_enabled,
            trailing_distance=p.trailing_stop_distance,
            trailing_activation=p.trailing_stop_activation,
            risk_per_unit=distance,
            max_acceptable_risk=p.max_risk_per_trade,
            method=method,
        )

        logger.debug(
            f"Stop levels for {signal.symbol} {signal.side.value}: entry={entry_price} "
            f"stop={stop_loss} tp={take_profit} method={method}"
        )
        return levels

    @staticmethod
    def _is_protective(stop: float, entry_price: float, is_long: bool) -> bool:
        if stop <= 0:
            return False
        return stop < entry_price if is_long else stop > entry_price

    @staticmethod
    def _is_favourable(target: float, entry_price: float, is_long: bool) -> bool:
        if target <= 0:
            return False
        return target > entry_price if is_long else target < entry_price

    # ========================================================
    # TRAILING
    # ========================================================

    def trailing_distance_for(self, market: Optional[MarketConditions]) -> float:
        """Trailing distance, widened in volatile regimes."""
        p = self._parameters
        if market is not None and market.volatility_regime in (
            VolatilityRegime.HIGH,
            VolatilityRegime.EXTREME,
        ):
            return p.trailing_stop_distance * p.volatility_adjustment_factor
        return p.trailing_stop_distance

    def update_trailing_stops(
        self,
        position: Position,
        current_price: float,
        market: Optional[MarketConditions] = None,
    ) -> Position:
        """
        Trail the stop of an open position.

        Args:
            position: Open position
            current_price: Latest price
            market: Optional market snapshot (regime widens distance)

        Returns:
            Updated copy, or the same object when nothing moved
        """
        p = self._parameters
        if not p.trailing_stops_enabled or current_price <= 0:
            return position

        if position.profit_percentage(current_price) < p.trailing_stop_activation:
            return position

        distance = self.trailing_distance_for(market)
        is_long = position.is_long

        if is_long:
            candidate = current_price * (1 - distance)
            existing = position.stop_loss
            new_stop = candidate if existing is None else max(existing, candidate)
        else:
            candidate = current_price * (1 + distance)
            existing = position.stop_loss
            new_stop = candidate if existing is None else min(existing, candidate)

        if existing is not None and new_stop == existing:
            if position.trailing_active:
                return position
            return replace(position, trailing_active=True)

        stop_levels = position.stop_levels
        if stop_levels is not None:
            stop_levels = stop_levels.update_trailing_stop(
                current_price, position.entry_price, is_long, distance=distance
            )

        logger.info(
            f"Trailing stop {position.position_id} ({position.symbol}): "
            f"{existing} -> {new_stop:.8f} at price {current_price}"
        )

        return replace(
            position,
            stop_loss=new_stop,
            trailing_active=True,
            stop_levels=stop_levels,
        )
