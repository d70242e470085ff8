"""
Risk Core - Position Sizing.

============================================================
PURPOSE
============================================================
Turn a risk budget into an order quantity.

============================================================
SIZING LOGIC
============================================================
risk_amount    = equity * risk_pct
per_unit_risk  = |entry - stop|
raw_quantity   = risk_amount / per_unit_risk

volatility_adj = clamp(1 / volatility_multiplier, 0.5, 2.0)
drawdown_adj   = max(0, 1 - drawdown / threshold)

final = min(raw, raw * volatility_adj) * drawdown_adj
final = floor(final / quantity_step) * quantity_step

Kelly NEVER sizes a trade on its own. A Kelly fraction can
only lower the effective risk percentage (intersection with
the fixed-risk bound), never raise it.

============================================================
DEGENERATE INPUTS
============================================================
- Stop equals entry     -> invalid, ZERO_STOP_DISTANCE
- No trade history      -> Kelly = 0 (ignored)
- avg_loss = 0          -> Kelly = win rate (then clamped)
- Drawdown >= threshold -> size 0, DRAWDOWN_LIMIT

None of these raise.

============================================================
"""

from decimal import Decimal, ROUND_DOWN
from functools import lru_cache
from typing import Dict, Optional, Sequence
import logging

from .config import RiskParameters
from .models import PositionSizeResult, TradeRecord
from .performance import calculate_kelly_inputs
from .types import InvalidSizeReason, VolatilityRegime


logger = logging.getLogger(__name__)


R_MULTIPLES = (1, 2, 3)

REGIME_VOLATILITY_MULTIPLIERS: Dict[VolatilityRegime, float] = {
    VolatilityRegime.LOW: 0.8,
    VolatilityRegime.NORMAL: 1.0,
    VolatilityRegime.HIGH: 1.3,
    VolatilityRegime.EXTREME: 1.8,
}


def volatility_multiplier_for_regime(regime: VolatilityRegime) -> float:
    """Map a volatility regime to a sizing multiplier."""
    return REGIME_VOLATILITY_MULTIPLIERS.get(regime, 1.0)


@lru_cache(maxsize=256)
def _volatility_adjustment(multiplier: float, lower: float, upper: float) -> float:
    if multiplier <= 0:
        return 1.0
    return min(max(1.0 / multiplier, lower), upper)


def round_down_to_step(quantity: float, step: float) -> float:
    """Floor a quantity to an exchange increment."""
    if quantity <= 0 or step <= 0:
        return 0.0
    q = Decimal(str(quantity))
    s = Decimal(str(step))
    steps = (q / s).to_integral_value(rounding=ROUND_DOWN)
    return float(steps * s)


class PositionSizingCalculator:
    """
    Computes order quantities.

    Stateless apart from the shared lru_cache used for
    volatility adjustments. Safe to share between threads.
    """

    def __init__(self, parameters: Optional[RiskParameters] = None):
        """
        Initialize calculator.

        Args:
            parameters: Risk parameters (defaults if None)
        """
        self._parameters = parameters or RiskParameters()

    @property
    def parameters(self) -> RiskParameters:
        return self._parameters

    # ========================================================
    # POSITION SIZE
    # ========================================================

    def calculate_position_size(
        self,
        account_equity: float,
        risk_percentage: float,
        entry_price: float,
        stop_loss_price: float,
        volatility_multiplier: float = 1.0,
        current_drawdown: float = 0.0,
        kelly_percentage: Optional[float] = None,
        take_profit_price: Optional[float] = None,
    ) -> PositionSizeResult:
        """
        Size a position from a fixed-risk budget.

        Args:
            account_equity: Total account equity
            risk_percentage: Fraction of equity to risk (0.02 = 2%)
            entry_price: Planned entry
            stop_loss_price: Planned stop
            volatility_multiplier: >1 shrinks size, <1 grows it (within band)
            current_drawdown: Account drawdown from peak
            kelly_percentage: Optional Kelly fraction to intersect with
            take_profit_price: Optional target for the R:R table

        Returns:
            PositionSizeResult (never raises)
        """
        p = self._parameters

        if account_equity <= 0:
            return PositionSizeResult.failure(InvalidSizeReason.INVALID_EQUITY, risk_percentage)
        if entry_price <= 0 or stop_loss_price <= 0:
            return PositionSizeResult.failure(InvalidSizeReason.INVALID_PRICE, risk_percentage)
        if not 0 < risk_percentage <= 1:
            return PositionSizeResult.failure(InvalidSizeReason.INVALID_RISK_PERCENTAGE, risk_percentage)

        per_unit_risk = abs(entry_price - stop_loss_price)
        if per_unit_risk == 0:
            logger.debug(f"Stop equals entry ({entry_price}), cannot size position")
            return PositionSizeResult.failure(InvalidSizeReason.ZERO_STOP_DISTANCE, risk_percentage)

        effective_risk = risk_percentage
        kelly_used = 0.0
        if p.kelly_criterion_enabled and kelly_percentage is not None and kelly_percentage > 0:
            kelly_used = kelly_percentage
            effective_risk = min(risk_percentage, kelly_percentage)

        risk_amount = account_equity * effective_risk
        raw_quantity = risk_amount / per_unit_risk

        volatility_adj = _volatility_adjustment(
            float(volatility_multiplier),
            p.min_volatility_adjustment,
            p.max_volatility_adjustment,
        )
        volatility_quantity = raw_quantity * volatility_adj

        drawdown_adj = self.drawdown_multiplier(current_drawdown, p.max_intraday_drawdown)

        unrounded = min(raw_quantity, volatility_quantity) * drawdown_adj
        quantity = round_down_to_step(unrounded, p.quantity_step)
        final_adjustment = quantity / raw_quantity if raw_quantity > 0 else 0.0

        common = dict(
            kelly_optimal_percentage=kelly_used,
            volatility_adjustment=volatility_adj,
            drawdown_adjustment=drawdown_adj,
            final_adjustment=final_adjustment,
        )

        if drawdown_adj == 0:
            logger.info(
                f"Position size forced to zero: drawdown {current_drawdown:.2%} "
                f">= threshold {p.max_intraday_drawdown:.2%}"
            )
            return PositionSizeResult.failure(InvalidSizeReason.DRAWDOWN_LIMIT, effective_risk, **common)

        if quantity < p.min_order_quantity:
            logger.info(
                f"Position size {unrounded:.8f} below exchange minimum {p.min_order_quantity}"
            )
            return PositionSizeResult.failure(
                InvalidSizeReason.BELOW_EXCHANGE_MINIMUM, effective_risk, **common
            )

        actual_risk = quantity * per_unit_risk
        expected_profits = {f"{r}R": actual_risk * r for r in R_MULTIPLES}
        risk_reward_ratios = {f"{r}R": float(r) for r in R_MULTIPLES}
        if take_profit_price is not None and take_profit_price > 0:
            risk_reward_ratios["target"] = abs(take_profit_price - entry_price) / per_unit_risk

        logger.debug(
            f"Position sized: qty={quantity} risk={actual_risk:.2f} "
            f"vol_adj={volatility_adj:.2f} dd_adj={drawdown_adj:.2f}"
        )

        return PositionSizeResult(
            quantity=quantity,
            risk_amount=actual_risk,
            risk_percentage=effective_risk,
            expected_profits=expected_profits,
            risk_reward_ratios=risk_reward_ratios,
            **common,
        )

    # ========================================================
    # KELLY CRITERION
    # ========================================================

    def calculate_kelly_optimal_size(
        self,
        win_rate: float,
        average_win: float,
        average_loss: float,
        account_equity: float,
    ) -> float:
        """
        Fractional Kelly, clamped to [min_kelly, max_kelly].

        f* = p - (1 - p) / (W / L), scaled by kelly_multiplier.
        The clamp is applied after scaling so the returned value
        always lies inside the configured bounds.

        Returns:
            Fraction of equity, or 0 with no history
        """
        p = self._parameters

        if account_equity <= 0:
            return 0.0
        if average_win <= 0 and average_loss <= 0:
            return 0.0

        win_rate = min(max(win_rate, 0.0), 1.0)

        if average_loss <= 0:
            # No losses observed: W/L is unbounded, f* tends to p
            raw = win_rate
        elif average_win <= 0:
            raw = -1.0
        else:
            raw = win_rate - (1 - win_rate) / (average_win / average_loss)

        scaled = raw * p.kelly_multiplier
        return min(max(scaled, p.min_kelly_criterion), p.max_kelly_criterion)

    def calculate_kelly_from_history(
        self,
        trades: Sequence[TradeRecord],
        account_equity: float,
    ) -> float:
        """Kelly fraction from completed trades (0 for empty history)."""
        if not trades:
            return 0.0
        win_rate, average_win, average_loss = calculate_kelly_inputs(trades)
        return self.calculate_kelly_optimal_size(win_rate, average_win, average_loss, account_equity)

    # ========================================================
    # DRAWDOWN
    # ========================================================

    @staticmethod
    def drawdown_multiplier(current_drawdown: float, max_drawdown_threshold: float) -> float:
        """max(0, 1 - drawdown / threshold); non-increasing in drawdown."""
        drawdown = max(current_drawdown, 0.0)
        if max_drawdown_threshold <= 0:
            return 1.0 if drawdown == 0 else 0.0
        return max(0.0, 1.0 - drawdown / max_drawdown_threshold)

    def adjust_for_drawdown(
        self,
        base_size: float,
        current_drawdown: float,
        max_drawdown_threshold: float,
    ) -> float:
        """
        Linearly de-risk a size as drawdown grows.

        At or beyond the threshold the size is zero.
        """
        return max(base_size, 0.0) * self.drawdown_multiplier(current_drawdown, max_drawdown_threshold)
