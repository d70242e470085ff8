"""
Risk Core - Performance Statistics.

============================================================
PURPOSE
============================================================
Statistics over completed trades. Feeds Kelly sizing and
operator reporting.

============================================================
FALLBACKS
============================================================
- No trades                     -> all zeros
- Fewer than 2 trades           -> Sharpe = Sortino = 0
- No losing trades, some profit -> profit factor = 999
- No negative returns           -> Sortino = 999

999 is a compatibility sentinel for "unbounded", not a
measured value. Check total_trades / losing_trades before
treating it as a number.

============================================================
"""

from math import sqrt
from typing import List, Sequence, Tuple

from .models import PerformanceMetrics, TradeRecord


UNBOUNDED_RATIO_SENTINEL = 999.0
DEFAULT_STARTING_EQUITY = 10000.0


def calculate_kelly_inputs(trades: Sequence[TradeRecord]) -> Tuple[float, float, float]:
    """
    Extract Kelly inputs from a trade history.

    Returns:
        (win_rate 0-1, average_win, average_loss as a positive number)
    """
    if not trades:
        return 0.0, 0.0, 0.0

    wins = [t.pnl for t in trades if t.is_winner]
    losses = [abs(t.pnl) for t in trades if not t.is_winner]

    win_rate = len(wins) / len(trades)
    average_win = sum(wins) / len(wins) if wins else 0.0
    average_loss = sum(losses) / len(losses) if losses else 0.0

    return win_rate, average_win, average_loss


def calculate_sharpe_ratio(returns: Sequence[float]) -> float:
    """Mean / sample standard deviation of per-trade returns."""
    if len(returns) < 2:
        return 0.0

    mean = sum(returns) / len(returns)
    variance = sum((r - mean) ** 2 for r in returns) / (len(returns) - 1)
    std_dev = sqrt(variance)

    return mean / std_dev if std_dev > 0 else 0.0


def calculate_sortino_ratio(returns: Sequence[float]) -> float:
    """Mean / downside deviation of per-trade returns."""
    if len(returns) < 2:
        return 0.0

    mean = sum(returns) / len(returns)
    negative = [r for r in returns if r < 0]
    if not negative:
        return UNBOUNDED_RATIO_SENTINEL

    downside = sqrt(sum(r ** 2 for r in negative) / len(negative))
    return mean / downside if downside > 0 else 0.0


def build_equity_curve(
    trades: Sequence[TradeRecord],
    starting_equity: float = DEFAULT_STARTING_EQUITY,
) -> List[float]:
    """Equity after each trade, ordered by exit time."""
    equity = [starting_equity]
    current = starting_equity
    for trade in sorted(trades, key=lambda t: t.exit_time):
        current += trade.pnl
        equity.append(current)
    return equity


def calculate_max_drawdown(equity_curve: Sequence[float]) -> float:
    """Largest peak-to-trough decline as a fraction of the peak."""
    if not equity_curve:
        return 0.0

    peak = equity_curve[0]
    max_drawdown = 0.0
    for value in equity_curve:
        if value > peak:
            peak = value
        elif peak > 0:
            max_drawdown = max(max_drawdown, (peak - value) / peak)
    return max_drawdown


def calculate_performance_metrics(
    trades: Sequence[TradeRecord],
    starting_equity: float = DEFAULT_STARTING_EQUITY,
) -> PerformanceMetrics:
    """
    Compute performance metrics for a trade history.

    Args:
        trades: Completed trades (any order)
        starting_equity: Equity before the first trade

    Returns:
        PerformanceMetrics (all zeros for an empty history)
    """
    if not trades:
        return PerformanceMetrics()

    win_rate, average_win, average_loss = calculate_kelly_inputs(trades)

    winners = [t for t in trades if t.is_winner]
    losers = [t for t in trades if not t.is_winner]

    total_return = sum(t.pnl for t in trades)
    gross_profit = sum(t.pnl for t in winners)
    gross_loss = abs(sum(t.pnl for t in losers))

    if gross_loss > 0:
        profit_factor = gross_profit / gross_loss
    elif gross_profit > 0:
        profit_factor = UNBOUNDED_RATIO_SENTINEL
    else:
        profit_factor = 1.0

    if average_loss > 0:
        win_loss_ratio = average_win / average_loss
    elif average_win > 0:
        win_loss_ratio = UNBOUNDED_RATIO_SENTINEL
    else:
        win_loss_ratio = 1.0

    returns = [t.pnl_percentage for t in trades]

    return PerformanceMetrics(
        total_trades=len(trades),
        winning_trades=len(winners),
        losing_trades=len(losers),
        total_return=total_return,
        total_return_percentage=total_return / starting_equity if starting_equity > 0 else 0.0,
        win_rate=win_rate,
        average_win=average_win,
        average_loss=average_loss,
        average_win_loss_ratio=win_loss_ratio,
        profit_factor=profit_factor,
        sharpe_ratio=calculate_sharpe_ratio(returns),
        sortino_ratio=calculate_sortino_ratio(returns),
        max_drawdown=calculate_max_drawdown(build_equity_curve(trades, starting_equity)),
    )
