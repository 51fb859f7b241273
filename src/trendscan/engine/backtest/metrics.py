"""Aggregate statistics over simulated trades."""

from typing import Optional, Sequence

import numpy as np
import pandas as pd

from trendscan.core.models import BacktestResult, BacktestSummary, ExitReason, PerformanceMetrics

# Profit factor reported when there are winning trades and no losing ones
PROFIT_FACTOR_CAP = 999.0


def sanitize_float(value: float, default: float = 0.0) -> float:
    """Convert NaN, inf, or invalid float values to a safe default."""
    if pd.isna(value) or np.isinf(value):
        return default
    return float(value)


def _chronological(results: Sequence[BacktestResult]) -> list[BacktestResult]:
    """Stable sort by entry date, then entry index; undated results keep input order first."""
    def key(r: BacktestResult) -> tuple[float, int]:
        date = r.entry_date.timestamp() if r.entry_date is not None else float("-inf")
        return date, r.entry_index if r.entry_index is not None else -1

    return sorted(results, key=key)


def _streaks(results: Sequence[BacktestResult]) -> tuple[int, int]:
    """Longest runs of consecutive wins and losses."""
    max_win = max_loss = win = loss = 0
    for r in results:
        if r.successful:
            win += 1
            loss = 0
        else:
            loss += 1
            win = 0
        max_win = max(max_win, win)
        max_loss = max(max_loss, loss)
    return max_win, max_loss


def summarize_results(
    results: Sequence[BacktestResult],
    timeframe: str = "all",
    pattern_type: Optional[str] = None,
) -> BacktestSummary:
    """
    Summarize backtest results, optionally filtered.

    Args:
        results: Simulated trades
        timeframe: Keep only this timeframe; "all" keeps every result
        pattern_type: Keep only this pattern type when given

    Returns:
        BacktestSummary; all zeros for an empty selection
    """
    selected = [
        r for r in results
        if (timeframe == "all" or r.timeframe == timeframe)
        and (pattern_type is None or r.pattern_type == pattern_type)
    ]
    if not selected:
        return BacktestSummary()

    total = len(selected)
    pnl = np.array([r.profit_loss_percent for r in selected], dtype=float)
    won = np.array([r.successful for r in selected], dtype=bool)
    successful = int(won.sum())

    avg_win = sanitize_float(pnl[won].mean()) if won.any() else 0.0
    avg_loss = sanitize_float(pnl[~won].mean()) if (~won).any() else 0.0
    risk_reward = abs(avg_win / avg_loss) if avg_loss != 0 else 0.0

    max_win_streak, max_loss_streak = _streaks(_chronological(selected))
    deviation = sanitize_float(np.std(pnl))

    return BacktestSummary(
        total_patterns=total,
        successful_patterns=successful,
        failed_patterns=total - successful,
        success_rate=successful / total * 100,
        avg_profit_loss_percent=sanitize_float(pnl.mean()),
        avg_win=avg_win,
        avg_loss=avg_loss,
        risk_reward_ratio=sanitize_float(risk_reward),
        max_profit=max(float(pnl.max()), 0.0),
        max_loss=min(float(pnl.min()), 0.0),
        max_win_streak=max_win_streak,
        max_loss_streak=max_loss_streak,
        consistency_score=100 * (1 - min(deviation, 20.0) / 20.0),
        avg_candles_to_breakout=float(np.mean([r.candles_to_breakout for r in selected])),
        avg_confidence_score=float(np.mean([r.confidence_score for r in selected])),
    )


def profit_factor(results: Sequence[BacktestResult]) -> float:
    """Gross percentage gains over gross percentage losses."""
    gains = sum(r.profit_loss_percent for r in results if r.profit_loss_percent > 0)
    losses = abs(sum(r.profit_loss_percent for r in results if r.profit_loss_percent < 0))
    if losses > 0:
        return sanitize_float(gains / losses)
    return PROFIT_FACTOR_CAP if gains > 0 else 0.0


def equity_drawdown(results: Sequence[BacktestResult]) -> float:
    """Largest peak-to-trough decline, in percent, of trades compounded in order."""
    if not results:
        return 0.0
    returns = pd.Series([r.profit_loss_percent / 100 for r in _chronological(results)])
    equity = (1 + returns).cumprod()
    drawdown = equity / equity.cummax().clip(lower=1.0) - 1
    return abs(sanitize_float(drawdown.min() * 100))


def compute_performance_metrics(results: Sequence[BacktestResult]) -> PerformanceMetrics:
    """
    Trade-level performance with per-pattern and per-timeframe breakdowns.

    Expectancy is the average percentage return per trade. Holding period
    averages only trades that actually ran, excluding insufficient data.
    """
    summary = summarize_results(results)
    if not results:
        return PerformanceMetrics(summary=summary)

    total = len(results)
    reasons = [r.exit_reason for r in results]
    traded = [r.candles_to_breakout for r in results if r.exit_reason != ExitReason.INSUFFICIENT_DATA]

    win_rate = summary.successful_patterns / total
    expectancy = win_rate * summary.avg_win + (1 - win_rate) * summary.avg_loss

    return PerformanceMetrics(
        summary=summary,
        profit_factor=profit_factor(results),
        expectancy=sanitize_float(expectancy),
        max_drawdown_percent=equity_drawdown(results),
        avg_holding_period=float(np.mean(traded)) if traded else 0.0,
        target_hit_rate=reasons.count(ExitReason.TARGET) / total,
        stop_hit_rate=reasons.count(ExitReason.STOP_LOSS) / total,
        timeout_rate=reasons.count(ExitReason.TIMEOUT) / total,
        by_pattern={
            pattern: summarize_results(results, pattern_type=pattern)
            for pattern in sorted({r.pattern_type for r in results})
        },
        by_timeframe={
            timeframe: summarize_results(results, timeframe=timeframe)
            for timeframe in sorted({r.timeframe for r in results})
        },
    )
