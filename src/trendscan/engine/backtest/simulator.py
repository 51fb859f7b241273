"""
Forward replay of pattern signals.

Each signal is walked candle by candle until its target or stop is hit or
the holding period runs out. The target is checked before the stop on
every candle.
"""

from datetime import datetime
from typing import Iterable, Optional

import pandas as pd

from trendscan.config.logging import get_logger
from trendscan.core.config import BacktestConfig
from trendscan.core.models import (
    BacktestResult,
    Direction,
    ExitReason,
    PatternSignal,
    PeriodBreakout,
)
from trendscan.features.indicators import atr_stop_loss, atr_target_price

logger = get_logger("engine.backtest.simulator")

__all__ = [
    "simulate_trade",
    "run_backtest",
    "calculate_candles_to_target",
    "analyze_breakout_within_period",
    "atr_target_price",
    "atr_stop_loss",
]


def _timestamp(index: pd.Index, position: int) -> Optional[datetime]:
    value = index[position]
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    if isinstance(value, datetime):
        return value
    return None


def _effective_stop(signal: PatternSignal, bullish: bool, default_percent: float) -> float:
    """Signal stop, or a percentage stop when it is missing or on the wrong side."""
    stop = signal.stop_loss
    entry = signal.entry_price
    if bullish and 0 < stop < entry:
        return stop
    if not bullish and stop > entry:
        return stop
    return entry * (1 - default_percent) if bullish else entry * (1 + default_percent)


def _insufficient(signal: PatternSignal, stop: float, entry_index: Optional[int]) -> BacktestResult:
    return BacktestResult(
        symbol=signal.symbol,
        timeframe=signal.timeframe,
        pattern_type=signal.pattern_type,
        direction=signal.direction,
        entry_price=signal.entry_price,
        target_price=signal.target_price,
        stop_loss=stop,
        exit_price=signal.entry_price,
        entry_index=entry_index,
        entry_date=signal.entry_date,
        successful=False,
        exit_reason=ExitReason.INSUFFICIENT_DATA,
        confidence_score=signal.confidence_score,
    )


def simulate_trade(
    signal: PatternSignal,
    candles: pd.DataFrame,
    entry_index: Optional[int] = None,
    config: BacktestConfig = BacktestConfig(),
) -> BacktestResult:
    """
    Replay a signal over forward candles.

    Args:
        signal: Signal with entry, target and stop
        candles: Ascending OHLCV DataFrame. When ``entry_index`` is None
            every row is a forward candle; otherwise forward candles start
            at ``entry_index + 1``.
        entry_index: Row of the entry candle within ``candles``
        config: BacktestConfig

    Returns:
        BacktestResult. A trade left unresolved with fewer than
        ``min_forward_candles`` forward candles (or none at all) is reported
        as insufficient data with zero metrics rather than raising.
    """
    bullish = signal.direction != Direction.BEARISH
    entry = signal.entry_price
    target = signal.target_price
    stop = _effective_stop(signal, bullish, config.default_stop_percent)

    forward = candles if entry_index is None else candles.iloc[entry_index + 1:]
    offset = 0 if entry_index is None else entry_index + 1

    if forward.empty or entry <= 0:
        logger.debug("No forward candles for %s %s", signal.symbol, signal.pattern_type)
        return _insufficient(signal, stop, entry_index)

    high = forward["high"].to_numpy(dtype=float)
    low = forward["low"].to_numpy(dtype=float)
    close = forward["close"].to_numpy(dtype=float)
    limit = min(len(forward), config.max_holding_period)

    max_drawdown = 0.0
    exit_price: Optional[float] = None
    exit_reason = ExitReason.TIMEOUT
    consumed = limit

    for i in range(limit):
        adverse = (entry - low[i]) / entry * 100 if bullish else (high[i] - entry) / entry * 100
        max_drawdown = max(max_drawdown, adverse)

        if (bullish and high[i] >= target) or (not bullish and low[i] <= target):
            exit_price, exit_reason, consumed = target, ExitReason.TARGET, i + 1
            break
        if (bullish and low[i] <= stop) or (not bullish and high[i] >= stop):
            exit_price, exit_reason, consumed = stop, ExitReason.STOP_LOSS, i + 1
            break

    if exit_price is None:
        if len(forward) < config.min_forward_candles:
            logger.debug(
                "Only %d forward candles for %s %s, need %d",
                len(forward), signal.symbol, signal.pattern_type, config.min_forward_candles,
            )
            return _insufficient(signal, stop, entry_index)
        exit_price = close[consumed - 1]

    if exit_reason == ExitReason.TARGET:
        successful = True
    elif exit_reason == ExitReason.STOP_LOSS:
        successful = False
    else:
        successful = exit_price > entry if bullish else exit_price < entry

    profit_loss = exit_price - entry if bullish else entry - exit_price
    risk = abs(entry - stop)
    reward = abs(target - entry)

    return BacktestResult(
        symbol=signal.symbol,
        timeframe=signal.timeframe,
        pattern_type=signal.pattern_type,
        direction=signal.direction,
        entry_price=entry,
        target_price=target,
        stop_loss=stop,
        exit_price=float(exit_price),
        entry_index=entry_index,
        exit_index=offset + consumed - 1,
        entry_date=signal.entry_date,
        exit_date=_timestamp(forward.index, consumed - 1),
        candles_to_breakout=consumed,
        successful=bool(successful),
        profit_loss=float(profit_loss),
        profit_loss_percent=float(profit_loss / entry * 100),
        max_drawdown_percent=float(max_drawdown),
        risk_reward=reward / risk if risk > 0 else 0.0,
        exit_reason=exit_reason,
        confidence_score=signal.confidence_score,
    )


def run_backtest(
    signals: Iterable[PatternSignal],
    candles: pd.DataFrame,
    config: BacktestConfig = BacktestConfig(),
) -> list[BacktestResult]:
    """
    Simulate every signal against the same candle series.

    Signals carry their own ``entry_index``; a signal without one is
    replayed over the whole series as forward candles.
    """
    results = [simulate_trade(signal, candles, signal.entry_index, config) for signal in signals]
    if results:
        wins = sum(r.successful for r in results)
        logger.debug("Simulated %d signals, %d successful", len(results), wins)
    return results


# =============================================================================
# TARGET ANALYSIS
# =============================================================================


def calculate_candles_to_target(candles: pd.DataFrame, target_price: float, bullish: bool = True) -> int:
    """Forward candles until the target is reached, or all of them if it never is."""
    prices = candles["high"] if bullish else candles["low"]
    reached = prices >= target_price if bullish else prices <= target_price
    hits = reached.to_numpy().nonzero()[0]
    return int(hits[0]) + 1 if len(hits) else len(candles)


def analyze_breakout_within_period(
    candles: pd.DataFrame,
    target_price: float,
    bullish: bool = True,
    max_days: int = 20,
) -> PeriodBreakout:
    """
    Check whether the target is reached within ``max_days`` forward candles.

    The percent move is measured from the first forward close to the
    extreme of the breakout candle.
    """
    days = min(max_days, len(candles))
    if days == 0:
        return PeriodBreakout(days_to_breakout=max_days)

    window = candles.iloc[:days]
    first_close = float(window["close"].iloc[0])

    for i in range(days):
        if bullish and window["high"].iloc[i] >= target_price:
            price = float(window["high"].iloc[i])
            move = (price - first_close) / first_close * 100 if first_close else 0.0
            return PeriodBreakout(occurred=True, days_to_breakout=i + 1, price_at_breakout=price, percent_move=move)
        if not bullish and window["low"].iloc[i] <= target_price:
            price = float(window["low"].iloc[i])
            move = (first_close - price) / first_close * 100 if first_close else 0.0
            return PeriodBreakout(occurred=True, days_to_breakout=i + 1, price_at_breakout=price, percent_move=move)

    return PeriodBreakout(days_to_breakout=max_days)
