"""
Series scanning: detection, validation and backtest for one or many series.

``scan_series`` runs the full pipeline over a single symbol/timeframe.
``scan_many`` fans independent series out over a bounded worker pool.
"""

import os
from concurrent.futures import ProcessPoolExecutor, ThreadPoolExecutor, as_completed
from typing import Optional, Sequence

import pandas as pd
from pydantic import BaseModel, ConfigDict, Field

from trendscan.config.logging import get_logger
from trendscan.core.config import AnalysisConfig
from trendscan.core.models import (
    BacktestResult,
    BacktestSummary,
    BreakoutValidation,
    Channel,
    ChannelBreakout,
    PatternEvent,
    PatternSignal,
    Trendline,
)
from trendscan.engine.backtest.metrics import summarize_results
from trendscan.engine.backtest.simulator import run_backtest
from trendscan.features.breakout import validate_breakout
from trendscan.features.candles import CandleInput, normalize_candles
from trendscan.features.channels import classify_channel, detect_channel_breakout
from trendscan.features.pattern_validation import build_pattern_signal, validate_pattern
from trendscan.features.patterns import detect_patterns
from trendscan.features.trendlines import check_breakthrough, detect_trendlines

logger = get_logger("engine.scanner")


class ScanRequest(BaseModel):
    """One symbol/timeframe series to scan."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    symbol: str
    timeframe: str
    candles: pd.DataFrame
    higher_timeframe: Optional[pd.DataFrame] = None
    daily: Optional[pd.DataFrame] = None


class TrendlineBreakout(BaseModel):
    """Trendline broken on the latest candle with its validation."""
    trendline: Trendline
    validation: BreakoutValidation


class ScanResult(BaseModel):
    """Everything found for one series."""
    symbol: str
    timeframe: str
    trendlines: list[Trendline] = Field(default_factory=list)
    channel: Channel = Field(default_factory=Channel)
    channel_breakout: ChannelBreakout = Field(default_factory=ChannelBreakout)
    breakouts: list[TrendlineBreakout] = Field(default_factory=list)
    patterns: list[PatternEvent] = Field(default_factory=list)
    signals: list[PatternSignal] = Field(default_factory=list)
    results: list[BacktestResult] = Field(default_factory=list)
    summary: BacktestSummary = Field(default_factory=BacktestSummary)


def _until(frame: Optional[pd.DataFrame], timestamp) -> Optional[pd.DataFrame]:
    """Candles of another timeframe up to ``timestamp`` so validation never sees the future."""
    if frame is None:
        return None
    if isinstance(frame.index, pd.DatetimeIndex) and isinstance(timestamp, pd.Timestamp):
        try:
            return frame.loc[:timestamp]
        except TypeError:
            # tz-aware and tz-naive indexes cannot be compared
            return frame
    return frame


def scan_series(
    symbol: str,
    timeframe: str,
    candles: CandleInput,
    higher_timeframe: Optional[CandleInput] = None,
    daily: Optional[CandleInput] = None,
    config: AnalysisConfig = AnalysisConfig(),
) -> ScanResult:
    """
    Run the full pipeline over one candle series.

    Trendlines and the channel are measured on the whole series and active
    trendlines broken by the latest candle are validated. Patterns ending
    within the last ``signal_lookback`` candles are validated on the data
    available at their last candle; valid ones become signals that are
    replayed over the candles that follow.

    Args:
        symbol: Ticker symbol
        timeframe: Timeframe label of ``candles``
        candles: Candle data for the series
        higher_timeframe: Optional higher-timeframe candles
        daily: Optional daily candles
        config: AnalysisConfig

    Returns:
        ScanResult
    """
    df = normalize_candles(candles)
    htf = normalize_candles(higher_timeframe) if higher_timeframe is not None else None
    day = normalize_candles(daily) if daily is not None else None
    result = ScanResult(symbol=symbol, timeframe=timeframe)
    if df.empty:
        return result

    last = len(df) - 1
    latest_close = float(df["close"].iloc[-1])

    result.trendlines = detect_trendlines(df, config.trendline)
    result.channel = classify_channel(df, htf, config.channel)
    result.channel_breakout = detect_channel_breakout(df, None, htf, config.channel)

    for line in result.trendlines:
        if line.active and check_breakthrough(line, latest_close, last):
            result.breakouts.append(TrendlineBreakout(
                trendline=line,
                validation=validate_breakout(line, df, htf, config.breakout),
            ))

    cutoff = len(df) - config.scan.signal_lookback
    result.patterns = [p for p in detect_patterns(df, config.detection) if p.end_index >= cutoff]

    for event in result.patterns:
        history = df.iloc[:event.end_index + 1]
        at = history.index[-1]
        validation = validate_pattern(
            event.pattern_type,
            history,
            direction=event.direction,
            higher_timeframe=_until(htf, at),
            daily=_until(day, at),
            config=config,
        )
        if validation.is_valid:
            result.signals.append(build_pattern_signal(event, df, validation, symbol, timeframe, config))

    result.results = run_backtest(result.signals, df, config.backtest)
    result.summary = summarize_results(result.results)

    logger.info(
        "%s %s: %d trendlines, %d breakouts, %d patterns, %d signals",
        symbol, timeframe, len(result.trendlines), len(result.breakouts),
        len(result.patterns), len(result.signals),
    )
    return result


def _scan_request(request: ScanRequest, config: AnalysisConfig) -> ScanResult:
    return scan_series(
        request.symbol,
        request.timeframe,
        request.candles,
        request.higher_timeframe,
        request.daily,
        config,
    )


def scan_many(
    requests: Sequence[ScanRequest],
    config: Optional[AnalysisConfig] = None,
) -> list[ScanResult]:
    """
    Scan independent series concurrently.

    Uses a thread pool, or a process pool when ``config.scan.use_processes``
    is set, with at most ``config.scan.max_workers`` workers. Results come
    back in request order; the first worker exception is re-raised.

    Args:
        requests: Series to scan
        config: Optional AnalysisConfig shared by every series

    Returns:
        List of ScanResult aligned with ``requests``
    """
    if config is None:
        config = AnalysisConfig()
    if not requests:
        return []

    max_workers = min(len(requests), config.scan.max_workers, os.cpu_count() or 4)
    executor_cls = ProcessPoolExecutor if config.scan.use_processes else ThreadPoolExecutor
    results: list[Optional[ScanResult]] = [None] * len(requests)

    with executor_cls(max_workers=max_workers) as executor:
        future_to_idx = {
            executor.submit(_scan_request, request, config): i
            for i, request in enumerate(requests)
        }
        for future in as_completed(future_to_idx):
            results[future_to_idx[future]] = future.result()

    logger.info("Scanned %d series with %d workers", len(requests), max_workers)
    return results
