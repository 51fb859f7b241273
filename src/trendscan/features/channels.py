"""
Price channel classification.

A channel is classified from the linear-regression slope of closes
normalized by ATR relative to price, and scored by how many candles sit
close to rolling high/low boundaries.
"""

from typing import Optional

import numpy as np
import pandas as pd

from trendscan.config.logging import get_logger
from trendscan.core.config import ChannelConfig
from trendscan.core.models import Channel, ChannelBreakout, ChannelKind, Direction
from trendscan.features.indicators import atr, regression_slope

logger = get_logger("features.channels")


def channel_boundaries(df: pd.DataFrame, window: int = 5) -> tuple[np.ndarray, np.ndarray]:
    """
    Rolling channel boundaries.

    Boundary ``i`` is the max high / min low of candles ``i`` through
    ``i + size - 1`` with ``size = min(window, len(df) // 3)`` (at least 1).

    Returns:
        Tuple of (upper, lower) arrays of length ``len(df) - size + 1``
    """
    size = max(1, min(window, len(df) // 3))
    high = df["high"].to_numpy(dtype=float)
    low = df["low"].to_numpy(dtype=float)
    if len(df) < size:
        return np.array([]), np.array([])

    upper = pd.Series(high).rolling(size).max().to_numpy()[size - 1:]
    lower = pd.Series(low).rolling(size).min().to_numpy()[size - 1:]
    return upper, lower


def count_boundary_touches(
    df: pd.DataFrame,
    upper: np.ndarray,
    lower: np.ndarray,
    touch_distance: float,
) -> int:
    """Candles whose high or low lies within ``touch_distance`` of its boundary."""
    n = min(len(df), len(upper))
    high = df["high"].to_numpy(dtype=float)[:n]
    low = df["low"].to_numpy(dtype=float)[:n]
    near = (np.abs(high - upper[:n]) <= touch_distance) | (np.abs(low - lower[:n]) <= touch_distance)
    return int(near.sum())


def classify_slope(normalized_slope: float, threshold: float = 0.5) -> ChannelKind:
    """Map an ATR-normalized slope to a channel kind."""
    if abs(normalized_slope) < threshold:
        return ChannelKind.HORIZONTAL
    if normalized_slope > threshold:
        return ChannelKind.ASCENDING
    if normalized_slope < -threshold:
        return ChannelKind.DESCENDING
    return ChannelKind.UNDEFINED


def _classify(df: pd.DataFrame, config: ChannelConfig) -> Channel:
    """Single-timeframe channel classification."""
    if len(df) < config.min_candles:
        return Channel()

    close = df["close"]
    slope = regression_slope(close)
    atr_value = atr(df, config.atr_period)
    avg_price = float(close.mean())

    if atr_value > 0 and avg_price != 0:
        normalized = slope / (atr_value / avg_price) * 100
    else:
        normalized = 0.0

    upper, lower = channel_boundaries(df, config.boundary_window)
    touch_distance = atr_value * config.touch_atr_multiple
    touches = count_boundary_touches(df, upper, lower, touch_distance)

    strength = 0.0
    if len(upper) >= 2:
        strength = touches / min(len(df), len(upper))

    return Channel(
        kind=classify_slope(normalized, config.slope_threshold),
        strength=min(1.0, strength),
        support_level=float(lower[-1]) if len(lower) else None,
        resistance_level=float(upper[-1]) if len(upper) else None,
        established=touches >= config.min_touches,
        touch_points=touches,
        normalized_slope=float(normalized),
        atr=atr_value,
    )


def classify_channel(
    df: pd.DataFrame,
    higher_timeframe: Optional[pd.DataFrame] = None,
    config: ChannelConfig = ChannelConfig(),
) -> Channel:
    """
    Classify the price channel of a candle window.

    When higher-timeframe candles are given, that timeframe is classified
    too and the local strength is scaled: matching kinds multiply by
    ``match_multiplier`` and adopt the higher timeframe's levels, a
    conflicting defined kind multiplies by ``conflict_multiplier``, and an
    established higher-timeframe channel adds ``established_multiplier``.
    Strength is capped at 1.0.

    Args:
        df: Ascending OHLCV DataFrame
        higher_timeframe: Optional higher-timeframe candles
        config: ChannelConfig

    Returns:
        Channel; ``undefined`` with zero strength for fewer than
        ``min_candles`` candles
    """
    channel = _classify(df, config)
    if channel.kind == ChannelKind.UNDEFINED:
        return channel

    if higher_timeframe is None or len(higher_timeframe) < config.min_candles:
        return channel

    htf = _classify(higher_timeframe, config)
    strength = channel.strength
    support, resistance = channel.support_level, channel.resistance_level

    if htf.kind == channel.kind:
        strength *= config.match_multiplier
        support = htf.support_level or support
        resistance = htf.resistance_level or resistance
    elif htf.kind != ChannelKind.UNDEFINED:
        strength *= config.conflict_multiplier

    if htf.established:
        strength *= config.established_multiplier

    logger.debug(
        "Channel %s (htf %s) strength %.2f -> %.2f",
        channel.kind.value, htf.kind.value, channel.strength, min(1.0, strength),
    )
    return channel.model_copy(update={
        "strength": min(1.0, strength),
        "support_level": support,
        "resistance_level": resistance,
    })


def detect_channel_breakout(
    df: pd.DataFrame,
    direction: Optional[Direction] = None,
    higher_timeframe: Optional[pd.DataFrame] = None,
    config: ChannelConfig = ChannelConfig(),
) -> ChannelBreakout:
    """
    Detect a close beyond an established channel boundary.

    The boundary is taken from the candles before the latest one, so the
    latest candle is measured against the channel it is leaving. A breakout
    needs the close to clear the boundary by more than
    ``breakout_atr_multiple`` ATRs; strength is the clearance over that
    threshold, scaled by ``htf_breakout_multiplier`` when the
    higher-timeframe channel is broken as well.

    Args:
        df: Ascending OHLCV DataFrame
        direction: Only look for this breakout direction; both when None
        higher_timeframe: Optional higher-timeframe candles
        config: ChannelConfig

    Returns:
        ChannelBreakout
    """
    if len(df) < config.min_candles + 1:
        return ChannelBreakout()

    prior = df.iloc[:-1]
    channel = _classify(prior, config)
    if not channel.established or channel.atr <= 0:
        return ChannelBreakout()

    close = float(df["close"].iloc[-1])
    threshold = channel.atr * config.breakout_atr_multiple

    found: Optional[Direction] = None
    distance = 0.0
    if direction in (None, Direction.BULLISH) and close - channel.resistance_level > threshold:
        found = Direction.BULLISH
        distance = close - channel.resistance_level
    elif direction in (None, Direction.BEARISH) and channel.support_level - close > threshold:
        found = Direction.BEARISH
        distance = channel.support_level - close

    if found is None:
        return ChannelBreakout()

    htf_breakout = False
    if higher_timeframe is not None and len(higher_timeframe) >= config.min_candles:
        htf = _classify(higher_timeframe, config)
        if htf.established:
            if found == Direction.BULLISH and htf.resistance_level is not None:
                htf_breakout = close > htf.resistance_level
            elif found == Direction.BEARISH and htf.support_level is not None:
                htf_breakout = close < htf.support_level

    strength = distance / threshold
    if htf_breakout:
        strength *= config.htf_breakout_multiplier

    return ChannelBreakout(
        breakout=True,
        direction=found,
        strength=strength,
        higher_timeframe_breakout=htf_breakout,
    )
