"""
Raw chart pattern detection.

Rule-based detectors for the patterns the validator knows how to score:
double tops, double bottoms, bull flags and bear flags. Detections carry a
geometric confidence in [0, 1]; the 0-100 trading confidence comes from
``trendscan.features.pattern_validation``.
"""

from enum import Enum
from typing import Optional

import numpy as np
import pandas as pd

from trendscan.core.config import PatternDetectionConfig
from trendscan.core.models import Direction, PatternEvent


class PatternType(str, Enum):
    """Detectable chart patterns."""
    DOUBLE_TOP = "double_top"
    DOUBLE_BOTTOM = "double_bottom"
    BULL_FLAG = "bull_flag"
    BEAR_FLAG = "bear_flag"


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================


def find_local_extrema(series: pd.Series, order: int = 5, find_max: bool = True) -> list[int]:
    """
    Indices of local maxima (or minima) over ``order`` bars on each side.

    Args:
        series: Price series
        order: Number of bars on each side to compare
        find_max: Maxima when True, minima otherwise

    Returns:
        Ascending list of positional indices
    """
    values = series.to_numpy(dtype=float)
    found = []

    for i in range(order, len(values) - order):
        window = np.concatenate([values[i - order:i], values[i + 1:i + order + 1]])
        if find_max and np.all(values[i] >= window):
            found.append(i)
        elif not find_max and np.all(values[i] <= window):
            found.append(i)

    return found


def prices_equal(price1: float, price2: float, tolerance: float = 0.02) -> bool:
    """Check if two prices are approximately equal within tolerance."""
    return abs(price1 - price2) / max(price1, price2) <= tolerance


def calculate_slope(prices: pd.Series) -> float:
    """Calculate linear regression slope of a price series."""
    x = np.arange(len(prices))
    slope, _ = np.polyfit(x, prices.to_numpy(dtype=float), 1)
    return float(slope)


# =============================================================================
# REVERSAL PATTERNS
# =============================================================================


def detect_double_top_bottom(
    df: pd.DataFrame,
    config: PatternDetectionConfig = PatternDetectionConfig(),
) -> list[PatternEvent]:
    """
    Detect Double Top and Double Bottom patterns.

    Consecutive swing highs (lows) within ``price_tolerance`` of each other
    with a swing low (high) between them. The target projects the pattern
    height beyond the neckline.

    A pattern ends ``extrema_order`` bars after its second extreme, the first
    bar on which that extreme is confirmed as a swing.
    """
    patterns = []
    high = df["high"]
    low = df["low"]

    maxima = find_local_extrema(high, config.extrema_order, find_max=True)
    minima = find_local_extrema(low, config.extrema_order, find_max=False)

    # Double Top
    for first, second in zip(maxima, maxima[1:]):
        if not prices_equal(high.iloc[first], high.iloc[second], config.price_tolerance):
            continue

        troughs_between = [m for m in minima if first < m < second]
        if not troughs_between:
            continue

        trough = min(troughs_between, key=lambda m: low.iloc[m])
        neckline = float(low.iloc[trough])
        pattern_height = float(high.iloc[first]) - neckline
        confidence = 1 - abs(high.iloc[first] - high.iloc[second]) / high.iloc[first]

        if confidence >= config.min_confidence:
            patterns.append(PatternEvent(
                pattern_type=PatternType.DOUBLE_TOP.value,
                start_index=first,
                end_index=second + config.extrema_order,
                confidence=round(float(confidence), 2),
                direction=Direction.BEARISH,
                target_price=neckline - pattern_height,
                stop_price=float(max(high.iloc[first], high.iloc[second])),
                metadata={"neckline": neckline, "second_extreme": second},
            ))

    # Double Bottom
    for first, second in zip(minima, minima[1:]):
        if not prices_equal(low.iloc[first], low.iloc[second], config.price_tolerance):
            continue

        peaks_between = [m for m in maxima if first < m < second]
        if not peaks_between:
            continue

        peak = max(peaks_between, key=lambda m: high.iloc[m])
        neckline = float(high.iloc[peak])
        pattern_height = neckline - float(low.iloc[first])
        confidence = 1 - abs(low.iloc[first] - low.iloc[second]) / low.iloc[first]

        if confidence >= config.min_confidence:
            patterns.append(PatternEvent(
                pattern_type=PatternType.DOUBLE_BOTTOM.value,
                start_index=first,
                end_index=second + config.extrema_order,
                confidence=round(float(confidence), 2),
                direction=Direction.BULLISH,
                target_price=neckline + pattern_height,
                stop_price=float(min(low.iloc[first], low.iloc[second])),
                metadata={"neckline": neckline, "second_extreme": second},
            ))

    return patterns


# =============================================================================
# CONTINUATION PATTERNS
# =============================================================================


def detect_flags(
    df: pd.DataFrame,
    config: PatternDetectionConfig = PatternDetectionConfig(),
) -> list[PatternEvent]:
    """
    Detect Bull and Bear Flag patterns.

    A flagpole is a close-to-close move of at least ``min_pole_move`` over
    ``pole_bars`` bars. The following consolidation must have roughly
    parallel high and low regression lines sloping against the pole.

    The pole ends on its extreme close. Once a flag is accepted, pole bars
    in the same direction inside its span are skipped so one structure
    yields one event.
    """
    patterns = []
    close = df["close"]
    returns = close.pct_change(config.pole_bars)
    next_start = {Direction.BULLISH: 0, Direction.BEARISH: 0}

    for i in range(config.pole_bars, len(df) - 5):
        pole_return = returns.iloc[i]
        if np.isnan(pole_return) or abs(pole_return) < config.min_pole_move:
            continue

        direction = Direction.BULLISH if pole_return > 0 else Direction.BEARISH
        if i < next_start[direction]:
            continue

        # Pole still extending
        step = float(close.iloc[i + 1]) - float(close.iloc[i])
        if (step > 0 and direction == Direction.BULLISH) or (step < 0 and direction == Direction.BEARISH):
            continue

        consolidation = df.iloc[i + 1:min(i + 1 + config.flag_bars, len(df))]
        if len(consolidation) < 5:
            continue

        mean_price = float(consolidation["close"].mean())
        if mean_price == 0:
            continue
        high_slope = calculate_slope(consolidation["high"]) / mean_price
        low_slope = calculate_slope(consolidation["low"]) / mean_price

        # Flag: parallel lines against the pole
        if abs(high_slope - low_slope) >= config.parallel_tolerance:
            continue
        if (direction == Direction.BULLISH and high_slope >= 0) or \
           (direction == Direction.BEARISH and high_slope <= 0):
            continue

        pole_size = abs(float(close.iloc[i]) - float(close.iloc[i - config.pole_bars]))
        if direction == Direction.BULLISH:
            pattern_type = PatternType.BULL_FLAG
            target = float(consolidation["high"].iloc[-1]) + pole_size
            stop = float(consolidation["low"].min())
        else:
            pattern_type = PatternType.BEAR_FLAG
            target = float(consolidation["low"].iloc[-1]) - pole_size
            stop = float(consolidation["high"].max())

        patterns.append(PatternEvent(
            pattern_type=pattern_type.value,
            start_index=i - config.pole_bars,
            end_index=i + len(consolidation),
            confidence=0.65,
            direction=direction,
            target_price=target,
            stop_price=stop,
            metadata={"pole_return": float(pole_return)},
        ))
        next_start[direction] = i + len(consolidation) + 1

    return patterns


def detect_patterns(
    df: pd.DataFrame,
    config: Optional[PatternDetectionConfig] = None,
) -> list[PatternEvent]:
    """
    Run all pattern detection algorithms on the DataFrame.

    Args:
        df: OHLCV DataFrame with lowercase column names
        config: Optional PatternDetectionConfig for detection parameters

    Returns:
        List of all detected patterns sorted by end_index (most recent first)
    """
    if config is None:
        config = PatternDetectionConfig()

    all_patterns = []
    all_patterns.extend(detect_double_top_bottom(df, config))
    all_patterns.extend(detect_flags(df, config))

    all_patterns.sort(key=lambda p: p.end_index, reverse=True)
    return all_patterns
