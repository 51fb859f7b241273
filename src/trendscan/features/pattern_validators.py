"""
Pattern-specific structural validators.

Each validator inspects the most recent candles of an ascending OHLCV
DataFrame and returns a StructureCheck. A passing structure scores 70 and
a failing one 30.
"""

import numpy as np
import pandas as pd

from trendscan.core.models import Direction, StructureCheck

VALID_CONFIDENCE = 70.0
INVALID_CONFIDENCE = 30.0

BULLISH_PATTERNS = {
    "double bottom",
    "cup and handle",
    "bull flag",
    "ascending triangle",
    "inverse head and shoulders",
    "bullish pennant",
    "bullish rectangle",
}

BEARISH_PATTERNS = {
    "double top",
    "head and shoulders",
    "bear flag",
    "descending triangle",
    "bearish pennant",
    "bearish rectangle",
}


def normalize_pattern_name(pattern_type: str) -> str:
    """Lowercase and treat underscores as spaces: 'Double_Top' -> 'double top'."""
    return " ".join(pattern_type.replace("_", " ").lower().split())


def pattern_direction(pattern_type: str) -> Direction:
    """Expected breakout direction of a named pattern; unknown names are bullish."""
    name = normalize_pattern_name(pattern_type)
    if name in BEARISH_PATTERNS:
        return Direction.BEARISH
    return Direction.BULLISH


def _check(is_valid: bool, reason: str) -> StructureCheck:
    return StructureCheck(
        is_valid=is_valid,
        confidence=VALID_CONFIDENCE if is_valid else INVALID_CONFIDENCE,
        reason=reason,
    )


# =============================================================================
# REVERSAL PATTERNS
# =============================================================================


def _local_extrema(values: np.ndarray, find_max: bool) -> list[int]:
    """Indices strictly above (or below) both neighbours, newest first."""
    found = []
    for i in range(len(values) - 2, 0, -1):
        if find_max and values[i] > values[i - 1] and values[i] > values[i + 1]:
            found.append(i)
        elif not find_max and values[i] < values[i - 1] and values[i] < values[i + 1]:
            found.append(i)
    return found


def validate_double_bottom(df: pd.DataFrame, window: int = 20) -> StructureCheck:
    """
    Two most recent lows within 2% of each other, a recovery of at least 3%
    between them, and the latest close more than 1% above the older low.
    """
    if len(df) < window:
        return _check(False, "not enough candles")

    recent = df.iloc[-window:]
    low = recent["low"].to_numpy(dtype=float)
    high = recent["high"].to_numpy(dtype=float)

    bottoms = _local_extrema(low, find_max=False)
    if len(bottoms) < 2:
        return _check(False, "fewer than two bottoms")

    newer, older = bottoms[0], bottoms[1]
    if abs(low[newer] - low[older]) / low[newer] > 0.02:
        return _check(False, "bottoms not at the same level")

    between = high[older + 1:newer]
    peak = between.max() if len(between) else 0.0
    if (peak - low[newer]) / low[newer] < 0.03:
        return _check(False, "no recovery between bottoms")

    if recent["close"].iloc[-1] <= low[older] * 1.01:
        return _check(False, "price has not lifted off the second bottom")

    return _check(True, "double bottom confirmed")


def validate_double_top(df: pd.DataFrame, window: int = 20) -> StructureCheck:
    """Mirror of validate_double_bottom for two highs."""
    if len(df) < window:
        return _check(False, "not enough candles")

    recent = df.iloc[-window:]
    low = recent["low"].to_numpy(dtype=float)
    high = recent["high"].to_numpy(dtype=float)

    tops = _local_extrema(high, find_max=True)
    if len(tops) < 2:
        return _check(False, "fewer than two tops")

    newer, older = tops[0], tops[1]
    if abs(high[newer] - high[older]) / high[newer] > 0.02:
        return _check(False, "tops not at the same level")

    between = low[older + 1:newer]
    trough = between.min() if len(between) else np.inf
    if (high[newer] - trough) / high[newer] < 0.03:
        return _check(False, "no pullback between tops")

    if recent["close"].iloc[-1] >= high[older] * 0.99:
        return _check(False, "price has not dropped from the second top")

    return _check(True, "double top confirmed")


# =============================================================================
# CONTINUATION PATTERNS
# =============================================================================


def validate_flag(df: pd.DataFrame, direction: Direction, window: int = 15) -> StructureCheck:
    """
    Flag structure over the last ``window`` candles.

    The pole runs from the oldest candle five bars forward and must move at
    least 5% in ``direction``. The flag (everything after the pole) may
    drift no more than 2% along the pole and its range must be narrower
    than the pole's move.
    """
    if len(df) < window:
        return _check(False, "not enough candles")

    recent = df.iloc[-window:]
    close = recent["close"].to_numpy(dtype=float)
    bullish = direction == Direction.BULLISH

    pole_start, pole_end = close[0], close[5]
    pole = (pole_end - pole_start) / pole_start if bullish else (pole_start - pole_end) / pole_start
    if pole < 0.05:
        return _check(False, f"pole move {pole:.1%} too small")

    flag = recent.iloc[6:]
    drift = (flag["close"].iloc[-1] - flag["close"].iloc[0]) / flag["close"].iloc[0]
    if bullish and drift > 0.02:
        return _check(False, "flag drifts upward")
    if not bullish and drift < -0.02:
        return _check(False, "flag drifts downward")

    flag_low = flag["low"].min()
    flag_range = (flag["high"].max() - flag_low) / flag_low
    if flag_range >= pole:
        return _check(False, "flag wider than pole")

    return _check(True, f"{direction.value} flag confirmed")


def validate_bull_flag(df: pd.DataFrame) -> StructureCheck:
    return validate_flag(df, Direction.BULLISH)


def validate_bear_flag(df: pd.DataFrame) -> StructureCheck:
    return validate_flag(df, Direction.BEARISH)


# =============================================================================
# CONTEXT CHECKS
# =============================================================================


def validate_volume_confirmation(df: pd.DataFrame, period: int = 5, factor: float = 1.15) -> StructureCheck:
    """Volume of the latest ``period`` candles exceeds the previous ``period`` by ``factor``."""
    if len(df) < period * 2:
        return _check(False, "not enough candles")

    volume = df["volume"].to_numpy(dtype=float)
    recent = volume[-period:].sum()
    previous = volume[-2 * period:-period].sum()
    if recent > previous * factor:
        return _check(True, "volume expanding")
    return _check(False, "volume flat")


def validate_near_channel_boundary(
    df: pd.DataFrame,
    direction: Direction,
    window: int = 15,
    tolerance: float = 0.02,
) -> StructureCheck:
    """Latest close within ``tolerance`` of the window high (bullish) or low (bearish)."""
    if len(df) < window:
        return _check(False, "not enough candles")

    recent = df.iloc[-window:]
    close = float(recent["close"].iloc[-1])
    if close == 0:
        return _check(False, "zero close")

    if direction == Direction.BEARISH:
        near = (close - float(recent["low"].min())) / close < tolerance
    else:
        near = (float(recent["high"].max()) - close) / close < tolerance

    return _check(near, "near boundary" if near else "away from boundary")


STRUCTURE_VALIDATORS = {
    "double bottom": validate_double_bottom,
    "double top": validate_double_top,
    "bull flag": validate_bull_flag,
    "bear flag": validate_bear_flag,
}
