"""
Trendline detection.

Horizontal, diagonal and EMA-based support/resistance lines share one touch
counter and one strength formula; the line kind only changes how the line's
price is computed and which candles are eligible to start a line.
"""

import math
from typing import Optional

import numpy as np
import pandas as pd

from trendscan.config.logging import get_logger
from trendscan.core.config import TrendlineConfig
from trendscan.core.models import (
    DiagonalGeometry,
    EmaGeometry,
    HorizontalGeometry,
    LineGeometry,
    MultiTimeframeTrendlines,
    SwingKind,
    SwingPoint,
    Timeframe,
    Trendline,
    TrendlineConfirmation,
    TrendlineKind,
    TrendlineSide,
    price_at_index,
)
from trendscan.features.indicators import ema, wick_body_ratio
from trendscan.features.swings import find_swing_points

logger = get_logger("features.trendlines")


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================


def is_near(price: float, line_price: float, proximity: float) -> bool:
    """Check if a price is within ``proximity`` (fraction) of a line price."""
    if line_price == 0:
        return False
    return abs(price - line_price) / abs(line_price) <= proximity


def slope_angle(slope: float) -> float:
    """Absolute slope angle in degrees."""
    return abs(math.degrees(math.atan(slope)))


def slope_quality(angle: float, config: TrendlineConfig) -> float:
    """1.0 inside the optimal angle band, falling off linearly outside it."""
    low, high = config.optimal_angle_low, config.optimal_angle_high
    if low <= angle <= high:
        return 1.0
    if angle < low:
        return angle / low
    return max(0.0, 1.0 - (angle - high) / (90 - high))


def trendline_strength(
    touches: int,
    bounce_percent: float,
    length: int,
    config: TrendlineConfig,
    quality: Optional[float] = None,
) -> float:
    """
    Blend touch count, bounce rate and length (and slope quality for
    diagonals) into a 0-1 strength.
    """
    touch_factor = min(1.0, touches / config.touch_cap)
    bounce_factor = bounce_percent / 100
    length_factor = min(1.0, max(length, 0) / config.length_cap)

    if quality is None:
        strength = touch_factor * 0.4 + bounce_factor * 0.4 + length_factor * 0.2
    else:
        strength = (
            touch_factor * 0.35
            + bounce_factor * 0.35
            + length_factor * 0.15
            + quality * 0.15
        )
    return min(1.0, max(0.0, strength))


def use_wicks_for(df: pd.DataFrame, config: TrendlineConfig) -> bool:
    """Choose wick or body contact; long-wicked markets fall back to bodies."""
    if not config.volatility_adjustment:
        return config.use_wicks
    return wick_body_ratio(df) < config.volatility_threshold


def _contact_prices(df: pd.DataFrame, use_wicks: bool) -> tuple[np.ndarray, np.ndarray]:
    """Return (bottom, top) contact prices per candle."""
    if use_wicks:
        return df["low"].to_numpy(dtype=float), df["high"].to_numpy(dtype=float)
    open_ = df["open"].to_numpy(dtype=float)
    close = df["close"].to_numpy(dtype=float)
    return np.minimum(open_, close), np.maximum(open_, close)


def count_touches(
    geometry: LineGeometry,
    df: pd.DataFrame,
    side: TrendlineSide,
    start: int,
    end: int,
    proximity: float = 0.005,
    use_wicks: bool = True,
    either_extreme: bool = False,
) -> tuple[int, int]:
    """
    Count touches and bounces of a line between two candle indices.

    A touch is a candle whose low (support) or high (resistance) lies within
    ``proximity`` of the line. A touch is a bounce when the following candle,
    still inside the line's span, closes away from the touching price.
    ``either_extreme`` lets a touch come from the low or the high regardless
    of side, as used for moving-average lines.

    Returns:
        Tuple of (touches, bounces)
    """
    bottom, top = _contact_prices(df, use_wicks)
    close = df["close"].to_numpy(dtype=float)

    touches = 0
    bounces = 0
    for i in range(start, end + 1):
        line_price = price_at_index(geometry, i)
        low_touch = is_near(bottom[i], line_price, proximity)
        high_touch = is_near(top[i], line_price, proximity)

        if either_extreme:
            touched = low_touch or high_touch
        elif side == TrendlineSide.SUPPORT:
            touched = low_touch
        else:
            touched = high_touch

        if not touched:
            continue
        touches += 1

        if i < end:
            next_close = close[i + 1]
            if side == TrendlineSide.SUPPORT and next_close > bottom[i]:
                bounces += 1
            elif side == TrendlineSide.RESISTANCE and next_close < top[i]:
                bounces += 1

    return touches, bounces


def crosses_bodies(geometry: LineGeometry, df: pd.DataFrame, start: int, end: int) -> bool:
    """True if the line passes strictly inside any candle body in the span."""
    open_ = df["open"].to_numpy(dtype=float)
    close = df["close"].to_numpy(dtype=float)
    for i in range(start, end + 1):
        line_price = price_at_index(geometry, i)
        body_top = max(open_[i], close[i])
        body_bottom = min(open_[i], close[i])
        if body_bottom < line_price < body_top:
            return True
    return False


def is_line_active(
    geometry: LineGeometry,
    df: pd.DataFrame,
    side: TrendlineSide,
    end: int,
) -> bool:
    """
    A line stays active until a close lands on the wrong side of it after its
    last anchor. The latest candle is excluded so it can be the breakout.
    """
    close = df["close"].to_numpy(dtype=float)
    for i in range(end + 1, len(df) - 1):
        line_price = price_at_index(geometry, i)
        if side == TrendlineSide.SUPPORT and close[i] < line_price:
            return False
        if side == TrendlineSide.RESISTANCE and close[i] > line_price:
            return False
    return True


def is_valid_trendline(trendline: Trendline, config: TrendlineConfig) -> bool:
    """Apply the touch, bounce and strength thresholds."""
    return (
        trendline.touches >= config.min_confirmation_touches
        and trendline.bounce_percent >= config.validation_threshold * 100
        and trendline.strength >= config.strength_threshold
    )


def _build_trendline(
    geometry: LineGeometry,
    df: pd.DataFrame,
    kind: TrendlineKind,
    side: TrendlineSide,
    start: int,
    end: int,
    config: TrendlineConfig,
    use_wicks: bool = True,
    angle: Optional[float] = None,
    ema_period: Optional[int] = None,
) -> Trendline:
    touches, bounces = count_touches(
        geometry,
        df,
        side,
        start,
        end,
        proximity=config.proximity_threshold,
        use_wicks=use_wicks,
        either_extreme=kind == TrendlineKind.EMA,
    )
    bounce_percent = bounces / touches * 100 if touches > 0 else 0.0
    quality = slope_quality(angle, config) if angle is not None else None

    return Trendline(
        start_index=start,
        end_index=end,
        start_price=price_at_index(geometry, start),
        end_price=price_at_index(geometry, end),
        kind=kind,
        side=side,
        ema_period=ema_period,
        touches=touches,
        bounce_percent=bounce_percent,
        strength=trendline_strength(touches, bounce_percent, end - start, config, quality),
        active=is_line_active(geometry, df, side, end),
        angle=angle,
        geometry=geometry,
    )


def _window_start(df: pd.DataFrame, config: TrendlineConfig) -> int:
    return max(0, len(df) - config.lookback_period)


def _recent(points: list[SwingPoint], limit: int) -> list[SwingPoint]:
    return points[-limit:] if len(points) > limit else points


# =============================================================================
# LINE DETECTORS
# =============================================================================


def detect_horizontal_trendlines(
    df: pd.DataFrame,
    config: TrendlineConfig = TrendlineConfig(),
) -> list[Trendline]:
    """
    Horizontal support at every swing low and resistance at every swing high,
    running from the swing to the end of the lookback window.

    Returns:
        Valid horizontal trendlines with indices into ``df``
    """
    if len(df) < 2 * config.swing_lookaround + 1:
        return []

    offset = _window_start(df, config)
    window = df.iloc[offset:]
    end = len(df) - 1

    trendlines = []
    for point in find_swing_points(window, config.swing_lookaround):
        side = TrendlineSide.SUPPORT if point.kind == SwingKind.LOW else TrendlineSide.RESISTANCE
        line = _build_trendline(
            HorizontalGeometry(level=point.value),
            df,
            TrendlineKind.HORIZONTAL,
            side,
            offset + point.index,
            end,
            config,
        )
        if is_valid_trendline(line, config):
            trendlines.append(line)

    return trendlines


def detect_diagonal_trendlines(
    df: pd.DataFrame,
    config: TrendlineConfig = TrendlineConfig(),
) -> list[Trendline]:
    """
    Diagonal lines through pairs of same-kind swing points.

    Pairs closer than ``min_pair_gap`` bars or with a slope angle outside
    [min_slope_angle, max_slope_angle] are skipped. Lines that cut through a
    candle body between their anchors are rejected. Only the most recent
    ``max_swing_points`` swings of each kind are paired.

    Returns:
        Valid diagonal trendlines with indices into ``df``
    """
    if len(df) < 2 * config.swing_lookaround + 1:
        return []

    offset = _window_start(df, config)
    window = df.iloc[offset:]
    use_wicks = use_wicks_for(window, config)
    swings = find_swing_points(window, config.swing_lookaround, use_body=not use_wicks)

    trendlines = []
    for kind, side in ((SwingKind.LOW, TrendlineSide.SUPPORT), (SwingKind.HIGH, TrendlineSide.RESISTANCE)):
        points = _recent([p for p in swings if p.kind == kind], config.max_swing_points)

        for i, first in enumerate(points):
            for second in points[i + 1:]:
                if second.index - first.index < config.min_pair_gap:
                    continue

                start = offset + first.index
                end = offset + second.index
                slope = (second.value - first.value) / (end - start)
                angle = slope_angle(slope)
                if angle < config.min_slope_angle or angle > config.max_slope_angle:
                    continue

                geometry = DiagonalGeometry(slope=slope, intercept=first.value - slope * start)
                if crosses_bodies(geometry, df, start, end):
                    continue

                line = _build_trendline(
                    geometry,
                    df,
                    TrendlineKind.DIAGONAL,
                    side,
                    start,
                    end,
                    config,
                    use_wicks=use_wicks,
                    angle=angle,
                )
                if is_valid_trendline(line, config):
                    trendlines.append(line)

    logger.debug("%d diagonal trendlines from %d swing points", len(trendlines), len(swings))
    return trendlines


def detect_ema_trendlines(
    df: pd.DataFrame,
    config: TrendlineConfig = TrendlineConfig(),
) -> list[Trendline]:
    """
    Treat each configured EMA as a moving support or resistance line.

    The side is support when the latest close is above the EMA and
    resistance otherwise. EMAs are computed over the full series and the
    line spans the lookback window.

    Returns:
        Valid EMA trendlines with indices into ``df``
    """
    if df.empty:
        return []

    offset = _window_start(df, config)
    end = len(df) - 1
    latest_close = df["close"].iloc[-1]

    trendlines = []
    for period in config.ema_periods:
        values = ema(df, period).to_numpy()
        side = TrendlineSide.SUPPORT if latest_close > values[-1] else TrendlineSide.RESISTANCE
        geometry = EmaGeometry(period=period, offset=offset, values=values[offset:].tolist())
        line = _build_trendline(
            geometry,
            df,
            TrendlineKind.EMA,
            side,
            offset,
            end,
            config,
            ema_period=period,
        )
        if is_valid_trendline(line, config):
            trendlines.append(line)

    return trendlines


def detect_trendlines(
    df: pd.DataFrame,
    config: Optional[TrendlineConfig] = None,
) -> list[Trendline]:
    """
    Run all trendline detectors on the DataFrame.

    Args:
        df: Ascending OHLCV DataFrame
        config: Optional TrendlineConfig

    Returns:
        Valid trendlines of every kind sorted by strength (strongest first);
        empty when there are fewer candles than the lookback or longest EMA
    """
    if config is None:
        config = TrendlineConfig()

    if len(df) < config.min_candles:
        logger.debug("Not enough candles for trendlines: %d < %d", len(df), config.min_candles)
        return []

    trendlines = [
        *detect_horizontal_trendlines(df, config),
        *detect_diagonal_trendlines(df, config),
        *detect_ema_trendlines(df, config),
    ]
    trendlines.sort(key=lambda t: t.strength, reverse=True)
    return trendlines


# =============================================================================
# TRENDLINE INTERACTIONS
# =============================================================================


def check_breakthrough(trendline: Trendline, close: float, index: int) -> bool:
    """Close above resistance or below support."""
    line_price = trendline.price_at(index)
    if trendline.side == TrendlineSide.RESISTANCE:
        return close > line_price
    return close < line_price


def check_bounce(
    trendline: Trendline,
    candle: pd.Series,
    next_candle: pd.Series,
    index: int,
    proximity: float = 0.005,
) -> tuple[bool, float]:
    """
    Check whether a candle touched the line and the next one moved away.

    Returns:
        Tuple of (is_bounce, strength) where strength is the relative move
        of the next close away from the touching extreme
    """
    line_price = trendline.price_at(index)

    if trendline.side == TrendlineSide.SUPPORT:
        touching = is_near(candle["low"], line_price, proximity)
        bouncing = next_candle["close"] > candle["close"]
        strength = (next_candle["close"] - candle["low"]) / candle["low"] if bouncing else 0.0
    else:
        touching = is_near(candle["high"], line_price, proximity)
        bouncing = next_candle["close"] < candle["close"]
        strength = (candle["high"] - next_candle["close"]) / candle["high"] if bouncing else 0.0

    return touching and bouncing, float(strength)


def calculate_target_price(
    trendline: Trendline,
    close: float,
    other_lines: list[Trendline],
    atr: float,
    atr_multiple: float = 2.5,
) -> float:
    """
    Target after breaking a trendline: the nearest same-side line beyond the
    close in the breakout direction, else ``atr_multiple`` ATRs away.
    """
    if trendline.side == TrendlineSide.SUPPORT:
        below = [t.end_price for t in other_lines if t.side == TrendlineSide.SUPPORT and t.end_price < close]
        if below:
            return max(below)
        return close - atr * atr_multiple

    above = [t.end_price for t in other_lines if t.side == TrendlineSide.RESISTANCE and t.end_price > close]
    if above:
        return min(above)
    return close + atr * atr_multiple


# =============================================================================
# MULTI-TIMEFRAME
# =============================================================================


def _lines_match(lower: Trendline, higher: Trendline, price_ratio: float, tolerance: float) -> bool:
    if lower.kind != higher.kind or lower.side != higher.side:
        return False
    if lower.kind == TrendlineKind.EMA and lower.ema_period != higher.ema_period:
        return False
    if higher.end_price == 0:
        return False
    return abs(lower.end_price * price_ratio - higher.end_price) / abs(higher.end_price) <= tolerance


def check_multi_timeframe_confirmation(
    lower: list[Trendline],
    higher: list[Trendline],
    price_ratio: float = 1.0,
    config: TrendlineConfig = TrendlineConfig(),
) -> TrendlineConfirmation:
    """
    Match active lower-timeframe lines against active higher-timeframe lines
    of the same kind, side and EMA period whose current prices agree within
    ``mtf_price_tolerance``.
    """
    active_lower = [t for t in lower if t.active]
    active_higher = [t for t in higher if t.active]
    if not active_lower or not active_higher:
        return TrendlineConfirmation()

    confirming: list[Trendline] = []
    total = 0.0
    for line in active_lower:
        matches = [
            h for h in active_higher
            if _lines_match(line, h, price_ratio, config.mtf_price_tolerance)
        ]
        if not matches:
            continue
        confirming.extend(matches)
        avg_strength = sum(h.strength * config.mtf_higher_weight for h in matches) / len(matches)
        total += avg_strength * min(3, len(matches)) / 2

    if not confirming:
        return TrendlineConfirmation()

    return TrendlineConfirmation(
        is_confirmed=True,
        confirming=confirming,
        strength=min(1.0, total / max(len(active_lower), 2)),
    )


def _timeframe_rank(timeframe: str) -> int:
    aliases = {"weekly": Timeframe.W1.value, "daily": Timeframe.D1.value}
    value = aliases.get(timeframe, timeframe)
    try:
        return Timeframe(value).rank
    except ValueError:
        return len(Timeframe)


def combine_multi_timeframe_trendlines(
    by_timeframe: dict[str, list[Trendline]],
    config: TrendlineConfig = TrendlineConfig(),
) -> MultiTimeframeTrendlines:
    """
    Combine trendlines detected on several timeframes.

    The highest timeframe's lines form the result; each consecutive
    (lower, higher) pair is checked for confirmation and the confirmation
    strengths are averaged into an overall strength.
    """
    ordered = sorted(by_timeframe, key=_timeframe_rank)
    if not ordered:
        return MultiTimeframeTrendlines()

    confirmations: dict[str, bool] = {}
    total = 0.0
    for lower_tf, higher_tf in zip(ordered, ordered[1:]):
        result = check_multi_timeframe_confirmation(
            by_timeframe[lower_tf], by_timeframe[higher_tf], config=config
        )
        confirmations[f"{lower_tf}->{higher_tf}"] = result.is_confirmed
        if result.is_confirmed:
            total += result.strength

    return MultiTimeframeTrendlines(
        trendlines=list(by_timeframe[ordered[-1]]),
        confirmations=confirmations,
        strength=min(1.0, total / max(1, len(ordered) - 1)),
    )
