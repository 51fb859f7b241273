"""
Trendline breakout validation.

The breakout candle is the latest row of the candle frame, and trendline
indices refer to rows of the same frame. Each heuristic is a small function;
``validate_breakout`` collects their contributions and folds them onto a
neutral base of 0.5.
"""

from typing import Optional

import numpy as np
import pandas as pd

from trendscan.config.logging import get_logger
from trendscan.core.config import BreakoutConfig
from trendscan.core.models import (
    BreakoutValidation,
    ScoreContribution,
    Trendline,
    TrendlineSide,
)
from trendscan.features.scoring import contribution, fold_score
from trendscan.features.trendlines import check_breakthrough

logger = get_logger("features.breakout")


# =============================================================================
# SIGNAL MEASUREMENTS
# =============================================================================


def count_confirmations(trendline: Trendline, df: pd.DataFrame, lookback: int = 3) -> int:
    """Closes beyond the line among the last ``lookback`` candles."""
    close = df["close"].to_numpy(dtype=float)
    start = max(0, len(df) - lookback)
    return sum(check_breakthrough(trendline, close[i], i) for i in range(start, len(df)))


def has_strong_candle(df: pd.DataFrame, upward: bool) -> bool:
    """
    Strong close in the outer third, an engulfing candle, or a body over 60%
    of the range, all in the breakout direction.
    """
    if len(df) < 3:
        return False

    last = df.iloc[-1]
    prev = df.iloc[-2]
    candle_range = last["high"] - last["low"]
    body = abs(last["close"] - last["open"])

    if upward:
        strong_close = last["close"] > last["low"] + candle_range * 0.67
        engulfing = last["open"] < prev["close"] and last["close"] > prev["open"] and last["close"] > last["open"]
        strong_body = body > candle_range * 0.6 and last["close"] > last["open"]
    else:
        strong_close = last["close"] < last["low"] + candle_range * 0.33
        engulfing = last["open"] > prev["close"] and last["close"] < prev["open"] and last["close"] < last["open"]
        strong_body = body > candle_range * 0.6 and last["close"] < last["open"]

    return bool(strong_close or engulfing or strong_body)


def consecutive_volume_increases(volume: np.ndarray) -> int:
    """Number of consecutive volume increases ending at the latest bar."""
    count = 0
    for i in range(len(volume) - 1, 0, -1):
        if volume[i] > volume[i - 1]:
            count += 1
        else:
            break
    return count


def volume_confirmation(
    df: pd.DataFrame,
    min_factor: float = 1.2,
    lookback: int = 10,
) -> tuple[bool, float]:
    """
    Compare breakout volume with the trailing average.

    Returns:
        Tuple of (confirmed, volume_factor). Confirmed when the factor reaches
        ``min_factor`` or volume rose at least twice in a row over the last
        five bars. Factor is 0 without ``lookback`` candles or when the
        trailing average is zero.
    """
    if len(df) < lookback:
        return False, 0.0

    volume = df["volume"].to_numpy(dtype=float)
    avg_volume = volume[-(lookback + 1):-1].mean()
    if avg_volume == 0:
        return False, 0.0

    factor = float(volume[-1] / avg_volume)
    rising = len(volume) >= 3 and consecutive_volume_increases(volume[-5:]) >= 2
    return factor >= min_factor or rising, factor


def higher_timeframe_alignment(
    htf: pd.DataFrame,
    upward: bool,
    line_price: float,
) -> tuple[bool, float]:
    """
    Check whether the higher timeframe leans the same way.

    At least two of the last three higher-timeframe candles must move in the
    breakout direction. Strength starts from the latest candle's body/range
    (in direction), gains 0.3 when the last seven candles trend the same way,
    and is lifted further when the latest higher-timeframe close is already
    beyond the trendline.

    Returns:
        Tuple of (confirmed, strength)
    """
    if len(htf) < 3:
        return False, 0.0

    recent = htf.iloc[-3:]
    latest = htf.iloc[-1]
    extended = htf.iloc[-7:]
    candle_range = latest["high"] - latest["low"]

    if upward:
        match = int((recent["close"] > recent["open"]).sum()) >= 2
        body = latest["close"] - latest["open"]
        trend = extended["close"].iloc[-1] > extended["close"].iloc[0]
        price_confirms = latest["close"] > line_price
    else:
        match = int((recent["close"] < recent["open"]).sum()) >= 2
        body = latest["open"] - latest["close"]
        trend = extended["close"].iloc[-1] < extended["close"].iloc[0]
        price_confirms = latest["close"] < line_price

    strength = body / candle_range if body > 0 and candle_range > 0 else 0.0
    if trend:
        strength += 0.3

    final = min(1.0, 0.5 + strength * 0.5) if price_confirms else strength * 0.6
    return bool(match and final > 0.3), float(final)


def higher_timeframe_breakout(htf: pd.DataFrame, upward: bool, lookback: int = 10) -> tuple[bool, float]:
    """
    Latest higher-timeframe close beyond the extreme of the previous
    ``lookback - 1`` candles.

    Returns:
        Tuple of (is_breakout, strength in [0, 1])
    """
    if len(htf) < lookback:
        return False, 0.0

    latest_close = float(htf["close"].iloc[-1])
    prior = htf.iloc[-lookback:-1]

    if upward:
        level = float(prior["high"].max())
        is_breakout = latest_close > level
        amount = (latest_close - level) / level if level else 0.0
    else:
        level = float(prior["low"].min())
        is_breakout = latest_close < level
        amount = (level - latest_close) / level if level else 0.0

    return is_breakout, min(1.0, amount * 20) if is_breakout else 0.0


def momentum_score(df: pd.DataFrame, upward: bool, lookback: int = 5) -> float:
    """
    Price change over the last ``lookback`` candles relative to their
    average range, signed by breakout direction and clamped to [-1, 1].
    """
    recent = df.iloc[-lookback:]
    if len(recent) < 3:
        return 0.0

    first_open = float(recent["open"].iloc[0])
    avg_range = float((recent["high"] - recent["low"]).abs().mean())
    if first_open == 0 or avg_range == 0:
        return 0.0

    change = (float(recent["close"].iloc[-1]) - first_open) / first_open
    normalized = change / (avg_range / first_open)
    if not upward:
        normalized = -normalized
    return max(-1.0, min(1.0, normalized))


def breakout_strength(candle: pd.Series, line_price: float, upward: bool) -> float:
    """Distance of the close beyond the line over half the candle range, in [0, 1]."""
    candle_range = abs(candle["high"] - candle["low"])
    if candle_range == 0:
        return 0.0
    distance = candle["close"] - line_price if upward else line_price - candle["close"]
    return max(0.0, min(1.0, distance / (candle_range * 0.5)))


def false_breakout_risk(df: pd.DataFrame, trendline: Trendline, upward: bool) -> float:
    """
    Risk in [0, 1] that the breakout fails.

    Adds 0.15 per failed poke through the line in the previous nine candles,
    0.2 when the breakout comes in the last 10% of the line's span (or past
    it), 0.25 for a long opposing wick and 0.15 for a close on the wrong half
    of the candle. Defaults to 0.5 with fewer than ten candles.
    """
    if len(df) < 10:
        return 0.5

    n = len(df)
    high = df["high"].to_numpy(dtype=float)
    low = df["low"].to_numpy(dtype=float)
    close = df["close"].to_numpy(dtype=float)

    risk = 0.0
    for i in range(n - 10, n - 2):
        line_now = trendline.price_at(i)
        line_next = trendline.price_at(i + 1)
        if upward and high[i] > line_now and close[i + 1] < line_next:
            risk += 0.15
        elif not upward and low[i] < line_now and close[i + 1] > line_next:
            risk += 0.15

    duration = trendline.end_index - trendline.start_index
    if duration > 0 and (n - 1 - trendline.start_index) / duration > 0.9:
        risk += 0.2

    candle_range = high[-1] - low[-1]
    if candle_range > 0:
        if upward:
            wick_ratio = (high[-1] - close[-1]) / candle_range
            weak_close = close[-1] < (high[-1] + low[-1]) / 2
        else:
            wick_ratio = (close[-1] - low[-1]) / candle_range
            weak_close = close[-1] > (high[-1] + low[-1]) / 2
        if wick_ratio > 0.6:
            risk += 0.25
        if weak_close:
            risk += 0.15

    return min(1.0, risk)


# =============================================================================
# VALIDATION
# =============================================================================


def _result(
    confidence: float,
    contributions: list[ScoreContribution],
    config: BreakoutConfig,
    **extra,
) -> BreakoutValidation:
    confidence = min(1.0, max(0.0, confidence))
    return BreakoutValidation(
        is_valid=confidence >= config.confidence_threshold,
        confidence=confidence,
        contributions=contributions,
        **extra,
    )


def validate_breakout(
    trendline: Trendline,
    df: pd.DataFrame,
    higher_timeframe: Optional[pd.DataFrame] = None,
    config: BreakoutConfig = BreakoutConfig(),
) -> BreakoutValidation:
    """
    Score a breakout of ``trendline`` by the latest candle of ``df``.

    Args:
        trendline: Line being broken; its indices refer to rows of ``df``
        df: Ascending OHLCV DataFrame ending with the breakout candle
        higher_timeframe: Optional higher-timeframe candles
        config: BreakoutConfig

    Returns:
        BreakoutValidation with confidence in [0, 1]
    """
    if len(df) < config.min_candles:
        return BreakoutValidation(is_valid=False, confidence=0.0)

    index = len(df) - 1
    latest = df.iloc[-1]
    line_price = trendline.price_at(index)
    upward = trendline.side == TrendlineSide.RESISTANCE

    if not check_breakthrough(trendline, latest["close"], index):
        return BreakoutValidation(
            is_valid=False,
            confidence=0.0,
            contributions=[contribution("breakthrough", 0.0, "latest close has not crossed the line")],
        )

    contributions: list[ScoreContribution] = []

    confirmations = count_confirmations(trendline, df, config.confirmation_lookback)
    if confirmations < config.min_confirmation_candles:
        return BreakoutValidation(
            is_valid=False,
            confidence=0.3,
            contributions=[contribution("confirmation", 0.0, f"{confirmations} confirming closes")],
        )
    contributions.append(contribution(
        "confirmation", confirmations * config.confirmation_bonus, f"{confirmations} confirming closes",
    ))

    if has_strong_candle(df.iloc[-5:], upward):
        contributions.append(contribution("candlestick", config.candlestick_bonus, "strong breakout candle"))

    volume_ok, volume_factor = volume_confirmation(df, config.min_volume_factor, config.volume_lookback)
    if config.require_volume_confirmation and not volume_ok:
        contributions.append(contribution(
            "volume", -config.volume_penalty, f"volume factor {volume_factor:.2f} unconfirmed",
        ))
        running = fold_score(config.base_confidence, contributions, 0.0, 1.0)
        if running < 0.5:
            logger.debug("Breakout rejected on volume at %.2f", running)
            return BreakoutValidation(
                is_valid=False,
                confidence=running,
                contributions=contributions,
                volume_factor=volume_factor,
            )
    elif volume_ok:
        contributions.append(contribution(
            "volume", config.volume_weight * min(2.0, volume_factor - 1), f"volume factor {volume_factor:.2f}",
        ))

    htf_breakout = False
    if higher_timeframe is not None and len(higher_timeframe) > 0:
        aligned, htf_strength = higher_timeframe_alignment(higher_timeframe, upward, line_price)
        htf_breakout, _ = higher_timeframe_breakout(higher_timeframe, upward)

        if config.require_higher_timeframe_alignment and not aligned:
            contributions.append(contribution(
                "higher_timeframe", -config.htf_misaligned_penalty, "higher timeframe not aligned",
            ))
        elif aligned:
            contributions.append(contribution(
                "higher_timeframe", config.htf_weight * htf_strength, f"aligned strength {htf_strength:.2f}",
            ))
            if htf_breakout:
                contributions.append(contribution(
                    "higher_timeframe_breakout", config.htf_breakout_bonus, "higher timeframe breaking out",
                ))
    elif config.require_higher_timeframe_alignment:
        contributions.append(contribution(
            "higher_timeframe", -config.htf_missing_penalty, "higher timeframe data missing",
        ))

    momentum = momentum_score(df, upward, config.momentum_lookback)
    contributions.append(contribution(
        "momentum", momentum, f"momentum {momentum:+.2f}", weight=config.momentum_weight,
    ))

    strength = breakout_strength(latest, line_price, upward)
    contributions.append(contribution(
        "breakout_strength", strength, f"close {strength:.2f} half-ranges past line",
        weight=config.breakout_strength_weight,
    ))

    contributions.append(contribution(
        "trendline_strength", trendline.strength, f"{trendline.kind.value} line",
        weight=config.trendline_strength_weight,
    ))

    risk = false_breakout_risk(df, trendline, upward)
    contributions.append(contribution(
        "false_breakout_risk", -risk, f"risk {risk:.2f}", weight=config.false_breakout_weight,
    ))

    confidence = fold_score(config.base_confidence, contributions, 0.0, 1.0)
    return _result(
        confidence,
        contributions,
        config,
        volume_factor=volume_factor,
        false_breakout_risk=risk,
        higher_timeframe_breakout=htf_breakout,
    )
