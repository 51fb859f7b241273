"""
Chart pattern confidence scoring.

``validate_pattern`` scores a named pattern on a 0-100 scale starting from
a neutral 50. Every heuristic below is an independent function returning a
ScoreContribution, so each can be tested in isolation and the final score
is an auditable fold over the list.
"""

from typing import Optional

import numpy as np
import pandas as pd

from trendscan.config.logging import get_logger
from trendscan.core.config import AnalysisConfig, ChannelConfig, PatternValidationConfig
from trendscan.core.models import (
    Channel,
    ChannelKind,
    Direction,
    PatternEvent,
    PatternSignal,
    PatternValidation,
    ScoreContribution,
)
from trendscan.features.channels import classify_channel
from trendscan.features.indicators import (
    atr,
    atr_percent,
    atr_stop_loss,
    atr_target_price,
    ema,
    is_volume_rising,
    macd,
    rsi,
    volume_ratio,
)
from trendscan.features.pattern_validators import (
    STRUCTURE_VALIDATORS,
    normalize_pattern_name,
    pattern_direction,
)
from trendscan.features.scoring import contribution, fold_score

logger = get_logger("features.pattern_validation")

OPPOSING_CHANNEL = {
    Direction.BULLISH: ChannelKind.DESCENDING,
    Direction.BEARISH: ChannelKind.ASCENDING,
}

ALIGNED_CHANNEL = {
    Direction.BULLISH: ChannelKind.ASCENDING,
    Direction.BEARISH: ChannelKind.DESCENDING,
}


# =============================================================================
# PRIMARY TIMEFRAME HEURISTICS
# =============================================================================


def score_volume(df: pd.DataFrame) -> ScoreContribution:
    """Expanding volume supports a breakout; drying volume undermines it."""
    expansion = volume_ratio(df, 5)
    rising = is_volume_rising(df, 5)

    if expansion > 1.5 and rising:
        return contribution("volume", 20, f"volume expansion {expansion:.2f}")
    if rising:
        return contribution("volume", 15, "volume rising")
    if expansion < 0.7:
        return contribution("volume", -15, f"volume drying up {expansion:.2f}")
    return contribution("volume", -10, "volume not rising")


def score_momentum(df: pd.DataFrame, direction: Direction) -> ScoreContribution:
    """Five-bar close change agreeing with the pattern direction."""
    close = df["close"].to_numpy(dtype=float)
    reference = close[-6] if len(close) >= 6 else close[0]
    positive = close[-1] > reference

    if positive == (direction == Direction.BULLISH):
        return contribution("momentum", 10, "momentum agrees")
    return contribution("momentum", -15, "momentum opposes")


def score_structure(pattern_type: str, df: pd.DataFrame) -> ScoreContribution:
    """Blend in the pattern-specific structural check; unknown patterns count as 60."""
    validator = STRUCTURE_VALIDATORS.get(normalize_pattern_name(pattern_type))
    if validator is None:
        return contribution("structure", (60 - 50) / 2, "no structural check for pattern")

    check = validator(df)
    if not check.is_valid:
        return contribution("structure", -20, check.reason)
    return contribution("structure", (check.confidence - 50) / 2, check.reason)


def score_channel_direction(channel: Channel, direction: Direction) -> ScoreContribution:
    if channel.kind == ALIGNED_CHANNEL[direction]:
        return contribution("channel_direction", 15, f"{channel.kind.value} channel agrees")
    if channel.kind == ChannelKind.HORIZONTAL:
        return contribution("channel_direction", 5, "horizontal channel")
    return contribution("channel_direction", -15, f"{channel.kind.value} channel")


def score_channel_strength(channel: Channel) -> ScoreContribution:
    if channel.strength > 0.7:
        return contribution("channel_strength", 10, f"strong channel {channel.strength:.2f}")
    if channel.strength < 0.4:
        return contribution("channel_strength", -10, f"weak channel {channel.strength:.2f}")
    return contribution("channel_strength", 0, f"channel {channel.strength:.2f}")


def score_macd(df: pd.DataFrame, direction: Direction) -> ScoreContribution:
    """Latest MACD line above (bullish) or below (bearish) its signal."""
    result = macd(df)
    line = float(result["macd_line"].iloc[-1])
    signal = float(result["signal_line"].iloc[-1])
    histogram = float(result["histogram"].iloc[-1])

    if direction == Direction.BULLISH:
        favorable = line > signal or histogram > 0
    else:
        favorable = line < signal or histogram < 0

    if favorable:
        return contribution("macd", 15, "macd agrees")
    return contribution("macd", -15, "macd opposes")


def score_rsi(df: pd.DataFrame, direction: Direction, period: int = 14) -> ScoreContribution:
    """Prefer entries with room to run: low RSI for longs, high RSI for shorts."""
    value = rsi(df, period).iloc[-1]
    if np.isnan(value):
        return contribution("rsi", 0, "rsi unavailable")

    if direction == Direction.BULLISH:
        if value < 40:
            return contribution("rsi", 15, f"rsi {value:.0f}")
        if value < 60:
            return contribution("rsi", 5, f"rsi {value:.0f}")
        return contribution("rsi", -10, f"rsi {value:.0f} stretched")

    if value > 60:
        return contribution("rsi", 15, f"rsi {value:.0f}")
    if value > 40:
        return contribution("rsi", 5, f"rsi {value:.0f}")
    return contribution("rsi", -10, f"rsi {value:.0f} stretched")


def ema_pattern(df: pd.DataFrame) -> str:
    """
    Classify the EMA 7/50/100 stack.

    Returns one of ``allBullish``, ``allBearish`` (with 100 bars of history),
    ``7over50``, ``7under50`` (without) or ``mixed``.
    """
    fast = ema(df, 7).iloc[-1]
    mid = ema(df, 50).iloc[-1]

    if len(df) >= 100:
        slow = ema(df, 100).iloc[-1]
        if fast > mid > slow:
            return "allBullish"
        if fast < mid < slow:
            return "allBearish"
        return "mixed"

    if fast > mid:
        return "7over50"
    if fast < mid:
        return "7under50"
    return "mixed"


def score_ema(pattern: str, direction: Direction) -> ScoreContribution:
    aligned = {
        Direction.BULLISH: ("allBullish", "7over50"),
        Direction.BEARISH: ("allBearish", "7under50"),
    }
    if pattern in aligned[direction]:
        return contribution("ema_stack", 10, pattern)
    if pattern == "mixed":
        return contribution("ema_stack", -5, pattern)
    return contribution("ema_stack", -15, pattern)


def score_volatility(df: pd.DataFrame, period: int = 14) -> ScoreContribution:
    """Larger ATR leaves room for the target."""
    value = atr_percent(df, period)
    if value > 3:
        return contribution("volatility", 5, f"atr {value:.2f}%")
    if value > 1.5:
        return contribution("volatility", 3, f"atr {value:.2f}%")
    return contribution("volatility", -5, f"atr {value:.2f}%")


def score_min_price(df: pd.DataFrame, min_price: float = 10.0) -> ScoreContribution:
    price = float(df["close"].iloc[-1])
    if price < min_price:
        return contribution("min_price", -10, f"price {price:.2f} below {min_price:.2f}")
    return contribution("min_price", 0, "")


def count_false_breakouts(df: pd.DataFrame, direction: Direction, lookback: int = 20) -> int:
    """
    Pokes of more than 1% past the previous bar's extreme that reverse on
    the next close, over the last ``lookback`` candles.
    """
    recent = df.iloc[-lookback:]
    high = recent["high"].to_numpy(dtype=float)
    low = recent["low"].to_numpy(dtype=float)
    close = recent["close"].to_numpy(dtype=float)

    count = 0
    for t in range(1, len(recent) - 1):
        if direction == Direction.BULLISH:
            if high[t] > high[t - 1] * 1.01 and close[t + 1] < close[t]:
                count += 1
        elif low[t] < low[t - 1] * 0.99 and close[t + 1] > close[t]:
            count += 1
    return count


def score_false_breakouts(df: pd.DataFrame, direction: Direction, lookback: int = 20) -> ScoreContribution:
    count = count_false_breakouts(df, direction, lookback)
    if count > 1:
        return contribution("false_breakouts", -15, f"{count} recent false breakouts")
    if count == 1:
        return contribution("false_breakouts", -5, "one recent false breakout")
    return contribution("false_breakouts", 0, "")


def is_clean_structure(df: pd.DataFrame, window: int = 10) -> bool:
    """At most one oversized candle and tightly aligned highs and lows."""
    recent = df.iloc[-window:]
    ranges = (recent["high"] - recent["low"]).to_numpy(dtype=float)
    avg_range = ranges.mean()
    if avg_range == 0:
        return False

    erratic = int((ranges > avg_range * 2).sum())
    deviation = (np.std(recent["high"].to_numpy(dtype=float)) + np.std(recent["low"].to_numpy(dtype=float)))
    return erratic <= 1 and deviation / (2 * avg_range) < 0.5


def score_structure_quality(df: pd.DataFrame) -> ScoreContribution:
    if is_clean_structure(df):
        return contribution("price_structure", 10, "clean structure")
    return contribution("price_structure", -5, "messy structure")


def has_recent_gap(df: pd.DataFrame, window: int = 5) -> bool:
    """Gap up or down between any consecutive pair of the last ``window`` candles."""
    recent = df.iloc[-window:]
    high = recent["high"].to_numpy(dtype=float)
    low = recent["low"].to_numpy(dtype=float)
    gaps = (low[1:] > high[:-1]) | (high[1:] < low[:-1])
    return bool(gaps.any())


def score_gap(df: pd.DataFrame) -> ScoreContribution:
    if has_recent_gap(df):
        return contribution("gap", -15, "recent gap")
    return contribution("gap", 0, "")


# =============================================================================
# HIGHER TIMEFRAME HEURISTICS
# =============================================================================


def _near(price: float, level: Optional[float], tolerance: float) -> bool:
    return bool(level) and abs(price - level) / level < tolerance


def swing_breakout(df: pd.DataFrame, bullish: bool, lookback: int = 10) -> tuple[bool, float]:
    """
    Latest close more than 0.5% beyond the extreme of the previous
    ``lookback - 1`` candles.

    Returns:
        Tuple of (is_breakout, strength in [0, 1])
    """
    if len(df) < lookback:
        return False, 0.0

    close = float(df["close"].iloc[-1])
    prior = df.iloc[-lookback:-1]
    if bullish:
        level = float(prior["high"].max())
        move = (close - level) / level * 100
    else:
        level = float(prior["low"].min())
        move = (level - close) / level * 100

    return move > 0.5, max(0.0, min(1.0, move / 2))


def score_higher_timeframe(
    htf: pd.DataFrame,
    direction: Direction,
    config: PatternValidationConfig,
    channel_config: ChannelConfig,
) -> tuple[list[ScoreContribution], bool]:
    """
    Higher-timeframe trend, key level and breakout.

    Returns:
        Tuple of (contributions, is_higher_timeframe_breakout)
    """
    bullish = direction == Direction.BULLISH
    close = htf["close"].to_numpy(dtype=float)
    contributions = []

    if (close[-1] > close[-6]) == bullish:
        contributions.append(contribution("htf_trend", 25, "higher timeframe trend agrees"))
    else:
        contributions.append(contribution("htf_trend", -30, "higher timeframe trend opposes"))

    channel = classify_channel(htf, config=channel_config)
    if bullish:
        at_level = _near(float(htf["low"].iloc[-1]), channel.support_level, config.near_level_tolerance)
    else:
        at_level = _near(float(htf["high"].iloc[-1]), channel.resistance_level, config.near_level_tolerance)
    if at_level:
        contributions.append(contribution("htf_level", 20, "higher timeframe at key level"))

    is_breakout, strength = swing_breakout(htf, bullish)
    if is_breakout:
        contributions.append(contribution("htf_breakout", 30, f"higher timeframe breakout {strength:.2f}"))

    return contributions, is_breakout


def score_daily(
    daily: pd.DataFrame,
    direction: Direction,
    config: PatternValidationConfig,
    channel_config: ChannelConfig,
) -> tuple[list[ScoreContribution], bool]:
    """
    Daily trend over ten bars and breakout from a strong daily channel.

    Returns:
        Tuple of (contributions, is_daily_channel_breakout)
    """
    bullish = direction == Direction.BULLISH
    close = daily["close"].to_numpy(dtype=float)
    contributions = []

    if (close[-1] > close[-10]) == bullish:
        contributions.append(contribution("daily_trend", 20, "daily trend agrees"))
    else:
        contributions.append(contribution("daily_trend", -25, "daily trend opposes"))

    channel = classify_channel(daily, config=channel_config)
    if bullish:
        at_boundary = _near(float(daily["high"].iloc[-1]), channel.resistance_level, config.near_level_tolerance)
    else:
        at_boundary = _near(float(daily["low"].iloc[-1]), channel.support_level, config.near_level_tolerance)

    breakout = channel.strength > 0.6 and at_boundary
    if breakout:
        contributions.append(contribution("daily_channel", 25, "breaking a strong daily channel"))

    return contributions, breakout


def score_confluence(
    htf: pd.DataFrame,
    daily: pd.DataFrame,
    direction: Direction,
    channel_config: ChannelConfig,
) -> ScoreContribution:
    """Neither the higher-timeframe nor the daily channel opposes the pattern."""
    opposing = OPPOSING_CHANNEL[direction]
    htf_kind = classify_channel(htf, config=channel_config).kind
    daily_kind = classify_channel(daily, config=channel_config).kind

    if htf_kind != opposing and daily_kind != opposing:
        return contribution("confluence", 15, "multi-timeframe channels aligned")
    return contribution("confluence", 0, "")


# =============================================================================
# VALIDATION
# =============================================================================


def validate_pattern(
    pattern_type: str,
    df: pd.DataFrame,
    direction: Optional[Direction] = None,
    higher_timeframe: Optional[pd.DataFrame] = None,
    daily: Optional[pd.DataFrame] = None,
    ema_stack: Optional[str] = None,
    config: AnalysisConfig = AnalysisConfig(),
) -> PatternValidation:
    """
    Score a chart pattern ending at the latest candle of ``df``.

    Args:
        pattern_type: Pattern name, e.g. "Double Bottom" or "bull_flag"
        df: Ascending OHLCV DataFrame
        direction: Expected direction; derived from the name when None
        higher_timeframe: Optional higher-timeframe candles (used with >= 7)
        daily: Optional daily candles (used with >= 10)
        ema_stack: Precomputed EMA stack label; computed from ``df`` when None
        config: AnalysisConfig

    Returns:
        PatternValidation with confidence in [0, 100]
    """
    settings = config.pattern
    if len(df) < settings.min_candles:
        logger.debug("Pattern %s skipped: %d candles", pattern_type, len(df))
        return PatternValidation(is_valid=False, confidence=0.0)

    if direction is None or direction == Direction.NEUTRAL:
        direction = pattern_direction(pattern_type)

    channel = classify_channel(df, config=config.channel)

    contributions = [
        score_volume(df),
        score_momentum(df, direction),
        score_structure(pattern_type, df),
        score_channel_direction(channel, direction),
        score_channel_strength(channel),
        score_macd(df, direction),
        score_rsi(df, direction, settings.rsi_period),
        score_ema(ema_stack or ema_pattern(df), direction),
        score_volatility(df, settings.atr_period),
        score_min_price(df, settings.min_price),
    ]

    htf_breakout = False
    if higher_timeframe is not None and len(higher_timeframe) >= 7:
        htf_contributions, htf_breakout = score_higher_timeframe(
            higher_timeframe, direction, settings, config.channel,
        )
        contributions.extend(htf_contributions)

    if daily is not None and len(daily) >= 10:
        daily_contributions, daily_breakout = score_daily(daily, direction, settings, config.channel)
        contributions.extend(daily_contributions)
        htf_breakout = htf_breakout or daily_breakout

    contributions.append(score_false_breakouts(df, direction, settings.false_breakout_lookback))
    contributions.append(score_structure_quality(df))
    contributions.append(score_gap(df))

    if higher_timeframe is not None and daily is not None:
        contributions.append(score_confluence(higher_timeframe, daily, direction, config.channel))

    confidence = fold_score(settings.base_score, contributions, 0.0, 100.0)
    return PatternValidation(
        is_valid=confidence >= settings.validity_threshold,
        confidence=confidence,
        contributions=[c for c in contributions if c.weighted != 0],
        channel_kind=channel.kind,
        channel_strength=channel.strength,
        higher_timeframe_breakout=htf_breakout,
    )


def build_pattern_signal(
    event: PatternEvent,
    df: pd.DataFrame,
    validation: PatternValidation,
    symbol: str = "",
    timeframe: str = "",
    config: AnalysisConfig = AnalysisConfig(),
) -> PatternSignal:
    """
    Turn a detected pattern and its validation into a tradeable signal.

    Entry is the close of the pattern's last candle. The pattern's own
    target and stop are used when they sit on the correct side of entry;
    otherwise ATR multiples from entry take their place.
    """
    entry_index = min(event.end_index, len(df) - 1)
    entry_price = float(df["close"].iloc[entry_index])
    bullish = event.direction != Direction.BEARISH
    atr_value = atr(df.iloc[:entry_index + 1], config.pattern.atr_period)

    target = event.target_price
    if target is None or (target <= entry_price if bullish else target >= entry_price):
        target = atr_target_price(entry_price, atr_value, bullish, config.backtest.target_atr_multiple)

    stop = event.stop_price
    if stop is None or (stop >= entry_price if bullish else stop <= entry_price):
        stop = atr_stop_loss(entry_price, atr_value, bullish, config.backtest.stop_atr_multiple)

    entry_date = df.index[entry_index]
    return PatternSignal(
        symbol=symbol,
        timeframe=timeframe,
        pattern_type=event.pattern_type,
        direction=Direction.BULLISH if bullish else Direction.BEARISH,
        entry_price=entry_price,
        target_price=float(target),
        stop_loss=float(stop),
        confidence_score=validation.confidence,
        channel_kind=validation.channel_kind,
        channel_strength=validation.channel_strength,
        higher_timeframe_breakout=validation.higher_timeframe_breakout,
        entry_index=entry_index,
        entry_date=entry_date.to_pydatetime() if isinstance(entry_date, pd.Timestamp) else None,
    )
