"""Unit tests for channel classification and channel breakouts."""

import numpy as np
import pytest

from trendscan.core import ChannelConfig, ChannelKind, Direction
from trendscan.features.channels import (
    channel_boundaries,
    classify_channel,
    classify_slope,
    detect_channel_breakout,
)


@pytest.fixture
def range_then_breakout(ohlcv_factory):
    """Thirty candles oscillating between 99 and 101, then a close at 106."""
    close = np.array([99.5, 100.5] * 15 + [106.0])
    df = ohlcv_factory(close, spread=0.5)
    df["open"] = df["close"]
    df["high"] = df["close"] + 0.5
    df["low"] = df["close"] - 0.5
    return df


class TestClassification:
    """Test channel kind and strength."""

    def test_linear_rise_is_ascending(self, linear_up_data):
        """Closes 100..199 form a strong ascending channel."""
        channel = classify_channel(linear_up_data)

        assert channel.kind == ChannelKind.ASCENDING
        assert channel.strength > 0.5
        assert channel.established

    def test_flat_series_is_horizontal(self, flat_data):
        """A constant close with tiny noise is horizontal."""
        channel = classify_channel(flat_data)

        assert channel.kind == ChannelKind.HORIZONTAL

    def test_falling_series_is_descending(self, ohlcv_factory):
        """Steadily falling closes form a descending channel."""
        channel = classify_channel(ohlcv_factory(np.arange(200, 150, -1, dtype=float), spread=0.5))

        assert channel.kind == ChannelKind.DESCENDING

    def test_too_few_candles(self, ohlcv_factory):
        """Fewer than seven candles is undefined with zero strength."""
        channel = classify_channel(ohlcv_factory([100.0, 101.0, 102.0, 103.0, 104.0, 105.0]))

        assert channel.kind == ChannelKind.UNDEFINED
        assert channel.strength == 0.0
        assert not channel.established

    def test_slope_thresholds(self):
        """Normalized slopes map onto kinds around the threshold."""
        assert classify_slope(0.2) == ChannelKind.HORIZONTAL
        assert classify_slope(3.0) == ChannelKind.ASCENDING
        assert classify_slope(-3.0) == ChannelKind.DESCENDING

    def test_boundaries_window(self, linear_up_data):
        """Boundary arrays shrink by the window size minus one."""
        upper, lower = channel_boundaries(linear_up_data, window=5)

        assert len(upper) == len(linear_up_data) - 4
        assert np.all(upper >= lower)


class TestHigherTimeframe:
    """Test higher-timeframe adjustments."""

    def test_matching_higher_timeframe_caps_strength(self, linear_up_data):
        """A matching established higher timeframe boosts strength up to 1."""
        base = classify_channel(linear_up_data)
        boosted = classify_channel(linear_up_data, higher_timeframe=linear_up_data)

        assert boosted.kind == ChannelKind.ASCENDING
        assert boosted.strength >= base.strength
        assert boosted.strength <= 1.0

    def test_conflicting_higher_timeframe_weakens(self, linear_up_data, ohlcv_factory):
        """An opposing higher timeframe scales strength down."""
        falling = ohlcv_factory(np.arange(300, 200, -1, dtype=float), spread=0.5)
        config = ChannelConfig(established_multiplier=1.0)

        base = classify_channel(linear_up_data, config=config)
        weakened = classify_channel(linear_up_data, higher_timeframe=falling, config=config)

        assert weakened.strength == pytest.approx(base.strength * config.conflict_multiplier)


class TestChannelBreakout:
    """Test closes beyond channel boundaries."""

    def test_breakout_above_range(self, range_then_breakout):
        """A close well above an established range is a bullish breakout."""
        breakout = detect_channel_breakout(range_then_breakout)

        assert breakout.breakout
        assert breakout.direction == Direction.BULLISH
        assert breakout.strength > 1.0

    def test_direction_filter(self, range_then_breakout):
        """Asking only for bearish breakouts ignores a bullish one."""
        assert not detect_channel_breakout(range_then_breakout, Direction.BEARISH).breakout

    def test_no_breakout_inside_range(self, range_then_breakout):
        """A close inside the range is not a breakout."""
        assert not detect_channel_breakout(range_then_breakout.iloc[:-1]).breakout
