"""Unit tests for chart pattern detection."""

import numpy as np
import pandas as pd
import pytest

from trendscan.core import Direction, PatternDetectionConfig
from trendscan.features.patterns import (
    PatternType,
    calculate_slope,
    detect_double_top_bottom,
    detect_flags,
    detect_patterns,
    find_local_extrema,
    prices_equal,
)


def tight_frame(ohlcv_factory, close):
    df = ohlcv_factory(np.asarray(close, dtype=float))
    df["high"] = df["close"] + 0.5
    df["low"] = df["close"] - 0.5
    return df


@pytest.fixture
def double_top_data(ohlcv_factory):
    """Peaks near 120 at bars 10 and 30 with a trough at 105 on bar 20."""
    close = np.concatenate([
        np.linspace(100, 120, 11),
        np.linspace(118.5, 105, 10),
        np.linspace(106.5, 119.8, 10),
        np.linspace(118, 100, 10),
    ])
    return tight_frame(ohlcv_factory, close)


@pytest.fixture
def double_bottom_data(double_top_data):
    """Mirror image of the double top around 110."""
    df = double_top_data.copy()
    df["close"] = 220 - double_top_data["close"]
    df["high"] = df["close"] + 0.5
    df["low"] = df["close"] - 0.5
    return df


@pytest.fixture
def bull_flag_data(ohlcv_factory):
    """A 12% pole into bar 10 followed by a steady drift lower."""
    close = np.concatenate([
        np.full(5, 100.0),
        np.array([102.0, 104.0, 106.0, 108.0, 110.0, 112.0]),
        111.8 - 0.1 * np.arange(20),
    ])
    return tight_frame(ohlcv_factory, close)


class TestHelpers:
    """Test pattern helper functions."""

    def test_local_extrema(self):
        """A single peak is found with enough bars on each side."""
        series = pd.Series([1, 2, 3, 4, 5, 4, 3, 2, 1], dtype=float)

        assert find_local_extrema(series, order=3, find_max=True) == [4]
        assert find_local_extrema(series, order=3, find_max=False) == []

    def test_prices_equal(self):
        """Prices within the tolerance are equal."""
        assert prices_equal(100.0, 101.5, 0.02)
        assert not prices_equal(100.0, 103.0, 0.02)

    def test_calculate_slope(self):
        """A line rising two per bar has slope two."""
        assert calculate_slope(pd.Series([1.0, 3.0, 5.0, 7.0])) == pytest.approx(2.0)


class TestDoubleTopBottom:
    """Test double top and bottom detection."""

    def test_double_top(self, double_top_data):
        """Two equal peaks around a trough form a bearish double top."""
        patterns = detect_double_top_bottom(double_top_data)

        assert len(patterns) == 1
        pattern = patterns[0]
        assert pattern.pattern_type == PatternType.DOUBLE_TOP.value
        assert pattern.direction == Direction.BEARISH
        assert (pattern.start_index, pattern.end_index) == (10, 35)
        assert pattern.metadata["second_extreme"] == 30
        assert pattern.metadata["neckline"] == pytest.approx(104.5)
        assert pattern.target_price == pytest.approx(104.5 - (120.5 - 104.5))
        assert pattern.stop_price == pytest.approx(120.5)

    def test_double_bottom(self, double_bottom_data):
        """Two equal troughs around a peak form a bullish double bottom."""
        patterns = detect_double_top_bottom(double_bottom_data)

        assert len(patterns) == 1
        pattern = patterns[0]
        assert pattern.pattern_type == PatternType.DOUBLE_BOTTOM.value
        assert pattern.direction == Direction.BULLISH
        assert pattern.target_price > pattern.metadata["neckline"] > pattern.stop_price

    def test_visible_on_its_last_bar(self, double_top_data):
        """The pattern is already detectable on the candles up to its end bar."""
        pattern = detect_double_top_bottom(double_top_data)[0]

        seen = detect_double_top_bottom(double_top_data.iloc[:pattern.end_index + 1])
        too_early = detect_double_top_bottom(double_top_data.iloc[:pattern.end_index])

        assert [(p.start_index, p.end_index) for p in seen] == [(10, 35)]
        assert too_early == []

    def test_unequal_peaks_rejected(self, double_top_data):
        """Peaks further apart than the tolerance are not a double top."""
        config = PatternDetectionConfig(price_tolerance=0.001)

        assert detect_double_top_bottom(double_top_data, config) == []


class TestFlags:
    """Test flag detection."""

    def test_bull_flag(self, bull_flag_data):
        """A sharp rise and a gently falling channel form a bull flag."""
        flags = detect_flags(bull_flag_data)

        assert len(flags) == 1
        flag = flags[0]
        assert (flag.start_index, flag.end_index) == (5, 25)
        assert flag.pattern_type == PatternType.BULL_FLAG.value
        assert flag.direction == Direction.BULLISH
        assert flag.target_price > flag.stop_price

    def test_pole_ends_on_extreme_close(self, bull_flag_data):
        """Bars while the pole is still rising do not start their own flag."""
        flags = detect_flags(bull_flag_data)

        assert flags[0].metadata["pole_return"] == pytest.approx(112.0 / 102.0 - 1)

    def test_bear_flag(self, bull_flag_data):
        """The mirror image is a bear flag."""
        mirrored = bull_flag_data.copy()
        mirrored["close"] = 220 - bull_flag_data["close"]
        mirrored["high"] = mirrored["close"] + 0.5
        mirrored["low"] = mirrored["close"] - 0.5

        flags = detect_flags(mirrored)

        assert [(f.start_index, f.end_index) for f in flags] == [(5, 25)]
        assert all(f.pattern_type == PatternType.BEAR_FLAG.value for f in flags)
        assert all(f.target_price < f.stop_price for f in flags)

    def test_no_flag_in_steady_trend(self, linear_up_data):
        """A consolidation moving with the pole is not a flag."""
        assert detect_flags(linear_up_data) == []


class TestDetectPatterns:
    """Test combined detection."""

    def test_sorted_most_recent_first(self, sample_ohlcv):
        """Patterns come back newest first with valid indices."""
        patterns = detect_patterns(sample_ohlcv)
        ends = [p.end_index for p in patterns]

        assert ends == sorted(ends, reverse=True)
        for pattern in patterns:
            assert 0 <= pattern.start_index <= pattern.end_index < len(sample_ohlcv)
            assert 0.0 <= pattern.confidence <= 1.0

    def test_nothing_in_straight_line(self, linear_up_data):
        """A straight rise has no patterns."""
        assert detect_patterns(linear_up_data) == []

    def test_includes_both_families(self, double_top_data, bull_flag_data):
        """Reversal and continuation detectors both run."""
        assert any(p.pattern_type == "double_top" for p in detect_patterns(double_top_data))
        assert any(p.pattern_type == "bull_flag" for p in detect_patterns(bull_flag_data))
