"""Unit tests for trendline breakout validation."""

import numpy as np
import pandas as pd
import pytest

from trendscan.core import BreakoutConfig, HorizontalGeometry, Trendline, TrendlineKind, TrendlineSide
from trendscan.features.breakout import (
    breakout_strength,
    consecutive_volume_increases,
    count_confirmations,
    false_breakout_risk,
    has_strong_candle,
    higher_timeframe_alignment,
    higher_timeframe_breakout,
    momentum_score,
    validate_breakout,
    volume_confirmation,
)
from trendscan.features.scoring import contribution, explain, fold_score


def make_frame(closes, opens, highs, lows, volumes):
    n = len(closes)
    return pd.DataFrame({
        "open": opens,
        "high": highs,
        "low": lows,
        "close": closes,
        "volume": volumes,
    }, index=pd.date_range("2024-01-01", periods=n, freq="D"))


@pytest.fixture
def resistance_line():
    """Horizontal resistance at 100 across the first 19 candles."""
    return Trendline(
        start_index=0,
        end_index=18,
        start_price=100.0,
        end_price=100.0,
        kind=TrendlineKind.HORIZONTAL,
        side=TrendlineSide.RESISTANCE,
        touches=3,
        bounce_percent=100.0,
        strength=0.8,
        geometry=HorizontalGeometry(level=100.0),
    )


@pytest.fixture
def support_line(resistance_line):
    """Horizontal support at 100 across the first 19 candles."""
    return resistance_line.model_copy(update={"side": TrendlineSide.SUPPORT})


@pytest.fixture
def bullish_breakout():
    """Quiet candles under 100 followed by a wide, high-volume close at 103."""
    closes = [98.5] * 19 + [103.0]
    opens = [98.3] * 19 + [98.6]
    highs = [99.0] * 19 + [103.3]
    lows = [98.0] * 19 + [98.5]
    volumes = [1000.0] * 19 + [3000.0]
    return make_frame(closes, opens, highs, lows, volumes)


@pytest.fixture
def bearish_breakdown():
    """Quiet candles above 100 followed by a wide, high-volume close at 97."""
    closes = [101.5] * 19 + [97.0]
    opens = [101.7] * 19 + [101.4]
    highs = [102.0] * 19 + [101.5]
    lows = [101.0] * 19 + [96.7]
    volumes = [1000.0] * 19 + [3000.0]
    return make_frame(closes, opens, highs, lows, volumes)


@pytest.fixture
def rising_higher_timeframe():
    """Twelve rising higher-timeframe candles ending above the line."""
    closes = np.linspace(90, 110, 12)
    opens = closes - 1
    return make_frame(closes, opens, closes + 0.2, opens - 0.2, np.full(12, 5000.0))


class TestValidateBreakout:
    """Test the composite breakout score."""

    def test_strong_breakout_is_valid(self, resistance_line, bullish_breakout):
        """A decisive high-volume close through resistance validates."""
        result = validate_breakout(resistance_line, bullish_breakout)

        assert result.is_valid
        assert 0.7 <= result.confidence <= 1.0
        assert result.volume_factor == pytest.approx(3.0)
        names = {c.name for c in result.contributions}
        assert {"confirmation", "candlestick", "volume", "momentum", "false_breakout_risk"} <= names

    def test_bearish_breakdown_is_valid(self, support_line, bearish_breakdown):
        """Support breaks mirror resistance breaks."""
        result = validate_breakout(support_line, bearish_breakdown)

        assert result.is_valid
        assert not result.higher_timeframe_breakout

    def test_close_not_through_line(self, resistance_line, bullish_breakout):
        """Without a close beyond the line the breakout is rejected outright."""
        df = bullish_breakout.copy()
        df.iloc[-1, df.columns.get_loc("close")] = 99.5

        result = validate_breakout(resistance_line, df)

        assert not result.is_valid
        assert result.confidence == 0.0

    def test_too_few_candles(self, resistance_line, bullish_breakout):
        """Fewer than five candles cannot be validated."""
        result = validate_breakout(resistance_line, bullish_breakout.iloc[-4:])

        assert not result.is_valid
        assert result.confidence == 0.0

    def test_unconfirmed_volume_exits_early(self, resistance_line, bullish_breakout):
        """Missing volume with a weak running score stops validation."""
        df = bullish_breakout.copy()
        df.iloc[-1, df.columns.get_loc("volume")] = 1000.0
        config = BreakoutConfig(confirmation_bonus=0.0)

        result = validate_breakout(resistance_line, df, config=config)

        assert not result.is_valid
        assert result.confidence == pytest.approx(0.4)
        assert result.contributions[-1].name == "volume"

    def test_higher_timeframe_breakout_flag(self, resistance_line, bullish_breakout, rising_higher_timeframe):
        """An aligned higher timeframe breaking out adds its bonus and sets the flag."""
        result = validate_breakout(resistance_line, bullish_breakout, rising_higher_timeframe)

        assert result.higher_timeframe_breakout
        names = {c.name for c in result.contributions}
        assert "higher_timeframe" in names
        assert "higher_timeframe_breakout" in names

    def test_missing_higher_timeframe_penalized(self, resistance_line, bullish_breakout):
        """Required alignment without higher-timeframe data costs confidence."""
        result = validate_breakout(resistance_line, bullish_breakout)
        penalty = [c for c in result.contributions if c.name == "higher_timeframe"]

        assert penalty and penalty[0].weighted < 0


class TestBreakoutSignals:
    """Test the individual breakout heuristics."""

    def test_confirmations(self, resistance_line, bullish_breakout):
        """Only the latest close is above the line."""
        assert count_confirmations(resistance_line, bullish_breakout, 3) == 1

    def test_strong_candle(self, bullish_breakout):
        """A close in the top third of a wide candle is strong."""
        assert has_strong_candle(bullish_breakout.iloc[-5:], upward=True)
        assert not has_strong_candle(bullish_breakout.iloc[-5:], upward=False)

    def test_consecutive_volume_increases(self):
        """Increases are counted back from the latest bar."""
        assert consecutive_volume_increases(np.array([5.0, 1.0, 2.0, 3.0])) == 2
        assert consecutive_volume_increases(np.array([3.0, 2.0])) == 0

    def test_volume_confirmation_needs_history(self, bullish_breakout):
        """Too little history gives a zero factor."""
        assert volume_confirmation(bullish_breakout.iloc[-5:]) == (False, 0.0)

    def test_momentum_bounds(self, bullish_breakout):
        """Momentum is clamped and signed by direction."""
        assert momentum_score(bullish_breakout, upward=True) == pytest.approx(1.0)
        assert momentum_score(bullish_breakout, upward=False) == pytest.approx(-1.0)

    def test_breakout_strength_zero_range(self):
        """A zero-range candle has no measurable strength."""
        candle = pd.Series({"open": 100.0, "high": 100.0, "low": 100.0, "close": 100.0})

        assert breakout_strength(candle, 99.0, upward=True) == 0.0

    def test_false_breakout_risk(self, resistance_line, bullish_breakout):
        """Short history defaults to 0.5; a late breakout adds 0.2."""
        assert false_breakout_risk(bullish_breakout.iloc[-8:], resistance_line, True) == 0.5
        assert false_breakout_risk(bullish_breakout, resistance_line, True) == pytest.approx(0.2)

    def test_higher_timeframe_helpers(self, rising_higher_timeframe):
        """Rising higher-timeframe candles align with and break out upward."""
        aligned, strength = higher_timeframe_alignment(rising_higher_timeframe, True, 100.0)
        is_breakout, _ = higher_timeframe_breakout(rising_higher_timeframe, True)

        assert aligned
        assert strength == pytest.approx(1.0)
        assert is_breakout
        assert not higher_timeframe_alignment(rising_higher_timeframe, False, 100.0)[0]


class TestScoring:
    """Test the additive score fold."""

    def test_fold_clamps(self):
        """Weighted deltas are summed onto the base and clamped."""
        parts = [contribution("a", 1.0, weight=0.2), contribution("b", -0.1)]

        assert fold_score(0.5, parts, 0.0, 1.0) == pytest.approx(0.6)
        assert fold_score(0.5, [contribution("c", 5.0)], 0.0, 1.0) == 1.0

    def test_explain_skips_zero(self):
        """Zero contributions are left out of the audit trail."""
        lines = explain([contribution("a", 0.15, "reason"), contribution("b", 0.0)])

        assert lines == ["a: +0.150 (reason)"]
