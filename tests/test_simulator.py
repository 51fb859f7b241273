"""Unit tests for forward trade simulation."""

import numpy as np
import pandas as pd
import pytest

from trendscan.core import BacktestConfig, Direction, ExitReason, PatternSignal
from trendscan.engine.backtest import (
    analyze_breakout_within_period,
    calculate_candles_to_target,
    run_backtest,
    simulate_trade,
)


def forward_frame(highs, lows, closes=None):
    highs = np.asarray(highs, dtype=float)
    lows = np.asarray(lows, dtype=float)
    if closes is None:
        closes = (highs + lows) / 2
    return pd.DataFrame({
        "open": closes,
        "high": highs,
        "low": lows,
        "close": closes,
        "volume": np.full(len(highs), 1000.0),
    }, index=pd.date_range("2024-02-01", periods=len(highs), freq="D"))


def make_signal(entry=100.0, target=110.0, stop=90.0, direction=Direction.BULLISH, entry_index=None):
    return PatternSignal(
        symbol="TEST",
        timeframe="1d",
        pattern_type="bull_flag" if direction == Direction.BULLISH else "bear_flag",
        direction=direction,
        entry_price=entry,
        target_price=target,
        stop_loss=stop,
        confidence_score=75.0,
        entry_index=entry_index,
    )


class TestSimulateTrade:
    """Test single trade replay."""

    def test_target_on_third_candle(self):
        """Entry 100, stop 90, target 110 exits at the target on candle three."""
        candles = forward_frame([103, 107, 112], [98, 101, 104])

        result = simulate_trade(make_signal(), candles)

        assert result.exit_index == 2
        assert result.exit_price == 110.0
        assert result.successful
        assert result.profit_loss_percent == pytest.approx(10.0)
        assert result.candles_to_breakout == 3
        assert result.exit_reason == ExitReason.TARGET
        assert result.max_drawdown_percent == pytest.approx(2.0)
        assert result.risk_reward == pytest.approx(1.0)
        assert result.exit_date == candles.index[2].to_pydatetime()

    def test_target_reached_by_high(self):
        """Highs 105, 108, 111 reach a 110 target on the third candle."""
        candles = forward_frame([105, 108, 111, 109, 107], [101, 103, 106, 104, 102])

        result = simulate_trade(make_signal(), candles)

        assert result.successful
        assert result.candles_to_breakout == 3
        assert result.exit_price == 110.0

    def test_stop_loss(self):
        """A low through the stop exits at the stop."""
        candles = forward_frame([101, 99, 95], [97, 89, 85])

        result = simulate_trade(make_signal(), candles)

        assert not result.successful
        assert result.exit_reason == ExitReason.STOP_LOSS
        assert result.exit_price == 90.0
        assert result.profit_loss_percent == pytest.approx(-10.0)
        assert result.candles_to_breakout == 2

    def test_target_checked_before_stop(self):
        """A candle spanning both levels counts as a target hit."""
        result = simulate_trade(make_signal(), forward_frame([115], [85]))

        assert result.exit_reason == ExitReason.TARGET
        assert result.successful

    def test_timeout_at_series_end(self):
        """An unresolved trade shorter than the holding period times out on its last candle."""
        closes = np.full(25, 104.0)
        candles = forward_frame(closes + 1, closes - 1, closes)

        result = simulate_trade(make_signal(), candles)

        assert result.exit_reason == ExitReason.TIMEOUT
        assert result.exit_index == 24
        assert result.exit_price == 104.0
        assert result.successful
        assert result.candles_to_breakout == 25

    def test_timeout_at_holding_period(self):
        """Trades are closed once the holding period is used up."""
        closes = np.full(40, 96.0)
        candles = forward_frame(closes + 1, closes - 1, closes)

        result = simulate_trade(make_signal(), candles, config=BacktestConfig(max_holding_period=10))

        assert result.exit_reason == ExitReason.TIMEOUT
        assert result.candles_to_breakout == 10
        assert not result.successful
        assert result.profit_loss_percent == pytest.approx(-4.0)

    def test_insufficient_data(self):
        """A short unresolved series reports insufficient data with zero metrics."""
        candles = forward_frame([101, 102], [99, 100])

        result = simulate_trade(make_signal(), candles)

        assert result.exit_reason == ExitReason.INSUFFICIENT_DATA
        assert not result.successful
        assert result.profit_loss == 0.0
        assert result.candles_to_breakout == 0
        assert result.exit_index is None

    def test_empty_forward_window(self):
        """No forward candles at all is insufficient data, not an error."""
        candles = forward_frame([101, 102], [99, 100])

        result = simulate_trade(make_signal(entry_index=1), candles, entry_index=1)

        assert result.exit_reason == ExitReason.INSUFFICIENT_DATA

    def test_short_series_with_zero_minimum(self):
        """Without a forward minimum a short series times out at its end."""
        candles = forward_frame([101, 102], [99, 100])

        result = simulate_trade(make_signal(), candles, config=BacktestConfig(min_forward_candles=0))

        assert result.exit_reason == ExitReason.TIMEOUT
        assert result.exit_index == 1

    def test_bearish_trade(self):
        """Bearish trades win when the low reaches a lower target."""
        candles = forward_frame([101, 99, 96], [97, 93, 89])
        signal = make_signal(target=90.0, stop=105.0, direction=Direction.BEARISH)

        result = simulate_trade(signal, candles)

        assert result.successful
        assert result.exit_price == 90.0
        assert result.profit_loss_percent == pytest.approx(10.0)
        assert result.max_drawdown_percent == pytest.approx(1.0)

    def test_default_stop(self):
        """A stop on the wrong side of entry is replaced by a 5% stop."""
        candles = forward_frame([101, 99], [96, 94])

        result = simulate_trade(make_signal(stop=120.0), candles)

        assert result.stop_loss == pytest.approx(95.0)
        assert result.exit_reason == ExitReason.STOP_LOSS
        assert result.candles_to_breakout == 2

    def test_entry_index_offsets_exit(self):
        """With an entry row, forward candles start on the next row."""
        candles = forward_frame([100, 100, 103, 112], [99, 99, 98, 104])

        result = simulate_trade(make_signal(entry_index=1), candles, entry_index=1)

        assert result.exit_index == 3
        assert result.candles_to_breakout == 2


class TestRunBacktest:
    """Test replaying several signals."""

    def test_uses_signal_entry_index(self):
        """Each signal is replayed from its own entry row."""
        candles = forward_frame([100, 112, 100, 100], [99, 104, 85, 99])
        signals = [make_signal(entry_index=0), make_signal(entry_index=1)]

        results = run_backtest(signals, candles)

        assert [r.exit_reason for r in results] == [ExitReason.TARGET, ExitReason.STOP_LOSS]

    def test_no_signals(self):
        """No signals gives no results."""
        assert run_backtest([], forward_frame([1], [1])) == []


class TestTargetAnalysis:
    """Test target timing helpers."""

    def test_candles_to_target(self):
        """The first candle reaching the target is counted one-based."""
        candles = forward_frame([105, 108, 111], [100, 101, 102])

        assert calculate_candles_to_target(candles, 110.0) == 3
        assert calculate_candles_to_target(candles, 120.0) == 3
        assert calculate_candles_to_target(candles, 100.5, bullish=False) == 1

    def test_breakout_within_period(self):
        """The move is measured from the first close to the breakout high."""
        candles = forward_frame([102, 108, 111], [98, 104, 106], [100, 106, 110])

        result = analyze_breakout_within_period(candles, 110.0)

        assert result.occurred
        assert result.days_to_breakout == 3
        assert result.price_at_breakout == 111.0
        assert result.percent_move == pytest.approx(11.0)

    def test_no_breakout_within_period(self):
        """Targets outside the window are not reached."""
        candles = forward_frame([102, 108, 111], [98, 104, 106])

        result = analyze_breakout_within_period(candles, 111.0, max_days=2)

        assert not result.occurred
        assert result.days_to_breakout == 2
        assert result.price_at_breakout is None
