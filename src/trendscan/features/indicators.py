"""
Technical indicators used by the detectors and scorers.

All functions take an ascending OHLCV DataFrame with lowercase columns.
"""

import numpy as np
import pandas as pd
from scipy import stats


# =============================================================================
# MOVING AVERAGES
# =============================================================================


def sma(df: pd.DataFrame, period: int = 20, column: str = "close") -> pd.Series:
    """
    Simple Moving Average.

    Args:
        df: DataFrame with OHLCV data
        period: Number of periods for the moving average
        column: Column to calculate SMA on

    Returns:
        Series with SMA values
    """
    return df[column].rolling(window=period).mean()


def ema(df: pd.DataFrame, period: int = 20, column: str = "close") -> pd.Series:
    """
    Exponential Moving Average seeded with the SMA of the first ``period`` bars.

    The first ``period`` values all equal that seed so the series has no
    leading NaNs. With fewer bars than ``period`` every value is the mean
    of the available bars.

    Args:
        df: DataFrame with OHLCV data
        period: Number of periods for the EMA
        column: Column to calculate EMA on

    Returns:
        Series with EMA values
    """
    values = df[column].to_numpy(dtype=float)
    n = len(values)
    out = np.zeros(n)
    if n == 0:
        return pd.Series(out, index=df.index, name=f"ema_{period}")

    if n < period:
        out[:] = values.mean()
        return pd.Series(out, index=df.index, name=f"ema_{period}")

    seed = values[:period].mean()
    out[:period] = seed
    multiplier = 2 / (period + 1)
    for i in range(period, n):
        out[i] = (values[i] - out[i - 1]) * multiplier + out[i - 1]

    return pd.Series(out, index=df.index, name=f"ema_{period}")


# =============================================================================
# VOLATILITY
# =============================================================================


def true_range(df: pd.DataFrame) -> pd.Series:
    """True range; the first bar has no previous close and uses high - low."""
    high = df["high"]
    low = df["low"]
    prev_close = df["close"].shift()

    tr1 = high - low
    tr2 = (high - prev_close).abs()
    tr3 = (low - prev_close).abs()

    return pd.concat([tr1, tr2, tr3], axis=1).max(axis=1).rename("true_range")


def atr(df: pd.DataFrame, period: int = 14) -> float:
    """
    Average True Range using Wilder smoothing.

    The true ranges start at the second bar. The first ``period`` of them are
    averaged to seed the ATR, which is then smoothed with
    ``(atr * (period - 1) + tr) / period``. With fewer than ``period`` true
    ranges their plain mean is returned; with fewer than two bars, 0.

    Args:
        df: DataFrame with high, low, close columns
        period: ATR period

    Returns:
        Latest ATR value
    """
    if len(df) < 2:
        return 0.0

    trs = true_range(df).to_numpy()[1:]
    if len(trs) < period:
        return float(trs.mean())

    value = trs[:period].mean()
    for tr in trs[period:]:
        value = (value * (period - 1) + tr) / period
    return float(value)


def atr_percent(df: pd.DataFrame, period: int = 14) -> float:
    """ATR of the latest ``period + 1`` bars as a percentage of the latest close."""
    if df.empty:
        return 0.0
    close = df["close"].iloc[-1]
    if close == 0:
        return 0.0
    return atr(df.iloc[-(period + 1):], period) / close * 100


def wick_body_ratio(df: pd.DataFrame) -> float:
    """
    Average wick-to-body ratio: (high - low) / |close - open| summed over bars
    with a non-zero body and divided by the total bar count.

    High values mean long wicks relative to bodies. Returns 0 when no bar
    has a body.
    """
    body = (df["close"] - df["open"]).abs()
    mask = body > 0
    if len(df) == 0 or not mask.any():
        return 0.0
    return float(((df["high"] - df["low"])[mask] / body[mask]).sum() / len(df))


# =============================================================================
# MOMENTUM
# =============================================================================


def rsi(df: pd.DataFrame, period: int = 14, column: str = "close") -> pd.Series:
    """
    Relative Strength Index with Wilder smoothing.

    Args:
        df: DataFrame with price data
        period: RSI period
        column: Column to calculate RSI on

    Returns:
        Series with RSI values (0-100)
    """
    delta = df[column].diff()
    gain = delta.where(delta > 0, 0.0)
    loss = (-delta).where(delta < 0, 0.0)

    avg_gain = gain.ewm(com=period - 1, min_periods=period).mean()
    avg_loss = loss.ewm(com=period - 1, min_periods=period).mean()

    rs = avg_gain / avg_loss
    rsi_values = 100 - (100 / (1 + rs))
    # No losses means maximum strength; a flat window is neutral
    rsi_values = rsi_values.where(avg_loss != 0, 100.0)
    rsi_values = rsi_values.where((avg_gain != 0) | (avg_loss != 0), 50.0)
    rsi_values = rsi_values.where(avg_gain.notna())

    return rsi_values.rename("rsi")


def macd(
    df: pd.DataFrame,
    fast_period: int = 12,
    slow_period: int = 26,
    signal_period: int = 9,
    column: str = "close",
) -> dict[str, pd.Series]:
    """
    Moving Average Convergence Divergence.

    Returns dict with: macd_line, signal_line, histogram
    """
    fast_ema = df[column].ewm(span=fast_period, adjust=False).mean()
    slow_ema = df[column].ewm(span=slow_period, adjust=False).mean()

    macd_line = fast_ema - slow_ema
    signal_line = macd_line.ewm(span=signal_period, adjust=False).mean()
    histogram = macd_line - signal_line

    return {
        "macd_line": macd_line.rename("macd"),
        "signal_line": signal_line.rename("macd_signal"),
        "histogram": histogram.rename("macd_histogram"),
    }


# =============================================================================
# TREND
# =============================================================================


def regression_slope(values: pd.Series) -> float:
    """Least-squares slope of a series against its positional index."""
    if len(values) < 2:
        return 0.0
    x = np.arange(len(values), dtype=float)
    y = values.to_numpy(dtype=float)
    if np.all(y == y[0]):
        return 0.0
    return float(stats.linregress(x, y).slope)


def volume_ratio(df: pd.DataFrame, period: int = 5) -> float:
    """Average volume of the latest ``period`` bars over the ``period`` bars before them."""
    if len(df) < period * 2:
        return 0.0
    volume = df["volume"].to_numpy(dtype=float)
    recent = volume[-period:].mean()
    older = volume[-2 * period:-period].mean()
    if older == 0:
        return 0.0
    return float(recent / older)


def is_volume_rising(df: pd.DataFrame, period: int = 5, factor: float = 1.1) -> bool:
    """True when recent average volume exceeds the prior window by ``factor``."""
    if len(df) < period * 2:
        return False
    volume = df["volume"].to_numpy(dtype=float)
    return bool(volume[-period:].mean() > volume[-2 * period:-period].mean() * factor)


# =============================================================================
# TARGETS
# =============================================================================


def atr_target_price(entry_price: float, atr_value: float, bullish: bool, multiple: float = 2.5) -> float:
    """Target ``multiple`` ATRs from entry in the trade direction."""
    if bullish:
        return entry_price + atr_value * multiple
    return entry_price - atr_value * multiple


def atr_stop_loss(entry_price: float, atr_value: float, bullish: bool, multiple: float = 1.5) -> float:
    """Stop ``multiple`` ATRs from entry against the trade direction."""
    if bullish:
        return entry_price - atr_value * multiple
    return entry_price + atr_value * multiple
