"""Pytest configuration and fixtures."""

import numpy as np
import pandas as pd
import pytest


def make_ohlcv(close, spread=1.0, volume=1_000_000, start="2024-01-01", freq="D"):
    """Build an OHLCV frame around a close series with a fixed high/low spread."""
    close = np.asarray(close, dtype=float)
    n = len(close)
    dates = pd.date_range(start, periods=n, freq=freq)
    open_ = np.concatenate([[close[0]], close[:-1]])
    return pd.DataFrame({
        "open": open_,
        "high": np.maximum(open_, close) + spread,
        "low": np.minimum(open_, close) - spread,
        "close": close,
        "volume": np.full(n, volume, dtype=float) if np.isscalar(volume) else np.asarray(volume, dtype=float),
    }, index=dates)


@pytest.fixture
def sample_ohlcv():
    """Generate sample OHLCV data for testing."""
    np.random.seed(42)
    n = 150

    dates = pd.date_range("2024-01-01", periods=n, freq="D")
    close = 100 + np.cumsum(np.random.randn(n) * 2)

    df = pd.DataFrame({
        "open": close + np.random.randn(n) * 0.5,
        "high": close + abs(np.random.randn(n)) + 0.5,
        "low": close - abs(np.random.randn(n)) - 0.5,
        "close": close,
        "volume": np.random.randint(1000000, 5000000, n).astype(float),
    }, index=dates)
    df["high"] = df[["open", "high", "close"]].max(axis=1)
    df["low"] = df[["open", "low", "close"]].min(axis=1)

    return df


@pytest.fixture
def trending_up_data():
    """Generate uptrending OHLCV data."""
    np.random.seed(42)
    n = 120

    dates = pd.date_range("2024-01-01", periods=n, freq="D")
    trend = np.linspace(100, 150, n)
    noise = np.random.randn(n) * 0.5
    close = trend + noise

    df = pd.DataFrame({
        "open": close - np.random.rand(n) * 0.5,
        "high": close + abs(np.random.randn(n)) + 0.2,
        "low": close - abs(np.random.randn(n)) - 0.6,
        "close": close,
        "volume": np.random.randint(1000000, 5000000, n).astype(float),
    }, index=dates)

    return df


@pytest.fixture
def linear_up_data():
    """Strictly increasing closes 100..199."""
    return make_ohlcv(np.arange(100, 200, dtype=float), spread=0.5)


@pytest.fixture
def flat_data():
    """Constant close with mirror-symmetric noise well under 0.1%."""
    half = np.array([0.02, -0.03, 0.05, -0.01, 0.04, -0.05, 0.03, -0.02, 0.01, -0.04] * 3)
    noise = np.concatenate([half, half[::-1]])
    return make_ohlcv(100 + noise, spread=0.3)


@pytest.fixture
def ohlcv_factory():
    """Factory building OHLCV frames from a close series."""
    return make_ohlcv
