"""
Candle input normalization.

Every analysis function works on an ascending OHLCV DataFrame with lowercase
column names and positional indexing.
"""

from typing import Iterable, Union

import pandas as pd

from trendscan.core.models import Candle

OHLCV_COLUMNS = ["open", "high", "low", "close", "volume"]

CandleInput = Union[pd.DataFrame, Iterable[Candle], Iterable[dict]]


def normalize_candles(candles: CandleInput) -> pd.DataFrame:
    """
    Normalize candle input to an ascending OHLCV DataFrame.

    Accepts a DataFrame (timestamps as index or a ``timestamp`` column) or an
    iterable of Candle models / dicts. Column names are lowercased and
    stripped, a missing volume column is filled with zeros, and rows are
    stably sorted by timestamp so descending input is reversed.

    Args:
        candles: Candle data in any supported shape

    Returns:
        DataFrame with open, high, low, close, volume columns

    Raises:
        ValueError: If any of the open/high/low/close columns is missing
    """
    if isinstance(candles, pd.DataFrame):
        df = candles.copy()
    else:
        rows = [c.model_dump() if isinstance(c, Candle) else dict(c) for c in candles]
        df = pd.DataFrame(rows)

    if df.empty:
        return pd.DataFrame(columns=OHLCV_COLUMNS, dtype=float)

    if isinstance(df.columns, pd.MultiIndex):
        df.columns = df.columns.get_level_values(0)
    df.columns = df.columns.astype(str).str.lower().str.strip()

    missing = [c for c in ("open", "high", "low", "close") if c not in df.columns]
    if missing:
        raise ValueError(f"Candle data missing columns: {missing}")

    if "volume" not in df.columns:
        df["volume"] = 0.0

    if "timestamp" in df.columns and df["timestamp"].notna().all():
        df = df.set_index("timestamp")

    if not df.index.is_monotonic_increasing:
        df = df.sort_index(kind="mergesort")

    return df[OHLCV_COLUMNS].astype(float)


def to_candles(df: pd.DataFrame) -> list[Candle]:
    """Convert a normalized DataFrame back into Candle models."""
    timestamps = df.index if isinstance(df.index, pd.DatetimeIndex) else [None] * len(df)
    return [
        Candle(
            timestamp=ts.to_pydatetime() if ts is not None else None,
            open=row.open,
            high=row.high,
            low=row.low,
            close=row.close,
            volume=row.volume,
        )
        for ts, row in zip(timestamps, df.itertuples(index=False))
    ]
