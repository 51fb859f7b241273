"""Swing point (local extreme) detection."""

import numpy as np
import pandas as pd

from trendscan.core.models import SwingKind, SwingPoint


def find_swing_points(
    df: pd.DataFrame,
    lookaround: int = 3,
    use_body: bool = False,
) -> list[SwingPoint]:
    """
    Find swing highs and lows.

    A swing high is strictly greater than the ``lookaround`` bars on each
    side; equal neighbours disqualify it. Swing lows mirror this with lows.
    The first and last ``lookaround`` bars can never be swings.

    Args:
        df: Ascending OHLCV DataFrame
        lookaround: Bars compared on each side
        use_body: Use max/min of open and close instead of high/low

    Returns:
        Swing points ordered by index (a bar can be both a high and a low)
    """
    n = len(df)
    if n < 2 * lookaround + 1:
        return []

    if use_body:
        top = np.maximum(df["open"].to_numpy(dtype=float), df["close"].to_numpy(dtype=float))
        bottom = np.minimum(df["open"].to_numpy(dtype=float), df["close"].to_numpy(dtype=float))
    else:
        top = df["high"].to_numpy(dtype=float)
        bottom = df["low"].to_numpy(dtype=float)

    points: list[SwingPoint] = []
    for i in range(lookaround, n - lookaround):
        left = slice(i - lookaround, i)
        right = slice(i + 1, i + lookaround + 1)

        if top[i] > top[left].max() and top[i] > top[right].max():
            points.append(SwingPoint(index=i, value=float(top[i]), kind=SwingKind.HIGH))

        if bottom[i] < bottom[left].min() and bottom[i] < bottom[right].min():
            points.append(SwingPoint(index=i, value=float(bottom[i]), kind=SwingKind.LOW))

    return points


def find_swing_highs(df: pd.DataFrame, lookaround: int = 3, use_body: bool = False) -> list[SwingPoint]:
    """Swing highs only."""
    return [p for p in find_swing_points(df, lookaround, use_body) if p.kind == SwingKind.HIGH]


def find_swing_lows(df: pd.DataFrame, lookaround: int = 3, use_body: bool = False) -> list[SwingPoint]:
    """Swing lows only."""
    return [p for p in find_swing_points(df, lookaround, use_body) if p.kind == SwingKind.LOW]
