"""Additive confidence scoring from named contributions."""

from typing import Iterable

from trendscan.core.models import ScoreContribution


def contribution(name: str, delta: float, rationale: str = "", weight: float = 1.0) -> ScoreContribution:
    """Shorthand constructor used by the individual heuristics."""
    return ScoreContribution(name=name, delta=float(delta), rationale=rationale, weight=weight)


def fold_score(
    base: float,
    contributions: Iterable[ScoreContribution],
    lower: float,
    upper: float,
) -> float:
    """Sum weighted deltas onto a base score and clamp to [lower, upper]."""
    total = base + sum(c.weighted for c in contributions)
    return min(upper, max(lower, total))


def explain(contributions: Iterable[ScoreContribution]) -> list[str]:
    """Human-readable audit trail, one line per non-zero contribution."""
    return [
        f"{c.name}: {c.weighted:+.3f} ({c.rationale})" if c.rationale else f"{c.name}: {c.weighted:+.3f}"
        for c in contributions
        if c.weighted != 0
    ]
