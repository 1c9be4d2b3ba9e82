"""Consensus score / label / gauge helpers (no I/O)."""

from __future__ import annotations

from consensus.schemas.analyst import (
    NOT_AVAILABLE,
    ConsensusResult,
    RatingDistribution,
    RatingTier,
)
from consensus.services.ratings import standardize

# (exclusive lower bound, tier) – first match wins.
LABEL_THRESHOLDS: tuple[tuple[float, RatingTier], ...] = (
    (4.5, RatingTier.STRONG_BUY),
    (3.5, RatingTier.BUY),
    (2.5, RatingTier.HOLD),
    (1.5, RatingTier.SELL),
)

# Visual gauge bands on the 0-100 scale.  Independent of the label table.
GAUGE_BANDS: tuple[tuple[float, RatingTier], ...] = (
    (75.0, RatingTier.STRONG_BUY),
    (50.0, RatingTier.BUY),
    (37.5, RatingTier.HOLD),
    (25.0, RatingTier.SELL),
)


def weighted_score(distribution: RatingDistribution) -> float | None:
    """Average tier weight (1-5).  Returns None when no analyst is counted."""
    total = distribution.total
    if total == 0:
        return None
    weighted_sum = sum(int(tier) * distribution.count(tier) for tier in RatingTier)
    return weighted_sum / total


def label_for(score: float | None) -> str:
    if score is None:
        return NOT_AVAILABLE
    for bound, tier in LABEL_THRESHOLDS:
        if score > bound:
            return tier.label
    return RatingTier.STRONG_SELL.label


def score(distribution: RatingDistribution) -> ConsensusResult:
    """Consensus for one distribution.

    >>> score(RatingDistribution(strong_buy=10, buy=5, hold=3, sell=1, strong_sell=1)).label
    'Buy'
    """
    value = weighted_score(distribution)
    return ConsensusResult(
        score=value,
        label=label_for(value),
        total_analysts=distribution.total,
    )


def gauge_percent(score_value: float | None) -> float | None:
    """Map a 1-5 score onto 0-100 for visual gauges."""
    if score_value is None:
        return None
    return (score_value - 1.0) / 4.0 * 100.0


def gauge_band(percent: float | None) -> str | None:
    if percent is None:
        return None
    for bound, tier in GAUGE_BANDS:
        if percent > bound:
            return tier.label
    return RatingTier.STRONG_SELL.label


def consensus_from_key(recommendation_key: str | None) -> str:
    """Standardize a provider's own headline recommendation ("strong_buy", "outperform", ...)."""
    return standardize(recommendation_key)
