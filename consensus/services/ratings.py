"""Analyst grade vocabulary -> canonical rating tier (no I/O)."""

from __future__ import annotations

import logging

from consensus.schemas.analyst import NOT_AVAILABLE, RatingTier

logger = logging.getLogger("consensus.ratings")

# Grouped by intent; extend here rather than comparing strings elsewhere.
GRADE_VOCABULARY: dict[RatingTier, frozenset[str]] = {
    RatingTier.STRONG_BUY: frozenset({"strong buy", "star performer"}),
    RatingTier.BUY: frozenset({"buy", "outperform", "accumulate", "overweight", "positive"}),
    RatingTier.HOLD: frozenset({"hold", "neutral", "market perform", "equal-weight"}),
    RatingTier.SELL: frozenset({"sell", "underperform", "reduce", "underweight", "negative"}),
    RatingTier.STRONG_SELL: frozenset({"strong sell"}),
}

_LOOKUP: dict[str, RatingTier] = {
    grade: tier for tier, grades in GRADE_VOCABULARY.items() for grade in grades
}


def _clean(raw: str | None) -> str:
    # Yahoo's recommendationKey uses snake_case ("strong_buy").
    return " ".join((raw or "").replace("_", " ").split()).lower()


def normalize(raw: str | None) -> RatingTier | None:
    """Map a free-text grade to its tier, or ``None`` when the grade is unknown.

    Unknown grades are *not* treated as Hold: they carry no
    weight and are reported separately.
    """
    return _LOOKUP.get(_clean(raw))


def standardize(raw: str | None) -> str:
    """Display label for a raw grade ("Buy", "Hold", ...) or "N/A"."""
    tier = normalize(raw)
    return tier.label if tier is not None else NOT_AVAILABLE


class NormalizationGapTracker:
    """Collects grades the vocabulary does not know about.

    Each distinct grade is logged once; ``grades`` keeps first-seen order.
    """

    def __init__(self, symbol: str | None = None) -> None:
        self.symbol = symbol
        self._seen: dict[str, None] = {}

    def normalize(self, raw: str | None) -> RatingTier | None:
        tier = normalize(raw)
        if tier is None and raw and raw.strip():
            key = raw.strip()
            if key not in self._seen:
                self._seen[key] = None
                logger.warning("Unrecognized analyst grade %r (symbol=%s)", key, self.symbol)
        return tier

    def standardize(self, raw: str | None) -> str:
        tier = self.normalize(raw)
        return tier.label if tier is not None else NOT_AVAILABLE

    @property
    def grades(self) -> list[str]:
        return list(self._seen)
