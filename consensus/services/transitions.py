"""Classify a rating change as upgrade / downgrade / maintain / init."""

from __future__ import annotations

from consensus.schemas.analyst import ActionType, RatingTier
from consensus.services.ratings import normalize


def rank(grade: str | None) -> int:
    """Numeric rank of a grade; unknown grades rank as Hold so every pair is comparable."""
    tier = normalize(grade)
    return int(tier if tier is not None else RatingTier.HOLD)


def classify(from_grade: str | None, to_grade: str | None) -> ActionType:
    """Total function over any pair of grades."""
    if from_grade is None or not from_grade.strip():
        return ActionType.INIT
    if (to_grade or "").strip().lower() == from_grade.strip().lower():
        return ActionType.MAINTAIN

    before, after = rank(from_grade), rank(to_grade)
    if after > before:
        return ActionType.UPGRADE
    if after < before:
        return ActionType.DOWNGRADE
    return ActionType.MAINTAIN
