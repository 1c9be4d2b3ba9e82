"""Relative-month buckets for recommendation-trend snapshots."""

from __future__ import annotations

import logging
import re
from typing import Iterable

from consensus.schemas.analyst import RatingDistribution

logger = logging.getLogger("consensus.periods")

CURRENT_PERIOD = "0m"

_PERIOD_RE = re.compile(r"^([+-]?\d+)m$")


def parse_offset(period: str) -> int:
    """Month offset embedded in a period key: "0m" -> 0, "-2m" -> -2.

    Raises:
        ValueError: if the key is not of the form ``<signed int>m``.
    """
    match = _PERIOD_RE.match(period.strip()) if isinstance(period, str) else None
    if match is None:
        raise ValueError(f"Invalid period key: {period!r}")
    return int(match.group(1))


def sort_periods(periods: Iterable[str]) -> list[str]:
    """Newest first, by numeric offset ("-10m" comes after "-2m")."""
    return sorted(periods, key=parse_offset, reverse=True)


class PeriodBuckets:
    """Distributions keyed by period, with a never-empty ``select``."""

    def __init__(self, distributions: dict[str, RatingDistribution] | None = None) -> None:
        self._distributions = dict(distributions or {})

    def keys(self) -> list[str]:
        return sort_periods(self._distributions)

    def items(self) -> list[tuple[str, RatingDistribution]]:
        return [(key, self._distributions[key]) for key in self.keys()]

    def __contains__(self, period: str) -> bool:
        return period in self._distributions

    def __len__(self) -> int:
        return len(self._distributions)

    def select(self, period: str = CURRENT_PERIOD) -> RatingDistribution:
        """Requested period, else the current one, else an all-zero distribution."""
        if period in self._distributions:
            return self._distributions[period]
        if CURRENT_PERIOD in self._distributions:
            return self._distributions[CURRENT_PERIOD]
        return RatingDistribution.zero()

    def as_dict(self) -> dict[str, RatingDistribution]:
        return {key: dist for key, dist in self.items()}


def bucket(snapshots: Iterable[tuple[str, RatingDistribution]]) -> PeriodBuckets:
    """Group snapshots by period key.  Malformed keys are skipped, later duplicates win."""
    distributions: dict[str, RatingDistribution] = {}
    for period, distribution in snapshots:
        try:
            parse_offset(period)
        except ValueError:
            logger.warning("Skipping recommendation snapshot with period %r", period)
            continue
        distributions[period.strip()] = distribution
    return PeriodBuckets(distributions)
