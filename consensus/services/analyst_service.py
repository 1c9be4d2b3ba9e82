"""Turn raw recommendation trends and upgrade history into the analyst summary."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable

from consensus.schemas.analyst import NOT_AVAILABLE, AnalystSummary, UpgradeEvent
from consensus.schemas.stock import RawUpgradeEvent, RecommendationTrend
from consensus.services import scoring
from consensus.services.periods import CURRENT_PERIOD, bucket
from consensus.services.ratings import NormalizationGapTracker
from consensus.services.transitions import classify

logger = logging.getLogger("consensus.analyst_service")

NEW_COVERAGE = "New Coverage"
NOT_SPECIFIED = "Not Specified"
UNKNOWN_FIRM = "Unknown Firm"

# Events dated outside this window are treated as corrupt upstream data.
EARLIEST_EVENT_YEAR = 1980
FUTURE_YEAR_TOLERANCE = 5


def build_rating_history(
    symbol: str,
    events: Iterable[RawUpgradeEvent],
    tracker: NormalizationGapTracker,
    now: datetime | None = None,
) -> list[UpgradeEvent]:
    """Classify events and sort them newest first.

    Events without a usable date are dropped.  Equal timestamps keep their
    upstream order.
    """
    now = now or datetime.now(timezone.utc)
    history: list[UpgradeEvent] = []
    for raw in events:
        ts = raw.timestamp
        if ts is None:
            logger.warning("[%s] Missing date in history item from %s", symbol, raw.firm)
            continue
        if ts.year < EARLIEST_EVENT_YEAR or ts.year > now.year + FUTURE_YEAR_TOLERANCE:
            logger.warning("[%s] Unlikely year %d in history item from %s", symbol, ts.year, raw.firm)
            continue
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)

        history.append(
            UpgradeEvent(
                firm=raw.firm or UNKNOWN_FIRM,
                from_grade=raw.from_grade or NEW_COVERAGE,
                to_grade=raw.to_grade or NOT_SPECIFIED,
                action_type=classify(raw.from_grade, raw.to_grade),
                occurred_at=ts,
                standardized_from_grade=(
                    tracker.standardize(raw.from_grade) if raw.from_grade else NOT_AVAILABLE
                ),
                standardized_to_grade=tracker.standardize(raw.to_grade),
            )
        )

    # sorted() is stable with reverse=True, so ties keep upstream order.
    return sorted(history, key=lambda e: e.occurred_at, reverse=True)


def build_analyst_summary(
    symbol: str,
    trend: RecommendationTrend | None,
    history: Iterable[RawUpgradeEvent] = (),
    now: datetime | None = None,
) -> AnalystSummary:
    """Derive consensus, gauge and per-period distributions.

    Always returns a fully keyed summary; with no coverage the score fields are
    ``None`` and the collections are empty.
    """
    tracker = NormalizationGapTracker(symbol)
    trend = trend or RecommendationTrend()

    buckets = bucket((s.period, s.distribution) for s in trend.snapshots)
    current = buckets.select(CURRENT_PERIOD)
    consensus = scoring.score(current)
    percent = scoring.gauge_percent(consensus.score)

    consensus_key = scoring.consensus_from_key(trend.recommendation_key)
    if consensus_key == NOT_AVAILABLE:
        consensus_key = consensus.label

    rating_history = build_rating_history(symbol, history, tracker, now=now)

    return AnalystSummary(
        consensus_key=consensus_key,
        consensus_mean=trend.recommendation_mean,
        number_of_analysts=trend.number_of_analysts or consensus.total_analysts,
        gauge_score=consensus.score,
        gauge_percent=percent,
        gauge_band=scoring.gauge_band(percent),
        consensus=consensus,
        periods=buckets.keys(),
        distribution_over_time=buckets.as_dict(),
        rating_history=rating_history,
        unrecognized_grades=tracker.grades,
    )
