"""Quote, profile and merged per-symbol payload schemas."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import Field

from consensus.schemas.analyst import AnalystSummary, RatingDistribution
from consensus.schemas.common import CamelModel


class Provenance(str, Enum):
    """Which providers contributed to a merged payload."""

    LIVE_ALL = "liveAll"
    LIVE_PARTIAL = "livePartial"
    FALLBACK_ONLY = "fallbackOnly"


class Quote(CamelModel):
    price: float
    change: float | None = None
    percent_change: float | None = None
    high: float | None = None
    low: float | None = None
    open: float | None = None
    previous_close: float | None = None
    timestamp: datetime | None = None


class CompanyProfile(CamelModel):
    name: str | None = None
    exchange: str | None = None
    industry: str | None = None
    country: str | None = None
    currency: str | None = None
    market_cap: float | None = None
    ipo: str | None = None
    weburl: str | None = None
    logo: str | None = None


class RecommendationSnapshot(CamelModel):
    """Distribution for one relative period key ("0m", "-1m", ...)."""

    period: str
    distribution: RatingDistribution


class RecommendationTrend(CamelModel):
    """Recommendation snapshots plus whatever headline consensus the provider publishes."""

    snapshots: list[RecommendationSnapshot] = Field(default_factory=list)
    recommendation_key: str | None = None
    recommendation_mean: float | None = None
    number_of_analysts: int | None = None


class RawUpgradeEvent(CamelModel):
    """Upgrade/downgrade row as received, before classification."""

    firm: str | None = None
    from_grade: str | None = None
    to_grade: str | None = None
    timestamp: datetime | None = None


class StockSnapshot(CamelModel):
    """Merged upstream data for one symbol; this is the blob stored in the cache."""

    symbol: str
    quote: Quote | None = None
    profile: CompanyProfile | None = None
    recommendation_trend: RecommendationTrend | None = None
    upgrade_history: list[RawUpgradeEvent] = Field(default_factory=list)
    sources: dict[str, str | None] = Field(default_factory=dict)
    failed_fields: list[str] = Field(default_factory=list)


class AggregatedPayload(CamelModel):
    """What a caller receives for one symbol, always tagged with provenance and age."""

    symbol: str
    quote: Quote | None = None
    profile: CompanyProfile | None = None
    analyst: AnalystSummary
    provenance: Provenance
    sources: dict[str, str | None] = Field(default_factory=dict)
    failed_fields: list[str] = Field(default_factory=list)
    updated_at: datetime
    age_seconds: float = 0.0
    from_cache: bool = False


class RefreshReport(CamelModel):
    success: list[str] = Field(default_factory=list)
    failures: list[str] = Field(default_factory=list)
