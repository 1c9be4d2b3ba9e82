"""Pydantic schemas."""

from consensus.schemas.common import ApiResponse
from consensus.schemas.analyst import (
    ActionType,
    AnalystSummary,
    ConsensusResult,
    RatingDistribution,
    RatingTier,
    UpgradeEvent,
)
from consensus.schemas.stock import (
    AggregatedPayload,
    CompanyProfile,
    Provenance,
    Quote,
    RawUpgradeEvent,
    RecommendationSnapshot,
    RecommendationTrend,
    RefreshReport,
    StockSnapshot,
)

__all__ = [
    "ApiResponse",
    "ActionType",
    "AnalystSummary",
    "ConsensusResult",
    "RatingDistribution",
    "RatingTier",
    "UpgradeEvent",
    "AggregatedPayload",
    "CompanyProfile",
    "Provenance",
    "Quote",
    "RawUpgradeEvent",
    "RecommendationSnapshot",
    "RecommendationTrend",
    "RefreshReport",
    "StockSnapshot",
]
