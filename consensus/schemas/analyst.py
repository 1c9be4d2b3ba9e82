"""Analyst-rating Pydantic schemas."""

from __future__ import annotations

from datetime import datetime
from enum import Enum, IntEnum

from pydantic import Field, NonNegativeInt, field_validator

from consensus.schemas.common import CamelModel

NOT_AVAILABLE = "N/A"


class RatingTier(IntEnum):
    """Canonical five-tier rating scale; the value doubles as the scoring weight."""

    STRONG_SELL = 1
    SELL = 2
    HOLD = 3
    BUY = 4
    STRONG_BUY = 5

    @property
    def label(self) -> str:
        return _TIER_LABELS[self]


_TIER_LABELS = {
    RatingTier.STRONG_SELL: "Strong Sell",
    RatingTier.SELL: "Sell",
    RatingTier.HOLD: "Hold",
    RatingTier.BUY: "Buy",
    RatingTier.STRONG_BUY: "Strong Buy",
}


class ActionType(str, Enum):
    UPGRADE = "upgrade"
    DOWNGRADE = "downgrade"
    MAINTAIN = "maintain"
    INIT = "init"

    @classmethod
    def _missing_(cls, value):
        # Some providers say "reiterated" for an unchanged rating.
        if isinstance(value, str) and value.lower() == "reiterated":
            return cls.MAINTAIN
        return None


# Field name on RatingDistribution for each tier.
TIER_FIELDS: dict[RatingTier, str] = {
    RatingTier.STRONG_BUY: "strong_buy",
    RatingTier.BUY: "buy",
    RatingTier.HOLD: "hold",
    RatingTier.SELL: "sell",
    RatingTier.STRONG_SELL: "strong_sell",
}


class RatingDistribution(CamelModel):
    """Analyst counts per tier for one snapshot.

    All five tiers are always present.  Missing or non-numeric upstream
    values become 0; negative counts fail validation.
    """

    strong_buy: NonNegativeInt = 0
    buy: NonNegativeInt = 0
    hold: NonNegativeInt = 0
    sell: NonNegativeInt = 0
    strong_sell: NonNegativeInt = 0

    @field_validator("strong_buy", "buy", "hold", "sell", "strong_sell", mode="before")
    @classmethod
    def _zero_fill(cls, v):
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            return 0
        if isinstance(v, float) and v.is_integer():
            return int(v)
        return v

    @classmethod
    def zero(cls) -> RatingDistribution:
        return cls()

    @property
    def total(self) -> int:
        return self.strong_buy + self.buy + self.hold + self.sell + self.strong_sell

    def count(self, tier: RatingTier) -> int:
        return getattr(self, TIER_FIELDS[tier])

    def percentages(self) -> dict[RatingTier, float]:
        """Share of analysts per tier, in percent.  All zeros when nobody is covering."""
        total = self.total
        if total == 0:
            return {tier: 0.0 for tier in TIER_FIELDS}
        return {tier: self.count(tier) * 100.0 / total for tier in TIER_FIELDS}


class ConsensusResult(CamelModel):
    """Weighted consensus for one distribution.  Derived, never stored."""

    score: float | None = Field(None, description="Weighted average on the 1-5 scale")
    label: str = NOT_AVAILABLE
    total_analysts: int = 0


class UpgradeEvent(CamelModel):
    """A single classified rating change."""

    firm: str
    from_grade: str
    to_grade: str
    action_type: ActionType
    occurred_at: datetime
    standardized_from_grade: str = NOT_AVAILABLE
    standardized_to_grade: str = NOT_AVAILABLE


class AnalystSummary(CamelModel):
    """Analyst block served to the UI layer.

    Keys are always present; missing data is ``None`` or an empty collection.
    """

    consensus_key: str = NOT_AVAILABLE
    consensus_mean: float | None = None
    number_of_analysts: int = 0
    gauge_score: float | None = None
    gauge_percent: float | None = None
    gauge_band: str | None = None
    consensus: ConsensusResult = Field(default_factory=ConsensusResult)
    periods: list[str] = Field(default_factory=list)
    distribution_over_time: dict[str, RatingDistribution] = Field(default_factory=dict)
    rating_history: list[UpgradeEvent] = Field(default_factory=list)
    unrecognized_grades: list[str] = Field(default_factory=list)
