"""Finnhub adapter – the primary provider.

Quote and profile work on the free tier; recommendation trends and the
upgrade/downgrade feed may be refused (403) for keys without access, which
the orchestrator treats like any other failure.
"""

from __future__ import annotations

import logging

import httpx

from consensus.config import settings
from consensus.providers.base import HTTPProvider, as_float, epoch_to_datetime
from consensus.schemas.analyst import RatingDistribution
from consensus.schemas.stock import (
    CompanyProfile,
    Quote,
    RawUpgradeEvent,
    RecommendationSnapshot,
    RecommendationTrend,
)

logger = logging.getLogger("consensus.providers.finnhub")


class FinnhubProvider(HTTPProvider):
    name = "finnhub"

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.finnhub_api_key
        super().__init__(
            base_url or settings.finnhub_base_url,
            timeout or settings.provider_timeout_seconds,
            client,
        )

    async def _call(self, path: str, operation: str, symbol: str, **params):
        if not self.api_key:
            raise self._unavailable(operation, symbol, "no API key configured")
        params = {"symbol": symbol, "token": self.api_key, **params}
        logger.debug("finnhub %s %s", operation, symbol)
        return await self._get_json(path, operation=operation, symbol=symbol, params=params)

    async def fetch_quote(self, symbol: str) -> Quote:
        data = await self._call("/quote", "fetch_quote", symbol)
        # Finnhub answers unknown symbols with an all-zero quote.
        price = as_float(data.get("c")) if isinstance(data, dict) else None
        if not price:
            raise self._unavailable("fetch_quote", symbol, "empty quote")
        return Quote(
            price=price,
            change=as_float(data.get("d")),
            percent_change=as_float(data.get("dp")),
            high=as_float(data.get("h")),
            low=as_float(data.get("l")),
            open=as_float(data.get("o")),
            previous_close=as_float(data.get("pc")),
            timestamp=epoch_to_datetime(data.get("t")),
        )

    async def fetch_profile(self, symbol: str) -> CompanyProfile:
        data = await self._call("/stock/profile2", "fetch_profile", symbol)
        if not isinstance(data, dict) or not data.get("name"):
            raise self._unavailable("fetch_profile", symbol, "empty profile")
        market_cap = as_float(data.get("marketCapitalization"))
        return CompanyProfile(
            name=data.get("name"),
            exchange=data.get("exchange"),
            industry=data.get("finnhubIndustry"),
            country=data.get("country"),
            currency=data.get("currency"),
            # Finnhub reports market cap in millions.
            market_cap=market_cap * 1_000_000 if market_cap is not None else None,
            ipo=data.get("ipo"),
            weburl=data.get("weburl"),
            logo=data.get("logo"),
        )

    async def fetch_recommendation_trend(self, symbol: str) -> RecommendationTrend:
        rows = await self._call("/stock/recommendation", "fetch_recommendation_trend", symbol)
        if not isinstance(rows, list) or not rows:
            raise self._unavailable("fetch_recommendation_trend", symbol, "no trend rows")

        # Rows carry calendar periods ("2024-06-01"); newest first after sorting.
        rows = sorted(
            (r for r in rows if isinstance(r, dict)),
            key=lambda r: str(r.get("period") or ""),
            reverse=True,
        )
        snapshots = [
            RecommendationSnapshot(
                period=f"{-i}m" if i else "0m",
                distribution=RatingDistribution.model_validate(row),
            )
            for i, row in enumerate(rows)
        ]
        return RecommendationTrend(snapshots=snapshots)

    async def fetch_upgrade_history(self, symbol: str) -> list[RawUpgradeEvent]:
        rows = await self._call("/stock/upgrade-downgrade", "fetch_upgrade_history", symbol)
        if not isinstance(rows, list):
            raise self._unavailable("fetch_upgrade_history", symbol, "unexpected payload")
        return [
            RawUpgradeEvent(
                firm=row.get("company"),
                from_grade=row.get("fromGrade") or None,
                to_grade=row.get("toGrade") or None,
                timestamp=epoch_to_datetime(row.get("gradeTime")),
            )
            for row in rows
            if isinstance(row, dict)
        ]
