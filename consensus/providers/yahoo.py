"""Yahoo Finance adapter – the secondary provider.

Uses the public quote and quoteSummary endpoints.  quoteSummary wraps most
numbers as ``{"raw": ..., "fmt": ...}``; ``raw_value`` unwraps them.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from consensus.config import settings
from consensus.providers.base import HTTPProvider, as_float, epoch_to_datetime, raw_value
from consensus.schemas.analyst import RatingDistribution
from consensus.schemas.stock import (
    CompanyProfile,
    Quote,
    RawUpgradeEvent,
    RecommendationSnapshot,
    RecommendationTrend,
)

logger = logging.getLogger("consensus.providers.yahoo")


class YahooProvider(HTTPProvider):
    name = "yahoo"

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(
            base_url or settings.yahoo_base_url,
            timeout or settings.provider_timeout_seconds,
            client,
        )

    async def _quote_summary(self, symbol: str, operation: str, modules: list[str]) -> dict:
        data = await self._get_json(
            f"/v10/finance/quoteSummary/{symbol}",
            operation=operation,
            symbol=symbol,
            params={"modules": ",".join(modules)},
        )
        if not isinstance(data, dict):
            raise self._unavailable(operation, symbol, "unexpected payload")
        summary = self._section(data, "quoteSummary", operation=operation, symbol=symbol)
        if summary.get("error") or not summary.get("result"):
            reason = summary.get("error") or "empty quoteSummary"
            raise self._unavailable(operation, symbol, str(reason))
        results = summary["result"]
        if not isinstance(results, list) or not isinstance(results[0], dict):
            raise self._unavailable(operation, symbol, "unexpected payload")
        return results[0]

    async def fetch_quote(self, symbol: str) -> Quote:
        data = await self._get_json(
            "/v7/finance/quote",
            operation="fetch_quote",
            symbol=symbol,
            params={"symbols": symbol},
        )
        if not isinstance(data, dict):
            raise self._unavailable("fetch_quote", symbol, "unexpected payload")
        response = self._section(data, "quoteResponse", operation="fetch_quote", symbol=symbol)
        results = response.get("result") or []
        row: Any = results[0] if isinstance(results, list) and results else {}
        if not isinstance(row, dict):
            raise self._unavailable("fetch_quote", symbol, "unexpected payload")
        price = as_float(row.get("regularMarketPrice"))
        if not price:
            raise self._unavailable("fetch_quote", symbol, "empty quote")

        return Quote(
            price=price,
            change=as_float(row.get("regularMarketChange")),
            percent_change=as_float(row.get("regularMarketChangePercent")),
            high=as_float(row.get("regularMarketDayHigh")),
            low=as_float(row.get("regularMarketDayLow")),
            open=as_float(row.get("regularMarketOpen")),
            previous_close=as_float(row.get("regularMarketPreviousClose")),
            timestamp=epoch_to_datetime(row.get("regularMarketTime")),
        )

    async def fetch_profile(self, symbol: str) -> CompanyProfile:
        result = await self._quote_summary(symbol, "fetch_profile", ["assetProfile", "price"])
        asset = self._section(result, "assetProfile", operation="fetch_profile", symbol=symbol)
        price = self._section(result, "price", operation="fetch_profile", symbol=symbol)
        name = price.get("longName") or price.get("shortName")
        if not name and not asset:
            raise self._unavailable("fetch_profile", symbol, "empty profile")
        return CompanyProfile(
            name=name,
            exchange=price.get("exchangeName"),
            industry=asset.get("industry"),
            country=asset.get("country"),
            currency=price.get("currency"),
            market_cap=as_float(price.get("marketCap")),
            weburl=asset.get("website"),
        )

    async def fetch_recommendation_trend(self, symbol: str) -> RecommendationTrend:
        result = await self._quote_summary(
            symbol,
            "fetch_recommendation_trend",
            ["recommendationTrend", "financialData"],
        )
        op = "fetch_recommendation_trend"
        trend = self._section(result, "recommendationTrend", operation=op, symbol=symbol)
        financial = self._section(result, "financialData", operation=op, symbol=symbol)
        trend_rows = trend.get("trend") or []
        if not isinstance(trend_rows, list):
            raise self._unavailable(op, symbol, "unexpected payload: trend is not a list")

        snapshots = []
        for row in trend_rows:
            if not isinstance(row, dict) or not isinstance(row.get("period"), str):
                logger.warning("[%s] Skipping invalid recommendation trend item: %r", symbol, row)
                continue
            snapshots.append(
                RecommendationSnapshot(
                    period=row["period"],
                    distribution=RatingDistribution.model_validate(
                        {k: raw_value(v) for k, v in row.items()}
                    ),
                )
            )

        if not snapshots and not financial:
            raise self._unavailable("fetch_recommendation_trend", symbol, "no trend data")

        analysts = as_float(financial.get("numberOfAnalystOpinions"))
        return RecommendationTrend(
            snapshots=snapshots,
            recommendation_key=financial.get("recommendationKey"),
            recommendation_mean=as_float(financial.get("recommendationMean")),
            number_of_analysts=int(analysts) if analysts is not None else None,
        )

    async def fetch_upgrade_history(self, symbol: str) -> list[RawUpgradeEvent]:
        result = await self._quote_summary(
            symbol, "fetch_upgrade_history", ["upgradeDowngradeHistory"]
        )
        section = self._section(
            result, "upgradeDowngradeHistory", operation="fetch_upgrade_history", symbol=symbol
        )
        history = section.get("history") or []
        if not isinstance(history, list):
            raise self._unavailable(
                "fetch_upgrade_history", symbol, "unexpected payload: history is not a list"
            )
        events = []
        for item in history:
            if not isinstance(item, dict):
                continue
            events.append(
                RawUpgradeEvent(
                    firm=item.get("firm"),
                    from_grade=item.get("fromGrade") or None,
                    to_grade=item.get("toGrade") or None,
                    # epochGradeDate is in seconds.
                    timestamp=epoch_to_datetime(item.get("epochGradeDate")),
                )
            )
        return events
