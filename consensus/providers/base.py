"""Upstream provider interface and the shared httpx plumbing."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Protocol, runtime_checkable

import httpx

from consensus.errors import ProviderUnavailable
from consensus.schemas.stock import CompanyProfile, Quote, RawUpgradeEvent, RecommendationTrend


@runtime_checkable
class DataProvider(Protocol):
    """Narrow interface the orchestrator calls.  Every method may raise ProviderUnavailable."""

    name: str

    async def fetch_quote(self, symbol: str) -> Quote: ...

    async def fetch_profile(self, symbol: str) -> CompanyProfile: ...

    async def fetch_recommendation_trend(self, symbol: str) -> RecommendationTrend: ...

    async def fetch_upgrade_history(self, symbol: str) -> list[RawUpgradeEvent]: ...

    async def aclose(self) -> None: ...


def raw_value(value: Any) -> Any:
    """Unwrap Yahoo-style ``{"raw": 1.2, "fmt": "1.20"}`` values; pass others through."""
    if isinstance(value, dict):
        return value.get("raw")
    return value


def as_float(value: Any) -> float | None:
    value = raw_value(value)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def epoch_to_datetime(value: Any) -> datetime | None:
    """Epoch seconds -> aware UTC datetime; None for missing or out-of-range values."""
    seconds = as_float(value)
    if not seconds:
        return None
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


class HTTPProvider:
    """Base for httpx-backed providers.

    Every transport or status error is turned into ``ProviderUnavailable`` so
    the orchestrator only has one failure type to reason about.
    """

    name = "http"

    def __init__(
        self,
        base_url: str,
        timeout: float,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={"Accept": "application/json", "User-Agent": "analyst-consensus/0.1"},
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    def _unavailable(self, operation: str, symbol: str, reason: str) -> ProviderUnavailable:
        return ProviderUnavailable(self.name, operation, symbol, reason)

    def _section(self, container: dict, key: str, *, operation: str, symbol: str) -> dict:
        """``container[key]`` as a dict.  Missing or null -> ``{}``; any other shape fails."""
        value = container.get(key)
        if value is None:
            return {}
        if not isinstance(value, dict):
            raise self._unavailable(
                operation, symbol, f"unexpected payload: {key} is {type(value).__name__}"
            )
        return value

    async def _get_json(
        self,
        path: str,
        *,
        operation: str,
        symbol: str,
        params: dict | None = None,
    ) -> Any:
        try:
            resp = await self._client.get(path, params=params)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise self._unavailable(
                operation,
                symbol,
                f"HTTP {e.response.status_code}: {e.response.text[:200]}",
            ) from e
        except httpx.RequestError as e:
            raise self._unavailable(operation, symbol, f"request failed: {e!r}") from e

        try:
            return resp.json()
        except ValueError as e:
            raise self._unavailable(operation, symbol, "response is not JSON") from e
