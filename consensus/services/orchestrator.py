"""Provider fallback and write-through caching for per-symbol data.

One pass per request:

1. serve the cached payload if it is still fresh;
2. fetch the quote from the primary provider, or hand the whole payload to
   the secondary provider if that fails;
3. enrich from the primary provider field by field (each call isolated);
4. backfill whatever is still missing from the secondary provider;
5. write the merged result to the cache, even when partial.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Awaitable, Callable, Iterable

from pydantic import ValidationError

from consensus.config import settings
from consensus.errors import ConsensusError, DataUnavailable, ProviderUnavailable
from consensus.providers.base import DataProvider
from consensus.schemas.stock import AggregatedPayload, Provenance, RefreshReport, StockSnapshot
from consensus.services.analyst_service import build_analyst_summary
from consensus.services.cache import CacheEntry, FreshnessCache

logger = logging.getLogger("consensus.orchestrator")

_SYMBOL_RE = re.compile(r"^[A-Z0-9^][A-Z0-9.\-^=]{0,19}$")


def normalize_symbol(symbol: str) -> str:
    """Uppercase and validate a ticker.

    Raises:
        ValueError: for empty or malformed tickers.
    """
    cleaned = (symbol or "").strip().upper()
    if not _SYMBOL_RE.match(cleaned):
        raise ValueError(f"Invalid symbol: {symbol!r}")
    return cleaned


@dataclass(frozen=True)
class FieldStrategy:
    """One fallible upstream call that fills one payload field."""

    field: str
    fetch: Callable[[DataProvider, str], Awaitable[Any]]


QUOTE = FieldStrategy("quote", lambda p, s: p.fetch_quote(s))

# Cheapest first.
ENRICHMENTS: tuple[FieldStrategy, ...] = (
    FieldStrategy("profile", lambda p, s: p.fetch_profile(s)),
    FieldStrategy("recommendation_trend", lambda p, s: p.fetch_recommendation_trend(s)),
    FieldStrategy("upgrade_history", lambda p, s: p.fetch_upgrade_history(s)),
)

FIELDS: tuple[str, ...] = (QUOTE.field,) + tuple(s.field for s in ENRICHMENTS)


class ProviderOrchestrator:
    """Coordinates the primary/secondary providers and the freshness cache."""

    def __init__(
        self,
        primary: DataProvider,
        secondary: DataProvider,
        cache: FreshnessCache,
        ttl: timedelta | None = None,
        timeout: float | None = None,
        refresh_delay: float | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.primary = primary
        self.secondary = secondary
        self.cache = cache
        self.ttl = ttl if ttl is not None else timedelta(hours=settings.cache_ttl_hours)
        self.timeout = timeout if timeout is not None else settings.provider_timeout_seconds
        self.refresh_delay = (
            refresh_delay if refresh_delay is not None else settings.refresh_delay_seconds
        )
        self._sleep = sleep

    async def aclose(self) -> None:
        await self.primary.aclose()
        await self.secondary.aclose()

    # ── Single attempts ──────────────────────────────────────────────────

    async def _attempt(self, provider: DataProvider, strategy: FieldStrategy, symbol: str) -> Any:
        """Run one upstream call.  Returns None on failure or timeout."""
        try:
            return await asyncio.wait_for(strategy.fetch(provider, symbol), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "[%s] %s %s timed out after %.1fs", symbol, provider.name, strategy.field, self.timeout
            )
        except ProviderUnavailable as e:
            logger.warning("[%s] %s", symbol, e)
        except ValidationError as e:
            logger.warning(
                "[%s] %s returned malformed %s: %s",
                symbol,
                provider.name,
                strategy.field,
                e.errors()[:1],
            )
        except Exception:
            # Any other error from a single call is a field failure.
            logger.exception(
                "[%s] %s %s failed unexpectedly", symbol, provider.name, strategy.field
            )
        return None

    async def _fill(
        self,
        snapshot: StockSnapshot,
        provider: DataProvider,
        strategies: Iterable[FieldStrategy],
    ) -> None:
        for strategy in strategies:
            value = await self._attempt(provider, strategy, snapshot.symbol)
            if value is None:
                continue
            setattr(snapshot, strategy.field, value)
            snapshot.sources[strategy.field] = provider.name

    # ── Orchestration ────────────────────────────────────────────────────

    async def _collect(self, symbol: str) -> tuple[StockSnapshot, Provenance]:
        snapshot = StockSnapshot(symbol=symbol, sources={f: None for f in FIELDS})

        await self._fill(snapshot, self.primary, [QUOTE])
        if snapshot.quote is None:
            logger.warning(
                "[%s] Primary quote failed, using %s for the whole payload",
                symbol,
                self.secondary.name,
            )
            await self._fill(snapshot, self.secondary, (QUOTE,) + ENRICHMENTS)
            if snapshot.quote is None:
                raise DataUnavailable(symbol, "no provider returned a quote")
            provenance = Provenance.FALLBACK_ONLY
        else:
            await self._fill(snapshot, self.primary, ENRICHMENTS)
            missing = [s for s in ENRICHMENTS if snapshot.sources[s.field] is None]
            if missing:
                logger.info(
                    "[%s] Backfilling %s from %s",
                    symbol,
                    [s.field for s in missing],
                    self.secondary.name,
                )
                await self._fill(snapshot, self.secondary, missing)
            from_primary = [f for f in FIELDS if snapshot.sources[f] == self.primary.name]
            provenance = (
                Provenance.LIVE_ALL if len(from_primary) == len(FIELDS) else Provenance.LIVE_PARTIAL
            )

        snapshot.failed_fields = [f for f in FIELDS if snapshot.sources[f] is None]
        return snapshot, provenance

    def _to_payload(self, entry: CacheEntry, from_cache: bool) -> AggregatedPayload:
        snapshot = StockSnapshot.model_validate(entry.payload)
        now = self.cache.now()
        return AggregatedPayload(
            symbol=snapshot.symbol,
            quote=snapshot.quote,
            profile=snapshot.profile,
            analyst=build_analyst_summary(
                snapshot.symbol,
                snapshot.recommendation_trend,
                snapshot.upgrade_history,
                now=now,
            ),
            provenance=entry.provenance,
            sources=snapshot.sources,
            failed_fields=snapshot.failed_fields,
            updated_at=entry.updated_at,
            age_seconds=max(entry.age(now).total_seconds(), 0.0),
            from_cache=from_cache,
        )

    async def fetch_symbol_data(self, symbol: str, force_refresh: bool = False) -> AggregatedPayload:
        """Return merged data for *symbol*, from cache when fresh.

        Raises:
            ValueError: malformed symbol.
            DataUnavailable: neither provider returned a quote.
            StorageError: the cache could not be read or written.
        """
        symbol = normalize_symbol(symbol)

        cached = await self.cache.get(symbol)
        if cached is not None and not force_refresh and self.cache.is_fresh(cached, self.ttl):
            logger.info(
                "[%s] Serving cached data (%.2f hours old)",
                symbol,
                cached.age(self.cache.now()).total_seconds() / 3600,
            )
            return self._to_payload(cached, from_cache=True)

        logger.info("[%s] Fetching fresh data", symbol)
        try:
            snapshot, provenance = await self._collect(symbol)
        except DataUnavailable:
            if cached is not None:
                logger.warning(
                    "[%s] All providers failed; stale entry from %s left in place",
                    symbol,
                    cached.updated_at.isoformat(),
                )
            raise

        entry = await self.cache.put(
            symbol, snapshot.model_dump(mode="json", by_alias=True), provenance
        )
        logger.info(
            "[%s] provenance=%s failed_fields=%s", symbol, provenance.value, snapshot.failed_fields
        )
        return self._to_payload(entry, from_cache=False)

    async def refresh_many(self, symbols: Iterable[str]) -> RefreshReport:
        """Force-refresh symbols one at a time, pausing between them for upstream rate limits."""
        report = RefreshReport()
        for i, raw in enumerate(symbols):
            if i and self.refresh_delay > 0:
                await self._sleep(self.refresh_delay)
            try:
                symbol = normalize_symbol(raw)
                await self.fetch_symbol_data(symbol, force_refresh=True)
            except (ValueError, ConsensusError) as e:
                logger.error("Failed to refresh cache for %s: %s", raw, e)
                report.failures.append(str(raw).strip().upper())
                continue
            report.success.append(symbol)
        return report

    async def clear_cache(self) -> int:
        return await self.cache.clear()
