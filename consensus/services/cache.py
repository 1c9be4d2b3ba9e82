"""TTL-gated per-symbol cache.

Entries never expire on their own: staleness is judged at read time by the
caller via ``is_fresh``.  A refresh overwrites the row in place, so a failed
refresh never loses the previous value.
"""

from __future__ import annotations

import copy
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Protocol

from pydantic import BaseModel
from sqlalchemy import delete, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from consensus.errors import StorageError
from consensus.models.stock_cache import StockCache
from consensus.schemas.stock import Provenance

logger = logging.getLogger("consensus.cache")

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _aware(ts: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone=True columns.
    return ts if ts.tzinfo is not None else ts.replace(tzinfo=timezone.utc)


class CacheEntry(BaseModel):
    symbol: str
    payload: dict[str, Any]
    provenance: Provenance
    updated_at: datetime

    def age(self, now: datetime) -> timedelta:
        return now - _aware(self.updated_at)


class FreshnessCache(Protocol):
    async def get(self, symbol: str) -> CacheEntry | None: ...

    async def put(
        self, symbol: str, payload: dict[str, Any], provenance: Provenance
    ) -> CacheEntry: ...

    def is_fresh(self, entry: CacheEntry, ttl: timedelta, now: datetime | None = None) -> bool: ...

    async def clear(self) -> int: ...

    def now(self) -> datetime: ...


class _ClockMixin:
    clock: Clock

    def now(self) -> datetime:
        return self.clock()

    def is_fresh(self, entry: CacheEntry, ttl: timedelta, now: datetime | None = None) -> bool:
        """True while ``now - updated_at < ttl``."""
        return entry.age(now or self.now()) < ttl


class MemoryFreshnessCache(_ClockMixin):
    """Dict-backed cache for tests and database-less runs."""

    def __init__(self, clock: Clock = utcnow) -> None:
        self.clock = clock
        self._entries: dict[str, CacheEntry] = {}

    async def get(self, symbol: str) -> CacheEntry | None:
        entry = self._entries.get(symbol.upper())
        return entry.model_copy(deep=True) if entry else None

    async def put(
        self, symbol: str, payload: dict[str, Any], provenance: Provenance
    ) -> CacheEntry:
        entry = CacheEntry(
            symbol=symbol.upper(),
            payload=copy.deepcopy(payload),
            provenance=provenance,
            updated_at=self.now(),
        )
        self._entries[entry.symbol] = entry
        return entry

    async def clear(self) -> int:
        removed = len(self._entries)
        self._entries.clear()
        return removed


class SqlFreshnessCache(_ClockMixin):
    """Cache backed by the ``stock_cache`` table (one row per uppercase symbol)."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Clock = utcnow,
    ) -> None:
        self.session_factory = session_factory
        self.clock = clock

    async def get(self, symbol: str) -> CacheEntry | None:
        key = symbol.upper()
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(StockCache).where(StockCache.symbol == key)
                )
                row = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Cache read failed for %s: %s", key, e)
            raise StorageError(f"Cache read failed for {key}") from e

        if row is None:
            return None
        return CacheEntry(
            symbol=row.symbol,
            payload=row.data,
            provenance=Provenance(row.provenance),
            updated_at=_aware(row.updated_at),
        )

    async def put(
        self, symbol: str, payload: dict[str, Any], provenance: Provenance
    ) -> CacheEntry:
        key = symbol.upper()
        updated_at = self.now()
        values = {
            "symbol": key,
            "data": payload,
            "provenance": provenance.value,
            "updated_at": updated_at,
        }
        try:
            async with self.session_factory() as session:
                dialect = session.bind.dialect.name if session.bind is not None else ""
                if dialect in ("postgresql", "sqlite"):
                    insert = postgresql.insert if dialect == "postgresql" else sqlite.insert
                    stmt = insert(StockCache).values(**values)
                    stmt = stmt.on_conflict_do_update(
                        index_elements=[StockCache.symbol],
                        set_={k: v for k, v in values.items() if k != "symbol"},
                    )
                    await session.execute(stmt)
                else:
                    await session.merge(StockCache(**values))
                await session.commit()
        except SQLAlchemyError as e:
            logger.error("Cache write failed for %s: %s", key, e)
            raise StorageError(f"Cache write failed for {key}") from e

        logger.info("Cached data updated for %s (%s)", key, provenance.value)
        return CacheEntry(
            symbol=key, payload=payload, provenance=provenance, updated_at=updated_at
        )

    async def clear(self) -> int:
        try:
            async with self.session_factory() as session:
                result = await session.execute(delete(StockCache))
                await session.commit()
        except SQLAlchemyError as e:
            logger.error("Cache clear failed: %s", e)
            raise StorageError("Cache clear failed") from e
        logger.info("Cache cleared (%d rows)", result.rowcount)
        return result.rowcount
