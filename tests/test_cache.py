"""Freshness cache tests – in-memory and SQL-backed."""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from consensus.errors import StorageError
from consensus.models import StockCache
from consensus.schemas.stock import Provenance
from consensus.services.cache import MemoryFreshnessCache

TTL = timedelta(hours=24)


@pytest.fixture(params=["memory", "sql"])
def cache(request, memory_cache, sql_cache):
    return memory_cache if request.param == "memory" else sql_cache


@pytest.mark.asyncio
async def test_get_missing_symbol(cache):
    """Unknown symbols are a miss, not an error."""
    assert await cache.get("ZZZZ") is None


@pytest.mark.asyncio
async def test_put_then_get(cache):
    await cache.put("alph", {"symbol": "ALPH", "quote": {"price": 10.0}}, Provenance.LIVE_ALL)
    entry = await cache.get("ALPH")

    assert entry is not None
    assert entry.symbol == "ALPH"
    assert entry.payload["quote"]["price"] == 10.0
    assert entry.provenance is Provenance.LIVE_ALL


@pytest.mark.asyncio
async def test_freshness_boundary(cache, clock):
    """Fresh strictly before the TTL, stale after it."""
    await cache.put("ALPH", {"symbol": "ALPH"}, Provenance.LIVE_ALL)

    clock.advance(hours=24, seconds=-1)
    entry = await cache.get("ALPH")
    assert cache.is_fresh(entry, TTL) is True

    clock.advance(seconds=2)
    assert cache.is_fresh(entry, TTL) is False


@pytest.mark.asyncio
async def test_put_overwrites_in_place(cache, clock):
    await cache.put("ALPH", {"symbol": "ALPH", "v": 1}, Provenance.FALLBACK_ONLY)
    clock.advance(hours=30)
    await cache.put("ALPH", {"symbol": "ALPH", "v": 2}, Provenance.LIVE_PARTIAL)

    entry = await cache.get("ALPH")
    assert entry.payload["v"] == 2
    assert entry.provenance is Provenance.LIVE_PARTIAL
    assert entry.updated_at == clock()


@pytest.mark.asyncio
async def test_clear_removes_everything(cache):
    await cache.put("ALPH", {}, Provenance.LIVE_ALL)
    await cache.put("BETA", {}, Provenance.LIVE_ALL)

    assert await cache.clear() == 2
    assert await cache.get("ALPH") is None
    assert await cache.get("BETA") is None


@pytest.mark.asyncio
async def test_memory_cache_returns_copies(clock):
    """Mutating a returned entry must not change the stored one."""
    cache = MemoryFreshnessCache(clock=clock)
    await cache.put("ALPH", {"quote": {"price": 1.0}}, Provenance.LIVE_ALL)

    entry = await cache.get("ALPH")
    entry.payload["quote"]["price"] = 999.0

    assert (await cache.get("ALPH")).payload["quote"]["price"] == 1.0


@pytest.mark.asyncio
async def test_sql_cache_keeps_one_row_per_symbol(sql_cache, session_factory):
    await sql_cache.put("ALPH", {"v": 1}, Provenance.LIVE_ALL)
    await sql_cache.put("alph", {"v": 2}, Provenance.LIVE_ALL)

    async with session_factory() as session:
        count = await session.scalar(select(func.count()).select_from(StockCache))
    assert count == 1


@pytest.mark.asyncio
async def test_sql_cache_read_failure_raises_storage_error(sql_cache, session_factory):
    with patch.object(
        sql_cache,
        "session_factory",
        side_effect=OperationalError("SELECT", {}, Exception("database is locked")),
    ):
        with pytest.raises(StorageError):
            await sql_cache.get("ALPH")


@pytest.mark.asyncio
async def test_sql_cache_write_failure_raises_storage_error(sql_cache):
    with patch.object(
        sql_cache,
        "session_factory",
        side_effect=OperationalError("INSERT", {}, Exception("disk I/O error")),
    ):
        with pytest.raises(StorageError):
            await sql_cache.put("ALPH", {}, Provenance.LIVE_ALL)
