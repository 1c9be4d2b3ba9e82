"""Provider fallback, provenance and caching tests."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from consensus.errors import DataUnavailable
from consensus.schemas.stock import Provenance, Quote
from consensus.services.orchestrator import FIELDS, ProviderOrchestrator, normalize_symbol
from tests.conftest import FakeProvider

ALL_OPS = ["fetch_quote", "fetch_profile", "fetch_recommendation_trend", "fetch_upgrade_history"]


def _orchestrator(memory_cache, primary=None, secondary=None, **kwargs):
    kwargs.setdefault("timeout", 1.0)
    kwargs.setdefault("refresh_delay", 0.25)
    kwargs.setdefault("sleep", AsyncMock())
    return ProviderOrchestrator(
        primary=primary or FakeProvider("finnhub"),
        secondary=secondary or FakeProvider("yahoo", quote=Quote(price=99.0)),
        cache=memory_cache,
        **kwargs,
    )


# ── Provenance ──────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_primary_complete_is_live_all(memory_cache):
    """Every field from the primary provider -> liveAll, secondary untouched."""
    orch = _orchestrator(memory_cache)
    payload = await orch.fetch_symbol_data("alph")

    assert payload.symbol == "ALPH"
    assert payload.provenance is Provenance.LIVE_ALL
    assert payload.quote.price == 100.0
    assert payload.failed_fields == []
    assert set(payload.sources.values()) == {"finnhub"}
    assert orch.secondary.calls == []
    assert payload.from_cache is False


@pytest.mark.asyncio
async def test_enrichment_failures_are_backfilled(memory_cache):
    """Primary quote and profile survive; the rest comes from the secondary."""
    primary = FakeProvider(
        "finnhub", fail=("fetch_recommendation_trend", "fetch_upgrade_history")
    )
    orch = _orchestrator(memory_cache, primary=primary)
    payload = await orch.fetch_symbol_data("ALPH")

    assert payload.provenance is Provenance.LIVE_PARTIAL
    assert payload.quote.price == 100.0
    assert payload.profile.name == "finnhub Corp"
    assert payload.sources["recommendation_trend"] == "yahoo"
    assert payload.sources["upgrade_history"] == "yahoo"
    assert orch.secondary.operations() == ["fetch_recommendation_trend", "fetch_upgrade_history"]
    assert payload.analyst.consensus_key == "Buy"


@pytest.mark.asyncio
async def test_primary_quote_failure_uses_secondary_for_everything(memory_cache):
    primary = FakeProvider("finnhub", fail=("fetch_quote",))
    orch = _orchestrator(memory_cache, primary=primary)
    payload = await orch.fetch_symbol_data("ALPH")

    assert payload.provenance is Provenance.FALLBACK_ONLY
    assert payload.quote.price == 99.0
    assert set(payload.sources.values()) == {"yahoo"}
    assert primary.operations() == ["fetch_quote"]
    assert orch.secondary.operations() == ALL_OPS


@pytest.mark.asyncio
async def test_field_missing_everywhere_is_reported(memory_cache):
    primary = FakeProvider("finnhub", fail=("fetch_profile",))
    secondary = FakeProvider("yahoo", fail=("fetch_profile",))
    orch = _orchestrator(memory_cache, primary=primary, secondary=secondary)
    payload = await orch.fetch_symbol_data("ALPH")

    assert payload.provenance is Provenance.LIVE_PARTIAL
    assert payload.profile is None
    assert payload.failed_fields == ["profile"]
    assert payload.sources["profile"] is None


@pytest.mark.asyncio
async def test_no_quote_anywhere_raises(memory_cache):
    """No quote from either provider -> DataUnavailable and nothing cached."""
    orch = _orchestrator(
        memory_cache,
        primary=FakeProvider("finnhub", fail=("fetch_quote",)),
        secondary=FakeProvider("yahoo", fail=("fetch_quote",)),
    )
    with pytest.raises(DataUnavailable):
        await orch.fetch_symbol_data("ALPH")
    assert await memory_cache.get("ALPH") is None


@pytest.mark.asyncio
async def test_timeout_counts_as_failure(memory_cache):
    primary = FakeProvider("finnhub", slow={"fetch_profile": 0.5})
    orch = _orchestrator(memory_cache, primary=primary, timeout=0.05)
    payload = await orch.fetch_symbol_data("ALPH")

    assert payload.provenance is Provenance.LIVE_PARTIAL
    assert payload.sources["profile"] == "yahoo"
    assert payload.sources["quote"] == "finnhub"


@pytest.mark.asyncio
async def test_unexpected_provider_error_counts_as_failure(memory_cache):
    primary = FakeProvider("finnhub")
    orch = _orchestrator(memory_cache, primary=primary)
    with patch.object(
        primary, "fetch_profile", AsyncMock(side_effect=AttributeError("'str' object has no attribute 'get'"))
    ):
        payload = await orch.fetch_symbol_data("ALPH")

    assert payload.provenance is Provenance.LIVE_PARTIAL
    assert payload.sources["profile"] == "yahoo"
    assert payload.profile.name == "yahoo Corp"
    assert payload.failed_fields == []


# ── Caching ─────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_fresh_cache_skips_providers(memory_cache, clock):
    orch = _orchestrator(memory_cache)
    await orch.fetch_symbol_data("ALPH")
    orch.primary.calls.clear()

    clock.advance(hours=1)
    payload = await orch.fetch_symbol_data("alph")

    assert payload.from_cache is True
    assert payload.age_seconds == pytest.approx(3600.0)
    assert payload.provenance is Provenance.LIVE_ALL
    assert orch.primary.calls == []


@pytest.mark.asyncio
async def test_stale_cache_refetches(memory_cache, clock):
    orch = _orchestrator(memory_cache)
    await orch.fetch_symbol_data("ALPH")
    orch.primary.calls.clear()

    clock.advance(hours=25)
    payload = await orch.fetch_symbol_data("ALPH")

    assert payload.from_cache is False
    assert payload.age_seconds == 0.0
    assert orch.primary.operations() == ALL_OPS


@pytest.mark.asyncio
async def test_force_refresh_bypasses_fresh_entry(memory_cache):
    orch = _orchestrator(memory_cache)
    await orch.fetch_symbol_data("ALPH")
    orch.primary.calls.clear()

    payload = await orch.fetch_symbol_data("ALPH", force_refresh=True)
    assert payload.from_cache is False
    assert orch.primary.operations() == ALL_OPS


@pytest.mark.asyncio
async def test_failed_refresh_keeps_stale_entry(memory_cache, clock):
    """A total outage never destroys the last good value."""
    primary = FakeProvider("finnhub")
    secondary = FakeProvider("yahoo")
    orch = _orchestrator(memory_cache, primary=primary, secondary=secondary)
    await orch.fetch_symbol_data("ALPH")
    before = await memory_cache.get("ALPH")

    clock.advance(hours=48)
    primary.fail.add("fetch_quote")
    secondary.fail.add("fetch_quote")
    with pytest.raises(DataUnavailable):
        await orch.fetch_symbol_data("ALPH")

    after = await memory_cache.get("ALPH")
    assert after.updated_at == before.updated_at
    assert after.payload == before.payload


@pytest.mark.asyncio
async def test_partial_payloads_are_cached(memory_cache):
    primary = FakeProvider("finnhub", fail=("fetch_quote",))
    orch = _orchestrator(memory_cache, primary=primary)
    await orch.fetch_symbol_data("ALPH")

    entry = await memory_cache.get("ALPH")
    assert entry.provenance is Provenance.FALLBACK_ONLY
    assert set(entry.payload["sources"]) == set(FIELDS)


@pytest.mark.asyncio
async def test_cached_payload_round_trips_analyst_block(memory_cache, clock):
    orch = _orchestrator(memory_cache)
    live = await orch.fetch_symbol_data("ALPH")
    clock.advance(minutes=5)
    cached = await orch.fetch_symbol_data("ALPH")

    assert cached.analyst.rating_history == live.analyst.rating_history
    assert cached.analyst.distribution_over_time == live.analyst.distribution_over_time


# ── Symbols, batch refresh, lifecycle ──────────────────────────────────────


@pytest.mark.parametrize("raw, expected", [("aapl", "AAPL"), (" brk.b ", "BRK.B"), ("^gspc", "^GSPC")])
def test_normalize_symbol(raw, expected):
    assert normalize_symbol(raw) == expected


@pytest.mark.parametrize("raw", ["", "   ", "AA PL", "A" * 21, None])
def test_normalize_symbol_rejects(raw):
    with pytest.raises(ValueError):
        normalize_symbol(raw)


@pytest.mark.asyncio
async def test_refresh_many_is_sequential_with_delay(memory_cache):
    sleep = AsyncMock()
    orch = _orchestrator(memory_cache, sleep=sleep, refresh_delay=0.25)
    report = await orch.refresh_many(["alph", "beta", "bad symbol"])

    assert report.success == ["ALPH", "BETA"]
    assert report.failures == ["BAD SYMBOL"]
    assert sleep.await_count == 2
    sleep.assert_awaited_with(0.25)
    assert [sym for op, sym in orch.primary.calls if op == "fetch_quote"] == ["ALPH", "BETA"]


@pytest.mark.asyncio
async def test_refresh_many_records_unavailable_symbols(memory_cache):
    orch = _orchestrator(
        memory_cache,
        primary=FakeProvider("finnhub", fail=("fetch_quote",)),
        secondary=FakeProvider("yahoo", fail=("fetch_quote",)),
    )
    report = await orch.refresh_many(["ALPH"])
    assert report.success == []
    assert report.failures == ["ALPH"]
    orch._sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_clear_cache(memory_cache):
    orch = _orchestrator(memory_cache)
    await orch.fetch_symbol_data("ALPH")
    assert await orch.clear_cache() == 1
    assert await memory_cache.get("ALPH") is None


@pytest.mark.asyncio
async def test_aclose_closes_both_providers(memory_cache):
    orch = _orchestrator(memory_cache)
    await orch.aclose()
    assert orch.primary.closed and orch.secondary.closed
