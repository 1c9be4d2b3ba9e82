"""Shared pytest fixtures – async in-memory SQLite and scriptable fake providers."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from consensus.errors import ProviderUnavailable
from consensus.models import Base
from consensus.schemas.analyst import RatingDistribution
from consensus.schemas.stock import (
    CompanyProfile,
    Quote,
    RawUpgradeEvent,
    RecommendationSnapshot,
    RecommendationTrend,
)
from consensus.services.cache import MemoryFreshnessCache, SqlFreshnessCache

T0 = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self, start: datetime = T0) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


class FakeProvider:
    """In-memory provider.  ``fail`` lists operations that raise, ``slow`` maps operation -> delay."""

    def __init__(
        self,
        name: str,
        quote: Quote | None = None,
        profile: CompanyProfile | None = None,
        trend: RecommendationTrend | None = None,
        history: list[RawUpgradeEvent] | None = None,
        fail: tuple[str, ...] = (),
        slow: dict[str, float] | None = None,
    ) -> None:
        self.name = name
        self._values = {
            "fetch_quote": quote or Quote(price=100.0),
            "fetch_profile": profile or CompanyProfile(name=f"{name} Corp"),
            "fetch_recommendation_trend": trend or sample_trend(),
            "fetch_upgrade_history": history if history is not None else sample_history(),
        }
        self.fail = set(fail)
        self.slow = slow or {}
        self.calls: list[tuple[str, str]] = []
        self.closed = False

    async def _run(self, operation: str, symbol: str):
        self.calls.append((operation, symbol))
        if operation in self.slow:
            await asyncio.sleep(self.slow[operation])
        if operation in self.fail:
            raise ProviderUnavailable(self.name, operation, symbol, "scripted failure")
        return self._values[operation]

    async def fetch_quote(self, symbol: str) -> Quote:
        return await self._run("fetch_quote", symbol)

    async def fetch_profile(self, symbol: str) -> CompanyProfile:
        return await self._run("fetch_profile", symbol)

    async def fetch_recommendation_trend(self, symbol: str) -> RecommendationTrend:
        return await self._run("fetch_recommendation_trend", symbol)

    async def fetch_upgrade_history(self, symbol: str) -> list[RawUpgradeEvent]:
        return await self._run("fetch_upgrade_history", symbol)

    async def aclose(self) -> None:
        self.closed = True

    def operations(self) -> list[str]:
        return [op for op, _ in self.calls]


def sample_trend() -> RecommendationTrend:
    return RecommendationTrend(
        snapshots=[
            RecommendationSnapshot(
                period="0m",
                distribution=RatingDistribution(strong_buy=10, buy=5, hold=3, sell=1, strong_sell=1),
            ),
            RecommendationSnapshot(
                period="-1m",
                distribution=RatingDistribution(strong_buy=8, buy=6, hold=4, sell=1, strong_sell=1),
            ),
        ]
    )


def sample_history() -> list[RawUpgradeEvent]:
    return [
        RawUpgradeEvent(
            firm="Morgan Stanley",
            from_grade="Equal-Weight",
            to_grade="Overweight",
            timestamp=datetime(2024, 5, 20, tzinfo=timezone.utc),
        ),
        RawUpgradeEvent(
            firm="Barclays",
            from_grade=None,
            to_grade="Overweight",
            timestamp=datetime(2024, 5, 28, tzinfo=timezone.utc),
        ),
    ]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory_cache(clock):
    return MemoryFreshnessCache(clock=clock)


@pytest_asyncio.fixture
async def engine():
    """Fresh in-memory SQLite database per test."""
    eng = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def sql_cache(session_factory, clock):
    return SqlFreshnessCache(session_factory, clock=clock)
