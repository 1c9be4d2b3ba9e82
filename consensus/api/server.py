"""FastAPI server – thin HTTP pass-through to the route handlers.

Run with:
    python -m consensus.api.server
    # → http://localhost:8000/health
    # → http://localhost:8000/api/stock/AAPL
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import Body, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from consensus.api.handlers import (
    handle_clear_cache,
    handle_get_analyst,
    handle_get_stock,
    handle_refresh_cache,
    status_for,
)
from consensus.config import settings
from consensus.providers import FinnhubProvider, YahooProvider
from consensus.services.orchestrator import ProviderOrchestrator

logger = logging.getLogger("consensus.api.server")


def parse_cors_origins(origins_string: str) -> list[str]:
    """Parse CORS origins from comma-separated string.

    Example:
        >>> parse_cors_origins("https://app1.com, https://app2.com")
        ['https://app1.com', 'https://app2.com']
    """
    if origins_string == "*":
        return ["*"]
    return [origin.strip() for origin in origins_string.split(",") if origin.strip()]


def build_orchestrator() -> ProviderOrchestrator:
    """Production wiring: Finnhub first, Yahoo second, Postgres-backed cache."""
    from consensus.db import async_session_factory
    from consensus.services.cache import SqlFreshnessCache

    return ProviderOrchestrator(
        primary=FinnhubProvider(),
        secondary=YahooProvider(),
        cache=SqlFreshnessCache(async_session_factory),
    )


def create_app(orchestrator: ProviderOrchestrator | None = None) -> FastAPI:
    """Build the app.  Tests pass their own orchestrator; otherwise one is wired at startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = orchestrator is None
        app.state.orchestrator = orchestrator or build_orchestrator()
        logger.info("Server starting (env=%s)", settings.app_env)
        yield
        if owned:
            await app.state.orchestrator.aclose()
        logger.info("Server shutting down")

    app = FastAPI(
        title="Analyst Consensus Service",
        description="Quotes, analyst consensus and rating history with provider fallback.",
        version=settings.service_version,
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=parse_cors_origins(settings.allowed_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    if orchestrator is not None:
        app.state.orchestrator = orchestrator

    def _respond(result: dict) -> JSONResponse:
        return JSONResponse(content=result, status_code=status_for(result))

    def _client(request: Request) -> str | None:
        return request.client.host if request.client else None

    # ── Health ────────────────────────────────────────────────────────────

    @app.get("/health")
    async def health():
        return {"status": "ok", "version": settings.service_version}

    # ── Stock data ────────────────────────────────────────────────────────

    @app.get("/api/stock/{symbol}")
    async def get_stock(request: Request, symbol: str, refresh: bool = Query(False)):
        result = await handle_get_stock(
            request.app.state.orchestrator,
            {"symbol": symbol, "refresh": refresh, "client": _client(request)},
        )
        return _respond(result)

    @app.get("/api/stock/{symbol}/analyst")
    async def get_analyst(request: Request, symbol: str):
        result = await handle_get_analyst(
            request.app.state.orchestrator, {"symbol": symbol, "client": _client(request)}
        )
        return _respond(result)

    # ── Cache administration ──────────────────────────────────────────────

    @app.post("/api/stock/refresh-cache")
    async def refresh_cache(request: Request, body: dict = Body(...)):
        result = await handle_refresh_cache(
            request.app.state.orchestrator, {**body, "client": _client(request)}
        )
        return _respond(result)

    @app.post("/api/stock/clear-cache")
    async def clear_cache(request: Request):
        result = await handle_clear_cache(
            request.app.state.orchestrator, {"client": _client(request)}
        )
        return _respond(result)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    uvicorn.run(
        "consensus.api.server:app",
        host=settings.fastapi_host,
        port=settings.fastapi_port,
        reload=(settings.app_env == "development"),
    )
