"""Route handlers – the bridge between HTTP and the orchestrator.

Handlers never raise: every outcome becomes an ``ApiResponse`` dict whose
``error.error_code`` the server maps to an HTTP status.
"""

from __future__ import annotations

import logging
import time

from consensus.errors import DataUnavailable, StorageError
from consensus.middleware.rate_limit import ROUTE_RATE_LIMITS, rate_limiter
from consensus.schemas.common import ApiResponse, ErrorDetail, Meta
from consensus.services.orchestrator import ProviderOrchestrator, normalize_symbol

logger = logging.getLogger("consensus.api.handlers")

ERROR_STATUS: dict[str, int] = {
    "INVALID_INPUT": 400,
    "DATA_UNAVAILABLE": DataUnavailable.status_code,
    "RATE_LIMIT_EXCEEDED": 429,
    "STORAGE_ERROR": StorageError.status_code,
}

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _elapsed(t0: float) -> float:
    return round((time.perf_counter() - t0) * 1000, 2)


def _error_response(
    endpoint: str, code: str, message: str, elapsed: float, hint: str | None = None
) -> dict:
    return ApiResponse(
        endpoint=endpoint,
        ok=False,
        data=None,
        error=ErrorDetail(error_code=code, message=message, hint=hint),
        meta=Meta(execution_ms=elapsed),
    ).model_dump()


def _ok(
    endpoint: str,
    data,
    elapsed: float,
    provenance: str | None = None,
    age_seconds: float | None = None,
) -> dict:
    return ApiResponse(
        endpoint=endpoint,
        ok=True,
        data=data,
        error=None,
        meta=Meta(execution_ms=elapsed, provenance=provenance, age_seconds=age_seconds),
    ).model_dump()


def status_for(result: dict) -> int:
    """HTTP status for a handler result."""
    if result.get("ok"):
        return 200
    return ERROR_STATUS.get((result.get("error") or {}).get("error_code"), 500)


async def _check_rate_limit(route: str, t0: float, client: str | None = None) -> dict | None:
    """Returns an error dict if blocked, else None.

    Each client gets its own window per route; callers without an address
    share one.
    """
    limits = ROUTE_RATE_LIMITS.get(route, {})
    allowed, error_msg = await rate_limiter.check_rate_limit(
        f"{route}:{client}" if client else route,
        max_requests=limits.get("max_requests"),
        window_seconds=limits.get("window_seconds"),
    )
    if not allowed:
        return _error_response(
            route,
            "RATE_LIMIT_EXCEEDED",
            error_msg or "Rate limit exceeded",
            _elapsed(t0),
            hint="Wait before retrying.",
        )
    return None


async def _symbol_payload(orchestrator: ProviderOrchestrator, route: str, arguments: dict):
    """Shared path for the per-symbol routes.  Returns (payload, None) or (None, error dict)."""
    t0 = time.perf_counter()

    rate_error = await _check_rate_limit(route, t0, arguments.get("client"))
    if rate_error:
        return None, rate_error

    try:
        symbol = normalize_symbol(arguments.get("symbol", ""))
    except ValueError as e:
        return None, _error_response(route, "INVALID_INPUT", str(e), _elapsed(t0))

    try:
        payload = await orchestrator.fetch_symbol_data(
            symbol, force_refresh=bool(arguments.get("refresh", False))
        )
    except DataUnavailable as e:
        return None, _error_response(
            route,
            e.error_code,
            str(e),
            _elapsed(t0),
            hint="Both providers failed; retry later or check the ticker.",
        )
    except StorageError as e:
        logger.error("%s symbol=%s storage failure: %s", route, symbol, e)
        return None, _error_response(route, e.error_code, str(e), _elapsed(t0))

    return payload, None


# ---------------------------------------------------------------------------
# Route implementations
# ---------------------------------------------------------------------------


async def handle_get_stock(orchestrator: ProviderOrchestrator, arguments: dict) -> dict:
    """Merged quote, profile and analyst data for one symbol.

    Args:
        arguments: {"symbol": str, "refresh": bool (default False)}
    """
    t0 = time.perf_counter()
    payload, error = await _symbol_payload(orchestrator, "get_stock", arguments)
    if error:
        return error

    elapsed = _elapsed(t0)
    logger.info(
        "get_stock symbol=%s provenance=%s cached=%s ms=%.1f",
        payload.symbol,
        payload.provenance.value,
        payload.from_cache,
        elapsed,
    )
    return _ok(
        "get_stock",
        payload.model_dump(mode="json", by_alias=True),
        elapsed,
        provenance=payload.provenance.value,
        age_seconds=payload.age_seconds,
    )


async def handle_get_analyst(orchestrator: ProviderOrchestrator, arguments: dict) -> dict:
    """Analyst block only (consensus, gauge, distributions, rating history).

    Args:
        arguments: {"symbol": str}
    """
    t0 = time.perf_counter()
    payload, error = await _symbol_payload(orchestrator, "get_analyst", arguments)
    if error:
        return error

    elapsed = _elapsed(t0)
    logger.info("get_analyst symbol=%s ms=%.1f", payload.symbol, elapsed)
    return _ok(
        "get_analyst",
        payload.analyst.model_dump(mode="json", by_alias=True),
        elapsed,
        provenance=payload.provenance.value,
        age_seconds=payload.age_seconds,
    )


async def handle_refresh_cache(orchestrator: ProviderOrchestrator, arguments: dict) -> dict:
    """Force-refresh a batch of symbols sequentially.

    Args:
        arguments: {"symbols": [str]}
    """
    t0 = time.perf_counter()

    rate_error = await _check_rate_limit("refresh_cache", t0, arguments.get("client"))
    if rate_error:
        return rate_error

    symbols = arguments.get("symbols")
    if not isinstance(symbols, list) or not symbols or not all(isinstance(s, str) for s in symbols):
        return _error_response(
            "refresh_cache", "INVALID_INPUT", "symbols must be a non-empty list of strings", _elapsed(t0)
        )

    report = await orchestrator.refresh_many(symbols)
    elapsed = _elapsed(t0)
    logger.info(
        "refresh_cache ok=%d failed=%d ms=%.1f", len(report.success), len(report.failures), elapsed
    )
    return _ok("refresh_cache", report.model_dump(by_alias=True), elapsed)


async def handle_clear_cache(orchestrator: ProviderOrchestrator, arguments: dict) -> dict:
    """Administrative wipe of every cached symbol."""
    t0 = time.perf_counter()

    rate_error = await _check_rate_limit("clear_cache", t0, arguments.get("client"))
    if rate_error:
        return rate_error

    try:
        removed = await orchestrator.clear_cache()
    except StorageError as e:
        return _error_response("clear_cache", e.error_code, str(e), _elapsed(t0))

    elapsed = _elapsed(t0)
    logger.info("clear_cache removed=%d ms=%.1f", removed, elapsed)
    return _ok("clear_cache", {"removed": removed}, elapsed)
