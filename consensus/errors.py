"""Error taxonomy for the aggregation engine.

``ProviderUnavailable`` is recovered locally by the orchestrator and only
reaches callers indirectly, as ``DataUnavailable`` when every provider
failed.  ``StorageError`` is fatal for the request that hit it.
"""

from __future__ import annotations


class ConsensusError(Exception):
    """Base class for all engine errors."""

    error_code = "INTERNAL_ERROR"
    status_code = 500


class ProviderUnavailable(ConsensusError):
    """A single upstream call failed, timed out, or was refused."""

    error_code = "PROVIDER_UNAVAILABLE"
    status_code = 502

    def __init__(self, provider: str, operation: str, symbol: str, reason: str):
        self.provider = provider
        self.operation = operation
        self.symbol = symbol
        self.reason = reason
        super().__init__(f"{provider}.{operation}({symbol}) failed: {reason}")


class DataUnavailable(ConsensusError):
    """No provider produced even a quote for the symbol."""

    error_code = "DATA_UNAVAILABLE"
    status_code = 404

    def __init__(self, symbol: str, reason: str):
        self.symbol = symbol
        self.reason = reason
        super().__init__(f"No data available for {symbol}: {reason}")


class StorageError(ConsensusError):
    """The cache backing store could not be read or written."""

    error_code = "STORAGE_ERROR"
    status_code = 500
