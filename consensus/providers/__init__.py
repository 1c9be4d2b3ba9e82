"""Upstream data providers, in priority order."""

from consensus.providers.base import DataProvider, HTTPProvider
from consensus.providers.finnhub import FinnhubProvider
from consensus.providers.yahoo import YahooProvider

__all__ = ["DataProvider", "HTTPProvider", "FinnhubProvider", "YahooProvider"]
