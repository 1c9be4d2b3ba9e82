#!/usr/bin/env python3
"""Batch cache refresh – re-fetches symbols one at a time.

Symbols are processed sequentially with ``REFRESH_DELAY_SECONDS`` between
them so upstream rate limits are respected.

Run:
    python -m scripts.refresh_cache AAPL MSFT NVDA
    python -m scripts.refresh_cache --clear
"""

from __future__ import annotations

import asyncio
import logging
import sys

from consensus.api.server import build_orchestrator
from consensus.config import settings


async def main(argv: list[str]) -> int:
    orchestrator = build_orchestrator()
    try:
        if "--clear" in argv:
            removed = await orchestrator.clear_cache()
            print(f"Cleared {removed} cached symbols.")
            return 0

        symbols = [a for a in argv if not a.startswith("-")]
        if not symbols:
            print("usage: python -m scripts.refresh_cache SYMBOL [SYMBOL ...] | --clear")
            return 2

        print(f"Refreshing {len(symbols)} symbols …\n")
        report = await orchestrator.refresh_many(symbols)
        for symbol in report.success:
            print(f"  ok      {symbol}")
        for symbol in report.failures:
            print(f"  FAILED  {symbol}")
        print("\nDone.")
        return 1 if report.failures else 0
    finally:
        await orchestrator.aclose()


if __name__ == "__main__":
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    sys.exit(asyncio.run(main(sys.argv[1:])))
