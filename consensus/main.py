"""Entry-point: ``python -m consensus.main`` (or ``analyst-consensus``) serves the HTTP API."""

import logging

from consensus.api.server import app  # noqa: F401 – re-export for uvicorn
from consensus.config import settings


def main() -> None:
    import uvicorn

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    uvicorn.run(
        "consensus.main:app",
        host=settings.fastapi_host,
        port=settings.fastapi_port,
        reload=(settings.app_env == "development"),
    )


if __name__ == "__main__":
    main()
