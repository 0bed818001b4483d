"""Entrypoint for the api-saver HTTP service."""

from __future__ import annotations

import sys
from pathlib import Path

if __package__ in (None, ""):
    sys.path.insert(0, str(Path(__file__).resolve().parents[1]))  # pragma: no cover

from api_saver import __version__
from api_saver.config import load_settings
from api_saver.logging_utils import configure_logging, get_logger


def run_entrypoint() -> None:
    """Configure logging and serve the app with uvicorn."""
    settings = load_settings()
    configure_logging()
    logger = get_logger(__name__)
    from api_saver.transport.http_server import create_http_app

    try:
        import uvicorn
    except ImportError as exc:
        raise RuntimeError("uvicorn is required to serve api-saver") from exc

    logger.info("Initializing api-saver v%s", __version__)
    logger.info("Telemetry log directory: %s", settings.telemetry.log_dir)

    app = create_http_app()
    uvicorn.run(
        app,
        host=settings.server.host,
        port=settings.server.port,
        ws="none",
        log_config=None,
    )


if __name__ == "__main__":  # pragma: no cover
    run_entrypoint()
