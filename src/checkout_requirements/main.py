"""Entry point for the checkout requirements service.

Creates the FastAPI application, configures logging, and starts the
uvicorn server.
"""

from __future__ import annotations

import structlog
import uvicorn
from fastapi import FastAPI

from common import setup_logging

from checkout_requirements.api import create_app
from checkout_requirements.config import Settings, get_settings

logger = structlog.get_logger(__name__)


def build_app(settings: Settings | None = None) -> FastAPI:
    """Construct the fully-configured application."""
    settings = settings or get_settings()
    setup_logging(settings.log_level)

    app = create_app(settings)

    logger.info(
        "application_ready",
        service=settings.service_name,
        version=settings.service_version,
        environment=settings.environment,
        skip_single_option=settings.skip_payment_selection_if_single_option,
        quick_checkout=settings.quick_checkout_enabled,
        order_history="remote" if settings.order_history_url else "in-memory",
    )
    return app


def main() -> None:
    """Launch the checkout requirements server."""
    settings = get_settings()
    app = build_app(settings)

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
