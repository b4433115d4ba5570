"""Middleware registration."""

from fastapi import FastAPI

from micropatrons.config import Settings
from micropatrons.middleware.cors import setup_cors
from micropatrons.middleware.error_handler import setup_error_handlers
from micropatrons.middleware.logging import setup_logging
from micropatrons.middleware.rate_limit import RateLimitMiddleware
from micropatrons.middleware.request_id import RequestIdMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Register all middleware in the correct order.

    Starlette runs middleware in reverse-add order (last added = outermost).
    CORS goes last so its headers also land on 429 responses.
    """
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(
        RateLimitMiddleware,
        requests_per_window=settings.rate_limit_requests,
        transfer_requests_per_window=settings.rate_limit_transfer,
        window_seconds=settings.rate_limit_window_seconds,
    )
    app.add_middleware(RequestIdMiddleware)
    setup_cors(app, settings)
