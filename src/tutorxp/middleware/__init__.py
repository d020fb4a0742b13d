"""Middleware registration."""

from fastapi import FastAPI

from tutorxp.config import Settings
from tutorxp.middleware.cors import setup_cors
from tutorxp.middleware.error_handler import setup_error_handlers
from tutorxp.middleware.logging import setup_logging
from tutorxp.middleware.request_id import RequestIdMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Register all middleware.

    Starlette runs middleware in reverse-add order, so CORS is added last to
    wrap every response, including error responses.
    """
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(RequestIdMiddleware)
    setup_cors(app, settings)
