"""Middleware registration."""

from fastapi import FastAPI

from tradejournal.config import Settings
from tradejournal.middleware.cors import setup_cors
from tradejournal.middleware.error_handler import setup_error_handlers
from tradejournal.middleware.logging import setup_logging
from tradejournal.middleware.request_id import RequestIdMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Register all middleware in the correct order.

    Starlette runs middleware in reverse-add order, so CORS goes last to wrap
    every response.
    """
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(RequestIdMiddleware)
    setup_cors(app, settings)
