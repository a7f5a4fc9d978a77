"""
FastAPI application entry point for the FriendlyEats backend.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from backend.config import get_settings
from backend.errors import RestaurantError
from backend.routes import router

logger = logging.getLogger(__name__)


async def handle_restaurant_error(request: Request, exc: RestaurantError) -> JSONResponse:
    if exc.http_status >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=exc.http_status, content={"detail": str(exc)})


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="FriendlyEats Backend (FastAPI)", version="0.1.0")
    app.include_router(router, prefix=settings.api_prefix)
    app.add_exception_handler(RestaurantError, handle_restaurant_error)
    return app


app = create_app()
