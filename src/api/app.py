"""
FastAPI application factory.

* Registers customer, admin and payment-callback routes.
* Builds the in-memory dispatch core on startup and drains pending
  notifications on shutdown via lifespan events.
* Maps every ``DispatchError`` to a JSON error body with its status code.
* Applies rate-limiting middleware.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from src.api.dependencies import build_dispatch_service
from src.api.middleware import limiter
from src.api.schemas import ErrorResponse
from src.api.routes import admin, payments, rides
from src.config import settings
from src.domain.errors import DispatchError
from src.services.dispatch import DispatchService

logger = logging.getLogger(__name__)

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid input"},
    402: {"model": ErrorResponse, "description": "Gateway payment not completed"},
    404: {"model": ErrorResponse, "description": "Not found"},
    409: {"model": ErrorResponse, "description": "Invalid state or conflicting update"},
}


async def dispatch_error_handler(request: Request, exc: DispatchError) -> JSONResponse:
    logger.info("%s %s -> %s: %s", request.method, request.url.path, exc.code, exc)
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(detail=str(exc), error=exc.code).model_dump(),
    )


def create_app(dispatch: Optional[DispatchService] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Attach the dispatch core on startup; flush notifications on shutdown."""
        if getattr(app.state, "dispatch", None) is None:
            app.state.dispatch = build_dispatch_service(settings)
        logger.info("Dispatch core ready")
        yield
        await app.state.dispatch.drain_notifications()
        logger.info("Dispatch core stopped")

    app = FastAPI(
        title="PickOnTheGo Instant Rides API",
        description=(
            "Ride lifecycle and dispatch engine for private cars and shared "
            "bus shuttles: upfront fare quotes, driver and seat assignment, "
            "trip tracking, cash and gateway payment reconciliation."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    # Set the core immediately so it is available without running lifespan
    app.state.dispatch = dispatch

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(DispatchError, dispatch_error_handler)

    # Routers
    for router in (rides.router, admin.router, payments.router):
        app.include_router(router, prefix="/api/v1", responses=ERROR_RESPONSES)

    return app
