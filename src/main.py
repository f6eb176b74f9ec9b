from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.adapters.api.controllers.location import router as location_router
from src.adapters.api.controllers.realtime import router as realtime_router
from src.adapters.api.dependencies import TrackingContainer, build_container
from src.domain.exceptions import AuthError, InternalError, TrackingError

logger = logging.getLogger("uvicorn.error")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    container: TrackingContainer = app.state.container
    if container.settings.reset_enabled:
        container.scheduler.start()
    try:
        yield
    finally:
        await container.scheduler.stop()


async def tracking_error_handler(request: Request, exc: TrackingError) -> JSONResponse:
    if isinstance(exc, InternalError):
        logger.error(
            "Internal error: %s",
            exc.message,
            exc_info=exc.__cause__ or exc,
            extra={"path": str(request.url.path)},
        )

    headers = None
    if isinstance(exc, AuthError) and exc.status_code == 401:
        headers = {"WWW-Authenticate": "Bearer"}

    return JSONResponse(
        status_code=exc.status_code, content={"detail": exc.detail}, headers=headers
    )


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Report malformed bodies as 400 with a readable first error."""

    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        detail = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
    else:
        detail = "Invalid request"
    return JSONResponse(status_code=400, content={"detail": detail})


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Ensure API errors are JSON so the frontend can display them.

    Starlette's default 500 handler may return plain text/HTML, which the
    frontend parses as JSON and displays as `{}`.
    """

    logger.exception("Unhandled exception", extra={"path": str(request.url.path)})

    reveal = (os.getenv("TRACKING_REVEAL_ERRORS") or "").strip().lower() in {
        "1",
        "true",
        "yes",
        "on",
    }
    detail = (str(exc) or exc.__class__.__name__) if reveal else "Internal Server Error"
    return JSONResponse(status_code=500, content={"detail": detail})


def create_app(container: TrackingContainer | None = None) -> FastAPI:
    container = container or build_container()

    app = FastAPI(title="Campus Bus Tracker", lifespan=lifespan)
    app.state.container = container

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(container.settings.allowed_origins),
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    app.add_exception_handler(TrackingError, tracking_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(location_router)
    app.include_router(realtime_router)

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()
