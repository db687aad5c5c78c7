"""FastAPI application entry point for the shortlink service.

This module configures the FastAPI application with middleware, lifecycle
management, error translation and route registration.

Application Lifecycle Diagram
=============================
::
    ┌──────────────┐
    │  uvicorn     │
    │  startup     │
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ create_app() │
    │ CORS, metrics│
    │ handlers     │
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ lifespan()   │
    │ startup:     │
    │ AppResources │
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ Serve HTTP   │
    │ requests     │
    └──────┬───────┘
           ▼
    ┌──────────────┐
    │ lifespan()   │
    │ shutdown:    │
    │ drain clicks │
    │ close clients│
    └──────────────┘

How to Use
===========
**Step 1 — Run with uvicorn**::
    uvicorn shortlink.main:app --host 0.0.0.0 --port 8080 --reload

**Step 2 — Make API calls**::
    # Health check
    curl http://localhost:8080/health

    # Guest link (24 hours, no account)
    curl -X POST http://localhost:8080/api/url/guest-shorten \\
         -H "Content-Type: application/json" \\
         -d '{"longUrl": "https://example.com"}'

Key Behaviours
===============
- Tables are created on startup.
- Every ``ShortLinkError`` becomes ``{"success": false, "message", "error"}``
  with the status bound to its ``ErrorCode``; ``detail`` is only included
  outside production.
- Request validation failures are reported as ``invalid_input`` (400).
- Anything else escaping a handler is logged and reported as
  ``service_unavailable`` (503) in the same envelope.
- ``/metrics`` is registered before the redirect catch-all route.
"""

__all__ = ["app", "create_app"]

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator

from shortlink.config import Settings, get_settings
from shortlink.dependencies import AppResources
from shortlink.enums import ErrorCode
from shortlink.errors import RateLimited, ShortLinkError
from shortlink.routes import auth_router, health_router, redirect_router, url_router
from shortlink.schemas import ErrorResponse

logger = logging.getLogger("shortlink")

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Startup
    resources = AppResources(app.state.settings)
    app.state.resources = resources
    await resources.startup()
    yield
    # Shutdown
    await resources.shutdown()


def _error_response(status_code: int, body: ErrorResponse, headers: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(by_alias=True, exclude_none=True, mode="json"),
        headers=headers,
    )


def _validation_message(error: dict) -> str:
    return error.get("msg", "Invalid value").removeprefix("Value error, ")


def register_exception_handlers(app: FastAPI, settings: Settings) -> None:
    @app.exception_handler(ShortLinkError)
    async def shortlink_error_handler(request: Request, exc: ShortLinkError) -> JSONResponse:
        body = ErrorResponse(
            message=exc.message,
            error=exc.code,
            detail=None if settings.is_production else exc.detail,
        )
        headers = None
        if isinstance(exc, RateLimited):
            body.retry_after = exc.retry_after
            headers = {"Retry-After": str(exc.retry_after)}
        return _error_response(exc.status_code, body, headers)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = [
            {
                "field": ".".join(str(part) for part in error.get("loc", ())[1:]),
                "message": _validation_message(error),
            }
            for error in exc.errors()
        ]
        body = ErrorResponse(message="Validation failed", error=ErrorCode.INVALID_INPUT, errors=errors)
        return _error_response(ErrorCode.INVALID_INPUT.status_code, body)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc!r}")
        body = ErrorResponse(
            message="Service temporarily unavailable",
            error=ErrorCode.SERVICE_UNAVAILABLE,
            detail=None if settings.is_production else repr(exc),
        )
        return _error_response(ErrorCode.SERVICE_UNAVAILABLE.status_code, body)


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.APP_NAME,
        version="1.0.0",
        description="URL shortener with owned and guest links",
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=False,
        should_respect_env_var=False,
    ).instrument(app).expose(app)

    register_exception_handlers(app, settings)

    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(url_router)
    # Catch-all /{short_code} goes last.
    app.include_router(redirect_router)
    return app


app = create_app()
