"""FastAPI application entry point."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from job_tracker.api.applications import router as applications_router
from job_tracker.api.events import router as events_router
from job_tracker.auth import HeaderIdentityResolver
from job_tracker.config import AppConfig, get_config
from job_tracker.database import init_db
from job_tracker.logging_config import setup_logging

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application startup and shutdown lifecycle."""
    config: AppConfig = app.state.config
    setup_logging(level=config.log_level, log_file=config.log_file)
    if app.state.session_factory is None:
        app.state.session_factory = init_db(config)
    logger.info(
        "server_starting",
        host=config.host,
        port=config.port,
        identity_header=config.identity_header,
        match_window_days=config.company_match_window_days,
    )
    yield
    logger.info("server_shutting_down")


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    msg = str(first.get("msg", "Invalid request")).removeprefix("Value error, ")
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    return f"{field}: {msg}" if field else msg


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # A path id that does not parse cannot name an existing resource
    if any((err.get("loc") or ("",))[0] == "path" for err in exc.errors()):
        return JSONResponse(status_code=404, content={"ok": False, "error": "Not found"})
    message = _validation_message(exc)
    logger.info("request_rejected", path=request.url.path, error=message)
    return JSONResponse(status_code=400, content={"ok": False, "error": message})


async def _http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"ok": False, "error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("unhandled_error", path=request.url.path, error=str(exc), exc_info=exc)
    return JSONResponse(status_code=500, content={"ok": False, "error": "Server error"})


def create_app(config: Optional[AppConfig] = None) -> FastAPI:
    """Application factory: create and configure the FastAPI app.

    The database session factory is created on startup unless one has
    already been placed on ``app.state.session_factory`` (tests do this).
    """
    config = config or get_config()

    app = FastAPI(
        title="Job Application Tracker",
        description="Link inbound job-search email to applications on a status board",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.session_factory = None
    app.state.identity_resolver = HeaderIdentityResolver(config.identity_header)

    # CORS for the board front end
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)

    # Register routers
    app.include_router(applications_router)
    app.include_router(events_router)

    @app.get("/health", tags=["health"])
    def health_check() -> dict[str, bool]:
        return {"ok": True}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    _config = get_config()
    uvicorn.run(
        "job_tracker.main:app",
        host=_config.host,
        port=_config.port,
        reload=True,
    )
