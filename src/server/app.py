"""FastAPI application bootstrap."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.chat_history import ChatHistoryRepository
from src.history_service.config import Config

from .routes import register_health_routes, register_history_routes

logger = logging.getLogger(__name__)


def _format_validation_errors(exc: RequestValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        parts.append(f"{location}: {error.get('msg', 'invalid value')}")
    return "; ".join(parts)


def is_preflight(request: Request) -> bool:
    """Return True for a CORS preflight that CORSMiddleware will answer."""
    return (
        "origin" in request.headers
        and "access-control-request-method" in request.headers
    )


def register_error_handlers(app: FastAPI) -> None:
    """Render every error as a flat {error, details?} JSON body."""

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        if isinstance(exc.detail, dict):
            content = exc.detail
        else:
            content = {"error": exc.detail}
        return JSONResponse(
            status_code=exc.status_code,
            content=content,
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        details = _format_validation_errors(exc)
        logger.info("Rejected %s %s: %s", request.method, request.url.path, details)
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid request", "details": details},
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        # Served by the outermost middleware, so CORS headers are set here
        logger.exception("Unhandled error on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error"},
            headers={"Access-Control-Allow-Origin": "*"},
        )


def create_app(
    config: Optional[Config] = None,
    repository: Optional[ChatHistoryRepository] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    The history repository is built once here and shared through app.state.
    """
    if config is None:
        config = Config.from_yaml()
    if repository is None:
        repository = ChatHistoryRepository(db_path=config.history.db_path)

    app = FastAPI(title="Chat History API", version="1.0.0")
    app.state.config = config
    app.state.history_repository = repository

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def add_allow_origin_header(request: Request, call_next):
        # CORSMiddleware only answers real preflights and only decorates
        # requests that carry an Origin header
        if request.method == "OPTIONS" and not is_preflight(request):
            response = Response(status_code=200)
        else:
            response = await call_next(request)
        response.headers.setdefault("Access-Control-Allow-Origin", "*")
        return response

    register_error_handlers(app)
    register_history_routes(app)
    register_health_routes(app)

    return app
