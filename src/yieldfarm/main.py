"""FastAPI application factory and main entry point."""

import logging
import uuid
from collections.abc import Callable
from contextlib import asynccontextmanager
from http import HTTPStatus
from typing import Any

from fastapi import FastAPI, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from yieldfarm import __version__
from yieldfarm.api.v1 import api_router
from yieldfarm.core.config import Settings, get_settings
from yieldfarm.core.container import build_container
from yieldfarm.core.exceptions import FarmingError, RateLimitExceeded
from yieldfarm.core.logging import configure_logging
from yieldfarm.infrastructure.chain import ChainClient
from yieldfarm.repositories import TransactionRepository
from yieldfarm.services.transactions.schemas import utcnow

logger = logging.getLogger(__name__)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Tag each request with an id, reusing the caller's X-Request-ID."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


def error_response(
    request: Request,
    status_code: int,
    error: str,
    message: str,
    details: Any = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Render the common error envelope."""
    request_id = getattr(request.state, "request_id", None) or str(uuid.uuid4())
    body: dict[str, Any] = {
        "error": error,
        "message": message,
        "requestId": request_id,
        "timestamp": utcnow().isoformat(),
    }
    if details:
        body["details"] = details
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(body),
        headers={"X-Request-ID": request_id, **(headers or {})},
    )


def register_exception_handlers(app: FastAPI, settings: Settings) -> None:
    """Map domain, validation and HTTP errors onto the error envelope."""

    @app.exception_handler(FarmingError)
    async def farming_error_handler(request: Request, exc: FarmingError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(f"{exc.kind} on {request.method} {request.url.path}: {exc.message}")
        else:
            logger.info(f"{exc.kind} on {request.method} {request.url.path}: {exc.message}")
        headers = None
        if isinstance(exc, RateLimitExceeded):
            headers = {
                "Retry-After": str(max(1, round(exc.retry_after))),
                "X-RateLimit-Remaining": str(exc.remaining),
            }
            if exc.limit is not None:
                headers["X-RateLimit-Limit"] = str(exc.limit)
        return error_response(
            request, exc.status_code, exc.kind, exc.message, exc.details, headers
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        details = [
            {
                "field": ".".join(str(part) for part in err["loc"][1:]) or str(err["loc"][0]),
                "message": err["msg"],
                "value": err.get("input"),
            }
            for err in exc.errors()
        ]
        return error_response(
            request, 400, "ValidationError", "Invalid request data", details
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        if exc.status_code == 404 and exc.detail == "Not Found":
            message = f"Route {request.method} {request.url.path} not found"
        else:
            message = str(exc.detail)
        error = HTTPStatus(exc.status_code).phrase.replace(" ", "")
        return error_response(request, exc.status_code, error, message)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        message = str(exc) if settings.is_development else "Something went wrong"
        return error_response(request, 500, "InternalServerError", message)


def create_app(
    settings: Settings | None = None,
    chain_client: ChainClient | None = None,
    repository: TransactionRepository | None = None,
) -> FastAPI:
    """Create and configure FastAPI application.

    Args:
        settings: Settings to use instead of the environment
        chain_client: Overrides the flag-selected chain client
        repository: Overrides the flag-selected record store
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Build components on startup and stop monitoring on shutdown."""
        configure_logging(settings)
        container = build_container(settings, chain_client, repository)
        app.state.settings = settings
        app.state.container = container

        if container.uses_database:
            from yieldfarm.infrastructure.database import create_tables

            await create_tables()
        if settings.monitor_resume_on_startup:
            resumed = await container.monitor.resume_pending()
            logger.info(f"Resumed monitoring of {resumed} transactions")
        logger.info(f"{settings.app_name} {__version__} started ({settings.environment})")

        yield

        stopped = await container.monitor.stop_all()
        await container.hub.drain()
        logger.info(f"Shutdown complete, stopped {stopped} monitors")

    app = FastAPI(
        title=settings.app_name,
        version=__version__,
        description="Cross-chain EURe yield farming API",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app, settings)
    register_routes(app, settings)

    return app


def register_routes(app: FastAPI, settings: Settings) -> None:
    """Register all application routes."""
    app.include_router(api_router, prefix=settings.api_prefix)

    @app.get("/", tags=["API"])
    async def api_root():
        """Service info."""
        return {
            "name": settings.app_name,
            "version": __version__,
            "environment": settings.environment,
            "docs_url": "/docs" if settings.debug else "Disabled in production",
        }


# Create application instance
app = create_app()
