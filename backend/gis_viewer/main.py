"""FastAPI application entrypoint and configuration.

This module provides the application factory that wires settings, storage
backends, API routers, CORS middleware and the exception handlers that
render every failure into the ``{success, data, error}`` envelope.

Example:
    The application can be run with uvicorn:
        $ uvicorn gis_viewer.main:app --reload

    Or built with explicit settings, e.g. in tests:
        >>> from gis_viewer.core import config
        >>> app = create_app(config.Settings(storage_backend="memory"))
"""

import logging

import fastapi
from fastapi import exceptions as fastapi_exceptions
from fastapi import responses
from fastapi.middleware import cors
from starlette import exceptions as starlette_exceptions

from gis_viewer.api import (
    auth,
    datasets,
    envelope,
    export,
    features,
    maps,
    search,
    styles,
    users,
)
from gis_viewer.core import config, errors, logging_config
from gis_viewer.db import database
from gis_viewer.services import demo_data

logger = logging.getLogger(__name__)

_HTTP_STATUS_CODES = {
    400: "VALIDATION_ERROR",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    413: "PAYLOAD_TOO_LARGE",
}


def _error_response(status_code: int, code: str, message: str) -> responses.JSONResponse:
    return responses.JSONResponse(
        status_code=status_code,
        content=dict(envelope.failure(code, message)),
    )


def _register_exception_handlers(app: fastapi.FastAPI) -> None:
    @app.exception_handler(errors.AppError)
    async def app_error_handler(
        request: fastapi.Request, exc: errors.AppError
    ) -> responses.JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return _error_response(exc.status_code, exc.code, exc.message)

    @app.exception_handler(fastapi_exceptions.RequestValidationError)
    async def request_validation_handler(
        request: fastapi.Request,
        exc: fastapi_exceptions.RequestValidationError,
    ) -> responses.JSONResponse:
        details = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in exc.errors()
        )
        return _error_response(400, "VALIDATION_ERROR", details or "Invalid request")

    @app.exception_handler(starlette_exceptions.HTTPException)
    async def http_error_handler(
        request: fastapi.Request,
        exc: starlette_exceptions.HTTPException,
    ) -> responses.JSONResponse:
        code = _HTTP_STATUS_CODES.get(exc.status_code, "SERVER_ERROR")
        return _error_response(exc.status_code, code, str(exc.detail))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(
        request: fastapi.Request, exc: Exception
    ) -> responses.JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _error_response(500, "SERVER_ERROR", "Internal server error")


def create_app(settings: config.Settings | None = None) -> fastapi.FastAPI:
    """Create and configure the FastAPI application.

    The storage backend is chosen once here from ``settings`` and kept on
    ``app.state`` together with the settings themselves; routes reach both
    through ``gis_viewer.api.deps``.

    Args:
        settings: Settings to use. Defaults to the cached environment
            settings.

    Returns:
        Configured FastAPI application instance ready for ASGI server.
    """
    settings = settings or config.get_settings()
    logging_config.configure_logging(settings.log_level)
    settings.ensure_directories()

    app = fastapi.FastAPI(title="GIS Viewer", version="0.1.0")
    app.state.settings = settings
    app.state.repositories = database.get_repositories(settings)
    if settings.seed_demo_data:
        demo_data.seed(app.state.repositories)

    app.include_router(auth.router)
    app.include_router(datasets.router)
    app.include_router(maps.router)
    app.include_router(search.router)
    app.include_router(features.router)
    app.include_router(styles.router)
    app.include_router(export.router)
    app.include_router(users.router, prefix="/api")
    app.include_router(users.router, prefix="/api/admin", include_in_schema=False)

    app.add_middleware(
        cors.CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.allow_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    _register_exception_handlers(app)

    @app.get("/health")
    @app.get("/api/health")
    async def health() -> dict[str, str]:  # type: ignore[misc]
        """Health check endpoint for monitoring and load balancers."""
        return {"status": "ok"}

    logger.info(
        "GIS Viewer started with %s storage and %s blobs",
        settings.storage_backend,
        settings.blob_backend,
    )
    return app


app = create_app()
