"""
FastAPI application factory
"""
import logging
from contextlib import asynccontextmanager
from typing import Dict, Type

import prometheus_client
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from brandhub import __version__
from brandhub.api import automations, context, submissions
from brandhub.core.config import Settings, get_settings
from brandhub.core.exceptions import (
    BrandHubError,
    ConcurrentDispatchError,
    InvalidScheduleError,
    InvalidStatusTransitionError,
    InvalidSubmissionError,
    KnowledgeValidationError,
    NotFoundError,
    PersistenceError,
    RetryLimitExceededError,
    SchemaIncompleteError,
)
from brandhub.core.http_client import close_runner_client
from brandhub.core.logging import setup_logging
from brandhub.db.database import init_db

logger = logging.getLogger(__name__)

# Most specific first; the first isinstance match wins
ERROR_STATUS_CODES: Dict[Type[BrandHubError], int] = {
    NotFoundError: 404,
    ConcurrentDispatchError: 409,
    InvalidStatusTransitionError: 409,
    RetryLimitExceededError: 409,
    KnowledgeValidationError: 422,
    InvalidScheduleError: 422,
    InvalidSubmissionError: 422,
    SchemaIncompleteError: 500,
    PersistenceError: 503,
}


class PrometheusResponse(Response):
    media_type = prometheus_client.CONTENT_TYPE_LATEST


def status_code_for(exc: BrandHubError) -> int:
    for error_type, status_code in ERROR_STATUS_CODES.items():
        if isinstance(exc, error_type):
            return status_code
    return 500


def setup_exception_handlers(app: FastAPI) -> None:
    """Map the error taxonomy onto HTTP responses"""

    @app.exception_handler(BrandHubError)
    async def brandhub_error_handler(request: Request, exc: BrandHubError):
        status_code = status_code_for(exc)
        content = {"error": type(exc).__name__, "message": str(exc)}

        if isinstance(exc, KnowledgeValidationError) and exc.errors:
            content["details"] = exc.errors
        if isinstance(exc, SchemaIncompleteError):
            content["path"] = exc.path

        if status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc}")
        else:
            logger.info(f"{request.method} {request.url.path} rejected ({status_code}): {exc}")

        return JSONResponse(status_code=status_code, content=content)


def setup_health_endpoints(app: FastAPI, settings: Settings) -> None:

    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "version": __version__,
            "environment": settings.environment,
            "brand_id": settings.brand_id,
        }

    @app.get("/metrics", response_class=PrometheusResponse, include_in_schema=False)
    async def metrics():
        return PrometheusResponse(prometheus_client.generate_latest())


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield
    await close_runner_client()


def create_app(settings: Settings = None) -> FastAPI:
    """
    Create the FastAPI application.

    Settings are loaded first, so missing required configuration stops
    startup with a ConfigurationError.
    """
    settings = settings or get_settings()

    setup_logging(settings)

    app = FastAPI(
        title="BrandHub",
        description="Brand knowledge distribution and automation tracking",
        version=__version__,
        lifespan=lifespan,
    )

    for module in (context, submissions, automations):
        app.include_router(module.router)

    setup_exception_handlers(app)
    setup_health_endpoints(app, settings)

    logger.info(f"BrandHub API created for brand {settings.brand_id} ({settings.environment})")
    return app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(create_app(), host="0.0.0.0", port=8000)
