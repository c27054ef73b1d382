"""City Weather Pipeline - FastAPI application."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Callable, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.config import settings
from app.exceptions import PipelineError
from app.logging_config import configure_logging
from app.api.v1.router import v1_router
from app.api.v1 import cities as cities_api
from app.api.v1 import status as status_api
from app.services import PipelineServices, build_services

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _error_body(error: str, message: str, **extra) -> dict:
    return {"error": error, "message": message, "timestamp": _now(), **extra}


def create_app(
    services_factory: Optional[Callable[[], PipelineServices]] = None,
    start_workers: bool = True,
) -> FastAPI:
    """Build the application.

    ``services_factory`` replaces the default client construction (tests
    inject in-memory stores and fake providers). With ``start_workers``
    off, stages only run when driven explicitly.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown logic."""
        configure_logging(settings.log_level)
        logger.info("Starting City Weather Pipeline (%s)", settings.environment)
        logger.info("Record store: %s, table %s", settings.record_store_backend, settings.table_name)
        logger.info("Description provider: %s", settings.description_provider)

        services = services_factory() if services_factory else build_services(settings)
        app.state.services = services

        # Wire services into API endpoints
        cities_api.set_services(services)
        status_api.set_services(services)

        if start_workers:
            await services.start()

        yield

        # Shutdown
        logger.info("Shutting down City Weather Pipeline")
        await services.stop()
        cities_api.set_services(None)
        status_api.set_services(None)

    app = FastAPI(
        title="City Weather Pipeline",
        description="Queue-mediated city weather enrichment and description pipeline",
        version="0.1.0",
        lifespan=lifespan,
    )

    # CORS: any origin may call the API
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=[
            "Content-Type", "X-Amz-Date", "Authorization", "X-Api-Key", "X-Amz-Security-Token",
        ],
    )

    @app.exception_handler(PipelineError)
    async def pipeline_error_handler(request: Request, exc: PipelineError):
        if exc.http_status >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        else:
            logger.debug("%s %s: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.http_status, content=_error_body(exc.error, exc.message))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        first = exc.errors()[0] if exc.errors() else {}
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        detail = first.get("msg", "Invalid request")
        message = f"{location}: {detail}" if location else detail
        return JSONResponse(status_code=400, content=_error_body("Bad Request", message))

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404 and exc.detail == "Not Found":
            return JSONResponse(
                status_code=404,
                content=_error_body(
                    "Not Found",
                    f"Path {request.url.path} not found",
                    path=request.url.path,
                    method=request.method,
                ),
            )
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(str(exc.detail), str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content=_error_body("Internal Server Error", "An unexpected error occurred"),
        )

    app.include_router(v1_router)
    return app


app = create_app()


def run() -> None:
    """Console entry point: serve the API with uvicorn."""
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.port, log_level=settings.log_level.lower())
