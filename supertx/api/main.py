"""FastAPI application entry point."""

import logging
import os
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from supertx import __version__
from supertx.api.dependencies import cleanup, get_registry, get_storage
from supertx.api.routes import chains_router, quotes_router, runs_router
from supertx.core.runtime.exceptions import (
    AuthorizationError,
    CancellationRejectedError,
    ExecutionError,
    PlanningError,
    ResolutionError,
    RunNotFoundError,
)


def configure_logging() -> None:
    """Configure logging based on environment variables.

    Environment variables:
        LOG_LEVEL: Set the logging level (DEBUG, INFO, WARNING, ERROR). Default: INFO
        LOG_FORMAT: Set the log format (simple, detailed). Default: detailed
    """
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    log_format = os.getenv("LOG_FORMAT", "detailed")

    level_map = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "ERROR": logging.ERROR,
        "CRITICAL": logging.CRITICAL,
    }
    level = level_map.get(log_level, logging.INFO)

    if log_format == "simple":
        format_str = "%(levelname)s: %(message)s"
    else:
        format_str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=level,
        format=format_str,
        stream=sys.stdout,
    )

    logging.getLogger("supertx").setLevel(level)

    # Reduce noise from third-party libraries unless DEBUG
    if level > logging.DEBUG:
        logging.getLogger("pymongo").setLevel(logging.WARNING)
        logging.getLogger("httpx").setLevel(logging.WARNING)


configure_logging()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager."""
    logger.info("Starting supertx API application...")
    get_registry()
    await get_storage()
    logger.info("Registry and run storage initialized")
    yield
    logger.info("Shutting down supertx API application...")
    await cleanup()
    logger.info("Cleanup complete")


def _error(status_code: int, exc: Exception, error_code: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error_code": error_code},
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title="supertx API",
        description="Multi-chain supertransaction planning and execution",
        version=__version__,
        lifespan=lifespan,
    )

    # CORS middleware - configure ALLOWED_ORIGINS env var for production
    allowed_origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",")
    logger.debug(f"Configuring CORS with allowed origins: {allowed_origins}")
    application.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    application.include_router(chains_router, prefix="/chains", tags=["Chains"])
    application.include_router(quotes_router, prefix="/quotes", tags=["Quotes"])
    application.include_router(runs_router, prefix="/runs", tags=["Runs"])

    # Exception handlers
    @application.exception_handler(ResolutionError)
    async def resolution_error_handler(
        request: Request, exc: ResolutionError
    ) -> JSONResponse:
        logger.warning(f"Resolution error on {request.method} {request.url.path}: {exc}")
        return _error(422, exc, "RESOLUTION_ERROR")

    @application.exception_handler(PlanningError)
    async def planning_error_handler(
        request: Request, exc: PlanningError
    ) -> JSONResponse:
        logger.warning(f"Planning error on {request.method} {request.url.path}: {exc}")
        return _error(422, exc, "PLANNING_ERROR")

    @application.exception_handler(AuthorizationError)
    async def authorization_error_handler(
        request: Request, exc: AuthorizationError
    ) -> JSONResponse:
        logger.warning(f"Authorization failed on {request.method} {request.url.path}: {exc}")
        return _error(403, exc, "AUTHORIZATION_ERROR")

    @application.exception_handler(RunNotFoundError)
    async def not_found_handler(request: Request, exc: RunNotFoundError) -> JSONResponse:
        logger.debug(f"Not found on {request.method} {request.url.path}: {exc}")
        return _error(404, exc, "NOT_FOUND")

    @application.exception_handler(CancellationRejectedError)
    async def cancellation_rejected_handler(
        request: Request, exc: CancellationRejectedError
    ) -> JSONResponse:
        logger.info(f"Cancellation rejected on {request.url.path}: {exc}")
        return _error(409, exc, "CANCELLATION_REJECTED")

    @application.exception_handler(ExecutionError)
    async def execution_error_handler(
        request: Request, exc: ExecutionError
    ) -> JSONResponse:
        logger.warning(f"Execution error on {request.method} {request.url.path}: {exc}")
        return _error(409, exc, "EXECUTION_ERROR")

    @application.get("/health")
    async def health_check():
        return {"status": "healthy", "version": __version__}

    return application


app = create_app()
