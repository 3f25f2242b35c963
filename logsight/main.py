"""Main FastAPI application."""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from logsight.api import api_router
from logsight.core.config import get_settings
from logsight.core.error_handling import (
    AnalysisError,
    AnalysisTimeoutError,
    CircuitOpenError,
    ErrorHandler,
    InvalidInputError,
    LogIOError,
    NoMatchingEntriesError,
)
from logsight.core.logging import get_logger, setup_logging
from logsight.monitoring.metrics import get_metrics_collector, metrics_endpoint
from logsight.providers.registry import close_http_client

# Setup logging
setup_logging()
logger = get_logger(__name__)

# Get settings
settings = get_settings()

# Checked in order; anything else that reaches the handler came from a provider
_ERROR_STATUS_CODES = (
    (InvalidInputError, 400),
    (LogIOError, 400),
    (NoMatchingEntriesError, 422),
    (CircuitOpenError, 503),
    (AnalysisTimeoutError, 504),
)


def status_code_for(error: AnalysisError) -> int:
    """HTTP status for a typed pipeline error."""
    for error_type, status_code in _ERROR_STATUS_CODES:
        if isinstance(error, error_type):
            return status_code
    if error.code in ("INTERNAL", "DECODE_ERROR"):
        return 500
    return 502


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("application_starting", app_name=settings.app_name, version=settings.app_version)

    yield

    # Shutdown
    logger.info("application_shutting_down")
    await close_http_client()
    logger.info("application_shutdown_complete")


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Turns raw application logs into root-cause analyses with an LLM",
    docs_url="/docs" if not settings.is_production else None,
    redoc_url="/redoc" if not settings.is_production else None,
    lifespan=lifespan,
)


# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all requests and collect metrics."""
    start_time = time.time()

    response = await call_next(request)

    duration = time.time() - start_time

    logger.info(
        "http_request",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration=f"{duration:.3f}s",
    )

    get_metrics_collector().record_api_request(
        request.method, request.url.path, response.status_code
    )

    return response


@app.exception_handler(AnalysisError)
async def analysis_error_handler(request: Request, exc: AnalysisError):
    """Typed pipeline errors carry their own status and retry hint."""
    status_code = status_code_for(exc)
    logger.warning(
        "analysis_request_failed",
        path=request.url.path,
        status_code=status_code,
        error_code=exc.code,
    )
    return JSONResponse(status_code=status_code, content=ErrorHandler.to_response(exc))


# Exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler."""
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        exc_info=True,
    )

    return JSONResponse(
        status_code=500,
        content={
            "status_code": 500,
            "message": "Internal server error",
            "errors": [str(exc)] if settings.debug else ["An unexpected error occurred"],
        },
    )


# Include routers
app.include_router(api_router)

# Metrics endpoint
if settings.enable_metrics:
    app.get(settings.metrics_path)(metrics_endpoint)


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": settings.app_name,
        "version": settings.app_version,
        "status": "running",
        "environment": settings.environment,
    }


def run() -> None:
    """Console entry point."""
    import uvicorn

    uvicorn.run(
        "logsight.main:app",
        host=settings.host,
        port=settings.port,
        workers=settings.workers,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
