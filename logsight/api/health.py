"""Health check endpoints."""

from fastapi import APIRouter

from logsight.core.config import get_settings
from logsight.core.error_handling import get_breaker_registry
from logsight.schemas.api_schemas import (
    CircuitBreakersResponse,
    CircuitBreakerStatus,
    HealthResponse,
)

router = APIRouter()


@router.get("/", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Basic health check endpoint."""
    settings = get_settings()
    return HealthResponse(
        status="healthy",
        service=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
    )


@router.get("/circuit-breakers", response_model=CircuitBreakersResponse)
async def circuit_breakers() -> CircuitBreakersResponse:
    """State of every provider circuit breaker created so far."""
    breakers = [CircuitBreakerStatus(**state) for state in get_breaker_registry().get_states()]
    return CircuitBreakersResponse(
        status="degraded" if any(b.state == "open" for b in breakers) else "healthy",
        breakers=breakers,
    )
