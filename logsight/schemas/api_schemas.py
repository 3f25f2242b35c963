"""Pydantic schemas for HTTP responses that are not pipeline data."""

from typing import List

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Schema for the liveness probe."""

    status: str = "healthy"
    service: str
    version: str
    environment: str


class CircuitBreakerStatus(BaseModel):
    """Schema for one provider circuit breaker."""

    name: str
    state: str
    failure_count: int = Field(ge=0)
    success_count: int = Field(ge=0)
    trip_count: int = Field(ge=0)
    last_state_change: str


class CircuitBreakersResponse(BaseModel):
    """Schema for the breaker overview; degraded while any circuit is open."""

    status: str
    breakers: List[CircuitBreakerStatus]
