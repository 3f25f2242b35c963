"""API routes and endpoints."""

from fastapi import APIRouter

from logsight.api import analysis, health

api_router = APIRouter()

api_router.include_router(health.router, prefix="/health", tags=["health"])
api_router.include_router(analysis.router, prefix="/api/v1", tags=["analysis"])
