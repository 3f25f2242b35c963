"""Log analysis endpoints.

Clients POST the raw log file as the request body and receive the full
analysis report. Typed pipeline errors are turned into HTTP responses by the
application's exception handler.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Header, Query, Request

from logsight.core.config import get_settings
from logsight.core.error_handling import InvalidInputError
from logsight.core.logging import get_logger
from logsight.providers.base import ModelInfo
from logsight.schemas.analysis_schemas import AnalysisReport
from logsight.services.analysis_service import AnalysisService, get_analysis_service

router = APIRouter()
logger = get_logger(__name__)


@router.post("/analyze", response_model=AnalysisReport)
async def analyze_logs(
    request: Request,
    min_level: Optional[str] = Query(None, description="Minimum level to keep"),
    provider: Optional[str] = Query(None, description="Provider name"),
    model: Optional[str] = Query(None, description="Model override"),
    user_context: Optional[str] = Query(None, max_length=2000),
    timeout_seconds: Optional[float] = Query(None),
    api_key: Optional[str] = Header(None, alias="X-Provider-Api-Key"),
    service: AnalysisService = Depends(get_analysis_service),
) -> AnalysisReport:
    """
    Analyse a log file sent as the raw request body.

    The body may be in any encoding the decoder recovers (UTF-8, UTF-16 with
    BOM, Windows-1252, ISO-8859-2/3).
    """
    settings = get_settings()
    data = await request.body()
    if not data:
        raise InvalidInputError("Request body is empty; send the log file contents")
    if len(data) > settings.max_upload_bytes:
        raise InvalidInputError(
            f"Log upload of {len(data)} bytes exceeds the {settings.max_upload_bytes} byte limit"
        )

    logger.info("analysis_requested", size_bytes=len(data), provider=provider, model=model)

    return await service.analyze_bytes(
        data,
        min_level=min_level or settings.default_min_level,
        provider_name=provider or settings.default_provider,
        api_key=api_key,
        model=model,
        user_context=user_context,
        timeout_seconds=timeout_seconds,
    )


@router.get("/models", response_model=List[ModelInfo])
async def list_models(
    provider: Optional[str] = Query(None, description="Provider name"),
    api_key: Optional[str] = Header(None, alias="X-Provider-Api-Key"),
    service: AnalysisService = Depends(get_analysis_service),
) -> List[ModelInfo]:
    """List models offered by a provider."""
    settings = get_settings()
    return await service.list_models(provider or settings.default_provider, api_key=api_key)
