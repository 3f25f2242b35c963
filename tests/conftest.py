"""Pytest configuration and fixtures."""

from pathlib import Path
from typing import Callable, List, Optional, Union

import pytest

from logsight.core.config import Settings, get_settings
from logsight.core.error_handling import CircuitBreakerRegistry
from logsight.core.logging import setup_logging
from logsight.providers.base import LLMProvider, ModelInfo
from logsight.schemas.analysis_schemas import (
    AnalysisRequest,
    AnalysisResponse,
    RootCauseAnalysis,
)
from logsight.services.analysis_service import AnalysisService

setup_logging(json_logs=False)


def fixed_response() -> AnalysisResponse:
    """The canned answer returned by StubProvider."""
    return AnalysisResponse(
        sequence_of_events="Database connection pool was exhausted",
        root_cause=RootCauseAnalysis(
            category={"InfrastructureRelated": {"component": "database", "severity": "High"}},
            description="Connection pool too small",
            confidence=0.8,
        ),
        recommendations=["Increase the connection pool size"],
        confidence=0.8,
    )


class StubProvider(LLMProvider):
    """Provider that records requests and answers with a fixed response."""

    name = "stub"

    def __init__(
        self,
        response: Optional[AnalysisResponse] = None,
        error: Optional[Exception] = None,
    ) -> None:
        super().__init__(model="stub-model")
        self.response = response or fixed_response()
        self.error = error
        self.requests: List[AnalysisRequest] = []
        self.closed = False

    async def analyze(self, request: AnalysisRequest) -> AnalysisResponse:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.response.model_copy(deep=True)

    async def list_models(self) -> List[ModelInfo]:
        return [ModelInfo(id="stub-model", name="Stub")]

    async def close(self) -> None:
        self.closed = True


@pytest.fixture(autouse=True)
def reset_settings():
    """Settings are cached per process; start every test from a clean cache."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    """Settings with retries that do not sleep."""
    return Settings(
        openrouter_api_key="test-key",
        retry_backoff_factor=0,
        retry_max_delay_seconds=0,
    )


@pytest.fixture
def stub_provider() -> StubProvider:
    return StubProvider()


@pytest.fixture
def breaker_registry() -> CircuitBreakerRegistry:
    """A registry isolated from the process-global one."""
    return CircuitBreakerRegistry()


@pytest.fixture
def analysis_service(settings: Settings, stub_provider: StubProvider) -> AnalysisService:
    """Service whose provider factory always hands out the stub."""

    def factory(name: str, api_key: Optional[str] = None, model: Optional[str] = None):
        return stub_provider

    return AnalysisService(settings=settings, provider_factory=factory)


@pytest.fixture
def write_log(tmp_path: Path) -> Callable[..., str]:
    """Factory writing a log file and returning its path."""

    def _write(content: Union[str, bytes, List[str]], name: str = "app.log") -> str:
        path = tmp_path / name
        if isinstance(content, list):
            content = "\n".join(content) + "\n"
        if isinstance(content, str):
            content = content.encode("utf-8")
        path.write_bytes(content)
        return str(path)

    return _write
