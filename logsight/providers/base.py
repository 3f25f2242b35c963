"""Provider interface shared by every LLM backend."""

from abc import ABC, abstractmethod
from typing import List, Optional

from pydantic import BaseModel

from logsight.schemas.analysis_schemas import AnalysisRequest, AnalysisResponse


class ModelInfo(BaseModel):
    """A model offered by a provider."""

    id: str
    name: Optional[str] = None
    description: Optional[str] = None
    context_length: Optional[int] = None


class LLMProvider(ABC):
    """
    Uniform request/response contract against one remote LLM.

    ``analyze`` either returns a complete response or raises an
    ``AnalysisError``; it never returns partial results.
    """

    name: str = "provider"

    def __init__(self, model: str) -> None:
        self.model = model

    @abstractmethod
    async def analyze(self, request: AnalysisRequest) -> AnalysisResponse:
        """
        Analyse one context payload.

        Args:
            request: Payload, user context and analysis focus

        Returns:
            Structured analysis with at least one recommendation

        Raises:
            AnalysisError: Mapped provider, network and parsing failures
        """

    @abstractmethod
    async def list_models(self) -> List[ModelInfo]:
        """List models available from this provider."""

    async def close(self) -> None:
        """Release provider resources. Shared HTTP clients are not closed here."""
