"""Chat Completions adapter for OpenAI-compatible endpoints (OpenRouter, OpenAI)."""

import time
from typing import Any, Dict, List, Optional

import httpx
import openai
from openai import AsyncOpenAI

from logsight.core.error_handling import (
    AnalysisError,
    AnalysisTimeoutError,
    NetworkError,
    ProviderAuthError,
    ProviderAuthorizationError,
    ProviderBadRequestError,
    ProviderRateLimitError,
    ProviderServerError,
    SerializationError,
    build_retrying,
    with_retry,
)
from logsight.core.logging import get_logger
from logsight.monitoring.metrics import get_metrics_collector
from logsight.providers.base import LLMProvider, ModelInfo
from logsight.providers.prompts import (
    DEFAULT_MAX_CONTEXT_ENTRIES,
    build_system_prompt,
    build_user_prompt,
)
from logsight.providers.response_parser import parse_analysis_response
from logsight.schemas.analysis_schemas import AnalysisRequest, AnalysisResponse

logger = get_logger(__name__)


def map_openai_error(error: openai.OpenAIError, provider: str) -> AnalysisError:
    """
    Translate an openai SDK exception into the analysis error taxonomy.

    Args:
        error: Exception raised by the SDK
        provider: Provider name for messages

    Returns:
        Typed analysis error (retryable for 429, 5xx and transport failures)
    """
    # APITimeoutError subclasses APIConnectionError, so it is checked first
    if isinstance(error, openai.APITimeoutError):
        return AnalysisTimeoutError(f"{provider} request timed out")
    if isinstance(error, openai.APIConnectionError):
        return NetworkError(f"Could not reach {provider}: {error}")
    if isinstance(error, openai.AuthenticationError):
        return ProviderAuthError(f"{provider} rejected the API key")
    if isinstance(error, openai.PermissionDeniedError):
        return ProviderAuthorizationError(f"{provider} denied access: {error.message}")
    if isinstance(error, openai.RateLimitError):
        return ProviderRateLimitError(f"{provider} rate limit exceeded")
    if isinstance(error, openai.APIStatusError):
        status = error.status_code
        if status >= 500:
            return ProviderServerError(f"{provider} HTTP {status}: {error.message}", status_code=status)
        return ProviderBadRequestError(f"{provider} HTTP {status}: {error.message}")
    if isinstance(error, openai.APIResponseValidationError):
        return SerializationError(f"Unexpected response shape from {provider}: {error}")
    return ProviderServerError(f"{provider} request failed: {error}")


class ChatCompletionsProvider(LLMProvider):
    """
    LLM provider speaking the Chat Completions protocol.

    The SDK's own retries are disabled; retries go through tenacity so only
    rate limits, server errors and transport failures are retried.
    """

    def __init__(
        self,
        name: str,
        api_key: str,
        model: str,
        base_url: str,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout_seconds: float = 120.0,
        max_retries: int = 3,
        retry_backoff: float = 1.0,
        retry_max_delay: float = 30.0,
        temperature: float = 0.1,
        max_tokens: int = 2000,
        max_context_entries: int = DEFAULT_MAX_CONTEXT_ENTRIES,
        json_mode: bool = True,
        default_headers: Optional[Dict[str, str]] = None,
    ) -> None:
        """
        Initialize provider.

        Args:
            name: Provider name (``openrouter``, ``openai``)
            api_key: Bearer token
            model: Model identifier
            base_url: API root, e.g. ``https://openrouter.ai/api/v1``
            http_client: Shared pooled client
            timeout_seconds: Per-request timeout
            max_retries: Retries after the first attempt for recoverable errors
            retry_backoff: Exponential backoff multiplier in seconds
            retry_max_delay: Upper bound on one backoff sleep
            temperature: Sampling temperature
            max_tokens: Completion token cap
            max_context_entries: Entry budget for the user prompt
            json_mode: Request ``response_format={"type": "json_object"}``
            default_headers: Extra headers sent with every request
        """
        super().__init__(model)
        self.name = name
        self.base_url = base_url
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff
        self.retry_max_delay = retry_max_delay
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.max_context_entries = max_context_entries
        self.json_mode = json_mode

        self._client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            http_client=http_client,
            timeout=timeout_seconds,
            max_retries=0,
            default_headers=default_headers,
        )
        self._metrics = get_metrics_collector()

    async def analyze(self, request: AnalysisRequest) -> AnalysisResponse:
        """
        Analyse one context payload.

        Args:
            request: Payload, user context and analysis focus

        Returns:
            Parsed analysis with at least one recommendation

        Raises:
            ProviderAuthError: 401/403, not retried
            ProviderBadRequestError: Other 4xx, not retried
            ProviderRateLimitError: 429 after retries are exhausted
            ProviderServerError: 5xx after retries are exhausted
            NetworkError: Transport failure after retries are exhausted
            AnalysisTimeoutError: Request timeout after retries are exhausted
            SerializationError: Response without usable content
        """
        messages = [
            {"role": "system", "content": build_system_prompt(request.user_context, request.focus)},
            {"role": "user", "content": build_user_prompt(request.payload, self.max_context_entries)},
        ]

        logger.info(
            "provider_analysis_started",
            provider=self.name,
            model=self.model,
            entries=len(request.payload.entries),
            estimated_tokens=request.payload.context_meta.estimated_tokens,
        )

        async for attempt in build_retrying(
            max_attempts=self.max_retries + 1,
            multiplier=self.retry_backoff,
            max_wait=self.retry_max_delay,
        ):
            with attempt:
                content = await self._complete(messages)

        response = parse_analysis_response(content)
        logger.info(
            "provider_analysis_completed",
            provider=self.name,
            model=self.model,
            confidence=response.confidence,
            recommendations=len(response.recommendations),
        )
        return response

    async def _complete(self, messages: List[Dict[str, str]]) -> str:
        """One Chat Completions request; returns the message content."""
        kwargs: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "timeout": self.timeout_seconds,
        }
        if self.json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        start = time.perf_counter()
        try:
            completion = await self._client.chat.completions.create(**kwargs)
        except openai.OpenAIError as e:
            error = map_openai_error(e, self.name)
            self._metrics.record_provider_request(self.name, error.code, time.perf_counter() - start)
            logger.warning(
                "provider_request_failed",
                provider=self.name,
                error_code=error.code,
                retryable=error.retryable,
                error=error.user_message,
            )
            raise error from e

        self._metrics.record_provider_request(self.name, "success", time.perf_counter() - start)

        if not completion.choices:
            raise SerializationError(f"No choices in {self.name} response")
        content = completion.choices[0].message.content
        if not content:
            raise SerializationError(f"Empty message content in {self.name} response")
        return content

    @with_retry(max_attempts=3)
    async def list_models(self) -> List[ModelInfo]:
        """
        List models from the provider's ``/models`` endpoint.

        Returns:
            Available models

        Raises:
            AnalysisError: Mapped SDK errors
        """
        try:
            page = await self._client.models.list()
        except openai.OpenAIError as e:
            raise map_openai_error(e, self.name) from e

        models = [
            ModelInfo(
                id=model.id,
                name=getattr(model, "name", None),
                description=getattr(model, "description", None),
                context_length=getattr(model, "context_length", None),
            )
            for model in page.data
        ]
        logger.info("provider_models_listed", provider=self.name, count=len(models))
        return models
