"""Closed table of supported providers and the shared HTTP client."""

from typing import Callable, Dict, List, Optional

import httpx
from pydantic import BaseModel

from logsight.core.config import Settings, get_settings
from logsight.core.error_handling import InvalidInputError
from logsight.core.logging import get_logger
from logsight.providers.base import LLMProvider
from logsight.providers.openai_compatible import ChatCompletionsProvider

logger = get_logger(__name__)


class ProviderSpec(BaseModel):
    """Static description of one provider."""

    name: str
    base_url: str
    default_model: str
    api_key: Optional[str] = None
    json_mode: bool = True
    headers: Dict[str, str] = {}


def provider_specs(settings: Optional[Settings] = None) -> Dict[str, ProviderSpec]:
    """Provider table resolved against the current settings."""
    settings = settings or get_settings()
    return {
        "openrouter": ProviderSpec(
            name="openrouter",
            base_url=settings.openrouter_base_url,
            default_model=settings.openrouter_model,
            api_key=settings.openrouter_api_key,
            headers={"HTTP-Referer": settings.app_referer, "X-Title": settings.app_title},
        ),
        "openai": ProviderSpec(
            name="openai",
            base_url=settings.openai_base_url,
            default_model=settings.openai_model,
            api_key=settings.openai_api_key,
        ),
    }


def available_providers() -> List[str]:
    """Names accepted by create_provider."""
    return list(provider_specs().keys())


# Connection pool shared by every provider instance in the process
_http_client: Optional[httpx.AsyncClient] = None


def get_http_client() -> httpx.AsyncClient:
    """Get the process-wide pooled HTTP client, creating it on first use."""
    global _http_client
    if _http_client is None or _http_client.is_closed:
        settings = get_settings()
        _http_client = httpx.AsyncClient(
            timeout=httpx.Timeout(settings.provider_timeout_seconds, connect=10.0),
            limits=httpx.Limits(max_connections=100, max_keepalive_connections=20),
        )
        logger.info("http_client_created")
    return _http_client


async def close_http_client() -> None:
    """Close the shared HTTP client (application shutdown)."""
    global _http_client
    if _http_client is not None and not _http_client.is_closed:
        await _http_client.aclose()
        logger.info("http_client_closed")
    _http_client = None


def create_provider(
    name: str,
    api_key: Optional[str] = None,
    model: Optional[str] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    settings: Optional[Settings] = None,
) -> LLMProvider:
    """
    Create a provider adapter.

    Args:
        name: Provider name from the table
        api_key: Overrides the configured key
        model: Overrides the provider's default model
        http_client: Client to use instead of the shared one
        settings: Settings to resolve defaults from

    Returns:
        Provider instance

    Raises:
        InvalidInputError: Unknown provider or no API key available
    """
    settings = settings or get_settings()
    specs = provider_specs(settings)
    spec = specs.get(name.lower())
    if spec is None:
        raise InvalidInputError(
            f"Unknown provider '{name}'. Available: {', '.join(sorted(specs))}"
        )

    key = api_key or spec.api_key
    if not key:
        raise InvalidInputError(f"No API key configured for provider '{spec.name}'")

    return ChatCompletionsProvider(
        name=spec.name,
        api_key=key,
        model=model or spec.default_model,
        base_url=spec.base_url,
        http_client=http_client or get_http_client(),
        timeout_seconds=settings.provider_timeout_seconds,
        max_retries=settings.max_retries,
        retry_backoff=settings.retry_backoff_factor,
        retry_max_delay=settings.retry_max_delay_seconds,
        temperature=settings.provider_temperature,
        max_tokens=settings.provider_max_tokens,
        max_context_entries=settings.max_context_entries,
        json_mode=spec.json_mode,
        default_headers=spec.headers or None,
    )


ProviderFactory = Callable[..., LLMProvider]
