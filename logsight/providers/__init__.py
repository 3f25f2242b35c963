"""LLM provider adapters."""

from logsight.providers.base import LLMProvider, ModelInfo
from logsight.providers.openai_compatible import ChatCompletionsProvider
from logsight.providers.registry import (
    available_providers,
    close_http_client,
    create_provider,
    get_http_client,
)

__all__ = [
    "ChatCompletionsProvider",
    "LLMProvider",
    "ModelInfo",
    "available_providers",
    "close_http_client",
    "create_provider",
    "get_http_client",
]
