"""LLM transport layer for ConTUI."""

from .base import BaseLLMProvider, Message, LLMResponse, is_finished
from .providers import GeminiProvider, OpenAIProvider, AnthropicProvider
from .manager import LLMManager

__all__ = [
    "BaseLLMProvider",
    "Message",
    "LLMResponse",
    "is_finished",
    "GeminiProvider",
    "OpenAIProvider",
    "AnthropicProvider",
    "LLMManager",
]
