"""LLM Manager: provider selection, retry policy and the completion predicate."""

import asyncio
import logging
from typing import Dict, List, Optional, Sequence, Type
from .base import BaseLLMProvider, Message, LLMResponse, is_finished
from .providers import GeminiProvider, OpenAIProvider, AnthropicProvider
from ..utils.config import LLMConfig, config_manager
from ..utils.errors import RateLimitError, TransportError

logger = logging.getLogger(__name__)

PROVIDER_CLASSES: Dict[str, Type[BaseLLMProvider]] = {
    "gemini": GeminiProvider,
    "openai": OpenAIProvider,
    "anthropic": AnthropicProvider,
}

# Linear backoff unit between rate-limited attempts (seconds).
RETRY_BACKOFF = 1.0


class LLMManager:
    """Owns the configured provider and applies the rate-limit retry policy."""

    def __init__(self, config: Optional[LLMConfig] = None, provider: Optional[BaseLLMProvider] = None):
        self._config = config
        self.provider: Optional[BaseLLMProvider] = provider
        self._initialized = provider is not None

    @property
    def config(self) -> LLMConfig:
        return self._config or config_manager.config.llm

    async def initialize(self) -> None:
        """Create the provider named in the configuration."""
        if self._initialized:
            return

        config = self.config
        provider_class = PROVIDER_CLASSES.get(config.provider)
        if provider_class is None:
            raise TransportError(
                f"Unknown LLM provider '{config.provider}'. "
                f"Available: {', '.join(PROVIDER_CLASSES)}"
            )

        provider = provider_class(
            api_key=config.api_key,
            model=config.model,
            base_url=config.base_url
        )
        await provider.initialize()
        self.provider = provider
        self._initialized = True
        logger.info("Initialized %s provider with model %s", provider.name, config.model)

    async def generate_response(self, messages: List[Message], **kwargs) -> LLMResponse:
        """
        Send ``messages`` to the provider.

        HTTP 429 is retried up to ``max_retries`` attempts in total, sleeping
        ``attempt * 1s`` between attempts. Every other failure propagates on
        the first occurrence.
        """
        await self.initialize()

        kwargs.setdefault("temperature", self.config.temperature)
        kwargs.setdefault("max_tokens", self.config.max_tokens)

        max_attempts = self.config.max_retries
        for attempt in range(1, max_attempts + 1):
            try:
                return await self.provider.generate_response(messages, **kwargs)
            except RateLimitError:
                if attempt >= max_attempts:
                    logger.warning("Rate limited on final attempt %d/%d", attempt, max_attempts)
                    raise
                delay = attempt * RETRY_BACKOFF
                logger.info("Rate limited (attempt %d/%d), retrying in %.0fs", attempt, max_attempts, delay)
                await asyncio.sleep(delay)

        raise TransportError("No attempts were made")  # max_retries >= 1

    def build_messages(self, message: str, context: Sequence[Message] = ()) -> List[Message]:
        """System prompt, prior conversation turns, then the new user message."""
        messages = [Message(role="system", content=self.config.system_prompt)]
        messages.extend(context)
        messages.append(Message(role="user", content=message))
        return messages

    async def chat(self, message: str, context: Sequence[Message] = ()) -> str:
        """Send one user message with conversation context and return the reply text."""
        response = await self.generate_response(self.build_messages(message, context))
        logger.debug("Model replied with %d characters", len(response.content))
        return response.content

    @staticmethod
    def is_finished(text: str) -> bool:
        """Whether ``text`` signals that the task is complete."""
        return is_finished(text)

    def get_provider_info(self) -> Dict[str, object]:
        """Get information about the configured provider."""
        return {
            "provider": self.provider.name if self.provider else self.config.provider,
            "model": self.config.model,
            "initialized": self._initialized,
            "available": list(PROVIDER_CLASSES),
        }
