"""Concrete LLM provider implementations."""

import asyncio
import logging
from typing import Dict, List, Any, Optional
import openai
import anthropic
import requests
from .base import BaseLLMProvider, Message, LLMResponse
from ..utils.errors import RateLimitError, TransportError

logger = logging.getLogger(__name__)

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


class GeminiProvider(BaseLLMProvider):
    """Google Gemini ``generateContent`` provider."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "gemini-1.5-flash",
        base_url: Optional[str] = None,
        http_timeout: float = 60.0,
        **kwargs
    ):
        super().__init__(api_key, model, **kwargs)
        self.base_url = (base_url or GEMINI_BASE_URL).rstrip('/')
        self.http_timeout = http_timeout
        self.session: Optional[requests.Session] = None

    async def initialize(self) -> None:
        """Create the HTTP session."""
        if not self.api_key:
            raise TransportError("GEMINI_API_KEY is not set")
        if self.session is None:
            self.session = requests.Session()

    def build_payload(self, messages: List[Message], **kwargs) -> Dict[str, Any]:
        """Build the request body: system prompt, turns and generation config."""
        system_prompt, turns = self.split_system(messages)

        # Consecutive turns of the same role are merged; the API expects them to alternate.
        contents = []
        for msg in turns:
            role = "model" if msg.role == "assistant" else "user"
            if contents and contents[-1]["role"] == role:
                contents[-1]["parts"].append({"text": msg.content})
            else:
                contents.append({"role": role, "parts": [{"text": msg.content}]})

        payload: Dict[str, Any] = {
            "contents": contents,
            "generationConfig": {
                "temperature": kwargs.get("temperature", 0.7),
                "maxOutputTokens": kwargs.get("max_tokens", 1000),
            },
        }
        if system_prompt:
            payload["systemInstruction"] = {"parts": [{"text": system_prompt}]}
        return payload

    def _post(self, payload: Dict[str, Any]) -> requests.Response:
        url = f"{self.base_url}/models/{self.model}:generateContent"
        return (self.session or requests).post(
            url,
            params={"key": self.api_key},
            json=payload,
            headers={"Content-Type": "application/json"},
            timeout=self.http_timeout
        )

    async def generate_response(
        self,
        messages: List[Message],
        **kwargs
    ) -> LLMResponse:
        """Generate a response using Gemini."""
        if self.session is None:
            await self.initialize()

        payload = self.build_payload(messages, **kwargs)

        loop = asyncio.get_running_loop()
        try:
            response = await loop.run_in_executor(None, lambda: self._post(payload))
        except requests.RequestException as e:
            raise TransportError(f"Gemini request failed: {e}") from e

        if response.status_code == 429:
            raise RateLimitError("Gemini API rate limit exceeded", status_code=429)
        if not 200 <= response.status_code < 300:
            raise TransportError(
                f"Gemini API error {response.status_code}: {response.text[:500]}",
                status_code=response.status_code
            )

        try:
            result = response.json()
        except ValueError as e:
            raise TransportError(f"Gemini API returned invalid JSON: {e}") from e

        return self.parse_response(result)

    def parse_response(self, result: Dict[str, Any]) -> LLMResponse:
        """Extract candidate texts from a ``generateContent`` response."""
        candidates = []
        finish_reason = "stop"
        for candidate in result.get("candidates") or []:
            parts = (candidate.get("content") or {}).get("parts") or []
            text = "".join(part.get("text", "") for part in parts)
            candidates.append(text)
            finish_reason = candidate.get("finishReason", finish_reason)

        if not candidates:
            raise TransportError("No response from Gemini")

        usage = result.get("usageMetadata") or {}
        return LLMResponse(
            content=candidates[0],
            candidates=candidates,
            finish_reason=str(finish_reason).lower(),
            usage={
                "prompt_tokens": usage.get("promptTokenCount", 0),
                "completion_tokens": usage.get("candidatesTokenCount", 0),
                "total_tokens": usage.get("totalTokenCount", 0)
            },
            model=self.model
        )


class OpenAIProvider(BaseLLMProvider):
    """OpenAI API provider."""

    def __init__(self, api_key: str, model: str = "gpt-4o-mini", base_url: Optional[str] = None, **kwargs):
        super().__init__(api_key, model, **kwargs)
        self.base_url = base_url
        self.client = None

    async def initialize(self) -> None:
        """Initialize the OpenAI client."""
        self.client = openai.AsyncOpenAI(api_key=self.api_key, base_url=self.base_url, max_retries=0)

    async def generate_response(
        self,
        messages: List[Message],
        **kwargs
    ) -> LLMResponse:
        """Generate a response using OpenAI."""
        if not self.client:
            await self.initialize()

        request_params = {
            "model": self.model,
            "messages": self.format_messages_for_api(messages),
            "temperature": kwargs.get("temperature", 0.7),
            "max_tokens": kwargs.get("max_tokens", 1000),
        }

        try:
            response = await self.client.chat.completions.create(**request_params)
        except openai.RateLimitError as e:
            raise RateLimitError(f"OpenAI rate limit exceeded: {e}", status_code=429) from e
        except openai.APIStatusError as e:
            raise TransportError(f"OpenAI API error: {e}", status_code=e.status_code) from e
        except openai.APIError as e:
            raise TransportError(f"OpenAI API error: {e}") from e

        candidates = [choice.message.content or "" for choice in response.choices]
        if not candidates:
            raise TransportError("No response from OpenAI")

        usage = {}
        if response.usage:
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens
            }

        return LLMResponse(
            content=candidates[0],
            candidates=candidates,
            finish_reason=response.choices[0].finish_reason or "stop",
            usage=usage,
            model=response.model
        )


class AnthropicProvider(BaseLLMProvider):
    """Anthropic Claude API provider."""

    def __init__(self, api_key: str, model: str = "claude-3-5-haiku-latest", base_url: Optional[str] = None, **kwargs):
        super().__init__(api_key, model, **kwargs)
        self.base_url = base_url
        self.client = None

    async def initialize(self) -> None:
        """Initialize the Anthropic client."""
        self.client = anthropic.AsyncAnthropic(api_key=self.api_key, base_url=self.base_url, max_retries=0)

    async def generate_response(
        self,
        messages: List[Message],
        **kwargs
    ) -> LLMResponse:
        """Generate a response using Anthropic."""
        if not self.client:
            await self.initialize()

        system_message, turns = self.split_system(messages)

        request_params = {
            "model": self.model,
            "messages": self.format_messages_for_api(turns),
            "temperature": kwargs.get("temperature", 0.7),
            "max_tokens": kwargs.get("max_tokens", 1000),
        }

        if system_message:
            request_params["system"] = system_message

        try:
            response = await self.client.messages.create(**request_params)
        except anthropic.RateLimitError as e:
            raise RateLimitError(f"Anthropic rate limit exceeded: {e}", status_code=429) from e
        except anthropic.APIStatusError as e:
            raise TransportError(f"Anthropic API error: {e}", status_code=e.status_code) from e
        except anthropic.APIError as e:
            raise TransportError(f"Anthropic API error: {e}") from e

        content = "".join(
            block.text for block in response.content if block.type == "text"
        )

        return LLMResponse(
            content=content,
            candidates=[content],
            finish_reason=response.stop_reason or "stop",
            usage={
                "prompt_tokens": response.usage.input_tokens,
                "completion_tokens": response.usage.output_tokens,
                "total_tokens": response.usage.input_tokens + response.usage.output_tokens
            },
            model=response.model
        )
