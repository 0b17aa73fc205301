"""Base classes for LLM providers."""

import re
from abc import ABC, abstractmethod
from typing import Dict, List, Any, Optional
from pydantic import BaseModel, Field


class Message(BaseModel):
    """Represents a conversation message."""
    role: str  # "system", "user", "assistant"
    content: str


class LLMResponse(BaseModel):
    """Represents a response from an LLM."""
    content: str
    candidates: List[str] = Field(default_factory=list)
    finish_reason: str = "stop"
    usage: Dict[str, int] = Field(default_factory=dict)
    model: str = ""


# Explicit status line requested by the completion instruction.
_STATUS_RE = re.compile(r"^\s*\**\s*status\s*:\s*\**\s*(complete|completed|done|continue)\b", re.IGNORECASE | re.MULTILINE)

# Phrases the model uses when it skips the status line.
FINISH_PHRASES = (
    "task complete",
    "task is complete",
    "task completed",
    "task has been completed",
    "no further action",
    "nothing more to do",
    "nothing else to do",
    "all tasks are complete",
    "完了",
    "終了",
    "何もする必要がない",
)


def is_finished(text: str) -> bool:
    """
    Decide whether a model reply signals that no further action is needed.

    The last ``STATUS:`` line wins; without one, a finish phrase anywhere in
    the reply counts.
    """
    statuses = _STATUS_RE.findall(text or "")
    if statuses:
        return statuses[-1].lower() != "continue"

    lower = (text or "").lower()
    return any(phrase in lower for phrase in FINISH_PHRASES)


class BaseLLMProvider(ABC):
    """Abstract base class for LLM providers."""

    def __init__(self, api_key: Optional[str] = None, model: str = "default", **kwargs):
        self.api_key = api_key
        self.model = model
        self.kwargs = kwargs
        self._client = None

    @abstractmethod
    async def initialize(self) -> None:
        """Initialize the provider (async setup)."""
        pass

    @abstractmethod
    async def generate_response(
        self,
        messages: List[Message],
        **kwargs
    ) -> LLMResponse:
        """
        Generate a response from the LLM.

        Raises RateLimitError when the endpoint rate-limits the request and
        TransportError for any other failure.
        """
        pass

    @property
    def name(self) -> str:
        """Get provider name."""
        return self.__class__.__name__.replace("Provider", "").lower()

    @staticmethod
    def split_system(messages: List[Message]) -> tuple:
        """Separate system messages from conversation turns."""
        system_parts = []
        turns = []
        for msg in messages:
            if msg.role == "system":
                system_parts.append(msg.content)
            else:
                turns.append(msg)
        return "\n".join(system_parts).strip(), turns

    def format_messages_for_api(self, messages: List[Message]) -> List[Dict[str, Any]]:
        """Format messages for chat-completion style APIs."""
        return [{"role": msg.role, "content": msg.content} for msg in messages]
