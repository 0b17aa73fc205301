"""Chat history for ConTUI."""

from .session import ChatHistory, ChatMessage, ChatSession

__all__ = ["ChatHistory", "ChatMessage", "ChatSession"]
