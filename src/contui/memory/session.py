"""In-memory chat history: sessions and conversation context."""

import uuid
from datetime import datetime
from typing import Dict, List, Optional
from pydantic import BaseModel, Field
from ..llm.base import Message
from ..utils.errors import ContuiError, SessionNotFoundError


class ChatMessage(BaseModel):
    """One line of a chat session."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    content: str
    is_user: bool
    timestamp: datetime = Field(default_factory=datetime.now)


class ChatSession(BaseModel):
    """A titled conversation."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    title: str
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)
    messages: List[ChatMessage] = Field(default_factory=list)


class ChatHistory:
    """Sessions keyed by id, with one current session."""

    def __init__(self):
        self.sessions: Dict[str, ChatSession] = {}
        self.current_session_id: Optional[str] = None

    def new_session(self, title: Optional[str] = None) -> str:
        """Create a session, make it current and return its id."""
        now = datetime.now()
        session = ChatSession(
            title=title or f"Chat Session {now.strftime('%Y-%m-%d %H:%M')}",
            created_at=now,
            updated_at=now
        )
        self.sessions[session.id] = session
        self.current_session_id = session.id
        return session.id

    @property
    def current_session(self) -> Optional[ChatSession]:
        if self.current_session_id is None:
            return None
        return self.sessions.get(self.current_session_id)

    def ensure_active_session(self) -> str:
        """Id of the current session, creating one when there is none."""
        if self.current_session is not None:
            return self.current_session_id
        return self.new_session()

    def add_message(self, content: str, is_user: bool) -> ChatMessage:
        session = self.current_session
        if session is None:
            raise ContuiError("No active session")

        message = ChatMessage(content=content, is_user=is_user)
        session.messages.append(message)
        session.updated_at = message.timestamp
        return message

    def switch_session(self, session_id: str) -> None:
        if session_id not in self.sessions:
            raise SessionNotFoundError(session_id)
        self.current_session_id = session_id

    def delete_session(self, session_id: str) -> None:
        if self.sessions.pop(session_id, None) is None:
            raise SessionNotFoundError(session_id)
        if self.current_session_id == session_id:
            self.current_session_id = None

    def get_session_list(self) -> List[ChatSession]:
        """Sessions, most recently updated first."""
        return sorted(self.sessions.values(), key=lambda s: s.updated_at, reverse=True)

    def clear_messages(self) -> int:
        """Drop every message of the current session; returns how many were removed."""
        session = self.current_session
        if session is None:
            return 0
        count = len(session.messages)
        session.messages.clear()
        session.updated_at = datetime.now()
        return count

    def get_conversation_context(self, max_messages: int, skip_latest: bool = False) -> List[Message]:
        """
        The last ``max_messages`` messages as model conversation turns.

        With ``skip_latest`` the most recent message is left out, for callers
        that send it themselves as the new prompt.
        """
        session = self.current_session
        if session is None or max_messages <= 0:
            return []
        messages = session.messages[:-1] if skip_latest else session.messages
        return [
            Message(role="user" if message.is_user else "assistant", content=message.content)
            for message in messages[-max_messages:]
        ]
