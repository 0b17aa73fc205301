"""Agent loop orchestration."""

from .agent import AgentController, AgentLoop, AgentSession, ChatEvent, EventKind, SessionState

__all__ = ["AgentController", "AgentLoop", "AgentSession", "ChatEvent", "EventKind", "SessionState"]
