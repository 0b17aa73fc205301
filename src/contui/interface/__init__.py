"""Terminal interface for ConTUI."""

from .terminal import TerminalInterface
from .approval import CommandApproval, ApprovalResult
from .display import DisplayManager

__all__ = ["TerminalInterface", "CommandApproval", "ApprovalResult", "DisplayManager"]
