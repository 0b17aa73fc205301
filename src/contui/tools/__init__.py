"""Action protocol: parsing, sandboxing and execution of model-requested actions."""

from .base import (
    Action,
    ActionKind,
    ActionError,
    ActionResult,
    CommandConfirmation,
    ErrorKind,
    ParseIssue,
)
from .parser import ActionParser, ParseOutcome
from .sandbox import FileAccessGuard
from .filesystem import FileSystemTool
from .git import GitTool
from .execution import CommandRunner
from .executor import ActionExecutor

__all__ = [
    "Action",
    "ActionKind",
    "ActionError",
    "ActionResult",
    "CommandConfirmation",
    "ErrorKind",
    "ParseIssue",
    "ActionParser",
    "ParseOutcome",
    "FileAccessGuard",
    "FileSystemTool",
    "GitTool",
    "CommandRunner",
    "ActionExecutor",
]
