"""Action and result types exchanged between the parser, executor and agent loop."""

from enum import Enum
from typing import Annotated, Literal, Optional, Union
from pydantic import BaseModel, Field, model_validator


class ActionKind(str, Enum):
    """Tags recognized in action blocks."""
    CREATE_FILE = "create_file"
    READ_FILE = "read_file"
    EDIT_FILE = "edit_file"
    APPEND_FILE = "append_file"
    LIST_DIRECTORY = "list_directory"
    SHOW_DIFF = "show_diff"
    EXECUTE_COMMAND = "execute_command"
    EXECUTE_COMMAND_SILENT = "execute_command_silent"


class CreateFile(BaseModel):
    kind: Literal["create_file"] = "create_file"
    filename: str
    content: str = ""

    @property
    def target(self) -> str:
        return self.filename


class ReadFile(BaseModel):
    kind: Literal["read_file"] = "read_file"
    filename: str

    @property
    def target(self) -> str:
        return self.filename


class EditFile(BaseModel):
    kind: Literal["edit_file"] = "edit_file"
    filename: str
    old_text: str
    new_text: str = ""

    @property
    def target(self) -> str:
        return self.filename


class AppendFile(BaseModel):
    kind: Literal["append_file"] = "append_file"
    filename: str
    content: str = ""

    @property
    def target(self) -> str:
        return self.filename


class ListDirectory(BaseModel):
    kind: Literal["list_directory"] = "list_directory"
    path: str

    @property
    def target(self) -> str:
        return self.path


class ShowDiff(BaseModel):
    kind: Literal["show_diff"] = "show_diff"

    @property
    def target(self) -> str:
        return "git diff"


class ExecuteCommand(BaseModel):
    kind: Literal["execute_command"] = "execute_command"
    command: str
    silent: bool = False

    @property
    def target(self) -> str:
        return self.command


Action = Annotated[
    Union[CreateFile, ReadFile, EditFile, AppendFile, ListDirectory, ShowDiff, ExecuteCommand],
    Field(discriminator="kind"),
]


class ErrorKind(str, Enum):
    """Why an action failed."""
    PARSE = "parse"
    SANDBOX_DENIED = "sandbox_denied"
    NOT_FOUND = "not_found"
    PERMISSION_DENIED = "permission_denied"
    IO = "io"
    EDIT_NOT_APPLICABLE = "edit_not_applicable"
    COMMAND_REJECTED = "command_rejected"
    COMMAND_FAILED = "command_failed"


class ActionError(BaseModel):
    kind: ErrorKind
    message: str


class ActionResult(BaseModel):
    """
    Outcome of one action.

    A successful result carries ``detail`` (created path, file content, diff,
    listing or command output) and no ``error``; a failed one carries
    ``error`` and no ``detail``.
    """
    requested_target: str
    action: str
    success: bool
    detail: Optional[str] = None
    error: Optional[ActionError] = None
    directory_changed: bool = False

    @model_validator(mode="after")
    def _check_outcome(self) -> "ActionResult":
        if self.success and (self.detail is None or self.error is not None):
            raise ValueError("a successful result needs detail and no error")
        if not self.success and (self.error is None or self.detail is not None):
            raise ValueError("a failed result needs an error and no detail")
        return self

    @classmethod
    def ok(cls, action: str, target: str, detail: str, directory_changed: bool = False) -> "ActionResult":
        return cls(
            requested_target=target,
            action=action,
            success=True,
            detail=detail,
            directory_changed=directory_changed
        )

    @classmethod
    def fail(cls, action: str, target: str, kind: ErrorKind, message: str) -> "ActionResult":
        return cls(
            requested_target=target,
            action=action,
            success=False,
            error=ActionError(kind=kind, message=message)
        )

    def summary(self) -> str:
        """One human-readable outcome line."""
        if self.success:
            return f"✅ {self.action} {self.requested_target}: ok"
        return f"❌ {self.action} {self.requested_target}: {self.error.message}"


class ParseIssue(BaseModel):
    """A block that was recognized but could not be turned into an action."""
    tag: str
    target: str = ""
    message: str
    position: int = 0

    def to_result(self) -> ActionResult:
        return ActionResult.fail(self.tag, self.target, ErrorKind.PARSE, self.message)


class CommandConfirmation(BaseModel):
    """A parsed command waiting for the user's approval."""
    action: ExecuteCommand

    @property
    def command(self) -> str:
        return self.action.command

    @property
    def silent(self) -> bool:
        return self.action.silent
