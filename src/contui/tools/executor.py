"""Action executor: dispatches each parsed action to its tool."""

import logging
from typing import Awaitable, Callable, Iterable, List, Optional, Union
from .base import (
    Action,
    ActionResult,
    AppendFile,
    CommandConfirmation,
    CreateFile,
    EditFile,
    ErrorKind,
    ExecuteCommand,
    ListDirectory,
    ParseIssue,
    ReadFile,
    ShowDiff,
)
from .execution import CommandRunner
from .filesystem import FileSystemTool
from .git import GitTool
from .sandbox import FileAccessGuard
from ..utils.config import AgentConfig

logger = logging.getLogger(__name__)

Outcome = Union[ActionResult, CommandConfirmation]
ConfirmCallback = Callable[[CommandConfirmation], Awaitable[bool]]


class ActionExecutor:
    """Performs actions against the local filesystem and shell."""

    def __init__(
        self,
        guard: FileAccessGuard,
        config: Optional[AgentConfig] = None,
        filesystem: Optional[FileSystemTool] = None,
        git: Optional[GitTool] = None,
        runner: Optional[CommandRunner] = None
    ):
        config = config or AgentConfig()
        self.guard = guard
        self.filesystem = filesystem or FileSystemTool(guard, max_file_size=config.max_file_size)
        self.git = git or GitTool()
        self.runner = runner or CommandRunner(
            timeout=config.command_timeout,
            max_output_chars=config.max_output_chars
        )

    async def execute(self, action: Action) -> Outcome:
        """
        Perform one action.

        Commands are not run here: an ExecuteCommand yields a
        CommandConfirmation to be passed to :meth:`run_confirmed` once the
        user has answered.
        """
        logger.debug("Executing %s %s", action.kind, action.target)

        if isinstance(action, CreateFile):
            return await self.filesystem.create_file(action.filename, action.content)
        if isinstance(action, ReadFile):
            return await self.filesystem.read_file(action.filename)
        if isinstance(action, EditFile):
            return await self.filesystem.edit_file(action.filename, action.old_text, action.new_text)
        if isinstance(action, AppendFile):
            return await self.filesystem.append_file(action.filename, action.content)
        if isinstance(action, ListDirectory):
            return await self.filesystem.list_directory(action.path)
        if isinstance(action, ShowDiff):
            return await self.git.show_diff()
        if isinstance(action, ExecuteCommand):
            return CommandConfirmation(action=action)

        raise TypeError(f"Unsupported action: {action!r}")

    async def execute_all(
        self,
        entries: Iterable[Union[Action, ParseIssue]],
        confirm: Optional[ConfirmCallback] = None
    ) -> List[Outcome]:
        """
        Execute entries in order.

        Parse issues become failed results in place. With ``confirm`` each
        command is settled before the next entry runs: the callback is awaited
        for approval and the command result takes the confirmation's place.
        """
        outcomes: List[Outcome] = []
        for entry in entries:
            if isinstance(entry, ParseIssue):
                outcomes.append(entry.to_result())
                continue

            outcome = await self.execute(entry)
            if confirm is not None and isinstance(outcome, CommandConfirmation):
                outcome = await self.run_confirmed(outcome, await confirm(outcome))
            outcomes.append(outcome)
        return outcomes

    async def run_confirmed(self, confirmation: CommandConfirmation, approved: bool) -> ActionResult:
        """Run an approved command, or record its rejection."""
        if not approved:
            logger.info("Command rejected: %s", confirmation.command)
            return ActionResult.fail(
                "execute_command", confirmation.command,
                ErrorKind.COMMAND_REJECTED, "Command rejected by user"
            )
        return await self.runner.run(confirmation.command)
