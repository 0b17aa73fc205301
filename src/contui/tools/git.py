"""Git diff of the working tree."""

import asyncio
import logging
import os
from typing import Optional
from git import GitCommandError, InvalidGitRepositoryError, NoSuchPathError, Repo
from .base import ActionResult

logger = logging.getLogger(__name__)


class GitTool:
    """Reports ``git diff`` for the repository containing the working directory."""

    def __init__(self, path: Optional[str] = None):
        self.path = path

    def _diff(self) -> str:
        repo = Repo(self.path or os.getcwd(), search_parent_directories=True)
        try:
            return repo.git.diff()
        finally:
            repo.close()

    async def show_diff(self) -> ActionResult:
        """
        Diff of unstaged changes.

        Both the diff and any failure are informational: the model sees the
        error text as the result instead of a failed action.
        """
        loop = asyncio.get_running_loop()
        try:
            diff = await loop.run_in_executor(None, self._diff)
        except (InvalidGitRepositoryError, NoSuchPathError):
            detail = "Error: not a git repository"
        except GitCommandError as e:
            detail = f"Error: git diff command failed: {e.stderr.strip() if e.stderr else e}"
        else:
            detail = diff or "No changes"

        logger.debug("git diff produced %d characters", len(detail))
        return ActionResult.ok("show_diff", "git diff", detail)
