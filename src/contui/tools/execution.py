"""Shell command execution."""

import asyncio
import logging
import os
from typing import Optional
from .base import ActionResult, ErrorKind

logger = logging.getLogger(__name__)


def truncate_output(text: str, limit: int) -> str:
    """Cap ``text`` at ``limit`` characters, noting how much was dropped."""
    if len(text) <= limit:
        return text
    return text[:limit] + f"\n... [truncated {len(text) - limit} characters]"


async def _kill(process) -> None:
    try:
        process.kill()
    except ProcessLookupError:
        pass
    await process.wait()


class CommandRunner:
    """Runs approved commands through the shell, capturing their output."""

    def __init__(self, timeout: float = 300.0, max_output_chars: int = 10_000, cwd: Optional[str] = None):
        self.timeout = timeout
        self.max_output_chars = max_output_chars
        self.cwd = cwd

    async def run(self, command: str) -> ActionResult:
        """
        Run ``command`` and report stdout, stderr and the exit status.

        A non-zero exit or a timeout is a COMMAND_FAILED result carrying the
        captured output; the process is killed on timeout.
        """
        action = "execute_command"
        logger.info("Running command: %s", command)

        try:
            process = await asyncio.create_subprocess_shell(
                command,
                cwd=self.cwd or os.getcwd(),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE
            )
        except OSError as e:
            return ActionResult.fail(action, command, ErrorKind.COMMAND_FAILED, f"Failed to start command: {e}")

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            await _kill(process)
            logger.warning("Command timed out after %s seconds: %s", self.timeout, command)
            return ActionResult.fail(
                action, command, ErrorKind.COMMAND_FAILED,
                f"Command timed out after {self.timeout:g} seconds"
            )
        except asyncio.CancelledError:
            # Reap the child even though this task is going away.
            await asyncio.shield(_kill(process))
            raise

        stdout_text = stdout.decode('utf-8', errors='replace') if stdout else ""
        stderr_text = stderr.decode('utf-8', errors='replace') if stderr else ""

        parts = [f"$ {command}", f"exit status: {process.returncode}"]
        if stdout_text:
            parts.append(f"stdout:\n{stdout_text.rstrip()}")
        if stderr_text:
            parts.append(f"stderr:\n{stderr_text.rstrip()}")
        output = truncate_output("\n".join(parts), self.max_output_chars)

        logger.debug("Command exited with %s", process.returncode)
        if process.returncode != 0:
            return ActionResult.fail(action, command, ErrorKind.COMMAND_FAILED, output)
        return ActionResult.ok(action, command, output)
