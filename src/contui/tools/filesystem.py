"""Filesystem operations behind the file access guard."""

import logging
from pathlib import Path
from typing import List, Optional
import aiofiles
from .base import ActionResult, ErrorKind
from .sandbox import FileAccessGuard
from ..utils.errors import SandboxDeniedError

logger = logging.getLogger(__name__)


def _os_error_kind(error: Exception) -> ErrorKind:
    if isinstance(error, FileNotFoundError):
        return ErrorKind.NOT_FOUND
    if isinstance(error, PermissionError):
        return ErrorKind.PERMISSION_DENIED
    return ErrorKind.IO


def _to_crlf(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\n", "\r\n")


class FileSystemTool:
    """Create, read, edit, append and list files inside the granted roots."""

    def __init__(self, guard: FileAccessGuard, max_file_size: int = 1_000_000):
        self.guard = guard
        self.max_file_size = max_file_size

    async def create_file(self, filename: str, content: str) -> ActionResult:
        """
        Write ``content`` to a new file, never overwriting an existing one.

        The parent directory (``.`` when there is none) must be allowed and is
        created when missing. When ``filename`` is taken the content goes to
        the first free ``stem_N.ext`` and the detail names the actual path.
        """
        action = "create_file"
        original = Path(filename)
        parent = original.parent if str(original.parent) else Path(".")

        try:
            self.guard.check(parent)
        except SandboxDeniedError as e:
            return ActionResult.fail(action, filename, ErrorKind.SANDBOX_DENIED, str(e))

        try:
            parent.mkdir(parents=True, exist_ok=True)
            actual = self.guard.unique_path_for(original)
            async with aiofiles.open(actual, 'x', encoding='utf-8', newline='') as f:
                await f.write(content)
        except OSError as e:
            return ActionResult.fail(
                action, filename, _os_error_kind(e), f"Failed to create file '{filename}': {e}"
            )

        if actual == original:
            detail = f"File '{filename}' created successfully!"
        else:
            detail = f"File '{filename}' created as '{actual}' (original name was taken)"
        logger.info("Created %s (%d characters)", actual, len(content))
        return ActionResult.ok(action, filename, detail, directory_changed=True)

    async def read_file(self, filename: str) -> ActionResult:
        """Read a UTF-8 text file."""
        action = "read_file"
        try:
            self.guard.check(filename)
        except SandboxDeniedError as e:
            return ActionResult.fail(action, filename, ErrorKind.SANDBOX_DENIED, str(e))

        path = Path(filename)
        try:
            size = path.stat().st_size
            if size > self.max_file_size:
                return ActionResult.fail(
                    action, filename, ErrorKind.IO, f"File too large: {filename} ({size} bytes)"
                )
            async with aiofiles.open(path, 'r', encoding='utf-8') as f:
                content = await f.read()
        except UnicodeDecodeError:
            return ActionResult.fail(action, filename, ErrorKind.IO, f"File appears to be binary: {filename}")
        except FileNotFoundError:
            return ActionResult.fail(action, filename, ErrorKind.NOT_FOUND, f"File not found: {filename}")
        except OSError as e:
            return ActionResult.fail(action, filename, _os_error_kind(e), f"Failed to read '{filename}': {e}")

        return ActionResult.ok(action, filename, content)

    async def edit_file(self, filename: str, old_text: str, new_text: str) -> ActionResult:
        """Replace every occurrence of ``old_text``; a mismatch leaves the file untouched."""
        action = "edit_file"
        try:
            self.guard.check(filename)
        except SandboxDeniedError as e:
            return ActionResult.fail(action, filename, ErrorKind.SANDBOX_DENIED, str(e))

        path = Path(filename)
        try:
            async with aiofiles.open(path, 'r', encoding='utf-8', newline='') as f:
                original = await f.read()
        except UnicodeDecodeError:
            return ActionResult.fail(action, filename, ErrorKind.IO, f"File appears to be binary: {filename}")
        except FileNotFoundError:
            return ActionResult.fail(action, filename, ErrorKind.NOT_FOUND, f"File not found: {filename}")
        except OSError as e:
            return ActionResult.fail(action, filename, _os_error_kind(e), f"Failed to read '{filename}': {e}")

        count = original.count(old_text)
        if count == 0 and "\r\n" in original and "\n" in old_text:
            # Multi-line edits arrive with bare newlines; match the file's CRLF endings.
            old_text = _to_crlf(old_text)
            new_text = _to_crlf(new_text)
            count = original.count(old_text)
        if count == 0:
            return ActionResult.fail(
                action, filename, ErrorKind.EDIT_NOT_APPLICABLE, f"Old string not found in file: {filename}"
            )

        try:
            async with aiofiles.open(path, 'w', encoding='utf-8', newline='') as f:
                await f.write(original.replace(old_text, new_text))
        except OSError as e:
            return ActionResult.fail(action, filename, _os_error_kind(e), f"Failed to write '{filename}': {e}")

        logger.info("Edited %s (%d replacements)", filename, count)
        return ActionResult.ok(
            action, filename, f"File '{filename}' edited ({count} replacement(s))", directory_changed=True
        )

    async def append_file(self, filename: str, content: str) -> ActionResult:
        """Append ``content`` verbatim to an existing file."""
        action = "append_file"
        try:
            self.guard.check(filename)
        except SandboxDeniedError as e:
            return ActionResult.fail(action, filename, ErrorKind.SANDBOX_DENIED, str(e))

        path = Path(filename)
        if not path.is_file():
            return ActionResult.fail(
                action, filename, ErrorKind.NOT_FOUND, f"File not found for appending: {filename}"
            )

        try:
            async with aiofiles.open(path, 'a', encoding='utf-8', newline='') as f:
                await f.write(content)
        except OSError as e:
            return ActionResult.fail(action, filename, _os_error_kind(e), f"Failed to append to '{filename}': {e}")

        return ActionResult.ok(
            action, filename, f"Appended {len(content)} characters to '{filename}'", directory_changed=True
        )

    async def list_directory(self, path: str) -> ActionResult:
        """List entries sorted by name; directories carry a trailing ``/``."""
        action = "list_directory"
        try:
            self.guard.check(path)
        except SandboxDeniedError as e:
            return ActionResult.fail(action, path, ErrorKind.SANDBOX_DENIED, str(e))

        try:
            entries = self.list_entries(path)
        except NotADirectoryError:
            return ActionResult.fail(action, path, ErrorKind.IO, f"Path is not a directory: {path}")
        except FileNotFoundError:
            return ActionResult.fail(action, path, ErrorKind.NOT_FOUND, f"Directory not found: {path}")
        except OSError as e:
            return ActionResult.fail(action, path, _os_error_kind(e), f"Failed to list directory: {e}")

        return ActionResult.ok(action, path, "\n".join(entries))

    @staticmethod
    def list_entries(path: str) -> List[str]:
        entries = []
        for item in Path(path).iterdir():
            entries.append(f"{item.name}/" if item.is_dir() else item.name)
        entries.sort()
        return entries

    async def read_reference(self, filename: str) -> Optional[str]:
        """Content of a file referenced from a user message, or None when unreadable."""
        result = await self.read_file(filename)
        if not result.success:
            logger.warning("Skipping referenced file %s: %s", filename, result.error.message)
            return None
        return result.detail
