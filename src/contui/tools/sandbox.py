"""File access guard: allow-listed directories for every file operation."""

import logging
import os
import time
from pathlib import Path
from typing import List, Union
from ..utils.errors import SandboxDeniedError, SandboxError

logger = logging.getLogger(__name__)

PathLike = Union[str, os.PathLike]

MAX_NUMBERED_SUFFIX = 9999


class FileAccessGuard:
    """
    Ordered set of canonicalized root directories.

    Roots are added with :meth:`grant` and never removed. A path is permitted
    only when its resolved absolute form lies inside one of the roots; any
    failure while resolving denies access.
    """

    def __init__(self):
        self._roots: List[Path] = []

    @property
    def roots(self) -> List[Path]:
        return list(self._roots)

    def grant(self, directory: PathLike) -> Path:
        """
        Add ``directory`` to the allowed roots.

        Returns:
            The canonical root that was recorded

        Raises:
            SandboxError: If the directory does not exist or is not a directory
        """
        try:
            root = Path(directory).expanduser().resolve(strict=True)
        except (OSError, RuntimeError) as e:
            raise SandboxError(f"Cannot grant access to {directory}: {e}") from e

        if not root.is_dir():
            raise SandboxError(f"Path is not a directory: {root}")

        if root not in self._roots:
            self._roots.append(root)
            logger.info("Granted access to %s", root)
        return root

    def _resolve(self, path: PathLike) -> Path:
        candidate = Path(path).expanduser()
        if not candidate.is_absolute():
            candidate = Path.cwd() / candidate
        try:
            return candidate.resolve(strict=True)
        except (OSError, RuntimeError):
            # Not there yet: canonicalize the existing prefix, keep the missing tail.
            return candidate.resolve(strict=False)

    def is_allowed(self, path: PathLike) -> bool:
        """Whether ``path`` resolves to a location inside a granted root."""
        try:
            resolved = self._resolve(path)
        except (OSError, RuntimeError, ValueError) as e:
            logger.warning("Denying %s: %s", path, e)
            return False

        for root in self._roots:
            if resolved == root or root in resolved.parents:
                return True
        return False

    def check(self, path: PathLike) -> None:
        """Raise SandboxDeniedError unless ``path`` is allowed."""
        if not self.is_allowed(path):
            logger.warning("Access denied to path: %s", path)
            raise SandboxDeniedError(str(path))

    @staticmethod
    def unique_path_for(original: PathLike) -> Path:
        """
        A path that does not exist yet, derived from ``original``.

        ``original`` itself when free, else the first free ``stem_N.ext`` for
        N in 1..9999, else ``stem_<unix timestamp>.ext``.
        """
        path = Path(original)
        if not path.exists():
            return path

        parent = path.parent
        stem = path.stem or "file"
        suffix = path.suffix

        for i in range(1, MAX_NUMBERED_SUFFIX + 1):
            candidate = parent / f"{stem}_{i}{suffix}"
            if not candidate.exists():
                return candidate

        return parent / f"{stem}_{int(time.time())}{suffix}"
