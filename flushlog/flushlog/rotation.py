"""
Bounded-count local log file rotation.

Log files are named ``{base_path}/{component}{sub_label}.log``. Up to
``max_files`` distinct files are created; after that, writing a new path
recycles the oldest registered file by renaming it to the new path and
truncating it, instead of allocating yet another file.

    registry (max_files=2):  [A]  →  [A, B]  →  write C: rename A → C  →  [B, C]

Writing a path that is already registered appends to it.
"""

import logging
import os
import threading
from collections import deque
from pathlib import Path
from typing import Deque, List, Optional, Protocol, Union

from .config import DEFAULT_MAX_FILES
from .errors import RotationError

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class FileBackend(Protocol):
    """Storage operations the rotating writer relies on."""

    def create(self, path: str, data: bytes) -> None: ...

    def append(self, path: str, data: bytes) -> None: ...

    def rename_or_recreate(self, old_path: str, new_path: str) -> None: ...

    def truncate_write(self, path: str, data: bytes) -> None: ...

    def remove(self, path: str) -> None: ...


class LocalFileBackend:
    """FileBackend on the local filesystem."""

    def create(self, path: str, data: bytes) -> None:
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        with open(path, "wb") as f:
            f.write(data)

    def append(self, path: str, data: bytes) -> None:
        with open(path, "ab") as f:
            f.write(data)

    def rename_or_recreate(self, old_path: str, new_path: str) -> None:
        """
        Move ``old_path`` to ``new_path``.

        A rename is a metadata-only operation, so the recycled file keeps
        its inode. If ``old_path`` disappeared in the meantime, an empty
        ``new_path`` is created instead.
        """
        try:
            os.replace(old_path, new_path)
        except FileNotFoundError:
            logger.warning(f"Rotated file {old_path} is missing, recreating {new_path}")
            Path(new_path).parent.mkdir(parents=True, exist_ok=True)
            open(new_path, "wb").close()

    def truncate_write(self, path: str, data: bytes) -> None:
        with open(path, "r+b") as f:
            f.truncate(0)
            f.write(data)

    def remove(self, path: str) -> None:
        try:
            os.unlink(path)
        except FileNotFoundError:
            logger.warning(f"Rotated file {path} is already gone")


class RotationRegistry:
    """
    FIFO registry of live log file paths, capped at ``max_files``.

    The head is always the path that was rotated in least recently.
    """

    def __init__(self, max_files: int = DEFAULT_MAX_FILES):
        self._check(max_files)
        self._max_files = max_files
        self._paths: Deque[str] = deque()

    @staticmethod
    def _check(max_files: int) -> None:
        if max_files < 1:
            raise ValueError(f"max_files must be at least 1, got {max_files}")

    @property
    def max_files(self) -> int:
        return self._max_files

    def set_max_files(self, max_files: int) -> None:
        self._check(max_files)
        self._max_files = max_files

    @property
    def is_full(self) -> bool:
        return len(self._paths) >= self._max_files

    def oldest(self) -> Optional[str]:
        return self._paths[0] if self._paths else None

    def drop_oldest(self) -> Optional[str]:
        """Remove and return the head path."""
        return self._paths.popleft() if self._paths else None

    def register(self, path: str) -> None:
        """Append a freshly created path at the tail."""
        self._paths.append(path)

    def promote(self, old_path: str, new_path: str) -> None:
        """Drop ``old_path`` from the head and register ``new_path`` at the tail."""
        if self._paths and self._paths[0] == old_path:
            self._paths.popleft()
        else:
            self._paths.remove(old_path)
        self._paths.append(new_path)

    def paths(self) -> List[str]:
        """Registered paths, oldest first."""
        return list(self._paths)

    def __contains__(self, path: object) -> bool:
        return str(path) in self._paths

    def __len__(self) -> int:
        return len(self._paths)


class RotatingFileWriter:
    """
    Writes flushed buffer content to local files, recycling the oldest
    file once ``max_files`` files exist.

    The registry is only updated once the file operation succeeded, so a
    failed write leaves it describing what is actually on disk.
    """

    def __init__(
        self,
        registry: Optional[RotationRegistry] = None,
        backend: Optional[FileBackend] = None,
    ):
        self.registry = registry if registry is not None else RotationRegistry()
        self.backend = backend if backend is not None else LocalFileBackend()
        self._lock = threading.Lock()

    def write(self, path: PathLike, data: bytes) -> None:
        """
        Write ``data`` to ``path``.

        Raises:
            RotationError: If a file could not be opened, renamed or written
        """
        path = str(path)
        with self._lock:
            self._trim()
            if path in self.registry:
                self._run("append to", path, self.backend.append, path, data)
                return

            if not self.registry.is_full:
                self._run("create", path, self.backend.create, path, data)
                self.registry.register(path)
                return

            old_path = self.registry.oldest()
            self._run("rename", old_path, self.backend.rename_or_recreate, old_path, path)
            # The old path is gone from disk at this point.
            self.registry.promote(old_path, path)
            self._run("write", path, self.backend.truncate_write, path, data)
            logger.debug(f"Recycled log file {old_path} as {path}")

    def set_max_files(self, max_files: int) -> None:
        """Change the file cap, removing the oldest files above it."""
        with self._lock:
            self.registry.set_max_files(max_files)
            self._trim()

    def _trim(self) -> None:
        while len(self.registry) > self.registry.max_files:
            stale = self.registry.oldest()
            self._run("remove", stale, self.backend.remove, stale)
            self.registry.drop_oldest()
            logger.debug(f"Removed log file {stale} above max_files")

    @staticmethod
    def _run(operation: str, path: str, func, *args) -> None:
        try:
            func(*args)
        except OSError as e:
            raise RotationError(path, operation, str(e)) from e
