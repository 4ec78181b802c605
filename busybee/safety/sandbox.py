"""
Path sandbox pinned to a single root directory.

Every filesystem access made on behalf of a client goes through a
PathSandbox. resolve() normalizes the candidate (following symlinks) and
refuses anything that is not the root or below it. Opening a file walks
the relative components with ``dir_fd`` and ``O_NOFOLLOW`` so a symlink
swapped in after resolve() cannot redirect the open; platforms without
dir_fd support fall back to comparing the opened descriptor with the
resolved path.
"""

import os
import shutil
import stat
from pathlib import Path

from busybee.errors import SandboxEscape
from busybee.utils.logger import setup_logger

logger = setup_logger("safety.sandbox")

_O_NOFOLLOW = getattr(os, "O_NOFOLLOW", 0)
_O_DIRECTORY = getattr(os, "O_DIRECTORY", 0)
_O_BINARY = getattr(os, "O_BINARY", 0)
_HAS_OPENAT = os.open in os.supports_dir_fd and bool(_O_NOFOLLOW) and bool(_O_DIRECTORY)


class PathSandbox:
    """Filesystem access confined to ``root``. Immutable after construction."""

    def __init__(self, root: str | os.PathLike):
        self._root = Path(os.path.realpath(Path(root).absolute()))

    @property
    def root(self) -> Path:
        return self._root

    def resolve(self, user_path: str | os.PathLike) -> Path:
        """Absolute, symlink-free path for ``user_path`` or SandboxEscape."""
        raw = os.fspath(user_path)
        if "\x00" in raw:
            raise SandboxEscape("path contains NUL")
        candidate = Path(os.path.realpath(self._root / raw))
        if candidate != self._root and self._root not in candidate.parents:
            logger.warning("Sandbox escape attempt blocked")
            raise SandboxEscape("path escapes sandbox root")
        return candidate

    def relative(self, user_path: str | os.PathLike) -> Path:
        return self.resolve(user_path).relative_to(self._root)

    def makedirs(self, user_path: str | os.PathLike) -> Path:
        target = self.resolve(user_path)
        target.mkdir(parents=True, exist_ok=True)
        # Re-check after creation: a racing symlink must not move the directory out
        return self.resolve(target.relative_to(self._root))

    def open_fd(self, user_path: str | os.PathLike, flags: int, mode: int = 0o600) -> int:
        """Open a file under the root and return the raw descriptor."""
        parts = self.relative(user_path).parts
        if not parts:
            raise IsADirectoryError("sandbox root is not a file")
        if _HAS_OPENAT:
            return self._open_at(parts, flags, mode)
        return self._open_checked(user_path, flags, mode)

    def _open_at(self, parts: tuple[str, ...], flags: int, mode: int) -> int:
        dir_fd = os.open(self._root, os.O_RDONLY | _O_DIRECTORY)
        try:
            for part in parts[:-1]:
                next_fd = os.open(
                    part, os.O_RDONLY | _O_DIRECTORY | _O_NOFOLLOW, dir_fd=dir_fd
                )
                os.close(dir_fd)
                dir_fd = next_fd
            return os.open(parts[-1], flags | _O_NOFOLLOW | _O_BINARY, mode, dir_fd=dir_fd)
        finally:
            os.close(dir_fd)

    def _open_checked(self, user_path: str | os.PathLike, flags: int, mode: int) -> int:
        path = self.resolve(user_path)
        fd = os.open(path, flags | _O_NOFOLLOW | _O_BINARY, mode)
        try:
            if not os.path.samestat(os.fstat(fd), os.stat(self.resolve(user_path))):
                raise SandboxEscape("path changed while opening")
        except BaseException:
            os.close(fd)
            raise
        return fd

    def create_exclusive(self, user_path: str | os.PathLike):
        """Create a new file for binary writing; fails if the name already exists."""
        fd = self.open_fd(user_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o640)
        return os.fdopen(fd, "wb")

    def read_bytes(self, user_path: str | os.PathLike) -> bytes:
        fd = self.open_fd(user_path, os.O_RDONLY)
        with os.fdopen(fd, "rb") as fh:
            if not stat.S_ISREG(os.fstat(fh.fileno()).st_mode):
                raise FileNotFoundError("not a regular file")
            return fh.read()

    def is_file(self, user_path: str | os.PathLike) -> bool:
        try:
            target = self.resolve(user_path)
        except SandboxEscape:
            return False
        return target.is_file()

    def count_regular_files(self, user_path: str | os.PathLike) -> int:
        directory = self.resolve(user_path)
        with os.scandir(directory) as entries:
            return sum(1 for entry in entries if entry.is_file(follow_symlinks=False))

    def usable_bytes(self, user_path: str | os.PathLike) -> int:
        return shutil.disk_usage(self.resolve(user_path)).free

    def unlink(self, user_path: str | os.PathLike) -> None:
        """Delete a file under the root; a missing file is not an error."""
        try:
            self.resolve(user_path).unlink()
        except FileNotFoundError:
            return
