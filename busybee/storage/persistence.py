"""
Task snapshot persistence.

The whole task list is written as one JSON document. Writes go through a
temp file in the target directory followed by fsync and os.replace, so a
crash leaves either the previous or the new snapshot on disk.
"""

import json
import os
import tempfile
from collections.abc import Sequence
from pathlib import Path
from typing import Protocol

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from busybee.errors import PersistenceError
from busybee.models import Task
from busybee.utils.logger import setup_logger

logger = setup_logger("storage.persistence")

SNAPSHOT_VERSION = 1

_tasks_adapter = TypeAdapter(list[Task])


class TaskPersistence(Protocol):
    def load(self) -> list[Task]: ...

    def save(self, tasks: Sequence[Task]) -> None: ...


class InMemoryTaskPersistence:
    """Keeps nothing; used when no snapshot file is configured."""

    def load(self) -> list[Task]:
        return []

    def save(self, tasks: Sequence[Task]) -> None:
        return None


def _fsync_directory(path: Path) -> None:
    """Fsync a directory so the rename is durable; unsupported platforms are ignored."""
    try:
        fd = os.open(str(path), os.O_RDONLY)
        try:
            os.fsync(fd)
        finally:
            os.close(fd)
    except OSError:
        pass


def atomic_write(path: Path, content: bytes) -> None:
    """Write content to path atomically via temp file + fsync + rename."""
    parent = path.parent
    parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(dir=parent, prefix=".tmp.")
    closed = False
    try:
        # os.write() can short-write; loop until all bytes are flushed.
        mv = memoryview(content)
        while mv:
            written = os.write(fd, mv)
            mv = mv[written:]
        os.fsync(fd)
        os.close(fd)
        closed = True
        os.replace(tmp_path, path)
        _fsync_directory(parent)
    except BaseException:
        if not closed:
            os.close(fd)
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


class JsonTaskPersistence:
    def __init__(self, path: str | os.PathLike):
        self.path = Path(path)

    def load(self) -> list[Task]:
        if not self.path.exists():
            logger.info("No task snapshot found; starting with an empty task list.")
            return []
        try:
            document = json.loads(self.path.read_bytes())
            version = document["version"]
            raw_tasks = document["tasks"]
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.error(f"Failed to read task snapshot {self.path}: {type(e).__name__}")
            raise PersistenceError("task snapshot is unreadable") from e

        if version != SNAPSHOT_VERSION:
            raise PersistenceError(f"unsupported task snapshot version {version!r}")

        try:
            tasks = _tasks_adapter.validate_python(raw_tasks)
        except PydanticValidationError as e:
            logger.error(f"Task snapshot {self.path} failed validation: {e.error_count()} errors")
            raise PersistenceError("task snapshot is invalid") from e
        logger.info(f"Loaded {len(tasks)} tasks from snapshot.")
        return tasks

    def save(self, tasks: Sequence[Task]) -> None:
        payload = {
            "version": SNAPSHOT_VERSION,
            "tasks": _tasks_adapter.dump_python(list(tasks), mode="json"),
        }
        try:
            atomic_write(self.path, json.dumps(payload, ensure_ascii=False, indent=2).encode("utf-8"))
        except OSError as e:
            logger.error(f"Failed to save task snapshot {self.path}: {e}")
            raise PersistenceError("cannot save tasks") from e
