"""
In-memory task store shared by all request workers.

Mutators (add, mark_done, add_comment) run under one exclusive lock; the
name-uniqueness check and the append happen inside the same critical
section. Readers get an immutable tuple snapshot. Persistence runs after
the lock is released: a mutation first marks the store dirty, then the
snapshot is saved and the flag cleared. A failed save raises
PersistenceError while the in-memory change stands for the lifetime of
the process.
"""

import threading
from collections.abc import Sequence
from datetime import date, time
from uuid import UUID

from busybee.errors import TaskAlreadyDone, TaskNameConflict, TaskNotFound
from busybee.models import Task, TaskComment, build
from busybee.safety.values import CommentText, TaskDescription, TaskName, Username
from busybee.storage.persistence import InMemoryTaskPersistence, TaskPersistence
from busybee.utils.logger import setup_logger

logger = setup_logger("storage.tasks")


class TaskStore:
    def __init__(self, persistence: TaskPersistence | None = None):
        self._persistence = persistence or InMemoryTaskPersistence()
        self._lock = threading.Lock()
        self._flush_lock = threading.Lock()
        self._tasks: list[Task] = list(self._persistence.load())
        self._version = 0
        self._flushed_version = 0

    @property
    def dirty(self) -> bool:
        with self._lock:
            return self._version != self._flushed_version

    def get_all(self) -> tuple[Task, ...]:
        with self._lock:
            return tuple(self._tasks)

    def find(self, taskid: UUID) -> Task | None:
        with self._lock:
            return self._find_locked(taskid)

    def _find_locked(self, taskid: UUID) -> Task | None:
        for task in self._tasks:
            if task.taskid == taskid:
                return task
        return None

    def _index_locked(self, taskid: UUID) -> int:
        for index, task in enumerate(self._tasks):
            if task.taskid == taskid:
                return index
        raise TaskNotFound(taskid)

    def task_name_exists(self, name: TaskName | str) -> bool:
        key = name.normalized() if isinstance(name, TaskName) else name.strip().casefold()
        if not key:
            return False
        with self._lock:
            return self._name_taken_locked(key)

    def _name_taken_locked(self, key: str) -> bool:
        return any(task.name_key() == key for task in self._tasks)

    def add(
        self,
        name: TaskName,
        description: TaskDescription,
        created_by: Username,
        responsibility_of: Sequence[Username] = (),
        due_date: date | None = None,
        due_time: time | None = None,
    ) -> UUID:
        """Append a new task; raises TaskNameConflict on a case-insensitive name clash."""
        new_task = build(
            Task,
            name=name.value(),
            description=description.value(),
            createdBy=created_by.value(),
            responsibilityOf=tuple(u.value() for u in responsibility_of),
            dueDate=due_date,
            dueTime=due_time,
        )
        with self._lock:
            if self._name_taken_locked(new_task.name_key()):
                logger.warning("Create task rejected: duplicate task name")
                raise TaskNameConflict()
            self._tasks.append(new_task)
            self._version += 1
        logger.info(f"Task created: taskId={new_task.taskid}")
        self.flush()
        return new_task.taskid

    def mark_done(self, taskid: UUID) -> bool:
        """Mark a task done. Returns True when it was already done (nothing changed)."""
        with self._lock:
            index = self._index_locked(taskid)
            task = self._tasks[index]
            if task.done:
                return True
            self._tasks[index] = task.as_done()
            self._version += 1
        logger.info(f"Task marked done: taskId={taskid}")
        self.flush()
        return False

    def add_comment(
        self,
        taskid: UUID,
        text: CommentText,
        created_by: Username,
        *,
        image: str | None = None,
        attachment: str | None = None,
        after: UUID | None = None,
    ) -> UUID:
        comment = build(
            TaskComment,
            text=text.value(),
            image=image,
            attachment=attachment,
            createdBy=created_by.value(),
        )
        with self._lock:
            index = self._index_locked(taskid)
            task = self._tasks[index]
            if task.done:
                raise TaskAlreadyDone(taskid)
            self._tasks[index] = task.with_comment(comment, after)
            self._version += 1
        logger.info(f"Comment added: taskId={taskid} commentId={comment.commentid}")
        self.flush()
        return comment.commentid

    def flush(self) -> None:
        """Save the current snapshot if it has unflushed changes."""
        with self._flush_lock:
            with self._lock:
                if self._version == self._flushed_version:
                    return
                version = self._version
                snapshot = tuple(self._tasks)
            self._persistence.save(snapshot)
            with self._lock:
                self._flushed_version = max(self._flushed_version, version)
