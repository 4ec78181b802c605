"""
Authorization predicates over the task store.

All predicates are pure functions of (store state, actor, resource) and
return booleans; the HTTP layer turns a False into Forbidden. Role-based
overrides (ADMIN) are applied by the request dependencies, not here.
"""

from uuid import UUID

from busybee.errors import TaskNotFound
from busybee.models import Task
from busybee.storage.tasks import TaskStore


def user_allowed_to_view_task(task: Task, username: str) -> bool:
    return task.is_owner(username) or task.is_responsible(username)


def filter_to_authorized_tasks(tasks, username: str) -> list[Task]:
    return [task for task in tasks if user_allowed_to_view_task(task, username)]


class TasksAuthorization:
    def __init__(self, tasks: TaskStore):
        self._tasks = tasks

    def trial_user_can_create(self, username: str) -> bool:
        """A TRIAL user may create a task only while none of theirs is still open."""
        return not any(
            task.is_owner(username) and not task.done for task in self._tasks.get_all()
        )

    def is_owner(self, taskid: UUID, username: str) -> bool:
        task = self._tasks.find(taskid)
        return task is not None and task.is_owner(username)

    def is_owner_or_responsible(self, taskid: UUID, username: str) -> bool:
        task = self._tasks.find(taskid)
        if task is None:
            raise TaskNotFound(taskid)
        return user_allowed_to_view_task(task, username)

    def user_allowed_to_comment(self, taskid: UUID, username: str) -> bool:
        task = self._tasks.find(taskid)
        return task is not None and user_allowed_to_view_task(task, username)

    def image_is_in_owned_or_assigned_task(self, filename: str, username: str) -> bool:
        return any(
            task.references_image(filename)
            for task in self._tasks.get_all()
            if user_allowed_to_view_task(task, username)
        )

    def attachment_is_in_owned_or_assigned_task(self, filename: str, username: str) -> bool:
        return any(
            task.references_attachment(filename)
            for task in self._tasks.get_all()
            if user_allowed_to_view_task(task, username)
        )

    def referenced_by_any_task(self, kind: str, filename: str) -> bool:
        """Whether any task at all references ``filename`` as an image or attachment."""
        if kind == "image":
            return any(task.references_image(filename) for task in self._tasks.get_all())
        return any(task.references_attachment(filename) for task in self._tasks.get_all())
