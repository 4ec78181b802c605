"""
Task and comment aggregate.

Tasks are immutable snapshots: TaskStore replaces a task with an updated
copy under its lock instead of mutating it, so readers can hold on to a
list of tasks without further locking.

Lifecycle:
    created (done=False) --add_comment--> ... --mark_done--> done=True (final)

Invariants checked here:
    - dueTime requires dueDate
    - at most five responsible users
    - a comment references an image or an attachment, never both
    - media references are stored-file handles (``<user-segment>/<uuid><ext>``)
"""

import re
import uuid
from datetime import UTC, date, datetime, time
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from busybee.errors import ValidationError

MAX_RESPONSIBLE_USERS = 5

STORED_HANDLE_PATTERN = re.compile(
    r"[A-Za-z0-9_-]+/[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}"
    r"\.(?:jpg|jpeg|png|gif|webp|pdf)"
)


def is_stored_handle(value: str) -> bool:
    return bool(STORED_HANDLE_PATTERN.fullmatch(value))


def _utcnow() -> datetime:
    return datetime.now(UTC)


class TaskComment(BaseModel):
    model_config = ConfigDict(frozen=True)

    commentid: UUID = Field(default_factory=uuid.uuid4)
    text: str
    image: str | None = None
    attachment: str | None = None
    createdBy: str
    createdAt: datetime = Field(default_factory=_utcnow)

    @field_validator("image", "attachment")
    @classmethod
    def media_is_stored_handle(cls, v: str | None) -> str | None:
        if v is not None and not is_stored_handle(v):
            raise ValidationError("file", "invalid stored file reference")
        return v

    @model_validator(mode="after")
    def single_media_reference(self) -> "TaskComment":
        if self.image is not None and self.attachment is not None:
            raise ValidationError("file", "comment cannot have both image and attachment")
        return self


class Task(BaseModel):
    model_config = ConfigDict(frozen=True)

    taskid: UUID = Field(default_factory=uuid.uuid4)
    name: str
    description: str
    dueDate: date | None = None
    dueTime: time | None = None
    createdBy: str
    responsibilityOf: tuple[str, ...] = ()
    createdAt: datetime = Field(default_factory=_utcnow)
    done: bool = False
    comments: tuple[TaskComment, ...] = ()

    @model_validator(mode="after")
    def check_invariants(self) -> "Task":
        if self.dueTime is not None and self.dueDate is None:
            raise ValidationError("dueTime", "cannot be set without dueDate")
        if len(self.responsibilityOf) > MAX_RESPONSIBLE_USERS:
            raise ValidationError(
                "responsibilityOf", f"too many values (max {MAX_RESPONSIBLE_USERS})"
            )
        return self

    def name_key(self) -> str:
        return self.name.strip().casefold()

    def is_owner(self, username: str) -> bool:
        return self.createdBy == username

    def is_responsible(self, username: str) -> bool:
        return username in self.responsibilityOf

    def as_done(self) -> "Task":
        return self.model_copy(update={"done": True})

    def with_comment(self, comment: TaskComment, after: UUID | None = None) -> "Task":
        """Copy of this task with ``comment`` appended, or inserted after ``after``."""
        comments = list(self.comments)
        if after is None:
            comments.append(comment)
        else:
            for index, existing in enumerate(comments):
                if existing.commentid == after:
                    comments.insert(index + 1, comment)
                    break
            else:
                raise ValidationError("commentid", "not found")
        return self.model_copy(update={"comments": tuple(comments)})

    def references_image(self, filename: str) -> bool:
        return any(c.image == filename for c in self.comments)

    def references_attachment(self, filename: str) -> bool:
        return any(c.attachment == filename for c in self.comments)
