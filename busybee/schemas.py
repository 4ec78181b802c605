"""
Request and response bodies of the HTTP surface.

Request models declare the safe-value types directly, so every client
scalar is validated while the body is parsed and nothing reaches the
stores as a raw string.
"""

from datetime import date, datetime, time
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from busybee.models import Task, TaskComment
from busybee.safety.values import CommentText, Password, TaskDescription, TaskName, Username


class RequestModel(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True, extra="ignore")


class RegisterRequest(RequestModel):
    username: Username
    password: Password


class RegisterResponse(BaseModel):
    redirectTo: str = "main/main.html"


class CreateRequest(RequestModel):
    """
    Body of POST /create.

    Every field is optional at the parsing level so missing values produce
    the ``<field>: required`` messages in a fixed order (see
    validate_create_request).
    """

    name: TaskName | None = None
    desc: TaskDescription | None = None
    dueDate: date | None = None
    dueTime: time | None = None
    responsibilityOf: list[Username | None] | None = None


class CreateResponse(BaseModel):
    taskid: UUID


class MarkDoneRequest(RequestModel):
    taskid: UUID


class MarkDoneResponse(BaseModel):
    success: bool


class CommentFields(RequestModel):
    """JSON carried in the ``commentFields`` multipart part of POST /comment."""

    taskid: UUID
    commentid: UUID | None = Field(default=None, description="Insert after this comment")
    text: CommentText
    imageUrl: str | None = None


class CommentResponse(BaseModel):
    commentid: UUID


class CommentOut(BaseModel):
    commentid: UUID
    text: str
    image: str | None = None
    attachment: str | None = None
    createdBy: str
    createdAt: datetime

    @classmethod
    def from_comment(cls, comment: TaskComment) -> "CommentOut":
        return cls(**comment.model_dump())


class TaskOut(BaseModel):
    taskid: UUID
    name: str
    description: str
    dueDate: date | None = None
    dueTime: time | None = None
    createdBy: str
    responsibilityOf: list[str]
    createdAt: datetime
    done: bool
    comments: list[CommentOut]

    @classmethod
    def from_task(cls, task: Task) -> "TaskOut":
        return cls(
            taskid=task.taskid,
            name=task.name,
            description=task.description,
            dueDate=task.dueDate,
            dueTime=task.dueTime,
            createdBy=task.createdBy,
            responsibilityOf=list(task.responsibilityOf),
            createdAt=task.createdAt,
            done=task.done,
            comments=[CommentOut.from_comment(c) for c in task.comments],
        )


class HealthResponse(BaseModel):
    status: str = "ok"
