# Task API routes: listing, creation and completion

from datetime import datetime

from fastapi import APIRouter, Depends, Query

from busybee.dependencies.auth import (
    get_current_user,
    get_task_store,
    get_tasks_authorization,
    get_user_store,
)
from busybee.dependencies.tasks import (
    authorized_create_request,
    authorized_done_request,
    ensure_can_create,
)
from busybee.errors import TaskNameConflict, ValidationError
from busybee.models import MAX_RESPONSIBLE_USERS, UserAccount
from busybee.safety.values import ResponsibilityName, Username
from busybee.schemas import (
    CreateRequest,
    CreateResponse,
    MarkDoneRequest,
    MarkDoneResponse,
    TaskOut,
)
from busybee.services.authorization import TasksAuthorization, filter_to_authorized_tasks
from busybee.storage.tasks import TaskStore
from busybee.storage.users import UserStore
from busybee.utils.logger import setup_logger

logger = setup_logger("api.tasks")

router = APIRouter(tags=["Tasks"])


def _reject_create(field: str, reason: str, log_detail: str) -> ValidationError:
    logger.warning(f"Create task rejected: {log_detail}")
    return ValidationError(field, reason)


def validate_create_request(request: CreateRequest, now: datetime | None = None) -> None:
    """
    Structural checks on a parsed create request, in a fixed order so the
    first failing field decides the message.
    """
    if request.name is None:
        raise _reject_create("name", "required", "missing name")
    if request.desc is None:
        raise _reject_create("desc", "required", "missing desc")
    if request.responsibilityOf is None:
        raise _reject_create("responsibilityOf", "required", "missing responsibilityOf")
    if request.dueTime is not None and request.dueDate is None:
        raise _reject_create("dueTime", "cannot be set without dueDate", "dueTime without dueDate")

    if request.dueDate is not None:
        current = now or datetime.now()
        today = current.date()
        if request.dueDate < today:
            raise _reject_create("dueDate", "cannot be in the past", "dueDate is in the past")
        if (
            request.dueTime is not None
            and request.dueDate == today
            and request.dueTime < current.time()
        ):
            raise _reject_create(
                "dueTime", "cannot set dueDate+dueTime in the past", "dueDate+dueTime is in the past"
            )

    if len(request.responsibilityOf) > MAX_RESPONSIBLE_USERS:
        raise _reject_create(
            "responsibilityOf",
            f"too many values (max {MAX_RESPONSIBLE_USERS})",
            f"too many responsible users; count={len(request.responsibilityOf)}",
        )
    for index, username in enumerate(request.responsibilityOf):
        if username is None:
            raise _reject_create(
                f"responsibilityOf[{index}]", "required", f"responsibilityOf[{index}] is null"
            )


def validate_responsible_users_exist(request: CreateRequest, users: UserStore) -> None:
    for index, username in enumerate(request.responsibilityOf or ()):
        if not users.exists(username):
            # Index only; usernames stay out of the log
            raise _reject_create(
                f"responsibilityOf[{index}]",
                "user does not exist",
                f"responsibilityOf[{index}] user does not exist",
            )


@router.get("/tasks", response_model=list[TaskOut])
def get_tasks(
    responsibilityOf: str = Query(""),
    current_user: UserAccount = Depends(get_current_user),
    tasks: TaskStore = Depends(get_task_store),
):
    """Tasks the current user may view; ADMIN sees every task."""
    assignee = ResponsibilityName(responsibilityOf)
    visible = list(tasks.get_all())
    if not current_user.is_admin:
        visible = filter_to_authorized_tasks(visible, current_user.username)
    if not assignee.is_empty():
        visible = [task for task in visible if task.is_responsible(assignee.value())]
    return [TaskOut.from_task(task) for task in visible]


@router.post("/create", response_model=CreateResponse)
def create_task(
    request: CreateRequest = Depends(authorized_create_request),
    current_user: UserAccount = Depends(get_current_user),
    tasks: TaskStore = Depends(get_task_store),
    users: UserStore = Depends(get_user_store),
    authz: TasksAuthorization = Depends(get_tasks_authorization),
):
    validate_create_request(request)
    validate_responsible_users_exist(request, users)
    if tasks.task_name_exists(request.name):
        logger.warning("Create task rejected: duplicate task name")
        raise TaskNameConflict()
    ensure_can_create(current_user, authz)

    taskid = tasks.add(
        request.name,
        request.desc,
        Username(current_user.username),
        request.responsibilityOf,
        due_date=request.dueDate,
        due_time=request.dueTime,
    )
    return CreateResponse(taskid=taskid)


@router.post("/done", response_model=MarkDoneResponse)
def mark_task_done(
    request: MarkDoneRequest = Depends(authorized_done_request),
    tasks: TaskStore = Depends(get_task_store),
):
    already_done = tasks.mark_done(request.taskid)
    return MarkDoneResponse(success=not already_done)
