"""
Per-route authorization gates.

Each gate authenticates first, then parses its input, then applies the
route's predicate and raises Forbidden when it does not hold. Gates return
the parsed input so the endpoint does not declare the body a second time.
"""

from fastapi import Depends, Form, Query
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError as PydanticValidationError

from busybee.dependencies.auth import get_current_user, get_tasks_authorization
from busybee.errors import Forbidden
from busybee.models import Role, UserAccount
from busybee.safety.values import ImageName
from busybee.schemas import CommentFields, CreateRequest, MarkDoneRequest
from busybee.services.authorization import TasksAuthorization
from busybee.utils.logger import setup_logger

logger = setup_logger("dependencies.tasks")


def _deny(route: str) -> Forbidden:
    logger.warning(f"Access denied: route={route}")
    return Forbidden("access denied")


def authorized_create_request(
    payload: CreateRequest,
    current_user: UserAccount = Depends(get_current_user),
) -> CreateRequest:
    """Only ADMIN, CREATOR and TRIAL accounts may create tasks."""
    if current_user.has_role(Role.ADMIN, Role.CREATOR, Role.TRIAL):
        return payload
    raise _deny("/create")


def ensure_can_create(user: UserAccount, authz: TasksAuthorization) -> None:
    """TRIAL accounts may only create while none of their tasks is open."""
    if user.has_role(Role.ADMIN, Role.CREATOR):
        return
    if authz.trial_user_can_create(user.username):
        return
    raise _deny("/create")


def authorized_done_request(
    payload: MarkDoneRequest,
    current_user: UserAccount = Depends(get_current_user),
    authz: TasksAuthorization = Depends(get_tasks_authorization),
) -> MarkDoneRequest:
    """Owner, a responsible user or ADMIN; an unknown task is 404 for everyone."""
    if authz.is_owner_or_responsible(payload.taskid, current_user.username):
        return payload
    if current_user.is_admin:
        return payload
    raise _deny("/done")


def parse_comment_fields(commentFields: str = Form(...)) -> CommentFields:
    try:
        return CommentFields.model_validate_json(commentFields)
    except PydanticValidationError as e:
        raise RequestValidationError(e.errors()) from e


def authorized_comment_fields(
    current_user: UserAccount = Depends(get_current_user),
    fields: CommentFields = Depends(parse_comment_fields),
    authz: TasksAuthorization = Depends(get_tasks_authorization),
) -> CommentFields:
    if authz.user_allowed_to_comment(fields.taskid, current_user.username):
        return fields
    raise _deny("/comment")


def _media_gate(kind: str, file: str, user: UserAccount, authz: TasksAuthorization) -> str:
    name = ImageName(file).value()
    if kind == "image":
        allowed = authz.image_is_in_owned_or_assigned_task(name, user.username)
    else:
        allowed = authz.attachment_is_in_owned_or_assigned_task(name, user.username)
    if not allowed and user.is_admin:
        allowed = authz.referenced_by_any_task(kind, name)
    if not allowed:
        raise _deny(f"/{kind}")
    return name


def authorized_image(
    current_user: UserAccount = Depends(get_current_user),
    file: str = Query(...),
    authz: TasksAuthorization = Depends(get_tasks_authorization),
) -> str:
    return _media_gate("image", file, current_user, authz)


def authorized_attachment(
    current_user: UserAccount = Depends(get_current_user),
    file: str = Query(...),
    authz: TasksAuthorization = Depends(get_tasks_authorization),
) -> str:
    return _media_gate("attachment", file, current_user, authz)
