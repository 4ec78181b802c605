from typing import TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from busybee.errors import ValidationError
from busybee.models.task import MAX_RESPONSIBLE_USERS, Task, TaskComment, is_stored_handle
from busybee.models.user import Role, UserAccount

ModelType = TypeVar("ModelType", bound=BaseModel)


def build(model_cls: type[ModelType], **fields) -> ModelType:
    """Instantiate a model, surfacing our own ValidationError instead of pydantic's."""
    try:
        return model_cls(**fields)
    except PydanticValidationError as e:
        for error in e.errors():
            inner = (error.get("ctx") or {}).get("error")
            if isinstance(inner, ValidationError):
                raise inner from None
        raise ValidationError(model_cls.__name__.lower(), "invalid") from e


__all__ = [
    "MAX_RESPONSIBLE_USERS",
    "Role",
    "Task",
    "TaskComment",
    "UserAccount",
    "build",
    "is_stored_handle",
]
