from busybee.dependencies.auth import get_current_user, get_session_payload
from busybee.dependencies.tasks import (
    authorized_attachment,
    authorized_comment_fields,
    authorized_create_request,
    authorized_done_request,
    authorized_image,
)

__all__ = [
    "get_current_user",
    "get_session_payload",
    "authorized_create_request",
    "authorized_done_request",
    "authorized_comment_fields",
    "authorized_image",
    "authorized_attachment",
]
