"""
Authentication dependencies for FastAPI route protection.

The session token is read from the HttpOnly session cookie, or from an
``Authorization: Bearer`` header. Any failure raises Unauthorized, which
the error handlers turn into an empty 401 (never a redirect).
"""

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from busybee.config import Settings
from busybee.errors import Unauthorized
from busybee.models import UserAccount
from busybee.services.authorization import TasksAuthorization
from busybee.services.url_fetcher import UrlImageDownloader
from busybee.storage.files import FileStorage
from busybee.storage.tasks import TaskStore
from busybee.storage.users import UserStore
from busybee.utils.auth import TokenRevocationList, decode_access_token

bearer = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_task_store(request: Request) -> TaskStore:
    return request.app.state.tasks


def get_user_store(request: Request) -> UserStore:
    return request.app.state.users


def get_file_storage(request: Request) -> FileStorage:
    return request.app.state.files


def get_url_downloader(request: Request) -> UrlImageDownloader:
    return request.app.state.url_downloader


def get_tasks_authorization(request: Request) -> TasksAuthorization:
    return request.app.state.authorization


def get_revocation_list(request: Request) -> TokenRevocationList:
    return request.app.state.revoked_tokens


def get_session_payload(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer),
    settings: Settings = Depends(get_settings),
    revoked: TokenRevocationList = Depends(get_revocation_list),
) -> dict:
    """
    Dependency returning the verified token claims of the current session.
    """
    token = request.cookies.get(settings.session_cookie_name)
    if not token and credentials is not None:
        token = credentials.credentials
    if not token:
        raise Unauthorized()

    payload = decode_access_token(token, settings)
    if payload is None or revoked.is_revoked(payload["jti"]):
        raise Unauthorized()
    return payload


def get_current_user(
    payload: dict = Depends(get_session_payload),
    users: UserStore = Depends(get_user_store),
) -> UserAccount:
    """
    Dependency to get the current authenticated user from the session token.
    """
    user = users.find_by_username(payload["sub"])
    if user is None or not user.enabled:
        raise Unauthorized()
    return user
