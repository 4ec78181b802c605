# Authentication API routes for registration, form login and logout

from datetime import timedelta

from fastapi import APIRouter, Depends, Form, status
from fastapi.responses import RedirectResponse

from busybee.config import Settings
from busybee.dependencies.auth import (
    get_revocation_list,
    get_session_payload,
    get_settings,
    get_user_store,
)
from busybee.errors import Unauthorized, ValidationError
from busybee.models import Role
from busybee.safety.values import Password, Username
from busybee.schemas import RegisterRequest, RegisterResponse
from busybee.storage.users import UserStore
from busybee.utils.auth import (
    TokenRevocationList,
    create_access_token,
    get_password_hash,
    verify_dummy_password,
    verify_password,
)
from busybee.utils.logger import safe_log_value, setup_logger

logger = setup_logger("api.auth")

router = APIRouter(tags=["Authentication"])

LOGIN_SUCCESS_URL = "/main/main.html"
LOGOUT_SUCCESS_URL = "/"


@router.post("/register", response_model=RegisterResponse)
def register_user(
    user_data: RegisterRequest,
    users: UserStore = Depends(get_user_store),
    settings: Settings = Depends(get_settings),
):
    """Register a new TRIAL account."""
    hashed_password = get_password_hash(user_data.password.value(), settings.bcrypt_rounds)
    users.create_user(user_data.username, hashed_password, [Role.TRIAL])
    return RegisterResponse()


@router.post("/login")
def login_user(
    username: str = Form(""),
    password: str = Form(""),
    users: UserStore = Depends(get_user_store),
    settings: Settings = Depends(get_settings),
):
    """Form login: sets the session cookie and redirects to the main page."""
    try:
        safe_username = Username(username)
        safe_password = Password(password)
    except ValidationError:
        verify_dummy_password(password)
        logger.warning("Login failed: malformed credentials")
        raise Unauthorized() from None

    user = users.find_by_username(safe_username)
    if user is None:
        verify_dummy_password(safe_password.value())
        authenticated = False
    else:
        authenticated = verify_password(safe_password.value(), user.hashed_password) and user.enabled

    if not authenticated:
        logger.warning(f"Login failed: user={safe_log_value(safe_username.value())}")
        raise Unauthorized()

    lifetime = timedelta(minutes=settings.access_token_expire_minutes)
    token = create_access_token(user.username, lifetime, settings)

    response = RedirectResponse(LOGIN_SUCCESS_URL, status_code=status.HTTP_302_FOUND)
    response.set_cookie(
        settings.session_cookie_name,
        token,
        max_age=int(lifetime.total_seconds()),
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
    )
    logger.info(f"Login succeeded: user={safe_log_value(user.username)}")
    return response


@router.post("/logout")
def logout_user(
    payload: dict = Depends(get_session_payload),
    revoked: TokenRevocationList = Depends(get_revocation_list),
    settings: Settings = Depends(get_settings),
):
    """Revoke the current session token and redirect to the landing page."""
    revoked.revoke(payload["jti"], float(payload.get("exp", 0)))
    response = RedirectResponse(LOGOUT_SUCCESS_URL, status_code=status.HTTP_302_FOUND)
    response.delete_cookie(
        settings.session_cookie_name,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
    )
    return response
