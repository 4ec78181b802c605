"""
Authentication utilities with JWT tokens and bcrypt password hashing.

Uses industry-standard security practices:
- bcrypt with salt for password hashing
- HS256 algorithm for JWT signing, with a random ``jti`` per token
- Configurable token expiration
- In-process revocation of logged-out tokens
- UTC timezone consistency
"""

import secrets
import threading
import time
from datetime import UTC, datetime, timedelta

import bcrypt
from jose import JWTError, jwt

from busybee.config import settings as default_settings

# Verified against when the username is unknown so both paths pay the bcrypt cost
_DUMMY_HASH = bcrypt.hashpw(b"busybee-dummy-password", bcrypt.gensalt()).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plain text password against a hashed password."""
    try:
        return bcrypt.checkpw(
            plain_password.encode("utf-8"), hashed_password.encode("utf-8")
        )
    except ValueError:
        return False


def verify_dummy_password(plain_password: str) -> bool:
    verify_password(plain_password, _DUMMY_HASH)
    return False


def get_password_hash(password: str, rounds: int | None = None) -> str:
    """Hash a plain text password using bcrypt."""
    pwd_bytes = password.encode("utf-8")
    salt = bcrypt.gensalt(rounds or default_settings.bcrypt_rounds)
    hashed_password = bcrypt.hashpw(password=pwd_bytes, salt=salt)
    return hashed_password.decode("utf-8")


def create_access_token(
    username: str, expires_delta: timedelta | None = None, settings=None
) -> str:
    """Create a JWT access token for ``username``."""
    settings = settings or default_settings
    if expires_delta:
        expire = datetime.now(UTC) + expires_delta
    else:
        expire = datetime.now(UTC) + timedelta(minutes=settings.access_token_expire_minutes)

    to_encode = {"sub": username, "jti": secrets.token_urlsafe(16), "exp": expire}
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.token_algorithm)


def decode_access_token(token: str, settings=None) -> dict | None:
    """Decode and verify a JWT access token."""
    settings = settings or default_settings
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.token_algorithm])
    except JWTError:
        return None
    if not isinstance(payload.get("sub"), str) or not isinstance(payload.get("jti"), str):
        return None
    return payload


class TokenRevocationList:
    """Token ids invalidated by logout, kept until the token would have expired anyway."""

    def __init__(self):
        self._lock = threading.Lock()
        self._revoked: dict[str, float] = {}

    def revoke(self, jti: str, expires_at: float) -> None:
        with self._lock:
            self._prune_locked()
            self._revoked[jti] = expires_at

    def is_revoked(self, jti: str) -> bool:
        with self._lock:
            self._prune_locked()
            return jti in self._revoked

    def _prune_locked(self) -> None:
        now = time.time()
        expired = [jti for jti, expires_at in self._revoked.items() if expires_at <= now]
        for jti in expired:
            del self._revoked[jti]
