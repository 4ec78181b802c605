"""
This file contains shared fixtures and configuration for the test suite.

Pytest will automatically discover and use the fixtures defined in this file.

Every test gets its own application instance built from temp-dir settings:
uploads and the task snapshot live under ``tmp_path`` and account seeding
is off, so tests create exactly the accounts they need.
"""

import os

# File logging is process-wide; keep test runs from writing log directories
os.environ.setdefault("LOG_TO_FILE", "false")

from collections.abc import Callable, Generator  # noqa: E402

import pytest  # noqa: E402
from fastapi import FastAPI  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from busybee.config import Settings  # noqa: E402
from busybee.models import Role  # noqa: E402
from busybee.safety.values import Username  # noqa: E402
from busybee.utils.auth import get_password_hash  # noqa: E402

TEST_BCRYPT_ROUNDS = 4
DEFAULT_PASSWORD = "hunter2A!"


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        BUSYBEE_UPLOADS_DIR=tmp_path / "uploads",
        BUSYBEE_TASKS_FILE=tmp_path / "data" / "tasks.json",
        BUSYBEE_SEED_USERS=False,
        BCRYPT_ROUNDS=TEST_BCRYPT_ROUNDS,
        SECRET_KEY="test-secret-key",
    )


@pytest.fixture
def app(settings: Settings) -> FastAPI:
    """
    Create a new application instance for a single test.
    """
    # Import the factory function here to ensure it's fresh for each test.
    from main import create_app

    return create_app(settings)


@pytest.fixture
def client(app: FastAPI) -> Generator[TestClient, None, None]:
    """
    Anonymous test client. The TestClient handles the application's
    lifespan events (startup/shutdown).
    """
    with TestClient(app) as c:
        yield c


@pytest.fixture
def create_account(app: FastAPI) -> Callable:
    """Factory adding an account straight to the user store."""

    def _create(name: str, *roles: Role, password: str = DEFAULT_PASSWORD):
        return app.state.users.create_user(
            Username(name),
            get_password_hash(password, TEST_BCRYPT_ROUNDS),
            roles or (Role.CREATOR,),
        )

    return _create


def login(client: TestClient, username: str, password: str = DEFAULT_PASSWORD):
    return client.post(
        "/login",
        data={"username": username, "password": password},
        follow_redirects=False,
    )


@pytest.fixture
def logged_in(app: FastAPI, client: TestClient, create_account) -> Callable:
    """
    Factory returning a client with an active session for a new account.
    Each account gets its own client so session cookies do not mix.
    """

    def _logged_in(name: str, *roles: Role) -> TestClient:
        create_account(name, *roles)
        user_client = TestClient(app)
        response = login(user_client, name)
        assert response.status_code == 302, "Login should redirect on success."
        return user_client

    return _logged_in


def create_task(user_client: TestClient, name: str, **extra):
    body = {"name": name, "desc": "At dawn", "responsibilityOf": []}
    body.update(extra)
    return user_client.post("/create", json=body)


# Minimal valid file headers for each accepted format
JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 60
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 60
GIF_BYTES = b"GIF89a" + b"\x00" * 60
WEBP_BYTES = b"RIFF\x00\x00\x00\x00WEBPVP8 " + b"\x00" * 60
PDF_BYTES = b"%PDF-1.7\n" + b"\x00" * 60
