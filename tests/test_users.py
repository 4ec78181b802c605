"""
User store, password hashing, session tokens and startup seeding.
"""

import time
from datetime import timedelta

import pytest

from busybee.config import Settings
from busybee.errors import ValidationError
from busybee.models import Role
from busybee.safety.values import Username
from busybee.services.bootstrap import SEED_ACCOUNTS, generate_password, seed_users
from busybee.storage.users import UserStore
from busybee.utils.auth import (
    TokenRevocationList,
    create_access_token,
    decode_access_token,
    get_password_hash,
    verify_password,
)

ROUNDS = 4


@pytest.fixture
def users() -> UserStore:
    return UserStore()


@pytest.fixture
def token_settings() -> Settings:
    return Settings(_env_file=None, SECRET_KEY="unit-test-key", BUSYBEE_SEED_USERS=False)


def test_create_and_find_user(users):
    account = users.create_user(Username("Ann"), "hash", [Role.TRIAL])

    assert users.find_by_username("Ann") == account
    assert users.find_by_username(Username("Ann")) == account
    assert account.roles == frozenset({Role.TRIAL})
    assert account.enabled
    assert users.exists("Ann")
    assert not users.exists("ann")
    assert len(users) == 1


def test_duplicate_username_is_rejected(users):
    users.create_user(Username("Ann"), "hash", [Role.TRIAL])
    with pytest.raises(ValidationError) as exc_info:
        users.create_user(Username(" Ann "), "other", [Role.ADMIN])
    assert exc_info.value.code == "username: already exists"
    assert users.find_by_username("Ann").roles == frozenset({Role.TRIAL})


def test_disable_user(users):
    users.create_user(Username("Ann"), "hash", [Role.CREATOR])
    account = users.set_enabled(Username("Ann"), False)
    assert not account.enabled
    assert not users.find_by_username("Ann").enabled

    with pytest.raises(ValidationError):
        users.set_enabled(Username("Nobody"), False)


def test_roles():
    users = UserStore()
    admin = users.create_user(Username("Dor"), "hash", [Role.ADMIN])
    trial = users.create_user(Username("Or"), "hash", [Role.TRIAL])

    assert admin.is_admin
    assert not trial.is_admin
    assert trial.has_role(Role.CREATOR, Role.TRIAL)
    assert not trial.has_role(Role.ADMIN, Role.CREATOR)


def test_password_hash_round_trip():
    hashed = get_password_hash("hunter2A!", ROUNDS)
    assert hashed != "hunter2A!"
    assert verify_password("hunter2A!", hashed)
    assert not verify_password("hunter2A?", hashed)


def test_verify_against_malformed_hash_is_false():
    assert not verify_password("hunter2A!", "not-a-bcrypt-hash")


def test_access_token_round_trip(token_settings):
    token = create_access_token("Ann", settings=token_settings)
    payload = decode_access_token(token, token_settings)

    assert payload["sub"] == "Ann"
    assert payload["jti"]
    assert payload["exp"] > time.time()


def test_tokens_have_distinct_ids(token_settings):
    first = decode_access_token(create_access_token("Ann", settings=token_settings), token_settings)
    second = decode_access_token(create_access_token("Ann", settings=token_settings), token_settings)
    assert first["jti"] != second["jti"]


def test_expired_or_foreign_tokens_are_refused(token_settings):
    expired = create_access_token("Ann", timedelta(seconds=-10), token_settings)
    assert decode_access_token(expired, token_settings) is None

    other = Settings(_env_file=None, SECRET_KEY="someone-else", BUSYBEE_SEED_USERS=False)
    foreign = create_access_token("Ann", settings=other)
    assert decode_access_token(foreign, token_settings) is None

    assert decode_access_token("garbage", token_settings) is None


def test_revocation_list():
    revoked = TokenRevocationList()
    revoked.revoke("live", time.time() + 60)
    revoked.revoke("stale", time.time() - 1)

    assert revoked.is_revoked("live")
    assert not revoked.is_revoked("stale")
    assert not revoked.is_revoked("unknown")


def test_generate_password():
    password = generate_password()
    assert len(password) == 8
    assert password.isalnum()


def test_seed_users_creates_canonical_accounts(users, capsys):
    created = seed_users(users, ROUNDS)

    assert set(created) == {"Yariv", "Or", "Dor"}
    assert users.find_by_username("Yariv").roles == frozenset({Role.CREATOR})
    assert users.find_by_username("Or").roles == frozenset({Role.TRIAL})
    assert users.find_by_username("Dor").roles == frozenset({Role.ADMIN})
    for name, password in created.items():
        assert verify_password(password, users.find_by_username(name).hashed_password)

    output = capsys.readouterr().out
    assert "User created: Yariv" in output
    assert f"Password: {created['Dor']}" in output


def test_seed_users_skips_existing_accounts(users):
    users.create_user(Username("Dor"), "hash", [Role.CREATOR])
    created = seed_users(users, ROUNDS)

    assert set(created) == {name for name, _ in SEED_ACCOUNTS} - {"Dor"}
    assert users.find_by_username("Dor").hashed_password == "hash"
