"""
Startup seeding of the canonical accounts.

Each account gets a fresh random password that is printed once to stdout
and never stored in plain text.
"""

import secrets
import string

from busybee.models import Role
from busybee.safety.values import Username
from busybee.storage.users import UserStore
from busybee.utils.auth import get_password_hash
from busybee.utils.logger import setup_logger

logger = setup_logger("services.bootstrap")

PASSWORD_LENGTH = 8
PASSWORD_ALPHABET = string.ascii_letters + string.digits

SEED_ACCOUNTS = (
    ("Yariv", (Role.CREATOR,)),
    ("Or", (Role.TRIAL,)),
    ("Dor", (Role.ADMIN,)),
)


def generate_password(length: int = PASSWORD_LENGTH) -> str:
    return "".join(secrets.choice(PASSWORD_ALPHABET) for _ in range(length))


def seed_users(users: UserStore, bcrypt_rounds: int | None = None) -> dict[str, str]:
    """Create missing seed accounts; returns ``{username: plain password}`` for the new ones."""
    created = {}
    for name, roles in SEED_ACCOUNTS:
        username = Username(name)
        if users.exists(username):
            logger.info(f"Seed account {name} already exists; skipping.")
            continue
        password = generate_password()
        users.create_user(username, get_password_hash(password, bcrypt_rounds), roles)
        print(f"User created: {name}")
        print(f"Password: {password}")
        created[name] = password
    return created
