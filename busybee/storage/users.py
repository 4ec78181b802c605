"""
Username to account map.

create_user is compare-and-insert under the store lock, so two racing
registrations for the same name cannot both succeed.
"""

import threading
from collections.abc import Iterable

from busybee.errors import ValidationError
from busybee.models import Role, UserAccount
from busybee.safety.values import Username
from busybee.utils.logger import safe_log_value, setup_logger

logger = setup_logger("storage.users")


class UserStore:
    def __init__(self):
        self._lock = threading.Lock()
        self._users: dict[str, UserAccount] = {}

    def find_by_username(self, username: Username | str) -> UserAccount | None:
        key = username.value() if isinstance(username, Username) else username
        with self._lock:
            return self._users.get(key)

    def exists(self, username: Username | str) -> bool:
        return self.find_by_username(username) is not None

    def create_user(
        self, username: Username, hashed_password: str, roles: Iterable[Role]
    ) -> UserAccount:
        account = UserAccount(
            username=username.value(),
            hashed_password=hashed_password,
            roles=frozenset(roles),
        )
        with self._lock:
            if account.username in self._users:
                raise ValidationError("username", "already exists")
            self._users[account.username] = account
        logger.info(
            f"User created: user={safe_log_value(account.username)} "
            f"roles={sorted(r.value for r in account.roles)}"
        )
        return account

    def set_enabled(self, username: Username, enabled: bool) -> UserAccount:
        with self._lock:
            account = self._users.get(username.value())
            if account is None:
                raise ValidationError("username", "user does not exist")
            updated = account.model_copy(update={"enabled": enabled})
            self._users[account.username] = updated
        return updated

    def __len__(self) -> int:
        with self._lock:
            return len(self._users)
