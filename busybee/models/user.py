"""
User accounts and roles.

An account is keyed by its username, carries a bcrypt hash and a set of
roles. Accounts are never deleted; ``enabled=False`` locks one out.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict


class Role(str, Enum):
    ADMIN = "ADMIN"
    CREATOR = "CREATOR"
    TRIAL = "TRIAL"


class UserAccount(BaseModel):
    model_config = ConfigDict(frozen=True)

    username: str
    hashed_password: str
    roles: frozenset[Role]
    enabled: bool = True

    def has_role(self, *roles: Role) -> bool:
        return any(role in self.roles for role in roles)

    @property
    def is_admin(self) -> bool:
        return Role.ADMIN in self.roles

    def __repr__(self):
        return f"<UserAccount(username='{self.username}', roles={sorted(r.value for r in self.roles)})>"
