"""Explicit caller credentials for privileged operations.

Every mutating call takes a Credential and checks it before touching state,
instead of relying on an ambient notion of "who is calling".
"""

import logging
from dataclasses import dataclass
from enum import Enum

from gaswise.errors import AuthorizationError

logger = logging.getLogger(__name__)


class Role(str, Enum):
    """Roles a caller can hold."""

    ADMIN = "admin"
    KEEPER = "keeper"
    BRIDGE = "bridge"
    USER = "user"


@dataclass(frozen=True)
class Credential:
    """An authenticated caller: a role plus the identity holding it."""

    role: Role
    subject: str

    @classmethod
    def admin(cls, subject: str = "admin") -> "Credential":
        return cls(Role.ADMIN, subject)

    @classmethod
    def keeper(cls, subject: str) -> "Credential":
        return cls(Role.KEEPER, subject)

    @classmethod
    def bridge(cls, subject: str) -> "Credential":
        return cls(Role.BRIDGE, subject)

    @classmethod
    def user(cls, address: str) -> "Credential":
        return cls(Role.USER, address.lower())

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


def require_admin(credential: Credential, operation: str) -> None:
    """Raise AuthorizationError unless the caller is an administrator."""
    if not credential.is_admin:
        _deny(credential, operation)


def require_role(credential: Credential, role: Role, subject: str, operation: str) -> None:
    """Require an exact role and identity (admins are not implied)."""
    if credential.role != role or credential.subject != subject:
        _deny(credential, operation)


def _deny(credential: Credential, operation: str) -> None:
    logger.warning(
        "Denied %s for %s:%s", operation, credential.role.value, credential.subject
    )
    raise AuthorizationError(
        f"{credential.role.value} '{credential.subject}' may not {operation}"
    )
