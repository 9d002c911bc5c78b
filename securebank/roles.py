"""
Roles and Caller Context

The authorization layer in front of the ledger core authenticates the
caller and hands over who they are; the core never reads session state.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from .exceptions import PermissionDenied


class UserRole(Enum):
    """Portal roles"""
    ADMIN = "Admin"
    STAFF = "Staff"
    CLIENT = "Client"


@dataclass(frozen=True)
class CallerContext:
    """Authenticated caller identity supplied with every core operation"""
    user_id: int
    role: UserRole

    @property
    def is_client(self) -> bool:
        return self.role == UserRole.CLIENT

    def require(self, roles: Iterable[UserRole], action: str) -> None:
        """Raise PermissionDenied unless the caller holds one of roles"""
        allowed = tuple(roles)
        if self.role not in allowed:
            names = ", ".join(r.value for r in allowed)
            raise PermissionDenied(f"{self.role.value} may not {action}; requires {names}")
