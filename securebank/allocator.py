"""
Identifier Allocator

Hands out 10-digit account numbers and role-scoped sequential user ids.
Both checks run inside the caller's unit of work under locks that stay
held until it commits or rolls back, so a value returned here cannot be
handed to a concurrent caller.
"""

import secrets
from typing import Optional

from .exceptions import AllocationConflict
from .logging_config import get_logger
from .roles import UserRole
from .storage import UnitOfWork


ROLE_ID_BASE = {
    UserRole.ADMIN: 1001,
    UserRole.STAFF: 2001,
    UserRole.CLIENT: 3001,
}

ACCOUNT_NUMBER_DIGITS = 10
MAX_ACCOUNT_NUMBER = 10 ** ACCOUNT_NUMBER_DIGITS - 1


class IdentifierAllocator:
    """Allocates account numbers and user ids inside a unit of work"""

    def __init__(
        self,
        max_attempts: int = 50,
        rng: Optional[secrets.SystemRandom] = None,
        accounts_table: str = "accounts",
        loans_table: str = "loans",
        users_table: str = "users"
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self._random = rng or secrets.SystemRandom()
        self.accounts_table = accounts_table
        self.loans_table = loans_table
        self.users_table = users_table
        self.logger = get_logger("securebank.allocator")

    def generate_account_number(self) -> str:
        """Random candidate, zero-padded to 10 digits (never all zeros)"""
        return f"{self._random.randint(1, MAX_ACCOUNT_NUMBER):0{ACCOUNT_NUMBER_DIGITS}d}"

    def is_account_number_taken(self, uow: UnitOfWork, number: str) -> bool:
        """Check both deposit accounts and loan accounts for the number"""
        if uow.find(self.accounts_table, {'account_number': number}):
            return True
        return bool(uow.find(self.loans_table, {'loan_account_number': number}))

    def allocate_account_number(self, uow: UnitOfWork) -> str:
        """
        Reserve a unique account number for the caller's unit of work

        Args:
            uow: Unit of work that will insert the row carrying the number

        Returns:
            10-digit numeric string

        Raises:
            AllocationConflict: If every attempted candidate was taken
            LockTimeout: If a candidate lock could not be acquired in time
        """
        for attempt in range(1, self.max_attempts + 1):
            candidate = self.generate_account_number()
            uow.lock_key(f"account_number:{candidate}")
            if not self.is_account_number_taken(uow, candidate):
                return candidate
            self.logger.debug(f"Account number collision on attempt {attempt}")

        raise AllocationConflict(
            f"No free account number found after {self.max_attempts} attempts"
        )

    def allocate_user_id(self, uow: UnitOfWork, role: UserRole) -> int:
        """
        Next id for a role: max(existing ids for role) + 1, floored at the
        role's base. The per-role lock serializes read-max with the insert.

        Raises:
            LockTimeout: If the role lock could not be acquired in time
        """
        uow.lock_key(f"user_id:{role.value}")

        base = ROLE_ID_BASE[role]
        ceiling = min((b for b in ROLE_ID_BASE.values() if b > base), default=None)
        existing = uow.find(self.users_table, {'role': role.value})
        # A user promoted from another role keeps an id outside this range
        in_range = [int(user['id']) for user in existing
                    if int(user['id']) >= base and (ceiling is None or int(user['id']) < ceiling)]
        candidate = max(max(in_range, default=0) + 1, base)

        # Users keep their id across role changes, so skip ids held elsewhere
        while True:
            uow.lock_key(f"user:{candidate}")
            if uow.load(self.users_table, str(candidate)) is None:
                return candidate
            candidate += 1
