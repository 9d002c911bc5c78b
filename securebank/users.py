"""
User Module

Portal users with role-scoped numeric ids. Users are never deleted, only
deactivated; the id assigned at creation survives role changes.
"""

import hashlib
import hmac
import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional

from .allocator import IdentifierAllocator
from .audit import AuditTrail, AuditEventType
from .exceptions import ValidationError, PermissionDenied
from .logging_config import get_logger, log_action
from .roles import CallerContext, UserRole
from .storage import StorageInterface, StorageRecord


EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MIN_PASSWORD_LENGTH = 8


def normalize_email(email: str) -> str:
    """Trim and lower-case an email address, validating its shape"""
    normalized = (email or "").strip().lower()
    if not EMAIL_PATTERN.match(normalized) or len(normalized) > 254:
        raise ValidationError("Invalid email address.")
    return normalized


@dataclass
class User(StorageRecord):
    """Portal user"""
    role: UserRole
    first_name: str
    last_name: str
    email: str
    password_hash: str
    password_salt: str
    phone: Optional[str] = None
    is_active: bool = True

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


@dataclass
class NewUser:
    """Request to create a user"""
    first_name: str
    last_name: str
    email: str
    password: str
    role: UserRole = UserRole.CLIENT
    phone: Optional[str] = None


class UserManager:
    """Creates users with allocator-assigned ids and manages their lifecycle"""

    def __init__(
        self,
        storage: StorageInterface,
        allocator: IdentifierAllocator,
        audit_trail: AuditTrail
    ):
        self.storage = storage
        self.allocator = allocator
        self.audit_trail = audit_trail
        self.table_name = "users"
        self.logger = get_logger("securebank.users")

    def create_user(self, caller: Optional[CallerContext], request: NewUser) -> User:
        """
        Create a user

        Args:
            caller: Authenticated caller, or None for self-service signup
            request: New user details

        Returns:
            Created User

        Raises:
            PermissionDenied: Signup or non-admin caller creating Admin/Staff
            ValidationError: Missing names, bad email, short password or
                duplicate email
        """
        if request.role != UserRole.CLIENT:
            if caller is None:
                raise PermissionDenied("Self-service signup can only create Client users")
            caller.require([UserRole.ADMIN], f"create {request.role.value} users")
        elif caller is not None:
            caller.require([UserRole.ADMIN, UserRole.STAFF], "create users")

        first_name = (request.first_name or "").strip()
        last_name = (request.last_name or "").strip()
        if not first_name or not last_name:
            raise ValidationError("First and last name are required.")
        email = normalize_email(request.email)
        if len(request.password or "") < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")

        salt = secrets.token_hex(16)
        now = datetime.now(timezone.utc)

        with self.storage.atomic() as uow:
            uow.lock_key(f"email:{email}")
            if uow.find(self.table_name, {'email': email}):
                raise ValidationError("This email address is already registered.")

            user_id = self.allocator.allocate_user_id(uow, request.role)
            user = User(
                id=user_id,
                created_at=now,
                updated_at=now,
                role=request.role,
                first_name=first_name,
                last_name=last_name,
                email=email,
                password_hash=self._hash_password(request.password, salt),
                password_salt=salt,
                phone=(request.phone or "").strip() or None
            )
            uow.insert(self.table_name, str(user.id), self._user_to_dict(user))

        self.audit_trail.log_event(
            event_type=AuditEventType.USER_CREATED,
            entity_type="user",
            entity_id=str(user.id),
            metadata={"role": user.role.value, "email": user.email},
            user_id=caller.user_id if caller else user.id
        )
        log_action(self.logger, "info", f"Created {user.role.value} user {user.id}",
                   user_id=str(caller.user_id) if caller else None,
                   action="create_user", resource=f"user:{user.id}")
        return user

    def get_user(self, user_id: int) -> Optional[User]:
        data = self.storage.load(self.table_name, str(user_id))
        return self._user_from_dict(data) if data else None

    def get_user_by_email(self, email: str) -> Optional[User]:
        matches = self.storage.find(self.table_name, {'email': email.strip().lower()})
        return self._user_from_dict(matches[0]) if matches else None

    def list_users(self, role: Optional[UserRole] = None) -> List[User]:
        filters = {'role': role.value} if role else {}
        users = [self._user_from_dict(d) for d in self.storage.find(self.table_name, filters)]
        return sorted(users, key=lambda u: u.id)

    def change_role(self, caller: CallerContext, user_id: int, new_role: UserRole) -> User:
        """Change a user's role; the id stays the same"""
        caller.require([UserRole.ADMIN], "change user roles")

        with self.storage.atomic() as uow:
            data = uow.lock(self.table_name, str(user_id))
            if data is None:
                raise ValidationError(f"User {user_id} not found")
            user = self._user_from_dict(data)
            old_role = user.role
            user.role = new_role
            user.updated_at = datetime.now(timezone.utc)
            uow.save(self.table_name, str(user.id), self._user_to_dict(user))

        self.audit_trail.log_event(
            event_type=AuditEventType.USER_ROLE_CHANGED,
            entity_type="user",
            entity_id=str(user.id),
            metadata={"old_role": old_role.value, "new_role": new_role.value},
            user_id=caller.user_id
        )
        return user

    def deactivate_user(self, caller: CallerContext, user_id: int) -> User:
        caller.require([UserRole.ADMIN, UserRole.STAFF], "deactivate users")

        with self.storage.atomic() as uow:
            data = uow.lock(self.table_name, str(user_id))
            if data is None:
                raise ValidationError(f"User {user_id} not found")
            user = self._user_from_dict(data)
            user.is_active = False
            user.updated_at = datetime.now(timezone.utc)
            uow.save(self.table_name, str(user.id), self._user_to_dict(user))

        self.audit_trail.log_event(
            event_type=AuditEventType.USER_DEACTIVATED,
            entity_type="user",
            entity_id=str(user.id),
            metadata={},
            user_id=caller.user_id
        )
        return user

    def verify_password(self, user: User, password: str) -> bool:
        """Constant-time check of a password against the stored hash"""
        expected = self._hash_password(password, user.password_salt)
        return hmac.compare_digest(expected, user.password_hash)

    def _hash_password(self, password: str, salt: str) -> str:
        """Hash password with salt using scrypt"""
        return hashlib.scrypt(
            password.encode(),
            salt=salt.encode(),
            n=16384, r=8, p=1
        ).hex()

    def _user_to_dict(self, user: User) -> Dict:
        result = user.to_dict()
        result['role'] = user.role.value
        return result

    def _user_from_dict(self, data: Dict) -> User:
        data = dict(data)
        data['role'] = UserRole(data['role'])
        data['id'] = int(data['id'])
        return User.from_dict(data)
