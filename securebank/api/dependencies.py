"""
Request dependencies: the shared banking system and the caller context
"""

from typing import Optional

from fastapi import Header

from ..exceptions import PermissionDenied
from ..roles import CallerContext, UserRole
from ..system import BankingSystem


_banking_system: Optional[BankingSystem] = None


def get_banking_system() -> BankingSystem:
    """Lazily build the process-wide banking system from configuration"""
    global _banking_system
    if _banking_system is None:
        _banking_system = BankingSystem()
    return _banking_system


def _parse_caller(user_id: str, role: str) -> CallerContext:
    try:
        return CallerContext(user_id=int(user_id), role=UserRole(role.strip().capitalize()))
    except ValueError:
        raise PermissionDenied("Invalid caller identity headers")


def get_caller(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None)
) -> CallerContext:
    """Caller identity asserted by the authenticating front end"""
    if not x_user_id or not x_user_role:
        raise PermissionDenied("Missing X-User-Id / X-User-Role headers")
    return _parse_caller(x_user_id, x_user_role)


def get_optional_caller(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None)
) -> Optional[CallerContext]:
    """Caller identity, or None for anonymous self-service requests"""
    if not x_user_id and not x_user_role:
        return None
    if not x_user_id or not x_user_role:
        raise PermissionDenied("Both X-User-Id and X-User-Role headers are required")
    return _parse_caller(x_user_id, x_user_role)
