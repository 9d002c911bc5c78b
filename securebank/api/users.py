"""
User endpoints
"""

from typing import Optional
from fastapi import APIRouter, Depends, status

from .dependencies import get_banking_system, get_caller, get_optional_caller
from .schemas import ChangeRoleBody, CreateUserBody
from ..exceptions import ValidationError
from ..roles import CallerContext, UserRole
from ..system import BankingSystem
from ..users import NewUser, User


router = APIRouter()


def parse_role(value: str) -> UserRole:
    try:
        return UserRole(value.strip().capitalize())
    except ValueError:
        raise ValidationError(f"Unknown role '{value}'")


def user_payload(user: User) -> dict:
    return {
        "id": user.id,
        "role": user.role.value,
        "email": user.email,
        "full_name": user.full_name,
        "is_active": user.is_active
    }


@router.post("", status_code=status.HTTP_201_CREATED)
def create_user(
    body: CreateUserBody,
    caller: Optional[CallerContext] = Depends(get_optional_caller),
    system: BankingSystem = Depends(get_banking_system)
):
    """Create a user; without caller headers this is client self-signup"""
    user = system.user_manager.create_user(caller, NewUser(
        first_name=body.first_name,
        last_name=body.last_name,
        email=body.email,
        password=body.password,
        role=parse_role(body.role),
        phone=body.phone
    ))
    return user_payload(user)


@router.post("/{user_id}/role")
def change_role(
    user_id: int,
    body: ChangeRoleBody,
    caller: CallerContext = Depends(get_caller),
    system: BankingSystem = Depends(get_banking_system)
):
    """Admin only; the user keeps their id"""
    return user_payload(system.user_manager.change_role(caller, user_id, parse_role(body.role)))


@router.post("/{user_id}/deactivate")
def deactivate_user(
    user_id: int,
    caller: CallerContext = Depends(get_caller),
    system: BankingSystem = Depends(get_banking_system)
):
    return user_payload(system.user_manager.deactivate_user(caller, user_id))
