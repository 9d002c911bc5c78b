"""
Account endpoints
"""

from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, status

from .dependencies import get_banking_system, get_caller
from .schemas import OpenAccountBody, CreateAccountTypeBody
from ..accounts import Account
from ..roles import CallerContext
from ..system import BankingSystem
from ..transactions import OpenAccountRequest


router = APIRouter()


def account_payload(account: Account) -> dict:
    return {
        "id": account.id,
        "user_id": account.user_id,
        "account_number": account.account_number,
        "type_id": account.type_id,
        "balance": str(account.balance),
        "opened_date": account.opened_date.isoformat(),
        "is_active": account.is_active
    }


@router.post("", status_code=status.HTTP_201_CREATED)
def open_account(
    body: OpenAccountBody,
    caller: CallerContext = Depends(get_caller),
    system: BankingSystem = Depends(get_banking_system)
):
    """Open an account, optionally with an initial deposit"""
    result = system.engine.open_account(caller, OpenAccountRequest(
        user_id=body.user_id,
        type_id=body.type_id,
        initial_deposit=body.initial_deposit
    ))
    return {
        "account_id": result.account_id,
        "account_number": result.account_number,
        "balance": str(result.balance)
    }


@router.get("/types")
def list_account_types(system: BankingSystem = Depends(get_banking_system)):
    return {"account_types": [
        {"id": t.id, "name": t.name, "interest_rate": str(t.interest_rate), "description": t.description}
        for t in system.account_manager.list_account_types()
    ]}


@router.post("/types", status_code=status.HTTP_201_CREATED)
def create_account_type(
    body: CreateAccountTypeBody,
    caller: CallerContext = Depends(get_caller),
    system: BankingSystem = Depends(get_banking_system)
):
    account_type = system.account_manager.create_account_type(
        caller, body.name, body.interest_rate, body.description
    )
    return {"id": account_type.id, "name": account_type.name}


@router.delete("/types/{type_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_account_type(
    type_id: int,
    caller: CallerContext = Depends(get_caller),
    system: BankingSystem = Depends(get_banking_system)
):
    """Admin only; refused while any account uses the type"""
    system.account_manager.delete_account_type(caller, type_id)


@router.get("/{account_id}")
def get_account(
    account_id: int,
    caller: CallerContext = Depends(get_caller),
    system: BankingSystem = Depends(get_banking_system)
):
    """Get account details"""
    return account_payload(system.engine.get_account_for(caller, account_id))


@router.post("/{account_id}/deactivate")
def deactivate_account(
    account_id: int,
    caller: CallerContext = Depends(get_caller),
    system: BankingSystem = Depends(get_banking_system)
):
    return account_payload(system.account_manager.deactivate_account(caller, account_id))


@router.get("/{account_id}/statement")
def get_statement(
    account_id: int,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    caller: CallerContext = Depends(get_caller),
    system: BankingSystem = Depends(get_banking_system)
):
    """Statement with opening and closing balance for a period"""
    system.engine.get_account_for(caller, account_id)
    statement = system.reporting_engine.account_statement(account_id, start, end)
    return {
        "account_id": statement.account_id,
        "account_number": statement.account_number,
        "opening_balance": str(statement.opening_balance),
        "closing_balance": str(statement.closing_balance),
        "total_debits": str(statement.total_debits),
        "total_credits": str(statement.total_credits),
        "lines": [
            {
                "transaction_id": line.transaction_id,
                "timestamp": line.timestamp.isoformat(),
                "type": line.transaction_type.value,
                "description": line.description,
                "debit": str(line.debit),
                "credit": str(line.credit),
                "balance": str(line.balance),
                "status": line.status,
                "counterparty_account_number": line.counterparty_account_number
            }
            for line in statement.lines
        ]
    }
