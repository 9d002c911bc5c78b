"""
Money movement endpoints
"""

from fastapi import APIRouter, Depends, status

from .dependencies import get_banking_system, get_caller
from .schemas import DepositBody, WithdrawBody, TransferBody
from ..roles import CallerContext
from ..system import BankingSystem
from ..transactions import DepositRequest, WithdrawalRequest, TransferRequest


router = APIRouter()


@router.post("/deposit", status_code=status.HTTP_201_CREATED)
def deposit(
    body: DepositBody,
    caller: CallerContext = Depends(get_caller),
    system: BankingSystem = Depends(get_banking_system)
):
    result = system.engine.deposit(caller, DepositRequest(
        account_id=body.account_id,
        amount=body.amount,
        description=body.description
    ))
    return {"transaction_id": result.transaction_id, "new_balance": str(result.new_balance)}


@router.post("/withdraw", status_code=status.HTTP_201_CREATED)
def withdraw(
    body: WithdrawBody,
    caller: CallerContext = Depends(get_caller),
    system: BankingSystem = Depends(get_banking_system)
):
    result = system.engine.withdraw(caller, WithdrawalRequest(
        account_id=body.account_id,
        amount=body.amount,
        method=body.method,
        recipient_info=body.recipient_info
    ))
    return {
        "transaction_id": result.transaction_id,
        "new_balance": str(result.new_balance),
        "status": result.status.value
    }


@router.post("/transfer", status_code=status.HTTP_201_CREATED)
def transfer(
    body: TransferBody,
    caller: CallerContext = Depends(get_caller),
    system: BankingSystem = Depends(get_banking_system)
):
    """Internal transfer; the fee is added to the source debit"""
    result = system.engine.transfer(caller, TransferRequest(
        source_account_id=body.source_account_id,
        recipient_account_number=body.recipient_account_number,
        amount=body.amount,
        description=body.description
    ))
    return {
        "debit_transaction_id": result.debit_transaction_id,
        "credit_transaction_id": result.credit_transaction_id,
        "new_source_balance": str(result.new_source_balance),
        "fee_charged": str(result.fee_charged)
    }
