"""
Loan endpoints
"""

from fastapi import APIRouter, Depends, HTTPException, status

from .dependencies import get_banking_system, get_caller
from .schemas import LoanApplicationBody
from ..amortization import quote_monthly_payment
from ..loans import Loan, LoanApplication
from ..roles import CallerContext
from ..system import BankingSystem


router = APIRouter()


def loan_payload(loan: Loan) -> dict:
    return {
        "id": loan.id,
        "user_id": loan.user_id,
        "loan_account_number": loan.loan_account_number,
        "amount": str(loan.amount),
        "term_months": loan.term_months,
        "annual_rate": str(loan.annual_rate),
        "monthly_payment": str(loan.monthly_payment),
        "status": loan.status.value,
        "application_date": loan.application_date.isoformat(),
        "approved_at": loan.approved_at.isoformat() if loan.approved_at else None,
        "rejected_at": loan.rejected_at.isoformat() if loan.rejected_at else None,
        "disbursement_account_id": loan.disbursement_account_id
    }


@router.post("", status_code=status.HTTP_201_CREATED)
def submit_loan(
    body: LoanApplicationBody,
    caller: CallerContext = Depends(get_caller),
    system: BankingSystem = Depends(get_banking_system)
):
    quote = system.loan_manager.submit_loan(caller, LoanApplication(
        user_id=body.user_id,
        amount=body.amount,
        term_months=body.term_months,
        annual_rate=body.annual_rate
    ))
    return {"loan_id": quote.loan_id, "monthly_payment": str(quote.monthly_payment)}


@router.get("/quote")
def quote(amount: str, annual_rate: str, term_months: int):
    """Monthly payment quote shown before an application is submitted"""
    return {"monthly_payment": str(quote_monthly_payment(amount, annual_rate, term_months))}


@router.get("/{loan_id}")
def get_loan(
    loan_id: int,
    caller: CallerContext = Depends(get_caller),
    system: BankingSystem = Depends(get_banking_system)
):
    loan = system.loan_manager.get_loan(loan_id)
    if loan is None or (caller.is_client and loan.user_id != caller.user_id):
        raise HTTPException(status_code=404, detail="Loan not found")
    return loan_payload(loan)


@router.post("/{loan_id}/approve")
def approve_loan(
    loan_id: int,
    caller: CallerContext = Depends(get_caller),
    system: BankingSystem = Depends(get_banking_system)
):
    approval = system.loan_manager.approve_loan(caller, loan_id)
    return {
        "loan_account_number": approval.loan_account_number,
        "monthly_payment": str(approval.monthly_payment),
        "disbursement_account_id": approval.disbursement_account_id,
        "transaction_id": approval.transaction_id
    }


@router.post("/{loan_id}/reject")
def reject_loan(
    loan_id: int,
    caller: CallerContext = Depends(get_caller),
    system: BankingSystem = Depends(get_banking_system)
):
    return loan_payload(system.loan_manager.reject_loan(caller, loan_id))
