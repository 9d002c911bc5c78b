"""
Pydantic schemas for API requests

Amounts travel as decimal strings and are converted by the core.
"""

from typing import Optional
from pydantic import BaseModel, Field


class OpenAccountBody(BaseModel):
    user_id: int
    type_id: int
    initial_deposit: str = Field("0.00", description="Decimal amount as string")


class CreateAccountTypeBody(BaseModel):
    name: str
    interest_rate: str = "0"
    description: str = ""


class DepositBody(BaseModel):
    account_id: int
    amount: str = Field(..., description="Decimal amount as string")
    description: str = "Deposit"


class WithdrawBody(BaseModel):
    account_id: int
    amount: str = Field(..., description="Decimal amount as string")
    method: str = Field(..., description="Payout method, e.g. UPI or Bank Transfer")
    recipient_info: str = ""


class TransferBody(BaseModel):
    source_account_id: int
    recipient_account_number: str
    amount: str = Field(..., description="Decimal amount as string")
    description: str = ""


class LoanApplicationBody(BaseModel):
    user_id: int
    amount: str = Field(..., description="Decimal amount as string")
    term_months: int
    annual_rate: str = Field(..., description="Annual rate as a fraction, e.g. 0.05")


class CreateUserBody(BaseModel):
    first_name: str
    last_name: str
    email: str
    password: str
    role: str = "Client"
    phone: Optional[str] = None


class ChangeRoleBody(BaseModel):
    role: str
