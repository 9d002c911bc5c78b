"""
Loan Module

Loan applications, approval with disbursement into the borrower's first
active account, and rejection. A loan leaves Pending at most once.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from enum import Enum

from .allocator import IdentifierAllocator
from .amortization import monthly_payment
from .audit import AuditTrail, AuditEventType
from .exceptions import BankingError, LoanNotPending, NoReceivingAccount, PermissionDenied, ValidationError
from .ledger import LedgerStore, TransactionType
from .logging_config import get_logger, log_action
from .money import AmountLike, to_amount, to_rate
from .roles import CallerContext, UserRole
from .storage import StorageInterface, StorageRecord


MIN_LOAN_AMOUNT = Decimal('100.00')
MAX_TERM_MONTHS = 360


class LoanStatus(Enum):
    """Loan lifecycle states; Active and Rejected are terminal"""
    PENDING = "Pending"
    ACTIVE = "Active"
    REJECTED = "Rejected"


@dataclass
class Loan(StorageRecord):
    """
    Loan application and, once approved, the loan account

    ``loan_account_number`` holds a PENDING-<user>-<timestamp> placeholder
    until approval allocates a real 10-digit number.
    """
    user_id: int
    loan_account_number: str
    amount: Decimal
    term_months: int
    annual_rate: Decimal  # fraction, e.g. 0.05 for 5%
    monthly_payment: Decimal
    status: LoanStatus = LoanStatus.PENDING
    approved_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    disbursement_account_id: Optional[int] = None

    @property
    def application_date(self) -> datetime:
        return self.created_at

    @property
    def is_pending(self) -> bool:
        return self.status == LoanStatus.PENDING

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result['status'] = self.status.value
        result['approved_at'] = self.approved_at.isoformat() if self.approved_at else None
        result['rejected_at'] = self.rejected_at.isoformat() if self.rejected_at else None
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Loan':
        data = dict(data)
        data['id'] = int(data['id'])
        data['user_id'] = int(data['user_id'])
        data['amount'] = Decimal(str(data['amount']))
        data['annual_rate'] = Decimal(str(data['annual_rate']))
        data['monthly_payment'] = Decimal(str(data['monthly_payment']))
        data['status'] = LoanStatus(data['status'])
        for key in ('approved_at', 'rejected_at'):
            if data.get(key):
                data[key] = datetime.fromisoformat(data[key])
        if data.get('disbursement_account_id') is not None:
            data['disbursement_account_id'] = int(data['disbursement_account_id'])
        return super().from_dict(data)


@dataclass(frozen=True)
class LoanApplication:
    user_id: int
    amount: AmountLike
    term_months: int
    annual_rate: AmountLike


@dataclass(frozen=True)
class LoanQuote:
    loan_id: int
    monthly_payment: Decimal


@dataclass(frozen=True)
class LoanApproval:
    loan_account_number: str
    monthly_payment: Decimal
    disbursement_account_id: int
    transaction_id: int


class LoanManager:
    """
    Submits, approves and rejects loans
    """

    def __init__(
        self,
        storage: StorageInterface,
        ledger: LedgerStore,
        allocator: IdentifierAllocator,
        audit_trail: AuditTrail
    ):
        self.storage = storage
        self.ledger = ledger
        self.allocator = allocator
        self.audit_trail = audit_trail
        self.loans_table = "loans"
        self.users_table = "users"
        self.logger = get_logger("securebank.loans")

    def submit_loan(self, caller: CallerContext, application: LoanApplication) -> LoanQuote:
        """
        Record a Pending loan application with its quoted monthly payment

        Raises:
            PermissionDenied: Client applying on someone else's behalf
            ValidationError: Amount not above 100.00, term outside 1..360
                months, negative rate, or borrower not an active Client
        """
        if caller.is_client and caller.user_id != int(application.user_id):
            raise PermissionDenied("Clients may only apply for loans for themselves")

        amount = to_amount(application.amount)
        if amount <= MIN_LOAN_AMOUNT:
            raise ValidationError(f"Loan amount must be greater than {MIN_LOAN_AMOUNT}")
        if not 1 <= application.term_months <= MAX_TERM_MONTHS:
            raise ValidationError(f"Loan term must be between 1 and {MAX_TERM_MONTHS} months")
        annual_rate = to_rate(application.annual_rate)

        payment = monthly_payment(amount, annual_rate, application.term_months)
        now = datetime.now(timezone.utc)

        with self.storage.atomic() as uow:
            user = uow.load(self.users_table, str(application.user_id))
            if user is None or not user.get('is_active', True) or user['role'] != UserRole.CLIENT.value:
                raise ValidationError(f"User {application.user_id} is not an active client")

            loan = Loan(
                id=uow.next_id(self.loans_table),
                created_at=now,
                updated_at=now,
                user_id=int(application.user_id),
                loan_account_number=f"PENDING-{application.user_id}-{int(now.timestamp())}",
                amount=amount,
                term_months=application.term_months,
                annual_rate=annual_rate,
                monthly_payment=payment
            )
            uow.insert(self.loans_table, str(loan.id), loan.to_dict())

        self.audit_trail.log_event(
            event_type=AuditEventType.LOAN_SUBMITTED,
            entity_type="loan",
            entity_id=str(loan.id),
            metadata={"amount": amount, "term_months": loan.term_months, "annual_rate": annual_rate},
            user_id=caller.user_id
        )
        log_action(self.logger, "info", f"Loan {loan.id} submitted for {amount}",
                   user_id=str(caller.user_id), action="submit_loan", resource=f"loan:{loan.id}")
        return LoanQuote(loan_id=loan.id, monthly_payment=payment)

    def approve_loan(self, caller: CallerContext, loan_id: int) -> LoanApproval:
        """
        Approve a Pending loan and disburse the principal

        The loan row is locked for the whole unit of work, so concurrent
        approvals serialize and only the first one disburses.

        Raises:
            PermissionDenied: Caller is not Staff or Admin
            LoanNotPending: Loan unknown or already decided
            NoReceivingAccount: Borrower has no active account; the loan
                stays Pending
        """
        caller.require([UserRole.ADMIN, UserRole.STAFF], "approve loans")

        try:
            with self.storage.atomic() as uow:
                data = uow.lock(self.loans_table, str(loan_id))
                if data is None:
                    raise LoanNotPending(f"Loan {loan_id} not found")
                loan = Loan.from_dict(data)
                if not loan.is_pending:
                    raise LoanNotPending(f"Loan {loan_id} is already {loan.status.value}")

                payment = monthly_payment(loan.amount, loan.annual_rate, loan.term_months)
                loan_number = self.allocator.allocate_account_number(uow)

                receiving = None
                candidates = uow.find(self.ledger.accounts_table, {'user_id': loan.user_id})
                for account_id in sorted(int(c['id']) for c in candidates):
                    snapshot = self.ledger.lock_account(uow, account_id)
                    if snapshot.is_active:
                        receiving = snapshot
                        break
                if receiving is None:
                    raise NoReceivingAccount(
                        f"No active account found for user {loan.user_id} to disburse loan {loan_id}"
                    )

                self.ledger.apply_delta(uow, receiving.id, loan.amount)
                transaction = self.ledger.append_transaction(
                    uow, receiving.id, TransactionType.LOAN_DISBURSEMENT, loan.amount,
                    f"Loan disbursement (Loan ID: {loan.id}, Account: {loan_number})",
                    reference=str(loan.id)
                )

                now = datetime.now(timezone.utc)
                loan.status = LoanStatus.ACTIVE
                loan.loan_account_number = loan_number
                loan.monthly_payment = payment
                loan.approved_at = now
                loan.updated_at = now
                loan.disbursement_account_id = receiving.id
                uow.save(self.loans_table, str(loan.id), loan.to_dict())
        except BankingError as e:
            log_action(self.logger, "warning", f"Loan {loan_id} approval rejected: {e.message}",
                       user_id=str(caller.user_id), action="approve_loan",
                       resource=f"loan:{loan_id}", extra={"error": e.code})
            raise

        self.audit_trail.log_event(
            event_type=AuditEventType.LOAN_APPROVED,
            entity_type="loan",
            entity_id=str(loan.id),
            metadata={
                "loan_account_number": loan_number,
                "monthly_payment": payment,
                "disbursement_account_id": receiving.id,
                "transaction_id": transaction.id
            },
            user_id=caller.user_id
        )
        log_action(self.logger, "info", f"Loan {loan.id} approved and disbursed to account {receiving.account_number}",
                   user_id=str(caller.user_id), action="approve_loan", resource=f"loan:{loan.id}")
        return LoanApproval(
            loan_account_number=loan_number,
            monthly_payment=payment,
            disbursement_account_id=receiving.id,
            transaction_id=transaction.id
        )

    def reject_loan(self, caller: CallerContext, loan_id: int) -> Loan:
        """Reject a Pending loan"""
        caller.require([UserRole.ADMIN, UserRole.STAFF], "reject loans")

        with self.storage.atomic() as uow:
            data = uow.lock(self.loans_table, str(loan_id))
            if data is None:
                raise LoanNotPending(f"Loan {loan_id} not found")
            loan = Loan.from_dict(data)
            if not loan.is_pending:
                raise LoanNotPending(f"Loan {loan_id} is already {loan.status.value}")

            now = datetime.now(timezone.utc)
            loan.status = LoanStatus.REJECTED
            loan.rejected_at = now
            loan.updated_at = now
            uow.save(self.loans_table, str(loan.id), loan.to_dict())

        self.audit_trail.log_event(
            event_type=AuditEventType.LOAN_REJECTED,
            entity_type="loan",
            entity_id=str(loan.id),
            metadata={"amount": loan.amount},
            user_id=caller.user_id
        )
        return loan

    def get_loan(self, loan_id: int) -> Optional[Loan]:
        data = self.storage.load(self.loans_table, str(loan_id))
        return Loan.from_dict(data) if data else None

    def list_loans(
        self,
        status: Optional[LoanStatus] = None,
        user_id: Optional[int] = None
    ) -> List[Loan]:
        """Loans filtered by status and/or borrower, oldest first"""
        filters: Dict[str, Any] = {}
        if status is not None:
            filters['status'] = status.value
        if user_id is not None:
            filters['user_id'] = int(user_id)
        loans = [Loan.from_dict(d) for d in self.storage.find(self.loans_table, filters)]
        return sorted(loans, key=lambda loan: loan.id)
