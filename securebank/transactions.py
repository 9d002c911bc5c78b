"""
Money-Movement Engine

Deposits, withdrawals, internal transfers and account opening. Each
operation is one linear sequence of guarded steps inside a single unit of
work: it either commits every balance change and ledger row it made, or
raises and leaves nothing behind.
"""

from contextlib import contextmanager
from decimal import Decimal, ROUND_HALF_UP
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Dict, Iterator, Optional

from .accounts import Account, AccountType
from .allocator import IdentifierAllocator
from .audit import AuditTrail, AuditEventType
from .config import BankSettings
from .exceptions import (
    BankingError, InvalidAccount, InsufficientFunds, PermissionDenied,
    StoreUnavailable, ValidationError
)
from .ledger import (
    AccountSnapshot, LedgerStore, TransactionStatus, TransactionType,
    BANK_FEE_COUNTERPARTY
)
from .logging_config import get_logger, log_action
from .money import CENT, ZERO, AmountLike, require_positive, to_amount
from .roles import CallerContext, UserRole
from .storage import StorageInterface, UnitOfWork


@dataclass(frozen=True)
class DepositRequest:
    account_id: int
    amount: AmountLike
    description: str = "Deposit"


@dataclass(frozen=True)
class DepositResult:
    new_balance: Decimal
    transaction_id: int


@dataclass(frozen=True)
class WithdrawalRequest:
    account_id: int
    amount: AmountLike
    method: str
    recipient_info: str


@dataclass(frozen=True)
class WithdrawalResult:
    new_balance: Decimal
    transaction_id: int
    status: TransactionStatus = TransactionStatus.PENDING_DISPATCH


@dataclass(frozen=True)
class TransferRequest:
    source_account_id: int
    recipient_account_number: str
    amount: AmountLike
    description: str = ""


@dataclass(frozen=True)
class TransferResult:
    new_source_balance: Decimal
    fee_charged: Decimal
    debit_transaction_id: int
    credit_transaction_id: int


@dataclass(frozen=True)
class OpenAccountRequest:
    user_id: int
    type_id: int
    initial_deposit: AmountLike = ZERO


@dataclass(frozen=True)
class OpenAccountResult:
    account_id: int
    account_number: str
    balance: Decimal = ZERO


def calculate_transfer_fee(amount: Decimal, fee_rate: Decimal) -> Decimal:
    """Fee on a transfer, rounded half-up to cents"""
    return (amount * fee_rate).quantize(CENT, rounding=ROUND_HALF_UP)


class MoneyMovementEngine:
    """
    Runs balance-changing operations against the ledger store

    Two-account operations lock rows in ascending account id order so that
    opposing transfers cannot deadlock.
    """

    def __init__(
        self,
        storage: StorageInterface,
        ledger: LedgerStore,
        allocator: IdentifierAllocator,
        audit_trail: AuditTrail,
        settings: Optional[BankSettings] = None
    ):
        self.storage = storage
        self.ledger = ledger
        self.allocator = allocator
        self.audit_trail = audit_trail
        self.settings = settings or BankSettings()
        self.users_table = "users"
        self.types_table = "account_types"
        self.logger = get_logger("securebank.transactions")

    @contextmanager
    def _recording_failures(self, operation: str, caller: CallerContext, resource: str) -> Iterator[None]:
        """Log and audit a rejected operation, then let the error propagate"""
        try:
            yield
        except BankingError as e:
            level = "error" if isinstance(e, StoreUnavailable) else "warning"
            log_action(self.logger, level, f"{operation} rejected: {e.message}",
                       user_id=str(caller.user_id), action=operation, resource=resource,
                       extra={"error": e.code, "retryable": e.retryable})
            self.audit_trail.log_event(
                event_type=AuditEventType.TRANSACTION_FAILED,
                entity_type="operation",
                entity_id=resource,
                metadata={"operation": operation, "error": e.code, "message": e.message},
                user_id=caller.user_id
            )
            raise

    def _lock_usable_account(
        self,
        uow: UnitOfWork,
        caller: CallerContext,
        account_id: int
    ) -> AccountSnapshot:
        """Lock an account the caller may operate on; it must be active"""
        snapshot = self.ledger.lock_account(uow, account_id)
        if caller.is_client and snapshot.user_id != caller.user_id:
            # Indistinguishable from an unknown account for clients
            raise InvalidAccount(f"Account {account_id} not found")
        if not snapshot.is_active:
            raise InvalidAccount(f"Account {snapshot.account_number} is not active")
        return snapshot

    def deposit(
        self,
        caller: CallerContext,
        request: DepositRequest,
        settings: Optional[BankSettings] = None
    ) -> DepositResult:
        """
        Credit an account

        Raises:
            ValidationError: Non-positive amount or below the minimum deposit
            InvalidAccount: Unknown, inactive or foreign account
        """
        settings = settings or self.settings
        resource = f"account:{request.account_id}"

        with self._recording_failures("deposit", caller, resource):
            amount = require_positive(request.amount)
            if settings.min_deposit_amount > ZERO and amount < settings.min_deposit_amount:
                raise ValidationError(
                    f"Minimum deposit amount is {settings.min_deposit_amount}"
                )

            with self.storage.atomic() as uow:
                self._lock_usable_account(uow, caller, request.account_id)
                new_balance = self.ledger.apply_delta(uow, request.account_id, amount)
                transaction = self.ledger.append_transaction(
                    uow, request.account_id, TransactionType.DEPOSIT, amount,
                    request.description or "Deposit"
                )

        self.audit_trail.log_event(
            event_type=AuditEventType.DEPOSIT_POSTED,
            entity_type="account",
            entity_id=str(request.account_id),
            metadata={"amount": amount, "transaction_id": transaction.id, "new_balance": new_balance},
            user_id=caller.user_id
        )
        log_action(self.logger, "info", f"Deposit of {amount} posted",
                   user_id=str(caller.user_id), action="deposit", resource=resource)
        return DepositResult(new_balance=new_balance, transaction_id=transaction.id)

    def withdraw(self, caller: CallerContext, request: WithdrawalRequest) -> WithdrawalResult:
        """
        Debit an account for an external withdrawal; the row stays
        Pending Dispatch until paid out by the external process

        Raises:
            ValidationError: Non-positive amount or missing method
            InvalidAccount: Unknown, inactive or foreign account
            InsufficientFunds: Balance below the requested amount
        """
        resource = f"account:{request.account_id}"

        with self._recording_failures("withdraw", caller, resource):
            amount = require_positive(request.amount)
            method = (request.method or "").strip()
            if not method:
                raise ValidationError("Withdrawal method is required")
            recipient_info = (request.recipient_info or "").strip()

            with self.storage.atomic() as uow:
                snapshot = self._lock_usable_account(uow, caller, request.account_id)
                if snapshot.balance < amount:
                    raise InsufficientFunds(
                        f"Insufficient balance: available {snapshot.balance}, requested {amount}"
                    )
                new_balance = self.ledger.apply_delta(uow, snapshot.id, -amount)
                transaction = self.ledger.append_transaction(
                    uow, snapshot.id, TransactionType.WITHDRAWAL, amount,
                    f"Withdrawal request via {method}. Recipient: {recipient_info}",
                    status=TransactionStatus.PENDING_DISPATCH
                )

        self.audit_trail.log_event(
            event_type=AuditEventType.WITHDRAWAL_POSTED,
            entity_type="account",
            entity_id=str(request.account_id),
            metadata={"amount": amount, "method": method, "transaction_id": transaction.id},
            user_id=caller.user_id
        )
        log_action(self.logger, "info", f"Withdrawal of {amount} via {method} pending dispatch",
                   user_id=str(caller.user_id), action="withdraw", resource=resource)
        return WithdrawalResult(new_balance=new_balance, transaction_id=transaction.id)

    def transfer(
        self,
        caller: CallerContext,
        request: TransferRequest,
        settings: Optional[BankSettings] = None
    ) -> TransferResult:
        """
        Move money from a source account to a recipient account number

        The source pays amount + fee; the recipient receives exactly amount.
        The fee leaves the ledger (no bank revenue account is credited).

        Raises:
            ValidationError: Non-positive amount or daily cap exceeded
            InvalidAccount: Unknown/inactive source or recipient, or recipient
                is the source itself
            InsufficientFunds: Source balance below amount + fee
        """
        settings = settings or self.settings
        resource = f"account:{request.source_account_id}"

        with self._recording_failures("transfer", caller, resource):
            amount = require_positive(request.amount)
            recipient_number = (request.recipient_account_number or "").strip()

            with self.storage.atomic() as uow:
                matches = uow.find(self.ledger.accounts_table, {'account_number': recipient_number})
                if not matches:
                    raise InvalidAccount("Recipient account not found or is inactive.")
                recipient_id = int(matches[0]['id'])
                source_id = int(request.source_account_id)
                if recipient_id == source_id:
                    raise InvalidAccount("Cannot transfer funds to the same account.")

                snapshots: Dict[int, AccountSnapshot] = {}
                for account_id in sorted((source_id, recipient_id)):
                    if account_id == source_id:
                        snapshots[account_id] = self._lock_usable_account(uow, caller, account_id)
                    else:
                        snapshots[account_id] = self.ledger.lock_account(uow, account_id)

                source = snapshots[source_id]
                recipient = snapshots[recipient_id]
                if not recipient.is_active:
                    raise InvalidAccount("Recipient account not found or is inactive.")

                fee = calculate_transfer_fee(amount, settings.transfer_fee_rate)
                total = amount + fee

                if settings.max_transfer_daily > ZERO:
                    sent_today = self._transferred_today(uow, source_id)
                    if sent_today + amount > settings.max_transfer_daily:
                        raise ValidationError(
                            f"Daily transfer limit of {settings.max_transfer_daily} exceeded "
                            f"(already sent {sent_today} today)"
                        )

                if source.balance < total:
                    raise InsufficientFunds(
                        f"Insufficient balance: available {source.balance}, "
                        f"required {total} (amount {amount} + fee {fee})"
                    )

                new_source_balance = self.ledger.apply_delta(uow, source_id, -total)
                self.ledger.apply_delta(uow, recipient_id, amount)

                description = request.description.strip() if request.description else ""
                debit = self.ledger.append_transaction(
                    uow, source_id, TransactionType.TRANSFER_DEBIT, total,
                    description or f"Transfer to {recipient.account_number}",
                    counterparty_account_number=recipient.account_number
                )
                credit = self.ledger.append_transaction(
                    uow, recipient_id, TransactionType.TRANSFER_CREDIT, amount,
                    description or f"Transfer from {source.account_number}",
                    counterparty_account_number=source.account_number
                )
                if fee > ZERO:
                    self.ledger.append_transaction(
                        uow, source_id, TransactionType.FEE, fee,
                        f"Transfer fee for transaction {debit.id}",
                        counterparty_account_number=BANK_FEE_COUNTERPARTY,
                        included_in=debit.id
                    )

        self.audit_trail.log_event(
            event_type=AuditEventType.TRANSFER_POSTED,
            entity_type="account",
            entity_id=str(source_id),
            metadata={
                "amount": amount,
                "fee": fee,
                "recipient_account_number": recipient.account_number,
                "debit_transaction_id": debit.id,
                "credit_transaction_id": credit.id
            },
            user_id=caller.user_id
        )
        log_action(self.logger, "info", f"Transfer of {amount} (fee {fee}) posted",
                   user_id=str(caller.user_id), action="transfer", resource=resource,
                   extra={"recipient": recipient.account_number})
        return TransferResult(
            new_source_balance=new_source_balance,
            fee_charged=fee,
            debit_transaction_id=debit.id,
            credit_transaction_id=credit.id
        )

    def _transferred_today(self, uow: UnitOfWork, account_id: int) -> Decimal:
        """Principal sent from an account since midnight UTC, fees excluded"""
        midnight = datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
        rows = uow.find(self.ledger.transactions_table, {'account_id': account_id})
        todays = [r for r in rows if datetime.fromisoformat(r['created_at']) >= midnight]

        debits = {int(r['id']): Decimal(r['amount']) for r in todays
                  if r['transaction_type'] == TransactionType.TRANSFER_DEBIT.value}
        fees = [Decimal(r['amount']) for r in todays
                if r['transaction_type'] == TransactionType.FEE.value
                and r.get('included_in') is not None and int(r['included_in']) in debits]
        return sum(debits.values(), ZERO) - sum(fees, ZERO)

    def open_account(self, caller: CallerContext, request: OpenAccountRequest) -> OpenAccountResult:
        """
        Open an account for a client, optionally funded in the same unit of work

        Raises:
            PermissionDenied: Client opening an account for someone else
            ValidationError: Unknown/inactive/non-client user, unknown or Loan
                account type, negative initial deposit
            AllocationConflict: No free account number could be found
        """
        resource = f"user:{request.user_id}"

        with self._recording_failures("open_account", caller, resource):
            if caller.is_client and caller.user_id != int(request.user_id):
                raise PermissionDenied("Clients may only open accounts for themselves")
            initial_deposit = to_amount(request.initial_deposit)
            if initial_deposit < ZERO:
                raise ValidationError("Initial deposit cannot be negative")

            now = datetime.now(timezone.utc)
            with self.storage.atomic() as uow:
                user = uow.load(self.users_table, str(request.user_id))
                if user is None or not user.get('is_active', True):
                    raise ValidationError(f"User {request.user_id} not found or inactive")
                if user['role'] != UserRole.CLIENT.value:
                    raise ValidationError("Accounts can only be opened for Client users")

                # Locked so the type cannot be deleted underneath the new account
                type_data = uow.lock(self.types_table, str(request.type_id))
                if type_data is None or type_data.get('deleted'):
                    raise ValidationError(f"Account type {request.type_id} not found")
                account_type = AccountType.from_dict(
                    {k: v for k, v in type_data.items() if k != 'deleted'}
                )
                if account_type.is_loan_type:
                    raise ValidationError("Loan accounts are opened through loan approval")

                account = Account(
                    id=uow.next_id(self.ledger.accounts_table),
                    created_at=now,
                    updated_at=now,
                    user_id=int(request.user_id),
                    account_number=self.allocator.allocate_account_number(uow),
                    type_id=account_type.id,
                    balance=ZERO,
                    is_active=True
                )
                self.ledger.insert_account(uow, account)

                balance = ZERO
                if initial_deposit > ZERO:
                    self.ledger.lock_account(uow, account.id)
                    balance = self.ledger.apply_delta(uow, account.id, initial_deposit)
                    self.ledger.append_transaction(
                        uow, account.id, TransactionType.DEPOSIT, initial_deposit,
                        "Initial deposit"
                    )

        self.audit_trail.log_event(
            event_type=AuditEventType.ACCOUNT_OPENED,
            entity_type="account",
            entity_id=str(account.id),
            metadata={
                "account_number": account.account_number,
                "user_id": account.user_id,
                "account_type": account_type.name,
                "initial_deposit": initial_deposit
            },
            user_id=caller.user_id
        )
        log_action(self.logger, "info", f"Opened {account_type.name} account {account.account_number}",
                   user_id=str(caller.user_id), action="open_account",
                   resource=f"account:{account.id}")
        return OpenAccountResult(
            account_id=account.id,
            account_number=account.account_number,
            balance=balance
        )

    def get_account_for(self, caller: CallerContext, account_id: int) -> Account:
        """Committed account state, hiding other customers' accounts from clients"""
        account = self.ledger.get_account(account_id)
        if account is None or (caller.is_client and account.user_id != caller.user_id):
            raise InvalidAccount(f"Account {account_id} not found")
        return account
