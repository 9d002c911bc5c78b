"""
Ledger Store

Append-only transaction rows plus the cached per-account balance they
justify. Balance changes are only possible on accounts locked by the
current unit of work, and nothing written here is visible before that
unit of work commits.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from enum import Enum

from .accounts import Account
from .exceptions import InvalidAccount, InsufficientFunds, ValidationError
from .money import ZERO, to_amount
from .storage import StorageInterface, StorageRecord, UnitOfWork


class TransactionType(Enum):
    """Kinds of ledger rows; the amount is always positive, the type carries direction"""
    DEPOSIT = "Deposit"
    WITHDRAWAL = "Withdrawal"
    TRANSFER_DEBIT = "Transfer-Debit"
    TRANSFER_CREDIT = "Transfer-Credit"
    FEE = "Fee"
    LOAN_DISBURSEMENT = "Loan Disbursement"
    LOAN_PAYMENT = "Loan Payment"


CREDIT_TYPES = frozenset({
    TransactionType.DEPOSIT,
    TransactionType.TRANSFER_CREDIT,
    TransactionType.LOAN_DISBURSEMENT,
})


class TransactionStatus(Enum):
    COMPLETED = "Completed"
    PENDING_DISPATCH = "Pending Dispatch"


BANK_FEE_COUNTERPARTY = "BANK_FEE"


def as_utc(moment: Optional[datetime]) -> Optional[datetime]:
    """Row timestamps are UTC; a naive bound is read as UTC too"""
    if moment is not None and moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


@dataclass
class Transaction(StorageRecord):
    """
    Immutable ledger row

    A Fee row with ``included_in`` set is a memo of a fee already contained
    in the referenced Transfer-Debit row and does not move the balance.
    """
    account_id: int
    transaction_type: TransactionType
    amount: Decimal
    description: str
    status: TransactionStatus = TransactionStatus.COMPLETED
    counterparty_account_number: Optional[str] = None
    included_in: Optional[int] = None
    reference: Optional[str] = None

    @property
    def timestamp(self) -> datetime:
        return self.created_at

    @property
    def signed_amount(self) -> Decimal:
        """Effect of this row on the account balance"""
        if self.transaction_type == TransactionType.FEE and self.included_in is not None:
            return ZERO
        if self.transaction_type in CREDIT_TYPES:
            return self.amount
        return -self.amount

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result['transaction_type'] = self.transaction_type.value
        result['status'] = self.status.value
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Transaction':
        data = dict(data)
        data['id'] = int(data['id'])
        data['account_id'] = int(data['account_id'])
        data['amount'] = Decimal(str(data['amount']))
        data['transaction_type'] = TransactionType(data['transaction_type'])
        data['status'] = TransactionStatus(data['status'])
        if data.get('included_in') is not None:
            data['included_in'] = int(data['included_in'])
        return super().from_dict(data)


@dataclass(frozen=True)
class AccountSnapshot:
    """Account state as seen under the current unit of work's lock"""
    id: int
    account_number: str
    user_id: int
    balance: Decimal
    is_active: bool


class LedgerStore:
    """
    Durable account balances and the transaction rows behind them
    """

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.accounts_table = "accounts"
        self.transactions_table = "transactions"

    # Write path: always inside a unit of work

    def lock_account(self, uow: UnitOfWork, account_id: int) -> AccountSnapshot:
        """
        Lock an account row for the rest of the unit of work

        Raises:
            InvalidAccount: If the account does not exist
            LockTimeout: If the lock could not be acquired in time
        """
        data = uow.lock(self.accounts_table, str(account_id))
        if data is None:
            raise InvalidAccount(f"Account {account_id} not found")
        account = Account.from_dict(data)
        return AccountSnapshot(
            id=account.id,
            account_number=account.account_number,
            user_id=account.user_id,
            balance=account.balance,
            is_active=account.is_active
        )

    def insert_account(self, uow: UnitOfWork, account: Account) -> None:
        uow.insert(self.accounts_table, str(account.id), account.to_dict())

    def apply_delta(self, uow: UnitOfWork, account_id: int, signed_amount: Decimal) -> Decimal:
        """
        Add a signed amount to a locked account's balance

        Returns:
            New balance

        Raises:
            RuntimeError: If the unit of work does not hold the account lock
            InsufficientFunds: If the balance would go negative
        """
        if not uow.holds_lock(self.accounts_table, str(account_id)):
            raise RuntimeError(f"apply_delta on account {account_id} without holding its lock")

        data = uow.load(self.accounts_table, str(account_id))
        account = Account.from_dict(data)
        new_balance = to_amount(account.balance + signed_amount)
        if new_balance < ZERO:
            raise InsufficientFunds(
                f"Balance {account.balance} of account {account.account_number} "
                f"cannot cover {-signed_amount}"
            )

        account.balance = new_balance
        account.updated_at = datetime.now(timezone.utc)
        uow.save(self.accounts_table, str(account.id), account.to_dict())
        return new_balance

    def append_transaction(
        self,
        uow: UnitOfWork,
        account_id: int,
        transaction_type: TransactionType,
        amount: Decimal,
        description: str,
        status: TransactionStatus = TransactionStatus.COMPLETED,
        counterparty_account_number: Optional[str] = None,
        included_in: Optional[int] = None,
        reference: Optional[str] = None
    ) -> Transaction:
        """Insert a new ledger row; rows are never updated"""
        amount = to_amount(amount)
        if amount <= ZERO:
            raise ValidationError(f"Transaction amount must be positive, got {amount}")

        now = datetime.now(timezone.utc)
        transaction = Transaction(
            id=uow.next_id(self.transactions_table),
            created_at=now,
            updated_at=now,
            account_id=int(account_id),
            transaction_type=transaction_type,
            amount=amount,
            description=description,
            status=status,
            counterparty_account_number=counterparty_account_number,
            included_in=included_in,
            reference=reference
        )
        uow.insert(self.transactions_table, str(transaction.id), transaction.to_dict())
        return transaction

    # Read path: committed state only

    def get_account(self, account_id: int) -> Optional[Account]:
        data = self.storage.load(self.accounts_table, str(account_id))
        return Account.from_dict(data) if data else None

    def get_account_by_number(self, account_number: str) -> Optional[Account]:
        matches = self.storage.find(self.accounts_table, {'account_number': account_number})
        return Account.from_dict(matches[0]) if matches else None

    def get_transaction(self, transaction_id: int) -> Optional[Transaction]:
        data = self.storage.load(self.transactions_table, str(transaction_id))
        return Transaction.from_dict(data) if data else None

    def get_transactions(
        self,
        account_id: int,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> List[Transaction]:
        """
        Transactions for an account in posting order

        Args:
            account_id: Account to list
            start: Inclusive lower bound on the row timestamp
            end: Exclusive upper bound on the row timestamp
        """
        start, end = as_utc(start), as_utc(end)
        rows = [Transaction.from_dict(d) for d in
                self.storage.find(self.transactions_table, {'account_id': int(account_id)})]
        if start is not None:
            rows = [t for t in rows if t.created_at >= start]
        if end is not None:
            rows = [t for t in rows if t.created_at < end]
        return sorted(rows, key=lambda t: t.id)

    def get_all_transactions(self) -> List[Transaction]:
        rows = [Transaction.from_dict(d) for d in self.storage.load_all(self.transactions_table)]
        return sorted(rows, key=lambda t: t.id)

    def ledger_balance(self, account_id: int) -> Decimal:
        """Sum of signed transaction amounts for an account"""
        return sum((t.signed_amount for t in self.get_transactions(account_id)), ZERO)

    def verify_account(self, account_id: int) -> Dict[str, Any]:
        """Compare the cached balance with the ledger sum"""
        account = self.get_account(account_id)
        if account is None:
            raise InvalidAccount(f"Account {account_id} not found")
        ledger_balance = self.ledger_balance(account_id)
        return {
            'account_id': account.id,
            'account_number': account.account_number,
            'cached_balance': account.balance,
            'ledger_balance': ledger_balance,
            'consistent': account.balance == ledger_balance
        }
