"""
Reporting Module

Read-only queries over committed ledger state: account statements, the
staff transaction summary and balance reconciliation.
"""

from decimal import Decimal
from datetime import datetime
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from enum import Enum

from .exceptions import InvalidAccount
from .ledger import LedgerStore, Transaction, TransactionType, as_utc
from .logging_config import get_logger
from .money import ZERO


class ReportType(Enum):
    """Transaction groups covered by the summary report"""
    DEPOSIT = "Deposit"
    WITHDRAWAL = "Withdrawal"
    TRANSFER = "Transfer"
    ALL = "All"


REPORT_TRANSACTION_TYPES = {
    ReportType.DEPOSIT: {TransactionType.DEPOSIT},
    ReportType.WITHDRAWAL: {TransactionType.WITHDRAWAL},
    ReportType.TRANSFER: {TransactionType.TRANSFER_DEBIT, TransactionType.TRANSFER_CREDIT},
    ReportType.ALL: set(TransactionType),
}


@dataclass
class StatementLine:
    transaction_id: int
    timestamp: datetime
    transaction_type: TransactionType
    description: str
    debit: Decimal
    credit: Decimal
    balance: Decimal
    status: str
    counterparty_account_number: Optional[str] = None


@dataclass
class AccountStatement:
    account_id: int
    account_number: str
    start: Optional[datetime]
    end: Optional[datetime]
    opening_balance: Decimal
    closing_balance: Decimal
    lines: List[StatementLine] = field(default_factory=list)

    @property
    def total_debits(self) -> Decimal:
        return sum((line.debit for line in self.lines), ZERO)

    @property
    def total_credits(self) -> Decimal:
        return sum((line.credit for line in self.lines), ZERO)


@dataclass
class TransactionSummary:
    report_type: ReportType
    start: Optional[datetime]
    end: Optional[datetime]
    transaction_count: int
    total_volume: Decimal
    by_type: Dict[str, Dict[str, Any]] = field(default_factory=dict)


class ReportingEngine:
    """
    Builds statements and summaries from committed ledger rows
    """

    def __init__(self, ledger: LedgerStore):
        self.ledger = ledger
        self.logger = get_logger("securebank.reporting")

    def account_statement(
        self,
        account_id: int,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> AccountStatement:
        """
        Statement for an account between start (inclusive) and end (exclusive)

        The opening balance is the signed sum of every row before start, so
        opening + credits - debits == closing.
        """
        account = self.ledger.get_account(account_id)
        if account is None:
            raise InvalidAccount(f"Account {account_id} not found")

        start, end = as_utc(start), as_utc(end)
        rows = self.ledger.get_transactions(account_id)
        opening = sum((t.signed_amount for t in rows if start is not None and t.created_at < start), ZERO)

        running = opening
        lines = []
        for transaction in rows:
            if start is not None and transaction.created_at < start:
                continue
            if end is not None and transaction.created_at >= end:
                continue
            running += transaction.signed_amount
            lines.append(self._statement_line(transaction, running))

        return AccountStatement(
            account_id=account.id,
            account_number=account.account_number,
            start=start,
            end=end,
            opening_balance=opening,
            closing_balance=running,
            lines=lines
        )

    def _statement_line(self, transaction: Transaction, balance: Decimal) -> StatementLine:
        signed = transaction.signed_amount
        return StatementLine(
            transaction_id=transaction.id,
            timestamp=transaction.created_at,
            transaction_type=transaction.transaction_type,
            description=transaction.description,
            debit=-signed if signed < 0 else ZERO,
            credit=signed if signed > 0 else ZERO,
            balance=balance,
            status=transaction.status.value,
            counterparty_account_number=transaction.counterparty_account_number
        )

    def transaction_summary(
        self,
        report_type: ReportType = ReportType.ALL,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> TransactionSummary:
        """Count and total volume of transactions of a report type in a period"""
        start, end = as_utc(start), as_utc(end)
        wanted = REPORT_TRANSACTION_TYPES[report_type]
        rows = [
            t for t in self.ledger.get_all_transactions()
            if t.transaction_type in wanted
            and (start is None or t.created_at >= start)
            and (end is None or t.created_at < end)
        ]

        by_type: Dict[str, Dict[str, Any]] = {}
        for transaction in rows:
            bucket = by_type.setdefault(transaction.transaction_type.value, {'count': 0, 'volume': ZERO})
            bucket['count'] += 1
            bucket['volume'] += transaction.amount

        return TransactionSummary(
            report_type=report_type,
            start=start,
            end=end,
            transaction_count=len(rows),
            total_volume=sum((t.amount for t in rows), ZERO),
            by_type=by_type
        )

    def reconcile(self) -> List[Dict[str, Any]]:
        """Accounts whose cached balance differs from their ledger sum (expected empty)"""
        transactions = self.ledger.get_all_transactions()
        sums: Dict[int, Decimal] = {}
        for transaction in transactions:
            sums[transaction.account_id] = sums.get(transaction.account_id, ZERO) + transaction.signed_amount

        mismatches = []
        for data in self.ledger.storage.load_all(self.ledger.accounts_table):
            account_id = int(data['id'])
            cached = Decimal(str(data['balance']))
            ledger_sum = sums.get(account_id, ZERO)
            if cached != ledger_sum:
                mismatches.append({
                    'account_id': account_id,
                    'account_number': data['account_number'],
                    'cached_balance': cached,
                    'ledger_balance': ledger_sum,
                    'difference': cached - ledger_sum
                })

        if mismatches:
            self.logger.error(f"Reconciliation found {len(mismatches)} inconsistent accounts")
        return sorted(mismatches, key=lambda m: m['account_id'])
