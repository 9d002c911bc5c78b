"""
Tests for statements, transaction summaries and reconciliation
"""

from datetime import datetime, timezone, timedelta
from decimal import Decimal

from securebank.config import BankSettings, SecureBankConfig
from securebank.reporting import ReportType
from securebank.roles import CallerContext, UserRole
from securebank.system import BankingSystem
from securebank.transactions import (
    DepositRequest, WithdrawalRequest, TransferRequest, OpenAccountRequest
)
from securebank.users import NewUser


ADMIN = CallerContext(user_id=1001, role=UserRole.ADMIN)


class TestReportingEngine:

    def setup_method(self):
        config = SecureBankConfig(database_url="memory://")
        self.system = BankingSystem(config=config, settings=BankSettings(transfer_fee_rate=Decimal("0.01")))
        self.reports = self.system.reporting_engine
        engine = self.system.engine
        savings = self.system.account_manager.create_account_type(ADMIN, "Savings")

        users = [
            self.system.user_manager.create_user(None, NewUser(
                first_name="U", last_name=str(i), email=f"u{i}@example.com", password="password123"
            ))
            for i in range(2)
        ]
        self.a = engine.open_account(ADMIN, OpenAccountRequest(users[0].id, savings.id, "1000.00"))
        self.b = engine.open_account(ADMIN, OpenAccountRequest(users[1].id, savings.id))

        engine.deposit(ADMIN, DepositRequest(self.a.account_id, "200.00"))
        engine.transfer(ADMIN, TransferRequest(self.a.account_id, self.b.account_number, "100.00"))
        engine.withdraw(ADMIN, WithdrawalRequest(self.b.account_id, "30.00", "UPI", "b@upi"))

    def test_statement_balances(self):
        statement = self.reports.account_statement(self.a.account_id)

        assert statement.opening_balance == Decimal("0.00")
        assert statement.closing_balance == Decimal("1099.00")
        assert statement.total_credits == Decimal("1200.00")
        assert statement.total_debits == Decimal("101.00")
        assert [line.balance for line in statement.lines] == [
            Decimal("1000.00"), Decimal("1200.00"), Decimal("1099.00"), Decimal("1099.00")
        ]

    def test_statement_window_opening_balance(self):
        rows = self.system.ledger.get_transactions(self.a.account_id)
        start = rows[1].created_at

        statement = self.reports.account_statement(self.a.account_id, start=start)
        assert statement.opening_balance == Decimal("1000.00")
        assert statement.closing_balance == Decimal("1099.00")
        assert len(statement.lines) == 3

    def test_statement_empty_future_window(self):
        future = datetime.now(timezone.utc) + timedelta(days=1)
        statement = self.reports.account_statement(self.a.account_id, start=future)
        assert statement.lines == []
        assert statement.opening_balance == statement.closing_balance == Decimal("1099.00")

    def test_summary_by_type(self):
        deposits = self.reports.transaction_summary(ReportType.DEPOSIT)
        assert deposits.transaction_count == 2
        assert deposits.total_volume == Decimal("1200.00")

        transfers = self.reports.transaction_summary(ReportType.TRANSFER)
        assert transfers.transaction_count == 2
        assert transfers.total_volume == Decimal("201.00")
        assert set(transfers.by_type) == {"Transfer-Debit", "Transfer-Credit"}

        withdrawals = self.reports.transaction_summary(ReportType.WITHDRAWAL)
        assert withdrawals.transaction_count == 1
        assert withdrawals.total_volume == Decimal("30.00")

        everything = self.reports.transaction_summary(ReportType.ALL)
        assert everything.transaction_count == 6
        assert everything.by_type["Fee"]["count"] == 1

    def test_summary_period(self):
        future = datetime.now(timezone.utc) + timedelta(hours=1)
        assert self.reports.transaction_summary(ReportType.ALL, start=future).transaction_count == 0
        assert self.reports.transaction_summary(ReportType.ALL, end=future).transaction_count == 6

    def test_reconcile_clean_and_tampered(self):
        assert self.reports.reconcile() == []

        data = self.system.storage.load("accounts", str(self.b.account_id))
        data["balance"] = "1.00"
        self.system.storage.save("accounts", str(self.b.account_id), data)

        mismatches = self.reports.reconcile()
        assert len(mismatches) == 1
        assert mismatches[0]["account_id"] == self.b.account_id
        assert mismatches[0]["ledger_balance"] == Decimal("70.00")

    def test_naive_window_read_as_utc(self):
        past = datetime(2020, 1, 1)
        future = datetime.now(timezone.utc).replace(tzinfo=None) + timedelta(hours=1)

        statement = self.reports.account_statement(self.a.account_id, start=past, end=future)
        assert statement.opening_balance == Decimal("0.00")
        assert statement.closing_balance == Decimal("1099.00")
        assert len(statement.lines) == 4

        assert self.reports.transaction_summary(ReportType.ALL, start=past, end=future).transaction_count == 6
        assert self.reports.transaction_summary(ReportType.ALL, start=future).transaction_count == 0
        assert len(self.system.ledger.get_transactions(self.a.account_id, start=past)) == 4
