"""
Account Management Module

Account types and customer accounts. Balances change only through the
money-movement engine; this module covers the read and administrative
path (types, deactivation, lookups).
"""

from decimal import Decimal
from datetime import date, datetime, timezone
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .audit import AuditTrail, AuditEventType
from .exceptions import InvalidAccount, ValidationError
from .logging_config import get_logger
from .money import ZERO, to_amount, to_rate
from .roles import CallerContext, UserRole
from .storage import StorageInterface, StorageRecord


LOAN_ACCOUNT_TYPE = "Loan"


@dataclass
class AccountType(StorageRecord):
    """Product offered to customers (Savings, Current, ...)"""
    name: str
    interest_rate: Decimal = Decimal('0')
    description: str = ""

    @property
    def is_loan_type(self) -> bool:
        return self.name.strip().lower() == LOAN_ACCOUNT_TYPE.lower()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AccountType':
        data = dict(data)
        data['id'] = int(data['id'])
        data['interest_rate'] = Decimal(str(data.get('interest_rate', '0')))
        return super().from_dict(data)


@dataclass
class Account(StorageRecord):
    """
    Customer deposit account

    The account number is assigned once by the allocator and never changes.
    Accounts are deactivated, never deleted.
    """
    user_id: int
    account_number: str
    type_id: int
    balance: Decimal = ZERO
    is_active: bool = True

    @property
    def opened_date(self) -> date:
        return self.created_at.date()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Account':
        data = dict(data)
        data['id'] = int(data['id'])
        data['user_id'] = int(data['user_id'])
        data['type_id'] = int(data['type_id'])
        data['balance'] = to_amount(data['balance'])
        return super().from_dict(data)


class AccountManager:
    """
    Manages account types and account lifecycle
    """

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail):
        self.storage = storage
        self.audit_trail = audit_trail
        self.accounts_table = "accounts"
        self.types_table = "account_types"
        self.logger = get_logger("securebank.accounts")

    def create_account_type(
        self,
        caller: CallerContext,
        name: str,
        interest_rate: Decimal = Decimal('0'),
        description: str = ""
    ) -> AccountType:
        """
        Create a new account type

        Args:
            caller: Admin or Staff caller
            name: Unique (case-insensitive) type name
            interest_rate: Annual rate as a fraction, must be >= 0
            description: Free text shown to customers

        Returns:
            Created AccountType
        """
        caller.require([UserRole.ADMIN, UserRole.STAFF], "create account types")

        name = (name or "").strip()
        if not name:
            raise ValidationError("Account type name is required")
        interest_rate = to_rate(interest_rate)

        now = datetime.now(timezone.utc)
        with self.storage.atomic() as uow:
            uow.lock_key(f"account_type:{name.lower()}")
            for existing in uow.find(self.types_table, {}):
                if not existing.get('deleted') and existing['name'].lower() == name.lower():
                    raise ValidationError(f"Account type '{name}' already exists")

            account_type = AccountType(
                id=uow.next_id(self.types_table),
                created_at=now,
                updated_at=now,
                name=name,
                interest_rate=interest_rate,
                description=description
            )
            uow.insert(self.types_table, str(account_type.id), account_type.to_dict())

        self.audit_trail.log_event(
            event_type=AuditEventType.ACCOUNT_TYPE_CREATED,
            entity_type="account_type",
            entity_id=str(account_type.id),
            metadata={"name": name, "interest_rate": interest_rate},
            user_id=caller.user_id
        )
        return account_type

    def delete_account_type(self, caller: CallerContext, type_id: int) -> None:
        """Delete an account type; forbidden while any account references it"""
        caller.require([UserRole.ADMIN], "delete account types")

        with self.storage.atomic() as uow:
            data = uow.lock(self.types_table, str(type_id))
            if data is None or data.get('deleted'):
                raise ValidationError(f"Account type {type_id} not found")
            if uow.find(self.accounts_table, {'type_id': int(type_id)}):
                raise ValidationError(
                    "Cannot delete account type: it is currently associated with existing accounts."
                )
            uow.save(self.types_table, str(type_id), {**data, 'deleted': True})

        self.audit_trail.log_event(
            event_type=AuditEventType.ACCOUNT_TYPE_DELETED,
            entity_type="account_type",
            entity_id=str(type_id),
            metadata={"name": data['name']},
            user_id=caller.user_id
        )

    def get_account_type(self, type_id: int) -> Optional[AccountType]:
        data = self.storage.load(self.types_table, str(type_id))
        if data is None or data.get('deleted'):
            return None
        return self._type_from_dict(data)

    def list_account_types(self, include_loan: bool = True) -> List[AccountType]:
        types = [self._type_from_dict(d) for d in self.storage.load_all(self.types_table)
                 if not d.get('deleted')]
        if not include_loan:
            types = [t for t in types if not t.is_loan_type]
        return sorted(types, key=lambda t: t.name.lower())

    def get_account(self, account_id: int) -> Optional[Account]:
        """Get account by ID"""
        data = self.storage.load(self.accounts_table, str(account_id))
        return Account.from_dict(data) if data else None

    def get_account_by_number(self, account_number: str) -> Optional[Account]:
        """Get account by account number"""
        matches = self.storage.find(self.accounts_table, {'account_number': account_number})
        return Account.from_dict(matches[0]) if matches else None

    def get_user_accounts(self, user_id: int, active_only: bool = False) -> List[Account]:
        """Get a user's accounts, lowest id first"""
        filters: Dict[str, Any] = {'user_id': int(user_id)}
        if active_only:
            filters['is_active'] = True
        accounts = [Account.from_dict(d) for d in self.storage.find(self.accounts_table, filters)]
        return sorted(accounts, key=lambda a: a.id)

    def deactivate_account(self, caller: CallerContext, account_id: int) -> Account:
        """Deactivate an account; its rows and number are kept"""
        caller.require([UserRole.ADMIN, UserRole.STAFF], "deactivate accounts")

        with self.storage.atomic() as uow:
            data = uow.lock(self.accounts_table, str(account_id))
            if data is None:
                raise InvalidAccount(f"Account {account_id} not found")
            account = Account.from_dict(data)
            account.is_active = False
            account.updated_at = datetime.now(timezone.utc)
            uow.save(self.accounts_table, str(account.id), account.to_dict())

        self.audit_trail.log_event(
            event_type=AuditEventType.ACCOUNT_DEACTIVATED,
            entity_type="account",
            entity_id=str(account.id),
            metadata={"account_number": account.account_number, "balance": account.balance},
            user_id=caller.user_id
        )
        self.logger.info(f"Deactivated account {account.account_number}")
        return account

    def _type_from_dict(self, data: Dict[str, Any]) -> AccountType:
        data = {k: v for k, v in data.items() if k != 'deleted'}
        return AccountType.from_dict(data)
