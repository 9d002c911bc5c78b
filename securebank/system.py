"""
System Wiring

Builds every ledger component on one storage backend from configuration.
"""

from typing import Optional

from .accounts import AccountManager
from .allocator import IdentifierAllocator
from .audit import AuditTrail
from .config import BankSettings, SecureBankConfig, get_config
from .ledger import LedgerStore
from .loans import LoanManager
from .logging_config import get_logger
from .reporting import ReportingEngine
from .storage import StorageInterface, create_storage
from .transactions import MoneyMovementEngine
from .users import UserManager


class BankingSystem:
    """Ledger core with all components initialized"""

    def __init__(
        self,
        config: Optional[SecureBankConfig] = None,
        storage: Optional[StorageInterface] = None,
        settings: Optional[BankSettings] = None,
        allocator: Optional[IdentifierAllocator] = None
    ):
        self.config = config or get_config()
        self.storage = storage or create_storage(
            self.config.database_url, lock_timeout=self.config.lock_timeout_seconds
        )
        self.settings = settings or BankSettings.from_config(self.config)

        self.audit_trail = AuditTrail(self.storage, enabled=self.config.enable_audit_logging)
        self.allocator = allocator or IdentifierAllocator(
            max_attempts=self.config.account_number_max_attempts
        )
        self.ledger = LedgerStore(self.storage)
        self.user_manager = UserManager(self.storage, self.allocator, self.audit_trail)
        self.account_manager = AccountManager(self.storage, self.audit_trail)
        self.engine = MoneyMovementEngine(
            self.storage, self.ledger, self.allocator, self.audit_trail, self.settings
        )
        self.loan_manager = LoanManager(self.storage, self.ledger, self.allocator, self.audit_trail)
        self.reporting_engine = ReportingEngine(self.ledger)

        get_logger("securebank.system").info(
            f"{self.config.bank_name} ledger core ready on {type(self.storage).__name__}"
        )

    def close(self) -> None:
        self.storage.close()
