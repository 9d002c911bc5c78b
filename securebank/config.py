"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based
configuration, plus the BankSettings value object handed to money movement.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from .money import to_amount


class SecureBankConfig(BaseSettings):
    """SecureBank ledger core configuration"""

    model_config = SettingsConfigDict(
        env_prefix="SECUREBANK_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Database configuration
    database_url: str = "sqlite:///securebank.db"  # or "memory://", "postgresql://..."
    lock_timeout_seconds: float = 5.0
    account_number_max_attempts: int = 50

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text

    # Business rules configuration (amounts as Decimal strings)
    bank_name: str = "Secure Bank"
    transfer_fee_percentage: str = "0.50"  # percent of the transferred amount
    min_deposit_amount: str = "0.00"
    max_transfer_daily: str = "10000.00"  # 0 disables the cap

    # Feature flags
    enable_audit_logging: bool = True


@dataclass(frozen=True)
class BankSettings:
    """
    Business rules applied by the money-movement engine at call time.

    Built once by the wiring layer and passed in explicitly so the engine
    never reads mutable global settings.
    """
    transfer_fee_rate: Decimal = Decimal('0.005')
    min_deposit_amount: Decimal = Decimal('0.00')
    max_transfer_daily: Decimal = Decimal('0.00')

    def __post_init__(self):
        if self.transfer_fee_rate < 0:
            raise ValueError("Transfer fee rate cannot be negative")
        if self.min_deposit_amount < 0:
            raise ValueError("Minimum deposit cannot be negative")
        if self.max_transfer_daily < 0:
            raise ValueError("Daily transfer cap cannot be negative")

    @classmethod
    def from_config(cls, cfg: Optional[SecureBankConfig] = None) -> 'BankSettings':
        """Translate the percent-based config strings into a settings object"""
        cfg = cfg or get_config()
        return cls(
            transfer_fee_rate=Decimal(cfg.transfer_fee_percentage) / Decimal('100'),
            min_deposit_amount=to_amount(cfg.min_deposit_amount),
            max_transfer_daily=to_amount(cfg.max_transfer_daily),
        )


# Global configuration instance
config = SecureBankConfig()


def get_config() -> SecureBankConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> SecureBankConfig:
    """Reload configuration from environment"""
    global config
    config = SecureBankConfig()
    return config
