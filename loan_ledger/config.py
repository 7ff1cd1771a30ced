"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from decimal import Decimal, InvalidOperation
from pydantic_settings import BaseSettings

from .currency import Currency
from .exceptions import ConfigurationError


class LedgerConfig(BaseSettings):
    """Loan ledger configuration"""

    # Storage configuration
    storage_backend: str = "memory"  # memory or sqlite
    database_path: str = "loan_ledger.db"

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text

    # Ledger rules
    completion_tolerance: str = "0.50"  # Loan is Completed within this margin of the total
    default_currency: str = "USD"
    enable_repayment_log: bool = True

    # Lender profiles
    auto_provision_profiles: bool = True
    default_lender_name: str = "Lender"

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090

    class Config:
        env_prefix = "LOAN_LEDGER_"
        env_file = ".env"
        case_sensitive = False

    @property
    def tolerance(self) -> Decimal:
        """Completion tolerance as a Decimal"""
        try:
            value = Decimal(self.completion_tolerance)
        except InvalidOperation:
            raise ConfigurationError(
                f"completion_tolerance must be a decimal, got {self.completion_tolerance!r}"
            )
        if value < 0:
            raise ConfigurationError("completion_tolerance cannot be negative")
        return value

    @property
    def currency(self) -> Currency:
        """Default currency for new loans"""
        try:
            return Currency[self.default_currency.upper()]
        except KeyError:
            raise ConfigurationError(f"Unsupported currency: {self.default_currency}")


# Global configuration instance
config = LedgerConfig()


def get_config() -> LedgerConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> LedgerConfig:
    """Reload configuration from environment"""
    global config
    config = LedgerConfig()
    return config
