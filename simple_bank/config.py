"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic import field_validator
from pydantic_settings import BaseSettings
from typing import Optional


class BankConfig(BaseSettings):
    """Simple bank configuration"""

    # Storage configuration
    database_file: str = "db.s3db"  # Overridden by -fileName on the command line

    # Card issuing configuration
    issuer_prefix: str = "400000"
    max_issue_attempts: int = 1000

    # Logging configuration
    log_level: str = "WARNING"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stderr

    @field_validator("issuer_prefix")
    @classmethod
    def _check_issuer_prefix(cls, value: str) -> str:
        if len(value) != 6 or not (value.isascii() and value.isdigit()):
            raise ValueError("issuer_prefix must be exactly 6 digits")
        return value

    @field_validator("max_issue_attempts")
    @classmethod
    def _check_max_issue_attempts(cls, value: int) -> int:
        if value < 1:
            raise ValueError("max_issue_attempts must be at least 1")
        return value

    class Config:
        env_prefix = "SIMPLE_BANK_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = BankConfig()


def get_config() -> BankConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> BankConfig:
    """Reload configuration from environment"""
    global config
    config = BankConfig()
    return config
