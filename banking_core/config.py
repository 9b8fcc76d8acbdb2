"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
Components never read the environment themselves; they receive values from a
BankingConfig instance at construction time.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class BankingConfig(BaseSettings):
    """Banking core configuration"""

    model_config = SettingsConfigDict(
        env_prefix="BANKING_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Database configuration
    database_url: str = "sqlite:///banking.db"  # or memory:// for in-process use

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090

    # Security configuration
    encryption_key: str = ""  # BANKING_ENCRYPTION_KEY, required for PII encryption
    jwt_secret: str = ""  # BANKING_JWT_SECRET, required for session tokens
    jwt_algorithm: str = "HS256"
    session_validity_minutes: int = 24 * 60
    session_expiry_buffer_seconds: int = 60

    # Business rules configuration
    min_signup_age: int = 18
    account_number_max_attempts: int = 100
    max_funding_minor_units: int = 100_000_000_000  # $1,000,000,000.00 per deposit

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stderr


# Global configuration instance
config = BankingConfig()


def get_config() -> BankingConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> BankingConfig:
    """Reload configuration from environment"""
    global config
    config = BankingConfig()
    return config
