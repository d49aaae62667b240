"""Configuration management for split-ledger."""

from decimal import Decimal
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database path
    database_path: Path = Path.home() / ".split_ledger" / "split_ledger.db"

    # Balances within this distance of zero count as settled
    settlement_tolerance: Decimal = Decimal("0.01")

    # Display settings
    currency_symbol: str = "$"

    def __init__(self, **kwargs):
        """Initialize settings and create database directory if needed."""
        super().__init__(**kwargs)
        self.database_path.parent.mkdir(parents=True, exist_ok=True)

    @field_validator("settlement_tolerance")
    @classmethod
    def _check_tolerance(cls, value: Decimal) -> Decimal:
        if value < 0:
            raise ValueError("settlement_tolerance must not be negative")
        if value != value.quantize(Decimal("0.01")):
            raise ValueError("settlement_tolerance must be a whole number of cents")
        return value

    @property
    def tolerance_cents(self) -> int:
        """Settlement tolerance expressed in cents."""
        return int(self.settlement_tolerance * 100)


def load_settings() -> Settings:
    """Load application settings from environment variables."""
    try:
        return Settings()
    except Exception as e:
        raise ConfigurationError(
            f"Failed to load settings. Check your environment and .env file.\n"
            f"Error: {e}"
        ) from e
