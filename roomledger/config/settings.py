"""
Configuration Management for RoomLedger

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
The balance engine itself takes no settings; the service layer reads
them and passes values (like the settled epsilon) in explicitly.
"""

import warnings
from datetime import date
from decimal import Decimal
from functools import lru_cache
from pathlib import Path

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LedgerSettings(BaseSettings):
    """Limits and thresholds for the ledger and its input validation."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    settled_epsilon: Decimal = Field(
        default=Decimal("0.01"),
        gt=0,
        description="Net residual below which a pair counts as settled"
    )
    max_amount: Decimal = Field(
        default=Decimal("1000000"),
        gt=0,
        description="Largest amount accepted for a single expense or payment"
    )
    min_expense_date: date = Field(
        default=date(2000, 1, 1),
        description="Earliest expense date accepted"
    )
    future_date_tolerance_days: int = Field(
        default=365,
        ge=0,
        description="How many days in the future an expense date can be"
    )
    currency_code: str = Field(
        default="INR",
        min_length=3,
        max_length=3,
    )

    # Smart defaults
    history_limit: int = Field(
        default=50,
        ge=1,
        description="Descriptions remembered for suggestions"
    )
    corrections_limit: int = Field(
        default=100,
        ge=1,
        description="Category corrections remembered"
    )
    preferences_path: str = Field(
        default="",
        description="JSON file for smart defaults; empty keeps them in memory"
    )


class GoogleSheetsSettings(BaseSettings):
    """Where the shared ledger lives when Google Sheets storage is used."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Service account key file with access to the spreadsheet"
    )
    spreadsheet_id: str = Field(
        ...,
        min_length=1,
        description="Spreadsheet holding the ledger tabs"
    )

    # One worksheet per record kind, created on first use
    expenses_sheet_name: str = "Expenses"
    recurring_sheet_name: str = "Recurring"
    confirmations_sheet_name: str = "RecurringConfirmations"
    audit_sheet_name: str = "AuditLog"

    @field_validator("credentials_path")
    @classmethod
    def expand_credentials_path(cls, v: str) -> str:
        """Expand ~ and warn early about a key file that isn't there yet."""
        path = Path(v).expanduser()
        if not path.exists():
            warnings.warn(f"Google credentials file not found at {path}")
        return str(path)


class AppSettings(BaseSettings):
    """Process-wide options."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
    )


class Settings(BaseSettings):
    """
    Entry point to every settings group.

    Groups are built on access, so the ledger runs with only its own
    settings present and Google Sheets left unconfigured.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def ledger(self) -> LedgerSettings:
        return LedgerSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """Cached settings root. get_settings.cache_clear() forces a reload."""
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Check which settings groups load from the current environment.

    Returns:
        {group: loaded_ok}, plus a "{group}_error" message for each
        group that failed
    """
    results = {}
    settings = get_settings()

    for name in ("ledger", "google_sheets", "app"):
        try:
            getattr(settings, name)
        except ValidationError as e:
            results[name] = False
            results[f"{name}_error"] = str(e)
        else:
            results[name] = True

    return results
