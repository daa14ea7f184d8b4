"""
Fundy Settings

Every tunable lives here, read from the environment (and .env) with
pydantic-settings. Each concern gets its own env prefix:

    GOOGLE_SHEETS_*   sheet-backed storage
    GEMINI_*          the transaction classifier
    LEDGER_*          balance cache, confidence floor, pending TTL

Groups are built lazily, so a memory-only deployment never needs
Google credentials or a Gemini key.
"""

from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        description="ID of the Google Sheets spreadsheet to use"
    )

    # Sheet names within the spreadsheet
    transactions_sheet_name: str = Field(
        default="Transactions",
        description="Name of the sheet holding ledger rows"
    )
    wallets_sheet_name: str = Field(
        default="Wallets",
        description="Name of the sheet holding wallets"
    )
    goals_sheet_name: str = Field(
        default="SavingsGoals",
        description="Name of the sheet holding savings goals"
    )
    budgets_sheet_name: str = Field(
        default="Budgets",
        description="Name of the sheet holding monthly category budgets"
    )
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Name of the sheet for audit logs"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


class GeminiSettings(BaseSettings):
    """Gemini LLM configuration (transaction classifier)."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        extra="ignore"
    )

    api_key: str = Field(
        ...,
        description="Gemini API key"
    )
    model_name: str = Field(
        default="gemini-1.5-flash",
        description="Gemini model to use"
    )
    max_tokens: int = Field(
        default=2048,
        ge=100,
        le=8192,
        description="Maximum tokens in response"
    )
    temperature: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Model temperature (lower = more deterministic)"
    )


class LedgerSettings(BaseSettings):
    """
    Ledger engine tuning.

    None of these are secrets, so every field has a default and the
    ledger works out of the box without any environment.
    """

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        extra="ignore"
    )

    balance_cache_ttl_seconds: float = Field(
        default=5.0,
        ge=0.0,
        le=60.0,
        description="How long a derived wallet balance may be served from cache"
    )
    min_confidence: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Classifier proposals below this confidence are rejected"
    )
    allocation_health_tolerance: Decimal = Field(
        default=Decimal("1"),
        ge=0,
        description="Shortfall (actual vs allocated) tolerated before a goal is flagged"
    )
    pending_ttl_seconds: Optional[float] = Field(
        default=None,
        gt=0,
        description="Lifetime of a staged proposal; None keeps it until confirmed or cancelled"
    )
    default_list_limit: int = Field(
        default=100,
        ge=1,
        le=1000,
        description="Default page size when listing transactions"
    )


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    storage_backend: Literal["memory", "google_sheets"] = Field(
        default="memory",
        description="Which storage implementation backs the ledger"
    )

    # Validation thresholds
    max_transaction_amount: Decimal = Field(
        default=Decimal("10000000000"),
        description="Maximum reasonable single amount (for sanity checking)"
    )


class Settings(BaseSettings):
    """
    Entry point for every settings group.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

    @property
    def ledger(self) -> LedgerSettings:
        return LedgerSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Process-wide settings. Tests call get_settings.cache_clear() to
    pick up a changed environment.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Try to build every settings group.

    Returns {group: ok}, plus "{group}_error" entries for the failures.
    """
    results = {}

    settings = get_settings()

    for name in ("google_sheets", "gemini", "ledger", "app"):
        try:
            _ = getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
