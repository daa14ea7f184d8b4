"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
The in-memory backend is the default; Google Sheets is available for
users who want their ledger in a spreadsheet.
"""

from fundy.services.storage.interface import (
    AuditStorageInterface,
    BudgetStorageInterface,
    ConnectionError,
    DuplicateError,
    GoalStorageInterface,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
    WalletStorageInterface,
)
from fundy.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryBudgetStorage,
    InMemoryGoalStorage,
    InMemoryLedgerStorage,
    InMemoryWalletStorage,
)
from fundy.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsBudgetStorage,
    GoogleSheetsClient,
    GoogleSheetsGoalStorage,
    GoogleSheetsLedgerStorage,
    GoogleSheetsWalletStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "BudgetStorageInterface",
    "GoalStorageInterface",
    "LedgerStorageInterface",
    "WalletStorageInterface",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryBudgetStorage",
    "InMemoryGoalStorage",
    "InMemoryLedgerStorage",
    "InMemoryWalletStorage",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsBudgetStorage",
    "GoogleSheetsClient",
    "GoogleSheetsGoalStorage",
    "GoogleSheetsLedgerStorage",
    "GoogleSheetsWalletStorage",
]
