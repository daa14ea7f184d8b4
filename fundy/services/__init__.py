"""Services package."""

from fundy.services.pending import InMemoryPendingStore, PendingStoreInterface
from fundy.services.storage import (
    AuditStorageInterface,
    BudgetStorageInterface,
    ConnectionError,
    DuplicateError,
    GoalStorageInterface,
    InMemoryAuditStorage,
    InMemoryBudgetStorage,
    InMemoryGoalStorage,
    InMemoryLedgerStorage,
    InMemoryWalletStorage,
    LedgerStorageInterface,
    StorageError,
    WalletStorageInterface,
)

__all__ = [
    # Pending proposals
    "InMemoryPendingStore",
    "PendingStoreInterface",
    # Storage services
    "AuditStorageInterface",
    "BudgetStorageInterface",
    "ConnectionError",
    "DuplicateError",
    "GoalStorageInterface",
    "InMemoryAuditStorage",
    "InMemoryBudgetStorage",
    "InMemoryGoalStorage",
    "InMemoryLedgerStorage",
    "InMemoryWalletStorage",
    "LedgerStorageInterface",
    "StorageError",
    "WalletStorageInterface",
]
