"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Keep Google Sheets for users who want to see their ledger directly
2. Use in-memory storage for testing and single-process deployments
3. Keep ledger logic decoupled from storage implementation

The interface is intentionally simple - we're not building a full ORM.
Every query is scoped by owner id; nothing here can return another
user's rows.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from fundy.models.audit import AuditEvent
from fundy.models.ledger import (
    Budget,
    ExpenseCategory,
    SavingsGoal,
    Transaction,
    TransactionType,
    Wallet,
)


class LedgerStorageInterface(ABC):
    """
    Abstract interface for ledger row storage.

    Any storage implementation (Google Sheets, PostgreSQL, etc.)
    must implement these methods.
    """

    @abstractmethod
    def atomic(self) -> AbstractAsyncContextManager[None]:
        """
        Open a unit of work.

        Writes issued inside the block are committed together when it
        exits cleanly and discarded if it raises. Nested blocks join
        the outermost one.
        """
        pass

    @abstractmethod
    async def insert(self, transaction: Transaction) -> Transaction:
        """
        Append a row to the ledger.

        Args:
            transaction: The row to store

        Returns:
            The stored row

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def get(self, owner_id: str, transaction_id: UUID) -> Optional[Transaction]:
        """
        Retrieve one row.

        Returns:
            The row if it exists and belongs to owner_id, None otherwise
        """
        pass

    @abstractmethod
    async def list_by_owner(
        self,
        owner_id: str,
        limit: Optional[int] = None,
        offset: int = 0,
        transaction_type: Optional[TransactionType] = None,
    ) -> list[Transaction]:
        """
        List an owner's rows, newest logical date first.

        Ties on date are broken by creation time, newest first.

        Args:
            owner_id: Owning user
            limit: Maximum number of results (None for all)
            offset: Number of results to skip
            transaction_type: Only return rows of this type

        Returns:
            List of matching rows
        """
        pass

    @abstractmethod
    async def list_by_wallet(
        self,
        owner_id: str,
        wallet_id: UUID,
    ) -> list[Transaction]:
        """List every row referencing a wallet."""
        pass

    @abstractmethod
    async def update(
        self,
        owner_id: str,
        transaction_id: UUID,
        fields: dict[str, Any],
    ) -> Optional[Transaction]:
        """
        Apply a partial update.

        Returns:
            The updated row, or None if no row matches owner + id

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def delete(self, owner_id: str, transaction_id: UUID) -> bool:
        """
        Delete one row. Never cascades to the other legs of a pair.

        Returns:
            True if a row was deleted
        """
        pass


class WalletStorageInterface(ABC):
    """Abstract interface for wallet storage."""

    @abstractmethod
    async def insert_wallet(self, wallet: Wallet) -> Wallet:
        pass

    @abstractmethod
    async def get_wallet(self, owner_id: str, wallet_id: UUID) -> Optional[Wallet]:
        """Return the wallet if it exists and belongs to owner_id."""
        pass

    @abstractmethod
    async def list_wallets(
        self,
        owner_id: str,
        include_inactive: bool = False,
    ) -> list[Wallet]:
        pass

    @abstractmethod
    async def update_wallet(self, wallet: Wallet) -> Wallet:
        """
        Raises:
            NotFoundError: If the wallet doesn't exist
        """
        pass


class GoalStorageInterface(ABC):
    """Abstract interface for savings goal storage."""

    @abstractmethod
    async def insert_goal(self, goal: SavingsGoal) -> SavingsGoal:
        pass

    @abstractmethod
    async def get_goal(self, owner_id: str, goal_id: UUID) -> Optional[SavingsGoal]:
        """Return the goal if it exists and belongs to owner_id."""
        pass

    @abstractmethod
    async def list_goals(self, owner_id: str) -> list[SavingsGoal]:
        pass

    @abstractmethod
    async def set_allocated_amount(
        self,
        owner_id: str,
        goal_id: UUID,
        amount: Decimal,
    ) -> SavingsGoal:
        """
        Overwrite a goal's allocation counter.

        Raises:
            NotFoundError: If the goal doesn't exist
        """
        pass


class BudgetStorageInterface(ABC):
    """Abstract interface for monthly category budgets."""

    @abstractmethod
    async def upsert_budget(self, budget: Budget) -> Budget:
        """
        Store a budget, replacing the amount of an existing one for the
        same owner, category, month and year.

        Returns:
            The stored budget (keeps the existing id when replacing)
        """
        pass

    @abstractmethod
    async def list_budgets(
        self,
        owner_id: str,
        month: Optional[int] = None,
        year: Optional[int] = None,
    ) -> list[Budget]:
        """List an owner's budgets, optionally for one month only."""
        pass

    @abstractmethod
    async def delete_budget(
        self,
        owner_id: str,
        category: ExpenseCategory,
        month: int,
        year: int,
    ) -> bool:
        """
        Returns:
            True if a budget was deleted
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity.

        Returns:
            List of events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        owner_id: Optional[str] = None,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
