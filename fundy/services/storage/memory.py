"""
In-Memory Storage Implementation

Default backend for tests and single-process deployments.

Units of work are journaled: every write inside `atomic()` records how
to undo itself, and the journal is replayed backwards if the block
raises. The journal lives in a ContextVar so each asyncio task sees
only its own unit of work.
"""

from collections.abc import Callable
from contextlib import asynccontextmanager
from contextvars import ContextVar
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
    utc_now,
)
from fundy.services.storage.interface import (
    AuditStorageInterface,
    BudgetStorageInterface,
    DuplicateError,
    GoalStorageInterface,
    LedgerStorageInterface,
    NotFoundError,
    WalletStorageInterface,
)


_journal: ContextVar[Optional[list[Callable[[], None]]]] = ContextVar(
    "fundy_memory_journal", default=None
)


def _record_undo(undo: Callable[[], None]) -> None:
    journal = _journal.get()
    if journal is not None:
        journal.append(undo)


def sort_newest_first(rows: list[Transaction]) -> list[Transaction]:
    """Logical date desc, then creation time desc."""
    return sorted(rows, key=lambda t: (t.date, t.created_at), reverse=True)


class InMemoryLedgerStorage(LedgerStorageInterface):
    """Ledger rows held in a dict keyed by row id."""

    def __init__(self):
        self._rows: dict[UUID, Transaction] = {}

    @asynccontextmanager
    async def atomic(self):
        if _journal.get() is not None:
            # Join the outer unit
            yield
            return

        journal: list[Callable[[], None]] = []
        token = _journal.set(journal)
        try:
            yield
        except BaseException:
            for undo in reversed(journal):
                undo()
            raise
        finally:
            _journal.reset(token)

    async def insert(self, transaction: Transaction) -> Transaction:
        if transaction.id in self._rows:
            raise DuplicateError(f"Transaction already exists: {transaction.id}")
        stored = transaction.model_copy(deep=True)
        self._rows[stored.id] = stored
        _record_undo(lambda: self._rows.pop(stored.id, None))
        return stored.model_copy(deep=True)

    async def get(self, owner_id: str, transaction_id: UUID) -> Optional[Transaction]:
        row = self._rows.get(transaction_id)
        if row is None or row.owner_id != owner_id:
            return None
        return row.model_copy(deep=True)

    async def list_by_owner(
        self,
        owner_id: str,
        limit: Optional[int] = None,
        offset: int = 0,
        transaction_type: Optional[TransactionType] = None,
    ) -> list[Transaction]:
        rows = [
            row for row in self._rows.values()
            if row.owner_id == owner_id
            and (transaction_type is None or row.type == transaction_type)
        ]
        rows = sort_newest_first(rows)
        end = None if limit is None else offset + limit
        return [row.model_copy(deep=True) for row in rows[offset:end]]

    async def list_by_wallet(
        self,
        owner_id: str,
        wallet_id: UUID,
    ) -> list[Transaction]:
        rows = [
            row for row in self._rows.values()
            if row.owner_id == owner_id and row.wallet_id == wallet_id
        ]
        return [row.model_copy(deep=True) for row in sort_newest_first(rows)]

    async def update(
        self,
        owner_id: str,
        transaction_id: UUID,
        fields: dict[str, Any],
    ) -> Optional[Transaction]:
        current = self._rows.get(transaction_id)
        if current is None or current.owner_id != owner_id:
            return None

        # Re-validate so the sign rule still holds after the edit
        updated = Transaction.model_validate({
            **current.model_dump(),
            **fields,
            "updated_at": utc_now(),
        })
        self._rows[transaction_id] = updated
        _record_undo(lambda: self._rows.__setitem__(transaction_id, current))
        return updated.model_copy(deep=True)

    async def delete(self, owner_id: str, transaction_id: UUID) -> bool:
        current = self._rows.get(transaction_id)
        if current is None or current.owner_id != owner_id:
            return False
        del self._rows[transaction_id]
        _record_undo(lambda: self._rows.__setitem__(transaction_id, current))
        return True


class InMemoryWalletStorage(WalletStorageInterface):

    def __init__(self):
        self._wallets: dict[UUID, Wallet] = {}

    async def insert_wallet(self, wallet: Wallet) -> Wallet:
        if wallet.id in self._wallets:
            raise DuplicateError(f"Wallet already exists: {wallet.id}")
        self._wallets[wallet.id] = wallet.model_copy()
        return wallet

    async def get_wallet(self, owner_id: str, wallet_id: UUID) -> Optional[Wallet]:
        wallet = self._wallets.get(wallet_id)
        if wallet is None or wallet.owner_id != owner_id:
            return None
        return wallet.model_copy()

    async def list_wallets(
        self,
        owner_id: str,
        include_inactive: bool = False,
    ) -> list[Wallet]:
        wallets = [
            w for w in self._wallets.values()
            if w.owner_id == owner_id and (include_inactive or w.is_active)
        ]
        wallets.sort(key=lambda w: w.created_at)
        return [w.model_copy() for w in wallets]

    async def update_wallet(self, wallet: Wallet) -> Wallet:
        current = self._wallets.get(wallet.id)
        if current is None or current.owner_id != wallet.owner_id:
            raise NotFoundError(f"Wallet not found: {wallet.id}")
        self._wallets[wallet.id] = wallet.model_copy()
        return wallet


class InMemoryGoalStorage(GoalStorageInterface):

    def __init__(self):
        self._goals: dict[UUID, SavingsGoal] = {}

    async def insert_goal(self, goal: SavingsGoal) -> SavingsGoal:
        if goal.id in self._goals:
            raise DuplicateError(f"Goal already exists: {goal.id}")
        self._goals[goal.id] = goal.model_copy()
        return goal

    async def get_goal(self, owner_id: str, goal_id: UUID) -> Optional[SavingsGoal]:
        goal = self._goals.get(goal_id)
        if goal is None or goal.owner_id != owner_id:
            return None
        return goal.model_copy()

    async def list_goals(self, owner_id: str) -> list[SavingsGoal]:
        goals = [g for g in self._goals.values() if g.owner_id == owner_id]
        goals.sort(key=lambda g: g.created_at)
        return [g.model_copy() for g in goals]

    async def set_allocated_amount(
        self,
        owner_id: str,
        goal_id: UUID,
        amount: Decimal,
    ) -> SavingsGoal:
        goal = self._goals.get(goal_id)
        if goal is None or goal.owner_id != owner_id:
            raise NotFoundError(f"Goal not found: {goal_id}")
        updated = goal.model_copy(update={
            "allocated_amount": amount,
            "updated_at": utc_now(),
        })
        self._goals[goal_id] = updated
        return updated.model_copy()


class InMemoryBudgetStorage(BudgetStorageInterface):
    """Budgets keyed by (owner, category, month, year)."""

    def __init__(self):
        self._budgets: dict[tuple, Budget] = {}

    async def upsert_budget(self, budget: Budget) -> Budget:
        existing = self._budgets.get(budget.slot)
        if existing is not None:
            budget = existing.model_copy(update={
                "amount": budget.amount,
                "updated_at": utc_now(),
            })
        self._budgets[budget.slot] = budget.model_copy()
        return budget

    async def list_budgets(
        self,
        owner_id: str,
        month: Optional[int] = None,
        year: Optional[int] = None,
    ) -> list[Budget]:
        budgets = [
            b for b in self._budgets.values()
            if b.owner_id == owner_id
            and (month is None or b.month == month)
            and (year is None or b.year == year)
        ]
        budgets.sort(key=lambda b: (b.year, b.month, b.category.value))
        return [b.model_copy() for b in budgets]

    async def delete_budget(
        self,
        owner_id: str,
        category: ExpenseCategory,
        month: int,
        year: int,
    ) -> bool:
        return self._budgets.pop((owner_id, category, month, year), None) is not None


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of events."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(
        self,
        owner_id: Optional[str] = None,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if owner_id is None or e.owner_id == owner_id
        ]
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
