"""
Ledger Store

Single source of truth for money movement. Wraps a storage backend
and owns the balance cache, so that every write path goes through
one place that invalidates cached balances.

CRITICAL: Check-then-write sequences (balance check, then append)
must run inside `atomic(owner_id)`. It holds a per-owner lock, so two
concurrent expenses can't both pass a stale sufficiency check, and
opens one storage unit of work, so paired legs commit together.
"""

import asyncio
from contextlib import asynccontextmanager
from contextvars import ContextVar
from typing import Any, Optional
from uuid import UUID

from fundy.errors import NotFoundError
from fundy.ledger.cache import BalanceCache
from fundy.models.ledger import Transaction, TransactionType
from fundy.services.storage import LedgerStorageInterface


# Owners whose lock the current task already holds (re-entrancy guard)
_held_owners: ContextVar[frozenset[str]] = ContextVar(
    "fundy_held_owners", default=frozenset()
)


class LedgerStore:
    """
    Append / query / update / delete of ledger rows, scoped by owner.

    Args:
        storage: Backend holding the rows
        cache: Balance cache invalidated on every write
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        cache: Optional[BalanceCache] = None,
    ):
        self._storage = storage
        self.cache = cache or BalanceCache()
        self._locks: dict[str, asyncio.Lock] = {}

    def _invalidate(self, owner_id: str) -> None:
        self.cache.invalidate_owner(owner_id)

    @asynccontextmanager
    async def atomic(self, owner_id: str):
        """
        Serialise and group writes for one owner.

        Re-entering for an owner the current task already holds joins
        the outer unit instead of deadlocking.
        """
        held = _held_owners.get()
        if owner_id in held:
            async with self._storage.atomic():
                yield
            return

        lock = self._locks.setdefault(owner_id, asyncio.Lock())
        async with lock:
            token = _held_owners.set(held | {owner_id})
            try:
                async with self._storage.atomic():
                    yield
            finally:
                _held_owners.reset(token)
                # Rolled-back rows may have been cached mid-unit
                self._invalidate(owner_id)

    async def append(self, transaction: Transaction) -> Transaction:
        stored = await self._storage.insert(transaction)
        self._invalidate(transaction.owner_id)
        return stored

    async def get(self, owner_id: str, transaction_id: UUID) -> Transaction:
        """
        Raises:
            NotFoundError: If the row is absent or owned by someone else
        """
        row = await self._storage.get(owner_id, transaction_id)
        if row is None:
            raise NotFoundError("transaction", str(transaction_id))
        return row

    async def list_by_owner(
        self,
        owner_id: str,
        limit: Optional[int] = None,
        offset: int = 0,
        transaction_type: Optional[TransactionType] = None,
    ) -> list[Transaction]:
        """Newest logical date first, ties broken by creation time."""
        return await self._storage.list_by_owner(
            owner_id,
            limit=limit,
            offset=offset,
            transaction_type=transaction_type,
        )

    async def list_by_wallet(self, owner_id: str, wallet_id: UUID) -> list[Transaction]:
        return await self._storage.list_by_wallet(owner_id, wallet_id)

    async def update(
        self,
        owner_id: str,
        transaction_id: UUID,
        fields: dict[str, Any],
    ) -> Transaction:
        """
        Raises:
            NotFoundError: If no row matches owner + id
        """
        updated = await self._storage.update(owner_id, transaction_id, fields)
        if updated is None:
            raise NotFoundError("transaction", str(transaction_id))
        self._invalidate(owner_id)
        return updated

    async def delete(self, owner_id: str, transaction_id: UUID) -> bool:
        deleted = await self._storage.delete(owner_id, transaction_id)
        if deleted:
            self._invalidate(owner_id)
        return deleted
