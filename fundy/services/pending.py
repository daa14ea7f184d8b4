"""
Pending Proposal Store

Staging area for proposals waiting on a human decision.

DESIGN DECISION: The store sits behind an interface with an explicit,
optional TTL. Expired entries behave exactly like missing ones, so a
proposal ages out deterministically instead of lingering until the
process restarts. A persistent backend (Redis, a small table) can be
swapped in without touching the confirmation state machine.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Optional

from fundy.models.ledger import utc_now
from fundy.models.proposals import BatchSession, PendingTransaction


class PendingStoreInterface(ABC):
    """Keyed storage for PendingTransaction and BatchSession objects."""

    @abstractmethod
    async def put(self, pending: PendingTransaction) -> PendingTransaction:
        """Store a proposal under its token. Stamps expires_at when a TTL is set."""
        pass

    @abstractmethod
    async def get(self, token: str) -> Optional[PendingTransaction]:
        """Return the proposal, or None if missing or expired."""
        pass

    @abstractmethod
    async def discard(self, token: str) -> Optional[PendingTransaction]:
        """Remove and return the proposal (None if it was already gone)."""
        pass

    @abstractmethod
    async def restore(self, pending: PendingTransaction) -> PendingTransaction:
        """Put a claimed proposal back under its token, keeping its expiry."""
        pass

    @abstractmethod
    async def put_batch(self, session: BatchSession) -> BatchSession:
        pass

    @abstractmethod
    async def get_batch(self, batch_id: str) -> Optional[BatchSession]:
        pass

    @abstractmethod
    async def discard_batch(self, batch_id: str) -> Optional[BatchSession]:
        pass


class InMemoryPendingStore(PendingStoreInterface):
    """
    Process-local pending store with optional TTL.

    Args:
        ttl_seconds: Lifetime of each entry; None disables expiry
        clock: Returns "now"; injectable so tests can move time
    """

    def __init__(
        self,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._ttl = timedelta(seconds=ttl_seconds) if ttl_seconds else None
        self._clock = clock
        self._pending: dict[str, PendingTransaction] = {}
        self._batches: dict[str, BatchSession] = {}

    def _expiry(self) -> Optional[datetime]:
        return self._clock() + self._ttl if self._ttl else None

    def _expired(self, expires_at: Optional[datetime]) -> bool:
        return expires_at is not None and self._clock() >= expires_at

    async def put(self, pending: PendingTransaction) -> PendingTransaction:
        stored = pending.model_copy(update={"expires_at": self._expiry()})
        self._pending[stored.token] = stored
        return stored

    async def get(self, token: str) -> Optional[PendingTransaction]:
        pending = self._pending.get(token)
        if pending is None:
            return None
        if self._expired(pending.expires_at):
            del self._pending[token]
            return None
        return pending

    async def discard(self, token: str) -> Optional[PendingTransaction]:
        pending = await self.get(token)
        self._pending.pop(token, None)
        return pending

    async def restore(self, pending: PendingTransaction) -> PendingTransaction:
        self._pending[pending.token] = pending
        return pending

    async def put_batch(self, session: BatchSession) -> BatchSession:
        stored = session.model_copy(update={"expires_at": self._expiry()})
        self._batches[stored.batch_id] = stored
        return stored

    async def get_batch(self, batch_id: str) -> Optional[BatchSession]:
        session = self._batches.get(batch_id)
        if session is None:
            return None
        if self._expired(session.expires_at):
            del self._batches[batch_id]
            return None
        return session

    async def discard_batch(self, batch_id: str) -> Optional[BatchSession]:
        session = await self.get_batch(batch_id)
        self._batches.pop(batch_id, None)
        return session

    def __len__(self) -> int:
        return len(self._pending)
