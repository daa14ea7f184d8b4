"""
Balance Cache

Short-lived cache of derived wallet balances keyed by (owner, wallet).

DESIGN DECISION: Invalidation is per owner, not per wallet. Some ledger
rows carry no wallet (unbound savings legs, investments) so a write
can't always tell which wallet it touched. Dropping every entry for
the owner is the only rule that is always correct.

Each owner also carries a generation counter. A reader snapshots it
before aggregating and the result is only cached if no write bumped
the generation in between.
"""

import time
from collections.abc import Callable
from decimal import Decimal
from typing import Optional
from uuid import UUID


class BalanceCache:
    """
    TTL cache for wallet balances.

    Args:
        ttl_seconds: Entry lifetime; 0 disables caching entirely
        clock: Monotonic seconds; injectable for tests
    """

    def __init__(
        self,
        ttl_seconds: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[tuple[str, UUID], tuple[Decimal, float]] = {}
        self._generations: dict[str, int] = {}

    @property
    def enabled(self) -> bool:
        return self._ttl > 0

    def generation(self, owner_id: str) -> int:
        return self._generations.get(owner_id, 0)

    def get(self, owner_id: str, wallet_id: UUID) -> Optional[Decimal]:
        entry = self._entries.get((owner_id, wallet_id))
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[(owner_id, wallet_id)]
            return None
        return value

    def set(
        self,
        owner_id: str,
        wallet_id: UUID,
        value: Decimal,
        generation: Optional[int] = None,
    ) -> None:
        if not self.enabled:
            return
        if generation is not None and generation != self.generation(owner_id):
            # A write landed while the value was being computed
            return
        self._entries[(owner_id, wallet_id)] = (value, self._clock() + self._ttl)

    def invalidate_owner(self, owner_id: str) -> None:
        """Drop every cached balance for this owner."""
        self._generations[owner_id] = self.generation(owner_id) + 1
        for key in [k for k in self._entries if k[0] == owner_id]:
            del self._entries[key]

    def __len__(self) -> int:
        return len(self._entries)
