"""
Balance Calculator

Balances are never stored. A wallet's balance is the sum of the
balance effect of every row that references it; a goal's current
amount is the sum of savings rows carrying its name.

The sign of each row type lives in exactly one place,
`wallet_balance_effect`, and every balance computation goes through it.
"""

from decimal import Decimal
from uuid import UUID

from fundy.ledger.store import LedgerStore
from fundy.models.ledger import Transaction, TransactionType


ZERO = Decimal("0")


def wallet_balance_effect(transaction: Transaction) -> Decimal:
    """
    How much a row moves the balance of the wallet it references.

    income      +amount
    transfer    +amount  (legs carry their own sign)
    expense     -amount
    savings     -amount  (a deposit leaves the wallet; withdrawals come
                          back through a separate transfer leg)
    investment   0       (portfolio restatement, not a wallet movement)
    """
    if transaction.type in (TransactionType.INCOME, TransactionType.TRANSFER):
        return transaction.amount
    if transaction.type in (TransactionType.EXPENSE, TransactionType.SAVINGS):
        return -transaction.amount
    return ZERO


class BalanceCalculator:
    """Derives wallet balances and goal amounts from the ledger."""

    def __init__(self, store: LedgerStore):
        self._store = store

    async def wallet_balance(self, owner_id: str, wallet_id: UUID) -> Decimal:
        """Cached for a few seconds; any write for the owner drops the entry."""
        cache = self._store.cache
        cached = cache.get(owner_id, wallet_id)
        if cached is not None:
            return cached

        generation = cache.generation(owner_id)
        rows = await self._store.list_by_wallet(owner_id, wallet_id)
        balance = sum((wallet_balance_effect(row) for row in rows), ZERO)
        cache.set(owner_id, wallet_id, balance, generation=generation)
        return balance

    async def goal_current_amount(self, owner_id: str, goal_name: str) -> Decimal:
        """Sum of savings rows for this goal. Not cached."""
        wanted = goal_name.strip().casefold()
        rows = await self._store.list_by_owner(
            owner_id, transaction_type=TransactionType.SAVINGS
        )
        return sum(
            (
                row.amount for row in rows
                if row.goal_name and row.goal_name.strip().casefold() == wanted
            ),
            ZERO,
        )

    async def total_savings(self, owner_id: str) -> Decimal:
        """Everything actually saved, across every wallet and goal."""
        rows = await self._store.list_by_owner(
            owner_id, transaction_type=TransactionType.SAVINGS
        )
        return sum((row.amount for row in rows), ZERO)
