"""
Ledger package.

Ledger store, balance derivation, single-row pipeline, paired
operations, savings goal allocation and account registry.
"""

from fundy.ledger.accounts import AccountRegistry
from fundy.ledger.allocator import SavingsGoalAllocator
from fundy.ledger.balance import BalanceCalculator, wallet_balance_effect
from fundy.ledger.cache import BalanceCache
from fundy.ledger.pipeline import TransactionPipeline
from fundy.ledger.resolution import resolve_goal, resolve_wallet
from fundy.ledger.store import LedgerStore
from fundy.ledger.transfers import PairedOperationConstructor

__all__ = [
    "AccountRegistry",
    "BalanceCache",
    "BalanceCalculator",
    "LedgerStore",
    "PairedOperationConstructor",
    "SavingsGoalAllocator",
    "TransactionPipeline",
    "resolve_goal",
    "resolve_wallet",
    "wallet_balance_effect",
]
