"""
Free-text name resolution.

The classifier hands us names the way the user typed them ("bca",
"gopay saya", "laptop baru"). These helpers map them onto the owner's
wallets and goals once, at the boundary; only the resolved id or
canonical name travels further into the ledger.

Priority order, all case-insensitive:
1. exact match
2. the mention appears inside the candidate name  ("BCA" → "BCA Debit")
3. the candidate name appears inside the mention  ("GoPay saya" → "GoPay")
"""

from collections.abc import Callable, Iterable
from typing import Optional, TypeVar

from fundy.models.ledger import SavingsGoal, Wallet


T = TypeVar("T")


def _normalise(text: str) -> str:
    return " ".join(text.casefold().split())


def resolve_by_name(
    mention: Optional[str],
    candidates: Iterable[T],
    name_of: Callable[[T], str],
) -> Optional[T]:
    """Return the best candidate for a free-text mention, or None."""
    if not mention or not mention.strip():
        return None

    wanted = _normalise(mention)
    named = [(candidate, _normalise(name_of(candidate))) for candidate in candidates]

    for candidate, name in named:
        if name == wanted:
            return candidate
    for candidate, name in named:
        if wanted in name:
            return candidate
    for candidate, name in named:
        if name and name in wanted:
            return candidate
    return None


def resolve_wallet(mention: Optional[str], wallets: Iterable[Wallet]) -> Optional[Wallet]:
    return resolve_by_name(mention, wallets, lambda w: w.name)


def resolve_goal(mention: Optional[str], goals: Iterable[SavingsGoal]) -> Optional[SavingsGoal]:
    return resolve_by_name(mention, goals, lambda g: g.goal_name)
