"""
Financial Summary

DESIGN DECISION: Summaries are DETERMINISTIC projections of the ledger.
Every number here is computed from transaction rows and goal
allocations; nothing is estimated and nothing comes from the LLM.

The chat layer may phrase the result, but it only ever sees what
this builder returns.
"""

from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from fundy.ledger.balance import ZERO, BalanceCalculator
from fundy.ledger.store import LedgerStore
from fundy.models.ledger import TransactionType, utc_now
from fundy.services.storage import GoalStorageInterface, WalletStorageInterface


class WalletBalance(BaseModel):
    wallet_id: UUID
    name: str
    balance: Decimal


class GoalProgress(BaseModel):
    goal_id: UUID
    goal_name: str
    target_amount: Decimal
    allocated_amount: Decimal
    current_amount: Decimal
    progress_percent: Decimal = Field(
        description="Share of target actually saved, 0-100"
    )


class FinancialSummary(BaseModel):
    """Snapshot of one owner's finances."""

    owner_id: str
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None

    total_income: Decimal = ZERO
    total_expenses: Decimal = ZERO
    total_savings: Decimal = ZERO
    total_allocated: Decimal = ZERO
    unallocated_savings: Decimal = ZERO
    investment_value: Decimal = ZERO
    total_wallet_balance: Decimal = ZERO

    expenses_by_category: dict[str, Decimal] = Field(default_factory=dict)
    wallets: list[WalletBalance] = Field(default_factory=list)
    goals: list[GoalProgress] = Field(default_factory=list)
    generated_at: datetime = Field(default_factory=utc_now)

    @property
    def net_flow(self) -> Decimal:
        """Income minus expenses over the period."""
        return self.total_income - self.total_expenses

    @property
    def net_worth(self) -> Decimal:
        return self.total_wallet_balance + self.total_savings + self.investment_value


def _progress(current: Decimal, target: Decimal) -> Decimal:
    percent = current / target * 100
    return min(max(percent, ZERO), Decimal("100")).quantize(Decimal("0.1"))


class FinancialSummaryBuilder:
    """
    Builds FinancialSummary objects from the ledger.

    Income and expense totals honour the optional date range.
    Balances, savings and goal progress are always all-time, because
    they describe what the owner holds now.
    """

    def __init__(
        self,
        store: LedgerStore,
        calculator: BalanceCalculator,
        wallets: WalletStorageInterface,
        goals: GoalStorageInterface,
    ):
        self._store = store
        self._calculator = calculator
        self._wallets = wallets
        self._goals = goals

    async def build(
        self,
        owner_id: str,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> FinancialSummary:
        rows = await self._store.list_by_owner(owner_id)

        def in_range(when: datetime) -> bool:
            if date_from and when < date_from:
                return False
            if date_to and when > date_to:
                return False
            return True

        income = ZERO
        expenses = ZERO
        by_category: dict[str, Decimal] = defaultdict(lambda: ZERO)
        savings = ZERO
        investment = ZERO

        for row in rows:
            if row.type == TransactionType.SAVINGS:
                savings += row.amount
            elif row.type == TransactionType.INVESTMENT:
                investment += row.amount
            elif not in_range(row.date):
                continue
            elif row.type == TransactionType.INCOME:
                income += row.amount
            elif row.type == TransactionType.EXPENSE:
                expenses += row.amount
                by_category[row.category or "Others"] += row.amount

        wallets = [
            WalletBalance(
                wallet_id=wallet.id,
                name=wallet.name,
                balance=await self._calculator.wallet_balance(owner_id, wallet.id),
            )
            for wallet in await self._wallets.list_wallets(owner_id)
        ]

        goals = []
        allocated = ZERO
        for goal in await self._goals.list_goals(owner_id):
            current = await self._calculator.goal_current_amount(owner_id, goal.goal_name)
            allocated += goal.allocated_amount
            goals.append(GoalProgress(
                goal_id=goal.id,
                goal_name=goal.goal_name,
                target_amount=goal.target_amount,
                allocated_amount=goal.allocated_amount,
                current_amount=current,
                progress_percent=_progress(current, goal.target_amount),
            ))

        return FinancialSummary(
            owner_id=owner_id,
            date_from=date_from,
            date_to=date_to,
            total_income=income,
            total_expenses=expenses,
            total_savings=savings,
            total_allocated=allocated,
            unallocated_savings=max(savings - allocated, ZERO),
            investment_value=investment,
            total_wallet_balance=sum((w.balance for w in wallets), ZERO),
            expenses_by_category=dict(
                sorted(by_category.items(), key=lambda item: item[1], reverse=True)
            ),
            wallets=wallets,
            goals=goals,
        )
