"""
Monthly Budgets

A budget caps what an owner means to spend on one expense category in
one calendar month. Spending is never stored next to the budget: the
report sums the month's expense rows each time it is built, so edits
and deletions in the ledger show up immediately.

Status thresholds follow the usual traffic-light reading:
- on_track: under 80% used
- warning:  80% up to (not including) 100%
- over:     100% or more
"""

from collections import defaultdict
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

import structlog
from pydantic import BaseModel, Field

from fundy.audit import AuditLogger
from fundy.errors import ValidationError
from fundy.ledger.balance import ZERO
from fundy.ledger.pipeline import to_amount
from fundy.ledger.store import LedgerStore
from fundy.models.audit import AuditEventType
from fundy.models.ledger import (
    Budget,
    ExpenseCategory,
    TransactionType,
    format_money,
    utc_now,
)
from fundy.services.storage import BudgetStorageInterface


logger = structlog.get_logger(__name__)

WARNING_PERCENT = Decimal("80")
FULL_PERCENT = Decimal("100")

BUDGET_EXAMPLE = "Groceries 2,000,000"


class BudgetStatus(str, Enum):
    ON_TRACK = "on_track"
    WARNING = "warning"
    OVER = "over"


def _percent(part: Decimal, whole: Decimal) -> Decimal:
    if whole <= 0:
        return ZERO
    return (part / whole * 100).quantize(Decimal("0.1"))


def _status(percent_used: Decimal) -> BudgetStatus:
    if percent_used >= FULL_PERCENT:
        return BudgetStatus.OVER
    if percent_used >= WARNING_PERCENT:
        return BudgetStatus.WARNING
    return BudgetStatus.ON_TRACK


class BudgetLine(BaseModel):
    """Budget vs actual spending for one category."""

    budget_id: UUID
    category: ExpenseCategory
    budget: Decimal
    spent: Decimal
    percent_used: Decimal = Field(description="Not capped; 125.0 means 25% over")
    status: BudgetStatus

    @property
    def remaining(self) -> Decimal:
        """Negative once the budget is exceeded."""
        return self.budget - self.spent


class BudgetReport(BaseModel):
    """Every budget an owner set for one month, with that month's spending."""

    owner_id: str
    month: int
    year: int
    lines: list[BudgetLine] = Field(default_factory=list)
    total_budget: Decimal = ZERO
    total_spent: Decimal = ZERO

    @property
    def overall_percent(self) -> Decimal:
        return _percent(self.total_spent, self.total_budget)

    @property
    def over_budget(self) -> list[BudgetLine]:
        return [line for line in self.lines if line.status == BudgetStatus.OVER]

    def to_text(self) -> str:
        """Plain-text rendering for chat channels."""
        if not self.lines:
            return f"No budgets set for {self.year:04d}-{self.month:02d}."
        icons = {
            BudgetStatus.ON_TRACK: "🟢",
            BudgetStatus.WARNING: "🟡",
            BudgetStatus.OVER: "🔴",
        }
        lines = [
            f"📊 Budgets {self.year:04d}-{self.month:02d}: "
            f"{format_money(self.total_spent)} of {format_money(self.total_budget)} "
            f"({self.overall_percent}%)"
        ]
        lines.extend(
            f"   {icons[line.status]} {line.category.value}: "
            f"{format_money(line.spent)} / {format_money(line.budget)} "
            f"({line.percent_used}%)"
            for line in self.lines
        )
        return "\n".join(lines)


class BudgetTracker:
    """
    Sets, removes and reports on monthly category budgets.

    Month and year default to the current UTC month.
    """

    def __init__(
        self,
        store: LedgerStore,
        budgets: BudgetStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._budgets = budgets
        self._audit_logger = audit_logger

    @staticmethod
    def _period(month: Optional[int], year: Optional[int]) -> tuple[int, int]:
        now = utc_now()
        month = month or now.month
        year = year or now.year
        if not 1 <= month <= 12:
            raise ValidationError("Month must be between 1 and 12.")
        return month, year

    @staticmethod
    def _category(category: Optional[str]) -> ExpenseCategory:
        """Budgets only accept exact categories; free text is not coerced."""
        member = ExpenseCategory.lookup(category)
        if member is None:
            raise ValidationError(
                f"Unknown expense category: {category!r}.",
                example=BUDGET_EXAMPLE,
                details={"categories": [c.value for c in ExpenseCategory]},
            )
        return member

    async def set_budget(
        self,
        owner_id: str,
        category: str,
        amount,
        month: Optional[int] = None,
        year: Optional[int] = None,
    ) -> Budget:
        """
        Create the category's budget for the month, or replace its amount.

        Raises:
            ValidationError: Unknown category, non-positive amount or bad month
        """
        member = self._category(category)
        amount = to_amount(amount)
        month, year = self._period(month, year)

        budget = await self._budgets.upsert_budget(Budget(
            owner_id=owner_id,
            category=member,
            amount=amount,
            month=month,
            year=year,
        ))

        logger.info(
            "budget_set",
            owner_id=owner_id,
            category=member.value,
            amount=str(amount),
            period=budget.period,
        )
        if self._audit_logger:
            await self._audit_logger.log_account_event(
                owner_id,
                AuditEventType.BUDGET_SET,
                "budget",
                budget.id,
                f"{member.value} {budget.period}",
            )
        return budget

    async def delete_budget(
        self,
        owner_id: str,
        category: str,
        month: Optional[int] = None,
        year: Optional[int] = None,
    ) -> bool:
        """Returns False when no budget was set for that category and month."""
        member = self._category(category)
        month, year = self._period(month, year)

        existing = [
            b for b in await self._budgets.list_budgets(owner_id, month, year)
            if b.category == member
        ]
        if not existing:
            return False

        deleted = await self._budgets.delete_budget(owner_id, member, month, year)
        if deleted and self._audit_logger:
            await self._audit_logger.log_account_event(
                owner_id,
                AuditEventType.BUDGET_DELETED,
                "budget",
                existing[0].id,
                f"{member.value} {existing[0].period}",
            )
        return deleted

    async def list_budgets(
        self,
        owner_id: str,
        month: Optional[int] = None,
        year: Optional[int] = None,
    ) -> list[Budget]:
        month, year = self._period(month, year)
        return await self._budgets.list_budgets(owner_id, month, year)

    async def spending_by_category(
        self,
        owner_id: str,
        month: int,
        year: int,
    ) -> dict[str, Decimal]:
        """Expense totals per category for one calendar month."""
        spent: dict[str, Decimal] = defaultdict(lambda: ZERO)
        rows = await self._store.list_by_owner(
            owner_id, transaction_type=TransactionType.EXPENSE
        )
        for row in rows:
            if row.date.year == year and row.date.month == month:
                spent[row.category or ExpenseCategory.OTHERS.value] += row.amount
        return dict(spent)

    async def report(
        self,
        owner_id: str,
        month: Optional[int] = None,
        year: Optional[int] = None,
    ) -> BudgetReport:
        """
        Budget vs spent for every category budgeted in the month.

        Categories with spending but no budget are left out.
        """
        month, year = self._period(month, year)
        budgets = await self._budgets.list_budgets(owner_id, month, year)
        spent = await self.spending_by_category(owner_id, month, year)

        lines = []
        for budget in budgets:
            amount_spent = spent.get(budget.category.value, ZERO)
            percent_used = _percent(amount_spent, budget.amount)
            lines.append(BudgetLine(
                budget_id=budget.id,
                category=budget.category,
                budget=budget.amount,
                spent=amount_spent,
                percent_used=percent_used,
                status=_status(percent_used),
            ))

        return BudgetReport(
            owner_id=owner_id,
            month=month,
            year=year,
            lines=lines,
            total_budget=sum((line.budget for line in lines), ZERO),
            total_spent=sum((line.spent for line in lines), ZERO),
        )
