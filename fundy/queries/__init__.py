"""Financial summary and budget queries."""

from fundy.queries.budgets import BudgetLine, BudgetReport, BudgetStatus, BudgetTracker
from fundy.queries.summary import (
    FinancialSummary,
    FinancialSummaryBuilder,
    GoalProgress,
    WalletBalance,
)

__all__ = [
    "BudgetLine",
    "BudgetReport",
    "BudgetStatus",
    "BudgetTracker",
    "FinancialSummary",
    "FinancialSummaryBuilder",
    "GoalProgress",
    "WalletBalance",
]
