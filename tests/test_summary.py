"""Tests for the deterministic financial summary."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from conftest import OWNER

from fundy.models.ledger import ExpenseCategory


@pytest.fixture
def busy_owner(run, app, funded_bca, gopay):
    """A month of activity across wallets, savings and investments."""
    laptop = run(app.accounts.create_goal(OWNER, "Laptop", 10000000))
    run(app.pipeline.create_expense(OWNER, 50000, "Coffee", funded_bca.id, category="Coffee & Tea"))
    run(app.pipeline.create_expense(OWNER, 200000, "Rent", funded_bca.id, category="Rent"))
    run(app.transfers.transfer(OWNER, funded_bca.id, gopay.id, 100000, admin_fee=2000))
    run(app.transfers.deposit_to_savings(OWNER, funded_bca.id, 300000, goal_name="Laptop"))
    run(app.allocator.allocate(OWNER, laptop.id, None, 100000))
    run(app.pipeline.restate_investment(OWNER, 5000000, "Portfolio"))
    return funded_bca, gopay


class TestFinancialSummary:
    """Tests for FinancialSummaryBuilder.build."""

    def test_totals(self, run, app, busy_owner):
        summary = run(app.summary.build(OWNER))

        assert summary.total_income == Decimal("1000000")
        assert summary.total_expenses == Decimal("252000")
        assert summary.total_savings == Decimal("300000")
        assert summary.total_allocated == Decimal("100000")
        assert summary.unallocated_savings == Decimal("200000")
        assert summary.investment_value == Decimal("5000000")
        assert summary.net_flow == Decimal("748000")

    def test_categories_largest_first(self, run, app, busy_owner):
        summary = run(app.summary.build(OWNER))
        assert list(summary.expenses_by_category) == [
            ExpenseCategory.RENT.value,
            ExpenseCategory.COFFEE_TEA.value,
            ExpenseCategory.BANK_CHARGES.value,
        ]

    def test_wallets_and_net_worth(self, run, app, busy_owner):
        bca, gopay = busy_owner
        summary = run(app.summary.build(OWNER))

        balances = {w.name: w.balance for w in summary.wallets}
        assert balances == {"BCA": Decimal("348000"), "GoPay": Decimal("100000")}
        assert summary.total_wallet_balance == Decimal("448000")
        assert summary.net_worth == Decimal("5748000")

    def test_goal_progress_uses_actual_savings(self, run, app, busy_owner):
        (goal,) = run(app.summary.build(OWNER)).goals
        assert goal.current_amount == Decimal("300000")
        assert goal.allocated_amount == Decimal("100000")
        assert goal.progress_percent == Decimal("3.0")

    def test_date_range_filters_flows_only(self, run, app, busy_owner):
        bca, _ = busy_owner
        run(app.pipeline.create_expense(
            OWNER,
            10000,
            "Old snack",
            bca.id,
            date=datetime(2020, 1, 1, tzinfo=timezone.utc),
        ))

        summary = run(app.summary.build(
            OWNER, date_from=datetime(2021, 1, 1, tzinfo=timezone.utc)
        ))

        assert summary.total_expenses == Decimal("252000")
        assert summary.total_wallet_balance == Decimal("438000")

    def test_empty_owner(self, run, app):
        summary = run(app.summary.build("nobody"))
        assert summary.net_worth == 0
        assert summary.wallets == []
        assert summary.expenses_by_category == {}
