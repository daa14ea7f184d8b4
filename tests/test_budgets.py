"""Tests for monthly category budgets."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from conftest import OTHER_OWNER, OWNER

from fundy.errors import ValidationError
from fundy.models.audit import AuditEventType
from fundy.models.ledger import ExpenseCategory
from fundy.queries import BudgetStatus


def _march(day):
    return datetime(2026, 3, day, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def march_spending(run, app, funded_bca):
    """
    March 2026 on BCA:
    - Groceries 300,000 + 150,000
    - Dining Out 120,000
    - Coffee & Tea 10,000 (no budget)
    plus Groceries 50,000 on 1 April.
    """
    spend = app.pipeline.create_expense
    run(spend(OWNER, 300000, "Weekly shop", funded_bca.id, category="Groceries", date=_march(5)))
    run(spend(OWNER, 150000, "Market", funded_bca.id, category="Groceries", date=_march(20)))
    run(spend(OWNER, 120000, "Dinner", funded_bca.id, category="Dining Out", date=_march(14)))
    run(spend(OWNER, 10000, "Kopi", funded_bca.id, category="Coffee & Tea", date=_march(2)))
    run(spend(
        OWNER, 50000, "Market", funded_bca.id, category="Groceries",
        date=datetime(2026, 4, 1, tzinfo=timezone.utc),
    ))
    run(app.budgets.set_budget(OWNER, "Groceries", 500000, month=3, year=2026))
    run(app.budgets.set_budget(OWNER, "Dining Out", 100000, month=3, year=2026))


class TestBudgetReport:
    """Tests for BudgetTracker.report."""

    def test_budget_vs_spent(self, run, app, march_spending):
        report = run(app.budgets.report(OWNER, month=3, year=2026))

        dining, groceries = report.lines
        assert groceries.category == ExpenseCategory.GROCERIES
        assert groceries.spent == Decimal("450000")
        assert groceries.percent_used == Decimal("90.0")
        assert groceries.status == BudgetStatus.WARNING
        assert groceries.remaining == Decimal("50000")

        assert dining.spent == Decimal("120000")
        assert dining.percent_used == Decimal("120.0")
        assert dining.status == BudgetStatus.OVER
        assert dining.remaining == Decimal("-20000")

        assert report.total_budget == Decimal("600000")
        assert report.total_spent == Decimal("570000")
        assert report.overall_percent == Decimal("95.0")
        assert report.over_budget == [dining]

    def test_other_months_are_separate(self, run, app, march_spending):
        run(app.budgets.set_budget(OWNER, "Groceries", 200000, month=4, year=2026))
        report = run(app.budgets.report(OWNER, month=4, year=2026))

        (line,) = report.lines
        assert line.spent == Decimal("50000")
        assert line.status == BudgetStatus.ON_TRACK

    def test_deleting_an_expense_updates_spent(self, run, app, march_spending):
        dinner = next(
            row for row in run(app.store.list_by_owner(OWNER))
            if row.category == "Dining Out"
        )
        run(app.pipeline.delete_transaction(OWNER, dinner.id))

        report = run(app.budgets.report(OWNER, month=3, year=2026))
        assert report.lines[0].spent == Decimal("0")
        assert report.lines[0].status == BudgetStatus.ON_TRACK

    def test_text_rendering(self, run, app, march_spending):
        text = run(app.budgets.report(OWNER, month=3, year=2026)).to_text()

        assert text.startswith("📊 Budgets 2026-03: Rp570,000 of Rp600,000 (95.0%)")
        assert "🔴 Dining Out: Rp120,000 / Rp100,000 (120.0%)" in text
        assert "🟡 Groceries: Rp450,000 / Rp500,000 (90.0%)" in text

    def test_budgets_are_per_owner(self, run, app, march_spending):
        report = run(app.budgets.report(OTHER_OWNER, month=3, year=2026))
        assert report.lines == []
        assert report.overall_percent == Decimal("0")
        assert report.to_text() == "No budgets set for 2026-03."


class TestSetBudget:
    """Tests for setting and deleting budgets."""

    def test_setting_again_replaces_amount(self, run, app):
        first = run(app.budgets.set_budget(OWNER, "Groceries", 500000, month=3, year=2026))
        second = run(app.budgets.set_budget(OWNER, "groceries", 750000, month=3, year=2026))

        assert second.id == first.id
        (stored,) = run(app.budgets.list_budgets(OWNER, month=3, year=2026))
        assert stored.amount == Decimal("750000")

    def test_unknown_category_rejected(self, run, app):
        with pytest.raises(ValidationError) as exc:
            run(app.budgets.set_budget(OWNER, "Snacks", 100000, month=3, year=2026))

        assert "Groceries" in exc.value.details["categories"]
        assert "For example:" in exc.value.user_message

    @pytest.mark.parametrize("amount", [0, -5000])
    def test_amount_must_be_positive(self, run, app, amount):
        with pytest.raises(ValidationError):
            run(app.budgets.set_budget(OWNER, "Groceries", amount, month=3, year=2026))

    def test_month_out_of_range(self, run, app):
        with pytest.raises(ValidationError, match="between 1 and 12"):
            run(app.budgets.set_budget(OWNER, "Groceries", 100000, month=13, year=2026))

    def test_delete(self, run, app):
        run(app.budgets.set_budget(OWNER, "Fuel", 300000, month=3, year=2026))

        assert run(app.budgets.delete_budget(OWNER, "Fuel", month=3, year=2026)) is True
        assert run(app.budgets.delete_budget(OWNER, "Fuel", month=3, year=2026)) is False
        assert run(app.budgets.list_budgets(OWNER, month=3, year=2026)) == []

    def test_changes_are_audited(self, run, app):
        run(app.budgets.set_budget(OWNER, "Fuel", 300000, month=3, year=2026))
        run(app.budgets.delete_budget(OWNER, "Fuel", month=3, year=2026))

        types = {e.event_type for e in run(app.audit_storage.get_recent_events(OWNER))}
        assert AuditEventType.BUDGET_SET in types
        assert AuditEventType.BUDGET_DELETED in types
