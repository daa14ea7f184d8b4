"""Tests for single-row transaction creation, editing and deletion."""

import asyncio
from decimal import Decimal
from uuid import uuid4

import pytest

from conftest import OTHER_OWNER, OWNER

from fundy.errors import InsufficientFundsError, NotFoundError, ValidationError
from fundy.models.ledger import ExpenseCategory, IncomeSource, TransactionType


class TestExpense:
    """Tests for TransactionPipeline.create_expense."""

    def test_overspending_is_rejected(self, run, app, funded_bca):
        """BCA holds 1,000,000; an expense of 1,200,000 fails with the exact figures."""
        with pytest.raises(InsufficientFundsError) as exc:
            run(app.pipeline.create_expense(OWNER, 1200000, "Phone", funded_bca.id))

        assert exc.value.current_balance == Decimal("1000000")
        assert exc.value.required_amount == Decimal("1200000")
        assert exc.value.wallet_name == "BCA"
        assert "Current balance: Rp1,000,000, Required: Rp1,200,000" in exc.value.user_message
        assert len(run(app.store.list_by_wallet(OWNER, funded_bca.id))) == 1

    def test_concurrent_expenses_cannot_both_pass(self, run, app, funded_bca, monkeypatch):
        """Two 700,000 expenses racing on 1,000,000: one lands, one is refused."""
        storage = app.store._storage
        list_by_wallet = storage.list_by_wallet

        async def slow_list_by_wallet(owner_id, wallet_id):
            await asyncio.sleep(0)
            return await list_by_wallet(owner_id, wallet_id)

        monkeypatch.setattr(storage, "list_by_wallet", slow_list_by_wallet)

        async def race():
            return await asyncio.gather(
                app.pipeline.create_expense(OWNER, 700000, "Rent", funded_bca.id),
                app.pipeline.create_expense(OWNER, 700000, "Rent", funded_bca.id),
                return_exceptions=True,
            )

        outcomes = run(race())

        assert sorted(type(o).__name__ for o in outcomes) == [
            "InsufficientFundsError",
            "Transaction",
        ]
        assert run(app.calculator.wallet_balance(OWNER, funded_bca.id)) == Decimal("300000")

    def test_missing_wallet_lists_available_wallets(self, run, app, bca, gopay):
        """The message shows an example and the owner's wallet names."""
        with pytest.raises(ValidationError) as exc:
            run(app.pipeline.create_expense(OWNER, 50000, "Coffee", None))

        assert exc.value.available_wallets == ["BCA", "GoPay"]
        assert "For example:" in exc.value.user_message
        assert "Your wallets: BCA, GoPay." in exc.value.user_message

    def test_foreign_wallet_not_found(self, run, app, funded_bca):
        """Someone else's wallet looks exactly like a missing one."""
        with pytest.raises(NotFoundError):
            run(app.pipeline.create_expense(OTHER_OWNER, 1000, "Coffee", funded_bca.id))

    def test_unknown_category_recorded_as_others(self, run, app, funded_bca):
        row = run(app.pipeline.create_expense(
            OWNER, 1000, "Thing", funded_bca.id, category="Mystery"
        ))
        assert row.category == ExpenseCategory.OTHERS.value

    def test_non_positive_amount_rejected(self, run, app, funded_bca):
        with pytest.raises(ValidationError):
            run(app.pipeline.create_expense(OWNER, 0, "Nothing", funded_bca.id))
        with pytest.raises(ValidationError):
            run(app.pipeline.create_expense(OWNER, -5, "Nothing", funded_bca.id))

    def test_inactive_wallet_rejected(self, run, app, funded_bca):
        run(app.accounts.deactivate_wallet(OWNER, funded_bca.id))
        with pytest.raises(ValidationError, match="inactive"):
            run(app.pipeline.create_expense(OWNER, 1000, "Coffee", funded_bca.id))

    def test_create_then_delete_restores_balance(self, run, app, funded_bca):
        """Round-trip: an expense followed by its deletion is a no-op on the balance."""
        before = run(app.calculator.wallet_balance(OWNER, funded_bca.id))
        row = run(app.pipeline.create_expense(OWNER, 250000, "Shoes", funded_bca.id))
        assert run(app.calculator.wallet_balance(OWNER, funded_bca.id)) == before - 250000

        run(app.pipeline.delete_transaction(OWNER, row.id))
        assert run(app.calculator.wallet_balance(OWNER, funded_bca.id)) == before


class TestIncome:
    """Tests for TransactionPipeline.create_income."""

    def test_income_requires_wallet(self, run, app, bca):
        with pytest.raises(ValidationError, match="Gaji 5 juta ke BCA"):
            run(app.pipeline.create_income(OWNER, 5000000, "Salary", None))

    def test_income_source_coerced(self, run, app, bca):
        row = run(app.pipeline.create_income(OWNER, 100, "Gift", bca.id, source="gift"))
        assert row.source == IncomeSource.GIFT
        assert row.type == TransactionType.INCOME


class TestInvestment:
    """Tests for portfolio restatement."""

    def test_restatement_replaces_previous_value(self, run, app):
        """Only the latest portfolio value remains in the ledger."""
        run(app.pipeline.restate_investment(OWNER, 5000000, "Portfolio"))
        latest = run(app.pipeline.restate_investment(OWNER, 7000000, "Portfolio", asset_name="BBCA"))

        rows = run(app.store.list_by_owner(OWNER, transaction_type=TransactionType.INVESTMENT))
        assert [r.id for r in rows] == [latest.id]
        assert rows[0].amount == Decimal("7000000")
        assert rows[0].wallet_id is None


class TestEditAndDelete:
    """Tests for update_transaction and delete_transaction."""

    def test_update_description_and_category(self, run, app, funded_bca):
        row = run(app.pipeline.create_expense(OWNER, 1000, "Coffe", funded_bca.id))
        updated = run(app.pipeline.update_transaction(
            OWNER, row.id, description="Coffee", category="coffee & tea"
        ))
        assert updated.description == "Coffee"
        assert updated.category == ExpenseCategory.COFFEE_TEA.value

    def test_growing_expense_checks_funds(self, run, app, funded_bca):
        row = run(app.pipeline.create_expense(OWNER, 900000, "Rent", funded_bca.id))
        with pytest.raises(InsufficientFundsError):
            run(app.pipeline.update_transaction(OWNER, row.id, amount=1100000))

        run(app.pipeline.update_transaction(OWNER, row.id, amount=1000000))
        assert run(app.calculator.wallet_balance(OWNER, funded_bca.id)) == Decimal("0")

    def test_leg_amount_not_editable(self, run, app, funded_bca, gopay):
        result = run(app.transfers.transfer(OWNER, funded_bca.id, gopay.id, 1000))
        with pytest.raises(ValidationError, match="can't be edited"):
            run(app.pipeline.update_transaction(OWNER, result.legs[0].id, amount=2000))

    def test_category_only_for_expenses(self, run, app, bca):
        row = run(app.pipeline.create_income(OWNER, 1000, "Salary", bca.id))
        with pytest.raises(ValidationError, match="Only expenses"):
            run(app.pipeline.update_transaction(OWNER, row.id, category="Rent"))

    def test_nothing_to_update(self, run, app, funded_bca):
        row = run(app.pipeline.create_expense(OWNER, 1000, "Coffee", funded_bca.id))
        with pytest.raises(ValidationError, match="Nothing to update"):
            run(app.pipeline.update_transaction(OWNER, row.id))

    def test_delete_foreign_row_not_found(self, run, app, funded_bca):
        row = run(app.pipeline.create_expense(OWNER, 1000, "Coffee", funded_bca.id))
        with pytest.raises(NotFoundError):
            run(app.pipeline.delete_transaction(OTHER_OWNER, row.id))
        with pytest.raises(NotFoundError):
            run(app.pipeline.delete_transaction(OWNER, uuid4()))
