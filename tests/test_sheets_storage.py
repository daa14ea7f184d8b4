"""Tests for the Google Sheets storage backends against an in-process fake sheet."""

from decimal import Decimal

import pytest

from conftest import OWNER

from fundy.models.ledger import (
    Budget,
    ExpenseCategory,
    Transaction,
    TransactionType,
    TransferType,
)
from fundy.services.storage import GoogleSheetsBudgetStorage, GoogleSheetsLedgerStorage
from fundy.services.storage.google_sheets import BUDGET_COLUMNS, TRANSACTION_COLUMNS


class FakeWorksheet:
    """The subset of gspread.Worksheet the storage uses."""

    def __init__(self, columns=TRANSACTION_COLUMNS):
        self.rows = [list(columns)]
        self.api_calls = 0

    def get_all_values(self):
        return [list(row) for row in self.rows]

    def append_row(self, row, value_input_option=None):
        self.api_calls += 1
        self.rows.append(list(row))

    def append_rows(self, rows, value_input_option=None):
        self.api_calls += 1
        self.rows.extend(list(row) for row in rows)

    def delete_rows(self, index):
        self.api_calls += 1
        del self.rows[index - 1]

    def update(self, range_name, values):
        self.api_calls += 1
        index = int(range_name[1:])
        self.rows[index - 1] = list(values[0])


class FakeClient:
    def __init__(self):
        self.sheet = FakeWorksheet()
        self.budgets_sheet = FakeWorksheet(BUDGET_COLUMNS)

    def get_transactions_sheet(self):
        return self.sheet

    def get_budgets_sheet(self):
        return self.budgets_sheet


@pytest.fixture
def client():
    return FakeClient()


@pytest.fixture
def storage(client):
    return GoogleSheetsLedgerStorage(client)


def _row(amount, type_=TransactionType.EXPENSE, **fields):
    return Transaction(
        owner_id=OWNER,
        description=fields.pop("description", "Coffee"),
        amount=Decimal(str(amount)),
        type=type_,
        **fields,
    )


class TestSheetsLedgerStorage:
    """Tests for GoogleSheetsLedgerStorage."""

    def test_row_survives_the_sheet(self, run, storage):
        original = _row(
            "-1500.50",
            TransactionType.TRANSFER,
            transfer_type=TransferType.WALLET_TO_WALLET,
            description="Transfer to GoPay",
        )
        run(storage.insert(original))

        (loaded,) = run(storage.list_by_owner(OWNER))
        assert loaded.id == original.id
        assert loaded.amount == Decimal("-1500.50")
        assert loaded.transfer_type == TransferType.WALLET_TO_WALLET
        assert loaded.date == original.date

    def test_atomic_writes_once_on_commit(self, run, storage, client):
        async def pair():
            async with storage.atomic():
                await storage.insert(_row(100))
                await storage.insert(_row(200))
                assert len(client.sheet.rows) == 1

        run(pair())

        assert len(client.sheet.rows) == 3
        assert client.sheet.api_calls == 1

    def test_atomic_failure_writes_nothing(self, run, storage, client):
        async def broken():
            async with storage.atomic():
                await storage.insert(_row(100))
                raise RuntimeError("second leg failed")

        with pytest.raises(RuntimeError):
            run(broken())
        assert len(client.sheet.rows) == 1

    def test_buffered_delete(self, run, storage, client):
        keep = run(storage.insert(_row(1)))
        drop = run(storage.insert(_row(2)))

        async def replace():
            async with storage.atomic():
                assert await storage.delete(OWNER, drop.id) is True
                await storage.insert(_row(3))

        run(replace())

        amounts = sorted(r.amount for r in run(storage.list_by_owner(OWNER)))
        assert amounts == [Decimal("1"), Decimal("3")]
        assert run(storage.get(OWNER, keep.id)) is not None

    def test_update_rewrites_row(self, run, storage):
        row = run(storage.insert(_row(100)))
        updated = run(storage.update(OWNER, row.id, {"description": "Tea"}))

        assert updated.description == "Tea"
        assert run(storage.get(OWNER, row.id)).description == "Tea"
        assert run(storage.update("someone-else", row.id, {"description": "x"})) is None

    def test_malformed_rows_skipped(self, run, storage, client):
        run(storage.insert(_row(100)))
        client.sheet.rows.append(["not-a-uuid", OWNER, "junk"])

        assert len(run(storage.list_by_owner(OWNER))) == 1


class TestSheetsBudgetStorage:
    """Tests for GoogleSheetsBudgetStorage."""

    @pytest.fixture
    def budgets(self, client):
        return GoogleSheetsBudgetStorage(client)

    def _budget(self, amount, category=ExpenseCategory.GROCERIES, month=3):
        return Budget(
            owner_id=OWNER,
            category=category,
            amount=Decimal(str(amount)),
            month=month,
            year=2026,
        )

    def test_upsert_rewrites_existing_row(self, run, budgets, client):
        first = run(budgets.upsert_budget(self._budget(500000)))
        second = run(budgets.upsert_budget(self._budget(750000)))

        assert second.id == first.id
        assert len(client.budgets_sheet.rows) == 2
        (stored,) = run(budgets.list_budgets(OWNER, 3, 2026))
        assert stored.amount == Decimal("750000")
        assert stored.category == ExpenseCategory.GROCERIES

    def test_list_filters_by_month(self, run, budgets):
        run(budgets.upsert_budget(self._budget(500000)))
        run(budgets.upsert_budget(self._budget(200000, month=4)))

        assert [b.month for b in run(budgets.list_budgets(OWNER))] == [3, 4]
        assert [b.month for b in run(budgets.list_budgets(OWNER, 4, 2026))] == [4]
        assert run(budgets.list_budgets("someone-else")) == []

    def test_delete(self, run, budgets, client):
        run(budgets.upsert_budget(self._budget(500000)))
        run(budgets.upsert_budget(self._budget(100000, ExpenseCategory.FUEL)))

        assert run(budgets.delete_budget(OWNER, ExpenseCategory.FUEL, 3, 2026)) is True
        assert run(budgets.delete_budget(OWNER, ExpenseCategory.FUEL, 3, 2026)) is False
        assert len(client.budgets_sheet.rows) == 2
