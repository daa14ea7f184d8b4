"""Tests for transfers and savings moves (paired operations)."""

from decimal import Decimal

import pytest

from conftest import OWNER

from fundy.errors import (
    AllocatedMoneyError,
    InsufficientFundsError,
    NotFoundError,
    ValidationError,
)
from fundy.ledger import (
    BalanceCalculator,
    LedgerStore,
    PairedOperationConstructor,
    SavingsGoalAllocator,
    TransactionPipeline,
    wallet_balance_effect,
)
from fundy.models.ledger import (
    ExpenseCategory,
    TransactionType,
    TransferType,
    Wallet,
)
from fundy.services.storage import (
    InMemoryGoalStorage,
    InMemoryLedgerStorage,
    InMemoryWalletStorage,
    StorageError,
)


class FailingLedgerStorage(InMemoryLedgerStorage):
    """Fails the Nth insert so a half-written pair can be observed."""

    def __init__(self, fail_on_insert: int):
        super().__init__()
        self._fail_on = fail_on_insert
        self._inserts = 0

    async def insert(self, transaction):
        self._inserts += 1
        if self._inserts == self._fail_on:
            raise StorageError("disk on fire")
        return await super().insert(transaction)


class TestWalletTransfer:
    """Tests for PairedOperationConstructor.transfer."""

    def test_transfer_with_admin_fee(self, run, app, funded_bca, gopay):
        """500,000 BCA → GoPay with a 2,000 fee yields three rows."""
        bca = funded_bca

        result = run(app.transfers.transfer(OWNER, bca.id, gopay.id, 500000, admin_fee=2000))

        outgoing, incoming = result.legs
        assert (outgoing.amount, outgoing.wallet_id) == (Decimal("-500000"), bca.id)
        assert (incoming.amount, incoming.wallet_id) == (Decimal("500000"), gopay.id)
        assert outgoing.type == incoming.type == TransactionType.TRANSFER

        fee = result.fee
        assert fee.type == TransactionType.EXPENSE
        assert fee.wallet_id == bca.id
        assert fee.category == ExpenseCategory.BANK_CHARGES.value
        assert wallet_balance_effect(fee) == Decimal("-2000")
        assert len(result.rows) == 3

        assert run(app.calculator.wallet_balance(OWNER, bca.id)) == Decimal("498000")
        assert run(app.calculator.wallet_balance(OWNER, gopay.id)) == Decimal("500000")

    def test_legs_are_a_matched_pair(self, run, app, funded_bca, gopay):
        """Equal absolute amounts, opposite effect, same instant."""
        outgoing, incoming = run(app.transfers.transfer(
            OWNER, funded_bca.id, gopay.id, 123456
        )).legs

        assert abs(outgoing.amount) == abs(incoming.amount)
        assert wallet_balance_effect(outgoing) == -wallet_balance_effect(incoming)
        assert outgoing.date == incoming.date
        assert outgoing.transfer_type == incoming.transfer_type == TransferType.WALLET_TO_WALLET

    def test_same_wallet_rejected(self, run, app, funded_bca):
        with pytest.raises(ValidationError, match="Cannot transfer to the same wallet"):
            run(app.transfers.transfer(OWNER, funded_bca.id, funded_bca.id, 1000))

    def test_missing_destination_rejected(self, run, app, funded_bca):
        with pytest.raises(ValidationError, match="both source and destination"):
            run(app.transfers.transfer(OWNER, funded_bca.id, None, 1000))

    def test_insufficient_source_writes_nothing(self, run, app, funded_bca, gopay):
        with pytest.raises(InsufficientFundsError):
            run(app.transfers.transfer(OWNER, funded_bca.id, gopay.id, 2000000))
        assert run(app.store.list_by_wallet(OWNER, gopay.id)) == []

    def test_failed_fee_does_not_undo_transfer(self, run, app, funded_bca, gopay):
        """Moving the whole balance leaves nothing for the fee; the legs stay."""
        result = run(app.transfers.transfer(
            OWNER, funded_bca.id, gopay.id, 1000000, admin_fee=5000
        ))

        assert result.fee is None
        assert "Insufficient balance in BCA" in result.fee_error
        assert len(result.legs) == 2
        assert run(app.calculator.wallet_balance(OWNER, gopay.id)) == Decimal("1000000")

        events = run(app.audit_storage.get_recent_events(OWNER))
        assert any(e.event_type.value == "admin_fee_failed" for e in events)


class TestAtomicPairs:
    """Either both legs are written or neither is."""

    def _components(self, storage):
        wallets = InMemoryWalletStorage()
        store = LedgerStore(storage)
        calculator = BalanceCalculator(store)
        pipeline = TransactionPipeline(store, calculator, wallets)
        allocator = SavingsGoalAllocator(store, calculator, InMemoryGoalStorage(), wallets)
        return wallets, store, pipeline, PairedOperationConstructor(store, pipeline, allocator)

    def test_second_leg_failure_rolls_back_first(self, run):
        # Insert 1 is the funding income, 2 the outgoing leg, 3 the incoming leg
        storage = FailingLedgerStorage(fail_on_insert=3)
        wallets, store, pipeline, transfers = self._components(storage)
        source = run(wallets.insert_wallet(Wallet(owner_id=OWNER, name="BCA")))
        target = run(wallets.insert_wallet(Wallet(owner_id=OWNER, name="GoPay")))
        run(pipeline.create_income(OWNER, 1000, "Salary", source.id))

        with pytest.raises(StorageError):
            run(transfers.transfer(OWNER, source.id, target.id, 500))

        rows = run(store.list_by_owner(OWNER))
        assert [r.type for r in rows] == [TransactionType.INCOME]

    def test_withdrawal_failure_rolls_back_savings_leg(self, run):
        # 1 income, 2 deposit, 3 savings leg of the withdrawal, 4 wallet leg
        storage = FailingLedgerStorage(fail_on_insert=4)
        wallets, store, pipeline, transfers = self._components(storage)
        wallet = run(wallets.insert_wallet(Wallet(owner_id=OWNER, name="BCA")))
        run(pipeline.create_income(OWNER, 1000, "Salary", wallet.id))
        run(transfers.deposit_to_savings(OWNER, wallet.id, 600))

        with pytest.raises(StorageError):
            run(transfers.withdraw_from_savings(OWNER, wallet.id, 200))

        savings = run(store.list_by_owner(OWNER, transaction_type=TransactionType.SAVINGS))
        assert [r.amount for r in savings] == [Decimal("600")]


class TestSavingsMoves:
    """Tests for deposit_to_savings and withdraw_from_savings."""

    def test_deposit_reduces_wallet_and_feeds_goal(self, run, app, funded_bca):
        run(app.accounts.create_goal(OWNER, "Laptop", 10000000))
        result = run(app.transfers.deposit_to_savings(
            OWNER, funded_bca.id, 300000, goal_name="laptop"
        ))

        (row,) = result.legs
        assert row.type == TransactionType.SAVINGS
        assert row.goal_name == "Laptop"
        assert row.transfer_type == TransferType.WALLET_TO_SAVINGS
        assert run(app.calculator.wallet_balance(OWNER, funded_bca.id)) == Decimal("700000")
        assert run(app.calculator.goal_current_amount(OWNER, "Laptop")) == Decimal("300000")

    def test_deposit_to_unknown_goal(self, run, app, funded_bca):
        with pytest.raises(NotFoundError):
            run(app.transfers.deposit_to_savings(OWNER, funded_bca.id, 1000, goal_name="Yacht"))

    def test_withdrawal_writes_savings_and_wallet_legs(self, run, app, funded_bca):
        run(app.transfers.deposit_to_savings(OWNER, funded_bca.id, 400000))
        result = run(app.transfers.withdraw_from_savings(OWNER, funded_bca.id, 150000))

        savings_leg, wallet_leg = result.legs
        assert savings_leg.type == TransactionType.SAVINGS
        assert savings_leg.amount == Decimal("-150000")
        assert savings_leg.wallet_id is None
        assert wallet_leg.type == TransactionType.TRANSFER
        assert wallet_leg.wallet_id == funded_bca.id
        assert savings_leg.date == wallet_leg.date

        assert run(app.calculator.total_savings(OWNER)) == Decimal("250000")
        assert run(app.calculator.wallet_balance(OWNER, funded_bca.id)) == Decimal("750000")

    def test_cannot_withdraw_more_than_saved(self, run, app, funded_bca):
        run(app.transfers.deposit_to_savings(OWNER, funded_bca.id, 100000))
        with pytest.raises(InsufficientFundsError):
            run(app.transfers.withdraw_from_savings(OWNER, funded_bca.id, 200000))

    def test_allocated_money_is_locked(self, run, app, funded_bca):
        """The error names the goals holding the money."""
        goal = run(app.accounts.create_goal(OWNER, "Laptop", 10000000))
        run(app.transfers.deposit_to_savings(OWNER, funded_bca.id, 500000))
        run(app.allocator.allocate(OWNER, goal.id, funded_bca.id, 400000))

        with pytest.raises(AllocatedMoneyError) as exc:
            run(app.transfers.withdraw_from_savings(OWNER, funded_bca.id, 300000))

        assert exc.value.available_amount == Decimal("100000")
        assert [item.goal_name for item in exc.value.breakdown] == ["Laptop"]
        assert "Deallocate first" in exc.value.user_message
