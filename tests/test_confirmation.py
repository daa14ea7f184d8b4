"""Tests for the confirmation state machine and the pending store."""

import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from conftest import OTHER_OWNER, OWNER, FakeClock, proposal

from fundy.errors import ExpiredError, InsufficientFundsError, ValidationError
from fundy.models.audit import AuditEventType
from fundy.models.ledger import TransactionType
from fundy.models.proposals import SavingsDirection
from fundy.orchestrator import create_app_components
from fundy.services.pending import InMemoryPendingStore
from fundy.services.storage import StorageError


def _yield_on_insert(app, monkeypatch):
    """Make every ledger insert suspend, like a networked backend."""
    storage = app.store._storage
    insert = storage.insert

    async def slow_insert(transaction):
        await asyncio.sleep(0)
        return await insert(transaction)

    monkeypatch.setattr(storage, "insert", slow_insert)


def _expense(amount=50000, wallet="BCA", **fields):
    return proposal(
        TransactionType.EXPENSE,
        amount,
        wallet_name=wallet,
        category="Coffee & Tea",
        description=fields.pop("description", "Coffee"),
        **fields,
    )


class TestPropose:
    """Tests for staging proposals."""

    def test_low_confidence_never_reaches_pipeline(self, run, app, funded_bca):
        """A 0.4-confidence proposal is rejected before anything is staged or written."""
        rows_before = run(app.store.list_by_owner(OWNER))

        with pytest.raises(ValidationError, match="not sure"):
            run(app.machine.propose(OWNER, _expense(confidence=0.4)))

        assert run(app.store.list_by_owner(OWNER)) == rows_before
        assert len(app.machine._pending) == 0
        events = run(app.audit_storage.get_recent_events(OWNER))
        assert any(e.event_type == AuditEventType.PROPOSAL_REJECTED for e in events)

    def test_zero_amount_rejected(self, run, app, funded_bca):
        with pytest.raises(ValidationError):
            run(app.machine.propose(OWNER, _expense(amount=0)))

    def test_names_resolved_at_staging(self, run, app, funded_bca, gopay):
        """Fuzzy mentions become canonical wallet ids and names."""
        pending = run(app.machine.propose(OWNER, proposal(
            TransactionType.TRANSFER,
            100000,
            wallet_name="bca",
            destination_wallet_name="gopay",
        )))

        assert pending.wallet_id == funded_bca.id
        assert pending.wallet_name == "BCA"
        assert pending.destination_wallet_id == gopay.id
        assert pending.token
        assert run(app.store.list_by_owner(OWNER, transaction_type=TransactionType.TRANSFER)) == []

    def test_unknown_wallet_lists_wallets(self, run, app, funded_bca):
        with pytest.raises(ValidationError) as exc:
            run(app.machine.propose(OWNER, _expense(wallet="Mandiri")))
        assert "Your wallets: BCA" in exc.value.user_message


class TestConfirm:
    """Tests for confirm, edit and cancel."""

    def test_confirm_writes_and_discards_token(self, run, app, funded_bca):
        pending = run(app.machine.propose(OWNER, _expense()))
        result = run(app.machine.confirm(OWNER, pending.token))

        assert result.success is True
        (row,) = result.transactions
        assert row.amount == Decimal("50000")
        assert row.wallet_id == funded_bca.id
        assert row.category == "Coffee & Tea"

        with pytest.raises(ExpiredError):
            run(app.machine.confirm(OWNER, pending.token))

    def test_failed_confirm_keeps_token(self, run, app, funded_bca):
        """The user can top up and retry the same token."""
        pending = run(app.machine.propose(OWNER, _expense(amount=1500000)))

        with pytest.raises(InsufficientFundsError):
            run(app.machine.confirm(OWNER, pending.token))

        run(app.pipeline.create_income(OWNER, 1000000, "Bonus", funded_bca.id))
        result = run(app.machine.confirm(OWNER, pending.token))
        assert result.success is True

        events = run(app.audit_storage.get_recent_events(OWNER))
        assert any(e.event_type == AuditEventType.CONFIRMATION_FAILED for e in events)

    def test_foreign_token_looks_expired(self, run, app, funded_bca):
        pending = run(app.machine.propose(OWNER, _expense()))
        with pytest.raises(ExpiredError):
            run(app.machine.confirm(OTHER_OWNER, pending.token))
        # Still usable by its owner
        assert run(app.machine.confirm(OWNER, pending.token)).success

    def test_confirm_routes_savings_withdrawal(self, run, app, funded_bca):
        run(app.transfers.deposit_to_savings(OWNER, funded_bca.id, 300000))
        pending = run(app.machine.propose(OWNER, proposal(
            TransactionType.SAVINGS,
            100000,
            wallet_name="BCA",
            savings_direction=SavingsDirection.WITHDRAWAL,
        )))

        result = run(app.machine.confirm(OWNER, pending.token))
        assert [r.type for r in result.transactions] == [
            TransactionType.SAVINGS,
            TransactionType.TRANSFER,
        ]
        assert run(app.calculator.total_savings(OWNER)) == Decimal("200000")

    def test_confirm_transfer_reports_fee_failure(self, run, app, funded_bca, gopay):
        pending = run(app.machine.propose(OWNER, proposal(
            TransactionType.TRANSFER,
            1000000,
            wallet_name="BCA",
            destination_wallet_name="GoPay",
            admin_fee=2500,
        )))
        result = run(app.machine.confirm(OWNER, pending.token))

        assert result.success is True
        assert len(result.transactions) == 2
        assert "admin fee could not be recorded" in result.message

    def test_edit_returns_template_and_discards(self, run, app, funded_bca):
        pending = run(app.machine.propose(OWNER, _expense(amount=25000)))
        template = run(app.machine.edit(OWNER, pending.token))

        assert template.text == "Coffee 25,000 pakai BCA"
        assert template.proposal.amount == Decimal("25000")
        with pytest.raises(ExpiredError):
            run(app.machine.confirm(OWNER, pending.token))

    def test_cancel_writes_nothing(self, run, app, funded_bca):
        pending = run(app.machine.propose(OWNER, _expense()))
        run(app.machine.cancel(OWNER, pending.token))

        with pytest.raises(ExpiredError):
            run(app.machine.confirm(OWNER, pending.token))
        assert len(run(app.store.list_by_owner(OWNER))) == 1

    def test_double_tap_commits_once(self, run, app, funded_bca, monkeypatch):
        """Two overlapping confirms of one token write a single row."""
        _yield_on_insert(app, monkeypatch)
        pending = run(app.machine.propose(OWNER, _expense()))

        async def double_tap():
            return await asyncio.gather(
                app.machine.confirm(OWNER, pending.token),
                app.machine.confirm(OWNER, pending.token),
                return_exceptions=True,
            )

        first, second = run(double_tap())

        assert first.success is True
        assert isinstance(second, ExpiredError)
        expenses = run(app.store.list_by_owner(OWNER, transaction_type=TransactionType.EXPENSE))
        assert len(expenses) == 1

    def test_storage_failure_restores_token(self, run, app, funded_bca, monkeypatch):
        async def unavailable(*args, **kwargs):
            raise StorageError("sheet quota exceeded")

        pending = run(app.machine.propose(OWNER, _expense()))
        monkeypatch.setattr(app.pipeline, "create_expense", unavailable)
        with pytest.raises(StorageError):
            run(app.machine.confirm(OWNER, pending.token))

        monkeypatch.undo()
        assert run(app.machine.confirm(OWNER, pending.token)).success is True


class TestBatch:
    """Tests for multi-transaction messages."""

    def test_batch_items_succeed_independently(self, run, app, funded_bca):
        batch = run(app.machine.propose_batch(OWNER, [
            _expense(amount=100000, description="Lunch"),
            _expense(amount=5000000, description="Laptop"),
            _expense(amount=1, confidence=0.1, description="Mumble"),
        ]))

        assert len(batch.pending) == 2
        assert len(batch.rejected) == 1

        result = run(app.machine.confirm_all(OWNER, batch.batch_id))
        assert len(result.succeeded) == 1
        assert len(result.failed) == 1
        assert result.failed[0].error_code == "insufficient_funds"

        # The failed item stays pending under the batch
        session = run(app.machine._pending.get_batch(batch.batch_id))
        assert session.tokens == [batch.pending[1].token]

    def test_storage_outage_keeps_items_pending(self, run, app, funded_bca, monkeypatch):
        async def unavailable(*args, **kwargs):
            raise StorageError("sheet quota exceeded")

        batch = run(app.machine.propose_batch(OWNER, [_expense(), _expense()]))
        monkeypatch.setattr(app.pipeline, "create_expense", unavailable)

        result = run(app.machine.confirm_all(OWNER, batch.batch_id))

        assert [r.error_code for r in result.results] == ["storage_error", "storage_error"]
        session = run(app.machine._pending.get_batch(batch.batch_id))
        assert len(session.tokens) == 2
        events = run(app.audit_storage.get_recent_events())
        assert any(e.event_type == AuditEventType.SYSTEM_ERROR for e in events)

    def test_confirm_all_overlapping_single_confirm(self, run, app, funded_bca, monkeypatch):
        _yield_on_insert(app, monkeypatch)
        batch = run(app.machine.propose_batch(OWNER, [_expense(), _expense()]))
        token = batch.pending[0].token

        async def overlap():
            return await asyncio.gather(
                app.machine.confirm_all(OWNER, batch.batch_id),
                app.machine.confirm(OWNER, token),
                return_exceptions=True,
            )

        batch_result, single = run(overlap())

        assert len(batch_result.succeeded) == 2
        assert isinstance(single, ExpiredError)
        expenses = run(app.store.list_by_owner(OWNER, transaction_type=TransactionType.EXPENSE))
        assert len(expenses) == 2

    def test_cancel_all(self, run, app, funded_bca):
        batch = run(app.machine.propose_batch(OWNER, [_expense(), _expense()]))
        assert run(app.machine.cancel_all(OWNER, batch.batch_id)) == 2

        with pytest.raises(ExpiredError):
            run(app.machine.confirm_all(OWNER, batch.batch_id))
        assert len(run(app.store.list_by_owner(OWNER))) == 1

    def test_all_rejected_has_no_batch(self, run, app, funded_bca):
        batch = run(app.machine.propose_batch(OWNER, [_expense(confidence=0.2)]))
        assert batch.batch_id is None
        assert batch.pending == []


class TestPendingExpiry:
    """Tests for the TTL-capable pending store."""

    def test_token_expires_after_ttl(self, run, classifier):
        clock = FakeClock(datetime(2026, 1, 1, tzinfo=timezone.utc))
        app = create_app_components(
            storage_backend="memory",
            classifier=classifier,
            pending_store=InMemoryPendingStore(ttl_seconds=60, clock=clock),
        )
        wallet = run(app.accounts.create_wallet(OWNER, "BCA"))
        run(app.pipeline.create_income(OWNER, 100000, "Salary", wallet.id))

        pending = run(app.machine.propose(OWNER, _expense(amount=1000)))
        assert pending.expires_at == clock.now + timedelta(seconds=60)

        clock.advance(timedelta(seconds=61))
        with pytest.raises(ExpiredError):
            run(app.machine.confirm(OWNER, pending.token))

    def test_no_ttl_never_expires(self, run, app, funded_bca):
        pending = run(app.machine.propose(OWNER, _expense()))
        assert pending.expires_at is None


class TestCallbacks:
    """Tests for channel button callbacks."""

    def test_confirm_callback(self, run, app, funded_bca):
        pending = run(app.machine.propose(OWNER, _expense()))
        reply = run(app.machine.handle_callback(OWNER, f"confirm_tx:{pending.token}"))

        assert reply.success is True
        assert reply.text.startswith("✅")
        assert len(reply.results) == 1

    def test_expired_callback_explains(self, run, app):
        reply = run(app.machine.handle_callback(OWNER, "confirm_tx:nope"))
        assert reply.success is False
        assert "expired" in reply.text

    def test_edit_callback(self, run, app, funded_bca):
        pending = run(app.machine.propose(OWNER, _expense()))
        reply = run(app.machine.handle_callback(OWNER, f"edit_tx:{pending.token}"))
        assert reply.edit_template is not None
        assert "BCA" in reply.edit_template.text

    def test_cancel_callback(self, run, app, funded_bca):
        pending = run(app.machine.propose(OWNER, _expense()))
        reply = run(app.machine.handle_callback(OWNER, f"cancel_tx:{pending.token}"))
        assert "cancelled" in reply.text

    def test_cancel_callback_without_token(self, run, app, funded_bca):
        pending = run(app.machine.propose(OWNER, _expense()))
        reply = run(app.machine.handle_callback(OWNER, "cancel_tx"))

        assert reply.success is False
        assert reply.text == "Nothing to cancel."
        assert run(app.machine._pending.get(pending.token)) is not None

    def test_insufficient_funds_callback_shows_figures(self, run, app, funded_bca):
        pending = run(app.machine.propose(OWNER, _expense(amount=2000000)))
        reply = run(app.machine.handle_callback(OWNER, f"confirm_tx:{pending.token}"))
        assert reply.success is False
        assert "Required: Rp2,000,000" in reply.text

    def test_confirm_all_callback(self, run, app, funded_bca):
        batch = run(app.machine.propose_batch(OWNER, [_expense(), _expense()]))
        reply = run(app.machine.handle_callback(OWNER, f"confirm_all:{batch.batch_id}"))
        assert reply.success is True
        assert "2 of 2 transactions recorded" in reply.text

    def test_unknown_action(self, run, app):
        reply = run(app.machine.handle_callback(OWNER, "explode:now"))
        assert reply.success is False
