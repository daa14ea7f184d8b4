"""Tests for the wallet and goal registry."""

from decimal import Decimal
from uuid import uuid4

import pytest

from conftest import OTHER_OWNER, OWNER

from fundy.errors import NotFoundError, ValidationError
from fundy.models.ledger import WalletType


class TestWallets:
    """Tests for AccountRegistry wallet operations."""

    def test_names_unique_per_owner(self, run, app, bca):
        with pytest.raises(ValidationError, match="already have a wallet named bca"):
            run(app.accounts.create_wallet(OWNER, "bca"))

        other = run(app.accounts.create_wallet(OTHER_OWNER, "BCA"))
        assert other.owner_id == OTHER_OWNER

    def test_blank_name_rejected(self, run, app):
        with pytest.raises(ValidationError):
            run(app.accounts.create_wallet(OWNER, "  "))

    def test_wallet_type_kept(self, run, app):
        wallet = run(app.accounts.create_wallet(OWNER, "GoPay", WalletType.E_WALLET))
        assert wallet.wallet_type == WalletType.E_WALLET

    def test_deactivated_wallet_hidden(self, run, app, bca, gopay):
        run(app.accounts.deactivate_wallet(OWNER, gopay.id))

        assert [w.name for w in run(app.accounts.list_wallets(OWNER))] == ["BCA"]
        assert len(run(app.accounts.list_wallets(OWNER, include_inactive=True))) == 2

        with pytest.raises(ValidationError):
            run(app.accounts.create_wallet(OWNER, "GoPay"))

    def test_deactivate_foreign_wallet(self, run, app, bca):
        with pytest.raises(NotFoundError):
            run(app.accounts.deactivate_wallet(OTHER_OWNER, bca.id))

    def test_balances_listed(self, run, app, funded_bca, gopay):
        balances = run(app.accounts.list_wallets_with_balances(OWNER))
        assert [(w.name, b) for w, b in balances] == [
            ("BCA", Decimal("1000000")),
            ("GoPay", Decimal("0")),
        ]


class TestGoals:
    """Tests for AccountRegistry goal operations."""

    def test_duplicate_goal_rejected(self, run, app):
        run(app.accounts.create_goal(OWNER, "Laptop", 10000000))
        with pytest.raises(ValidationError):
            run(app.accounts.create_goal(OWNER, "LAPTOP", 5000000))

    def test_progress_capped_at_100(self, run, app, funded_bca):
        goal = run(app.accounts.create_goal(OWNER, "Shoes", 250000))
        run(app.transfers.deposit_to_savings(OWNER, funded_bca.id, 100000, goal_name="Shoes"))
        assert run(app.accounts.goal_progress(OWNER, goal.id)) == Decimal("40.0")

        run(app.transfers.deposit_to_savings(OWNER, funded_bca.id, 400000, goal_name="Shoes"))
        assert run(app.accounts.goal_progress(OWNER, goal.id)) == Decimal("100.0")

    def test_progress_unknown_goal(self, run, app):
        with pytest.raises(NotFoundError):
            run(app.accounts.goal_progress(OWNER, uuid4()))
