"""
Wallet and savings goal registry.

Wallets and goals are the names the ledger's rows point at. Names
must be unique per owner (case-insensitive) because the natural
language front end refers to them by name.
"""

from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from fundy.audit import AuditLogger
from fundy.errors import NotFoundError, ValidationError
from fundy.ledger.balance import BalanceCalculator
from fundy.ledger.pipeline import to_amount
from fundy.models.audit import AuditEventType
from fundy.models.ledger import SavingsGoal, Wallet, WalletType
from fundy.services.storage import GoalStorageInterface, WalletStorageInterface


class AccountRegistry:
    """Create and list wallets and goals."""

    def __init__(
        self,
        wallets: WalletStorageInterface,
        goals: GoalStorageInterface,
        calculator: BalanceCalculator,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._wallets = wallets
        self._goals = goals
        self._calculator = calculator
        self._audit_logger = audit_logger

    # ----- wallets -----

    async def create_wallet(
        self,
        owner_id: str,
        name: str,
        wallet_type: WalletType = WalletType.BANK_ACCOUNT,
        color: Optional[str] = None,
        icon: Optional[str] = None,
    ) -> Wallet:
        if not name or not name.strip():
            raise ValidationError("Wallet name is required.", example="BCA")

        existing = await self._wallets.list_wallets(owner_id, include_inactive=True)
        if any(w.name.casefold() == name.strip().casefold() for w in existing):
            raise ValidationError(f"You already have a wallet named {name.strip()}.")

        wallet = Wallet(owner_id=owner_id, name=name, wallet_type=wallet_type)
        if color:
            wallet.color = color
        if icon:
            wallet.icon = icon
        wallet = await self._wallets.insert_wallet(wallet)

        if self._audit_logger:
            await self._audit_logger.log_account_event(
                owner_id, AuditEventType.WALLET_CREATED, "wallet", wallet.id, wallet.name
            )
        return wallet

    async def list_wallets(self, owner_id: str, include_inactive: bool = False) -> list[Wallet]:
        return await self._wallets.list_wallets(owner_id, include_inactive=include_inactive)

    async def list_wallets_with_balances(self, owner_id: str) -> list[tuple[Wallet, Decimal]]:
        return [
            (wallet, await self._calculator.wallet_balance(owner_id, wallet.id))
            for wallet in await self._wallets.list_wallets(owner_id)
        ]

    async def deactivate_wallet(self, owner_id: str, wallet_id: UUID) -> Wallet:
        """Hide a wallet from new transactions. Its rows stay in the ledger."""
        wallet = await self._wallets.get_wallet(owner_id, wallet_id)
        if wallet is None:
            raise NotFoundError("wallet", str(wallet_id))
        wallet.is_active = False
        wallet = await self._wallets.update_wallet(wallet)

        if self._audit_logger:
            await self._audit_logger.log_account_event(
                owner_id, AuditEventType.WALLET_DEACTIVATED, "wallet", wallet.id, wallet.name
            )
        return wallet

    # ----- goals -----

    async def create_goal(
        self,
        owner_id: str,
        goal_name: str,
        target_amount,
        target_date: Optional[date] = None,
    ) -> SavingsGoal:
        if not goal_name or not goal_name.strip():
            raise ValidationError("Goal name is required.", example="Laptop")
        target = to_amount(target_amount)

        existing = await self._goals.list_goals(owner_id)
        if any(g.goal_name.casefold() == goal_name.strip().casefold() for g in existing):
            raise ValidationError(f"You already have a goal named {goal_name.strip()}.")

        goal = await self._goals.insert_goal(SavingsGoal(
            owner_id=owner_id,
            goal_name=goal_name,
            target_amount=target,
            target_date=target_date,
        ))

        if self._audit_logger:
            await self._audit_logger.log_account_event(
                owner_id, AuditEventType.GOAL_CREATED, "goal", goal.id, goal.goal_name
            )
        return goal

    async def list_goals(self, owner_id: str) -> list[SavingsGoal]:
        return await self._goals.list_goals(owner_id)

    async def goal_progress(self, owner_id: str, goal_id: UUID) -> Decimal:
        """Percent of target actually saved, capped at 100."""
        goal = await self._goals.get_goal(owner_id, goal_id)
        if goal is None:
            raise NotFoundError("goal", str(goal_id))
        current = await self._calculator.goal_current_amount(owner_id, goal.goal_name)
        percent = current / goal.target_amount * 100
        return min(max(percent, Decimal("0")), Decimal("100")).quantize(Decimal("0.1"))
