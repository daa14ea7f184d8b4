"""
Savings Goal Allocator

Keeps three numbers apart for every goal:

- target:    what the user wants to reach
- allocated: how much of their saved money they earmarked for it
- current:   what savings rows tagged with the goal actually add up to

CRITICAL: The sum of allocations across an owner's goals never exceeds
the owner's total savings. This is enforced when allocating, not as a
storage constraint.

A goal whose current amount drops below its allocation (savings
withdrawn without deallocating first) is reported by `check_health`.
It is never corrected automatically; that would move money the user
did not ask to move.
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID

from fundy.audit import AuditLogger
from fundy.errors import (
    AllocatedMoneyError,
    AllocationExceededError,
    FundyError,
    InsufficientFundsError,
    NotFoundError,
    ValidationError,
)
from fundy.ledger.balance import ZERO, BalanceCalculator
from fundy.ledger.pipeline import to_amount
from fundy.ledger.resolution import resolve_goal
from fundy.ledger.store import LedgerStore
from fundy.models.ledger import SavingsGoal, format_money
from fundy.models.proposals import AllocationBreakdownItem, GoalHealth
from fundy.services.storage import GoalStorageInterface, WalletStorageInterface


class SavingsGoalAllocator:
    """
    Target vs allocated vs actually-saved accounting per goal.

    Every allocation change runs under `LedgerStore.atomic(owner_id)`
    so two concurrent allocations can't both see the same free savings.
    """

    def __init__(
        self,
        store: LedgerStore,
        calculator: BalanceCalculator,
        goals: GoalStorageInterface,
        wallets: WalletStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        health_tolerance: Decimal = Decimal("1"),
    ):
        self._store = store
        self._calculator = calculator
        self._goals = goals
        self._wallets = wallets
        self._audit_logger = audit_logger
        self._health_tolerance = health_tolerance

    # ----- lookups -----

    async def get_goal(self, owner_id: str, goal_id: UUID) -> SavingsGoal:
        goal = await self._goals.get_goal(owner_id, goal_id)
        if goal is None:
            raise NotFoundError("goal", str(goal_id))
        return goal

    async def find_goal(self, owner_id: str, mention: str) -> SavingsGoal:
        """Resolve a free-text goal name to one of the owner's goals."""
        goal = resolve_goal(mention, await self._goals.list_goals(owner_id))
        if goal is None:
            raise NotFoundError("goal", mention)
        return goal

    async def total_allocated(
        self,
        owner_id: str,
        exclude_goal_id: Optional[UUID] = None,
    ) -> Decimal:
        goals = await self._goals.list_goals(owner_id)
        return sum(
            (g.allocated_amount for g in goals if g.id != exclude_goal_id),
            ZERO,
        )

    async def allocation_breakdown(self, owner_id: str) -> list[AllocationBreakdownItem]:
        """Which goals hold allocated money, largest first."""
        goals = [g for g in await self._goals.list_goals(owner_id) if g.allocated_amount > 0]
        goals.sort(key=lambda g: g.allocated_amount, reverse=True)
        return [
            AllocationBreakdownItem(
                goal_id=g.id,
                goal_name=g.goal_name,
                allocated_amount=g.allocated_amount,
            )
            for g in goals
        ]

    async def available_to_allocate(self, owner_id: str, goal: SavingsGoal) -> Decimal:
        """min(unallocated savings, what the goal still needs), never negative."""
        total_savings = await self._calculator.total_savings(owner_id)
        others = await self.total_allocated(owner_id, exclude_goal_id=goal.id)
        unallocated = total_savings - others - goal.allocated_amount
        return max(min(unallocated, goal.target_amount - goal.allocated_amount), ZERO)

    async def available_to_withdraw(self, owner_id: str) -> Decimal:
        total_savings = await self._calculator.total_savings(owner_id)
        return max(total_savings - await self.total_allocated(owner_id), ZERO)

    async def ensure_withdrawable(
        self,
        owner_id: str,
        amount: Decimal,
        goal_name: Optional[str] = None,
    ) -> None:
        """
        Raises:
            InsufficientFundsError: Not that much saved at all
            AllocatedMoneyError: Enough saved, but earmarked for goals
        """
        total_savings = await self._calculator.total_savings(owner_id)
        if amount > total_savings:
            raise InsufficientFundsError("Savings", total_savings, amount)

        if goal_name:
            current = await self._calculator.goal_current_amount(owner_id, goal_name)
            if amount > current:
                raise InsufficientFundsError(f"savings for {goal_name}", current, amount)

        available = await self.available_to_withdraw(owner_id)
        if amount > available:
            raise AllocatedMoneyError(
                amount,
                available,
                await self.allocation_breakdown(owner_id),
            )

    # ----- allocation changes -----

    async def _set(self, goal: SavingsGoal, new_amount: Decimal) -> SavingsGoal:
        updated = await self._goals.set_allocated_amount(goal.owner_id, goal.id, new_amount)
        if self._audit_logger:
            await self._audit_logger.log_goal_allocation_changed(
                updated, new_amount - goal.allocated_amount
            )
        return updated

    async def allocate(
        self,
        owner_id: str,
        goal_id: UUID,
        wallet_id: Optional[UUID],
        amount,
    ) -> SavingsGoal:
        """
        Earmark saved money for a goal.

        Raises:
            AllocationExceededError: amount > min(unallocated savings, goal gap)
            NotFoundError: Goal or wallet not owned by caller
        """
        amount = to_amount(amount)
        if wallet_id is not None:
            if await self._wallets.get_wallet(owner_id, wallet_id) is None:
                raise NotFoundError("wallet", str(wallet_id))

        async with self._store.atomic(owner_id):
            goal = await self.get_goal(owner_id, goal_id)
            available = await self.available_to_allocate(owner_id, goal)
            if amount > available:
                raise AllocationExceededError(amount, available)
            return await self._set(goal, goal.allocated_amount + amount)

    async def deallocate(self, owner_id: str, goal_id: UUID, amount) -> SavingsGoal:
        """
        Release earmarked money back to the unallocated pool.

        Raises:
            ValidationError: amount exceeds the goal's allocation
        """
        amount = to_amount(amount)

        async with self._store.atomic(owner_id):
            goal = await self.get_goal(owner_id, goal_id)
            if amount > goal.allocated_amount:
                raise ValidationError(
                    "Cannot deallocate more than allocated amount. "
                    f"{goal.goal_name} has {format_money(goal.allocated_amount)} allocated."
                )
            return await self._set(goal, goal.allocated_amount - amount)

    async def set_allocation(self, owner_id: str, goal_id: UUID, target_amount) -> SavingsGoal:
        """
        Make the goal's allocation exactly target_amount.

        Deallocates everything, then allocates the new amount, so UI
        retries with the same value are harmless. If the new amount
        can't be allocated the previous allocation is restored.
        """
        try:
            target = Decimal(str(target_amount))
        except ArithmeticError:
            raise ValidationError("Amount is not a number.")
        if not target.is_finite() or target < 0:
            raise ValidationError("Allocation cannot be negative.")

        async with self._store.atomic(owner_id):
            goal = await self.get_goal(owner_id, goal_id)
            previous = goal.allocated_amount

            if previous > 0:
                goal = await self.deallocate(owner_id, goal_id, previous)
            if target == 0:
                return goal

            try:
                return await self.allocate(owner_id, goal_id, None, target)
            except FundyError:
                if previous > 0:
                    await self._set(goal, previous)
                raise

    # ----- diagnostics -----

    async def check_health(self, owner_id: str) -> list[GoalHealth]:
        """Compare allocation with actual savings for every goal. Read-only."""
        report = []
        for goal in await self._goals.list_goals(owner_id):
            current = await self._calculator.goal_current_amount(owner_id, goal.goal_name)
            shortfall = max(goal.allocated_amount - current, ZERO)
            healthy = shortfall <= self._health_tolerance
            health = GoalHealth(
                goal_id=goal.id,
                goal_name=goal.goal_name,
                target_amount=goal.target_amount,
                allocated_amount=goal.allocated_amount,
                current_amount=current,
                shortfall=shortfall,
                is_healthy=healthy,
                warning=None if healthy else (
                    f"{goal.goal_name} has {format_money(goal.allocated_amount)} allocated "
                    f"but only {format_money(current)} saved. "
                    f"Deallocate {format_money(shortfall)} or save more."
                ),
            )
            if not healthy and self._audit_logger:
                await self._audit_logger.log_goal_health_warning(owner_id, health)
            report.append(health)
        return report
