"""
Paired-Operation Constructor

Builds the multi-row moves:

- wallet → wallet transfer: two `transfer` legs (−amount, +amount)
- transfer with admin fee: the two legs plus a `Bank Charges` expense
- wallet → savings: one `savings` row bound to the source wallet
- savings → wallet: an unbound −amount `savings` leg plus a +amount
  `transfer` leg on the receiving wallet

CRITICAL: Legs of one move are written inside a single
`LedgerStore.atomic` block. Either every leg exists or none does.

The admin fee is the exception. It is written after the legs commit
and its failure is logged and swallowed, so a transfer still succeeds
when only its fee couldn't be recorded.
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID

import structlog

from fundy.audit import AuditLogger, create_correlation_id
from fundy.errors import FundyError, ValidationError
from fundy.ledger.allocator import SavingsGoalAllocator
from fundy.ledger.pipeline import TransactionPipeline, to_amount
from fundy.ledger.store import LedgerStore
from fundy.models.audit import AuditEventType
from fundy.models.ledger import (
    TRANSFER_CATEGORY,
    ExpenseCategory,
    Transaction,
    TransactionType,
    TransferType,
    utc_now,
)
from fundy.models.proposals import TransferResult
from fundy.services.storage import StorageError


logger = structlog.get_logger(__name__)

TRANSFER_EXAMPLE = "Transfer 1 juta dari BCA ke GoPay"
DEPOSIT_EXAMPLE = "Nabung 1 juta dari BCA untuk Laptop"
WITHDRAW_EXAMPLE = "Tarik tabungan 500rb ke BCA"


class PairedOperationConstructor:
    """Writes moves that need more than one ledger row."""

    def __init__(
        self,
        store: LedgerStore,
        pipeline: TransactionPipeline,
        allocator: SavingsGoalAllocator,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._pipeline = pipeline
        self._allocator = allocator
        self._audit_logger = audit_logger

    async def _canonical_goal(self, owner_id: str, goal_name: Optional[str]) -> Optional[str]:
        if not goal_name:
            return None
        goal = await self._allocator.find_goal(owner_id, goal_name)
        return goal.goal_name

    async def transfer(
        self,
        owner_id: str,
        from_wallet_id: Optional[UUID],
        to_wallet_id: Optional[UUID],
        amount,
        description: Optional[str] = None,
        admin_fee=0,
    ) -> TransferResult:
        """
        Move money between two of the owner's wallets.

        The balance check covers the transferred amount; the fee is
        checked separately when its row is written.

        Raises:
            ValidationError, NotFoundError, InsufficientFundsError
        """
        amount = to_amount(amount)
        fee = Decimal(str(admin_fee or 0))
        if fee < 0:
            raise ValidationError("Admin fee cannot be negative.")

        if from_wallet_id is None or to_wallet_id is None:
            raise ValidationError(
                "Please specify both source and destination wallets.",
                example=TRANSFER_EXAMPLE,
                available_wallets=await self._pipeline.wallet_names(owner_id),
            )
        if from_wallet_id == to_wallet_id:
            raise ValidationError("Cannot transfer to the same wallet.")

        source = await self._pipeline.require_wallet(
            owner_id, from_wallet_id, "Please specify the source wallet.", TRANSFER_EXAMPLE
        )
        destination = await self._pipeline.require_wallet(
            owner_id, to_wallet_id, "Please specify the destination wallet.", TRANSFER_EXAMPLE
        )

        description = description or f"Transfer from {source.name} to {destination.name}"
        when = utc_now()
        correlation_id = create_correlation_id()

        async with self._store.atomic(owner_id):
            await self._pipeline.ensure_funds(owner_id, source, amount)
            outgoing = await self._store.append(Transaction(
                owner_id=owner_id,
                description=description,
                amount=-amount,
                type=TransactionType.TRANSFER,
                category=TRANSFER_CATEGORY,
                wallet_id=source.id,
                transfer_type=TransferType.WALLET_TO_WALLET,
                date=when,
            ))
            incoming = await self._store.append(Transaction(
                owner_id=owner_id,
                description=description,
                amount=amount,
                type=TransactionType.TRANSFER,
                category=TRANSFER_CATEGORY,
                wallet_id=destination.id,
                transfer_type=TransferType.WALLET_TO_WALLET,
                date=when,
            ))

        legs = [outgoing, incoming]
        if self._audit_logger:
            await self._audit_logger.log_paired_operation(
                owner_id, AuditEventType.TRANSFER_CREATED, legs, amount, correlation_id
            )

        fee_row = None
        fee_error = None
        if fee > 0:
            try:
                fee_row = await self._pipeline.create_expense(
                    owner_id,
                    fee,
                    f"Admin fee: {description}",
                    source.id,
                    category=ExpenseCategory.BANK_CHARGES.value,
                    date=when,
                )
            except (FundyError, StorageError) as e:
                fee_error = getattr(e, "user_message", str(e))
                logger.warning(
                    "admin_fee_failed",
                    owner_id=owner_id,
                    wallet=source.name,
                    amount=str(fee),
                    error=fee_error,
                )
                if self._audit_logger:
                    await self._audit_logger.log_admin_fee_failed(
                        owner_id, fee, fee_error, correlation_id
                    )

        return TransferResult(legs=legs, fee=fee_row, fee_error=fee_error)

    async def deposit_to_savings(
        self,
        owner_id: str,
        wallet_id: Optional[UUID],
        amount,
        description: Optional[str] = None,
        goal_name: Optional[str] = None,
    ) -> TransferResult:
        """
        Move money from a wallet into savings, optionally toward a goal.

        Raises:
            ValidationError, NotFoundError, InsufficientFundsError
        """
        amount = to_amount(amount)
        wallet = await self._pipeline.require_wallet(
            owner_id,
            wallet_id,
            "Please specify which wallet the savings come from.",
            DEPOSIT_EXAMPLE,
        )
        goal_name = await self._canonical_goal(owner_id, goal_name)
        if not description:
            description = f"Savings for {goal_name}" if goal_name else "Savings deposit"

        async with self._store.atomic(owner_id):
            await self._pipeline.ensure_funds(owner_id, wallet, amount)
            row = await self._store.append(Transaction(
                owner_id=owner_id,
                description=description,
                amount=amount,
                type=TransactionType.SAVINGS,
                wallet_id=wallet.id,
                goal_name=goal_name,
                transfer_type=TransferType.WALLET_TO_SAVINGS,
            ))

        if self._audit_logger:
            await self._audit_logger.log_paired_operation(
                owner_id, AuditEventType.SAVINGS_DEPOSITED, [row], amount, create_correlation_id()
            )
        return TransferResult(legs=[row])

    async def withdraw_from_savings(
        self,
        owner_id: str,
        wallet_id: Optional[UUID],
        amount,
        description: Optional[str] = None,
        goal_name: Optional[str] = None,
    ) -> TransferResult:
        """
        Move saved money back into a wallet.

        Only unallocated savings can be withdrawn.

        Raises:
            ValidationError, NotFoundError, InsufficientFundsError,
            AllocatedMoneyError
        """
        amount = to_amount(amount)
        wallet = await self._pipeline.require_wallet(
            owner_id,
            wallet_id,
            "Please specify which wallet should receive the withdrawn savings.",
            WITHDRAW_EXAMPLE,
        )
        goal_name = await self._canonical_goal(owner_id, goal_name)
        description = description or f"Savings withdrawal to {wallet.name}"
        when = utc_now()

        async with self._store.atomic(owner_id):
            await self._allocator.ensure_withdrawable(owner_id, amount, goal_name)
            savings_leg = await self._store.append(Transaction(
                owner_id=owner_id,
                description=description,
                amount=-amount,
                type=TransactionType.SAVINGS,
                goal_name=goal_name,
                transfer_type=TransferType.SAVINGS_TO_WALLET,
                date=when,
            ))
            wallet_leg = await self._store.append(Transaction(
                owner_id=owner_id,
                description=description,
                amount=amount,
                type=TransactionType.TRANSFER,
                category=TRANSFER_CATEGORY,
                wallet_id=wallet.id,
                transfer_type=TransferType.SAVINGS_TO_WALLET,
                date=when,
            ))

        legs = [savings_leg, wallet_leg]
        if self._audit_logger:
            await self._audit_logger.log_paired_operation(
                owner_id, AuditEventType.SAVINGS_WITHDRAWN, legs, amount, create_correlation_id()
            )
        return TransferResult(legs=legs)
