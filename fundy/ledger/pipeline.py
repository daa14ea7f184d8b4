"""
Transaction Creation Pipeline

One entry point per economic event. Every path has the same shape:

1. Require a wallet reference (expense / income)
2. Resolve it within the owner's wallets
3. For money leaving a wallet, check the derived balance
4. Append exactly one row

Steps 3 and 4 run inside one `LedgerStore.atomic` block so the
balance can't change between the check and the write.

Investment restatements skip wallet binding entirely: they restate
the portfolio's value rather than move money out of a wallet.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from fundy.audit import AuditLogger
from fundy.errors import InsufficientFundsError, NotFoundError, ValidationError
from fundy.ledger.balance import BalanceCalculator
from fundy.ledger.store import LedgerStore
from fundy.models.ledger import (
    POSITIVE_ONLY_TYPES,
    ExpenseCategory,
    IncomeSource,
    Transaction,
    TransactionType,
    Wallet,
    utc_now,
)
from fundy.services.storage import WalletStorageInterface


EXPENSE_WALLET_EXAMPLE = "Beli kopi 50rb pakai BCA"
INCOME_WALLET_EXAMPLE = "Gaji 5 juta ke BCA"

EDITABLE_FIELDS = ("description", "amount", "category")


def to_amount(value) -> Decimal:
    """Parse and require a strictly positive amount."""
    try:
        amount = Decimal(str(value))
    except ArithmeticError:
        raise ValidationError("Amount is not a number.")
    if not amount.is_finite() or amount <= 0:
        raise ValidationError("Amount must be greater than zero.")
    return amount


class TransactionPipeline:
    """
    Validates preconditions and writes single-row transactions.

    The paired-operation constructor reuses `require_wallet` and
    `ensure_funds` so every path applies the same checks.
    """

    def __init__(
        self,
        store: LedgerStore,
        calculator: BalanceCalculator,
        wallets: WalletStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._calculator = calculator
        self._wallets = wallets
        self._audit_logger = audit_logger

    # ----- shared checks -----

    async def wallet_names(self, owner_id: str) -> list[str]:
        return [w.name for w in await self._wallets.list_wallets(owner_id)]

    async def require_wallet(
        self,
        owner_id: str,
        wallet_id: Optional[UUID],
        missing_message: str,
        example: str,
    ) -> Wallet:
        """
        Raises:
            ValidationError: No wallet given (message lists the owner's wallets)
            NotFoundError: Wallet absent or owned by someone else
        """
        if wallet_id is None:
            raise ValidationError(
                missing_message,
                example=example,
                available_wallets=await self.wallet_names(owner_id),
            )

        wallet = await self._wallets.get_wallet(owner_id, wallet_id)
        if wallet is None:
            raise NotFoundError("wallet", str(wallet_id))
        if not wallet.is_active:
            raise ValidationError(
                f"Wallet {wallet.name} is inactive. Reactivate it or pick another wallet.",
                available_wallets=await self.wallet_names(owner_id),
            )
        return wallet

    async def ensure_funds(self, owner_id: str, wallet: Wallet, amount: Decimal) -> Decimal:
        """
        Returns the current balance.

        Raises:
            InsufficientFundsError: If the balance is below amount
        """
        balance = await self._calculator.wallet_balance(owner_id, wallet.id)
        if balance < amount:
            raise InsufficientFundsError(wallet.name, balance, amount)
        return balance

    async def _recorded(self, transaction: Transaction) -> Transaction:
        if self._audit_logger:
            await self._audit_logger.log_transaction_recorded(transaction)
        return transaction

    # ----- single-row events -----

    async def create_expense(
        self,
        owner_id: str,
        amount,
        description: str,
        wallet_id: Optional[UUID],
        category: Optional[str] = None,
        date: Optional[datetime] = None,
    ) -> Transaction:
        """
        Record money leaving a wallet.

        Raises:
            ValidationError, NotFoundError, InsufficientFundsError
        """
        amount = to_amount(amount)
        wallet = await self.require_wallet(
            owner_id,
            wallet_id,
            "Please specify which wallet to use for this expense.",
            EXPENSE_WALLET_EXAMPLE,
        )

        async with self._store.atomic(owner_id):
            await self.ensure_funds(owner_id, wallet, amount)
            transaction = await self._store.append(Transaction(
                owner_id=owner_id,
                description=description or "Expense",
                amount=amount,
                type=TransactionType.EXPENSE,
                category=ExpenseCategory.coerce(category).value,
                wallet_id=wallet.id,
                date=date or utc_now(),
            ))

        return await self._recorded(transaction)

    async def create_income(
        self,
        owner_id: str,
        amount,
        description: str,
        wallet_id: Optional[UUID],
        source: Optional[str] = None,
        date: Optional[datetime] = None,
    ) -> Transaction:
        """
        Record money arriving in a wallet.

        Raises:
            ValidationError, NotFoundError
        """
        amount = to_amount(amount)
        wallet = await self.require_wallet(
            owner_id,
            wallet_id,
            "Please specify which wallet to receive this income.",
            INCOME_WALLET_EXAMPLE,
        )

        async with self._store.atomic(owner_id):
            transaction = await self._store.append(Transaction(
                owner_id=owner_id,
                description=description or "Income",
                amount=amount,
                type=TransactionType.INCOME,
                source=IncomeSource.coerce(source),
                wallet_id=wallet.id,
                date=date or utc_now(),
            ))

        return await self._recorded(transaction)

    async def restate_investment(
        self,
        owner_id: str,
        amount,
        description: str,
        asset_name: Optional[str] = None,
        date: Optional[datetime] = None,
    ) -> Transaction:
        """
        Replace the owner's investment rows with one row holding the
        portfolio's current value. No wallet is involved.
        """
        amount = to_amount(amount)

        async with self._store.atomic(owner_id):
            previous = await self._store.list_by_owner(
                owner_id, transaction_type=TransactionType.INVESTMENT
            )
            for row in previous:
                await self._store.delete(owner_id, row.id)
            transaction = await self._store.append(Transaction(
                owner_id=owner_id,
                description=description or "Investment portfolio",
                amount=amount,
                type=TransactionType.INVESTMENT,
                asset_name=asset_name,
                date=date or utc_now(),
            ))

        if self._audit_logger:
            await self._audit_logger.log_investment_restated(transaction, len(previous))
        return transaction

    # ----- edit path -----

    async def update_transaction(
        self,
        owner_id: str,
        transaction_id: UUID,
        description: Optional[str] = None,
        amount=None,
        category: Optional[str] = None,
    ) -> Transaction:
        """
        Edit description, amount or category of one row.

        Leg amounts are not editable: changing one leg alone would
        break the pair.

        Raises:
            ValidationError, NotFoundError, InsufficientFundsError
        """
        fields = {}
        if description is not None:
            if not description.strip():
                raise ValidationError("Description cannot be empty.")
            fields["description"] = description
        if amount is not None:
            fields["amount"] = to_amount(amount)
        if category is not None:
            fields["category"] = category
        if not fields:
            raise ValidationError(
                f"Nothing to update. Editable fields: {', '.join(EDITABLE_FIELDS)}."
            )

        async with self._store.atomic(owner_id):
            current = await self._store.get(owner_id, transaction_id)

            if "amount" in fields and current.type not in POSITIVE_ONLY_TYPES:
                raise ValidationError(
                    "The amount of a transfer or savings leg can't be edited. "
                    "Delete both legs and record the move again."
                )
            if "category" in fields:
                if current.type == TransactionType.EXPENSE:
                    fields["category"] = ExpenseCategory.coerce(category).value
                else:
                    raise ValidationError("Only expenses have a category.")

            # Growing an expense spends more from its wallet
            if (
                current.type == TransactionType.EXPENSE
                and current.wallet_id is not None
                and "amount" in fields
                and fields["amount"] > current.amount
            ):
                wallet = await self._wallets.get_wallet(owner_id, current.wallet_id)
                if wallet is not None:
                    await self.ensure_funds(
                        owner_id, wallet, fields["amount"] - current.amount
                    )

            updated = await self._store.update(owner_id, transaction_id, fields)

        if self._audit_logger:
            await self._audit_logger.log_transaction_updated(owner_id, transaction_id, fields)
        return updated

    async def delete_transaction(self, owner_id: str, transaction_id: UUID) -> bool:
        """
        Delete one row. The other legs of a pair are left untouched.

        Raises:
            NotFoundError: If no row matches owner + id
        """
        deleted = await self._store.delete(owner_id, transaction_id)
        if not deleted:
            raise NotFoundError("transaction", str(transaction_id))
        if self._audit_logger:
            await self._audit_logger.log_transaction_deleted(owner_id, transaction_id)
        return True
