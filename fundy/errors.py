"""
Ledger Error Taxonomy

Every rejection carries enough context for the user to self-correct:
the wallet names they could have used, the exact balance they have,
which goals hold the money they asked for.

DESIGN DECISION: Errors are typed and carry machine-readable detail.
Channel adapters render `user_message`; code inspects the attributes.
"""

from decimal import Decimal
from typing import Any, Optional

from fundy.models.ledger import format_money


class FundyError(Exception):
    """Base exception for every rejection the ledger core raises."""

    code = "fundy_error"

    def __init__(
        self,
        message: str,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.user_message = message
        self.details = details or {}


class ValidationError(FundyError):
    """Missing or invalid input. Message includes an example of correct input."""

    code = "validation_error"

    def __init__(
        self,
        message: str,
        example: Optional[str] = None,
        available_wallets: Optional[list[str]] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        full = message
        if example:
            full = f"{message} For example: \"{example}\""
        if available_wallets:
            full = f"{full} Your wallets: {', '.join(available_wallets)}."
        details = dict(details or {})
        if available_wallets is not None:
            details["available_wallets"] = available_wallets
        super().__init__(full, details)
        self.example = example
        self.available_wallets = available_wallets or []


class NotFoundError(FundyError):
    """
    Entity absent or owned by someone else.

    Both cases produce the same message so foreign data never leaks.
    """

    code = "not_found"

    def __init__(self, entity: str, identifier: Optional[str] = None):
        super().__init__(
            f"{entity.capitalize()} not found",
            {"entity": entity, "identifier": identifier},
        )
        self.entity = entity
        self.identifier = identifier


class InsufficientFundsError(FundyError):
    """Wallet balance is lower than the amount requested."""

    code = "insufficient_funds"

    def __init__(
        self,
        wallet_name: str,
        current_balance: Decimal,
        required_amount: Decimal,
    ):
        super().__init__(
            f"Insufficient balance in {wallet_name}. "
            f"Current balance: {format_money(current_balance)}, "
            f"Required: {format_money(required_amount)}",
            {
                "wallet_name": wallet_name,
                "current_balance": str(current_balance),
                "required_amount": str(required_amount),
            },
        )
        self.wallet_name = wallet_name
        self.current_balance = current_balance
        self.required_amount = required_amount


class AllocationExceededError(FundyError):
    """Allocation request larger than the unallocated savings or the goal gap."""

    code = "allocation_exceeded"

    def __init__(self, requested_amount: Decimal, available_amount: Decimal):
        super().__init__(
            f"Cannot allocate {format_money(requested_amount)}. "
            f"Only {format_money(available_amount)} is available to allocate.",
            {
                "requested_amount": str(requested_amount),
                "available_amount": str(available_amount),
            },
        )
        self.requested_amount = requested_amount
        self.available_amount = available_amount


class AllocatedMoneyError(FundyError):
    """
    Savings withdrawal would touch money earmarked for goals.

    breakdown lists which goals hold the locked funds so the caller
    can suggest "deallocate from goal X first".
    """

    code = "allocated_money"

    def __init__(
        self,
        requested_amount: Decimal,
        available_amount: Decimal,
        breakdown: list,
    ):
        goals = ", ".join(
            f"{item.goal_name} ({format_money(item.allocated_amount)})"
            for item in breakdown
        )
        message = (
            f"Cannot withdraw {format_money(requested_amount)}. "
            f"Only {format_money(available_amount)} of your savings is unallocated."
        )
        if goals:
            message = f"{message} Allocated to goals: {goals}. Deallocate first to withdraw more."
        super().__init__(
            message,
            {
                "requested_amount": str(requested_amount),
                "available_amount": str(available_amount),
                "breakdown": [item.model_dump(mode="json") for item in breakdown],
            },
        )
        self.requested_amount = requested_amount
        self.available_amount = available_amount
        self.breakdown = breakdown


class ExpiredError(FundyError):
    """Pending token or batch session no longer exists."""

    code = "expired"

    def __init__(self, token: str):
        super().__init__(
            "This transaction has expired or was already handled. "
            "Please send it again.",
            {"token": token},
        )
        self.token = token
