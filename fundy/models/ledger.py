"""
Core Ledger Models for Fundy

These models define the strict schemas for everything the ledger stores.
They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Be serializable for storage and logging

DESIGN DECISION: Only Transaction rows carry authority over "what happened".
Wallets have no balance column and goals have no "current amount" column.
Both are projections computed by the balance calculator.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


def utc_now() -> datetime:
    """Timezone-aware current time, used for every audit timestamp."""
    return datetime.now(timezone.utc)


def format_money(amount: Decimal, symbol: str = "Rp") -> str:
    """Render an amount the way users type it: Rp1,500,000."""
    sign = "-" if amount < 0 else ""
    value = abs(amount)
    if value == value.to_integral_value():
        return f"{sign}{symbol}{value:,.0f}"
    return f"{sign}{symbol}{value:,.2f}"


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionType(str, Enum):
    """Economic event kinds recorded in the ledger."""
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"
    SAVINGS = "savings"
    INVESTMENT = "investment"


# Rows of these types always carry a strictly positive amount.
POSITIVE_ONLY_TYPES = frozenset({
    TransactionType.INCOME,
    TransactionType.EXPENSE,
    TransactionType.INVESTMENT,
})


class TransferType(str, Enum):
    """Subtype tag shared by every leg of a paired move."""
    WALLET_TO_WALLET = "wallet_to_wallet"
    WALLET_TO_SAVINGS = "wallet_to_savings"
    SAVINGS_TO_WALLET = "savings_to_wallet"


class WalletType(str, Enum):
    BANK_CARD = "bank_card"
    E_WALLET = "e_wallet"
    CASH = "cash"
    BANK_ACCOUNT = "bank_account"


class ExpenseCategory(str, Enum):
    """
    Expense taxonomy.

    DESIGN DECISION: Explicit categories rather than free text ensure
    consistent grouping in summaries. Unknown labels become OTHERS.
    """
    # Housing & utilities
    RENT = "Rent"
    MORTGAGE = "Mortgage"
    ELECTRICITY = "Electricity"
    WATER = "Water"
    INTERNET = "Internet"
    GAS_UTILITY = "Gas Utility"
    HOME_MAINTENANCE = "Home Maintenance"
    HOUSEHOLD_SUPPLIES = "Household Supplies"
    # Food
    GROCERIES = "Groceries"
    DINING_OUT = "Dining Out"
    COFFEE_TEA = "Coffee & Tea"
    FOOD_DELIVERY = "Food Delivery"
    # Transport
    FUEL = "Fuel"
    PARKING = "Parking"
    PUBLIC_TRANSPORT = "Public Transport"
    RIDE_HAILING = "Ride Hailing"
    VEHICLE_MAINTENANCE = "Vehicle Maintenance"
    TOLL = "Toll"
    # Health & personal
    MEDICAL_PHARMACY = "Medical & Pharmacy"
    HEALTH_INSURANCE = "Health Insurance"
    FITNESS = "Fitness"
    PERSONAL_CARE = "Personal Care"
    CLOTHING = "Clothing"
    # Lifestyle
    ELECTRONICS_GADGETS = "Electronics & Gadgets"
    SUBSCRIPTIONS_STREAMING = "Subscriptions & Streaming"
    HOBBIES_LEISURE = "Hobbies & Leisure"
    GIFTS_CELEBRATION = "Gifts & Celebration"
    # Obligations
    DEBT_PAYMENTS = "Debt Payments"
    TAXES_FEES = "Taxes & Fees"
    BANK_CHARGES = "Bank Charges"
    # Family & other
    CHILDCARE = "Childcare"
    EDUCATION = "Education"
    PETS = "Pets"
    TRAVEL = "Travel"
    BUSINESS_EXPENSES = "Business Expenses"
    CHARITY_DONATIONS = "Charity & Donations"
    EMERGENCY = "Emergency"
    OTHERS = "Others"

    @classmethod
    def coerce(cls, value: Optional[str]) -> "ExpenseCategory":
        """Map a free-text label onto the taxonomy (case-insensitive)."""
        return cls.lookup(value) or cls.OTHERS

    @classmethod
    def lookup(cls, value: Optional[str]) -> Optional["ExpenseCategory"]:
        """Exact (case-insensitive) match on value or name, else None."""
        if not value:
            return None
        lowered = value.strip().casefold()
        for member in cls:
            if member.value.casefold() == lowered or member.name.casefold() == lowered:
                return member
        return None


class IncomeSource(str, Enum):
    SALARY = "Salary"
    FREELANCE = "Freelance"
    BUSINESS = "Business"
    INVESTMENT = "Investment"
    BONUS = "Bonus"
    GIFT = "Gift"
    OTHERS = "Others"

    @classmethod
    def coerce(cls, value: Optional[str]) -> "IncomeSource":
        if not value:
            return cls.OTHERS
        lowered = value.strip().casefold()
        for member in cls:
            if member.value.casefold() == lowered:
                return member
        return cls.OTHERS


# Category stamped on both legs of a transfer.
TRANSFER_CATEGORY = "Transfer"


# =============================================================================
# LEDGER ROW
# =============================================================================

class Transaction(BaseModel):
    """
    One row of the ledger.

    CRITICAL: amount is signed. Income, expense and investment rows are
    always positive; transfer and savings legs may be negative to mark
    the debit side of a paired move.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    # Identity
    id: UUID = Field(
        default_factory=uuid4,
        description="Unique row ID"
    )
    owner_id: str = Field(
        ...,
        min_length=1,
        description="Owning user"
    )

    description: str = Field(
        ...,
        min_length=1,
        max_length=500,
        description="What happened, in the user's words"
    )
    amount: Decimal = Field(
        ...,
        description="Signed amount"
    )
    type: TransactionType

    # Type-specific fields
    category: Optional[str] = Field(
        default=None,
        description="Expense category, or 'Transfer' on transfer legs"
    )
    source: Optional[IncomeSource] = None
    wallet_id: Optional[UUID] = None
    goal_name: Optional[str] = Field(
        default=None,
        description="Canonical name of the savings goal this row feeds"
    )
    asset_name: Optional[str] = None
    transfer_type: Optional[TransferType] = None

    # Timestamps
    date: datetime = Field(
        default_factory=utc_now,
        description="Logical transaction date"
    )
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode='after')
    def validate_sign(self) -> 'Transaction':
        """Enforce the per-type sign rule."""
        if self.type in POSITIVE_ONLY_TYPES and self.amount <= 0:
            raise ValueError(
                f"Amount must be positive for {self.type.value} transactions"
            )
        if self.amount == 0:
            raise ValueError("Amount cannot be zero")
        return self

    @property
    def is_leg(self) -> bool:
        """True for rows that belong to a paired move."""
        return self.transfer_type is not None


# =============================================================================
# ACCOUNTS
# =============================================================================

class Wallet(BaseModel):
    """
    A place money lives (bank card, e-wallet, cash...).

    DESIGN DECISION: No balance field. The balance is always the
    signed sum of ledger rows that reference this wallet.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    owner_id: str = Field(..., min_length=1)
    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Display name, also the target of fuzzy matching"
    )
    wallet_type: WalletType = WalletType.BANK_ACCOUNT
    color: str = Field(default="#3B82F6", max_length=20)
    icon: str = Field(default="wallet", max_length=50)
    is_active: bool = True
    created_at: datetime = Field(default_factory=utc_now)


class SavingsGoal(BaseModel):
    """
    A named savings target.

    allocated_amount is the only mutable numeric counter in the whole
    model; current amount is derived from savings rows by goal name.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    owner_id: str = Field(..., min_length=1)
    goal_name: str = Field(..., min_length=1, max_length=100)
    target_amount: Decimal = Field(..., gt=0)
    allocated_amount: Decimal = Field(default=Decimal("0"), ge=0)
    target_date: Optional[date] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator('allocated_amount', 'target_amount', mode='before')
    @classmethod
    def coerce_decimal(cls, v):
        """Sheets hand amounts back as strings."""
        if isinstance(v, (int, float, str)):
            return Decimal(str(v))
        return v

    @property
    def remaining_to_target(self) -> Decimal:
        return max(self.target_amount - self.allocated_amount, Decimal("0"))


class Budget(BaseModel):
    """
    Monthly spending limit for one expense category.

    There is at most one budget per owner, category and month; setting
    it again replaces the amount. Spending is never stored here, it is
    summed from expense rows when a report is built.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    owner_id: str = Field(..., min_length=1)
    category: ExpenseCategory
    amount: Decimal = Field(..., gt=0)
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=1970, le=9999)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator('amount', mode='before')
    @classmethod
    def coerce_decimal(cls, v):
        if isinstance(v, (int, float, str)):
            return Decimal(str(v))
        return v

    @property
    def period(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

    @property
    def slot(self) -> tuple[str, ExpenseCategory, int, int]:
        """Uniqueness key: owner, category, month, year."""
        return (self.owner_id, self.category, self.month, self.year)
