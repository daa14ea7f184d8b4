"""
Proposal and Result Models

CRITICAL: A ProposedTransaction is what the classifier THINKS the user
said. It is never trusted until it has passed validation and, on
channels that require it, explicit human confirmation.

The result models here are what the core hands back to a channel
adapter (chat widget, messaging bot) for rendering.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from fundy.models.ledger import Transaction, TransactionType, utc_now


# =============================================================================
# ENUMS
# =============================================================================

class SavingsDirection(str, Enum):
    """Which way a savings proposal moves money."""
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"


class ClassifierIntent(str, Enum):
    TRANSACTION = "transaction"
    MULTIPLE_TRANSACTIONS = "multiple_transactions"
    GENERAL_CHAT = "general_chat"


class PendingState(str, Enum):
    """
    Lifecycle of a staged proposal.

    Proposed → Confirmed | Cancelled
    Proposed → Edited (token discarded, template returned for resubmission)
    """
    PROPOSED = "proposed"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    EDITED = "edited"


# =============================================================================
# CLASSIFIER OUTPUT
# =============================================================================

class ProposedTransaction(BaseModel):
    """
    One transaction parsed out of free text.

    All type-specific fields are optional because the classifier
    might not find them.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    type: TransactionType
    description: str = Field(default="", max_length=500)
    amount: Decimal = Field(
        default=Decimal("0"),
        description="Amount as understood by the classifier (not yet validated)"
    )
    confidence: float = Field(
        default=0.0,
        ge=0.0,
        le=1.0,
        description="Classifier confidence (0-1)"
    )

    category: Optional[str] = None
    source: Optional[str] = None
    goal_name: Optional[str] = None
    asset_name: Optional[str] = None
    wallet_name: Optional[str] = None
    destination_wallet_name: Optional[str] = None
    admin_fee: Decimal = Field(default=Decimal("0"), ge=0)
    savings_direction: SavingsDirection = SavingsDirection.DEPOSIT

    @field_validator('amount', 'admin_fee', mode='before')
    @classmethod
    def coerce_amount(cls, v):
        """LLM output arrives as int, float or string."""
        if v is None or v == "":
            return Decimal("0")
        if isinstance(v, (int, float, str)):
            return Decimal(str(v))
        return v

    @field_validator('type', 'savings_direction', mode='before')
    @classmethod
    def lowercase_enum(cls, v, info):
        if v is None and info.field_name == 'savings_direction':
            return SavingsDirection.DEPOSIT
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator('confidence', mode='before')
    @classmethod
    def default_confidence(cls, v):
        return 0.0 if v is None else v


class ClassificationResult(BaseModel):
    """What the classifier returns for one message."""

    intent: ClassifierIntent = ClassifierIntent.GENERAL_CHAT
    transactions: list[ProposedTransaction] = Field(default_factory=list)
    response: Optional[str] = Field(
        default=None,
        description="Free-text reply for general chat"
    )


# =============================================================================
# PENDING STATE
# =============================================================================

class PendingTransaction(BaseModel):
    """
    A proposal waiting for a human decision.

    Wallet and goal references are resolved to canonical identifiers
    at staging time, so confirm never re-runs fuzzy matching.
    """

    token: str
    owner_id: str
    channel_id: Optional[str] = None
    proposal: ProposedTransaction
    wallet_id: Optional[UUID] = None
    wallet_name: Optional[str] = None
    destination_wallet_id: Optional[UUID] = None
    destination_wallet_name: Optional[str] = None
    goal_name: Optional[str] = None
    batch_id: Optional[str] = None
    state: PendingState = PendingState.PROPOSED
    created_at: datetime = Field(default_factory=utc_now)
    expires_at: Optional[datetime] = None


class BatchSession(BaseModel):
    """Groups the tokens staged from one multi-transaction message."""

    batch_id: str
    owner_id: str
    channel_id: Optional[str] = None
    tokens: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    expires_at: Optional[datetime] = None


class RejectedProposal(BaseModel):
    """A proposal that never made it into the pending store."""

    proposal: ProposedTransaction
    reason: str


class BatchProposal(BaseModel):
    """Outcome of staging several proposals at once."""

    batch_id: Optional[str] = None
    pending: list[PendingTransaction] = Field(default_factory=list)
    rejected: list[RejectedProposal] = Field(default_factory=list)


# =============================================================================
# RESULTS
# =============================================================================

class TransferResult(BaseModel):
    """Rows written by a paired operation."""

    legs: list[Transaction]
    fee: Optional[Transaction] = None
    fee_error: Optional[str] = Field(
        default=None,
        description="Why the admin fee row could not be written, if it failed"
    )

    @property
    def rows(self) -> list[Transaction]:
        return self.legs + ([self.fee] if self.fee else [])


class ConfirmationResult(BaseModel):
    """Outcome of confirming one pending token."""

    token: str
    success: bool
    transactions: list[Transaction] = Field(default_factory=list)
    message: str
    error_code: Optional[str] = None
    details: dict[str, Any] = Field(default_factory=dict)


class BatchConfirmationResult(BaseModel):
    """Per-item outcome of confirming a batch. No all-or-nothing."""

    batch_id: str
    results: list[ConfirmationResult] = Field(default_factory=list)

    @property
    def succeeded(self) -> list[ConfirmationResult]:
        return [r for r in self.results if r.success]

    @property
    def failed(self) -> list[ConfirmationResult]:
        return [r for r in self.results if not r.success]

    @property
    def summary(self) -> str:
        return f"{len(self.succeeded)} of {len(self.results)} transactions recorded"


class EditTemplate(BaseModel):
    """Prefilled text the user can adjust and resubmit."""

    text: str
    proposal: ProposedTransaction


class ChannelReply(BaseModel):
    """
    What a channel adapter renders after a callback.

    The core never sends messages itself; it returns this and the
    adapter decides how to show it.
    """

    text: str
    success: bool = True
    edit_template: Optional[EditTemplate] = None
    results: list[ConfirmationResult] = Field(default_factory=list)
    pending: list[PendingTransaction] = Field(
        default_factory=list,
        description="Proposals awaiting confirm / edit / cancel buttons"
    )
    batch_id: Optional[str] = None


# =============================================================================
# SAVINGS DIAGNOSTICS
# =============================================================================

class AllocationBreakdownItem(BaseModel):
    """How much of the locked savings one goal holds."""

    goal_id: UUID
    goal_name: str
    allocated_amount: Decimal


class GoalHealth(BaseModel):
    """
    Read-only diagnostic comparing allocated vs actually saved.

    A goal is unhealthy when savings were withdrawn without first
    being deallocated. We report it; we never auto-correct it.
    """

    goal_id: UUID
    goal_name: str
    target_amount: Decimal
    allocated_amount: Decimal
    current_amount: Decimal
    shortfall: Decimal
    is_healthy: bool
    warning: Optional[str] = None


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single problem found with a proposal."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'low_confidence', 'suspicious_value')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Example of input that would work"
    )


class ValidationResult(BaseModel):
    """
    Result of the two-stage proposal validation.

    Stage 1: Schema validation (confidence, amount, required references)
    Stage 2: Semantic validation (name resolution, sanity checks)
    """

    schema_valid: bool
    semantic_valid: bool
    is_valid: bool
    issues: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    validated_at: datetime = Field(default_factory=utc_now)

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def first_error(self) -> Optional[ValidationIssue]:
        return next((i for i in self.issues if i.severity == "error"), None)
