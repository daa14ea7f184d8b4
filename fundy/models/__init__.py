"""
Data Models Package

This package contains all Pydantic models used in Fundy.
All data flowing through the system must conform to these schemas.
"""

from fundy.models.ledger import (
    TRANSFER_CATEGORY,
    Budget,
    ExpenseCategory,
    IncomeSource,
    SavingsGoal,
    Transaction,
    TransactionType,
    TransferType,
    Wallet,
    WalletType,
    format_money,
    utc_now,
)
from fundy.models.proposals import (
    AllocationBreakdownItem,
    BatchConfirmationResult,
    BatchProposal,
    BatchSession,
    ChannelReply,
    ClassificationResult,
    ClassifierIntent,
    ConfirmationResult,
    EditTemplate,
    GoalHealth,
    PendingState,
    PendingTransaction,
    ProposedTransaction,
    RejectedProposal,
    SavingsDirection,
    TransferResult,
    ValidationIssue,
    ValidationResult,
)
from fundy.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "TRANSFER_CATEGORY",
    "Budget",
    "ExpenseCategory",
    "IncomeSource",
    "SavingsGoal",
    "Transaction",
    "TransactionType",
    "TransferType",
    "Wallet",
    "WalletType",
    "format_money",
    "utc_now",
    # Proposal models
    "AllocationBreakdownItem",
    "BatchConfirmationResult",
    "BatchProposal",
    "BatchSession",
    "ChannelReply",
    "ClassificationResult",
    "ClassifierIntent",
    "ConfirmationResult",
    "EditTemplate",
    "GoalHealth",
    "PendingState",
    "PendingTransaction",
    "ProposedTransaction",
    "RejectedProposal",
    "SavingsDirection",
    "TransferResult",
    "ValidationIssue",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
