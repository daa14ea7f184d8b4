"""
Audit Models for Fundy

Every ledger write, every staged proposal and every human decision
is logged for audit purposes. This provides:
1. Complete traceability of money movement
2. Debugging information when a confirmation fails
3. A record of what the user actually approved

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from fundy.models.ledger import utc_now


class AuditEventType(str, Enum):
    """
    Types of events we audit.
    """
    # Ledger writes
    TRANSACTION_RECORDED = "transaction_recorded"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"
    INVESTMENT_RESTATED = "investment_restated"

    # Paired operations
    TRANSFER_CREATED = "transfer_created"
    SAVINGS_DEPOSITED = "savings_deposited"
    SAVINGS_WITHDRAWN = "savings_withdrawn"
    ADMIN_FEE_FAILED = "admin_fee_failed"

    # Savings goals
    GOAL_ALLOCATED = "goal_allocated"
    GOAL_DEALLOCATED = "goal_deallocated"
    GOAL_HEALTH_WARNING = "goal_health_warning"

    # Accounts
    WALLET_CREATED = "wallet_created"
    WALLET_DEACTIVATED = "wallet_deactivated"
    GOAL_CREATED = "goal_created"

    # Budgets
    BUDGET_SET = "budget_set"
    BUDGET_DELETED = "budget_deleted"

    # Human confirmation
    PROPOSAL_STAGED = "proposal_staged"
    PROPOSAL_REJECTED = "proposal_rejected"
    USER_CONFIRMED = "user_confirmed"
    USER_CANCELLED = "user_cancelled"
    USER_EDITED = "user_edited"
    CONFIRMATION_FAILED = "confirmation_failed"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Who and what
    owner_id: Optional[str] = Field(
        default=None,
        description="User the event belongs to"
    )
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'wallet', 'goal', 'pending')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID or token of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all legs of one transfer)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "owner_id": self.owner_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, owner_id, entity_type,
         entity_id, correlation_id, description, details_json, error_message,
         is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.owner_id or "",
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transaction_recorded(owner_id, txn_id, "expense", "50000")
        event = AuditEventBuilder.user_confirmed(owner_id, token, [txn_id])
    """

    @staticmethod
    def transaction_recorded(
        owner_id: str,
        transaction_id: UUID,
        transaction_type: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_RECORDED,
            owner_id=owner_id,
            entity_type="transaction",
            entity_id=str(transaction_id),
            correlation_id=correlation_id,
            description=f"Recorded {transaction_type} of {amount}",
            details={
                "type": transaction_type,
                "amount": amount,
            },
        )

    @staticmethod
    def transaction_updated(
        owner_id: str,
        transaction_id: UUID,
        fields: dict,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_UPDATED,
            owner_id=owner_id,
            entity_type="transaction",
            entity_id=str(transaction_id),
            description=f"Transaction edited: {', '.join(sorted(fields))}",
            details={"fields": {k: str(v) for k, v in fields.items()}},
            is_user_action=True,
        )

    @staticmethod
    def transaction_deleted(
        owner_id: str,
        transaction_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            owner_id=owner_id,
            entity_type="transaction",
            entity_id=str(transaction_id),
            description="Transaction deleted",
            is_user_action=True,
        )

    @staticmethod
    def investment_restated(
        owner_id: str,
        asset_name: str,
        amount: str,
        replaced: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INVESTMENT_RESTATED,
            owner_id=owner_id,
            entity_type="transaction",
            description=f"Investment portfolio restated: {asset_name} = {amount}",
            details={
                "asset_name": asset_name,
                "amount": amount,
                "replaced_rows": replaced,
            },
        )

    @staticmethod
    def transfer_created(
        owner_id: str,
        event_type: AuditEventType,
        leg_ids: list[UUID],
        amount: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=event_type,
            owner_id=owner_id,
            entity_type="transaction",
            correlation_id=correlation_id,
            description=f"{event_type.value.replace('_', ' ').capitalize()}: {amount}",
            details={
                "leg_ids": [str(i) for i in leg_ids],
                "amount": amount,
            },
        )

    @staticmethod
    def admin_fee_failed(
        owner_id: str,
        amount: str,
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ADMIN_FEE_FAILED,
            severity=AuditSeverity.WARNING,
            owner_id=owner_id,
            entity_type="transaction",
            correlation_id=correlation_id,
            description=f"Admin fee of {amount} was not recorded",
            error_message=error_message,
            details={"amount": amount},
        )

    @staticmethod
    def goal_allocation_changed(
        owner_id: str,
        goal_id: UUID,
        goal_name: str,
        delta: str,
        allocated_amount: str,
    ) -> AuditEvent:
        event_type = (
            AuditEventType.GOAL_DEALLOCATED
            if delta.startswith("-")
            else AuditEventType.GOAL_ALLOCATED
        )
        return AuditEvent(
            event_type=event_type,
            owner_id=owner_id,
            entity_type="goal",
            entity_id=str(goal_id),
            description=f"Goal '{goal_name}' allocation changed by {delta}",
            details={
                "goal_name": goal_name,
                "delta": delta,
                "allocated_amount": allocated_amount,
            },
            is_user_action=True,
        )

    @staticmethod
    def goal_health_warning(
        owner_id: str,
        goal_id: UUID,
        goal_name: str,
        shortfall: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GOAL_HEALTH_WARNING,
            severity=AuditSeverity.WARNING,
            owner_id=owner_id,
            entity_type="goal",
            entity_id=str(goal_id),
            description=f"Goal '{goal_name}' is under-funded by {shortfall}",
            details={"goal_name": goal_name, "shortfall": shortfall},
        )

    @staticmethod
    def account_created(
        owner_id: str,
        event_type: AuditEventType,
        entity_type: str,
        entity_id: UUID,
        name: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=event_type,
            owner_id=owner_id,
            entity_type=entity_type,
            entity_id=str(entity_id),
            description=f"{entity_type.capitalize()} '{name}': {event_type.value.split('_')[-1]}",
            details={"name": name},
            is_user_action=True,
        )

    @staticmethod
    def proposal_staged(
        owner_id: str,
        token: str,
        transaction_type: str,
        amount: str,
        confidence: float,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PROPOSAL_STAGED,
            owner_id=owner_id,
            entity_type="pending",
            entity_id=token,
            description=f"Proposed {transaction_type} of {amount} awaiting confirmation",
            details={
                "type": transaction_type,
                "amount": amount,
                "confidence": confidence,
            },
        )

    @staticmethod
    def proposal_rejected(
        owner_id: str,
        transaction_type: str,
        reason: str,
        confidence: float,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PROPOSAL_REJECTED,
            severity=AuditSeverity.WARNING,
            owner_id=owner_id,
            entity_type="pending",
            description=f"Proposal rejected: {reason}"[:500],
            details={
                "type": transaction_type,
                "confidence": confidence,
            },
        )

    @staticmethod
    def user_decision(
        owner_id: str,
        event_type: AuditEventType,
        token: str,
        transaction_ids: Optional[list[UUID]] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=event_type,
            owner_id=owner_id,
            entity_type="pending",
            entity_id=token,
            description=f"Pending transaction {event_type.value.split('_')[-1]} by user",
            details={
                "transaction_ids": [str(i) for i in transaction_ids or []],
            },
            is_user_action=True,
        )

    @staticmethod
    def confirmation_failed(
        owner_id: str,
        token: str,
        error_code: str,
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CONFIRMATION_FAILED,
            severity=AuditSeverity.WARNING,
            owner_id=owner_id,
            entity_type="pending",
            entity_id=token,
            description="Confirmed transaction could not be recorded",
            error_code=error_code,
            error_message=error_message,
            is_user_action=True,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={
                "service": service,
            },
            correlation_id=correlation_id,
        )
