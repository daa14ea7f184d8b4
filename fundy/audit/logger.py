"""
Audit Logger

DESIGN DECISION: Every ledger write and every human decision is logged.
This provides:
1. Complete traceability of money movement
2. Debugging capability when a confirmation fails
3. User can see history of their interactions

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace the legs of one paired operation
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import structlog

from fundy.models.audit import AuditEvent, AuditEventBuilder, AuditEventType
from fundy.models.ledger import SavingsGoal, Transaction
from fundy.models.proposals import GoalHealth, PendingTransaction, ProposedTransaction
from fundy.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence and user visibility)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("fundy.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    # ----- ledger writes -----

    async def log_transaction_recorded(
        self,
        transaction: Transaction,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_recorded(
            owner_id=transaction.owner_id,
            transaction_id=transaction.id,
            transaction_type=transaction.type.value,
            amount=str(transaction.amount),
            correlation_id=correlation_id,
        ))

    async def log_transaction_updated(
        self,
        owner_id: str,
        transaction_id: UUID,
        fields: dict,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_updated(
            owner_id=owner_id,
            transaction_id=transaction_id,
            fields=fields,
        ))

    async def log_transaction_deleted(self, owner_id: str, transaction_id: UUID) -> None:
        await self.log(AuditEventBuilder.transaction_deleted(
            owner_id=owner_id,
            transaction_id=transaction_id,
        ))

    async def log_investment_restated(
        self,
        transaction: Transaction,
        replaced: int,
    ) -> None:
        await self.log(AuditEventBuilder.investment_restated(
            owner_id=transaction.owner_id,
            asset_name=transaction.asset_name or "portfolio",
            amount=str(transaction.amount),
            replaced=replaced,
        ))

    async def log_paired_operation(
        self,
        owner_id: str,
        event_type: AuditEventType,
        legs: list[Transaction],
        amount: Decimal,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.transfer_created(
            owner_id=owner_id,
            event_type=event_type,
            leg_ids=[leg.id for leg in legs],
            amount=str(amount),
            correlation_id=correlation_id,
        ))

    async def log_admin_fee_failed(
        self,
        owner_id: str,
        amount: Decimal,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.admin_fee_failed(
            owner_id=owner_id,
            amount=str(amount),
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    # ----- savings goals & accounts -----

    async def log_goal_allocation_changed(
        self,
        goal: SavingsGoal,
        delta: Decimal,
    ) -> None:
        await self.log(AuditEventBuilder.goal_allocation_changed(
            owner_id=goal.owner_id,
            goal_id=goal.id,
            goal_name=goal.goal_name,
            delta=str(delta),
            allocated_amount=str(goal.allocated_amount),
        ))

    async def log_goal_health_warning(self, owner_id: str, health: GoalHealth) -> None:
        await self.log(AuditEventBuilder.goal_health_warning(
            owner_id=owner_id,
            goal_id=health.goal_id,
            goal_name=health.goal_name,
            shortfall=str(health.shortfall),
        ))

    async def log_account_event(
        self,
        owner_id: str,
        event_type: AuditEventType,
        entity_type: str,
        entity_id: UUID,
        name: str,
    ) -> None:
        await self.log(AuditEventBuilder.account_created(
            owner_id=owner_id,
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            name=name,
        ))

    # ----- human confirmation -----

    async def log_proposal_staged(self, pending: PendingTransaction) -> None:
        await self.log(AuditEventBuilder.proposal_staged(
            owner_id=pending.owner_id,
            token=pending.token,
            transaction_type=pending.proposal.type.value,
            amount=str(pending.proposal.amount),
            confidence=pending.proposal.confidence,
        ))

    async def log_proposal_rejected(
        self,
        owner_id: str,
        proposal: ProposedTransaction,
        reason: str,
    ) -> None:
        await self.log(AuditEventBuilder.proposal_rejected(
            owner_id=owner_id,
            transaction_type=proposal.type.value,
            reason=reason,
            confidence=proposal.confidence,
        ))

    async def log_user_decision(
        self,
        owner_id: str,
        event_type: AuditEventType,
        token: str,
        transaction_ids: Optional[list[UUID]] = None,
    ) -> None:
        await self.log(AuditEventBuilder.user_decision(
            owner_id=owner_id,
            event_type=event_type,
            token=token,
            transaction_ids=transaction_ids,
        ))

    async def log_confirmation_failed(
        self,
        owner_id: str,
        token: str,
        error_code: str,
        error_message: str,
    ) -> None:
        await self.log(AuditEventBuilder.confirmation_failed(
            owner_id=owner_id,
            token=token,
            error_code=error_code,
            error_message=error_message,
        ))

    # ----- system -----

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        await self.log(AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a multi-row operation (e.g., a transfer)
    and stamp it on every event the operation emits.
    """
    return uuid4()
