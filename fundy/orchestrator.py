"""
Main Orchestrator for Fundy

This module ties together all the components and defines the
end-to-end chat flow:

    message → classify → validate → (stage → confirm) → ledger rows

DESIGN DECISION: The orchestrator enforces the boundaries:
- No classifier output reaches the ledger without validation
- Channels that require confirmation never write before the user confirms
- Every step is audited

This is the "glue" that ensures the system works correctly
even when individual components might behave unexpectedly.
"""

from dataclasses import dataclass
from typing import Optional

import structlog

from fundy.agents import TransactionClassifier
from fundy.audit import AuditLogger
from fundy.config import get_settings
from fundy.confirmation import ConfirmationStateMachine
from fundy.errors import FundyError, ValidationError
from fundy.ledger import (
    AccountRegistry,
    BalanceCache,
    BalanceCalculator,
    LedgerStore,
    PairedOperationConstructor,
    SavingsGoalAllocator,
    TransactionPipeline,
)
from fundy.models.ledger import Transaction, TransactionType, format_money
from fundy.models.proposals import (
    ChannelReply,
    ClassifierIntent,
    ConfirmationResult,
    PendingTransaction,
    SavingsDirection,
)
from fundy.queries import BudgetTracker, FinancialSummaryBuilder
from fundy.services.pending import InMemoryPendingStore, PendingStoreInterface
from fundy.services.storage import (
    AuditStorageInterface,
    BudgetStorageInterface,
    GoalStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsBudgetStorage,
    GoogleSheetsClient,
    GoogleSheetsGoalStorage,
    GoogleSheetsLedgerStorage,
    GoogleSheetsWalletStorage,
    InMemoryAuditStorage,
    InMemoryBudgetStorage,
    InMemoryGoalStorage,
    InMemoryLedgerStorage,
    InMemoryWalletStorage,
    LedgerStorageInterface,
    WalletStorageInterface,
)
from fundy.validation import ProposalValidator


logger = structlog.get_logger(__name__)

BOT_NAME = "Fundy AI Assistant"

GREETING = (
    f"Hi! I'm {BOT_NAME}. Tell me what you spent or earned, for example "
    "\"Beli kopi 50rb pakai BCA\"."
)


def describe_pending(pending: PendingTransaction) -> str:
    """One-line preview shown next to the confirm / edit / cancel buttons."""
    proposal = pending.proposal
    amount = format_money(proposal.amount)
    label = proposal.description or proposal.type.value.title()

    if proposal.type == TransactionType.TRANSFER:
        line = (
            f"🔁 Transfer {amount}: {pending.wallet_name} → "
            f"{pending.destination_wallet_name}"
        )
        if proposal.admin_fee:
            line += f" (admin fee {format_money(proposal.admin_fee)})"
        return line
    if proposal.type == TransactionType.SAVINGS:
        if proposal.savings_direction == SavingsDirection.WITHDRAWAL:
            return f"🏦 Withdraw {amount} from savings → {pending.wallet_name}"
        goal = f" for {pending.goal_name}" if pending.goal_name else ""
        return f"🏦 Save {amount} from {pending.wallet_name}{goal}"
    if proposal.type == TransactionType.INVESTMENT:
        return f"📈 Investment portfolio value {amount}: {label}"
    if proposal.type == TransactionType.INCOME:
        return f"💰 Income {amount}: {label} → {pending.wallet_name}"
    category = f" [{proposal.category}]" if proposal.category else ""
    return f"💸 Expense {amount}: {label}{category} ({pending.wallet_name})"


class ChatFlow:
    """
    Orchestrates the chat flow.

    Flow:
    1. Classify → Gemini turns the message into proposals
    2. Validate → Confidence, amount, name resolution
    3. Stage → Proposal stored with a token (confirming channels)
    4. Confirm → Handled by ConfirmationStateMachine callbacks
    5. Write → Pipeline / paired-operation constructor

    Channels that don't require confirmation skip steps 3 and 4
    but still go through validation.
    """

    def __init__(
        self,
        machine: ConfirmationStateMachine,
        store: LedgerStore,
        wallets: WalletStorageInterface,
        classifier: Optional[TransactionClassifier] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._machine = machine
        self._store = store
        self._wallets = wallets
        self._classifier = classifier or TransactionClassifier(audit_logger=audit_logger)
        self._audit_logger = audit_logger

    async def handle_message(
        self,
        owner_id: str,
        text: str,
        channel_id: Optional[str] = None,
        require_confirmation: bool = True,
    ) -> ChannelReply:
        """
        Handle one chat message.

        Returns:
            ChannelReply with preview text and staged proposals, or the
            written results when confirmation isn't required
        """
        if not text or not text.strip():
            return ChannelReply(text=GREETING)

        wallet_names = [w.name for w in await self._wallets.list_wallets(owner_id)]
        classification = await self._classifier.classify(text, owner_id, wallet_names)

        if (
            classification.intent == ClassifierIntent.GENERAL_CHAT
            or not classification.transactions
        ):
            return ChannelReply(text=classification.response or GREETING)

        if not require_confirmation:
            return await self._record_directly(owner_id, classification.transactions)

        if len(classification.transactions) == 1:
            try:
                pending = await self._machine.propose(
                    owner_id, classification.transactions[0], channel_id
                )
            except ValidationError as e:
                return ChannelReply(text=e.user_message, success=False)
            return ChannelReply(
                text=f"{describe_pending(pending)}\n\nConfirm this transaction?",
                pending=[pending],
            )

        batch = await self._machine.propose_batch(
            owner_id, classification.transactions, channel_id
        )
        lines = []
        if batch.pending:
            lines.append(f"📋 {len(batch.pending)} transactions to confirm:")
            lines.extend(f"   {i}. {describe_pending(p)}" for i, p in enumerate(batch.pending, 1))
        if batch.rejected:
            lines.append("")
            lines.append(f"⚠️ {len(batch.rejected)} could not be understood:")
            lines.extend(f"   • {r.reason}" for r in batch.rejected)

        return ChannelReply(
            text="\n".join(lines).strip(),
            success=bool(batch.pending),
            pending=batch.pending,
            batch_id=batch.batch_id,
        )

    async def _record_directly(self, owner_id: str, proposals) -> ChannelReply:
        results = []
        for proposal in proposals:
            try:
                results.append(await self._machine.record(owner_id, proposal))
            except FundyError as e:
                results.append(ConfirmationResult(
                    token="",
                    success=False,
                    message=f"❌ {e.user_message}",
                    error_code=e.code,
                    details=e.details,
                ))

        return ChannelReply(
            text="\n".join(r.message for r in results),
            success=all(r.success for r in results),
            results=results,
        )

    async def recent_transactions(
        self,
        owner_id: str,
        limit: Optional[int] = None,
    ) -> list[Transaction]:
        """Newest rows first, capped at the configured default."""
        limit = limit or get_settings().ledger.default_list_limit
        return await self._store.list_by_owner(owner_id, limit=limit)


@dataclass
class AppComponents:
    """Everything a channel adapter needs, wired together."""

    chat_flow: ChatFlow
    machine: ConfirmationStateMachine
    accounts: AccountRegistry
    pipeline: TransactionPipeline
    transfers: PairedOperationConstructor
    allocator: SavingsGoalAllocator
    summary: FinancialSummaryBuilder
    budgets: BudgetTracker
    store: LedgerStore
    calculator: BalanceCalculator
    audit_logger: AuditLogger
    audit_storage: AuditStorageInterface
    sheets_client: Optional[GoogleSheetsClient] = None


def _memory_storages() -> tuple[
    LedgerStorageInterface,
    WalletStorageInterface,
    GoalStorageInterface,
    BudgetStorageInterface,
    AuditStorageInterface,
]:
    return (
        InMemoryLedgerStorage(),
        InMemoryWalletStorage(),
        InMemoryGoalStorage(),
        InMemoryBudgetStorage(),
        InMemoryAuditStorage(),
    )


def create_app_components(
    storage_backend: Optional[str] = None,
    classifier: Optional[TransactionClassifier] = None,
    pending_store: Optional[PendingStoreInterface] = None,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        storage_backend: "memory" or "google_sheets"; defaults to
                         STORAGE_BACKEND
        classifier: Injected classifier (tests pass a stub)
        pending_store: Injected pending store

    Returns:
        AppComponents
    """
    settings = get_settings()
    backend = storage_backend or settings.app.storage_backend
    sheets_client = None

    if backend == "google_sheets":
        try:
            sheets_client = GoogleSheetsClient()
            ledger_storage = GoogleSheetsLedgerStorage(sheets_client)
            wallet_storage = GoogleSheetsWalletStorage(sheets_client)
            goal_storage = GoogleSheetsGoalStorage(sheets_client)
            budget_storage = GoogleSheetsBudgetStorage(sheets_client)
            audit_storage = GoogleSheetsAuditStorage(sheets_client)
        except Exception as e:
            # Storage not configured - continue in memory
            logger.warning("sheets_storage_unavailable", error=str(e))
            sheets_client = None
            (
                ledger_storage, wallet_storage, goal_storage, budget_storage, audit_storage
            ) = _memory_storages()
    else:
        (
            ledger_storage, wallet_storage, goal_storage, budget_storage, audit_storage
        ) = _memory_storages()

    audit_logger = AuditLogger(audit_storage)

    store = LedgerStore(
        ledger_storage,
        BalanceCache(ttl_seconds=settings.ledger.balance_cache_ttl_seconds),
    )
    calculator = BalanceCalculator(store)
    pipeline = TransactionPipeline(store, calculator, wallet_storage, audit_logger)
    allocator = SavingsGoalAllocator(
        store,
        calculator,
        goal_storage,
        wallet_storage,
        audit_logger,
        health_tolerance=settings.ledger.allocation_health_tolerance,
    )
    transfers = PairedOperationConstructor(store, pipeline, allocator, audit_logger)
    machine = ConfirmationStateMachine(
        pipeline,
        transfers,
        wallet_storage,
        goal_storage,
        pending_store or InMemoryPendingStore(ttl_seconds=settings.ledger.pending_ttl_seconds),
        validator=ProposalValidator(min_confidence=settings.ledger.min_confidence),
        audit_logger=audit_logger,
    )

    chat_flow = ChatFlow(
        machine,
        store,
        wallet_storage,
        classifier=classifier,
        audit_logger=audit_logger,
    )

    return AppComponents(
        chat_flow=chat_flow,
        machine=machine,
        accounts=AccountRegistry(wallet_storage, goal_storage, calculator, audit_logger),
        pipeline=pipeline,
        transfers=transfers,
        allocator=allocator,
        summary=FinancialSummaryBuilder(store, calculator, wallet_storage, goal_storage),
        budgets=BudgetTracker(store, budget_storage, audit_logger),
        store=store,
        calculator=calculator,
        audit_logger=audit_logger,
        audit_storage=audit_storage,
        sheets_client=sheets_client,
    )
