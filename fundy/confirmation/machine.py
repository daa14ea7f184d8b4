"""
Confirmation State Machine

Every classifier proposal goes through this lifecycle:

    Proposed → Confirmed   (rows written, token discarded)
    Proposed → Cancelled   (nothing written, token discarded)
    Proposed → Edited      (token discarded, prefilled template returned)

CRITICAL: Nothing reaches the ledger from a chat channel that requires
confirmation until the user explicitly confirms. A failed confirm
keeps the token so the user can fix the cause (top up the wallet,
deallocate a goal) and retry. Confirm claims the token before writing,
so one proposal commits at most once.

DESIGN DECISION: Wallet, destination and goal names are resolved when
the proposal is staged. Confirm works on canonical identifiers and
never re-runs fuzzy matching.
"""

import secrets
from typing import Optional

import structlog

from fundy.audit import AuditLogger
from fundy.errors import ExpiredError, FundyError, ValidationError
from fundy.ledger.pipeline import TransactionPipeline
from fundy.ledger.resolution import resolve_goal, resolve_wallet
from fundy.ledger.transfers import PairedOperationConstructor
from fundy.models.audit import AuditEventType
from fundy.models.ledger import Transaction, TransactionType, format_money
from fundy.models.proposals import (
    BatchConfirmationResult,
    BatchProposal,
    BatchSession,
    ChannelReply,
    ConfirmationResult,
    EditTemplate,
    PendingState,
    PendingTransaction,
    ProposedTransaction,
    RejectedProposal,
    SavingsDirection,
)
from fundy.services.pending import PendingStoreInterface
from fundy.services.storage import (
    GoalStorageInterface,
    StorageError,
    WalletStorageInterface,
)
from fundy.validation import ProposalValidator


logger = structlog.get_logger(__name__)

# Callback payloads sent by messaging channels, "<action>:<token>"
CONFIRM_PREFIX = "confirm_tx"
EDIT_PREFIX = "edit_tx"
CANCEL_PREFIX = "cancel_tx"
CONFIRM_ALL_PREFIX = "confirm_all"
CANCEL_ALL_PREFIX = "cancel_all"


def _new_token() -> str:
    return secrets.token_urlsafe(12)


class ConfirmationStateMachine:
    """
    Stages proposals and turns confirmed ones into ledger rows.

    Routing on confirm:
    - expense    → TransactionPipeline.create_expense
    - income     → TransactionPipeline.create_income
    - investment → TransactionPipeline.restate_investment
    - transfer   → PairedOperationConstructor.transfer
    - savings    → deposit_to_savings / withdraw_from_savings
    """

    def __init__(
        self,
        pipeline: TransactionPipeline,
        transfers: PairedOperationConstructor,
        wallets: WalletStorageInterface,
        goals: GoalStorageInterface,
        pending_store: PendingStoreInterface,
        validator: Optional[ProposalValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._pipeline = pipeline
        self._transfers = transfers
        self._wallets = wallets
        self._goals = goals
        self._pending = pending_store
        self._validator = validator or ProposalValidator()
        self._audit_logger = audit_logger

    # ===== STAGING =====

    async def _resolve(
        self,
        owner_id: str,
        proposal: ProposedTransaction,
        channel_id: Optional[str] = None,
        batch_id: Optional[str] = None,
    ) -> PendingTransaction:
        """
        Validate the proposal and bind its names to the owner's accounts.

        Raises:
            ValidationError: Low confidence, no amount, or names that
                don't resolve
        """
        wallets = await self._wallets.list_wallets(owner_id)
        goals = await self._goals.list_goals(owner_id)

        result = self._validator.validate(proposal, wallets, goals)
        if not result.is_valid:
            reason = self._validator.get_user_friendly_summary(result)
            if self._audit_logger:
                first = result.first_error
                await self._audit_logger.log_proposal_rejected(
                    owner_id, proposal, first.message if first else reason
                )
            raise ValidationError(
                reason,
                details={
                    "issues": [issue.model_dump() for issue in result.issues],
                },
            )

        wallet = resolve_wallet(proposal.wallet_name, wallets)
        destination = None
        if proposal.type == TransactionType.TRANSFER:
            destination = resolve_wallet(proposal.destination_wallet_name, wallets)
        goal = None
        if proposal.type == TransactionType.SAVINGS:
            goal = resolve_goal(proposal.goal_name, goals)

        return PendingTransaction(
            token=_new_token(),
            owner_id=owner_id,
            channel_id=channel_id,
            proposal=proposal,
            wallet_id=wallet.id if wallet else None,
            wallet_name=wallet.name if wallet else None,
            destination_wallet_id=destination.id if destination else None,
            destination_wallet_name=destination.name if destination else None,
            goal_name=goal.goal_name if goal else None,
            batch_id=batch_id,
        )

    async def propose(
        self,
        owner_id: str,
        proposal: ProposedTransaction,
        channel_id: Optional[str] = None,
        batch_id: Optional[str] = None,
    ) -> PendingTransaction:
        """
        Stage one proposal and return it with its token.

        Raises:
            ValidationError: The proposal can't be staged as-is
        """
        pending = await self._resolve(owner_id, proposal, channel_id, batch_id)
        pending = await self._pending.put(pending)

        logger.info(
            "proposal_staged",
            owner_id=owner_id,
            token=pending.token,
            type=proposal.type.value,
        )
        if self._audit_logger:
            await self._audit_logger.log_proposal_staged(pending)
        return pending

    async def propose_batch(
        self,
        owner_id: str,
        proposals: list[ProposedTransaction],
        channel_id: Optional[str] = None,
    ) -> BatchProposal:
        """
        Stage every valid proposal from one message under a batch id.

        Rejected proposals are reported, never staged.
        """
        batch_id = _new_token()
        staged = []
        rejected = []

        for proposal in proposals:
            try:
                staged.append(await self.propose(owner_id, proposal, channel_id, batch_id))
            except ValidationError as e:
                rejected.append(RejectedProposal(proposal=proposal, reason=e.user_message))

        if not staged:
            return BatchProposal(rejected=rejected)

        await self._pending.put_batch(BatchSession(
            batch_id=batch_id,
            owner_id=owner_id,
            channel_id=channel_id,
            tokens=[p.token for p in staged],
        ))
        return BatchProposal(batch_id=batch_id, pending=staged, rejected=rejected)

    # ===== EXECUTION =====

    async def _execute(self, pending: PendingTransaction) -> tuple[list[Transaction], Optional[str]]:
        """Write the rows for a resolved proposal. Returns (rows, fee_error)."""
        proposal = pending.proposal
        owner_id = pending.owner_id

        if proposal.type == TransactionType.EXPENSE:
            row = await self._pipeline.create_expense(
                owner_id,
                proposal.amount,
                proposal.description,
                pending.wallet_id,
                category=proposal.category,
            )
            return [row], None

        if proposal.type == TransactionType.INCOME:
            row = await self._pipeline.create_income(
                owner_id,
                proposal.amount,
                proposal.description,
                pending.wallet_id,
                source=proposal.source,
            )
            return [row], None

        if proposal.type == TransactionType.INVESTMENT:
            row = await self._pipeline.restate_investment(
                owner_id,
                proposal.amount,
                proposal.description,
                asset_name=proposal.asset_name,
            )
            return [row], None

        if proposal.type == TransactionType.TRANSFER:
            result = await self._transfers.transfer(
                owner_id,
                pending.wallet_id,
                pending.destination_wallet_id,
                proposal.amount,
                description=proposal.description or None,
                admin_fee=proposal.admin_fee,
            )
            return result.rows, result.fee_error

        if proposal.savings_direction == SavingsDirection.WITHDRAWAL:
            result = await self._transfers.withdraw_from_savings(
                owner_id,
                pending.wallet_id,
                proposal.amount,
                description=proposal.description or None,
                goal_name=pending.goal_name,
            )
        else:
            result = await self._transfers.deposit_to_savings(
                owner_id,
                pending.wallet_id,
                proposal.amount,
                description=proposal.description or None,
                goal_name=pending.goal_name,
            )
        return result.rows, None

    @staticmethod
    def _success_message(pending: PendingTransaction, fee_error: Optional[str]) -> str:
        proposal = pending.proposal
        amount = format_money(proposal.amount)

        if proposal.type == TransactionType.TRANSFER:
            message = (
                f"✅ Transferred {amount} from {pending.wallet_name} "
                f"to {pending.destination_wallet_name}."
            )
            if proposal.admin_fee and not fee_error:
                message += f" Admin fee {format_money(proposal.admin_fee)} recorded."
        elif proposal.type == TransactionType.SAVINGS:
            if proposal.savings_direction == SavingsDirection.WITHDRAWAL:
                message = f"✅ Withdrew {amount} from savings to {pending.wallet_name}."
            else:
                message = f"✅ Saved {amount} from {pending.wallet_name}"
                message += f" for {pending.goal_name}." if pending.goal_name else "."
        elif proposal.type == TransactionType.INVESTMENT:
            message = f"✅ Investment portfolio updated to {amount}."
        else:
            message = f"✅ Recorded {proposal.type.value} of {amount} ({pending.wallet_name})."

        if fee_error:
            message += f" ⚠️ The admin fee could not be recorded: {fee_error}"
        return message

    async def record(self, owner_id: str, proposal: ProposedTransaction) -> ConfirmationResult:
        """
        Validate and write a proposal without staging it.

        Used by channels that don't ask for confirmation. The same
        validation applies, so low-confidence proposals never land.
        """
        pending = await self._resolve(owner_id, proposal)
        rows, fee_error = await self._execute(pending)
        return ConfirmationResult(
            token=pending.token,
            success=True,
            transactions=rows,
            message=self._success_message(pending, fee_error),
        )

    # ===== DECISIONS =====

    async def _get_owned(self, owner_id: str, token: str) -> PendingTransaction:
        pending = await self._pending.get(token)
        # Someone else's token looks exactly like an expired one
        if pending is None or pending.owner_id != owner_id:
            raise ExpiredError(token)
        return pending

    async def confirm(self, owner_id: str, token: str) -> ConfirmationResult:
        """
        Write the staged proposal.

        Raises:
            ExpiredError: Token missing, expired, not the owner's, or
                already claimed by another confirm
            FundyError: The write was rejected; the token is kept
        """
        await self._get_owned(owner_id, token)
        # Claim before writing; a concurrent confirm of the same token
        # finds it gone and never reaches the ledger
        pending = await self._pending.discard(token)
        if pending is None:
            raise ExpiredError(token)

        try:
            rows, fee_error = await self._execute(pending)
        except FundyError as e:
            await self._pending.restore(pending)
            logger.warning(
                "confirmation_failed",
                owner_id=owner_id,
                token=token,
                error_code=e.code,
            )
            if self._audit_logger:
                await self._audit_logger.log_confirmation_failed(
                    owner_id, token, e.code, e.user_message
                )
            raise
        except StorageError:
            await self._pending.restore(pending)
            raise

        if self._audit_logger:
            await self._audit_logger.log_user_decision(
                owner_id,
                AuditEventType.USER_CONFIRMED,
                token,
                [row.id for row in rows],
            )

        return ConfirmationResult(
            token=token,
            success=True,
            transactions=rows,
            message=self._success_message(pending, fee_error),
        )

    async def confirm_all(self, owner_id: str, batch_id: str) -> BatchConfirmationResult:
        """
        Confirm every token still pending in a batch.

        Items succeed or fail independently. Failed items keep their
        tokens; the batch session is dropped once nothing is left.
        """
        session = await self._pending.get_batch(batch_id)
        if session is None or session.owner_id != owner_id:
            raise ExpiredError(batch_id)

        results = []
        remaining = []
        for token in session.tokens:
            try:
                results.append(await self.confirm(owner_id, token))
            except ExpiredError:
                continue
            except FundyError as e:
                remaining.append(token)
                results.append(ConfirmationResult(
                    token=token,
                    success=False,
                    message=e.user_message,
                    error_code=e.code,
                    details=e.details,
                ))
            except StorageError as e:
                logger.error("batch_item_storage_failed", owner_id=owner_id, token=token, error=str(e))
                if self._audit_logger:
                    await self._audit_logger.log_error(
                        "storage_error", str(e), details={"token": token}
                    )
                remaining.append(token)
                results.append(ConfirmationResult(
                    token=token,
                    success=False,
                    message="Storage is unavailable right now. Please try again.",
                    error_code="storage_error",
                ))

        if remaining:
            await self._pending.put_batch(session.model_copy(update={"tokens": remaining}))
        else:
            await self._pending.discard_batch(batch_id)

        return BatchConfirmationResult(batch_id=batch_id, results=results)

    async def edit(self, owner_id: str, token: str) -> EditTemplate:
        """
        Drop the staged proposal and return a prefilled template.

        The user edits the text and sends it again as a new message.
        """
        pending = await self._get_owned(owner_id, token)
        await self._pending.discard(token)

        if self._audit_logger:
            await self._audit_logger.log_user_decision(
                owner_id, AuditEventType.USER_EDITED, token
            )

        return EditTemplate(
            text=self._template_text(pending),
            proposal=pending.proposal.model_copy(),
        )

    @staticmethod
    def _template_text(pending: PendingTransaction) -> str:
        proposal = pending.proposal
        amount = f"{proposal.amount:,.0f}"
        description = proposal.description or proposal.type.value

        if proposal.type == TransactionType.TRANSFER:
            text = (
                f"Transfer {amount} dari {pending.wallet_name} "
                f"ke {pending.destination_wallet_name}"
            )
            if proposal.admin_fee:
                text += f" admin {proposal.admin_fee:,.0f}"
            return text
        if proposal.type == TransactionType.SAVINGS:
            if proposal.savings_direction == SavingsDirection.WITHDRAWAL:
                return f"Tarik tabungan {amount} ke {pending.wallet_name}"
            text = f"Nabung {amount} dari {pending.wallet_name}"
            return f"{text} untuk {pending.goal_name}" if pending.goal_name else text
        if proposal.type == TransactionType.INVESTMENT:
            return f"{description} {amount}"
        return f"{description} {amount} pakai {pending.wallet_name}"

    async def cancel(self, owner_id: str, token: str) -> PendingTransaction:
        pending = await self._get_owned(owner_id, token)
        await self._pending.discard(token)

        if self._audit_logger:
            await self._audit_logger.log_user_decision(
                owner_id, AuditEventType.USER_CANCELLED, token
            )
        return pending.model_copy(update={"state": PendingState.CANCELLED})

    async def cancel_all(self, owner_id: str, batch_id: str) -> int:
        """Cancel every token still pending in a batch. Returns how many."""
        session = await self._pending.get_batch(batch_id)
        if session is None or session.owner_id != owner_id:
            raise ExpiredError(batch_id)

        cancelled = 0
        for token in session.tokens:
            try:
                await self.cancel(owner_id, token)
                cancelled += 1
            except ExpiredError:
                continue

        await self._pending.discard_batch(batch_id)
        return cancelled

    # ===== CHANNEL CALLBACKS =====

    async def handle_callback(self, owner_id: str, data: str) -> ChannelReply:
        """
        Dispatch a button callback such as "confirm_tx:<token>".

        Rejections come back as a failed ChannelReply rather than an
        exception so the adapter can show them directly.
        """
        action, _, key = (data or "").partition(":")

        try:
            if action == CONFIRM_PREFIX:
                result = await self.confirm(owner_id, key)
                return ChannelReply(text=result.message, results=[result])

            if action == EDIT_PREFIX:
                template = await self.edit(owner_id, key)
                return ChannelReply(
                    text=f"✏️ Edit and send again:\n{template.text}",
                    edit_template=template,
                )

            if action == CANCEL_PREFIX:
                if not key:
                    return ChannelReply(text="Nothing to cancel.", success=False)
                await self.cancel(owner_id, key)
                return ChannelReply(text="❌ Transaction cancelled.")

            if action == CONFIRM_ALL_PREFIX:
                batch = await self.confirm_all(owner_id, key)
                lines = [f"📋 {batch.summary}"]
                lines.extend(f"   • {r.message}" for r in batch.results)
                return ChannelReply(
                    text="\n".join(lines),
                    success=not batch.failed,
                    results=batch.results,
                )

            if action == CANCEL_ALL_PREFIX:
                cancelled = await self.cancel_all(owner_id, key)
                return ChannelReply(text=f"❌ {cancelled} transactions cancelled.")

        except FundyError as e:
            return ChannelReply(text=f"❌ {e.user_message}", success=False)

        logger.warning("unknown_callback", owner_id=owner_id, data=data)
        return ChannelReply(text="Unknown action.", success=False)
