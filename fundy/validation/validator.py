"""
Two-Stage Proposal Validation

DESIGN DECISION: Classifier output is checked in two distinct stages
before anything is staged or written:

STAGE 1 - SCHEMA VALIDATION:
- Confidence threshold
- Positive amount
- Required references present (wallet, destination wallet)

STAGE 2 - SEMANTIC VALIDATION:
- Wallet and goal names resolve against the owner's accounts
- Transfer source and destination differ
- Absurd amount / fee detection
- Unknown categories

WHY TWO STAGES:
1. A low-confidence guess is rejected without looking anything up
2. Better error messages (know exactly what kind of issue)
3. Stage 2 needs the owner's wallets and goals

IMPORTANT: Validation NEVER silently fixes issues.
It reports them so the user can rephrase.
"""

from decimal import Decimal
from typing import Optional

from fundy.config import get_settings
from fundy.ledger.pipeline import EXPENSE_WALLET_EXAMPLE, INCOME_WALLET_EXAMPLE
from fundy.ledger.resolution import resolve_goal, resolve_wallet
from fundy.ledger.transfers import DEPOSIT_EXAMPLE, TRANSFER_EXAMPLE, WITHDRAW_EXAMPLE
from fundy.models.ledger import ExpenseCategory, SavingsGoal, TransactionType, Wallet
from fundy.models.proposals import (
    ProposedTransaction,
    SavingsDirection,
    ValidationIssue,
    ValidationResult,
)


WALLET_EXAMPLES = {
    TransactionType.EXPENSE: EXPENSE_WALLET_EXAMPLE,
    TransactionType.INCOME: INCOME_WALLET_EXAMPLE,
    TransactionType.TRANSFER: TRANSFER_EXAMPLE,
}


class ProposalValidator:
    """
    Validates classifier proposals through a two-stage pipeline.

    Stage 1: Schema validation (no account lookups)
    Stage 2: Semantic validation (needs the owner's wallets and goals)
    """

    def __init__(
        self,
        min_confidence: Optional[float] = None,
        max_amount: Optional[Decimal] = None,
    ):
        settings = get_settings()
        self._min_confidence = (
            min_confidence if min_confidence is not None
            else settings.ledger.min_confidence
        )
        self._max_amount = (
            max_amount if max_amount is not None
            else settings.app.max_transaction_amount
        )

    @staticmethod
    def _wallet_example(proposal: ProposedTransaction) -> str:
        if proposal.type == TransactionType.SAVINGS:
            if proposal.savings_direction == SavingsDirection.WITHDRAWAL:
                return WITHDRAW_EXAMPLE
            return DEPOSIT_EXAMPLE
        return WALLET_EXAMPLES.get(proposal.type, EXPENSE_WALLET_EXAMPLE)

    def _validate_schema(
        self,
        proposal: ProposedTransaction,
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 1: Schema validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        if proposal.confidence < self._min_confidence:
            issues.append(ValidationIssue(
                field="confidence",
                issue_type="low_confidence",
                message=(
                    f"I'm not sure I understood that ({proposal.confidence:.0%} confident). "
                    "Could you say it again with the amount and the wallet?"
                ),
                severity="error",
                suggested_fix=self._wallet_example(proposal),
            ))

        if proposal.amount <= 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="I couldn't find an amount greater than zero.",
                severity="error",
                suggested_fix=self._wallet_example(proposal),
            ))

        if not proposal.description:
            issues.append(ValidationIssue(
                field="description",
                issue_type="missing",
                message="No description was given; a default will be used.",
                severity="warning",
            ))

        if proposal.type != TransactionType.INVESTMENT and not proposal.wallet_name:
            issues.append(ValidationIssue(
                field="wallet_name",
                issue_type="missing",
                message="Please specify which wallet to use.",
                severity="error",
                suggested_fix=self._wallet_example(proposal),
            ))

        if proposal.type == TransactionType.TRANSFER and not proposal.destination_wallet_name:
            issues.append(ValidationIssue(
                field="destination_wallet_name",
                issue_type="missing",
                message="Please specify both source and destination wallets.",
                severity="error",
                suggested_fix=TRANSFER_EXAMPLE,
            ))

        # Schema is valid if no errors (warnings are okay)
        is_valid = not any(issue.severity == "error" for issue in issues)

        return is_valid, issues

    def _validate_semantic(
        self,
        proposal: ProposedTransaction,
        wallets: list[Wallet],
        goals: list[SavingsGoal],
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 2: Semantic validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []
        wallet_list = ", ".join(w.name for w in wallets) or "none yet"

        source = None
        if proposal.wallet_name:
            source = resolve_wallet(proposal.wallet_name, wallets)
            if source is None:
                issues.append(ValidationIssue(
                    field="wallet_name",
                    issue_type="not_found",
                    message=f"I couldn't find a wallet called \"{proposal.wallet_name}\".",
                    severity="error",
                    suggested_fix=f"Your wallets: {wallet_list}",
                ))

        if proposal.type == TransactionType.TRANSFER and proposal.destination_wallet_name:
            destination = resolve_wallet(proposal.destination_wallet_name, wallets)
            if destination is None:
                issues.append(ValidationIssue(
                    field="destination_wallet_name",
                    issue_type="not_found",
                    message=(
                        f"I couldn't find a wallet called "
                        f"\"{proposal.destination_wallet_name}\"."
                    ),
                    severity="error",
                    suggested_fix=f"Your wallets: {wallet_list}",
                ))
            elif source is not None and destination.id == source.id:
                issues.append(ValidationIssue(
                    field="destination_wallet_name",
                    issue_type="inconsistent",
                    message="Cannot transfer to the same wallet.",
                    severity="error",
                    suggested_fix=TRANSFER_EXAMPLE,
                ))

        if proposal.goal_name and proposal.type == TransactionType.SAVINGS:
            if resolve_goal(proposal.goal_name, goals) is None:
                goal_list = ", ".join(g.goal_name for g in goals) or "none yet"
                issues.append(ValidationIssue(
                    field="goal_name",
                    issue_type="not_found",
                    message=f"I couldn't find a savings goal called \"{proposal.goal_name}\".",
                    severity="error",
                    suggested_fix=f"Your goals: {goal_list}",
                ))

        if proposal.amount > self._max_amount:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="suspicious_value",
                message=f"The amount ({proposal.amount:,.0f}) seems unusually high",
                severity="warning",
                suggested_fix="Please verify this amount is correct",
            ))

        if proposal.admin_fee and proposal.admin_fee >= proposal.amount:
            issues.append(ValidationIssue(
                field="admin_fee",
                issue_type="suspicious_value",
                message="The admin fee is as large as the transfer itself",
                severity="warning",
                suggested_fix="Please verify the fee",
            ))

        if (
            proposal.type == TransactionType.EXPENSE
            and proposal.category
            and ExpenseCategory.coerce(proposal.category) == ExpenseCategory.OTHERS
            and proposal.category.casefold() != ExpenseCategory.OTHERS.value.casefold()
        ):
            issues.append(ValidationIssue(
                field="category",
                issue_type="unknown_category",
                message=f"Category \"{proposal.category}\" is unknown and will be recorded as Others",
                severity="info",
            ))

        is_valid = not any(issue.severity == "error" for issue in issues)

        return is_valid, issues

    def validate(
        self,
        proposal: ProposedTransaction,
        wallets: list[Wallet],
        goals: Optional[list[SavingsGoal]] = None,
    ) -> ValidationResult:
        """
        Run full two-stage validation pipeline.

        Args:
            proposal: What the classifier produced
            wallets: The owner's active wallets
            goals: The owner's savings goals

        Returns:
            ValidationResult with all issues found
        """
        all_issues = []

        # Stage 1: Schema validation
        schema_valid, schema_issues = self._validate_schema(proposal)
        all_issues.extend(schema_issues)

        # Only run stage 2 if stage 1 passes
        semantic_valid = False
        if schema_valid:
            semantic_valid, semantic_issues = self._validate_semantic(
                proposal, wallets, goals or []
            )
            all_issues.extend(semantic_issues)

        warnings = [i.message for i in all_issues if i.severity == "warning"]

        return ValidationResult(
            schema_valid=schema_valid,
            semantic_valid=semantic_valid,
            is_valid=schema_valid and semantic_valid,
            issues=all_issues,
            warnings=warnings,
        )

    def get_user_friendly_summary(
        self,
        result: ValidationResult,
    ) -> str:
        """
        Generate a user-friendly summary of validation results.

        This is what the chat or bot shows when a proposal is rejected.
        """
        if result.is_valid and not result.warnings:
            return "✅ Looks good! Please confirm the details below."

        lines = []

        if result.has_errors:
            lines.append("❌ I can't record this yet:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"   • {issue.message}")
                    if issue.suggested_fix:
                        lines.append(f"     💡 {issue.suggested_fix}")

        if result.warnings:
            lines.append("")
            lines.append("⚠️ Please verify the following:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        return "\n".join(lines).strip()
