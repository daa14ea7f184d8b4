"""
Transaction Classifier (Gemini)

CRITICAL BOUNDARIES:

1. The LLM ONLY turns free text into ProposedTransaction objects
2. The LLM NEVER writes to the ledger
3. The LLM NEVER computes balances or answers from its own knowledge
4. Every proposal it emits goes through validation and, where the
   channel requires it, explicit human confirmation

The LLM is a TRANSLATOR, not an ORACLE.
It converts what the user typed into a structured proposal and
reports how sure it is.
"""

import json
from typing import Any, Optional

import google.generativeai as genai
import structlog
from pydantic import ValidationError as PydanticValidationError

from fundy.audit import AuditLogger
from fundy.config import get_settings
from fundy.models.ledger import ExpenseCategory, IncomeSource, TransactionType
from fundy.models.proposals import (
    ClassificationResult,
    ClassifierIntent,
    ProposedTransaction,
)


logger = structlog.get_logger(__name__)

FALLBACK_RESPONSE = (
    "Sorry, I couldn't understand that. Try something like "
    "\"Beli kopi 50rb pakai BCA\" or \"Gaji 5 juta ke BCA\"."
)


def _extract_json(text: str) -> Optional[dict[str, Any]]:
    """Pull the outermost JSON object out of a model reply."""
    start = text.find("{")
    end = text.rfind("}") + 1
    if start < 0 or end <= start:
        return None
    try:
        data = json.loads(text[start:end])
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def parse_classification(text: str) -> ClassificationResult:
    """
    Turn a raw model reply into a ClassificationResult.

    Items that don't fit the ProposedTransaction schema are dropped.
    A reply with no usable JSON becomes general chat.
    """
    data = _extract_json(text or "")
    if data is None:
        return ClassificationResult(
            intent=ClassifierIntent.GENERAL_CHAT,
            response=(text or "").strip() or FALLBACK_RESPONSE,
        )

    # Single-transaction replies may skip the envelope
    if "transactions" not in data and "type" in data:
        data = {"transactions": [data]}

    transactions = []
    for item in data.get("transactions") or []:
        try:
            transactions.append(ProposedTransaction.model_validate(item))
        except PydanticValidationError as e:
            logger.warning("classifier_item_dropped", item=item, errors=e.error_count())

    # The items decide the intent; the model's label is only a hint
    if len(transactions) > 1:
        intent = ClassifierIntent.MULTIPLE_TRANSACTIONS
    elif transactions:
        intent = ClassifierIntent.TRANSACTION
    else:
        intent = ClassifierIntent.GENERAL_CHAT

    return ClassificationResult(
        intent=intent,
        transactions=transactions,
        response=data.get("response"),
    )


class TransactionClassifier:
    """
    Gemini-backed classifier for chat messages.

    RESPONSIBILITIES:
    - Detect whether a message records money or is just chat
    - Extract type, amount, wallet, category and confidence
    - Split messages that mention several transactions

    BOUNDARIES:
    - NEVER persists data
    - NEVER guesses a wallet that wasn't mentioned
    - ALWAYS reports confidence so low-confidence guesses can be rejected
    """

    def __init__(
        self,
        model: Optional[Any] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._audit_logger = audit_logger
        self._model = model or self._configure_genai()

    @staticmethod
    def _configure_genai():
        """Configure Google Generative AI."""
        settings = get_settings().gemini
        genai.configure(api_key=settings.api_key)
        return genai.GenerativeModel(
            model_name=settings.model_name,
            generation_config={
                "temperature": settings.temperature,
                "max_output_tokens": settings.max_tokens,
            }
        )

    @staticmethod
    def build_prompt(text: str, wallet_names: list[str]) -> str:
        categories = ", ".join(c.value for c in ExpenseCategory)
        sources = ", ".join(s.value for s in IncomeSource)
        types = ", ".join(t.value for t in TransactionType)
        wallets = ", ".join(wallet_names) or "none yet"

        return f"""You are the transaction parser for a personal finance assistant.
Users write in Indonesian or English and amounts use shorthand like "50rb" (50,000) or "5 juta" (5,000,000).

Message: "{text}"

The user's wallets: {wallets}

Classify the message and extract every transaction it records.
Each transaction has these fields:
- type: one of [{types}]
- description: short English description
- amount: plain number, no currency symbol
- category: for expenses, one of [{categories}]
- source: for income, one of [{sources}]
- wallet_name: wallet mentioned (source wallet for transfers), null if none
- destination_wallet_name: for transfers, the receiving wallet
- admin_fee: for transfers, admin fee if mentioned, otherwise 0
- goal_name: for savings, the goal mentioned, otherwise null
- savings_direction: for savings, "deposit" (into savings) or "withdrawal" (out of savings)
- asset_name: for investments, the asset mentioned, otherwise null
- confidence: number between 0 and 1

Rules:
- Investment messages state the CURRENT total value of the portfolio
- Never invent a wallet that was not mentioned
- If type, amount or wallet is unclear, set confidence lower

Examples:
"Beli kopi 50rb pakai BCA" →
{{"intent": "transaction", "transactions": [{{"type": "expense", "description": "Coffee", "amount": 50000, "category": "Coffee & Tea", "wallet_name": "BCA", "confidence": 0.95}}]}}

"Transfer 1 juta dari BCA ke GoPay admin 2500" →
{{"intent": "transaction", "transactions": [{{"type": "transfer", "description": "Transfer from BCA to GoPay", "amount": 1000000, "wallet_name": "BCA", "destination_wallet_name": "GoPay", "admin_fee": 2500, "confidence": 0.95}}]}}

"Tarik tabungan laptop 500rb ke BCA" →
{{"intent": "transaction", "transactions": [{{"type": "savings", "description": "Withdraw from laptop savings", "amount": 500000, "goal_name": "laptop", "savings_direction": "withdrawal", "wallet_name": "BCA", "confidence": 0.9}}]}}

"Makan siang 30rb pakai Cash, bensin 20rb pakai GoPay" →
{{"intent": "multiple_transactions", "transactions": [...two expense objects...]}}

"Halo, apa kabar?" →
{{"intent": "general_chat", "transactions": [], "response": "friendly reply"}}

Respond with ONLY the JSON object, no explanation."""

    async def classify(
        self,
        text: str,
        owner_id: str,
        wallet_names: Optional[list[str]] = None,
    ) -> ClassificationResult:
        """
        Classify one chat message.

        Gemini failures degrade to a general-chat reply; they are logged
        and audited, never raised to the channel.
        """
        prompt = self.build_prompt(text, wallet_names or [])

        try:
            response = await self._model.generate_content_async(prompt)
            raw = response.text.strip()
        except Exception as e:
            logger.error("classifier_failed", owner_id=owner_id, error=str(e))
            if self._audit_logger:
                await self._audit_logger.log_external_service_error(
                    service="gemini",
                    error_message=str(e),
                )
            return ClassificationResult(
                intent=ClassifierIntent.GENERAL_CHAT,
                response=FALLBACK_RESPONSE,
            )

        result = parse_classification(raw)
        logger.info(
            "message_classified",
            owner_id=owner_id,
            intent=result.intent.value,
            transactions=len(result.transactions),
        )
        return result
