"""
Shared fixtures.

Async code is driven from plain synchronous tests through the `run`
fixture, which owns a fresh event loop per test. Every test gets a
fully wired in-memory app; the Gemini classifier is replaced by a stub.
"""

import asyncio
from decimal import Decimal
from typing import Optional

import pytest

from fundy.models.proposals import ClassificationResult, ClassifierIntent, ProposedTransaction
from fundy.orchestrator import create_app_components


OWNER = "user-1"
OTHER_OWNER = "user-2"


class StubClassifier:
    """Returns whatever result the test set, and records its calls."""

    def __init__(self, result: Optional[ClassificationResult] = None):
        self.result = result or ClassificationResult(
            intent=ClassifierIntent.GENERAL_CHAT,
            response="Hello!",
        )
        self.calls = []

    def will_return(self, *proposals: ProposedTransaction) -> None:
        self.result = ClassificationResult(
            intent=(
                ClassifierIntent.MULTIPLE_TRANSACTIONS if len(proposals) > 1
                else ClassifierIntent.TRANSACTION
            ),
            transactions=list(proposals),
        )

    async def classify(self, text, owner_id, wallet_names=None):
        self.calls.append((text, owner_id, wallet_names))
        return self.result


class FakeClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self, start):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, delta):
        self.now = self.now + delta


@pytest.fixture
def run():
    loop = asyncio.new_event_loop()
    yield loop.run_until_complete
    loop.close()


@pytest.fixture
def classifier():
    return StubClassifier()


@pytest.fixture
def app(classifier):
    return create_app_components(storage_backend="memory", classifier=classifier)


@pytest.fixture
def bca(run, app):
    return run(app.accounts.create_wallet(OWNER, "BCA"))


@pytest.fixture
def gopay(run, app):
    return run(app.accounts.create_wallet(OWNER, "GoPay"))


@pytest.fixture
def funded_bca(run, app, bca):
    """BCA holding a single income row of 1,000,000."""
    run(app.pipeline.create_income(OWNER, Decimal("1000000"), "Salary", bca.id))
    return bca


def proposal(type_, amount, confidence=0.9, **fields) -> ProposedTransaction:
    return ProposedTransaction(
        type=type_,
        amount=Decimal(str(amount)),
        confidence=confidence,
        description=fields.pop("description", "Test"),
        **fields,
    )
