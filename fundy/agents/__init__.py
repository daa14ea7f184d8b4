"""AI agents package."""

from fundy.agents.classifier import TransactionClassifier, parse_classification

__all__ = ["TransactionClassifier", "parse_classification"]
