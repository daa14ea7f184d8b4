"""Validation package."""

from fundy.validation.validator import ProposalValidator

__all__ = ["ProposalValidator"]
