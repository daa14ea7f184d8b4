"""Human confirmation package."""

from fundy.confirmation.machine import ConfirmationStateMachine

__all__ = ["ConfirmationStateMachine"]
