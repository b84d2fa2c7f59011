"""Failure taxonomy for points-affecting operations.

Every error is raised before (or instead of) committing, so the caller always
finds the prior state intact.
"""

from __future__ import annotations

from uuid import UUID


class LoyaltyError(RuntimeError):
    """Base exception for mason loyalty operations."""


class ForbiddenError(LoyaltyError):
    """Actor lacks the role for the action or the record belongs to another tenant."""


class NotFoundError(LoyaltyError):
    """Referenced bag lift, redemption, mason, reward or submission does not exist."""


class InvalidTransitionError(LoyaltyError):
    """Requested status change is not permitted from the current status."""

    def __init__(self, message: str, *, current_status: str | None = None, requested_status: str | None = None) -> None:
        super().__init__(message)
        self.current_status = current_status
        self.requested_status = requested_status


class NoOpError(InvalidTransitionError):
    """Requested status equals the current status."""

    def __init__(self, status: str) -> None:
        super().__init__("Status unchanged", current_status=status, requested_status=status)


class TerminalStateError(InvalidTransitionError):
    """Record already reached a status that admits no further changes."""

    def __init__(self, current_status: str, requested_status: str) -> None:
        super().__init__(
            f"Cannot update a {current_status} order.",
            current_status=current_status,
            requested_status=requested_status,
        )


class InsufficientStockError(LoyaltyError):
    """Reward stock cannot cover the redemption quantity."""

    def __init__(self, item_name: str, available: int, requested: int) -> None:
        super().__init__(f"Insufficient stock for {item_name}. Available: {available}")
        self.item_name = item_name
        self.available = available
        self.requested = requested


class DuplicateSourceError(LoyaltyError):
    """A ledger entry already exists for the given source id."""

    def __init__(self, source_id: UUID) -> None:
        super().__init__(f"Ledger already holds an entry for source {source_id}")
        self.source_id = source_id


__all__ = [
    "DuplicateSourceError",
    "ForbiddenError",
    "InsufficientStockError",
    "InvalidTransitionError",
    "LoyaltyError",
    "NoOpError",
    "NotFoundError",
    "TerminalStateError",
]
