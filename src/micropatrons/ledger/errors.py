"""Typed ledger failures.

Each error carries the HTTP status the API answers with, so the error
handler maps them without a lookup table.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for every failure the ledger reports to callers."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(LedgerError):
    """Malformed or illegal request. Never mutates state."""

    status_code = 400


class NotFoundError(LedgerError):
    """A referenced account does not exist."""

    status_code = 404


class InsufficientBalanceError(LedgerError):
    """Sender balance does not cover the requested amount."""

    status_code = 400

    def __init__(self, username: str, requested: int, available: int) -> None:
        self.username = username
        self.requested = requested
        self.available = available
        super().__init__("Insufficient balance")


class InfrastructureError(LedgerError):
    """Storage failed; the unit of work has been rolled back."""

    status_code = 500
