"""Typed failures raised by the progression engine.

Business-rule violations (``InvalidInput``, ``InsufficientHearts``,
``InsufficientFunds``) are expected and recoverable: the snapshot is left
exactly as it was before the call. ``PersistenceFailure`` means the store
rejected a write and the in-memory transition was discarded.
"""

from __future__ import annotations


class ProgressionError(Exception):
    """Base class for all progression engine failures."""

    kind = "progression_error"


class InvalidInput(ProgressionError, ValueError):
    kind = "invalid_input"


class FreezeNotApplicable(InvalidInput):
    kind = "freeze_not_applicable"


class InsufficientHearts(ProgressionError):
    kind = "insufficient_hearts"

    def __init__(self, requested: int, available: int) -> None:
        super().__init__(f"Requested {requested} heart(s) but only {available} available.")
        self.requested = requested
        self.available = available


class InsufficientFunds(ProgressionError):
    kind = "insufficient_funds"

    def __init__(self, requested: int, balance: int) -> None:
        super().__init__(f"Cannot spend {requested}; balance is {balance}.")
        self.requested = requested
        self.balance = balance


class AccountNotInitialized(ProgressionError, LookupError):
    kind = "account_not_initialized"


class PersistenceFailure(ProgressionError, RuntimeError):
    kind = "persistence_failure"


class LedgerIntegrityError(ProgressionError, RuntimeError):
    kind = "ledger_integrity"


def require_positive(value: object, field: str) -> int:
    """Return ``value`` when it is a positive int, otherwise raise ``InvalidInput``."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInput(f"{field} must be an integer, got {type(value).__name__}.")
    if value <= 0:
        raise InvalidInput(f"{field} must be positive, got {value}.")
    return value


__all__ = [
    "AccountNotInitialized",
    "FreezeNotApplicable",
    "InsufficientFunds",
    "InsufficientHearts",
    "InvalidInput",
    "LedgerIntegrityError",
    "PersistenceFailure",
    "ProgressionError",
    "require_positive",
]
