"""Shared domain error messages and error types."""

from enum import Enum
from typing import Optional


class DomainError(ValueError):
    """Base class for domain-level errors.

    Subclasses provide semantic categories while preserving ValueError
    compatibility for existing error handling.
    """


class ValidationError(DomainError):
    """Invalid input or failed validation in domain logic."""


class NotFoundError(DomainError):
    """Requested domain entity does not exist (or is not visible to the user)."""


class ConflictError(DomainError):
    """Domain conflict, such as uniqueness violations."""


class InvalidStateError(DomainError):
    """Operation not allowed in the entity's current state."""


class PersistenceError(DomainError):
    """Insert or balance increment failed; the unit of work was rolled back."""


class OracleErrorKind(str, Enum):
    """Failure categories of the categorization oracle."""

    NOT_CONFIGURED = "not_configured"
    UNAVAILABLE = "unavailable"
    MALFORMED_RESPONSE = "malformed_response"


class OracleError(DomainError):
    """The external categorization oracle could not produce a usable answer.

    All kinds are recoverable: callers downgrade to an Uncategorized suggestion.
    """

    def __init__(self, kind: OracleErrorKind, message: str):
        super().__init__(message)
        self.kind = kind


class ImportError_(DomainError):
    """A statement could not be turned into a reviewable batch."""

    def __init__(self, message: str, cause: Optional[Exception] = None):
        super().__init__(message)
        self.cause = cause


def bank_account_not_found(account_id: int) -> str:
    """Return message for missing bank account."""
    return f"Bank account {account_id} not found"


def ledger_not_found(ledger_id: int) -> str:
    """Return message for missing ledger by ID."""
    return f"Ledger {ledger_id} not found"


def ledger_name_not_found(name: str) -> str:
    """Return message for missing ledger by name."""
    return f"Ledger '{name}' not found"


def transaction_not_found(transaction_id: int) -> str:
    """Return message for missing transaction."""
    return f"Transaction {transaction_id} not found"


def shared_transaction_not_found(shared_id: int) -> str:
    """Return message for missing shared transaction."""
    return f"Shared transaction {shared_id} not found"


def duplicate_idempotency_key(key: str) -> str:
    """Return message for a transaction that was already posted."""
    return f"Transaction with idempotency key '{key}' was already posted"


def split_exceeds_amount(total, amount) -> str:
    """Return message when split amounts add up to more than the transaction."""
    return (
        f"Total split amount {total:.2f} cannot exceed transaction amount {amount:.2f}"
    )
