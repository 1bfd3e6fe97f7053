"""Domain model entities for pocketledger.

These are pure data classes representing business concepts, independent of
database schema. Services and the database layer exchange these, never ORM
rows, so the storage backend can change without touching business logic.
"""

from dataclasses import dataclass, field
from datetime import datetime, date
from decimal import Decimal
from enum import Enum
from typing import Optional


class Direction(str, Enum):
    """Money flow direction as printed on a bank statement."""

    DEBIT = "DEBIT"
    CREDIT = "CREDIT"

    def signed(self, amount: Decimal) -> Decimal:
        """Return the balance delta for an unsigned amount."""
        return amount if self is Direction.CREDIT else -amount


class AccountType(str, Enum):
    SAVINGS = "Savings"
    CURRENT = "Current"
    CREDIT_CARD = "CreditCard"


class LedgerType(str, Enum):
    INCOME = "Income"
    EXPENSE = "Expense"
    ASSET = "Asset"
    LIABILITY = "Liability"

    @classmethod
    def for_direction(cls, direction: Direction) -> "LedgerType":
        """Default ledger type for a ledger created from a transaction."""
        return cls.EXPENSE if direction is Direction.DEBIT else cls.INCOME


class SourceTag(str, Enum):
    MANUAL = "manual"
    PDF_UPLOAD = "pdf_upload"
    CASH = "cash"
    UPLOAD = "upload"


class ShareStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"


@dataclass(frozen=True)
class RawTransaction:
    """A transaction as read from a statement, before it has any identity.

    ``date`` is the canonical ``YYYY-MM-DD`` string produced by the parser;
    it is range-checked but not calendar-checked.
    """

    date: str
    description: str
    amount: Decimal
    direction: Direction


@dataclass(frozen=True)
class ExtractedTransaction:
    """Oracle-extracted statement row, richer than a parsed RawTransaction."""

    date: str
    description: str
    amount: Decimal
    direction: Direction
    narration: Optional[str] = None
    balance_after: Optional[Decimal] = None
    reference_number: Optional[str] = None
    ledger_suggestion: Optional[str] = None
    confidence: float = 0.0

    @classmethod
    def from_raw(cls, raw: RawTransaction) -> "ExtractedTransaction":
        return cls(
            date=raw.date,
            description=raw.description,
            amount=raw.amount,
            direction=raw.direction,
        )


@dataclass(frozen=True)
class DetectedBank:
    """Bank identity as read off a statement header."""

    bank_name: str
    account_number: str
    ifsc_code: Optional[str] = None
    statement_period: Optional[str] = None

    @property
    def account_tail(self) -> str:
        return self.account_number[-4:]


@dataclass(frozen=True)
class BankAccount:
    """Bank account domain entity."""

    id: int
    user_id: str
    name: str
    account_number: str
    account_type: AccountType
    opening_balance: Decimal
    current_balance: Decimal
    active: bool
    created_at: datetime

    @property
    def masked_number(self) -> str:
        if len(self.account_number) <= 4:
            return self.account_number
        return "X" * (len(self.account_number) - 4) + self.account_number[-4:]


@dataclass(frozen=True)
class Ledger:
    """Ledger (chart-of-accounts line) domain entity."""

    id: int
    user_id: str
    name: str
    ledger_type: LedgerType
    current_balance: Decimal
    created_at: datetime


@dataclass(frozen=True)
class Transaction:
    """Transaction domain entity.

    ``bank_account_id`` of None means cash; ``ledger_id`` of None means the
    transaction is not categorized yet.
    """

    id: int
    user_id: str
    date: date
    direction: Direction
    amount: Decimal
    description: str
    narration: Optional[str]
    bank_account_id: Optional[int]
    ledger_id: Optional[int]
    balance_after: Optional[Decimal]
    reference_number: Optional[str]
    confirmed: bool
    source_tag: SourceTag
    idempotency_key: Optional[str]
    ai_suggested: bool
    created_at: datetime

    @property
    def signed_amount(self) -> Decimal:
        return self.direction.signed(self.amount)


@dataclass(frozen=True)
class TransactionDraft:
    """Finalized transaction fields handed to the posting service."""

    date: str
    direction: Direction
    amount: Decimal
    description: str
    narration: Optional[str] = None
    balance_after: Optional[Decimal] = None
    reference_number: Optional[str] = None
    source_tag: SourceTag = SourceTag.MANUAL
    ai_suggested: bool = False


@dataclass(frozen=True)
class SharedTransaction:
    """A proposed split of one transaction with another user."""

    id: int
    transaction_id: int
    created_by_user_id: str
    shared_with_user_id: str
    split_amount: Decimal
    split_percentage: Decimal
    affects_bank: bool
    notes: Optional[str]
    status: ShareStatus
    created_at: datetime
    confirmed_at: Optional[datetime]


@dataclass(frozen=True)
class TransactionMapping:
    """Learned exact-description to ledger cache entry."""

    id: int
    user_id: str
    particulars_pattern: str
    ledger_id: int
    narration_template: Optional[str]
    confidence_score: float
    usage_count: int
    last_used_at: datetime
    ledger_name: Optional[str] = None


@dataclass(frozen=True)
class PastTransaction:
    """History row consumed by the similarity matcher."""

    description: str
    narration: Optional[str] = None
    ledger_id: Optional[int] = None
    ledger_name: Optional[str] = None


@dataclass(frozen=True)
class Suggestion:
    """Proposed categorization for one transaction."""

    ledger_name: str
    narration: str
    confidence: float
    ledger_id: Optional[int] = None
    auto_matched: bool = False
    source: str = "oracle"

    @property
    def resolved(self) -> bool:
        return self.ledger_id is not None


@dataclass(frozen=True)
class ImportBatch:
    """Persisted review batch, so a partially committed import can resume."""

    id: int
    user_id: str
    state: str
    cursor: int
    bank_account_id: Optional[int]
    source_tag: SourceTag
    items: list[ExtractedTransaction]
    posted_indexes: frozenset[int] = field(default_factory=frozenset)
    detected_bank: Optional[DetectedBank] = None
    created_at: Optional[datetime] = None
