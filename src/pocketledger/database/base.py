"""Abstract database interface.

Every read and write is scoped by the authenticated user id supplied by the
caller. Balance changes go through ``increment_balance``, which must be an
atomic server-side add, never a read-modify-write.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Sequence

# Import entities directly to avoid circular import through domain/__init__.py
from pocketledger.domain.entities import (
    AccountType,
    BankAccount,
    DetectedBank,
    Direction,
    ExtractedTransaction,
    ImportBatch,
    Ledger,
    LedgerType,
    PastTransaction,
    SharedTransaction,
    ShareStatus,
    SourceTag,
    Transaction,
    TransactionMapping,
)


class BalanceTarget(str, Enum):
    """Kinds of entity that carry a running balance."""

    BANK_ACCOUNT = "bank_account"
    LEDGER = "ledger"


class Database(ABC):
    """Abstract database interface for pocketledger."""

    @abstractmethod
    def connect(self) -> None:
        """Connect to the database."""
        pass

    @abstractmethod
    def disconnect(self) -> None:
        """Disconnect from the database."""
        pass

    @abstractmethod
    def initialize_schema(self) -> None:
        """Initialize database schema (create tables)."""
        pass

    @abstractmethod
    def unit_of_work(self) -> AbstractContextManager[None]:
        """Group writes into one atomic commit.

        Writes issued inside the block are committed together on normal exit
        and rolled back together if the block raises. Storage failures are
        re-raised as PersistenceError, uniqueness violations as ConflictError.
        """
        pass

    # Bank account operations
    @abstractmethod
    def create_bank_account(
        self,
        user_id: str,
        name: str,
        account_number: str,
        account_type: AccountType,
        opening_balance: Decimal,
    ) -> int:
        """Create a bank account with current balance = opening balance. Returns ID."""
        pass

    @abstractmethod
    def get_bank_account(self, user_id: str, account_id: int) -> Optional[BankAccount]:
        """Get bank account by ID."""
        pass

    @abstractmethod
    def list_bank_accounts(self, user_id: str, active_only: bool = False) -> list[BankAccount]:
        """List the user's bank accounts."""
        pass

    @abstractmethod
    def set_bank_account_active(self, user_id: str, account_id: int, active: bool) -> None:
        """Activate or deactivate a bank account."""
        pass

    # Ledger operations
    @abstractmethod
    def create_ledger(self, user_id: str, name: str, ledger_type: LedgerType) -> int:
        """Create a ledger with a zero balance. Returns ledger ID."""
        pass

    @abstractmethod
    def get_ledger(self, user_id: str, ledger_id: int) -> Optional[Ledger]:
        """Get ledger by ID."""
        pass

    @abstractmethod
    def get_ledger_by_name(self, user_id: str, name: str) -> Optional[Ledger]:
        """Get ledger by name, compared case-insensitively."""
        pass

    @abstractmethod
    def list_ledgers(self, user_id: str) -> list[Ledger]:
        """List the user's ledgers ordered by name."""
        pass

    # Balance operations
    @abstractmethod
    def increment_balance(self, target: BalanceTarget, target_id: int, delta: Decimal) -> None:
        """Atomically add delta to a bank account or ledger running balance."""
        pass

    # Transaction operations
    @abstractmethod
    def insert_transaction(
        self,
        user_id: str,
        date: date,
        direction: Direction,
        amount: Decimal,
        description: str,
        narration: Optional[str] = None,
        bank_account_id: Optional[int] = None,
        ledger_id: Optional[int] = None,
        balance_after: Optional[Decimal] = None,
        reference_number: Optional[str] = None,
        confirmed: bool = False,
        source_tag: SourceTag = SourceTag.MANUAL,
        idempotency_key: Optional[str] = None,
        ai_suggested: bool = False,
    ) -> int:
        """Insert a transaction row. Returns transaction ID."""
        pass

    @abstractmethod
    def get_transaction(self, user_id: str, transaction_id: int) -> Optional[Transaction]:
        """Get transaction by ID."""
        pass

    @abstractmethod
    def list_transactions(
        self,
        user_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        ledger_id: Optional[int] = None,
        bank_account_id: Optional[int] = None,
        uncategorized: bool = False,
        confirmed: Optional[bool] = None,
    ) -> list[Transaction]:
        """List transactions newest first, with optional filters."""
        pass

    @abstractmethod
    def get_recent_transactions(self, user_id: str, limit: int = 100) -> list[PastTransaction]:
        """Most recently recorded transactions, newest first, as matcher history."""
        pass

    @abstractmethod
    def set_transaction_confirmed(self, user_id: str, transaction_id: int, confirmed: bool) -> None:
        """Update the confirmed flag of a transaction."""
        pass

    @abstractmethod
    def set_transaction_ledger(self, user_id: str, transaction_id: int, ledger_id: Optional[int]) -> None:
        """Update the ledger of a transaction."""
        pass

    @abstractmethod
    def transaction_exists_for_key(self, user_id: str, idempotency_key: str) -> bool:
        """Check if a transaction was already posted with this idempotency key."""
        pass

    # Shared transaction operations
    @abstractmethod
    def insert_shared_transaction(
        self,
        transaction_id: int,
        created_by_user_id: str,
        shared_with_user_id: str,
        split_amount: Decimal,
        split_percentage: Decimal,
        affects_bank: bool,
        notes: Optional[str],
    ) -> int:
        """Insert a pending shared transaction. Returns its ID."""
        pass

    @abstractmethod
    def get_shared_transaction(self, shared_id: int) -> Optional[SharedTransaction]:
        """Get shared transaction by ID (visible to either party)."""
        pass

    @abstractmethod
    def update_shared_transaction_status(
        self, shared_id: int, status: ShareStatus, confirmed_at: datetime
    ) -> bool:
        """Answer a pending shared transaction.

        Returns False, changing nothing, if the share is no longer pending.
        """
        pass

    @abstractmethod
    def list_shared_transactions(
        self,
        created_by_user_id: Optional[str] = None,
        shared_with_user_id: Optional[str] = None,
        involving_user_id: Optional[str] = None,
        statuses: Optional[Sequence[ShareStatus]] = None,
        transaction_id: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> list[SharedTransaction]:
        """List shared transactions newest first, with optional filters."""
        pass

    # Transaction mapping operations
    @abstractmethod
    def upsert_transaction_mapping(
        self,
        user_id: str,
        particulars_pattern: str,
        ledger_id: int,
        narration_template: Optional[str],
        confidence_score: float,
    ) -> int:
        """Insert or refresh the mapping keyed by (user_id, particulars_pattern).

        A refresh bumps usage_count and last_used_at. Returns mapping ID.
        """
        pass

    @abstractmethod
    def get_transaction_mapping(self, user_id: str, particulars_pattern: str) -> Optional[TransactionMapping]:
        """Get the mapping for an exact description."""
        pass

    @abstractmethod
    def list_top_mappings(self, user_id: str, limit: int = 10) -> list[TransactionMapping]:
        """Most used mappings first."""
        pass

    # Import batch operations
    @abstractmethod
    def create_import_batch(
        self,
        user_id: str,
        items: Sequence[ExtractedTransaction],
        state: str,
        source_tag: SourceTag,
        detected_bank: Optional[DetectedBank] = None,
    ) -> int:
        """Persist a new review batch. Returns batch ID."""
        pass

    @abstractmethod
    def get_import_batch(self, user_id: str, batch_id: int) -> Optional[ImportBatch]:
        """Get an import batch by ID."""
        pass

    @abstractmethod
    def update_import_batch(
        self,
        user_id: str,
        batch_id: int,
        state: Optional[str] = None,
        cursor: Optional[int] = None,
        bank_account_id: Optional[int] = None,
        posted_index: Optional[int] = None,
        items: Optional[Sequence[ExtractedTransaction]] = None,
    ) -> None:
        """Update the review state of an import batch.

        ``posted_index`` is added to the batch's set of posted item indexes.
        """
        pass
