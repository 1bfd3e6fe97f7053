"""Review/import orchestrator.

Drives one statement through ``UPLOAD -> BANK_CONFIRM -> REVIEW -> DONE``
(or ``CANCELLED``). Items are reviewed one at a time under a cursor; edits
go to a pending buffer that is separate from the extracted item until the
item is posted. Each post is its own atomic unit keyed by
``import:<batch>:<index>``, and the batch row records the cursor and the
posted indexes so an interrupted review can resume without double posting.
"""

import logging
from dataclasses import dataclass, field, replace
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pocketledger.database.base import Database
from pocketledger.domain.account import BankAccountService
from pocketledger.domain.categorization import (
    CategorizationAdapter,
    StatementExtractor,
    SuggestionCascade,
)
from pocketledger.domain.entities import (
    DetectedBank,
    Direction,
    ExtractedTransaction,
    LedgerType,
    SourceTag,
    Suggestion,
    Transaction,
    TransactionDraft,
)
from pocketledger.domain.errors import (
    DomainError,
    ImportError_,
    InvalidStateError,
    NotFoundError,
    OracleError,
    ValidationError,
    bank_account_not_found,
    ledger_not_found,
)
from pocketledger.domain.ledger import UNCATEGORIZED, LedgerService
from pocketledger.domain.oracle import CancelToken
from pocketledger.domain.posting import LedgerPostingService
from pocketledger.domain.statement_parser import StatementSource, parse_statement
from pocketledger.utils.amount_parser import parse_amount, to_cents
from pocketledger.utils.date_parser import normalize_statement_date, to_calendar_date

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("date", "description", "amount", "direction", "narration", "ledger_id")


class ImportStep(str, Enum):
    UPLOAD = "upload"
    BANK_CONFIRM = "bank_confirm"
    REVIEW = "review"
    DONE = "done"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class ReviewItem:
    """The item under the cursor, with pending edits applied."""

    index: int
    total: int
    item: ExtractedTransaction
    suggestion: Optional[Suggestion]
    ledger_id: Optional[int]
    posted: bool


@dataclass(frozen=True)
class BatchResult:
    """Outcome of posting the rest of a batch.

    ``failed_index`` is the zero-based index the batch halted at, if any.
    """

    posted: list[int] = field(default_factory=list)
    failed_index: Optional[int] = None
    error: Optional[DomainError] = None

    @property
    def halted(self) -> bool:
        return self.failed_index is not None


def idempotency_key(batch_id: int, index: int) -> str:
    return f"import:{batch_id}:{index}"


class ReviewOrchestrator:
    """State machine over one imported statement."""

    def __init__(
        self,
        db: Database,
        user_id: str,
        cascade: Optional[SuggestionCascade] = None,
        extractor: Optional[StatementExtractor] = None,
    ):
        """Initialize the orchestrator.

        Args:
            db: Database instance
            user_id: Authenticated user doing the import
            cascade: Suggestion source; without one only extraction
                suggestions and the Uncategorized fallback are offered
            extractor: Oracle-backed file extractor used by load_file
        """
        self.db = db
        self.user_id = user_id
        self.cascade = cascade
        self.extractor = extractor
        self.accounts = BankAccountService(db, user_id)
        self.ledgers = LedgerService(db, user_id)
        self.posting = LedgerPostingService(db, user_id)

        self.step = ImportStep.UPLOAD
        self.error: Optional[str] = None
        self.batch_id: Optional[int] = None
        self.items: list[ExtractedTransaction] = []
        self.cursor = 0
        self.source_tag = SourceTag.UPLOAD
        self.detected_bank: Optional[DetectedBank] = None
        self.preselected_account_id: Optional[int] = None
        self.bank_account_id: Optional[int] = None
        self.posted: set[int] = set()
        self._pending: dict[int, dict[str, Any]] = {}
        self._suggestions: dict[int, Suggestion] = {}
        # Bumped on every cursor move; late suggestions for an older
        # generation are discarded.
        self._generation = 0

    # State helpers
    def _require(self, *steps: ImportStep) -> None:
        if self.step not in steps:
            allowed = ", ".join(s.value for s in steps)
            raise InvalidStateError(f"Import is in step '{self.step.value}', expected {allowed}")

    def _move_to(self, index: int) -> None:
        self.cursor = index
        self._generation += 1
        if self.batch_id is not None:
            self.db.update_import_batch(self.user_id, self.batch_id, cursor=index)

    def _set_step(self, step: ImportStep) -> None:
        self.step = step
        if self.batch_id is not None:
            self.db.update_import_batch(self.user_id, self.batch_id, state=step.value)
        logger.info(f"Import batch {self.batch_id} is now {step.value}")

    @property
    def total(self) -> int:
        return len(self.items)

    # Upload
    def _fail_upload(self, message: str, cause: Optional[Exception] = None) -> ImportError_:
        self.error = message
        logger.warning(f"Import failed in upload step: {message}")
        return ImportError_(message, cause=cause)

    def _start_batch(self, items: list[ExtractedTransaction]) -> None:
        self.items = items
        self.error = None
        self.cursor = 0
        self.batch_id = self.db.create_import_batch(
            user_id=self.user_id,
            items=items,
            state=ImportStep.BANK_CONFIRM.value,
            source_tag=self.source_tag,
            detected_bank=self.detected_bank,
        )
        self.step = ImportStep.BANK_CONFIRM
        logger.info(f"Loaded {len(items)} transaction(s) into import batch {self.batch_id}")

    def load(self, source: StatementSource, source_tag: SourceTag = SourceTag.UPLOAD) -> int:
        """Parse a statement locally and open a batch for review.

        Returns:
            Number of transactions found

        Raises:
            ImportError_: If nothing could be parsed; the step stays UPLOAD
        """
        self._require(ImportStep.UPLOAD)
        raw = parse_statement(source)
        if not raw:
            raise self._fail_upload("No transactions found in statement")
        self.source_tag = source_tag
        self._start_batch([ExtractedTransaction.from_raw(r) for r in raw])
        return len(raw)

    def load_file(self, file_bytes: bytes, mime_type: str) -> int:
        """Extract a statement file through the oracle and open a batch.

        A detected bank that matches an existing account is preselected.

        Raises:
            ImportError_: If extraction failed or found nothing; the step stays UPLOAD
        """
        self._require(ImportStep.UPLOAD)
        if self.extractor is None:
            raise self._fail_upload("AI extraction is not configured")
        try:
            extraction = self.extractor.extract(file_bytes, mime_type)
        except OracleError as e:
            raise self._fail_upload(f"Could not extract statement: {e}", cause=e)
        if not extraction.transactions:
            raise self._fail_upload("No transactions found in statement")

        self.source_tag = SourceTag.PDF_UPLOAD
        self.detected_bank = extraction.bank
        match = self.accounts.find_matching_account(extraction.bank)
        self.preselected_account_id = match.id if match is not None else None
        self._start_batch(extraction.transactions)
        return len(extraction.transactions)

    # Bank confirmation
    def confirm_bank(self, account_id: Optional[int]) -> None:
        """Choose the bank account for the batch; None imports as cash.

        Raises:
            NotFoundError: If the account does not exist
            ValidationError: If the account is inactive
        """
        self._require(ImportStep.BANK_CONFIRM)
        if account_id is not None:
            account = self.accounts.get_account(account_id)
            if account is None:
                raise NotFoundError(bank_account_not_found(account_id))
            if not account.active:
                raise ValidationError(f"Bank account {account_id} is inactive")
        self.bank_account_id = account_id
        self.db.update_import_batch(self.user_id, self.batch_id, bank_account_id=account_id)
        self._set_step(ImportStep.REVIEW)

    def create_bank_from_detection(self) -> int:
        """Create an account for the detected bank and confirm it.

        Returns:
            The new bank account ID
        """
        self._require(ImportStep.BANK_CONFIRM)
        if self.detected_bank is None:
            raise InvalidStateError("No bank was detected on this statement")
        account_id = self.accounts.create_from_detection(self.detected_bank, self.items)
        self.confirm_bank(account_id)
        return account_id

    # Review
    def _effective_item(self, index: int) -> ExtractedTransaction:
        edits = {k: v for k, v in self._pending.get(index, {}).items() if k != "ledger_id"}
        return replace(self.items[index], **edits) if edits else self.items[index]

    def _preset(self, item: ExtractedTransaction) -> Optional[Suggestion]:
        if not item.ledger_suggestion:
            return None
        return Suggestion(
            ledger_name=item.ledger_suggestion,
            narration=item.narration or item.description,
            confidence=item.confidence,
            source="extraction",
        )

    def _compute_suggestion(self, index: int, token: Optional[CancelToken] = None) -> Suggestion:
        item = self._effective_item(index)
        preset = self._preset(item)
        if self.cascade is not None:
            return self.cascade.suggest(
                item.description, item.amount, item.direction, preset=preset, token=token
            )
        if preset is not None:
            ledger = self.ledgers.resolve_by_name(preset.ledger_name)
            if ledger is not None:
                return replace(preset, ledger_id=ledger.id, ledger_name=ledger.name)
            return preset
        return CategorizationAdapter.fallback("no suggestion source configured", item.description)

    def _effective_ledger_id(self, index: int) -> Optional[int]:
        pending = self._pending.get(index, {})
        if "ledger_id" in pending:
            return pending["ledger_id"]
        suggestion = self._suggestions.get(index)
        return suggestion.ledger_id if suggestion is not None else None

    def current(self) -> ReviewItem:
        """Return the item under the cursor."""
        self._require(ImportStep.REVIEW)
        return ReviewItem(
            index=self.cursor,
            total=self.total,
            item=self._effective_item(self.cursor),
            suggestion=self._suggestions.get(self.cursor),
            ledger_id=self._effective_ledger_id(self.cursor),
            posted=self.cursor in self.posted,
        )

    def suggest_current(self, token: Optional[CancelToken] = None) -> Optional[Suggestion]:
        """Compute a suggestion for the current item.

        Returns None, changing nothing, when the token was cancelled or the
        cursor moved while the suggestion was being computed.
        """
        self._require(ImportStep.REVIEW)
        index, generation = self.cursor, self._generation
        suggestion = self._compute_suggestion(index, token)
        if (token is not None and token.cancelled) or generation != self._generation:
            logger.info(f"Discarded late suggestion for item {index}")
            return None
        if self.step is not ImportStep.REVIEW:
            return None
        self._suggestions[index] = suggestion
        return suggestion

    def edit(self, **fields: Any) -> ReviewItem:
        """Stage edits for the current item without touching the extracted item.

        Accepted fields: date, description, amount, direction, narration, ledger_id.

        Raises:
            ValidationError: On an unknown field or a bad value
            InvalidStateError: If the item was already posted
        """
        self._require(ImportStep.REVIEW)
        if self.cursor in self.posted:
            raise InvalidStateError(f"Item {self.cursor} was already posted")

        staged: dict[str, Any] = {}
        for name, value in fields.items():
            if name not in EDITABLE_FIELDS:
                raise ValidationError(f"Field '{name}' cannot be edited")
            staged[name] = self._clean_edit(name, value)

        self._pending.setdefault(self.cursor, {}).update(staged)
        return self.current()

    def _clean_edit(self, name: str, value: Any) -> Any:
        if name == "date":
            canonical = normalize_statement_date(str(value))
            if canonical is None:
                raise ValidationError(f"Invalid date: '{value}'")
            try:
                to_calendar_date(canonical)
            except ValueError as e:
                raise ValidationError(f"Invalid date: '{value}': {e}")
            return canonical
        if name == "amount":
            try:
                amount = value if isinstance(value, Decimal) else parse_amount(str(value))
            except ValueError as e:
                raise ValidationError(str(e))
            if amount <= 0:
                raise ValidationError("Amount must be positive")
            return to_cents(amount)
        if name == "direction":
            try:
                return value if isinstance(value, Direction) else Direction(str(value).upper())
            except ValueError:
                raise ValidationError(f"Direction must be DEBIT or CREDIT, got '{value}'")
        if name == "description":
            if not value or not str(value).strip():
                raise ValidationError("Description cannot be empty")
            return str(value).strip()
        if name == "ledger_id":
            if value is None:
                return None
            try:
                ledger_id = int(value)
            except (TypeError, ValueError):
                raise ValidationError(f"Ledger ID must be a number, got '{value}'")
            if self.ledgers.get_ledger(ledger_id) is None:
                raise NotFoundError(ledger_not_found(ledger_id))
            return ledger_id
        return None if value is None else str(value)

    def create_ledger_for_current(
        self, name: Optional[str] = None, ledger_type: Optional[LedgerType] = None
    ) -> int:
        """Create the ledger the current item should go to and stage it.

        Defaults to the suggested ledger name, typed Expense for a debit and
        Income for a credit. An existing ledger with the same name is reused.

        Returns:
            Ledger ID
        """
        self._require(ImportStep.REVIEW)
        item = self._effective_item(self.cursor)
        if name is None:
            suggestion = self._suggestions.get(self.cursor)
            name = suggestion.ledger_name if suggestion is not None else item.ledger_suggestion
        if not name or name.strip().lower() == UNCATEGORIZED.lower():
            raise ValidationError("No ledger name to create")

        existing = self.ledgers.resolve_by_name(name)
        if existing is not None:
            ledger_id = existing.id
        else:
            ledger_id = self.ledgers.create_ledger(
                name, ledger_type or LedgerType.for_direction(item.direction)
            )
        self._pending.setdefault(self.cursor, {})["ledger_id"] = ledger_id
        return ledger_id

    def _post_index(self, index: int, create_missing_ledgers: bool = False) -> Transaction:
        if index not in self._suggestions:
            self._suggestions[index] = self._compute_suggestion(index)
        suggestion = self._suggestions[index]
        item = self._effective_item(index)
        ledger_id = self._effective_ledger_id(index)

        if (
            ledger_id is None
            and create_missing_ledgers
            and suggestion.ledger_name.strip().lower() != UNCATEGORIZED.lower()
        ):
            existing = self.ledgers.resolve_by_name(suggestion.ledger_name)
            ledger_id = existing.id if existing is not None else self.ledgers.create_ledger(
                suggestion.ledger_name, LedgerType.for_direction(item.direction)
            )

        manual_ledger = "ledger_id" in self._pending.get(index, {})
        draft = TransactionDraft(
            date=item.date,
            direction=item.direction,
            amount=item.amount,
            description=item.description,
            narration=item.narration or suggestion.narration or None,
            balance_after=item.balance_after,
            reference_number=item.reference_number,
            source_tag=self.source_tag,
            ai_suggested=not manual_ledger and suggestion.source in ("oracle", "extraction"),
        )
        with self.db.unit_of_work():
            transaction = self.posting.post(
                draft,
                ledger_id=ledger_id,
                bank_account_id=self.bank_account_id,
                confirmed=True,
                idempotency_key=idempotency_key(self.batch_id, index),
            )
            self.db.update_import_batch(
                self.user_id, self.batch_id, posted_index=index, cursor=index + 1
            )
        self.posted.add(index)
        self._pending.pop(index, None)
        return transaction

    def confirm_and_next(self) -> Transaction:
        """Post the current item and advance; the batch is done at the end.

        Raises:
            InvalidStateError: If the current item was already posted
            DomainError: Whatever the posting service raised; the cursor stays
        """
        self._require(ImportStep.REVIEW)
        if self.cursor in self.posted:
            raise InvalidStateError(f"Item {self.cursor} was already posted")
        transaction = self._post_index(self.cursor)
        self._advance()
        return transaction

    def _advance(self) -> None:
        if self.cursor + 1 >= self.total:
            self._move_to(self.total)
            self._set_step(ImportStep.DONE)
        else:
            self._move_to(self.cursor + 1)

    def skip(self) -> None:
        """Move past the current item without posting it."""
        self._require(ImportStep.REVIEW)
        self._advance()

    def previous(self) -> None:
        self._require(ImportStep.REVIEW)
        if self.cursor == 0:
            raise InvalidStateError("Already at the first transaction")
        self._move_to(self.cursor - 1)

    def go_to(self, index: int) -> None:
        self._require(ImportStep.REVIEW)
        if not 0 <= index < self.total:
            raise ValidationError(f"Index {index} is outside 0..{self.total - 1}")
        self._move_to(index)

    def save_all_remaining(self, create_missing_ledgers: bool = False) -> BatchResult:
        """Post every unposted item from the cursor to the end, in order.

        Halts at the first failure, leaving the cursor on the failed item.
        Unresolved suggestions are posted uncategorized unless
        create_missing_ledgers is set.
        """
        self._require(ImportStep.REVIEW)
        posted: list[int] = []
        for index in range(self.cursor, self.total):
            if index in self.posted:
                continue
            try:
                self._post_index(index, create_missing_ledgers=create_missing_ledgers)
            except DomainError as e:
                self.error = f"Item {index} failed: {e}"
                logger.error(f"Import batch {self.batch_id} halted at item {index}: {e}")
                self._move_to(index)
                return BatchResult(posted=posted, failed_index=index, error=e)
            posted.append(index)

        self._move_to(self.total)
        self._set_step(ImportStep.DONE)
        return BatchResult(posted=posted)

    def cancel(self) -> int:
        """Discard every unposted item; posted items stay.

        Returns:
            Number of discarded items
        """
        self._require(ImportStep.UPLOAD, ImportStep.BANK_CONFIRM, ImportStep.REVIEW)
        discarded = self.total - len(self.posted)
        self._pending.clear()
        self._suggestions.clear()
        self._generation += 1
        self._set_step(ImportStep.CANCELLED)
        logger.info(f"Cancelled import batch {self.batch_id}, discarded {discarded} item(s)")
        return discarded

    @classmethod
    def resume(
        cls,
        db: Database,
        user_id: str,
        batch_id: int,
        cascade: Optional[SuggestionCascade] = None,
        extractor: Optional[StatementExtractor] = None,
    ) -> "ReviewOrchestrator":
        """Restore a persisted batch at its stored step and cursor.

        Raises:
            NotFoundError: If the batch does not exist for this user
        """
        batch = db.get_import_batch(user_id, batch_id)
        if batch is None:
            raise NotFoundError(f"Import batch {batch_id} not found")

        orchestrator = cls(db, user_id, cascade=cascade, extractor=extractor)
        orchestrator.batch_id = batch.id
        orchestrator.items = list(batch.items)
        orchestrator.cursor = min(batch.cursor, len(batch.items))
        orchestrator.step = ImportStep(batch.state)
        orchestrator.source_tag = batch.source_tag
        orchestrator.detected_bank = batch.detected_bank
        orchestrator.bank_account_id = batch.bank_account_id
        orchestrator.posted = set(batch.posted_indexes)
        if orchestrator.step is ImportStep.BANK_CONFIRM and batch.detected_bank is not None:
            match = orchestrator.accounts.find_matching_account(batch.detected_bank)
            orchestrator.preselected_account_id = match.id if match is not None else None
        if orchestrator.step is ImportStep.REVIEW and orchestrator.cursor >= orchestrator.total:
            orchestrator._set_step(ImportStep.DONE)
        logger.info(f"Resumed import batch {batch_id} at item {orchestrator.cursor}")
        return orchestrator
