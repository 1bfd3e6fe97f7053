"""Ledger posting service.

Every post inserts the transaction row and applies its signed amount to the
referenced bank account and ledger balances inside one unit of work, so the
running-balance invariant

    current_balance == opening_balance + sum(signed amounts of confirmed
                                             transactions referencing it)

holds after each individual call. Only confirmed transactions carry a balance
effect; a provisional row gets its effect applied once, by ``confirm``.
"""

import logging
from dataclasses import replace
from datetime import date
from typing import Optional

from pocketledger.database.base import BalanceTarget, Database
from pocketledger.domain.entities import (
    Direction,
    SourceTag,
    Transaction as TransactionEntity,
    TransactionDraft,
)
from pocketledger.domain.errors import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    PersistenceError,
    ValidationError,
    bank_account_not_found,
    duplicate_idempotency_key,
    ledger_not_found,
    transaction_not_found,
)
from pocketledger.utils.amount_parser import to_cents
from pocketledger.utils.date_parser import to_calendar_date

logger = logging.getLogger(__name__)


class LedgerPostingService:
    """Service that records transactions and keeps running balances exact."""

    def __init__(self, db: Database, user_id: str):
        """Initialize posting service.

        Args:
            db: Database instance
            user_id: Authenticated user owning the transactions
        """
        self.db = db
        self.user_id = user_id

    def _validate_draft(self, draft: TransactionDraft) -> date:
        if not isinstance(draft.direction, Direction):
            raise ValidationError(f"Invalid direction: {draft.direction!r}")
        if draft.amount is None or draft.amount <= 0:
            raise ValidationError("Transaction amount must be positive")
        if not draft.description or not draft.description.strip():
            raise ValidationError("Transaction description cannot be empty")
        try:
            return to_calendar_date(draft.date)
        except ValueError as e:
            raise ValidationError(f"Invalid transaction date '{draft.date}': {e}")

    def _check_targets(self, ledger_id: Optional[int], bank_account_id: Optional[int]) -> None:
        if bank_account_id is not None and self.db.get_bank_account(self.user_id, bank_account_id) is None:
            raise NotFoundError(bank_account_not_found(bank_account_id))
        if ledger_id is not None and self.db.get_ledger(self.user_id, ledger_id) is None:
            raise NotFoundError(ledger_not_found(ledger_id))

    def _apply_balances(
        self, transaction: TransactionEntity, ledger_id: Optional[int], bank_account_id: Optional[int]
    ) -> None:
        delta = transaction.signed_amount
        if bank_account_id is not None:
            self.db.increment_balance(BalanceTarget.BANK_ACCOUNT, bank_account_id, delta)
        if ledger_id is not None:
            self.db.increment_balance(BalanceTarget.LEDGER, ledger_id, delta)

    def post(
        self,
        draft: TransactionDraft,
        ledger_id: Optional[int] = None,
        bank_account_id: Optional[int] = None,
        confirmed: bool = True,
        idempotency_key: Optional[str] = None,
    ) -> TransactionEntity:
        """Record a transaction and apply its balance effect atomically.

        Args:
            draft: Finalized transaction fields
            ledger_id: Target ledger, or None while uncategorized
            bank_account_id: Target bank account, or None for cash
            confirmed: Whether the balance effect applies now
            idempotency_key: Optional per-user key; a second post with the
                same key is rejected

        Returns:
            The posted transaction

        Raises:
            ValidationError: If amount, description or date is invalid
            NotFoundError: If the bank account or ledger does not exist
            ConflictError: If the idempotency key was already used
            PersistenceError: If the insert or an increment failed
        """
        txn_date = self._validate_draft(draft)
        self._check_targets(ledger_id, bank_account_id)

        if idempotency_key is not None and self.db.transaction_exists_for_key(self.user_id, idempotency_key):
            raise ConflictError(duplicate_idempotency_key(idempotency_key))

        try:
            with self.db.unit_of_work():
                transaction_id = self.db.insert_transaction(
                    user_id=self.user_id,
                    date=txn_date,
                    direction=draft.direction,
                    amount=to_cents(draft.amount),
                    description=draft.description.strip(),
                    narration=draft.narration,
                    bank_account_id=bank_account_id,
                    ledger_id=ledger_id,
                    balance_after=draft.balance_after,
                    reference_number=draft.reference_number,
                    confirmed=confirmed,
                    source_tag=draft.source_tag,
                    idempotency_key=idempotency_key,
                    ai_suggested=draft.ai_suggested,
                )
                transaction = self.db.get_transaction(self.user_id, transaction_id)
                if confirmed:
                    self._apply_balances(transaction, ledger_id, bank_account_id)
        except ConflictError:
            logger.warning(f"Rolled back post: idempotency key '{idempotency_key}' already used")
            raise ConflictError(duplicate_idempotency_key(idempotency_key or ""))
        except PersistenceError as e:
            logger.error(f"Rolled back post of '{draft.description}': {e}")
            raise

        logger.info(
            f"Posted transaction {transaction_id}: {transaction.signed_amount} "
            f"bank={bank_account_id} ledger={ledger_id} confirmed={confirmed}"
        )
        return self.db.get_transaction(self.user_id, transaction_id)

    def post_cash(
        self,
        draft: TransactionDraft,
        ledger_id: Optional[int] = None,
        confirmed: bool = True,
        idempotency_key: Optional[str] = None,
    ) -> TransactionEntity:
        """Record a cash transaction, which never touches a bank balance."""
        return self.post(
            replace(draft, source_tag=SourceTag.CASH),
            ledger_id=ledger_id,
            bank_account_id=None,
            confirmed=confirmed,
            idempotency_key=idempotency_key,
        )

    def confirm(self, transaction_id: int) -> TransactionEntity:
        """Confirm a provisional transaction, applying its balance effect once.

        Raises:
            NotFoundError: If the transaction does not exist
            InvalidStateError: If the transaction is already confirmed
        """
        transaction = self.db.get_transaction(self.user_id, transaction_id)
        if transaction is None:
            raise NotFoundError(transaction_not_found(transaction_id))
        if transaction.confirmed:
            raise InvalidStateError(f"Transaction {transaction_id} is already confirmed")

        with self.db.unit_of_work():
            self.db.set_transaction_confirmed(self.user_id, transaction_id, True)
            self._apply_balances(transaction, transaction.ledger_id, transaction.bank_account_id)

        logger.info(f"Confirmed transaction {transaction_id}")
        return self.db.get_transaction(self.user_id, transaction_id)

    def assign_ledger(self, transaction_id: int, ledger_id: int) -> TransactionEntity:
        """Categorize a transaction after it was recorded.

        A confirmed transaction without a ledger gets its amount posted to the
        new ledger in the same unit of work. Moving a confirmed transaction
        from one ledger to another is editing a posted transaction and is
        rejected.

        Raises:
            NotFoundError: If the transaction or ledger does not exist
            InvalidStateError: If the transaction is confirmed under another ledger
        """
        transaction = self.db.get_transaction(self.user_id, transaction_id)
        if transaction is None:
            raise NotFoundError(transaction_not_found(transaction_id))
        if self.db.get_ledger(self.user_id, ledger_id) is None:
            raise NotFoundError(ledger_not_found(ledger_id))

        if transaction.ledger_id == ledger_id:
            return transaction
        if transaction.confirmed and transaction.ledger_id is not None:
            raise InvalidStateError(
                f"Transaction {transaction_id} is already posted to ledger {transaction.ledger_id}"
            )

        with self.db.unit_of_work():
            self.db.set_transaction_ledger(self.user_id, transaction_id, ledger_id)
            if transaction.confirmed:
                self.db.increment_balance(BalanceTarget.LEDGER, ledger_id, transaction.signed_amount)

        logger.info(f"Assigned transaction {transaction_id} to ledger {ledger_id}")
        return self.db.get_transaction(self.user_id, transaction_id)
