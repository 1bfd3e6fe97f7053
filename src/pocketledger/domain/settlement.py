"""Split/shared settlement service.

A split proposes that another user carries part of a transaction. Each
counterparty gets one pending record and answers it independently. Answering
is acknowledgement only: no ledger entry is posted for either party.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, UTC
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Sequence

from pocketledger.database.base import Database
from pocketledger.domain.entities import SharedTransaction, ShareStatus
from pocketledger.domain.errors import (
    InvalidStateError,
    NotFoundError,
    ValidationError,
    shared_transaction_not_found,
    split_exceeds_amount,
    transaction_not_found,
)
from pocketledger.utils.amount_parser import CENTS

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


@dataclass(frozen=True)
class SplitRequest:
    """One counterparty's share, by amount or by percentage."""

    user_id: str
    amount: Optional[Decimal] = None
    percentage: Optional[Decimal] = None


def equal_splits(amount: Decimal, user_ids: Sequence[str]) -> list[SplitRequest]:
    """Split an amount evenly between the proposer and the given users.

    The proposer keeps one share, so each user is asked for
    ``amount / (len(user_ids) + 1)`` rounded to cents.
    """
    if not user_ids:
        raise ValidationError("At least one user is required for an equal split")
    share = (amount / (len(user_ids) + 1)).quantize(CENTS, rounding=ROUND_HALF_UP)
    return [SplitRequest(user_id=u, amount=share) for u in user_ids]


class SettlementService:
    """Service for proposing and answering shared transactions."""

    def __init__(self, db: Database):
        """Initialize settlement service.

        Args:
            db: Database instance
        """
        self.db = db

    def _resolve(self, request: SplitRequest, total: Decimal) -> tuple[Decimal, Decimal]:
        """Return (amount, percentage) for a split request."""
        if request.amount is not None:
            amount = request.amount.quantize(CENTS, rounding=ROUND_HALF_UP)
            if amount <= 0:
                raise ValidationError(f"Split amount for '{request.user_id}' must be positive")
            percentage = (amount / total * HUNDRED).quantize(CENTS, rounding=ROUND_HALF_UP)
            return amount, percentage
        if request.percentage is not None:
            if request.percentage <= 0 or request.percentage > HUNDRED:
                raise ValidationError(
                    f"Split percentage for '{request.user_id}' must be between 0 and 100"
                )
            amount = (total * request.percentage / HUNDRED).quantize(CENTS, rounding=ROUND_HALF_UP)
            return amount, request.percentage
        raise ValidationError(f"Split for '{request.user_id}' needs an amount or a percentage")

    def propose(
        self,
        user_id: str,
        transaction_id: int,
        splits: Sequence[SplitRequest],
        affects_bank: bool = False,
        notes: Optional[str] = None,
    ) -> list[SharedTransaction]:
        """Propose splitting one of the user's transactions.

        Existing pending or confirmed shares of the same transaction count
        toward the total; the sum may equal the transaction amount but not
        exceed it.

        Args:
            user_id: Proposing user, who must own the transaction
            transaction_id: Transaction to split
            splits: One request per counterparty
            affects_bank: Whether the split is meant to move bank money
            notes: Optional note shown to every counterparty

        Returns:
            The created pending records, in request order

        Raises:
            NotFoundError: If the transaction does not belong to user_id
            ValidationError: If the splits are empty, invalid or too large
        """
        transaction = self.db.get_transaction(user_id, transaction_id)
        if transaction is None:
            raise NotFoundError(transaction_not_found(transaction_id))
        if not splits:
            raise ValidationError("At least one split is required")

        seen: set[str] = set()
        resolved: list[tuple[SplitRequest, Decimal, Decimal]] = []
        for request in splits:
            if not request.user_id or not request.user_id.strip():
                raise ValidationError("Split user cannot be empty")
            if request.user_id == user_id:
                raise ValidationError("Cannot split a transaction with yourself")
            if request.user_id in seen:
                raise ValidationError(f"User '{request.user_id}' appears more than once")
            seen.add(request.user_id)
            amount, percentage = self._resolve(request, transaction.amount)
            resolved.append((request, amount, percentage))

        existing = self.db.list_shared_transactions(
            transaction_id=transaction_id,
            statuses=[ShareStatus.PENDING, ShareStatus.CONFIRMED],
        )
        total = sum((amount for _, amount, _ in resolved), Decimal("0"))
        total += sum((s.split_amount for s in existing), Decimal("0"))
        if total > transaction.amount:
            raise ValidationError(split_exceeds_amount(total, transaction.amount))

        with self.db.unit_of_work():
            shared_ids = [
                self.db.insert_shared_transaction(
                    transaction_id=transaction_id,
                    created_by_user_id=user_id,
                    shared_with_user_id=request.user_id,
                    split_amount=amount,
                    split_percentage=percentage,
                    affects_bank=affects_bank,
                    notes=notes,
                )
                for request, amount, percentage in resolved
            ]

        logger.info(f"Proposed {len(shared_ids)} split(s) of transaction {transaction_id}")
        return [self.db.get_shared_transaction(shared_id) for shared_id in shared_ids]

    def respond(self, user_id: str, shared_id: int, accept: bool) -> SharedTransaction:
        """Confirm or reject a pending share addressed to user_id.

        Raises:
            NotFoundError: If the share does not exist or is not addressed to user_id
            InvalidStateError: If the share was already answered
        """
        shared = self.db.get_shared_transaction(shared_id)
        if shared is None or shared.shared_with_user_id != user_id:
            raise NotFoundError(shared_transaction_not_found(shared_id))
        if shared.status is not ShareStatus.PENDING:
            raise InvalidStateError(f"Shared transaction {shared_id} is already {shared.status.value}")

        status = ShareStatus.CONFIRMED if accept else ShareStatus.REJECTED
        if not self.db.update_shared_transaction_status(shared_id, status, datetime.now(UTC)):
            # Answered by another session since it was read
            current = self.db.get_shared_transaction(shared_id)
            raise InvalidStateError(f"Shared transaction {shared_id} is already {current.status.value}")
        logger.info(f"User '{user_id}' {status.value} shared transaction {shared_id}")
        return self.db.get_shared_transaction(shared_id)

    def list_pending_received(self, user_id: str) -> list[SharedTransaction]:
        """Pending shares waiting for user_id's answer."""
        return self.db.list_shared_transactions(
            shared_with_user_id=user_id, statuses=[ShareStatus.PENDING]
        )

    def list_pending_sent(self, user_id: str) -> list[SharedTransaction]:
        """Pending shares user_id proposed to others."""
        return self.db.list_shared_transactions(
            created_by_user_id=user_id, statuses=[ShareStatus.PENDING]
        )

    def history(self, user_id: str, limit: int = 20) -> list[SharedTransaction]:
        """Answered shares involving user_id, newest first."""
        return self.db.list_shared_transactions(
            involving_user_id=user_id,
            statuses=[ShareStatus.CONFIRMED, ShareStatus.REJECTED],
            limit=limit,
        )
