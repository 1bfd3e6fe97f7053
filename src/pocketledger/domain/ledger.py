"""Ledger domain service."""

import logging
from typing import Optional

from pocketledger.database.base import Database
from pocketledger.domain.entities import Ledger as LedgerEntity, LedgerType
from pocketledger.domain.errors import ConflictError, ValidationError

logger = logging.getLogger(__name__)

UNCATEGORIZED = "Uncategorized"


class LedgerService:
    """Service for managing ledgers."""

    def __init__(self, db: Database, user_id: str):
        """Initialize ledger service.

        Args:
            db: Database instance
            user_id: Authenticated user owning the ledgers
        """
        self.db = db
        self.user_id = user_id

    def create_ledger(self, name: str, ledger_type: LedgerType) -> int:
        """Create a new ledger with a zero balance.

        Args:
            name: Ledger name, unique per user ignoring case
            ledger_type: Income, Expense, Asset or Liability

        Returns:
            Ledger ID

        Raises:
            ValidationError: If the name is empty or reserved
            ConflictError: If a ledger with the same name already exists
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("Ledger name cannot be empty")
        if name.lower() == UNCATEGORIZED.lower():
            raise ValidationError(f"'{UNCATEGORIZED}' is reserved for transactions without a ledger")
        if self.db.get_ledger_by_name(self.user_id, name) is not None:
            raise ConflictError(f"Ledger '{name}' already exists")

        ledger_id = self.db.create_ledger(self.user_id, name, ledger_type)
        logger.info(f"Created {ledger_type.value} ledger {ledger_id} '{name}'")
        return ledger_id

    def get_ledger(self, ledger_id: int) -> Optional[LedgerEntity]:
        return self.db.get_ledger(self.user_id, ledger_id)

    def list_ledgers(self) -> list[LedgerEntity]:
        return self.db.list_ledgers(self.user_id)

    def resolve_by_name(self, name: Optional[str]) -> Optional[LedgerEntity]:
        """Find a ledger by name, ignoring case and surrounding whitespace.

        Never creates a ledger; unknown names and ``Uncategorized`` yield None.
        """
        if not name or not name.strip() or name.strip().lower() == UNCATEGORIZED.lower():
            return None
        return self.db.get_ledger_by_name(self.user_id, name)
