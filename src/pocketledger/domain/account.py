"""Bank account domain service."""

import logging
from decimal import Decimal
from typing import Optional, Sequence

from pocketledger.database.base import Database
from pocketledger.domain.entities import (
    AccountType,
    BankAccount as BankAccountEntity,
    DetectedBank,
    ExtractedTransaction,
)
from pocketledger.domain.errors import (
    ConflictError,
    NotFoundError,
    ValidationError,
    bank_account_not_found,
)

logger = logging.getLogger(__name__)


def matches_detected_bank(account: BankAccountEntity, detected: DetectedBank) -> bool:
    """Check whether a stored account is the one a statement header describes.

    Either the account numbers are equal, or the stored name contains the
    detected bank name (case-insensitively) and the stored number contains the
    detected number's last four digits.
    """
    if detected.account_number and account.account_number == detected.account_number:
        return True
    if not detected.bank_name or not detected.account_tail:
        return False
    return (
        detected.bank_name.lower() in account.name.lower()
        and detected.account_tail in account.account_number
    )


class BankAccountService:
    """Service for managing bank accounts."""

    def __init__(self, db: Database, user_id: str):
        """Initialize bank account service.

        Args:
            db: Database instance
            user_id: Authenticated user owning the accounts
        """
        self.db = db
        self.user_id = user_id

    def create_account(
        self,
        name: str,
        account_number: str = "",
        account_type: AccountType = AccountType.SAVINGS,
        opening_balance: Decimal = Decimal("0"),
    ) -> int:
        """Create a new bank account.

        Args:
            name: Display name
            account_number: Account number as printed on statements
            account_type: Savings, Current or CreditCard
            opening_balance: Balance before any recorded transaction

        Returns:
            Bank account ID

        Raises:
            ValidationError: If the name is empty
            ConflictError: If an account with the same name already exists
        """
        if not name or not name.strip():
            raise ValidationError("Bank account name cannot be empty")

        for acc in self.db.list_bank_accounts(self.user_id):
            if acc.name == name:
                raise ConflictError(f"Bank account with name '{name}' already exists")

        account_id = self.db.create_bank_account(
            user_id=self.user_id,
            name=name.strip(),
            account_number=account_number.strip(),
            account_type=account_type,
            opening_balance=opening_balance,
        )
        logger.info(f"Created bank account {account_id} '{name}'")
        return account_id

    def get_account(self, account_id: int) -> Optional[BankAccountEntity]:
        """Get bank account by ID.

        Args:
            account_id: Bank account ID

        Returns:
            Bank account entity or None if not found
        """
        return self.db.get_bank_account(self.user_id, account_id)

    def list_accounts(self, active_only: bool = False) -> list[BankAccountEntity]:
        """List the user's bank accounts."""
        return self.db.list_bank_accounts(self.user_id, active_only=active_only)

    def deactivate_account(self, account_id: int) -> None:
        """Hide an account from matching without touching its history.

        Raises:
            NotFoundError: If account not found
        """
        if self.db.get_bank_account(self.user_id, account_id) is None:
            raise NotFoundError(bank_account_not_found(account_id))
        self.db.set_bank_account_active(self.user_id, account_id, False)

    def find_matching_account(self, detected: Optional[DetectedBank]) -> Optional[BankAccountEntity]:
        """Find the active account a detected statement header refers to.

        Args:
            detected: Bank identity read from the statement, or None

        Returns:
            The first matching active account, or None
        """
        if detected is None:
            return None
        for account in self.db.list_bank_accounts(self.user_id, active_only=True):
            if matches_detected_bank(account, detected):
                logger.info(f"Detected bank matched account {account.id} '{account.name}'")
                return account
        return None

    def create_from_detection(
        self,
        detected: DetectedBank,
        transactions: Sequence[ExtractedTransaction] = (),
    ) -> int:
        """Create an account for a statement whose bank is not on file yet.

        The account is named ``"<bank> - <last 4>"``. When the statement carries
        running balances, it opens at the balance before the first transaction,
        so posting the statement ends on its closing balance.

        Returns:
            Bank account ID
        """
        opening = Decimal("0")
        if transactions and transactions[0].balance_after is not None:
            first = transactions[0]
            opening = first.balance_after - first.direction.signed(first.amount)

        name = f"{detected.bank_name} - {detected.account_tail}"
        return self.create_account(
            name=name,
            account_number=detected.account_number,
            account_type=AccountType.SAVINGS,
            opening_balance=opening,
        )
