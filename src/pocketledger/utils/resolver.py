"""Utilities for resolving bank account and ledger names to IDs."""

from pocketledger.domain.account import BankAccountService
from pocketledger.domain.errors import NotFoundError
from pocketledger.domain.ledger import LedgerService


def resolve_bank_account(account_service: BankAccountService, account: str | int) -> int:
    """Resolve bank account name, number or ID to account ID.

    Args:
        account_service: BankAccountService instance
        account: Account name, account number, or ID (int or numeric string)

    Returns:
        Bank account ID

    Raises:
        NotFoundError: If account is not found
    """
    if isinstance(account, int):
        if account_service.get_account(account) is None:
            raise NotFoundError(f"Bank account ID {account} not found")
        return account

    accounts = account_service.list_accounts()

    # Names and account numbers win over IDs, since account numbers are numeric
    for acc in accounts:
        if acc.name == account or (acc.account_number and acc.account_number == account):
            return acc.id

    try:
        account_id = int(account)
    except (ValueError, TypeError):
        raise NotFoundError(f"Bank account '{account}' not found")
    if account_service.get_account(account_id) is None:
        raise NotFoundError(f"Bank account ID {account_id} not found")
    return account_id


def resolve_ledger(ledger_service: LedgerService, ledger: str | int) -> int:
    """Resolve ledger name (case-insensitive) or ID to ledger ID.

    Raises:
        NotFoundError: If ledger is not found
    """
    if not isinstance(ledger, int):
        found = ledger_service.resolve_by_name(ledger)
        if found is not None:
            return found.id
        try:
            ledger = int(ledger)
        except (ValueError, TypeError):
            raise NotFoundError(f"Ledger '{ledger}' not found")

    if ledger_service.get_ledger(ledger) is None:
        raise NotFoundError(f"Ledger ID {ledger} not found")
    return ledger
