"""Shared pytest fixtures for pocketledger tests."""

import tempfile
import os
from decimal import Decimal
import pytest

from pocketledger.database.factories import create_sqlite_database
from pocketledger.domain.account import BankAccountService
from pocketledger.domain.entities import AccountType, LedgerType
from pocketledger.domain.errors import OracleError, OracleErrorKind
from pocketledger.domain.ledger import LedgerService
from pocketledger.domain.oracle import Oracle
from pocketledger.domain.posting import LedgerPostingService
from pocketledger.domain.settlement import SettlementService

USER_ID = "alice"


class FakeOracle(Oracle):
    """Oracle returning canned answers in order, recording every prompt.

    An answer that is an OracleErrorKind is raised instead of returned.
    """

    def __init__(self, *answers):
        self.answers = list(answers)
        self.prompts = []
        self.files = []

    def generate(self, prompt, inline_file=None):
        self.prompts.append(prompt)
        self.files.append(inline_file)
        if not self.answers:
            raise OracleError(OracleErrorKind.UNAVAILABLE, "no canned answer left")
        answer = self.answers.pop(0)
        if isinstance(answer, OracleErrorKind):
            raise OracleError(answer, f"fake {answer.value}")
        return answer


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep real credentials and settings out of the tests."""
    for name in (
        "GEMINI_API_KEY",
        "POCKETLEDGER_DB_PATH",
        "POCKETLEDGER_USER",
        "POCKETLEDGER_GEMINI_MODEL",
        "POCKETLEDGER_ORACLE_TIMEOUT",
        "POCKETLEDGER_ORACLE_RETRIES",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    # Create a temporary file for the database
    fd, db_path = tempfile.mkstemp(suffix=".db")
    os.close(fd)

    # Create database
    db = create_sqlite_database(database_path=db_path)
    # Store the path for tests that need it
    db.database_path = db_path
    db.connect()
    db.initialize_schema()

    yield db

    # Cleanup
    db.disconnect()
    if os.path.exists(db_path):
        os.unlink(db_path)


@pytest.fixture
def user_id():
    return USER_ID


@pytest.fixture
def account_service(temp_db):
    """Create a BankAccountService with a temporary database."""
    return BankAccountService(temp_db, USER_ID)


@pytest.fixture
def ledger_service(temp_db):
    """Create a LedgerService with a temporary database."""
    return LedgerService(temp_db, USER_ID)


@pytest.fixture
def posting_service(temp_db):
    """Create a LedgerPostingService with a temporary database."""
    return LedgerPostingService(temp_db, USER_ID)


@pytest.fixture
def settlement_service(temp_db):
    """Create a SettlementService with a temporary database."""
    return SettlementService(temp_db)


@pytest.fixture
def sample_bank(account_service):
    """Create a sample bank account with an opening balance of 1000."""
    account_id = account_service.create_account(
        name="HDFC Savings",
        account_number="50100012345678",
        account_type=AccountType.SAVINGS,
        opening_balance=Decimal("1000.00"),
    )
    return account_service.get_account(account_id)


@pytest.fixture
def sample_ledgers(ledger_service):
    """Create a few ledgers and return their IDs by name."""
    return {
        "Groceries": ledger_service.create_ledger("Groceries", LedgerType.EXPENSE),
        "Salary": ledger_service.create_ledger("Salary", LedgerType.INCOME),
        "Travel": ledger_service.create_ledger("Travel", LedgerType.EXPENSE),
    }


@pytest.fixture
def cli_runner():
    """Create a Click CLI test runner."""
    from click.testing import CliRunner

    return CliRunner()
