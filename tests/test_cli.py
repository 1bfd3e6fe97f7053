"""Tests for the command line interface."""

import re

import pytest

from pocketledger.cli.commands.shared import parse_split
from pocketledger.cli.main import cli

STATEMENT = "\n".join(
    [
        "01/03/2024 Salary ACME Corp 50,000.00",
        "02/03/2024 BigBasket groceries -1,250.50",
        "03/03/2024 Uber ride -320.00",
        "04/03/2024 Netflix subscription -649.00",
        "05/03/2024 Interest credit 12.75",
    ]
)


@pytest.fixture
def run(cli_runner, temp_db):
    """Invoke the CLI against the temporary database as a given user."""

    def _run(*args, user="alice", input=None):
        return cli_runner.invoke(
            cli,
            ["--db-path", temp_db.database_path, "--user", user, *args],
            input=input,
        )

    return _run


@pytest.fixture
def statement_file(tmp_path):
    path = tmp_path / "march.txt"
    path.write_text(STATEMENT, encoding="utf-8")
    return str(path)


def _batch_id(output):
    return re.search(r"\(batch (\d+)\)", output).group(1)


def test_help_does_not_need_a_database(cli_runner):
    result = cli_runner.invoke(cli, ["--help"])
    assert result.exit_code == 0
    assert "import" in result.output
    assert "split" in result.output


class TestBankCommands:
    def test_create_and_list(self, run):
        result = run("bank", "create", "HDFC Savings", "--number", "50100012345678", "--opening-balance", "1,000")
        assert result.exit_code == 0
        assert "Created bank account 'HDFC Savings' (ID: 1)" in result.output

        result = run("bank", "list")
        assert result.exit_code == 0
        assert "HDFC Savings" in result.output
        assert "XXXXXXXXXX5678" in result.output
        assert "1,000.00" in result.output

    def test_duplicate_name(self, run):
        run("bank", "create", "HDFC Savings")
        result = run("bank", "create", "HDFC Savings")
        assert result.exit_code == 1
        assert "already exists" in result.output

    def test_invalid_opening_balance(self, run):
        result = run("bank", "create", "HDFC Savings", "--opening-balance", "lots")
        assert result.exit_code == 1
        assert "Invalid amount" in result.output

    def test_accounts_are_per_user(self, run):
        run("bank", "create", "HDFC Savings")
        result = run("bank", "list", user="bob")
        assert "No bank accounts found." in result.output

    def test_deactivate(self, run):
        run("bank", "create", "HDFC Savings", "--number", "50100012345678")
        result = run("bank", "deactivate", "50100012345678")
        assert result.exit_code == 0
        assert "No bank accounts found." in run("bank", "list").output
        assert "(inactive)" in run("bank", "list", "--all").output


class TestLedgerCommands:
    def test_create_and_list(self, run):
        result = run("ledger", "create", "Groceries", "--type", "Expense")
        assert result.exit_code == 0
        assert "Created Expense ledger 'Groceries' (ID: 1)" in result.output
        assert "Groceries" in run("ledger", "list").output

    def test_reserved_and_duplicate_names(self, run):
        result = run("ledger", "create", "Uncategorized", "--type", "Expense")
        assert result.exit_code == 1
        assert "reserved" in result.output

        run("ledger", "create", "Groceries", "--type", "Expense")
        result = run("ledger", "create", "groceries", "--type", "Expense")
        assert result.exit_code == 1
        assert "already exists" in result.output


class TestAddAndTransactions:
    @pytest.fixture(autouse=True)
    def setup_books(self, run):
        run("bank", "create", "HDFC Savings", "--number", "50100012345678", "--opening-balance", "1000")
        run("ledger", "create", "Groceries", "--type", "Expense")

    def test_add_bank_transaction(self, run):
        result = run(
            "add",
            "--bank",
            "HDFC Savings",
            "--date",
            "05/03/2024",
            "--amount",
            "-45.00",
            "--description",
            "Grocery Store",
            "--ledger",
            "groceries",
        )
        assert result.exit_code == 0
        assert "Created transaction 1" in result.output
        assert "Date: 2024-03-05" in result.output
        assert "-45.00 (DEBIT)" in result.output

        assert "955.00" in run("bank", "list").output
        assert "-45.00" in run("ledger", "list").output

    def test_add_cash_unconfirmed_then_confirm(self, run):
        result = run(
            "add", "--amount", "-120", "--description", "Taxi", "--ledger", "Groceries", "--unconfirmed"
        )
        assert result.exit_code == 0
        assert "Account: cash" in result.output
        assert "Unconfirmed" in result.output
        assert "0.00" in run("ledger", "list").output

        listing = run("transaction", "list", "--unconfirmed").output
        assert "Taxi" in listing

        result = run("transaction", "confirm", "1")
        assert result.exit_code == 0
        assert "Transaction 1 confirmed" in result.output
        assert "-120.00" in run("ledger", "list").output

        result = run("transaction", "confirm", "1")
        assert result.exit_code == 1
        assert "already confirmed" in result.output

    @pytest.mark.parametrize(
        "args, message",
        [
            (["--amount", "abc", "--description", "x"], "Invalid amount"),
            (["--amount", "0", "--description", "x"], "must be positive"),
            (["--amount", "-5", "--description", "x", "--date", "someday"], "Invalid date"),
            (["--amount", "-5", "--description", "x", "--bank", "Nope"], "not found"),
            (["--amount", "-5", "--description", "x", "--ledger", "Nope"], "not found"),
        ],
    )
    def test_add_errors(self, run, args, message):
        result = run("add", *args)
        assert result.exit_code == 1
        assert message in result.output

    def test_list_and_categorize(self, run):
        run("add", "--bank", "HDFC Savings", "--date", "2024-03-05", "--amount", "-45", "--description", "BigBasket")

        listing = run("transaction", "list", "--uncategorized").output
        assert "BigBasket" in listing
        assert "Uncategorized" in listing

        result = run("transaction", "categorize", "1", "Groceries")
        assert result.exit_code == 0
        assert "No transactions found." in run("transaction", "list", "--uncategorized").output
        assert "BigBasket" in run("transaction", "list", "--ledger", "Groceries").output
        assert "-45.00" in run("ledger", "list").output

    def test_list_date_filters(self, run):
        run("add", "--date", "2024-01-10", "--amount", "-1", "--description", "January")
        run("add", "--date", "2024-03-10", "--amount", "-1", "--description", "March")

        output = run("transaction", "list", "--start-date", "2024-03-01").output
        assert "March" in output
        assert "January" not in output

        result = run("transaction", "list", "--period", "this-month", "--start-date", "2024-01-01")
        assert result.exit_code == 1


class TestImportCommands:
    @pytest.fixture(autouse=True)
    def setup_bank(self, run):
        run("bank", "create", "HDFC Savings", "--number", "50100012345678", "--opening-balance", "1000")

    def test_save_all(self, run, statement_file):
        result = run("import", statement_file, "--bank", "HDFC Savings", "--save-all")
        assert result.exit_code == 0, result.output
        assert "Found 5 transaction(s)" in result.output
        assert "Posted 5 transaction(s)" in result.output
        assert "48,793.25" in run("bank", "list").output

        listing = run("transaction", "list").output
        assert "Interest credit" in listing
        assert "Uncategorized" in listing

    def test_interactive_review_pause_and_resume(self, run, statement_file):
        result = run("import", statement_file, "--bank", "1", input="c\ns\nq\n")
        assert result.exit_code == 0, result.output
        assert "[1/5]" in result.output
        assert "Suggested: Uncategorized" in result.output
        assert "Posted transaction 1" in result.output
        batch_id = _batch_id(result.output)
        assert f"Resume with: pocketledger import-resume {batch_id}" in result.output

        result = run("import-resume", batch_id, "--save-all")
        assert result.exit_code == 0, result.output
        assert "Resuming batch" in result.output
        assert "item 3 of 5" in result.output
        assert "Posted 3 transaction(s)" in result.output

        # Item 2 was skipped, not posted
        assert "BigBasket" not in run("transaction", "list").output
        assert "50,043.75" in run("bank", "list").output

    def test_new_ledger_during_review(self, run, statement_file):
        result = run("import", statement_file, "--bank", "HDFC Savings", input="n\nSalary\nc\nx\n")
        assert result.exit_code == 0, result.output
        assert "Using ledger 'Salary'" in result.output
        assert "Import cancelled, 4 unposted transaction(s) discarded" in result.output
        assert "50,000.00" in run("ledger", "list").output

    def test_cash_csv_import(self, run, tmp_path):
        path = tmp_path / "cash.csv"
        path.write_text(
            "Date,Description,Amount\n2024-03-05,Grocery Store,-45.00\n2024-03-06,Refund,10.00\n",
            encoding="utf-8",
        )
        result = run("import", str(path), "--cash", "--save-all")
        assert result.exit_code == 0, result.output
        assert "Found 2 transaction(s)" in result.output
        assert "1,000.00" in run("bank", "list").output
        assert "Grocery Store" in run("transaction", "list").output

    def test_bank_and_cash_are_exclusive(self, run, statement_file):
        result = run("import", statement_file, "--bank", "1", "--cash")
        assert result.exit_code == 1

    def test_unsupported_file(self, run, tmp_path):
        path = tmp_path / "statement.doc"
        path.write_text("nothing", encoding="utf-8")
        result = run("import", str(path))
        assert result.exit_code == 1
        assert "Unsupported statement type" in result.output

    def test_empty_statement(self, run, tmp_path):
        path = tmp_path / "empty.txt"
        path.write_text("Opening balance\n", encoding="utf-8")
        result = run("import", str(path), "--bank", "1")
        assert result.exit_code == 1
        assert "No transactions found" in result.output

    def test_ai_extract_without_key(self, run, tmp_path):
        path = tmp_path / "statement.pdf"
        path.write_bytes(b"%PDF-1.4")
        result = run("import", str(path), "--ai-extract")
        assert result.exit_code == 1
        assert "not configured" in result.output

    def test_resume_unknown_batch(self, run):
        result = run("import-resume", "99")
        assert result.exit_code == 1
        assert "not found" in result.output


class TestSharedCommands:
    @pytest.fixture(autouse=True)
    def dinner(self, run):
        run("add", "--date", "2024-03-09", "--amount", "-1200", "--description", "Dinner")

    def test_split_and_answer(self, run):
        result = run("split", "1", "--with", "bob:300", "--with", "carol:25%", "--notes", "Friday")
        assert result.exit_code == 0, result.output
        assert "Proposed 2 split(s) of transaction 1" in result.output

        assert "Waiting for others" in run("shared", "list").output
        received = run("shared", "list", user="bob").output
        assert "Waiting for you" in received
        assert "300.00" in received

        result = run("shared", "confirm", "1", user="bob")
        assert result.exit_code == 0
        assert "Shared transaction 1 confirmed" in result.output
        result = run("shared", "reject", "2", user="carol")
        assert "Shared transaction 2 rejected" in result.output

        history = run("shared", "list", "--history").output
        assert "confirmed" in history
        assert "rejected" in history

    def test_equal_split(self, run):
        result = run("split", "1", "--with", "bob", "--with", "carol", "--equal")
        assert result.exit_code == 0, result.output
        assert result.output.count("400.00") == 2

    def test_split_errors(self, run):
        result = run("split", "1", "--with", "bob:1300")
        assert result.exit_code == 1
        assert "cannot exceed" in result.output

        result = run("split", "1", "--with", "bob")
        assert result.exit_code == 1

        result = run("split", "1", "--with", "carol:10", user="bob")
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_only_recipient_can_answer(self, run):
        run("split", "1", "--with", "bob:100")
        result = run("shared", "confirm", "1")
        assert result.exit_code == 1
        assert "not found" in result.output


def test_parse_split():
    assert parse_split("bob:40").amount == 40
    share = parse_split("bob:25%")
    assert share.user_id == "bob"
    assert share.percentage == 25
    assert share.amount is None
    with pytest.raises(ValueError):
        parse_split("bob")
