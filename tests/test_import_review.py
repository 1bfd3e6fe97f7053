"""Tests for the review/import orchestrator."""

import json
from decimal import Decimal

import pytest

from conftest import FakeOracle, USER_ID
from pocketledger.domain.categorization import StatementExtractor
from pocketledger.domain.entities import Direction, SourceTag, Suggestion
from pocketledger.domain.errors import (
    ImportError_,
    InvalidStateError,
    NotFoundError,
    OracleErrorKind,
    PersistenceError,
    ValidationError,
)
from pocketledger.domain.import_review import ImportStep, ReviewOrchestrator, idempotency_key
from pocketledger.domain.oracle import CancelToken
from pocketledger.domain.statement_parser import SourceKind, StatementSource

STATEMENT = "\n".join(
    [
        "HDFC BANK STATEMENT",
        "01/03/2024 Salary ACME Corp 50,000.00",
        "02/03/2024 BigBasket groceries -1,250.50",
        "03/03/2024 Uber ride -320.00",
        "04/03/2024 Netflix subscription -649.00",
        "05/03/2024 Interest credit 12.75",
        "Closing balance",
    ]
)


def _extraction(bank_name="HDFC", account_number="XXXXXX5678"):
    return json.dumps(
        {
            "bankInfo": {"bankName": bank_name, "accountNumber": account_number},
            "transactions": [
                {
                    "date": "2024-03-01",
                    "particulars": "NEFT ACME CORP",
                    "narration": "March salary",
                    "amount": 50000,
                    "transactionType": "CREDIT",
                    "balance": 51000,
                    "ledgerSuggestion": "salary",
                    "confidence": 0.9,
                },
                {
                    "date": "2024-03-02",
                    "particulars": "POS BIGBASKET",
                    "amount": 1250.5,
                    "transactionType": "DEBIT",
                    "balance": 49749.5,
                    "ledgerSuggestion": "Household",
                    "confidence": 0.6,
                },
            ],
        }
    )


@pytest.fixture
def orchestrator(temp_db):
    return ReviewOrchestrator(temp_db, USER_ID)


@pytest.fixture
def reviewing(orchestrator, sample_bank):
    """Orchestrator with the text statement loaded and the sample bank confirmed."""
    orchestrator.load(StatementSource(SourceKind.TEXT, STATEMENT))
    orchestrator.confirm_bank(sample_bank.id)
    return orchestrator


class TestUpload:
    def test_load_opens_batch(self, temp_db, orchestrator):
        count = orchestrator.load(StatementSource(SourceKind.TEXT, STATEMENT))

        assert count == 5
        assert orchestrator.step is ImportStep.BANK_CONFIRM
        assert orchestrator.batch_id is not None
        batch = temp_db.get_import_batch(USER_ID, orchestrator.batch_id)
        assert batch.state == "bank_confirm"
        assert len(batch.items) == 5
        assert batch.items[1].amount == Decimal("1250.50")
        assert batch.source_tag == SourceTag.UPLOAD

    def test_nothing_parsed(self, orchestrator):
        with pytest.raises(ImportError_, match="No transactions"):
            orchestrator.load(StatementSource(SourceKind.TEXT, "Opening balance\nClosing balance"))
        assert orchestrator.step is ImportStep.UPLOAD
        assert orchestrator.error is not None
        assert orchestrator.batch_id is None

    def test_load_twice_is_rejected(self, orchestrator):
        orchestrator.load(StatementSource(SourceKind.TEXT, STATEMENT))
        with pytest.raises(InvalidStateError):
            orchestrator.load(StatementSource(SourceKind.TEXT, STATEMENT))

    def test_load_file_preselects_matching_bank(self, temp_db, sample_bank):
        oracle = FakeOracle(_extraction())
        orchestrator = ReviewOrchestrator(temp_db, USER_ID, extractor=StatementExtractor(oracle))

        assert orchestrator.load_file(b"%PDF", "application/pdf") == 2
        assert orchestrator.source_tag == SourceTag.PDF_UPLOAD
        assert orchestrator.detected_bank.bank_name == "HDFC"
        assert orchestrator.preselected_account_id == sample_bank.id

    def test_load_file_oracle_failure(self, temp_db):
        oracle = FakeOracle(OracleErrorKind.UNAVAILABLE)
        orchestrator = ReviewOrchestrator(temp_db, USER_ID, extractor=StatementExtractor(oracle))

        with pytest.raises(ImportError_) as exc_info:
            orchestrator.load_file(b"%PDF", "application/pdf")
        assert exc_info.value.cause is not None
        assert orchestrator.step is ImportStep.UPLOAD

    def test_load_file_without_extractor(self, orchestrator):
        with pytest.raises(ImportError_):
            orchestrator.load_file(b"%PDF", "application/pdf")


class TestBankConfirm:
    def test_confirm_moves_to_review(self, temp_db, orchestrator, sample_bank):
        orchestrator.load(StatementSource(SourceKind.TEXT, STATEMENT))
        orchestrator.confirm_bank(sample_bank.id)

        assert orchestrator.step is ImportStep.REVIEW
        batch = temp_db.get_import_batch(USER_ID, orchestrator.batch_id)
        assert batch.state == "review"
        assert batch.bank_account_id == sample_bank.id

    def test_unknown_account(self, orchestrator):
        orchestrator.load(StatementSource(SourceKind.TEXT, STATEMENT))
        with pytest.raises(NotFoundError):
            orchestrator.confirm_bank(999)
        assert orchestrator.step is ImportStep.BANK_CONFIRM

    def test_inactive_account(self, orchestrator, account_service, sample_bank):
        account_service.deactivate_account(sample_bank.id)
        orchestrator.load(StatementSource(SourceKind.TEXT, STATEMENT))
        with pytest.raises(ValidationError):
            orchestrator.confirm_bank(sample_bank.id)

    def test_cash_import_posts_without_bank(self, temp_db, orchestrator, account_service, sample_bank):
        orchestrator.load(StatementSource(SourceKind.TEXT, STATEMENT))
        orchestrator.confirm_bank(None)
        txn = orchestrator.confirm_and_next()

        assert txn.bank_account_id is None
        assert account_service.get_account(sample_bank.id).current_balance == Decimal("1000.00")

    def test_create_bank_from_detection(self, temp_db, account_service, sample_bank):
        oracle = FakeOracle(_extraction(bank_name="ICICI Bank", account_number="000123459999"))
        orchestrator = ReviewOrchestrator(temp_db, USER_ID, extractor=StatementExtractor(oracle))
        orchestrator.load_file(b"%PDF", "application/pdf")
        assert orchestrator.preselected_account_id is None

        account_id = orchestrator.create_bank_from_detection()

        account = account_service.get_account(account_id)
        assert account.name == "ICICI Bank - 9999"
        assert account.account_number == "000123459999"
        assert account.opening_balance == Decimal("1000.00")
        assert orchestrator.step is ImportStep.REVIEW
        assert orchestrator.bank_account_id == account_id

    def test_detected_bank_ends_on_closing_balance(self, temp_db, account_service):
        oracle = FakeOracle(_extraction(bank_name="ICICI Bank", account_number="000123459999"))
        orchestrator = ReviewOrchestrator(temp_db, USER_ID, extractor=StatementExtractor(oracle))
        orchestrator.load_file(b"%PDF", "application/pdf")
        account_id = orchestrator.create_bank_from_detection()

        result = orchestrator.save_all_remaining()

        assert result.posted == [0, 1]
        account = account_service.get_account(account_id)
        assert account.current_balance == orchestrator.items[-1].balance_after
        assert account.current_balance == Decimal("49749.50")

    def test_create_bank_requires_detection(self, orchestrator):
        orchestrator.load(StatementSource(SourceKind.TEXT, STATEMENT))
        with pytest.raises(InvalidStateError):
            orchestrator.create_bank_from_detection()


class TestReview:
    def test_current_item(self, reviewing):
        current = reviewing.current()
        assert current.index == 0
        assert current.total == 5
        assert current.item.description == "Salary ACME Corp"
        assert current.item.direction == Direction.CREDIT
        assert current.suggestion is None
        assert current.posted is False

    def test_fallback_suggestion_without_sources(self, reviewing):
        suggestion = reviewing.suggest_current()
        assert suggestion.ledger_name == "Uncategorized"
        assert suggestion.confidence == 0.0
        assert reviewing.current().suggestion == suggestion

    def test_confirm_posts_with_edits(self, temp_db, reviewing, account_service, ledger_service, sample_bank, sample_ledgers):
        reviewing.edit(ledger_id=sample_ledgers["Salary"], narration="March salary", description="ACME salary")
        assert reviewing.items[0].description == "Salary ACME Corp"

        txn = reviewing.confirm_and_next()

        assert txn.description == "ACME salary"
        assert txn.narration == "March salary"
        assert txn.ledger_id == sample_ledgers["Salary"]
        assert txn.bank_account_id == sample_bank.id
        assert txn.idempotency_key == idempotency_key(reviewing.batch_id, 0)
        assert txn.source_tag == SourceTag.UPLOAD
        assert txn.ai_suggested is False
        assert reviewing.cursor == 1
        assert account_service.get_account(sample_bank.id).current_balance == Decimal("51000.00")
        assert ledger_service.get_ledger(sample_ledgers["Salary"]).current_balance == Decimal("50000.00")
        batch = temp_db.get_import_batch(USER_ID, reviewing.batch_id)
        assert batch.posted_indexes == frozenset({0})
        assert batch.cursor == 1

    def test_edit_amount_and_direction(self, reviewing):
        reviewing.skip()
        current = reviewing.edit(amount="1,300", direction="credit", date="03-03-2024")
        assert current.item.amount == Decimal("1300.00")
        assert current.item.direction == Direction.CREDIT
        assert current.item.date == "2024-03-03"

    @pytest.mark.parametrize(
        "fields, error",
        [
            ({"reference_number": "X"}, ValidationError),
            ({"amount": "0"}, ValidationError),
            ({"amount": "lots"}, ValidationError),
            ({"direction": "sideways"}, ValidationError),
            ({"date": "31/02/2024"}, ValidationError),
            ({"description": "  "}, ValidationError),
            ({"ledger_id": "abc"}, ValidationError),
            ({"ledger_id": 999}, NotFoundError),
        ],
    )
    def test_invalid_edits(self, reviewing, fields, error):
        with pytest.raises(error):
            reviewing.edit(**fields)
        assert reviewing.current().item == reviewing.items[0]

    def test_posted_item_is_read_only(self, reviewing):
        reviewing.confirm_and_next()
        reviewing.previous()
        assert reviewing.current().posted is True
        with pytest.raises(InvalidStateError):
            reviewing.edit(narration="changed")
        with pytest.raises(InvalidStateError):
            reviewing.confirm_and_next()

    def test_navigation(self, temp_db, reviewing):
        with pytest.raises(InvalidStateError):
            reviewing.previous()
        reviewing.skip()
        reviewing.skip()
        assert reviewing.cursor == 2
        reviewing.previous()
        assert reviewing.cursor == 1
        reviewing.go_to(4)
        assert reviewing.current().item.description == "Interest credit"
        with pytest.raises(ValidationError):
            reviewing.go_to(5)
        assert temp_db.get_import_batch(USER_ID, reviewing.batch_id).cursor == 4

        reviewing.skip()
        assert reviewing.step is ImportStep.DONE
        assert temp_db.list_transactions(USER_ID) == []

    def test_create_ledger_for_current(self, reviewing, ledger_service):
        reviewing.go_to(2)
        reviewing.suggest_current()
        with pytest.raises(ValidationError):
            reviewing.create_ledger_for_current()

        ledger_id = reviewing.create_ledger_for_current("Transport")
        ledger = ledger_service.get_ledger(ledger_id)
        assert ledger.ledger_type.value == "Expense"
        assert reviewing.current().ledger_id == ledger_id

        # An existing ledger is reused rather than duplicated
        assert reviewing.create_ledger_for_current("transport") == ledger_id

        txn = reviewing.confirm_and_next()
        assert txn.ledger_id == ledger_id


class TestLateSuggestions:
    class CursorMovingCascade:
        """Cascade that moves the cursor while it is answering."""

        def __init__(self):
            self.orchestrator = None

        def suggest(self, description, amount, direction, preset=None, token=None):
            self.orchestrator.skip()
            return Suggestion(ledger_name="Dining", narration=description, confidence=0.8)

    def test_suggestion_for_old_cursor_is_discarded(self, temp_db, sample_bank):
        cascade = self.CursorMovingCascade()
        orchestrator = ReviewOrchestrator(temp_db, USER_ID, cascade=cascade)
        cascade.orchestrator = orchestrator
        orchestrator.load(StatementSource(SourceKind.TEXT, STATEMENT))
        orchestrator.confirm_bank(sample_bank.id)

        assert orchestrator.suggest_current() is None
        assert orchestrator.cursor == 1
        orchestrator.previous()
        assert orchestrator.current().suggestion is None

    def test_cancelled_token_discards(self, reviewing):
        token = CancelToken()
        token.cancel()
        assert reviewing.suggest_current(token) is None
        assert reviewing.current().suggestion is None


class TestSaveAll:
    def test_posts_everything(self, temp_db, reviewing, account_service, sample_bank):
        result = reviewing.save_all_remaining()

        assert result.posted == [0, 1, 2, 3, 4]
        assert not result.halted
        assert reviewing.step is ImportStep.DONE
        assert len(temp_db.list_transactions(USER_ID)) == 5
        assert account_service.get_account(sample_bank.id).current_balance == Decimal("48793.25")
        assert temp_db.get_import_batch(USER_ID, reviewing.batch_id).state == "done"

    def test_skips_already_posted(self, temp_db, reviewing):
        reviewing.confirm_and_next()
        result = reviewing.save_all_remaining()
        assert result.posted == [1, 2, 3, 4]
        assert len(temp_db.list_transactions(USER_ID)) == 5

    def test_halts_at_first_failure_and_resumes(self, temp_db, reviewing, account_service, sample_bank, monkeypatch):
        original = temp_db.increment_balance
        calls = []

        def flaky(target, target_id, delta):
            calls.append(target_id)
            if len(calls) == 3:
                raise PersistenceError("disk I/O error")
            return original(target, target_id, delta)

        monkeypatch.setattr(temp_db, "increment_balance", flaky)

        result = reviewing.save_all_remaining()

        assert result.posted == [0, 1]
        assert result.failed_index == 2
        assert result.halted
        assert isinstance(result.error, PersistenceError)
        assert reviewing.step is ImportStep.REVIEW
        assert reviewing.cursor == 2
        assert reviewing.error is not None
        assert len(temp_db.list_transactions(USER_ID)) == 2
        assert account_service.get_account(sample_bank.id).current_balance == Decimal("49749.50")

        monkeypatch.undo()
        resumed = ReviewOrchestrator.resume(temp_db, USER_ID, reviewing.batch_id)
        assert resumed.step is ImportStep.REVIEW
        assert resumed.cursor == 2
        assert resumed.posted == {0, 1}

        result = resumed.save_all_remaining()
        assert result.posted == [2, 3, 4]
        assert len(temp_db.list_transactions(USER_ID)) == 5
        assert account_service.get_account(sample_bank.id).current_balance == Decimal("48793.25")

    def test_cancel_after_failure_keeps_posted(self, temp_db, reviewing, monkeypatch):
        original = temp_db.increment_balance
        calls = []

        def flaky(target, target_id, delta):
            calls.append(target_id)
            if len(calls) == 3:
                raise PersistenceError("disk I/O error")
            return original(target, target_id, delta)

        monkeypatch.setattr(temp_db, "increment_balance", flaky)
        reviewing.save_all_remaining()

        assert reviewing.cancel() == 3
        assert reviewing.step is ImportStep.CANCELLED
        assert len(temp_db.list_transactions(USER_ID)) == 2
        assert temp_db.get_import_batch(USER_ID, reviewing.batch_id).state == "cancelled"
        with pytest.raises(InvalidStateError):
            reviewing.save_all_remaining()

    def test_extraction_suggestions_and_missing_ledgers(
        self, temp_db, sample_bank, sample_ledgers, ledger_service, account_service
    ):
        oracle = FakeOracle(_extraction())
        orchestrator = ReviewOrchestrator(temp_db, USER_ID, extractor=StatementExtractor(oracle))
        orchestrator.load_file(b"%PDF", "application/pdf")
        orchestrator.confirm_bank(orchestrator.preselected_account_id)

        first = orchestrator.suggest_current()
        assert first.ledger_id == sample_ledgers["Salary"]
        assert first.ledger_name == "Salary"

        result = orchestrator.save_all_remaining(create_missing_ledgers=True)
        assert result.posted == [0, 1]

        household = ledger_service.resolve_by_name("Household")
        assert household is not None
        assert household.ledger_type.value == "Expense"
        assert household.current_balance == Decimal("-1250.50")
        assert ledger_service.get_ledger(sample_ledgers["Salary"]).current_balance == Decimal("50000.00")
        assert account_service.get_account(sample_bank.id).current_balance == Decimal("49749.50")

        transactions = temp_db.list_transactions(USER_ID)
        assert all(t.source_tag == SourceTag.PDF_UPLOAD for t in transactions)
        assert all(t.ai_suggested for t in transactions)
        assert {t.balance_after for t in transactions} == {Decimal("51000.00"), Decimal("49749.50")}

    def test_unresolved_suggestions_post_uncategorized(self, temp_db, sample_bank, ledger_service):
        oracle = FakeOracle(_extraction())
        orchestrator = ReviewOrchestrator(temp_db, USER_ID, extractor=StatementExtractor(oracle))
        orchestrator.load_file(b"%PDF", "application/pdf")
        orchestrator.confirm_bank(sample_bank.id)

        orchestrator.save_all_remaining()

        assert ledger_service.list_ledgers() == []
        assert all(t.ledger_id is None for t in temp_db.list_transactions(USER_ID))


class TestResume:
    def test_resume_mid_review(self, temp_db, reviewing):
        reviewing.confirm_and_next()
        reviewing.skip()

        resumed = ReviewOrchestrator.resume(temp_db, USER_ID, reviewing.batch_id)
        assert resumed.step is ImportStep.REVIEW
        assert resumed.cursor == 2
        assert resumed.total == 5
        assert resumed.bank_account_id == reviewing.bank_account_id

        resumed.go_to(0)
        with pytest.raises(InvalidStateError):
            resumed.confirm_and_next()
        assert len(temp_db.list_transactions(USER_ID)) == 1

    def test_resume_bank_confirm_recomputes_preselection(self, temp_db, sample_bank):
        oracle = FakeOracle(_extraction())
        orchestrator = ReviewOrchestrator(temp_db, USER_ID, extractor=StatementExtractor(oracle))
        orchestrator.load_file(b"%PDF", "application/pdf")

        resumed = ReviewOrchestrator.resume(temp_db, USER_ID, orchestrator.batch_id)
        assert resumed.step is ImportStep.BANK_CONFIRM
        assert resumed.source_tag == SourceTag.PDF_UPLOAD
        assert resumed.preselected_account_id == sample_bank.id

    def test_resume_finished_review_is_done(self, temp_db, reviewing):
        reviewing.go_to(4)
        reviewing.confirm_and_next()
        resumed = ReviewOrchestrator.resume(temp_db, USER_ID, reviewing.batch_id)
        assert resumed.step is ImportStep.DONE

    def test_resume_unknown_batch(self, temp_db):
        with pytest.raises(NotFoundError):
            ReviewOrchestrator.resume(temp_db, USER_ID, 404)

    def test_batches_are_private(self, temp_db, reviewing):
        with pytest.raises(NotFoundError):
            ReviewOrchestrator.resume(temp_db, "bob", reviewing.batch_id)
