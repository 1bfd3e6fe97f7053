"""Categorization: turning statement text into ledger suggestions.

Three layers cooperate, cheapest first:

1. an exact-description lookup in the learned TransactionMapping cache,
2. the fuzzy Similarity Matcher over recent history,
3. the remote oracle, via CategorizationAdapter.

SuggestionCascade runs them in that order and downgrades any OracleError to
an Uncategorized suggestion with zero confidence. Neither the adapter nor the
extractor ever creates ledgers; unresolved names are handed to the review
flow as plain strings.
"""

import logging
from dataclasses import dataclass, replace
from decimal import Decimal
from numbers import Real
from typing import Any, Optional, Sequence

from pocketledger.database.base import Database
from pocketledger.domain.entities import (
    DetectedBank,
    Direction,
    ExtractedTransaction,
    Ledger,
    Suggestion,
    TransactionMapping,
)
from pocketledger.domain.errors import OracleError, OracleErrorKind
from pocketledger.domain.ledger import UNCATEGORIZED
from pocketledger.domain.oracle import CancelToken, InlineFile, Oracle, parse_json_response
from pocketledger.domain.similarity import HISTORY_WINDOW, apply_match, match
from pocketledger.domain.statement_parser import DEFAULT_DESCRIPTION
from pocketledger.utils.amount_parser import parse_amount, to_cents
from pocketledger.utils.date_parser import normalize_statement_date

logger = logging.getLogger(__name__)

MAX_PROMPT_MAPPINGS = 10

SUGGESTION_PROMPT = """\
You are an accounting assistant. Based on the transaction description, suggest \
the most appropriate ledger account and a clear narration.

Transaction Description: "{description}"
Amount: {amount} ({direction})
{ledgers}{mappings}
Return ONLY a valid JSON object with this structure:
{{
  "ledgerName": "exact ledger name from available ledgers OR suggest a new one",
  "narration": "clear, concise narration for this transaction",
  "confidence": 0.0 to 1.0
}}

Rules:
- Use existing ledger if suitable, otherwise suggest a descriptive new ledger name
- Narration should be clear and professional
- Confidence based on how well the ledger matches
- Return valid JSON only
"""

EXTRACTION_PROMPT = """\
You are a bank statement analyzer. Extract the bank information and every \
transaction from this bank statement.

Return ONLY valid JSON in this exact structure (no markdown, no code blocks):
{
  "bankInfo": {
    "bankName": "string",
    "accountNumber": "string",
    "ifscCode": "string or null",
    "statementPeriod": "string or null"
  },
  "transactions": [
    {
      "date": "YYYY-MM-DD",
      "particulars": "original bank description",
      "narration": "enhanced description",
      "amount": 100.50,
      "transactionType": "DEBIT",
      "balance": 1000.00,
      "reference": "REF123",
      "ledgerSuggestion": "Office Expenses",
      "confidence": 0.85
    }
  ]
}

Rules:
- Extract ALL transactions
- Use consistent date format (YYYY-MM-DD)
- Positive amounts only
- Suggest appropriate ledger categories
- Return pure JSON only, no markdown formatting
"""


def _malformed(message: str) -> OracleError:
    return OracleError(OracleErrorKind.MALFORMED_RESPONSE, message)


def _clamp_confidence(value: Any) -> float:
    """Clamp a numeric confidence into [0, 1]; raise on non-numbers."""
    if isinstance(value, bool) or not isinstance(value, Real):
        raise _malformed(f"Confidence must be a number, got {value!r}")
    return min(max(float(value), 0.0), 1.0)


def resolve_ledger(name: str, known_ledgers: Sequence[Ledger]) -> Optional[Ledger]:
    """Find a known ledger by name, ignoring case and surrounding whitespace."""
    wanted = name.strip().lower()
    for ledger in known_ledgers:
        if ledger.name.lower() == wanted:
            return ledger
    return None


def build_prompt(
    description: str,
    amount: Decimal,
    direction: Direction,
    known_ledgers: Sequence[Ledger],
    recent_mappings: Sequence[TransactionMapping],
) -> str:
    """Render the categorization prompt.

    Only the MAX_PROMPT_MAPPINGS most used mappings are included.
    """
    ledgers = ""
    if known_ledgers:
        lines = "\n".join(f"- {ledger.name} ({ledger.ledger_type.value})" for ledger in known_ledgers)
        ledgers = f"\nAvailable Ledgers:\n{lines}\n"

    mappings = ""
    top = sorted(recent_mappings, key=lambda m: m.usage_count, reverse=True)[:MAX_PROMPT_MAPPINGS]
    if top:
        lines = "\n".join(
            f'- "{m.particulars_pattern}" → {m.ledger_name or "Unknown"}' for m in top
        )
        mappings = f"\nPrevious Mappings:\n{lines}\n"

    return SUGGESTION_PROMPT.format(
        description=description,
        amount=f"{amount:.2f}",
        direction=direction.value,
        ledgers=ledgers,
        mappings=mappings,
    )


class CategorizationAdapter:
    """Asks the oracle for a ledger and narration and validates the answer."""

    def __init__(self, db: Database, oracle: Oracle, user_id: str):
        """Initialize the adapter.

        Args:
            db: Database instance, used to record learned mappings
            oracle: Oracle answering the prompt
            user_id: Authenticated user owning ledgers and mappings
        """
        self.db = db
        self.oracle = oracle
        self.user_id = user_id

    def suggest(
        self,
        description: str,
        amount: Decimal,
        direction: Direction,
        known_ledgers: Sequence[Ledger],
        recent_mappings: Sequence[TransactionMapping],
    ) -> Suggestion:
        """Get a categorization suggestion for one transaction.

        On a ledger name that resolves against known_ledgers, the mapping for
        this exact description is upserted.

        Raises:
            OracleError: NOT_CONFIGURED, UNAVAILABLE or MALFORMED_RESPONSE
        """
        prompt = build_prompt(description, amount, direction, known_ledgers, recent_mappings)
        raw = self.oracle.generate(prompt)
        data = parse_json_response(raw)

        if not isinstance(data, dict):
            raise _malformed("Oracle response is not a JSON object")
        ledger_name = data.get("ledgerName")
        narration = data.get("narration")
        if not isinstance(ledger_name, str) or not ledger_name.strip():
            raise _malformed("Oracle response is missing 'ledgerName'")
        if not isinstance(narration, str):
            raise _malformed("Oracle response is missing 'narration'")
        confidence = _clamp_confidence(data.get("confidence"))

        ledger = resolve_ledger(ledger_name, known_ledgers)
        if ledger is not None:
            self.db.upsert_transaction_mapping(
                user_id=self.user_id,
                particulars_pattern=description,
                ledger_id=ledger.id,
                narration_template=narration,
                confidence_score=confidence,
            )
            ledger_name = ledger.name

        return Suggestion(
            ledger_name=ledger_name.strip(),
            narration=narration,
            confidence=confidence,
            ledger_id=ledger.id if ledger is not None else None,
            source="oracle",
        )

    @staticmethod
    def fallback(reason: str, description: str = "") -> Suggestion:
        """Uncategorized suggestion used when the oracle cannot answer."""
        logger.info(f"Falling back to {UNCATEGORIZED}: {reason}")
        return Suggestion(
            ledger_name=UNCATEGORIZED,
            narration=description,
            confidence=0.0,
            source="fallback",
        )


@dataclass(frozen=True)
class StatementExtraction:
    """Bank identity and transactions read from a statement file by the oracle."""

    bank: DetectedBank
    transactions: list[ExtractedTransaction]


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _extracted_item(item: Any) -> Optional[ExtractedTransaction]:
    """Convert one oracle transaction object, or None if it does not normalise."""
    if not isinstance(item, dict):
        return None
    canonical = normalize_statement_date(str(item.get("date") or ""))
    if canonical is None:
        return None
    try:
        signed = parse_amount(str(item.get("amount")))
    except ValueError:
        return None
    if signed == 0:
        return None

    kind = str(item.get("transactionType") or "").upper()
    if kind in (Direction.DEBIT.value, Direction.CREDIT.value):
        direction = Direction(kind)
    else:
        direction = Direction.DEBIT if signed < 0 else Direction.CREDIT

    balance = None
    if item.get("balance") is not None:
        try:
            balance = to_cents(parse_amount(str(item["balance"])))
        except ValueError:
            balance = None

    try:
        confidence = _clamp_confidence(item.get("confidence", 0.0))
    except OracleError:
        confidence = 0.0

    description = _optional_str(item.get("particulars")) or _optional_str(item.get("narration"))
    return ExtractedTransaction(
        date=canonical,
        description=description or DEFAULT_DESCRIPTION,
        amount=to_cents(abs(signed)),
        direction=direction,
        narration=_optional_str(item.get("narration")),
        balance_after=balance,
        reference_number=_optional_str(item.get("reference")),
        ledger_suggestion=_optional_str(item.get("ledgerSuggestion")),
        confidence=confidence,
    )


class StatementExtractor:
    """Reads a whole statement file through the oracle.

    Returned ledger suggestions are names only; the review flow decides
    whether a missing ledger gets created.
    """

    def __init__(self, oracle: Oracle):
        self.oracle = oracle

    def extract(self, file_bytes: bytes, mime_type: str) -> StatementExtraction:
        """Extract bank info and transactions from a statement file.

        Transactions whose date or amount does not normalise are skipped.

        Raises:
            OracleError: If the oracle fails or the answer lacks bankInfo/transactions
        """
        raw = self.oracle.generate(EXTRACTION_PROMPT, InlineFile(data=file_bytes, mime_type=mime_type))
        data = parse_json_response(raw)
        if not isinstance(data, dict):
            raise _malformed("Extraction response is not a JSON object")

        bank_info = data.get("bankInfo")
        transactions = data.get("transactions")
        if not isinstance(bank_info, dict) or not isinstance(transactions, list):
            raise _malformed("Extraction response is missing 'bankInfo' or 'transactions'")

        bank = DetectedBank(
            bank_name=_optional_str(bank_info.get("bankName")) or "",
            account_number=_optional_str(bank_info.get("accountNumber")) or "",
            ifsc_code=_optional_str(bank_info.get("ifscCode")),
            statement_period=_optional_str(bank_info.get("statementPeriod")),
        )
        items = [t for t in (_extracted_item(i) for i in transactions) if t is not None]
        skipped = len(transactions) - len(items)
        if skipped:
            logger.info(f"Skipped {skipped} extracted transaction(s) that did not normalise")
        logger.info(f"Extracted {len(items)} transaction(s) for bank '{bank.bank_name}'")
        return StatementExtraction(bank=bank, transactions=items)


class SuggestionCascade:
    """Exact mapping, then fuzzy history, then oracle, then Uncategorized."""

    def __init__(self, db: Database, adapter: CategorizationAdapter, user_id: str):
        self.db = db
        self.adapter = adapter
        self.user_id = user_id

    def _from_mapping(self, description: str) -> Optional[Suggestion]:
        mapping = self.db.get_transaction_mapping(self.user_id, description)
        if mapping is None:
            return None
        return Suggestion(
            ledger_name=mapping.ledger_name or UNCATEGORIZED,
            narration=mapping.narration_template or description,
            confidence=mapping.confidence_score,
            ledger_id=mapping.ledger_id,
            source="mapping",
        )

    def _from_history(self, description: str) -> Optional[Suggestion]:
        history = [
            past
            for past in self.db.get_recent_transactions(self.user_id, limit=HISTORY_WINDOW)
            if past.ledger_id is not None
        ]
        past = match(description, history)
        if past is None:
            return None
        base = Suggestion(ledger_name=UNCATEGORIZED, narration=description, confidence=0.0)
        return apply_match(base, past)

    def suggest(
        self,
        description: str,
        amount: Decimal,
        direction: Direction,
        preset: Optional[Suggestion] = None,
        token: Optional[CancelToken] = None,
    ) -> Suggestion:
        """Suggest a ledger for one transaction.

        Args:
            description: Raw statement description
            amount: Unsigned amount
            direction: DEBIT or CREDIT
            preset: Suggestion already carried by the item (e.g. from
                extraction); used in place of a fresh oracle call
            token: Cancellation token; once cancelled the oracle is not called

        Returns:
            A suggestion; never raises OracleError
        """
        found = self._from_mapping(description)
        if found is not None:
            return found

        found = self._from_history(description)
        if found is not None:
            return found

        if preset is not None:
            ledger = self.db.get_ledger_by_name(self.user_id, preset.ledger_name)
            if ledger is None:
                return replace(preset, ledger_id=None)
            return replace(preset, ledger_id=ledger.id, ledger_name=ledger.name)

        if token is not None and token.cancelled:
            return self.adapter.fallback("request cancelled", description)

        try:
            return self.adapter.suggest(
                description,
                amount,
                direction,
                self.db.list_ledgers(self.user_id),
                self.db.list_top_mappings(self.user_id, limit=MAX_PROMPT_MAPPINGS),
            )
        except OracleError as e:
            logger.warning(f"Oracle {e.kind.value} for '{description}': {e}")
            return self.adapter.fallback(str(e), description)
