"""Statement parsing: raw statement content to RawTransaction records.

Parsing is pure and never raises. Lines or rows that do not look like a
transaction are skipped silently, since statements legitimately carry
headers, totals and page furniture.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, Optional, Sequence, Union

from pocketledger.domain.entities import Direction, RawTransaction
from pocketledger.utils.amount_parser import AMOUNT_PATTERN, parse_amount, to_cents
from pocketledger.utils.date_parser import STATEMENT_DATE_PATTERN, normalize_statement_date

DEFAULT_DESCRIPTION = "Transaction"


class SourceKind(str, Enum):
    TEXT = "text"
    TABULAR = "tabular"
    PAGINATED_TEXT = "paginated_text"


@dataclass(frozen=True)
class StatementSource:
    """Statement content in one of the three shapes the parser understands.

    ``content`` is a string for TEXT, a sequence of rows (each a sequence of
    cells) for TABULAR, and a sequence of page strings for PAGINATED_TEXT.
    """

    kind: SourceKind
    content: Union[str, Sequence[Sequence[Any]], Sequence[str]]


def _cell_text(cell: Any) -> str:
    if cell is None:
        return ""
    if isinstance(cell, datetime):
        return cell.date().isoformat()
    if isinstance(cell, date):
        return cell.isoformat()
    return str(cell).strip()


def _direction_for(signed_amount: Decimal) -> Direction:
    return Direction.DEBIT if signed_amount < 0 else Direction.CREDIT


def parse_row(row: Sequence[Any]) -> Optional[RawTransaction]:
    """Parse one spreadsheet row: date, description, signed amount.

    Returns:
        RawTransaction, or None if the row is not a transaction
    """
    if row is None or isinstance(row, (str, bytes)):
        return None
    try:
        if len(row) < 3:
            return None
    except TypeError:
        return None

    date_text = _cell_text(row[0])
    description = _cell_text(row[1])
    amount_text = _cell_text(row[2])
    if not date_text or not description or not amount_text:
        return None

    canonical = normalize_statement_date(date_text)
    if canonical is None:
        return None

    try:
        signed = parse_amount(amount_text)
    except ValueError:
        return None

    return RawTransaction(
        date=canonical,
        description=description,
        amount=to_cents(abs(signed)),
        direction=_direction_for(signed),
    )


def parse_line(line: str) -> Optional[RawTransaction]:
    """Parse one free-text statement line.

    A line qualifies only if it carries both a date token and a currency
    amount token. Everything else on the line becomes the description.

    Returns:
        RawTransaction, or None if the line is not a transaction
    """
    line = line.strip()
    if not line:
        return None

    canonical = None
    for match in STATEMENT_DATE_PATTERN.finditer(line):
        canonical = normalize_statement_date(match.group(0))
        if canonical is not None:
            break
    if canonical is None:
        return None

    # Amounts are searched only after dates are gone, so date digits never
    # masquerade as money.
    without_dates = STATEMENT_DATE_PATTERN.sub(" ", line)
    amount_match = AMOUNT_PATTERN.search(without_dates)
    if amount_match is None:
        return None

    try:
        signed = parse_amount(amount_match.group("number"))
    except ValueError:
        return None
    if amount_match.group("sign") or amount_match.group("inner_sign"):
        signed = -signed
    if signed == 0:
        return None

    description = " ".join(AMOUNT_PATTERN.sub(" ", without_dates).split())
    return RawTransaction(
        date=canonical,
        description=description or DEFAULT_DESCRIPTION,
        amount=to_cents(abs(signed)),
        direction=_direction_for(signed),
    )


def parse_text(text: str) -> list[RawTransaction]:
    """Parse free text line by line, preserving source order."""
    transactions = []
    for line in text.splitlines():
        txn = parse_line(line)
        if txn is not None:
            transactions.append(txn)
    return transactions


def parse_rows(rows: Iterable[Sequence[Any]]) -> list[RawTransaction]:
    """Parse tabular rows, preserving source order."""
    transactions = []
    for row in rows:
        txn = parse_row(row)
        if txn is not None:
            transactions.append(txn)
    return transactions


def parse_statement(source: StatementSource) -> list[RawTransaction]:
    """Parse statement content of any supported shape.

    Args:
        source: Statement content and its shape

    Returns:
        Transactions in source order; unparseable lines are skipped
    """
    if source.kind is SourceKind.TABULAR:
        return parse_rows(source.content or [])
    if source.kind is SourceKind.PAGINATED_TEXT:
        return parse_text("\n".join(source.content or []))
    return parse_text(source.content or "")
