"""Amount parsing utilities."""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
import re

CENTS = Decimal("0.01")

CURRENCY_PATTERN = re.compile(r"(?:Rs\.?|INR|[$€£¥₹])", re.IGNORECASE)

# A currency amount inside free text. Two decimal places are required so that
# reference numbers and years are never mistaken for money.
AMOUNT_PATTERN = re.compile(
    r"(?<![\w.,])"
    r"(?P<sign>-\s*)?"
    r"(?:(?:Rs\.?|INR|[$€£¥₹])\s*)?"
    r"(?P<inner_sign>-)?"
    r"(?P<number>"
    r"\d{1,3}(?:,\d{3})+\.\d{2}"
    r"|\d{1,3}(?:,\d{2})+,\d{3}\.\d{2}"  # lakh grouping, 1,20,000.00
    r"|\d{1,3}(?:\.\d{3})+,\d{2}"
    r"|\d+[.,]\d{2})"
    r"(?![.,]?\d)",
    re.IGNORECASE,
)


def _normalize_separators(number: str) -> str:
    """Turn a loosely formatted number into a plain Decimal literal.

    Both ``,`` and ``.`` are accepted as decimal marker: when both appear the
    right-most one wins; a lone comma followed by exactly two digits is read
    as a decimal comma, otherwise commas are thousands separators.
    """
    if "," in number and "." in number:
        if number.rfind(",") > number.rfind("."):
            return number.replace(".", "").replace(",", ".")
        return number.replace(",", "")
    if "," in number:
        head, _, tail = number.rpartition(",")
        if number.count(",") == 1 and len(tail) == 2:
            return f"{head}.{tail}"
        return number.replace(",", "")
    return number


def parse_amount(amount_str: str) -> Decimal:
    """Parse an amount string into a signed Decimal.

    Handles various formats:
    - "123.45"
    - "$123.45", "Rs. 123.45", "₹123.45", "INR 123.45"
    - "-123.45", "-$123.45", "Rs. -123.45"
    - "1,234.56" and "1.234,56"
    - "(123.45)" (negative in parentheses)

    Args:
        amount_str: Amount string

    Returns:
        Decimal amount

    Raises:
        ValueError: If amount string cannot be parsed
    """
    if amount_str is None or not str(amount_str).strip():
        raise ValueError("Empty amount string")

    amount_str = str(amount_str).strip()

    is_negative = False
    if amount_str.startswith("(") and amount_str.endswith(")"):
        is_negative = True
        amount_str = amount_str[1:-1]

    amount_str = CURRENCY_PATTERN.sub("", amount_str)
    amount_str = amount_str.replace(" ", "").strip()

    if amount_str.startswith("-"):
        is_negative = not is_negative
        amount_str = amount_str[1:]
    elif amount_str.startswith("+"):
        amount_str = amount_str[1:]

    amount_str = _normalize_separators(amount_str)

    try:
        amount = Decimal(amount_str)
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Could not parse amount '{amount_str}': {e}")
    if not amount.is_finite():
        raise ValueError(f"Could not parse amount '{amount_str}': not a finite number")
    return -amount if is_negative else amount


def to_cents(amount: Decimal) -> Decimal:
    """Round an amount to two decimal places."""
    return amount.quantize(CENTS)


def to_minor_units(amount: Decimal) -> int:
    """Convert an amount to integer cents for exact storage."""
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(cents: int) -> Decimal:
    """Convert stored integer cents back to a two-place Decimal."""
    return (Decimal(cents) / 100).quantize(CENTS)
