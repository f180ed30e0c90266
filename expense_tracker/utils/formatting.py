from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from aiogram import html

from expense_tracker.errors import ValidationError

DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y", "%d.%m.%Y")


def fmt_money(amount: Decimal | float | int | None, symbol: str = "€") -> str:
    """Formats an amount for chat messages.

    Thousands are separated with spaces and two decimals are always shown,
    so totals line up in reports.

    Args:
        amount: Value to format; None renders as a dash.
        symbol: Currency symbol prefixed to the number.

    Returns:
        str: e.g. '€1 234.50'.
    """
    if amount is None:
        return "—"
    txt = f"{Decimal(str(amount)):,.2f}".replace(",", " ")
    return f"{symbol}{txt}"


def parse_amount(s: str) -> Decimal | None:
    """Parses an amount typed by the user.

    Accepts both '.' and ',' as decimal separator and ignores spaces, so
    '12.50', '12,50' and '1 200' are all valid.

    Args:
        s (str): Raw user input.

    Returns:
        Decimal | None: The amount if it is a finite number > 0, otherwise None.
    """
    if not s:
        return None
    t = s.strip().replace(" ", "").replace(",", ".")
    try:
        v = Decimal(t)
        if v.is_finite() and v > 0:
            return v
    except (InvalidOperation, ValueError):
        pass
    return None


def parse_year(s: str, min_year: int, max_year: int) -> int:
    """Validates a fiscal year; raises ValidationError outside [min_year, max_year]."""
    try:
        year = int(s.strip())
    except (ValueError, AttributeError):
        raise ValidationError(f"Invalid year. Enter a year between {min_year} and {max_year}:")
    if year < min_year or year > max_year:
        raise ValidationError(f"Invalid year. Enter a year between {min_year} and {max_year}:")
    return year


def parse_date(s: str, min_year: int, max_year: int) -> date:
    """Parses ISO (2025-03-14) or day-first (14/03/2025, 14.03.2025) dates."""
    raw = (s or "").strip()
    for fmt in DATE_FORMATS:
        try:
            parsed = datetime.strptime(raw, fmt).date()
        except ValueError:
            continue
        if parsed.year < min_year or parsed.year > max_year:
            raise ValidationError(f"Date out of range. Pick a date between {min_year} and {max_year}.")
        return parsed
    raise ValidationError("Invalid date. Use YYYY-MM-DD or DD/MM/YYYY.")


def clean_name(s: str, max_length: int, what: str = "Name") -> str:
    """Trims a category/subcategory/tag name and enforces the configured length."""
    name = " ".join((s or "").split())
    if not name:
        raise ValidationError(f"{what} cannot be empty. Try again:")
    if len(name) > max_length:
        raise ValidationError(f"{what} is too long (max {max_length} characters). Try again:")
    return name


def q(text: object) -> str:
    """HTML-escapes user-provided text for parse_mode=HTML messages."""
    return html.quote(str(text))


def b(text: object) -> str:
    return html.bold(q(text))
