"""Utility functions for statistics, money, dates, and pagination."""
import datetime as dt
import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable

CENT = Decimal("0.01")
# NUMERIC(12, 2): ten digits before the point
MAX_AMOUNT = Decimal("9999999999.99")
DEFAULT_LIMIT = 50
DEFAULT_OFFSET = 0
ISO_DATE_RE = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")


def _round_money(dec: Decimal) -> float:
    """Round a Decimal to 2 decimal places with HALF_UP (normal money rounding)."""
    return float(dec.quantize(CENT, rounding=ROUND_HALF_UP))


def to_money(value: Any) -> Decimal:
    """Parse a positive amount into a Decimal rounded to cents.

    Raises ValueError for anything that is not a positive finite number
    fitting the NUMERIC(12, 2) amount columns.
    """
    if value is None or isinstance(value, bool):
        raise ValueError("Amount must be a positive number.")
    try:
        dec = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValueError("Amount must be a positive number.")

    if not dec.is_finite():
        raise ValueError("Amount must be a positive number.")
    if dec > MAX_AMOUNT:
        raise ValueError(f"Amount must not exceed {MAX_AMOUNT}.")

    try:
        dec = dec.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValueError("Amount must be a positive number.")
    if dec <= 0:
        raise ValueError("Amount must be a positive number.")
    return dec


def compute_stats(transactions: Iterable[Any]) -> dict[str, Any]:
    """
    Aggregate a user's transactions.

    Returns totals per type (missing types count as 0), the balance, and the
    expense breakdown by category sorted by total descending. Categories with
    equal totals keep the order in which they were first seen.
    """
    totals = {"income": Decimal("0"), "expense": Decimal("0")}
    by_category: dict[str, Decimal] = {}

    for t in transactions:
        amount = Decimal(str(t.amount))
        if t.type not in totals:
            continue
        totals[t.type] += amount
        if t.type == "expense":
            by_category[t.category] = by_category.get(t.category, Decimal("0")) + amount

    # sorted() is stable, so ties stay in first-seen order
    breakdown = sorted(by_category.items(), key=lambda item: item[1], reverse=True)

    return {
        "totals": {
            "income": _round_money(totals["income"]),
            "expense": _round_money(totals["expense"]),
        },
        "balance": _round_money(totals["income"] - totals["expense"]),
        "category_breakdown": [
            {"category": category, "total": _round_money(total)}
            for category, total in breakdown
        ],
    }


def normalize_iso_date(value: Any) -> dt.date:
    """Normalize a value to a date or raise a ValueError."""
    if isinstance(value, dt.datetime):
        return value.date()

    if isinstance(value, dt.date):
        return value

    if isinstance(value, str):
        text = value.strip()
        # fromisoformat also takes 20240105 and week dates; only YYYY-MM-DD is allowed
        if not ISO_DATE_RE.fullmatch(text):
            raise ValueError("Invalid date format. Expected YYYY-MM-DD.")
        try:
            return dt.date.fromisoformat(text)
        except ValueError:
            raise ValueError("Invalid date format. Expected YYYY-MM-DD.")

    raise ValueError("Invalid date format. Expected YYYY-MM-DD.")


def _parse_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def clamp_pagination(limit: Any = None, offset: Any = None) -> tuple[int, int]:
    """Parse limit/offset leniently.

    Non-numeric or missing values fall back to the defaults, a limit that is
    not positive becomes the default, and a negative offset becomes 0.
    """
    parsed_limit = _parse_int(limit)
    parsed_offset = _parse_int(offset)

    if parsed_limit is None or parsed_limit <= 0:
        parsed_limit = DEFAULT_LIMIT
    if parsed_offset is None or parsed_offset < 0:
        parsed_offset = DEFAULT_OFFSET

    return parsed_limit, parsed_offset
