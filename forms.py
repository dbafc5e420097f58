from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Optional

AMOUNT_MAX = 2_147_483_647


def clean_text(value: Optional[str]) -> Optional[str]:
    """
    Trim surrounding whitespace; blank input becomes None.
    """
    if value is None:
        return None
    value = value.strip()
    return value or None


def parse_amount(value: str) -> int:
    clean = value.strip().replace("€", "").replace("$", "").replace(" ", "")
    if not clean:
        raise ValueError("Amount is required")
    try:
        amount = Decimal(clean)
    except InvalidOperation as exc:
        raise ValueError("Invalid amount") from exc
    if not amount.is_finite():
        raise ValueError("Invalid amount")
    if amount != amount.to_integral_value():
        raise ValueError("Amount must be a whole number")
    if amount < 0:
        raise ValueError("Amount must be positive")
    if amount > AMOUNT_MAX:
        raise ValueError(f"Amount must be at most {AMOUNT_MAX}")
    return int(amount)


def parse_date_time(value: str) -> datetime:
    value = value.strip()
    if "T" not in value and " " not in value:
        raise ValueError("Date-time must include a time, e.g. 2024-01-15T09:30")
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError as exc:
        raise ValueError(f"Invalid ISO-8601 date-time: {value}") from exc
    if parsed.tzinfo is not None:
        raise ValueError("Date-time must be a local time without offset")
    return parsed


def normalize_date_time(value: str) -> str:
    return parse_date_time(value).isoformat(timespec="seconds")


def split_date_time(value: str) -> tuple[str, str]:
    parsed = parse_date_time(value)
    return parsed.date().isoformat(), parsed.time().isoformat(timespec="seconds")
