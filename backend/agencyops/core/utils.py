"""
Shared helpers for time, money and public identifiers
"""
from datetime import datetime, timezone, date, time
from decimal import Decimal, ROUND_HALF_UP
import re
import secrets
import string
from typing import Optional, Union

TWO_PLACES = Decimal("0.01")
SLUG_ALPHABET = string.ascii_lowercase + string.digits


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how DateTime columns are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def end_of_day(value: Union[date, datetime]) -> datetime:
    if isinstance(value, datetime):
        value = value.date()
    return datetime.combine(value, time(23, 59, 59, 999999))


def to_decimal(value) -> Decimal:
    if value is None or value == "":
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def money(value) -> Decimal:
    """Round to cents, half up."""
    return to_decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def format_currency(value) -> str:
    return f"${money(value):,.2f}"


def random_token(length: int = 12) -> str:
    return "".join(secrets.choice(SLUG_ALPHABET) for _ in range(length))


def slugify(value: str, max_length: int = 50) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", (value or "").lower()).strip("-")
    return slug[:max_length].strip("-")


def parse_int(value: Optional[str]) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def generate_unique_slug(db, model, length: int = 12, attempts: int = 10, fallback_prefix: Optional[str] = None) -> str:
    """
    Random public slug that no row of ``model`` uses yet.

    With ``fallback_prefix`` a timestamped slug is returned once the random
    attempts are exhausted; otherwise ValueError is raised.
    """
    for _ in range(attempts):
        slug = random_token(length)
        if db.query(model.id).filter(model.slug == slug).first() is None:
            return slug
    if fallback_prefix:
        return f"{fallback_prefix}-{int(utcnow().timestamp() * 1000)}-{random_token(6)}"
    raise ValueError("Unable to generate unique slug")
