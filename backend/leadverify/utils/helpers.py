# backend/leadverify/utils/helpers.py
import re
from datetime import datetime, timezone
from typing import Optional

EMAIL_REGEX = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def is_valid_syntax(email: str) -> bool:
    if not email or "@" not in email:
        return False
    return bool(EMAIL_REGEX.match(email))


def normalize_domain(value: Optional[str]) -> Optional[str]:
    """'https://www.Acme.com/about' -> 'acme.com'"""
    if not value or not str(value).strip():
        return None
    d = str(value).strip().lower()
    d = re.sub(r"^[a-z]+://", "", d)
    d = d.split("/")[0].split("?")[0]
    if d.startswith("www."):
        d = d[4:]
    return d or None


_DATE_FORMATS = ("%Y-%m-%d %H:%M:%S", "%Y-%m-%d", "%m/%d/%Y %H:%M", "%m/%d/%Y", "%d.%m.%Y")


def parse_datetime(value) -> Optional[datetime]:
    """
    Best-effort timestamp from an upload cell; None when it cannot be read.

    ISO 8601 (with or without a trailing Z) is tried first, then a few common
    spreadsheet formats. Naive results are taken as UTC.
    """
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value or "").strip()
        if not text:
            return None
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            parsed = None
            for fmt in _DATE_FORMATS:
                try:
                    parsed = datetime.strptime(text, fmt)
                    break
                except ValueError:
                    continue
        if parsed is None:
            return None
    return as_utc(parsed)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands timestamps back without tzinfo
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
