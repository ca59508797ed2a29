"""
Clock and timestamp helpers.

Every stored datetime is naive UTC. Work sessions, payroll months and report
ranges all compare against these values, so anything entering the ledger
goes through parse_iso_datetime and anything leaving it through to_utc_z.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def today() -> date:
    """Current UTC calendar date (order dates, expiry checks)."""
    return utcnow().date()


def start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    ISO-8601 text to naive UTC. Blank input gives None; a value without an
    offset is taken to be UTC already; "Z" and "+HH:MM" offsets are applied.
    Raises ValueError on malformed text.
    """
    text = (value or "").strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = f"{text[:-1]}+00:00"

    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Whole-second ISO-8601 with a trailing "Z"; naive input counts as UTC."""
    if dt is None:
        return None
    aware = dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)
    stamp = aware.astimezone(timezone.utc).replace(microsecond=0, tzinfo=None)
    return f"{stamp.isoformat()}Z"


def month_bounds(month: int, year: int) -> tuple[datetime, datetime]:
    """Half-open [start, end) range covering a calendar month."""
    start = datetime(year, month, 1)
    end = datetime(year + 1, 1, 1) if month == 12 else datetime(year, month + 1, 1)
    return start, end
