import re
from dataclasses import dataclass
from datetime import date
from typing import Optional

_MONTH_RE = re.compile(r"^(\d{4})-(\d{2})")


@dataclass(frozen=True)
class Month:
    slug: str
    start: date
    end: date


def _month_end(year: int, month: int) -> date:
    if month == 12:
        return date(year + 1, 1, 1) - date.resolution
    return date(year, month + 1, 1) - date.resolution


def resolve_month(value: Optional[str], *, today: Optional[date] = None) -> Month:
    if not value:
        today = today or date.today()
        year, month = today.year, today.month
    else:
        match = _MONTH_RE.fullmatch(value.strip())
        if not match:
            raise ValueError(f"Month must be YYYY-MM, got '{value}'")
        year, month = int(match.group(1)), int(match.group(2))
        if not 1 <= month <= 12:
            raise ValueError(f"Month must be YYYY-MM, got '{value}'")
    return Month(f"{year:04d}-{month:02d}", date(year, month, 1), _month_end(year, month))


def month_of(value: Optional[str]) -> Optional[str]:
    """Return ``YYYY-MM`` for an ISO date or month string, else None."""
    if not value:
        return None
    match = _MONTH_RE.match(value.strip())
    if not match or not 1 <= int(match.group(2)) <= 12:
        return None
    return f"{match.group(1)}-{match.group(2)}"
