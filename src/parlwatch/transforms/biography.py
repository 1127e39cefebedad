"""Date handling for scraped deputy biographies."""

import re
from datetime import date

from parlwatch.utils import strip_accents

PORTUGUESE_MONTHS = {
    "janeiro": 1, "fevereiro": 2, "marco": 3, "abril": 4,
    "maio": 5, "junho": 6, "julho": 7, "agosto": 8,
    "setembro": 9, "outubro": 10, "novembro": 11, "dezembro": 12,
}

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_LONG_DATE = re.compile(r"(\d{1,2})\s+de\s+(\w+)\s+de\s+(\d{4})", re.IGNORECASE)


def parse_portuguese_date(text: str | None) -> str | None:
    """``"23 de Agosto de 1975"`` → ``"1975-08-23"``; None when unparseable."""
    if not text:
        return None
    match = _LONG_DATE.search(strip_accents(text))
    if not match:
        return None
    month = PORTUGUESE_MONTHS.get(match.group(2).lower())
    if month is None:
        return None
    try:
        return date(int(match.group(3)), month, int(match.group(1))).isoformat()
    except ValueError:
        return None


def parse_birth_date(text: str | None) -> str | None:
    """Accept an ISO date as-is or fall back to the Portuguese long form."""
    if not text:
        return None
    text = text.strip()
    if _ISO_DATE.match(text):
        try:
            return date.fromisoformat(text).isoformat()
        except ValueError:
            return None
    return parse_portuguese_date(text)
