"""
Deputy identity resolution: pure helpers over ``DeputyRecord`` histories.

The base-info feed lists one record per mandate window, so a deputy who left
and returned appears more than once under the same DepId. These helpers pick
the current party, the active flag and the mandate window out of the raw
histories, and collapse duplicates down to the newest mandate.
"""

from datetime import date, datetime

from parlwatch.config import PHOTO_URL
from parlwatch.feeds import DeputyRecord, PartyEntry, StatusEntry
from parlwatch.ids import DepId, PartyAcronym, RowId

ROMAN_NUMERALS = {
    "I": 1, "II": 2, "III": 3, "IV": 4, "V": 5,
    "VI": 6, "VII": 7, "VIII": 8, "IX": 9, "X": 10,
    "XI": 11, "XII": 12, "XIII": 13, "XIV": 14, "XV": 15,
    "XVI": 16, "XVII": 17, "XVIII": 18, "XIX": 19, "XX": 20,
}


def _parse_date(val: str | None) -> date | None:
    """Parse the feed's ``YYYY-MM-DD`` (optionally with a time part)."""
    if not val:
        return None
    try:
        return datetime.fromisoformat(str(val).strip()[:10]).date()
    except ValueError:
        return None


def get_current_party(
    party_history: list[PartyEntry], today: date | None = None
) -> PartyAcronym | None:
    """Acronym of the membership with no end date (or an end in the future).

    Falls back to the first entry in source order, then to None for an empty
    history.
    """
    if not party_history:
        return None
    today = today or date.today()
    for entry in party_history:
        end = _parse_date(entry.end)
        if end is None or end > today:
            return entry.acronym
    return party_history[0].acronym


def is_active_deputy(status_history: list[StatusEntry]) -> bool:
    """True when any status description mentions "efetivo"."""
    return any("efetivo" in (s.description or "").lower() for s in status_history)


def get_mandate_dates(status_history: list[StatusEntry]) -> tuple[str | None, str | None]:
    """Return ``(start, end)`` of the mandate window.

    ISO date strings sort lexicographically, so they are compared as text.
    Start is the earliest start. End is the latest defined end, unless the
    most recent entry (by start) is still open, in which case the mandate is
    running and end is None.
    """
    starts = [s.start for s in status_history if s.start]
    ends = [s.end for s in status_history if s.end]
    start = min(starts) if starts else None
    if not ends:
        return start, None
    latest = max(status_history, key=lambda s: s.start or "")
    if not latest.end:
        return start, None
    return start, max(ends)


def parse_legislature(code: str | None, default: int = 17) -> int:
    """Roman numeral legislature code ("XVII") to its number, else ``default``."""
    if not code:
        return default
    return ROMAN_NUMERALS.get(code.strip().upper(), default)


def photo_url(dep_id: DepId) -> str:
    return f"{PHOTO_URL}?id={dep_id}&type=deputado"


def deduplicate_deputies(deputies: list[DeputyRecord]) -> dict[DepId, DeputyRecord]:
    """Keep one record per DepId: the one whose mandate started most recently.

    A candidate replaces the held record only when its start date is defined
    and strictly later (or the held record has no start). Order of first
    appearance is preserved; the result is idempotent.
    """
    unique: dict[DepId, DeputyRecord] = {}
    for dep in deputies:
        held = unique.get(dep.dep_id)
        if held is None:
            unique[dep.dep_id] = dep
            continue
        new_start, _ = get_mandate_dates(dep.status_history)
        held_start, _ = get_mandate_dates(held.status_history)
        if new_start and (not held_start or new_start > held_start):
            unique[dep.dep_id] = dep
    return unique


# ---------------------------------------------------------------------------
# Row builders
# ---------------------------------------------------------------------------

def flatten_deputy(
    dep: DeputyRecord,
    party_id: RowId | None,
    district_id: RowId | None,
    default_legislature: int = 17,
) -> dict:
    start, end = get_mandate_dates(dep.status_history)
    return {
        "external_id":  str(dep.dep_id),
        "cadastro_id":  dep.cadastro_id,
        "name":         dep.full_name,
        "short_name":   dep.short_name,
        "party_id":     party_id,
        "district_id":  district_id,
        "legislature":  parse_legislature(dep.legislature_code, default_legislature),
        "is_active":    is_active_deputy(dep.status_history),
        "mandate_start": start,
        "mandate_end":  end,
        "photo_url":    photo_url(dep.dep_id),
    }


def flatten_roles(dep: DeputyRecord, deputy_id: RowId) -> list[dict]:
    return [
        {
            "deputy_id":  deputy_id,
            "role_id":    r.role_id,
            "role_name":  r.name,
            "start_date": r.start,
            "end_date":   r.end,
        }
        for r in dep.roles
        if r.name
    ]


def flatten_party_history(
    dep: DeputyRecord, deputy_id: RowId, party_map: dict[PartyAcronym, RowId]
) -> list[dict]:
    return [
        {
            "deputy_id":     deputy_id,
            "party_id":      party_map.get(g.acronym) if g.acronym else None,
            "party_acronym": g.acronym,
            "start_date":    g.start,
            "end_date":      g.end,
        }
        for g in dep.party_history
        if g.acronym
    ]


def flatten_status_history(dep: DeputyRecord, deputy_id: RowId) -> list[dict]:
    return [
        {
            "deputy_id":  deputy_id,
            "status":     s.description,
            "start_date": s.start,
            "end_date":   s.end,
        }
        for s in dep.status_history
        if s.description
    ]
