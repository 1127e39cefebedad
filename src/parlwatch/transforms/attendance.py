"""
Plenary attendance: status classification and deputy name matching.

The attendance pages identify deputies by their biography ``BID`` and display
name only, neither of which appears in the base-info feed. Deputies are
therefore matched by name the first time they are seen, and the BID is then
stored on the deputy row so later runs can match directly.
"""

import re
from dataclasses import dataclass, field

from parlwatch.ids import BiographyId, RowId
from parlwatch.utils import strip_accents

PRESENT = "present"
ABSENT_QUORUM = "absent_quorum"
ABSENT_JUSTIFIED = "absent_justified"
ABSENT_UNJUSTIFIED = "absent_unjustified"

JUSTIFIED_KEYWORDS = ("justificada", "missão oficial", "substituição")

# At least 7 in 10 words of the shorter name must appear in the longer name
NAME_MATCH_HITS, NAME_MATCH_OUT_OF = 7, 10

_NON_LETTERS = re.compile(r"[^a-z\s]")


def parse_attendance_status(text: str | None) -> str:
    """Map the free-text presence label onto the four-way taxonomy.

    Unknown labels default to ``absent_unjustified``.
    """
    normalized = (text or "").strip().lower()
    if "presença" in normalized or "(p)" in normalized:
        return PRESENT
    if "quórum" in normalized or "quorum" in normalized:
        return ABSENT_QUORUM
    if "injustificada" in normalized:
        return ABSENT_UNJUSTIFIED
    if any(k in normalized for k in JUSTIFIED_KEYWORDS):
        return ABSENT_JUSTIFIED
    return ABSENT_UNJUSTIFIED


def normalize_name(name: str | None) -> str:
    """Lower-case, strip accents, keep letters and single spaces."""
    text = strip_accents((name or "").lower())
    return " ".join(_NON_LETTERS.sub("", text).split())


def _share_matches(shorter: list[str], longer: list[str]) -> bool:
    hits = sum(1 for w in shorter if any(lw == w or w in lw for lw in longer))
    return hits * NAME_MATCH_OUT_OF >= len(shorter) * NAME_MATCH_HITS


def names_match(name1: str | None, name2: str | None) -> bool:
    """Fuzzy name comparison, symmetric in its arguments.

    Names match when their normalized forms are equal, one contains the
    other, or enough words of the shorter name appear in the longer one.
    Empty names never match.
    """
    n1, n2 = normalize_name(name1), normalize_name(name2)
    if not n1 or not n2:
        return False
    if n1 == n2 or n1 in n2 or n2 in n1:
        return True

    words1, words2 = n1.split(), n2.split()
    if len(words1) < len(words2):
        return _share_matches(words1, words2)
    if len(words2) < len(words1):
        return _share_matches(words2, words1)
    return _share_matches(words1, words2) or _share_matches(words2, words1)


@dataclass
class DeputyCandidate:
    """A stored deputy considered when matching scraped names."""

    id: RowId
    name: str
    short_name: str | None = None
    biography_id: BiographyId | None = None


@dataclass
class MatchResult:
    matched: dict[BiographyId, RowId] = field(default_factory=dict)
    # Deputies whose biography_id should now be persisted
    new_biography_ids: dict[RowId, BiographyId] = field(default_factory=dict)
    unmatched: list[str] = field(default_factory=list)


def match_deputies(
    scraped: dict[BiographyId, tuple[str, str]],
    candidates: list[DeputyCandidate],
) -> MatchResult:
    """Resolve scraped ``{bid: (name, party)}`` entries to stored deputy ids.

    A deputy whose ``biography_id`` already equals the BID is a direct hit;
    otherwise the first candidate whose name or short name matches wins.
    """
    result = MatchResult()
    by_biography = {c.biography_id: c for c in candidates if c.biography_id is not None}

    for bid, (name, party) in scraped.items():
        direct = by_biography.get(bid)
        if direct is not None:
            result.matched[bid] = direct.id
            continue

        hit = next(
            (
                c for c in candidates
                if names_match(c.name, name) or (c.short_name and names_match(c.short_name, name))
            ),
            None,
        )
        if hit is None:
            result.unmatched.append(f"{name} ({party}) [BID={bid}]")
            continue
        result.matched[bid] = hit.id
        if hit.biography_id is None and hit.id not in result.new_biography_ids:
            result.new_biography_ids[hit.id] = bid
    return result


def dedupe_attendance_rows(rows: list[dict]) -> list[dict]:
    """Drop repeated ``(deputy_id, meeting_id)`` pairs; the first one wins."""
    seen: dict[tuple, dict] = {}
    for row in rows:
        seen.setdefault((row["deputy_id"], row["meeting_id"]), row)
    return list(seen.values())
