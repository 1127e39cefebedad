"""
Legislative initiatives and the party-level roll calls attached to them.

Each initiative carries a list of procedural events (``IniEventos``); some
events hold one or more votes (``Votacao``). Per-party positions are only
available inside the free-text ``detalhe`` field, e.g.::

    A Favor: <I>PSD</I>, <I> CDS-PP</I><BR>Contra:<I>CH</I><BR>Abstenção: <I>PS</I>
"""

import re
from collections import Counter
from dataclasses import dataclass, field

from parlwatch.feeds import EventRecord, InitiativeRecord, VoteRecord
from parlwatch.ids import CadastroId, RowId

SUBMITTED_PHASE_CODE = "10"   # "Entrada" event
TITLE_MAX_LENGTH = 500
UNTITLED = "Sem título"
MAX_PARTY_TOKEN_LENGTH = 20

_LINE_BREAK = re.compile(r"<br\s*/?>", re.IGNORECASE)
_TAG = re.compile(r"<[^>]+>")


@dataclass
class PartyVoteSplit:
    favor: list[str] = field(default_factory=list)
    against: list[str] = field(default_factory=list)
    abstain: list[str] = field(default_factory=list)


@dataclass
class PartyVoteTally:
    favor: int = 0
    against: int = 0
    abstain: int = 0

    @property
    def total(self) -> int:
        return self.favor + self.against + self.abstain


def parse_party_vote_detail(detail: str | None) -> PartyVoteSplit:
    """Split the HTML vote detail into party acronyms per position.

    Lines are recognised by their lower-cased prefix ("a favor", "contra",
    "abstenção"). The text after the first colon is split on commas; tokens
    that are empty or 20+ characters long are not party acronyms and are
    dropped. Unrecognised lines are ignored.
    """
    split = PartyVoteSplit()
    if not detail:
        return split

    text = _LINE_BREAK.sub("\n", detail)
    text = _TAG.sub("", text).replace("&nbsp;", " ")

    for line in text.split("\n"):
        line = line.strip()
        colon = line.find(":")
        if colon == -1:
            continue
        label = line[:colon].strip().lower()
        parties = [
            p.strip()
            for p in line[colon + 1:].split(",")
            if 0 < len(p.strip()) < MAX_PARTY_TOKEN_LENGTH
        ]
        if label.startswith("a favor"):
            split.favor = parties
        elif label.startswith("contra"):
            split.against = parties
        elif label.startswith("abstenção") or label.startswith("abstencao"):
            split.abstain = parties
    return split


def vote_result(text: str | None) -> str:
    return "approved" if text and "aprovad" in text.lower() else "rejected"


def submitted_at(events: list[EventRecord]) -> str | None:
    """Date of the submission event (phase code 10)."""
    for evt in events:
        if evt.phase_code == SUBMITTED_PHASE_CODE:
            return evt.phase_date
    return None


def initiative_status(events: list[EventRecord]) -> str | None:
    """Phase name of the chronologically latest event."""
    dated = sorted(events, key=lambda e: e.phase_date or "")
    return dated[-1].phase if dated else None


def flatten_initiative(ini: InitiativeRecord) -> dict:
    return {
        "external_id":  ini.ini_id,
        "type":         ini.type,
        "number":       ini.number,
        "title":        (ini.title or UNTITLED)[:TITLE_MAX_LENGTH],
        "status":       initiative_status(ini.events),
        "submitted_at": submitted_at(ini.events),
    }


def _session_number(meeting: str | None) -> int | None:
    try:
        return int(meeting) if meeting not in (None, "") else None
    except (TypeError, ValueError):
        return None


def flatten_party_vote(vote: VoteRecord, initiative_id: RowId) -> dict:
    split = parse_party_vote_detail(vote.detail)
    return {
        "external_id":     vote.vote_id,
        "initiative_id":   initiative_id,
        "session_number":  _session_number(vote.meeting),
        "voted_at":        vote.date,
        "result":          vote_result(vote.result),
        "is_unanimous":    vote.unanimous == "Sim",
        "parties_favor":   split.favor,
        "parties_against": split.against,
        "parties_abstain": split.abstain,
    }


def count_authors(
    initiatives: list[InitiativeRecord],
    by_cadastro: dict[CadastroId, RowId],
) -> Counter:
    """Initiatives authored per internal deputy id.

    Authors are referenced by cadastro ID; references that do not resolve to a
    known deputy are skipped.
    """
    counts: Counter = Counter()
    for ini in initiatives:
        for author in ini.authors:
            if author.cadastro_id is None:
                continue
            deputy_id = by_cadastro.get(author.cadastro_id)
            if deputy_id:
                counts[deputy_id] += 1
    return counts


def tally_party_votes(votes: list[dict]) -> dict[str, PartyVoteTally]:
    """Count favor/against/abstain appearances per party acronym."""
    tallies: dict[str, PartyVoteTally] = {}
    for vote in votes:
        for party in vote.get("parties_favor") or []:
            tallies.setdefault(party, PartyVoteTally()).favor += 1
        for party in vote.get("parties_against") or []:
            tallies.setdefault(party, PartyVoteTally()).against += 1
        for party in vote.get("parties_abstain") or []:
            tallies.setdefault(party, PartyVoteTally()).abstain += 1
    return tallies
