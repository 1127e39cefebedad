"""
Plenary interventions from the activities feed.

The feed only attributes debates to a parliamentary group (``AutoresGP``) or
to a single "Name (PARTY)" author, so intervention counts exist per party.
Per-deputy numbers are an estimate: each party total is split evenly across
the party's active deputies.
"""

import re

from parlwatch.feeds import Activities
from parlwatch.ids import RowId

_AUTHOR = re.compile(r"^(.+?)\s*\((\w+(?:-\w+)?)\)$")


def extract_deputy_from_author(author: str | None) -> tuple[str, str] | None:
    """Parse ``"Name (PARTY)"`` into ``(name, party)``; None if it does not match."""
    if not author:
        return None
    match = _AUTHOR.match(author.strip())
    if not match:
        return None
    return match.group(1).strip(), match.group(2)


def count_interventions(activities: Activities) -> dict[str, int]:
    """Intervention totals per party acronym.

    Group-authored debates credit the full count to every listed group;
    otherwise the single deputy author's party is credited.
    """
    counts: dict[str, int] = {}
    for debate in activities.debates:
        if debate.author_groups:
            parties = [p.strip() for p in debate.author_groups.split(",") if p.strip()]
        else:
            author = extract_deputy_from_author(debate.author_deputies)
            parties = [author[1]] if author else []
        for party in parties:
            counts[party] = counts.get(party, 0) + debate.intervention_count
    return counts


def distribute_interventions(total: int, deputy_ids: list[RowId]) -> dict[RowId, int]:
    """Split ``total`` across deputies with floor division.

    The remainder goes one apiece to the first deputies in list order, so the
    shares always sum back to ``total``.
    """
    if not deputy_ids:
        return {}
    per_deputy, remainder = divmod(total, len(deputy_ids))
    return {
        deputy_id: per_deputy + (1 if i < remainder else 0)
        for i, deputy_id in enumerate(deputy_ids)
    }
