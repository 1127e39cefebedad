"""
Phase 3 branch: initiatives and their party-level votes.

Outputs for Phase 4:
  author_counts  initiatives authored per deputy (resolved via cadastro ID)
  party_votes    the vote rows written in this run, tallied per party later
"""

from collections import Counter
from dataclasses import dataclass, field

from parlwatch.context import PipelineContext
from parlwatch.feeds import Initiatives
from parlwatch.loader import upsert_in_batches
from parlwatch.result import StepReport
from parlwatch.transforms.initiatives import (
    count_authors,
    flatten_initiative,
    flatten_party_vote,
)

INITIATIVE_BATCH_SIZE = 100


@dataclass
class InitiativesOutcome:
    report: StepReport
    author_counts: Counter = field(default_factory=Counter)
    party_votes: list[dict] = field(default_factory=list)


async def sync_initiatives(ctx: PipelineContext, initiatives: Initiatives) -> InitiativesOutcome:
    records = initiatives.records
    report = StepReport(processed=len(records) + len(initiatives.rejected))
    for message in initiatives.rejected:
        report.record_failure(message)

    rows = [flatten_initiative(ini) for ini in records]
    persisted = await upsert_in_batches(
        ctx.store, "initiatives", rows, "external_id",
        batch_size=INITIATIVE_BATCH_SIZE, report=report,
    )
    initiative_ids = {row["external_id"]: row["id"] for row in persisted}
    print(f"  initiatives: {len(persisted)}/{len(records)} upserted")

    # Votes can only be linked to initiatives that landed
    vote_rows: dict[str, dict] = {}
    for ini in records:
        initiative_id = initiative_ids.get(ini.ini_id)
        if initiative_id is None:
            continue
        for event in ini.events:
            for vote in event.votes:
                vote_rows.setdefault(vote.vote_id, flatten_party_vote(vote, initiative_id))

    report.processed += len(vote_rows)
    saved_votes = await upsert_in_batches(
        ctx.store, "party_votes", list(vote_rows.values()), "external_id",
        batch_size=INITIATIVE_BATCH_SIZE, report=report,
    )
    saved_ids = {row["external_id"] for row in saved_votes}
    print(f"  party votes: {len(saved_votes)}/{len(vote_rows)} upserted")

    return InitiativesOutcome(
        report=report,
        author_counts=count_authors(records, ctx.maps.deputies_by_cadastro),
        party_votes=[v for k, v in vote_rows.items() if k in saved_ids],
    )
