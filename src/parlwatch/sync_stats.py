"""
Phase 4: fold Phase-3 outputs into deputy_stats, then recompute scores.

Counters are written per deputy; party vote tallies are broadcast to every
deputy of the party. ``recalculate`` must run last: it derives attendance
rate, work score, grade and ranks from everything written before it.
"""

from collections import Counter

from parlwatch.context import PipelineContext
from parlwatch.errors import StoreAuthError, StoreError
from parlwatch.ids import RowId
from parlwatch.result import StepReport
from parlwatch.transforms.initiatives import tally_party_votes
from parlwatch.utils import chunked


async def _update_counter(
    ctx: PipelineContext, column: str, counts: dict[RowId, int]
) -> StepReport:
    report = StepReport(processed=len(counts))
    for deputy_id, count in counts.items():
        try:
            await ctx.store.update("deputy_stats", {column: int(count)}, {"deputy_id": deputy_id})
        except StoreAuthError:
            raise
        except StoreError as e:
            report.record_failure(f"{column} for {deputy_id}: {e}")
    print(f"  {column}: {len(counts) - report.failed}/{len(counts)} deputies updated")
    return report


async def update_proposal_counts(ctx: PipelineContext, author_counts: Counter) -> StepReport:
    return await _update_counter(ctx, "proposal_count", dict(author_counts))


async def update_intervention_counts(ctx: PipelineContext, by_deputy: dict[RowId, int]) -> StepReport:
    return await _update_counter(ctx, "intervention_count", by_deputy)


async def update_party_vote_stats(ctx: PipelineContext, party_votes: list[dict]) -> StepReport:
    """Write each party's favor/against/abstain totals onto its deputies."""
    tallies = tally_party_votes(party_votes)
    report = StepReport(processed=len(tallies))
    for acronym, tally in sorted(tallies.items()):
        print(f"    {acronym}: {tally.favor}F/{tally.against}C/{tally.abstain}A ({tally.total} total)")
        party_id = ctx.maps.parties.get(acronym)
        if party_id is None:
            continue
        try:
            members = await ctx.store.select("deputies", "id", where={"party_id": party_id})
            for batch in chunked(members["id"].to_list() if members.height else [], ctx.settings.db_batch_size):
                await ctx.store.update(
                    "deputy_stats",
                    {
                        "party_votes_favor":   tally.favor,
                        "party_votes_against": tally.against,
                        "party_votes_abstain": tally.abstain,
                        "party_total_votes":   tally.total,
                    },
                    {"deputy_id": batch},
                )
        except StoreAuthError:
            raise
        except StoreError as e:
            report.record_failure(f"{acronym}: {e}")
            print(f"  ERROR: party vote stats for {acronym}: {e}")
    return report


async def recalculate(ctx: PipelineContext) -> None:
    await ctx.store.recalculate_all_stats()
    print("  recalculated work scores and rankings")
