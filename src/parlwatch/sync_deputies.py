"""
Phase 2: deputies, their stats rows and extended history tables.

Strategy:
  1. Collapse duplicate feed records to one per DepId (newest mandate wins).
  2. Resolve current party and electoral circle through the Phase-1 maps.
  3. Upsert on external_id (= DepId) and record both lookup keys, DepId and
     cadastro ID, in the identifier maps for Phase 3.
  4. Create a zeroed deputy_stats row for every deputy that lacks one.
  5. Replace roles, party history and status history wholesale per deputy.
"""

from parlwatch.context import PipelineContext
from parlwatch.errors import StoreAuthError, StoreError
from parlwatch.feeds import BaseInfo, DeputyRecord
from parlwatch.ids import CadastroId, DepId, RowId
from parlwatch.loader import upsert_in_batches
from parlwatch.result import StepReport
from parlwatch.transforms.deputies import (
    deduplicate_deputies,
    flatten_deputy,
    flatten_party_history,
    flatten_roles,
    flatten_status_history,
    get_current_party,
)
from parlwatch.utils import chunked

async def sync_deputies(
    ctx: PipelineContext,
    deputies: list[DeputyRecord],
    rejected: list[str] | None = None,
) -> StepReport:
    rejected = rejected or []
    unique = deduplicate_deputies(deputies)
    print(f"  deputies: {len(deputies)} records → {len(unique)} unique")

    report = StepReport(processed=len(unique) + len(rejected))
    for message in rejected:
        report.record_failure(message)

    rows = []
    missing_party = 0
    for dep in unique.values():
        acronym = get_current_party(dep.party_history)
        party_id = ctx.maps.parties.get(acronym) if acronym else None
        if acronym and party_id is None:
            missing_party += 1
        district_id = (
            ctx.maps.districts.get(dep.district_code) if dep.district_code is not None else None
        )
        rows.append(flatten_deputy(dep, party_id, district_id, ctx.settings.default_legislature))
    if missing_party:
        print(f"  WARN: {missing_party} deputies reference an unknown party")

    persisted = await upsert_in_batches(
        ctx.store, "deputies", rows, "external_id",
        batch_size=ctx.settings.db_batch_size, report=report,
    )
    for row in persisted:
        deputy_id = RowId(row["id"])
        ctx.maps.deputies_by_dep_id[DepId(int(row["external_id"]))] = deputy_id
        if row.get("cadastro_id") is not None:
            ctx.maps.deputies_by_cadastro[CadastroId(int(row["cadastro_id"]))] = deputy_id
    print(f"  deputies: {len(persisted)} upserted")
    return report


async def ensure_deputy_stats(ctx: PipelineContext) -> StepReport:
    """Insert a zeroed deputy_stats row for every mapped deputy without one."""
    deputy_ids = list(dict.fromkeys(ctx.maps.deputies_by_dep_id.values()))
    existing = await ctx.store.select("deputy_stats", "deputy_id")
    have = set(existing["deputy_id"].to_list()) if existing.height else set()
    missing = [d for d in deputy_ids if d not in have]

    report = StepReport(processed=len(missing))
    for batch in chunked(missing, ctx.settings.db_batch_size):
        rows = [
            {
                "deputy_id":           d,
                "proposal_count":      0,
                "intervention_count":  0,
                "question_count":      0,
                "party_votes_favor":   0,
                "party_votes_against": 0,
                "party_votes_abstain": 0,
                "party_total_votes":   0,
                "attendance_rate":     0.0,
                "work_score":          0.0,
                "grade":               "F",
                "national_rank":       0,
                "district_rank":       0,
            }
            for d in batch
        ]
        try:
            await ctx.store.insert("deputy_stats", rows)
        except StoreAuthError:
            raise
        except StoreError as e:
            report.record_failure(f"deputy_stats batch: {e}", count=len(batch))
            print(f"  ERROR: deputy_stats batch: {e}")
    print(f"  deputy_stats: {len(missing) - report.failed} created")
    return report


async def sync_deputy_extended_info(
    ctx: PipelineContext, deputies: list[DeputyRecord]
) -> StepReport:
    """Replace roles, party history and status history for every mapped deputy."""
    unique = deduplicate_deputies(deputies)
    mapped = [
        (ctx.maps.deputies_by_dep_id[dep_id], dep)
        for dep_id, dep in unique.items()
        if dep_id in ctx.maps.deputies_by_dep_id
    ]
    report = StepReport(processed=len(mapped))
    counts = {"deputy_roles": 0, "deputy_party_history": 0, "deputy_status_history": 0}

    for deputy_id, dep in mapped:
        rows_by_table = {
            "deputy_roles":          flatten_roles(dep, deputy_id),
            "deputy_party_history":  flatten_party_history(dep, deputy_id, ctx.maps.parties),
            "deputy_status_history": flatten_status_history(dep, deputy_id),
        }
        try:
            for table, rows in rows_by_table.items():
                await ctx.store.delete(table, {"deputy_id": deputy_id})
                counts[table] += await ctx.store.insert(table, rows)
        except StoreAuthError:
            raise
        except StoreError as e:
            report.record_failure(f"deputy {dep.dep_id}: {e}")
            print(f"  ERROR: extended info for deputy {dep.dep_id}: {e}")

    print(
        f"  extended info: {counts['deputy_roles']} roles, "
        f"{counts['deputy_party_history']} party periods, "
        f"{counts['deputy_status_history']} status periods"
    )
    return report


def check_thresholds(ctx: PipelineContext, info: BaseInfo) -> list[str]:
    """Describe suspiciously small loads (a truncated download looks like this).

    The orchestrator records any messages as a warning; they never fail the run.
    """
    deputies = len(ctx.maps.deputies_by_dep_id)
    parties = len(ctx.maps.parties)
    warnings = []
    if deputies < ctx.settings.min_deputies:
        warnings.append(
            f"only {deputies} deputies loaded (expected at least {ctx.settings.min_deputies})"
        )
    if parties < ctx.settings.min_parties:
        warnings.append(
            f"only {parties} parties loaded (expected at least {ctx.settings.min_parties})"
        )
    for message in warnings:
        print(f"  WARN: {message}")
    print(f"  feed: {len(info.deputies)} deputy records, {len(info.rejected)} rejected")
    return warnings
