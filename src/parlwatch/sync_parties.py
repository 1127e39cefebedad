"""
Phase 1: parliamentary groups and electoral circles.

Both tables are keyed on the feed's natural key (party acronym, circle ID)
and feed the identifier maps that Phase 2 needs to link deputies.
"""

from parlwatch.context import PipelineContext
from parlwatch.feeds import DistrictRecord, PartyRecord
from parlwatch.ids import DistrictCode, PartyAcronym, RowId
from parlwatch.loader import upsert_in_batches
from parlwatch.result import StepReport
from parlwatch.transforms.parties import flatten_district, flatten_party


async def sync_parties(ctx: PipelineContext, parties: list[PartyRecord]) -> StepReport:
    report = StepReport(processed=len(parties))
    rows = [flatten_party(p) for p in parties]
    persisted = await upsert_in_batches(
        ctx.store, "parties", rows, "external_id",
        batch_size=ctx.settings.db_batch_size, report=report,
    )
    for row in persisted:
        ctx.maps.parties[PartyAcronym(row["external_id"])] = RowId(row["id"])
    print(f"  parties: {len(persisted)} upserted")
    return report


async def sync_districts(ctx: PipelineContext, districts: list[DistrictRecord]) -> StepReport:
    report = StepReport(processed=len(districts))
    rows = [flatten_district(d) for d in districts]
    persisted = await upsert_in_batches(
        ctx.store, "districts", rows, "external_id",
        batch_size=ctx.settings.db_batch_size, report=report,
    )
    for row in persisted:
        ctx.maps.districts[DistrictCode(int(row["external_id"]))] = RowId(row["id"])
    print(f"  districts: {len(persisted)} upserted")
    return report
