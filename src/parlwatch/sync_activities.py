"""
Phase 3 branch: plenary interventions per deputy (estimated).

The activities feed counts interventions per party only; each party's total
is split evenly over its active deputies (see transforms.activities).
"""

from dataclasses import dataclass, field

from parlwatch.context import PipelineContext
from parlwatch.feeds import Activities
from parlwatch.ids import RowId
from parlwatch.result import StepReport
from parlwatch.transforms.activities import count_interventions, distribute_interventions


@dataclass
class ActivitiesOutcome:
    report: StepReport
    by_party: dict[str, int] = field(default_factory=dict)
    by_deputy: dict[RowId, int] = field(default_factory=dict)


async def sync_activities(ctx: PipelineContext, activities: Activities) -> ActivitiesOutcome:
    report = StepReport(processed=len(activities.debates) + len(activities.rejected))
    for message in activities.rejected:
        report.record_failure(message)
    by_party = count_interventions(activities)
    print(f"  debates: {len(activities.debates)}, parties credited: {len(by_party)}")

    by_deputy: dict[RowId, int] = {}
    for acronym, total in sorted(by_party.items()):
        party_id = ctx.maps.parties.get(acronym)
        if party_id is None:
            print(f"  WARN: party {acronym} not found in map")
            continue
        members = await ctx.store.select(
            "deputies", "id",
            where={"party_id": party_id, "is_active": True},
            order_by="name, id",
        )
        deputy_ids = [RowId(d) for d in members["id"].to_list()] if members.height else []
        if not deputy_ids:
            print(f"  WARN: no active deputies for {acronym}")
            continue
        by_deputy.update(distribute_interventions(total, deputy_ids))
        print(f"  {acronym}: {total} interventions -> {len(deputy_ids)} deputies")

    return ActivitiesOutcome(report=report, by_party=by_party, by_deputy=by_deputy)
