"""
Phase 3 branch: deputy biographies.

Only deputies with a known biography_id can be scraped; that id is learnt by
the attendance branch, so a deputy first matched in this run is picked up on
the next one. Biographies scraped within the TTL window are skipped unless a
full resync is requested.
"""

from dataclasses import dataclass

from dateutil.relativedelta import relativedelta

from parlwatch.context import PipelineContext
from parlwatch.errors import FetchError, StoreAuthError, StoreError
from parlwatch.ids import BiographyId
from parlwatch.result import StepReport
from parlwatch.scrapers.biography import fetch_biography
from parlwatch.store import NOT_NULL
from parlwatch.utils import utcnow


@dataclass
class BiographiesOutcome:
    report: StepReport
    scraped: int = 0
    skipped_fresh: int = 0
    no_data: int = 0


async def select_stale_deputies(ctx: PipelineContext, *, full: bool = False) -> tuple[list[dict], int]:
    """Active deputies with a biography_id whose biography is missing or stale.

    Returns ``(targets, skipped_fresh)``.
    """
    deputies = await ctx.store.select(
        "deputies", "id, name, biography_id",
        where={"is_active": True, "biography_id": NOT_NULL},
        order_by="name, id",
    )
    candidates = list(deputies.iter_rows(named=True))
    if full:
        return candidates, 0

    cutoff = utcnow() - relativedelta(days=ctx.settings.biography_ttl_days)
    bios = await ctx.store.select("deputy_biographies", "deputy_id, scraped_at")
    fresh = {
        row["deputy_id"]
        for row in bios.iter_rows(named=True)
        if row["scraped_at"] is not None and row["scraped_at"] >= cutoff
    }
    targets = [d for d in candidates if d["id"] not in fresh]
    return targets, len(candidates) - len(targets)


async def sync_biographies(ctx: PipelineContext, *, full: bool = False) -> BiographiesOutcome:
    targets, skipped = await select_stale_deputies(ctx, full=full)
    if skipped:
        print(f"  skipping {skipped} recently scraped (within {ctx.settings.biography_ttl_days} days)")
    outcome = BiographiesOutcome(report=StepReport(processed=len(targets)), skipped_fresh=skipped)

    for i, dep in enumerate(targets, 1):
        label = f"[{i}/{len(targets)}] {dep['name']}"
        try:
            data, url = await fetch_biography(ctx.client, BiographyId(dep["biography_id"]))
        except FetchError as e:
            outcome.report.record_failure(f"{dep['name']}: {e}")
            print(f"  {label}  ERROR: {e}")
            continue
        if data is None:
            outcome.no_data += 1
            continue

        row = {
            "deputy_id":     dep["id"],
            "birth_date":    data.birth_date,
            "profession":    data.profession,
            "education":     data.education,
            "bio_narrative": data.bio_narrative,
            "source_url":    url,
            "scraped_at":    utcnow(),
        }
        try:
            await ctx.store.upsert("deputy_biographies", [row], "deputy_id")
        except StoreAuthError:
            raise
        except StoreError as e:
            outcome.report.record_failure(f"{dep['name']}: {e}")
            print(f"  {label}  ERROR: {e}")
            continue
        outcome.scraped += 1

    print(f"  biographies: {outcome.scraped} saved, {outcome.no_data} without data")
    return outcome
