"""
Phase 3 branch: plenary attendance.

Strategy:
  1. Scrape the meeting list; unless ``full`` is set, keep only meetings
     newer than the latest meeting already stored.
  2. Scrape each remaining meeting's detail page (sequential, polite).
  3. Upsert meetings on their BID.
  4. Match scraped deputies to active deputies, by stored biography_id first
     and by name otherwise; persist newly learnt biography_ids.
  5. Upsert attendance on (deputy_id, meeting_id), first occurrence wins.
"""

from dataclasses import dataclass, field

from parlwatch.context import PipelineContext
from parlwatch.errors import StoreAuthError, StoreError
from parlwatch.ids import BiographyId, RowId
from parlwatch.loader import upsert_in_batches
from parlwatch.result import StepReport
from parlwatch.scrapers.attendance import fetch_all_attendance, fetch_meeting_list
from parlwatch.transforms.attendance import (
    DeputyCandidate,
    dedupe_attendance_rows,
    match_deputies,
)

ATTENDANCE_BATCH_SIZE = 100
MAX_UNMATCHED_SHOWN = 10


@dataclass
class AttendanceOutcome:
    report: StepReport
    meetings: int = 0
    records: int = 0
    matched: int = 0
    unmatched: list[str] = field(default_factory=list)


async def latest_meeting_date(ctx: PipelineContext) -> str | None:
    df = await ctx.store.query("SELECT MAX(meeting_date) AS latest FROM plenary_meetings")
    latest = df["latest"][0] if df.height else None
    return latest.isoformat() if latest is not None else None


async def load_candidates(ctx: PipelineContext) -> list[DeputyCandidate]:
    df = await ctx.store.select(
        "deputies", "id, name, short_name, biography_id",
        where={"is_active": True}, order_by="name, id",
    )
    return [
        DeputyCandidate(
            id=RowId(row["id"]),
            name=row["name"],
            short_name=row["short_name"],
            biography_id=BiographyId(row["biography_id"]) if row["biography_id"] is not None else None,
        )
        for row in df.iter_rows(named=True)
    ]


async def sync_attendance(ctx: PipelineContext, *, full: bool = False) -> AttendanceOutcome:
    meetings = await fetch_meeting_list(ctx.client)
    if not full:
        latest = await latest_meeting_date(ctx)
        if latest:
            meetings = [m for m in meetings if m.date > latest]
            print(f"  incremental: {len(meetings)} meetings after {latest}")
    if not meetings:
        print("  no new meetings")
        return AttendanceOutcome(report=StepReport())

    records = await fetch_all_attendance(ctx.client, meetings)
    report = StepReport(processed=len(meetings))

    meeting_rows = [
        {
            "external_id":  str(m.bid),
            "meeting_date": m.date,
            "legislature":  ctx.settings.default_legislature,
        }
        for m in meetings
    ]
    persisted = await upsert_in_batches(
        ctx.store, "plenary_meetings", meeting_rows, "external_id",
        batch_size=ctx.settings.db_batch_size, report=report,
    )
    meeting_ids = {row["external_id"]: RowId(row["id"]) for row in persisted}

    scraped: dict[BiographyId, tuple[str, str]] = {}
    for rec in records:
        scraped.setdefault(rec.deputy_bid, (rec.deputy_name, rec.party))
    match = match_deputies(scraped, await load_candidates(ctx))
    print(f"  matched {len(match.matched)}/{len(scraped)} deputies")

    for deputy_id, bid in match.new_biography_ids.items():
        try:
            await ctx.store.update("deputies", {"biography_id": bid}, {"id": deputy_id})
        except StoreAuthError:
            raise
        except StoreError as e:
            print(f"  ERROR: biography_id for {deputy_id}: {e}")
    if match.new_biography_ids:
        print(f"  biography_id learnt for {len(match.new_biography_ids)} deputies")

    if match.unmatched:
        print(f"  WARN: unmatched deputies ({len(match.unmatched)}):")
        for name in match.unmatched[:MAX_UNMATCHED_SHOWN]:
            print(f"     - {name}")
        if len(match.unmatched) > MAX_UNMATCHED_SHOWN:
            print(f"     ... and {len(match.unmatched) - MAX_UNMATCHED_SHOWN} more")

    rows = []
    for rec in records:
        deputy_id = match.matched.get(rec.deputy_bid)
        meeting_id = meeting_ids.get(str(rec.meeting_bid))
        if deputy_id is None or meeting_id is None:
            continue
        rows.append({
            "deputy_id":  deputy_id,
            "meeting_id": meeting_id,
            "status":     rec.status,
            "status_raw": rec.status_raw,
            "reason":     rec.reason,
        })
    rows = dedupe_attendance_rows(rows)
    report.processed += len(rows)
    saved = await upsert_in_batches(
        ctx.store, "plenary_attendance", rows, "deputy_id,meeting_id",
        batch_size=ATTENDANCE_BATCH_SIZE, report=report,
        label=lambda r: f"{r['deputy_id']}@{r['meeting_id']}",
    )
    print(f"  attendance: {len(saved)} rows upserted")

    return AttendanceOutcome(
        report=report,
        meetings=len(meeting_ids),
        records=len(saved),
        matched=len(match.matched),
        unmatched=match.unmatched,
    )
