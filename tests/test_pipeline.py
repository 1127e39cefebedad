"""End-to-end runs of the four phases against an in-memory warehouse."""

import dataclasses
from datetime import date

import httpx
import pytest

from parlwatch.context import PipelineContext
from parlwatch.errors import StoreAuthError, StoreError
from parlwatch.parlamento_client import ParlamentoClient
from parlwatch.pipeline import (
    build_branches,
    run_phase_1,
    run_phase_2,
    run_pipeline,
    run_transform,
)
from parlwatch.result import ERROR, SUCCESS, WARNING
from parlwatch.snapshots import load_snapshot
from parlwatch.store import Store
from parlwatch.sync_attendance import sync_attendance
from parlwatch.sync_biographies import sync_biographies


def _stats_by_name(df):
    return {row["name"]: row for row in df.iter_rows(named=True)}


async def _stats(store):
    return _stats_by_name(await store.query("""
        SELECT d.name, s.*
        FROM deputy_stats s JOIN deputies d ON d.id = s.deputy_id
    """))


@pytest.fixture
def offline(settings):
    """Settings with both scrapers switched off."""
    return dataclasses.replace(settings, sync_attendance=False, sync_biographies=False)


@pytest.mark.asyncio
async def test_phases_1_and_2_load_entities(make_ctx, store, settings, snapshot):
    """3 parties, 2 districts, 6 deputy records with one duplicate → 5 deputies."""
    ctx = make_ctx()
    snap = load_snapshot(settings.snapshot_dir, snapshot)
    await run_phase_1(ctx, snap)
    await run_phase_2(ctx, snap)

    assert len(ctx.maps.parties) == 3
    assert len(ctx.maps.districts) == 2
    assert len(ctx.maps.deputies_by_dep_id) == 5
    assert sorted(ctx.maps.deputies_by_cadastro) == [1001, 1002, 1003, 1004, 1005]

    deputies = await store.select("deputies", order_by="external_id")
    assert deputies.height == 5, "duplicate DepId must collapse to one row"
    duarte = deputies.filter(deputies["external_id"] == "4").row(0, named=True)
    assert duarte["name"] == "Duarte Pedro Neves", "the newer mandate record wins"
    assert duarte["is_active"] is True
    assert duarte["party_id"] == ctx.maps.parties["PS"]
    assert duarte["district_id"] == ctx.maps.districts[2]

    stats = await store.select("deputy_stats")
    assert stats.height == 5
    assert stats["proposal_count"].sum() == 0
    assert set(stats["grade"].to_list()) == {"F"}

    history = await store.select("deputy_party_history")
    assert history.height == 5
    assert all(s.status == SUCCESS for s in ctx.result.steps), [
        (s.name, s.status) for s in ctx.result.steps
    ]


@pytest.mark.asyncio
async def test_rerun_is_idempotent(make_ctx, store, settings, snapshot):
    snap = load_snapshot(settings.snapshot_dir, snapshot)
    first = make_ctx()
    await run_phase_1(first, snap)
    await run_phase_2(first, snap)
    second = make_ctx()
    await run_phase_1(second, snap)
    await run_phase_2(second, snap)

    assert first.maps.deputies_by_dep_id == second.maps.deputies_by_dep_id
    assert (await store.select("deputies")).height == 5
    assert (await store.select("deputy_stats")).height == 5
    assert (await store.select("deputy_status_history")).height == 5


@pytest.mark.asyncio
async def test_full_run_folds_stats(make_ctx, store, offline, snapshot):
    ctx = make_ctx(settings=offline)
    snap = load_snapshot(offline.snapshot_dir, snapshot)
    result = await run_pipeline(ctx, snap)

    assert result.exit_code() == 0
    assert result.step("Attendance") is None, "disabled branches are not run"
    assert result.step("Recalculate").status == SUCCESS

    stats = await _stats(store)
    ana, carla, duarte = stats["Ana Maria Silva"], stats["Carla Sofia Dias"], stats["Duarte Pedro Neves"]
    assert (ana["proposal_count"], carla["proposal_count"]) == (2, 1)
    assert (ana["intervention_count"], duarte["intervention_count"]) == (2, 1), (
        "PS total of 3 is split over its active deputies ordered by name"
    )
    assert carla["intervention_count"] == 1
    assert (ana["party_votes_favor"], ana["party_total_votes"]) == (1, 1)
    assert (carla["party_votes_against"], carla["party_total_votes"]) == (1, 1)
    assert ana["national_rank"] == 1
    assert ana["calculated_at"] is not None

    votes = await store.select("party_votes")
    assert votes["parties_favor"].to_list() == [["PS", "PSD"]]


@pytest.mark.asyncio
async def test_failing_optional_branch_is_a_warning(make_ctx, offline, snapshot):
    ctx = make_ctx(settings=offline)
    snap = load_snapshot(offline.snapshot_dir, snapshot)
    branches = build_branches(ctx, snap)

    async def site_down():
        raise RuntimeError("attendance page unreachable")

    branches["Attendance"] = site_down
    result = await run_pipeline(ctx, snap, branches)

    assert result.exit_code() == 0
    assert result.step("Attendance").status == WARNING
    assert result.step("Recalculate").status == SUCCESS
    assert result.has_warnings


@pytest.mark.asyncio
async def test_missing_branch_output_skips_its_fold(make_ctx, offline, snapshot):
    ctx = make_ctx(settings=offline)
    snap = load_snapshot(offline.snapshot_dir, snapshot)
    branches = build_branches(ctx, snap)

    async def broken():
        raise ValueError("bad feed")

    branches["Activities"] = broken
    result = await run_pipeline(ctx, snap, branches)

    assert result.exit_code() == 0
    assert result.step("InterventionCounts").status == WARNING
    assert result.step("ProposalCounts").status == SUCCESS


@pytest.mark.asyncio
async def test_small_load_is_flagged_but_not_fatal(make_ctx, offline, snapshot):
    strict = dataclasses.replace(offline, min_deputies=200, min_parties=5)
    ctx = make_ctx(settings=strict)
    result = await run_pipeline(ctx, load_snapshot(strict.snapshot_dir, snapshot))
    validation = result.step("Validation")
    assert validation.status == WARNING
    assert len(validation.errors) == 2
    assert result.exit_code() == 0


class _RecalculateFails(Store):
    async def recalculate_all_stats(self):
        raise StoreError("disk full")


class _DeputiesRejected(Store):
    async def upsert(self, table, rows, conflict_key):
        if table == "deputies":
            raise StoreError("constraint violated")
        return await super().upsert(table, rows, conflict_key)


def _ctx_with(store_cls, settings, handler=None):
    client = ParlamentoClient.from_settings(
        settings, transport=httpx.MockTransport(handler or (lambda r: httpx.Response(404)))
    )
    return PipelineContext(settings=settings, store=store_cls(":memory:"), client=client)


@pytest.mark.asyncio
async def test_critical_recalculate_failure_exits_1(offline, snapshot):
    ctx = _ctx_with(_RecalculateFails, offline)
    try:
        result = await run_pipeline(ctx, load_snapshot(offline.snapshot_dir, snapshot))
    finally:
        ctx.store.close()
    assert result.exit_code() == 1
    assert result.aborted
    assert result.step("Recalculate").status == ERROR


@pytest.mark.asyncio
async def test_all_deputies_failing_aborts_before_phase_3(offline, snapshot):
    ctx = _ctx_with(_DeputiesRejected, offline)
    try:
        result = await run_pipeline(ctx, load_snapshot(offline.snapshot_dir, snapshot))
    finally:
        ctx.store.close()
    assert result.exit_code() == 1
    assert result.step("Deputies").status == ERROR
    assert result.step("Initiatives") is None, "Phase 3 must not start"


@pytest.mark.asyncio
async def test_store_auth_failure_is_fatal(make_ctx, offline, snapshot):
    ctx = make_ctx(settings=offline)
    snap = load_snapshot(offline.snapshot_dir, snapshot)
    branches = build_branches(ctx, snap)

    async def token_rejected():
        raise StoreAuthError("Invalid API key")

    branches["Biographies"] = token_rejected
    result = await run_pipeline(ctx, snap, branches)

    assert result.aborted
    assert result.exit_code() == 1
    assert result.step("Biographies").status == ERROR
    assert result.step("Initiatives").status == SUCCESS, "sibling branches still settle"
    assert result.step("Recalculate") is None


@pytest.mark.asyncio
async def test_attendance_sync_matches_and_learns_biography_ids(make_ctx, store, settings, snapshot, parlamento_site):
    ctx = make_ctx(parlamento_site)
    snap = load_snapshot(settings.snapshot_dir, snapshot)
    await run_phase_1(ctx, snap)
    await run_phase_2(ctx, snap)

    outcome = await sync_attendance(ctx)
    assert outcome.meetings == 2
    assert outcome.records == 3
    assert outcome.matched == 2
    assert outcome.unmatched == ["Zé Ninguém (CH) [BID=7999]"]
    assert outcome.report.failed == 0

    deputies = await store.select("deputies", "name, biography_id", where={"external_id": ["1", "2"]}, order_by="name")
    assert deputies["biography_id"].to_list() == [7001, 7002]

    statuses = await store.query("""
        SELECT m.meeting_date, a.status
        FROM plenary_attendance a
        JOIN plenary_meetings m ON m.id = a.meeting_id
        JOIN deputies d ON d.id = a.deputy_id
        WHERE d.external_id = '1'
        ORDER BY m.meeting_date
    """)
    assert statuses["meeting_date"].to_list() == [date(2024, 5, 10), date(2024, 5, 11)]
    assert statuses["status"].to_list() == ["present", "absent_quorum"]

    again = await sync_attendance(ctx)
    assert again.report.processed == 0, "no meetings newer than the stored ones"
    assert (await store.select("plenary_attendance")).height == 3


@pytest.mark.asyncio
async def test_full_attendance_sync_rescrapes_stored_meetings(make_ctx, store, settings, snapshot, parlamento_site):
    detail_requests = []

    def handler(request):
        if "DetalheReuniaoPlenaria" in request.url.path:
            detail_requests.append(request.url.params["BID"])
        return parlamento_site(request)

    ctx = make_ctx(handler)
    snap = load_snapshot(settings.snapshot_dir, snapshot)
    await run_phase_1(ctx, snap)
    await run_phase_2(ctx, snap)
    await sync_attendance(ctx)
    assert sorted(detail_requests) == ["500", "501"]

    detail_requests.clear()
    outcome = await sync_attendance(ctx, full=True)
    assert sorted(detail_requests) == ["500", "501"], "full mode ignores the latest stored date"
    assert outcome.meetings == 2
    assert outcome.records == 3
    assert (await store.select("plenary_attendance")).height == 3, "re-scraped rows upsert in place"


@pytest.mark.asyncio
async def test_biography_sync_respects_ttl(make_ctx, store, settings, snapshot, parlamento_site):
    ctx = make_ctx(parlamento_site)
    snap = load_snapshot(settings.snapshot_dir, snapshot)
    await run_phase_1(ctx, snap)
    await run_phase_2(ctx, snap)
    await sync_attendance(ctx)

    first = await sync_biographies(ctx)
    assert first.scraped == 1
    assert first.report.processed == 2
    assert first.report.failed == 1, "Bruno's page is missing"
    bio = (await store.select("deputy_biographies")).row(0, named=True)
    assert bio["birth_date"] == date(1975, 8, 23)
    assert bio["profession"] == "Economista"
    assert bio["source_url"].endswith("Biografia.aspx?BID=7001")

    second = await sync_biographies(ctx)
    assert second.skipped_fresh == 1
    assert second.scraped == 0

    forced = await sync_biographies(ctx, full=True)
    assert forced.skipped_fresh == 0
    assert forced.scraped == 1
    assert (await store.select("deputy_biographies")).height == 1


@pytest.mark.asyncio
async def test_run_transform_end_to_end(settings, store, snapshot, parlamento_site):
    async with ParlamentoClient.from_settings(settings, transport=httpx.MockTransport(parlamento_site)) as client:
        result = await run_transform(settings, snapshot, store=store, client=client)

    assert result.exit_code() == 0
    assert result.step("LoadSnapshot").status == SUCCESS
    assert result.step("Attendance").status == SUCCESS
    assert (await store.select("plenary_attendance")).height == 3


@pytest.mark.asyncio
async def test_run_transform_missing_snapshot(settings, store):
    result = await run_transform(settings, "1999-01-01T00-00-00Z", store=store)
    assert result.exit_code() == 1
    assert result.step("LoadSnapshot").status == ERROR
