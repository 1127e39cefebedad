"""
Transform pipeline: snapshot files → warehouse tables.

Phases (each joins before the next starts):
  1  Parties, Districts                          concurrent, critical
  2  Deputies → DeputyStats → ExtendedInfo        sequential, critical
     Validation                                   warning only
  3  Initiatives, Activities, Attendance,
     Biographies                                  concurrent, non-critical
  4  ProposalCounts, InterventionCounts,
     PartyVoteStats                               concurrent, non-critical
     Recalculate                                  critical

A critical failure stops the run at once; a non-critical one is recorded as
a warning and the run carries on. A rejected store credential always stops
the run.

Usage:
    result = await run_transform(settings, "2025-12-24T18-39-03Z")
    sys.exit(result.exit_code())
"""

import asyncio
from typing import Any, Awaitable, Callable

from parlwatch.config import Settings
from parlwatch.context import PipelineContext
from parlwatch.errors import StoreAuthError, StoreError
from parlwatch.parlamento_client import ParlamentoClient
from parlwatch.result import (
    ERROR,
    SUCCESS,
    WARNING,
    PipelineResult,
    StepResult,
    gather_steps,
    run_step,
)
from parlwatch.snapshots import Snapshot, load_snapshot
from parlwatch.store import Store
from parlwatch.sync_activities import sync_activities
from parlwatch.sync_attendance import sync_attendance
from parlwatch.sync_biographies import sync_biographies
from parlwatch.sync_deputies import (
    check_thresholds,
    ensure_deputy_stats,
    sync_deputies,
    sync_deputy_extended_info,
)
from parlwatch.sync_initiatives import sync_initiatives
from parlwatch.sync_parties import sync_districts, sync_parties
from parlwatch.sync_stats import (
    recalculate,
    update_intervention_counts,
    update_party_vote_stats,
    update_proposal_counts,
)

Branch = Callable[[], Awaitable[Any]]


def _banner(title: str) -> None:
    print("\n" + "-" * 60)
    print(title)
    print("-" * 60)


def build_branches(ctx: PipelineContext, snapshot: Snapshot) -> dict[str, Branch]:
    """The Phase-3 branches enabled for this run, keyed by step name."""
    branches: dict[str, Branch] = {
        "Initiatives": lambda: sync_initiatives(ctx, snapshot.initiatives),
        "Activities":  lambda: sync_activities(ctx, snapshot.activities),
    }
    if ctx.settings.sync_attendance:
        branches["Attendance"] = lambda: sync_attendance(ctx, full=ctx.full_resync)
    else:
        print("  attendance scrape disabled (SYNC_ATTENDANCE=false)")
    if ctx.settings.sync_biographies:
        branches["Biographies"] = lambda: sync_biographies(ctx, full=ctx.full_resync)
    else:
        print("  biography scrape disabled (SYNC_BIOGRAPHIES=false)")
    return branches


async def run_phase_1(ctx: PipelineContext, snapshot: Snapshot) -> None:
    _banner("PHASE 1: PARTIES & DISTRICTS")
    info = snapshot.base_info
    await gather_steps(
        ctx.result,
        {
            "Parties":   lambda: sync_parties(ctx, info.parties),
            "Districts": lambda: sync_districts(ctx, info.districts),
        },
        critical=True,
    )


async def run_phase_2(ctx: PipelineContext, snapshot: Snapshot) -> None:
    _banner("PHASE 2: DEPUTIES")
    info = snapshot.base_info
    await run_step(
        ctx.result, "Deputies",
        lambda: sync_deputies(ctx, info.deputies, info.rejected), critical=True,
    )
    await run_step(ctx.result, "DeputyStats", lambda: ensure_deputy_stats(ctx), critical=True)
    await run_step(
        ctx.result, "ExtendedInfo",
        lambda: sync_deputy_extended_info(ctx, info.deputies), critical=True,
    )
    warnings = check_thresholds(ctx, info)
    ctx.result.add_step(StepResult(
        name="Validation",
        status=WARNING if warnings else SUCCESS,
        errors=warnings,
    ))


async def run_phase_3(ctx: PipelineContext, branches: dict[str, Branch]) -> dict[str, Any]:
    _banner("PHASE 3: INITIATIVES, ACTIVITIES, ATTENDANCE, BIOGRAPHIES")
    return await gather_steps(ctx.result, branches, critical=False)


def _skipped(ctx: PipelineContext, name: str, reason: str) -> None:
    print(f"  WARN: {name} skipped ({reason})")
    ctx.result.add_step(StepResult(name=name, status=WARNING, errors=[f"skipped: {reason}"]))


async def run_phase_4(ctx: PipelineContext, outputs: dict[str, Any]) -> None:
    _banner("PHASE 4: STATISTICS")
    initiatives = outputs.get("Initiatives")
    activities = outputs.get("Activities")

    folds: dict[str, Branch] = {}
    if initiatives is not None:
        folds["ProposalCounts"] = lambda: update_proposal_counts(ctx, initiatives.author_counts)
        folds["PartyVoteStats"] = lambda: update_party_vote_stats(ctx, initiatives.party_votes)
    else:
        _skipped(ctx, "ProposalCounts", "initiatives unavailable")
        _skipped(ctx, "PartyVoteStats", "initiatives unavailable")
    if activities is not None:
        folds["InterventionCounts"] = lambda: update_intervention_counts(ctx, activities.by_deputy)
    else:
        _skipped(ctx, "InterventionCounts", "activities unavailable")

    await gather_steps(ctx.result, folds, critical=False)
    await run_step(ctx.result, "Recalculate", lambda: recalculate(ctx), critical=True)


async def run_pipeline(
    ctx: PipelineContext,
    snapshot: Snapshot,
    branches: dict[str, Branch] | None = None,
) -> PipelineResult:
    """Run Phases 1-4 against a loaded snapshot and print the summary."""
    try:
        await run_phase_1(ctx, snapshot)
        await run_phase_2(ctx, snapshot)
        outputs = await run_phase_3(ctx, branches if branches is not None else build_branches(ctx, snapshot))
        await run_phase_4(ctx, outputs)
    except StoreAuthError as e:
        ctx.result.aborted = True
        print(f"\nFATAL: store credentials rejected, aborting run: {e}")
    except Exception as e:
        ctx.result.aborted = True
        print(f"\nFATAL: critical step failed, aborting run: {type(e).__name__}: {e}")
    ctx.result.print_summary()
    return ctx.result


async def run_transform(
    settings: Settings,
    timestamp: str,
    *,
    full: bool = False,
    store: Store | None = None,
    client: ParlamentoClient | None = None,
) -> PipelineResult:
    """Load snapshot ``timestamp`` and run the pipeline against it.

    Store and client are opened here (and closed afterwards) unless given.
    """
    _banner(f"TRANSFORM PIPELINE - snapshot {timestamp}")
    owns_store, owns_client = store is None, client is None
    result = PipelineResult()
    try:
        snapshot = await run_step(
            result, "LoadSnapshot",
            lambda: asyncio.to_thread(load_snapshot, settings.snapshot_dir, timestamp),
            critical=True,
        )
        if store is None:
            store = Store(settings.db_path)
    except Exception as e:
        if isinstance(e, StoreError):
            result.add_step(StepResult(name="OpenStore", status=ERROR, errors=[str(e)]))
        result.aborted = True
        print(f"\nFATAL: {e}")
        result.print_summary()
        return result

    if client is None:
        client = ParlamentoClient.from_settings(settings)
    ctx = PipelineContext(
        settings=settings, store=store, client=client,
        result=result, full_resync=full,
    )
    print(f"  run id: {ctx.run_id}")
    try:
        return await run_pipeline(ctx, snapshot)
    finally:
        if owns_client:
            await client.aclose()
        if owns_store:
            store.close()
