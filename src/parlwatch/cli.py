"""
Command-line entry point.

Usage:
    parlwatch fetch                          # download a new snapshot
    parlwatch transform 2025-12-24T18-39-03Z # run the pipeline on a snapshot
    parlwatch transform <ts> --full          # ignore incremental/TTL filters
    parlwatch sync                           # fetch + change check + transform
    parlwatch sync --force                   # transform even when nothing changed
    parlwatch snapshots                      # list local snapshots and sync state

Exit code is 0 on success or success with warnings, 1 when a critical step
failed.
"""

import argparse
import asyncio
import sys

from parlwatch.config import CORE_DATASETS, DATASET_NAMES, Settings, load_settings
from parlwatch.errors import ParlwatchError
from parlwatch.parlamento_client import ParlamentoClient
from parlwatch.pipeline import run_transform
from parlwatch.snapshots import fetch_datasets, list_snapshots, make_timestamp
from parlwatch.store import Store
from parlwatch.sync_state import (
    check_all_datasets_changed,
    get_all_sync_states,
    update_all_sync_states,
)
from parlwatch.utils import configure_utf8


async def cmd_fetch(settings: Settings) -> str:
    timestamp = make_timestamp()
    print(f"Snapshot: {timestamp}\n")
    async with ParlamentoClient.from_settings(settings) as client:
        await fetch_datasets(client, settings.snapshot_dir, timestamp)
    print(f"\nRun transform with: parlwatch transform {timestamp}")
    return timestamp


async def cmd_transform(settings: Settings, timestamp: str, full: bool) -> int:
    result = await run_transform(settings, timestamp, full=full)
    return result.exit_code()


async def cmd_sync(settings: Settings, force: bool, full: bool) -> int:
    timestamp = await cmd_fetch(settings)

    print("\nChecking datasets for changes...")
    with Store(settings.db_path) as store:
        changes = await check_all_datasets_changed(
            store, settings.snapshot_dir / timestamp, DATASET_NAMES
        )
        changed_core = [n for n in CORE_DATASETS if n in changes and changes[n].has_changed]
        print(f"  core datasets changed: {', '.join(changed_core) or 'none'}")
        if not changed_core and not force:
            await update_all_sync_states(store, changes)
            print("  nothing to transform (use --force to run anyway)")
            return 0
        if force:
            # stored hashes still record the real comparison
            print("  --force: transforming regardless of change detection")

        async with ParlamentoClient.from_settings(settings) as client:
            result = await run_transform(settings, timestamp, full=full, store=store, client=client)

        if not result.aborted:
            await update_all_sync_states(store, changes)
            print(f"  sync state updated for {len(changes)} datasets")
    return result.exit_code()


async def cmd_snapshots(settings: Settings) -> int:
    snapshots = list_snapshots(settings.snapshot_dir)
    if not snapshots:
        print(f"No snapshots under {settings.snapshot_dir}")
    else:
        print("Available snapshots (newest first):\n")
        for ts in snapshots:
            print(f"  {ts}")
    with Store(settings.db_path) as store:
        states = await get_all_sync_states(store)
    if states.height:
        print("\nSync state:\n")
        for row in states.iter_rows(named=True):
            print(
                f"  {row['dataset']:<18} {row['hash'][:16]}  "
                f"synced {row['last_synced_at']}  changed {row['last_changed_at']}"
            )
    return 0


def main() -> None:
    configure_utf8()
    parser = argparse.ArgumentParser(
        prog="parlwatch",
        description="Portuguese Parliament open-data pipeline.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("fetch", help="Download the open-data feeds into a new snapshot.")

    p_transform = sub.add_parser("transform", help="Run the transform pipeline on a snapshot.")
    p_transform.add_argument("timestamp", help="Snapshot directory name, e.g. 2025-12-24T18-39-03Z.")
    p_transform.add_argument(
        "--full",
        action="store_true",
        help="Re-scrape every meeting and biography (ignore incremental/TTL filters).",
    )

    p_sync = sub.add_parser("sync", help="Fetch, check for changes and transform.")
    p_sync.add_argument(
        "--force",
        action="store_true",
        help="Run the transform even when no core dataset changed.",
    )
    p_sync.add_argument(
        "--full",
        action="store_true",
        help="Re-scrape every meeting and biography (ignore incremental/TTL filters).",
    )

    sub.add_parser("snapshots", help="List local snapshots and stored sync state.")

    args = parser.parse_args()
    settings = load_settings()

    try:
        if args.command == "fetch":
            asyncio.run(cmd_fetch(settings))
            code = 0
        elif args.command == "transform":
            code = asyncio.run(cmd_transform(settings, args.timestamp, args.full))
        elif args.command == "sync":
            code = asyncio.run(cmd_sync(settings, args.force, args.full))
        else:
            code = asyncio.run(cmd_snapshots(settings))
    except ParlwatchError as exc:
        print(f"FAILED [{args.command}]: {exc}")
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
