"""
Dataset change detection by content hash.

One ``sync_state`` row per dataset records the SHA-256 of the last synced
file. A dataset with no stored hash counts as changed (first sync).
``last_changed_at`` only moves when the hash differs; ``last_synced_at``
moves on every update.
"""

import asyncio
import hashlib
from dataclasses import dataclass
from pathlib import Path

from parlwatch.errors import SnapshotError, StoreAuthError
from parlwatch.store import Store
from parlwatch.utils import utcnow

_CHUNK = 1 << 20


@dataclass(frozen=True)
class DatasetChange:
    dataset: str
    has_changed: bool
    hash: str
    file_size: int


def sha256_file(path: Path) -> str:
    digest = hashlib.sha256()
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(_CHUNK), b""):
            digest.update(chunk)
    return digest.hexdigest()


async def get_stored_hash(store: Store, dataset: str) -> str | None:
    df = await store.select("sync_state", "hash", where={"dataset": dataset})
    return df["hash"][0] if df.height else None


async def check_dataset_changed(store: Store, path: Path, dataset: str) -> DatasetChange:
    path = Path(path)
    if not path.is_file():
        raise SnapshotError(f"{dataset}: file not found: {path}")
    current, stored = await asyncio.gather(
        asyncio.to_thread(sha256_file, path),
        get_stored_hash(store, dataset),
    )
    size = path.stat().st_size

    if stored is None:
        print(f"  {dataset}: first sync (no previous hash)")
        changed = True
    elif stored == current:
        print(f"  {dataset}: unchanged (hash match)")
        changed = False
    else:
        print(f"  {dataset}: changed (hash differs)")
        changed = True
    return DatasetChange(dataset=dataset, has_changed=changed, hash=current, file_size=size)


async def check_all_datasets_changed(
    store: Store, snapshot_dir: Path, datasets: list[str]
) -> dict[str, DatasetChange]:
    """Check every dataset concurrently; one unreadable file does not stop the rest."""
    outcomes = await asyncio.gather(
        *(check_dataset_changed(store, Path(snapshot_dir) / f"{name}.json", name) for name in datasets),
        return_exceptions=True,
    )
    changes: dict[str, DatasetChange] = {}
    for name, outcome in zip(datasets, outcomes):
        if isinstance(outcome, StoreAuthError):
            raise outcome
        if isinstance(outcome, Exception):
            print(f"  {name}  ERROR: {outcome}")
            continue
        if isinstance(outcome, BaseException):
            raise outcome
        changes[name] = outcome
    return changes


async def update_stored_hash(store: Store, change: DatasetChange) -> None:
    now = utcnow()
    row = {
        "dataset":        change.dataset,
        "hash":           change.hash,
        "file_size":      change.file_size,
        "last_synced_at": now,
    }
    if change.has_changed:
        row["last_changed_at"] = now
    await store.upsert("sync_state", [row], "dataset")


async def update_all_sync_states(store: Store, changes: dict[str, DatasetChange]) -> None:
    for change in changes.values():
        await update_stored_hash(store, change)


async def get_all_sync_states(store: Store):
    return await store.select("sync_state", order_by="dataset")
