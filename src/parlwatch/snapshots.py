"""
Snapshot directories: download, validation and loading.

Layout:
    data/snapshots/<timestamp>/<dataset>.json

The timestamp is the UTC fetch time with ``:`` replaced by ``-`` so it is a
valid directory name on every platform, e.g. ``2025-12-24T18-39-03Z``.
"""

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from parlwatch.config import DATASETS
from parlwatch.errors import FeedValidationError, SnapshotError
from parlwatch.feeds import (
    Activities,
    BaseInfo,
    Initiatives,
    parse_activities,
    parse_base_info,
    parse_initiatives,
)
from parlwatch.parlamento_client import ParlamentoClient
from parlwatch.sync_state import sha256_file

# Expected top-level JSON type per dataset
EXPECTED_SHAPES = {
    "informacao_base": dict,
    "agenda":          list,
    "atividades":      dict,
    "iniciativas":     list,
}


@dataclass
class Snapshot:
    timestamp: str
    base_info: BaseInfo
    initiatives: Initiatives
    activities: Activities


def make_timestamp(now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ").replace(":", "-")


def list_snapshots(snapshot_root: Path) -> list[str]:
    """Snapshot timestamps, newest first."""
    root = Path(snapshot_root)
    if not root.is_dir():
        return []
    return sorted((p.name for p in root.iterdir() if p.is_dir()), reverse=True)


def read_json(path: Path) -> Any:
    if not path.is_file():
        raise SnapshotError(f"missing dataset file: {path}")
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise SnapshotError(f"unreadable dataset file {path}: {e}") from e


def validate_snapshot_file(path: Path, dataset: str) -> None:
    data = read_json(path)
    expected = EXPECTED_SHAPES.get(dataset)
    if expected is not None and not isinstance(data, expected):
        raise FeedValidationError(
            f"{dataset}: expected a JSON {expected.__name__}, got {type(data).__name__}"
        )
    if dataset == "informacao_base" and "Deputados" not in data:
        raise FeedValidationError("informacao_base: missing 'Deputados'")


async def fetch_datasets(
    client: ParlamentoClient, snapshot_root: Path, timestamp: str
) -> Path:
    """Download every dataset into a new snapshot directory and validate it."""
    out_dir = Path(snapshot_root) / timestamp
    out_dir.mkdir(parents=True, exist_ok=True)
    for i, dataset in enumerate(DATASETS, 1):
        name = dataset["name"]
        label = f"[{i}/{len(DATASETS)}] {name}"
        content = await client.get_bytes(dataset["url"])
        path = out_dir / f"{name}.json"
        path.write_bytes(content)
        validate_snapshot_file(path, name)
        print(f"  {label}  {len(content):,} bytes  sha256: {sha256_file(path)[:16]}...")
    return out_dir


def load_snapshot(snapshot_root: Path, timestamp: str) -> Snapshot:
    snapshot_dir = Path(snapshot_root) / timestamp
    if not snapshot_dir.is_dir():
        raise SnapshotError(f"snapshot not found: {snapshot_dir}")

    base_info = parse_base_info(read_json(snapshot_dir / "informacao_base.json"))
    initiatives = parse_initiatives(read_json(snapshot_dir / "iniciativas.json"))
    activities = parse_activities(read_json(snapshot_dir / "atividades.json"))
    print(
        f"  informacao_base: {len(base_info.deputies)} deputies, "
        f"{len(base_info.parties)} parties, {len(base_info.districts)} districts"
    )
    print(f"  iniciativas: {len(initiatives.records)} initiatives")
    print(f"  atividades: {len(activities.debates)} debates")
    return Snapshot(
        timestamp=timestamp,
        base_info=base_info,
        initiatives=initiatives,
        activities=activities,
    )
