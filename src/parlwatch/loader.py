"""Batched writes shared by the entity transformers."""

import asyncio
from typing import Callable

from parlwatch.errors import StoreAuthError, StoreError
from parlwatch.result import StepReport
from parlwatch.store import Store
from parlwatch.utils import chunked


async def upsert_in_batches(
    store: Store,
    table: str,
    rows: list[dict],
    conflict_key: str,
    *,
    batch_size: int,
    report: StepReport,
    label: Callable[[dict], str] = lambda r: str(r.get("external_id", "?")),
) -> list[dict]:
    """
    Upsert ``rows`` in concurrent batches and return the persisted rows.

    A failed batch counts each of its rows as failed in ``report`` and the
    others carry on. Authentication failures propagate once every batch has
    settled.
    """
    batches = list(chunked(rows, batch_size))
    outcomes = await asyncio.gather(
        *(store.upsert(table, batch, conflict_key) for batch in batches),
        return_exceptions=True,
    )
    persisted: list[dict] = []
    for batch, outcome in zip(batches, outcomes):
        if isinstance(outcome, StoreAuthError):
            raise outcome
        if isinstance(outcome, StoreError):
            first = label(batch[0])
            report.record_failure(
                f"{table} batch starting at {first}: {outcome}", count=len(batch)
            )
            print(f"  ERROR: {table} batch starting at {first}: {outcome}")
            continue
        if isinstance(outcome, BaseException):
            raise outcome
        persisted.extend(outcome)
    return persisted
