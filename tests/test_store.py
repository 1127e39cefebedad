"""Store round-trips on an in-memory DuckDB, and the score recalculation."""

from datetime import date

import polars as pl
import pytest

from parlwatch.errors import StoreAuthError, StoreError
from parlwatch.store import NOT_NULL, classify_store_error


@pytest.mark.asyncio
async def test_upsert_returns_generated_ids(store):
    rows = await store.upsert("parties", [
        {"external_id": "PS", "acronym": "PS", "name": "Partido Socialista", "color": "#FF66B2"},
        {"external_id": "CH", "acronym": "CH", "name": "Chega", "color": "#202056"},
    ], "external_id")
    assert len(rows) == 2
    assert all(r["id"] for r in rows), "every persisted row should carry its id"


@pytest.mark.asyncio
async def test_upsert_keeps_id_and_updates_fields(store):
    """Re-upserting on the natural key updates in place; the row id is stable."""
    first = await store.upsert("parties", [{"external_id": "PS", "acronym": "PS", "name": "Old"}], "external_id")
    second = await store.upsert("parties", [{"external_id": "PS", "acronym": "PS", "name": "New"}], "external_id")
    assert first[0]["id"] == second[0]["id"]
    assert second[0]["name"] == "New"
    df = await store.select("parties")
    assert df.height == 1


@pytest.mark.asyncio
async def test_upsert_dedupes_batch_first_wins(store):
    rows = await store.upsert("districts", [
        {"external_id": "1", "name": "Lisboa"},
        {"external_id": "1", "name": "Lisboa (duplicado)"},
    ], "external_id")
    assert [r["name"] for r in rows] == ["Lisboa"]


@pytest.mark.asyncio
async def test_upsert_composite_key(store):
    key = "deputy_id,meeting_id"
    await store.upsert("plenary_attendance", [{"deputy_id": "d1", "meeting_id": "m1", "status": "present"}], key)
    await store.upsert("plenary_attendance", [{"deputy_id": "d1", "meeting_id": "m1", "status": "absent_quorum"}], key)
    df = await store.select("plenary_attendance", "status")
    assert df["status"].to_list() == ["absent_quorum"]


@pytest.mark.asyncio
async def test_upsert_preserves_columns_not_supplied(store):
    await store.upsert("sync_state", [{"dataset": "agenda", "hash": "a", "last_changed_at": "2025-01-01 00:00:00"}], "dataset")
    await store.upsert("sync_state", [{"dataset": "agenda", "hash": "a", "last_synced_at": "2025-01-02 00:00:00"}], "dataset")
    df = await store.select("sync_state")
    row = df.row(0, named=True)
    assert row["last_changed_at"].isoformat() == "2025-01-01T00:00:00"
    assert row["last_synced_at"].isoformat() == "2025-01-02T00:00:00"


@pytest.mark.asyncio
async def test_list_and_date_columns(store):
    await store.upsert("party_votes", [{
        "external_id": "v1", "initiative_id": "i1",
        "parties_favor": ["PS", "PSD"], "parties_against": [], "parties_abstain": ["CH"],
    }], "external_id")
    await store.upsert("plenary_meetings", [{"external_id": "500", "meeting_date": "2024-05-10"}], "external_id")
    votes = await store.select("party_votes")
    meetings = await store.select("plenary_meetings")
    assert votes["parties_favor"].to_list() == [["PS", "PSD"]]
    assert meetings["meeting_date"].to_list() == [date(2024, 5, 10)]


@pytest.mark.asyncio
async def test_select_where_variants(store):
    await store.insert("deputies", [
        {"external_id": "1", "name": "Ana", "is_active": True, "biography_id": 10},
        {"external_id": "2", "name": "Bruno", "is_active": True, "biography_id": None},
        {"external_id": "3", "name": "Carla", "is_active": False, "biography_id": 30},
    ])
    by_list = await store.select("deputies", "name", where={"external_id": ["1", "3"]}, order_by="name")
    with_bio = await store.select("deputies", "name", where={"biography_id": NOT_NULL, "is_active": True})
    without_bio = await store.select("deputies", "name", where={"biography_id": None})
    nothing = await store.select("deputies", "name", where={"external_id": []})
    assert by_list["name"].to_list() == ["Ana", "Carla"]
    assert with_bio["name"].to_list() == ["Ana"]
    assert without_bio["name"].to_list() == ["Bruno"]
    assert nothing.height == 0
    assert isinstance(nothing, pl.DataFrame)


@pytest.mark.asyncio
async def test_update_and_delete_return_counts(store):
    await store.insert("deputy_roles", [
        {"deputy_id": "d1", "role_name": "Secretário"},
        {"deputy_id": "d1", "role_name": "Vice-Presidente"},
        {"deputy_id": "d2", "role_name": "Presidente"},
    ])
    assert await store.update("deputy_roles", {"end_date": "2025-01-01"}, {"deputy_id": "d1"}) == 2
    assert await store.delete("deputy_roles", {"deputy_id": "d1"}) == 2
    remaining = await store.select("deputy_roles", "role_name")
    assert remaining["role_name"].to_list() == ["Presidente"]


@pytest.mark.asyncio
async def test_unknown_table_or_column_raises(store):
    with pytest.raises(StoreError):
        await store.select("nope")
    with pytest.raises(StoreError):
        await store.upsert("parties", [{"external_id": "X", "acronym": "X", "bogus": 1}], "external_id")


@pytest.mark.asyncio
async def test_constraint_violation_is_store_error(store):
    with pytest.raises(StoreError) as exc_info:
        await store.insert("deputies", [{"external_id": "1", "name": None}])
    assert not isinstance(exc_info.value, StoreAuthError)


@pytest.mark.parametrize("message, auth", [
    ("Invalid API key provided", True),
    ("JWT expired", True),
    ("HTTP 401 Unauthorized", True),
    ("Constraint Error: duplicate key", False),
    ("Catalog Error: Table does not exist", False),
])
def test_classify_store_error(message, auth):
    err = classify_store_error(RuntimeError(message))
    assert isinstance(err, StoreError)
    assert isinstance(err, StoreAuthError) is auth


async def _seed_scores(store):
    deputies = await store.insert("deputies", [
        {"id": "a", "external_id": "1", "name": "Ana", "district_id": "lx", "is_active": True},
        {"id": "b", "external_id": "2", "name": "Bruno", "district_id": "lx", "is_active": True},
        {"id": "c", "external_id": "3", "name": "Carla", "district_id": "pt", "is_active": False},
        {"id": "e", "external_id": "5", "name": "Eva", "district_id": "pt", "is_active": True},
    ])
    assert deputies == 4
    await store.insert("deputy_stats", [
        {"deputy_id": "a", "proposal_count": 10, "intervention_count": 4, "question_count": 0},
        {"deputy_id": "b", "proposal_count": 5, "intervention_count": 2, "question_count": 0},
        {"deputy_id": "c", "proposal_count": 0, "intervention_count": 0, "question_count": 0},
        {"deputy_id": "e", "proposal_count": 0, "intervention_count": 0, "question_count": 0},
    ])
    await store.insert("plenary_attendance", [
        {"deputy_id": "a", "meeting_id": "m1", "status": "present"},
        {"deputy_id": "a", "meeting_id": "m2", "status": "present"},
        {"deputy_id": "b", "meeting_id": "m1", "status": "present"},
        {"deputy_id": "b", "meeting_id": "m2", "status": "absent_justified"},
    ])


@pytest.mark.asyncio
async def test_recalculate_scores_grades_and_ranks(store):
    """Weighted score against the per-metric maxima, graded and ranked."""
    await _seed_scores(store)
    await store.recalculate_all_stats()
    df = await store.select("deputy_stats", order_by="deputy_id")
    stats = {row["deputy_id"]: row for row in df.iter_rows(named=True)}

    assert stats["a"]["attendance_rate"] == pytest.approx(1.0)
    assert stats["a"]["work_score"] == pytest.approx(90.0)
    assert stats["a"]["grade"] == "A"
    assert stats["b"]["attendance_rate"] == pytest.approx(0.5)
    assert stats["b"]["work_score"] == pytest.approx(45.0)
    assert stats["b"]["grade"] == "D"
    assert stats["e"]["work_score"] == pytest.approx(0.0)
    assert stats["e"]["grade"] == "F"

    assert (stats["a"]["national_rank"], stats["b"]["national_rank"], stats["e"]["national_rank"]) == (1, 2, 3)
    assert (stats["a"]["district_rank"], stats["b"]["district_rank"], stats["e"]["district_rank"]) == (1, 2, 1)
    assert stats["c"]["national_rank"] == 0, "inactive deputies are not ranked"
    assert stats["c"]["district_rank"] == 0
    assert all(row["calculated_at"] is not None for row in stats.values())


@pytest.mark.asyncio
async def test_recalculate_with_no_activity(store):
    """All-zero metrics must not divide by zero."""
    await store.insert("deputies", [{"id": "a", "external_id": "1", "name": "Ana", "is_active": True}])
    await store.insert("deputy_stats", [{"deputy_id": "a"}])
    await store.recalculate_all_stats()
    row = (await store.select("deputy_stats")).row(0, named=True)
    assert row["work_score"] == 0
    assert row["grade"] == "F"
    assert row["national_rank"] == 1
