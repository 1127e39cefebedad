"""
Storage layer: every DuckDB interaction lives here.

Transformers talk to the warehouse only through ``Store``. The connection is
shared by concurrent pipeline branches, so each call is serialised behind an
``asyncio.Lock`` and executed in a worker thread; callers simply ``await``.

Conventions:
  - internal row ids are uuid4 strings generated here on insert
  - feed-supplied dates stay as VARCHAR exactly as published; dates produced
    by our own parsers (meetings, birth dates) are DATE
  - party vote positions are VARCHAR[] lists of acronyms
  - ``upsert`` is INSERT ... ON CONFLICT DO UPDATE ... RETURNING *, so the
    caller always gets the persisted ids back, for new and existing rows

Error classification: any DuckDB error whose message looks like a credential
problem (MotherDuck ``md:`` databases authenticate with a token) is raised as
StoreAuthError; everything else becomes StoreError.
"""

import asyncio
import re
import uuid
from pathlib import Path
from typing import Any, Iterable

import duckdb
import polars as pl

from parlwatch.errors import StoreAuthError, StoreError
from parlwatch.utils import utcnow

AUTH_MARKERS = (
    "invalid api key",
    "jwt",
    "unauthorized",
    "unauthenticated",
    "invalid token",
    "token is expired",
    "authentication",
)

SCHEMA = """
CREATE TABLE IF NOT EXISTS parties (
    id          VARCHAR PRIMARY KEY,
    external_id VARCHAR UNIQUE NOT NULL,
    acronym     VARCHAR NOT NULL,
    name        VARCHAR,
    color       VARCHAR
);

CREATE TABLE IF NOT EXISTS districts (
    id          VARCHAR PRIMARY KEY,
    external_id VARCHAR UNIQUE NOT NULL,
    name        VARCHAR
);

CREATE TABLE IF NOT EXISTS deputies (
    id            VARCHAR PRIMARY KEY,
    external_id   VARCHAR UNIQUE NOT NULL,
    cadastro_id   BIGINT,
    name          VARCHAR NOT NULL,
    short_name    VARCHAR,
    photo_url     VARCHAR,
    party_id      VARCHAR,
    district_id   VARCHAR,
    is_active     BOOLEAN DEFAULT FALSE,
    mandate_start VARCHAR,
    mandate_end   VARCHAR,
    legislature   INTEGER,
    biography_id  BIGINT
);

CREATE TABLE IF NOT EXISTS deputy_stats (
    deputy_id           VARCHAR PRIMARY KEY,
    proposal_count      INTEGER DEFAULT 0,
    intervention_count  INTEGER DEFAULT 0,
    question_count      INTEGER DEFAULT 0,
    party_votes_favor   INTEGER DEFAULT 0,
    party_votes_against INTEGER DEFAULT 0,
    party_votes_abstain INTEGER DEFAULT 0,
    party_total_votes   INTEGER DEFAULT 0,
    attendance_rate     DOUBLE DEFAULT 0,
    work_score          DOUBLE DEFAULT 0,
    grade               VARCHAR DEFAULT 'F',
    national_rank       INTEGER DEFAULT 0,
    district_rank       INTEGER DEFAULT 0,
    calculated_at       TIMESTAMP
);

CREATE TABLE IF NOT EXISTS deputy_roles (
    deputy_id  VARCHAR NOT NULL,
    role_id    BIGINT,
    role_name  VARCHAR,
    start_date VARCHAR,
    end_date   VARCHAR
);

CREATE TABLE IF NOT EXISTS deputy_party_history (
    deputy_id     VARCHAR NOT NULL,
    party_id      VARCHAR,
    party_acronym VARCHAR,
    start_date    VARCHAR,
    end_date      VARCHAR
);

CREATE TABLE IF NOT EXISTS deputy_status_history (
    deputy_id  VARCHAR NOT NULL,
    status     VARCHAR,
    start_date VARCHAR,
    end_date   VARCHAR
);

CREATE TABLE IF NOT EXISTS initiatives (
    id           VARCHAR PRIMARY KEY,
    external_id  VARCHAR UNIQUE NOT NULL,
    type         VARCHAR,
    number       VARCHAR,
    title        VARCHAR,
    status       VARCHAR,
    submitted_at VARCHAR
);

CREATE TABLE IF NOT EXISTS party_votes (
    id              VARCHAR PRIMARY KEY,
    external_id     VARCHAR UNIQUE NOT NULL,
    initiative_id   VARCHAR,
    session_number  INTEGER,
    voted_at        VARCHAR,
    result          VARCHAR,
    is_unanimous    BOOLEAN,
    parties_favor   VARCHAR[],
    parties_against VARCHAR[],
    parties_abstain VARCHAR[]
);

CREATE TABLE IF NOT EXISTS plenary_meetings (
    id           VARCHAR PRIMARY KEY,
    external_id  VARCHAR UNIQUE NOT NULL,
    meeting_date DATE,
    legislature  INTEGER
);

CREATE TABLE IF NOT EXISTS plenary_attendance (
    id         VARCHAR PRIMARY KEY,
    deputy_id  VARCHAR NOT NULL,
    meeting_id VARCHAR NOT NULL,
    status     VARCHAR NOT NULL,
    status_raw VARCHAR,
    reason     VARCHAR,
    UNIQUE (deputy_id, meeting_id)
);

CREATE TABLE IF NOT EXISTS deputy_biographies (
    deputy_id     VARCHAR PRIMARY KEY,
    birth_date    DATE,
    profession    VARCHAR,
    education     VARCHAR,
    bio_narrative VARCHAR,
    source_url    VARCHAR,
    scraped_at    TIMESTAMP
);

CREATE TABLE IF NOT EXISTS sync_state (
    dataset         VARCHAR PRIMARY KEY,
    hash            VARCHAR NOT NULL,
    file_size       BIGINT,
    last_synced_at  TIMESTAMP,
    last_changed_at TIMESTAMP
);
"""

# Tables whose rows get a generated uuid4 ``id``
ID_TABLES = {
    "parties", "districts", "deputies", "initiatives",
    "party_votes", "plenary_meetings", "plenary_attendance",
}

# Work score weights and grade cut-offs used by recalculate_all_stats
WORK_SCORE_WEIGHTS = {
    "attendance":    0.4,
    "proposals":     0.3,
    "interventions": 0.2,
    "questions":     0.1,
}
GRADE_THRESHOLDS = [("A", 85), ("B", 70), ("C", 55), ("D", 40)]

_RECALCULATE_SQL = """
UPDATE deputy_stats
SET attendance_rate = ranked.attendance_rate,
    work_score      = ranked.work_score,
    grade           = ranked.grade,
    national_rank   = ranked.national_rank,
    district_rank   = ranked.district_rank,
    calculated_at   = CAST(? AS TIMESTAMP)
FROM (
    WITH attendance AS (
        SELECT deputy_id,
               COUNT(*)                                 AS recorded,
               COUNT(*) FILTER (WHERE status = 'present') AS present
        FROM plenary_attendance
        GROUP BY deputy_id
    ),
    base AS (
        SELECT s.deputy_id,
               d.name,
               d.district_id,
               COALESCE(d.is_active, FALSE) AS is_active,
               COALESCE(a.present::DOUBLE / NULLIF(a.recorded, 0), 0) AS attendance_rate,
               COALESCE(s.proposal_count, 0)     AS proposals,
               COALESCE(s.intervention_count, 0) AS interventions,
               COALESCE(s.question_count, 0)     AS questions
        FROM deputy_stats s
        JOIN deputies d ON d.id = s.deputy_id
        LEFT JOIN attendance a ON a.deputy_id = s.deputy_id
    ),
    maxima AS (
        SELECT MAX(proposals)     AS max_p,
               MAX(interventions) AS max_i,
               MAX(questions)     AS max_q
        FROM base
    ),
    scored AS (
        SELECT b.*,
               ROUND(100 * (
                     {w_att} * b.attendance_rate
                   + {w_prop} * COALESCE(b.proposals::DOUBLE / NULLIF(m.max_p, 0), 0)
                   + {w_int} * COALESCE(b.interventions::DOUBLE / NULLIF(m.max_i, 0), 0)
                   + {w_q} * COALESCE(b.questions::DOUBLE / NULLIF(m.max_q, 0), 0)
               ), 2) AS work_score
        FROM base b CROSS JOIN maxima m
    )
    SELECT deputy_id,
           attendance_rate,
           work_score,
           CASE {grade_cases} ELSE 'F' END AS grade,
           CASE WHEN is_active
                THEN ROW_NUMBER() OVER (PARTITION BY is_active ORDER BY work_score DESC, name)
                ELSE 0 END AS national_rank,
           CASE WHEN is_active
                THEN ROW_NUMBER() OVER (PARTITION BY is_active, district_id ORDER BY work_score DESC, name)
                ELSE 0 END AS district_rank
    FROM scored
) AS ranked
WHERE deputy_stats.deputy_id = ranked.deputy_id
""".format(
    w_att=WORK_SCORE_WEIGHTS["attendance"],
    w_prop=WORK_SCORE_WEIGHTS["proposals"],
    w_int=WORK_SCORE_WEIGHTS["interventions"],
    w_q=WORK_SCORE_WEIGHTS["questions"],
    grade_cases=" ".join(f"WHEN work_score >= {t} THEN '{g}'" for g, t in GRADE_THRESHOLDS),
)

_IDENT = re.compile(r"^[a-z_][a-z0-9_]*$")


class _NotNull:
    def __repr__(self) -> str:
        return "NOT_NULL"


# ``where={"biography_id": NOT_NULL}`` → biography_id IS NOT NULL
NOT_NULL = _NotNull()


def classify_store_error(exc: Exception) -> StoreError:
    """Wrap a driver error, singling out rejected credentials."""
    message = str(exc)
    lowered = message.lower()
    if any(marker in lowered for marker in AUTH_MARKERS):
        return StoreAuthError(f"Store authentication failed: {message}")
    return StoreError(message)


def _ident(name: str) -> str:
    if not _IDENT.match(name):
        raise StoreError(f"invalid identifier: {name!r}")
    return name


def _where_clause(where: dict[str, Any] | None) -> tuple[str, list]:
    if not where:
        return "", []
    clauses, params = [], []
    for col, val in where.items():
        col = _ident(col)
        if val is None:
            clauses.append(f"{col} IS NULL")
        elif val is NOT_NULL:
            clauses.append(f"{col} IS NOT NULL")
        elif isinstance(val, (list, tuple, set, frozenset)):
            vals = list(val)
            if not vals:
                clauses.append("FALSE")
                continue
            clauses.append(f"{col} IN ({', '.join('?' for _ in vals)})")
            params.extend(vals)
        else:
            clauses.append(f"{col} = ?")
            params.append(val)
    return " WHERE " + " AND ".join(clauses), params


def _rows_as_dicts(cursor: duckdb.DuckDBPyConnection) -> list[dict]:
    if cursor.description is None:
        return []
    cols = [d[0] for d in cursor.description]
    return [dict(zip(cols, row)) for row in cursor.fetchall()]


class Store:
    """
    Async facade over one DuckDB connection.

    Parameters
    ----------
    path : str
        File path, ``:memory:`` or a MotherDuck ``md:<database>`` URI.
    """

    def __init__(self, path: str = ":memory:") -> None:
        self.path = path
        if path != ":memory:" and not path.startswith("md:"):
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        try:
            self._con = duckdb.connect(path)
            self._con.execute(SCHEMA)
        except duckdb.Error as e:
            raise classify_store_error(e) from e
        self._lock = asyncio.Lock()
        self._column_types = self._load_column_types()

    def _load_column_types(self) -> dict[str, dict[str, str]]:
        rows = self._con.execute("""
            SELECT table_name, column_name, data_type
            FROM information_schema.columns
            WHERE table_schema = 'main'
        """).fetchall()
        types: dict[str, dict[str, str]] = {}
        for table, column, data_type in rows:
            types.setdefault(table, {})[column] = data_type
        return types

    def _columns_of(self, table: str) -> dict[str, str]:
        cols = self._column_types.get(_ident(table))
        if cols is None:
            raise StoreError(f"unknown table: {table!r}")
        return cols

    async def _run(self, fn, *args):
        async with self._lock:
            try:
                return await asyncio.to_thread(fn, *args)
            except duckdb.Error as e:
                raise classify_store_error(e) from e

    # ------------------------------------------------------------------
    # Synchronous bodies (run in a worker thread)
    # ------------------------------------------------------------------

    def _prepare_rows(self, table: str, rows: list[dict]) -> tuple[list[str], list[str], list]:
        types = self._columns_of(table)
        rows = [dict(r) for r in rows]
        if table in ID_TABLES:
            for r in rows:
                r.setdefault("id", str(uuid.uuid4()))
        columns = list(rows[0].keys())
        for col in columns:
            if col not in types:
                raise StoreError(f"unknown column {table}.{col}")
        placeholder = "(" + ", ".join(f"CAST(? AS {types[c]})" for c in columns) + ")"
        params = [r.get(c) for r in rows for c in columns]
        return columns, [placeholder] * len(rows), params

    def _upsert_sync(self, table: str, rows: list[dict], conflict_key: tuple[str, ...]) -> list[dict]:
        columns, placeholders, params = self._prepare_rows(table, rows)
        updates = [c for c in columns if c not in conflict_key and c != "id"]
        action = (
            "DO UPDATE SET " + ", ".join(f"{c} = excluded.{c}" for c in updates)
            if updates else "DO NOTHING"
        )
        sql = (
            f"INSERT INTO {table} ({', '.join(columns)}) VALUES {', '.join(placeholders)} "
            f"ON CONFLICT ({', '.join(_ident(k) for k in conflict_key)}) {action} "
            f"RETURNING *"
        )
        return _rows_as_dicts(self._con.execute(sql, params))

    def _insert_sync(self, table: str, rows: list[dict]) -> int:
        columns, placeholders, params = self._prepare_rows(table, rows)
        sql = f"INSERT INTO {table} ({', '.join(columns)}) VALUES {', '.join(placeholders)}"
        self._con.execute(sql, params)
        return len(rows)

    def _update_sync(self, table: str, values: dict[str, Any], where: dict[str, Any]) -> int:
        types = self._columns_of(table)
        sets = ", ".join(f"{_ident(c)} = CAST(? AS {types[c]})" for c in values)
        where_sql, where_params = _where_clause(where)
        sql = f"UPDATE {table} SET {sets}{where_sql} RETURNING 1"
        return len(self._con.execute(sql, [*values.values(), *where_params]).fetchall())

    def _delete_sync(self, table: str, where: dict[str, Any]) -> int:
        self._columns_of(table)
        where_sql, params = _where_clause(where)
        sql = f"DELETE FROM {table}{where_sql} RETURNING 1"
        return len(self._con.execute(sql, params).fetchall())

    def _select_sync(self, table: str, columns: str, where, order_by) -> pl.DataFrame:
        self._columns_of(table)
        where_sql, params = _where_clause(where)
        order_sql = f" ORDER BY {order_by}" if order_by else ""
        return self._con.execute(f"SELECT {columns} FROM {table}{where_sql}{order_sql}", params).pl()

    def _query_sync(self, sql: str, params: list) -> pl.DataFrame:
        return self._con.execute(sql, params).pl()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def upsert(
        self,
        table: str,
        rows: list[dict],
        conflict_key: str | Iterable[str],
    ) -> list[dict]:
        """
        Insert ``rows``, updating existing ones that collide on ``conflict_key``.

        Parameters
        ----------
        table : str
            Target table.
        rows : list[dict]
            Rows sharing the first row's keys. Columns not supplied keep
            their stored value on update. Repeated conflict keys within the
            batch are dropped; the first occurrence wins.
        conflict_key : str or iterable of str
            Column(s) of the unique constraint, e.g. ``"deputy_id,meeting_id"``.

        Returns
        -------
        list[dict]
            The persisted rows (all columns), including generated ids.
        """
        if isinstance(conflict_key, str):
            key = tuple(k.strip() for k in conflict_key.split(","))
        else:
            key = tuple(conflict_key)
        unique: dict[tuple, dict] = {}
        for row in rows:
            unique.setdefault(tuple(row.get(k) for k in key), row)
        if not unique:
            return []
        return await self._run(self._upsert_sync, table, list(unique.values()), key)

    async def insert(self, table: str, rows: list[dict]) -> int:
        if not rows:
            return 0
        return await self._run(self._insert_sync, table, rows)

    async def update(self, table: str, values: dict[str, Any], where: dict[str, Any]) -> int:
        """UPDATE matching rows; returns the number of rows touched."""
        if not values:
            return 0
        return await self._run(self._update_sync, table, values, where)

    async def delete(self, table: str, where: dict[str, Any]) -> int:
        return await self._run(self._delete_sync, table, where)

    async def select(
        self,
        table: str,
        columns: str = "*",
        where: dict[str, Any] | None = None,
        order_by: str | None = None,
    ) -> pl.DataFrame:
        return await self._run(self._select_sync, table, columns, where, order_by)

    async def query(self, sql: str, params: list | None = None) -> pl.DataFrame:
        """Run read-only SQL (aggregates, joins) and return a DataFrame."""
        return await self._run(self._query_sync, sql, params or [])

    async def recalculate_all_stats(self) -> None:
        """
        Recompute attendance rate, work score, grade and ranks for every
        deputy_stats row in place.

        work_score = 100 × (0.4·attendance + 0.3·proposals/max
                            + 0.2·interventions/max + 0.1·questions/max)

        Ranks order active deputies by score (then name); inactive ones get 0.
        """
        await self._run(self._con.execute, _RECALCULATE_SQL, [utcnow()])

    def close(self) -> None:
        self._con.close()

    def __enter__(self):
        return self

    def __exit__(self, *_):
        self.close()
