"""Database helpers: connection pool, single-row upserts, sync-run tracking."""

from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from typing import Any, Generator, Optional, Sequence

import psycopg2
import psycopg2.extras
import psycopg2.pool

from scripts.reposync.config import DatabaseConfig
from scripts.reposync.models import SyncStatus

logger = logging.getLogger("reposync.db")

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS repositories (
    id                TEXT NOT NULL UNIQUE,
    provider          TEXT NOT NULL,
    provider_repo_id  TEXT NOT NULL,
    full_name         TEXT NOT NULL,
    group_path        TEXT NOT NULL,
    languages         JSONB NOT NULL DEFAULT '{}'::jsonb,
    visibility        TEXT NOT NULL,
    is_archived       BOOLEAN NOT NULL DEFAULT FALSE,
    created_at        TIMESTAMPTZ,
    last_push_at      TIMESTAMPTZ,
    last_sync_at      TIMESTAMPTZ NOT NULL,
    PRIMARY KEY (provider, provider_repo_id)
);

CREATE INDEX IF NOT EXISTS repositories_group_path_idx
    ON repositories (group_path text_pattern_ops);

CREATE TABLE IF NOT EXISTS sync_runs (
    id            UUID PRIMARY KEY,
    provider      TEXT NOT NULL,
    organization  TEXT NOT NULL,
    state         TEXT NOT NULL,
    started_at    TIMESTAMPTZ NOT NULL,
    finished_at   TIMESTAMPTZ,
    repo_count    INTEGER NOT NULL DEFAULT 0,
    error_count   INTEGER NOT NULL DEFAULT 0,
    errors        JSONB NOT NULL DEFAULT '[]'::jsonb
);

CREATE INDEX IF NOT EXISTS sync_runs_started_idx
    ON sync_runs (provider, started_at DESC);
"""


class Database:
    """Thin wrapper around a ThreadedConnectionPool with upsert helpers."""

    def __init__(self, config: DatabaseConfig) -> None:
        self._pool = psycopg2.pool.ThreadedConnectionPool(
            minconn=config.min_connections,
            maxconn=config.max_connections,
            dsn=config.url,
        )

    def close(self) -> None:
        self._pool.closeall()

    @contextmanager
    def connection(self) -> Generator:
        conn = self._pool.getconn()
        try:
            yield conn
        finally:
            self._pool.putconn(conn)

    @contextmanager
    def transaction(self) -> Generator:
        """Yield a cursor inside an auto-commit/rollback transaction."""
        with self.connection() as conn:
            try:
                with conn.cursor() as cur:
                    yield cur
                conn.commit()
            except Exception:
                conn.rollback()
                raise

    def ensure_schema(self) -> None:
        with self.transaction() as cur:
            cur.execute(SCHEMA_SQL)
        logger.info("Schema ensured")

    def upsert_row(
        self,
        cur,
        table: str,
        columns: list[str],
        row: Sequence[Any],
        conflict_columns: list[str],
    ) -> int:
        """Insert one row, or replace every non-key column on conflict.

        Returns the number of rows affected.
        """
        col_list = ", ".join(columns)
        placeholders = ", ".join(["%s"] * len(columns))
        conflict_list = ", ".join(conflict_columns)
        set_clauses = ", ".join(
            f"{c} = EXCLUDED.{c}" for c in columns if c not in conflict_columns
        )

        sql = (
            f"INSERT INTO {table} ({col_list}) VALUES ({placeholders}) "
            f"ON CONFLICT ({conflict_list}) DO UPDATE SET {set_clauses}"
        )
        cur.execute(sql, tuple(row))
        return cur.rowcount

    # ------------------------------------------------------------------
    # Sync run tracking
    # ------------------------------------------------------------------

    def record_sync_status(self, status: SyncStatus) -> str:
        """Persist one finished pass. Returns the run id."""
        run_id = str(uuid.uuid4())
        with self.transaction() as cur:
            cur.execute(
                """INSERT INTO sync_runs
                   (id, provider, organization, state, started_at, finished_at,
                    repo_count, error_count, errors)
                   VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)""",
                (
                    run_id,
                    status.provider.value,
                    status.organization,
                    status.state.value,
                    status.started_at,
                    status.finished_at,
                    status.repo_count,
                    status.error_count,
                    psycopg2.extras.Json(status.to_dict()["errors"]),
                ),
            )
        return run_id

    def get_recent_runs(
        self,
        provider: Optional[str] = None,
        limit: int = 10,
    ) -> list[dict[str, Any]]:
        """Fetch recent sync runs for status display."""
        with self.transaction() as cur:
            if provider:
                cur.execute(
                    """SELECT id, provider, organization, state, started_at,
                              finished_at, repo_count, error_count, errors
                       FROM sync_runs
                       WHERE provider = %s
                       ORDER BY started_at DESC LIMIT %s""",
                    (provider, limit),
                )
            else:
                cur.execute(
                    """SELECT id, provider, organization, state, started_at,
                              finished_at, repo_count, error_count, errors
                       FROM sync_runs
                       ORDER BY started_at DESC LIMIT %s""",
                    (limit,),
                )
            cols = [d[0] for d in cur.description]
            return [dict(zip(cols, row)) for row in cur.fetchall()]
