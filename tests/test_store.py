from __future__ import annotations

from contextlib import contextmanager
from unittest.mock import MagicMock

import psycopg2
import pytest

from scripts.reposync.db import Database
from scripts.reposync.errors import UpsertFailure
from scripts.reposync.models import (
    PassState,
    Provider,
    Repository,
    SyncFailure,
    SyncStatus,
    Visibility,
)
from scripts.reposync.store import InMemoryRepositoryStore, PostgresRepositoryStore


def _repo(fixed_now, **overrides) -> Repository:
    fields = dict(
        provider=Provider.GITLAB,
        provider_repo_id="30",
        full_name="myorg/platform/backend/api-service",
        group_path="myorg/platform/backend",
        languages={"Python": 81.5},
        visibility=Visibility.INTERNAL,
        is_archived=False,
        created_at="2021-01-01T00:00:00Z",
        last_push_at="2024-06-01T00:00:00Z",
        last_sync_at=fixed_now,
    )
    fields.update(overrides)
    return Repository(**fields)


def _db_with_cursor(error=None):
    db = Database.__new__(Database)
    cur = MagicMock()
    cur.rowcount = 1

    @contextmanager
    def transaction():
        if error is not None:
            raise error
        yield cur

    db.transaction = transaction
    return db, cur


def test_postgres_upsert_replaces_every_non_key_column(fixed_now):
    db, cur = _db_with_cursor()

    PostgresRepositoryStore(db).upsert(_repo(fixed_now))

    sql, params = cur.execute.call_args[0]
    assert sql.startswith("INSERT INTO repositories (id, provider, provider_repo_id,")
    assert "ON CONFLICT (provider, provider_repo_id) DO UPDATE SET" in sql
    for col in ("full_name", "group_path", "languages", "visibility",
                "is_archived", "created_at", "last_push_at", "last_sync_at", "id"):
        assert f"{col} = EXCLUDED.{col}" in sql
    assert "provider = EXCLUDED.provider" not in sql
    assert "provider_repo_id = EXCLUDED" not in sql
    assert params[0] == "gitlab:30"
    assert params[5].adapted == {"Python": 81.5}
    assert params[6] == "internal"
    assert params[-1] == fixed_now


def test_postgres_errors_become_upsert_failures(fixed_now):
    db, _ = _db_with_cursor(error=psycopg2.OperationalError("server closed the connection"))

    with pytest.raises(UpsertFailure) as exc_info:
        PostgresRepositoryStore(db).upsert(_repo(fixed_now))
    assert "gitlab:30" in str(exc_info.value)


def test_in_memory_upsert_is_full_replacement(fixed_now):
    store = InMemoryRepositoryStore()

    store.upsert(_repo(fixed_now))
    store.upsert(_repo(fixed_now, languages={}, full_name="myorg/renamed/api", group_path="myorg/renamed"))

    assert len(store) == 1
    row = store.get("gitlab", "30")
    assert row.languages == {}
    assert row.group_path == "myorg/renamed"
    assert row.id == "gitlab:30"


def test_same_repo_id_on_different_providers_are_distinct_rows(fixed_now):
    store = InMemoryRepositoryStore()

    store.upsert(_repo(fixed_now))
    store.upsert(_repo(fixed_now, provider=Provider.GITHUB, full_name="o/r", group_path="o"))

    assert len(store) == 2


def test_record_sync_status_persists_errors(fixed_now):
    db, cur = _db_with_cursor()
    status = SyncStatus(
        provider=Provider.GITHUB,
        organization="myorg",
        started_at=fixed_now,
        finished_at=fixed_now,
        state=PassState.COMPLETED,
        repo_count=4,
        errors=[SyncFailure(id="github:3", reason="boom", kind="UpsertFailure")],
    )

    run_id = db.record_sync_status(status)

    sql, params = cur.execute.call_args[0]
    assert "INSERT INTO sync_runs" in sql
    assert params[0] == run_id
    assert params[1:4] == ("github", "myorg", "COMPLETED")
    assert params[6:8] == (4, 1)
    assert params[8].adapted == [{"id": "github:3", "reason": "boom", "kind": "UpsertFailure"}]


def test_get_recent_runs_filters_by_provider():
    db, cur = _db_with_cursor()
    cur.description = [("id",), ("provider",)]
    cur.fetchall.return_value = [("r1", "gitlab")]

    runs = db.get_recent_runs(provider="gitlab", limit=5)

    assert runs == [{"id": "r1", "provider": "gitlab"}]
    assert cur.execute.call_args[0][1] == ("gitlab", 5)
