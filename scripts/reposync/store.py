"""Repository store: idempotent upsert keyed by (provider, provider_repo_id).

Last write wins with full replacement. Rows are never deleted by sync.
"""

from __future__ import annotations

import logging
import threading
from typing import Optional, Protocol

import psycopg2
import psycopg2.extras

from scripts.reposync.db import Database
from scripts.reposync.errors import UpsertFailure
from scripts.reposync.models import Repository

logger = logging.getLogger("reposync.store")

REPOSITORY_COLUMNS = [
    "id", "provider", "provider_repo_id", "full_name", "group_path",
    "languages", "visibility", "is_archived", "created_at", "last_push_at",
    "last_sync_at",
]
CONFLICT_COLUMNS = ["provider", "provider_repo_id"]


class RepositoryStore(Protocol):
    def upsert(self, repo: Repository) -> None:
        """Insert or fully replace one row. Raises UpsertFailure."""


class PostgresRepositoryStore:
    """Upserts each record in its own transaction."""

    def __init__(self, db: Database) -> None:
        self.db = db

    def upsert(self, repo: Repository) -> None:
        row = (
            repo.id,
            repo.provider.value,
            repo.provider_repo_id,
            repo.full_name,
            repo.group_path,
            psycopg2.extras.Json(repo.languages),
            repo.visibility.value,
            repo.is_archived,
            repo.created_at,
            repo.last_push_at,
            repo.last_sync_at,
        )
        try:
            with self.db.transaction() as cur:
                self.db.upsert_row(
                    cur, "repositories", REPOSITORY_COLUMNS, row, CONFLICT_COLUMNS
                )
        except psycopg2.Error as exc:
            raise UpsertFailure(f"{repo.id}: {exc}") from exc


class InMemoryRepositoryStore:
    """Dict-backed store with the same contract, for dry runs."""

    def __init__(self) -> None:
        self._rows: dict[tuple[str, str], Repository] = {}
        self._lock = threading.Lock()

    def upsert(self, repo: Repository) -> None:
        with self._lock:
            self._rows[repo.key] = repo

    def get(self, provider: str, provider_repo_id: str) -> Optional[Repository]:
        with self._lock:
            return self._rows.get((provider, provider_repo_id))

    def all(self) -> list[Repository]:
        with self._lock:
            return list(self._rows.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._rows)
