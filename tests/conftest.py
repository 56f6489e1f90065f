from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Optional

import pytest
import requests

from scripts.reposync.errors import UpsertFailure
from scripts.reposync.models import Provider, Repository
from scripts.reposync.normalizer import extract_group_path
from scripts.reposync.store import InMemoryRepositoryStore


class FakeResponse:
    def __init__(
        self,
        json_data=None,
        status_code: int = 200,
        headers: Optional[dict] = None,
        text: str = "",
    ) -> None:
        self._json = json_data
        self.status_code = status_code
        self.headers = headers or {}
        self.text = text

    def json(self):
        return self._json

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error", response=self)


class FakeSession:
    """Stands in for requests.Session; routes every GET through a handler."""

    def __init__(self, handler: Callable[[str, dict], FakeResponse]) -> None:
        self.handler = handler
        self.headers: dict[str, str] = {}
        self.auth = None
        self.calls: list[tuple[str, dict]] = []

    def get(self, url: str, params=None, timeout=None) -> FakeResponse:
        params = dict(params or {})
        self.calls.append((url, params))
        return self.handler(url, params)


class FakeAdapter:
    """In-memory adapter with scripted failures."""

    request_delay_ms = 0

    def __init__(
        self,
        repos: list[dict],
        provider: Provider = Provider.GITHUB,
        fail_languages: tuple[str, ...] = (),
        language_error: Optional[Exception] = None,
        list_error: Optional[Exception] = None,
    ) -> None:
        self.provider = provider
        self.repos = repos
        self.fail_languages = set(fail_languages)
        self.language_error = language_error or requests.ConnectionError("connection reset")
        self.list_error = list_error
        self.language_calls: list[str] = []

    def list_repositories(self, organization: str) -> list[dict]:
        if self.list_error is not None:
            raise self.list_error
        return list(self.repos)

    def get_languages(self, organization: str, repo: dict) -> dict[str, float]:
        self.language_calls.append(repo["name"])
        if repo["name"] in self.fail_languages:
            raise self.language_error
        return {"Python": 1200.0, "Shell": 40.0}

    def extract_group_path(self, raw: dict) -> str:
        return extract_group_path(self.provider, raw)


class FlakyStore(InMemoryRepositoryStore):
    def __init__(self, fail_ids: tuple[str, ...] = ()) -> None:
        super().__init__()
        self.fail_ids = set(fail_ids)

    def upsert(self, repo: Repository) -> None:
        if repo.id in self.fail_ids:
            raise UpsertFailure(f"{repo.id}: connection refused")
        super().upsert(repo)


def github_repo(repo_id: int, name: str, org: str = "myorg", **extra) -> dict:
    raw = {
        "id": repo_id,
        "name": name,
        "full_name": f"{org}/{name}",
        "owner": {"login": org},
        "private": False,
        "visibility": "public",
        "archived": False,
        "created_at": "2021-03-01T10:00:00Z",
        "pushed_at": "2024-06-01T12:30:00Z",
    }
    raw.update(extra)
    return raw


@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2024, 7, 1, 9, 0, tzinfo=timezone.utc)
