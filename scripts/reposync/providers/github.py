"""GitHub provider: flat organisation -> repository listing."""

from __future__ import annotations

import logging
from typing import Optional

import requests

from scripts.reposync.http_client import ProviderClient
from scripts.reposync.models import Provider, SyncJob
from scripts.reposync.normalizer import derive_path, extract_group_path
from scripts.reposync.pacing import Pacer

logger = logging.getLogger("reposync.github")

DEFAULT_API_BASE_URL = "https://api.github.com"


class GitHubAdapter:
    provider = Provider.GITHUB

    def __init__(self, client: ProviderClient, request_delay_ms: int = 100) -> None:
        self._client = client
        self.request_delay_ms = request_delay_ms

    @classmethod
    def from_job(
        cls,
        job: SyncJob,
        pacer: Pacer,
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
        backoff_seconds: float = 60.0,
    ) -> "GitHubAdapter":
        token = job.credentials.get("token")
        if not token:
            raise ValueError("GitHub token not set")
        client = ProviderClient(
            job.api_base_url or DEFAULT_API_BASE_URL,
            pacer,
            session=session,
            headers={
                "Authorization": f"token {token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
            },
            timeout=timeout,
            backoff_seconds=backoff_seconds,
        )
        return cls(client, job.request_delay_ms)

    def list_repositories(self, organization: str) -> list[dict]:
        repos = self._client.get_all_linked(
            f"/orgs/{organization}/repos", params={"type": "all"}
        )
        logger.info(
            "Listed %d repositories",
            len(repos),
            extra={"provider": self.provider.value, "organization": organization},
        )
        return repos

    def get_languages(self, organization: str, repo: dict) -> dict[str, float]:
        # Values are byte counts per language.
        full_name = derive_path(self.provider, repo).full_name
        data = self._client.get_json(f"/repos/{full_name}/languages")
        return {str(k): float(v) for k, v in (data or {}).items()}

    def extract_group_path(self, raw: dict) -> str:
        return extract_group_path(self.provider, raw)
