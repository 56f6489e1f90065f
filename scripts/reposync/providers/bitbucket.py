"""Bitbucket provider: workspace -> project -> repository."""

from __future__ import annotations

import logging
from typing import Optional

import requests

from scripts.reposync.http_client import ProviderClient
from scripts.reposync.models import Provider, SyncJob
from scripts.reposync.normalizer import extract_group_path
from scripts.reposync.pacing import Pacer

logger = logging.getLogger("reposync.bitbucket")

DEFAULT_API_BASE_URL = "https://api.bitbucket.org/2.0"


class BitbucketAdapter:
    provider = Provider.BITBUCKET

    def __init__(self, client: ProviderClient, request_delay_ms: int = 1000) -> None:
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
    ) -> "BitbucketAdapter":
        username = job.credentials.get("username")
        app_password = job.credentials.get("app_password")
        if not username or not app_password:
            raise ValueError("Bitbucket username and app password not set")
        client = ProviderClient(
            job.api_base_url or DEFAULT_API_BASE_URL,
            pacer,
            session=session,
            headers={"Accept": "application/json"},
            auth=(username, app_password),
            timeout=timeout,
            backoff_seconds=backoff_seconds,
        )
        return cls(client, job.request_delay_ms)

    def list_repositories(self, organization: str) -> list[dict]:
        projects = self._client.get_all_values(f"/workspaces/{organization}/projects")

        repos: list[dict] = []
        for project in projects:
            key = project.get("key", "")
            project_repos = self._client.get_all_values(
                f"/repositories/{organization}",
                params={"q": f'project.key="{key}"'},
            )
            for repo in project_repos:
                if not repo.get("project"):
                    repo = {**repo, "project": {"key": key, "name": project.get("name")}}
                repos.append(repo)

        logger.info(
            "Listed %d repositories across %d projects",
            len(repos),
            len(projects),
            extra={"provider": self.provider.value, "organization": organization},
        )
        return repos

    def get_languages(self, organization: str, repo: dict) -> dict[str, float]:
        # Bitbucket reports a single primary language in the listing payload.
        language = (repo.get("language") or "").strip()
        return {language: 100.0} if language else {}

    def extract_group_path(self, raw: dict) -> str:
        return extract_group_path(self.provider, raw)
