"""GitLab provider: arbitrarily nested groups -> projects."""

from __future__ import annotations

import logging
from collections import deque
from typing import Optional
from urllib.parse import quote

import requests

from scripts.reposync.errors import TraversalFailure
from scripts.reposync.http_client import ProviderClient
from scripts.reposync.models import Provider, SyncJob
from scripts.reposync.normalizer import extract_group_path
from scripts.reposync.pacing import Pacer

logger = logging.getLogger("reposync.gitlab")

DEFAULT_API_BASE_URL = "https://gitlab.com/api/v4"


class GitLabAdapter:
    provider = Provider.GITLAB

    def __init__(
        self,
        client: ProviderClient,
        request_delay_ms: int = 100,
        max_depth: int = 20,
    ) -> None:
        self._client = client
        self.request_delay_ms = request_delay_ms
        self.max_depth = max_depth

    @classmethod
    def from_job(
        cls,
        job: SyncJob,
        pacer: Pacer,
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
        backoff_seconds: float = 60.0,
    ) -> "GitLabAdapter":
        token = job.credentials.get("token")
        if not token:
            raise ValueError("GitLab token not set")
        client = ProviderClient(
            job.api_base_url or DEFAULT_API_BASE_URL,
            pacer,
            session=session,
            headers={"PRIVATE-TOKEN": token},
            timeout=timeout,
            backoff_seconds=backoff_seconds,
        )
        return cls(client, job.request_delay_ms, job.max_depth)

    def list_repositories(self, organization: str) -> list[dict]:
        """Breadth-first walk of the group tree rooted at ``organization``.

        Each work item carries (group_id, path_prefix, depth). A group id is
        listed at most once per walk, so a subgroup reported under two
        parents, or a cycle, cannot cause relisting.
        """
        root = self._client.get_json(f"/groups/{quote(organization, safe='')}")
        root_prefix = root.get("full_path") or organization

        work: deque[tuple[int, str, int]] = deque([(root["id"], root_prefix, 0)])
        visited: set[int] = set()
        seen_projects: set[int] = set()
        projects: list[dict] = []

        while work:
            group_id, prefix, depth = work.popleft()
            if group_id in visited:
                continue
            visited.add(group_id)

            for project in self._client.get_all_gitlab(
                f"/groups/{group_id}/projects",
                params={"include_subgroups": "false", "with_shared": "false"},
            ):
                if project.get("id") in seen_projects:
                    continue
                seen_projects.add(project.get("id"))
                projects.append({**project, "_group_prefix": prefix})

            subgroups = self._client.get_all_gitlab(f"/groups/{group_id}/subgroups")
            for sub in subgroups:
                if sub["id"] in visited:
                    logger.warning(
                        "Subgroup %s already visited, skipping",
                        sub["id"],
                        extra={"provider": self.provider.value, "organization": organization},
                    )
                    continue
                if depth + 1 > self.max_depth:
                    raise TraversalFailure(
                        f"group tree under {organization!r} exceeds max depth {self.max_depth}"
                    )
                sub_prefix = sub.get("full_path") or f"{prefix}/{sub['path']}"
                work.append((sub["id"], sub_prefix, depth + 1))

        logger.info(
            "Listed %d projects across %d groups",
            len(projects),
            len(visited),
            extra={"provider": self.provider.value, "organization": organization},
        )
        return projects

    def get_languages(self, organization: str, repo: dict) -> dict[str, float]:
        # Values are percentages.
        data = self._client.get_json(f"/projects/{repo['id']}/languages")
        return {str(k): float(v) for k, v in (data or {}).items()}

    def extract_group_path(self, raw: dict) -> str:
        return extract_group_path(self.provider, raw)
