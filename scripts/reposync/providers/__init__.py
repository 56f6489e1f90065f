"""Provider adapters and the registry that selects one per provider.

Each adapter implements one traversal shape:
  github    -- flat: one listing per organisation, depth 1
  bitbucket -- two-level tree: workspace -> project -> repository
  gitlab    -- unbounded tree: group -> subgroups ... -> project
"""

from __future__ import annotations

from typing import Optional, Protocol

import requests

from scripts.reposync.models import Provider, SyncJob
from scripts.reposync.pacing import FixedDelayPacer, Pacer
from scripts.reposync.providers.bitbucket import BitbucketAdapter
from scripts.reposync.providers.github import GitHubAdapter
from scripts.reposync.providers.gitlab import GitLabAdapter


class ProviderAdapter(Protocol):
    provider: Provider
    request_delay_ms: int

    def list_repositories(self, organization: str) -> list[dict]:
        """Return every raw repository record under one organisation."""

    def get_languages(self, organization: str, repo: dict) -> dict[str, float]:
        """Return the language breakdown for one raw repository record."""

    def extract_group_path(self, raw: dict) -> str:
        """Return the normalised container path of one raw record. No I/O."""


ADAPTER_REGISTRY = {
    Provider.GITHUB: GitHubAdapter,
    Provider.GITLAB: GitLabAdapter,
    Provider.BITBUCKET: BitbucketAdapter,
}


def build_adapter(
    job: SyncJob,
    pacer: Optional[Pacer] = None,
    session: Optional[requests.Session] = None,
    timeout: float = 30.0,
    backoff_seconds: float = 60.0,
) -> ProviderAdapter:
    """Instantiate the adapter for a job's provider with a fresh pacer."""
    cls = ADAPTER_REGISTRY[job.provider]
    return cls.from_job(
        job,
        pacer or FixedDelayPacer(job.request_delay_ms),
        session=session,
        timeout=timeout,
        backoff_seconds=backoff_seconds,
    )
