"""Configuration via environment variables with cloud-native secret support.

Supports:
  - Environment variables (local dev)
  - .env files
  - AWS Secrets Manager (aws-secret://name#key)
  - GCP Secret Manager (gcp-secret://name)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

from scripts.reposync.models import Provider, SyncJob
from scripts.reposync.secrets import resolve_credentials, resolve_database_url


@dataclass(frozen=True)
class DatabaseConfig:
    url: str
    min_connections: int = 2
    max_connections: int = 10


@dataclass(frozen=True)
class EngineConfig:
    rate_limit_backoff_seconds: float = 60.0
    http_timeout_seconds: float = 30.0
    max_concurrent_passes: int = 3
    misfire_grace_time: int = 300


@dataclass(frozen=True)
class SyncConfig:
    database: DatabaseConfig
    engine: EngineConfig = field(default_factory=EngineConfig)
    jobs: list[SyncJob] = field(default_factory=list)
    log_level: str = "INFO"

    def job_for(self, provider: Provider) -> Optional[SyncJob]:
        for job in self.jobs:
            if job.provider is provider:
                return job
        return None


def _csv(name: str) -> list[str]:
    raw = os.environ.get(name, "")
    return [s.strip() for s in raw.split(",") if s.strip()]


def _int(name: str, default: int) -> int:
    return int(os.environ.get(name, str(default)))

# provider -> (organizations env var, default API base URL, default delay ms)
PROVIDER_DEFAULTS: dict[Provider, tuple[str, str, int]] = {
    Provider.GITHUB: ("GITHUB_ORGS", "https://api.github.com", 100),
    Provider.GITLAB: ("GITLAB_GROUPS", "https://gitlab.com/api/v4", 100),
    Provider.BITBUCKET: ("BITBUCKET_WORKSPACES", "https://api.bitbucket.org/2.0", 1000),
}


def _job(provider: Provider, credentials: dict[str, str]) -> SyncJob:
    organizations_var, default_base_url, default_delay_ms = PROVIDER_DEFAULTS[provider]
    prefix = provider.value.upper()
    return SyncJob(
        provider=provider,
        credentials=credentials,
        organizations=_csv(organizations_var),
        interval_minutes=_int(f"{prefix}_SYNC_INTERVAL_MIN", 60),
        request_delay_ms=_int(f"{prefix}_REQUEST_DELAY_MS", default_delay_ms),
        api_base_url=os.environ.get(f"{prefix}_API_BASE_URL", default_base_url),
        max_depth=_int(f"{prefix}_MAX_DEPTH", 20),
    )


def load_config() -> SyncConfig:
    """Load configuration from environment variables. Unconfigured providers are skipped."""
    load_dotenv()

    database = DatabaseConfig(
        url=resolve_database_url(),
        min_connections=_int("DB_MIN_CONNECTIONS", 2),
        max_connections=_int("DB_MAX_CONNECTIONS", 10),
    )

    engine = EngineConfig(
        rate_limit_backoff_seconds=float(os.environ.get("RATE_LIMIT_BACKOFF_SECONDS", "60")),
        http_timeout_seconds=float(os.environ.get("HTTP_TIMEOUT_SECONDS", "30")),
        max_concurrent_passes=_int("MAX_CONCURRENT_PASSES", 3),
        misfire_grace_time=_int("SCHEDULER_MISFIRE_GRACE_SECONDS", 300),
    )

    jobs: list[SyncJob] = []
    for provider in Provider:
        credentials = resolve_credentials(provider)
        if credentials is not None:
            jobs.append(_job(provider, credentials))

    return SyncConfig(
        database=database,
        engine=engine,
        jobs=jobs,
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
    )
