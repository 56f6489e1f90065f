"""Canonical records shared by adapters, the engine and the store."""

from __future__ import annotations

import enum
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Optional


class Provider(str, enum.Enum):
    GITHUB = "github"
    GITLAB = "gitlab"
    BITBUCKET = "bitbucket"


class Visibility(str, enum.Enum):
    PUBLIC = "public"
    INTERNAL = "internal"
    PRIVATE = "private"


class PassState(str, enum.Enum):
    IDLE = "IDLE"
    LISTING = "LISTING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


# Container depth class per provider: exact depth, or None for unbounded.
HIERARCHY_DEPTH: dict[Provider, Optional[int]] = {
    Provider.GITHUB: 1,
    Provider.BITBUCKET: 2,
    Provider.GITLAB: None,
}


@dataclass(frozen=True)
class RepoPath:
    full_name: str
    group_path: str


@dataclass(frozen=True)
class Repository:
    """One normalised repository row, keyed by (provider, provider_repo_id)."""

    provider: Provider
    provider_repo_id: str
    full_name: str
    group_path: str
    languages: dict[str, float]
    visibility: Visibility
    is_archived: bool
    created_at: Optional[str]
    last_push_at: Optional[str]
    last_sync_at: datetime

    @property
    def id(self) -> str:
        return f"{self.provider.value}:{self.provider_repo_id}"

    @property
    def key(self) -> tuple[str, str]:
        return (self.provider.value, self.provider_repo_id)


@dataclass(frozen=True)
class SyncFailure:
    id: str
    reason: str
    kind: str


@dataclass
class SyncStatus:
    """Outcome of one (provider, organization) pass."""

    provider: Provider
    organization: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    state: PassState = PassState.IDLE
    repo_count: int = 0
    errors: list[SyncFailure] = field(default_factory=list)

    @property
    def error_count(self) -> int:
        return len(self.errors)

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider": self.provider.value,
            "organization": self.organization,
            "state": self.state.value,
            "startedAt": self.started_at.isoformat(),
            "finishedAt": self.finished_at.isoformat() if self.finished_at else None,
            "repoCount": self.repo_count,
            "errorCount": self.error_count,
            "errors": [asdict(e) for e in self.errors],
        }


@dataclass(frozen=True)
class SyncJob:
    """Explicit per-call sync configuration for one provider."""

    provider: Provider
    credentials: dict[str, str]
    organizations: list[str]
    interval_minutes: int = 60
    request_delay_ms: int = 100
    api_base_url: str = ""
    max_depth: int = 20
