"""Path normalisation: provider-native hierarchy -> (full_name, group_path).

Every derivation here is pure. A raw record that lacks a required path
component raises InvalidRawRecord; there is no other failure mode.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Optional

from scripts.reposync.errors import InvalidRawRecord
from scripts.reposync.models import (
    HIERARCHY_DEPTH,
    Provider,
    RepoPath,
    Repository,
    Visibility,
)

DELIMITER = "/"


def _segment(value: Any, what: str) -> str:
    """Validate one path component. Segments never contain the delimiter."""
    if not isinstance(value, str) or not value.strip():
        raise InvalidRawRecord(f"missing {what}")
    value = value.strip()
    if DELIMITER in value:
        raise InvalidRawRecord(f"{what} {value!r} contains {DELIMITER!r}")
    return value


def _split_path(path: Any, what: str) -> list[str]:
    if not isinstance(path, str) or not path.strip():
        raise InvalidRawRecord(f"missing {what}")
    parts = path.strip().split(DELIMITER)
    if any(not p.strip() for p in parts):
        raise InvalidRawRecord(f"{what} {path!r} has an empty segment")
    return [p.strip() for p in parts]


def _join(*segments: str) -> RepoPath:
    return RepoPath(
        full_name=DELIMITER.join(segments),
        group_path=DELIMITER.join(segments[:-1]),
    )


# ----------------------------------------------------------------------
# Per-provider path derivation
# ----------------------------------------------------------------------

def _github_path(raw: dict) -> RepoPath:
    owner = (raw.get("owner") or {}).get("login")
    name = raw.get("name")
    if owner and name:
        return _join(_segment(owner, "owner login"), _segment(name, "repository name"))
    parts = _split_path(raw.get("full_name"), "full_name")
    if len(parts) != 2:
        raise InvalidRawRecord(f"full_name {raw.get('full_name')!r} is not owner/name")
    return _join(*parts)


def _gitlab_path(raw: dict) -> RepoPath:
    path = raw.get("path_with_namespace")
    if not path and raw.get("_group_prefix") and raw.get("path"):
        # Listing payloads without the namespaced path fall back to the
        # prefix accumulated during traversal.
        path = f"{raw['_group_prefix']}{DELIMITER}{raw['path']}"
    parts = _split_path(path, "path_with_namespace")
    if len(parts) < 2:
        raise InvalidRawRecord(f"path {path!r} has no group segment")
    return _join(*parts)


def _bitbucket_path(raw: dict) -> RepoPath:
    workspace = (raw.get("workspace") or {}).get("slug")
    if not workspace and raw.get("full_name"):
        workspace = str(raw["full_name"]).split(DELIMITER, 1)[0]
    project = (raw.get("project") or {}).get("key")
    return _join(
        _segment(workspace, "workspace slug"),
        _segment(project, "project key"),
        _segment(raw.get("slug"), "repository slug"),
    )


_PATH_DERIVERS: dict[Provider, Callable[[dict], RepoPath]] = {
    Provider.GITHUB: _github_path,
    Provider.GITLAB: _gitlab_path,
    Provider.BITBUCKET: _bitbucket_path,
}


def derive_path(provider: Provider, raw: dict) -> RepoPath:
    """Derive the canonical (full_name, group_path) pair for one raw record."""
    path = _PATH_DERIVERS[provider](raw)
    depth = path.full_name.count(DELIMITER)
    expected = HIERARCHY_DEPTH[provider]
    if expected is not None and depth != expected:
        raise InvalidRawRecord(
            f"{provider.value} path {path.full_name!r} has depth {depth}, expected {expected}"
        )
    return path


def extract_group_path(provider: Provider, raw: dict) -> str:
    return derive_path(provider, raw).group_path


# ----------------------------------------------------------------------
# Metadata mapping
# ----------------------------------------------------------------------

def provider_repo_id(provider: Provider, raw: dict) -> str:
    key = "uuid" if provider is Provider.BITBUCKET else "id"
    value = raw.get(key)
    if value is None or str(value).strip() == "":
        raise InvalidRawRecord(f"missing {key}")
    return str(value)


def record_label(provider: Provider, raw: dict) -> str:
    """Best-effort identifier for error reporting, even for malformed records."""
    try:
        return f"{provider.value}:{provider_repo_id(provider, raw)}"
    except InvalidRawRecord:
        name = raw.get("full_name") or raw.get("path_with_namespace") or raw.get("name")
        return f"{provider.value}:{name or '<unknown>'}"


def _visibility(provider: Provider, raw: dict) -> Visibility:
    if provider is Provider.BITBUCKET:
        return Visibility.PRIVATE if raw.get("is_private", True) else Visibility.PUBLIC
    try:
        return Visibility(str(raw.get("visibility", "")).lower())
    except ValueError:
        return Visibility.PRIVATE if raw.get("private", True) else Visibility.PUBLIC


def _timestamps(provider: Provider, raw: dict) -> tuple[Optional[str], Optional[str]]:
    if provider is Provider.GITHUB:
        return raw.get("created_at"), raw.get("pushed_at")
    if provider is Provider.GITLAB:
        return raw.get("created_at"), raw.get("last_activity_at")
    return raw.get("created_on"), raw.get("updated_on")


def build_repository(
    provider: Provider,
    raw: dict,
    languages: dict[str, float],
    synced_at: datetime,
) -> Repository:
    path = derive_path(provider, raw)
    created_at, last_push_at = _timestamps(provider, raw)
    return Repository(
        provider=provider,
        provider_repo_id=provider_repo_id(provider, raw),
        full_name=path.full_name,
        group_path=path.group_path,
        languages=dict(languages),
        visibility=_visibility(provider, raw),
        # Bitbucket has no archive concept.
        is_archived=bool(raw.get("archived", False)),
        created_at=created_at,
        last_push_at=last_push_at,
        last_sync_at=synced_at,
    )
