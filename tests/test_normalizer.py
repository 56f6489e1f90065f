from __future__ import annotations

import pytest

from scripts.reposync.errors import InvalidRawRecord
from scripts.reposync.models import Provider, Visibility
from scripts.reposync.normalizer import (
    build_repository,
    derive_path,
    extract_group_path,
    record_label,
)

from conftest import github_repo


def test_github_flat_path(fixed_now):
    raw = {"id": 42, "full_name": "myorg/api-service"}

    path = derive_path(Provider.GITHUB, raw)
    repo = build_repository(Provider.GITHUB, raw, {}, fixed_now)

    assert path.group_path == "myorg"
    assert path.full_name == "myorg/api-service"
    assert repo.id == "github:42"


def test_github_prefers_owner_and_name():
    raw = github_repo(7, "web", org="acme", full_name="stale/old-name")
    assert derive_path(Provider.GITHUB, raw).full_name == "acme/web"


def test_gitlab_unbounded_path():
    raw = {"id": 9, "path_with_namespace": "myorg/platform/backend/api-service"}

    path = derive_path(Provider.GITLAB, raw)

    assert path.group_path == "myorg/platform/backend"
    assert path.full_name == "myorg/platform/backend/api-service"


def test_gitlab_falls_back_to_traversal_prefix():
    raw = {"id": 9, "path": "api", "_group_prefix": "myorg/platform"}
    assert derive_path(Provider.GITLAB, raw).full_name == "myorg/platform/api"


def test_bitbucket_two_level_path():
    raw = {
        "uuid": "{b1}",
        "slug": "api-service",
        "workspace": {"slug": "myworkspace"},
        "project": {"key": "platform-project"},
    }

    path = derive_path(Provider.BITBUCKET, raw)

    assert path.group_path == "myworkspace/platform-project"
    assert path.full_name == "myworkspace/platform-project/api-service"


@pytest.mark.parametrize(
    "provider,raw",
    [
        (Provider.GITHUB, github_repo(1, "a")),
        (Provider.GITHUB, {"id": 2, "full_name": "org/b"}),
        (Provider.GITLAB, {"id": 3, "path_with_namespace": "g/c"}),
        (Provider.GITLAB, {"id": 4, "path_with_namespace": "g/s1/s2/s3/s4/d"}),
        (Provider.BITBUCKET, {
            "uuid": "{5}", "slug": "e",
            "workspace": {"slug": "w"}, "project": {"key": "P"},
        }),
    ],
)
def test_group_path_is_full_name_without_last_segment(provider, raw):
    path = derive_path(provider, raw)

    head, _, last = path.full_name.rpartition("/")
    assert head == path.group_path
    assert last
    assert extract_group_path(provider, raw) == path.group_path


@pytest.mark.parametrize(
    "provider,raw",
    [
        (Provider.GITHUB, {"id": 1}),
        (Provider.GITHUB, {"id": 1, "full_name": "only-a-name"}),
        (Provider.GITHUB, {"id": 1, "full_name": "a/b/c"}),
        (Provider.GITLAB, {"id": 2, "path_with_namespace": "no-group"}),
        (Provider.GITLAB, {"id": 2, "path_with_namespace": "g//x"}),
        (Provider.BITBUCKET, {"uuid": "{3}", "slug": "x", "workspace": {"slug": "w"}}),
        (Provider.BITBUCKET, {
            "uuid": "{3}", "slug": "x/y",
            "workspace": {"slug": "w"}, "project": {"key": "P"},
        }),
    ],
)
def test_malformed_records_raise_invalid_raw_record(provider, raw):
    with pytest.raises(InvalidRawRecord):
        derive_path(provider, raw)


def test_missing_id_is_invalid(fixed_now):
    with pytest.raises(InvalidRawRecord):
        build_repository(Provider.GITHUB, {"full_name": "org/x"}, {}, fixed_now)


def test_record_label_without_id():
    assert record_label(Provider.GITHUB, {"full_name": "org/x"}) == "github:org/x"
    assert record_label(Provider.BITBUCKET, {"uuid": "{u}"}) == "bitbucket:{u}"


def test_build_repository_maps_metadata(fixed_now):
    raw = github_repo(11, "svc", visibility="internal", archived=True)

    repo = build_repository(Provider.GITHUB, raw, {"Go": 10.0}, fixed_now)

    assert repo.visibility is Visibility.INTERNAL
    assert repo.is_archived is True
    assert repo.created_at == "2021-03-01T10:00:00Z"
    assert repo.last_push_at == "2024-06-01T12:30:00Z"
    assert repo.languages == {"Go": 10.0}
    assert repo.last_sync_at == fixed_now


def test_bitbucket_has_no_archive_and_uses_is_private(fixed_now):
    raw = {
        "uuid": "{b}", "slug": "s", "is_private": False,
        "workspace": {"slug": "w"}, "project": {"key": "P"},
        "created_on": "2020-01-01T00:00:00+00:00",
        "updated_on": "2024-01-01T00:00:00+00:00",
    }

    repo = build_repository(Provider.BITBUCKET, raw, {}, fixed_now)

    assert repo.is_archived is False
    assert repo.visibility is Visibility.PUBLIC
    assert repo.last_push_at == "2024-01-01T00:00:00+00:00"


def test_github_visibility_falls_back_to_private_flag(fixed_now):
    raw = {"id": 1, "full_name": "o/r", "private": True}
    repo = build_repository(Provider.GITHUB, raw, {}, fixed_now)
    assert repo.visibility is Visibility.PRIVATE
