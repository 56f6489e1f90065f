"""Sync error taxonomy.

Only TraversalFailure aborts a pass; every other kind is recorded against a
single repository and the pass moves on.
"""

from __future__ import annotations


class SyncError(Exception):
    kind = "SyncError"


class TraversalFailure(SyncError):
    """Containers or repositories of an organization could not be listed."""

    kind = "TraversalFailure"


class InvalidRawRecord(SyncError):
    """A raw record is missing a path component needed for normalisation."""

    kind = "InvalidRawRecord"


class LanguageFetchFailure(SyncError):
    kind = "LanguageFetchFailure"


class RateLimitRejected(SyncError):
    """The provider rejected a request for rate limiting, even after one retry."""

    kind = "RateLimitRejected"


class UpsertFailure(SyncError):
    kind = "UpsertFailure"


class PassInProgress(SyncError):
    """A pass for the same (provider, organization) is already running."""

    kind = "PassInProgress"
