"""Sync engine: drives one adapter through one organisation per pass.

A pass moves IDLE -> LISTING -> PROCESSING -> COMPLETED, or ends in FAILED
when listing fails, or CANCELLED when the cancel event is observed between
repositories. Repositories are processed strictly one at a time so that the
adapter's fixed-delay pacer is the only rate control needed.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Generator, Optional

from scripts.reposync.errors import (
    InvalidRawRecord,
    LanguageFetchFailure,
    PassInProgress,
    SyncError,
    TraversalFailure,
    UpsertFailure,
)
from scripts.reposync.models import PassState, Provider, SyncFailure, SyncJob, SyncStatus
from scripts.reposync.normalizer import build_repository, record_label
from scripts.reposync.providers import ProviderAdapter, build_adapter
from scripts.reposync.store import RepositoryStore

logger = logging.getLogger("reposync.engine")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SyncEngine:
    def __init__(
        self,
        store: RepositoryStore,
        status_sink: Optional[Callable[[SyncStatus], object]] = None,
        adapter_factory: Callable[[SyncJob], ProviderAdapter] = build_adapter,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.status_sink = status_sink
        self.adapter_factory = adapter_factory
        self._clock = clock
        self._in_flight: set[tuple[Provider, str]] = set()
        self._guard = threading.Lock()

    @contextmanager
    def _claim(self, provider: Provider, organization: str) -> Generator:
        key = (provider, organization)
        with self._guard:
            if key in self._in_flight:
                raise PassInProgress(
                    f"{provider.value} pass for {organization!r} already running"
                )
            self._in_flight.add(key)
        try:
            yield
        finally:
            with self._guard:
                self._in_flight.discard(key)

    # ------------------------------------------------------------------
    # Single pass
    # ------------------------------------------------------------------

    def run_pass(
        self,
        adapter: ProviderAdapter,
        organization: str,
        cancel_event: Optional[threading.Event] = None,
    ) -> SyncStatus:
        """Run one (provider, organization) pass and return its status."""
        with self._claim(adapter.provider, organization):
            status = SyncStatus(
                provider=adapter.provider,
                organization=organization,
                started_at=self._clock(),
            )
            t0 = time.monotonic()
            try:
                self._run(adapter, organization, status, cancel_event)
            finally:
                status.finished_at = self._clock()

        extra = {
            "provider": adapter.provider.value,
            "organization": organization,
            "state": status.state.value,
            "records": status.repo_count,
            "errors": status.error_count,
            "duration_s": round(time.monotonic() - t0, 3),
        }
        if status.state is PassState.FAILED:
            logger.error("Pass failed: %s", status.errors[-1].reason, extra=extra)
        else:
            logger.info("Pass %s", status.state.value.lower(), extra=extra)

        if self.status_sink is not None:
            try:
                self.status_sink(status)
            except Exception as exc:
                logger.error(
                    "Could not record pass status: %s",
                    exc,
                    exc_info=True,
                    extra={"provider": adapter.provider.value, "organization": organization},
                )
        return status

    def _run(
        self,
        adapter: ProviderAdapter,
        organization: str,
        status: SyncStatus,
        cancel_event: Optional[threading.Event],
    ) -> None:
        status.state = PassState.LISTING
        try:
            raws = adapter.list_repositories(organization)
        except TraversalFailure as exc:
            self._fail(status, organization, exc)
            return
        except Exception as exc:
            self._fail(status, organization, TraversalFailure(str(exc)))
            return

        status.state = PassState.PROCESSING
        for raw in raws:
            if cancel_event is not None and cancel_event.is_set():
                status.state = PassState.CANCELLED
                return
            self._process_one(adapter, organization, raw, status)
        status.state = PassState.COMPLETED

    def _fail(self, status: SyncStatus, organization: str, exc: TraversalFailure) -> None:
        status.state = PassState.FAILED
        status.errors.append(
            SyncFailure(
                id=f"{status.provider.value}:{organization}",
                reason=str(exc),
                kind=exc.kind,
            )
        )

    def _record(self, status: SyncStatus, label: str, exc: SyncError) -> None:
        status.errors.append(SyncFailure(id=label, reason=str(exc), kind=exc.kind))
        logger.warning(
            "%s for %s: %s",
            exc.kind,
            label,
            exc,
            extra={
                "provider": status.provider.value,
                "organization": status.organization,
                "repo_id": label,
            },
        )

    def _process_one(
        self,
        adapter: ProviderAdapter,
        organization: str,
        raw: dict,
        status: SyncStatus,
    ) -> None:
        provider = adapter.provider
        label = record_label(provider, raw)

        # Normalise before any network call so malformed records cost nothing.
        try:
            repo = build_repository(provider, raw, {}, self._clock())
        except InvalidRawRecord as exc:
            self._record(status, label, exc)
            return

        languages: dict[str, float] = {}
        try:
            languages = adapter.get_languages(organization, raw)
        except Exception as exc:
            # Identity outranks completeness: keep going with no languages.
            self._record(status, repo.id, LanguageFetchFailure(str(exc)))

        repo = dataclasses.replace(repo, languages=languages, last_sync_at=self._clock())
        try:
            self.store.upsert(repo)
        except UpsertFailure as exc:
            self._record(status, repo.id, exc)
            return
        except Exception as exc:
            self._record(status, repo.id, UpsertFailure(str(exc)))
            return
        status.repo_count += 1

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    def run_job(
        self,
        job: SyncJob,
        cancel_event: Optional[threading.Event] = None,
        adapter: Optional[ProviderAdapter] = None,
    ) -> list[SyncStatus]:
        """Run one pass per organisation of ``job``, sequentially."""
        adapter = adapter or self.adapter_factory(job)
        statuses: list[SyncStatus] = []
        for organization in job.organizations:
            if cancel_event is not None and cancel_event.is_set():
                break
            try:
                statuses.append(self.run_pass(adapter, organization, cancel_event))
            except PassInProgress as exc:
                logger.warning(
                    "Skipping pass: %s",
                    exc,
                    extra={"provider": job.provider.value, "organization": organization},
                )
        return statuses


def run_jobs_concurrently(
    engine: SyncEngine,
    jobs: list[SyncJob],
    max_workers: int = 3,
    cancel_event: Optional[threading.Event] = None,
) -> list[SyncStatus]:
    """Run each job on its own worker; providers have disjoint rate budgets."""
    statuses: list[SyncStatus] = []
    if not jobs:
        return statuses

    with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(jobs)))) as pool:
        futures = {pool.submit(engine.run_job, job, cancel_event): job for job in jobs}
        for future in as_completed(futures):
            job = futures[future]
            try:
                statuses.extend(future.result())
            except Exception as exc:
                logger.error(
                    "Job failed: %s",
                    exc,
                    exc_info=True,
                    extra={"provider": job.provider.value},
                )
    return statuses
