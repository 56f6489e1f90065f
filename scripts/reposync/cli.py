"""CLI entry point: sync, scheduler, status, init-db."""

from __future__ import annotations

import argparse
import dataclasses
import functools
import logging
import sys
from typing import Optional

from scripts.reposync.config import SyncConfig, load_config
from scripts.reposync.db import Database
from scripts.reposync.engine import SyncEngine, run_jobs_concurrently
from scripts.reposync.logging_config import configure_logging
from scripts.reposync.models import PassState, Provider, SyncJob, SyncStatus
from scripts.reposync.providers import build_adapter
from scripts.reposync.store import InMemoryRepositoryStore, PostgresRepositoryStore

logger = logging.getLogger("reposync.cli")

PROVIDER_CHOICES = ["all"] + [p.value for p in Provider]


def _load_config() -> SyncConfig:
    """Load configuration and apply its log level."""
    config = load_config()
    configure_logging(config.log_level)
    return config


def build_engine(config: SyncConfig, db: Optional[Database]) -> SyncEngine:
    """Wire an engine to Postgres, or to an in-memory store when db is None."""
    adapter_factory = functools.partial(
        build_adapter,
        timeout=config.engine.http_timeout_seconds,
        backoff_seconds=config.engine.rate_limit_backoff_seconds,
    )
    if db is None:
        return SyncEngine(InMemoryRepositoryStore(), adapter_factory=adapter_factory)
    return SyncEngine(
        PostgresRepositoryStore(db),
        status_sink=db.record_sync_status,
        adapter_factory=adapter_factory,
    )


def select_jobs(
    config: SyncConfig,
    provider: str,
    organizations: Optional[list[str]] = None,
) -> list[SyncJob]:
    """Pick configured jobs for a provider choice, optionally overriding orgs."""
    if provider == "all":
        jobs = list(config.jobs)
    else:
        job = config.job_for(Provider(provider))
        if job is None:
            logger.warning("%s not configured, skipping", provider)
            return []
        jobs = [job]
    if organizations:
        jobs = [dataclasses.replace(j, organizations=list(organizations)) for j in jobs]
    return jobs


def print_statuses(statuses: list[SyncStatus]) -> None:
    fmt = "{:<10}  {:<32}  {:<10}  {:>6}  {:>6}"
    print(fmt.format("PROVIDER", "ORGANIZATION", "STATE", "REPOS", "ERRORS"))
    print("-" * 72)
    for s in statuses:
        print(fmt.format(
            s.provider.value, s.organization[:32], s.state.value,
            s.repo_count, s.error_count,
        ))
        for err in s.errors:
            print(f"    {err.kind}: {err.id}: {err.reason[:100]}")


def cmd_sync(args: argparse.Namespace) -> None:
    """Run one pass now for each selected job."""
    config = _load_config()
    jobs = select_jobs(config, args.provider, args.org)
    db = None if args.dry_run else Database(config.database)

    try:
        engine = build_engine(config, db)
        statuses = run_jobs_concurrently(
            engine, jobs, max_workers=config.engine.max_concurrent_passes
        )
    finally:
        if db is not None:
            db.close()

    print_statuses(statuses)
    if any(s.state is PassState.FAILED for s in statuses):
        sys.exit(1)


def cmd_scheduler(args: argparse.Namespace) -> None:
    """Start the APScheduler-based scheduling loop."""
    from scripts.reposync.scheduler import start_scheduler

    config = _load_config()
    db = Database(config.database)
    try:
        start_scheduler(config, build_engine(config, db))
    finally:
        db.close()


def cmd_status(args: argparse.Namespace) -> None:
    """Show recent sync runs."""
    config = _load_config()
    db = Database(config.database)

    try:
        runs = db.get_recent_runs(
            provider=args.provider if args.provider != "all" else None,
            limit=args.limit,
        )
        if not runs:
            print("No sync runs found.")
            return

        fmt = "{:<36}  {:<10}  {:<24}  {:<10}  {:<20}  {:<20}  {:>6}  {:>6}"
        print(fmt.format(
            "RUN ID", "PROVIDER", "ORGANIZATION", "STATE",
            "STARTED", "FINISHED", "REPOS", "ERRORS",
        ))
        print("-" * 150)
        for r in runs:
            started = str(r["started_at"])[:19] if r["started_at"] else ""
            finished = str(r["finished_at"])[:19] if r["finished_at"] else ""
            print(fmt.format(
                str(r["id"])[:36],
                r["provider"],
                r["organization"][:24],
                r["state"],
                started,
                finished,
                r.get("repo_count", 0),
                r.get("error_count", 0),
            ))
    finally:
        db.close()


def cmd_init_db(args: argparse.Namespace) -> None:
    """Create tables and indexes if missing."""
    config = _load_config()
    db = Database(config.database)
    try:
        db.ensure_schema()
    finally:
        db.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="reposync",
        description="Repository metadata sync across GitHub, GitLab and Bitbucket",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    sync_parser = subparsers.add_parser("sync", help="Run one sync pass now")
    sync_parser.add_argument(
        "--provider", "-p",
        choices=PROVIDER_CHOICES,
        default="all",
        help="Provider to sync (default: all)",
    )
    sync_parser.add_argument(
        "--org", "-o",
        action="append",
        help="Organization/group/workspace to sync (repeatable; default: configured)",
    )
    sync_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Sync into memory without touching the database",
    )
    sync_parser.set_defaults(func=cmd_sync)

    sched_parser = subparsers.add_parser("scheduler", help="Start scheduled sync loop")
    sched_parser.set_defaults(func=cmd_scheduler)

    status_parser = subparsers.add_parser("status", help="Show recent sync runs")
    status_parser.add_argument(
        "--provider", "-p",
        choices=PROVIDER_CHOICES,
        default="all",
        help="Filter by provider",
    )
    status_parser.add_argument(
        "--limit", "-l",
        type=int,
        default=10,
        help="Number of runs to show (default: 10)",
    )
    status_parser.set_defaults(func=cmd_status)

    init_parser = subparsers.add_parser("init-db", help="Create database schema")
    init_parser.set_defaults(func=cmd_init_db)
    return parser


def main(argv: Optional[list[str]] = None) -> None:
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)
    configure_logging()
    args.func(args)
