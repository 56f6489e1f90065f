from __future__ import annotations

from datetime import timedelta
from unittest.mock import MagicMock

from scripts.reposync.config import DatabaseConfig, SyncConfig
from scripts.reposync.models import Provider, SyncJob
from scripts.reposync.scheduler import _sync_job, build_scheduler


def test_one_interval_job_per_configured_provider():
    config = SyncConfig(
        database=DatabaseConfig(url="postgresql://localhost/reposync"),
        jobs=[
            SyncJob(provider=Provider.GITHUB, credentials={}, organizations=["acme"],
                    interval_minutes=30),
            SyncJob(provider=Provider.BITBUCKET, credentials={}, organizations=["ws"],
                    interval_minutes=120),
            SyncJob(provider=Provider.GITLAB, credentials={}, organizations=[]),
        ],
    )

    scheduler = build_scheduler(config, MagicMock())
    jobs = {j.id: j for j in scheduler.get_jobs()}

    assert set(jobs) == {"github", "bitbucket"}
    assert jobs["github"].trigger.interval == timedelta(minutes=30)
    assert jobs["bitbucket"].trigger.interval == timedelta(minutes=120)
    assert jobs["github"].max_instances == 1


def test_scheduled_job_runs_engine_job():
    engine = MagicMock()
    engine.run_job.return_value = []
    job = SyncJob(provider=Provider.GITHUB, credentials={}, organizations=["acme"])

    _sync_job(engine, job)

    engine.run_job.assert_called_once_with(job, None)
