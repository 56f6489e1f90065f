"""AWS Lambda handler for repository sync.

Triggered by EventBridge rules; each invocation runs one pass per
organisation for a single provider.

Event format:
  {"provider": "github"}
  {"provider": "gitlab", "organizations": ["myorg/platform"]}
"""

from __future__ import annotations

import json
import logging
import os

from scripts.reposync.cli import build_engine, select_jobs
from scripts.reposync.config import load_config
from scripts.reposync.db import Database
from scripts.reposync.logging_config import configure_logging
from scripts.reposync.models import PassState, Provider

logger = logging.getLogger("reposync.lambda")


def handler(event: dict, context) -> dict:
    """Lambda entry point."""
    configure_logging(os.environ.get("LOG_LEVEL", "INFO"))

    provider = event.get("provider", "")
    if provider not in {p.value for p in Provider}:
        return {"statusCode": 400, "body": f"Unknown or missing provider {provider!r}"}

    logger.info("Lambda invoked", extra={"provider": provider})

    config = load_config()
    jobs = select_jobs(config, provider, event.get("organizations"))
    if not jobs:
        return {
            "statusCode": 200,
            "body": json.dumps({"skipped": True, "reason": f"{provider} not configured"}),
        }

    db = Database(config.database)
    try:
        engine = build_engine(config, db)
        statuses = engine.run_job(jobs[0])
    except Exception as exc:
        logger.error("Sync failed: %s", exc, exc_info=True, extra={"provider": provider})
        return {
            "statusCode": 500,
            "body": json.dumps({"provider": provider, "error": str(exc)}),
        }
    finally:
        db.close()

    failed = any(s.state is PassState.FAILED for s in statuses)
    return {
        "statusCode": 500 if failed else 200,
        "body": json.dumps({
            "provider": provider,
            "passes": [s.to_dict() for s in statuses],
        }),
    }
