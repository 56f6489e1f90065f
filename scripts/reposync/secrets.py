"""Provider credential resolution.

Credential values come from the environment and may be plaintext or a
reference into a cloud secret manager:

  aws-secret://NAME            whole SecretString
  aws-secret://NAME#KEY        one key of a JSON SecretString
  gcp-secret://NAME            latest version, project from GCP_PROJECT_ID
  gcp-secret://projects/...    full version resource name
"""

from __future__ import annotations

import json
import logging
import os
from typing import Optional

from scripts.reposync.models import Provider

logger = logging.getLogger("reposync.secrets")

_AWS_PREFIX = "aws-secret://"
_GCP_PREFIX = "gcp-secret://"

# provider -> ((credential key, env var), ...); every var must be set.
CREDENTIAL_ENV: dict[Provider, tuple[tuple[str, str], ...]] = {
    Provider.GITHUB: (("token", "GITHUB_TOKEN"),),
    Provider.GITLAB: (("token", "GITLAB_TOKEN"),),
    Provider.BITBUCKET: (
        ("username", "BITBUCKET_USERNAME"),
        ("app_password", "BITBUCKET_APP_PASSWORD"),
    ),
}


def resolve_credentials(provider: Provider) -> Optional[dict[str, str]]:
    """Build the credentials dict for a provider's sync job.

    Returns None when any required variable is unset, which means the
    provider is not configured.
    """
    raw = {key: os.environ.get(var, "") for key, var in CREDENTIAL_ENV[provider]}
    missing = [var for key, var in CREDENTIAL_ENV[provider] if not raw[key]]
    if missing:
        if len(missing) < len(raw):
            logger.warning(
                "Partial credentials, %s unset", ", ".join(missing),
                extra={"provider": provider.value},
            )
        return None
    return {key: resolve_secret(value) for key, value in raw.items()}


def resolve_secret(value: str) -> str:
    """Resolve a secret reference; anything else is returned as-is."""
    if value.startswith(_AWS_PREFIX):
        return _from_aws(value[len(_AWS_PREFIX):])
    if value.startswith(_GCP_PREFIX):
        return _from_gcp(value[len(_GCP_PREFIX):])
    return value


def _from_aws(ref: str) -> str:
    import boto3

    secret_id, _, json_key = ref.partition("#")
    client = boto3.client(
        "secretsmanager", region_name=os.environ.get("AWS_REGION", "us-east-1")
    )
    secret = client.get_secret_value(SecretId=secret_id)["SecretString"]
    return str(json.loads(secret)[json_key]) if json_key else secret


def _from_gcp(ref: str) -> str:
    from google.cloud import secretmanager

    if ref.startswith("projects/"):
        name = ref
    else:
        project = os.environ.get("GCP_PROJECT_ID", "")
        if not project:
            raise RuntimeError(f"GCP_PROJECT_ID is required to resolve secret {ref!r}")
        name = f"projects/{project}/secrets/{ref}/versions/latest"

    client = secretmanager.SecretManagerServiceClient()
    response = client.access_secret_version(request={"name": name})
    return response.payload.data.decode("UTF-8")


def resolve_database_url() -> str:
    """DATABASE_URL if set, else a URL assembled from PG_* variables."""
    url = os.environ.get("DATABASE_URL", "")
    if url:
        return resolve_secret(url)

    password = resolve_secret(os.environ.get("PG_PASSWORD", "localdev-change-me"))
    return "postgresql://{user}:{password}@{host}:{port}/{db}".format(
        user=os.environ.get("PG_USER", "reposync"),
        password=password,
        host=os.environ.get("PG_HOST", "localhost"),
        port=os.environ.get("PG_PORT", "5432"),
        db=os.environ.get("PG_DATABASE", "reposync"),
    )
