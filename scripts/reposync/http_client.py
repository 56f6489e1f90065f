"""Paced HTTP access to a provider REST API.

Every request goes through the pacer first. A rate-limit rejection is
retried exactly once after a fixed backoff window; a second rejection
raises RateLimitRejected.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import requests

from scripts.reposync.errors import RateLimitRejected
from scripts.reposync.pacing import Pacer

logger = logging.getLogger("reposync.http")


def _is_rate_limited(resp: requests.Response) -> bool:
    if resp.status_code == 429:
        return True
    if resp.status_code == 403:
        if resp.headers.get("X-RateLimit-Remaining") == "0":
            return True
        return "rate limit" in resp.text.lower()
    return False


def _next_link(resp: requests.Response) -> str:
    """Return the rel="next" URL from a Link header, or ""."""
    link = resp.headers.get("Link", "")
    for part in link.split(","):
        if 'rel="next"' in part:
            return part.split(";")[0].strip().strip("<>")
    return ""


class ProviderClient:
    """Thin wrapper around a requests.Session bound to one provider."""

    def __init__(
        self,
        base_url: str,
        pacer: Pacer,
        session: Optional[requests.Session] = None,
        headers: Optional[dict[str, str]] = None,
        auth: Optional[tuple[str, str]] = None,
        timeout: float = 30.0,
        backoff_seconds: float = 60.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.pacer = pacer
        self._session = session or requests.Session()
        if headers:
            self._session.headers.update(headers)
        if auth:
            self._session.auth = auth
        self._timeout = timeout
        self._backoff_seconds = backoff_seconds

    def _url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    def get(self, path: str, params: Optional[dict] = None) -> requests.Response:
        url = self._url(path)
        for attempt in range(2):
            self.pacer.wait()
            resp = self._session.get(url, params=params, timeout=self._timeout)
            if not _is_rate_limited(resp):
                resp.raise_for_status()
                return resp
            if attempt == 0:
                logger.warning("Rate limit rejection for %s, retrying once", url)
                self.pacer.backoff(self._backoff_seconds)
        raise RateLimitRejected(f"rate limited twice on {url}")

    def get_json(self, path: str, params: Optional[dict] = None) -> Any:
        return self.get(path, params=params).json()

    def get_all_linked(self, path: str, params: Optional[dict] = None) -> list[dict]:
        """Fetch all pages of an endpoint paginated via the Link header.

        Used for GitHub.
        """
        results: list[dict] = []
        url = path
        params = dict(params or {})
        params.setdefault("per_page", "100")

        while url:
            resp = self.get(url, params=params)
            data = resp.json()
            if isinstance(data, list):
                results.extend(data)
            else:
                results.append(data)
            # The next link already carries the query string.
            url = _next_link(resp)
            params = {}
        return results

    def get_all_gitlab(self, path: str, params: Optional[dict] = None) -> list[dict]:
        """Fetch all pages of a GitLab listing.

        Follows rel="next" when present, otherwise the X-Next-Page header,
        re-issuing the original query with ``page`` set.
        """
        results: list[dict] = []
        base_params = dict(params or {})
        base_params.setdefault("per_page", "100")
        url = path
        params = dict(base_params)

        while url:
            resp = self.get(url, params=params)
            results.extend(resp.json() or [])

            next_url = _next_link(resp)
            next_page = resp.headers.get("X-Next-Page", "").strip()
            if next_url:
                url, params = next_url, {}
            elif next_page:
                url, params = path, {**base_params, "page": next_page}
            else:
                url = ""
        return results

    def get_all_values(self, path: str, params: Optional[dict] = None) -> list[dict]:
        """Fetch all pages of a Bitbucket-style {"values": [...], "next": url} listing."""
        results: list[dict] = []
        url = path
        params = dict(params or {})
        params.setdefault("pagelen", "100")

        while url:
            data = self.get(url, params=params).json()
            results.extend(data.get("values", []))
            url = data.get("next") or ""
            params = {}
        return results
