"""Shared JSON-over-HTTP client used by the vendor API wrappers."""
from __future__ import annotations

import logging
from typing import Any

import requests

from abb_automation.errors import (
    MAX_BODY_CHARS,
    PermanentRemoteError,
    TransientRemoteError,
    remote_error_for,
)

logger = logging.getLogger(__name__)


class JsonApiClient:
    """Minimal authenticated JSON client.

    Subclasses set ``service`` and implement ``_headers``. Every call is a
    single request: no retries, no pagination, no caching.
    """

    service = "api"

    def __init__(self, base_url: str, timeout: float = 30.0,
                 session: requests.Session | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json"}

    def _url(self, endpoint: str) -> str:
        return f"{self.base_url}{endpoint}"

    def _request(self, method: str, endpoint: str, body: Any = None,
                 params: dict | list | None = None) -> Any:
        """Make an authenticated request and return the decoded JSON body.

        Raises:
            TransientRemoteError: No response, HTTP 429 or HTTP 5xx.
            PermanentRemoteError: Any other non-2xx status, or a 2xx body
                that is not JSON.
        """
        url = self._url(endpoint)
        try:
            resp = self.session.request(
                method, url,
                json=body,
                params=params,
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.error("Connection failed: %s %s (%s)", method, url, exc)
            raise TransientRemoteError(self.service, None, str(exc)) from exc

        if not resp.ok:
            logger.error("API %s %s -> %d: %s",
                         method, endpoint, resp.status_code, resp.text[:MAX_BODY_CHARS])
            raise remote_error_for(self.service, resp.status_code, resp.text)

        if resp.status_code == 204 or not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as exc:
            logger.error("API %s %s -> %d: body is not JSON", method, endpoint, resp.status_code)
            raise PermanentRemoteError(self.service, resp.status_code, resp.text) from exc
