"""Canva Connect API client with PKCE authorization and a local token file."""
from __future__ import annotations

import base64
import hashlib
import json
import logging
import secrets
import time
from pathlib import Path
from typing import Any, Callable
from urllib.parse import urlencode

import requests

from abb_automation.api_client import JsonApiClient
from abb_automation.config import Settings
from abb_automation.errors import (
    AuthRequiredError,
    AutomationError,
    PermanentRemoteError,
    TransientRemoteError,
    remote_error_for,
)
from abb_automation.polling import poll_until

logger = logging.getLogger(__name__)

AUTHORIZE_URL = "https://www.canva.com/api/oauth/authorize"
TOKEN_URL = "https://api.canva.com/rest/v1/oauth/token"
SCOPES = ("profile:read design:meta:read design:content:read design:content:write "
          "asset:read asset:write folder:read")
REFRESH_MARGIN_MS = 60_000
EXPORT_FORMATS = ("pdf", "png", "jpg", "svg", "pptx", "gif", "mp4")


def _b64url(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def pkce_pair() -> tuple[str, str]:
    """(code_verifier, S256 code_challenge)."""
    verifier = _b64url(secrets.token_bytes(32))
    challenge = _b64url(hashlib.sha256(verifier.encode("ascii")).digest())
    return verifier, challenge


class TokenStore:
    """JSON file holding ``access_token``, ``refresh_token``, ``expires_at`` (ms) and ``code_verifier``."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            return json.loads(self.path.read_text(encoding="utf-8"))
        except ValueError:
            logger.warning("Ignoring unreadable token file %s", self.path)
            return {}

    def save(self, **values: Any) -> dict:
        """Merge ``values`` into the file; a ``None`` value removes the key."""
        tokens = self.load()
        for key, value in values.items():
            if value is None:
                tokens.pop(key, None)
            else:
                tokens[key] = value
        self.path.write_text(json.dumps(tokens, indent=2), encoding="utf-8")
        return tokens

    def clear(self, key: str) -> None:
        self.save(**{key: None})


class CanvaClient(JsonApiClient):
    service = "Canva"

    def __init__(self, client_id: str, client_secret: str, redirect_uri: str,
                 tokens: TokenStore, base_url: str = "https://api.canva.com/rest/v1",
                 timeout: float = 30.0, session: requests.Session | None = None,
                 clock: Callable[[], float] = time.time,
                 sleep: Callable[[float], None] = time.sleep) -> None:
        super().__init__(base_url, timeout=timeout, session=session)
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.tokens = tokens
        self.clock = clock
        self.sleep = sleep

    @classmethod
    def from_settings(cls, settings: Settings) -> "CanvaClient":
        return cls(
            settings.require("canva_client_id"),
            settings.require("canva_client_secret"),
            settings.require("canva_redirect_uri"),
            TokenStore(settings.canva_tokens_file),
            base_url=settings.canva_api_base,
            timeout=settings.http_timeout,
        )

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)

    # ── OAuth ─────────────────────────────────────
    def build_auth_url(self) -> str:
        """Authorization URL for the browser; stores the PKCE verifier."""
        verifier, challenge = pkce_pair()
        self.tokens.save(code_verifier=verifier)
        params = {
            "client_id": self.client_id,
            "response_type": "code",
            "code_challenge": challenge,
            "code_challenge_method": "S256",
            "state": secrets.token_hex(16),
            "redirect_uri": self.redirect_uri,
            "scope": SCOPES,
        }
        return f"{AUTHORIZE_URL}?{urlencode(params)}"

    def _token_request(self, form: dict) -> dict:
        try:
            resp = self.session.post(TOKEN_URL, data=form,
                                     auth=(self.client_id, self.client_secret),
                                     timeout=self.timeout)
        except requests.RequestException as exc:
            raise TransientRemoteError(self.service, None, str(exc)) from exc
        if not resp.ok:
            logger.error("Token request -> %d: %s", resp.status_code, resp.text[:500])
            raise remote_error_for(self.service, resp.status_code, resp.text)
        try:
            return resp.json()
        except ValueError as exc:
            raise PermanentRemoteError(self.service, resp.status_code, resp.text) from exc

    def _store(self, data: dict, **extra: Any) -> None:
        self.tokens.save(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            expires_at=self._now_ms() + int(data.get("expires_in", 0)) * 1000,
            **extra,
        )

    def exchange_code(self, code: str) -> None:
        verifier = self.tokens.load().get("code_verifier")
        if not verifier:
            raise AuthRequiredError("No code_verifier found. Run canva_get_auth_url first.")
        data = self._token_request({
            "grant_type": "authorization_code",
            "code": code,
            "code_verifier": verifier,
            "redirect_uri": self.redirect_uri,
        })
        self._store(data, code_verifier=None)
        logger.info("Canva authenticated")

    def get_access_token(self) -> str:
        """Current access token, refreshed first when it expires within 60 s."""
        tokens = self.tokens.load()
        if not tokens.get("access_token") or not tokens.get("refresh_token"):
            raise AuthRequiredError(
                "Not authenticated. Run canva_get_auth_url then canva_exchange_code first.")
        expires_at = tokens.get("expires_at")
        if expires_at and self._now_ms() < expires_at - REFRESH_MARGIN_MS:
            return tokens["access_token"]

        logger.info("Refreshing Canva access token")
        data = self._token_request({
            "grant_type": "refresh_token",
            "refresh_token": tokens["refresh_token"],
        })
        if not data.get("refresh_token"):
            data["refresh_token"] = tokens["refresh_token"]
        self._store(data)
        return data["access_token"]

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.get_access_token()}",
            "Content-Type": "application/json",
        }

    # ── API ───────────────────────────────────────
    def get_user(self) -> dict:
        return self._request("GET", "/users/me")

    def list_designs(self, query: str | None = None, limit: int = 20) -> list[dict]:
        params: dict[str, Any] = {"limit": limit}
        if query:
            params["query"] = query
        return self._request("GET", "/designs", params=params).get("items", [])

    def get_design(self, design_id: str) -> dict:
        return self._request("GET", f"/designs/{design_id}")

    def create_design(self, title: str | None = None, design_type: str | None = None,
                      width: int | None = None, height: int | None = None,
                      unit: str = "px") -> dict:
        """Preset (``doc``, ``whiteboard``, ``presentation``) or custom-size design."""
        body: dict[str, Any] = {}
        if title:
            body["title"] = title
        if design_type:
            body["design_type"] = {"type": "preset", "name": design_type}
        elif width and height:
            body["design_type"] = {"type": "custom", "width": width, "height": height, "unit": unit}
        return self._request("POST", "/designs", body).get("design", {})

    def export_design(self, design_id: str, fmt: str, interval: float = 2.0,
                      max_attempts: int = 20) -> list[str]:
        """Start an export job and wait for its download URLs.

        Raises:
            AutomationError: The job did not start or reported failure.
            PollTimeoutError: Still running after ``max_attempts`` polls.
        """
        started = self._request("POST", f"/designs/{design_id}/exports", {"format": {"type": fmt}})
        job_id = (started.get("job") or {}).get("id")
        if not job_id:
            raise AutomationError("Export job failed to start.")

        job = poll_until(
            lambda: self._request("GET", f"/exports/{job_id}").get("job") or {},
            lambda j: j.get("status") in ("success", "failed"),
            interval=interval, max_attempts=max_attempts, sleep=self.sleep,
            what=f"export {job_id}",
        )
        if job["status"] == "failed":
            raise AutomationError(f"Export failed: {json.dumps(job.get('error'))}")
        return job.get("urls") or []

    def list_assets(self, query: str | None = None) -> list[dict]:
        params = {"query": query} if query else None
        return self._request("GET", "/assets", params=params).get("items", [])

    def get_asset(self, asset_id: str) -> dict:
        return self._request("GET", f"/assets/{asset_id}")
