"""n8n Public API client (workflows, activation, executions, webhooks)."""
from __future__ import annotations

import logging
from typing import Any, Callable

import requests

from abb_automation.api_client import JsonApiClient
from abb_automation.config import Settings
from abb_automation.errors import TransientRemoteError
from abb_automation.polling import poll_until

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = frozenset({"success", "error", "crashed", "canceled"})


class N8nApiClient(JsonApiClient):
    """Authenticated client for ``{base_url}/api/v1``."""

    service = "n8n"

    def __init__(self, base_url: str, api_key: str, timeout: float = 30.0,
                 session: requests.Session | None = None) -> None:
        super().__init__(base_url, timeout=timeout, session=session)
        self.api_key = api_key

    @classmethod
    def from_settings(cls, settings: Settings) -> "N8nApiClient":
        return cls(settings.n8n_base_url, settings.require("n8n_api_key"),
                   timeout=settings.http_timeout)

    @classmethod
    def for_webhooks(cls, settings: Settings) -> "N8nApiClient":
        """Client for ``trigger_webhook`` only; the API key may be unset."""
        return cls(settings.n8n_base_url, settings.n8n_api_key, timeout=settings.http_timeout)

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "X-N8N-API-KEY": self.api_key,
        }

    def _url(self, endpoint: str) -> str:
        return f"{self.base_url}/api/v1{endpoint}"

    # ── Workflows ─────────────────────────────────
    def list_workflows(self) -> list[dict]:
        """List all workflows (summary objects)."""
        result = self._request("GET", "/workflows")
        return result.get("data", [])

    def get_workflow(self, workflow_id: str) -> dict:
        return self._request("GET", f"/workflows/{workflow_id}")

    def create_workflow(self, workflow: dict) -> dict:
        return self._request("POST", "/workflows", workflow)

    def update_workflow(self, workflow_id: str, workflow: dict) -> dict:
        """Full replace. n8n validates the graph; nothing is checked here."""
        return self._request("PUT", f"/workflows/{workflow_id}", workflow)

    def activate(self, workflow_id: str) -> dict:
        return self._request("POST", f"/workflows/{workflow_id}/activate")

    def deactivate(self, workflow_id: str) -> dict:
        return self._request("POST", f"/workflows/{workflow_id}/deactivate")

    def set_active(self, workflow_id: str, active: bool) -> dict:
        return self.activate(workflow_id) if active else self.deactivate(workflow_id)

    def workflow_url(self, workflow_id: str) -> str:
        """Editor URL for humans."""
        return f"{self.base_url}/workflow/{workflow_id}"

    # ── Executions ────────────────────────────────
    def list_executions(self, workflow_id: str | None = None, limit: int = 20,
                        include_data: bool = False) -> list[dict]:
        params: dict[str, Any] = {"limit": limit}
        if workflow_id:
            params["workflowId"] = workflow_id
        if include_data:
            params["includeData"] = "true"
        result = self._request("GET", "/executions", params=params)
        return result.get("data", [])

    def get_execution(self, execution_id: str, include_data: bool = False) -> dict:
        params = {"includeData": "true"} if include_data else None
        return self._request("GET", f"/executions/{execution_id}", params=params)

    def latest_execution(self, workflow_id: str) -> dict | None:
        executions = self.list_executions(workflow_id, limit=1)
        return executions[0] if executions else None

    def wait_for_execution(
        self,
        workflow_id: str,
        after_id: str | None = None,
        *,
        interval: float = 4.0,
        max_attempts: int = 80,
        sleep: Callable[[float], None] | None = None,
    ) -> dict:
        """Poll until the newest execution (other than ``after_id``) is terminal.

        Raises:
            PollTimeoutError: No terminal execution within ``max_attempts`` polls.
        """
        def fetch() -> dict | None:
            return self.latest_execution(workflow_id)

        def done(execution: dict | None) -> bool:
            if not execution or str(execution.get("id")) == str(after_id):
                return False
            return execution_status(execution) in TERMINAL_STATUSES

        def report(attempt: int, execution: dict | None) -> None:
            status = execution_status(execution) if execution else "waiting"
            logger.info("Status: %s (%.0fs elapsed)", status, attempt * interval)

        kwargs: dict[str, Any] = {"interval": interval, "max_attempts": max_attempts,
                                  "on_attempt": report, "what": f"execution of {workflow_id}"}
        if sleep is not None:
            kwargs["sleep"] = sleep
        return poll_until(fetch, done, **kwargs)

    # ── Webhooks ──────────────────────────────────
    def trigger_webhook(self, path: str, payload: dict | None = None) -> requests.Response:
        """POST to a production webhook (``/webhook/...``); no API key is sent.

        The raw response is returned whatever its status so callers can
        report it; only connection failures raise.
        """
        if not path.startswith("/"):
            path = "/" + path
        url = f"{self.base_url}{path}"
        try:
            return self.session.post(url, json=payload or {}, timeout=self.timeout)
        except requests.RequestException as exc:
            logger.error("Webhook call failed: %s (%s)", url, exc)
            raise TransientRemoteError(self.service, None, str(exc)) from exc


def execution_status(execution: dict) -> str:
    """Status of an execution summary; older n8n versions only set ``finished``."""
    status = execution.get("status")
    if status:
        return status
    return "success" if execution.get("finished") else "running"


def node_results(execution: dict) -> list[dict]:
    """Summarise ``data.resultData.runData`` of an execution fetched with data.

    One entry per node: its name, the error message of the last run (or
    None) and the item count on the first output.
    """
    run_data = ((execution.get("data") or {}).get("resultData") or {}).get("runData") or {}
    results = []
    for node_name, runs in run_data.items():
        last = runs[-1] if runs else {}
        error = last.get("error")
        outputs = ((last.get("data") or {}).get("main") or [[]])
        results.append({
            "node": node_name,
            "error": error.get("message", str(error)) if isinstance(error, dict) else error,
            "items": len(outputs[0] or []) if outputs else 0,
        })
    return results
