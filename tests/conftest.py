"""
Pytest configuration and shared fixtures.

No live services: HTTP responses are built in-process and the n8n API is
replaced by an in-memory fake.
"""
from __future__ import annotations

import copy
import json

import pytest
import requests

from abb_automation.errors import PollTimeoutError
from abb_automation.graph import ref


# ──────────────────────────────────────────────────
# HTTP helpers
# ──────────────────────────────────────────────────
def make_response(status: int = 200, body=None, url: str = "http://test.local/") -> requests.Response:
    """A real ``requests.Response`` with a JSON (or raw text) body."""
    resp = requests.Response()
    resp.status_code = status
    resp.url = url
    if body is None:
        resp._content = b""
    elif isinstance(body, (bytes, str)):
        resp._content = body.encode("utf-8") if isinstance(body, str) else body
    else:
        resp._content = json.dumps(body).encode("utf-8")
        resp.headers["Content-Type"] = "application/json"
    return resp


class RecordingSession(requests.Session):
    """Session that returns queued responses and records each call."""

    def __init__(self, *responses: requests.Response) -> None:
        super().__init__()
        self.queue = list(responses)
        self.calls: list[dict] = []

    def request(self, method, url, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        if not self.queue:
            raise AssertionError(f"Unexpected request: {method} {url}")
        item = self.queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


# ──────────────────────────────────────────────────
# Fake n8n
# ──────────────────────────────────────────────────
class FakeN8nClient:
    """In-memory stand-in for ``N8nApiClient`` holding workflows by id."""

    base_url = "http://n8n.test"

    def __init__(self, workflows: dict[str, dict] | None = None,
                 executions: list[dict] | None = None) -> None:
        self.workflows = {k: copy.deepcopy(v) for k, v in (workflows or {}).items()}
        self.executions = list(executions or [])
        self.calls: list[tuple] = []
        self.saved: list[dict] = []
        self.webhook_responses: list[requests.Response] = []

    def list_workflows(self) -> list[dict]:
        self.calls.append(("list_workflows",))
        return [{"id": k, "name": v.get("name"), "active": v.get("active")}
                for k, v in self.workflows.items()]

    def get_workflow(self, workflow_id: str) -> dict:
        self.calls.append(("get", workflow_id))
        return copy.deepcopy(self.workflows[workflow_id])

    def create_workflow(self, workflow: dict) -> dict:
        new_id = f"wf{len(self.workflows) + 1}"
        self.calls.append(("create", new_id))
        self.workflows[new_id] = {**copy.deepcopy(workflow), "id": new_id, "active": False}
        return copy.deepcopy(self.workflows[new_id])

    def update_workflow(self, workflow_id: str, workflow: dict) -> dict:
        self.calls.append(("put", workflow_id))
        self.saved.append(copy.deepcopy(workflow))
        stored = self.workflows[workflow_id]
        stored.update(copy.deepcopy(workflow))
        return copy.deepcopy(stored)

    def activate(self, workflow_id: str) -> dict:
        self.calls.append(("activate", workflow_id))
        self.workflows[workflow_id]["active"] = True
        return copy.deepcopy(self.workflows[workflow_id])

    def deactivate(self, workflow_id: str) -> dict:
        self.calls.append(("deactivate", workflow_id))
        self.workflows[workflow_id]["active"] = False
        return copy.deepcopy(self.workflows[workflow_id])

    def set_active(self, workflow_id: str, active: bool) -> dict:
        return self.activate(workflow_id) if active else self.deactivate(workflow_id)

    def workflow_url(self, workflow_id: str) -> str:
        return f"{self.base_url}/workflow/{workflow_id}"

    def list_executions(self, workflow_id=None, limit: int = 20, include_data: bool = False):
        rows = [e for e in self.executions if workflow_id in (None, e.get("workflowId"))]
        return rows[:limit]

    def latest_execution(self, workflow_id: str):
        rows = self.list_executions(workflow_id, limit=1)
        return rows[0] if rows else None

    def get_execution(self, execution_id: str, include_data: bool = False) -> dict:
        return next(e for e in self.executions if str(e["id"]) == str(execution_id))

    def wait_for_execution(self, workflow_id, after_id=None, **kwargs) -> dict:
        self.calls.append(("wait", workflow_id, after_id))
        latest = self.latest_execution(workflow_id)
        if latest is None or str(latest.get("id")) == str(after_id):
            raise PollTimeoutError(1, latest, what=f"execution of {workflow_id}")
        return latest

    def trigger_webhook(self, path: str, payload: dict | None = None) -> requests.Response:
        self.calls.append(("webhook", path, payload))
        if self.webhook_responses:
            return self.webhook_responses.pop(0)
        return make_response(200, {"message": "Workflow was started"})


# ──────────────────────────────────────────────────
# Sample graphs
# ──────────────────────────────────────────────────
def _n(name: str, ntype: str = "n8n-nodes-base.code", x: int = 0, **extra) -> dict:
    return {"id": f"id-{name}", "name": name, "type": ntype, "typeVersion": 1,
            "position": [x, 300], "parameters": {}, **extra}


@pytest.fixture
def seo_workflow() -> dict:
    """SEO report workflow: trigger -> download -> prepare -> claude."""
    return {
        "id": "9Xw3q2PtO1LPC4JH",
        "name": "ABB SEO Report",
        "active": True,
        "versionId": "v-1",
        "tags": [{"name": "seo"}],
        "nodes": [
            _n("Manual Trigger", "n8n-nodes-base.manualTrigger", 0),
            _n("Download PDF", "n8n-nodes-base.googleDrive", 220,
               credentials={"googleDriveOAuth2Api": {"id": "9pLcah8bZziqZuRW", "name": "Google Drive"}}),
            _n("Prepare: Detect Type & Build Prompt", x=660),
            _n("Claude: Analyze", "n8n-nodes-base.httpRequest", 880,
               parameters={"method": "POST",
                           "body": '={"model": "claude-3-5-sonnet-20241022", "max_tokens": 4096}'}),
        ],
        "connections": {
            "Manual Trigger": {"main": [[ref("Download PDF")]]},
            "Download PDF": {"main": [[ref("Prepare: Detect Type & Build Prompt")]]},
            "Prepare: Detect Type & Build Prompt": {"main": [[ref("Claude: Analyze")]]},
        },
        "settings": {"executionOrder": "v1", "timezone": "America/Los_Angeles"},
        "staticData": None,
    }


@pytest.fixture
def daily_workflow() -> dict:
    """Daily-progress workflow with a schedule trigger and processed-doc static data."""
    return {
        "id": "ZmIN72JrIyb4h1Ra",
        "name": "Angel Bail Bonds - Daily Progress Backfill",
        "active": False,
        "nodes": [
            _n("Run Backfill", "n8n-nodes-base.manualTrigger", 0),
            _n("Schedule Trigger", "n8n-nodes-base.scheduleTrigger", 0,
               parameters={"rule": {"interval": [{"field": "cronExpression", "expression": "0 8 * * *"}]}}),
            _n("Drive: List Docs", "n8n-nodes-base.googleDrive", 220),
            _n("Code: Skip Filter", x=440),
            _n("ClickUp: Create Daily Task", "n8n-nodes-base.httpRequest", 660),
        ],
        "connections": {
            "Run Backfill": {"main": [[ref("Drive: List Docs")]]},
            "Schedule Trigger": {"main": [[ref("Drive: List Docs")]]},
            "Drive: List Docs": {"main": [[ref("Code: Skip Filter")]]},
            "Code: Skip Filter": {"main": [[ref("ClickUp: Create Daily Task")]]},
        },
        "settings": {"executionOrder": "v1"},
        "staticData": {"global": {"docIds": {
            "doc-a": {"date": "02/02/2026", "processedAt": "2026-02-27T15:00:57.213Z"},
        }}},
    }


@pytest.fixture
def fake_n8n(seo_workflow, daily_workflow) -> FakeN8nClient:
    return FakeN8nClient({seo_workflow["id"]: seo_workflow, daily_workflow["id"]: daily_workflow})
