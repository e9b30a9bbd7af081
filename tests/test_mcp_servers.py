"""
Tests for the MCP tool servers (registries with fake backends, and one
in-memory MCP client session).
"""
from unittest.mock import MagicMock

import anyio
import pytest
from fastapi.testclient import TestClient
from google.auth.exceptions import RefreshError, TransportError
from mcp import types
from mcp.shared.memory import create_connected_server_and_client_session

from abb_automation.errors import AuthRequiredError, PermanentRemoteError
from abb_automation.google_workspace import GoogleWorkspace
from abb_automation.mcp import canva_server, clickup_server, google_workspace_server, n8n_server
from abb_automation.mcp.protocol import NoArgs, RegistryServer, ToolRegistry, create_http_app

from conftest import make_response


def _text(result: types.CallToolResult) -> str:
    return result.content[0].text


def _demo_registry() -> ToolRegistry:
    registry = ToolRegistry("demo", "Demo tools")

    @registry.tool("ping", "Reply with pong")
    def ping(_args: NoArgs) -> str:
        return "pong"

    @registry.tool("fail", "Always fails")
    def fail(_args: NoArgs) -> str:
        raise PermanentRemoteError("Demo", 400, "bad request")

    @registry.tool("crash", "Raises something unexpected")
    def crash(_args: NoArgs) -> str:
        raise ValueError("month must be in 1..12")

    return registry


# ──────────────────────────────────────────────────
# Registry
# ──────────────────────────────────────────────────
class TestRegistry:

    @pytest.fixture
    def registry(self) -> ToolRegistry:
        return _demo_registry()

    def test_definitions_have_schemas(self, registry):
        tools = registry.definitions()
        assert [t.name for t in tools] == ["ping", "fail", "crash"]
        assert tools[0].inputSchema["type"] == "object"

    def test_call_and_errors(self, registry):
        ok = registry.call("ping", {})
        assert ok.isError is False
        assert _text(ok) == "pong"
        failed = registry.call("fail", {})
        assert failed.isError is True
        assert "HTTP 400" in _text(failed)

    def test_unexpected_exception_is_tool_error(self, registry, caplog):
        result = registry.call("crash", {})
        assert result.isError is True
        assert _text(result) == "crash failed: ValueError: month must be in 1..12"
        assert "Unexpected error in tool crash" in caplog.text

    def test_unknown_arguments_are_rejected(self, registry):
        result = registry.call("ping", {"extra": 1})
        assert result.isError is True
        assert "Invalid arguments" in _text(result)

    def test_unknown_tool_raises(self, registry):
        with pytest.raises(KeyError):
            registry.call("nope", {})


# ──────────────────────────────────────────────────
# MCP session
# ──────────────────────────────────────────────────
class TestMcpSession:

    def test_client_session_round_trip(self):
        server = RegistryServer(_demo_registry())
        seen: dict = {}

        async def session() -> None:
            async with create_connected_server_and_client_session(server._mcp_server) as client:
                seen["tools"] = await client.list_tools()
                seen["ping"] = await client.call_tool("ping", {})
                seen["fail"] = await client.call_tool("fail", {})
                seen["crash"] = await client.call_tool("crash", {})
                seen["unknown"] = await client.call_tool("nope", {})

        anyio.run(session)

        assert [t.name for t in seen["tools"].tools] == ["ping", "fail", "crash"]
        assert seen["ping"].isError is False
        assert _text(seen["ping"]) == "pong"
        assert seen["fail"].isError is True
        assert "HTTP 400" in _text(seen["fail"])
        assert seen["crash"].isError is True
        assert seen["unknown"].isError is True
        assert "Unknown tool: nope" in _text(seen["unknown"])

    def test_http_app_health(self):
        server = RegistryServer(_demo_registry())
        client = TestClient(create_http_app(server))
        assert client.get("/health").json() == {"status": "ok", "service": "demo"}

    def test_server_settings_pass_through(self):
        server = n8n_server.create_server(MagicMock(), host="0.0.0.0", port=8101)
        assert server.name == "n8n-angels-bail-bonds"
        assert server.settings.port == 8101


# ──────────────────────────────────────────────────
# n8n
# ──────────────────────────────────────────────────
class TestN8nServer:

    @pytest.fixture
    def registry(self, fake_n8n) -> ToolRegistry:
        fake_n8n.executions = [{"id": "300", "workflowId": "ZmIN72JrIyb4h1Ra", "finished": True,
                                "startedAt": "2026-03-02T08:00:00Z", "stoppedAt": "2026-03-02T08:01:00Z"}]
        return n8n_server.build_registry(fake_n8n)

    def test_tool_names(self, registry):
        assert set(registry.tools) == {"list_workflows", "get_workflow", "set_workflow_active",
                                       "list_executions", "get_execution", "trigger_webhook"}

    def test_set_workflow_active(self, registry, fake_n8n):
        result = registry.call("set_workflow_active", {"id": "ZmIN72JrIyb4h1Ra", "active": True})
        assert _text(result) == 'Workflow "Angel Bail Bonds - Daily Progress Backfill" is now active.'
        assert fake_n8n.workflows["ZmIN72JrIyb4h1Ra"]["active"] is True

    def test_list_executions_status(self, registry):
        text = _text(registry.call("list_executions", {"workflowId": "ZmIN72JrIyb4h1Ra"}))
        assert '"status": "success"' in text

    def test_trigger_webhook(self, registry, fake_n8n):
        fake_n8n.webhook_responses.append(make_response(200, {"ok": True}))
        text = _text(registry.call("trigger_webhook", {"webhookPath": "/webhook/claude-progress",
                                                       "payload": {"completed": ["x"]}}))
        assert text == 'Webhook response (200): {"ok": true}'

    def test_missing_required_argument(self, registry):
        assert registry.call("get_workflow", {}).isError is True


# ──────────────────────────────────────────────────
# ClickUp
# ──────────────────────────────────────────────────
class TestClickUpServer:

    @pytest.fixture
    def backend(self) -> MagicMock:
        return MagicMock()

    @pytest.fixture
    def registry(self, backend) -> ToolRegistry:
        return clickup_server.build_registry(backend)

    def test_create_task(self, registry, backend):
        backend.create_task.return_value = {"id": "86a1", "name": "Call Pasadena court",
                                             "url": "https://app.clickup.com/t/86a1"}
        text = _text(registry.call("create_task", {"listId": "L1", "name": "Call Pasadena court",
                                                   "priority": 2, "dueDate": "2026-03-01"}))
        assert text == 'Task created: "Call Pasadena court" (ID: 86a1)\nURL: https://app.clickup.com/t/86a1'
        backend.create_task.assert_called_once_with(
            "L1", "Call Pasadena court", description=None, status=None, priority=2,
            due_date="2026-03-01", assignees=None)

    def test_us_style_due_date_is_accepted(self, registry, backend):
        backend.create_task.return_value = {"id": "86a2", "name": "x", "url": "u"}
        result = registry.call("create_task", {"listId": "L1", "name": "x", "dueDate": "03/01/2026"})
        assert result.isError is False
        assert backend.create_task.call_args.kwargs["due_date"] == "03/01/2026"

    @pytest.mark.parametrize("tool, arguments", [
        ("create_task", {"listId": "L1", "name": "x", "dueDate": "next tuesday"}),
        ("update_task", {"taskId": "t1", "dueDate": "31/31/2026"}),
    ])
    def test_unparseable_due_date_is_rejected(self, registry, backend, tool, arguments):
        result = registry.call(tool, arguments)
        assert result.isError is True
        assert "Invalid arguments" in _text(result)
        backend.create_task.assert_not_called()
        backend.update_task.assert_not_called()

    def test_priority_is_validated(self, registry, backend):
        assert registry.call("create_task", {"listId": "L1", "name": "x", "priority": 9}).isError is True
        backend.create_task.assert_not_called()

    def test_list_tasks_summary(self, registry, backend):
        backend.list_tasks.return_value = [{
            "id": "t1", "name": "02/27/2026", "status": {"status": "open"}, "priority": None,
            "assignees": [{"username": "kai"}], "due_date": "1772323200000", "url": "u",
        }]
        text = _text(registry.call("list_tasks", {"listId": "L1"}))
        assert '"dueDate": "2026-03-01"' in text
        assert '"assignees": [\n      "kai"\n    ]' in text

    def test_add_comment(self, registry, backend):
        result = registry.call("add_comment", {"taskId": "t1", "comment": "done"})
        assert _text(result) == "Comment added to task t1."
        backend.add_comment.assert_called_once_with("t1", "done")


# ──────────────────────────────────────────────────
# Canva
# ──────────────────────────────────────────────────
class TestCanvaServer:

    def test_unauthenticated_is_tool_error(self):
        backend = MagicMock()
        backend.get_user.side_effect = AuthRequiredError("Not authenticated.")
        result = canva_server.build_registry(backend).call("canva_get_user", {})
        assert result.isError is True
        assert _text(result) == "Not authenticated."

    def test_export(self):
        backend = MagicMock()
        backend.export_design.return_value = ["https://export/1.png", "https://export/2.png"]
        result = canva_server.build_registry(backend).call(
            "canva_export_design", {"designId": "D1", "format": "png"})
        assert _text(result) == ("Export complete!\nFormat: png\nDownload URLs:\n"
                                 "https://export/1.png\nhttps://export/2.png")

    def test_export_format_is_validated(self):
        registry = canva_server.build_registry(MagicMock())
        assert registry.call("canva_export_design", {"designId": "D1", "format": "bmp"}).isError is True


# ──────────────────────────────────────────────────
# Google Workspace
# ──────────────────────────────────────────────────
class TestGoogleServer:

    @pytest.fixture
    def services(self) -> dict:
        return {name: MagicMock(name=name) for name in ("sheets", "drive", "docs", "gmail")}

    def test_sheets_read_uses_headers(self):
        backend = MagicMock()
        backend.read_values.return_value = [["Name", "Phone"], ["Angel", "555"]]
        text = _text(google_workspace_server.build_registry(backend).call(
            "sheets_read", {"spreadsheet_id": "S1", "range": "Leads"}))
        assert text.startswith('Headers: [\n  "Name",\n  "Phone"\n]\nRows (1):')
        backend.read_values.assert_called_once_with("S1", "Leads")

    def test_docs_create(self):
        backend = MagicMock()
        backend.create_doc.return_value = "D42"
        text = _text(google_workspace_server.build_registry(backend).call("docs_create", {"title": "Notes"}))
        assert text == "Created Doc: https://docs.google.com/document/d/D42/edit\nID: D42"

    def test_tool_names(self):
        names = set(google_workspace_server.build_registry(MagicMock()).tools)
        assert {"sheets_list_tabs", "drive_search", "gmail_send", "gmail_list"} <= names
        assert len(names) == 13

    def test_expired_token_is_tool_error(self, services):
        values_api = services["sheets"].spreadsheets.return_value.values.return_value
        values_api.get.return_value.execute.side_effect = RefreshError("invalid_grant")
        registry = google_workspace_server.build_registry(GoogleWorkspace(**services))
        result = registry.call("sheets_read", {"spreadsheet_id": "S1", "range": "Leads"})
        assert result.isError is True
        assert "abb-google-auth" in _text(result)

    def test_network_failure_is_tool_error(self, services):
        files = services["drive"].files.return_value
        files.list.return_value.execute.side_effect = TransportError("connection reset")
        registry = google_workspace_server.build_registry(GoogleWorkspace(**services))
        result = registry.call("drive_search", {})
        assert result.isError is True
        assert "connection reset" in _text(result)

    def test_unexpected_backend_failure_is_tool_error(self):
        backend = MagicMock()
        backend.read_values.side_effect = RuntimeError("socket closed")
        result = google_workspace_server.build_registry(backend).call(
            "sheets_read_raw", {"spreadsheet_id": "S1", "range": "Leads"})
        assert result.isError is True
        assert "RuntimeError: socket closed" in _text(result)
