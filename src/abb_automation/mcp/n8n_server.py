"""MCP tools for the n8n instance."""
from __future__ import annotations

from typing import Any

from pydantic import Field

from abb_automation.config import Settings
from abb_automation.mcp.protocol import RegistryServer, ToolArgs, ToolRegistry, as_json
from abb_automation.n8n_client import N8nApiClient, execution_status


class WorkflowIdArgs(ToolArgs):
    id: str = Field(..., description="The workflow ID")


class SetActiveArgs(ToolArgs):
    id: str = Field(..., description="The workflow ID")
    active: bool = Field(..., description="True to activate, false to deactivate")


class ListExecutionsArgs(ToolArgs):
    workflowId: str | None = Field(None, description="Filter by workflow ID (optional)")
    limit: int = Field(20, ge=1, le=250, description="Max number of results (default 20)")


class ExecutionIdArgs(ToolArgs):
    id: str = Field(..., description="The execution ID")


class TriggerWebhookArgs(ToolArgs):
    webhookPath: str = Field(..., description="The webhook path (e.g. /webhook/my-hook)")
    payload: dict[str, Any] = Field(default_factory=dict, description="JSON payload to send")


def build_registry(client: N8nApiClient) -> ToolRegistry:
    mcp = ToolRegistry("n8n-angels-bail-bonds", "n8n workflows and executions")

    @mcp.tool("list_workflows", "List all workflows in n8n")
    def list_workflows(_args) -> str:
        return as_json([
            {"id": w.get("id"), "name": w.get("name"), "active": w.get("active"),
             "updatedAt": w.get("updatedAt")}
            for w in client.list_workflows()
        ])

    @mcp.tool("get_workflow", "Get details of a specific n8n workflow", WorkflowIdArgs)
    def get_workflow(args: WorkflowIdArgs) -> str:
        return as_json(client.get_workflow(args.id))

    @mcp.tool("set_workflow_active", "Activate or deactivate an n8n workflow", SetActiveArgs)
    def set_workflow_active(args: SetActiveArgs) -> str:
        data = client.set_active(args.id, args.active) or {}
        state = "active" if data.get("active", args.active) else "inactive"
        return f'Workflow "{data.get("name", args.id)}" is now {state}.'

    @mcp.tool("list_executions", "List recent workflow executions in n8n", ListExecutionsArgs)
    def list_executions(args: ListExecutionsArgs) -> str:
        return as_json([
            {"id": e.get("id"), "workflowId": e.get("workflowId"), "status": execution_status(e),
             "startedAt": e.get("startedAt"), "stoppedAt": e.get("stoppedAt")}
            for e in client.list_executions(args.workflowId, limit=args.limit)
        ])

    @mcp.tool("get_execution", "Get details of a specific n8n execution", ExecutionIdArgs)
    def get_execution(args: ExecutionIdArgs) -> str:
        return as_json(client.get_execution(args.id))

    @mcp.tool("trigger_webhook", "Trigger an n8n workflow via its webhook URL", TriggerWebhookArgs)
    def trigger_webhook(args: TriggerWebhookArgs) -> str:
        resp = client.trigger_webhook(args.webhookPath, args.payload)
        return f"Webhook response ({resp.status_code}): {resp.text}"

    return mcp


def create_server(client: N8nApiClient | None = None, settings: Settings | None = None,
                  **server_settings) -> RegistryServer:
    client = client or N8nApiClient.from_settings(settings or Settings.from_env())
    return RegistryServer(build_registry(client), **server_settings)
