"""MCP tool servers for n8n, ClickUp, Canva and Google Workspace."""
from abb_automation.mcp.protocol import RegistryServer, ToolRegistry, create_http_app

__all__ = ["RegistryServer", "ToolRegistry", "create_http_app"]
