"""MCP tools for Canva (designs, exports, assets)."""
from __future__ import annotations

from typing import Literal

from pydantic import Field

from abb_automation.canva_client import CanvaClient
from abb_automation.config import Settings
from abb_automation.mcp.protocol import RegistryServer, ToolArgs, ToolRegistry, as_json


class ExchangeCodeArgs(ToolArgs):
    code: str = Field(..., description="The authorization code from the redirect URL")


class ListDesignsArgs(ToolArgs):
    query: str | None = Field(None, description="Search query to filter designs by title")
    limit: int = Field(20, ge=1, le=100, description="Max results (default 20)")


class DesignIdArgs(ToolArgs):
    designId: str = Field(..., description="The design ID")


class CreateDesignArgs(ToolArgs):
    title: str | None = Field(None, description="Design title")
    designType: Literal["doc", "whiteboard", "presentation"] | None = Field(
        None, description="Preset design type")
    width: int | None = Field(None, gt=0, description="Custom width (use with height)")
    height: int | None = Field(None, gt=0, description="Custom height (use with width)")
    unit: Literal["px", "cm", "mm", "in", "pt"] = Field("px", description="Unit for custom dimensions")


class ExportArgs(ToolArgs):
    designId: str = Field(..., description="The design ID to export")
    format: Literal["pdf", "png", "jpg", "svg", "pptx", "gif", "mp4"] = Field(..., description="Export format")


class ListAssetsArgs(ToolArgs):
    query: str | None = Field(None, description="Search query to filter assets by name")


class AssetIdArgs(ToolArgs):
    assetId: str = Field(..., description="The asset ID")


def build_registry(client: CanvaClient) -> ToolRegistry:
    mcp = ToolRegistry("canva-angels-bail-bonds", "Canva designs and assets")

    @mcp.tool("canva_get_auth_url",
              "Generate the Canva OAuth authorization URL. Open it in your browser to authorize the integration.")
    def get_auth_url(_args) -> str:
        url = client.build_auth_url()
        return (f"Open this URL in your browser to authorize Canva:\n\n{url}\n\n"
                "After authorizing, copy the 'code' value from the redirect URL and use canva_exchange_code.")

    @mcp.tool("canva_exchange_code", "Exchange the Canva OAuth authorization code for access tokens",
              ExchangeCodeArgs)
    def exchange_code(args: ExchangeCodeArgs) -> str:
        client.exchange_code(args.code)
        return "Canva authenticated successfully! All Canva tools are now available."

    @mcp.tool("canva_get_user", "Get the authenticated Canva user profile and capabilities")
    def get_user(_args) -> str:
        return as_json(client.get_user())

    @mcp.tool("canva_list_designs", "List Canva designs for the authenticated user", ListDesignsArgs)
    def list_designs(args: ListDesignsArgs) -> str:
        return as_json([
            {"id": d.get("id"), "title": d.get("title"),
             "created_at": d.get("created_at"), "updated_at": d.get("updated_at"),
             "edit_url": (d.get("urls") or {}).get("edit_url"),
             "view_url": (d.get("urls") or {}).get("view_url")}
            for d in client.list_designs(args.query, args.limit)
        ])

    @mcp.tool("canva_get_design", "Get details of a specific Canva design", DesignIdArgs)
    def get_design(args: DesignIdArgs) -> str:
        return as_json(client.get_design(args.designId))

    @mcp.tool("canva_create_design", "Create a new blank Canva design", CreateDesignArgs)
    def create_design(args: CreateDesignArgs) -> str:
        design = client.create_design(args.title, args.designType, args.width, args.height, args.unit)
        return (f"Design created!\nID: {design.get('id')}\nTitle: {design.get('title')}\n"
                f"Edit URL: {(design.get('urls') or {}).get('edit_url')}")

    @mcp.tool("canva_export_design",
              "Export a Canva design to PDF, PNG, JPG, SVG, PPTX, GIF, or MP4", ExportArgs)
    def export_design(args: ExportArgs) -> str:
        urls = client.export_design(args.designId, args.format)
        return f"Export complete!\nFormat: {args.format}\nDownload URLs:\n" + "\n".join(urls)

    @mcp.tool("canva_list_assets", "List assets uploaded to Canva", ListAssetsArgs)
    def list_assets(args: ListAssetsArgs) -> str:
        return as_json([
            {"id": a.get("id"), "name": a.get("name"), "type": a.get("type"),
             "created_at": a.get("created_at"),
             "thumbnail": (a.get("thumbnail") or {}).get("url")}
            for a in client.list_assets(args.query)
        ])

    @mcp.tool("canva_get_asset", "Get details of a specific Canva asset", AssetIdArgs)
    def get_asset(args: AssetIdArgs) -> str:
        return as_json(client.get_asset(args.assetId))

    return mcp


def create_server(client: CanvaClient | None = None, settings: Settings | None = None,
                  **server_settings) -> RegistryServer:
    client = client or CanvaClient.from_settings(settings or Settings.from_env())
    return RegistryServer(build_registry(client), **server_settings)
