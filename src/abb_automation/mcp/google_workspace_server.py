"""MCP tools for Google Sheets, Drive, Docs and Gmail."""
from __future__ import annotations

from typing import Any

from pydantic import Field

from abb_automation.config import Settings
from abb_automation.google_workspace import GoogleWorkspace, drive_query, rows_to_records
from abb_automation.mcp.protocol import RegistryServer, ToolArgs, ToolRegistry, as_json


class SpreadsheetArgs(ToolArgs):
    spreadsheet_id: str = Field(..., description="Spreadsheet ID or full URL")


class RangeArgs(SpreadsheetArgs):
    range: str = Field(..., description="Range like 'Sheet1!A1:Z100' or just 'Sheet1' for all data")


class WriteRowsArgs(RangeArgs):
    rows: list[list[Any]] = Field(..., description="Array of rows, each row is an array of cell values")


class CreateSheetArgs(ToolArgs):
    title: str = Field(..., description="Title of the new spreadsheet")
    sheets: list[str] | None = Field(None, description="List of tab names to create")


class AddTabArgs(SpreadsheetArgs):
    tab_name: str = Field(..., description="Name for the new tab")


class DriveListArgs(ToolArgs):
    query: str | None = Field(None, description="Search query e.g. \"name contains 'bail bonds'\"")
    mime_type: str | None = Field(None, description="Filter by MIME type")
    folder_id: str | None = Field(None, description="Limit to files inside this folder ID")
    limit: int = Field(20, ge=1, le=1000, description="Max results (default 20)")


class DriveSearchArgs(ToolArgs):
    name: str | None = Field(None, description="Search by file name")
    full_text: str | None = Field(None, description="Search by content inside files")
    limit: int = Field(10, ge=1, le=1000, description="Max results (default 10)")


class DocArgs(ToolArgs):
    doc_id: str = Field(..., description="Google Doc ID or full URL")


class CreateDocArgs(ToolArgs):
    title: str = Field(..., description="Document title")
    content: str | None = Field(None, description="Initial text content to insert")


class SendEmailArgs(ToolArgs):
    to: str = Field(..., description="Recipient email(s), comma-separated")
    subject: str = Field(..., description="Email subject")
    body: str = Field(..., description="Email body (plain text or HTML)")
    cc: str | None = Field(None, description="CC email addresses, comma-separated")
    is_html: bool = Field(False, description="Set true if body is HTML")


class ListEmailArgs(ToolArgs):
    query: str = Field("", description="Gmail search query e.g. 'from:someone@gmail.com'")
    limit: int = Field(10, ge=1, le=500, description="Max emails to return (default 10)")


def build_registry(gw: GoogleWorkspace) -> ToolRegistry:
    mcp = ToolRegistry("google-workspace", "Google Sheets, Drive, Docs and Gmail")

    # ── Sheets ────────────────────────────────────
    @mcp.tool("sheets_list_tabs", "List all tabs/sheets inside a Google Spreadsheet", SpreadsheetArgs)
    def sheets_list_tabs(args: SpreadsheetArgs) -> str:
        return as_json(gw.list_tabs(args.spreadsheet_id))

    @mcp.tool("sheets_read", "Read data from a Google Sheet tab. Returns rows as objects keyed by header.",
              RangeArgs)
    def sheets_read(args: RangeArgs) -> str:
        headers, rows = rows_to_records(gw.read_values(args.spreadsheet_id, args.range))
        return f"Headers: {as_json(headers)}\nRows ({len(rows)}):\n{as_json(rows)}"

    @mcp.tool("sheets_read_raw",
              "Read raw rows from a Google Sheet (arrays, not objects). Useful for sheets without headers.",
              RangeArgs)
    def sheets_read_raw(args: RangeArgs) -> str:
        values = gw.read_values(args.spreadsheet_id, args.range)
        return f"{len(values)} rows:\n{as_json(values)}"

    @mcp.tool("sheets_append", "Append rows to a Google Sheet", WriteRowsArgs)
    def sheets_append(args: WriteRowsArgs) -> str:
        data = gw.append_rows(args.spreadsheet_id, args.range, args.rows)
        updated = (data.get("updates") or {}).get("updatedRange")
        return f"Appended {len(args.rows)} rows. Updated range: {updated}"

    @mcp.tool("sheets_update", "Update a specific range in a Google Sheet", WriteRowsArgs)
    def sheets_update(args: WriteRowsArgs) -> str:
        data = gw.update_rows(args.spreadsheet_id, args.range, args.rows)
        return f"Updated {data.get('updatedCells')} cells in {data.get('updatedRange')}"

    @mcp.tool("sheets_create", "Create a new Google Spreadsheet", CreateSheetArgs)
    def sheets_create(args: CreateSheetArgs) -> str:
        data = gw.create_spreadsheet(args.title, args.sheets)
        return f"Created: {data.get('spreadsheetUrl')}\nID: {data.get('spreadsheetId')}"

    @mcp.tool("sheets_add_tab", "Add a new tab/sheet to an existing spreadsheet", AddTabArgs)
    def sheets_add_tab(args: AddTabArgs) -> str:
        sheet_id = gw.add_tab(args.spreadsheet_id, args.tab_name)
        return f"Tab '{args.tab_name}' added to spreadsheet {sheet_id}"

    # ── Drive ─────────────────────────────────────
    @mcp.tool("drive_list", "List files in Google Drive. Filter by type or folder.", DriveListArgs)
    def drive_list(args: DriveListArgs) -> str:
        q = drive_query(args.query, args.mime_type, args.folder_id)
        return as_json(gw.list_files(q, args.limit))

    @mcp.tool("drive_search", "Search Google Drive for files by name or content", DriveSearchArgs)
    def drive_search(args: DriveSearchArgs) -> str:
        q = drive_query(name=args.name, full_text=args.full_text)
        return as_json(gw.list_files(q, args.limit, fields="files(id,name,mimeType,modifiedTime,webViewLink)",
                                     order_by=None))

    # ── Docs ──────────────────────────────────────
    @mcp.tool("docs_read", "Read the full text content of a Google Doc", DocArgs)
    def docs_read(args: DocArgs) -> str:
        title, text = gw.read_doc(args.doc_id)
        return f"Title: {title}\n\n{text}"

    @mcp.tool("docs_create", "Create a new Google Doc with optional content", CreateDocArgs)
    def docs_create(args: CreateDocArgs) -> str:
        doc_id = gw.create_doc(args.title, args.content)
        return f"Created Doc: https://docs.google.com/document/d/{doc_id}/edit\nID: {doc_id}"

    # ── Gmail ─────────────────────────────────────
    @mcp.tool("gmail_send", "Send an email via Gmail", SendEmailArgs)
    def gmail_send(args: SendEmailArgs) -> str:
        gw.send_email(args.to, args.subject, args.body, args.cc, args.is_html)
        return f"Email sent to {args.to}"

    @mcp.tool("gmail_list", "List recent emails from Gmail inbox", ListEmailArgs)
    def gmail_list(args: ListEmailArgs) -> str:
        return as_json(gw.list_emails(args.query, args.limit))

    return mcp


def create_server(gw: GoogleWorkspace | None = None, settings: Settings | None = None,
                  **server_settings) -> RegistryServer:
    gw = gw or GoogleWorkspace.from_settings(settings or Settings.from_env())
    return RegistryServer(build_registry(gw), **server_settings)
