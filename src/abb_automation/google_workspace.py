"""Google Sheets, Drive, Docs and Gmail through the official API client."""
from __future__ import annotations

import base64
import logging
import re
from typing import Any

import httplib2
from google.auth.exceptions import RefreshError, TransportError
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from abb_automation.config import Settings
from abb_automation.errors import AuthRequiredError, TransientRemoteError, remote_error_for

logger = logging.getLogger(__name__)

TOKEN_URI = "https://oauth2.googleapis.com/token"
SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive",
    "https://www.googleapis.com/auth/documents",
    "https://www.googleapis.com/auth/gmail.send",
    "https://www.googleapis.com/auth/gmail.readonly",
]

_SHEET_RE = re.compile(r"/spreadsheets/d/([\w-]+)")
_DOC_RE = re.compile(r"/document/d/([\w-]+)")


# ──────────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────────
def extract_sheet_id(value: str) -> str:
    """Spreadsheet id from a full URL; anything else is taken as the id."""
    m = _SHEET_RE.search(value)
    return m.group(1) if m else value


def extract_doc_id(value: str) -> str:
    m = _DOC_RE.search(value)
    return m.group(1) if m else value


def rows_to_records(values: list[list]) -> tuple[list, list[dict]]:
    """First row is the header; short rows are padded with ``""``."""
    if not values:
        return [], []
    headers = values[0]
    records = [
        {h: row[i] if i < len(row) else "" for i, h in enumerate(headers)}
        for row in values[1:]
    ]
    return headers, records


def _run_text(elements: list[dict]) -> list[str]:
    return [pe["textRun"]["content"] for pe in elements or [] if (pe.get("textRun") or {}).get("content")]


def doc_plain_text(document: dict) -> str:
    """Paragraph text of a Docs v1 document; table cells are tab-separated lines."""
    text = ""
    for el in (document.get("body") or {}).get("content") or []:
        if "paragraph" in el:
            text += "".join(_run_text(el["paragraph"].get("elements")))
        elif "table" in el:
            for row in el["table"].get("tableRows") or []:
                for cell in row.get("tableCells") or []:
                    for cell_el in cell.get("content") or []:
                        if "paragraph" in cell_el:
                            text += "".join(t + "\t" for t in _run_text(cell_el["paragraph"].get("elements")))
                            text += "\n"
    return text


def build_raw_email(to: str, subject: str, body: str, cc: str | None = None,
                    is_html: bool = False) -> str:
    """RFC 822 message, base64url-encoded for ``users.messages.send``."""
    content_type = "text/html" if is_html else "text/plain"
    lines = [f"To: {to}"]
    if cc:
        lines.append(f"Cc: {cc}")
    lines += [f"Subject: {subject}", f"Content-Type: {content_type}; charset=utf-8", "", body]
    raw = "\r\n".join(lines)
    return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii").rstrip("=")


def _quote(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


def drive_query(query: str | None = None, mime_type: str | None = None,
                folder_id: str | None = None, name: str | None = None,
                full_text: str | None = None) -> str:
    """Drive ``q`` string; trashed files are always excluded."""
    parts = ["trashed=false"]
    if query:
        parts.append(query)
    if mime_type:
        parts.append(f"mimeType='{mime_type}'")
    if folder_id:
        parts.append(f"'{folder_id}' in parents")
    if name:
        parts.append(f"name contains '{_quote(name)}'")
    if full_text:
        parts.append(f"fullText contains '{_quote(full_text)}'")
    return " and ".join(parts)


def _execute(request: Any) -> Any:
    """Run a discovery request; every failure comes out as an ``AutomationError``.

    Raises:
        AuthRequiredError: The refresh token was revoked or has expired.
        TransientRemoteError: No response, HTTP 429 or HTTP 5xx.
        PermanentRemoteError: Any other HTTP error status.
    """
    try:
        return request.execute()
    except HttpError as exc:
        status = getattr(exc.resp, "status", None)
        body = exc.content.decode("utf-8", "replace") if isinstance(exc.content, bytes) else str(exc)
        logger.error("Google API -> %s: %s", status, body[:500])
        raise remote_error_for("Google", int(status) if status else None, body) from exc
    except RefreshError as exc:
        logger.error("Google token refresh failed: %s", exc)
        raise AuthRequiredError(
            f"Google token refresh failed ({exc}). Run abb-google-auth to authorize again."
        ) from exc
    except (TransportError, httplib2.HttpLib2Error, OSError) as exc:
        logger.error("Google API connection failed: %s", exc)
        raise TransientRemoteError("Google", None, str(exc)) from exc


# ──────────────────────────────────────────────────
# Services
# ──────────────────────────────────────────────────
class GoogleWorkspace:
    """Thin wrapper over the four discovery services."""

    def __init__(self, sheets: Any, drive: Any, docs: Any, gmail: Any) -> None:
        self.sheets = sheets
        self.drive = drive
        self.docs = docs
        self.gmail = gmail

    @classmethod
    def from_settings(cls, settings: Settings) -> "GoogleWorkspace":
        creds = Credentials(
            token=None,
            refresh_token=settings.require("google_refresh_token"),
            client_id=settings.require("google_client_id"),
            client_secret=settings.require("google_client_secret"),
            token_uri=TOKEN_URI,
            scopes=SCOPES,
        )
        return cls(
            build("sheets", "v4", credentials=creds, cache_discovery=False),
            build("drive", "v3", credentials=creds, cache_discovery=False),
            build("docs", "v1", credentials=creds, cache_discovery=False),
            build("gmail", "v1", credentials=creds, cache_discovery=False),
        )

    # ── Sheets ────────────────────────────────────
    def list_tabs(self, spreadsheet: str) -> list[dict]:
        data = _execute(self.sheets.spreadsheets().get(spreadsheetId=extract_sheet_id(spreadsheet)))
        tabs = []
        for s in data.get("sheets") or []:
            props = s.get("properties") or {}
            grid = props.get("gridProperties") or {}
            tabs.append({
                "title": props.get("title"),
                "sheetId": props.get("sheetId"),
                "index": props.get("index"),
                "rowCount": grid.get("rowCount"),
                "columnCount": grid.get("columnCount"),
            })
        return tabs

    def read_values(self, spreadsheet: str, range_: str) -> list[list]:
        data = _execute(self.sheets.spreadsheets().values().get(
            spreadsheetId=extract_sheet_id(spreadsheet),
            range=range_,
            valueRenderOption="UNFORMATTED_VALUE",
        ))
        return data.get("values") or []

    def append_rows(self, spreadsheet: str, range_: str, rows: list[list]) -> dict:
        return _execute(self.sheets.spreadsheets().values().append(
            spreadsheetId=extract_sheet_id(spreadsheet),
            range=range_,
            valueInputOption="USER_ENTERED",
            body={"values": rows},
        ))

    def update_rows(self, spreadsheet: str, range_: str, rows: list[list]) -> dict:
        return _execute(self.sheets.spreadsheets().values().update(
            spreadsheetId=extract_sheet_id(spreadsheet),
            range=range_,
            valueInputOption="USER_ENTERED",
            body={"values": rows},
        ))

    def create_spreadsheet(self, title: str, tabs: list[str] | None = None) -> dict:
        body: dict[str, Any] = {"properties": {"title": title}}
        if tabs:
            body["sheets"] = [{"properties": {"title": t}} for t in tabs]
        return _execute(self.sheets.spreadsheets().create(body=body))

    def add_tab(self, spreadsheet: str, title: str) -> str:
        sheet_id = extract_sheet_id(spreadsheet)
        _execute(self.sheets.spreadsheets().batchUpdate(
            spreadsheetId=sheet_id,
            body={"requests": [{"addSheet": {"properties": {"title": title}}}]},
        ))
        return sheet_id

    # ── Drive ─────────────────────────────────────
    def list_files(self, q: str, limit: int = 20, fields: str | None = None,
                   order_by: str | None = "modifiedTime desc") -> list[dict]:
        kwargs: dict[str, Any] = {
            "q": q,
            "pageSize": limit,
            "fields": fields or "files(id,name,mimeType,modifiedTime,webViewLink,parents)",
        }
        if order_by:
            kwargs["orderBy"] = order_by
        return _execute(self.drive.files().list(**kwargs)).get("files") or []

    # ── Docs ──────────────────────────────────────
    def read_doc(self, doc: str) -> tuple[str, str]:
        """(title, plain text)."""
        data = _execute(self.docs.documents().get(documentId=extract_doc_id(doc)))
        return data.get("title", ""), doc_plain_text(data)

    def create_doc(self, title: str, content: str | None = None) -> str:
        doc_id = _execute(self.docs.documents().create(body={"title": title}))["documentId"]
        if content:
            _execute(self.docs.documents().batchUpdate(
                documentId=doc_id,
                body={"requests": [{"insertText": {"location": {"index": 1}, "text": content}}]},
            ))
        return doc_id

    # ── Gmail ─────────────────────────────────────
    def send_email(self, to: str, subject: str, body: str, cc: str | None = None,
                   is_html: bool = False) -> dict:
        raw = build_raw_email(to, subject, body, cc, is_html)
        return _execute(self.gmail.users().messages().send(userId="me", body={"raw": raw}))

    def list_emails(self, query: str = "", limit: int = 10) -> list[dict]:
        listing = _execute(self.gmail.users().messages().list(userId="me", q=query, maxResults=limit))
        results = []
        for m in listing.get("messages") or []:
            msg = _execute(self.gmail.users().messages().get(
                userId="me", id=m["id"], format="metadata",
                metadataHeaders=["From", "To", "Subject", "Date"],
            ))
            headers = {h["name"]: h["value"] for h in (msg.get("payload") or {}).get("headers") or []}
            results.append({"id": m["id"], **headers, "snippet": msg.get("snippet")})
        return results
