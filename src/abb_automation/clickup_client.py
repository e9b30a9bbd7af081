"""ClickUp API v2 client scoped to one team and space."""
from __future__ import annotations

import logging
from datetime import datetime, timezone

import requests

from abb_automation.api_client import JsonApiClient
from abb_automation.config import Settings

logger = logging.getLogger(__name__)

CLICKUP_BASE_URL = "https://api.clickup.com/api/v2"
PAGE_SIZE = 100


def to_millis(value: str) -> int:
    """Epoch milliseconds for ``2026-03-01``, a full ISO timestamp or ``03/01/2026``.

    Naive values are taken as UTC.

    Raises:
        ValueError: ``value`` is in none of those formats.
    """
    try:
        moment = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        moment = datetime.strptime(value, "%m/%d/%Y")
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return int(moment.timestamp() * 1000)


class ClickUpClient(JsonApiClient):
    """Personal-token client; the raw key goes in ``Authorization``."""

    service = "ClickUp"

    def __init__(self, api_key: str, team_id: str, space_id: str,
                 base_url: str = CLICKUP_BASE_URL, timeout: float = 30.0,
                 session: requests.Session | None = None) -> None:
        super().__init__(base_url, timeout=timeout, session=session)
        self.api_key = api_key
        self.team_id = team_id
        self.space_id = space_id

    @classmethod
    def from_settings(cls, settings: Settings) -> "ClickUpClient":
        return cls(settings.require("clickup_api_key"), settings.clickup_team_id,
                   settings.clickup_space_id, timeout=settings.http_timeout)

    def _headers(self) -> dict[str, str]:
        return {"Authorization": self.api_key, "Content-Type": "application/json"}

    # ── Hierarchy ─────────────────────────────────
    def list_spaces(self) -> list[dict]:
        return self._request("GET", f"/team/{self.team_id}/space").get("spaces", [])

    def list_folders(self, space_id: str | None = None) -> list[dict]:
        return self._request("GET", f"/space/{space_id or self.space_id}/folder").get("folders", [])

    def list_lists(self, space_id: str | None = None, folder_id: str | None = None) -> list[dict]:
        endpoint = f"/folder/{folder_id}/list" if folder_id else f"/space/{space_id or self.space_id}/list"
        return self._request("GET", endpoint).get("lists", [])

    # ── Tasks ─────────────────────────────────────
    def list_tasks(self, list_id: str, page: int = 0, status: str | None = None,
                   assignee_id: str | None = None, include_closed: bool = False) -> list[dict]:
        params: list[tuple[str, str]] = [("page", str(page))]
        if status:
            params.append(("statuses[]", status))
        if assignee_id:
            params.append(("assignees[]", assignee_id))
        if include_closed:
            params.append(("include_closed", "true"))
        return self._request("GET", f"/list/{list_id}/task", params=params).get("tasks", [])

    def get_all_tasks(self, list_id: str, include_closed: bool = False) -> list[dict]:
        """Every task in a list; ClickUp pages hold up to 100 tasks."""
        tasks: list[dict] = []
        page = 0
        while True:
            batch = self.list_tasks(list_id, page=page, include_closed=include_closed)
            tasks.extend(batch)
            if len(batch) < PAGE_SIZE:
                return tasks
            page += 1

    def get_task(self, task_id: str) -> dict:
        return self._request("GET", f"/task/{task_id}")

    def create_task(self, list_id: str, name: str, description: str | None = None,
                    status: str | None = None, priority: int | None = None,
                    due_date: str | None = None, assignees: list[int] | None = None,
                    markdown_description: str | None = None) -> dict:
        body: dict = {"name": name}
        if description:
            body["description"] = description
        if markdown_description:
            body["markdown_description"] = markdown_description
        if status:
            body["status"] = status
        if priority:
            body["priority"] = priority
        if due_date:
            body["due_date"] = to_millis(due_date)
        if assignees:
            body["assignees"] = assignees
        return self._request("POST", f"/list/{list_id}/task", body)

    def update_task(self, task_id: str, **fields) -> dict:
        """PUT only the given fields. ``due_date`` may be an ISO date string."""
        body = {k: v for k, v in fields.items() if v is not None}
        if isinstance(body.get("due_date"), str):
            body["due_date"] = to_millis(body["due_date"])
        return self._request("PUT", f"/task/{task_id}", body)

    def delete_task(self, task_id: str) -> None:
        self._request("DELETE", f"/task/{task_id}")

    def search_tasks(self, query: str) -> list[dict]:
        """Team-wide search limited to the configured space."""
        params = [("query", query), ("space_ids[]", self.space_id)]
        return self._request("GET", f"/team/{self.team_id}/task", params=params).get("tasks", [])

    def add_comment(self, task_id: str, comment: str) -> dict:
        return self._request("POST", f"/task/{task_id}/comment", {"comment_text": comment})
