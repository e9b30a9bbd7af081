"""Log a work session to Google Docs and ClickUp through the progress-logger webhook.

Usage:
    abb-log-progress '{"completed": ["Fix Gmail rate limit"], "todo": ["Connect n8n credentials"]}'
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import datetime
from zoneinfo import ZoneInfo

from abb_automation.config import Settings, configure_logging
from abb_automation.errors import AutomationError
from abb_automation.n8n_client import N8nApiClient
from abb_automation.workflows.progress_logger import WEBHOOK_PATH

logger = logging.getLogger(__name__)

PACIFIC = ZoneInfo("America/Los_Angeles")
SECTIONS = ("completed", "in_progress", "todo", "blockers", "questions")

DEFAULT_DATA = {
    "business": "Angelsbailbonds",
    "completed": [],
    "in_progress": [],
    "todo": [],
    "blockers": [],
    "questions": [],
}

EXAMPLE = {
    "business": "Angelsbailbonds",
    "completed": ["Fix Gmail rate limit", "Build blog system"],
    "in_progress": ["SEO Content Generator"],
    "todo": ["Connect n8n credentials"],
    "blockers": [],
    "questions": [],
}


def pst_date(now: datetime | None = None) -> str:
    """Today in Pacific time as ``MM/DD/YY``."""
    now = now or datetime.now(PACIFIC)
    return now.astimezone(PACIFIC).strftime("%m/%d/%y")


def build_payload(raw: str | None, now: datetime | None = None) -> dict:
    """Merge the JSON argument over the defaults and fill in ``date_pst``.

    Raises:
        ValueError: ``raw`` is not a JSON object, or a section is not a list.
    """
    data = dict(DEFAULT_DATA)
    if raw:
        parsed = json.loads(raw)
        if not isinstance(parsed, dict):
            raise ValueError("expected a JSON object")
        data.update(parsed)
    for section in SECTIONS:
        if not isinstance(data[section] or [], list):
            raise ValueError(f"'{section}' must be a list")
    if not data.get("date_pst"):
        data["date_pst"] = pst_date(now)
    return data


def item_count(data: dict) -> int:
    return sum(len(data.get(section) or []) for section in SECTIONS)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Log session progress")
    parser.add_argument("data", nargs="?", help="Session data as a JSON object")
    args = parser.parse_args(argv)
    configure_logging()

    try:
        data = build_payload(args.data)
    except ValueError as exc:
        logger.error("Invalid argument: %s", exc)
        sys.exit(1)

    total = item_count(data)
    if total == 0:
        print("No tasks to log. Pass data via JSON argument.")
        print(f"  Example: abb-log-progress '{json.dumps(EXAMPLE)}'")
        return

    logger.info("Logging session progress for %s (%s PST)", data["business"], data["date_pst"])
    for section in SECTIONS:
        logger.info("  %-12s %d", section + ":", len(data.get(section) or []))

    try:
        client = N8nApiClient.for_webhooks(Settings.from_env())
        resp = client.trigger_webhook(f"/webhook/{WEBHOOK_PATH}", data)
    except AutomationError as exc:
        logger.error("Webhook call failed: %s", exc)
        sys.exit(1)
    if not resp.ok:
        logger.error("Webhook error: %d %s", resp.status_code, resp.text[:500])
        sys.exit(1)

    try:
        result = resp.json() if resp.content else {}
    except ValueError:
        logger.warning("Webhook reply is not JSON: %s", resp.text[:200])
        result = {}
    print("Logged successfully!")
    print(f"  Date: {result.get('date')}")
    print(f"  Business: {result.get('business')}")
    print(f"  ClickUp tasks logged: {result.get('items_logged')}")


if __name__ == "__main__":
    main()
