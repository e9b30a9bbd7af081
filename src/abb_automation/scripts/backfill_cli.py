"""Backfill the daily-progress workflow.

Usage:
    abb-backfill mark-processed processed_docs.json [--dry-run]
    abb-backfill run [--workflow-id ID]

``processed_docs.json`` maps Google Doc ids to the date label each one
produced, e.g. ``{"1Wn7iK...": "02/02/2026"}``.
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from pathlib import Path

from abb_automation.backfill import seed_processed_docs
from abb_automation.config import Settings, configure_logging
from abb_automation.errors import AutomationError, ConfigError
from abb_automation.n8n_client import N8nApiClient, execution_status, node_results
from abb_automation.patcher import patch_workflow
from abb_automation.recipes import swap_trigger_to_manual, swap_trigger_to_webhook
from abb_automation.scripts import DAILY_PROGRESS_WORKFLOW_ID

logger = logging.getLogger(__name__)

BACKFILL_WEBHOOK_PATH = "daily-progress-backfill"
REGISTER_DELAY_S = 2.0
START_DELAY_S = 3.0


def load_entries(path: Path) -> dict[str, str]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Cannot read {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a JSON object of docId -> date")
    return {str(k): str(v) for k, v in data.items()}


def trigger_backfill(client: N8nApiClient, workflow_id: str,
                     path: str = BACKFILL_WEBHOOK_PATH, sleep=time.sleep) -> dict:
    """Swap the manual trigger for a webhook, call it, wait for the run.

    The manual trigger is put back whether or not the run succeeded.
    """
    latest = client.latest_execution(workflow_id)
    last_id = latest.get("id") if latest else None
    try:
        patch_workflow(client, workflow_id, swap_trigger_to_webhook(path))
        client.activate(workflow_id)
        sleep(REGISTER_DELAY_S)

        resp = client.trigger_webhook(f"/webhook/{path}", {"trigger": "backfill"})
        logger.info("Webhook response (%d): %s", resp.status_code, resp.text[:200])
        if not resp.ok:
            raise AutomationError(f"Webhook call failed with status {resp.status_code}")

        sleep(START_DELAY_S)
        return client.wait_for_execution(workflow_id, last_id, sleep=sleep)
    except AutomationError as exc:
        logger.error("Backfill run failed, restoring the manual trigger: %s", exc)
        raise
    finally:
        patch_workflow(client, workflow_id, swap_trigger_to_manual(), deactivate_during_save=True)


def cmd_mark_processed(client: N8nApiClient, args: argparse.Namespace) -> None:
    entries = load_entries(args.file)
    seed_processed_docs(client, args.workflow_id, entries, dry_run=args.dry_run)


def cmd_run(client: N8nApiClient, args: argparse.Namespace) -> None:
    execution = trigger_backfill(client, args.workflow_id)
    status = execution_status(execution)
    logger.info("Execution #%s: %s", execution.get("id"), status)
    detail = client.get_execution(execution["id"], include_data=True)
    for row in node_results(detail):
        if row["error"]:
            logger.error("  %s: %s", row["node"], row["error"])
    if status != "success":
        raise AutomationError(f"Backfill execution {execution.get('id')} ended with {status}")


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Daily-progress backfill")
    parser.add_argument("--workflow-id", default=DAILY_PROGRESS_WORKFLOW_ID)
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("mark-processed", help="Replace the processed-doc set from a JSON file")
    p.add_argument("file", type=Path)
    p.add_argument("--dry-run", action="store_true")
    p.set_defaults(func=cmd_mark_processed)

    p = sub.add_parser("run", help="Run the backfill once through a temporary webhook")
    p.set_defaults(func=cmd_run)

    args = parser.parse_args(argv)
    configure_logging()
    try:
        client = N8nApiClient.from_settings(Settings.from_env())
        args.func(client, args)
    except AutomationError as exc:
        logger.error("%s failed: %s", args.command, exc)
        sys.exit(1)


if __name__ == "__main__":
    main()
