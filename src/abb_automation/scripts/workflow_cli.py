"""Inspect and patch live n8n workflows.

Usage:
    abb-workflow inspect <id> [--node NAME]
    abb-workflow activate <id>
    abb-workflow set-model claude-sonnet-4-6 [--max-tokens 8192] [--dry-run]
    abb-workflow fix-claude-body [<id>] [--node "Claude: Analyze Report"] [--model M]
    abb-workflow check-execution [<id>]
    abb-workflow trigger-now [<id>] [--delay 90]
"""
from __future__ import annotations

import argparse
import json
import logging
import sys

from abb_automation.config import Settings, configure_logging
from abb_automation.errors import AutomationError
from abb_automation.n8n_client import N8nApiClient, execution_status, node_results
from abb_automation.patcher import patch_workflow
from abb_automation.recipes import (
    DAILY_CRON,
    add_clickup_upsert,
    credential_report,
    insert_pdf_base64_converter,
    one_shot_cron,
    rebuild_claude_request,
    set_claude_model,
    set_schedule_cron,
)
from abb_automation.scripts import DAILY_PROGRESS_WORKFLOW_ID, SEO_REPORT_WORKFLOW_ID

logger = logging.getLogger(__name__)


# ──────────────────────────────────────────────────
# Commands
# ──────────────────────────────────────────────────
def cmd_inspect(client: N8nApiClient, args: argparse.Namespace) -> None:
    workflow = client.get_workflow(args.workflow_id)
    if args.node:
        match = next((n for n in workflow.get("nodes", []) if n.get("name") == args.node), None)
        if match is None:
            raise AutomationError(f"Node not found: {args.node}")
        print(json.dumps(match.get("parameters", {}), indent=2))
        return
    print(f"{workflow.get('name')} ({'active' if workflow.get('active') else 'inactive'})")
    for n in workflow.get("nodes", []):
        print(f"  {n.get('name')}  [{n.get('type')}]")


def cmd_set_active(client: N8nApiClient, args: argparse.Namespace) -> None:
    active = args.command == "activate"
    client.set_active(args.workflow_id, active)
    logger.info("Workflow %s %s: %s", args.workflow_id,
                "activated" if active else "deactivated", client.workflow_url(args.workflow_id))


def cmd_set_model(client: N8nApiClient, args: argparse.Namespace) -> None:
    ids = args.workflow_ids or [w["id"] for w in client.list_workflows()]
    recipe = set_claude_model(args.model, args.max_tokens)
    counts: list[int] = []
    for wid in ids:
        patch_workflow(client, wid, lambda graph: counts.append(recipe(graph)),
                       dry_run=args.dry_run, skip_unchanged=True)
    logger.info("Done: %d node(s) updated to %s", sum(counts), args.model)


def cmd_audit_credentials(client: N8nApiClient, args: argparse.Namespace) -> None:
    ids = args.workflow_ids or [w["id"] for w in client.list_workflows()]
    rows = []
    for wid in ids:
        rows.extend(credential_report(client.get_workflow(wid)))
    print(json.dumps(rows, indent=2))


def cmd_check_execution(client: N8nApiClient, args: argparse.Namespace) -> None:
    latest = client.latest_execution(args.workflow_id)
    if latest is None:
        print("No executions found.")
        return
    execution = client.get_execution(latest["id"], include_data=True)
    print(f"Execution #{execution.get('id')}: {execution_status(execution)}")
    for row in node_results(execution):
        marker = f"ERROR: {row['error']}" if row["error"] else f"{row['items']} item(s)"
        print(f"  {row['node']}: {marker}")


def cmd_add_pdf_converter(client: N8nApiClient, args: argparse.Namespace) -> None:
    patch_workflow(client, args.workflow_id, insert_pdf_base64_converter(),
                   validate=True, dry_run=args.dry_run)


def cmd_fix_claude_body(client: N8nApiClient, args: argparse.Namespace) -> None:
    model = args.model or Settings.from_env().anthropic_model
    patch_workflow(client, args.workflow_id,
                   rebuild_claude_request(args.node, model, args.max_tokens),
                   validate=True, dry_run=args.dry_run)


def cmd_add_upsert(client: N8nApiClient, args: argparse.Namespace) -> None:
    patch_workflow(client, args.workflow_id, add_clickup_upsert(),
                   validate=True, dry_run=args.dry_run)


def cmd_trigger_now(client: N8nApiClient, args: argparse.Namespace) -> None:
    """Fire a scheduled workflow once, wait for the run, then restore the daily cron."""
    latest = client.latest_execution(args.workflow_id)
    last_id = latest.get("id") if latest else None
    cron, fire_at = one_shot_cron(args.delay)
    logger.info("Setting cron to fire at %s (%s)", fire_at.isoformat(), cron)
    try:
        patch_workflow(client, args.workflow_id, set_schedule_cron(cron),
                       deactivate_during_save=True)
        client.activate(args.workflow_id)
        execution = client.wait_for_execution(args.workflow_id, last_id,
                                              interval=5.0, max_attempts=int(args.delay / 5) + 40)
        logger.info("Execution #%s: %s", execution.get("id"), execution_status(execution))
        logger.info("View: %s/executions/%s", client.workflow_url(args.workflow_id), execution.get("id"))
    except AutomationError as exc:
        logger.error("One-shot run failed, restoring the daily schedule: %s", exc)
        raise
    finally:
        patch_workflow(client, args.workflow_id, set_schedule_cron(DAILY_CRON),
                       deactivate_during_save=True)
        logger.info("Schedule restored to %s", DAILY_CRON)


# ──────────────────────────────────────────────────
# CLI
# ──────────────────────────────────────────────────
def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="n8n workflow maintenance")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("inspect", help="List nodes, or print one node's parameters")
    p.add_argument("workflow_id")
    p.add_argument("--node", help="Node name to dump")
    p.set_defaults(func=cmd_inspect)

    for name in ("activate", "deactivate"):
        p = sub.add_parser(name)
        p.add_argument("workflow_id")
        p.set_defaults(func=cmd_set_active)

    p = sub.add_parser("set-model", help="Rewrite the Claude model in HTTP request bodies")
    p.add_argument("model")
    p.add_argument("workflow_ids", nargs="*", help="Defaults to every workflow")
    p.add_argument("--max-tokens", type=int)
    p.add_argument("--dry-run", action="store_true")
    p.set_defaults(func=cmd_set_model)

    p = sub.add_parser("audit-credentials", help="Dump credential references as JSON")
    p.add_argument("workflow_ids", nargs="*", help="Defaults to every workflow")
    p.set_defaults(func=cmd_audit_credentials)

    p = sub.add_parser("check-execution", help="Latest execution with per-node results")
    p.add_argument("workflow_id", nargs="?", default=DAILY_PROGRESS_WORKFLOW_ID)
    p.set_defaults(func=cmd_check_execution)

    p = sub.add_parser("add-pdf-converter", help="Insert the PDF to base64 node")
    p.add_argument("workflow_id", nargs="?", default=SEO_REPORT_WORKFLOW_ID)
    p.add_argument("--dry-run", action="store_true")
    p.set_defaults(func=cmd_add_pdf_converter)

    p = sub.add_parser("fix-claude-body", help="Rebuild the Claude node as a raw-body PDF + prompt request")
    p.add_argument("workflow_id", nargs="?", default=SEO_REPORT_WORKFLOW_ID)
    p.add_argument("--node", default="Claude: Analyze Report")
    p.add_argument("--model", help="Defaults to ANTHROPIC_MODEL")
    p.add_argument("--max-tokens", type=int, default=4096)
    p.add_argument("--dry-run", action="store_true")
    p.set_defaults(func=cmd_fix_claude_body)

    p = sub.add_parser("add-upsert", help="Update same-date ClickUp tasks instead of duplicating")
    p.add_argument("workflow_id", nargs="?", default=DAILY_PROGRESS_WORKFLOW_ID)
    p.add_argument("--dry-run", action="store_true")
    p.set_defaults(func=cmd_add_upsert)

    p = sub.add_parser("trigger-now", help="Run a scheduled workflow once via a one-shot cron")
    p.add_argument("workflow_id", nargs="?", default=DAILY_PROGRESS_WORKFLOW_ID)
    p.add_argument("--delay", type=float, default=90, help="Seconds until the cron fires")
    p.set_defaults(func=cmd_trigger_now)
    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    configure_logging()
    try:
        client = N8nApiClient.from_settings(Settings.from_env())
        args.func(client, args)
    except AutomationError as exc:
        logger.error("%s failed: %s", args.command, exc)
        sys.exit(1)


if __name__ == "__main__":
    main()
