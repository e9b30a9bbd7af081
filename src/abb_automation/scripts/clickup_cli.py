"""ClickUp cleanup for the daily-progress list.

Usage:
    abb-clickup dedupe <list_id> [--apply]
    abb-clickup cleanup-execution 216 217
"""
from __future__ import annotations

import argparse
import logging
import sys

from abb_automation.clickup_client import ClickUpClient
from abb_automation.clickup_dedupe import apply_plan, created_task_ids, delete_tasks, plan_dedupe
from abb_automation.config import Settings, configure_logging
from abb_automation.errors import AutomationError
from abb_automation.n8n_client import N8nApiClient
from abb_automation.workflows.progress_logger import ABB_CLICKUP_LIST

logger = logging.getLogger(__name__)


def cmd_dedupe(settings: Settings, args: argparse.Namespace) -> None:
    clickup = ClickUpClient.from_settings(settings)
    tasks = clickup.get_all_tasks(args.list_id, include_closed=True)
    plan = plan_dedupe(tasks)
    logger.info("%d task(s), %d date group(s) to fix, %d to delete, %d without a date",
                len(tasks), len(plan.groups), plan.delete_count, len(plan.ignored))
    for group in plan.groups:
        print(f"{group.date}: keep {group.keeper_id} ({group.keeper_name!r}), "
              f"delete {', '.join(group.delete_ids) or '-'}")
    if not args.apply:
        logger.info("Dry run. Re-run with --apply to make these changes.")
        return
    deleted = apply_plan(clickup, plan)
    logger.info("Deleted %d duplicate task(s)", deleted)


def cmd_cleanup_execution(settings: Settings, args: argparse.Namespace) -> None:
    n8n = N8nApiClient.from_settings(settings)
    clickup = ClickUpClient.from_settings(settings)
    ids: list[str] = []
    for execution_id in args.execution_ids:
        found = created_task_ids(n8n.get_execution(execution_id, include_data=True), args.node)
        logger.info("Execution #%s created %d task(s)", execution_id, len(found))
        ids.extend(found)
    deleted = delete_tasks(clickup, ids)
    logger.info("Deleted %d task(s)", deleted)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="ClickUp task cleanup")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("dedupe", help="Keep one task per MM/DD/YYYY date")
    p.add_argument("list_id", nargs="?", default=ABB_CLICKUP_LIST)
    p.add_argument("--apply", action="store_true", help="Make the changes (default: report only)")
    p.set_defaults(func=cmd_dedupe)

    p = sub.add_parser("cleanup-execution", help="Delete tasks created by n8n executions")
    p.add_argument("execution_ids", nargs="+")
    p.add_argument("--node", default="ClickUp: Create Daily Task")
    p.set_defaults(func=cmd_cleanup_execution)

    args = parser.parse_args(argv)
    configure_logging()
    try:
        args.func(Settings.from_env(), args)
    except AutomationError as exc:
        logger.error("%s failed: %s", args.command, exc)
        sys.exit(1)


if __name__ == "__main__":
    main()
