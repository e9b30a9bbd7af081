"""Write one of the project's n8n workflows as JSON.

Usage:
    abb-build-workflow [-o workflows/progress_logger.json] [--list-id ID]
    abb-build-workflow --workflow daily-progress [--model claude-sonnet-4-6]
    abb-build-workflow --workflow timesheet-sync -o -     # stdout
"""
from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Callable

from abb_automation.config import PROJECT_ROOT
from abb_automation.workflows.daily_progress import (
    DEFAULT_MODEL,
    build_daily_progress,
    build_timesheet_sync,
)
from abb_automation.workflows.progress_logger import (
    ABB_CLICKUP_LIST,
    DRIVE_FOLDER_ID,
    build_progress_logger,
)

WORKFLOW_DIR = PROJECT_ROOT / "workflows"
DEFAULT_OUTPUT = WORKFLOW_DIR / "progress_logger.json"

# --workflow name -> builder taking the parsed arguments
BUILDERS: dict[str, Callable[[argparse.Namespace], dict]] = {
    "progress-logger": lambda a: build_progress_logger(a.folder_id, a.list_id),
    "daily-progress": lambda a: build_daily_progress(a.folder_id, a.list_id, model=a.model),
    "timesheet-sync": lambda a: build_timesheet_sync(a.list_id, model=a.model),
}


def default_output(workflow: str) -> Path:
    return WORKFLOW_DIR / f"{workflow.replace('-', '_')}.json"


def add_builder_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--folder-id", default=DRIVE_FOLDER_ID, help="Drive folder for the progress docs")
    parser.add_argument("--list-id", default=ABB_CLICKUP_LIST, help="ClickUp list for the tasks")
    parser.add_argument("--model", default=DEFAULT_MODEL, help="Claude model for the AI steps")


def build(args: argparse.Namespace) -> dict:
    return BUILDERS[args.workflow](args)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Build n8n workflow JSON")
    parser.add_argument("--workflow", "-w", choices=sorted(BUILDERS), default="progress-logger")
    parser.add_argument("--output", "-o", default=None,
                        help="Output file path, or - for stdout (default: workflows/<name>.json)")
    add_builder_arguments(parser)
    args = parser.parse_args(argv)

    workflow = build(args)
    text = json.dumps(workflow, indent=2, ensure_ascii=False) + "\n"
    if args.output == "-":
        print(text, end="")
        return

    out_path = Path(args.output) if args.output else default_output(args.workflow)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(text, encoding="utf-8")
    print(f"Wrote {len(workflow['nodes'])} nodes, {len(workflow['connections'])} connections -> {out_path}")


if __name__ == "__main__":
    main()
