"""Deploy a workflow JSON file to n8n via REST API.

Creates the workflow, or replaces the one with the same name.
Requires N8N_BASE_URL and N8N_API_KEY (environment or .env).

Usage:
    abb-deploy-workflow [workflows/progress_logger.json] [--activate]
    abb-deploy-workflow --workflow daily-progress [--model claude-sonnet-4-6]
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from abb_automation.config import Settings, configure_logging
from abb_automation.errors import AutomationError
from abb_automation.n8n_client import N8nApiClient
from abb_automation.scripts.build_workflow import (
    BUILDERS,
    DEFAULT_OUTPUT,
    add_builder_arguments,
    build,
)

logger = logging.getLogger(__name__)

# fields POST/PUT /workflows accept
WRITABLE_FIELDS = ("name", "nodes", "connections", "settings", "staticData")


def deploy(client: N8nApiClient, workflow: dict, activate: bool = False) -> str:
    """Create or update ``workflow`` by name. Returns the workflow ID."""
    body = {k: workflow[k] for k in WRITABLE_FIELDS if k in workflow}
    body.setdefault("settings", {})
    logger.info("Loaded workflow: %d nodes, %d connection sources",
                len(body["nodes"]), len(body["connections"]))

    match = next((w for w in client.list_workflows() if w.get("name") == body["name"]), None)
    if match:
        wf_id = match["id"]
        logger.info("Updating existing workflow: %s (ID: %s)", match["name"], wf_id)
        client.update_workflow(wf_id, body)
    else:
        logger.info("Creating new workflow: %s", body["name"])
        wf_id = client.create_workflow(body)["id"]

    logger.info("Deployed workflow ID: %s", wf_id)
    if activate:
        client.activate(wf_id)
        logger.info("Workflow activated.")

    logger.info("Done. Open: %s", client.workflow_url(wf_id))
    return wf_id


def load_workflow(path: Path) -> dict:
    """Read a workflow JSON file.

    Raises:
        ValueError: The file is missing or not valid JSON.
    """
    if not path.exists():
        raise ValueError(f"Workflow JSON not found: {path}. Run abb-build-workflow first.")
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid workflow JSON in {path}: {exc}") from exc


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Deploy workflow to n8n")
    parser.add_argument("path", nargs="?", type=Path, default=DEFAULT_OUTPUT)
    parser.add_argument("--workflow", "-w", choices=sorted(BUILDERS),
                        help="Build this workflow and deploy it instead of reading a file")
    parser.add_argument("--activate", action="store_true",
                        help="Activate the workflow after deployment")
    add_builder_arguments(parser)
    args = parser.parse_args(argv)
    configure_logging()

    try:
        workflow = build(args) if args.workflow else load_workflow(args.path)
    except ValueError as exc:
        logger.error("%s", exc)
        sys.exit(1)
    try:
        deploy(N8nApiClient.from_settings(Settings.from_env()), workflow, activate=args.activate)
    except AutomationError as exc:
        logger.error("Deploy failed: %s", exc)
        sys.exit(1)


if __name__ == "__main__":
    main()
