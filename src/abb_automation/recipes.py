"""Reusable workflow edits for ``patch_workflow``.

Each factory returns a mutator ``(graph) -> result``. Mutators check for
their own output first, so running one twice leaves the graph unchanged.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable

from abb_automation.backfill import mark_processed_js, skip_filter_js
from abb_automation.graph import WorkflowGraph
from abb_automation.nodes import (
    CLAUDE_URL,
    CLICKUP_API,
    claude_headers,
    claude_messages_body,
    clickup_headers,
    code_node,
    http_request_node,
    if_node,
    manual_trigger_node,
    midpoint,
    move_binary_to_json_node,
    replace_claude_model,
    schedule_params,
    webhook_node,
)

logger = logging.getLogger(__name__)

MANUAL_TRIGGER = "n8n-nodes-base.manualTrigger"
WEBHOOK = "n8n-nodes-base.webhook"
SCHEDULE_TRIGGER = "n8n-nodes-base.scheduleTrigger"

DAILY_CRON = "0 8 * * *"

Mutator = Callable[[WorkflowGraph], object]


# ──────────────────────────────────────────────────
# PDF / Claude
# ──────────────────────────────────────────────────
def insert_pdf_base64_converter(
    download: str = "Download PDF",
    prepare: str = "Prepare: Detect Type & Build Prompt",
    name: str = "Convert PDF to Base64",
    destination_key: str = "pdfBase64",
) -> Mutator:
    """Splice a Move Binary Data node between the PDF download and the prompt step.

    Code nodes cannot read filesystem-mode binaries; the built-in node can,
    and leaves the file as base64 in ``$json.<destination_key>``.
    """
    def mutate(graph: WorkflowGraph) -> bool:
        if graph.has_node(name):
            logger.info("%s already present", name)
            return False
        up, down = graph.get_node(download), graph.get_node(prepare)
        converter = move_binary_to_json_node(
            "node-move-binary-data", name, midpoint(up, down),
            destination_key=destination_key,
        )
        graph.insert_between(download, converter, prepare)
        logger.info("Inserted: %s -> %s -> %s", download, name, prepare)
        return True
    return mutate


def set_claude_model(model: str, max_tokens: int | None = None) -> Mutator:
    """Rewrite the Claude model in every HTTP node with a string ``body``."""
    def mutate(graph: WorkflowGraph) -> int:
        changed = 0
        for n in graph.nodes:
            params = n.get("parameters") or {}
            body = params.get("body")
            if not isinstance(body, str):
                continue
            updated = replace_claude_model(body, model, max_tokens)
            if updated != body:
                params["body"] = updated
                changed += 1
                logger.info("  %s -> node %r: model updated", graph.name, n.get("name"))
        return changed
    return mutate


def rebuild_claude_request(
    name: str,
    model: str,
    max_tokens: int = 4096,
    prompt_expr: str = "$json.masterPrompt",
    pdf_expr: str | None = "$json.pdfBase64",
) -> Mutator:
    """Replace a Claude HTTP node with a raw-body Messages request.

    The body is an ``={{ JSON.stringify(...) }}`` expression, so it must go
    out in raw mode. Id, position and wiring are kept.
    """
    def mutate(graph: WorkflowGraph) -> dict:
        new = http_request_node(
            None, name, "POST", CLAUDE_URL, [0, 0],
            headers=claude_headers(),
            body=claude_messages_body(model, max_tokens, prompt_expr, pdf_expr),
        )
        old = graph.replace_node(name, new)
        logger.info("Rebuilt %r for %s", name, model)
        return old
    return mutate


# ──────────────────────────────────────────────────
# Triggers
# ──────────────────────────────────────────────────
def swap_trigger_to_webhook(path: str, name: str = "Webhook Trigger") -> Mutator:
    """Replace the manual trigger with a POST webhook at ``/webhook/<path>``."""
    def mutate(graph: WorkflowGraph) -> str | None:
        if graph.has_node(name):
            return None
        old = graph.first_of_type(MANUAL_TRIGGER)
        webhook = webhook_node(None, name, path, old.get("position"),
                               responseData="firstEntryJson")
        graph.replace_node(old["name"], webhook)
        logger.info("Trigger %r replaced by webhook %r", old["name"], name)
        return old["name"]
    return mutate


def swap_trigger_to_manual(name: str = "Run Backfill",
                           webhook_name: str = "Webhook Trigger") -> Mutator:
    """Undo ``swap_trigger_to_webhook``; a no-op when the webhook is gone."""
    def mutate(graph: WorkflowGraph) -> bool:
        if not graph.has_node(webhook_name):
            return False
        old = graph.get_node(webhook_name)
        graph.replace_node(webhook_name, manual_trigger_node(None, name, old.get("position")))
        logger.info("Manual trigger %r restored", name)
        return True
    return mutate


def one_shot_cron(delay_s: float = 90, now: datetime | None = None) -> tuple[str, datetime]:
    """Cron (UTC) firing once ``delay_s`` from now, and the moment it fires."""
    fire_at = (now or datetime.now(timezone.utc)) + timedelta(seconds=delay_s)
    return f"{fire_at.minute} {fire_at.hour} {fire_at.day} {fire_at.month} *", fire_at


def set_schedule_cron(expression: str) -> Mutator:
    """Point the first schedule trigger at a single cron expression."""
    def mutate(graph: WorkflowGraph) -> dict:
        trigger = graph.first_of_type(SCHEDULE_TRIGGER)
        previous = trigger.get("parameters") or {}
        trigger["parameters"] = schedule_params(expression)
        logger.info("Schedule %r set to %r", trigger["name"], expression)
        return previous
    return mutate


# ──────────────────────────────────────────────────
# ClickUp upsert
# ──────────────────────────────────────────────────
CHECK_DUPLICATE_JS = """\
var prev = $({source!r}).item.json;
var tasks = $input.item.json.tasks || [];
var existing = tasks.find(function(t) {{ return t.name === prev.date; }});

if (existing) {{
  return {{ json: {{ action: 'update', taskId: existing.id, date: prev.date,
    listId: prev.listId, description: prev.description }} }};
}}
return {{ json: {{ action: 'create', date: prev.date,
  listId: prev.listId, description: prev.description }} }};"""


def add_clickup_upsert(
    after: str = "Code: Skip Filter",
    create: str = "ClickUp: Create Daily Task",
    api_key: str | None = None,
) -> Mutator:
    """Update the same-date task instead of creating a duplicate.

    Rewires ``after -> create`` into::

        after -> Get List Tasks -> Check Duplicate -> IF
            true  -> Update Task
            false -> create
    """
    get_name = "HTTP Request: Get List Tasks"
    check_name = "Code: Check Duplicate"
    if_name = "IF: Create or Update?"
    update_name = "HTTP Request: Update Task"

    def mutate(graph: WorkflowGraph) -> bool:
        if graph.has_node(check_name):
            logger.info("%s already present", check_name)
            return False
        create_node = graph.get_node(create)
        x, y = graph.get_node(after).get("position") or [0, 0]
        headers = clickup_headers(api_key) if api_key else clickup_headers()

        graph.disconnect(after, create)
        graph.add_node(http_request_node(
            "get-list-tasks", get_name, "GET",
            f"={CLICKUP_API}/list/{{{{ $json.listId }}}}/task?include_closed=false&page=0",
            [x + 224, y - 100], headers=headers,
        ))
        graph.add_node(code_node(
            "check-duplicate", check_name, CHECK_DUPLICATE_JS.format(source=after),
            [x + 448, y - 100], per_item=True,
        ))
        graph.add_node(if_node("if-create-or-update", if_name, "={{ $json.action }}",
                               [x + 672, y - 100], right="update"))
        graph.add_node(http_request_node(
            "update-task", update_name, "PUT",
            f"={CLICKUP_API}/task/{{{{ $json.taskId }}}}",
            [x + 896, y - 200], headers=headers,
            body='={{ JSON.stringify({ "markdown_description": $json.description }) }}',
        ))
        create_node["position"] = [x + 896, y]

        graph.connect(after, get_name)
        graph.connect(get_name, check_name)
        graph.connect(check_name, if_name)
        graph.connect(if_name, update_name, output=0)
        graph.connect(if_name, create, output=1)
        logger.info("Rewired: %s -> %s -> %s -> %s -> update/create",
                    after, get_name, check_name, if_name)
        return True
    return mutate


# ──────────────────────────────────────────────────
# Processed-id tracking
# ──────────────────────────────────────────────────
def add_processed_tracking(
    after: str,
    mark_after: str,
    key: str = "docId",
    skip_name: str = "Code: Skip Processed",
    mark_name: str = "Code: Mark Processed",
) -> Mutator:
    """Skip already-processed ids after ``after``; record ids after ``mark_after``.

    The mark node follows the last step that must succeed, so an id is only
    stored once its work is done.
    """
    def mutate(graph: WorkflowGraph) -> bool:
        if graph.has_node(skip_name) or graph.has_node(mark_name):
            return False
        ax, ay = graph.get_node(after).get("position") or [0, 0]
        mx, my = graph.get_node(mark_after).get("position") or [0, 0]
        graph.insert_after(after, code_node(None, skip_name, skip_filter_js(key), [ax + 112, ay + 160]))
        graph.insert_after(mark_after, code_node(
            None, mark_name, mark_processed_js(key, source_node=skip_name), [mx + 112, my + 160],
        ))
        return True
    return mutate


# ──────────────────────────────────────────────────
# Credentials
# ──────────────────────────────────────────────────
def assign_credentials(by_type: dict[str, dict]) -> Mutator:
    """Set ``credentials`` on every node whose type is a key of ``by_type``."""
    def mutate(graph: WorkflowGraph) -> int:
        count = 0
        for n in graph.nodes:
            creds = by_type.get(n.get("type"))
            if creds is not None and n.get("credentials") != creds:
                n["credentials"] = creds
                count += 1
        logger.info("%s: credentials set on %d node(s)", graph.name, count)
        return count
    return mutate


def credential_report(workflow: dict) -> list[dict]:
    """One row per credential reference in a workflow."""
    rows = []
    for n in workflow.get("nodes") or []:
        for ctype, cred in (n.get("credentials") or {}).items():
            rows.append({
                "workflow": workflow.get("name"),
                "node": n.get("name"),
                "nodeType": n.get("type"),
                "credentialType": ctype,
                "credentialName": (cred or {}).get("name"),
                "credentialId": (cred or {}).get("id"),
            })
    return rows
