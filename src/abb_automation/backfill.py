"""Idempotent backfill over a workflow's persisted "processed ids" set.

n8n keeps per-workflow static data across runs. The daily-progress
workflow records every Google Doc it has turned into a ClickUp task under
``staticData.global.docIds``::

    {"global": {"docIds": {"<docId>": {"date": "02/26/2026",
                                       "processedAt": "2026-02-27T15:00:57.213Z"}}}}

An id is marked only after its work succeeded, so a failed item is picked
up again on the next run.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Iterator

from abb_automation.graph import WorkflowGraph
from abb_automation.n8n_client import N8nApiClient
from abb_automation.patcher import patch_workflow

logger = logging.getLogger(__name__)

DOC_ID_KEY = "docId"


def utc_timestamp(moment: datetime | None = None) -> str:
    """ISO-8601 UTC with milliseconds and a ``Z`` suffix, as JavaScript writes it."""
    moment = moment or datetime.now(timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class ProcessedSet:
    """Set-like view of ``staticData.global.docIds``; edits write through."""

    def __init__(self, static_data: dict | None = None) -> None:
        self.static_data = static_data if static_data is not None else {}
        scope = self.static_data.setdefault("global", {})
        self._ids: dict[str, dict] = scope.setdefault("docIds", {})

    @classmethod
    def of(cls, graph: WorkflowGraph) -> "ProcessedSet":
        """View bound to a graph; creates its static data when missing."""
        if not isinstance(graph.static_data, dict):
            graph.static_data = {}
        return cls(graph.static_data)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def __iter__(self) -> Iterator[str]:
        return iter(self._ids)

    def ids(self) -> set[str]:
        return set(self._ids)

    def get(self, item_id: str) -> dict | None:
        return self._ids.get(item_id)

    def mark(self, item_id: str, date: str | None = None,
             processed_at: str | None = None) -> None:
        self._ids[item_id] = {"date": date, "processedAt": processed_at or utc_timestamp()}

    def replace(self, entries: dict[str, str], processed_at: str | None = None) -> None:
        """Make the set exactly ``entries`` (id -> date)."""
        stamp = processed_at or utc_timestamp()
        self._ids.clear()
        for item_id, date in entries.items():
            self.mark(item_id, date, stamp)

    def unprocessed(self, items: Iterable[dict], key: str = DOC_ID_KEY) -> list[dict]:
        return [item for item in items if item.get(key) not in self]


@dataclass
class BackfillReport:
    processed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


def run_backfill(
    items: Iterable[dict],
    process: Callable[[dict], Any],
    processed: ProcessedSet,
    *,
    key: str = DOC_ID_KEY,
    date_key: str = "date",
) -> BackfillReport:
    """Process every item whose id is not yet in ``processed``.

    An item is marked right after ``process`` returns for it. If ``process``
    raises, the run stops and the exception propagates: earlier items stay
    marked, the failing one and everything after it do not.
    """
    report = BackfillReport()
    for item in items:
        item_id = item.get(key)
        if item_id in processed:
            report.skipped.append(item_id)
            continue
        process(item)
        processed.mark(item_id, item.get(date_key))
        report.processed.append(item_id)
    logger.info("Backfill: %d processed, %d skipped",
                len(report.processed), len(report.skipped))
    return report


def seed_processed_docs(client: N8nApiClient, workflow_id: str,
                        entries: dict[str, str],
                        processed_at: str | None = None,
                        dry_run: bool = False) -> WorkflowGraph:
    """Replace a workflow's processed-doc set with ``entries`` (id -> date label)."""
    def mutate(graph: WorkflowGraph) -> None:
        ProcessedSet.of(graph).replace(entries, processed_at)

    logger.info("Marking %d docs as already processed", len(entries))
    return patch_workflow(client, workflow_id, mutate, dry_run=dry_run)


# ──────────────────────────────────────────────────
# Code-node templates (run inside n8n)
# ──────────────────────────────────────────────────
def skip_filter_js(key: str = DOC_ID_KEY) -> str:
    """Drop items whose ``key`` is already in static data; emit ``skip`` if none remain."""
    return (
        "var processed = $getWorkflowStaticData('global');\n"
        "if (!processed.docIds) processed.docIds = {};\n"
        "\n"
        "var fresh = $input.all().filter(function(item) {\n"
        f"  var id = item.json.{key};\n"
        "  return id && !processed.docIds[id];\n"
        "});\n"
        "\n"
        "if (fresh.length === 0) {\n"
        "  return [{ json: { skip: true } }];\n"
        "}\n"
        "return fresh;"
    )


def mark_processed_js(key: str = DOC_ID_KEY, date_field: str = "date",
                      source_node: str | None = None) -> str:
    """Record each item's ``key`` in static data.

    Placed after the last step that must succeed. With ``source_node`` the
    id is read from the paired item of that node instead of the input.
    """
    if source_node:
        lookup = f"  var src = $({source_node!r}).itemMatching(i).json;\n"
    else:
        lookup = "  var src = item.json;\n"
    return (
        "var processed = $getWorkflowStaticData('global');\n"
        "if (!processed.docIds) processed.docIds = {};\n"
        "\n"
        "var items = $input.all();\n"
        "items.forEach(function(item, i) {\n"
        f"{lookup}"
        f"  var id = src.{key};\n"
        "  if (id) {\n"
        f"    processed.docIds[id] = {{ date: src.{date_field} || null,"
        " processedAt: new Date().toISOString() };\n"
        "  }\n"
        "});\n"
        "return items;"
    )
