"""Collapse a daily-report list to one ClickUp task per date.

Tasks are named ``MM/DD/YYYY``, sometimes with a suffix such as
``02/05/2026 — Timesheet``. For each date the task named exactly the date is
kept (otherwise the first one), the other descriptions are merged into it,
the keeper is renamed to the bare date and the rest are deleted.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from abb_automation.clickup_client import ClickUpClient
from abb_automation.errors import PermanentRemoteError

logger = logging.getLogger(__name__)

DATE_RE = re.compile(r"(\d{2}/\d{2}/\d{4})")
_LABEL_STRIP_RE = re.compile(r"^[\s—-]+")


@dataclass
class DateGroupPlan:
    date: str
    keeper_id: str
    keeper_name: str
    delete_ids: list[str] = field(default_factory=list)
    description: str | None = None

    @property
    def rename(self) -> bool:
        return self.keeper_name != self.date


@dataclass
class DedupePlan:
    groups: list[DateGroupPlan] = field(default_factory=list)
    ignored: list[dict] = field(default_factory=list)

    @property
    def delete_count(self) -> int:
        return sum(len(g.delete_ids) for g in self.groups)


def _label(name: str, date: str) -> str:
    return _LABEL_STRIP_RE.sub("", name.replace(date, "")).strip() or "Timesheet entry"


def merge_descriptions(keeper: dict, dupes: list[dict], date: str) -> str:
    parts: list[str] = []
    own = (keeper.get("description") or "").strip()
    if own:
        parts.append(own)
    for d in dupes:
        text = (d.get("description") or "").strip()
        if not text:
            continue
        header = f"\n\n---\n**{_label(d['name'], date)}:**\n" if d["name"] != date else "\n\n---\n"
        parts.append(header + text)
    return "\n\n".join(parts).strip()


def plan_dedupe(tasks: list[dict]) -> DedupePlan:
    """Work out renames, merges and deletions without touching ClickUp."""
    plan = DedupePlan()
    by_date: dict[str, list[dict]] = {}
    for task in tasks:
        m = DATE_RE.search(task.get("name") or "")
        if not m:
            plan.ignored.append(task)
            continue
        by_date.setdefault(m.group(1), []).append(task)

    for date in sorted(by_date):
        group = sorted(by_date[date], key=lambda t: 0 if t["name"] == date else 1)
        keeper, dupes = group[0], group[1:]
        if not dupes and keeper["name"] == date:
            continue
        merged = merge_descriptions(keeper, dupes, date) if dupes else None
        plan.groups.append(DateGroupPlan(
            date=date,
            keeper_id=keeper["id"],
            keeper_name=keeper["name"],
            delete_ids=[d["id"] for d in dupes],
            description=merged or None,
        ))
    return plan


def apply_plan(client: ClickUpClient, plan: DedupePlan) -> int:
    """Perform a plan. Returns the number of deleted tasks."""
    deleted = 0
    for group in plan.groups:
        fields: dict = {"name": group.date}
        if group.description:
            fields["description"] = group.description
        client.update_task(group.keeper_id, **fields)
        if group.rename:
            logger.info("Renamed: %r -> %r (%s)", group.keeper_name, group.date, group.keeper_id)
        for task_id in group.delete_ids:
            client.delete_task(task_id)
            deleted += 1
        if group.delete_ids:
            logger.info("%s: kept %s, merged %d duplicate(s)",
                        group.date, group.keeper_id, len(group.delete_ids))
    return deleted


# ──────────────────────────────────────────────────
# Cleanup of tasks created by a bad run
# ──────────────────────────────────────────────────
def created_task_ids(execution: dict, node_name: str = "ClickUp: Create Daily Task") -> list[str]:
    """Task ids output by ``node_name`` in an execution fetched with data."""
    run_data = ((execution.get("data") or {}).get("resultData") or {}).get("runData") or {}
    ids = []
    for run in run_data.get(node_name) or []:
        outputs = ((run or {}).get("data") or {}).get("main") or [[]]
        for item in outputs[0] or []:
            task_id = ((item or {}).get("json") or {}).get("id")
            if task_id:
                ids.append(task_id)
    return ids


def delete_tasks(client: ClickUpClient, task_ids: list[str]) -> int:
    """Delete tasks; ones already gone (404) count as deleted."""
    deleted = 0
    for task_id in task_ids:
        try:
            client.delete_task(task_id)
        except PermanentRemoteError as exc:
            if exc.status != 404:
                raise
        deleted += 1
    return deleted
