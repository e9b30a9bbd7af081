"""
Tests for the processed-id set and the mark-after-success backfill runner.
"""
from datetime import datetime, timezone

import pytest

from abb_automation.backfill import (
    ProcessedSet,
    mark_processed_js,
    run_backfill,
    seed_processed_docs,
    skip_filter_js,
    utc_timestamp,
)
from abb_automation.graph import WorkflowGraph

DAILY_ID = "ZmIN72JrIyb4h1Ra"


def _docs(*ids: str) -> list[dict]:
    return [{"docId": i, "date": f"02/{n + 2:02d}/2026"} for n, i in enumerate(ids)]


class TestProcessedSet:

    def test_creates_structure_on_empty_static_data(self):
        graph = WorkflowGraph("wf", static_data=None)
        processed = ProcessedSet.of(graph)
        processed.mark("d1", "02/02/2026", "2026-02-27T15:00:57.213Z")
        assert graph.static_data == {"global": {"docIds": {
            "d1": {"date": "02/02/2026", "processedAt": "2026-02-27T15:00:57.213Z"},
        }}}

    def test_keeps_other_static_keys(self):
        static = {"global": {"lastRun": 5}, "node:Gmail": {"cursor": "x"}}
        ProcessedSet(static).mark("d1")
        assert static["global"]["lastRun"] == 5
        assert static["node:Gmail"] == {"cursor": "x"}

    def test_membership_and_unprocessed(self):
        processed = ProcessedSet()
        processed.mark("a")
        assert "a" in processed and "b" not in processed
        assert [d["docId"] for d in processed.unprocessed(_docs("a", "b"))] == ["b"]

    def test_replace_is_exact(self):
        processed = ProcessedSet()
        processed.mark("old")
        processed.replace({"x": "02/02/2026", "y": "Timesheet PDF (skip)"}, "2026-02-27T15:00:57.213Z")
        assert processed.ids() == {"x", "y"}
        assert processed.get("y")["date"] == "Timesheet PDF (skip)"


def test_utc_timestamp_format():
    moment = datetime(2026, 2, 27, 15, 0, 57, 213000, tzinfo=timezone.utc)
    assert utc_timestamp(moment) == "2026-02-27T15:00:57.213Z"


class TestRunBackfill:

    def test_second_run_processes_nothing(self):
        processed = ProcessedSet()
        seen = []
        run_backfill(_docs("a", "b"), lambda d: seen.append(d["docId"]), processed)
        report = run_backfill(_docs("a", "b"), lambda d: seen.append(d["docId"]), processed)
        assert seen == ["a", "b"]
        assert report.processed == []
        assert report.skipped == ["a", "b"]

    def test_failure_leaves_item_unmarked(self):
        processed = ProcessedSet()

        def process(doc):
            if doc["docId"] == "b":
                raise RuntimeError("ClickUp down")

        with pytest.raises(RuntimeError):
            run_backfill(_docs("a", "b", "c"), process, processed)
        assert processed.ids() == {"a"}

        report = run_backfill(_docs("a", "b", "c"), lambda d: None, processed)
        assert report.processed == ["b", "c"]
        assert processed.get("b")["date"] == "02/03/2026"


def test_seed_processed_docs_replaces_static_data(fake_n8n):
    entries = {"1Wn7iK": "02/02/2026", "158jrG": "Timesheet PDF (skip)"}
    seed_processed_docs(fake_n8n, DAILY_ID, entries, processed_at="2026-02-27T15:00:57.213Z")

    saved = fake_n8n.saved[-1]["staticData"]["global"]["docIds"]
    assert set(saved) == set(entries)
    assert saved["1Wn7iK"] == {"date": "02/02/2026", "processedAt": "2026-02-27T15:00:57.213Z"}


def test_seed_dry_run_does_not_save(fake_n8n):
    seed_processed_docs(fake_n8n, DAILY_ID, {"x": "02/02/2026"}, dry_run=True)
    assert fake_n8n.saved == []


class TestScriptTemplates:

    def test_skip_filter_uses_key(self):
        js = skip_filter_js("fileId")
        assert "item.json.fileId" in js
        assert "skip: true" in js

    def test_mark_processed_reads_source_node(self):
        js = mark_processed_js(source_node="Code: Skip Processed")
        assert "$('Code: Skip Processed').itemMatching(i).json" in js
        assert "processed.docIds[id]" in js
