"""
Tests for the generated daily-progress and timesheet workflows.
"""
import json

import pytest

from abb_automation import recipes
from abb_automation.graph import WorkflowGraph
from abb_automation.workflows.daily_progress import (
    BACKFILL_NAME,
    build_daily_progress,
    build_timesheet_sync,
)


@pytest.fixture
def backfill() -> WorkflowGraph:
    return WorkflowGraph.from_api(build_daily_progress())


@pytest.fixture
def timesheets() -> WorkflowGraph:
    return WorkflowGraph.from_api(build_timesheet_sync())


class TestDailyProgress:

    def test_graph_is_consistent(self, backfill):
        assert backfill.name == BACKFILL_NAME
        assert backfill.dangling_references() == []
        assert len(set(backfill.node_names)) == len(backfill.nodes)

    def test_both_triggers_start_the_listing(self, backfill):
        assert backfill.targets("Run Backfill") == ["Drive: List Docs"]
        assert backfill.targets("Schedule Trigger") == ["Drive: List Docs"]
        schedule = backfill.first_of_type(recipes.SCHEDULE_TRIGGER)
        assert schedule["parameters"] == {
            "rule": {"interval": [{"field": "cronExpression", "expression": recipes.DAILY_CRON}]},
        }

    def test_processed_docs_are_skipped_before_reading(self, backfill):
        assert backfill.targets("Code: Get Google Docs") == ["Code: Skip Processed"]
        assert "processed.docIds[id]" in backfill.get_node("Code: Skip Processed")["parameters"]["jsCode"]
        # only the false branch reads the docs
        assert backfill.targets("IF: Nothing New?", 0) == []
        assert backfill.targets("IF: Nothing New?", 1) == ["Docs: Read Content"]

    def test_docs_are_marked_only_after_task_creation(self, backfill):
        assert backfill.targets("Code: Skip Filter") == ["ClickUp: Create Daily Task"]
        assert backfill.targets("ClickUp: Create Daily Task") == ["Code: Mark Processed"]
        assert backfill.sources_of("Code: Mark Processed") == [("ClickUp: Create Daily Task", 0)]
        js = backfill.get_node("Code: Mark Processed")["parameters"]["jsCode"]
        assert "$('Code: Skip Filter').itemMatching(i)" in js

    def test_claude_body_is_raw_json_expression(self, backfill):
        params = backfill.get_node("Claude: Filter Angel Tasks")["parameters"]
        assert params["contentType"] == "raw"
        assert params["body"].startswith("={{ JSON.stringify({")
        assert '"max_tokens": 2048' in params["body"]

    def test_google_nodes_use_their_credentials(self, backfill):
        assert set(backfill.get_node("Drive: List Docs")["credentials"]) == {"googleDriveOAuth2Api"}
        read = backfill.get_node("Docs: Read Content")
        assert set(read["credentials"]) == {"googleDocsOAuth2Api"}
        assert read["parameters"]["nodeCredentialType"] == "googleDocsOAuth2Api"

    def test_ids_and_model_are_substituted(self):
        body = json.dumps(build_daily_progress(folder_id="FOLDER-X", list_id="LIST-Y",
                                               model="claude-sonnet-4-6"))
        assert "FOLDER-X" in body
        assert "LIST-Y" in body
        assert "claude-sonnet-4-6" in body

    def test_recipes_apply_cleanly(self, backfill):
        assert recipes.add_clickup_upsert()(backfill) is True
        recipes.swap_trigger_to_webhook("abb-backfill")(backfill)
        recipes.set_schedule_cron("0 9 * * *")(backfill)
        assert backfill.dangling_references() == []
        assert backfill.targets("IF: Create or Update?", 1) == ["ClickUp: Create Daily Task"]
        assert backfill.targets("ClickUp: Create Daily Task") == ["Code: Mark Processed"]
        assert backfill.targets("Webhook Trigger") == ["Drive: List Docs"]

    def test_tracking_recipe_sees_existing_nodes(self, backfill):
        mutate = recipes.add_processed_tracking("Code: Get Google Docs", "ClickUp: Create Daily Task")
        assert mutate(backfill) is False


class TestTimesheetSync:

    def test_graph_is_consistent(self, timesheets):
        assert timesheets.dangling_references() == []
        assert len(set(timesheets.node_names)) == len(timesheets.nodes)

    def test_pdf_is_converted_before_claude(self, timesheets):
        assert timesheets.targets("Drive: Download PDF") == ["Convert PDF to Base64"]
        assert timesheets.targets("Convert PDF to Base64") == ["Claude: Extract Timesheet Tasks"]
        body = timesheets.get_node("Claude: Extract Timesheet Tasks")["parameters"]["body"]
        assert '"data": $json.pdfBase64' in body

    def test_existing_tasks_are_fetched_once(self, timesheets):
        assert timesheets.get_node("ClickUp: Get Existing Tasks")["executeOnce"] is True
        assert timesheets.targets("ClickUp: Get Existing Tasks") == ["Code: Prepare Upsert"]

    def test_if_branches(self, timesheets):
        assert timesheets.targets("IF: Create or Update", 0) == ["ClickUp: Create Task (PDF)"]
        assert timesheets.targets("IF: Create or Update", 1) == ["ClickUp: Update Task (PDF)"]

    def test_pdf_ids_can_be_overridden(self):
        graph = WorkflowGraph.from_api(build_timesheet_sync(pdfs=[{"id": "PDF-1", "name": "a.pdf"}]))
        assert "PDF-1" in graph.get_node("Code: Timesheet PDF IDs")["parameters"]["jsCode"]

    def test_model_recipe_rewrites_the_claude_node(self, timesheets):
        assert recipes.set_claude_model("claude-sonnet-4-6")(timesheets) == 1
        body = timesheets.get_node("Claude: Extract Timesheet Tasks")["parameters"]["body"]
        assert '"model": "claude-sonnet-4-6"' in body
