"""
Tests for the fetch / mutate / save primitive.
"""
import copy

import pytest

from abb_automation.errors import DanglingConnectionError, NodeNotFoundError
from abb_automation.graph import ref
from abb_automation.patcher import patch_workflow

SEO_ID = "9Xw3q2PtO1LPC4JH"


def test_untouched_fields_round_trip_exactly(fake_n8n, seo_workflow):
    """A no-op mutator sends back every writable field unchanged."""
    patch_workflow(fake_n8n, SEO_ID, lambda graph: None)

    assert len(fake_n8n.saved) == 1
    body = fake_n8n.saved[0]
    assert set(body) == {"name", "nodes", "connections", "settings", "staticData"}
    for key in body:
        assert body[key] == seo_workflow[key]


def test_edit_only_changes_what_it_touches(fake_n8n, seo_workflow):
    def rename_download(graph):
        graph.rename_node("Download PDF", "Fetch PDF")

    result = patch_workflow(fake_n8n, SEO_ID, rename_download)
    body = fake_n8n.saved[0]
    assert body["settings"] == seo_workflow["settings"]
    assert body["nodes"][2] == seo_workflow["nodes"][2]
    assert body["connections"]["Manual Trigger"]["main"][0] == [ref("Fetch PDF")]
    assert result.has_node("Fetch PDF")
    assert result.id == SEO_ID


def test_mutator_error_saves_nothing(fake_n8n):
    def broken(graph):
        graph.get_node("Does Not Exist")

    with pytest.raises(NodeNotFoundError):
        patch_workflow(fake_n8n, SEO_ID, broken)
    assert fake_n8n.saved == []


def test_validate_blocks_dangling_save(fake_n8n):
    def dangle(graph):
        graph.connections["Download PDF"]["main"][0].append(ref("Ghost"))

    with pytest.raises(DanglingConnectionError):
        patch_workflow(fake_n8n, SEO_ID, dangle, validate=True)
    assert fake_n8n.saved == []


def test_dry_run_returns_edited_graph_without_put(fake_n8n):
    graph = patch_workflow(fake_n8n, SEO_ID, lambda g: g.rename_node("Download PDF", "X"),
                           dry_run=True)
    assert graph.has_node("X")
    assert ("put", SEO_ID) not in fake_n8n.calls


def test_skip_unchanged(fake_n8n):
    patch_workflow(fake_n8n, SEO_ID, lambda g: None, skip_unchanged=True)
    assert fake_n8n.saved == []


def test_deactivate_during_save_reactivates(fake_n8n):
    patch_workflow(fake_n8n, SEO_ID, lambda g: None, deactivate_during_save=True)
    ops = [c[0] for c in fake_n8n.calls]
    assert ops == ["get", "deactivate", "put", "activate"]


def test_reactivates_even_when_put_fails(fake_n8n):
    def failing_put(workflow_id, workflow):
        raise RuntimeError("boom")

    fake_n8n.update_workflow = failing_put
    with pytest.raises(RuntimeError):
        patch_workflow(fake_n8n, SEO_ID, lambda g: None, deactivate_during_save=True)
    assert fake_n8n.workflows[SEO_ID]["active"] is True


def test_inactive_workflow_is_not_toggled(fake_n8n, daily_workflow):
    patch_workflow(fake_n8n, daily_workflow["id"], lambda g: None, deactivate_during_save=True)
    ops = [c[0] for c in fake_n8n.calls]
    assert "activate" not in ops and "deactivate" not in ops


def test_fetched_payload_is_not_shared_with_store(fake_n8n, seo_workflow):
    before = copy.deepcopy(fake_n8n.workflows[SEO_ID])
    patch_workflow(fake_n8n, SEO_ID, lambda g: g.rename_node("Download PDF", "X"), dry_run=True)
    assert fake_n8n.workflows[SEO_ID] == before
