"""Fetch a workflow, apply an edit, save it back."""
from __future__ import annotations

import copy
import logging
from typing import Callable

from abb_automation.graph import WorkflowGraph
from abb_automation.n8n_client import N8nApiClient

logger = logging.getLogger(__name__)

Mutator = Callable[[WorkflowGraph], object]


def patch_workflow(
    client: N8nApiClient,
    workflow_id: str,
    mutator: Mutator,
    *,
    validate: bool = False,
    dry_run: bool = False,
    deactivate_during_save: bool = False,
    skip_unchanged: bool = False,
) -> WorkflowGraph:
    """GET the workflow, run ``mutator`` on it and PUT the result.

    The PUT body is ``WorkflowGraph.to_payload()``: every field the mutator
    did not touch is sent back exactly as fetched. If the mutator raises,
    nothing is saved.

    Args:
        client: n8n API client.
        workflow_id: Workflow to edit.
        mutator: Edits the graph in place. Its return value is ignored.
        validate: Check connection integrity locally before saving.
        dry_run: Apply the edit but skip the PUT; returns the edited graph.
        deactivate_during_save: Deactivate an active workflow around the PUT
            and re-activate it afterwards.
        skip_unchanged: Do not PUT when the edit changed nothing.

    Returns:
        The graph as n8n stored it (or the local graph when nothing was saved).
    """
    graph = WorkflowGraph.from_api(client.get_workflow(workflow_id))
    logger.info("Fetched: %s (%d nodes)", graph.name, len(graph.nodes))
    before = copy.deepcopy(graph.to_payload()) if skip_unchanged else None

    mutator(graph)

    if validate:
        graph.validate()
    if dry_run:
        logger.info("Dry run: not saving %s", graph.name)
        return graph
    if before is not None and before == graph.to_payload():
        logger.info("No changes: %s", graph.name)
        return graph

    reactivate = bool(deactivate_during_save and graph.active)
    if reactivate:
        client.deactivate(workflow_id)
    try:
        saved = client.update_workflow(workflow_id, graph.to_payload())
    finally:
        if reactivate:
            client.activate(workflow_id)
    logger.info("Workflow updated: %s", client.workflow_url(workflow_id))

    result = WorkflowGraph.from_api(saved or graph.to_payload())
    if result.id is None:
        result.id = workflow_id
    return result
