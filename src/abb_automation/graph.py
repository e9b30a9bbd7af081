"""In-memory view of an n8n workflow graph and the edits the patch scripts make.

A graph is the JSON n8n returns from ``GET /workflows/{id}``: an ordered
``nodes`` list and a ``connections`` map keyed by *source node name*::

    connections = {
        "Download PDF": {
            "main": [                      # one list per output port
                [{"node": "Prepare", "type": "main", "index": 0}],
            ],
        },
    }

Node names are the foreign keys. Every edit below keeps them consistent:
a reference to a node that does not exist is what makes n8n reject a save.
Nothing else is validated locally. Parameters (including embedded scripts)
are opaque data.
"""
from __future__ import annotations

import copy
from typing import Any, Iterator

from abb_automation.errors import (
    DanglingConnectionError,
    DuplicateNodeError,
    GraphError,
    NodeNotFoundError,
)

MAIN = "main"


def ref(target: str, input_index: int = 0, kind: str = MAIN) -> dict:
    """One connection target entry."""
    return {"node": target, "type": kind, "index": input_index}


class WorkflowGraph:
    """Mutable workflow graph.

    Wraps the fetched payload without copying it, so fields no edit touches
    go back to n8n exactly as they came.
    """

    def __init__(self, name: str, nodes: list[dict] | None = None,
                 connections: dict[str, dict] | None = None,
                 settings: dict | None = None, static_data: Any = None,
                 workflow_id: str | None = None, active: bool | None = None) -> None:
        self.name = name
        self.nodes: list[dict] = nodes if nodes is not None else []
        self.connections: dict[str, dict] = connections if connections is not None else {}
        self.settings: dict = settings if settings is not None else {}
        self.static_data = static_data
        self.id = workflow_id
        self.active = active

    # ──────────────────────────────────────────────
    # Wire format
    # ──────────────────────────────────────────────
    @classmethod
    def from_api(cls, payload: dict) -> "WorkflowGraph":
        """Build from a ``GET /workflows/{id}`` (or PUT/POST) response."""
        return cls(
            name=payload.get("name", ""),
            nodes=payload.get("nodes"),
            connections=payload.get("connections"),
            settings=payload.get("settings"),
            static_data=payload.get("staticData"),
            workflow_id=payload.get("id"),
            active=payload.get("active"),
        )

    def to_payload(self) -> dict:
        """Body for ``PUT /workflows/{id}``: the only fields n8n accepts."""
        return {
            "name": self.name,
            "nodes": self.nodes,
            "connections": self.connections,
            "settings": self.settings,
            "staticData": self.static_data,
        }

    def copy(self) -> "WorkflowGraph":
        clone = copy.deepcopy(self.to_payload())
        return WorkflowGraph(clone["name"], clone["nodes"], clone["connections"],
                             clone["settings"], clone["staticData"], self.id, self.active)

    # ──────────────────────────────────────────────
    # Lookup
    # ──────────────────────────────────────────────
    @property
    def node_names(self) -> list[str]:
        return [n.get("name") for n in self.nodes]

    def find_node(self, name: str) -> dict | None:
        return next((n for n in self.nodes if n.get("name") == name), None)

    def get_node(self, name: str) -> dict:
        node = self.find_node(name)
        if node is None:
            raise NodeNotFoundError(name)
        return node

    def has_node(self, name: str) -> bool:
        return self.find_node(name) is not None

    def index_of(self, name: str) -> int:
        for i, n in enumerate(self.nodes):
            if n.get("name") == name:
                return i
        raise NodeNotFoundError(name)

    def nodes_of_type(self, node_type: str) -> list[dict]:
        return [n for n in self.nodes if n.get("type") == node_type]

    def first_of_type(self, node_type: str) -> dict:
        matches = self.nodes_of_type(node_type)
        if not matches:
            raise NodeNotFoundError(f"<type {node_type}>")
        return matches[0]

    def _refs(self) -> Iterator[tuple[str, str, int, dict]]:
        """Yield (source, kind, output, entry) for every connection entry."""
        for source, by_kind in self.connections.items():
            for kind, ports in (by_kind or {}).items():
                for output, port in enumerate(ports or []):
                    for entry in port or []:
                        yield source, kind, output, entry

    def targets(self, source: str, output: int = 0, kind: str = MAIN) -> list[str]:
        ports = (self.connections.get(source) or {}).get(kind) or []
        if output >= len(ports):
            return []
        return [entry["node"] for entry in ports[output] or []]

    def sources_of(self, name: str, kind: str = MAIN) -> list[tuple[str, int]]:
        """(source, output) pairs with an edge into ``name``."""
        return [
            (source, output)
            for source, k, output, entry in self._refs()
            if k == kind and entry.get("node") == name
        ]

    # ──────────────────────────────────────────────
    # Edits
    # ──────────────────────────────────────────────
    def add_node(self, node: dict, index: int | None = None) -> dict:
        name = node.get("name")
        if not name:
            raise GraphError("Node has no name")
        if self.has_node(name):
            raise DuplicateNodeError(name)
        if index is None:
            self.nodes.append(node)
        else:
            self.nodes.insert(index, node)
        return node

    def connect(self, source: str, target: str, output: int = 0,
                input_index: int = 0, kind: str = MAIN) -> None:
        """Add ``source[output] -> target`` unless it already exists."""
        self.get_node(source)
        self.get_node(target)
        ports = self.connections.setdefault(source, {}).setdefault(kind, [])
        while len(ports) <= output:
            ports.append([])
        if ports[output] is None:
            ports[output] = []
        entry = ref(target, input_index, kind)
        if entry not in ports[output]:
            ports[output].append(entry)

    def disconnect(self, source: str, target: str, output: int | None = None,
                   kind: str = MAIN) -> int:
        """Remove edges ``source -> target`` (one output or all). Returns count."""
        ports = (self.connections.get(source) or {}).get(kind) or []
        removed = 0
        for i, port in enumerate(ports):
            if output is not None and i != output:
                continue
            kept = [e for e in port or [] if e.get("node") != target]
            removed += len(port or []) - len(kept)
            ports[i] = kept
        return removed

    def insert_between(self, upstream: str, node: dict, downstream: str,
                       output: int = 0) -> dict:
        """Splice ``node`` into the edge ``upstream[output] -> downstream``.

        The node goes right after ``upstream`` in the node list. Afterwards
        ``upstream -> node -> downstream`` holds and the direct edge is gone.
        If there was no direct edge the node is still wired in.
        """
        self.get_node(downstream)
        self.add_node(node, self.index_of(upstream) + 1)
        new_name = node["name"]

        ports = self.connections.setdefault(upstream, {}).setdefault(MAIN, [])
        while len(ports) <= output:
            ports.append([])
        port = ports[output] or []
        input_index = 0
        replaced = False
        rewired: list[dict] = []
        for entry in port:
            if entry.get("node") == downstream:
                input_index = entry.get("index", 0)
                if not replaced:
                    rewired.append(ref(new_name))
                    replaced = True
            else:
                rewired.append(entry)
        if not replaced:
            rewired.append(ref(new_name))
        ports[output] = rewired

        self.connect(new_name, downstream, input_index=input_index)
        return node

    def insert_after(self, upstream: str, node: dict, output: int = 0) -> dict:
        """Put ``node`` between ``upstream[output]`` and everything it fed."""
        self.add_node(node, self.index_of(upstream) + 1)
        ports = self.connections.setdefault(upstream, {}).setdefault(MAIN, [])
        while len(ports) <= output:
            ports.append([])
        moved = ports[output] or []
        ports[output] = [ref(node["name"])]
        if moved:
            self.connections[node["name"]] = {MAIN: [moved]}
        return node

    def remove_node(self, name: str, bridge: bool = False) -> dict:
        """Delete a node and every edge touching it.

        With ``bridge`` each ``main`` upstream edge is re-pointed at the
        removed node's first-output targets, so ``A -> X -> B`` becomes
        ``A -> B``.
        """
        index = self.index_of(name)
        downstream = [
            entry for entry in
            (((self.connections.get(name) or {}).get(MAIN) or [[]]) or [[]])[0] or []
        ]
        upstream = self.sources_of(name)

        removed = self.nodes.pop(index)
        self.connections.pop(name, None)
        for by_kind in self.connections.values():
            for kind, ports in (by_kind or {}).items():
                for i, port in enumerate(ports or []):
                    ports[i] = [e for e in port or [] if e.get("node") != name]

        if bridge:
            for source, output in upstream:
                if source == name:
                    continue
                for entry in downstream:
                    if entry.get("node") != name:
                        self.connect(source, entry["node"], output, entry.get("index", 0))
        return removed

    def rename_node(self, old: str, new: str) -> None:
        """Rename a node, its connections key and every reference to it."""
        if old == new:
            return
        node = self.get_node(old)
        if self.has_node(new):
            raise DuplicateNodeError(new)
        node["name"] = new
        self._rename_refs(old, new)

    def replace_node(self, name: str, new_node: dict, keep_identity: bool = True) -> dict:
        """Swap a node definition in place; returns the old node.

        ``keep_identity`` carries over the old id and position. A different
        name is propagated to the connections.
        """
        index = self.index_of(name)
        old = self.nodes[index]
        new_node = dict(new_node)
        new_node.setdefault("name", name)
        new_name = new_node["name"]
        if new_name != name and self.has_node(new_name):
            raise DuplicateNodeError(new_name)
        if keep_identity:
            new_node["id"] = old.get("id")
            new_node["position"] = old.get("position")
        self.nodes[index] = new_node
        if new_name != name:
            self._rename_refs(name, new_name)
        return old

    def _rename_refs(self, old: str, new: str) -> None:
        items = [(new if key == old else key, value) for key, value in self.connections.items()]
        self.connections.clear()
        self.connections.update(items)
        for _source, _kind, _output, entry in self._refs():
            if entry.get("node") == old:
                entry["node"] = new

    # ──────────────────────────────────────────────
    # Integrity
    # ──────────────────────────────────────────────
    def dangling_references(self) -> list[tuple[str, str]]:
        """(source, target) pairs where either end names no node."""
        names = set(self.node_names)
        return [
            (source, entry.get("node"))
            for source, _kind, _output, entry in self._refs()
            if source not in names or entry.get("node") not in names
        ]

    def validate(self) -> None:
        dangling = self.dangling_references()
        if dangling:
            raise DanglingConnectionError(dangling)

    def describe(self) -> list[str]:
        """One line per node, in list order."""
        return [f"{n.get('name')} ({n.get('type')})" for n in self.nodes]
