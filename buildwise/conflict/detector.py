"""Field-level conflict detection between a module and the canonical snapshot.

detect_conflicts() is a pure comparator: it pairs up incoming (module) nodes
and edges with canonical ones that share the same identity and reports the
fields that disagree.  It is not a three-way merge: anything present on one
side only is ignored.

Rules:
  node-type      same node id, different ``type``
  node-db        same node id, both sides carry ``meta.dbType`` and they differ
  edge-protocol  same edge, both sides carry ``meta.protocol`` and they differ
  edge-auth      same edge, both sides carry ``meta.auth`` and they differ

Edge identity is the explicit ``id`` when present, otherwise the (from, to)
pair.  Edge rules only run when both edge lists are supplied.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable

from pydantic import BaseModel, Field

from buildwise.conflict.ids import edge_conflict_id, node_conflict_id
from buildwise.errors import ModuleNotFound
from buildwise.graph.models import Edge, Node
from buildwise.store.base import DocumentStore

logger = logging.getLogger(__name__)

NODE_TYPE = "node-type"
NODE_DB = "node-db"
EDGE_PROTOCOL = "edge-protocol"
EDGE_AUTH = "edge-auth"


class Conflict(BaseModel):
    """A divergence between a module's view of a node/edge and the canonical view."""

    id: str
    kind: str
    node_id: str | None = None
    edge_id: str | None = None
    reason: str
    existing_value: Any = None
    incoming_value: Any = None


class ConflictReport(BaseModel):
    has_conflicts: bool = False
    conflicts: list[Conflict] = Field(default_factory=list)


def _as_nodes(items: Iterable[Node | dict] | None) -> list[Node]:
    return [n if isinstance(n, Node) else Node.model_validate(n) for n in items or []]


def _as_edges(items: Iterable[Edge | dict] | None) -> list[Edge]:
    return [e if isinstance(e, Edge) else Edge.model_validate(e) for e in items or []]


def _both_differ(existing: dict, incoming: dict, key: str) -> bool:
    left, right = existing.get(key), incoming.get(key)
    return bool(left) and bool(right) and left != right


def _node_conflicts(existing: list[Node], incoming: list[Node], module_id: str | None) -> list[Conflict]:
    canonical = {n.id: n for n in existing}
    conflicts: list[Conflict] = []

    for node in incoming:
        current = canonical.get(node.id)
        if current is None:
            continue

        if current.type != node.type:
            conflicts.append(Conflict(
                id=node_conflict_id(module_id, node.id) if module_id else f"{NODE_TYPE}-{node.id}",
                kind=NODE_TYPE,
                node_id=node.id,
                reason=f"Type mismatch: {current.type} !== {node.type}",
                existing_value=current.type,
                incoming_value=node.type,
            ))

        if _both_differ(current.meta, node.meta, "dbType"):
            conflicts.append(Conflict(
                id=(
                    node_conflict_id(module_id, node.id, meta=True)
                    if module_id
                    else f"{NODE_DB}-{node.id}"
                ),
                kind=NODE_DB,
                node_id=node.id,
                reason=f"DB type mismatch: {current.meta['dbType']} !== {node.meta['dbType']}",
                existing_value=current.meta["dbType"],
                incoming_value=node.meta["dbType"],
            ))

    return conflicts


def _edge_conflicts(existing: list[Edge], incoming: list[Edge], module_id: str | None) -> list[Conflict]:
    by_id = {e.id: e for e in existing if e.id}
    by_pair = {e.pair: e for e in existing}
    conflicts: list[Conflict] = []

    for edge in incoming:
        current = by_id.get(edge.id) if edge.id else by_pair.get(edge.pair)
        if current is None:
            continue

        for kind, field_name, label in (
            (EDGE_PROTOCOL, "protocol", "Protocol"),
            (EDGE_AUTH, "auth", "Auth"),
        ):
            if not _both_differ(current.meta, edge.meta, field_name):
                continue
            if module_id:
                conflict_id = edge_conflict_id(
                    module_id, edge.source, edge.target, meta=(kind == EDGE_AUTH)
                )
            else:
                conflict_id = f"{kind}-{edge.key}"
            conflicts.append(Conflict(
                id=conflict_id,
                kind=kind,
                edge_id=edge.key,
                reason=f"{label} mismatch: {current.meta[field_name]} !== {edge.meta[field_name]}",
                existing_value=current.meta[field_name],
                incoming_value=edge.meta[field_name],
            ))

    return conflicts


def detect_conflicts(
    existing_nodes: Iterable[Node | dict],
    incoming_nodes: Iterable[Node | dict],
    existing_edges: Iterable[Edge | dict] | None = None,
    incoming_edges: Iterable[Edge | dict] | None = None,
    *,
    module_id: str | None = None,
) -> ConflictReport:
    """Compare a module's nodes/edges against the canonical ones.

    Args:
        existing_nodes: Canonical snapshot nodes.
        incoming_nodes: Module nodes.
        existing_edges: Canonical snapshot edges (optional).
        incoming_edges: Module edges (optional; both edge lists are needed
                        for edge rules to run).
        module_id:      When given, conflict ids use the resolvable
                        ``{module_id}::node::{id}`` form.

    Returns:
        ConflictReport with has_conflicts and the list of conflicts.
    """
    conflicts = _node_conflicts(_as_nodes(existing_nodes), _as_nodes(incoming_nodes), module_id)

    if existing_edges is not None and incoming_edges is not None:
        conflicts.extend(
            _edge_conflicts(_as_edges(existing_edges), _as_edges(incoming_edges), module_id)
        )

    return ConflictReport(has_conflicts=bool(conflicts), conflicts=conflicts)


async def detect_module_conflicts(
    store: DocumentStore, project_id: str, module_id: str
) -> ConflictReport:
    """Detect conflicts between a stored module and the project's active snapshot.

    Raises:
        ModuleNotFound: the module does not exist in this project.
    """
    module = await store.find_module_by_id(module_id)
    if module is None or module.project_id != project_id:
        raise ModuleNotFound("module not found")

    active = await store.find_active_snapshot(project_id)
    report = detect_conflicts(
        active.nodes if active else [],
        module.nodes,
        active.edges if active else [],
        module.edges,
        module_id=module.id,
    )
    logger.debug(
        "Detected %d conflict(s) for module %s against %s (project=%s)",
        len(report.conflicts),
        module_id,
        f"v{active.version}" if active else "empty canonical",
        project_id,
    )
    return report
