"""Admin-driven resolution of a single detected conflict.

resolve_conflict() applies exactly one resolution action to exactly one
conflict, then writes exactly one audit record.

Action vocabulary:
  keep_canonical  - canonical wins; nothing changes except the audit ledger
  apply_module    - nodes: module node replaces the canonical one (or is appended)
                    edges: module edge is appended only if canonical has no match;
                    an existing canonical edge is kept as is
  merge_meta      - shallow-merge ``meta`` with module values winning on collision
                    (module node/edge appended whole if canonical has none)
  rename_new      - nodes only: rename the module's node to ``params.renameTo``
                    so it no longer collides; canonical untouched

apply_module and merge_meta produce a new canonical snapshot version (full
copy of the graph, previous version deactivated).  keep_canonical and
rename_new leave the snapshot version unchanged.

Canonical edges are matched to a module edge by its explicit id when it has
one, otherwise by (from, to), the same rule the detector uses.

Failure behavior:
  - Every domain error (InvalidInput, NotFound, UnsupportedAction,
    StoreFailure) is caught here and returned as ResolveResult(ok=False).
  - Validation failures return before any write, so they leave no audit entry.
  - The snapshot write and the audit write are separate transactions; if the
    audit write fails after a new version was created, that version stays.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel

from buildwise.audit.log import append_audit
from buildwise.config import settings
from buildwise.conflict.ids import EDGE, NODE, ConflictRef, parse_conflict_id
from buildwise.errors import (
    BuildWiseError,
    InvalidInput,
    MissingParameter,
    ModuleNotFound,
    NotFound,
    StoreFailure,
    UnsupportedAction,
)
from buildwise.graph.models import AuditRecord, Edge, Module, Node, Snapshot
from buildwise.snapshots.service import append_snapshot_version
from buildwise.store.base import DocumentStore

logger = logging.getLogger(__name__)

KEEP_CANONICAL = "keep_canonical"
APPLY_MODULE = "apply_module"
MERGE_META = "merge_meta"
RENAME_NEW = "rename_new"

NODE_ACTIONS = frozenset({KEEP_CANONICAL, APPLY_MODULE, MERGE_META, RENAME_NEW})
EDGE_ACTIONS = frozenset({KEEP_CANONICAL, APPLY_MODULE, MERGE_META})


class ResolveResult(BaseModel):
    """Outcome of one resolve_conflict() call."""

    ok: bool
    snapshot: Snapshot | None = None
    audit: AuditRecord | None = None
    message: str | None = None


# ---------------------------------------------------------------------------
# Canonical graph mutations (operate on copies of the active snapshot lists)
# ---------------------------------------------------------------------------


def _apply_node(nodes: list[Node], incoming: Node) -> None:
    for idx, node in enumerate(nodes):
        if node.id == incoming.id:
            nodes[idx] = incoming.model_copy(deep=True)
            return
    nodes.append(incoming.model_copy(deep=True))


def _merge_node_meta(nodes: list[Node], incoming: Node) -> None:
    for node in nodes:
        if node.id == incoming.id:
            node.meta = {**node.meta, **incoming.meta}
            return
    nodes.append(incoming.model_copy(deep=True))


def _find_canonical_edge(edges: list[Edge], incoming: Edge) -> Edge | None:
    """Match by explicit id when the module edge has one, else by (from, to)."""
    if incoming.id:
        return next((e for e in edges if e.id == incoming.id), None)
    return next((e for e in edges if e.pair == incoming.pair), None)


def _apply_edge(edges: list[Edge], incoming: Edge) -> None:
    # An existing canonical edge is left as is; only absent edges are added.
    if _find_canonical_edge(edges, incoming) is None:
        edges.append(incoming.model_copy(deep=True))


def _merge_edge_meta(edges: list[Edge], incoming: Edge) -> None:
    edge = _find_canonical_edge(edges, incoming)
    if edge is None:
        edges.append(incoming.model_copy(deep=True))
        return
    edge.meta = {**edge.meta, **incoming.meta}


def _rename_target(params: dict[str, Any] | None) -> str:
    params = params or {}
    rename_to = params.get("renameTo") or params.get("rename_to")
    if not rename_to or not isinstance(rename_to, str):
        raise MissingParameter("renameTo required")
    return rename_to


# ---------------------------------------------------------------------------
# Resolution steps
# ---------------------------------------------------------------------------


async def _keep_canonical(
    store: DocumentStore,
    project_id: str,
    conflict_id: str,
    actor: str,
    active: Snapshot | None,
) -> ResolveResult:
    audit = await append_audit(
        store,
        project_id,
        action=KEEP_CANONICAL,
        actor=actor,
        details={"note": "kept canonical"},
        conflict_id=conflict_id,
    )
    return ResolveResult(ok=True, snapshot=active, audit=audit)


async def _rename_module_node(
    store: DocumentStore,
    project_id: str,
    conflict_id: str,
    actor: str,
    module: Module,
    node_id: str,
    params: dict[str, Any] | None,
    active: Snapshot | None,
) -> ResolveResult:
    rename_to = _rename_target(params)
    if module.find_node(rename_to) is not None:
        raise InvalidInput(f"node id '{rename_to}' already exists in module")

    updated = await store.update_module_node_id(module.id, node_id, rename_to)
    if updated is None:
        raise NotFound("module node not found")

    logger.info(
        "Renamed module node %s -> %s in module %s (project=%s, actor=%s)",
        node_id,
        rename_to,
        module.id,
        project_id,
        actor,
    )
    audit = await append_audit(
        store,
        project_id,
        action=RENAME_NEW,
        actor=actor,
        details={"renameTo": rename_to, "previousId": node_id, "moduleId": module.id},
        conflict_id=conflict_id,
    )
    return ResolveResult(ok=True, snapshot=active, audit=audit)


async def _commit_canonical(
    store: DocumentStore,
    project_id: str,
    conflict_id: str,
    action: str,
    actor: str,
    active: Snapshot | None,
    nodes: list[Node],
    edges: list[Edge],
    target: str,
) -> ResolveResult:
    snapshot = await append_snapshot_version(
        store,
        project_id,
        nodes,
        edges,
        author=actor,
        modules=active.modules if active else [],
    )
    try:
        audit = await append_audit(
            store,
            project_id,
            action=action,
            actor=actor,
            details={
                "modified": True,
                "target": target,
                "previous_version": active.version if active else None,
                "version": snapshot.version,
            },
            conflict_id=conflict_id,
        )
    except StoreFailure:
        logger.error(
            "Snapshot v%d for project %s was created but its audit record was not "
            "written (conflict=%s, action=%s)",
            snapshot.version,
            project_id,
            conflict_id,
            action,
        )
        raise

    logger.info(
        "Conflict %s resolved with %s: project %s now at v%d",
        conflict_id,
        action,
        project_id,
        snapshot.version,
    )
    return ResolveResult(ok=True, snapshot=snapshot, audit=audit)


async def _resolve_node(
    store: DocumentStore,
    project_id: str,
    conflict_id: str,
    ref: ConflictRef,
    action: str,
    params: dict[str, Any] | None,
    actor: str,
    module: Module,
    active: Snapshot | None,
) -> ResolveResult:
    node_id = ref.node_id
    module_node = module.find_node(node_id)
    if module_node is None:
        raise NotFound("module node not found")

    if action not in NODE_ACTIONS:
        raise UnsupportedAction("unsupported node action")
    if action == KEEP_CANONICAL:
        return await _keep_canonical(store, project_id, conflict_id, actor, active)
    if action == RENAME_NEW:
        return await _rename_module_node(
            store, project_id, conflict_id, actor, module, node_id, params, active
        )

    nodes = [n.model_copy(deep=True) for n in active.nodes] if active else []
    edges = [e.model_copy(deep=True) for e in active.edges] if active else []
    if action == APPLY_MODULE:
        _apply_node(nodes, module_node)
    else:
        _merge_node_meta(nodes, module_node)

    return await _commit_canonical(
        store, project_id, conflict_id, action, actor, active, nodes, edges, target=node_id
    )


async def _resolve_edge(
    store: DocumentStore,
    project_id: str,
    conflict_id: str,
    ref: ConflictRef,
    action: str,
    actor: str,
    module: Module,
    active: Snapshot | None,
) -> ResolveResult:
    source, target = ref.edge_pair
    module_edge = module.find_edge(source, target)
    if module_edge is None:
        raise NotFound("module edge not found")

    if action not in EDGE_ACTIONS:
        raise UnsupportedAction("unsupported edge action")
    if action == KEEP_CANONICAL:
        return await _keep_canonical(store, project_id, conflict_id, actor, active)

    nodes = [n.model_copy(deep=True) for n in active.nodes] if active else []
    edges = [e.model_copy(deep=True) for e in active.edges] if active else []
    if action == APPLY_MODULE:
        _apply_edge(edges, module_edge)
    else:
        _merge_edge_meta(edges, module_edge)

    return await _commit_canonical(
        store,
        project_id,
        conflict_id,
        action,
        actor,
        active,
        nodes,
        edges,
        target=f"{source}->{target}",
    )


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------


async def resolve_conflict(
    store: DocumentStore,
    *,
    project_id: str,
    conflict_id: str,
    action: str,
    params: dict[str, Any] | None = None,
    actor: str | None = None,
) -> ResolveResult:
    """Apply one resolution action to one conflict.

    Args:
        store:       Document store holding snapshots, modules and audits.
        project_id:  Project whose canonical snapshot is being reconciled.
        conflict_id: ``{module_id}::node::{node_id}[::meta]`` or
                     ``{module_id}::edge::{from}::{to}[::meta]``.
        action:      keep_canonical | apply_module | merge_meta | rename_new.
        params:      Action parameters; rename_new needs ``renameTo``.
        actor:       User id recorded on the audit entry and new snapshot.

    Returns:
        ResolveResult(ok=True, snapshot, audit) on success. ``snapshot`` is the
        new version for canonical mutations, otherwise the unchanged active
        snapshot (None if the project has none).  ResolveResult(ok=False,
        message) on any failure; no exception escapes.
    """
    actor = actor or settings.default_actor
    try:
        if not conflict_id or not action:
            raise InvalidInput("conflictId & action required")

        ref = parse_conflict_id(conflict_id)

        module = await store.find_module_by_id(ref.module_id)
        if module is None or module.project_id != project_id:
            raise ModuleNotFound("module not found")

        active = await store.find_active_snapshot(project_id)

        if ref.kind == NODE:
            return await _resolve_node(
                store, project_id, conflict_id, ref, action, params, actor, module, active
            )
        if ref.kind == EDGE:
            return await _resolve_edge(
                store, project_id, conflict_id, ref, action, actor, module, active
            )
        raise InvalidInput(f"unsupported conflict kind '{ref.kind}'")

    except BuildWiseError as exc:
        logger.warning(
            "Conflict resolution failed (project=%s, conflict=%s, action=%s): %s",
            project_id,
            conflict_id,
            action,
            exc,
        )
        return ResolveResult(ok=False, message=str(exc))
