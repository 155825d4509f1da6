"""Canonical snapshot history: versioning, rollback and diffs.

Snapshots are immutable.  Every change to canonical state (conflict
resolution, module approval, rollback) appends a new version through
append_snapshot_version(), which numbers it max(version) + 1 and marks it
active while the store deactivates the previous one.  Rollback never rewrites
history: it appends a copy of the target version.
"""

from __future__ import annotations

import logging
from typing import Iterable

from pydantic import BaseModel, Field

from buildwise.audit.log import append_audit
from buildwise.errors import InvalidInput, NotFound
from buildwise.graph.models import Edge, Node, Snapshot
from buildwise.store.base import DocumentStore, NewSnapshot

logger = logging.getLogger(__name__)


class SnapshotDiff(BaseModel):
    from_version: int
    to_version: int
    added_nodes: list[Node] = Field(default_factory=list)
    removed_nodes: list[Node] = Field(default_factory=list)
    added_edges: list[Edge] = Field(default_factory=list)
    removed_edges: list[Edge] = Field(default_factory=list)
    node_count_change: int = 0
    edge_count_change: int = 0


async def append_snapshot_version(
    store: DocumentStore,
    project_id: str,
    nodes: Iterable[Node],
    edges: Iterable[Edge],
    author: str,
    modules: Iterable[str] | None = None,
    rollback_from: int | None = None,
) -> Snapshot:
    """Create the next active snapshot version carrying a full copy of the graph."""
    next_version = await store.latest_snapshot_version(project_id) + 1
    snapshot = await store.create_snapshot(
        NewSnapshot(
            project_id=project_id,
            version=next_version,
            nodes=list(nodes),
            edges=list(edges),
            author=author,
            modules=list(modules or []),
            active=True,
            rollback_from=rollback_from,
        )
    )
    logger.info(
        "Snapshot v%d created for project %s by %s (%d nodes, %d edges)",
        snapshot.version,
        project_id,
        author,
        len(snapshot.nodes),
        len(snapshot.edges),
    )
    return snapshot


async def initialize_project(
    store: DocumentStore,
    project_id: str,
    author: str,
    nodes: Iterable[Node] = (),
    edges: Iterable[Edge] = (),
) -> Snapshot:
    """Create version 1 for a new project; return the active snapshot if one exists."""
    active = await store.find_active_snapshot(project_id)
    if active is not None:
        return active
    return await append_snapshot_version(store, project_id, nodes, edges, author)


async def get_active_snapshot(store: DocumentStore, project_id: str) -> Snapshot | None:
    return await store.find_active_snapshot(project_id)


async def get_snapshot_history(store: DocumentStore, project_id: str) -> list[Snapshot]:
    return await store.list_snapshots(project_id)


async def get_snapshot_by_version(store: DocumentStore, project_id: str, version: int) -> Snapshot:
    snapshot = await store.find_snapshot_by_version(project_id, version)
    if snapshot is None:
        raise NotFound(f"Snapshot version {version} not found")
    return snapshot


async def rollback_to_version(
    store: DocumentStore,
    project_id: str,
    target_version: int,
    actor: str,
) -> Snapshot:
    """Restore an earlier version by appending a copy of it as the newest version.

    Raises:
        InvalidInput: target_version is not a positive integer.
        NotFound:     the target version does not exist.
    """
    if target_version < 1:
        raise InvalidInput("target_version must be >= 1")

    target = await get_snapshot_by_version(store, project_id, target_version)
    current = await store.find_active_snapshot(project_id)

    snapshot = await append_snapshot_version(
        store,
        project_id,
        target.nodes,
        target.edges,
        author=actor,
        modules=target.modules,
        rollback_from=target_version,
    )
    await append_audit(
        store,
        project_id,
        action="snapshot_rolled_back",
        actor=actor,
        details={
            "from_version": current.version if current else None,
            "to_version": target_version,
            "new_version": snapshot.version,
        },
    )
    return snapshot


async def diff_snapshots(
    store: DocumentStore, project_id: str, from_version: int, to_version: int
) -> SnapshotDiff:
    """Compare two versions: nodes by id, edges by (from, to)."""
    before = await store.find_snapshot_by_version(project_id, from_version)
    after = await store.find_snapshot_by_version(project_id, to_version)
    if before is None or after is None:
        raise NotFound("One or both snapshot versions not found")

    before_ids = {n.id for n in before.nodes}
    after_ids = {n.id for n in after.nodes}
    before_pairs = {e.pair for e in before.edges}
    after_pairs = {e.pair for e in after.edges}

    return SnapshotDiff(
        from_version=from_version,
        to_version=to_version,
        added_nodes=[n for n in after.nodes if n.id not in before_ids],
        removed_nodes=[n for n in before.nodes if n.id not in after_ids],
        added_edges=[e for e in after.edges if e.pair not in before_pairs],
        removed_edges=[e for e in before.edges if e.pair not in after_pairs],
        node_count_change=len(after.nodes) - len(before.nodes),
        edge_count_change=len(after.edges) - len(before.edges),
    )
