"""Module lifecycle: propose, approve, reject, edit, bulk review, reorder.

Modules are never deleted; they only move between statuses.  Approving a
module rebuilds the canonical graph from every approved module of the project
and appends it as a new snapshot version.

Edits are proposed by any user and kept on the module until a reviewer
accepts or rejects them.  Accepting folds the edit into the module and moves
it to ``modified``.
"""

from __future__ import annotations

import datetime
import logging
import uuid
from typing import Iterable

from buildwise.audit.log import append_audit
from buildwise.errors import InvalidInput, ModuleNotFound, NotFound
from buildwise.graph.merge import build_canonical
from buildwise.graph.models import (
    Edge,
    Module,
    ModuleEdit,
    ModuleEditDiff,
    ModuleEditStatus,
    ModuleStatus,
    Node,
    Snapshot,
)
from buildwise.snapshots.service import append_snapshot_version
from buildwise.store.base import DocumentStore, NewModule

logger = logging.getLogger(__name__)


async def propose_module(
    store: DocumentStore,
    project_id: str,
    name: str,
    nodes: Iterable[Node] = (),
    edges: Iterable[Edge] = (),
    order: int = 0,
    confidence: str | None = None,
) -> Module:
    """Create a module in the ``proposed`` state.

    Raises:
        InvalidInput: the module repeats a node id.
    """
    nodes = list(nodes)
    ids = [n.id for n in nodes]
    if len(ids) != len(set(ids)):
        raise InvalidInput("node ids must be unique within a module")

    module = await store.create_module(
        NewModule(
            project_id=project_id,
            name=name,
            nodes=nodes,
            edges=list(edges),
            order=order,
            confidence=confidence,
        )
    )
    logger.info("Module %s (%s) proposed for project %s", module.id, name, project_id)
    return module


async def get_module(store: DocumentStore, project_id: str, module_id: str) -> Module:
    module = await store.find_module_by_id(module_id)
    if module is None or module.project_id != project_id:
        raise ModuleNotFound("module not found")
    return module


async def list_modules(
    store: DocumentStore, project_id: str, status: ModuleStatus | None = None
) -> list[Module]:
    return await store.list_modules(project_id, status=status)


async def approve_module(
    store: DocumentStore, project_id: str, module_id: str, actor: str
) -> tuple[Module, Snapshot]:
    """Approve a module and publish a rebuilt canonical snapshot.

    Returns:
        (approved module, new snapshot)
    """
    await get_module(store, project_id, module_id)
    module = await store.update_module_status(module_id, ModuleStatus.approved, approved_by=actor)
    if module is None:
        raise ModuleNotFound("module not found")

    approved = await store.list_modules(project_id, status=ModuleStatus.approved)
    merged = build_canonical(approved)
    snapshot = await append_snapshot_version(
        store, project_id, merged.nodes, merged.edges, author=actor, modules=merged.modules
    )
    await append_audit(
        store,
        project_id,
        action="module_approved",
        actor=actor,
        details={"moduleId": module_id, "version": snapshot.version},
    )
    logger.info(
        "Module %s approved by %s; canonical rebuilt from %d module(s) as v%d",
        module_id,
        actor,
        len(merged.modules),
        snapshot.version,
    )
    return module, snapshot


async def reject_module(
    store: DocumentStore,
    project_id: str,
    module_id: str,
    actor: str,
    reason: str | None = None,
) -> Module:
    await get_module(store, project_id, module_id)
    module = await store.update_module_status(module_id, ModuleStatus.rejected)
    if module is None:
        raise ModuleNotFound("module not found")

    await append_audit(
        store,
        project_id,
        action="module_rejected",
        actor=actor,
        details={"moduleId": module_id, "reason": reason or ""},
    )
    logger.info("Module %s rejected by %s (project=%s)", module_id, actor, project_id)
    return module


# ---------------------------------------------------------------------------
# Edit proposals
# ---------------------------------------------------------------------------


def _edge_key(edge: Edge) -> str:
    key = f"{edge.source}->{edge.target}"
    return f"{key}::{edge.label}" if edge.label else key


def _fold_diff(module: Module, diff: ModuleEditDiff) -> tuple[list[Node] | None, list[Edge] | None]:
    """Replace-or-add diff nodes by id and diff edges by ``from->to[::label]``."""
    nodes = None
    if diff.nodes is not None:
        by_id = {n.id: n for n in module.nodes}
        for node in diff.nodes:
            by_id[node.id] = node
        nodes = list(by_id.values())

    edges = None
    if diff.edges is not None:
        by_key = {_edge_key(e): e for e in module.edges}
        for edge in diff.edges:
            by_key[_edge_key(edge)] = edge
        edges = list(by_key.values())

    return nodes, edges


async def propose_module_edit(
    store: DocumentStore,
    project_id: str,
    module_id: str,
    author: str,
    nodes: Iterable[Node] | None = None,
    edges: Iterable[Edge] | None = None,
) -> tuple[Module, ModuleEdit]:
    """Attach an open edit proposal to a module; the module graph is unchanged.

    Raises:
        InvalidInput:   neither nodes nor edges were given.
        ModuleNotFound: unknown module, or one from another project.
    """
    diff = ModuleEditDiff(
        nodes=list(nodes) if nodes is not None else None,
        edges=list(edges) if edges is not None else None,
    )
    if diff.is_empty:
        raise InvalidInput("diff required")

    await get_module(store, project_id, module_id)
    edit = ModuleEdit(
        id=uuid.uuid4().hex,
        author=author,
        diff=diff,
        created_at=datetime.datetime.now(datetime.timezone.utc),
    )
    module = await store.add_module_edit(module_id, edit)
    if module is None:
        raise ModuleNotFound("module not found")

    await append_audit(
        store,
        project_id,
        action="propose_module_edit",
        actor=author,
        details={
            "moduleId": module_id,
            "editId": edit.id,
            "diff": diff.model_dump(mode="json", by_alias=True, exclude_none=True),
        },
    )
    logger.info("Edit %s proposed on module %s by %s", edit.id, module_id, author)
    return module, edit


async def _open_edit(store: DocumentStore, project_id: str, module_id: str, edit_id: str):
    module = await get_module(store, project_id, module_id)
    edit = module.find_edit(edit_id)
    if edit is None:
        raise NotFound("edit not found")
    if edit.status != ModuleEditStatus.open:
        raise InvalidInput(f"edit already {edit.status.value}")
    return module, edit


async def accept_module_edit(
    store: DocumentStore, project_id: str, module_id: str, edit_id: str, actor: str
) -> tuple[Module, ModuleEdit]:
    """Fold an open edit into its module and mark the module ``modified``.

    A modified module drops out of the canonical rebuild until it is
    approved again.
    """
    module, edit = await _open_edit(store, project_id, module_id, edit_id)
    nodes, edges = _fold_diff(module, edit.diff)
    reviewed = edit.model_copy(update={
        "status": ModuleEditStatus.accepted,
        "reviewed_by": actor,
        "reviewed_at": datetime.datetime.now(datetime.timezone.utc),
    })

    updated = await store.save_module_edit(
        module_id, reviewed, nodes=nodes, edges=edges,
        status=ModuleStatus.modified, approved_by=actor,
    )
    if updated is None:
        raise NotFound("edit not found")

    await append_audit(
        store,
        project_id,
        action="accept_proposed_edit",
        actor=actor,
        details={"moduleId": module_id, "editId": edit_id},
    )
    logger.info("Edit %s accepted into module %s by %s", edit_id, module_id, actor)
    return updated, reviewed


async def reject_module_edit(
    store: DocumentStore, project_id: str, module_id: str, edit_id: str, actor: str
) -> tuple[Module, ModuleEdit]:
    _, edit = await _open_edit(store, project_id, module_id, edit_id)
    reviewed = edit.model_copy(update={
        "status": ModuleEditStatus.rejected,
        "reviewed_by": actor,
        "reviewed_at": datetime.datetime.now(datetime.timezone.utc),
    })

    updated = await store.save_module_edit(module_id, reviewed)
    if updated is None:
        raise NotFound("edit not found")

    await append_audit(
        store,
        project_id,
        action="reject_proposed_edit",
        actor=actor,
        details={"moduleId": module_id, "editId": edit_id},
    )
    logger.info("Edit %s on module %s rejected by %s", edit_id, module_id, actor)
    return updated, reviewed


# ---------------------------------------------------------------------------
# Bulk review and ordering
# ---------------------------------------------------------------------------

BULK_ACTIONS = {"approve": ModuleStatus.approved, "reject": ModuleStatus.rejected}


async def bulk_review_modules(
    store: DocumentStore,
    project_id: str,
    module_ids: list[str],
    action: str,
    actor: str,
    note: str | None = None,
) -> tuple[list[Module], Snapshot | None]:
    """Approve or reject several modules at once.

    Ids that are unknown or belong to another project are skipped.  A bulk
    approval rebuilds the canonical graph once and appends a single snapshot.

    Returns:
        (updated modules, new snapshot or None)
    """
    if not module_ids:
        raise InvalidInput("moduleIds required")
    status = BULK_ACTIONS.get(action)
    if status is None:
        raise InvalidInput("invalid action")

    updated: list[Module] = []
    for module_id in module_ids:
        module = await store.find_module_by_id(module_id)
        if module is None or module.project_id != project_id:
            logger.warning("Bulk %s skipped unknown module %s (project=%s)", action, module_id, project_id)
            continue
        result = await store.update_module_status(module_id, status, approved_by=actor)
        if result is not None:
            updated.append(result)

    snapshot = None
    if status == ModuleStatus.approved and updated:
        approved = await store.list_modules(project_id, status=ModuleStatus.approved)
        merged = build_canonical(approved)
        snapshot = await append_snapshot_version(
            store, project_id, merged.nodes, merged.edges, author=actor, modules=merged.modules
        )

    details = {"moduleIds": list(module_ids), "note": note or "", "updatedCount": len(updated)}
    if snapshot is not None:
        details["version"] = snapshot.version
    await append_audit(store, project_id, action=f"bulk_{action}_modules", actor=actor, details=details)
    logger.info(
        "Bulk %s by %s: %d of %d module(s) updated (project=%s)",
        action,
        actor,
        len(updated),
        len(module_ids),
        project_id,
    )
    return updated, snapshot


async def reorder_modules(
    store: DocumentStore, project_id: str, order: list[str], actor: str
) -> list[Module]:
    """Set each module's ``order`` to its position in ``order``; unknown ids are skipped."""
    if not order:
        raise InvalidInput("Invalid order array")

    modules = await store.set_module_order(project_id, list(order))
    await append_audit(
        store,
        project_id,
        action="modules_reordered",
        actor=actor,
        details={"order": list(order)},
    )
    logger.info("Modules of project %s reordered by %s", project_id, actor)
    return modules
