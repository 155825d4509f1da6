"""Canonical snapshot REST endpoints.

Endpoints:
- GET  /projects/{project_id}/snapshots           - mode=latest (default) | history | diff
- POST /projects/{project_id}/snapshots/init      - create version 1 if absent
- POST /projects/{project_id}/snapshots/rollback  - append a copy of an earlier version
"""

from __future__ import annotations

import logging
from typing import Annotated, Literal

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field

from buildwise.api.auth import Actor, require_reviewer, require_user
from buildwise.api.errors import to_http_error
from buildwise.errors import BuildWiseError
from buildwise.graph.models import Edge, Node, Snapshot
from buildwise.snapshots.service import (
    SnapshotDiff,
    diff_snapshots,
    get_active_snapshot,
    get_snapshot_history,
    initialize_project,
    rollback_to_version,
)
from buildwise.store import DocumentStore, get_store

logger = logging.getLogger(__name__)

snapshots_router = APIRouter(prefix="/projects/{project_id}/snapshots", tags=["snapshots"])


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------


class SnapshotQueryResponse(BaseModel):
    """Response body for GET /snapshots; the populated field depends on ``mode``."""

    ok: bool = True
    snapshot: Snapshot | None = None
    history: list[Snapshot] | None = None
    diff: SnapshotDiff | None = None


class InitRequest(BaseModel):
    nodes: list[Node] = Field(default_factory=list)
    edges: list[Edge] = Field(default_factory=list)


class RollbackRequest(BaseModel):
    target_version: int = Field(alias="targetVersion")

    model_config = ConfigDict(populate_by_name=True)


class SnapshotResponse(BaseModel):
    ok: bool = True
    snapshot: Snapshot


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@snapshots_router.get(
    "",
    response_model=SnapshotQueryResponse,
    response_model_exclude_none=True,
    operation_id="get_snapshots",
    summary="Get the active snapshot, the version history or a diff",
)
async def get_snapshots(
    project_id: str,
    mode: Annotated[Literal["latest", "history", "diff"], Query()] = "latest",
    from_version: Annotated[int | None, Query(ge=1)] = None,
    to_version: Annotated[int | None, Query(ge=1)] = None,
    actor: Actor = Depends(require_user),
    store: DocumentStore = Depends(get_store),
) -> SnapshotQueryResponse:
    try:
        if mode == "history":
            return SnapshotQueryResponse(history=await get_snapshot_history(store, project_id))
        if mode == "diff":
            if from_version is None or to_version is None:
                raise HTTPException(
                    status_code=400, detail="from_version and to_version are required for diff"
                )
            diff = await diff_snapshots(store, project_id, from_version, to_version)
            return SnapshotQueryResponse(diff=diff)
        return SnapshotQueryResponse(snapshot=await get_active_snapshot(store, project_id))
    except BuildWiseError as exc:
        raise to_http_error(exc) from exc


@snapshots_router.post(
    "/init",
    response_model=SnapshotResponse,
    operation_id="init_project_snapshot",
    summary="Create the initial canonical snapshot for a project",
    description="Idempotent: returns the active snapshot when the project already has one.",
)
async def init_snapshot(
    project_id: str,
    body: InitRequest,
    actor: Actor = Depends(require_reviewer),
    store: DocumentStore = Depends(get_store),
) -> SnapshotResponse:
    try:
        snapshot = await initialize_project(
            store, project_id, actor.user_id, nodes=body.nodes, edges=body.edges
        )
    except BuildWiseError as exc:
        raise to_http_error(exc) from exc
    return SnapshotResponse(snapshot=snapshot)


@snapshots_router.post(
    "/rollback",
    response_model=SnapshotResponse,
    operation_id="rollback_snapshot",
    summary="Roll the canonical graph back to an earlier version",
    description=(
        "Creates a new version copying the target version's graph.  History is never "
        "rewritten.  Returns 404 if the target version does not exist."
    ),
)
async def rollback_snapshot(
    project_id: str,
    body: RollbackRequest,
    actor: Actor = Depends(require_reviewer),
    store: DocumentStore = Depends(get_store),
) -> SnapshotResponse:
    try:
        snapshot = await rollback_to_version(store, project_id, body.target_version, actor.user_id)
    except BuildWiseError as exc:
        raise to_http_error(exc) from exc

    logger.info(
        "Project %s rolled back to v%d by %s (new version v%d)",
        project_id,
        body.target_version,
        actor.user_id,
        snapshot.version,
    )
    return SnapshotResponse(snapshot=snapshot)
