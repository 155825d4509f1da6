"""Conflict detection and resolution REST endpoints.

Endpoints:
- POST /projects/{project_id}/conflicts/detect   - report conflicts for a module
                                                    or an ad-hoc node/edge set
- POST /projects/{project_id}/conflicts/resolve  - apply one resolution action

Resolution is restricted to reviewers (admin, teacher) and rate limited per
actor.  A failed resolution always answers 400 with ``{"ok": false, "error"}``;
a successful one fans out a ``conflict.resolved`` webhook after the response.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from buildwise.api.auth import Actor, require_reviewer, require_user
from buildwise.api.errors import to_http_error
from buildwise.conflict.detector import ConflictReport, detect_conflicts, detect_module_conflicts
from buildwise.conflict.resolver import resolve_conflict
from buildwise.errors import BuildWiseError
from buildwise.graph.models import AuditRecord, Edge, Node, Snapshot
from buildwise.notify.webhooks import build_resolved_event, dispatch_webhooks
from buildwise.security.rate_limit import SlidingWindowRateLimiter, get_rate_limit_key
from buildwise.store import DocumentStore, get_store

logger = logging.getLogger(__name__)

conflicts_router = APIRouter(prefix="/projects/{project_id}/conflicts", tags=["conflicts"])


# ---------------------------------------------------------------------------
# Request / response schemas
# ---------------------------------------------------------------------------


class DetectRequest(BaseModel):
    """Either ``moduleId`` or an incoming ``nodes``/``edges`` set."""

    module_id: str | None = Field(default=None, alias="moduleId")
    nodes: list[Node] | None = None
    edges: list[Edge] | None = None

    model_config = ConfigDict(populate_by_name=True)


class DetectResponse(ConflictReport):
    ok: bool = True


class ResolveRequest(BaseModel):
    conflict_id: str = Field(default="", alias="conflictId")
    action: str = ""
    params: dict[str, Any] | None = None

    model_config = ConfigDict(populate_by_name=True)


class ResolveResponse(BaseModel):
    ok: bool = True
    snapshot: Snapshot | None = None
    audit: AuditRecord | None = None


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def get_resolve_limiter(request: Request) -> SlidingWindowRateLimiter:
    """Return the limiter attached to the app by ``create_app()``."""
    return request.app.state.resolve_limiter


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@conflicts_router.post(
    "/detect",
    response_model=DetectResponse,
    operation_id="detect_conflicts",
    summary="Detect conflicts against the active canonical snapshot",
    description=(
        "With moduleId, compares the stored module against the active snapshot and "
        "returns resolvable conflict ids.  Otherwise compares the posted nodes/edges."
    ),
)
async def detect_conflicts_endpoint(
    project_id: str,
    body: DetectRequest,
    actor: Actor = Depends(require_user),
    store: DocumentStore = Depends(get_store),
) -> DetectResponse:
    try:
        if body.module_id:
            report = await detect_module_conflicts(store, project_id, body.module_id)
        else:
            active = await store.find_active_snapshot(project_id)
            report = detect_conflicts(
                active.nodes if active else [],
                body.nodes or [],
                active.edges if active else [],
                body.edges,
            )
    except BuildWiseError as exc:
        raise to_http_error(exc) from exc

    return DetectResponse(has_conflicts=report.has_conflicts, conflicts=report.conflicts)


@conflicts_router.post(
    "/resolve",
    response_model=ResolveResponse,
    operation_id="resolve_conflict",
    summary="Resolve a single conflict",
    description=(
        "Applies keep_canonical, apply_module, merge_meta or rename_new to one conflict. "
        "Returns 400 with {ok: false, error} when the resolution is rejected and 429 "
        "when the caller exceeds the resolve rate limit."
    ),
    responses={400: {"description": "Resolution rejected"}, 429: {"description": "Rate limited"}},
)
async def resolve_conflict_endpoint(
    project_id: str,
    body: ResolveRequest,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(require_reviewer),
    store: DocumentStore = Depends(get_store),
    limiter: SlidingWindowRateLimiter = Depends(get_resolve_limiter),
):
    if not limiter.hit(get_rate_limit_key("resolve", project_id, actor.user_id)):
        raise HTTPException(status_code=429, detail="Too many resolve requests; retry later")

    result = await resolve_conflict(
        store,
        project_id=project_id,
        conflict_id=body.conflict_id,
        action=body.action,
        params=body.params,
        actor=actor.user_id,
    )
    if not result.ok:
        return JSONResponse(
            status_code=400, content={"ok": False, "error": result.message or "resolve failed"}
        )

    background_tasks.add_task(
        dispatch_webhooks,
        build_resolved_event(
            project_id,
            body.conflict_id,
            body.action,
            actor.user_id,
            result.snapshot.version if result.snapshot else None,
        ),
    )
    logger.info(
        "Conflict resolved via REST: project=%s conflict=%s action=%s actor=%s",
        project_id,
        body.conflict_id,
        body.action,
        actor.user_id,
    )
    return ResolveResponse(ok=True, snapshot=result.snapshot, audit=result.audit)
