"""Module review REST endpoints.

Endpoints:
- GET  /projects/{project_id}/modules                       - list (optional ?status=)
- POST /projects/{project_id}/modules                       - propose a module
- GET  /projects/{project_id}/modules/{module_id}           - fetch one module
- POST /projects/{project_id}/modules/{module_id}/approve   - approve and rebuild canonical
- POST /projects/{project_id}/modules/{module_id}/reject    - reject
- POST /projects/{project_id}/modules/{module_id}/edits     - propose an edit
- POST /projects/{project_id}/modules/{module_id}/edits/{edit_id} - accept / reject an edit
- POST /projects/{project_id}/modules/bulk-review           - approve / reject many
- POST /projects/{project_id}/modules/reorder               - set module positions

Modules belonging to another project answer 404, never 403.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field

from buildwise.api.auth import Actor, require_reviewer, require_user
from buildwise.api.errors import to_http_error
from buildwise.errors import BuildWiseError, InvalidInput
from buildwise.graph.models import (
    Confidence,
    Edge,
    Module,
    ModuleEdit,
    ModuleEditDiff,
    ModuleStatus,
    Node,
    Snapshot,
)
from buildwise.modules.service import (
    accept_module_edit,
    approve_module,
    bulk_review_modules,
    get_module,
    list_modules,
    propose_module,
    propose_module_edit,
    reject_module,
    reject_module_edit,
    reorder_modules,
)
from buildwise.store import DocumentStore, get_store

logger = logging.getLogger(__name__)

modules_router = APIRouter(prefix="/projects/{project_id}/modules", tags=["modules"])

_EDIT_REVIEWS = {"accept": accept_module_edit, "reject": reject_module_edit}


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------


class ProposeModuleRequest(BaseModel):
    name: str = Field(min_length=1)
    nodes: list[Node] = Field(default_factory=list)
    edges: list[Edge] = Field(default_factory=list)
    order: int = 0
    confidence: Confidence | None = None


class RejectModuleRequest(BaseModel):
    reason: str | None = None


class ModuleResponse(BaseModel):
    ok: bool = True
    module: Module


class ModuleListResponse(BaseModel):
    ok: bool = True
    modules: list[Module]


class ApproveModuleResponse(BaseModel):
    ok: bool = True
    module: Module
    snapshot: Snapshot


class ProposeEditRequest(BaseModel):
    diff: ModuleEditDiff


class ReviewEditRequest(BaseModel):
    action: str = ""


class BulkReviewRequest(BaseModel):
    module_ids: list[str] = Field(default_factory=list, alias="moduleIds")
    action: str = ""
    note: str | None = None

    model_config = ConfigDict(populate_by_name=True)


class ReorderRequest(BaseModel):
    order: list[str] = Field(default_factory=list)


class ModuleEditResponse(BaseModel):
    ok: bool = True
    module: Module
    edit: ModuleEdit


class BulkReviewResponse(BaseModel):
    ok: bool = True
    updated: list[Module]
    snapshot: Snapshot | None = None


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@modules_router.get(
    "",
    response_model=ModuleListResponse,
    operation_id="list_modules",
    summary="List a project's modules ordered by position",
)
async def list_modules_endpoint(
    project_id: str,
    status: Annotated[ModuleStatus | None, Query()] = None,
    actor: Actor = Depends(require_user),
    store: DocumentStore = Depends(get_store),
) -> ModuleListResponse:
    try:
        modules = await list_modules(store, project_id, status=status)
    except BuildWiseError as exc:
        raise to_http_error(exc) from exc
    return ModuleListResponse(modules=modules)


@modules_router.post(
    "",
    response_model=ModuleResponse,
    status_code=201,
    operation_id="propose_module",
    summary="Propose a module for review",
)
async def propose_module_endpoint(
    project_id: str,
    body: ProposeModuleRequest,
    actor: Actor = Depends(require_user),
    store: DocumentStore = Depends(get_store),
) -> ModuleResponse:
    try:
        module = await propose_module(
            store,
            project_id,
            body.name,
            nodes=body.nodes,
            edges=body.edges,
            order=body.order,
            confidence=body.confidence,
        )
    except BuildWiseError as exc:
        raise to_http_error(exc) from exc
    return ModuleResponse(module=module)


@modules_router.post(
    "/bulk-review",
    response_model=BulkReviewResponse,
    operation_id="bulk_review_modules",
    summary="Approve or reject several modules",
    description=(
        "Unknown module ids are skipped. A bulk approval rebuilds the canonical graph "
        "once and publishes a single new snapshot version."
    ),
)
async def bulk_review_endpoint(
    project_id: str,
    body: BulkReviewRequest,
    actor: Actor = Depends(require_reviewer),
    store: DocumentStore = Depends(get_store),
) -> BulkReviewResponse:
    try:
        updated, snapshot = await bulk_review_modules(
            store, project_id, body.module_ids, body.action, actor.user_id, note=body.note
        )
    except BuildWiseError as exc:
        raise to_http_error(exc) from exc
    return BulkReviewResponse(updated=updated, snapshot=snapshot)


@modules_router.post(
    "/reorder",
    response_model=ModuleListResponse,
    operation_id="reorder_modules",
    summary="Set module positions from an ordered list of ids",
)
async def reorder_modules_endpoint(
    project_id: str,
    body: ReorderRequest,
    actor: Actor = Depends(require_reviewer),
    store: DocumentStore = Depends(get_store),
) -> ModuleListResponse:
    try:
        modules = await reorder_modules(store, project_id, body.order, actor.user_id)
    except BuildWiseError as exc:
        raise to_http_error(exc) from exc
    return ModuleListResponse(modules=modules)


@modules_router.get(
    "/{module_id}",
    response_model=ModuleResponse,
    operation_id="get_module",
    summary="Fetch a single module",
)
async def get_module_endpoint(
    project_id: str,
    module_id: str,
    actor: Actor = Depends(require_user),
    store: DocumentStore = Depends(get_store),
) -> ModuleResponse:
    try:
        module = await get_module(store, project_id, module_id)
    except BuildWiseError as exc:
        raise to_http_error(exc) from exc
    return ModuleResponse(module=module)


@modules_router.post(
    "/{module_id}/approve",
    response_model=ApproveModuleResponse,
    operation_id="approve_module",
    summary="Approve a module",
    description=(
        "Marks the module approved, rebuilds the canonical graph from every approved "
        "module of the project and publishes it as a new snapshot version."
    ),
)
async def approve_module_endpoint(
    project_id: str,
    module_id: str,
    actor: Actor = Depends(require_reviewer),
    store: DocumentStore = Depends(get_store),
) -> ApproveModuleResponse:
    try:
        module, snapshot = await approve_module(store, project_id, module_id, actor.user_id)
    except BuildWiseError as exc:
        raise to_http_error(exc) from exc
    return ApproveModuleResponse(module=module, snapshot=snapshot)


@modules_router.post(
    "/{module_id}/reject",
    response_model=ModuleResponse,
    operation_id="reject_module",
    summary="Reject a module",
)
async def reject_module_endpoint(
    project_id: str,
    module_id: str,
    body: RejectModuleRequest | None = None,
    actor: Actor = Depends(require_reviewer),
    store: DocumentStore = Depends(get_store),
) -> ModuleResponse:
    try:
        module = await reject_module(
            store, project_id, module_id, actor.user_id, reason=body.reason if body else None
        )
    except BuildWiseError as exc:
        raise to_http_error(exc) from exc
    return ModuleResponse(module=module)


@modules_router.post(
    "/{module_id}/edits",
    response_model=ModuleEditResponse,
    status_code=201,
    operation_id="propose_module_edit",
    summary="Propose an edit to a module",
)
async def propose_edit_endpoint(
    project_id: str,
    module_id: str,
    body: ProposeEditRequest,
    actor: Actor = Depends(require_user),
    store: DocumentStore = Depends(get_store),
) -> ModuleEditResponse:
    try:
        module, edit = await propose_module_edit(
            store,
            project_id,
            module_id,
            actor.user_id,
            nodes=body.diff.nodes,
            edges=body.diff.edges,
        )
    except BuildWiseError as exc:
        raise to_http_error(exc) from exc
    return ModuleEditResponse(module=module, edit=edit)


@modules_router.post(
    "/{module_id}/edits/{edit_id}",
    response_model=ModuleEditResponse,
    operation_id="review_module_edit",
    summary="Accept or reject a proposed module edit",
    description=(
        "action=accept folds the edit into the module and marks it modified; "
        "action=reject only closes the edit."
    ),
)
async def review_edit_endpoint(
    project_id: str,
    module_id: str,
    edit_id: str,
    body: ReviewEditRequest,
    actor: Actor = Depends(require_reviewer),
    store: DocumentStore = Depends(get_store),
) -> ModuleEditResponse:
    review = _EDIT_REVIEWS.get(body.action)
    try:
        if review is None:
            raise InvalidInput("invalid action")
        module, edit = await review(store, project_id, module_id, edit_id, actor.user_id)
    except BuildWiseError as exc:
        raise to_http_error(exc) from exc
    return ModuleEditResponse(module=module, edit=edit)
