"""Audit ledger REST endpoint: GET /projects/{project_id}/audits (reviewers only)."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from buildwise.api.auth import Actor, require_reviewer
from buildwise.api.errors import to_http_error
from buildwise.audit.log import list_audits
from buildwise.errors import BuildWiseError
from buildwise.graph.models import AuditRecord
from buildwise.store import DocumentStore, get_store

audits_router = APIRouter(prefix="/projects/{project_id}/audits", tags=["audits"])


class AuditListResponse(BaseModel):
    ok: bool = True
    audits: list[AuditRecord]


@audits_router.get(
    "",
    response_model=AuditListResponse,
    operation_id="list_audits",
    summary="List audit entries for a project, newest first",
)
async def list_audits_endpoint(
    project_id: str,
    limit: Annotated[int | None, Query(ge=1, le=1000)] = None,
    actor: Actor = Depends(require_reviewer),
    store: DocumentStore = Depends(get_store),
) -> AuditListResponse:
    try:
        audits = await list_audits(store, project_id, limit=limit)
    except BuildWiseError as exc:
        raise to_http_error(exc) from exc
    return AuditListResponse(audits=audits)
