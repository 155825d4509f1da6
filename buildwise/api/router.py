"""Top-level FastAPI APIRouter for the BuildWise REST API (v1).

Prefix:  /api/v1
Tags:    ["rest-api"]

Sub-routers included:
- conflicts_router  - POST .../conflicts/detect, POST .../conflicts/resolve
- snapshots_router  - GET .../snapshots, POST .../snapshots/init|rollback
- modules_router    - GET|POST .../modules, GET .../modules/{id}, POST .../approve|reject
- audits_router     - GET .../audits

All sub-routers are scoped under ``/projects/{project_id}``.
"""

from __future__ import annotations

from fastapi import APIRouter

from buildwise.api.routes.audits import audits_router
from buildwise.api.routes.conflicts import conflicts_router
from buildwise.api.routes.modules import modules_router
from buildwise.api.routes.snapshots import snapshots_router

api_router = APIRouter(prefix="/api/v1", tags=["rest-api"])

api_router.include_router(conflicts_router)
api_router.include_router(snapshots_router)
api_router.include_router(modules_router)
api_router.include_router(audits_router)
