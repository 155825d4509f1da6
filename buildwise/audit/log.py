"""Append-only audit ledger for resolution, approval and rollback actions.

The ledger is write-and-list only: nothing updates or deletes an entry, and
the conflict engine never reads it back to make decisions.
"""

from __future__ import annotations

import logging
from typing import Any

from buildwise.config import settings
from buildwise.graph.models import AuditRecord
from buildwise.store.base import DocumentStore, NewAuditRecord

logger = logging.getLogger(__name__)


async def append_audit(
    store: DocumentStore,
    project_id: str,
    action: str,
    actor: str,
    details: dict[str, Any] | None = None,
    conflict_id: str | None = None,
) -> AuditRecord:
    """Write one audit entry and return it."""
    record = await store.create_audit_record(
        NewAuditRecord(
            project_id=project_id,
            conflict_id=conflict_id,
            action=action,
            actor=actor or settings.default_actor,
            details=details or {},
        )
    )
    logger.debug(
        "Audit: %s by %s (project=%s, conflict=%s)", action, record.actor, project_id, conflict_id
    )
    return record


async def list_audits(
    store: DocumentStore, project_id: str, limit: int | None = None
) -> list[AuditRecord]:
    """Return the project's audit entries, newest first."""
    return await store.list_audit_records(project_id, limit=limit or settings.audit_list_limit)
