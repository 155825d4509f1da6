"""SQLAlchemy implementation of the DocumentStore interface.

Each method opens its own AsyncSession (one transaction per call) from an
injectable session factory, defaulting to the process-wide factory in
buildwise.db.session.  Tests pass a factory bound to an in-memory SQLite
engine.

All SQLAlchemyError exceptions are converted to StoreFailure so callers only
ever see the domain error taxonomy.
"""

from __future__ import annotations

import datetime
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from pydantic import BaseModel, ValidationError
from sqlalchemy import func, select, text, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from buildwise.db.models import AuditRecordRow, ModuleRow, SnapshotRow
from buildwise.db.session import get_session_factory
from buildwise.errors import StoreFailure
from buildwise.graph.models import (
    AuditRecord,
    Edge,
    Module,
    ModuleEdit,
    ModuleStatus,
    Node,
    Snapshot,
    dump_edges,
    dump_module_edits,
    dump_nodes,
)
from buildwise.store.base import DocumentStore, NewAuditRecord, NewModule, NewSnapshot

logger = logging.getLogger(__name__)


def _validate(model: type[BaseModel], row, kind: str):
    """Validate an ORM row into a domain model, rejecting malformed documents."""
    try:
        return model.model_validate(row)
    except ValidationError as exc:
        logger.error("Malformed %s document %s: %s", kind, getattr(row, "id", "?"), exc)
        raise StoreFailure(f"malformed {kind} document {getattr(row, 'id', '?')}") from exc


class SqlDocumentStore(DocumentStore):
    """DocumentStore backed by SQLAlchemy async sessions."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None):
        self._session_factory = session_factory

    @asynccontextmanager
    async def _unit_of_work(self, operation: str) -> AsyncIterator[AsyncSession]:
        factory = self._session_factory or get_session_factory()
        try:
            async with factory() as session:
                yield session
        except SQLAlchemyError as exc:
            logger.error("Store operation %s failed: %s", operation, exc)
            raise StoreFailure(f"{operation} failed: {exc.__class__.__name__}") from exc

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    async def find_active_snapshot(self, project_id: str) -> Snapshot | None:
        async with self._unit_of_work("find_active_snapshot") as session:
            result = await session.execute(
                select(SnapshotRow).where(
                    SnapshotRow.project_id == project_id,
                    SnapshotRow.active.is_(True),
                )
            )
            row = result.scalar_one_or_none()
        return _validate(Snapshot, row, "snapshot") if row is not None else None

    async def create_snapshot(self, doc: NewSnapshot) -> Snapshot:
        async with self._unit_of_work("create_snapshot") as session:
            if doc.active:
                # Deactivate the prior active snapshot in the same transaction
                await session.execute(
                    update(SnapshotRow)
                    .where(
                        SnapshotRow.project_id == doc.project_id,
                        SnapshotRow.active.is_(True),
                    )
                    .values(active=False)
                )
            row = SnapshotRow(
                project_id=doc.project_id,
                version=doc.version,
                nodes=dump_nodes(doc.nodes),
                edges=dump_edges(doc.edges),
                modules=list(doc.modules),
                active=doc.active,
                author=doc.author,
                rollback_from=doc.rollback_from,
            )
            session.add(row)
            await session.commit()
        return _validate(Snapshot, row, "snapshot")

    async def deactivate_snapshot(self, project_id: str) -> int:
        async with self._unit_of_work("deactivate_snapshot") as session:
            result = await session.execute(
                update(SnapshotRow)
                .where(
                    SnapshotRow.project_id == project_id,
                    SnapshotRow.active.is_(True),
                )
                .values(active=False)
            )
            await session.commit()
        return result.rowcount or 0

    async def latest_snapshot_version(self, project_id: str) -> int:
        async with self._unit_of_work("latest_snapshot_version") as session:
            result = await session.execute(
                select(func.max(SnapshotRow.version)).where(
                    SnapshotRow.project_id == project_id
                )
            )
            latest = result.scalar_one_or_none()
        return latest or 0

    async def find_snapshot_by_version(self, project_id: str, version: int) -> Snapshot | None:
        async with self._unit_of_work("find_snapshot_by_version") as session:
            result = await session.execute(
                select(SnapshotRow).where(
                    SnapshotRow.project_id == project_id,
                    SnapshotRow.version == version,
                )
            )
            row = result.scalar_one_or_none()
        return _validate(Snapshot, row, "snapshot") if row is not None else None

    async def list_snapshots(self, project_id: str) -> list[Snapshot]:
        async with self._unit_of_work("list_snapshots") as session:
            result = await session.execute(
                select(SnapshotRow)
                .where(SnapshotRow.project_id == project_id)
                .order_by(SnapshotRow.version.desc())
            )
            rows = result.scalars().all()
        return [_validate(Snapshot, row, "snapshot") for row in rows]

    # ------------------------------------------------------------------
    # Modules
    # ------------------------------------------------------------------

    async def find_module_by_id(self, module_id: str) -> Module | None:
        async with self._unit_of_work("find_module_by_id") as session:
            row = await session.get(ModuleRow, module_id)
        return _validate(Module, row, "module") if row is not None else None

    async def create_module(self, doc: NewModule) -> Module:
        async with self._unit_of_work("create_module") as session:
            row = ModuleRow(
                project_id=doc.project_id,
                name=doc.name,
                status=ModuleStatus(doc.status).value,
                nodes=dump_nodes(doc.nodes),
                edges=dump_edges(doc.edges),
                order=doc.order,
                confidence=doc.confidence,
                proposed_edits=[],
            )
            session.add(row)
            await session.commit()
        return _validate(Module, row, "module")

    async def list_modules(
        self, project_id: str, status: ModuleStatus | None = None
    ) -> list[Module]:
        async with self._unit_of_work("list_modules") as session:
            stmt = select(ModuleRow).where(ModuleRow.project_id == project_id)
            if status is not None:
                stmt = stmt.where(ModuleRow.status == ModuleStatus(status).value)
            result = await session.execute(
                stmt.order_by(ModuleRow.order.asc(), ModuleRow.created_at.asc())
            )
            rows = result.scalars().all()
        return [_validate(Module, row, "module") for row in rows]

    async def update_module_status(
        self,
        module_id: str,
        status: ModuleStatus,
        approved_by: str | None = None,
    ) -> Module | None:
        async with self._unit_of_work("update_module_status") as session:
            row = await session.get(ModuleRow, module_id)
            if row is None:
                return None
            row.status = ModuleStatus(status).value
            if status == ModuleStatus.approved:
                row.approved_by = approved_by
                row.approved_at = datetime.datetime.now(datetime.timezone.utc)
            await session.commit()
        return _validate(Module, row, "module")

    async def update_module_node_id(self, module_id: str, old_id: str, new_id: str) -> Module | None:
        async with self._unit_of_work("update_module_node_id") as session:
            row = await session.get(ModuleRow, module_id)
            if row is None:
                return None
            nodes = [dict(n) for n in (row.nodes or [])]
            target = next((n for n in nodes if n.get("id") == old_id), None)
            if target is None:
                return None
            target["id"] = new_id
            # Reassign so the JSON column is flagged dirty
            row.nodes = nodes
            await session.commit()
        return _validate(Module, row, "module")

    async def add_module_edit(self, module_id: str, edit: ModuleEdit) -> Module | None:
        async with self._unit_of_work("add_module_edit") as session:
            row = await session.get(ModuleRow, module_id)
            if row is None:
                return None
            row.proposed_edits = list(row.proposed_edits or []) + dump_module_edits([edit])
            await session.commit()
        return _validate(Module, row, "module")

    async def save_module_edit(
        self,
        module_id: str,
        edit: ModuleEdit,
        nodes: list[Node] | None = None,
        edges: list[Edge] | None = None,
        status: ModuleStatus | None = None,
        approved_by: str | None = None,
    ) -> Module | None:
        async with self._unit_of_work("save_module_edit") as session:
            row = await session.get(ModuleRow, module_id)
            if row is None:
                return None
            edits = list(row.proposed_edits or [])
            idx = next((i for i, e in enumerate(edits) if e.get("id") == edit.id), None)
            if idx is None:
                return None
            edits[idx] = dump_module_edits([edit])[0]
            row.proposed_edits = edits
            if nodes is not None:
                row.nodes = dump_nodes(nodes)
            if edges is not None:
                row.edges = dump_edges(edges)
            if status is not None:
                row.status = ModuleStatus(status).value
                row.approved_by = approved_by
                row.approved_at = datetime.datetime.now(datetime.timezone.utc)
            await session.commit()
        return _validate(Module, row, "module")

    async def set_module_order(self, project_id: str, module_ids: list[str]) -> list[Module]:
        async with self._unit_of_work("set_module_order") as session:
            result = await session.execute(
                select(ModuleRow).where(
                    ModuleRow.project_id == project_id,
                    ModuleRow.id.in_(module_ids),
                )
            )
            positions = {module_id: idx for idx, module_id in enumerate(module_ids)}
            for row in result.scalars().all():
                row.order = positions[row.id]
            await session.commit()
        return await self.list_modules(project_id)

    # ------------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------------

    async def create_audit_record(self, doc: NewAuditRecord) -> AuditRecord:
        async with self._unit_of_work("create_audit_record") as session:
            row = AuditRecordRow(
                project_id=doc.project_id,
                conflict_id=doc.conflict_id,
                action=doc.action,
                actor=doc.actor,
                details=dict(doc.details),
            )
            session.add(row)
            await session.commit()
        return _validate(AuditRecord, row, "audit record")

    async def list_audit_records(self, project_id: str, limit: int = 100) -> list[AuditRecord]:
        async with self._unit_of_work("list_audit_records") as session:
            result = await session.execute(
                select(AuditRecordRow)
                .where(AuditRecordRow.project_id == project_id)
                .order_by(AuditRecordRow.timestamp.desc())
                .limit(limit)
            )
            rows = result.scalars().all()
        return [_validate(AuditRecord, row, "audit record") for row in rows]

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    async def health_check(self) -> bool:
        try:
            async with self._unit_of_work("health_check") as session:
                await session.execute(text("SELECT 1"))
            return True
        except StoreFailure:
            return False


def get_store() -> DocumentStore:
    """Return a DocumentStore bound to the process-wide session factory.

    Used as the FastAPI dependency and by the CLI; tests override it.
    """
    return SqlDocumentStore()
