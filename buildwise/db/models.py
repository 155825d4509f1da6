"""SQLAlchemy ORM models for BuildWise.

Tables:
- snapshots      : versioned canonical architecture graphs (one active per project)
- modules        : proposed sub-graphs authored by students or the AI wizard,
                   with their pending edit proposals embedded
- audit_records  : append-only resolution / approval ledger

Graph payloads (nodes, edges, meta, audit details) are stored as JSON
documents: JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests).

Invariants enforced by the schema:
- uq_snapshots_project_version : (project_id, version) unique
- uq_snapshots_project_active  : partial unique index on project_id WHERE active,
                                 so two concurrent writers cannot both leave an
                                 active snapshot behind
"""

from __future__ import annotations

import datetime
import uuid

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# JSONB on PostgreSQL, generic JSON on every other dialect
JSONDocument = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _new_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class Base(DeclarativeBase):
    pass


class SnapshotRow(Base):
    __tablename__ = "snapshots"

    id: Mapped[str] = mapped_column(sa.String(32), primary_key=True, default=_new_id)
    project_id: Mapped[str] = mapped_column(sa.String(255), nullable=False, index=True)
    version: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    nodes: Mapped[list] = mapped_column(JSONDocument, nullable=False, default=list)
    edges: Mapped[list] = mapped_column(JSONDocument, nullable=False, default=list)
    modules: Mapped[list] = mapped_column(JSONDocument, nullable=False, default=list)
    active: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False)
    author: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    rollback_from: Mapped[int | None] = mapped_column(sa.Integer, nullable=True)
    created_at: Mapped[datetime.datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (
        sa.UniqueConstraint("project_id", "version", name="uq_snapshots_project_version"),
        sa.Index(
            "uq_snapshots_project_active",
            "project_id",
            unique=True,
            postgresql_where=sa.text("active"),
            sqlite_where=sa.text("active"),
        ),
    )


class ModuleRow(Base):
    __tablename__ = "modules"

    id: Mapped[str] = mapped_column(sa.String(32), primary_key=True, default=_new_id)
    project_id: Mapped[str] = mapped_column(sa.String(255), nullable=False, index=True)
    name: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    status: Mapped[str] = mapped_column(sa.String(16), nullable=False, default="proposed")
    nodes: Mapped[list] = mapped_column(JSONDocument, nullable=False, default=list)
    edges: Mapped[list] = mapped_column(JSONDocument, nullable=False, default=list)
    order: Mapped[int] = mapped_column("order", sa.Integer, nullable=False, default=0)
    confidence: Mapped[str | None] = mapped_column(sa.String(8), nullable=True)
    proposed_edits: Mapped[list] = mapped_column(JSONDocument, nullable=False, default=list)
    approved_by: Mapped[str | None] = mapped_column(sa.String(255), nullable=True)
    approved_at: Mapped[datetime.datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime.datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime.datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        sa.CheckConstraint(
            "status IN ('proposed', 'approved', 'modified', 'rejected')",
            name="ck_modules_status",
        ),
    )


class AuditRecordRow(Base):
    __tablename__ = "audit_records"

    id: Mapped[str] = mapped_column(sa.String(32), primary_key=True, default=_new_id)
    project_id: Mapped[str] = mapped_column(sa.String(255), nullable=False, index=True)
    conflict_id: Mapped[str | None] = mapped_column(sa.String(1024), nullable=True)
    action: Mapped[str] = mapped_column(sa.String(64), nullable=False)
    actor: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    details: Mapped[dict] = mapped_column(JSONDocument, nullable=False, default=dict)
    timestamp: Mapped[datetime.datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=_utcnow
    )
