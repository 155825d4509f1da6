"""Initial schema: snapshots, modules, audit records.

Revision ID: 001
Revises:
Create Date: 2026-10-19

Creates:
- snapshots      : versioned canonical graphs per project
- modules        : proposed sub-graphs and their review status
- audit_records  : append-only resolution / approval / rollback ledger

Indexes and constraints:
- uq_snapshots_project_version  : unique(project_id, version)
- uq_snapshots_project_active   : partial unique index, one active snapshot per project
- ix_snapshots_project_id, ix_modules_project_id, ix_audit_records_project_id
- ix_audit_records_project_timestamp : newest-first ledger listing
- ck_modules_status             : status in the four known values
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers used by Alembic
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSONDocument = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    # 1. snapshots
    op.create_table(
        "snapshots",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("project_id", sa.String(255), nullable=False),
        sa.Column("version", sa.Integer, nullable=False),
        sa.Column("nodes", JSONDocument, nullable=False),
        sa.Column("edges", JSONDocument, nullable=False),
        sa.Column("modules", JSONDocument, nullable=False),
        sa.Column("active", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("author", sa.String(255), nullable=False),
        sa.Column("rollback_from", sa.Integer, nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint("project_id", "version", name="uq_snapshots_project_version"),
    )
    op.create_index("ix_snapshots_project_id", "snapshots", ["project_id"])
    op.create_index(
        "uq_snapshots_project_active",
        "snapshots",
        ["project_id"],
        unique=True,
        postgresql_where=sa.text("active"),
        sqlite_where=sa.text("active"),
    )

    # 2. modules
    op.create_table(
        "modules",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("project_id", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="proposed"),
        sa.Column("nodes", JSONDocument, nullable=False),
        sa.Column("edges", JSONDocument, nullable=False),
        sa.Column("order", sa.Integer, nullable=False, server_default="0"),
        sa.Column("confidence", sa.String(8), nullable=True),
        sa.Column("approved_by", sa.String(255), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint(
            "status IN ('proposed', 'approved', 'modified', 'rejected')",
            name="ck_modules_status",
        ),
    )
    op.create_index("ix_modules_project_id", "modules", ["project_id"])

    # 3. audit_records
    op.create_table(
        "audit_records",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("project_id", sa.String(255), nullable=False),
        sa.Column("conflict_id", sa.String(1024), nullable=True),
        sa.Column("action", sa.String(64), nullable=False),
        sa.Column("actor", sa.String(255), nullable=False),
        sa.Column("details", JSONDocument, nullable=False),
        sa.Column(
            "timestamp",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_audit_records_project_id", "audit_records", ["project_id"])
    op.create_index(
        "ix_audit_records_project_timestamp",
        "audit_records",
        ["project_id", sa.text("timestamp DESC")],
    )


def downgrade() -> None:
    op.drop_index("ix_audit_records_project_timestamp", table_name="audit_records")
    op.drop_index("ix_audit_records_project_id", table_name="audit_records")
    op.drop_table("audit_records")

    op.drop_index("ix_modules_project_id", table_name="modules")
    op.drop_table("modules")

    op.drop_index("uq_snapshots_project_active", table_name="snapshots")
    op.drop_index("ix_snapshots_project_id", table_name="snapshots")
    op.drop_table("snapshots")
