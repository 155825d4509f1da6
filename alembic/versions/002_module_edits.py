"""Add proposed_edits document column to modules.

Revision ID: 002
Revises: 001
Create Date: 2026-10-19

Adds:
- modules.proposed_edits  : JSON list of edit proposals (open / accepted / rejected)
  embedded in the module document; existing rows start with an empty list
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers used by Alembic
revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSONDocument = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    op.add_column(
        "modules",
        sa.Column(
            "proposed_edits",
            JSONDocument,
            nullable=False,
            server_default=sa.text("'[]'"),
        ),
    )


def downgrade() -> None:
    op.drop_column("modules", "proposed_edits")
