"""Initial schema.

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "dispatch_items",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("project_id", sa.String(255), nullable=False),
        sa.Column("url", sa.Text(), nullable=True),
        sa.Column("field", sa.String(255), nullable=True),
        sa.Column(
            "value",
            sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), "postgresql"),
            nullable=True,
        ),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("requested_by", sa.String(255), nullable=True),
        sa.Column("platform", sa.String(100), nullable=True),
        sa.Column("external_id", sa.String(255), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("payload_hash", sa.String(64), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("last_status_code", sa.Integer(), nullable=True),
        sa.Column("next_attempt_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("instance_id", sa.String(50), nullable=True),
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
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_dispatch_items_status", "dispatch_items", ["status"])
    op.create_index(
        "ix_dispatch_items_status_next_attempt",
        "dispatch_items",
        ["status", "next_attempt_at"],
    )
    op.create_index(
        "ix_dispatch_items_project_created",
        "dispatch_items",
        ["project_id", "created_at"],
    )
    op.create_index(
        "ix_dispatch_items_priority_created",
        "dispatch_items",
        ["priority", "created_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_dispatch_items_priority_created", table_name="dispatch_items")
    op.drop_index("ix_dispatch_items_project_created", table_name="dispatch_items")
    op.drop_index("ix_dispatch_items_status_next_attempt", table_name="dispatch_items")
    op.drop_index("ix_dispatch_items_status", table_name="dispatch_items")
    op.drop_table("dispatch_items")
