"""add per-date occurrence statuses"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "0002_add_task_occurrences"
down_revision = "0001_create_tasks"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "task_occurrences",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "task_id",
            sa.String(length=36),
            sa.ForeignKey("tasks.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("original_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("task_id", "original_date", name="uq_task_occurrence_date"),
    )
    op.create_index("ix_task_occurrences_task_id", "task_occurrences", ["task_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_task_occurrences_task_id", table_name="task_occurrences")
    op.drop_table("task_occurrences")
