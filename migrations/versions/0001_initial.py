"""Initial schema for task-index-sync

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19

Adds:
- tasks: primary task records (source of index mutations)
- dead_letter_tasks: mutations that exhausted their index retries
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic
revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "tasks",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("content", sa.Text, nullable=False, server_default=""),
        sa.Column(
            "status",
            sa.String(16),
            nullable=False,
            server_default="TODO",
        ),
        sa.Column(
            "created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text("NOW()")
        ),
        sa.Column(
            "updated_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text("NOW()")
        ),
        sa.Column("deleted_at", sa.TIMESTAMP(timezone=True)),
        sa.CheckConstraint("status IN ('TODO', 'PENDING', 'COMPLETED')", name="ck_tasks_status"),
    )

    # Dead letters: scanned in id order by the replay scheduler
    op.create_table(
        "dead_letter_tasks",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("task_id", sa.BigInteger, nullable=False),
        sa.Column("payload", sa.Text, nullable=False),
        sa.Column("error_msg", sa.Text),
        sa.Column("retry_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column(
            "created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text("NOW()")
        ),
    )
    op.create_index("ix_dead_letter_tasks_task_id", "dead_letter_tasks", ["task_id"])


def downgrade() -> None:
    op.drop_index("ix_dead_letter_tasks_task_id", table_name="dead_letter_tasks")
    op.drop_table("dead_letter_tasks")
    op.drop_table("tasks")
