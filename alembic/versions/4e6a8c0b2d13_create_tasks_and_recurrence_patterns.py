"""Create tasks and recurrence_patterns tables

Revision ID: 4e6a8c0b2d13
Revises:
Create Date: 2026-10-18

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "4e6a8c0b2d13"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "tasks",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="todo"),
        sa.Column("priority", sa.String(), nullable=False, server_default="medium"),
        sa.Column("category", sa.String(), nullable=True),
        sa.Column("assignees", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("start_date", sa.DateTime(), nullable=False),
        sa.Column("due_date", sa.DateTime(), nullable=True),
        sa.Column("duration", sa.JSON(), nullable=True),
        sa.Column("is_recurring", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("recurrence_pattern", sa.JSON(), nullable=True),
        sa.Column("parent_task_id", sa.String(), nullable=True),
        sa.Column("instance_number", sa.Integer(), nullable=True),
        sa.Column("occurrence_start", sa.DateTime(), nullable=True),
        sa.Column("recurrence_version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("last_recurrence_update", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["parent_task_id"], ["tasks.id"], name="fk_tasks_parent_task_id", ondelete="SET NULL"),
        sa.UniqueConstraint("parent_task_id", "occurrence_start", name="uq_task_parent_occurrence"),
    )
    op.create_index(op.f("ix_tasks_user_id"), "tasks", ["user_id"], unique=False)
    op.create_index(op.f("ix_tasks_due_date"), "tasks", ["due_date"], unique=False)
    op.create_index(op.f("ix_tasks_is_recurring"), "tasks", ["is_recurring"], unique=False)
    op.create_index(op.f("ix_tasks_parent_task_id"), "tasks", ["parent_task_id"], unique=False)

    op.create_table(
        "recurrence_patterns",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("task_id", sa.String(), sa.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("rule", sa.String(), nullable=False),
        sa.Column("instance_duration", sa.JSON(), nullable=True),
        sa.Column("timezone", sa.String(), nullable=False, server_default="UTC"),
        sa.Column("next_due", sa.DateTime(), nullable=True),
        sa.Column("last_generated", sa.DateTime(), nullable=True),
        sa.Column("pattern_version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("total_instances_created", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_instance_date", sa.DateTime(), nullable=True),
        sa.Column("end_date", sa.DateTime(), nullable=True),
        sa.Column("end_occurrences", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index(op.f("ix_recurrence_patterns_task_id"), "recurrence_patterns", ["task_id"], unique=True)
    op.create_index(op.f("ix_recurrence_patterns_user_id"), "recurrence_patterns", ["user_id"], unique=False)
    op.create_index(op.f("ix_recurrence_patterns_next_due"), "recurrence_patterns", ["next_due"], unique=False)
    op.create_index(op.f("ix_recurrence_patterns_is_active"), "recurrence_patterns", ["is_active"], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index(op.f("ix_recurrence_patterns_is_active"), table_name="recurrence_patterns")
    op.drop_index(op.f("ix_recurrence_patterns_next_due"), table_name="recurrence_patterns")
    op.drop_index(op.f("ix_recurrence_patterns_user_id"), table_name="recurrence_patterns")
    op.drop_index(op.f("ix_recurrence_patterns_task_id"), table_name="recurrence_patterns")
    op.drop_table("recurrence_patterns")

    op.drop_index(op.f("ix_tasks_parent_task_id"), table_name="tasks")
    op.drop_index(op.f("ix_tasks_is_recurring"), table_name="tasks")
    op.drop_index(op.f("ix_tasks_due_date"), table_name="tasks")
    op.drop_index(op.f("ix_tasks_user_id"), table_name="tasks")
    op.drop_table("tasks")
