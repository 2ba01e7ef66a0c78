"""Create managed_tasks table

Revision ID: 4a7e1c9b2d30
Revises:
Create Date: 2026-10-19

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "4a7e1c9b2d30"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "managed_tasks",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("owner_id", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("tags", sa.JSON(), nullable=False),
        sa.Column("category", sa.String(), nullable=False),
        sa.Column("specific_reset_days", sa.JSON(), nullable=True),
        sa.Column("specific_reset_hours", sa.Integer(), nullable=True),
        sa.Column("is_completed", sa.Boolean(), nullable=False),
        sa.Column("last_completion_at", sa.DateTime(), nullable=True),
        sa.Column("next_eligible_at", sa.DateTime(), nullable=True),
        sa.Column("sub_tasks", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_managed_tasks_owner_id"), "managed_tasks", ["owner_id"], unique=False)
    op.create_index(op.f("ix_managed_tasks_next_eligible_at"), "managed_tasks", ["next_eligible_at"], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index(op.f("ix_managed_tasks_next_eligible_at"), table_name="managed_tasks")
    op.drop_index(op.f("ix_managed_tasks_owner_id"), table_name="managed_tasks")
    op.drop_table("managed_tasks")
