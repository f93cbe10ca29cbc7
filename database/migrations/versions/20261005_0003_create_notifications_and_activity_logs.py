"""create notifications and activity logs

Revision ID: 20261005_0003
Revises: 20261005_0002
Create Date: 2026-10-05 00:00:00.000000

"""

from alembic import op
import sqlalchemy as sa

revision = "20261005_0003"
down_revision = "20261005_0002"
branch_labels = None
depends_on = None


notification_kind = sa.Enum(
    "leave_request",
    "leave_status",
    "auto_assign",
    "substitute_found",
    "substitute_missing",
    "lecture_update",
    name="notification_kind",
)
notification_priority = sa.Enum("low", "normal", "high", name="notification_priority")


def upgrade() -> None:
    op.create_table(
        "notifications",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("teacher_id", sa.String(length=36), nullable=False),
        sa.Column("lecture_id", sa.String(length=36), nullable=True),
        sa.Column("kind", notification_kind, nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("priority", notification_priority, nullable=False),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_notifications_teacher_id", "notifications", ["teacher_id"], unique=False)

    op.create_table(
        "activity_logs",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("actor_id", sa.String(length=36), nullable=True),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("entity_type", sa.String(length=100), nullable=True),
        sa.Column("entity_id", sa.String(length=100), nullable=True),
        sa.Column("details", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("activity_logs")
    op.drop_index("ix_notifications_teacher_id", table_name="notifications")
    op.drop_table("notifications")
    notification_priority.drop(op.get_bind(), checkfirst=True)
    notification_kind.drop(op.get_bind(), checkfirst=True)
