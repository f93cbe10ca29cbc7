"""create teachers and lectures

Revision ID: 20261005_0001
Revises:
Create Date: 2026-10-05 00:00:00.000000

"""

from alembic import op
import sqlalchemy as sa

revision = "20261005_0001"
down_revision = None
branch_labels = None
depends_on = None


teacher_role = sa.Enum("teacher", "hod", "admin", name="teacher_role")
lecture_status = sa.Enum("scheduled", "sub_assigned", "completed", "cancelled", name="lecture_status")


def upgrade() -> None:
    op.create_table(
        "teachers",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("department", sa.String(length=200), nullable=False),
        sa.Column("role", teacher_role, nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("substitute_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_teachers_email", "teachers", ["email"], unique=True)
    op.create_index("ix_teachers_department", "teachers", ["department"], unique=False)

    op.create_table(
        "lectures",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("scheduled_teacher_id", sa.String(length=36), nullable=False),
        sa.Column("substitute_teacher_id", sa.String(length=36), nullable=True),
        sa.Column("department", sa.String(length=200), nullable=False),
        sa.Column("subject", sa.String(length=200), nullable=False),
        sa.Column("class_year", sa.String(length=50), nullable=False),
        sa.Column("room", sa.String(length=100), nullable=True),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("day_of_week", sa.String(length=10), nullable=False),
        sa.Column("start_time", sa.String(length=5), nullable=False),
        sa.Column("end_time", sa.String(length=5), nullable=False),
        sa.Column("status", lecture_status, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_lectures_scheduled_teacher_id", "lectures", ["scheduled_teacher_id"], unique=False)
    op.create_index("ix_lectures_substitute_teacher_id", "lectures", ["substitute_teacher_id"], unique=False)
    op.create_index("ix_lectures_status", "lectures", ["status"], unique=False)
    op.create_index("ix_lectures_date_start_time", "lectures", ["date", "start_time"], unique=False)
    op.create_index("ix_lectures_date_room", "lectures", ["date", "room"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_lectures_date_room", table_name="lectures")
    op.drop_index("ix_lectures_date_start_time", table_name="lectures")
    op.drop_index("ix_lectures_status", table_name="lectures")
    op.drop_index("ix_lectures_substitute_teacher_id", table_name="lectures")
    op.drop_index("ix_lectures_scheduled_teacher_id", table_name="lectures")
    op.drop_table("lectures")
    op.drop_index("ix_teachers_department", table_name="teachers")
    op.drop_index("ix_teachers_email", table_name="teachers")
    op.drop_table("teachers")
    lecture_status.drop(op.get_bind(), checkfirst=True)
    teacher_role.drop(op.get_bind(), checkfirst=True)
