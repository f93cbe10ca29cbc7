"""create leave requests and substitute assignments

Revision ID: 20261005_0002
Revises: 20261005_0001
Create Date: 2026-10-05 00:00:00.000000

"""

from alembic import op
import sqlalchemy as sa

revision = "20261005_0002"
down_revision = "20261005_0001"
branch_labels = None
depends_on = None


leave_type = sa.Enum("casual", "medical", "earned", "duty", "unpaid", "custom", name="leave_type")
leave_status = sa.Enum("pending", "approved", "auto-approved", "rejected", name="leave_status")
assignment_status = sa.Enum("pending", "assigned", "auto-assigned", "unassigned", name="assignment_status")
assignment_type = sa.Enum("manual", "auto", "manual_override", name="assignment_type")


def upgrade() -> None:
    op.create_table(
        "leave_requests",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("teacher_id", sa.String(length=36), nullable=False),
        sa.Column("department", sa.String(length=200), nullable=False),
        sa.Column("leave_type", leave_type, nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("status", leave_status, nullable=False),
        sa.Column("affected_lectures", sa.JSON(), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("hod_decision_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reviewed_by_id", sa.String(length=36), nullable=True),
        sa.Column("review_comment", sa.Text(), nullable=True),
    )
    op.create_index("ix_leave_requests_teacher_id", "leave_requests", ["teacher_id"], unique=False)
    op.create_index("ix_leave_requests_status", "leave_requests", ["status"], unique=False)

    op.create_table(
        "substitute_assignments",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("lecture_id", sa.String(length=36), nullable=False),
        sa.Column("leave_request_id", sa.String(length=36), nullable=False),
        sa.Column("original_teacher_id", sa.String(length=36), nullable=False),
        sa.Column("substitute_teacher_id", sa.String(length=36), nullable=True),
        sa.Column("status", assignment_status, nullable=False),
        sa.Column("assignment_type", assignment_type, nullable=False),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("response_deadline", sa.DateTime(timezone=True), nullable=False),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
    )
    op.create_index("ix_substitute_assignments_lecture_id", "substitute_assignments", ["lecture_id"], unique=False)
    op.create_index(
        "ix_substitute_assignments_leave_request_id",
        "substitute_assignments",
        ["leave_request_id"],
        unique=False,
    )
    op.create_index(
        "ix_substitute_assignments_substitute_teacher_id",
        "substitute_assignments",
        ["substitute_teacher_id"],
        unique=False,
    )
    op.create_index("ix_substitute_assignments_status", "substitute_assignments", ["status"], unique=False)
    op.create_index(
        "ix_substitute_assignments_response_deadline",
        "substitute_assignments",
        ["response_deadline"],
        unique=False,
    )
    op.create_index(
        "uq_substitute_assignments_pending_lecture",
        "substitute_assignments",
        ["lecture_id"],
        unique=True,
        postgresql_where=sa.text("status = 'pending'"),
        sqlite_where=sa.text("status = 'pending'"),
    )


def downgrade() -> None:
    op.drop_index("uq_substitute_assignments_pending_lecture", table_name="substitute_assignments")
    op.drop_index("ix_substitute_assignments_response_deadline", table_name="substitute_assignments")
    op.drop_index("ix_substitute_assignments_status", table_name="substitute_assignments")
    op.drop_index("ix_substitute_assignments_substitute_teacher_id", table_name="substitute_assignments")
    op.drop_index("ix_substitute_assignments_leave_request_id", table_name="substitute_assignments")
    op.drop_index("ix_substitute_assignments_lecture_id", table_name="substitute_assignments")
    op.drop_table("substitute_assignments")
    op.drop_index("ix_leave_requests_status", table_name="leave_requests")
    op.drop_index("ix_leave_requests_teacher_id", table_name="leave_requests")
    op.drop_table("leave_requests")
    assignment_type.drop(op.get_bind(), checkfirst=True)
    assignment_status.drop(op.get_bind(), checkfirst=True)
    leave_status.drop(op.get_bind(), checkfirst=True)
    leave_type.drop(op.get_bind(), checkfirst=True)
