"""Initial club schema: member, golf_course, schedule, reservation, notification

Revision ID: 001_initial
Revises:
Create Date: 2026-10-17 00:00:00.000000

"""

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "001_initial"
down_revision = None
branch_labels = None
depends_on = None

ACTIVE_WHERE = sa.text("status NOT IN ('cancelled', 'deleted')")


def upgrade() -> None:
    op.create_table(
        "member",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("phone", sa.String(), nullable=True),
        sa.Column("employee_id", sa.String(), nullable=True),
        sa.Column("department", sa.String(), nullable=True),
        sa.Column("is_admin", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("avg_score", sa.Integer(), nullable=True),
        sa.Column("recent_score", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_member_employee_id", "member", ["employee_id"])

    op.create_table(
        "golf_course",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("location", sa.String(), nullable=True),
        sa.Column("max_members", sa.Integer(), nullable=False, server_default="12"),
        sa.Column("tee_time_start", sa.String(), nullable=False, server_default="06:00"),
        sa.Column("schedule_week", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("is_screen", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )

    op.create_table(
        "schedule",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("golf_course_id", sa.Integer(), nullable=False),
        sa.Column("play_date", sa.Date(), nullable=False),
        sa.Column("tee_times", sa.String(), nullable=True),
        sa.Column("max_members", sa.Integer(), nullable=False, server_default="12"),
        sa.Column("status", sa.String(), nullable=False, server_default="open"),
        sa.Column("open_at", sa.DateTime(), nullable=True),
        sa.Column("notes", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["golf_course_id"], ["golf_course.id"]),
        sa.UniqueConstraint("golf_course_id", "play_date", name="uq_schedule_course_date"),
    )
    op.create_index("ix_schedule_golf_course_id", "schedule", ["golf_course_id"])
    op.create_index("ix_schedule_play_date", "schedule", ["play_date"])

    op.create_table(
        "reservation",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("schedule_id", sa.Integer(), nullable=False),
        sa.Column("member_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="pending"),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("consecutive_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("preferred_tee_time", sa.String(), nullable=True),
        sa.Column("team_number", sa.Integer(), nullable=True),
        sa.Column("tee_time", sa.String(), nullable=True),
        sa.Column("applied_at", sa.DateTime(), nullable=False),
        sa.Column("swap_partner_id", sa.Integer(), nullable=True),
        sa.Column("swap_original_team", sa.Integer(), nullable=True),
        sa.Column("swap_original_tee_time", sa.String(), nullable=True),
        sa.Column("score", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["schedule_id"], ["schedule.id"]),
        sa.ForeignKeyConstraint(["member_id"], ["member.id"]),
    )
    op.create_index("ix_reservation_schedule_id", "reservation", ["schedule_id"])
    op.create_index("ix_reservation_member_id", "reservation", ["member_id"])
    op.create_index(
        "uq_reservation_active_member",
        "reservation",
        ["schedule_id", "member_id"],
        unique=True,
        sqlite_where=ACTIVE_WHERE,
        postgresql_where=ACTIVE_WHERE,
    )

    op.create_table(
        "notification",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("member_id", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(), nullable=False, server_default="general"),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("body", sa.String(), nullable=False),
        sa.Column("url", sa.String(), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("sms_status", sa.String(), nullable=False, server_default="skipped"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["member_id"], ["member.id"]),
    )
    op.create_index("ix_notification_member_id", "notification", ["member_id"])


def downgrade() -> None:
    op.drop_index("ix_notification_member_id", table_name="notification")
    op.drop_table("notification")
    op.drop_index("uq_reservation_active_member", table_name="reservation")
    op.drop_index("ix_reservation_member_id", table_name="reservation")
    op.drop_index("ix_reservation_schedule_id", table_name="reservation")
    op.drop_table("reservation")
    op.drop_index("ix_schedule_play_date", table_name="schedule")
    op.drop_index("ix_schedule_golf_course_id", table_name="schedule")
    op.drop_table("schedule")
    op.drop_table("golf_course")
    op.drop_index("ix_member_employee_id", table_name="member")
    op.drop_table("member")
