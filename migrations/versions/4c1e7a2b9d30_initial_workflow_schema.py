"""initial_workflow_schema

Create users, activities, activity_progress, progress_transitions and
notifications for the department workflow.

Revision ID: 4c1e7a2b9d30
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "4c1e7a2b9d30"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("username", sa.String(length=80), nullable=False),
            sa.Column("name", sa.String(length=150), nullable=False),
            sa.Column("role", sa.String(length=40), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("username"),
        )
        op.create_index("ix_users_role", "users", ["role"])

    if "activities" not in existing_tables:
        op.create_table(
            "activities",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("description", sa.Text(), nullable=False),
            sa.Column("image", sa.String(length=500), nullable=False),
            sa.Column("quantity", sa.Integer(), nullable=False),
            sa.Column("client_name", sa.String(length=200), nullable=True),
            sa.Column("priority", sa.String(length=10), nullable=False, server_default="normal"),
            sa.Column("deadline", sa.DateTime(timezone=True), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("created_by", sa.Integer(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="in_progress"),
            sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.CheckConstraint("quantity > 0", name="ck_activity_quantity_positive"),
            sa.CheckConstraint("status IN ('in_progress','completed')", name="ck_activity_status"),
            sa.CheckConstraint(
                "priority IN ('low','normal','high','urgent')", name="ck_activity_priority",
            ),
        )
        op.create_index("ix_activities_deadline", "activities", ["deadline"])
        op.create_index("ix_activities_status", "activities", ["status"])

    if "activity_progress" not in existing_tables:
        op.create_table(
            "activity_progress",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("activity_id", sa.Integer(), nullable=False),
            sa.Column("department", sa.String(length=40), nullable=False),
            sa.Column("position", sa.Integer(), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
            sa.Column("completed_by", sa.String(length=150), nullable=True),
            sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("returned_by", sa.String(length=150), nullable=True),
            sa.Column("returned_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.ForeignKeyConstraint(["activity_id"], ["activities.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("activity_id", "department", name="uq_progress_activity_department"),
            sa.UniqueConstraint("activity_id", "position", name="uq_progress_activity_position"),
            sa.CheckConstraint("status IN ('pending','completed')", name="ck_progress_status"),
        )
        op.create_index("ix_activity_progress_activity_id", "activity_progress", ["activity_id"])
        op.create_index("ix_activity_progress_department", "activity_progress", ["department"])
        op.create_index(
            "ix_progress_department_status", "activity_progress", ["department", "status"],
        )

    if "progress_transitions" not in existing_tables:
        op.create_table(
            "progress_transitions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("progress_id", sa.Integer(), nullable=False),
            sa.Column("activity_id", sa.Integer(), nullable=False),
            sa.Column("department", sa.String(length=40), nullable=False),
            sa.Column("kind", sa.String(length=20), nullable=False),
            sa.Column("actor", sa.String(length=150), nullable=False),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["progress_id"], ["activity_progress.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["activity_id"], ["activities.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.CheckConstraint(
                "kind IN ('completed','returned','reset','reopened')", name="ck_transition_kind",
            ),
        )
        op.create_index(
            "ix_progress_transitions_progress_id", "progress_transitions", ["progress_id"],
        )
        op.create_index(
            "ix_progress_transitions_activity_id", "progress_transitions", ["activity_id"],
        )

    if "notifications" not in existing_tables:
        op.create_table(
            "notifications",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("activity_id", sa.Integer(), nullable=False),
            sa.Column("message", sa.Text(), nullable=False),
            sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["activity_id"], ["activities.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_notifications_user_id", "notifications", ["user_id"])
        op.create_index("ix_notifications_activity_id", "notifications", ["activity_id"])


def downgrade():
    op.drop_table("notifications")
    op.drop_table("progress_transitions")
    op.drop_table("activity_progress")
    op.drop_table("activities")
    op.drop_table("users")
