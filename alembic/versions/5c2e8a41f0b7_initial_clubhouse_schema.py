"""Initial clubhouse schema: branches, users, announcements, events, audit

Revision ID: 5c2e8a41f0b7
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "5c2e8a41f0b7"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _ts(name: str) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
    )


def _user_ref(*, ondelete: str = "SET NULL", nullable: bool = True) -> sa.Column:
    return sa.Column(
        "user_id",
        sa.Integer(),
        sa.ForeignKey("users.id", ondelete=ondelete),
        nullable=nullable,
    )


def _parent_ref(column: str, table: str) -> sa.Column:
    return sa.Column(
        column,
        sa.Integer(),
        sa.ForeignKey(f"{table}.id", ondelete="CASCADE"),
        nullable=False,
    )


def _engagement_tables(prefix: str, parent_column: str, parent_table: str) -> None:
    """View / like / comment child tables for one parent kind."""
    op.create_table(
        f"{prefix}_views",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _parent_ref(parent_column, parent_table),
        _user_ref(),
        sa.Column("ip_address", sa.String(45), nullable=True),
        _ts("viewed_at"),
        sa.UniqueConstraint(parent_column, "user_id", name=f"uq_{prefix}_views_user"),
    )
    op.create_table(
        f"{prefix}_likes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _parent_ref(parent_column, parent_table),
        _user_ref(),
        _ts("liked_at"),
        sa.UniqueConstraint(parent_column, "user_id", name=f"uq_{prefix}_likes_user"),
    )
    op.create_table(
        f"{prefix}_comments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _parent_ref(parent_column, parent_table),
        _user_ref(),
        sa.Column("content", sa.Text(), nullable=False),
        _ts("created_at"),
        sa.Column("is_edited", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("edited_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        f"ix_{prefix}_comments_parent", f"{prefix}_comments", [parent_column, "id"]
    )


def upgrade() -> None:
    """Create every clubhouse table."""
    op.create_table(
        "branches",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("code", sa.String(20), nullable=False, unique=True),
        sa.Column("location", sa.String(200), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("first_name", sa.String(50), nullable=False),
        sa.Column("last_name", sa.String(50), nullable=False),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("role", sa.String(20), nullable=False, server_default="visitor"),
        sa.Column(
            "branch_id",
            sa.Integer(),
            sa.ForeignKey("branches.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_approved", sa.Boolean(), nullable=False, server_default=sa.false()),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("ix_users_role", "users", ["role"])
    op.create_index("ix_users_branch", "users", ["branch_id"])

    op.create_table(
        "events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("type", sa.String(30), nullable=False),
        sa.Column("visibility", sa.String(20), nullable=False, server_default="public"),
        sa.Column("status", sa.String(20), nullable=False, server_default="draft"),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("location", sa.String(100), nullable=False),
        sa.Column(
            "branch_id",
            sa.Integer(),
            sa.ForeignKey("branches.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "organizer_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("max_participants", sa.Integer(), nullable=False, server_default="50"),
        sa.Column("registration_deadline", sa.DateTime(timezone=True), nullable=False),
        sa.Column("requirements", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("tags", postgresql.JSONB(), nullable=False, server_default="[]"),
        _ts("created_at"),
        _ts("updated_at"),
        sa.CheckConstraint(
            "max_participants BETWEEN 1 AND 1000", name="ck_events_max_participants"
        ),
    )
    op.create_index("ix_events_start_date", "events", ["start_date"])
    op.create_index("ix_events_status_visibility", "events", ["status", "visibility"])
    op.create_index("ix_events_branch", "events", ["branch_id"])

    op.create_table(
        "announcements",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(100), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("priority", sa.String(20), nullable=False, server_default="medium"),
        sa.Column("visibility", sa.String(20), nullable=False, server_default="public"),
        sa.Column("status", sa.String(20), nullable=False, server_default="draft"),
        _ts("publish_at"),
        sa.Column("expire_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "author_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "branch_id",
            sa.Integer(),
            sa.ForeignKey("branches.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "related_event_id",
            sa.Integer(),
            sa.ForeignKey("events.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("tags", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("is_pinned", sa.Boolean(), nullable=False, server_default=sa.false()),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("ix_announcements_publish_at", "announcements", ["publish_at"])
    op.create_index(
        "ix_announcements_status_visibility", "announcements", ["status", "visibility"]
    )
    op.create_index("ix_announcements_expire_at", "announcements", ["expire_at"])

    _engagement_tables("announcement", "announcement_id", "announcements")

    op.create_table(
        "event_participants",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _parent_ref("event_id", "events"),
        _user_ref(ondelete="CASCADE", nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="registered"),
        sa.Column("notes", sa.Text(), nullable=False, server_default=""),
        _ts("registered_at"),
        sa.UniqueConstraint("event_id", "user_id", name="uq_event_participants_user"),
    )

    op.create_table(
        "event_feedback",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _parent_ref("event_id", "events"),
        _user_ref(),
        sa.Column("rating", sa.Integer(), nullable=False),
        sa.Column("comment", sa.Text(), nullable=True),
        _ts("submitted_at"),
        sa.UniqueConstraint("event_id", "user_id", name="uq_event_feedback_user"),
        sa.CheckConstraint("rating BETWEEN 1 AND 5", name="ck_event_feedback_rating"),
    )

    _engagement_tables("event", "event_id", "events")

    op.create_table(
        "admin_log",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("actor_id", sa.Integer(), nullable=False),
        sa.Column("action_type", sa.String(50), nullable=False),
        sa.Column("target_table", sa.String(50), nullable=False),
        sa.Column("target_id", sa.String(100), nullable=True),
        sa.Column("before_snapshot", postgresql.JSONB(), nullable=True),
        sa.Column("after_snapshot", postgresql.JSONB(), nullable=True),
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        _ts("timestamp"),
    )
    op.create_index("ix_admin_log_actor_time", "admin_log", ["actor_id", "timestamp"])
    op.create_index(
        "ix_admin_log_target", "admin_log", ["target_table", "target_id", "timestamp"]
    )


def downgrade() -> None:
    """Drop every clubhouse table, children first."""
    for table in (
        "admin_log",
        "event_comments",
        "event_likes",
        "event_views",
        "event_feedback",
        "event_participants",
        "announcement_comments",
        "announcement_likes",
        "announcement_views",
        "announcements",
        "events",
        "users",
        "branches",
    ):
        op.drop_table(table)
