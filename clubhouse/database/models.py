"""
clubhouse.database.models — SQLAlchemy 2.0 Data Models
=======================================================

Tables:
- branches               — Club branches (chapters)
- users                  — Members, volunteers, officers, admins, visitors
- announcements          — Engageable entity #1
- announcement_views     — One row per (announcement, viewer)
- announcement_likes     — One row per (announcement, liker)
- announcement_comments  — Ordered, append-only
- events                 — Engageable entity #2
- event_participants     — One row per (event, participant)
- event_feedback         — One row per (event, rater)
- event_views / event_likes / event_comments — Same shape as announcements
- admin_log              — Append-only audit trail

Engagement, participation, and feedback rows are owned by their parent:
``ON DELETE CASCADE`` plus ``delete-orphan`` relationships.  Their
``user_id`` is ``ON DELETE SET NULL`` so a deleted member leaves a
dangling reference that the render path resolves to a placeholder.
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Clubhouse ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class Role(enum.StrEnum):
    ADMIN = "admin"
    OFFICER = "officer"
    MEMBER = "member"
    VOLUNTEER = "volunteer"
    VISITOR = "visitor"


class Visibility(enum.StrEnum):
    """Declared audience tier of an announcement or event."""
    PUBLIC = "public"
    MEMBERS_ONLY = "members_only"
    OFFICERS_ONLY = "officers_only"
    ADMIN_ONLY = "admin_only"


class AnnouncementStatus(enum.StrEnum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"
    DELETED = "deleted"


class AnnouncementType(enum.StrEnum):
    GENERAL = "general"
    URGENT = "urgent"
    EVENT = "event"
    DONATION = "donation"
    TRAINING = "training"
    MEETING = "meeting"
    EMERGENCY = "emergency"


class Priority(enum.StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class EventStatus(enum.StrEnum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ONGOING = "ongoing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class EventType(enum.StrEnum):
    BLOOD_DONATION = "blood_donation"
    TRAINING = "training"
    EMERGENCY_RESPONSE = "emergency_response"
    AWARENESS = "awareness"
    FUNDRAISING = "fundraising"
    MEETING = "meeting"
    OTHER = "other"


class ParticipationStatus(enum.StrEnum):
    REGISTERED = "registered"
    CONFIRMED = "confirmed"
    ATTENDED = "attended"
    ABSENT = "absent"


class AdminActionType(enum.StrEnum):
    """Categories of mutations recorded in admin_log."""
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    ATTENDANCE = "ATTENDANCE"


# ---------------------------------------------------------------------------
# Branches
# ---------------------------------------------------------------------------
class Branch(Base):
    __tablename__ = "branches"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    code: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)
    location: Mapped[str | None] = mapped_column(String(200), default=None)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    def __repr__(self) -> str:
        return f"<Branch id={self.id} code={self.code!r}>"


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    first_name: Mapped[str] = mapped_column(String(50), nullable=False)
    last_name: Mapped[str] = mapped_column(String(50), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default=Role.VISITOR)
    branch_id: Mapped[int | None] = mapped_column(
        ForeignKey("branches.id", ondelete="SET NULL"), default=None
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    is_approved: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("ix_users_role", "role"),
        Index("ix_users_branch", "branch_id"),
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r} role={self.role}>"


# ---------------------------------------------------------------------------
# Shared column shapes for engagement rows
# ---------------------------------------------------------------------------
class _ActorRefMixin:
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )


class _ViewMixin(_ActorRefMixin):
    ip_address: Mapped[str | None] = mapped_column(String(45), default=None)
    viewed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class _LikeMixin(_ActorRefMixin):
    liked_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class _CommentMixin(_ActorRefMixin):
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    is_edited: Mapped[bool] = mapped_column(Boolean, default=False)
    edited_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)


# ---------------------------------------------------------------------------
# Announcements
# ---------------------------------------------------------------------------
class Announcement(Base):
    __tablename__ = "announcements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    priority: Mapped[str] = mapped_column(String(20), default=Priority.MEDIUM)
    visibility: Mapped[str] = mapped_column(String(20), default=Visibility.PUBLIC)
    status: Mapped[str] = mapped_column(String(20), default=AnnouncementStatus.DRAFT)
    publish_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    expire_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    author_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    branch_id: Mapped[int | None] = mapped_column(
        ForeignKey("branches.id", ondelete="SET NULL"), default=None
    )
    related_event_id: Mapped[int | None] = mapped_column(
        ForeignKey("events.id", ondelete="SET NULL"), default=None
    )
    tags: Mapped[list] = mapped_column(JSONB, default=list)
    is_pinned: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    views: Mapped[list[AnnouncementView]] = relationship(cascade="all, delete-orphan")
    likes: Mapped[list[AnnouncementLike]] = relationship(cascade="all, delete-orphan")
    comments: Mapped[list[AnnouncementComment]] = relationship(
        cascade="all, delete-orphan",
        order_by="AnnouncementComment.id",
    )

    __table_args__ = (
        Index("ix_announcements_publish_at", "publish_at"),
        Index("ix_announcements_status_visibility", "status", "visibility"),
        Index("ix_announcements_expire_at", "expire_at"),
    )

    def __repr__(self) -> str:
        return f"<Announcement id={self.id} title={self.title!r} status={self.status}>"


class AnnouncementView(_ViewMixin, Base):
    __tablename__ = "announcement_views"

    announcement_id: Mapped[int] = mapped_column(
        ForeignKey("announcements.id", ondelete="CASCADE"), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("announcement_id", "user_id", name="uq_announcement_views_user"),
    )


class AnnouncementLike(_LikeMixin, Base):
    __tablename__ = "announcement_likes"

    announcement_id: Mapped[int] = mapped_column(
        ForeignKey("announcements.id", ondelete="CASCADE"), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("announcement_id", "user_id", name="uq_announcement_likes_user"),
    )


class AnnouncementComment(_CommentMixin, Base):
    __tablename__ = "announcement_comments"

    announcement_id: Mapped[int] = mapped_column(
        ForeignKey("announcements.id", ondelete="CASCADE"), nullable=False
    )

    __table_args__ = (
        Index("ix_announcement_comments_parent", "announcement_id", "id"),
    )


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------
class Event(Base):
    __tablename__ = "events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(String(30), nullable=False)
    visibility: Mapped[str] = mapped_column(String(20), default=Visibility.PUBLIC)
    status: Mapped[str] = mapped_column(String(20), default=EventStatus.DRAFT)
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    location: Mapped[str] = mapped_column(String(100), nullable=False)
    branch_id: Mapped[int | None] = mapped_column(
        ForeignKey("branches.id", ondelete="SET NULL"), default=None
    )
    organizer_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    max_participants: Mapped[int] = mapped_column(Integer, default=50)
    registration_deadline: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    requirements: Mapped[list] = mapped_column(JSONB, default=list)
    tags: Mapped[list] = mapped_column(JSONB, default=list)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    participants: Mapped[list[EventParticipant]] = relationship(
        cascade="all, delete-orphan",
        order_by="EventParticipant.id",
    )
    feedback: Mapped[list[EventFeedback]] = relationship(
        cascade="all, delete-orphan",
        order_by="EventFeedback.id",
    )
    views: Mapped[list[EventView]] = relationship(cascade="all, delete-orphan")
    likes: Mapped[list[EventLike]] = relationship(cascade="all, delete-orphan")
    comments: Mapped[list[EventComment]] = relationship(
        cascade="all, delete-orphan",
        order_by="EventComment.id",
    )

    __table_args__ = (
        Index("ix_events_start_date", "start_date"),
        Index("ix_events_status_visibility", "status", "visibility"),
        Index("ix_events_branch", "branch_id"),
    )

    def __repr__(self) -> str:
        return f"<Event id={self.id} title={self.title!r} status={self.status}>"


class EventParticipant(Base):
    __tablename__ = "event_participants"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_id: Mapped[int] = mapped_column(
        ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(String(20), default=ParticipationStatus.REGISTERED)
    notes: Mapped[str] = mapped_column(Text, default="")
    registered_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_event_participants_user"),
    )

    def __repr__(self) -> str:
        return f"<EventParticipant event={self.event_id} user={self.user_id} {self.status}>"


class EventFeedback(Base):
    __tablename__ = "event_feedback"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_id: Mapped[int] = mapped_column(
        ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    comment: Mapped[str | None] = mapped_column(Text, default=None)
    submitted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_event_feedback_user"),
    )


class EventView(_ViewMixin, Base):
    __tablename__ = "event_views"

    event_id: Mapped[int] = mapped_column(
        ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_event_views_user"),
    )


class EventLike(_LikeMixin, Base):
    __tablename__ = "event_likes"

    event_id: Mapped[int] = mapped_column(
        ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_event_likes_user"),
    )


class EventComment(_CommentMixin, Base):
    __tablename__ = "event_comments"

    event_id: Mapped[int] = mapped_column(
        ForeignKey("events.id", ondelete="CASCADE"), nullable=False
    )

    __table_args__ = (
        Index("ix_event_comments_parent", "event_id", "id"),
    )


# ---------------------------------------------------------------------------
# AdminLog — append-only audit trail
# ---------------------------------------------------------------------------
class AdminLog(Base):
    __tablename__ = "admin_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    actor_id: Mapped[int] = mapped_column(Integer, nullable=False)
    action_type: Mapped[str] = mapped_column(String(50), nullable=False)
    target_table: Mapped[str] = mapped_column(String(50), nullable=False)
    target_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    before_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    after_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_admin_log_actor_time", "actor_id", "timestamp"),
        Index("ix_admin_log_target", "target_table", "target_id", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<AdminLog id={self.id} actor={self.actor_id} action={self.action_type}>"
