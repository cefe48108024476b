"""
clubhouse.services.announcement_service — Announcement Operations
==================================================================

List / detail reads with visibility filtering and view tracking, audited
author-or-admin mutations, and likes/comments via
:mod:`clubhouse.services.engagement_service`.

All public functions take an :class:`~sqlalchemy.Engine` and run in a
single transaction.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import Engine, func, select
from sqlalchemy.orm import Session

from clubhouse.database.engine import get_session
from clubhouse.database.models import (
    AdminActionType,
    Announcement,
    AnnouncementComment,
    AnnouncementStatus,
    AnnouncementView,
)
from clubhouse.errors import AuthenticationError, AuthorizationError
from clubhouse.policy.clock import as_utc, utcnow
from clubhouse.policy.engagement import (
    COMMENT_MAX_LENGTH,
    PLACEHOLDER_AUTHOR,
    resolve_actor,
)
from clubhouse.policy.filters import Page, Pagination, build_filter, normalize_tags
from clubhouse.policy.roles import Actor, is_staff
from clubhouse.policy.visibility import assert_can_view, can_manage, list_filter_for
from clubhouse.services import audit_service, engagement_service
from clubhouse.services.engagement_service import ANNOUNCEMENT
from clubhouse.services.query import fetch_page

logger = logging.getLogger(__name__)

SEARCH_FIELDS = ("title", "content")

# Fields callers may never overwrite through update.
_FROZEN_KEYS = frozenset({"id", "author_id", "created_at", "updated_at"})


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------
def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _is_active(row: Announcement, now: datetime) -> bool:
    publish_at = as_utc(row.publish_at)
    expire_at = as_utc(row.expire_at)
    return (
        row.status == AnnouncementStatus.PUBLISHED
        and (publish_at is None or publish_at <= now)
        and (expire_at is None or expire_at > now)
    )


def announcement_dict(row: Announcement, author, now: datetime | None = None) -> dict:
    return {
        "id": row.id,
        "title": row.title,
        "content": row.content,
        "type": row.type,
        "priority": row.priority,
        "visibility": row.visibility,
        "status": row.status,
        "publish_at": _iso(row.publish_at),
        "expire_at": _iso(row.expire_at),
        "author": resolve_actor(author, PLACEHOLDER_AUTHOR),
        "branch_id": row.branch_id,
        "related_event_id": row.related_event_id,
        "tags": list(row.tags or []),
        "is_pinned": row.is_pinned,
        "is_active": _is_active(row, now or utcnow()),
        "created_at": _iso(row.created_at),
        "updated_at": _iso(row.updated_at),
    }


def _counts_by_parent(session: Session, model: type, ids: list[int]) -> dict[int, int]:
    if not ids:
        return {}
    rows = session.execute(
        select(model.announcement_id, func.count().label("cnt"))
        .where(model.announcement_id.in_(ids))
        .group_by(model.announcement_id)
    ).all()
    return {row.announcement_id: row.cnt for row in rows}


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def list_announcements(
    engine: Engine,
    actor: Actor | None,
    *,
    page: Any = None,
    limit: Any = None,
    type: str | None = None,
    priority: str | None = None,
    visibility: str | None = None,
    status: str | None = None,
    search: str | None = None,
    ip_address: str | None = None,
    default_limit: int = 10,
    max_limit: int = 100,
    now: datetime | None = None,
) -> Page:
    """Visible, unexpired announcements, pinned first then newest.

    Non-staff always get ``published`` and already-published items; staff
    may ask for another status.  Every listed item counts as viewed by an
    authenticated caller.
    """
    now = now or utcnow()
    staff = actor is not None and is_staff(actor.role)
    effective_status = status if (staff and status) else AnnouncementStatus.PUBLISHED

    predicate = build_filter(
        exact={"status": effective_status, "type": type, "priority": priority},
        search=search,
        search_fields=SEARCH_FIELDS,
        tag_field="tags",
        visibility=list_filter_for(actor, visibility),
        expiry_field="expire_at",
        publish_field=None if staff else "publish_at",
        now=now,
    )
    pagination = Pagination.from_params(
        page, limit, default_limit=default_limit, max_limit=max_limit
    )

    with get_session(engine) as session:
        result = fetch_page(
            session,
            Announcement,
            predicate,
            pagination,
            order_by=(
                Announcement.is_pinned.desc(),
                Announcement.publish_at.desc(),
                Announcement.id.desc(),
            ),
        )
        rows: list[Announcement] = result.items
        ids = [r.id for r in rows]
        authors = engagement_service.load_users(
            session, {r.author_id for r in rows if r.author_id is not None}
        )
        likes = engagement_service.like_counts(session, ANNOUNCEMENT, ids)
        comments = _counts_by_parent(session, AnnouncementComment, ids)

        if actor is not None:
            for row in rows:
                engagement_service.record_view(
                    session, ANNOUNCEMENT, row.id, actor.id, ip_address
                )
        views = _counts_by_parent(session, AnnouncementView, ids)

        items = []
        for row in rows:
            item = announcement_dict(row, authors.get(row.author_id), now)
            item["view_count"] = views.get(row.id, 0)
            item["like_count"] = likes.get(row.id, 0)
            item["comment_count"] = comments.get(row.id, 0)
            items.append(item)

    return Page(items=items, total=result.total, page=result.page, limit=result.limit)


def get_announcement(
    engine: Engine,
    actor: Actor | None,
    announcement_id: int,
    *,
    ip_address: str | None = None,
) -> dict:
    """Full announcement with engagement.  Not expiry-gated."""
    with get_session(engine) as session:
        row = engagement_service.get_entity(session, ANNOUNCEMENT, announcement_id)
        assert_can_view(engagement_service.to_snapshot(ANNOUNCEMENT, row), actor)

        if actor is not None:
            engagement_service.record_view(
                session, ANNOUNCEMENT, row.id, actor.id, ip_address
            )

        authors = engagement_service.load_users(
            session, {row.author_id} if row.author_id is not None else set()
        )
        detail = announcement_dict(row, authors.get(row.author_id))
        detail.update(engagement_service.render_engagement(session, ANNOUNCEMENT, row.id))
        return detail


# ---------------------------------------------------------------------------
# Mutations (staff-only at the route level)
# ---------------------------------------------------------------------------
def create_announcement(
    engine: Engine,
    actor: Actor,
    *,
    ip_address: str | None = None,
    **fields: Any,
) -> dict:
    fields = {k: v for k, v in fields.items() if k not in _FROZEN_KEYS}
    if "tags" in fields:
        fields["tags"] = normalize_tags(fields["tags"])
    if fields.get("publish_at") is None:
        fields.pop("publish_at", None)

    with get_session(engine) as session:
        row = Announcement(author_id=actor.id, **fields)
        if row.publish_at is None:
            row.publish_at = utcnow()
        session.add(row)
        session.flush()
        audit_service.log_action(
            session,
            actor_id=actor.id,
            action_type=AdminActionType.CREATE,
            target_table="announcements",
            target_id=row.id,
            before=None,
            after=audit_service.row_to_dict(row),
            ip_address=ip_address,
        )
        logger.info("Announcement %d created by user %d", row.id, actor.id)
        return announcement_dict(row, actor)


def update_announcement(
    engine: Engine,
    actor: Actor,
    announcement_id: int,
    *,
    ip_address: str | None = None,
    **fields: Any,
) -> dict:
    with get_session(engine) as session:
        row = engagement_service.get_entity(session, ANNOUNCEMENT, announcement_id)
        if not can_manage(engagement_service.to_snapshot(ANNOUNCEMENT, row), actor):
            raise AuthorizationError("Not authorized to update this announcement")

        before = audit_service.row_to_dict(row)
        for key, value in fields.items():
            if key in _FROZEN_KEYS or not hasattr(row, key):
                continue
            if key == "tags":
                value = normalize_tags(value)
            setattr(row, key, value)
        session.flush()
        audit_service.log_action(
            session,
            actor_id=actor.id,
            action_type=AdminActionType.UPDATE,
            target_table="announcements",
            target_id=row.id,
            before=before,
            after=audit_service.row_to_dict(row),
            ip_address=ip_address,
        )
        authors = engagement_service.load_users(
            session, {row.author_id} if row.author_id is not None else set()
        )
        return announcement_dict(row, authors.get(row.author_id))


def delete_announcement(
    engine: Engine,
    actor: Actor,
    announcement_id: int,
    *,
    ip_address: str | None = None,
) -> None:
    """Delete the announcement and, by cascade, all its engagement rows."""
    with get_session(engine) as session:
        row = engagement_service.get_entity(session, ANNOUNCEMENT, announcement_id)
        if not can_manage(engagement_service.to_snapshot(ANNOUNCEMENT, row), actor):
            raise AuthorizationError("Not authorized to delete this announcement")

        before = audit_service.row_to_dict(row)
        session.delete(row)
        audit_service.log_action(
            session,
            actor_id=actor.id,
            action_type=AdminActionType.DELETE,
            target_table="announcements",
            target_id=announcement_id,
            before=before,
            after=None,
            ip_address=ip_address,
        )
        logger.info("Announcement %d deleted by user %d", announcement_id, actor.id)


# ---------------------------------------------------------------------------
# Engagement
# ---------------------------------------------------------------------------
def toggle_like(engine: Engine, actor: Actor | None, announcement_id: int) -> dict:
    if actor is None:
        raise AuthenticationError("Not authorized to access this route")
    with get_session(engine) as session:
        row = engagement_service.get_entity(session, ANNOUNCEMENT, announcement_id)
        assert_can_view(engagement_service.to_snapshot(ANNOUNCEMENT, row), actor, action="like")
        liked, count = engagement_service.toggle_like(session, ANNOUNCEMENT, row.id, actor.id)
        return {"liked": liked, "like_count": count}


def add_comment(
    engine: Engine,
    actor: Actor | None,
    announcement_id: int,
    content: object,
    *,
    max_length: int = COMMENT_MAX_LENGTH,
) -> dict:
    with get_session(engine) as session:
        row = engagement_service.get_entity(session, ANNOUNCEMENT, announcement_id)
        engagement_service.add_comment(
            session,
            ANNOUNCEMENT,
            engagement_service.to_snapshot(ANNOUNCEMENT, row),
            actor,
            content,
            max_length=max_length,
        )
        rendered = engagement_service.render_engagement(session, ANNOUNCEMENT, row.id)
        return {"comments": rendered["comments"], "comment_count": rendered["comment_count"]}

