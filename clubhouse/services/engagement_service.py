"""
clubhouse.services.engagement_service — Atomic Views, Likes & Comments
=======================================================================

Persistence half of the engagement ledger, shared by announcements and
events.  Every mutation is a single statement against a child table whose
``(parent_id, user_id)`` unique constraint enforces set semantics, so two
concurrent requests can never produce a duplicate view or like:

* view    — INSERT in a SAVEPOINT; unique violation → already viewed.
* like    — DELETE the caller's row; nothing deleted → INSERT in a SAVEPOINT.
* comment — plain INSERT (comments are an ordered list, not a set).

Functions take the caller's :class:`Session`; the caller owns the
transaction (see :func:`clubhouse.database.engine.get_session`).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from clubhouse.database.models import (
    Announcement,
    AnnouncementComment,
    AnnouncementLike,
    AnnouncementView,
    Event,
    EventComment,
    EventLike,
    EventView,
    User,
)
from clubhouse.errors import AuthenticationError, NotFoundError
from clubhouse.policy.clock import utcnow
from clubhouse.policy.engagement import (
    COMMENT_MAX_LENGTH,
    CommentRecord,
    LikeRecord,
    referenced_user_ids,
    render_comments,
    render_likes,
    validate_comment,
)
from clubhouse.policy.roles import Actor
from clubhouse.policy.visibility import EntitySnapshot, assert_can_view

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class EngagementTables:
    """ORM classes backing one engageable entity kind."""

    label: str
    parent: type
    view: type
    like: type
    comment: type
    parent_key: str
    author_attr: str
    expiry_attr: str | None = None


ANNOUNCEMENT = EngagementTables(
    label="Announcement",
    parent=Announcement,
    view=AnnouncementView,
    like=AnnouncementLike,
    comment=AnnouncementComment,
    parent_key="announcement_id",
    author_attr="author_id",
    expiry_attr="expire_at",
)

EVENT = EngagementTables(
    label="Event",
    parent=Event,
    view=EventView,
    like=EventLike,
    comment=EventComment,
    parent_key="event_id",
    author_attr="organizer_id",
)


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------
def get_entity(session: Session, tables: EngagementTables, entity_id: int):
    """Load the parent row or raise :class:`NotFoundError`."""
    row = session.get(tables.parent, entity_id)
    if row is None:
        raise NotFoundError(f"{tables.label} not found")
    return row


def to_snapshot(tables: EngagementTables, row) -> EntitySnapshot:
    return EntitySnapshot(
        id=row.id,
        visibility=row.visibility,
        status=row.status,
        author_id=getattr(row, tables.author_attr),
        publish_at=getattr(row, "publish_at", None),
        expire_at=getattr(row, tables.expiry_attr) if tables.expiry_attr else None,
        branch_id=row.branch_id,
    )


def load_users(session: Session, user_ids: set[int]) -> dict[int, User]:
    if not user_ids:
        return {}
    return {
        u.id: u for u in session.scalars(select(User).where(User.id.in_(user_ids))).all()
    }


def _fk(tables: EngagementTables, model: type):
    return getattr(model, tables.parent_key)


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------
def record_view(
    session: Session,
    tables: EngagementTables,
    entity_id: int,
    user_id: int | None,
    ip_address: str | None = None,
) -> bool:
    """Record that *user_id* viewed the entity.  Idempotent.

    Returns ``True`` if a new view row was written.  Anonymous viewers
    (``user_id is None``) are never recorded.
    """
    if user_id is None:
        return False

    already = session.scalar(
        select(tables.view.id).where(
            _fk(tables, tables.view) == entity_id,
            tables.view.user_id == user_id,
        )
    )
    if already is not None:
        return False

    try:
        with session.begin_nested():   # SAVEPOINT
            session.add(tables.view(
                **{tables.parent_key: entity_id},
                user_id=user_id,
                ip_address=ip_address,
                viewed_at=utcnow(),
            ))
            session.flush()
    except IntegrityError:
        logger.debug(
            "Concurrent view for %s %d by user %d", tables.label, entity_id, user_id
        )
        return False
    return True


def view_count(session: Session, tables: EngagementTables, entity_id: int) -> int:
    return session.scalar(
        select(func.count())
        .select_from(tables.view)
        .where(_fk(tables, tables.view) == entity_id)
    ) or 0


# ---------------------------------------------------------------------------
# Likes
# ---------------------------------------------------------------------------
def like_count(session: Session, tables: EngagementTables, entity_id: int) -> int:
    """Likes by users that still exist; dangling likes are not rendered either."""
    return like_counts(session, tables, [entity_id]).get(entity_id, 0)


def like_counts(
    session: Session, tables: EngagementTables, entity_ids: list[int]
) -> dict[int, int]:
    if not entity_ids:
        return {}
    fk = _fk(tables, tables.like)
    rows = session.execute(
        select(fk.label("entity_id"), func.count().label("cnt"))
        .join(User, User.id == tables.like.user_id)
        .where(fk.in_(entity_ids))
        .group_by(fk)
    ).all()
    return {row.entity_id: row.cnt for row in rows}


def toggle_like(
    session: Session, tables: EngagementTables, entity_id: int, user_id: int
) -> tuple[bool, int]:
    """Flip *user_id*'s like.  Returns ``(liked, like_count)``."""
    result = session.execute(
        delete(tables.like).where(
            _fk(tables, tables.like) == entity_id,
            tables.like.user_id == user_id,
        )
    )
    if result.rowcount:
        liked = False
    else:
        liked = True
        try:
            with session.begin_nested():   # SAVEPOINT
                session.add(tables.like(
                    **{tables.parent_key: entity_id},
                    user_id=user_id,
                    liked_at=utcnow(),
                ))
                session.flush()
        except IntegrityError:
            # A concurrent request inserted the same like first.
            logger.debug(
                "Concurrent like for %s %d by user %d", tables.label, entity_id, user_id
            )

    return liked, like_count(session, tables, entity_id)


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------
def add_comment(
    session: Session,
    tables: EngagementTables,
    entity: EntitySnapshot,
    actor: Actor | None,
    text: object,
    *,
    max_length: int = COMMENT_MAX_LENGTH,
):
    """Append a comment.  The actor must be allowed to read the entity."""
    if actor is None:
        raise AuthenticationError("Not authorized to access this route")
    assert_can_view(entity, actor, action="comment on")
    body = validate_comment(text, max_length)

    row = tables.comment(
        **{tables.parent_key: entity.id},
        user_id=actor.id,
        content=body,
        created_at=utcnow(),
    )
    session.add(row)
    session.flush()
    return row


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------
def render_engagement(session: Session, tables: EngagementTables, entity_id: int) -> dict:
    """Materialise views/likes/comments with dangling actors resolved."""
    fk_like = _fk(tables, tables.like)
    fk_comment = _fk(tables, tables.comment)

    likes = [
        LikeRecord(user_id=row.user_id, liked_at=row.liked_at)
        for row in session.scalars(
            select(tables.like).where(fk_like == entity_id).order_by(tables.like.id)
        ).all()
    ]
    comments = [
        CommentRecord(
            id=row.id,
            user_id=row.user_id,
            content=row.content,
            created_at=row.created_at,
            is_edited=row.is_edited,
        )
        for row in session.scalars(
            select(tables.comment).where(fk_comment == entity_id).order_by(tables.comment.id)
        ).all()
    ]
    users = load_users(session, referenced_user_ids(likes, comments))

    rendered_likes = render_likes(likes, users)
    rendered_comments = render_comments(comments, users)
    return {
        "view_count": view_count(session, tables, entity_id),
        "likes": rendered_likes,
        "like_count": len(rendered_likes),
        "comments": rendered_comments,
        "comment_count": len(rendered_comments),
    }
