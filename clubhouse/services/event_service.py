"""
clubhouse.services.event_service — Event Operations & Registration
===================================================================

Registration, unregistration, feedback, and attendance all follow the
same pattern:

  1. ``SELECT ... FOR UPDATE`` the event row (serialises concurrent writers)
  2. Build an :class:`EventSnapshot` from the locked state
  3. Run the pure check from :mod:`clubhouse.policy.registration`
  4. Write, in the same transaction

so the capacity check and the insert that depends on it can never
interleave with another registration for the same event.  The
``(event_id, user_id)`` unique constraint backs up the duplicate check.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import Engine, delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from clubhouse.database.engine import get_session
from clubhouse.database.models import (
    AdminActionType,
    Event,
    EventFeedback,
    EventParticipant,
    EventStatus,
    ParticipationStatus,
)
from clubhouse.errors import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from clubhouse.policy.clock import utcnow
from clubhouse.policy.engagement import (
    COMMENT_MAX_LENGTH,
    PLACEHOLDER_AUTHOR,
    PLACEHOLDER_USER,
    resolve_actor,
)
from clubhouse.policy.filters import Page, Pagination, build_filter, normalize_tags
from clubhouse.policy.registration import (
    EventSnapshot,
    average_rating,
    check_attendance,
    check_feedback,
    check_registration,
    check_unregistration,
    validate_schedule,
)
from clubhouse.policy.roles import Actor, check_approved, is_staff
from clubhouse.policy.visibility import assert_can_view, can_manage, list_filter_for
from clubhouse.services import audit_service, engagement_service
from clubhouse.services.engagement_service import EVENT
from clubhouse.services.query import fetch_page

logger = logging.getLogger(__name__)

SEARCH_FIELDS = ("title", "description", "location")

_FROZEN_KEYS = frozenset({"id", "organizer_id", "created_at", "updated_at"})


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _require_actor(actor: Actor | None) -> Actor:
    if actor is None:
        raise AuthenticationError("Not authorized to access this route")
    return actor


def _lock_event(session: Session, event_id: int) -> Event:
    event = session.scalar(select(Event).where(Event.id == event_id).with_for_update())
    if event is None:
        raise NotFoundError("Event not found")
    return event


def _participants(session: Session, event_id: int) -> list[EventParticipant]:
    return list(session.scalars(
        select(EventParticipant)
        .where(EventParticipant.event_id == event_id)
        .order_by(EventParticipant.id)
    ).all())


def _feedback(session: Session, event_id: int) -> list[EventFeedback]:
    return list(session.scalars(
        select(EventFeedback)
        .where(EventFeedback.event_id == event_id)
        .order_by(EventFeedback.id)
    ).all())


def build_snapshot(session: Session, event: Event) -> EventSnapshot:
    """Registration state of *event* as currently visible to *session*."""
    participants = {p.user_id: p.status for p in _participants(session, event.id)}
    feedback_by = frozenset(
        uid for uid in session.scalars(
            select(EventFeedback.user_id).where(EventFeedback.event_id == event.id)
        ).all()
        if uid is not None
    )
    return EventSnapshot(
        id=event.id,
        status=event.status,
        max_participants=event.max_participants,
        registration_deadline=event.registration_deadline,
        start_date=event.start_date,
        participants=participants,
        feedback_by=feedback_by,
    )


def _participant_count(session: Session, event_id: int) -> int:
    return session.scalar(
        select(func.count())
        .select_from(EventParticipant)
        .where(EventParticipant.event_id == event_id)
    ) or 0


def event_dict(event: Event, organizer, participant_count: int) -> dict:
    return {
        "id": event.id,
        "title": event.title,
        "description": event.description,
        "type": event.type,
        "visibility": event.visibility,
        "status": event.status,
        "start_date": _iso(event.start_date),
        "end_date": _iso(event.end_date),
        "location": event.location,
        "branch_id": event.branch_id,
        "organizer": resolve_actor(organizer, PLACEHOLDER_AUTHOR),
        "max_participants": event.max_participants,
        "registration_deadline": _iso(event.registration_deadline),
        "requirements": list(event.requirements or []),
        "tags": list(event.tags or []),
        "participant_count": participant_count,
        "available_spots": max(event.max_participants - participant_count, 0),
        "created_at": _iso(event.created_at),
        "updated_at": _iso(event.updated_at),
    }


def _participation_dict(p: EventParticipant, user) -> dict:
    return {
        "user": resolve_actor(user, PLACEHOLDER_USER),
        "status": p.status,
        "notes": p.notes,
        "registered_at": _iso(p.registered_at),
    }


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def list_events(
    engine: Engine,
    actor: Actor | None,
    *,
    page: Any = None,
    limit: Any = None,
    type: str | None = None,
    branch_id: int | None = None,
    status: str | None = None,
    visibility: str | None = None,
    start_from: datetime | None = None,
    start_to: datetime | None = None,
    search: str | None = None,
    default_limit: int = 10,
    max_limit: int = 100,
) -> Page:
    """Visible events ordered by start date.

    Non-staff only ever see published events.  Staff see every status
    unless they filter by one.
    """
    staff = actor is not None and is_staff(actor.role)
    effective_status = status if staff else EventStatus.PUBLISHED

    predicate = build_filter(
        exact={"status": effective_status, "type": type, "branch_id": branch_id},
        date_field="start_date",
        date_from=start_from,
        date_to=start_to,
        search=search,
        search_fields=SEARCH_FIELDS,
        tag_field="tags",
        visibility=list_filter_for(actor, visibility),
    )
    pagination = Pagination.from_params(
        page, limit, default_limit=default_limit, max_limit=max_limit
    )

    with get_session(engine) as session:
        result = fetch_page(
            session,
            Event,
            predicate,
            pagination,
            order_by=(Event.start_date.asc(), Event.id.asc()),
        )
        rows: list[Event] = result.items
        ids = [e.id for e in rows]
        counts: dict[int, int] = {}
        if ids:
            counts = {
                row.event_id: row.cnt
                for row in session.execute(
                    select(EventParticipant.event_id, func.count().label("cnt"))
                    .where(EventParticipant.event_id.in_(ids))
                    .group_by(EventParticipant.event_id)
                ).all()
            }
        organizers = engagement_service.load_users(
            session, {e.organizer_id for e in rows if e.organizer_id is not None}
        )
        items = [
            event_dict(e, organizers.get(e.organizer_id), counts.get(e.id, 0))
            for e in rows
        ]

    return Page(items=items, total=result.total, page=result.page, limit=result.limit)


def get_event(
    engine: Engine,
    actor: Actor | None,
    event_id: int,
    *,
    ip_address: str | None = None,
) -> dict:
    """Event detail: participants, feedback, rating, and engagement."""
    with get_session(engine) as session:
        event = engagement_service.get_entity(session, EVENT, event_id)
        assert_can_view(engagement_service.to_snapshot(EVENT, event), actor)

        if actor is not None:
            engagement_service.record_view(session, EVENT, event.id, actor.id, ip_address)

        participants = _participants(session, event.id)
        feedback = _feedback(session, event.id)
        user_ids = {p.user_id for p in participants} | {
            f.user_id for f in feedback if f.user_id is not None
        }
        if event.organizer_id is not None:
            user_ids.add(event.organizer_id)
        users = engagement_service.load_users(session, user_ids)

        detail = event_dict(event, users.get(event.organizer_id), len(participants))
        detail["participants"] = [
            _participation_dict(p, users.get(p.user_id)) for p in participants
        ]
        detail["feedback"] = [
            {
                "user": resolve_actor(users.get(f.user_id), PLACEHOLDER_USER),
                "rating": f.rating,
                "comment": f.comment,
                "submitted_at": _iso(f.submitted_at),
            }
            for f in feedback
        ]
        detail["average_rating"] = average_rating(f.rating for f in feedback)
        detail.update(engagement_service.render_engagement(session, EVENT, event.id))
        return detail


# ---------------------------------------------------------------------------
# Mutations (staff-only at the route level)
# ---------------------------------------------------------------------------
def create_event(
    engine: Engine,
    actor: Actor,
    *,
    ip_address: str | None = None,
    **fields: Any,
) -> dict:
    """Create an event organised by *actor*, defaulting to their branch."""
    fields = {k: v for k, v in fields.items() if k not in _FROZEN_KEYS}
    validate_schedule(fields["start_date"], fields["end_date"], fields["registration_deadline"])
    for key in ("tags", "requirements"):
        if key in fields:
            fields[key] = normalize_tags(fields[key]) if key == "tags" else list(fields[key] or [])
    if fields.get("branch_id") is None:
        fields["branch_id"] = actor.branch_id

    with get_session(engine) as session:
        event = Event(organizer_id=actor.id, **fields)
        session.add(event)
        session.flush()
        audit_service.log_action(
            session,
            actor_id=actor.id,
            action_type=AdminActionType.CREATE,
            target_table="events",
            target_id=event.id,
            before=None,
            after=audit_service.row_to_dict(event),
            ip_address=ip_address,
        )
        logger.info("Event %d created by user %d", event.id, actor.id)
        return event_dict(event, actor, 0)


def update_event(
    engine: Engine,
    actor: Actor,
    event_id: int,
    *,
    ip_address: str | None = None,
    **fields: Any,
) -> dict:
    with get_session(engine) as session:
        event = _lock_event(session, event_id)
        if not can_manage(engagement_service.to_snapshot(EVENT, event), actor):
            raise AuthorizationError("Not authorized to update this event")

        before = audit_service.row_to_dict(event)
        for key, value in fields.items():
            if key in _FROZEN_KEYS or not hasattr(event, key):
                continue
            if key == "tags":
                value = normalize_tags(value)
            setattr(event, key, value)

        validate_schedule(event.start_date, event.end_date, event.registration_deadline)
        count = _participant_count(session, event.id)
        if event.max_participants < count:
            raise ValidationError(
                f"Maximum participants cannot be lower than current registrations ({count})"
            )

        session.flush()
        audit_service.log_action(
            session,
            actor_id=actor.id,
            action_type=AdminActionType.UPDATE,
            target_table="events",
            target_id=event.id,
            before=before,
            after=audit_service.row_to_dict(event),
            ip_address=ip_address,
        )
        organizers = engagement_service.load_users(
            session, {event.organizer_id} if event.organizer_id is not None else set()
        )
        return event_dict(event, organizers.get(event.organizer_id), count)


def delete_event(
    engine: Engine,
    actor: Actor,
    event_id: int,
    *,
    ip_address: str | None = None,
) -> None:
    """Delete the event with all participants, feedback, and engagement."""
    with get_session(engine) as session:
        event = _lock_event(session, event_id)
        if not can_manage(engagement_service.to_snapshot(EVENT, event), actor):
            raise AuthorizationError("Not authorized to delete this event")

        before = audit_service.row_to_dict(event)
        session.delete(event)
        audit_service.log_action(
            session,
            actor_id=actor.id,
            action_type=AdminActionType.DELETE,
            target_table="events",
            target_id=event_id,
            before=before,
            after=None,
            ip_address=ip_address,
        )
        logger.info("Event %d deleted by user %d", event_id, actor.id)


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------
def register(
    engine: Engine,
    actor: Actor | None,
    event_id: int,
    *,
    notes: str | None = None,
    now: datetime | None = None,
) -> dict:
    """Register *actor* for the event.  See :func:`check_registration`."""
    actor = _require_actor(actor)
    check_approved(actor)
    now = now or utcnow()

    with get_session(engine) as session:
        event = _lock_event(session, event_id)
        # Unpublished events answer "not open" rather than "not authorized".
        if event.status == EventStatus.PUBLISHED:
            assert_can_view(
                engagement_service.to_snapshot(EVENT, event), actor, action="register for"
            )
        snapshot = build_snapshot(session, event)
        check_registration(snapshot, actor.id, now)

        participant = EventParticipant(
            event_id=event.id,
            user_id=actor.id,
            status=ParticipationStatus.REGISTERED,
            notes=(notes or "").strip(),
            registered_at=now,
        )
        try:
            with session.begin_nested():   # SAVEPOINT
                session.add(participant)
                session.flush()
        except IntegrityError:
            raise ConflictError("You are already registered for this event") from None

        count = len(snapshot.participants) + 1
        logger.info(
            "User %d registered for event %d (%d/%d)",
            actor.id, event.id, count, event.max_participants,
        )
        return {
            "event": {
                "id": event.id,
                "title": event.title,
                "start_date": _iso(event.start_date),
            },
            "participant": _participation_dict(participant, actor),
            "participant_count": count,
            "available_spots": max(event.max_participants - count, 0),
        }


def unregister(engine: Engine, actor: Actor | None, event_id: int) -> dict:
    """Remove *actor*'s participation outright; the spot frees immediately."""
    actor = _require_actor(actor)

    with get_session(engine) as session:
        event = _lock_event(session, event_id)
        snapshot = build_snapshot(session, event)
        check_unregistration(snapshot, actor.id)

        session.execute(
            delete(EventParticipant).where(
                EventParticipant.event_id == event.id,
                EventParticipant.user_id == actor.id,
            )
        )
        count = len(snapshot.participants) - 1
        logger.info("User %d unregistered from event %d", actor.id, event.id)
        return {
            "event": {"id": event.id, "title": event.title},
            "participant_count": count,
            "available_spots": max(event.max_participants - count, 0),
        }


def add_feedback(
    engine: Engine,
    actor: Actor | None,
    event_id: int,
    *,
    rating: object,
    comment: str | None = None,
) -> dict:
    """At most one rating per attendee, only once the event is completed."""
    actor = _require_actor(actor)

    with get_session(engine) as session:
        event = _lock_event(session, event_id)
        snapshot = build_snapshot(session, event)
        value = check_feedback(snapshot, actor.id, rating)

        try:
            with session.begin_nested():   # SAVEPOINT
                session.add(EventFeedback(
                    event_id=event.id,
                    user_id=actor.id,
                    rating=value,
                    comment=(comment or "").strip() or None,
                    submitted_at=utcnow(),
                ))
                session.flush()
        except IntegrityError:
            raise ConflictError("You have already provided feedback for this event") from None

        ratings = session.scalars(
            select(EventFeedback.rating).where(EventFeedback.event_id == event.id)
        ).all()
        return {
            "average_rating": average_rating(ratings),
            "feedback_count": len(ratings),
        }


def mark_attendance(
    engine: Engine,
    actor: Actor,
    event_id: int,
    user_id: int,
    status: str,
    *,
    ip_address: str | None = None,
) -> dict:
    """Organizer or staff records a participant's confirmation/attendance."""
    with get_session(engine) as session:
        event = _lock_event(session, event_id)
        if not (is_staff(actor.role) or can_manage(engagement_service.to_snapshot(EVENT, event), actor)):
            raise AuthorizationError("Not authorized to manage participants of this event")

        snapshot = build_snapshot(session, event)
        target = check_attendance(snapshot, user_id, status)

        participant = session.scalar(
            select(EventParticipant).where(
                EventParticipant.event_id == event.id,
                EventParticipant.user_id == user_id,
            )
        )
        previous = participant.status
        participant.status = target
        session.flush()
        audit_service.log_action(
            session,
            actor_id=actor.id,
            action_type=AdminActionType.ATTENDANCE,
            target_table="event_participants",
            target_id=participant.id,
            before={"status": previous},
            after={"status": str(target)},
            ip_address=ip_address,
        )
        users = engagement_service.load_users(session, {user_id})
        return _participation_dict(participant, users.get(user_id))


# ---------------------------------------------------------------------------
# Engagement
# ---------------------------------------------------------------------------
def toggle_like(engine: Engine, actor: Actor | None, event_id: int) -> dict:
    actor = _require_actor(actor)
    with get_session(engine) as session:
        event = engagement_service.get_entity(session, EVENT, event_id)
        assert_can_view(engagement_service.to_snapshot(EVENT, event), actor, action="like")
        liked, count = engagement_service.toggle_like(session, EVENT, event.id, actor.id)
        return {"liked": liked, "like_count": count}


def add_comment(
    engine: Engine,
    actor: Actor | None,
    event_id: int,
    content: object,
    *,
    max_length: int = COMMENT_MAX_LENGTH,
) -> dict:
    with get_session(engine) as session:
        event = engagement_service.get_entity(session, EVENT, event_id)
        engagement_service.add_comment(
            session,
            EVENT,
            engagement_service.to_snapshot(EVENT, event),
            actor,
            content,
            max_length=max_length,
        )
        rendered = engagement_service.render_engagement(session, EVENT, event.id)
        return {"comments": rendered["comments"], "comment_count": rendered["comment_count"]}
