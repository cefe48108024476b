"""
clubhouse.policy.registration — Event Registration State Machine
=================================================================

Pure checks over an :class:`EventSnapshot`.  Each ``check_*`` function
either returns normally or raises the matching
:class:`~clubhouse.errors.ClubhouseError`; the service layer calls it while
holding a row lock on the event and performs the write only on success.

Participation states::

    (none)      → registered                       register
    registered  → (none)                           unregister
    confirmed   → (none)                           unregister
    registered  → confirmed | attended | absent    organizer
    confirmed   → attended | absent                organizer
    attended   ⇄ absent                            organizer correction

``attended`` and ``absent`` can never be unregistered.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime

from clubhouse.database.models import EventStatus, ParticipationStatus
from clubhouse.errors import (
    AuthorizationError,
    CapacityError,
    ConflictError,
    DeadlineError,
    NotFoundError,
    StateError,
    ValidationError,
)
from clubhouse.policy.clock import as_utc

__all__ = [
    "EventSnapshot",
    "available_spots",
    "average_rating",
    "check_attendance",
    "check_feedback",
    "check_registration",
    "check_unregistration",
    "validate_schedule",
]

RATING_MIN = 1
RATING_MAX = 5

_UNREGISTERABLE = frozenset({ParticipationStatus.REGISTERED, ParticipationStatus.CONFIRMED})

_TRANSITIONS: dict[ParticipationStatus, frozenset[ParticipationStatus]] = {
    ParticipationStatus.REGISTERED: frozenset({
        ParticipationStatus.CONFIRMED,
        ParticipationStatus.ATTENDED,
        ParticipationStatus.ABSENT,
    }),
    ParticipationStatus.CONFIRMED: frozenset({
        ParticipationStatus.ATTENDED,
        ParticipationStatus.ABSENT,
    }),
    ParticipationStatus.ATTENDED: frozenset({ParticipationStatus.ABSENT}),
    ParticipationStatus.ABSENT: frozenset({ParticipationStatus.ATTENDED}),
}


@dataclass(frozen=True, slots=True)
class EventSnapshot:
    """Registration-relevant view of an event at one instant."""

    id: int
    status: str
    max_participants: int
    registration_deadline: datetime
    start_date: datetime | None = None
    # user_id → participation status
    participants: Mapping[int, str] = field(default_factory=dict)
    # user_ids that already left feedback
    feedback_by: frozenset[int] = frozenset()


# ---------------------------------------------------------------------------
# Derived values
# ---------------------------------------------------------------------------
def available_spots(event: EventSnapshot) -> int:
    return max(event.max_participants - len(event.participants), 0)


def average_rating(ratings: Iterable[int]) -> float:
    """Mean rating rounded to one decimal; ``0`` when there is none."""
    values = list(ratings)
    if not values:
        return 0
    return round(sum(values) / len(values), 1)


# ---------------------------------------------------------------------------
# Schedule validation (create / update)
# ---------------------------------------------------------------------------
def validate_schedule(
    start_date: datetime, end_date: datetime, registration_deadline: datetime
) -> None:
    start, end, deadline = as_utc(start_date), as_utc(end_date), as_utc(registration_deadline)
    if end <= start:
        raise ValidationError("End date must be after start date")
    if deadline >= start:
        raise ValidationError("Registration deadline must be before event start date")


# ---------------------------------------------------------------------------
# Transition checks
# ---------------------------------------------------------------------------
def check_registration(event: EventSnapshot, user_id: int, now: datetime) -> None:
    """Raise unless *user_id* may register for *event* at *now*.

    Check order: status, deadline, duplicate, capacity.  A closed or past
    deadline event always reports that first, whatever its head count.
    """
    if event.status != EventStatus.PUBLISHED:
        raise StateError("Event registration is not open")
    if as_utc(now) > as_utc(event.registration_deadline):
        raise DeadlineError("Registration deadline has passed")
    if user_id in event.participants:
        raise ConflictError("You are already registered for this event")
    if len(event.participants) >= event.max_participants:
        raise CapacityError("Event is full")


def check_unregistration(event: EventSnapshot, user_id: int) -> None:
    status = event.participants.get(user_id)
    if status is None:
        raise NotFoundError("You are not registered for this event")
    if status not in _UNREGISTERABLE:
        raise StateError(f"Cannot unregister after attendance was recorded ({status})")


def _validate_rating(rating: object) -> int:
    if isinstance(rating, bool) or not isinstance(rating, int):
        raise ValidationError("Rating must be a whole number between 1 and 5")
    if not RATING_MIN <= rating <= RATING_MAX:
        raise ValidationError("Rating must be a whole number between 1 and 5")
    return rating


def check_feedback(event: EventSnapshot, user_id: int, rating: object) -> int:
    """Validate a feedback submission; returns the rating as ``int``."""
    value = _validate_rating(rating)
    if event.status != EventStatus.COMPLETED:
        raise StateError("Can only provide feedback for completed events")
    if event.participants.get(user_id) != ParticipationStatus.ATTENDED:
        raise AuthorizationError("Only participants who attended can provide feedback")
    if user_id in event.feedback_by:
        raise ConflictError("You have already provided feedback for this event")
    return value


def check_attendance(event: EventSnapshot, user_id: int, new_status: str) -> ParticipationStatus:
    """Validate an organizer-recorded participation status change."""
    try:
        target = ParticipationStatus(new_status)
    except ValueError:
        raise ValidationError(f"Unknown participation status: {new_status!r}") from None
    current = event.participants.get(user_id)
    if current is None:
        raise NotFoundError("Participant not found for this event")
    current_status = ParticipationStatus(current)
    if target == current_status:
        return target
    if target not in _TRANSITIONS[current_status]:
        raise StateError(f"Cannot change participation from {current_status} to {target}")
    return target
