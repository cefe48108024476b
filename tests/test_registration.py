"""
tests/test_registration.py — Event Registration State Machine
==============================================================
Pure checks over ``EventSnapshot`` first, then the locked service path
against SQLite (capacity, deadline, unregister-frees-a-spot, feedback).
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from clubhouse.database.models import EventStatus, ParticipationStatus, Role
from clubhouse.errors import (
    AuthenticationError,
    AuthorizationError,
    CapacityError,
    ConflictError,
    DeadlineError,
    NotFoundError,
    StateError,
    ValidationError,
)
from clubhouse.policy.clock import utcnow
from clubhouse.policy.registration import (
    EventSnapshot,
    available_spots,
    average_rating,
    check_attendance,
    check_feedback,
    check_registration,
    check_unregistration,
    validate_schedule,
)
from clubhouse.policy.roles import Actor
from clubhouse.services import event_service
from conftest import actor_for, make_event, make_user

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=UTC)
DEADLINE = NOW + timedelta(days=2)


def _snapshot(**overrides) -> EventSnapshot:
    fields = {
        "id": 1,
        "status": EventStatus.PUBLISHED,
        "max_participants": 3,
        "registration_deadline": DEADLINE,
        "participants": {},
        "feedback_by": frozenset(),
    }
    fields.update(overrides)
    return EventSnapshot(**fields)


# ===========================================================================
# Pure checks
# ===========================================================================
class TestCheckRegistration:
    def test_open_event_accepts(self):
        check_registration(_snapshot(), user_id=1, now=NOW)

    @pytest.mark.parametrize(
        "status",
        [EventStatus.DRAFT, EventStatus.ONGOING, EventStatus.COMPLETED, EventStatus.CANCELLED],
    )
    def test_only_published_accepts(self, status):
        with pytest.raises(StateError, match="not open"):
            check_registration(_snapshot(status=status), user_id=1, now=NOW)

    def test_deadline_beats_capacity(self):
        full = _snapshot(max_participants=1, participants={9: "registered"})
        with pytest.raises(DeadlineError):
            check_registration(full, user_id=1, now=DEADLINE + timedelta(seconds=1))

    def test_exactly_at_deadline_still_open(self):
        check_registration(_snapshot(), user_id=1, now=DEADLINE)

    def test_naive_deadline_treated_as_utc(self):
        naive = _snapshot(registration_deadline=DEADLINE.replace(tzinfo=None))
        with pytest.raises(DeadlineError):
            check_registration(naive, user_id=1, now=DEADLINE + timedelta(minutes=1))

    def test_duplicate(self):
        with pytest.raises(ConflictError, match="already registered"):
            check_registration(_snapshot(participants={1: "registered"}), user_id=1, now=NOW)

    def test_capacity(self):
        full = _snapshot(max_participants=2, participants={8: "registered", 9: "confirmed"})
        assert available_spots(full) == 0
        with pytest.raises(CapacityError, match="full"):
            check_registration(full, user_id=1, now=NOW)


class TestCheckUnregistration:
    @pytest.mark.parametrize("status", ["registered", "confirmed"])
    def test_allowed_before_attendance(self, status):
        check_unregistration(_snapshot(participants={1: status}), user_id=1)

    @pytest.mark.parametrize("status", ["attended", "absent"])
    def test_rejected_after_attendance(self, status):
        with pytest.raises(StateError):
            check_unregistration(_snapshot(participants={1: status}), user_id=1)

    def test_not_registered(self):
        with pytest.raises(NotFoundError, match="not registered"):
            check_unregistration(_snapshot(), user_id=1)


class TestCheckFeedback:
    def _completed(self, **overrides) -> EventSnapshot:
        return _snapshot(
            status=EventStatus.COMPLETED,
            participants={1: "attended", 2: "registered"},
            **overrides,
        )

    def test_attendee_may_rate(self):
        assert check_feedback(self._completed(), user_id=1, rating=5) == 5

    @pytest.mark.parametrize("rating", [0, 6, 4.5, "5", True, None])
    def test_rating_must_be_int_in_range(self, rating):
        with pytest.raises(ValidationError):
            check_feedback(self._completed(), user_id=1, rating=rating)

    def test_event_must_be_completed(self):
        with pytest.raises(StateError, match="completed"):
            check_feedback(_snapshot(participants={1: "attended"}), user_id=1, rating=4)

    def test_only_attendees(self):
        with pytest.raises(AuthorizationError, match="attended"):
            check_feedback(self._completed(), user_id=2, rating=4)

    def test_second_feedback_conflicts(self):
        with pytest.raises(ConflictError):
            check_feedback(self._completed(feedback_by=frozenset({1})), user_id=1, rating=4)


class TestCheckAttendance:
    @pytest.mark.parametrize(
        ("current", "target"),
        [
            ("registered", "confirmed"),
            ("registered", "attended"),
            ("registered", "absent"),
            ("confirmed", "attended"),
            ("confirmed", "absent"),
            ("attended", "absent"),
            ("absent", "attended"),
            ("attended", "attended"),
        ],
    )
    def test_allowed(self, current, target):
        result = check_attendance(_snapshot(participants={1: current}), 1, target)
        assert result == ParticipationStatus(target)

    @pytest.mark.parametrize(
        ("current", "target"),
        [("confirmed", "registered"), ("attended", "registered"), ("absent", "confirmed")],
    )
    def test_rejected(self, current, target):
        with pytest.raises(StateError):
            check_attendance(_snapshot(participants={1: current}), 1, target)

    def test_unknown_status(self):
        with pytest.raises(ValidationError):
            check_attendance(_snapshot(participants={1: "registered"}), 1, "vanished")

    def test_missing_participant(self):
        with pytest.raises(NotFoundError):
            check_attendance(_snapshot(), 1, "attended")


class TestDerived:
    def test_average_rating(self):
        assert average_rating([4, 5]) == 4.5
        assert average_rating([5, 4, 4]) == 4.3
        assert average_rating([]) == 0

    def test_available_spots_never_negative(self):
        over = _snapshot(max_participants=1, participants={1: "registered", 2: "registered"})
        assert available_spots(over) == 0

    def test_validate_schedule(self):
        validate_schedule(NOW + timedelta(days=1), NOW + timedelta(days=2), NOW)
        with pytest.raises(ValidationError, match="End date"):
            validate_schedule(NOW, NOW, NOW - timedelta(days=1))
        with pytest.raises(ValidationError, match="deadline"):
            validate_schedule(NOW, NOW + timedelta(hours=1), NOW)


# ===========================================================================
# Service path (row lock → snapshot → check → write)
# ===========================================================================
class TestRegisterService:
    def test_fills_to_capacity_then_rejects(self, db_engine):
        event = make_event(db_engine, None, max_participants=3)
        members = [make_user(db_engine) for _ in range(4)]

        for i, member in enumerate(members[:3], start=1):
            result = event_service.register(db_engine, actor_for(member), event.id)
            assert result["participant_count"] == i

        assert result["available_spots"] == 0
        with pytest.raises(CapacityError):
            event_service.register(db_engine, actor_for(members[3]), event.id)
        assert event_service.get_event(db_engine, None, event.id)["available_spots"] == 0

    def test_unregister_frees_the_spot(self, db_engine):
        event = make_event(db_engine, None, max_participants=1)
        a, b = make_user(db_engine), make_user(db_engine)

        event_service.register(db_engine, actor_for(a), event.id)
        with pytest.raises(CapacityError):
            event_service.register(db_engine, actor_for(b), event.id)

        freed = event_service.unregister(db_engine, actor_for(a), event.id)
        assert freed["available_spots"] == 1
        event_service.register(db_engine, actor_for(b), event.id)

    def test_duplicate_registration(self, db_engine):
        event = make_event(db_engine, None)
        member = make_user(db_engine)
        event_service.register(db_engine, actor_for(member), event.id)
        with pytest.raises(ConflictError):
            event_service.register(db_engine, actor_for(member), event.id)

    def test_past_deadline(self, db_engine):
        event = make_event(db_engine, None, registration_deadline=utcnow() - timedelta(hours=1))
        with pytest.raises(DeadlineError):
            event_service.register(db_engine, actor_for(make_user(db_engine)), event.id)

    def test_missing_event(self, db_engine):
        with pytest.raises(NotFoundError, match="Event not found"):
            event_service.register(db_engine, actor_for(make_user(db_engine)), 999)

    def test_anonymous_rejected(self, db_engine):
        event = make_event(db_engine, None)
        with pytest.raises(AuthenticationError):
            event_service.register(db_engine, None, event.id)

    def test_unapproved_member_rejected(self, db_engine):
        event = make_event(db_engine, None)
        pending = make_user(db_engine, is_approved=False)
        with pytest.raises(AuthorizationError, match="pending approval"):
            event_service.register(db_engine, actor_for(pending), event.id)

    @pytest.mark.parametrize(
        "status",
        [EventStatus.DRAFT, EventStatus.ONGOING, EventStatus.COMPLETED, EventStatus.CANCELLED],
    )
    def test_unpublished_event_is_not_open(self, db_engine, status):
        event = make_event(db_engine, None, status=status)
        with pytest.raises(StateError, match="not open"):
            event_service.register(db_engine, actor_for(make_user(db_engine)), event.id)

    def test_hidden_event_rejected(self, db_engine):
        event = make_event(db_engine, None, visibility="officers_only")
        with pytest.raises(AuthorizationError):
            event_service.register(db_engine, actor_for(make_user(db_engine)), event.id)

    def test_notes_stored_trimmed(self, db_engine):
        event = make_event(db_engine, None)
        result = event_service.register(
            db_engine, actor_for(make_user(db_engine)), event.id, notes="  vegetarian  "
        )
        assert result["participant"]["notes"] == "vegetarian"
        assert result["participant"]["status"] == "registered"


class TestFeedbackService:
    def _attended_event(self, db_engine, attendees):
        organizer = make_user(db_engine, Role.OFFICER)
        event = make_event(db_engine, organizer)
        for user in attendees:
            event_service.register(db_engine, actor_for(user), event.id)
            event_service.mark_attendance(
                db_engine, actor_for(organizer), event.id, user.id, "attended"
            )
        # Completing the event is an organizer update.
        event_service.update_event(
            db_engine, actor_for(organizer), event.id, status=EventStatus.COMPLETED
        )
        return event

    def test_average_and_duplicate(self, db_engine):
        a, b = make_user(db_engine), make_user(db_engine)
        event = self._attended_event(db_engine, [a, b])

        event_service.add_feedback(db_engine, actor_for(a), event.id, rating=4)
        result = event_service.add_feedback(
            db_engine, actor_for(b), event.id, rating=5, comment="Great session"
        )
        assert result == {"average_rating": 4.5, "feedback_count": 2}

        with pytest.raises(ConflictError):
            event_service.add_feedback(db_engine, actor_for(a), event.id, rating=3)

    def test_non_attendee_rejected(self, db_engine):
        a = make_user(db_engine)
        event = self._attended_event(db_engine, [a])
        with pytest.raises(AuthorizationError):
            event_service.add_feedback(db_engine, actor_for(make_user(db_engine)), event.id, rating=4)

    def test_cannot_unregister_after_attendance(self, db_engine):
        a = make_user(db_engine)
        event = self._attended_event(db_engine, [a])
        with pytest.raises(StateError):
            event_service.unregister(db_engine, actor_for(a), event.id)


class TestMarkAttendanceService:
    def test_member_cannot_mark(self, db_engine):
        organizer = make_user(db_engine, Role.OFFICER)
        member = make_user(db_engine)
        event = make_event(db_engine, organizer)
        event_service.register(db_engine, actor_for(member), event.id)
        with pytest.raises(AuthorizationError):
            event_service.mark_attendance(
                db_engine, actor_for(member), event.id, member.id, "attended"
            )

    def test_other_officer_may_mark(self, db_engine):
        organizer = make_user(db_engine, Role.OFFICER)
        other = make_user(db_engine, Role.OFFICER)
        member = make_user(db_engine)
        event = make_event(db_engine, organizer)
        event_service.register(db_engine, actor_for(member), event.id)
        result = event_service.mark_attendance(
            db_engine, actor_for(other), event.id, member.id, "confirmed"
        )
        assert result["status"] == "confirmed"
        assert result["user"]["id"] == member.id

    def test_unknown_participant(self, db_engine):
        organizer = make_user(db_engine, Role.OFFICER)
        event = make_event(db_engine, organizer)
        with pytest.raises(NotFoundError):
            event_service.mark_attendance(
                db_engine, Actor(id=organizer.id, role=Role.OFFICER), event.id, 12345, "attended"
            )
