"""
tests/test_duplicate_writes.py — Unique-Constraint Fallbacks
=============================================================
Two requests can both pass a "not there yet" check before either writes.
These tests skip the pre-check so the second INSERT hits the
``(parent_id, user_id)`` unique constraint, and verify the fallback:
no-op for views, ``liked=True`` for likes, ``ConflictError`` for
registrations and feedback, and never a second row.
"""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from clubhouse.database.models import (
    AnnouncementLike,
    AnnouncementView,
    EventFeedback,
    EventParticipant,
    EventStatus,
    Role,
)
from clubhouse.errors import ConflictError
from clubhouse.services import engagement_service, event_service
from clubhouse.services.engagement_service import ANNOUNCEMENT
from conftest import actor_for, make_announcement, make_event, make_user


def _rows(db_engine, model, **where) -> int:
    with Session(db_engine) as session:
        query = select(func.count()).select_from(model)
        for name, value in where.items():
            query = query.where(getattr(model, name) == value)
        return session.scalar(query)


# ===========================================================================
# Engagement
# ===========================================================================
class TestViewRace:
    def test_second_insert_is_a_noop(self, db_engine):
        member = make_user(db_engine)
        ann = make_announcement(db_engine, None)
        with Session(db_engine) as session:
            assert engagement_service.record_view(session, ANNOUNCEMENT, ann.id, member.id)
            session.commit()

        # The pre-check misses the committed row, as a concurrent request would.
        with Session(db_engine) as session, patch.object(session, "scalar", return_value=None):
            assert engagement_service.record_view(session, ANNOUNCEMENT, ann.id, member.id) is False
            session.commit()

        assert _rows(db_engine, AnnouncementView, announcement_id=ann.id) == 1


class TestLikeRace:
    def test_concurrent_like_counts_as_liked(self, db_engine):
        member = make_user(db_engine)
        ann = make_announcement(db_engine, None)
        with Session(db_engine) as session:
            engagement_service.toggle_like(session, ANNOUNCEMENT, ann.id, member.id)
            session.commit()

        with Session(db_engine) as session:
            real_execute = session.execute
            pending = [SimpleNamespace(rowcount=0)]

            def execute(statement, *args, **kwargs):
                # The DELETE sees nothing: the other request's row is not visible yet.
                if pending:
                    return pending.pop()
                return real_execute(statement, *args, **kwargs)

            with patch.object(session, "execute", side_effect=execute):
                liked, count = engagement_service.toggle_like(
                    session, ANNOUNCEMENT, ann.id, member.id
                )
            session.commit()

        assert (liked, count) == (True, 1)
        assert _rows(db_engine, AnnouncementLike, announcement_id=ann.id) == 1


# ===========================================================================
# Registration & feedback
# ===========================================================================
class TestRegistrationRace:
    def test_duplicate_insert_becomes_conflict(self, db_engine):
        member = make_user(db_engine)
        event = make_event(db_engine, None)
        event_service.register(db_engine, actor_for(member), event.id)

        with patch.object(event_service, "check_registration"):
            with pytest.raises(ConflictError, match="already registered"):
                event_service.register(db_engine, actor_for(member), event.id)

        assert _rows(db_engine, EventParticipant, event_id=event.id) == 1

    def test_failed_insert_leaves_other_registrations_intact(self, db_engine):
        first, second = make_user(db_engine), make_user(db_engine)
        event = make_event(db_engine, None)
        event_service.register(db_engine, actor_for(first), event.id)
        event_service.register(db_engine, actor_for(second), event.id)

        with patch.object(event_service, "check_registration"):
            with pytest.raises(ConflictError):
                event_service.register(db_engine, actor_for(second), event.id)

        detail = event_service.get_event(db_engine, None, event.id)
        assert detail["participant_count"] == 2
        assert sorted(p["user"]["id"] for p in detail["participants"]) == [first.id, second.id]


class TestFeedbackRace:
    def test_duplicate_insert_becomes_conflict(self, db_engine):
        organizer = make_user(db_engine, Role.OFFICER)
        member = make_user(db_engine)
        event = make_event(db_engine, organizer)
        event_service.register(db_engine, actor_for(member), event.id)
        event_service.mark_attendance(
            db_engine, actor_for(organizer), event.id, member.id, "attended"
        )
        event_service.update_event(
            db_engine, actor_for(organizer), event.id, status=EventStatus.COMPLETED
        )
        event_service.add_feedback(db_engine, actor_for(member), event.id, rating=5)

        with patch.object(event_service, "check_feedback", return_value=3):
            with pytest.raises(ConflictError, match="already provided feedback"):
                event_service.add_feedback(db_engine, actor_for(member), event.id, rating=3)

        assert _rows(db_engine, EventFeedback, event_id=event.id) == 1
        detail = event_service.get_event(db_engine, None, event.id)
        assert detail["average_rating"] == 5
