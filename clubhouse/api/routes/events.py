"""
clubhouse.api.routes.events — Event browse, CRUD, registration & engagement
============================================================================

Registration confirmations are mailed with ``BackgroundTasks`` once the
response is ready; mail problems never affect the registration itself.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request
from pydantic import BaseModel, Field
from sqlalchemy import Engine

from clubhouse.api.deps import (
    client_ip,
    get_config,
    get_current_actor,
    get_engine,
    get_optional_actor,
    require_role,
)
from clubhouse.config import ClubhouseConfig
from clubhouse.database.models import EventStatus, EventType, Role, Visibility
from clubhouse.policy.roles import Actor
from clubhouse.services import event_service, notification_service

router = APIRouter(prefix="/events", tags=["events"])
logger = logging.getLogger(__name__)

staff_only = require_role(Role.OFFICER)


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class EventCreate(BaseModel):
    title: str = Field(min_length=5, max_length=100)
    description: str = Field(min_length=10, max_length=1000)
    type: EventType
    visibility: Visibility = Visibility.PUBLIC
    status: EventStatus = EventStatus.DRAFT
    start_date: datetime
    end_date: datetime
    location: str = Field(min_length=3, max_length=100)
    branch_id: int | None = None
    max_participants: int = Field(default=50, ge=1, le=1000)
    registration_deadline: datetime
    requirements: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)


class EventUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=5, max_length=100)
    description: str | None = Field(default=None, min_length=10, max_length=1000)
    type: EventType | None = None
    visibility: Visibility | None = None
    status: EventStatus | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    location: str | None = Field(default=None, min_length=3, max_length=100)
    branch_id: int | None = None
    max_participants: int | None = Field(default=None, ge=1, le=1000)
    registration_deadline: datetime | None = None
    requirements: list[str] | None = None
    tags: list[str] | None = None


class RegistrationRequest(BaseModel):
    notes: str | None = Field(default=None, max_length=500)


class FeedbackCreate(BaseModel):
    # Checked by check_feedback, not coerced here.
    rating: Any = None
    comment: str | None = Field(default=None, max_length=1000)


class AttendanceUpdate(BaseModel):
    status: str


class CommentCreate(BaseModel):
    content: str


def _changes(body: EventUpdate) -> dict:
    return {
        k: v for k, v in body.model_dump(exclude_unset=True).items()
        if v is not None or k == "branch_id"
    }


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
@router.get("")
def list_events(
    page: str | None = Query(None),
    limit: str | None = Query(None),
    type: str | None = Query(None),
    branch: int | None = Query(None),
    status: str | None = Query(None),
    visibility: str | None = Query(None),
    start_from: datetime | None = Query(None),
    start_to: datetime | None = Query(None),
    search: str | None = Query(None),
    actor: Actor | None = Depends(get_optional_actor),
    engine: Engine = Depends(get_engine),
    cfg: ClubhouseConfig = Depends(get_config),
):
    result = event_service.list_events(
        engine,
        actor,
        page=page,
        limit=limit,
        type=type,
        branch_id=branch,
        status=status,
        visibility=visibility,
        start_from=start_from,
        start_to=start_to,
        search=search,
        default_limit=cfg.default_page_size,
        max_limit=cfg.max_page_size,
    )
    return {
        "success": True,
        "count": len(result.items),
        "total": result.total,
        "pagination": result.meta(),
        "events": result.items,
    }


@router.get("/{event_id}")
def get_event(
    event_id: int,
    request: Request,
    actor: Actor | None = Depends(get_optional_actor),
    engine: Engine = Depends(get_engine),
):
    detail = event_service.get_event(engine, actor, event_id, ip_address=client_ip(request))
    return {"success": True, "event": detail}


# ---------------------------------------------------------------------------
# Staff mutations
# ---------------------------------------------------------------------------
@router.post("", status_code=201)
def create_event(
    body: EventCreate,
    request: Request,
    actor: Actor = Depends(staff_only),
    engine: Engine = Depends(get_engine),
):
    created = event_service.create_event(
        engine, actor, ip_address=client_ip(request), **body.model_dump()
    )
    return {"success": True, "event": created}


@router.put("/{event_id}")
def update_event(
    event_id: int,
    body: EventUpdate,
    request: Request,
    actor: Actor = Depends(staff_only),
    engine: Engine = Depends(get_engine),
):
    updated = event_service.update_event(
        engine, actor, event_id, ip_address=client_ip(request), **_changes(body)
    )
    return {"success": True, "event": updated}


@router.delete("/{event_id}")
def delete_event(
    event_id: int,
    request: Request,
    actor: Actor = Depends(staff_only),
    engine: Engine = Depends(get_engine),
):
    event_service.delete_event(engine, actor, event_id, ip_address=client_ip(request))
    return {"success": True, "message": "Event deleted successfully"}


@router.patch("/{event_id}/participants/{user_id}")
def mark_attendance(
    event_id: int,
    user_id: int,
    body: AttendanceUpdate,
    request: Request,
    actor: Actor = Depends(staff_only),
    engine: Engine = Depends(get_engine),
):
    participant = event_service.mark_attendance(
        engine, actor, event_id, user_id, body.status, ip_address=client_ip(request)
    )
    return {"success": True, "participant": participant}


# ---------------------------------------------------------------------------
# Participation (any authenticated user)
# ---------------------------------------------------------------------------
@router.post("/{event_id}/register")
def register(
    event_id: int,
    background: BackgroundTasks,
    body: RegistrationRequest | None = None,
    actor: Actor = Depends(get_current_actor),
    engine: Engine = Depends(get_engine),
):
    result = event_service.register(
        engine, actor, event_id, notes=body.notes if body else None
    )
    if actor.email:
        background.add_task(
            notification_service.send_registration_confirmation,
            actor.email,
            actor.first_name,
            result["event"]["title"],
            result["event"]["start_date"],
        )
    return {
        "success": True,
        "message": "Successfully registered for event",
        **result,
    }


@router.delete("/{event_id}/register")
def unregister(
    event_id: int,
    background: BackgroundTasks,
    actor: Actor = Depends(get_current_actor),
    engine: Engine = Depends(get_engine),
):
    result = event_service.unregister(engine, actor, event_id)
    if actor.email:
        background.add_task(
            notification_service.send_unregistration_notice,
            actor.email,
            actor.first_name,
            result["event"]["title"],
        )
    return {
        "success": True,
        "message": "Successfully unregistered from event",
        **result,
    }


@router.post("/{event_id}/feedback", status_code=201)
def add_feedback(
    event_id: int,
    body: FeedbackCreate,
    actor: Actor = Depends(get_current_actor),
    engine: Engine = Depends(get_engine),
):
    result = event_service.add_feedback(
        engine, actor, event_id, rating=body.rating, comment=body.comment
    )
    return {"success": True, "message": "Feedback submitted successfully", **result}


# ---------------------------------------------------------------------------
# Engagement
# ---------------------------------------------------------------------------
@router.post("/{event_id}/like")
def toggle_like(
    event_id: int,
    actor: Actor = Depends(get_current_actor),
    engine: Engine = Depends(get_engine),
):
    result = event_service.toggle_like(engine, actor, event_id)
    return {"success": True, **result}


@router.post("/{event_id}/comments", status_code=201)
def add_comment(
    event_id: int,
    body: CommentCreate,
    actor: Actor = Depends(get_current_actor),
    engine: Engine = Depends(get_engine),
    cfg: ClubhouseConfig = Depends(get_config),
):
    result = event_service.add_comment(
        engine, actor, event_id, body.content, max_length=cfg.comment_max_length
    )
    return {"success": True, **result}
