"""
clubhouse.api.routes.announcements — Announcement browse, CRUD & engagement
============================================================================
"""

from __future__ import annotations

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Query, Request
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
from clubhouse.database.models import (
    AnnouncementStatus,
    AnnouncementType,
    Priority,
    Role,
    Visibility,
)
from clubhouse.policy.roles import Actor
from clubhouse.services import announcement_service

router = APIRouter(prefix="/announcements", tags=["announcements"])
logger = logging.getLogger(__name__)

staff_only = require_role(Role.OFFICER)


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class AnnouncementCreate(BaseModel):
    title: str = Field(min_length=5, max_length=100)
    content: str = Field(min_length=10, max_length=2000)
    type: AnnouncementType
    priority: Priority = Priority.MEDIUM
    visibility: Visibility = Visibility.PUBLIC
    status: AnnouncementStatus = AnnouncementStatus.DRAFT
    publish_at: datetime | None = None
    expire_at: datetime | None = None
    branch_id: int | None = None
    related_event_id: int | None = None
    tags: list[str] = Field(default_factory=list)
    is_pinned: bool = False


class AnnouncementUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=5, max_length=100)
    content: str | None = Field(default=None, min_length=10, max_length=2000)
    type: AnnouncementType | None = None
    priority: Priority | None = None
    visibility: Visibility | None = None
    status: AnnouncementStatus | None = None
    publish_at: datetime | None = None
    expire_at: datetime | None = None
    branch_id: int | None = None
    related_event_id: int | None = None
    tags: list[str] | None = None
    is_pinned: bool | None = None


class CommentCreate(BaseModel):
    content: str


# Columns that may be cleared by sending null.
_NULLABLE = frozenset({"expire_at", "branch_id", "related_event_id"})


def _changes(body: AnnouncementUpdate) -> dict:
    return {
        k: v for k, v in body.model_dump(exclude_unset=True).items()
        if v is not None or k in _NULLABLE
    }


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
@router.get("")
def list_announcements(
    request: Request,
    page: str | None = Query(None),
    limit: str | None = Query(None),
    type: str | None = Query(None),
    priority: str | None = Query(None),
    visibility: str | None = Query(None),
    status: str | None = Query(None),
    search: str | None = Query(None),
    actor: Actor | None = Depends(get_optional_actor),
    engine: Engine = Depends(get_engine),
    cfg: ClubhouseConfig = Depends(get_config),
):
    result = announcement_service.list_announcements(
        engine,
        actor,
        page=page,
        limit=limit,
        type=type,
        priority=priority,
        visibility=visibility,
        status=status,
        search=search,
        ip_address=client_ip(request),
        default_limit=cfg.default_page_size,
        max_limit=cfg.max_page_size,
    )
    return {
        "success": True,
        "count": len(result.items),
        "total": result.total,
        "pagination": result.meta(),
        "announcements": result.items,
    }


@router.get("/{announcement_id}")
def get_announcement(
    announcement_id: int,
    request: Request,
    actor: Actor | None = Depends(get_optional_actor),
    engine: Engine = Depends(get_engine),
):
    detail = announcement_service.get_announcement(
        engine, actor, announcement_id, ip_address=client_ip(request)
    )
    return {"success": True, "announcement": detail}


# ---------------------------------------------------------------------------
# Staff mutations
# ---------------------------------------------------------------------------
@router.post("", status_code=201)
def create_announcement(
    body: AnnouncementCreate,
    request: Request,
    actor: Actor = Depends(staff_only),
    engine: Engine = Depends(get_engine),
):
    created = announcement_service.create_announcement(
        engine, actor, ip_address=client_ip(request), **body.model_dump()
    )
    return {"success": True, "announcement": created}


@router.put("/{announcement_id}")
def update_announcement(
    announcement_id: int,
    body: AnnouncementUpdate,
    request: Request,
    actor: Actor = Depends(staff_only),
    engine: Engine = Depends(get_engine),
):
    updated = announcement_service.update_announcement(
        engine,
        actor,
        announcement_id,
        ip_address=client_ip(request),
        **_changes(body),
    )
    return {"success": True, "announcement": updated}


@router.delete("/{announcement_id}")
def delete_announcement(
    announcement_id: int,
    request: Request,
    actor: Actor = Depends(staff_only),
    engine: Engine = Depends(get_engine),
):
    announcement_service.delete_announcement(
        engine, actor, announcement_id, ip_address=client_ip(request)
    )
    return {"success": True, "message": "Announcement deleted successfully"}


# ---------------------------------------------------------------------------
# Engagement (any authenticated user who can see the announcement)
# ---------------------------------------------------------------------------
@router.post("/{announcement_id}/like")
def toggle_like(
    announcement_id: int,
    actor: Actor = Depends(get_current_actor),
    engine: Engine = Depends(get_engine),
):
    result = announcement_service.toggle_like(engine, actor, announcement_id)
    return {"success": True, **result}


@router.post("/{announcement_id}/comments", status_code=201)
def add_comment(
    announcement_id: int,
    body: CommentCreate,
    actor: Actor = Depends(get_current_actor),
    engine: Engine = Depends(get_engine),
    cfg: ClubhouseConfig = Depends(get_config),
):
    result = announcement_service.add_comment(
        engine, actor, announcement_id, body.content, max_length=cfg.comment_max_length
    )
    return {"success": True, **result}
