"""
clubhouse.policy.engagement — Engagement Rules & Rendering
===========================================================

Pure half of the engagement ledger.  Persistence (atomic insert/delete of
view, like, and comment rows) lives in
:mod:`clubhouse.services.engagement_service`.

Rendering resolves every actor reference through :func:`resolve_actor`
against a pre-loaded ``{user_id: user}`` mapping.  A reference whose user
no longer exists never becomes ``None`` in the output:

* comment authors → placeholder ``Unknown User``
* entity authors  → placeholder ``Unknown Author``
* likes           → dropped from the rendered list
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

from clubhouse.errors import ValidationError

__all__ = [
    "COMMENT_MAX_LENGTH",
    "PLACEHOLDER_AUTHOR",
    "PLACEHOLDER_USER",
    "CommentRecord",
    "LikeRecord",
    "render_comments",
    "render_likes",
    "resolve_actor",
    "validate_comment",
]

COMMENT_MAX_LENGTH = 500

PLACEHOLDER_AUTHOR = "Author"
PLACEHOLDER_USER = "User"


class _UserLike(Protocol):
    id: int
    first_name: str
    last_name: str
    role: str


@dataclass(frozen=True, slots=True)
class LikeRecord:
    user_id: int | None
    liked_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class CommentRecord:
    id: int
    user_id: int | None
    content: str
    created_at: datetime | None = None
    is_edited: bool = False


def validate_comment(text: Any, max_length: int = COMMENT_MAX_LENGTH) -> str:
    """Return the stripped comment body or raise :class:`ValidationError`."""
    if not isinstance(text, str):
        raise ValidationError("Comment content is required")
    body = text.strip()
    if not body:
        raise ValidationError("Comment content is required")
    if len(body) > max_length:
        raise ValidationError(f"Comment cannot exceed {max_length} characters")
    return body


def resolve_actor(
    user: _UserLike | None, placeholder_last_name: str = PLACEHOLDER_USER
) -> dict:
    """Public reference for *user*, or the synthetic placeholder."""
    if user is None:
        return {
            "id": None,
            "first_name": "Unknown",
            "last_name": placeholder_last_name,
            "role": "unknown",
        }
    return {
        "id": user.id,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "role": user.role,
    }


def _lookup(users: Mapping[int, _UserLike], user_id: int | None) -> _UserLike | None:
    if user_id is None:
        return None
    return users.get(user_id)


def render_comments(
    comments: Iterable[CommentRecord], users: Mapping[int, _UserLike]
) -> list[dict]:
    """Comments in insertion order; dangling authors become placeholders."""
    return [
        {
            "id": c.id,
            "user": resolve_actor(_lookup(users, c.user_id), PLACEHOLDER_USER),
            "content": c.content,
            "created_at": c.created_at.isoformat() if c.created_at else None,
            "is_edited": c.is_edited,
        }
        for c in comments
    ]


def render_likes(
    likes: Iterable[LikeRecord], users: Mapping[int, _UserLike]
) -> list[dict]:
    """Likes whose user still exists; dangling likes are dropped."""
    rendered = []
    for like in likes:
        user = _lookup(users, like.user_id)
        if user is None:
            continue
        rendered.append({
            "user": resolve_actor(user),
            "liked_at": like.liked_at.isoformat() if like.liked_at else None,
        })
    return rendered


def referenced_user_ids(*groups: Iterable[Any]) -> set[int]:
    """Collect non-null ``user_id`` values across record collections."""
    ids: set[int] = set()
    for group in groups:
        for record in group:
            uid = getattr(record, "user_id", None)
            if uid is not None:
                ids.add(uid)
    return ids
