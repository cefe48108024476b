"""
clubhouse.policy.visibility — Who May See What
===============================================

Pure decisions over an :class:`EntitySnapshot`; no DB I/O.  Used for both
announcements and events.

Two entry points:

* :func:`can_view` — gate for a single-entity read or a comment.
* :func:`list_filter_for` — role-driven default predicate for list queries.

Detail reads are not expiry-gated; only list queries drop
expired entities (see :func:`clubhouse.policy.filters.build_filter`).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from clubhouse.database.models import Role, Visibility
from clubhouse.errors import AuthorizationError
from clubhouse.policy.filters import OneOf, Predicate
from clubhouse.policy.roles import Actor, is_at_least, is_staff, role_of

__all__ = [
    "EntitySnapshot",
    "assert_can_view",
    "can_manage",
    "can_view",
    "list_filter_for",
    "visible_tiers",
]

PUBLISHED = "published"

# Minimum role per visibility tier.  ``None`` → anyone, including anonymous.
_TIER_THRESHOLD: dict[Visibility, Role | None] = {
    Visibility.PUBLIC: None,
    Visibility.MEMBERS_ONLY: Role.MEMBER,
    Visibility.OFFICERS_ONLY: Role.OFFICER,
    Visibility.ADMIN_ONLY: Role.ADMIN,
}


@dataclass(frozen=True, slots=True)
class EntitySnapshot:
    """The visibility-relevant shape shared by announcements and events."""

    id: int
    visibility: str
    status: str
    author_id: int | None
    publish_at: datetime | None = None
    expire_at: datetime | None = None
    branch_id: int | None = None


def _tier_allows(visibility: str, actor: Actor | None) -> bool:
    try:
        tier = Visibility(visibility)
    except ValueError:
        return False
    threshold = _TIER_THRESHOLD[tier]
    if threshold is None:
        return True
    if actor is None:
        return False
    return is_at_least(actor.role, threshold)


def can_view(entity: EntitySnapshot, actor: Actor | None) -> bool:
    """Decide whether *actor* (``None`` = anonymous) may read *entity*.

    Unpublished entities (draft, archived, cancelled, ...) are restricted to
    staff and the entity's own author/organizer on top of the tier check.
    """
    if entity.status != PUBLISHED:
        if actor is None:
            return False
        if not (is_staff(actor.role) or actor.id == entity.author_id):
            return False
        # Staff and authors see their own unpublished work regardless of tier.
        return True
    return _tier_allows(entity.visibility, actor)


def assert_can_view(entity: EntitySnapshot, actor: Actor | None, *, action: str = "view") -> None:
    if not can_view(entity, actor):
        raise AuthorizationError(f"Not authorized to {action} this item")


def can_manage(entity: EntitySnapshot, actor: Actor | None) -> bool:
    """Update/delete gate: the author (or organizer) or an admin."""
    if actor is None:
        return False
    return actor.role == Role.ADMIN or (
        entity.author_id is not None and actor.id == entity.author_id
    )


def visible_tiers(
    actor: Actor | None, requested: str | None = None
) -> frozenset[str] | None:
    """Visibility tiers *actor* may list.  ``None`` means unrestricted.

    Admins see every tier; an explicit *requested* tier narrows that.
    Everyone else gets their role's fixed set and *requested* is ignored.
    """
    role = role_of(actor)
    if role == Role.ADMIN:
        if requested:
            return frozenset({requested})
        return None
    return frozenset(
        tier.value for tier in Visibility if _tier_allows(tier, actor)
    )


def list_filter_for(
    actor: Actor | None,
    requested_visibility: str | None = None,
    *,
    field: str = "visibility",
) -> Predicate:
    """Role-driven default predicate for list/browse queries."""
    tiers = visible_tiers(actor, requested_visibility)
    if tiers is None:
        return Predicate()
    return Predicate((OneOf(field, tuple(sorted(tiers))),))
