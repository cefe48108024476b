"""
clubhouse.policy.roles — Role Precedence
=========================================

Single place that ranks actor roles.  Everything that asks "is this actor
senior enough?" goes through :func:`rank` / :func:`is_at_least` instead of
re-listing role names.

Order::

    admin (4) > officer (3) > member = volunteer (2) > visitor (1) > anonymous (0)

member and volunteer share a tier: both satisfy a members-only threshold,
neither satisfies an officers-only one.
"""

from __future__ import annotations

from dataclasses import dataclass

from clubhouse.database.models import Role
from clubhouse.errors import AuthorizationError

__all__ = [
    "ANONYMOUS_RANK",
    "Actor",
    "Role",
    "check_approved",
    "is_at_least",
    "is_staff",
    "rank",
    "role_of",
]

ANONYMOUS_RANK = 0

_RANKS: dict[Role, int] = {
    Role.ADMIN: 4,
    Role.OFFICER: 3,
    Role.MEMBER: 2,
    Role.VOLUNTEER: 2,
    Role.VISITOR: 1,
}


@dataclass(frozen=True, slots=True)
class Actor:
    """The caller of an operation, as supplied by the identity layer.

    Immutable for the duration of a policy evaluation.  Anonymous callers
    are represented by ``None`` rather than an ``Actor``.
    """

    id: int
    role: str
    branch_id: int | None = None
    is_active: bool = True
    is_approved: bool = True
    first_name: str = ""
    last_name: str = ""
    email: str | None = None


def rank(role: str | None) -> int:
    """Numeric precedence of *role*.  ``None`` is anonymous.

    Unrecognised role strings rank as visitor.
    """
    if role is None:
        return ANONYMOUS_RANK
    try:
        return _RANKS[Role(role)]
    except ValueError:
        return _RANKS[Role.VISITOR]


def is_at_least(role: str | None, threshold: str) -> bool:
    return rank(role) >= rank(threshold)


def is_staff(role: str | None) -> bool:
    """Admins and officers."""
    return is_at_least(role, Role.OFFICER)


def role_of(actor: Actor | None) -> str | None:
    return actor.role if actor is not None else None


def check_approved(actor: Actor) -> None:
    """Members and volunteers must be approved before taking part.

    Visitors and staff are never gated on approval.
    """
    if actor.role in (Role.MEMBER, Role.VOLUNTEER) and not actor.is_approved:
        raise AuthorizationError(
            "Your account is pending approval. Please wait for admin approval."
        )
