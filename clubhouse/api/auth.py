"""
clubhouse.api.auth — JWT issuance + current-user lookup
========================================================

Login and password handling live in the identity layer; this module only
mints tokens for known users and reports who a token belongs to.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta

import jwt
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from clubhouse.api.deps import (
    JWT_ALGORITHM,
    JWT_SECRET,
    get_current_actor,
    get_session,
)
from clubhouse.database.models import Branch
from clubhouse.policy.roles import Actor, is_staff

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["auth"])

TOKEN_TTL = timedelta(days=7)


def issue_token(user_id: int, *, ttl: timedelta = TOKEN_TTL) -> str:
    """Sign a bearer token whose ``sub`` claim is *user_id*."""
    payload = {
        "sub": str(user_id),
        "iat": datetime.now(UTC),
        "exp": datetime.now(UTC) + ttl,
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


@router.get("/me")
def me(
    actor: Actor = Depends(get_current_actor),
    session: Session = Depends(get_session),
):
    """Return the current authenticated user's info."""
    branch = session.get(Branch, actor.branch_id) if actor.branch_id else None
    return {
        "success": True,
        "user": {
            "id": actor.id,
            "first_name": actor.first_name,
            "last_name": actor.last_name,
            "email": actor.email,
            "role": actor.role,
            "is_approved": actor.is_approved,
            "is_staff": is_staff(actor.role),
            "branch": (
                {"id": branch.id, "name": branch.name, "code": branch.code}
                if branch else None
            ),
        },
    }
