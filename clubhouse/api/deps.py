"""
clubhouse.api.deps — FastAPI dependency injection
==================================================

Bearer-token identity: the ``sub`` claim names a user row, which becomes
the :class:`~clubhouse.policy.roles.Actor` handed to the services.
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from typing import Annotated

import jwt
from fastapi import Depends, Header, Request
from jwt.exceptions import InvalidTokenError
from sqlalchemy import Engine
from sqlalchemy.orm import Session

from clubhouse.config import ClubhouseConfig, load_config
from clubhouse.database.engine import create_db_engine
from clubhouse.database.models import User
from clubhouse.errors import AuthenticationError, AuthorizationError
from clubhouse.logging_setup import log_security_event
from clubhouse.policy.roles import Actor, is_at_least

logger = logging.getLogger(__name__)

_WEAK_SECRETS = frozenset({
    "clubhouse-dev-secret-change-me",
    "change-me",
    "secret",
    "dev",
    "",
})

_MIN_SECRET_LENGTH = 32

JWT_ALGORITHM = "HS256"


def _load_jwt_secret() -> str:
    """Load and validate JWT_SECRET from the environment.

    Raises RuntimeError at import time if the secret is missing, blank,
    too short (< 32 chars), or a known weak default.
    """
    secret = os.getenv("JWT_SECRET", "")
    if not secret:
        raise RuntimeError(
            "JWT_SECRET environment variable is not set. "
            "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(64))\""
        )
    if secret in _WEAK_SECRETS:
        raise RuntimeError(
            f"JWT_SECRET is set to a known weak default ('{secret}'). "
            "Please set a strong, unique secret."
        )
    if len(secret) < _MIN_SECRET_LENGTH:
        raise RuntimeError(
            f"JWT_SECRET is too short ({len(secret)} chars). "
            f"Minimum length is {_MIN_SECRET_LENGTH} characters."
        )
    return secret


JWT_SECRET: str = _load_jwt_secret()


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> ClubhouseConfig:
    return load_config()


def get_session(engine: Annotated[Engine, Depends(get_engine)]):
    with Session(engine) as session:
        yield session


def client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("x-forwarded-for", "")
    if forwarded:
        return forwarded.split(",", 1)[0].strip()
    return request.client.host if request.client else None


# ---------------------------------------------------------------------------
# Token → Actor
# ---------------------------------------------------------------------------
def actor_from_user(user: User) -> Actor:
    return Actor(
        id=user.id,
        role=user.role,
        branch_id=user.branch_id,
        is_active=user.is_active,
        is_approved=user.is_approved,
        first_name=user.first_name,
        last_name=user.last_name,
        email=user.email,
    )


def _bearer(authorization: str | None) -> str | None:
    if not authorization or not authorization.startswith("Bearer "):
        return None
    return authorization.split(" ", 1)[1].strip() or None


def _resolve_actor(token: str, engine: Engine, request: Request) -> Actor:
    """Decode *token* and load its user.  Raises :class:`AuthenticationError`."""
    ip = client_ip(request)
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
        user_id = int(payload["sub"])
    except (InvalidTokenError, KeyError, TypeError, ValueError):
        log_security_event("token_rejected", ip=ip, path=request.url.path)
        raise AuthenticationError("Not authorized, token failed") from None

    with Session(engine) as session:
        user = session.get(User, user_id)
        if user is None:
            log_security_event("token_unknown_user", ip=ip, path=request.url.path, user_id=user_id)
            raise AuthenticationError("User not found")
        if not user.is_active:
            log_security_event("inactive_user", ip=ip, path=request.url.path, user_id=user_id)
            raise AuthenticationError("Account is deactivated")
        return actor_from_user(user)


def get_current_actor(
    request: Request,
    authorization: Annotated[str | None, Header()] = None,
    engine: Engine = Depends(get_engine),
) -> Actor:
    """Validate the bearer token and return the caller.  401 otherwise."""
    token = _bearer(authorization)
    if token is None:
        raise AuthenticationError("Not authorized, no token")
    return _resolve_actor(token, engine, request)


def get_optional_actor(
    request: Request,
    authorization: Annotated[str | None, Header()] = None,
    engine: Engine = Depends(get_engine),
) -> Actor | None:
    """Like :func:`get_current_actor`, but any failure means anonymous."""
    token = _bearer(authorization)
    if token is None:
        return None
    try:
        return _resolve_actor(token, engine, request)
    except AuthenticationError:
        return None


def require_role(threshold: str):
    """Dependency factory: the caller must rank at least *threshold*."""

    def _dep(
        request: Request,
        actor: Actor = Depends(get_current_actor),
    ) -> Actor:
        if not is_at_least(actor.role, threshold):
            log_security_event(
                "forbidden_role",
                ip=client_ip(request),
                path=request.url.path,
                user_id=actor.id,
                role=actor.role,
            )
            raise AuthorizationError(
                f"User role {actor.role} is not authorized to access this route"
            )
        return actor

    return _dep
