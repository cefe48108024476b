"""
clubhouse.services.audit_service — Admin Audit Trail
=====================================================

Every create/update/delete of an announcement or event, and every
organizer-recorded attendance change, writes one ``admin_log`` row inside
the same transaction as the change itself.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from clubhouse.database.models import AdminLog

logger = logging.getLogger(__name__)


def row_to_dict(obj: Any) -> dict | None:
    """Convert a SQLAlchemy model instance to a JSON-serializable dict."""
    if obj is None:
        return None
    result = {}
    for col in obj.__table__.columns:
        val = getattr(obj, col.key, None)
        if isinstance(val, datetime):
            val = val.isoformat()
        result[col.name] = val
    return result


def log_action(
    session: Session,
    *,
    actor_id: int,
    action_type: str,
    target_table: str,
    target_id: str | int | None,
    before: dict | None,
    after: dict | None,
    ip_address: str | None = None,
    reason: str | None = None,
) -> None:
    """Insert a row into admin_log within the current transaction."""
    session.add(AdminLog(
        actor_id=actor_id,
        action_type=action_type,
        target_table=target_table,
        target_id=str(target_id) if target_id is not None else None,
        before_snapshot=before,
        after_snapshot=after,
        ip_address=ip_address,
        reason=reason,
    ))
    logger.info(
        "Audit %s %s/%s by user %d", action_type, target_table, target_id, actor_id
    )


def recent_actions(
    session: Session,
    *,
    target_table: str | None = None,
    limit: int = 50,
) -> list[AdminLog]:
    """Newest-first audit rows, optionally for one table."""
    query = select(AdminLog).order_by(AdminLog.id.desc()).limit(limit)
    if target_table:
        query = query.where(AdminLog.target_table == target_table)
    return list(session.scalars(query).all())
