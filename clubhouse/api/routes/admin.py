"""
clubhouse.api.routes.admin — Admin audit trail
===============================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from clubhouse.api.deps import get_session, require_role
from clubhouse.database.models import Role
from clubhouse.policy.roles import Actor
from clubhouse.services import audit_service

router = APIRouter(prefix="/admin", tags=["admin"])

admin_only = require_role(Role.ADMIN)


@router.get("/audit")
def get_audit_log(
    table: str | None = Query(None),
    limit: int = Query(50, ge=1, le=200),
    admin: Actor = Depends(admin_only),
    session: Session = Depends(get_session),
):
    """Newest audit entries, optionally for one table."""
    rows = audit_service.recent_actions(session, target_table=table, limit=limit)
    return {
        "success": True,
        "count": len(rows),
        "entries": [
            {
                "id": r.id,
                "actor_id": r.actor_id,
                "action_type": r.action_type,
                "target_table": r.target_table,
                "target_id": r.target_id,
                "before_snapshot": r.before_snapshot,
                "after_snapshot": r.after_snapshot,
                "ip_address": r.ip_address,
                "timestamp": r.timestamp.isoformat() if r.timestamp else None,
            }
            for r in rows
        ],
    }
