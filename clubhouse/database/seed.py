"""
clubhouse.database.seed — Default Branches & Staff Seeder
==========================================================

Baseline branches and a first administrator so a fresh deployment can
sign in and start publishing.  Run once after ``alembic upgrade head``::

    python -m clubhouse.database.seed

Idempotent: branches are matched on ``code`` and users on ``email``;
existing rows are never overwritten.
"""

from __future__ import annotations

import logging

from dotenv import load_dotenv
from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from clubhouse.database.models import Branch, Role, User

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Default catalogue
# ---------------------------------------------------------------------------
DEFAULT_BRANCHES: list[tuple[str, str, str]] = [
    ("MAIN", "Main Campus", "Main Campus, Dire Dawa Road"),
    ("TECH", "Technology Campus", "Technology Campus"),
    ("VET", "Veterinary Campus", "Veterinary Campus"),
]
"""Each entry is ``(code, name, location)``."""

DEFAULT_STAFF: list[dict] = [
    {
        "first_name": "System",
        "last_name": "Administrator",
        "email": "admin@clubhouse.local",
        "role": Role.ADMIN,
        "branch_code": "MAIN",
    },
    {
        "first_name": "Meron",
        "last_name": "Tadesse",
        "email": "officer@clubhouse.local",
        "role": Role.OFFICER,
        "branch_code": "MAIN",
    },
]


# ---------------------------------------------------------------------------
# Seeder
# ---------------------------------------------------------------------------
def seed_defaults(engine: Engine) -> int:
    """Insert missing default branches and staff.  Returns rows inserted."""
    session = Session(engine)
    inserted = 0
    try:
        branches: dict[str, Branch] = {
            b.code: b for b in session.scalars(select(Branch)).all()
        }
        for code, name, location in DEFAULT_BRANCHES:
            if code not in branches:
                branch = Branch(code=code, name=name, location=location)
                session.add(branch)
                branches[code] = branch
                inserted += 1
        session.flush()

        for entry in DEFAULT_STAFF:
            if session.scalar(select(User.id).where(User.email == entry["email"])) is not None:
                continue
            session.add(User(
                first_name=entry["first_name"],
                last_name=entry["last_name"],
                email=entry["email"],
                role=entry["role"],
                branch_id=branches[entry["branch_code"]].id,
                is_active=True,
                is_approved=True,
            ))
            inserted += 1
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

    if inserted:
        logger.info("Seeded %d default rows.", inserted)
    return inserted


if __name__ == "__main__":
    load_dotenv()

    from clubhouse.database.engine import create_db_engine
    from clubhouse.logging_setup import configure_logging

    configure_logging()
    seed_defaults(create_db_engine())
