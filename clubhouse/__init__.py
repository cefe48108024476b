"""
Clubhouse — Club Management Backend
====================================
Announcements, events, and member engagement for a volunteer club,
governed by a single visibility and engagement policy engine.

Package layout::

    clubhouse/
    ├── config.py          # YAML → typed Python config
    ├── errors.py          # Error taxonomy (kind + HTTP status)
    ├── logging_setup.py   # Root logger + security logger
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + session helper
    │   ├── models.py      # All ORM models
    │   └── seed.py        # Default branches + first staff
    ├── policy/
    │   ├── clock.py       # UTC now + naive→aware normalisation
    │   ├── roles.py       # Role precedence
    │   ├── visibility.py  # Who may see what
    │   ├── engagement.py  # Comment rules + dangling-actor rendering
    │   ├── registration.py # Event registration state machine
    │   └── filters.py     # Storage-agnostic predicates + pagination
    ├── services/
    │   ├── query.py               # Predicate → SQLAlchemy
    │   ├── engagement_service.py  # Atomic views / likes / comments
    │   ├── announcement_service.py
    │   ├── event_service.py
    │   ├── audit_service.py       # admin_log writes
    │   └── notification_service.py # Mail dispatch (fire-and-forget)
    └── api/
        ├── main.py        # FastAPI app
        ├── deps.py        # JWT → Actor, DB session
        ├── auth.py        # /auth/me
        └── routes/        # Announcement, event + admin audit endpoints
"""

__version__ = "0.1.0"
