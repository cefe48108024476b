"""
clubhouse.logging_setup — Logging Configuration
================================================

Application modules log through ``logging.getLogger(__name__)``.  Security
events (rejected tokens, inactive accounts, forbidden role access) go to
the dedicated ``clubhouse.security`` logger so they can be routed
separately.
"""

from __future__ import annotations

import logging
import os

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

security_logger = logging.getLogger("clubhouse.security")


def configure_logging(level: str | None = None) -> None:
    """Configure the ``clubhouse`` logger hierarchy.

    The level comes from *level* or the ``LOG_LEVEL`` env var (default
    ``INFO``).  Unknown level names fall back to ``INFO``.  Safe to call
    more than once.
    """
    name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    numeric = logging.getLevelName(name)
    if not isinstance(numeric, int):
        numeric = logging.INFO

    root = logging.getLogger("clubhouse")
    root.setLevel(numeric)
    if not any(getattr(h, "_clubhouse", False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._clubhouse = True  # type: ignore[attr-defined]
        root.addHandler(handler)


def log_security_event(event: str, **context) -> None:
    """Record a security-relevant event with request context."""
    details = " ".join(f"{k}={v}" for k, v in sorted(context.items()) if v is not None)
    security_logger.warning("%s %s", event, details)
