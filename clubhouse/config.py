"""
clubhouse.config — YAML Configuration Loader
=============================================

Reads ``config.yaml`` for club identity and policy tuning values (page
sizes, comment length).  Secrets and infrastructure (database URL, JWT
secret, SMTP) come from the environment instead.

Usage::

    from clubhouse.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.club_name)         # "Riverside Red Cross Club"
    print(cfg.default_page_size) # 10
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class ClubhouseConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    club_name: str
    club_motto: str

    # Dashboard
    dashboard_port: int

    # Listing / engagement tuning
    default_page_size: int = 10
    max_page_size: int = 100
    comment_max_length: int = 500


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> ClubhouseConfig:
    """Read *path* and return a :class:`ClubhouseConfig` instance.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    return ClubhouseConfig(
        club_name=raw["club_name"],
        club_motto=raw["club_motto"],
        dashboard_port=int(raw["dashboard_port"]),
        default_page_size=int(raw.get("default_page_size", 10)),
        max_page_size=int(raw.get("max_page_size", 100)),
        comment_max_length=int(raw.get("comment_max_length", 500)),
    )
