"""
stipend.config — YAML Configuration Loader
===========================================

Reads ``config.yaml`` for the service identity and the activity catalog.
Secrets (``DATABASE_URL``, ``JWT_SECRET``) stay in the environment.

Usage::

    from stipend.config import load_config

    cfg = load_config()          # reads ./config.yaml (or $STIPEND_CONFIG)
    print(cfg.app_name)          # "Stipend"
    print(cfg.catalog().by_id("welcome"))

Example ``config.yaml``::

    app_name: Stipend
    api_port: 8000
    activities:
      - {id: welcome, name: Welcome bonus, reward: 10, policy: once}
      - {id: daily_login, name: Daily Login Bonus, reward: 5, policy: daily}
      - {id: referral, name: Referral bonus, reward: 20, policy: conditional}
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

import yaml

from stipend.engine.activities import (
    DEFAULT_ACTIVITIES,
    Activity,
    ActivityCatalog,
    AvailabilityPolicy,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config.yaml"


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class StipendConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    app_name: str = "Stipend"
    api_port: int = 8000
    activities: tuple[Activity, ...] = DEFAULT_ACTIVITIES

    def catalog(self) -> ActivityCatalog:
        return ActivityCatalog(self.activities)


def _parse_activity(raw: dict) -> Activity:
    try:
        policy = AvailabilityPolicy(str(raw["policy"]).lower())
    except ValueError as exc:
        raise ValueError(
            f"Activity {raw.get('id')!r} has unknown policy {raw['policy']!r}"
        ) from exc
    return Activity(
        id=str(raw["id"]),
        name=str(raw["name"]),
        reward=int(raw["reward"]),
        policy=policy,
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path | None = None) -> StipendConfig:
    """Read *path* and return a :class:`StipendConfig` instance.

    When *path* is omitted, ``$STIPEND_CONFIG`` or ``config.yaml`` is used;
    if that default file does not exist the built-in settings apply.

    Raises
    ------
    FileNotFoundError
        If an explicitly requested file doesn't exist.
    KeyError
        If an activity entry is missing a required key.
    ValueError
        If an activity declares an unknown policy.
    """
    explicit = path is not None or bool(os.getenv("STIPEND_CONFIG"))
    config_path = Path(path or os.getenv("STIPEND_CONFIG") or DEFAULT_CONFIG_PATH)

    if not config_path.exists():
        if explicit:
            raise FileNotFoundError(
                f"Configuration file not found: {config_path.resolve()}\n"
                "Hint: copy config.yaml.example → config.yaml and edit it."
            )
        logger.info("No %s found — using built-in activity catalog", config_path)
        return StipendConfig()

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    activities = tuple(_parse_activity(a) for a in raw.get("activities") or ())

    cfg = StipendConfig(
        app_name=raw.get("app_name", "Stipend"),
        api_port=int(raw.get("api_port", 8000)),
        activities=activities or DEFAULT_ACTIVITIES,
    )
    logger.info(
        "Config loaded from %s — %d activities", config_path, len(cfg.activities)
    )
    return cfg
