"""
spotter.config — YAML Configuration Loader
===========================================

**Why this file exists:**
This module reads ``config.yaml`` for **infrastructure-only** settings
(identity, default timezone, text generator endpoint).  All gameplay tuning
values (base points, multiplier tiers, level table, classifier thresholds)
live in the ``settings`` database table and are read through
:class:`~spotter.engine.cache.ConfigCache`.

Usage::

    from spotter.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.app_name)          # "Spotter"
    print(cfg.default_timezone)  # "America/New_York"
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml


# ---------------------------------------------------------------------------
# Typed settings object — infrastructure/identity only.
# Gameplay tuning lives in the DB ``settings`` table.
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class SpotterConfig:
    """Immutable configuration loaded from ``config.yaml``.

    Contains only infrastructure and identity settings.
    All gameplay tuning is in the ``settings`` DB table and accessed via
    :class:`ConfigCache`.
    """

    # Identity
    app_name: str

    # Calendar days are computed in the member's timezone; this is used
    # when a member row has none.
    default_timezone: str

    # Message generation
    generator_timeout_seconds: float

    # Celebrations
    celebration_queue_size: int

    # Optional
    generator_endpoint: str | None = None  # None → always use fallback templates


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> SpotterConfig:
    """Read *path* and return a :class:`SpotterConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
        Defaults to ``config.yaml`` in the current working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    ValueError
        If ``default_timezone`` is not a valid IANA zone name.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh)

    tz_name = raw.get("default_timezone") or "UTC"
    try:
        ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown default_timezone: {tz_name!r}") from exc

    return SpotterConfig(
        app_name=raw["app_name"],
        default_timezone=tz_name,
        generator_timeout_seconds=float(raw.get("generator_timeout_seconds", 10)),
        celebration_queue_size=int(raw.get("celebration_queue_size", 10)),
        generator_endpoint=raw.get("generator_endpoint") or None,
    )
