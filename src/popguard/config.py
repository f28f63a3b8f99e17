# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Guard configuration: defaults, optional YAML file, ``POPGUARD_*`` env overrides.

Precedence (lowest to highest): dataclass defaults, YAML file, environment.
"""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Mapping
from contextlib import suppress
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigError
from .filters import AFFILIATE_PARAM_MARKERS, ALL_SPAM_KEYWORDS, SAME_SITE_GROUPS, SEARCH_ENGINE_HOSTS

DEFAULT_CLASSIFIER_URL = "https://api.blkbeard.ai/api/classify"
DEFAULT_REPORT_URL = "https://api.blkbeard.ai/api/report-spam"
DEFAULT_DB_PATH = str(Path.home() / ".popguard" / "popguard.db")


@dataclass(frozen=True)
class GuardConfig:
    """Immutable engine and adapter configuration."""

    # Condition 1
    gesture_window_ms: float = 500.0
    overlay_score_threshold: int = 3
    # Short-circuits on tab creation
    blocklist_gesture_window_ms: float = 1000.0
    hard_overlay_window_ms: float = 1500.0
    # Content script
    gesture_throttle_ms: float = 100.0
    scan_text_limit: int = 500
    # Collaborators
    classifier_url: str = DEFAULT_CLASSIFIER_URL
    report_url: str = DEFAULT_REPORT_URL
    classifier_timeout_s: float | None = None  # None: rely on the network's own behaviour
    report_timeout_s: float = 10.0
    # Persistence
    db_path: str = DEFAULT_DB_PATH
    # Wordlists
    spam_keywords: tuple[str, ...] = ALL_SPAM_KEYWORDS
    affiliate_markers: tuple[str, ...] = AFFILIATE_PARAM_MARKERS
    search_engine_hosts: frozenset[str] = SEARCH_ENGINE_HOSTS
    same_site_groups: tuple[tuple[str, ...], ...] = SAME_SITE_GROUPS
    # Browser host
    headless: bool = False
    start_url: str = "about:blank"
    # Logging
    json_logs: bool = False
    log_level: str = "INFO"
    extra: dict[str, Any] = field(default_factory=dict)


_FLOAT_FIELDS = (
    "gesture_window_ms",
    "blocklist_gesture_window_ms",
    "hard_overlay_window_ms",
    "gesture_throttle_ms",
    "report_timeout_s",
)
_INT_FIELDS = ("overlay_score_threshold", "scan_text_limit")
_STR_FIELDS = ("classifier_url", "report_url", "db_path", "start_url", "log_level")
_BOOL_FIELDS = ("headless", "json_logs")
_TRUE_VALUES = ("1", "true", "yes", "on")


def _lower_tuple(values: Any, name: str) -> tuple[str, ...]:
    if not isinstance(values, (list, tuple)):
        raise ConfigError(f"{name} must be a list of strings")
    return tuple(str(v).strip().lower() for v in values if v and str(v).strip())


def _coerce(name: str, value: Any) -> Any:
    """Convert a raw YAML/env value to the type of field *name*."""
    try:
        if name in _FLOAT_FIELDS:
            return float(value)
        if name in _INT_FIELDS:
            return int(value)
        if name in _BOOL_FIELDS:
            if isinstance(value, bool):
                return value
            return str(value).strip().lower() in _TRUE_VALUES
        if name == "classifier_timeout_s":
            return None if value in (None, "", "none") else float(value)
        if name in _STR_FIELDS:
            return str(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"invalid value for {name}: {value!r}") from exc

    if name in ("spam_keywords", "affiliate_markers"):
        return _lower_tuple(value, name)
    if name == "search_engine_hosts":
        return frozenset(_lower_tuple(value, name))
    if name == "same_site_groups":
        if not isinstance(value, (list, tuple)):
            raise ConfigError("same_site_groups must be a list of lists")
        return tuple(_lower_tuple(group, name) for group in value)
    raise ConfigError(f"unknown config key: {name}")


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except OSError as exc:
        raise ConfigError(f"cannot read config file {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"invalid YAML in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"config file {path} must contain a mapping")
    return data


def _env_overrides(env: Mapping[str, str]) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for f in dataclasses.fields(GuardConfig):
        if f.name == "extra":
            continue
        raw = env.get(f"POPGUARD_{f.name.upper()}", "").strip()
        if not raw:
            continue
        if f.name in ("spam_keywords", "affiliate_markers", "search_engine_hosts"):
            overrides[f.name] = [part.strip() for part in raw.split(",") if part.strip()]
        elif f.name == "same_site_groups":
            overrides[f.name] = [group.split("+") for group in raw.split(",") if group.strip()]
        else:
            overrides[f.name] = raw
    return overrides


def load_config(path: str | Path | None = None, env: Mapping[str, str] | None = None) -> GuardConfig:
    """Build a ``GuardConfig`` from an optional YAML file and the environment.

    ``POPGUARD_CONFIG`` names the file when *path* is not given.  Unknown keys
    in the file are kept in ``extra`` rather than rejected.

    Raises:
        ConfigError: unreadable file or a value that cannot be coerced.
    """
    env = os.environ if env is None else env
    if path is None:
        path = env.get("POPGUARD_CONFIG", "").strip() or None

    known = {f.name for f in dataclasses.fields(GuardConfig)} - {"extra"}
    values: dict[str, Any] = {}
    extra: dict[str, Any] = {}

    if path is not None:
        for key, value in _read_yaml(Path(path).expanduser()).items():
            if key in known:
                values[key] = _coerce(key, value)
            else:
                extra[key] = value

    for key, value in _env_overrides(env).items():
        values[key] = _coerce(key, value)

    if "db_path" in values:
        with suppress(RuntimeError):
            values["db_path"] = str(Path(values["db_path"]).expanduser())

    return GuardConfig(**values, extra=extra)
