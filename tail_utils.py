#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

import logging
import os
import re
from typing import Optional

TRACE = 5
logging.addLevelName(TRACE, "TRACE")

LOG_LEVELS = ("off", "error", "warn", "info", "debug", "trace")

_LEVELS = {
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
    "trace": TRACE,
}

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def parse_log_level(value: str) -> Optional[int]:
    """None means "off". Unknown names fall back to INFO."""
    v = (value or "").strip().lower()
    if v == "off":
        return None
    return _LEVELS.get(v, logging.INFO)


_handler: Optional[logging.Handler] = None


def setup_logging(value: str) -> None:
    """Stderr logging at the given level name; "off" silences everything. Safe to call twice."""
    global _handler
    level = parse_log_level(value)
    root = logging.getLogger()
    if _handler is not None:
        root.removeHandler(_handler)
        _handler = None
    if level is None:
        root.setLevel(logging.CRITICAL + 1)
        return
    _handler = logging.StreamHandler()
    _handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(_handler)
    root.setLevel(level)


def default_position_path(input_path: str, cwd: Optional[str] = None) -> str:
    """
    <cwd>/positions/<absolute input path>, with ":" turned into a separator
    (drive letters) and the root dropped. Distinct input files never share a record.
    """
    base = cwd if cwd is not None else os.getcwd()
    full = os.path.normpath(os.path.join(base, input_path))
    parts = [p for p in re.split(r"[\\/]+", full.replace(":", "/")) if p not in ("", ".")]
    if not parts:
        raise ValueError(f"cannot derive a position path from {input_path!r}")
    return os.path.join(base, "positions", *parts)


def env_default(name: str, default: Optional[str] = None) -> Optional[str]:
    v = os.environ.get(name)
    if v is None or v == "":
        return default
    return v


def env_flag(name: str, default: bool) -> bool:
    v = env_default(name)
    if v is None:
        return default
    return v.strip().lower() in ("1", "true", "yes", "on")
