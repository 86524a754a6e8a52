#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

import hashlib
import json
import logging
import os
from typing import Any, Iterable, Optional, Tuple

from filelock import FileLock, Timeout

logger = logging.getLogger(__name__)


def fingerprint(items: Iterable[Tuple[str, Any]]) -> str:
    """
    Stable SHA-256 over the resolved configuration.
    Keys are sorted so argument order on the command line does not matter.
    """
    canonical = json.dumps(sorted((str(k), v) for k, v in items), separators=(",", ":"), ensure_ascii=True)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class InstanceGuard:
    """
    Host-wide "one process per configuration" lock.
    Backed by an advisory OS lock on <lock_dir>/<fingerprint>.lock, so the kernel
    drops it when the holder dies, however it dies.
    """
    def __init__(self, fingerprint: str, lock_dir: str):
        self.fingerprint = fingerprint
        self.lock_path = os.path.join(lock_dir, f"transtail-{fingerprint}.lock")
        self._lock: Optional[FileLock] = None

    @property
    def held(self) -> bool:
        return self._lock is not None and self._lock.is_locked

    def acquire(self) -> bool:
        if self.held:
            return True
        os.makedirs(os.path.dirname(self.lock_path) or ".", exist_ok=True)
        lock = FileLock(self.lock_path)
        try:
            lock.acquire(timeout=0)
        except Timeout:
            logger.debug("lock %s is held by another process", self.lock_path)
            return False
        self._lock = lock
        logger.debug("acquired instance lock %s", self.lock_path)
        return True

    def release(self) -> None:
        if self._lock is None:
            return
        try:
            self._lock.release()
        finally:
            self._lock = None

    def __enter__(self) -> "InstanceGuard":
        return self

    def __exit__(self, *exc: object) -> None:
        self.release()
