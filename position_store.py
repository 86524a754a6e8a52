#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

import logging
import os
import tempfile

from tail_model import PositionWriteError

logger = logging.getLogger(__name__)


class PositionStore:
    """
    Single persisted byte offset for one input file.
    The record is the decimal text of the offset, nothing else (no newline).
    Writes go through a temp file + os.replace so a reader never sees a half-written value.
    """
    def __init__(self, path: str, fsync: bool = True):
        self.path = path
        self.fsync = fsync

    def exists(self) -> bool:
        return os.path.isfile(self.path)

    def read(self) -> int:
        try:
            with open(self.path, "r", encoding="ascii", errors="replace") as f:
                raw = f.read()
        except FileNotFoundError:
            logger.debug("no position record at %s, starting from 0", self.path)
            return 0
        except OSError as e:
            logger.warning("cannot read position record %s (%s), starting from 0", self.path, e)
            return 0
        text = raw.strip()
        if not text.isdigit():
            logger.warning("corrupt position record %s: %r, starting from 0", self.path, raw[:40])
            return 0
        return int(text)

    @staticmethod
    def _fsync_dir(path: str) -> None:
        # the rename is durable only once its directory entry is flushed (POSIX only)
        if os.name != "posix":
            return
        fd = os.open(path, os.O_RDONLY)
        try:
            os.fsync(fd)
        finally:
            os.close(fd)

    def write(self, offset: int) -> None:
        if offset < 0:
            raise ValueError(f"offset must be non-negative, got {offset}")
        parent = os.path.dirname(os.path.abspath(self.path))
        tmp = None
        try:
            os.makedirs(parent, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=parent, prefix=".position.", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="ascii") as f:
                f.write(str(int(offset)))
                f.flush()
                if self.fsync:
                    os.fsync(f.fileno())
            os.replace(tmp, self.path)
            tmp = None
            if self.fsync:
                self._fsync_dir(parent)
        except OSError as e:
            raise PositionWriteError(f"cannot persist position {offset} to {self.path}: {e}") from e
        finally:
            if tmp is not None:
                try:
                    os.unlink(tmp)
                except OSError:
                    pass
