#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

import os
from typing import BinaryIO, Optional


class OutputSink:
    """Append-only byte writer. Each write is flushed (and fsynced) before returning."""
    def __init__(self, path: str, fsync: bool = True):
        self.path = path
        self.fsync = fsync
        self._fp: Optional[BinaryIO] = None

    def open(self) -> None:
        if self._fp is not None:
            return
        parent = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(parent, exist_ok=True)
        self._fp = open(self.path, "ab")

    def write(self, data: bytes) -> int:
        if self._fp is None:
            raise RuntimeError("output sink is not open")
        if not data:
            return 0
        self._fp.write(data)
        self._fp.flush()
        if self.fsync:
            os.fsync(self._fp.fileno())
        return len(data)

    def close(self) -> None:
        if self._fp is None:
            return
        try:
            self._fp.close()
        finally:
            self._fp = None

    def __enter__(self) -> "OutputSink":
        self.open()
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()
