#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

import codecs
import logging
import os
import threading
from typing import BinaryIO, Optional

from output_sink import OutputSink
from position_store import PositionStore
from tail_model import (
    CycleResult,
    EngineState,
    ReadFaultLimitExceeded,
    StartupError,
    TailSession,
)
from tail_utils import TRACE
from transcoding import Decoding

logger = logging.getLogger(__name__)


class TranscodingTail:
    """
    Resumable "tail -F" that transcodes the input to UTF-8.

    The cursor counts input bytes whose decoded text is already in the output.
    Bytes the decoder holds back (an incomplete multi-byte sequence at the end
    of a read) are read but not yet part of the cursor; on restart they are
    read again. Output append always happens before the cursor is persisted.
    """
    def __init__(
        self,
        session: TailSession,
        decoding: Decoding,
        store: PositionStore,
        sink: OutputSink,
        stop_event: Optional[threading.Event] = None,
        max_read_faults: int = 10,
        max_backoff: float = 30.0,
    ):
        self.session = session
        self.decoding = decoding
        self.store = store
        self.sink = sink
        self.stop_event = stop_event or threading.Event()
        self.max_read_faults = max_read_faults
        self.max_backoff = max_backoff
        self.state = EngineState.INITIALIZING
        self.faults: int = 0
        self.last_error: Optional[BaseException] = None
        self._fp: Optional[BinaryIO] = None
        self._inode: Optional[int] = None
        self._decoder: codecs.IncrementalDecoder = decoding.incremental()
        self._read_pos: int = 0

    @property
    def cursor(self) -> int:
        return self.session.cursor

    def _open_input(self) -> None:
        path = self.session.input_path
        self._fp = open(path, "rb")
        st = os.fstat(self._fp.fileno())
        self._inode = int(getattr(st, "st_ino", 0)) or None

    def open(self) -> None:
        self.state = EngineState.INITIALIZING
        if not self.store.exists():
            logger.info("no position record at %s, starting from 0", self.store.path)
        self.session.cursor = self.store.read()
        try:
            self._open_input()
        except OSError as e:
            raise StartupError(f"cannot open input {self.session.input_path}: {e}") from e
        try:
            self._reset_decoder(self.session.cursor)
        except OSError as e:
            self.close()
            raise StartupError(f"cannot read input {self.session.input_path}: {e}") from e
        try:
            self.sink.open()
        except OSError as e:
            self.close()
            raise StartupError(f"cannot open output {self.session.output_path}: {e}") from e
        logger.info("resuming %s at offset %d", self.session.input_path, self.session.cursor)
        self.state = EngineState.POLLING

    def close(self) -> None:
        if self._fp is not None:
            try:
                self._fp.close()
            except OSError:
                pass
            self._fp = None
        self.sink.close()

    def stop(self) -> None:
        self.stop_event.set()

    def _reset_decoder(self, pos: int) -> None:
        head = None
        if pos > 0 and self._fp is not None:
            # resuming mid-stream: a BOM at the start of the file still decides the codec
            self._fp.seek(0, os.SEEK_SET)
            head = self._fp.read(3)
        self._decoder = self.decoding.incremental(head)
        self._read_pos = pos

    def _restart_from_zero(self, reason: str) -> None:
        logger.warning("%s: %s, resetting offset %d -> 0", self.session.input_path, reason, self.session.cursor)
        self.session.cursor = 0
        self._reset_decoder(0)

    def _check_rotation(self) -> None:
        st = os.stat(self.session.input_path)
        inode = int(getattr(st, "st_ino", 0)) or None
        if inode is not None and self._inode is not None and inode != self._inode:
            # replaced by a new file; the old handle still points at the rotated one
            if self._fp is not None:
                try:
                    self._fp.close()
                except OSError:
                    pass
                self._fp = None
            self._open_input()
            self._restart_from_zero("file was rotated")
            return
        if st.st_size < self._read_pos:
            self._restart_from_zero("file was truncated")

    def poll_once(self) -> CycleResult:
        """
        One POLLING/DRAINING cycle. Read faults are reported as FAULT;
        output and position write failures propagate.
        """
        self.state = EngineState.POLLING
        try:
            self._check_rotation()
            if self._fp is None:
                self._open_input()
            self._fp.seek(self._read_pos, os.SEEK_SET)
            data = self._fp.read()
        except OSError as e:
            self.last_error = e
            logger.error("error reading %s at offset %d: %s", self.session.input_path, self._read_pos, e)
            return CycleResult.FAULT

        if not data:
            logger.debug("EOF reached, waiting...")
            return CycleResult.IDLE

        self.state = EngineState.DRAINING
        text = self._decoder.decode(data, False)
        pending = self._decoder.getstate()[0]
        self._read_pos += len(data)
        new_cursor = self._read_pos - len(pending)
        if new_cursor <= self.session.cursor:
            logger.debug("%d byte(s) held back waiting for the rest of a character", len(pending))
            self.state = EngineState.POLLING
            return CycleResult.PENDING

        if logger.isEnabledFor(TRACE):
            logger.log(TRACE, "decode: [%s]", text)
        self.sink.write(text.encode("utf-8"))
        self.store.write(new_cursor)
        logger.debug("appended %d input byte(s), offset %d -> %d", new_cursor - self.session.cursor, self.session.cursor, new_cursor)
        self.session.cursor = new_cursor
        self.state = EngineState.POLLING
        return CycleResult.DRAINED

    def _backoff(self) -> float:
        return min(self.session.poll_interval * (2 ** (self.faults - 1)), self.max_backoff)

    def run(self) -> None:
        """Poll until the stop event is set. Sleeps only when there is nothing to drain."""
        while not self.stop_event.is_set():
            res = self.poll_once()
            if res == CycleResult.FAULT:
                self.faults += 1
                if self.max_read_faults > 0 and self.faults >= self.max_read_faults:
                    raise ReadFaultLimitExceeded(self.faults, self.last_error)
                delay = self._backoff()
                logger.warning("read fault %d, retrying in %.2fs", self.faults, delay)
                self.stop_event.wait(delay)
                continue
            self.faults = 0
            if res == CycleResult.DRAINED:
                continue
            self.stop_event.wait(self.session.poll_interval)
        self.state = EngineState.STOPPED
        logger.info("stopped at offset %d", self.session.cursor)
