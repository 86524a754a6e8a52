#!/usr/bin/env python3
# -*- coding: utf-8 -*-

# tail_app.py

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

from instance_guard import InstanceGuard, fingerprint
from output_sink import OutputSink
from position_store import PositionStore
from tail_model import (
    ConfigError,
    PositionWriteError,
    ReadFaultLimitExceeded,
    StartupError,
    TailSession,
)
from tailer import TranscodingTail
from transcoding import Decoding, resolve_encoding

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_CONFIG = 2
EXIT_DUPLICATE = 3


@dataclass
class AppConfig:
    input: str
    output: str
    encoding: str
    position: int
    position_path: str
    log_level: str
    poll_interval: float
    max_read_faults: int
    max_backoff: float
    lock_dir: str
    fsync: bool

    def fingerprint_items(self) -> List[Tuple[str, Any]]:
        # lock_dir decides where the lock lives, not which job this is
        return [
            ("input", self.input),
            ("output", self.output),
            ("encoding", self.encoding),
            ("position", self.position),
            ("position_path", self.position_path),
            ("log_level", self.log_level),
            ("poll_interval", self.poll_interval),
            ("max_read_faults", self.max_read_faults),
            ("max_backoff", self.max_backoff),
            ("fsync", self.fsync),
        ]

    def fingerprint(self) -> str:
        return fingerprint(self.fingerprint_items())


class App:
    """
    Startup ordering: encoding label first (no file I/O on a config error),
    then the instance lock, then position/input/output. run() returns an exit code.
    """
    def __init__(self, cfg: AppConfig, stop_event: Optional[threading.Event] = None):
        self.cfg = cfg
        self.stop_event = stop_event or threading.Event()
        self.decoding: Optional[Decoding] = None
        self.guard: Optional[InstanceGuard] = None
        self.engine: Optional[TranscodingTail] = None

    def stop(self) -> None:
        self.stop_event.set()

    def close(self) -> None:
        if self.engine is not None:
            self.engine.close()
        if self.guard is not None:
            self.guard.release()

    def _log_config(self) -> None:
        cfg = self.cfg
        logger.info("input: [%s]", cfg.input)
        logger.info("output: [%s]", cfg.output)
        logger.info("encoding: [%s] (%s)", cfg.encoding, self.decoding.name if self.decoding else "?")
        logger.info("position: [%d]", cfg.position)
        logger.info("position_path: [%s]", cfg.position_path)

    def start(self) -> int:
        """Everything up to the first poll. Returns EXIT_OK when the engine is ready."""
        cfg = self.cfg
        try:
            self.decoding = resolve_encoding(cfg.encoding)
        except ConfigError as e:
            logger.error("%s", e)
            return EXIT_CONFIG

        fp = cfg.fingerprint()
        logger.debug("hash: %s", fp)
        self.guard = InstanceGuard(fp, cfg.lock_dir)
        try:
            held = self.guard.acquire()
        except OSError as e:
            logger.error("cannot create instance lock %s: %s", self.guard.lock_path, e)
            return EXIT_FATAL
        if not held:
            logger.warning("Another instance is already running. [%s -> %s]", cfg.input, cfg.output)
            self.guard = None
            return EXIT_DUPLICATE

        self._log_config()
        session = TailSession(
            input_path=cfg.input,
            output_path=cfg.output,
            encoding=self.decoding.name,
            position_path=cfg.position_path,
            poll_interval=cfg.poll_interval,
        )
        self.engine = TranscodingTail(
            session,
            self.decoding,
            PositionStore(cfg.position_path, fsync=cfg.fsync),
            OutputSink(cfg.output, fsync=cfg.fsync),
            stop_event=self.stop_event,
            max_read_faults=cfg.max_read_faults,
            max_backoff=cfg.max_backoff,
        )
        try:
            self.engine.open()
        except StartupError as e:
            logger.error("%s", e)
            return EXIT_FATAL
        return EXIT_OK

    def run(self) -> int:
        logger.info("==================== start ! ====================")
        try:
            rc = self.start()
            if rc != EXIT_OK:
                return rc
            try:
                self.engine.run()
            except (PositionWriteError, ReadFaultLimitExceeded) as e:
                logger.error("%s", e)
                return EXIT_FATAL
            except OSError as e:
                logger.error("cannot append to %s: %s", self.cfg.output, e)
                return EXIT_FATAL
            return EXIT_OK
        finally:
            self.close()
            logger.info("==================== end ! ====================")
