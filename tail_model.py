#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional


class TranstailError(Exception):
    pass


class ConfigError(TranstailError):
    """Bad invocation: surfaced before any file is opened."""


class UnsupportedEncoding(ConfigError):
    def __init__(self, label: str):
        super().__init__(f"Unsupported encoding: {label}")
        self.label = label


class StartupError(TranstailError):
    """Input/output could not be prepared; the engine never starts polling."""


class PositionWriteError(TranstailError):
    pass


class ReadFaultLimitExceeded(TranstailError):
    def __init__(self, faults: int, last_error: Optional[BaseException]):
        super().__init__(f"giving up after {faults} consecutive read faults: {last_error}")
        self.faults = faults
        self.last_error = last_error


class EngineState(str, enum.Enum):
    INITIALIZING = "INITIALIZING"
    POLLING = "POLLING"
    DRAINING = "DRAINING"
    STOPPED = "STOPPED"


class CycleResult(str, enum.Enum):
    IDLE = "IDLE"           # nothing new on the input
    PENDING = "PENDING"     # bytes read but no complete character yet
    DRAINED = "DRAINED"     # text appended and offset persisted
    FAULT = "FAULT"         # stat/read failed, nothing advanced


@dataclass
class TailSession:
    input_path: str
    output_path: str
    encoding: str
    position_path: str
    poll_interval: float
    cursor: int = 0
