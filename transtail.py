#!/usr/bin/env python3
# -*- coding: utf-8 -*-

from __future__ import annotations

import argparse
import logging
import os
import signal
import sys
import tempfile
from typing import Any, Dict

from tail_app import EXIT_CONFIG, App, AppConfig
from tail_model import ConfigError
from tail_utils import LOG_LEVELS, default_position_path, env_default, env_flag, setup_logging

logger = logging.getLogger("transtail")


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="transtail",
        description="tail a growing file and append it to another file as UTF-8, resumable across restarts",
        epilog="every option can also be given as an upper-case environment variable (INPUT, OUTPUT, ...); flags win",
    )
    p.add_argument("-i", "--input", default=env_default("INPUT"), help="file to tail (env INPUT)")
    p.add_argument("-o", "--output", default=env_default("OUTPUT"), help="file to append decoded text to (env OUTPUT)")
    p.add_argument("-e", "--encoding", default=env_default("ENCODING"), help="source encoding label, e.g. shift_jis, cp1252 (env ENCODING)")
    p.add_argument("-p", "--position", type=int, default=env_default("POSITION", "0"), help="initial offset hint, informational only (env POSITION)")
    p.add_argument("--position-path", default=env_default("POSITION_PATH"), help="position record path; default ./positions/<input> (env POSITION_PATH)")
    p.add_argument("--log-level", default=env_default("LOG_LEVEL", "info"), help="one of " + ", ".join(LOG_LEVELS) + " (env LOG_LEVEL)")
    p.add_argument("--poll-interval", type=float, default=env_default("POLL_INTERVAL", "1.0"), help="idle sleep seconds (env POLL_INTERVAL)")
    p.add_argument("--max-read-faults", type=int, default=env_default("MAX_READ_FAULTS", "10"), help="consecutive read faults before exiting, 0=never (env MAX_READ_FAULTS)")
    p.add_argument("--max-backoff", type=float, default=env_default("MAX_BACKOFF", "30.0"), help="cap for the retry backoff after read faults, seconds (env MAX_BACKOFF)")
    p.add_argument("--lock-dir", default=env_default("LOCK_DIR", tempfile.gettempdir()), help="directory for instance locks (env LOCK_DIR)")
    p.add_argument("--fsync", dest="fsync", action="store_true", default=env_flag("FSYNC", True), help="fsync output and position writes (default)")
    p.add_argument("--no-fsync", dest="fsync", action="store_false", help="do not fsync")
    return p


def build_config(args: argparse.Namespace) -> AppConfig:
    for name in ("input", "output", "encoding"):
        if not getattr(args, name):
            raise ConfigError(f"--{name} (or {name.upper()}) is required")

    log_level = str(args.log_level).strip().lower()
    if log_level not in LOG_LEVELS:
        raise ConfigError(f"invalid log level {args.log_level!r}, expected one of {', '.join(LOG_LEVELS)}")
    if args.position < 0:
        raise ConfigError("--position must be >= 0")
    if args.poll_interval <= 0:
        raise ConfigError("--poll-interval must be > 0")
    if args.max_read_faults < 0:
        raise ConfigError("--max-read-faults must be >= 0")
    if args.max_backoff <= 0:
        raise ConfigError("--max-backoff must be > 0")

    if args.position_path:
        position_path = str(args.position_path)
    else:
        try:
            position_path = default_position_path(str(args.input))
        except ValueError as e:
            raise ConfigError(str(e)) from e

    return AppConfig(
        input=os.path.abspath(str(args.input)),
        output=os.path.abspath(str(args.output)),
        encoding=str(args.encoding).strip(),
        position=int(args.position),
        position_path=os.path.abspath(position_path),
        log_level=log_level,
        poll_interval=float(args.poll_interval),
        max_read_faults=int(args.max_read_faults),
        max_backoff=float(args.max_backoff),
        lock_dir=os.path.abspath(str(args.lock_dir)),
        fsync=bool(args.fsync),
    )


def install_signal_handlers(app: App) -> Dict[int, Any]:
    """SIGINT/SIGTERM only set the stop flag; a cycle in progress always completes."""
    def _stop(signum, _frame):
        logger.info("received signal %d, stopping after the current cycle", signum)
        app.stop()

    previous: Dict[int, Any] = {}
    for name in ("SIGINT", "SIGTERM"):
        sig = getattr(signal, name, None)
        if sig is not None:
            previous[sig] = signal.signal(sig, _stop)
    return previous


def restore_signal_handlers(previous: Dict[int, Any]) -> None:
    for sig, handler in previous.items():
        signal.signal(sig, handler)


def main(argv: list[str]) -> int:
    args = build_arg_parser().parse_args(argv)
    setup_logging(str(args.log_level))
    logger.debug("args: %r", args)

    try:
        cfg = build_config(args)
    except ConfigError as e:
        logger.error("%s", e)
        return EXIT_CONFIG

    app = App(cfg)
    previous = install_signal_handlers(app)
    try:
        return app.run()
    finally:
        restore_signal_handlers(previous)


def _entry() -> None:
    raise SystemExit(main(sys.argv[1:]))


if __name__ == "__main__":
    _entry()
