from __future__ import annotations

import os
import signal
import threading
import time

import pytest

import transtail as cli
from tail_app import EXIT_CONFIG, EXIT_DUPLICATE, EXIT_OK, App
from instance_guard import InstanceGuard
from tail_model import ConfigError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("INPUT", "OUTPUT", "ENCODING", "POSITION", "POSITION_PATH", "LOG_LEVEL",
                 "POLL_INTERVAL", "MAX_READ_FAULTS", "MAX_BACKOFF", "LOCK_DIR", "FSYNC"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def argv(tmp_path):
    src = tmp_path / "in.log"
    src.write_bytes(b"hello")
    return [
        "--input", str(src),
        "--output", str(tmp_path / "out" / "in.utf8.log"),
        "--encoding", "latin1",
        "--position-path", str(tmp_path / "pos" / "in.log"),
        "--lock-dir", str(tmp_path / "locks"),
        "--log-level", "off",
        "--no-fsync",
    ]


def _config(argv):
    return cli.build_config(cli.build_arg_parser().parse_args(argv))


def _replace(argv, flag, value):
    out = list(argv)
    out[out.index(flag) + 1] = value
    return out


def test_unknown_encoding_exits_before_any_file_io(tmp_path, argv):
    rc = cli.main(_replace(argv, "--encoding", "no-such-charset"))

    assert rc == EXIT_CONFIG
    assert not (tmp_path / "out").exists()
    assert not (tmp_path / "pos").exists()
    assert not (tmp_path / "locks").exists()


def test_missing_required_option_is_a_config_error(tmp_path):
    assert cli.main(["--output", str(tmp_path / "o"), "--encoding", "utf-8", "--log-level", "off"]) == EXIT_CONFIG


def test_environment_fills_in_and_flags_win(tmp_path, monkeypatch):
    monkeypatch.setenv("INPUT", str(tmp_path / "env.log"))
    monkeypatch.setenv("OUTPUT", str(tmp_path / "env.out"))
    monkeypatch.setenv("ENCODING", "cp1252")
    monkeypatch.setenv("POLL_INTERVAL", "0.25")
    monkeypatch.setenv("FSYNC", "0")

    cfg = _config(["--encoding", "shift_jis"])

    assert cfg.input == str(tmp_path / "env.log")
    assert cfg.output == str(tmp_path / "env.out")
    assert cfg.encoding == "shift_jis"
    assert cfg.poll_interval == 0.25
    assert cfg.fsync is False
    assert cfg.log_level == "info"
    assert cfg.position == 0


def test_position_path_defaults_under_cwd(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    cfg = _config(["-i", "/var/log/app.log", "-o", "out.log", "-e", "utf-8"])
    assert cfg.position_path == os.path.join(os.getcwd(), "positions", "var", "log", "app.log")
    assert cfg.output == os.path.join(os.getcwd(), "out.log")


@pytest.mark.parametrize("flag, value", [("--poll-interval", "0"), ("--log-level", "loud"), ("--position", "-1")])
def test_bad_values_are_rejected(argv, flag, value):
    with pytest.raises(ConfigError):
        _config(_replace(argv, flag, value) if flag in argv else argv + [flag, value])


def test_fingerprint_is_stable_across_invocations(argv):
    assert _config(argv).fingerprint() == _config(list(argv)).fingerprint()


def test_lock_dir_does_not_change_fingerprint(argv, tmp_path):
    assert _config(argv).fingerprint() == _config(_replace(argv, "--lock-dir", str(tmp_path / "x"))).fingerprint()


def test_duplicate_instance_exits_with_distinct_status(tmp_path, argv):
    cfg = _config(argv)
    holder = InstanceGuard(cfg.fingerprint(), cfg.lock_dir)
    assert holder.acquire()
    try:
        rc = cli.main(argv)
    finally:
        holder.release()

    assert rc == EXIT_DUPLICATE
    assert rc not in (EXIT_OK, EXIT_CONFIG)
    assert not (tmp_path / "out").exists()
    assert not (tmp_path / "pos").exists()


def test_different_input_may_run_alongside(tmp_path, argv):
    other = tmp_path / "other.log"
    other.write_bytes(b"")
    cfg_a = _config(argv)
    cfg_b = _config(_replace(argv, "--input", str(other)))
    holder = InstanceGuard(cfg_a.fingerprint(), cfg_a.lock_dir)
    assert holder.acquire()
    app = App(cfg_b)
    try:
        assert app.start() == EXIT_OK
    finally:
        app.close()
        holder.release()


def test_one_cycle_end_to_end(tmp_path, argv):
    app = App(_config(argv))
    try:
        assert app.start() == EXIT_OK
        app.engine.poll_once()
    finally:
        app.close()

    assert (tmp_path / "out" / "in.utf8.log").read_bytes() == b"hello"
    assert (tmp_path / "pos" / "in.log").read_text(encoding="ascii") == "5"


def test_stopped_app_exits_cleanly_and_releases_lock(argv):
    cfg = _config(argv)
    stop = threading.Event()
    stop.set()

    assert App(cfg, stop_event=stop).run() == EXIT_OK
    again = InstanceGuard(cfg.fingerprint(), cfg.lock_dir)
    assert again.acquire()
    again.release()


def test_missing_input_file_aborts_startup(tmp_path, argv):
    rc = cli.main(_replace(argv, "--input", str(tmp_path / "missing.log")))
    assert rc == 1
    assert not (tmp_path / "pos").exists()


@pytest.mark.skipif(not hasattr(signal, "SIGTERM") or os.name != "posix", reason="needs POSIX signals")
def test_sigterm_stops_running_app(tmp_path, argv):
    out = tmp_path / "out" / "in.utf8.log"

    def _terminate():
        deadline = time.time() + 5
        while time.time() < deadline and not (out.exists() and out.read_bytes() == b"hello"):
            time.sleep(0.01)
        os.kill(os.getpid(), signal.SIGTERM)

    before = signal.getsignal(signal.SIGTERM)
    killer = threading.Thread(target=_terminate, daemon=True)
    killer.start()
    rc = cli.main(argv + ["--poll-interval", "0.05"])
    killer.join(timeout=5)

    assert rc == EXIT_OK
    assert out.read_bytes() == b"hello"
    assert (tmp_path / "pos" / "in.log").read_text(encoding="ascii") == "5"
    cfg = _config(argv)
    again = InstanceGuard(cfg.fingerprint(), cfg.lock_dir)
    assert again.acquire()
    again.release()
    assert signal.getsignal(signal.SIGTERM) == before
