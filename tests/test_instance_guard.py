from __future__ import annotations

from instance_guard import InstanceGuard, fingerprint


def test_fingerprint_is_deterministic_and_order_free():
    a = fingerprint([("input", "/a"), ("output", "/b"), ("encoding", "sjis")])
    b = fingerprint([("encoding", "sjis"), ("input", "/a"), ("output", "/b")])
    assert a == b
    assert len(a) == 64


def test_fingerprint_changes_with_any_value():
    base = [("input", "/a"), ("output", "/b"), ("poll_interval", 1.0)]
    assert fingerprint(base) != fingerprint([("input", "/c"), ("output", "/b"), ("poll_interval", 1.0)])
    assert fingerprint(base) != fingerprint([("input", "/a"), ("output", "/b"), ("poll_interval", 2.0)])


def test_second_holder_is_refused(tmp_path):
    fp = fingerprint([("input", "/a")])
    first = InstanceGuard(fp, str(tmp_path))
    second = InstanceGuard(fp, str(tmp_path))
    try:
        assert first.acquire()
        assert first.held
        assert not second.acquire()
        assert not second.held
    finally:
        first.release()
        second.release()


def test_lock_is_free_again_after_release(tmp_path):
    fp = fingerprint([("input", "/a")])
    with InstanceGuard(fp, str(tmp_path)) as first:
        assert first.acquire()
    with InstanceGuard(fp, str(tmp_path)) as again:
        assert again.acquire()


def test_different_configurations_coexist(tmp_path):
    one = InstanceGuard(fingerprint([("input", "/a")]), str(tmp_path))
    two = InstanceGuard(fingerprint([("input", "/b")]), str(tmp_path))
    try:
        assert one.acquire()
        assert two.acquire()
    finally:
        one.release()
        two.release()


def test_lock_dir_is_created(tmp_path):
    lock_dir = tmp_path / "locks" / "nested"
    with InstanceGuard("abc", str(lock_dir)) as g:
        assert g.acquire()
        assert lock_dir.is_dir()
