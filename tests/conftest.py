from __future__ import annotations

import threading
from pathlib import Path

import pytest

from transcoding import resolve_encoding
from tail_model import TailSession
from position_store import PositionStore
from output_sink import OutputSink
from tailer import TranscodingTail


@pytest.fixture
def paths(tmp_path: Path):
    src = tmp_path / "in" / "app.log"
    src.parent.mkdir()
    return {
        "input": src,
        "output": tmp_path / "out" / "app.utf8.log",
        "position": tmp_path / "positions" / "app.log",
    }


@pytest.fixture
def make_tail(paths):
    """Build (not open) an engine over the `paths` fixture; closes everything at teardown."""
    made = []

    def _make(encoding: str = "latin1", poll_interval: float = 0.01, **kw) -> TranscodingTail:
        decoding = resolve_encoding(encoding)
        session = TailSession(
            input_path=str(paths["input"]),
            output_path=str(paths["output"]),
            encoding=decoding.name,
            position_path=str(paths["position"]),
            poll_interval=poll_interval,
        )
        store = kw.pop("store", None) or PositionStore(str(paths["position"]), fsync=False)
        tail = TranscodingTail(
            session,
            decoding,
            store,
            OutputSink(str(paths["output"]), fsync=False),
            stop_event=kw.pop("stop_event", None) or threading.Event(),
            **kw,
        )
        made.append(tail)
        return tail

    yield _make
    for t in made:
        t.close()
