import json
import threading
import time

import pytest
import requests

from conftest import wait_until
from eventstream.client.controller import SessionController, StreamConnection, decode_frame


def frame(type_=None, **fields):
    body = dict(fields)
    if type_ is not None:
        body["type"] = type_
    return json.dumps(body)


SESSION = [
    frame("connecting", message="Establishing SSE connection...", timestamp="t0"),
    *[
        frame("message", message=f"Message {i}/5", data={"id": i, "content": f"Sample data {i}", "timestamp": f"t{i}"}, timestamp=f"t{i}")
        for i in range(1, 6)
    ],
    frame("complete", message="All events have been sent", timestamp="t6"),
]


class FakeConnection:
    """
    Stands in for StreamConnection. Yields `frames`, optionally pausing on
    `gate` after `pause_after` frames, then ends, raises or blocks.
    """

    def __init__(self, frames=(), *, open_error=None, error=None, hold=False, pause_after=None):
        self.frames = list(frames)
        self.open_error = open_error
        self.error = error
        self.hold = hold
        self.pause_after = pause_after
        self.gate = threading.Event()
        self.session_id = "sse_fake"
        self._closed = threading.Event()

    @property
    def closed(self):
        return self._closed.is_set()

    def open(self):
        if self.open_error is not None:
            raise self.open_error

    def iter_data(self):
        for i, data in enumerate(self.frames):
            if self.pause_after is not None and i == self.pause_after:
                self.gate.wait(5)
            yield data
        if self.error is not None:
            raise self.error
        if self.hold:
            self._closed.wait(5)
            raise requests.ConnectionError("connection released")

    def close(self):
        self._closed.set()


class FakeHistory:
    def __init__(self):
        self.calls = []

    def refresh(self, session_id=None):
        self.calls.append(session_id)
        return []


def make_controller(*connections, history=None, on_event=None):
    conns = list(connections)
    opened = []

    def opener():
        conn = conns.pop(0)
        opened.append(conn)
        return conn

    ctl = SessionController(opener=opener, history=history, on_event=on_event)
    return ctl, opened


# ---------------------------------------------------------
# decode_frame
# ---------------------------------------------------------
def test_decode_applies_defaults():
    evt = decode_frame("{}")

    assert evt.type == "message"
    assert evt.message == ""
    assert evt.data is None
    assert evt.timestamp.endswith("Z")
    assert evt.id


def test_decode_keeps_payload_fields():
    evt = decode_frame(SESSION[2])

    assert evt.type == "message"
    assert evt.data == {"id": 2, "content": "Sample data 2", "timestamp": "t2"}
    assert evt.timestamp == "t2"


def test_decode_ids_are_unique():
    assert decode_frame("{}").id != decode_frame("{}").id


@pytest.mark.parametrize("data", ["not json", "[1, 2]", '"text"', '{"type": "bogus"}'])
def test_decode_rejects_unusable_frames(data):
    assert decode_frame(data) is None


# ---------------------------------------------------------
# Session lifecycle
# ---------------------------------------------------------
def test_full_session_closes_on_complete_and_refreshes_history():
    history = FakeHistory()
    conn = FakeConnection(SESSION + [frame("message", message="late")], hold=True)
    ctl, _ = make_controller(conn, history=history)

    assert ctl.start() is True
    assert ctl.wait(5)

    types = [e.type for e in ctl.events]
    assert types == ["connecting"] + ["message"] * 5 + ["complete"]
    assert [e.data["id"] for e in ctl.events if e.type == "message"] == [1, 2, 3, 4, 5]
    assert not ctl.active
    assert conn.closed
    assert history.calls == ["sse_fake"]
    assert ctl.session_id == "sse_fake"


def test_start_while_active_is_a_noop():
    conn = FakeConnection(SESSION[:1], hold=True)
    ctl, opened = make_controller(conn)

    assert ctl.start() is True
    assert wait_until(lambda: len(ctl.events) == 1)

    assert ctl.start() is False
    assert len(opened) == 1
    assert len(ctl.events) == 1

    ctl.stop()
    assert not ctl.active


def test_stop_tears_down_and_is_idempotent():
    conn = FakeConnection(SESSION[:2], hold=True)
    ctl, _ = make_controller(conn)

    ctl.stop()  # nothing active yet
    ctl.start()
    assert wait_until(lambda: len(ctl.events) == 2)

    ctl.stop()
    ctl.stop()

    assert conn.closed
    assert not ctl.active
    assert ctl.wait(0)
    # the reader's "connection released" error after stop() is not an error event
    time.sleep(0.1)
    assert [e.type for e in ctl.events] == ["connecting", "message"]


def test_no_frames_processed_after_stop():
    conn = FakeConnection(SESSION, pause_after=1)
    ctl, _ = make_controller(conn)

    ctl.start()
    assert wait_until(lambda: len(ctl.events) == 1)

    ctl.stop()
    conn.gate.set()

    assert not wait_until(lambda: len(ctl.events) > 1, timeout=0.3)


def test_malformed_frame_is_dropped_and_session_continues():
    frames = SESSION[:2] + ["{broken"] + SESSION[2:]
    ctl, _ = make_controller(FakeConnection(frames))

    ctl.start()
    assert ctl.wait(5)

    assert len(ctl.events) == 7
    assert ctl.events[-1].type == "complete"


def test_network_drop_mid_stream_appends_error():
    conn = FakeConnection(SESSION[:3], error=requests.ConnectionError("reset by peer"))
    seen = []
    ctl, _ = make_controller(conn, on_event=seen.append)

    ctl.start()
    assert ctl.wait(5)

    assert [e.type for e in ctl.events] == ["connecting", "message", "message", "error"]
    assert ctl.events[-1].message == "Connection error occurred"
    assert seen[-1].type == "error"
    assert not ctl.active
    assert conn.closed


def test_stream_ending_without_complete_is_an_error():
    ctl, _ = make_controller(FakeConnection(SESSION[:4]))

    ctl.start()
    assert ctl.wait(5)

    assert ctl.events[-1].type == "error"


def test_failed_connect_appends_error():
    history = FakeHistory()
    ctl, _ = make_controller(FakeConnection(open_error=requests.ConnectionError("refused")), history=history)

    ctl.start()
    assert ctl.wait(5)

    assert [e.type for e in ctl.events] == ["error"]
    assert history.calls == []


def test_restart_begins_a_fresh_log():
    first = FakeConnection(SESSION)
    second = FakeConnection(SESSION[:1], hold=True)
    ctl, opened = make_controller(first, second)

    ctl.start()
    assert ctl.wait(5)
    assert len(ctl.events) == 7

    assert ctl.start() is True
    assert wait_until(lambda: len(ctl.events) == 1)
    assert ctl.events[0].type == "connecting"
    assert opened == [first, second]

    ctl.stop()


def test_requires_url_or_opener():
    with pytest.raises(ValueError):
        SessionController()


# ---------------------------------------------------------
# StreamConnection over a faked requests response
# ---------------------------------------------------------
class FakeResponse:
    def __init__(self, chunks, status_code=200, headers=None):
        self.chunks = chunks
        self.status_code = status_code
        self.headers = headers or {"X-Session-Id": "sse_live"}
        self.encoding = None
        self.closed = False

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Server Error")

    def iter_content(self, chunk_size=None, decode_unicode=False):
        assert decode_unicode and self.encoding == "utf-8"
        yield from self.chunks

    def close(self):
        self.closed = True


def test_stream_connection_decodes_frames(monkeypatch):
    resp = FakeResponse(["data: {\"type\":\"connecting\"", ",\"message\":\"x\"}\n", "\ndata: {}\n\n"])
    monkeypatch.setattr(requests, "get", lambda *a, **kw: resp)

    conn = StreamConnection("http://origin/sse")
    conn.open()

    assert conn.session_id == "sse_live"
    assert list(conn.iter_data()) == ['{"type":"connecting","message":"x"}', "{}"]

    conn.close()
    assert conn.closed and resp.closed


def test_stream_connection_raises_on_error_status(monkeypatch):
    monkeypatch.setattr(requests, "get", lambda *a, **kw: FakeResponse([], status_code=500))

    conn = StreamConnection("http://origin/sse")
    with pytest.raises(requests.HTTPError):
        conn.open()


def test_stream_connection_closed_before_open(monkeypatch):
    resp = FakeResponse(["data: {}\n\n"])
    monkeypatch.setattr(requests, "get", lambda *a, **kw: resp)

    conn = StreamConnection("http://origin/sse")
    conn.close()
    conn.open()

    assert resp.closed
    assert list(conn.iter_data()) == []
