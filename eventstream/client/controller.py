"""
Client side of the stream: one logical subscription at a time.

`SessionController` owns the connection handle and the active flag; `start`
and `stop` are the only public mutators. Frames are read on a daemon thread
and every state change happens under one lock, so once `stop()` returns no
further frame reaches the log.
"""
import json
import logging
import threading
from functools import partial
from datetime import datetime, timezone
from typing import Callable, Iterator, List, Optional, Tuple

import requests
from pydantic import ValidationError

from eventstream.client.history import HistoryViewer
from eventstream.schemas import ClientEvent
from eventstream.stream.sse import iter_sse_data
from eventstream.utils.session_id import new_client_event_id

logger = logging.getLogger(__name__)

STREAM_TIMEOUT_S = 30.0


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def decode_frame(data: str) -> Optional[ClientEvent]:
    """
    Frame body -> ClientEvent, filling in missing fields.
    Returns None (and logs) for anything that can't be used.
    """
    try:
        payload = json.loads(data)
    except json.JSONDecodeError as ex:
        logger.warning("failed to parse SSE data %r: %s", data[:200], ex)
        return None

    if not isinstance(payload, dict):
        logger.warning("SSE data is not an object: %r", data[:200])
        return None

    try:
        return ClientEvent(
            id=new_client_event_id(),
            type=payload.get("type") or "message",
            message=payload.get("message") or "",
            data=payload.get("data"),
            timestamp=payload.get("timestamp") or utc_now_iso(),
        )
    except ValidationError as ex:
        logger.warning("dropping SSE event with unexpected shape: %s", ex)
        return None


class StreamConnection:
    """
    One GET on a text/event-stream URL. `closed` plays the role of an
    EventSource readyState of CLOSED: it is set only by `close()`.
    """

    def __init__(self, url: str, timeout: float = STREAM_TIMEOUT_S):
        self.url = url
        self.timeout = timeout
        self.session_id: Optional[str] = None
        self._response: Optional[requests.Response] = None
        self._closed = False
        self._lock = threading.Lock()

    @property
    def closed(self) -> bool:
        return self._closed

    def open(self) -> None:
        r = requests.get(
            self.url,
            stream=True,
            headers={"Accept": "text/event-stream", "Cache-Control": "no-cache"},
            timeout=self.timeout,
        )
        with self._lock:
            if self._closed:
                r.close()
                return
            self._response = r
        r.raise_for_status()
        # SSE is always UTF-8, whatever the Content-Type says
        r.encoding = "utf-8"
        self.session_id = r.headers.get("X-Session-Id")

    def iter_data(self) -> Iterator[str]:
        r = self._response
        if r is None:
            return iter(())
        return iter_sse_data(r.iter_content(chunk_size=None, decode_unicode=True))

    def close(self) -> None:
        with self._lock:
            self._closed = True
            r, self._response = self._response, None
        if r is not None:
            r.close()


class SessionController:
    def __init__(
        self,
        stream_url: Optional[str] = None,
        *,
        opener: Optional[Callable[[], StreamConnection]] = None,
        history: Optional[HistoryViewer] = None,
        on_event: Optional[Callable[[ClientEvent], None]] = None,
        timeout: float = STREAM_TIMEOUT_S,
    ):
        if opener is None:
            if not stream_url:
                raise ValueError("stream_url or opener is required")
            opener = partial(StreamConnection, stream_url, timeout=timeout)

        self._opener = opener
        self._history = history
        self._on_event = on_event

        self._lock = threading.RLock()
        self._events: List[ClientEvent] = []
        self._connection: Optional[StreamConnection] = None
        self._active = False
        self._session_id: Optional[str] = None
        self._done = threading.Event()
        self._done.set()

    # ---------------------------------------------------------
    # Public state
    # ---------------------------------------------------------
    @property
    def active(self) -> bool:
        return self._active

    @property
    def events(self) -> Tuple[ClientEvent, ...]:
        with self._lock:
            return tuple(self._events)

    @property
    def session_id(self) -> Optional[str]:
        return self._session_id

    # ---------------------------------------------------------
    # Mutators
    # ---------------------------------------------------------
    def start(self) -> bool:
        """
        Open a fresh session. Returns False (and does nothing) if one is
        already active.
        """
        with self._lock:
            if self._active:
                return False
            self._events = []
            self._session_id = None
            conn = self._opener()
            self._connection = conn
            self._active = True
            self._done.clear()

        threading.Thread(target=self._read, args=(conn,), name="sse-reader", daemon=True).start()
        return True

    def stop(self) -> None:
        with self._lock:
            if not self._active or self._connection is None:
                return
            logger.info("stopping stream session %s", self._session_id)
            self._finish(self._connection)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the current session ends. False on timeout."""
        return self._done.wait(timeout)

    # ---------------------------------------------------------
    # Reader thread
    # ---------------------------------------------------------
    def _read(self, conn: StreamConnection) -> None:
        try:
            conn.open()
            with self._lock:
                if conn is self._connection:
                    self._session_id = conn.session_id
            for data in conn.iter_data():
                if not self._handle(conn, data):
                    return
        except Exception as ex:
            # A close() from another thread also surfaces here, as whatever
            # urllib3 raises on a released connection.
            self._on_transport_error(conn, ex)
            return
        # Stream ended without a complete event.
        self._on_transport_error(conn, None)

    def _handle(self, conn: StreamConnection, data: str) -> bool:
        """Returns False once this connection should no longer be read."""
        event = decode_frame(data)

        with self._lock:
            if conn is not self._connection or not self._active:
                return False
            if event is None:
                return True
            self._events.append(event)
            is_complete = event.type == "complete"
            if is_complete:
                # Closed before the origin does; wait() is released after the refresh below.
                self._finish(conn, signal=False)
            session_id = self._session_id

        if self._on_event is not None:
            self._on_event(event)
        if not is_complete:
            return True

        if self._history is not None:
            self._history.refresh(session_id)
        with self._lock:
            if self._connection is None:
                self._done.set()
        return False

    def _on_transport_error(self, conn: StreamConnection, ex: Optional[Exception]) -> None:
        with self._lock:
            if conn is not self._connection:
                # Closed by stop(), by the complete event or by a newer start():
                # whatever the read raised is the release of that handle, not an error.
                return

            if ex is not None:
                logger.warning("stream connection error: %s", ex)
            else:
                logger.warning("stream ended before the complete event")
            error = ClientEvent(
                id=new_client_event_id(),
                type="error",
                message="Connection error occurred",
                timestamp=utc_now_iso(),
            )
            self._events.append(error)
            self._finish(conn)

        if self._on_event is not None:
            self._on_event(error)

    def _finish(self, conn: StreamConnection, signal: bool = True) -> None:
        # Caller holds the lock.
        conn.close()
        self._connection = None
        self._active = False
        if signal:
            self._done.set()
