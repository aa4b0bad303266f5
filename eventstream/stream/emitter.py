"""
Session emitter: one finite, ordered run of lifecycle events per GET /sse.

    idle -> connecting -> emitting(seq=1..N) -> complete -> closed
                \\______________ aborted (consumer detached) ______/

Each event is handed to the consumer as soon as it exists. Its persistence
write is dispatched as a background task and never awaited on the emission
path, so a slow or failing store cannot delay or reorder the stream.
"""
from __future__ import annotations

import asyncio
import enum
import logging
import threading
from datetime import datetime, timezone
from typing import AsyncIterator, Callable, Optional, Set

from eventstream.schemas import Event, MessageData
from eventstream.stream.sse import format_frame

logger = logging.getLogger(__name__)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class SessionState(str, enum.Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    EMITTING = "emitting"
    COMPLETE = "complete"
    CLOSED = "closed"
    ABORTED = "aborted"


class SessionRegistry:
    """Ids of sessions currently streaming. Shared by every emitter in the process."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._active: Set[str] = set()

    def open(self, session_id: str) -> None:
        with self._lock:
            self._active.add(session_id)

    def close(self, session_id: str) -> None:
        with self._lock:
            self._active.discard(session_id)

    def active(self) -> frozenset:
        with self._lock:
            return frozenset(self._active)


class WriteTracker:
    """
    Bounded set of in-flight persistence writes.

    Writes run in worker threads. Outcomes are only logged. The set exists so
    shutdown can drain it; nothing on the emission path waits on it.
    """

    def __init__(self, limit: int = 64) -> None:
        self._limit = limit
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def dispatch(self, fn: Callable[..., object], *args: object, label: str = "") -> Optional[asyncio.Task]:
        if len(self._tasks) >= self._limit:
            logger.warning("persistence backlog full (%d), dropping write %s", self._limit, label)
            return None

        task = asyncio.get_running_loop().create_task(asyncio.to_thread(fn, *args))
        task.set_name(f"persist:{label}")
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning("persistence write %s cancelled", task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("persistence write %s failed: %s", task.get_name(), exc)
        else:
            logger.debug("persistence write %s stored as id=%s", task.get_name(), task.result())

    async def drain(self, timeout: float = 5.0) -> None:
        if not self._tasks:
            return
        logger.info("draining %d persistence writes", len(self._tasks))
        _, still_running = await asyncio.wait(set(self._tasks), timeout=timeout)
        if still_running:
            logger.warning("%d persistence writes still running after %.1fs", len(still_running), timeout)


class SessionEmitter:
    def __init__(
        self,
        session_id: str,
        *,
        store,
        writes: WriteTracker,
        registry: SessionRegistry,
        size: int = 5,
        interval_s: float = 1.0,
        clock: Callable[[], str] = utc_now_iso,
    ) -> None:
        self.session_id = session_id
        self.size = size
        self.interval_s = interval_s
        self.state = SessionState.IDLE
        self.seq = 0
        self._store = store
        self._writes = writes
        self._registry = registry
        self._clock = clock

    async def run(self) -> AsyncIterator[Event]:
        if self.state is not SessionState.IDLE:
            raise RuntimeError(f"session {self.session_id} already started ({self.state.value})")

        self.state = SessionState.CONNECTING
        self._registry.open(self.session_id)
        logger.info("session %s opened", self.session_id)
        try:
            await self._reset_store()

            yield self._emit(Event(
                type="connecting",
                message="Establishing SSE connection...",
                timestamp=self._clock(),
            ))

            self.state = SessionState.EMITTING
            while self.seq < self.size:
                await asyncio.sleep(self.interval_s)
                self.seq += 1
                now = self._clock()
                yield self._emit(Event(
                    type="message",
                    message=f"Message {self.seq}/{self.size}",
                    data=MessageData(id=self.seq, content=f"Sample data {self.seq}", timestamp=now),
                    timestamp=now,
                ))

            self.state = SessionState.COMPLETE
            done = self._emit(Event(
                type="complete",
                message="All events have been sent",
                timestamp=self._clock(),
            ))
            self.state = SessionState.CLOSED
            yield done
        finally:
            if self.state is not SessionState.CLOSED:
                logger.info("session %s aborted in state %s after %d messages", self.session_id, self.state.value, self.seq)
                self.state = SessionState.ABORTED
            else:
                logger.info("session %s closed", self.session_id)
            self._registry.close(self.session_id)

    async def frames(self) -> AsyncIterator[str]:
        events = self.run()
        try:
            async for event in events:
                yield format_frame(event)
        finally:
            await events.aclose()

    async def _reset_store(self) -> None:
        keep = self._registry.active()
        try:
            deleted = await asyncio.to_thread(self._store.reset_events, keep)
            logger.info("session %s reset store (%s records removed)", self.session_id, deleted)
        except Exception:
            logger.exception("session %s could not reset the store; continuing", self.session_id)

    def _emit(self, event: Event) -> Event:
        label = f"{self.session_id}:{event.type}"
        if event.data is not None:
            label += f":{event.data.id}"
        self._writes.dispatch(self._store.create_event, self.session_id, event, label=label)
        return event
