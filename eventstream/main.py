import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, HTTPException
from fastapi.responses import StreamingResponse

from eventstream.config import configure_logging, load_stream_config
from eventstream.schemas import EventRecord
from eventstream.storage.db import EventStore, init_db, list_events, delete_events
from eventstream.stream.emitter import SessionEmitter, SessionRegistry, WriteTracker
from eventstream.utils.session_id import new_session_id, normalize_session_id

logger = logging.getLogger(__name__)

stream_config = load_stream_config()
store = EventStore()
registry = SessionRegistry()
writes = WriteTracker(limit=stream_config.max_pending_writes)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    init_db()
    yield
    await writes.drain(timeout=stream_config.drain_timeout_s)


app = FastAPI(title="Event Stream Origin", version="0.1.0", lifespan=lifespan)


# ---------------------------------------------------------
# Health
# ---------------------------------------------------------
@app.get("/health")
def health():
    return {"ok": True, "active_sessions": len(registry.active())}


# ---------------------------------------------------------
# Live stream
# ---------------------------------------------------------
@app.get("/sse")
def sse():
    session_id = new_session_id()
    emitter = SessionEmitter(
        session_id,
        store=store,
        writes=writes,
        registry=registry,
        size=stream_config.session_size,
        interval_s=stream_config.interval_s,
    )
    return StreamingResponse(
        emitter.frames(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
            "X-Session-Id": session_id,
        },
    )


# ---------------------------------------------------------
# History
# ---------------------------------------------------------
@app.get("/events", response_model=List[EventRecord])
def events(session_id: str = "", limit: Optional[int] = None):
    if limit is not None and limit < 1:
        raise HTTPException(status_code=400, detail="limit must be >= 1")
    return list_events(session_id=normalize_session_id(session_id) or None, limit=limit)


@app.delete("/events")
def clear_events():
    deleted = delete_events(keep=registry.active())
    logger.info("cleared %d event records", deleted)
    return {"deleted": deleted}
