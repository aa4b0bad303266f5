from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, PlainTextResponse, Response, StreamingResponse

from eventstream.config import configure_logging
from eventstream.proxy.relay import BACKEND_URL, RelayError, open_upstream, pipe, stream_headers
from eventstream.ui.stream import stream_page


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    yield


app = FastAPI(title="Event Stream Proxy", version="0.1.0", lifespan=lifespan)


# ---------------------------------------------------------
# Health
# ---------------------------------------------------------
@app.get("/health")
def health():
    return {"ok": True, "backend_url": BACKEND_URL}


# ---------------------------------------------------------
# Relay (mirrors origin /sse and /events)
# ---------------------------------------------------------
@app.get("/api/sse")
async def relay_sse(request: Request):
    try:
        upstream = await open_upstream("/sse", stream=True)
    except RelayError:
        return PlainTextResponse("Backend SSE endpoint error", status_code=500)

    return StreamingResponse(
        pipe(upstream, request.receive),
        headers=stream_headers(upstream),
    )


@app.get("/api/events")
async def relay_events(request: Request):
    try:
        upstream = await open_upstream("/events", params=dict(request.query_params))
    except RelayError:
        return PlainTextResponse("Backend events endpoint error", status_code=500)

    try:
        return Response(
            content=upstream.response.content,
            status_code=upstream.status_code,
            media_type=upstream.headers.get("Content-Type", "application/json"),
        )
    finally:
        await upstream.aclose()


# ---------------------------------------------------------
# UI
# ---------------------------------------------------------
@app.get("/", response_class=HTMLResponse)
def ui_home():
    return stream_page()
