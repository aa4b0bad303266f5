# Pass-through hop to the origin. Bytes are forwarded, never parsed.
import asyncio
import logging
import os
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional

import httpx

BACKEND_URL = os.getenv("BACKEND_URL", "http://localhost:3100").rstrip("/")
RELAY_TIMEOUT_S = float(os.getenv("RELAY_TIMEOUT_S", "30"))

# Origin headers worth carrying downstream on a live stream
FORWARDED_HEADERS = ("Content-Type", "X-Session-Id")

logger = logging.getLogger(__name__)

Receive = Callable[[], Awaitable[Dict[str, Any]]]


class RelayError(RuntimeError):
    """Origin unreachable or answered with a non-success status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class Upstream:
    """An origin response and the client that owns its connection."""

    def __init__(self, client: httpx.AsyncClient, response: httpx.Response):
        self.client = client
        self.response = response

    @property
    def status_code(self) -> int:
        return self.response.status_code

    @property
    def headers(self) -> httpx.Headers:
        return self.response.headers

    async def aclose(self) -> None:
        await self.response.aclose()
        await self.client.aclose()


def make_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(base_url=BACKEND_URL, timeout=RELAY_TIMEOUT_S)


async def open_upstream(
    path: str,
    params: Optional[Dict[str, Any]] = None,
    stream: bool = False,
) -> Upstream:
    """
    One upstream request per downstream request.
    A non-2xx response is closed here so its body is never forwarded.
    """
    url = f"{BACKEND_URL}{path}"
    client = make_client()
    try:
        request = client.build_request("GET", path, params=params or None)
        r = await client.send(request, stream=stream)
    except httpx.HTTPError as ex:
        await client.aclose()
        logger.warning("origin unreachable at %s: %s", url, ex)
        raise RelayError(f"origin unreachable: {ex}") from ex

    if not 200 <= r.status_code < 300:
        logger.warning("origin answered %s for %s", r.status_code, url)
        await r.aclose()
        await client.aclose()
        raise RelayError(f"origin returned {r.status_code}", status_code=r.status_code)

    return Upstream(client, r)


async def _disconnected(receive: Receive) -> None:
    while True:
        message = await receive()
        if message["type"] == "http.disconnect":
            return


async def _next_chunk(chunks: AsyncIterator[bytes]) -> Optional[bytes]:
    try:
        return await chunks.__anext__()
    except StopAsyncIteration:
        return None


async def pipe(upstream: Upstream, receive: Optional[Receive] = None) -> AsyncIterator[bytes]:
    """
    Yields origin bytes as they arrive.

    With `receive` (the downstream ASGI channel), a client disconnect
    cancels the pending upstream read and closes the origin connection
    immediately, so the origin can cancel its session before its next
    tick instead of after it.
    """
    chunks = upstream.response.aiter_raw()
    gone = asyncio.ensure_future(_disconnected(receive)) if receive is not None else None
    read: Optional[asyncio.Future] = None
    try:
        while True:
            read = asyncio.ensure_future(_next_chunk(chunks))
            if gone is not None:
                await asyncio.wait({read, gone}, return_when=asyncio.FIRST_COMPLETED)
                if not read.done():
                    logger.info("downstream disconnected, closing upstream")
                    break
            chunk = await read
            if chunk is None:
                break
            if chunk:
                yield chunk
    except httpx.HTTPError as ex:
        # Origin dropped mid-stream: end the downstream body; the client sees a disconnect.
        logger.warning("upstream stream ended abruptly: %s", ex)
    finally:
        if read is not None and not read.done():
            read.cancel()
        if gone is not None:
            gone.cancel()
        await asyncio.shield(upstream.aclose())


def stream_headers(upstream: Upstream) -> Dict[str, str]:
    headers = {
        "Cache-Control": "no-cache",
        "X-Accel-Buffering": "no",
    }
    for name in FORWARDED_HEADERS:
        value = upstream.headers.get(name)
        if value:
            headers[name] = value
    headers.setdefault("Content-Type", "text/event-stream")
    return headers
