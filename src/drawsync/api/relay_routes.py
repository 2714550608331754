"""Relay routes: /api/anthropic/* and /api/openai/* forwarded to the upstream APIs."""

from __future__ import annotations

import logging
from collections.abc import Iterator

import anyio.from_thread
from fastapi import APIRouter, Request, Response
from fastapi.responses import StreamingResponse
from starlette.concurrency import run_in_threadpool

from drawsync.errors import MethodNotAllowedError
from drawsync.relay import CORS_HEADERS, Relay

logger = logging.getLogger(__name__)

router = APIRouter()

# Every method is routed here so unsupported ones get the relay's 405
_ROUTED_METHODS = ["GET", "POST", "OPTIONS", "PUT", "PATCH", "DELETE", "HEAD"]

_relay: Relay | None = None


def _get_relay() -> Relay:
    global _relay
    if _relay is None:
        _relay = Relay()
        logger.info("Relay ready: %s", ", ".join(r.prefix for r in _relay.routes))
    return _relay


def _body_chunks(request: Request) -> Iterator[bytes]:
    """Yield the inbound body from the worker thread as it arrives, without buffering it."""
    chunks = request.stream()

    async def _next() -> bytes | None:
        try:
            return await chunks.__anext__()
        except StopAsyncIteration:
            return None

    while True:
        chunk = anyio.from_thread.run(_next)
        if chunk is None:
            return
        if chunk:
            yield chunk


@router.api_route("/api/{family}", methods=_ROUTED_METHODS)
@router.api_route("/api/{family}/{rest:path}", methods=_ROUTED_METHODS)
async def relay(request: Request, family: str, rest: str = ""):
    relay = _get_relay()
    path = request.url.path
    if relay.route_for(path) is None:
        return Response("Not Found", status_code=404, headers=CORS_HEADERS)

    body = None
    if request.method not in ("GET", "OPTIONS", "HEAD"):
        body = _body_chunks(request)

    try:
        result = await run_in_threadpool(
            relay.forward,
            request.method,
            path,
            request.url.query,
            dict(request.headers),
            body,
        )
    except MethodNotAllowedError:
        return Response("Method Not Allowed", status_code=405, headers=CORS_HEADERS)

    if result.stream is not None:
        return StreamingResponse(
            result.stream,
            status_code=result.status,
            headers=result.headers,
            media_type=result.headers.get("Content-Type"),
        )
    return Response(content=result.body, status_code=result.status, headers=result.headers)
