"""Upstream relay: forwards authenticated calls to AI provider APIs with CORS headers."""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field

import requests
from requests.structures import CaseInsensitiveDict

from drawsync import config
from drawsync.errors import MethodNotAllowedError

logger = logging.getLogger(__name__)

ALLOWED_METHODS = ("GET", "POST", "OPTIONS")

CORS_HEADERS: dict[str, str] = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": ", ".join(ALLOWED_METHODS),
    "Access-Control-Allow-Headers": (
        "Content-Type, x-api-key, anthropic-version, "
        "anthropic-dangerous-direct-browser-access, Authorization"
    ),
}


@dataclass(frozen=True)
class RelayRoute:
    """One upstream family proxied under a fixed path prefix.

    ``passthrough`` maps inbound header names to a default value. A default
    of None means the header is only forwarded when the caller sent it.
    """

    name: str
    prefix: str
    upstream: str
    passthrough: dict[str, str | None] = field(default_factory=dict)


@dataclass
class RelayResponse:
    """Relayed response. Exactly one of ``body`` / ``stream`` carries the payload."""

    status: int
    headers: dict[str, str]
    body: bytes = b""
    stream: Iterator[bytes] | None = None

    def read(self) -> bytes:
        """Return the full body, draining the stream if there is one."""
        if self.stream is not None:
            self.body = b"".join(self.stream)
            self.stream = None
        return self.body


def default_routes() -> list[RelayRoute]:
    return [
        RelayRoute(
            name="anthropic",
            prefix="/api/anthropic",
            upstream=config.get_upstream_url("anthropic"),
            passthrough={
                "x-api-key": "",
                "anthropic-version": "2023-06-01",
                "anthropic-dangerous-direct-browser-access": "true",
            },
        ),
        RelayRoute(
            name="openai",
            prefix="/api/openai",
            upstream=config.get_upstream_url("openai"),
            passthrough={"Authorization": None},
        ),
    ]


class Relay:
    """Stateless per-request forwarder over a declared upstream table."""

    def __init__(
        self,
        routes: list[RelayRoute] | None = None,
        streaming: bool | None = None,
        session: requests.Session | None = None,
        timeout: float | None = None,
    ) -> None:
        self._routes = routes if routes is not None else default_routes()
        self._streaming = config.RELAY_STREAMING if streaming is None else streaming
        self._session = session or requests.Session()
        self._timeout = timeout if timeout is not None else config.UPSTREAM_TIMEOUT

    @property
    def routes(self) -> list[RelayRoute]:
        return list(self._routes)

    def route_for(self, path: str) -> RelayRoute | None:
        for route in self._routes:
            if path == route.prefix or path.startswith(route.prefix + "/"):
                return route
        return None

    def target_url(self, route: RelayRoute, path: str, query: str = "") -> str:
        """Strip the routing prefix and rebuild the full upstream URL."""
        suffix = path[len(route.prefix):]
        url = f"{route.upstream.rstrip('/')}{suffix}"
        if query:
            url = f"{url}?{query}"
        return url

    def forward(
        self,
        method: str,
        path: str,
        query: str = "",
        headers: Mapping[str, str] | None = None,
        body: bytes | Iterator[bytes] | None = None,
        stream: bool | None = None,
    ) -> RelayResponse:
        """Relay one request.

        Raises:
            MethodNotAllowedError: method is outside GET/POST/OPTIONS.
            ValueError: path matches no declared route.
        """
        method = method.upper()
        if method not in ALLOWED_METHODS:
            raise MethodNotAllowedError(method)
        if method == "OPTIONS":
            return RelayResponse(status=200, headers=dict(CORS_HEADERS))

        route = self.route_for(path)
        if route is None:
            raise ValueError(f"No relay route for path {path!r}")

        inbound = CaseInsensitiveDict(headers or {})
        out_headers = {"Content-Type": "application/json"}
        for name, default in route.passthrough.items():
            value = inbound.get(name, default)
            if value is not None:
                out_headers[name] = value

        url = self.target_url(route, path, query)
        use_stream = self._streaming if stream is None else stream
        logger.info("Proxying %s request to: %s", method, url)
        t0 = time.perf_counter()
        try:
            resp = self._session.request(
                method,
                url,
                headers=out_headers,
                data=body or None,
                stream=use_stream,
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            logger.error("Proxy error for %s: %s", url, e)
            return RelayResponse(
                status=502,
                headers={**CORS_HEADERS, "Content-Type": "application/json"},
                body=_error_body(str(e)),
            )

        resp_headers = {
            **CORS_HEADERS,
            "Content-Type": resp.headers.get("Content-Type") or "application/json",
        }
        logger.debug("Upstream %s answered %d (%.0fms)", route.name, resp.status_code, (time.perf_counter() - t0) * 1000)
        if use_stream:
            return RelayResponse(
                status=resp.status_code,
                headers=resp_headers,
                stream=_iter_upstream(resp),
            )
        return RelayResponse(status=resp.status_code, headers=resp_headers, body=resp.content)


def _iter_upstream(resp: requests.Response) -> Iterator[bytes]:
    try:
        for chunk in resp.iter_content(chunk_size=None):
            if chunk:
                yield chunk
    except requests.RequestException as e:
        # Headers are already sent; the client sees a truncated body
        logger.error("Upstream stream interrupted: %s", e)
    finally:
        resp.close()


def _error_body(details: str) -> bytes:
    return json.dumps({"error": "Failed to proxy request", "details": details}).encode("utf-8")
