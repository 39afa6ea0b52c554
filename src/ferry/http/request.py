"""Immutable HTTP request.

Frozen metadata with async, read-once body access. Both host adapters
build one of these; the dispatcher never sees host objects.
"""

from __future__ import annotations

import json as json_module
from collections.abc import AsyncIterable, AsyncIterator, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote, urlsplit

from ferry._internal.asgi import Receive
from ferry.errors import BodyConsumed
from ferry.http.headers import Headers
from ferry.http.query import QueryParams


# Characters left as-is when percent-encoding a request path
PATH_SAFE = "/%:@!$&'()*+,;="


async def _empty() -> AsyncIterator[bytes]:
    return
    yield  # pragma: no cover


async def _once(data: bytes) -> AsyncIterator[bytes]:
    if data:
        yield data


@dataclass(frozen=True, slots=True)
class Request:
    """An immutable HTTP request.

    Metadata (method, url, headers, etc.) is frozen at creation.
    Body is accessed asynchronously via ``.body()``, ``.text()``,
    ``.json()`` or ``.stream()``.
    """

    method: str
    url: str
    path: str
    query: QueryParams
    headers: Headers
    http_version: str = "1.1"
    server: tuple[str, int] | None = None
    client: tuple[str, int] | None = None

    # Private: async body source, pulled lazily and at most once
    _source: AsyncIterable[bytes] | None = field(default=None, repr=False, compare=False)

    # Private: mutable cache for body bytes and stream state
    _cache: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    # -- Computed properties --

    @property
    def content_type(self) -> str | None:
        """The Content-Type header value."""
        return self.headers.get("content-type")

    @property
    def content_length(self) -> int | None:
        """The Content-Length header as int."""
        value = self.headers.get("content-length")
        if value is None:
            return None
        try:
            return int(value)
        except ValueError:
            return None

    @property
    def scheme(self) -> str:
        return urlsplit(self.url).scheme

    @property
    def host(self) -> str:
        return urlsplit(self.url).netloc

    # -- Async body access --

    async def stream(self) -> AsyncIterator[bytes]:
        """Stream the request body in chunks. May only be consumed once."""
        if "_body" in self._cache:
            async for chunk in _once(self._cache["_body"]):
                yield chunk
            return
        if self._cache.get("_streamed"):
            msg = "Request body has already been consumed."
            raise BodyConsumed(msg)
        self._cache["_streamed"] = True
        async for chunk in self._source or _empty():
            if chunk:
                yield chunk

    async def body(self) -> bytes:
        """Read the full request body.

        Result is cached — the source is consumed once, then the same
        bytes are returned on subsequent calls.
        """
        if "_body" in self._cache:
            return self._cache["_body"]
        chunks = [chunk async for chunk in self.stream()]
        result = b"".join(chunks)
        self._cache["_body"] = result
        return result

    async def text(self) -> str:
        """Read the body as text (UTF-8)."""
        raw = await self.body()
        return raw.decode("utf-8")

    async def json(self) -> Any:
        """Parse the body as JSON."""
        raw = await self.body()
        return json_module.loads(raw)

    # -- Factories --

    @classmethod
    def from_asgi(cls, scope: Mapping[str, Any], receive: Receive) -> Request:
        """Create a Request from an ASGI scope and receive callable."""
        headers = Headers(tuple(scope.get("headers", ())))
        scheme = scope.get("scheme", "http")
        server = scope.get("server")
        client = scope.get("client")
        host = headers.get("host")
        if host is None and server:
            host = f"{server[0]}:{server[1]}"
        # raw_path is optional in ASGI; re-encode the decoded path so routing
        # decodes it exactly once
        raw_path = scope.get("raw_path") or quote(scope["path"], safe=PATH_SAFE).encode("ascii")
        path = raw_path.decode("latin-1")
        qs = scope.get("query_string", b"").decode("latin-1")
        url = f"{scheme}://{host or 'localhost'}{path}" + (f"?{qs}" if qs else "")

        async def source() -> AsyncIterator[bytes]:
            while True:
                message = await receive()
                if message["type"] == "http.disconnect":
                    break
                body = message.get("body", b"")
                if body:
                    yield body
                if not message.get("more_body", False):
                    break

        return cls(
            method=scope["method"].upper(),
            url=url,
            path=path,
            query=QueryParams(qs),
            headers=headers,
            http_version=scope.get("http_version", "1.1"),
            server=tuple(server) if server else None,
            client=tuple(client) if client else None,
            _source=source(),
        )

    @classmethod
    def build(
        cls,
        url: str,
        *,
        method: str = "GET",
        headers: Mapping[str, str] | Iterable[tuple[str, str]] | None = None,
        body: bytes | str | AsyncIterable[bytes] | None = None,
        client: tuple[str, int] | None = None,
    ) -> Request:
        """Construct a request directly (fetch-style, no host involved).

        A relative *url* is resolved against ``http://<Host header>`` or
        ``http://localhost``.
        """
        header_obj = Headers.from_pairs(headers or ())
        parts = urlsplit(url)
        if not parts.scheme:
            host = header_obj.get("x-forwarded-host") or header_obj.get("host") or "localhost"
            proto = header_obj.get("x-forwarded-proto") or "http"
            url = f"{proto}://{host}{url if url.startswith('/') else '/' + url}"
            parts = urlsplit(url)

        if isinstance(body, str):
            body = body.encode("utf-8")
        source = _once(body) if isinstance(body, bytes) else body

        return cls(
            method=method.upper(),
            url=url,
            path=parts.path or "/",
            query=QueryParams(parts.query),
            headers=header_obj,
            client=client,
            _source=source,
        )
