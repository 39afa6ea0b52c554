"""Legacy callback host — serve an App from ``http.server``.

``BaseHTTPRequestHandler`` is the classic mutable request/response
pair: headers are available up front, the body is read incrementally
from ``rfile``, and the response is written piecemeal to ``wfile``
with an explicit end. This module translates that model to ``Request``
and back from ``NormalizedResponse``.

Each request runs on its own event loop (``anyio.run``) inside the
server's handler thread; blocking socket I/O goes through
``anyio.to_thread`` so the loop stays responsive.

Usage::

    server = serve_legacy(app, "127.0.0.1", 8000)
    server.serve_forever()
"""

import asyncio
import functools
import logging
import ssl
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Protocol, TypeAlias

import anyio
import anyio.to_thread

from ferry._internal.invoke import invoke
from ferry.context import RequestContext
from ferry.errors import FerryError, HTTPError, StreamAborted
from ferry.http.headers import Headers, MutableHeaders
from ferry.http.request import Request
from ferry.http.response import NormalizedResponse, Response, body_allowed
from ferry.routing.route import HTTP_METHODS
from ferry.server.handler import close_body

logger = logging.getLogger("ferry.server")

READ_CHUNK_SIZE = 64 * 1024

# Framing is decided here, not by the app
_FRAMING_HEADERS = frozenset({"content-length", "transfer-encoding", "connection"})


class Dispatchable(Protocol):
    """Anything that turns a Request into a NormalizedResponse (an ``App``)."""

    dispatch: Callable[[Request], Awaitable[NormalizedResponse]]


def request_origin(handler: BaseHTTPRequestHandler) -> tuple[str, str]:
    """``(scheme, host)`` as the client sees them.

    Reverse-proxy headers win; otherwise the ``Host`` header and whether
    the socket is TLS-wrapped.
    """
    headers = handler.headers
    proto = headers.get("X-Forwarded-Proto")
    if proto:
        scheme = proto.split(",", 1)[0].strip().lower()
    else:
        scheme = "https" if isinstance(handler.connection, ssl.SSLSocket) else "http"

    host = headers.get("X-Forwarded-Host") or headers.get("Host")
    if host:
        host = host.split(",", 1)[0].strip()
    else:
        server_host, server_port = handler.server.server_address[:2]
        host = f"{server_host}:{server_port}"
    return scheme, host


class _BodyReader:
    """Incremental reader over ``rfile`` (Content-Length or chunked)."""

    def __init__(self, handler: BaseHTTPRequestHandler) -> None:
        self._rfile = handler.rfile
        length = handler.headers.get("Content-Length")
        self._chunked = "chunked" in (handler.headers.get("Transfer-Encoding") or "").lower()
        self._remaining = int(length) if length and length.isdigit() else 0
        self.exhausted = not self._chunked and self._remaining == 0

    async def chunks(self) -> AsyncIterator[bytes]:
        if self._chunked:
            async for chunk in self._read_chunked():
                yield chunk
        else:
            while self._remaining > 0:
                chunk = await anyio.to_thread.run_sync(
                    self._rfile.read, min(self._remaining, READ_CHUNK_SIZE)
                )
                if not chunk:
                    break
                self._remaining -= len(chunk)
                yield chunk
        self.exhausted = True

    async def _read_chunked(self) -> AsyncIterator[bytes]:
        while True:
            line = await anyio.to_thread.run_sync(self._rfile.readline)
            size = int(line.split(b";", 1)[0].strip() or b"0", 16)
            if size == 0:
                # Skip trailers up to the blank line
                while (await anyio.to_thread.run_sync(self._rfile.readline)).strip():
                    pass
                return
            data = await anyio.to_thread.run_sync(self._rfile.read, size)
            await anyio.to_thread.run_sync(self._rfile.readline)
            yield data


def build_request(handler: BaseHTTPRequestHandler, reader: _BodyReader) -> Request:
    """Synthesize a ``Request`` from the handler's parsed request line and headers."""
    scheme, host = request_origin(handler)
    client = handler.client_address
    return Request.build(
        f"{scheme}://{host}{handler.path}",
        method=handler.command,
        headers=list(handler.headers.items()),
        body=reader.chunks(),
        client=(client[0], client[1]) if client else None,
    )


class LegacyRequestHandler(BaseHTTPRequestHandler):
    """Serves every request through ``app.dispatch``.

    Subclassed per app by ``to_legacy_handler``.
    """

    app: Any = None
    protocol_version = "HTTP/1.1"
    server_version = "ferry"

    _headers_sent = False

    def handle_request(self) -> None:
        self._headers_sent = False
        reader = _BodyReader(self)
        try:
            request = build_request(self, reader)
            anyio.run(self._respond, request)
        except StreamAborted:
            self.close_connection = True
        except (BrokenPipeError, ConnectionResetError):
            logger.debug("Client disconnected: %s %s", self.command, self.path)
            self.close_connection = True
        except Exception:
            logger.exception("Request failed before a response was produced: %s %s", self.command, self.path)
            self._release()
        if not reader.exhausted:
            # Unread request body would corrupt the next request on this connection
            self.close_connection = True

    def _release(self) -> None:
        """Free the connection after a failure outside the dispatcher's error path."""
        self.close_connection = True
        if self._headers_sent:
            return
        # Drop whatever a failed header write left buffered
        self._headers_buffer = []
        try:
            self.send_response(500)
            self.send_header("Content-Length", "0")
            self.send_header("Connection", "close")
            self.end_headers()
        except OSError:
            logger.debug("Could not send 500 for %s %s", self.command, self.path, exc_info=True)

    async def _respond(self, request: Request) -> None:
        response = await self.app.dispatch(request)
        await self._write_response(response, head=request.method == "HEAD")

    async def _write_response(self, response: NormalizedResponse, *, head: bool) -> None:
        body = response.body
        if isinstance(body, AsyncIterator):
            try:
                await self._write_stream(response, body, head=head)
            finally:
                await close_body(body)
            return

        self._write_head(response, chunked=False)
        await anyio.to_thread.run_sync(self.end_headers)
        self._headers_sent = True
        if body and not head:
            await self._write(body)

    async def _write_stream(
        self,
        response: NormalizedResponse,
        body: AsyncIterator[bytes],
        *,
        head: bool,
    ) -> None:
        chunked = response.content_length is None
        self._write_head(response, chunked=chunked)
        await anyio.to_thread.run_sync(self.end_headers)
        self._headers_sent = True
        if head:
            return

        async for chunk in body:
            await self._write(b"%x\r\n%b\r\n" % (len(chunk), chunk) if chunked else chunk)
        if chunked:
            await self._write(b"0\r\n\r\n")

    def _write_head(self, response: NormalizedResponse, *, chunked: bool) -> None:
        """Buffer the status line and headers; framing is decided here."""
        self.send_response(response.status, response.reason)
        for name, value in response.headers:
            if name.lower() not in _FRAMING_HEADERS:
                self.send_header(name, value)
        if body_allowed(response.status):
            if chunked:
                self.send_header("Transfer-Encoding", "chunked")
            else:
                self.send_header("Content-Length", str(response.content_length))
        if self.close_connection:
            self.send_header("Connection", "close")

    async def _write(self, data: bytes) -> None:
        await anyio.to_thread.run_sync(self._write_sync, data)

    def _write_sync(self, data: bytes) -> None:
        self.wfile.write(data)
        self.wfile.flush()

    def log_message(self, format: str, *args: Any) -> None:  # noqa: A002
        logger.info("%s - %s", self.address_string(), format % args)


for _method in HTTP_METHODS:
    setattr(LegacyRequestHandler, f"do_{_method}", LegacyRequestHandler.handle_request)


def to_legacy_handler(app: Dispatchable) -> type[LegacyRequestHandler]:
    """A ``BaseHTTPRequestHandler`` class bound to *app*."""
    return type("FerryRequestHandler", (LegacyRequestHandler,), {"app": app})


def serve_legacy(app: Dispatchable, host: str = "127.0.0.1", port: int = 8000) -> ThreadingHTTPServer:
    """Create (but do not start) a threading HTTP server for *app*."""
    return ThreadingHTTPServer((host, port), to_legacy_handler(app))


# -- Callback-style handlers inside the chain --


@dataclass(frozen=True, slots=True)
class LegacyRequest:
    """Read-only request view handed to ``(request, response, next)`` callbacks."""

    method: str
    url: str  # path and query, as on the request line
    headers: Headers
    body: bytes
    params: dict[str, str]


class LegacyResponse:
    """Mutable response a callback writes into.

    Status, headers and body are collected until ``end()``; they then
    become the chain's answer.
    """

    def __init__(self, on_end: Callable[[], None]) -> None:
        self.status_code = 200
        self.status_message = ""
        self.headers = MutableHeaders()
        self.finished = False
        self._chunks: list[bytes] = []
        self._on_end = on_end

    def set_header(self, name: str, value: object) -> None:
        self._check_open()
        self.headers[name] = str(value)

    def get_header(self, name: str) -> str | None:
        return self.headers.get(name)

    def remove_header(self, name: str) -> None:
        self._check_open()
        self.headers.pop(name, None)

    def write(self, data: bytes | str) -> None:
        self._check_open()
        self._chunks.append(data.encode("utf-8") if isinstance(data, str) else bytes(data))

    def end(self, data: bytes | str | None = None) -> None:
        if data is not None:
            self.write(data)
        self._check_open()
        self.finished = True
        self._on_end()

    def _check_open(self) -> None:
        if self.finished:
            msg = "Response already ended."
            raise FerryError(msg)

    def to_response(self) -> Response:
        return Response(
            body=b"".join(self._chunks),
            status=self.status_code,
            headers=tuple(self.headers.items_list()),
            status_text=self.status_message,
        )


LegacyCallback: TypeAlias = Callable[[LegacyRequest, LegacyResponse, Callable[..., None]], Any]


def from_legacy_handler(fn: LegacyCallback) -> Callable[[RequestContext], Awaitable[Response | None]]:
    """Run a ``(request, response, next)`` callback as a chain handler.

    The callback may finish later and from any thread (a timer, a worker
    pool). The chain waits until it calls ``response.end()``, answering
    with what was written, or ``next()``, passing to the next handler.
    ``next(error)`` raises *error* into the normal error path.

    Usage::

        def legacy(request, response, next):
            response.set_header("Content-Type", "text/plain")
            response.end("hello")

        app.use(from_legacy_handler(legacy))
    """

    @functools.wraps(fn)
    async def handler(ctx: RequestContext) -> Response | None:
        loop = asyncio.get_running_loop()
        settled: asyncio.Future[None] = loop.create_future()

        def resolve(error: object) -> None:
            if settled.done():
                return
            if error is None:
                settled.set_result(None)
            elif isinstance(error, BaseException):
                settled.set_exception(error)
            else:
                settled.set_exception(HTTPError.from_exception(error))

        def next_(error: object = None) -> None:
            loop.call_soon_threadsafe(resolve, error)

        query = ctx.url.query
        request = LegacyRequest(
            method=ctx.method,
            url=f"{ctx.path}?{query}" if query else ctx.path,
            headers=ctx.headers,
            body=await ctx.request.body(),
            params=dict(ctx.params),
        )
        response = LegacyResponse(lambda: next_(None))
        await invoke(fn, request, response, next_)
        await settled
        return response.to_response() if response.finished else None

    return handler
