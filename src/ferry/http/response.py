"""HTTP response types.

``Response`` is the constructible response object: handlers may return
one, and ``App.fetch`` produces one. Built through immutable ``.with_*()``
transformations, with a lazily pulled body.

``NormalizedResponse`` is what the dispatcher hands to adapters: status,
final headers, and a body that is empty, in-memory bytes, or an async
iterator of bytes.
"""

import json as json_module
from collections.abc import AsyncIterable, AsyncIterator, Iterable, Mapping
from dataclasses import dataclass, replace
from typing import Any, TypeAlias

from ferry.errors import status_phrase


class _Empty:
    """Marker for an explicit empty response body.

    ``None`` means "pass to the next handler". Return ``EMPTY`` to
    answer with no body and the current status.
    """

    __slots__ = ()

    def __repr__(self) -> str:
        return "EMPTY"

    def __bool__(self) -> bool:
        return False


EMPTY = _Empty()

ResponseBody: TypeAlias = str | bytes | Iterable[bytes | str] | AsyncIterable[bytes | str] | None


def body_allowed(status: int) -> bool:
    """Whether an HTTP status code permits a response body."""
    # RFC: 1xx, 204, and 304 responses do not include a message body.
    return not (100 <= status < 200 or status in {204, 304})


def _encode(chunk: bytes | bytearray | memoryview | str) -> bytes:
    return chunk.encode("utf-8") if isinstance(chunk, str) else bytes(chunk)


async def iterate_chunks(body: ResponseBody) -> AsyncIterator[bytes]:
    """Yield *body* as non-empty byte chunks, whatever its shape."""
    if body is None:
        return
    if isinstance(body, (str, bytes, bytearray, memoryview)):
        data = _encode(body)
        if data:
            yield data
        return
    if isinstance(body, AsyncIterable):
        async for chunk in body:
            if chunk:
                yield _encode(chunk)
        return
    for chunk in body:
        if chunk:
            yield _encode(chunk)


@dataclass(frozen=True, slots=True)
class Response:
    """An HTTP response built through immutable transformations.

    Construct with a body, then chain ``.with_*()`` calls to set status
    and headers. Each call returns a new ``Response``::

        Response("created", status=201).with_header("Location", "/items/1")

    ``body`` may be text, bytes, or a sync/async iterable of chunks;
    iterables are pulled lazily and never buffered by the framework.
    """

    body: ResponseBody = None
    status: int = 200
    headers: tuple[tuple[str, str], ...] = ()
    status_text: str = ""

    def __post_init__(self) -> None:
        if isinstance(self.headers, Mapping):
            object.__setattr__(self, "headers", tuple(self.headers.items()))
        elif not isinstance(self.headers, tuple):
            object.__setattr__(self, "headers", tuple(self.headers))

    # -- Chainable transformations --

    def with_status(self, status: int, status_text: str = "") -> "Response":
        """Return a new Response with a different status code."""
        return replace(self, status=status, status_text=status_text)

    def with_header(self, name: str, value: str) -> "Response":
        """Return a new Response with an additional header."""
        return replace(self, headers=(*self.headers, (name, value)))

    def with_headers(self, headers: Mapping[str, str]) -> "Response":
        """Return a new Response with additional headers."""
        new = tuple(headers.items())
        return replace(self, headers=(*self.headers, *new))

    def with_content_type(self, content_type: str) -> "Response":
        """Return a new Response with a different content type."""
        kept = tuple((n, v) for n, v in self.headers if n.lower() != "content-type")
        return replace(self, headers=(*kept, ("Content-Type", content_type)))

    # -- Header helpers --

    @property
    def reason(self) -> str:
        return self.status_text or status_phrase(self.status)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def header(self, name: str) -> str | None:
        """First value of header *name* (case-insensitive), or None."""
        name = name.lower()
        for key, value in self.headers:
            if key.lower() == name:
                return value
        return None

    @property
    def content_type(self) -> str | None:
        return self.header("content-type")

    # -- Body access --

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        """Pull the body chunk by chunk."""
        if not body_allowed(self.status):
            return
        async for chunk in iterate_chunks(self.body):
            yield chunk

    async def read(self) -> bytes:
        """Read the whole body."""
        return b"".join([chunk async for chunk in self.iter_bytes()])

    async def text(self) -> str:
        """Body decoded as UTF-8."""
        return (await self.read()).decode("utf-8")

    async def json(self) -> Any:
        """Body parsed as JSON."""
        return json_module.loads(await self.read())


@dataclass(frozen=True, slots=True)
class NormalizedResponse:
    """The dispatcher's final answer, ready for any adapter.

    ``body`` is ``None`` (empty), ``bytes``, or an async iterator of
    byte chunks. Headers are final: nothing mutates them once the
    first streamed byte is pulled.
    """

    status: int = 200
    status_text: str = ""
    headers: tuple[tuple[str, str], ...] = ()
    body: bytes | AsyncIterator[bytes] | None = None

    @property
    def reason(self) -> str:
        return self.status_text or status_phrase(self.status)

    @property
    def is_streaming(self) -> bool:
        return self.body is not None and not isinstance(self.body, bytes)

    @property
    def content_length(self) -> int | None:
        """Known body length, or None for streams without a declared length."""
        declared = self.header("content-length")
        if declared is not None and declared.isdigit():
            return int(declared)
        if self.body is None:
            return 0
        if isinstance(self.body, bytes):
            return len(self.body)
        return None

    def header(self, name: str) -> str | None:
        """First value of header *name* (case-insensitive), or None."""
        name = name.lower()
        for key, value in self.headers:
            if key.lower() == name:
                return value
        return None

    def to_response(self) -> Response:
        """Build the constructible ``Response`` for fetch-style hosts."""
        return Response(
            body=self.body,
            status=self.status,
            headers=self.headers,
            status_text=self.reason,
        )
