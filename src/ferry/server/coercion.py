"""Response coercion — maps handler return values to NormalizedResponse.

Handlers return whatever is natural: text, data, bytes, blobs, files,
streams, or a full ``Response``. ``coerce`` turns each of them into the
same status/headers/body triple. Capability checks run in a fixed order
because the order encodes precedence, not just category membership.
"""

import dataclasses
import enum
import inspect
import io
import json as json_module
import math
from collections.abc import AsyncIterable, AsyncIterator, Iterator, Mapping
from typing import Any
from urllib.parse import quote

import anyio.to_thread

from ferry.context import ResponseState
from ferry.errors import HTTPError
from ferry.http.headers import MutableHeaders
from ferry.http.response import (
    EMPTY,
    NormalizedResponse,
    Response,
    body_allowed,
    iterate_chunks,
)

TEXT_PLAIN = "text/plain;charset=UTF-8"
APPLICATION_JSON = "application/json"
FILE_CHUNK_SIZE = 64 * 1024


# -- Capability predicates --


def is_response(value: object) -> bool:
    """A constructed response: status, headers, and a way to read a body."""
    if isinstance(value, Response):
        return True
    return (
        isinstance(getattr(value, "status", getattr(value, "status_code", None)), int)
        and hasattr(value, "headers")
        and (hasattr(value, "aiter_bytes") or hasattr(value, "iter_bytes"))
    )


def is_stream(value: object) -> bool:
    """A lazy byte producer: async iterable, iterator/generator, or open file."""
    return isinstance(value, (AsyncIterable, Iterator, io.IOBase))


def is_blob(value: object) -> bool:
    """Binary value with a byte length and a declared media type."""
    return (
        isinstance(getattr(value, "size", None), int)
        and isinstance(getattr(value, "type", None), str)
        and callable(getattr(value, "read", None))
    )


def is_buffer(value: object) -> bool:
    return isinstance(value, (bytes, bytearray, memoryview))


def is_number(value: object) -> bool:
    # bool is an int subclass; both serialize through JSON
    return isinstance(value, (int, float))


def is_symbolic(value: object) -> bool:
    """Values with an identity but no data: callables and enum members."""
    return callable(value) or isinstance(value, enum.Enum)


# -- Header helpers --


def content_disposition(filename: str) -> str:
    """``Content-Disposition`` value for a named file.

    Both the quoted fallback and the RFC 5987 extended form carry the
    percent-encoded UTF-8 name, so non-ASCII and spaces survive intact.
    """
    encoded = quote(filename, safe="")
    return f"filename=\"{encoded}\"; filename*=UTF-8''{encoded}"


def _merge_headers(base: MutableHeaders, override: Any) -> list[tuple[str, str]]:
    """Builder headers, with every name present in *override* replaced."""
    merged = MutableHeaders(base.items_list())
    pairs = _header_pairs(override)
    for name in {n.lower() for n, _ in pairs}:
        merged.pop(name, None)
    for name, value in pairs:
        merged.append(name, value)
    return merged.items_list()


def _header_pairs(headers: Any) -> list[tuple[str, str]]:
    if hasattr(headers, "multi_items"):
        return list(headers.multi_items())
    if isinstance(headers, Mapping):
        return list(headers.items())
    return list(headers)


# -- Body producers --


async def read_file(fileobj: Any, chunk_size: int = FILE_CHUNK_SIZE) -> AsyncIterator[bytes]:
    """Pull an open file in chunks without blocking the event loop."""
    try:
        while True:
            chunk = await anyio.to_thread.run_sync(fileobj.read, chunk_size)
            if not chunk:
                break
            yield chunk.encode("utf-8") if isinstance(chunk, str) else chunk
    finally:
        close = getattr(fileobj, "close", None)
        if close is not None:
            close()


async def _foreign_body(value: Any) -> AsyncIterator[bytes]:
    """Body of a response object that is not ours (e.g. ``httpx.Response``)."""
    if hasattr(value, "aiter_bytes"):
        async for chunk in value.aiter_bytes():
            if chunk:
                yield chunk
    else:
        for chunk in value.iter_bytes():
            if chunk:
                yield chunk


def _stream_body(value: Any) -> AsyncIterator[bytes]:
    if isinstance(value, io.IOBase):
        return read_file(value)
    return iterate_chunks(value)


def _symbol_text(value: object) -> str:
    if isinstance(value, enum.Enum):
        return f"Symbol({value.name})"
    name = getattr(value, "__name__", None) or type(value).__name__
    try:
        return f"{name}{inspect.signature(value)}"  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return repr(value)


def _finite(value: Any) -> Any:
    """Copy of *value* with NaN and infinities replaced by None."""
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, Mapping):
        return {key: _finite(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_finite(item) for item in value]
    return value


def _json_default(value: Any) -> Any:
    """Best-effort JSON form for values json doesn't know."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return _finite(dataclasses.asdict(value))
    if isinstance(value, (set, frozenset)):
        return _finite(list(value))
    if is_buffer(value):
        return bytes(value).decode("utf-8", errors="replace")
    if isinstance(value, enum.Enum):
        return value.value
    return str(value)


def _dumps(value: Any) -> str:
    return json_module.dumps(value, default=_json_default, ensure_ascii=False, allow_nan=False)


def to_json(value: Any) -> str:
    """Serialize *value* as strict JSON; circular structures raise ``HTTPError``.

    NaN and infinities become ``null``.
    """
    try:
        try:
            return _dumps(value)
        except ValueError:
            return _dumps(_finite(value))
    except (ValueError, RecursionError) as exc:
        raise HTTPError(
            500,
            None,
            f"Cannot serialize response body: {exc}",
            cause=exc,
            unhandled=True,
        ) from exc


# -- Coercion --


def coerce(value: Any, state: ResponseState | None = None) -> NormalizedResponse:
    """Convert a handler's return value into a ``NormalizedResponse``.

    *state* is the in-progress response of the request: its status and
    headers are kept, and only unset fields are filled here.

    Dispatch order:

    1. ``None`` / ``EMPTY``      -> empty body, current status
    2. ``Response``-like         -> its status, headers and lazy body
    3. async iterable / iterator / file -> lazy stream
    4. blob (``size`` + ``type``) -> bytes, ``Content-Type`` from ``type``
    5. named file (blob + ``name``) -> as 4, plus ``Content-Disposition``
    6. ``bytes`` / ``bytearray`` / ``memoryview`` -> verbatim
    7. ``str``                   -> UTF-8, ``text/plain;charset=UTF-8``
    8. ``int`` / ``float`` / ``bool`` -> JSON text, ``application/json``
    9. callable / enum member    -> readable text form
    10. anything else            -> JSON
    """
    state = state or ResponseState()
    headers = MutableHeaders(state.headers.items_list())
    status = state.status
    status_text = state.status_text
    body: bytes | AsyncIterator[bytes] | None

    if value is None or value is EMPTY:
        body = None

    elif is_response(value):
        status = getattr(value, "status", None)
        if not isinstance(status, int):
            status = value.status_code
        status_text = getattr(value, "status_text", "") or getattr(value, "reason_phrase", "")
        merged = _merge_headers(headers, value.headers)
        headers = MutableHeaders(merged)
        if isinstance(value, Response):
            raw = value.body
            if raw is None:
                body = None
            elif isinstance(raw, str):
                body = raw.encode("utf-8")
                headers.setdefault("Content-Type", TEXT_PLAIN)
            elif is_buffer(raw):
                body = bytes(raw)  # type: ignore[arg-type]
            else:
                body = iterate_chunks(raw)
        else:
            headers.pop("content-length", None)
            headers.pop("content-encoding", None)
            body = _foreign_body(value)

    elif is_stream(value):
        body = _stream_body(value)

    elif is_blob(value):
        body = bytes(value.read())
        if value.type:
            headers.setdefault("Content-Type", value.type)
        name = getattr(value, "name", None)
        if isinstance(name, str) and name:
            headers.setdefault("Content-Disposition", content_disposition(name))

    elif is_buffer(value):
        body = bytes(value)

    elif isinstance(value, str):
        body = value.encode("utf-8")
        headers.setdefault("Content-Type", TEXT_PLAIN)

    elif is_number(value):
        body = to_json(value).encode("utf-8")
        headers.setdefault("Content-Type", APPLICATION_JSON)

    elif is_symbolic(value):
        body = _symbol_text(value).encode("utf-8")
        headers.setdefault("Content-Type", TEXT_PLAIN)

    else:
        body = to_json(value).encode("utf-8")
        headers.setdefault("Content-Type", APPLICATION_JSON)

    if not body_allowed(status):
        body = None

    return NormalizedResponse(
        status=status,
        status_text=status_text,
        headers=tuple(headers.items_list()),
        body=body,
    )

