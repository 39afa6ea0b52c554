"""ASGI response sending — translates NormalizedResponse to ASGI messages.

Handles both single-body responses and streamed bodies. Framing of
streamed bodies (chunked or otherwise) is left to the ASGI server.
"""

import logging
from collections.abc import AsyncIterator

from ferry._internal.asgi import Send
from ferry.http.response import NormalizedResponse, body_allowed
from ferry.server.handler import close_body

logger = logging.getLogger("ferry.server")


def _raw_headers(response: NormalizedResponse, *, head: bool) -> list[tuple[bytes, bytes]]:
    raw_headers = [
        (name.lower().encode("latin-1"), value.encode("latin-1"))
        for name, value in response.headers
        if name.lower() != "transfer-encoding"
    ]
    has_length = any(name == b"content-length" for name, _ in raw_headers)
    length = response.content_length
    if not has_length and length is not None and body_allowed(response.status):
        if not (head and response.is_streaming):
            raw_headers.append((b"content-length", str(length).encode("latin-1")))
    return raw_headers


async def send_response(response: NormalizedResponse, send: Send, *, head: bool = False) -> None:
    """Translate a NormalizedResponse into ASGI send() calls.

    For streamed bodies, headers go out first, then each chunk as an
    ASGI body message with ``more_body=True``. If ``send`` fails (client
    gone) or the producer aborts, the producer is closed and the error
    propagates so the server tears the connection down.
    """
    await send(
        {
            "type": "http.response.start",
            "status": response.status,
            "headers": _raw_headers(response, head=head),
        }
    )

    body = response.body
    if body is None or head or isinstance(body, bytes):
        if isinstance(body, AsyncIterator):
            await close_body(body)
        await send(
            {
                "type": "http.response.body",
                "body": body if isinstance(body, bytes) and not head else b"",
            }
        )
        return

    try:
        async for chunk in body:
            await send(
                {
                    "type": "http.response.body",
                    "body": chunk,
                    "more_body": True,
                }
            )
    finally:
        await close_body(body)

    await send(
        {
            "type": "http.response.body",
            "body": b"",
            "more_body": False,
        }
    )
