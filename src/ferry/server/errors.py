"""Error pipeline — turns a normalized HTTPError into a response.

Every failure the dispatcher catches ends up here: routing misses,
HTTP errors raised on purpose, and unexpected exceptions.
"""

import json as json_module
import logging

from ferry.context import ResponseState
from ferry.errors import HTTPError
from ferry.http.headers import MutableHeaders
from ferry.http.response import NormalizedResponse, body_allowed

logger = logging.getLogger("ferry.server")


def log_error(error: HTTPError, method: str, path: str) -> None:
    """Log at a level that matches how surprising the error is."""
    if error.unhandled:
        cause = error.cause if isinstance(error.cause, BaseException) else None
        logger.error("%d %s %s", error.status, method, path, exc_info=cause)
    else:
        logger.debug("%d %s %s: %s", error.status, method, path, error.message)


def error_response(
    error: HTTPError,
    state: ResponseState | None = None,
    *,
    debug: bool = False,
) -> NormalizedResponse:
    """JSON error response for *error*.

    Headers already set on the in-progress response are kept (except
    body framing), then the error's own headers are applied on top.
    """
    headers = MutableHeaders(state.headers.items_list() if state else ())
    for name in ("content-type", "content-length", "content-disposition", "transfer-encoding"):
        headers.pop(name, None)
    for name, value in error.headers:
        headers[name] = value

    body: bytes | None = None
    if body_allowed(error.status):
        headers["Content-Type"] = "application/json"
        payload = error.to_json(debug=debug)
        body = json_module.dumps(payload, default=str, ensure_ascii=False).encode("utf-8")

    return NormalizedResponse(
        status=error.status,
        status_text=error.status_text,
        headers=tuple(headers.items_list()),
        body=body,
    )
