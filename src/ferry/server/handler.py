"""Dispatcher — runs the handler chain for one request.

Host-agnostic: takes a ``Request``, returns a ``NormalizedResponse``.
Both adapters (ASGI and the legacy callback host) call ``dispatch``
and only translate at the edges.

Per request::

    on_request -> match -> handler[0] -> handler[1] -> ... -> coerce
                                   \\-> raise -> normalize -> on_error
                -> on_response

A handler returning ``None`` passes to the next match; anything else
short-circuits the chain. Handlers run strictly one at a time.
"""

import inspect
import logging
from collections.abc import AsyncIterator
from contextvars import Token
from typing import cast

from ferry._internal.invoke import invoke
from ferry.config import AppConfig
from ferry.context import RequestContext, context_var
from ferry.errors import HTTPError, NotFound, StreamAborted
from ferry.http.request import Request
from ferry.http.response import NormalizedResponse
from ferry.routing.router import Router
from ferry.server.coercion import coerce
from ferry.server.errors import error_response, log_error

logger = logging.getLogger("ferry.server")


async def dispatch(request: Request, *, router: Router, config: AppConfig) -> NormalizedResponse:
    """Process a single request through hooks, handlers, and coercion.

    Handler failures never escape: they become error responses.
    Exceptions raised by the hooks themselves propagate to the host.
    """
    ctx = RequestContext(request)
    token: Token[RequestContext] = context_var.set(ctx)
    try:
        if config.on_request is not None:
            await invoke(config.on_request, ctx)

        try:
            response = await _run_chain(ctx, router, config)
        except Exception as exc:
            response = await handle_error(HTTPError.from_exception(exc), ctx, config)

        if config.on_response is not None:
            await invoke(config.on_response, response, ctx)
        return response
    finally:
        context_var.reset(token)


async def _run_chain(ctx: RequestContext, router: Router, config: AppConfig) -> NormalizedResponse:
    """Invoke matching handlers in order until one answers."""
    request = ctx.request
    for match in router.match(request.method, request.path):
        ctx.params = match.params
        result = await invoke(match.route.handler, ctx)
        if result is None:
            continue
        response = coerce(result, ctx.response)
        if response.is_streaming:
            response = await _prime(response, ctx, config)
        return response

    raise NotFound(request.method, request.path)


async def handle_error(error: HTTPError, ctx: RequestContext, config: AppConfig) -> NormalizedResponse:
    """Report *error* and build its response.

    ``on_error`` may return a value to answer with instead of the
    default JSON error body.
    """
    log_error(error, ctx.method, ctx.path)
    if config.on_error is not None:
        override = await invoke(config.on_error, error, ctx)
        if override is not None:
            return coerce(override, ctx.response)
    return error_response(error, ctx.response, debug=config.debug)


# -- Streaming --


async def _prime(response: NormalizedResponse, ctx: RequestContext, config: AppConfig) -> NormalizedResponse:
    """Pull the first chunk before headers are committed.

    A producer that fails before yielding anything still becomes a
    clean error response (the exception propagates to the chain's
    error path). Later failures can only abort the connection.
    """
    body = cast(AsyncIterator[bytes], response.body)
    try:
        first = await anext(body, None)
    except BaseException:
        await close_body(body)
        raise

    return NormalizedResponse(
        status=response.status,
        status_text=response.status_text,
        headers=response.headers,
        body=PrimedStream(first, body, ctx, config),
    )


class PrimedStream:
    """Replays the primed chunk, then the rest of the producer.

    A failure after the first chunk is logged, reported to ``on_error``
    and raised as ``StreamAborted``. ``aclose`` stops the producer even
    when iteration never started (HEAD, client gone before the body).
    """

    __slots__ = ("_closed", "_config", "_ctx", "_first", "_rest")

    def __init__(
        self,
        first: bytes | None,
        rest: AsyncIterator[bytes],
        ctx: RequestContext,
        config: AppConfig,
    ) -> None:
        self._first = first
        self._rest = rest
        self._ctx = ctx
        self._config = config
        self._closed = False

    def __aiter__(self) -> "PrimedStream":
        return self

    async def __anext__(self) -> bytes:
        if self._closed:
            raise StopAsyncIteration
        if self._first is not None:
            chunk, self._first = self._first, None
            return chunk
        try:
            return await anext(self._rest)
        except StopAsyncIteration:
            await self.aclose()
            raise
        except Exception as exc:
            await self.aclose()
            error = HTTPError.from_exception(exc)
            logger.error(
                "Response stream failed after headers were sent: %s %s",
                self._ctx.method,
                self._ctx.path,
                exc_info=exc,
            )
            if self._config.on_error is not None:
                await invoke(self._config.on_error, error, self._ctx)
            raise StreamAborted(str(error)) from exc

    async def aclose(self) -> None:
        if not self._closed:
            self._closed = True
            self._first = None
            await close_body(self._rest)


async def close_body(body: AsyncIterator[bytes]) -> None:
    """Stop a body producer so it pulls no further chunks."""
    aclose = getattr(body, "aclose", None)
    if aclose is not None:
        result = aclose()
        if inspect.isawaitable(result):
            await result
