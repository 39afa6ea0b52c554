"""Ferry application class.

Holds the configuration and the ordered registrations, and exposes the
three ways in: ASGI (``__call__``), fetch-style (``fetch`` /
``request``), and the legacy callback host (``ferry.server.legacy``).
"""

import logging
from collections.abc import AsyncIterable, AsyncIterator, Callable, Iterable, Mapping
from typing import Any, overload

from ferry._internal.asgi import Receive, Scope, Send
from ferry._internal.types import Handler
from ferry.config import AppConfig
from ferry.errors import ConfigurationError
from ferry.http.request import Request
from ferry.http.response import NormalizedResponse, Response
from ferry.routing.route import ANY_METHOD, Route
from ferry.routing.router import Router
from ferry.server.handler import close_body, dispatch
from ferry.server.sender import send_response

logger = logging.getLogger("ferry.app")


class App:
    """The ferry application.

    Register handlers, then serve. Registration is append-only and
    expected to finish before traffic starts; dispatch only reads the
    registration list.

    Every registration method works directly (chainable)::

        app.get("/1", lambda ctx: "one").use("/2", lambda ctx: "two")

    or as a decorator::

        @app.get("/users/:id")
        async def user(ctx):
            return {"id": ctx.params["id"]}
    """

    __slots__ = ("_router", "config")

    def __init__(self, config: AppConfig | None = None) -> None:
        self.config: AppConfig = config or AppConfig()
        self._router = Router()

    # -- Registration --

    @overload
    def on(self, method: str, pattern: str, handler: None = None) -> Callable[[Handler], Handler]: ...
    @overload
    def on(self, method: str, pattern: str, handler: Handler) -> "App": ...

    def on(self, method: str, pattern: str, handler: Handler | None = None) -> Any:
        """Register *handler* for *method* on *pattern* (exact unless it ends in ``**``)."""
        if handler is None:

            def decorator(func: Handler) -> Handler:
                self._router.add_route(method, pattern, func)
                return func

            return decorator

        self._router.add_route(method, pattern, handler)
        return self

    def use(
        self,
        pattern: str | Handler | None = None,
        handler: Handler | None = None,
        *,
        exact: bool = False,
    ) -> Any:
        """Register middleware for every method.

        Matches *pattern* and every deeper path unless ``exact=True``.
        Without a pattern it matches every request. ``app.use(fn)``
        registers directly; ``@app.use("/api")`` works as a decorator.
        """
        if callable(pattern) and handler is None:
            pattern, handler = None, pattern
        if pattern is not None and not isinstance(pattern, str):
            msg = f"Route pattern must be a string, got {pattern!r}."
            raise ConfigurationError(msg)

        if handler is None:

            def decorator(func: Handler) -> Handler:
                self._router.add_route(ANY_METHOD, pattern, func, prefix=not exact)
                return func

            return decorator

        self._router.add_route(ANY_METHOD, pattern, handler, prefix=not exact)
        return self

    def all(self, pattern: str, handler: Handler | None = None) -> Any:
        """Register *handler* on *pattern* for every method (exact match)."""
        return self.on(ANY_METHOD, pattern, handler)

    def get(self, pattern: str, handler: Handler | None = None) -> Any:
        return self.on("GET", pattern, handler)

    def post(self, pattern: str, handler: Handler | None = None) -> Any:
        return self.on("POST", pattern, handler)

    def put(self, pattern: str, handler: Handler | None = None) -> Any:
        return self.on("PUT", pattern, handler)

    def patch(self, pattern: str, handler: Handler | None = None) -> Any:
        return self.on("PATCH", pattern, handler)

    def delete(self, pattern: str, handler: Handler | None = None) -> Any:
        return self.on("DELETE", pattern, handler)

    def head(self, pattern: str, handler: Handler | None = None) -> Any:
        return self.on("HEAD", pattern, handler)

    def options(self, pattern: str, handler: Handler | None = None) -> Any:
        return self.on("OPTIONS", pattern, handler)

    def connect(self, pattern: str, handler: Handler | None = None) -> Any:
        return self.on("CONNECT", pattern, handler)

    def trace(self, pattern: str, handler: Handler | None = None) -> Any:
        return self.on("TRACE", pattern, handler)

    def mount(self, prefix: str, other: "App") -> "App":
        """Append *other*'s registrations under *prefix*.

        Handlers still see the full request path. Later registrations
        on *other* are not picked up.
        """
        prefix = "/" + prefix.strip("/")
        for route in other.routes:
            if route.pattern is None:
                pattern = prefix
            else:
                pattern = prefix.rstrip("/") + "/" + route.pattern.lstrip("/")
            self._router.add_route(route.method, pattern, route.handler, prefix=route.prefix)
        return self

    @property
    def routes(self) -> list[Route]:
        """All registrations, in match order."""
        return self._router.routes

    # -- Dispatch --

    async def dispatch(self, request: Request) -> NormalizedResponse:
        """Run *request* through hooks and handlers."""
        return await dispatch(request, router=self._router, config=self.config)

    async def fetch(self, request: Request) -> Response:
        """Fetch-style entry: ``Request`` in, ``Response`` out.

        The response body is pulled lazily by whoever reads it.
        """
        response = await self.dispatch(request)
        if request.method == "HEAD":
            if isinstance(response.body, AsyncIterator):
                await close_body(response.body)
            return Response(status=response.status, headers=response.headers, status_text=response.reason)
        return response.to_response()

    async def request(
        self,
        url: str,
        *,
        method: str = "GET",
        headers: Mapping[str, str] | Iterable[tuple[str, str]] | None = None,
        body: bytes | str | AsyncIterable[bytes] | None = None,
    ) -> Response:
        """Build a ``Request`` for *url* and ``fetch`` it."""
        return await self.fetch(Request.build(url, method=method, headers=headers, body=body))

    # -- ASGI --

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """ASGI entry point."""
        if scope["type"] == "lifespan":
            await self._handle_lifespan(receive, send)
            return
        if scope["type"] != "http":
            return

        request = Request.from_asgi(scope, receive)
        response = await self.dispatch(request)
        await send_response(response, send, head=request.method == "HEAD")

    async def _handle_lifespan(self, receive: Receive, send: Send) -> None:
        """Acknowledge ASGI lifespan events; there is nothing to set up."""
        while True:
            message = await receive()
            if message["type"] == "lifespan.startup":
                logger.debug("Serving %d registrations", len(self._router))
                await send({"type": "lifespan.startup.complete"})
            elif message["type"] == "lifespan.shutdown":
                await send({"type": "lifespan.shutdown.complete"})
                return
