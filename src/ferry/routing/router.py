"""Ordered router with segment-based path matching.

Every registration is checked in the order it was added; ``match``
yields all that apply so the dispatcher can walk them as a chain.
"""

from collections.abc import Callable, Iterator
from typing import Any
from urllib.parse import unquote

from ferry.errors import ConfigurationError
from ferry.routing.route import ANY_METHOD, HTTP_METHODS, PathSegment, Route, RouteMatch


def split_path(path: str) -> list[str]:
    """Split a raw request path into percent-decoded segments.

    Empty segments are dropped, so ``/test`` and ``/test/`` are the
    same path. Decoding happens per segment so an encoded ``/``
    (``%2F``) stays inside its segment.
    """
    path = path.split("?", 1)[0]
    return [unquote(part, errors="replace") for part in path.split("/") if part]


def parse_path(pattern: str) -> tuple[PathSegment, ...]:
    """Parse a route pattern into segments.

    Examples::

        "/users"        -> (PathSegment("users"),)
        "/users/:id"    -> (PathSegment("users"), PathSegment(":id", "param", "id"))
        "/assets/**"    -> (PathSegment("assets"), PathSegment("**", "catch_all", "_"))
        "/assets/**:p"  -> (PathSegment("assets"), PathSegment("**:p", "catch_all", "p"))
    """
    if not pattern.startswith("/"):
        pattern = "/" + pattern

    segments: list[PathSegment] = []
    wildcards = 0
    parts = split_path(pattern)
    for i, part in enumerate(parts):
        if part == "**" or part.startswith("**:"):
            if i != len(parts) - 1:
                msg = f"Catch-all segment must be last in route pattern {pattern!r}."
                raise ConfigurationError(msg)
            name = part[3:] if part.startswith("**:") else "_"
            segments.append(PathSegment(part, "catch_all", name))
        elif part == "*":
            segments.append(PathSegment(part, "param", f"_{wildcards}"))
            wildcards += 1
        elif part.startswith(":"):
            name = part[1:]
            if not name.isidentifier():
                msg = f"Invalid parameter name {name!r} in route pattern {pattern!r}."
                raise ConfigurationError(msg)
            segments.append(PathSegment(part, "param", name))
        else:
            segments.append(PathSegment(part))
    return tuple(segments)


def _match_segments(
    segments: tuple[PathSegment, ...],
    parts: list[str],
    *,
    prefix: bool,
) -> dict[str, str] | None:
    """Match *parts* against *segments*; return params or None."""
    params: dict[str, str] = {}
    for i, seg in enumerate(segments):
        if seg.is_catch_all:
            params[seg.name or "_"] = "/".join(parts[i:])
            return params
        if i >= len(parts):
            return None
        part = parts[i]
        if seg.is_param:
            params[seg.name or f"_{i}"] = part
        elif seg.value != part:
            return None

    if len(parts) > len(segments) and not prefix:
        return None
    return params


class Router:
    """Append-only registration list with ordered matching.

    Usage::

        router = Router()
        router.add_route("GET", "/users/:id", handler)
        router.add_route(ANY_METHOD, "/api", middleware, prefix=True)
        for match in router.match("GET", "/users/42"):
            ...
    """

    __slots__ = ("_routes",)

    def __init__(self) -> None:
        self._routes: list[Route] = []

    def add(self, route: Route) -> None:
        """Append a route. Registration order is match order."""
        self._routes.append(route)

    def add_route(
        self,
        method: str,
        pattern: str | None,
        handler: Callable[..., Any],
        *,
        prefix: bool = False,
    ) -> Route:
        """Validate, build and append a ``Route``."""
        method = method.upper()
        if method != ANY_METHOD and method not in HTTP_METHODS:
            msg = f"Unsupported HTTP method {method!r}."
            raise ConfigurationError(msg)
        if not callable(handler):
            msg = f"Handler for {method} {pattern!r} is not callable: {handler!r}"
            raise ConfigurationError(msg)
        segments = parse_path(pattern) if pattern is not None else ()
        route = Route(method, pattern, handler, segments, prefix)
        self.add(route)
        return route

    @property
    def routes(self) -> list[Route]:
        """All registered routes, in registration order."""
        return list(self._routes)

    def __len__(self) -> int:
        return len(self._routes)

    def match(self, method: str, path: str) -> Iterator[RouteMatch]:
        """Yield every route matching *method* and *path*, in registration order.

        Lazy and restartable: each call walks a snapshot of the current
        registrations, so a new call always starts from the first one.
        """
        method = method.upper()
        parts = split_path(path)
        for route in tuple(self._routes):
            if not route.allows(method):
                continue
            if route.pattern is None:
                yield RouteMatch(route, {})
                continue
            params = _match_segments(route.segments, parts, prefix=route.prefix)
            if params is not None:
                yield RouteMatch(route, params)
