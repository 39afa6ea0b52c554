"""Route, PathSegment and RouteMatch frozen dataclasses."""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

ANY_METHOD = "ANY"

HTTP_METHODS = frozenset(
    {"GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "CONNECT", "TRACE"}
)


@dataclass(frozen=True, slots=True)
class PathSegment:
    """A parsed segment of a route pattern.

    Static:    ``/users``   (kind="static")
    Param:     ``/:id``     (kind="param", name="id")
    Wildcard:  ``/*``       (kind="param", name="_0") — one unnamed segment
    Catch-all: ``/**`` or ``/**:rest`` (kind="catch_all") — the remainder
    """

    value: str
    kind: str = "static"
    name: str | None = None

    @property
    def is_param(self) -> bool:
        return self.kind == "param"

    @property
    def is_catch_all(self) -> bool:
        return self.kind == "catch_all"


@dataclass(frozen=True, slots=True)
class Route:
    """A frozen registration.

    ``prefix`` routes (``app.use``) also match every deeper path.
    ``pattern`` of ``None`` matches any path.
    """

    method: str
    pattern: str | None
    handler: Callable[..., Any]
    segments: tuple[PathSegment, ...] = ()
    prefix: bool = False

    @property
    def is_catch_all(self) -> bool:
        return bool(self.segments) and self.segments[-1].is_catch_all

    def allows(self, method: str) -> bool:
        """Whether this registration serves *method* (already upper-cased)."""
        if self.method in (ANY_METHOD, method):
            return True
        return method == "HEAD" and self.method == "GET"


@dataclass(frozen=True, slots=True)
class RouteMatch:
    """Result of a successful route match."""

    route: Route
    params: dict[str, str]
