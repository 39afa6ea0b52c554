"""Shared type aliases used across ferry modules."""

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, TypeAlias

if TYPE_CHECKING:
    from ferry.context import RequestContext

# Route handler: receives the request context, returns any value
Handler: TypeAlias = Callable[["RequestContext"], Any | Awaitable[Any]]

# Global hooks
RequestHook: TypeAlias = Callable[..., Any]
ErrorHook: TypeAlias = Callable[..., Any]
ResponseHook: TypeAlias = Callable[..., Any]
