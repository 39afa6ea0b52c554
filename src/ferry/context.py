"""Per-request dispatch context.

``RequestContext`` is what every handler receives: the immutable
``Request``, the path params of the current match, the in-progress
response state, and a free-form ``context`` dict for middleware to
share data with later handlers.

The context for the running dispatch is also published through a
``ContextVar`` so helpers deep in user code can reach it with
``get_context()``.

Thread safety:
    ``ContextVar`` is task-local under asyncio and thread-local across
    threads. Each dispatch owns its context; nothing is shared between
    requests, so no locks are needed.
"""

from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import SplitResult, urlsplit

from ferry.http.headers import Headers, MutableHeaders
from ferry.http.request import Request


@dataclass(slots=True)
class ResponseState:
    """Mutable response builder seeded with defaults.

    Handlers set status and headers here before returning a plain
    value; coercion keeps what was set and only fills the gaps.
    """

    status: int = 200
    status_text: str = ""
    headers: MutableHeaders = field(default_factory=MutableHeaders)


@dataclass(slots=True)
class RequestContext:
    """Everything a handler needs for one request."""

    request: Request
    params: dict[str, str] = field(default_factory=dict)
    response: ResponseState = field(default_factory=ResponseState)
    context: dict[str, Any] = field(default_factory=dict)

    @property
    def method(self) -> str:
        return self.request.method

    @property
    def url(self) -> SplitResult:
        """Parsed request URL (``scheme``, ``netloc``, ``path``, ``query``)."""
        return urlsplit(self.request.url)

    @property
    def path(self) -> str:
        return self.request.path

    @property
    def headers(self) -> Headers:
        return self.request.headers

    def __repr__(self) -> str:
        return f"RequestContext({self.request.method} {self.request.path})"


# -- Current context --

context_var: ContextVar[RequestContext] = ContextVar("ferry_context")
"""The context of the running dispatch. Set by the dispatcher."""


def get_context() -> RequestContext:
    """Return the context of the request being dispatched.

    Raises ``LookupError`` if called outside a dispatch.
    """
    return context_var.get()
