"""Invoke helpers — call sync or async callables uniformly.

Handlers and hooks can be ``def`` or ``async def``. Any code that calls
user-provided code goes through ``invoke`` so the sync/async check
lives in exactly one place.

Usage::

    from ferry._internal.invoke import invoke

    result = await invoke(handler, ctx)
"""

import inspect
from typing import Any


async def invoke(handler: Any, *args: Any, **kwargs: Any) -> Any:
    """Call a handler and await the result if it's awaitable.

    Works with both sync and async callables::

        # sync: returns immediately, no await needed
        @app.get("/")
        def index(ctx):
            return "hello"

        # async: returns coroutine, awaited automatically
        @app.get("/users/:id")
        async def user(ctx):
            return await load_user(ctx.params["id"])
    """
    result = handler(*args, **kwargs)
    if inspect.isawaitable(result):
        result = await result
    return result
