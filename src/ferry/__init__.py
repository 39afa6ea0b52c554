"""Ferry — HTTP request dispatch for ASGI and classic http.server hosts.

Register handlers, return whatever is natural, and ferry turns it into
a proper HTTP response: text, JSON data, bytes, blobs and files,
streams, or a full ``Response``.

Basic usage::

    from ferry import App

    app = App()

    @app.get("/hello/:name")
    def hello(ctx):
        return f"Hello, {ctx.params['name']}!"

Serve it with any ASGI server (``app`` is the ASGI callable), or with
the standard library::

    from ferry.server.legacy import serve_legacy
    serve_legacy(app, "127.0.0.1", 8000).serve_forever()
"""

__version__ = "0.1.0"
__all__ = [
    "EMPTY",
    "App",
    "AppConfig",
    "Blob",
    "ConfigurationError",
    "FerryError",
    "File",
    "HTTPError",
    "NormalizedResponse",
    "NotFound",
    "Request",
    "RequestContext",
    "Response",
    "StreamAborted",
    "from_legacy_handler",
    "get_context",
    "to_legacy_handler",
]


def __getattr__(name: str) -> object:
    """Lazy imports for public API.

    Keeps ``import ferry`` fast while providing a clean top-level API.
    """
    if name == "App":
        from ferry.app import App

        return App

    if name == "AppConfig":
        from ferry.config import AppConfig

        return AppConfig

    if name == "Request":
        from ferry.http.request import Request

        return Request

    if name in ("Response", "NormalizedResponse", "EMPTY"):
        from ferry.http import response as _resp

        return getattr(_resp, name)

    if name in ("Blob", "File"):
        from ferry.http import blob as _blob

        return getattr(_blob, name)

    if name in ("RequestContext", "get_context"):
        from ferry import context as _ctx

        return getattr(_ctx, name)

    if name in ("to_legacy_handler", "from_legacy_handler"):
        from ferry.server import legacy as _legacy

        return getattr(_legacy, name)

    if name in ("ConfigurationError", "FerryError", "HTTPError", "NotFound", "StreamAborted"):
        from ferry import errors as _errors

        return getattr(_errors, name)

    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)
