"""Application configuration.

AppConfig is a frozen dataclass — immutable after creation, captured by
the App at construction and passed by reference into every dispatch.
"""

from dataclasses import dataclass

from ferry._internal.types import ErrorHook, RequestHook, ResponseHook


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Application configuration. Immutable after creation.

    All fields have defaults. Override what you need::

        config = AppConfig(debug=True, on_error=report)

    Hooks may be sync or async:

    - ``on_request(ctx)`` runs once per request, before any handler.
    - ``on_error(error, ctx)`` receives the normalized ``HTTPError``;
      returning a value replaces the default JSON error body.
    - ``on_response(response, ctx)`` sees the final ``NormalizedResponse``.

    Exceptions raised inside hooks are not caught by the dispatcher.
    """

    # Expose unhandled error messages and stacks in error bodies
    debug: bool = False

    # Global hooks
    on_request: RequestHook | None = None
    on_error: ErrorHook | None = None
    on_response: ResponseHook | None = None
