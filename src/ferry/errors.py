"""Ferry exception hierarchy.

Shared across Router, App, dispatcher, and adapters so every module
raises and catches the same types.
"""

import traceback
from collections.abc import Mapping
from http import HTTPStatus
from typing import Any


class FerryError(Exception):
    """Base for all ferry-specific errors."""


class ConfigurationError(FerryError):
    """Raised when app configuration or a route pattern is invalid."""


class BodyConsumed(FerryError):  # noqa: N818
    """The request body stream was already read."""


class StreamAborted(FerryError):  # noqa: N818
    """A response body failed after bytes were already delivered.

    Not representable as an HTTP status: the connection is torn down.
    """


def status_phrase(status: int) -> str:
    """Standard reason phrase for *status*, or an empty string."""
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return ""


class HTTPError(FerryError):
    """An error that maps directly to an HTTP status code.

    Raised by the router, handlers, or stream producers. The dispatcher
    catches every exception and turns it into one of these via
    ``HTTPError.from_exception``.

    ``unhandled`` marks failures that were not expressed as an HTTP error
    (programmer errors). They are served as 500 and flagged to ``on_error``.
    """

    def __init__(
        self,
        status: int = 500,
        status_text: str | None = None,
        message: str | None = None,
        *,
        data: Any = None,
        headers: Mapping[str, str] | tuple[tuple[str, str], ...] = (),
        cause: BaseException | object | None = None,
        unhandled: bool = False,
    ) -> None:
        self.status = status
        self.status_text = status_text or status_phrase(status)
        self.message = message or self.status_text or "HTTPError"
        self.data = data
        if isinstance(headers, Mapping):
            headers = tuple(headers.items())
        self.headers: tuple[tuple[str, str], ...] = tuple(headers)
        self.cause = cause
        self.unhandled = unhandled
        super().__init__(self.message)

    # Alternate spellings; error consumers may read either
    @property
    def status_code(self) -> int:
        return self.status

    @property
    def status_message(self) -> str:
        return self.status_text

    def __str__(self) -> str:
        if self.message and self.message != self.status_text:
            return f"{self.status}: {self.message}"
        return f"{self.status}: {self.status_text}" if self.status_text else str(self.status)

    def __repr__(self) -> str:
        return (
            f"HTTPError(status={self.status!r}, status_text={self.status_text!r},"
            f" unhandled={self.unhandled!r})"
        )

    # -- Construction from arbitrary raised values --

    @classmethod
    def from_exception(cls, value: object) -> "HTTPError":
        """Normalize any raised value into an ``HTTPError``.

        Already-normalized errors are returned as-is. Values carrying a
        numeric status and a status text are treated as recognized HTTP
        errors. Anything else becomes an unhandled 500 with the original
        value kept as ``cause``.
        """
        if isinstance(value, HTTPError):
            return value

        status = _first_attr(value, "status", "status_code", "statusCode")
        status_text = _first_attr(value, "status_text", "statusText", "status_message", "statusMessage")
        if (
            isinstance(status, int)
            and not isinstance(status, bool)
            and 100 <= status <= 599
            and isinstance(status_text, str)
        ):
            message = _first_attr(value, "message", "detail")
            return cls(
                status,
                status_text,
                message if isinstance(message, str) else None,
                data=_first_attr(value, "data"),
                cause=value,
            )

        message = str(value) if value is not None else None
        return cls(500, None, message, cause=value, unhandled=True)

    # -- Wire format --

    def to_json(self, *, debug: bool = False) -> dict[str, Any]:
        """Error payload sent as the response body.

        Both ``status``/``statusCode`` and ``statusText``/``statusMessage``
        are populated. Unhandled messages are only exposed in debug mode.
        """
        message = self.message
        if self.unhandled and not debug:
            message = self.status_text
        payload: dict[str, Any] = {
            "status": self.status,
            "statusCode": self.status,
            "statusText": self.status_text,
            "statusMessage": self.status_text,
            "message": message,
        }
        if self.unhandled:
            payload["unhandled"] = True
        if self.data is not None:
            payload["data"] = self.data
        if debug and isinstance(self.cause, BaseException):
            payload["stack"] = [
                line.rstrip()
                for line in traceback.format_exception(self.cause)
                if line.strip()
            ]
        return payload


def _first_attr(value: object, *names: str) -> Any:
    """Return the first attribute (or mapping key) present on *value*."""
    for name in names:
        if isinstance(value, Mapping):
            if name in value:
                return value[name]
        elif hasattr(value, name):
            return getattr(value, name)
    return None


class NotFound(HTTPError):  # noqa: N818
    """404 — no registration produced a response for the request."""

    def __init__(self, method: str = "", path: str = "") -> None:
        message = f"Cannot find any route matching [{method}] {path}" if path else None
        super().__init__(404, None, message)

