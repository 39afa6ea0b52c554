"""Shared fixtures: one app per test, served through every host adapter.

The ``harness`` fixture is parametrized over:

- ``fetch``  — ``App.request`` in-process (Request in, Response out)
- ``asgi``   — the ASGI interface via ``TestClient``
- ``legacy`` — a real ``ThreadingHTTPServer`` using the legacy adapter,
  reached over HTTP with ``httpx``

Hooks are mocks. Errors reported to ``on_error`` are collected, and a
test fails at teardown if any of them was unhandled, unless it is
marked ``allow_unhandled_errors``.
"""

import threading
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any
from unittest.mock import Mock
from urllib.parse import urlsplit

import httpx
import pytest

from ferry.app import App
from ferry.config import AppConfig
from ferry.errors import HTTPError
from ferry.server.legacy import serve_legacy
from ferry.testing import TestClient

TARGETS = ("fetch", "asgi", "legacy")


@dataclass
class Result:
    """A fully read response, whichever host produced it."""

    status: int
    headers: httpx.Headers
    body: bytes

    @property
    def text(self) -> str:
        return self.body.decode("utf-8")

    def json(self) -> Any:
        import json

        return json.loads(self.body)


@dataclass
class Harness:
    target: str
    app: App
    on_request: Mock
    on_error: Mock
    on_response: Mock
    errors: list[HTTPError] = field(default_factory=list)
    base_url: str | None = None

    async def fetch(
        self,
        path: str,
        *,
        method: str = "GET",
        headers: dict[str, str] | None = None,
        body: bytes | None = None,
    ) -> Result:
        headers = dict(headers or {})
        if self.target == "legacy":
            assert self.base_url is not None
            host = urlsplit(self.base_url).netloc
            lowered = {k.lower() for k in headers}
            # Emulate a reverse proxy
            if "host" not in lowered:
                headers["Host"] = host
            if "x-forwarded-host" not in lowered:
                headers["X-Forwarded-Host"] = host
            async with httpx.AsyncClient(base_url=self.base_url) as client:
                res = await client.request(method, path, headers=headers, content=body)
                return Result(res.status_code, res.headers, res.content)

        if self.target == "asgi":
            response = await TestClient(self.app, host="localhost").request(
                method, path, headers=headers, body=body
            )
        else:
            headers.setdefault("Host", "localhost")
            response = await self.app.request(path, method=method, headers=headers, body=body)
        return Result(response.status, httpx.Headers(list(response.headers)), await response.read())


def _make_harness(target: str, *, debug: bool = True) -> Harness:
    errors: list[HTTPError] = []
    on_error = Mock(side_effect=lambda error, ctx: errors.append(error))
    on_request = Mock(return_value=None)
    on_response = Mock(return_value=None)
    app = App(
        AppConfig(
            debug=debug,
            on_request=on_request,
            on_error=on_error,
            on_response=on_response,
        )
    )
    return Harness(target, app, on_request, on_error, on_response, errors)


@pytest.fixture(params=TARGETS)
def harness(request: pytest.FixtureRequest) -> Iterator[Harness]:
    h = _make_harness(request.param)

    server = None
    if h.target == "legacy":
        server = serve_legacy(h.app, "127.0.0.1", 0)
        host, port = server.server_address[:2]
        h.base_url = f"http://{host}:{port}"
        threading.Thread(target=server.serve_forever, daemon=True).start()

    try:
        yield h
    finally:
        if server is not None:
            server.shutdown()
            server.server_close()

    if request.node.get_closest_marker("allow_unhandled_errors") is None:
        unhandled = [e for e in h.errors if e.unhandled]
        if unhandled:
            pytest.fail(f"Unhandled errors reported to on_error: {unhandled!r}")
