"""Tests for ferry.context — RequestContext and the current-context var."""

import pytest

from ferry.context import RequestContext, ResponseState, context_var, get_context
from ferry.http.request import Request


def _ctx(url: str = "/users/1?x=2") -> RequestContext:
    return RequestContext(Request.build(url, headers={"Host": "example.com", "Accept": "*/*"}))


class TestRequestContext:
    def test_defaults(self) -> None:
        ctx = _ctx()
        assert ctx.params == {}
        assert ctx.context == {}
        assert ctx.response == ResponseState()

    def test_shortcuts(self) -> None:
        ctx = _ctx()
        assert ctx.method == "GET"
        assert ctx.path == "/users/1"
        assert ctx.url.netloc == "example.com"
        assert ctx.url.query == "x=2"
        assert ctx.headers["accept"] == "*/*"

    def test_response_state_is_mutable(self) -> None:
        ctx = _ctx()
        ctx.response.status = 201
        ctx.response.headers["X-A"] = "1"
        assert ctx.response.status == 201
        assert ctx.response.headers["x-a"] == "1"

    def test_states_are_independent(self) -> None:
        a, b = _ctx(), _ctx()
        a.response.headers["X"] = "1"
        assert "x" not in b.response.headers

    def test_repr(self) -> None:
        assert repr(_ctx("/a")) == "RequestContext(GET /a)"


class TestGetContext:
    def test_outside_dispatch(self) -> None:
        with pytest.raises(LookupError):
            get_context()

    def test_inside(self) -> None:
        ctx = _ctx()
        token = context_var.set(ctx)
        try:
            assert get_context() is ctx
        finally:
            context_var.reset(token)
