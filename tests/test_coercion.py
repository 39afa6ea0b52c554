"""Tests for ferry.server.coercion — return value to NormalizedResponse."""

import dataclasses
import enum
import io
import json

import pytest

from ferry.context import ResponseState
from ferry.errors import HTTPError
from ferry.http.blob import Blob, File
from ferry.http.headers import MutableHeaders
from ferry.http.response import EMPTY, NormalizedResponse, Response
from ferry.server.coercion import (
    APPLICATION_JSON,
    TEXT_PLAIN,
    coerce,
    content_disposition,
    is_blob,
    is_response,
    is_stream,
)


async def _read(response: NormalizedResponse) -> bytes:
    if response.body is None or isinstance(response.body, bytes):
        return response.body or b""
    return b"".join([chunk async for chunk in response.body])


def _state(status: int = 200, **headers: str) -> ResponseState:
    return ResponseState(status=status, headers=MutableHeaders(headers))


def _reject_constant(name: str) -> object:
    pytest.fail(f"non-JSON constant {name}")


class Shade(enum.Enum):
    DARK = "dark"


@dataclasses.dataclass
class Point:
    x: float
    y: float


class TestEmpty:
    def test_none_is_empty(self) -> None:
        result = coerce(None)
        assert result.status == 200
        assert result.body is None
        assert result.header("content-type") is None

    def test_empty_marker_keeps_status(self) -> None:
        result = coerce(EMPTY, _state(201))
        assert result.status == 201
        assert result.body is None

    def test_empty_marker_is_falsy(self) -> None:
        assert not EMPTY


class TestText:
    def test_string(self) -> None:
        result = coerce("héllo")
        assert result.body == "héllo".encode()
        assert result.header("content-type") == TEXT_PLAIN

    def test_preset_content_type_wins(self) -> None:
        result = coerce("<h1>x</h1>", _state(**{"content-type": "text/xhtml"}))
        assert result.header("Content-Type") == "text/xhtml"

    def test_preset_headers_kept(self) -> None:
        result = coerce("x", _state(**{"x-trace": "abc"}))
        assert result.header("x-trace") == "abc"


class TestNumbers:
    @pytest.mark.parametrize("value", [True, False, 0, 42, -7, 2.5])
    def test_json_text(self, value: object) -> None:
        result = coerce(value)
        assert json.loads(result.body) == value
        assert result.header("content-type") == APPLICATION_JSON

    @pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf")])
    def test_non_finite_is_null(self, value: float) -> None:
        result = coerce(value)
        assert result.body == b"null"
        assert result.header("content-type") == APPLICATION_JSON

    def test_big_integer_is_plain_digits(self) -> None:
        result = coerce(2**70)
        assert result.body == b"1180591620717411303424"

    def test_preset_content_type_wins(self) -> None:
        result = coerce(1, _state(**{"Content-Type": "text/plain"}))
        assert result.header("content-type") == "text/plain"


class TestSymbolic:
    def test_function_renders_signature(self) -> None:
        def test(a, b=1):
            pass

        result = coerce(test)
        assert result.body == b"test(a, b=1)"
        assert result.header("content-type") == TEXT_PLAIN

    def test_enum_member(self) -> None:
        result = coerce(Shade.DARK)
        assert result.body == b"Symbol(DARK)"

    def test_builtin_without_signature(self) -> None:
        result = coerce(print)
        assert b"print" in result.body


class TestJSON:
    def test_dict(self) -> None:
        result = coerce({"a": [1, 2], "b": None})
        assert json.loads(result.body) == {"a": [1, 2], "b": None}
        assert result.header("content-type") == APPLICATION_JSON

    def test_list(self) -> None:
        assert json.loads(coerce([1, "two"]).body) == [1, "two"]

    def test_dataclass(self) -> None:
        assert json.loads(coerce(Point(1, 2)).body) == {"x": 1, "y": 2}

    def test_unknown_objects_degrade_to_text(self) -> None:
        class Opaque:
            def __str__(self) -> str:
                return "opaque"

        assert json.loads(coerce({"v": Opaque()}).body) == {"v": "opaque"}

    def test_non_ascii_kept(self) -> None:
        assert coerce({"w": "عربي"}).body == '{"w": "عربي"}'.encode()

    def test_nested_non_finite_floats_are_null(self) -> None:
        result = coerce({"a": [1.5, float("nan")], "b": {"c": float("-inf")}, "d": Point(float("inf"), 2)})
        assert json.loads(result.body, parse_constant=_reject_constant) == {
            "a": [1.5, None],
            "b": {"c": None},
            "d": {"x": None, "y": 2},
        }

    def test_circular_structure_raises_http_error(self) -> None:
        data: dict[str, object] = {}
        data["self"] = data
        with pytest.raises(HTTPError) as exc_info:
            coerce(data)
        assert exc_info.value.status == 500
        assert exc_info.value.unhandled is True


class TestBinary:
    @pytest.mark.parametrize("value", [b"raw", bytearray(b"raw"), memoryview(b"raw")])
    def test_buffers_verbatim(self, value: object) -> None:
        result = coerce(value)
        assert result.body == b"raw"
        assert result.header("content-type") is None

    def test_blob_sets_type(self) -> None:
        result = coerce(Blob([b"<p>", "hi", b"</p>"], type="text/HTML"))
        assert result.body == b"<p>hi</p>"
        assert result.header("content-type") == "text/html"
        assert result.header("content-disposition") is None

    def test_blob_without_type(self) -> None:
        result = coerce(Blob(b"\x00\x01"))
        assert result.header("content-type") is None

    def test_blob_respects_preset_type(self) -> None:
        result = coerce(Blob(b"x", type="text/html"), _state(**{"content-type": "text/plain"}))
        assert result.header("content-type") == "text/plain"

    def test_file_disposition(self) -> None:
        result = coerce(File([b"data"], "report 2024.csv", type="text/csv"))
        assert result.header("content-disposition") == (
            "filename=\"report%202024.csv\"; filename*=UTF-8''report%202024.csv"
        )

    def test_disposition_utf8(self) -> None:
        assert content_disposition("hello ❤️.html") == (
            "filename=\"hello%20%E2%9D%A4%EF%B8%8F.html\"; "
            "filename*=UTF-8''hello%20%E2%9D%A4%EF%B8%8F.html"
        )

    def test_disposition_escapes_quotes(self) -> None:
        assert '"a%22b.txt"' in content_disposition('a"b.txt')


@pytest.mark.asyncio
class TestStreams:
    async def test_sync_generator(self) -> None:
        def gen():
            yield b"a"
            yield "b"

        result = coerce(gen())
        assert result.is_streaming
        assert result.content_length is None
        assert await _read(result) == b"ab"

    async def test_async_generator(self) -> None:
        async def gen():
            yield b"a"
            yield b""
            yield b"b"

        result = coerce(gen())
        assert await _read(result) == b"ab"

    async def test_file_object_is_read_in_chunks_and_closed(self) -> None:
        fileobj = io.BytesIO(b"x" * 200_000)
        result = coerce(fileobj)
        assert await _read(result) == b"x" * 200_000
        assert fileobj.closed

    async def test_no_content_type_forced(self) -> None:
        def gen():
            yield b"a"

        assert coerce(gen()).header("content-type") is None


@pytest.mark.asyncio
class TestResponseObjects:
    async def test_passes_status_and_headers(self) -> None:
        result = coerce(Response("Hello", status=201, headers={"x-test": "test"}))
        assert result.status == 201
        assert result.header("x-test") == "test"
        assert result.header("content-type") == TEXT_PLAIN
        assert result.body == b"Hello"

    async def test_overrides_builder_status_and_same_headers(self) -> None:
        state = _state(404, **{"x-test": "old", "x-keep": "kept"})
        result = coerce(Response(b"", status=202, headers={"X-Test": "new"}), state)
        assert result.status == 202
        assert result.header("x-test") == "new"
        assert result.header("x-keep") == "kept"

    async def test_streamed_body_stays_lazy(self) -> None:
        pulled: list[int] = []

        def gen():
            for i in range(3):
                pulled.append(i)
                yield f"{i}"

        result = coerce(Response(gen()))
        assert pulled == []
        assert await _read(result) == b"012"

    @pytest.mark.parametrize("status", [101, 204, 304])
    async def test_bodyless_statuses_drop_content(self, status: int) -> None:
        result = coerce(Response("unexpected", status=status))
        assert result.status == status
        assert result.body is None

    async def test_foreign_response_object(self) -> None:
        class Foreign:
            status_code = 203
            reason_phrase = "Non-Authoritative"
            headers = {"content-type": "text/csv", "content-length": "99"}

            async def aiter_bytes(self):
                yield b"a,b"

        value = Foreign()
        assert is_response(value)
        result = coerce(value)
        assert result.status == 203
        assert result.status_text == "Non-Authoritative"
        assert result.header("content-length") is None
        assert await _read(result) == b"a,b"


class TestPredicates:
    def test_lists_are_not_streams(self) -> None:
        assert not is_stream([b"a"])
        assert not is_stream(b"a")
        assert not is_stream("a")

    def test_blob_capability(self) -> None:
        assert is_blob(Blob(b"x", type="text/plain"))
        assert is_blob(File(b"x", "x.txt"))
        assert not is_blob(b"x")

    def test_http_error_is_not_a_response(self) -> None:
        assert not is_response(HTTPError(400))
