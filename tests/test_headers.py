"""Tests for ferry.http.headers — request and response header maps."""

import pytest

from ferry.http.headers import Headers, MutableHeaders


def _h(*pairs: tuple[str, str]) -> Headers:
    """Shorthand: build Headers from string pairs."""
    raw = tuple((k.encode("latin-1"), v.encode("latin-1")) for k, v in pairs)
    return Headers(raw)


class TestHeaders:
    def test_getitem(self) -> None:
        h = _h(("Content-Type", "text/html"))
        assert h["Content-Type"] == "text/html"

    def test_case_insensitive(self) -> None:
        h = _h(("Content-Type", "text/html"))
        assert h["content-type"] == "text/html"
        assert h["CONTENT-TYPE"] == "text/html"

    def test_missing_key_raises(self) -> None:
        h = _h(("Accept", "*/*"))
        with pytest.raises(KeyError):
            h["X-Missing"]

    def test_contains(self) -> None:
        h = _h(("Accept", "*/*"))
        assert "accept" in h
        assert "x-missing" not in h
        assert 42 not in h  # type: ignore[operator]

    def test_first_value_and_list(self) -> None:
        h = _h(("Cookie", "a=1"), ("Cookie", "b=2"))
        assert h["cookie"] == "a=1"
        assert h.get_list("COOKIE") == ["a=1", "b=2"]
        assert len(h) == 1

    def test_get_default(self) -> None:
        assert _h().get("x", "fallback") == "fallback"

    def test_from_pairs(self) -> None:
        h = Headers.from_pairs({"Host": "example.com"})
        assert h.raw == ((b"Host", b"example.com"),)
        assert list(Headers.from_pairs([("A", "1"), ("a", "2")])) == ["a"]


class TestMutableHeaders:
    def test_set_replaces_all(self) -> None:
        h = MutableHeaders([("Vary", "a"), ("vary", "b")])
        h["VARY"] = "c"
        assert h.get_list("vary") == ["c"]

    def test_append_keeps_existing(self) -> None:
        h = MutableHeaders()
        h.append("Set-Cookie", "a=1")
        h.append("Set-Cookie", "b=2")
        assert h.get_list("set-cookie") == ["a=1", "b=2"]
        assert h.items_list() == [("Set-Cookie", "a=1"), ("Set-Cookie", "b=2")]

    def test_setdefault_only_when_unset(self) -> None:
        h = MutableHeaders({"Content-Type": "text/html"})
        assert h.setdefault("content-type", "text/plain") == "text/html"
        assert h.setdefault("X-New", "1") == "1"
        assert h["x-new"] == "1"

    def test_delete(self) -> None:
        h = MutableHeaders({"A": "1"})
        del h["a"]
        assert "A" not in h
        with pytest.raises(KeyError):
            del h["a"]

    def test_pop_case_insensitive(self) -> None:
        h = MutableHeaders({"Content-Length": "3"})
        assert h.pop("content-length") == "3"
        assert h.pop("content-length", None) is None

    def test_values_stringified(self) -> None:
        h = MutableHeaders()
        h["X-Count"] = 3  # type: ignore[assignment]
        assert h["x-count"] == "3"

    def test_iter_unique_lowercase(self) -> None:
        h = MutableHeaders([("A", "1"), ("a", "2"), ("B", "3")])
        assert list(h) == ["a", "b"]
        assert len(h) == 2
