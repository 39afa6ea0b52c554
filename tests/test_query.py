"""Tests for ferry.http.query — immutable query parameters."""

from ferry.http.query import QueryParams


class TestQueryParams:
    def test_first_value(self) -> None:
        q = QueryParams("a=1&a=2")
        assert q["a"] == "1"
        assert q.get_list("a") == ["1", "2"]

    def test_bytes_and_leading_question_mark(self) -> None:
        assert QueryParams(b"?x=y")["x"] == "y"
        assert str(QueryParams("?x=y")) == "x=y"

    def test_decoding(self) -> None:
        q = QueryParams("name=J%C3%BCrgen&q=a+b")
        assert q["name"] == "Jürgen"
        assert q["q"] == "a b"

    def test_blank_values_kept(self) -> None:
        q = QueryParams("flag=&other")
        assert q["flag"] == ""
        assert "other" in q

    def test_get_default(self) -> None:
        q = QueryParams("")
        assert q.get("missing") is None
        assert q.get("missing", "d") == "d"
        assert q.get_list("missing") == []
        assert len(q) == 0
