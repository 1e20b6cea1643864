"""Tests for query filters and request building."""

import pytest

from sdc_cli.core.filter import Filter
from sdc_cli.core.request import API_FABRIC_VLANS, API_KEYS, API_MACHINES, Request, encode_query, make_path


class TestFilter:
    def test_set_stores_strings(self):
        f = Filter()
        f.set("memory", 1024)
        f.set("public", True)
        assert dict(f) == {"memory": "1024", "public": "true"}

    def test_last_write_wins(self):
        f = Filter()
        f.set("name", "a")
        f.set("name", "b")
        assert f["name"] == "b"
        assert len(f) == 1

    def test_delete(self):
        f = Filter({"name": "a"})
        f.delete("name")
        f.delete("missing")
        assert len(f) == 0

    def test_none_removes_key(self):
        f = Filter({"name": None, "state": "running"})
        assert dict(f) == {"state": "running"}

        f.set("state", None)
        assert len(f) == 0

    def test_equality_is_ordered(self):
        assert Filter({"a": 1, "b": 2}) == Filter({"a": "1", "b": "2"})
        assert Filter({"a": 1, "b": 2}) != Filter({"b": 2, "a": 1})

    def test_iteration_keeps_insertion_order(self):
        f = Filter()
        f.set("state", "running")
        f.set("memory", 512)
        assert list(f) == ["state", "memory"]


class TestMakePath:
    def test_joins_under_account_root(self):
        assert make_path(API_MACHINES, "abc", "tags") == "/my/machines/abc/tags"

    def test_escapes_segments(self):
        assert make_path(API_KEYS, "a b/c") == "/my/keys/a%20b%2Fc"

    def test_fabric_root_keeps_slashes(self):
        assert make_path(API_FABRIC_VLANS, 2, "networks") == "/my/fabrics/default/vlans/2/networks"

    def test_empty_segment(self):
        with pytest.raises(ValueError):
            make_path(API_KEYS, "")


class TestQuery:
    def test_encode_query_keeps_order_and_escapes(self):
        assert encode_query({"name": "my vm", "tags.role": "db&web"}) == "name=my%20vm&tags.role=db%26web"

    def test_encode_query_escapes_slashes_and_drops_none(self):
        assert encode_query({"owner": "a/b", "name": None, "version": "1.0"}) == "owner=a%2Fb&version=1.0"
        assert Request("GET", "/my/images", query={"name": None}).url == "/my/images"

    def test_empty_query(self):
        assert encode_query(None) == ""
        assert encode_query(Filter()) == ""

    def test_request_url(self):
        assert Request("GET", "/my/machines", query=Filter({"state": "running"})).url == "/my/machines?state=running"
        assert Request("GET", "/my/machines").url == "/my/machines"
        assert Request("GET", "/my/machines").expected_status == 200
