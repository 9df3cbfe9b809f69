"""Tests for JSON pointer and $ref helpers."""

import pytest

from apibundle.pointer import (
    array_index,
    escape_segment,
    is_remote,
    join_pointer,
    parse_pointer,
    split_ref,
    unescape_segment,
)


class TestPointer:

    def test_parse_root(self):
        assert parse_pointer("") == []
        assert parse_pointer("#") == []

    def test_parse_escaped_segments(self):
        assert parse_pointer("/paths/~1pets~1{id}/get") == ["paths", "/pets/{id}", "get"]
        assert parse_pointer("/a~0b") == ["a~b"]

    def test_parse_fragment_is_percent_decoded(self):
        assert parse_pointer("#/components/schemas/Pet%20Type") == ["components", "schemas", "Pet Type"]

    def test_parse_rejects_relative(self):
        with pytest.raises(ValueError):
            parse_pointer("components/schemas")

    def test_join_round_trip(self):
        segments = ["paths", "/pets", "get", "responses", "200"]
        assert parse_pointer(join_pointer(segments)) == segments
        assert join_pointer(segments, fragment=True) == "#/paths/~1pets/get/responses/200"

    def test_escape_order(self):
        # "~1" in a key must not turn into "/"
        assert unescape_segment(escape_segment("~1")) == "~1"
        assert escape_segment("a/~b") == "a~1~0b"

    def test_array_index(self):
        assert array_index("0") == 0
        assert array_index("12") == 12
        assert array_index("01") == -1
        assert array_index("-1") == -1
        assert array_index("name") == -1


class TestRefs:

    def test_split_ref(self):
        assert split_ref("b.yaml#/components/schemas/X") == ("b.yaml", "#/components/schemas/X")
        assert split_ref("#/definitions/Pet") == ("", "#/definitions/Pet")
        assert split_ref("schemas/pet.yaml") == ("schemas/pet.yaml", "")

    def test_is_remote(self):
        assert is_remote("https://example.com/api.yaml")
        assert is_remote("//example.com/api.yaml")
        assert not is_remote("schemas/pet.yaml")
        assert not is_remote("")
