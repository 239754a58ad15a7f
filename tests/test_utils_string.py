"""
Tests for string utility functions.

Covers normalize_null_strings (document cleanup before validation) and the
name/search helpers used for artist ordering and piece search.
"""

import pytest
from hypothesis import given, strategies as st

from gallery_client.utils.string_utils import contains_casefold, last_name_token, normalize_null_strings


class TestNormalizeNullStrings:
    """Test normalize_null_strings function."""

    def test_simple_null_string(self):
        assert normalize_null_strings("null") is None
        assert normalize_null_strings("NULL") is None
        assert normalize_null_strings("Null") is None

    def test_non_null_strings(self):
        assert normalize_null_strings("Moonrise") == "Moonrise"
        assert normalize_null_strings("") == ""
        assert normalize_null_strings("null_value") == "null_value"

    def test_piece_document(self):
        doc = {
            "title": "Black Iris",
            "description": "null",
            "notes": "NULL",
            "width_inches": 30,
            "active": True,
        }
        assert normalize_null_strings(doc) == {
            "title": "Black Iris",
            "description": None,
            "notes": None,
            "width_inches": 30,
            "active": True,
        }

    def test_nested_structures(self):
        data = {"artists": {"a1": {"pieces": ["p1", "null"]}}, "tags": ["null", {"inner": "null"}]}
        assert normalize_null_strings(data) == {
            "artists": {"a1": {"pieces": ["p1", None]}},
            "tags": [None, {"inner": None}],
        }

    def test_tuple_becomes_list(self):
        assert normalize_null_strings(("null", "x")) == [None, "x"]

    def test_bytes_preserved(self):
        assert normalize_null_strings(b"null") == b"null"


class TestNormalizeNullStringsProperties:
    @given(st.text())
    def test_string_processing_property(self, text):
        result = normalize_null_strings(text)
        if text.lower() == "null":
            assert result is None
        else:
            assert result == text

    @given(st.dictionaries(st.text(), st.one_of(st.text(), st.none(), st.integers())))
    def test_dict_structure_preservation(self, input_dict):
        result = normalize_null_strings(input_dict)
        assert isinstance(result, dict)
        assert set(result.keys()) == set(input_dict.keys())

    @given(st.one_of(st.integers(), st.floats(allow_nan=False), st.booleans()))
    def test_non_container_types_unchanged(self, value):
        result = normalize_null_strings(value)
        assert result == value
        assert type(result) == type(value)


class TestNameHelpers:
    @pytest.mark.parametrize("name,expected", [
        ("Georgia O'Keeffe", "O'Keeffe"),
        ("Ansel Adams", "Adams"),
        ("Banksy", "Banksy"),
        ("  Frida   Kahlo  ", "Kahlo"),
        ("Vincent van Gogh", "Gogh"),
    ])
    def test_last_name_token(self, name, expected):
        assert last_name_token(name) == expected

    def test_contains_casefold(self):
        assert contains_casefold("Black Iris", "iris")
        assert contains_casefold("STRASSE", "straße")
        assert not contains_casefold(None, "x")
        assert not contains_casefold("", "x")
