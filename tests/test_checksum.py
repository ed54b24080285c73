"""Tests for content fingerprints and value equality.

Covers:
- content_hash is the raw SHA-256 of the UTF-8 text
- same_value: bool/int distinction, NaN
- deep_equal: positional lists, key-set dicts
- normalize_id_list: strings, lists, junk entries
"""

import hashlib

from lm_module_sync.sync.checksum import (
    content_hash,
    deep_equal,
    normalize_id_list,
    same_value,
)


class TestContentHash:
    def test_identical_content_same_hash(self):
        assert content_hash("println 'x'\n") == content_hash("println 'x'\n")

    def test_different_content_different_hash(self):
        assert content_hash("x") != content_hash("y")

    def test_hex_sha256_length(self):
        assert len(content_hash("x")) == 64

    def test_raw_sha256_of_utf8(self):
        assert content_hash("println 'cpu'\n") == hashlib.sha256(
            b"println 'cpu'\n"
        ).hexdigest()

    def test_non_ascii_encoded_as_utf8(self):
        assert content_hash("caf\u00e9") == hashlib.sha256(
            "caf\u00e9".encode("utf-8")
        ).hexdigest()

    def test_bom_is_significant(self):
        assert content_hash("\ufeffreturn 0") != content_hash("return 0")

    def test_crlf_differs_from_lf(self):
        assert content_hash("a\r\nb\r\n") != content_hash("a\nb\n")

    def test_trailing_whitespace_and_blank_lines_count(self):
        assert content_hash("a\nb\n") != content_hash("a\nb")
        assert content_hash("a \nb") != content_hash("a\nb")
        assert content_hash("a\nb\n\n\n") != content_hash("a\nb\n")

    def test_empty_content(self):
        assert content_hash("") == hashlib.sha256(b"").hexdigest()
        assert content_hash("") != content_hash("\n")


class TestSameValue:
    def test_bool_is_not_int(self):
        assert not same_value(True, 1)
        assert not same_value(0, False)

    def test_bools_compare_by_value(self):
        assert same_value(True, True)
        assert not same_value(True, False)

    def test_nan_equals_nan(self):
        assert same_value(float("nan"), float("nan"))

    def test_none(self):
        assert same_value(None, None)
        assert not same_value(None, "")

    def test_int_and_float(self):
        assert same_value(60, 60.0)


class TestDeepEqual:
    def test_lists_are_positional(self):
        assert deep_equal([1, 2], [1, 2])
        assert not deep_equal([1, 2], [2, 1])

    def test_dict_key_order_irrelevant(self):
        assert deep_equal({"a": 1, "b": [1]}, {"b": [1], "a": 1})

    def test_dict_key_sets_must_match(self):
        assert not deep_equal({"a": 1}, {"a": 1, "b": None})

    def test_nested_structures(self):
        a = [{"name": "idle", "thresholds": {"warn": 90}}]
        b = [{"name": "idle", "thresholds": {"warn": 95}}]
        assert not deep_equal(a, b)
        assert deep_equal(a, [{"thresholds": {"warn": 90}, "name": "idle"}])

    def test_container_vs_scalar(self):
        assert not deep_equal([], None)
        assert not deep_equal({}, "")

    def test_bool_inside_container(self):
        assert not deep_equal([True], [1])


class TestNormalizeIdList:
    def test_comma_separated_string(self):
        assert normalize_id_list("3, 1,2") == [1, 2, 3]

    def test_empty_string(self):
        assert normalize_id_list("") == []
        assert normalize_id_list("   ") == []

    def test_list_of_mixed_types(self):
        assert normalize_id_list(["2", 1, " 3 "]) == [1, 2, 3]

    def test_junk_entries_dropped(self):
        assert normalize_id_list(["a", 1, True, ""]) == [1]

    def test_non_collection_is_empty(self):
        assert normalize_id_list(None) == []
        assert normalize_id_list(5) == []
