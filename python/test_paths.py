"""
Tests for treepatch.utils.paths: slash-delimited read/write.

Run: python3 test_paths.py
From: python/
"""

import sys

sys.path.insert(0, '.')

import pytest

from treepatch.errors import PathError
from treepatch.utils.paths import get_by_path, set_by_path, split_path


def test_split_path():
    assert split_path("/root") == ["root"]
    assert split_path("/elements/card/props/title") == ["elements", "card", "props", "title"]
    for bad in ("", "/", "root", "elements/card"):
        with pytest.raises(PathError):
            split_path(bad)
    print("PASS: test_split_path")


def test_get_missing_returns_none():
    doc = {"elements": {"a": {"props": {"text": "hi"}}}}
    assert get_by_path(doc, "/elements/a/props/text") == "hi"
    assert get_by_path(doc, "/elements/b/props/text") is None
    assert get_by_path(doc, "/elements/a/props/text/deeper") is None
    print("PASS: test_get_missing_returns_none")


def test_get_indexes_lists():
    doc = {"elements": {"a": {"children": ["x", "y"]}}}
    assert get_by_path(doc, "/elements/a/children/1") == "y"
    assert get_by_path(doc, "/elements/a/children/5") is None
    assert get_by_path(doc, "/elements/a/children/first") is None
    print("PASS: test_get_indexes_lists")


def test_set_overwrites_existing_value():
    doc = {"root": "a"}
    set_by_path(doc, "/root", "b")
    assert doc == {"root": "b"}
    set_by_path(doc, "/root", {"nested": True})
    assert doc == {"root": {"nested": True}}
    print("PASS: test_set_overwrites_existing_value")


def test_set_creates_intermediate_dicts():
    doc = {}
    set_by_path(doc, "/elements/card/props/title", "Revenue")
    assert doc == {"elements": {"card": {"props": {"title": "Revenue"}}}}
    print("PASS: test_set_creates_intermediate_dicts")


def test_set_replaces_scalar_intermediate():
    doc = {"elements": {"card": {"props": "oops"}}}
    set_by_path(doc, "/elements/card/props/title", "T")
    assert doc["elements"]["card"]["props"] == {"title": "T"}
    print("PASS: test_set_replaces_scalar_intermediate")


def test_numeric_segment_on_dict_is_a_key():
    doc = {"elements": {}}
    set_by_path(doc, "/elements/0", {"key": "0"})
    assert doc == {"elements": {"0": {"key": "0"}}}
    print("PASS: test_numeric_segment_on_dict_is_a_key")


def test_numeric_segment_on_list_indexes():
    doc = {"children": ["a", "b"]}
    set_by_path(doc, "/children/1", "B")
    assert doc["children"] == ["a", "B"]
    set_by_path(doc, "/children/2", "c")
    assert doc["children"] == ["a", "B", "c"]
    set_by_path(doc, "/children/-", "d")
    assert doc["children"] == ["a", "B", "c", "d"]
    print("PASS: test_numeric_segment_on_list_indexes")


def test_bad_list_index_raises():
    doc = {"children": ["a"]}
    with pytest.raises(PathError):
        set_by_path(doc, "/children/5", "x")
    with pytest.raises(PathError):
        set_by_path(doc, "/children/name", "x")
    assert doc == {"children": ["a"]}
    print("PASS: test_bad_list_index_raises")


if __name__ == '__main__':
    tests = [
        test_split_path,
        test_get_missing_returns_none,
        test_get_indexes_lists,
        test_set_overwrites_existing_value,
        test_set_creates_intermediate_dicts,
        test_set_replaces_scalar_intermediate,
        test_numeric_segment_on_dict_is_a_key,
        test_numeric_segment_on_list_indexes,
        test_bad_list_index_raises,
    ]

    passed = 0
    failed = 0
    for t in tests:
        try:
            t()
            passed += 1
        except Exception as e:
            print(f"FAIL: {t.__name__} — {e}")
            failed += 1

    print(f"\nResults: {passed} passed, {failed} failed out of {len(tests)} tests")
    if failed > 0:
        sys.exit(1)
