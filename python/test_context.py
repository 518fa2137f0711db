"""
Tests for generator prompt assembly and the tree outline.

Run: python3 test_context.py
From: python/
"""

import json
import sys

sys.path.insert(0, '.')

from treepatch.context import SYSTEM_PROMPT, build_prompt, build_tree_outline
from treepatch.models import UITree


def _tree():
    return UITree.from_dict({
        "root": "page",
        "elements": {
            "page": {"key": "page", "type": "Stack", "props": {"gap": "md"}, "children": ["title", "save"]},
            "title": {"key": "title", "type": "Heading", "props": {"text": "Sales", "level": "h1"},
                      "parentKey": "page"},
            "save": {"key": "save", "type": "Button", "props": {"label": "Save", "title": 3}},
        },
    })


def test_outline_summarizes_text_props():
    outline = build_tree_outline(_tree())
    assert outline["root"] == "page"
    by_key = {e["key"]: e for e in outline["elements"]}

    assert by_key["page"]["children"] == ["title", "save"]
    assert by_key["page"]["summary"] == ""
    assert by_key["title"]["summary"] == 'text="Sales"'
    assert by_key["title"]["parentKey"] == "page"
    # non-string props are left out
    assert by_key["save"]["summary"] == 'label="Save"'
    assert by_key["save"]["parentKey"] is None
    assert by_key["save"]["children"] == []
    print("PASS: test_outline_summarizes_text_props")


def test_prompt_sections():
    prompt = build_prompt("Rename the title", _tree(), selected_key="  title ", data={"sales": [1, 2]})

    assert prompt.startswith("USER_REQUEST:\nRename the title")
    assert "SELECTED_KEY:\ntitle" in prompt
    assert "AVAILABLE DATA:" in prompt
    assert "UI OUTLINE (compact):" in prompt
    tree_json = prompt.split("CURRENT UI TREE (authoritative):\n", 1)[1]
    assert json.loads(tree_json) == _tree().to_dict()
    print("PASS: test_prompt_sections")


def test_prompt_without_selection_or_data():
    prompt = build_prompt("What is on screen?", UITree.empty(), selected_key="   ", include_tree=False)
    assert "SELECTED_KEY:\n(none)" in prompt
    assert "AVAILABLE DATA" not in prompt
    assert "CURRENT UI TREE" not in prompt
    print("PASS: test_prompt_without_selection_or_data")


def test_system_prompt_describes_line_protocol():
    assert '{"op":"remove","path":"/elements/{key}"}' in SYSTEM_PROMPT
    assert "//" in SYSTEM_PROMPT
    print("PASS: test_system_prompt_describes_line_protocol")


if __name__ == '__main__':
    tests = [
        test_outline_summarizes_text_props,
        test_prompt_sections,
        test_prompt_without_selection_or_data,
        test_system_prompt_describes_line_protocol,
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
