"""
Tests for the treepatch command line.

Run: python3 test_cli.py
From: python/
"""

import io
import json
import sys
import tempfile
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path

sys.path.insert(0, '.')

import pytest

from treepatch.cli import main

TREE = {
    "root": "r",
    "elements": {
        "r": {"key": "r", "type": "Stack", "props": {}, "children": ["a", "b"]},
        "a": {"key": "a", "type": "Text", "props": {"content": "A"}},
        "b": {"key": "b", "type": "Text", "props": {"content": "B"}},
    },
}


def _run(argv):
    out, err = io.StringIO(), io.StringIO()
    code = 0
    with redirect_stdout(out), redirect_stderr(err):
        try:
            main(argv)
        except SystemExit as e:
            code = e.code or 0
    return code, out.getvalue(), err.getvalue()


def _write(tmp: Path, name: str, text: str) -> Path:
    path = tmp / name
    path.write_text(text, encoding="utf-8")
    return path


def test_apply_writes_new_tree():
    with tempfile.TemporaryDirectory() as d:
        tmp = Path(d)
        tree_path = _write(tmp, "tree.json", json.dumps(TREE))
        script = _write(tmp, "edit.jsonl", '{"op":"remove","path":"/elements/a"}\n')

        code, _, err = _run(["apply", str(tree_path), str(script)])
        assert code == 0, err
        saved = json.loads(tree_path.read_text(encoding="utf-8"))
        assert "a" not in saved["elements"]
        assert saved["elements"]["r"]["children"] == ["b"]
        assert "1 patches applied" in err
    print("PASS: test_apply_writes_new_tree")


def test_apply_failure_keeps_tree_file():
    with tempfile.TemporaryDirectory() as d:
        tmp = Path(d)
        original = json.dumps(TREE)
        tree_path = _write(tmp, "tree.json", original)
        script = _write(
            tmp,
            "edit.jsonl",
            '{"op":"set","path":"/root","value":"b"}\nnot json\n',
        )

        code, _, err = _run(["apply", str(tree_path), str(script)])
        assert code == 1
        assert "failed to apply patch: line 2" in err
        assert tree_path.read_text(encoding="utf-8") == original
    print("PASS: test_apply_failure_keeps_tree_file")


def test_stream_saves_partial_progress():
    with tempfile.TemporaryDirectory() as d:
        tmp = Path(d)
        tree_path = _write(tmp, "tree.json", json.dumps(TREE))
        transcript = _write(
            tmp,
            "reply.txt",
            "Renaming.\n"
            '{"op":"replace","path":"/elements/a/props/content","value":"Alpha"}\n'
            '{"op":"remove","path":"/root"}\n'
            '{"op":"replace","path":"/elements/b/props/content","value":"Beta"}\n',
        )
        narrative_path = tmp / "narrative.md"

        code, out, err = _run([
            "stream", str(tree_path), str(transcript), "--chunk-size", "5", "--narrative", str(narrative_path),
        ])
        assert code == 1
        assert out.startswith("Renaming.\n")
        assert "Patch error:" in out
        saved = json.loads(tree_path.read_text(encoding="utf-8"))
        assert saved["elements"]["a"]["props"]["content"] == "Alpha"
        assert saved["elements"]["b"]["props"]["content"] == "B"
        assert narrative_path.read_text(encoding="utf-8") == out
    print("PASS: test_stream_saves_partial_progress")


def test_build_and_render():
    with tempfile.TemporaryDirectory() as d:
        tmp = Path(d)
        script = _write(
            tmp,
            "init.jsonl",
            '{"op":"set","path":"/root","value":"r"}\n'
            'garbage\n'
            '{"op":"add","path":"/elements/r","value":{"key":"r","type":"Stack","props":{}}}\n',
        )
        code, out, _ = _run(["build", str(script)])
        assert code == 0
        assert json.loads(out) == {"root": "r", "elements": {"r": {"key": "r", "type": "Stack", "props": {}}}}

        md = _write(tmp, "reply.md", "**Done** with `r`")
        code, out, _ = _run(["render", str(md)])
        assert code == 0
        blocks = json.loads(out)
        assert blocks[0]["type"] == "paragraph"
        assert [i["type"] for i in blocks[0]["inlines"]] == ["strong", "text", "code_span"]
    print("PASS: test_build_and_render")


def test_outline_and_prompt():
    with tempfile.TemporaryDirectory() as d:
        tree_path = _write(Path(d), "tree.json", json.dumps(TREE))

        code, out, _ = _run(["outline", str(tree_path)])
        assert code == 0
        assert json.loads(out)["root"] == "r"

        code, out, _ = _run(["prompt", str(tree_path), "Make it blue", "--selected", "a"])
        assert code == 0
        assert "USER_REQUEST:\nMake it blue" in out
        assert "SELECTED_KEY:\na" in out
    print("PASS: test_outline_and_prompt")


def test_prompt_rejects_malformed_data_file():
    with tempfile.TemporaryDirectory() as d:
        tmp = Path(d)
        tree_path = _write(tmp, "tree.json", json.dumps(TREE))
        data_path = _write(tmp, "data.json", "{not json")

        code, out, err = _run(["prompt", str(tree_path), "Go", "--data", str(data_path)])
        assert code == 1
        assert out == ""
        assert "Error: Could not load data from" in err
    print("PASS: test_prompt_rejects_malformed_data_file")


def test_apply_reports_deeply_nested_line():
    with tempfile.TemporaryDirectory() as d:
        tmp = Path(d)
        original = json.dumps(TREE)
        tree_path = _write(tmp, "tree.json", original)
        script = _write(tmp, "edit.jsonl", "[" * 100000 + "]" * 100000 + "\n")

        code, _, err = _run(["apply", str(tree_path), str(script)])
        assert code == 1
        assert "failed to apply patch: line 1" in err
        assert tree_path.read_text(encoding="utf-8") == original
    print("PASS: test_apply_reports_deeply_nested_line")


def test_missing_file_exits():
    code, _, err = _run(["outline", "/nonexistent/tree.json"])
    assert code == 1
    assert "File not found" in err
    print("PASS: test_missing_file_exits")


def test_version_flag():
    with pytest.raises(SystemExit):
        main(["--version"])
    print("PASS: test_version_flag")


if __name__ == '__main__':
    tests = [
        test_apply_writes_new_tree,
        test_apply_failure_keeps_tree_file,
        test_stream_saves_partial_progress,
        test_build_and_render,
        test_outline_and_prompt,
        test_prompt_rejects_malformed_data_file,
        test_apply_reports_deeply_nested_line,
        test_missing_file_exits,
        test_version_flag,
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
