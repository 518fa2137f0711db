import argparse
import json
import sys
from pathlib import Path
from typing import Iterator, Optional, TextIO

import structlog

from treepatch import __version__
from treepatch.config import get_settings
from treepatch.context import build_prompt, build_tree_outline
from treepatch.errors import BatchError, PatchError
from treepatch.logging_setup import configure_logging
from treepatch.models import UITree
from treepatch.narrative import blocks_to_dicts, render_narrative
from treepatch.patch.engine import apply_patches_report, build_tree
from treepatch.stream import NarrativeText, classify_stream

logger = structlog.get_logger(__name__)

DEFAULT_CHUNK_SIZE = 256


def _read_text(path: Optional[Path]) -> str:
    if path is None or str(path) == "-":
        return sys.stdin.read()
    if not path.exists():
        print(f"Error: File not found: {path}", file=sys.stderr)
        sys.exit(1)
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


def _load_tree(path: Path) -> UITree:
    text = _read_text(path)
    if not text.strip():
        return UITree.empty()
    try:
        return UITree.from_json(text)
    except PatchError as e:
        print(f"Error: Could not load tree from {path}: {e}", file=sys.stderr)
        sys.exit(1)


def _write_tree(tree: UITree, output: Optional[Path]) -> None:
    text = tree.to_json(indent=2)
    if output is None:
        print(text)
        return
    with open(output, "w", encoding="utf-8") as f:
        f.write(text + "\n")
    print(f"✅ Saved tree to {output}", file=sys.stderr)


def _iter_chunks(stream: TextIO, size: int) -> Iterator[str]:
    while True:
        chunk = stream.read(size)
        if not chunk:
            return
        yield chunk


def handle_build(args):
    script = _read_text(args.script)
    tree = build_tree(script)
    _write_tree(tree, args.output)


def handle_apply(args):
    tree = _load_tree(args.tree)
    script = _read_text(args.script)

    try:
        new_tree, applied = apply_patches_report(tree, script)
    except BatchError as e:
        # The tree file is left as it was: nothing from this batch is kept.
        print(f"failed to apply patch: {e}", file=sys.stderr)
        sys.exit(1)

    output = args.output or args.tree
    _write_tree(new_tree, output)
    print(f"Stats: {applied} patches applied.", file=sys.stderr)


def handle_stream(args):
    tree = _load_tree(args.tree)

    def echo(event):
        if isinstance(event, NarrativeText):
            sys.stdout.write(event.text)
            sys.stdout.flush()

    if args.input is None or str(args.input) == "-":
        result = classify_stream(_iter_chunks(sys.stdin, args.chunk_size), tree, on_event=echo)
    else:
        if not args.input.exists():
            print(f"Error: File not found: {args.input}", file=sys.stderr)
            sys.exit(1)
        with open(args.input, "r", encoding="utf-8") as f:
            result = classify_stream(_iter_chunks(f, args.chunk_size), tree, on_event=echo)

    # Edits applied before a failure stay committed, so the tree is saved either way.
    _write_tree(result.tree, args.output or args.tree)

    if args.narrative:
        with open(args.narrative, "w", encoding="utf-8") as f:
            f.write(result.narrative)

    print(f"Stats: {result.applied} patches applied.", file=sys.stderr)
    if not result.ok:
        print(f"Stream halted: {result.error}", file=sys.stderr)
        sys.exit(1)


def handle_render(args):
    text = _read_text(args.input)
    blocks = render_narrative(text)
    print(json.dumps(blocks_to_dicts(blocks), indent=2, ensure_ascii=False))


def handle_outline(args):
    tree = _load_tree(args.tree)
    print(json.dumps(build_tree_outline(tree), indent=2, ensure_ascii=False))


def handle_prompt(args):
    tree = _load_tree(args.tree)
    data = None
    if args.data:
        try:
            data = json.loads(_read_text(args.data))
        except (json.JSONDecodeError, RecursionError) as e:
            print(f"Error: Could not load data from {args.data}: {e}", file=sys.stderr)
            sys.exit(1)
    print(build_prompt(args.request, tree, selected_key=args.selected, data=data))


def main(argv=None):
    settings = get_settings()

    parser = argparse.ArgumentParser(prog="treepatch", description="treepatch: streaming UI tree patch engine")
    parser.add_argument("-v", "--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--log-level", default=settings.log_level, help="Log level (default: %(default)s)")
    parser.add_argument("--log-json", action="store_true", default=settings.log_json, help="Emit JSON log lines")
    subparsers = parser.add_subparsers(dest="command", required=True, help="Subcommands")

    p_build = subparsers.add_parser("build", help="Build a tree from a patch script (invalid lines skipped)")
    p_build.add_argument("script", type=Path, help="Patch script, one JSON operation per line ('-' for stdin)")
    p_build.add_argument("-o", "--output", type=Path, help="Output tree JSON (default: stdout)")
    p_build.set_defaults(func=handle_build)

    p_apply = subparsers.add_parser("apply", help="Apply a patch script to a tree, all or nothing")
    p_apply.add_argument("tree", type=Path, help="Tree JSON file")
    p_apply.add_argument("script", type=Path, help="Patch script ('-' for stdin)")
    p_apply.add_argument("-o", "--output", type=Path, help="Output tree JSON (default: overwrite TREE)")
    p_apply.set_defaults(func=handle_apply)

    p_stream = subparsers.add_parser("stream", help="Classify generator output, applying patch lines as they arrive")
    p_stream.add_argument("tree", type=Path, help="Tree JSON file")
    p_stream.add_argument("input", type=Path, nargs="?", help="Generator transcript (default: stdin)")
    p_stream.add_argument("-o", "--output", type=Path, help="Output tree JSON (default: overwrite TREE)")
    p_stream.add_argument("--narrative", type=Path, help="Also save the narrative text to this file")
    p_stream.add_argument(
        "--chunk-size",
        type=int,
        default=DEFAULT_CHUNK_SIZE,
        help="Characters read per chunk (default: %(default)s)",
    )
    p_stream.set_defaults(func=handle_stream)

    p_render = subparsers.add_parser("render", help="Parse narrative Markdown into block/inline nodes (JSON)")
    p_render.add_argument("input", type=Path, nargs="?", help="Markdown file (default: stdin)")
    p_render.set_defaults(func=handle_render)

    p_outline = subparsers.add_parser("outline", help="Print a compact outline of a tree")
    p_outline.add_argument("tree", type=Path, help="Tree JSON file")
    p_outline.set_defaults(func=handle_outline)

    p_prompt = subparsers.add_parser("prompt", help="Print the generator prompt for a request")
    p_prompt.add_argument("tree", type=Path, help="Tree JSON file")
    p_prompt.add_argument("request", help="The user's request")
    p_prompt.add_argument("--selected", help="Key of the selected element")
    p_prompt.add_argument("--data", type=Path, help="JSON file with data available to the UI")
    p_prompt.set_defaults(func=handle_prompt)

    args = parser.parse_args(argv)
    configure_logging(args.log_level, json_output=args.log_json)
    args.func(args)


if __name__ == "__main__":
    main()
