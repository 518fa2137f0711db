import json
from typing import Any, Dict, Optional

from mcp.server.fastmcp import FastMCP

from treepatch.config import get_settings
from treepatch.context import build_prompt, build_tree_outline
from treepatch.errors import PatchError
from treepatch.logging_setup import configure_logging
from treepatch.models import UITree
from treepatch.narrative import blocks_to_dicts, render_narrative
from treepatch.patch.engine import apply_patches_report
from treepatch.stream import classify_stream

# --- LOGGING CONFIGURATION ---
# MCP communicates over stdio.
# CRITICAL: All logs must go to stderr. Any print to stdout will break the JSON-RPC protocol.
configure_logging(get_settings().log_level, json_output=True)

mcp = FastMCP("treepatch UI Tree Service")


def _load_tree(tree: Optional[Dict[str, Any]]) -> UITree:
    if not tree:
        return UITree.empty()
    return UITree.from_dict(tree)


@mcp.tool()
def apply_patches(tree: Dict[str, Any], patches: str) -> str:
    """
    Applies a newline-delimited patch script to a UITree, all or nothing.

    Args:
        tree: The current tree snapshot: {"root": key, "elements": {key: element}}.
        patches: One JSON operation per line, e.g.
                 {"op":"replace","path":"/elements/title/props/text","value":"Hi"}
                 Blank lines and lines starting with // are ignored.

    Returns:
        The new tree as JSON, or an error message. On error none of the patches
        are applied; keep using the tree you sent.
    """
    try:
        new_tree, applied = apply_patches_report(_load_tree(tree), patches)
        return json.dumps({"applied": applied, "tree": new_tree.to_dict()})
    except PatchError as e:
        return f"Error: failed to apply patch: {e}"


@mcp.tool()
def classify_generator_output(tree: Dict[str, Any], text: str) -> str:
    """
    Runs generator output through the stream classifier.

    Patch lines are applied in order; everything else becomes narrative. A
    patch that fails to apply stops processing, but earlier patches are kept.

    Args:
        tree: The current tree snapshot.
        text: The complete generator output.

    Returns:
        JSON with the resulting tree, the narrative Markdown, the number of
        applied patches and the error (null when every patch applied).
    """
    try:
        result = classify_stream([text], _load_tree(tree))
    except PatchError as e:
        return f"Error loading tree: {e}"

    return json.dumps(
        {
            "tree": result.tree.to_dict(),
            "narrative": result.narrative,
            "applied": result.applied,
            "error": str(result.error) if result.error else None,
        }
    )


@mcp.tool()
def render_narrative_markdown(text: str) -> str:
    """
    Parses narrative Markdown into block and inline nodes (headings, paragraphs,
    lists, code blocks, rules; bold, italic, code spans, links). Returns JSON.
    """
    return json.dumps(blocks_to_dicts(render_narrative(text)))


@mcp.tool()
def outline_tree(tree: Dict[str, Any]) -> str:
    """Returns a compact outline of the tree: keys, types, children and text-like props."""
    try:
        return json.dumps(build_tree_outline(_load_tree(tree)))
    except PatchError as e:
        return f"Error loading tree: {e}"


@mcp.tool()
def generator_prompt(tree: Dict[str, Any], request: str, selected_key: Optional[str] = None) -> str:
    """Builds the user-turn prompt that asks a generator to edit the tree."""
    try:
        return build_prompt(request, _load_tree(tree), selected_key=selected_key)
    except PatchError as e:
        return f"Error loading tree: {e}"


def main():
    mcp.run()


if __name__ == "__main__":
    main()
