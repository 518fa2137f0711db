"""
Prompt assembly for the external generator.

The generator is told the line protocol the stream classifier understands and
is given the current tree, both in full and as a compact outline. Sending the
prompt is the host's job.
"""

import json
from typing import Any, Dict, List, Optional

from treepatch.models import UITree

SUMMARY_PROPS = ("text", "title", "label", "content")

SYSTEM_PROMPT = """You are an interactive UI editor for a UITree.

You ALWAYS output a streaming, newline-delimited response where:
- You MAY output markdown text for explanations (including blank lines and code fences).
- Any line that is a valid JSON patch object will be applied to the current UITree.

JSON PATCH LINES MUST:
- be a single line of JSON
- contain "op" and "path"
- NOT be wrapped in markdown code fences

PATCH FORMAT:
Each JSON line must be one of:
- {"op":"set","path":"/root","value":"root-key"}
- {"op":"add"|"replace"|"set","path":"/elements/{key}","value":{...UIElement...}}
- {"op":"add"|"replace"|"set","path":"/elements/{key}/props/...","value":...}
- {"op":"add"|"replace"|"set","path":"/elements/{key}/children","value":["child-1","child-2"]}
- {"op":"remove","path":"/elements/{key}"}

UIElement value shape:
{"key":"unique-key","type":"ComponentType","props":{...},"children":["child-key-1"],"parentKey":"optional-parent-key"}

EDITING RULES:
1. Default to minimal edits. Do NOT rebuild the whole tree unless asked.
2. If the user asks a question ("what's on screen?"), output only markdown text and NO patches.
3. If you remove an element, also patch its parent children to stop referencing it (emit an explicit children replacement).
4. When you add a new element, also add it to a parent's children list (explicitly replace the full children array).
5. Prefer editing the SELECTED_KEY when provided; if missing and the request is ambiguous, ask a clarifying question using //.
6. Always keep keys stable and unique. Reuse existing keys when editing.

STREAMING UX:
- Start your response immediately with 1-2 short markdown lines describing what you're doing.
- If you need to show non-patch JSON (examples, analysis), wrap it in a fenced block: ```json ... ```.

Begin now."""


def _summarize_props(props: Any) -> str:
    if not isinstance(props, dict):
        return ""
    parts = [f'{name}="{props[name]}"' for name in SUMMARY_PROPS if isinstance(props.get(name), str)]
    return " ".join(parts)


def build_tree_outline(tree: UITree) -> Dict[str, Any]:
    """
    Compact view of the tree: one entry per element with its key, type,
    parentKey, children and a short summary of its text-like props.
    """
    elements: List[Dict[str, Any]] = []
    for key, element in tree.elements.items():
        if not isinstance(element, dict):
            continue
        children = element.get("children")
        elements.append(
            {
                "key": element.get("key", key),
                "type": element.get("type"),
                "parentKey": element.get("parentKey"),
                "children": children if isinstance(children, list) else [],
                "summary": _summarize_props(element.get("props")),
            }
        )
    return {"root": tree.root, "elements": elements}


def _resolve_selected_key(selected_key: Optional[str]) -> Optional[str]:
    if isinstance(selected_key, str) and selected_key.strip():
        return selected_key.strip()
    return None


def build_prompt(
    request: str,
    tree: UITree,
    selected_key: Optional[str] = None,
    data: Optional[Dict[str, Any]] = None,
    include_tree: bool = True,
) -> str:
    """User-turn prompt: request, selection, data, outline, and the full tree."""
    sections = [f"USER_REQUEST:\n{request}"]
    sections.append(f"SELECTED_KEY:\n{_resolve_selected_key(selected_key) or '(none)'}")

    if data:
        sections.append(f"AVAILABLE DATA:\n{json.dumps(data, indent=2)}")

    sections.append(f"UI OUTLINE (compact):\n{json.dumps(build_tree_outline(tree), indent=2)}")

    if include_tree:
        sections.append(f"CURRENT UI TREE (authoritative):\n{tree.to_json(indent=2)}")

    return "\n\n".join(sections)
