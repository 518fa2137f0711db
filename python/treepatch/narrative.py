"""
Narrative renderer: turns the Markdown text collected by the stream classifier
into block and inline presentation nodes.

Block pass (line by line):
- ``` fenced code, optional language tag; an unterminated fence runs to the end
- # .. ###### headings
- --- / *** horizontal rules
- "- " / "* " bullet runs, "1. " ordered runs
- paragraphs: contiguous non-blank, non-special lines (newlines preserved)

Inline pass: `code` spans first, then repeatedly the earliest of
[link](href), **bold**, *italic*. At the same offset link beats bold beats
italic. Links only keep targets starting with /, #, http:// or https://.
"""

import re
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Union

FENCE_MARKER = "```"

HEADING_PATTERN = re.compile(r"^(#{1,6})\s+(.*)$")
BULLET_PATTERN = re.compile(r"^[-*]\s+")
ORDERED_PATTERN = re.compile(r"^\d+\.\s+")
RULE_LINES = ("---", "***")

CODE_SPAN_SPLIT = re.compile(r"(`[^`]+`)")
LINK_PATTERN = re.compile(r"\[([^\]]+)\]\(([^)]+)\)")
BOLD_PATTERN = re.compile(r"\*\*([^*]+)\*\*")
ITALIC_PATTERN = re.compile(r"\*([^*]+)\*")

SAFE_HREF_PREFIXES = ("/", "#", "http://", "https://")


# --- Inline nodes ---
@dataclass
class Text:
    text: str
    type: str = field(default="text", init=False)


@dataclass
class CodeSpan:
    text: str
    type: str = field(default="code_span", init=False)


@dataclass
class Strong:
    text: str
    type: str = field(default="strong", init=False)


@dataclass
class Emphasis:
    text: str
    type: str = field(default="emphasis", init=False)


@dataclass
class Link:
    text: str
    href: str
    external: bool = False
    type: str = field(default="link", init=False)


@dataclass
class LineBreak:
    type: str = field(default="line_break", init=False)


Inline = Union[Text, CodeSpan, Strong, Emphasis, Link, LineBreak]


# --- Block nodes ---
@dataclass
class Heading:
    level: int
    text: str
    inlines: List[Inline] = field(default_factory=list)
    type: str = field(default="heading", init=False)


@dataclass
class Paragraph:
    text: str
    inlines: List[Inline] = field(default_factory=list)
    type: str = field(default="paragraph", init=False)


@dataclass
class BulletList:
    items: List[str]
    item_inlines: List[List[Inline]] = field(default_factory=list)
    type: str = field(default="bullet_list", init=False)


@dataclass
class OrderedList:
    items: List[str]
    item_inlines: List[List[Inline]] = field(default_factory=list)
    type: str = field(default="ordered_list", init=False)


@dataclass
class CodeBlock:
    lang: Optional[str]
    content: str
    type: str = field(default="code_block", init=False)


@dataclass
class Rule:
    type: str = field(default="rule", init=False)


Block = Union[Heading, Paragraph, BulletList, OrderedList, CodeBlock, Rule]


def safe_href(href: str) -> Optional[str]:
    trimmed = href.strip()
    if not trimmed:
        return None
    if trimmed.startswith(SAFE_HREF_PREFIXES):
        return trimmed
    return None


def _is_special(trimmed: str) -> bool:
    return (
        trimmed.startswith(FENCE_MARKER)
        or HEADING_PATTERN.match(trimmed) is not None
        or trimmed in RULE_LINES
        or BULLET_PATTERN.match(trimmed) is not None
        or ORDERED_PATTERN.match(trimmed) is not None
    )


def _take_list(lines: List[str], i: int, pattern: "re.Pattern[str]") -> tuple[List[str], int]:
    items: List[str] = []
    while i < len(lines):
        t = lines[i].strip()
        if not pattern.match(t):
            break
        items.append(pattern.sub("", t, count=1))
        i += 1
    return items, i


def parse_blocks(text: str) -> List[Block]:
    """Block pass only; inline fields are left empty."""
    lines = text.replace("\r\n", "\n").split("\n")
    blocks: List[Block] = []

    i = 0
    while i < len(lines):
        trimmed = lines[i].strip()

        if trimmed.startswith(FENCE_MARKER):
            lang = trimmed[len(FENCE_MARKER) :].strip() or None
            i += 1
            code_lines: List[str] = []
            while i < len(lines) and not lines[i].strip().startswith(FENCE_MARKER):
                code_lines.append(lines[i])
                i += 1
            if i < len(lines):
                i += 1  # closing fence
            blocks.append(CodeBlock(lang=lang, content="\n".join(code_lines)))
            continue

        heading = HEADING_PATTERN.match(trimmed)
        if heading:
            blocks.append(Heading(level=len(heading.group(1)), text=heading.group(2)))
            i += 1
            continue

        if trimmed in RULE_LINES:
            blocks.append(Rule())
            i += 1
            continue

        if BULLET_PATTERN.match(trimmed):
            items, i = _take_list(lines, i, BULLET_PATTERN)
            blocks.append(BulletList(items=items))
            continue

        if ORDERED_PATTERN.match(trimmed):
            items, i = _take_list(lines, i, ORDERED_PATTERN)
            blocks.append(OrderedList(items=items))
            continue

        if not trimmed:
            i += 1
            continue

        para_lines: List[str] = []
        while i < len(lines):
            t = lines[i].strip()
            if not t or _is_special(t):
                break
            para_lines.append(lines[i])
            i += 1
        blocks.append(Paragraph(text="\n".join(para_lines)))

    return blocks


def _parse_styled(part: str) -> List[Inline]:
    tokens: List[Inline] = []
    rest = part

    while rest:
        candidates = []
        # Order matters: sort is stable, so equal offsets keep link > bold > italic.
        for kind, pattern in (("link", LINK_PATTERN), ("bold", BOLD_PATTERN), ("italic", ITALIC_PATTERN)):
            match = pattern.search(rest)
            if match:
                candidates.append((kind, match))

        if not candidates:
            tokens.append(Text(rest))
            break

        candidates.sort(key=lambda c: c[1].start())
        kind, match = candidates[0]

        before = rest[: match.start()]
        if before:
            tokens.append(Text(before))

        if kind == "link":
            href = safe_href(match.group(2))
            if href is None:
                tokens.append(Text(match.group(0)))
            else:
                tokens.append(Link(text=match.group(1), href=href, external=href.startswith("http")))
        elif kind == "bold":
            tokens.append(Strong(match.group(1)))
        else:
            tokens.append(Emphasis(match.group(1)))

        rest = rest[match.end() :]

    return _merge_text(tokens)


def _merge_text(tokens: List[Inline]) -> List[Inline]:
    """Joins adjacent Text nodes (a degraded link sits next to plain text)."""
    merged: List[Inline] = []
    for token in tokens:
        if isinstance(token, Text) and merged and isinstance(merged[-1], Text):
            merged[-1] = Text(merged[-1].text + token.text)
        else:
            merged.append(token)
    return merged


def parse_inline(text: str) -> List[Inline]:
    """Inline pass over a single line of text."""
    out: List[Inline] = []
    for part in CODE_SPAN_SPLIT.split(text):
        if not part:
            continue
        if part.startswith("`") and part.endswith("`") and len(part) >= 2:
            out.append(CodeSpan(part[1:-1]))
            continue
        out.extend(_parse_styled(part))
    return out


def _parse_multiline(text: str) -> List[Inline]:
    out: List[Inline] = []
    lines = text.split("\n")
    for idx, line in enumerate(lines):
        out.extend(parse_inline(line))
        if idx < len(lines) - 1:
            out.append(LineBreak())
    return out


def render_narrative(text: str) -> List[Block]:
    """Both passes: blocks with their inline nodes filled in."""
    blocks = parse_blocks(text)
    for block in blocks:
        if isinstance(block, Heading):
            block.inlines = parse_inline(block.text)
        elif isinstance(block, Paragraph):
            block.inlines = _parse_multiline(block.text)
        elif isinstance(block, (BulletList, OrderedList)):
            block.item_inlines = [parse_inline(item) for item in block.items]
    return blocks


def to_dict(node: Union[Block, Inline]) -> Dict[str, Any]:
    return asdict(node)


def blocks_to_dicts(blocks: List[Block]) -> List[Dict[str, Any]]:
    return [to_dict(b) for b in blocks]
