"""
Streaming line classifier for generator output.

The generator interleaves Markdown narrative with one-line JSON patches. Text
arrives in arbitrary chunks; complete lines are classified in arrival order:

1. ``` fence marker        -> toggle fence, narrative
2. inside a fence          -> narrative, verbatim
3. blank                   -> narrative line break
4. // comment              -> narrative (marker stripped); the question channel
5. JSON {op: str, path: str} -> applied to the current tree generation
6. anything else           -> narrative, verbatim

A patch that decodes but fails to apply halts the session. Patches applied
before it stay committed, unlike the all-or-nothing batch path.
"""

import codecs
import json
from dataclasses import dataclass, field
from typing import Any, AsyncIterable, Callable, Dict, Iterable, List, Optional, Union

import structlog

from treepatch.config import get_settings
from treepatch.errors import PatchError
from treepatch.models import PatchOperation, UITree
from treepatch.patch.engine import COMMENT_MARKER, apply_patch

logger = structlog.get_logger(__name__)

FENCE_MARKER = "```"

Chunk = Union[str, bytes]


# --- Events ---
@dataclass
class NarrativeText:
    text: str


@dataclass
class OperationApplied:
    operation: PatchOperation
    tree: UITree


@dataclass
class OperationFailed:
    operation: Dict[str, Any]
    error: PatchError


StreamEvent = Union[NarrativeText, OperationApplied, OperationFailed]
EventCallback = Callable[[StreamEvent], None]


class RawStreamBuffer:
    """Keeps the newest `max_chars` characters of the raw stream. Diagnostic only."""

    __slots__ = ("max_chars", "_text")

    def __init__(self, max_chars: int):
        self.max_chars = max_chars
        self._text = ""

    def append(self, text: str) -> None:
        if not text:
            return
        combined = self._text + text
        if len(combined) > self.max_chars:
            combined = combined[len(combined) - self.max_chars :] if self.max_chars > 0 else ""
        self._text = combined

    @property
    def text(self) -> str:
        return self._text

    def __len__(self) -> int:
        return len(self._text)


def _strip_comment(trimmed: str) -> str:
    rest = trimmed[len(COMMENT_MARKER) :]
    if rest[:1].isspace():
        rest = rest[1:]
    return rest


class StreamClassifier:
    """
    Explicit per-session state: partial-line buffer, fence flag, current tree.

    Drive it with feed() for every chunk and finish() at end of stream, or use
    classify_stream()/aclassify_stream() which do both.
    """

    def __init__(self, tree: UITree, raw_buffer_chars: Optional[int] = None):
        if raw_buffer_chars is None:
            raw_buffer_chars = get_settings().raw_buffer_chars
        self.tree = tree
        self.buffer = ""
        self.inside_fence = False
        self.halted = False
        self.finished = False
        self.applied = 0
        self.error: Optional[PatchError] = None
        self.raw = RawStreamBuffer(raw_buffer_chars)
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._narrative: List[str] = []

    @property
    def narrative(self) -> str:
        return "".join(self._narrative)

    def _decode(self, chunk: Chunk) -> str:
        if isinstance(chunk, bytes):
            return self._decoder.decode(chunk)
        return chunk

    def _say(self, text: str) -> NarrativeText:
        self._narrative.append(text)
        return NarrativeText(text)

    def feed(self, chunk: Chunk) -> List[StreamEvent]:
        """Consumes one chunk; classifies every line it completes."""
        if self.halted or self.finished:
            return []

        text = self._decode(chunk)
        self.raw.append(text)
        self.buffer += text

        lines = self.buffer.split("\n")
        self.buffer = lines.pop()

        events: List[StreamEvent] = []
        for raw_line in lines:
            events.extend(self.classify_line(raw_line))
            if self.halted:
                break
        return events

    def finish(self) -> List[StreamEvent]:
        """End of stream: the leftover fragment is classified like any other line."""
        if self.halted or self.finished:
            return []
        self.finished = True

        tail = self._decoder.decode(b"", final=True)
        self.raw.append(tail)
        final = self.buffer + tail
        self.buffer = ""

        events: List[StreamEvent] = []
        for raw_line in final.split("\n"):
            if not raw_line:
                continue
            events.extend(self.classify_line(raw_line))
            if self.halted:
                break
        return events

    def classify_line(self, raw_line: str) -> List[StreamEvent]:
        trimmed = raw_line.strip()

        if trimmed.startswith(FENCE_MARKER):
            self.inside_fence = not self.inside_fence
            return [self._say(raw_line + "\n")]

        if self.inside_fence:
            return [self._say(raw_line + "\n")]

        if not trimmed:
            return [self._say("\n")]

        if trimmed.startswith(COMMENT_MARKER):
            return [self._say(_strip_comment(trimmed) + "\n")]

        try:
            parsed = json.loads(trimmed)
        except (json.JSONDecodeError, RecursionError):
            parsed = None

        if PatchOperation.looks_like_operation(parsed):
            return self._apply(parsed, trimmed)

        return [self._say(raw_line + "\n")]

    def _apply(self, parsed: Dict[str, Any], line: str) -> List[StreamEvent]:
        try:
            operation = PatchOperation.from_obj(parsed, line=line)
            self.tree = apply_patch(self.tree, operation)
        except PatchError as e:
            self.halted = True
            self.error = e
            logger.warning(f"Stream halted on failed patch: {e}", line=line[:80], applied=self.applied)
            return [self._say(f"\nPatch error: {e}\n"), OperationFailed(operation=parsed, error=e)]

        self.applied += 1
        return [OperationApplied(operation=operation, tree=self.tree)]


@dataclass
class StreamResult:
    tree: UITree
    narrative: str
    events: List[StreamEvent] = field(default_factory=list)
    applied: int = 0
    error: Optional[PatchError] = None
    cancelled: bool = False
    raw: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None


def _result(classifier: StreamClassifier, events: List[StreamEvent], cancelled: bool) -> StreamResult:
    return StreamResult(
        tree=classifier.tree,
        narrative=classifier.narrative,
        events=events,
        applied=classifier.applied,
        error=classifier.error,
        cancelled=cancelled,
        raw=classifier.raw.text,
    )


def _dispatch(emitted: List[StreamEvent], events: List[StreamEvent], on_event: Optional[EventCallback]) -> None:
    for event in emitted:
        events.append(event)
        if on_event is not None:
            on_event(event)


def classify_stream(
    chunks: Iterable[Chunk],
    tree: UITree,
    should_cancel: Optional[Callable[[], bool]] = None,
    on_event: Optional[EventCallback] = None,
    raw_buffer_chars: Optional[int] = None,
) -> StreamResult:
    """
    Pull loop over a chunk iterable.

    `should_cancel` is checked before each pull and again once the chunk
    arrives; a chunk that lands after cancellation is discarded unclassified.
    The next chunk is not requested until the previous one is classified.
    """
    classifier = StreamClassifier(tree, raw_buffer_chars=raw_buffer_chars)
    events: List[StreamEvent] = []
    cancelled = False
    iterator = iter(chunks)

    try:
        while True:
            if should_cancel is not None and should_cancel():
                cancelled = True
                break
            try:
                chunk = next(iterator)
            except StopIteration:
                break
            if should_cancel is not None and should_cancel():
                cancelled = True
                break
            _dispatch(classifier.feed(chunk), events, on_event)
            if classifier.halted:
                break

        if not cancelled:
            _dispatch(classifier.finish(), events, on_event)
    finally:
        close = getattr(iterator, "close", None)
        if close is not None:
            close()

    if cancelled:
        logger.info("Stream cancelled", applied=classifier.applied)
    return _result(classifier, events, cancelled)


async def aclassify_stream(
    chunks: AsyncIterable[Chunk],
    tree: UITree,
    cancel_event: Optional[Any] = None,
    on_event: Optional[EventCallback] = None,
    raw_buffer_chars: Optional[int] = None,
) -> StreamResult:
    """
    Async pull loop. `cancel_event` is an asyncio.Event (anything with
    is_set()); each `await` for the next chunk is the only suspension point.
    """
    classifier = StreamClassifier(tree, raw_buffer_chars=raw_buffer_chars)
    events: List[StreamEvent] = []
    cancelled = False
    iterator = chunks.__aiter__()

    try:
        while True:
            if cancel_event is not None and cancel_event.is_set():
                cancelled = True
                break
            try:
                chunk = await iterator.__anext__()
            except StopAsyncIteration:
                break
            if cancel_event is not None and cancel_event.is_set():
                cancelled = True
                break
            _dispatch(classifier.feed(chunk), events, on_event)
            if classifier.halted:
                break

        if not cancelled:
            _dispatch(classifier.finish(), events, on_event)
    finally:
        aclose = getattr(iterator, "aclose", None)
        if aclose is not None:
            await aclose()

    if cancelled:
        logger.info("Stream cancelled", applied=classifier.applied)
    return _result(classifier, events, cancelled)
