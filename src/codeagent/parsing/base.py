"""Shared machinery for the streaming tool-invocation parsers.

Every syntax implements the same contract:

* :meth:`ToolInvocationParser.process_chunk` turns one provider chunk into
  display fragments, tolerating markers split across chunks;
* :meth:`ToolInvocationParser.finalize` returns the realized tool requests;
* :meth:`ToolInvocationParser.extract_from_complete_message` replays a stored
  message through the same grammar.

A parser instance is single-use: one per in-flight assistant response.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, ClassVar

from codeagent.errors import ToolParseError
from codeagent.parsing.filters import SingleToolFilter, ToolUseFilter
from codeagent.types.config import ToolSyntax
from codeagent.types.fragments import (
    DisplayFragment,
    ReasoningSummaryFragment,
    TextFragment,
    ThinkingFragment,
    ToolEndFragment,
    ToolNameFragment,
    ToolParameterFragment,
    merge_fragments,
)
from codeagent.types.messages import (
    ContentBlock,
    Message,
    MessageRole,
    RedactedThinkingBlock,
    TextBlock,
    ThinkingBlock,
    ToolUseBlock,
    Usage,
)
from codeagent.types.providers import (
    RateLimitSignal,
    ReasoningSummaryDelta,
    StreamEnd,
    StreamingChunk,
    TextDelta,
    ThinkingDelta,
    ToolCallDelta,
    UsageReport,
)
from codeagent.types.tools import ToolDef, ToolParam, ToolRequest

if TYPE_CHECKING:
    from codeagent.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


def tool_id(request_id: int, index: int) -> str:
    """Identifier of the *index*-th (1-based) tool of a response."""
    return f"tool-{request_id}-{index}"


# ---------------------------------------------------------------------------
# Schema-driven parameter conversion
# ---------------------------------------------------------------------------


def _array_aliases(name: str) -> tuple[str, ...]:
    """Singular/plural spellings a model may use for an array parameter."""
    if name.endswith("ies"):
        return (name[:-3] + "y",)
    if name.endswith("s"):
        return (name[:-1],)
    if name.endswith("y"):
        return (name[:-1] + "ies", name + "s")
    return (name + "s",)


def _convert_scalar(kind: str, raw: str, tool_name: str, param_name: str) -> Any:
    match kind:
        case "boolean":
            lowered = raw.strip().lower()
            if lowered in ("true", "yes", "1"):
                return True
            if lowered in ("false", "no", "0"):
                return False
            raise ToolParseError(
                f"Invalid boolean for parameter '{param_name}' of tool '{tool_name}': {raw!r}",
                tool_name,
            )
        case "integer":
            try:
                return int(raw.strip())
            except ValueError:
                raise ToolParseError(
                    f"Invalid integer for parameter '{param_name}' of tool '{tool_name}': {raw!r}",
                    tool_name,
                ) from None
        case "number":
            try:
                return float(raw.strip())
            except ValueError:
                raise ToolParseError(
                    f"Invalid number for parameter '{param_name}' of tool '{tool_name}': {raw!r}",
                    tool_name,
                ) from None
        case "object":
            try:
                value = json.loads(raw)
            except json.JSONDecodeError as exc:
                raise ToolParseError(
                    f"Invalid JSON object for parameter '{param_name}' of tool '{tool_name}': {exc}",
                    tool_name,
                ) from None
            if not isinstance(value, dict):
                raise ToolParseError(
                    f"Parameter '{param_name}' of tool '{tool_name}' must be a JSON object",
                    tool_name,
                )
            return value
        case _:
            return raw


def convert_params(
    tool_name: str,
    raw: dict[str, list[str]],
    definition: ToolDef | None,
) -> dict[str, Any]:
    """Convert textual parameter values into typed input using the tool schema.

    Array parameters collect every value (including values given under the
    singular/plural alias); scalars take the first value. Parameters the
    schema does not know are passed through unchanged.
    """
    remaining = dict(raw)
    result: dict[str, Any] = {}
    if definition is not None:
        for param in definition.parameters:
            values = remaining.pop(param.name, None)
            if param.type == "array":
                for alias in _array_aliases(param.name):
                    extra = remaining.pop(alias, None)
                    if extra is not None:
                        values = (values or []) + extra
            if values is None:
                continue
            if param.type == "array":
                item_type = (param.items or {}).get("type", "string")
                result[param.name] = [
                    _convert_scalar(item_type, v, tool_name, param.name) for v in values
                ]
            elif values:
                if len(values) > 1:
                    logger.debug(
                        "Parameter '%s' of tool '%s' repeated, keeping the first value",
                        param.name, tool_name,
                    )
                result[param.name] = _convert_scalar(param.type, values[0], tool_name, param.name)
    for key, values in remaining.items():
        result[key] = values[0] if len(values) == 1 else list(values)
    return result


def format_scalar(value: Any) -> str:
    """Render one parameter value as text."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)):
        return repr(value)
    return json.dumps(value)


def _example_value(param: ToolParam) -> Any:
    if param.enum:
        return param.enum[0]
    match param.type:
        case "array":
            return ["item1", "item2"]
        case "boolean":
            return True
        case "integer":
            return 1
        case "number":
            return 1.5
        case "object":
            return {"key": "value"}
        case _:
            return f"{param.name} value"


# ---------------------------------------------------------------------------
# Parser contract
# ---------------------------------------------------------------------------


class ToolInvocationParser(ABC):
    """Incremental parser for one assistant response."""

    syntax: ClassVar[ToolSyntax]

    def __init__(
        self,
        registry: ToolRegistry | None = None,
        request_id: int = 0,
        *,
        tool_filter: ToolUseFilter | None = None,
    ) -> None:
        self._registry = registry
        self._request_id = request_id
        self._filter: ToolUseFilter = tool_filter or SingleToolFilter()

        self._thinking: list[str] = []
        self._signature = ""
        self._summaries: dict[int, str] = {}
        self._opaque_reasoning = ""

        self._requests: list[ToolRequest] = []
        self._error: ToolParseError | None = None
        self._tool_count = 0  # tool blocks started, including discarded ones

        self._usage: Usage | None = None
        self._stop_reason: str | None = None
        self._ended = False
        self._stop_requested = False
        self._finalized = False

    # ------------------------------------------------------------------
    # Public state
    # ------------------------------------------------------------------

    @property
    def request_id(self) -> int:
        return self._request_id

    @property
    def stop_requested(self) -> bool:
        """True once a further tool start was rejected; stop consuming the stream."""
        return self._stop_requested

    @property
    def usage(self) -> Usage | None:
        return self._usage

    @property
    def stop_reason(self) -> str | None:
        return self._stop_reason

    @property
    def ended(self) -> bool:
        """True once the provider's terminal chunk was seen."""
        return self._ended

    # ------------------------------------------------------------------
    # Streaming contract
    # ------------------------------------------------------------------

    def process_chunk(self, chunk: StreamingChunk) -> list[DisplayFragment]:
        """Feed one chunk; return the fragments it completes."""
        if self._finalized:
            raise RuntimeError("process_chunk() called after finalize()")

        match chunk:
            case UsageReport(usage=usage):
                self._usage = usage
                return []
            case RateLimitSignal():
                return []
            case StreamEnd(stop_reason=reason, opaque_reasoning=opaque):
                self._stop_reason = reason
                self._ended = True
                if opaque:
                    self._opaque_reasoning = opaque
                if self._stop_requested:
                    return []
                return self._on_stream_end()

        if self._stop_requested or self._ended:
            return []

        match chunk:
            case TextDelta(text=text):
                return self._process_text(text) if text else []
            case ThinkingDelta(text=text, signature=signature):
                if signature:
                    self._signature = signature
                if not text:
                    return []
                self._thinking.append(text)
                return [ThinkingFragment(text)]
            case ToolCallDelta():
                return self._process_tool_call(chunk)
            case ReasoningSummaryDelta(text=text, item=item):
                self._summaries[item] = self._summaries.get(item, "") + text
                return [ReasoningSummaryFragment(text, item)]
        return []

    def finalize(self) -> list[ToolRequest]:
        """Return the realized tool requests.

        A tool block left open (the stream ended or was cut before its closing
        marker) is discarded. Raises ToolParseError when a completed block was
        malformed.
        """
        if not self._finalized:
            self._finalized = True
            self._discard_open_tool()
        if self._error is not None:
            raise self._error
        return list(self._requests)

    def extract_from_complete_message(
        self, message: Message,
    ) -> tuple[list[DisplayFragment], list[ToolRequest]]:
        """Replay a stored message through a fresh parser of the same syntax.

        Fragments come back with adjacent deltas merged (see merge_fragments).
        """
        if message.role is MessageRole.USER:
            text = message.text
            return ([TextFragment(text)] if text else []), []

        parser = type(self)(
            self._registry,
            message.request_id if message.request_id is not None else self._request_id,
            tool_filter=self._filter,
        )
        fragments: list[DisplayFragment] = []
        for chunk in parser._replay_chunks(message):
            fragments.extend(parser.process_chunk(chunk))
        fragments = merge_fragments(fragments)
        try:
            requests = parser.finalize()
        except ToolParseError as exc:
            logger.debug("Replayed message holds a malformed tool block: %s", exc)
            requests = []
        return fragments, requests

    def content_blocks(
        self, include_tools: bool = True, *, until_first_tool: bool = False,
    ) -> tuple[ContentBlock, ...]:
        """Assistant content assembled from everything kept so far.

        With *until_first_tool*, text from the first tool block onward is left
        out, so no tool markup survives without a matching result.
        """
        blocks: list[ContentBlock] = []
        if self._thinking or self._signature:
            blocks.append(ThinkingBlock("".join(self._thinking), self._signature))
        if self._summaries or self._opaque_reasoning:
            items = tuple(self._summaries[k] for k in sorted(self._summaries))
            blocks.append(RedactedThinkingBlock(items, self._opaque_reasoning))
        blocks.extend(self._body_blocks(include_tools, until_first_tool))
        return tuple(blocks)

    # ------------------------------------------------------------------
    # Rendering and documentation
    # ------------------------------------------------------------------

    @abstractmethod
    def render_request(self, request: ToolRequest) -> str:
        """Render *request* back into this syntax."""

    def syntax_documentation(self) -> str:
        """System-prompt section explaining the syntax; empty for native calls."""
        return ""

    def tool_documentation(self, definitions: list[ToolDef]) -> str:
        """Per-tool usage docs with an example invocation in this syntax."""
        sections: list[str] = []
        for definition in definitions:
            lines = [f"## {definition.name}", f"Description: {definition.description}"]
            lines.append("Parameters:")
            for param in definition.parameters:
                flag = "required" if param.required else "optional"
                lines.append(f"- {param.name} ({param.type}, {flag}): {param.description}")
            ordered = sorted(definition.parameters, key=lambda p: not p.required)
            example = ToolRequest(
                id="example",
                name=definition.name,
                input={p.name: _example_value(p) for p in ordered},
            )
            lines.append("Usage:")
            lines.append(self.render_request(example))
            sections.append("\n".join(lines))
        return "\n\n".join(sections)

    # ------------------------------------------------------------------
    # Hooks for subclasses
    # ------------------------------------------------------------------

    def _process_text(self, text: str) -> list[DisplayFragment]:
        return [TextFragment(text)]

    def _process_tool_call(self, chunk: ToolCallDelta) -> list[DisplayFragment]:
        logger.debug("Ignoring structured tool call delta in %s syntax", self.syntax.value)
        return []

    def _on_stream_end(self) -> list[DisplayFragment]:
        return []

    def _discard_open_tool(self) -> None:
        """Drop a tool block that never closed."""

    @abstractmethod
    def _body_blocks(self, include_tools: bool, until_first_tool: bool) -> list[ContentBlock]:
        """Text and tool-use blocks in stored order."""

    @abstractmethod
    def _replay_chunks(self, message: Message) -> list[StreamingChunk]:
        ...

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _definition(self, name: str) -> ToolDef | None:
        if self._registry is None:
            return None
        definition = self._registry.definition(name)
        if definition is None:
            raise ToolParseError(f"Unknown tool: {name}", name)
        return definition

    def _may_start_tool(self, name: str) -> bool:
        """Apply the tool-use filter to a tool start seen at the current position."""
        if self._tool_count == 0:
            return True
        if self._error is not None:
            return False
        return self._filter.allow_tool(name, len(self._requests), self._requests)

    def _stop(self) -> None:
        logger.debug("Tool-use limit reached in response %d, stopping early", self._request_id)
        self._stop_requested = True


class TextSyntaxParser(ToolInvocationParser):
    """Base for syntaxes that encode tools inside the assistant's text.

    The raw text is kept verbatim so the stored message can be replayed. Text
    is *committed* once it is known to stay in the message: plain text before
    any tool as soon as it is recognized, a tool block when it closes. Output
    after a completed tool is held back until the tool-use filter decides
    whether it may stay.
    """

    def __init__(
        self,
        registry: ToolRegistry | None = None,
        request_id: int = 0,
        *,
        tool_filter: ToolUseFilter | None = None,
    ) -> None:
        super().__init__(registry, request_id, tool_filter=tool_filter)
        self._buffer = ""
        self._raw = ""
        self._committed = 0
        self._held: list[DisplayFragment] = []
        self._holding = False  # after a tool whose trailing content may stay
        self._swallow = False  # after a tool whose trailing content is dropped

        self._tool_name: str | None = None
        self._tool_id = ""
        self._tool_start = 0
        self._first_tool_start: int | None = None
        self._params: dict[str, list[str]] = {}
        # Raised only if the open block closes; a truncated block is dropped quietly.
        self._pending_error: ToolParseError | None = None

    @property
    def in_tool(self) -> bool:
        return self._tool_name is not None

    def _process_text(self, text: str) -> list[DisplayFragment]:
        self._buffer += text
        out: list[DisplayFragment] = []
        self._drain(out, final=False)
        return out

    def _on_stream_end(self) -> list[DisplayFragment]:
        out: list[DisplayFragment] = []
        self._drain(out, final=True)
        if self._holding and not self.in_tool and not self._stop_requested:
            out.extend(self._held)
            self._held.clear()
            self._committed = len(self._raw)
        return out

    @abstractmethod
    def _drain(self, out: list[DisplayFragment], final: bool) -> None:
        """Consume as much of the buffer as can be decided."""

    def _body_blocks(self, include_tools: bool, until_first_tool: bool) -> list[ContentBlock]:
        text = self._kept_text(until_first_tool)
        body: list[ContentBlock] = [TextBlock(text)] if text else []
        if include_tools:
            body.extend(ToolUseBlock(r.id, r.name, r.input) for r in self._requests)
        return body

    def _kept_text(self, until_first_tool: bool = False) -> str:
        if until_first_tool and self._first_tool_start is not None:
            return self._raw[: min(self._first_tool_start, self._committed)]
        return self._raw[: self._committed]

    def _replay_chunks(self, message: Message) -> list[StreamingChunk]:
        chunks: list[StreamingChunk] = []
        for block in message.blocks:
            match block:
                case ThinkingBlock(text=text, signature=signature):
                    chunks.append(ThinkingDelta(text, signature))
                case RedactedThinkingBlock(summary_items=items):
                    chunks.extend(ReasoningSummaryDelta(t, i) for i, t in enumerate(items))
                case TextBlock(text=text):
                    chunks.append(TextDelta(text))
        chunks.append(StreamEnd())
        return chunks

    # ------------------------------------------------------------------
    # Consumption helpers for subclasses
    # ------------------------------------------------------------------

    def _consume(self, n: int) -> str:
        piece, self._buffer = self._buffer[:n], self._buffer[n:]
        if not self._swallow:
            self._raw += piece
        return piece

    def _emit(self, out: list[DisplayFragment], fragment: DisplayFragment) -> None:
        if self._swallow:
            return
        if self._holding and not self.in_tool:
            self._held.append(fragment)
        else:
            out.append(fragment)

    def _plain(self, out: list[DisplayFragment], n: int) -> None:
        """Consume *n* characters of plain text outside any tool."""
        if n <= 0:
            return
        text = self._consume(n)
        self._emit(out, TextFragment(text))
        if not self._holding and not self._swallow:
            self._committed = len(self._raw)

    def _emit_thinking(self, out: list[DisplayFragment], text: str) -> None:
        if text:
            self._emit(out, ThinkingFragment(text))
            if not self._holding and not self._swallow:
                self._committed = len(self._raw)

    def _begin_tool(self, out: list[DisplayFragment], name: str, marker_len: int) -> bool:
        """Open a tool block whose start marker is at the head of the buffer.

        Returns False when the tool-use filter rejected it; the parser is then
        frozen and everything after the last committed position is dropped.
        """
        if not self._may_start_tool(name) or self.in_tool:
            self._stop()
            self._raw = self._raw[: self._committed]
            self._held.clear()
            self._buffer = ""
            self._tool_name = None
            return False
        out.extend(self._held)
        self._held.clear()
        self._holding = False
        self._swallow = False
        self._tool_start = len(self._raw)
        if self._first_tool_start is None:
            self._first_tool_start = self._tool_start
        self._consume(marker_len)
        self._tool_count += 1
        self._tool_name = name
        self._tool_id = tool_id(self._request_id, self._tool_count)
        self._params = {}
        out.append(ToolNameFragment(name, self._tool_id))
        return True

    def _fail_open_tool(self, message: str) -> None:
        if self._pending_error is None:
            self._pending_error = ToolParseError(message, self._tool_name)

    def _add_param(self, out: list[DisplayFragment], key: str, value: str) -> None:
        self._params.setdefault(key, []).append(value)
        out.append(ToolParameterFragment(key, value, self._tool_id))

    def _end_tool(self, out: list[DisplayFragment], marker_len: int) -> None:
        self._consume(marker_len)
        out.append(ToolEndFragment(self._tool_id))
        self._committed = len(self._raw)
        name = self._tool_name or ""
        request: ToolRequest | None = None
        pending, self._pending_error = self._pending_error, None
        try:
            if pending is not None:
                raise pending
            request = ToolRequest(
                id=self._tool_id,
                name=name,
                input=convert_params(name, self._params, self._definition(name)),
                order=len(self._requests),
                start_offset=self._tool_start,
                end_offset=len(self._raw),
            )
        except ToolParseError as exc:
            logger.warning("Malformed tool block in response %d: %s", self._request_id, exc)
            if self._error is None:
                self._error = exc
        self._tool_name = None
        self._params = {}
        if request is not None:
            self._requests.append(request)
        if request is not None and self._filter.allow_content_after(request):
            self._holding = True
        else:
            self._swallow = True

    def _discard_open_tool(self) -> None:
        if self.in_tool:
            logger.debug(
                "Discarding unterminated tool block '%s' in response %d",
                self._tool_name, self._request_id,
            )
            self._tool_name = None
            self._params = {}
        self._held.clear()
        self._pending_error = None
