"""Pass-through parser for providers that emit structured tool calls."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field

from codeagent.errors import ToolParseError
from codeagent.parsing.base import ToolInvocationParser, format_scalar, tool_id
from codeagent.types.config import ToolSyntax
from codeagent.types.fragments import (
    DisplayFragment,
    TextFragment,
    ToolEndFragment,
    ToolNameFragment,
    ToolParameterFragment,
)
from codeagent.types.messages import (
    ContentBlock,
    Message,
    RedactedThinkingBlock,
    TextBlock,
    ThinkingBlock,
    ToolUseBlock,
)
from codeagent.types.providers import (
    ReasoningSummaryDelta,
    StreamEnd,
    StreamingChunk,
    TextDelta,
    ThinkingDelta,
    ToolCallDelta,
)
from codeagent.types.tools import ToolDef, ToolRequest

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _OpenCall:
    index: int
    id: str
    name: str
    arguments: list[str] = field(default_factory=list)


class NativeParser(ToolInvocationParser):
    """Assembles ``ToolCallDelta`` fragments into tool requests.

    A call is complete once a call with a different index starts or the
    provider sends its terminal chunk. A call still open when the stream is
    cut short is discarded.
    """

    syntax = ToolSyntax.NATIVE

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._body: list[str | ToolRequest] = []  # kept text and requests, in arrival order
        self._held: list[str] = []
        self._current: _OpenCall | None = None

    def _process_text(self, text: str) -> list[DisplayFragment]:
        if self._current is not None or self._tool_count:
            self._held.append(text)
            return []
        self._body.append(text)
        return [TextFragment(text)]

    def _process_tool_call(self, chunk: ToolCallDelta) -> list[DisplayFragment]:
        out: list[DisplayFragment] = []
        if self._current is not None and chunk.index == self._current.index:
            self._current.arguments.append(chunk.arguments)
            return out

        if self._current is not None:
            out.extend(self._complete_current())
        name = chunk.name or ""
        if not self._may_start_tool(name):
            self._stop()
            self._held.clear()
            return out
        out.extend(self._flush_held())
        self._tool_count += 1
        call_id = chunk.id or tool_id(self._request_id, self._tool_count)
        self._current = _OpenCall(chunk.index, call_id, name, [chunk.arguments])
        out.append(ToolNameFragment(name, call_id))
        return out

    def _complete_current(self) -> list[DisplayFragment]:
        call, self._current = self._current, None
        assert call is not None
        raw = "".join(call.arguments).strip() or "{}"
        try:
            self._definition(call.name)
            try:
                args = json.loads(raw)
            except json.JSONDecodeError as exc:
                raise ToolParseError(
                    f"Invalid JSON arguments for tool '{call.name}': {exc}", call.name,
                ) from None
            if not isinstance(args, dict):
                raise ToolParseError(
                    f"Arguments for tool '{call.name}' must be a JSON object", call.name,
                )
        except ToolParseError as exc:
            logger.warning("Malformed tool call in response %d: %s", self._request_id, exc)
            if self._error is None:
                self._error = exc
            return [ToolEndFragment(call.id)]

        request = ToolRequest(id=call.id, name=call.name, input=args, order=len(self._requests))
        self._requests.append(request)
        self._body.append(request)
        out: list[DisplayFragment] = [
            ToolParameterFragment(key, format_scalar(value), call.id)
            for key, value in args.items()
        ]
        out.append(ToolEndFragment(call.id))
        return out

    def _flush_held(self) -> list[DisplayFragment]:
        out: list[DisplayFragment] = [TextFragment(text) for text in self._held]
        self._body.extend(self._held)
        self._held.clear()
        return out

    def _on_stream_end(self) -> list[DisplayFragment]:
        out: list[DisplayFragment] = []
        if self._current is not None:
            if self._stop_reason == "max_tokens":
                # Cut off mid-arguments.
                self._discard_open_tool()
            else:
                out.extend(self._complete_current())
        if (
            self._held
            and self._error is None
            and self._requests
            and self._filter.allow_content_after(self._requests[-1])
        ):
            out.extend(self._flush_held())
        self._held.clear()
        return out

    def _discard_open_tool(self) -> None:
        if self._current is not None:
            logger.debug(
                "Discarding unterminated tool call '%s' in response %d",
                self._current.name, self._request_id,
            )
            self._current = None
        self._held.clear()

    def _body_blocks(self, include_tools: bool, until_first_tool: bool) -> list[ContentBlock]:
        # Tool calls carry no markup, so there is nothing to cut at the first one.
        body: list[ContentBlock] = []
        text = ""
        for item in self._body:
            if isinstance(item, str):
                text += item
            elif include_tools:
                if text:
                    body.append(TextBlock(text))
                    text = ""
                body.append(ToolUseBlock(item.id, item.name, item.input))
        if text:
            body.append(TextBlock(text))
        return body

    def _replay_chunks(self, message: Message) -> list[StreamingChunk]:
        chunks: list[StreamingChunk] = []
        has_tools = False
        for index, block in enumerate(message.blocks):
            match block:
                case ThinkingBlock(text=text, signature=signature):
                    chunks.append(ThinkingDelta(text, signature))
                case RedactedThinkingBlock(summary_items=items):
                    chunks.extend(ReasoningSummaryDelta(t, i) for i, t in enumerate(items))
                case TextBlock(text=text):
                    chunks.append(TextDelta(text))
                case ToolUseBlock(id=id_, name=name, input=input_):
                    has_tools = True
                    chunks.append(ToolCallDelta(index, id_, name, json.dumps(input_)))
        chunks.append(StreamEnd("tool_use" if has_tools else "end_turn"))
        return chunks

    def render_request(self, request: ToolRequest) -> str:
        return json.dumps({"name": request.name, "input": request.input}, indent=2)

    def tool_documentation(self, definitions: list[ToolDef]) -> str:
        # Schemas travel with the request.
        return ""
