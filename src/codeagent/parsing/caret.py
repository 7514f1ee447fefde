"""Fenced-block tool syntax.

    ^^^write_file
    path: src/main.py
    content ---
    print("hello")
    --- content
    ^^^
"""

from __future__ import annotations

import logging
import re

from codeagent.parsing.base import TextSyntaxParser, format_scalar
from codeagent.types.config import ToolSyntax
from codeagent.types.fragments import DisplayFragment
from codeagent.types.tools import ToolRequest

logger = logging.getLogger(__name__)

_FENCE = "^^^"
_TOOL_START = re.compile(r"\^\^\^([A-Za-z0-9_]+)")
_MULTILINE_START = re.compile(r"([A-Za-z0-9_]+)\s+---")
_ARRAY_START = re.compile(r"([A-Za-z0-9_]+):\s*\[")
_PARAM = re.compile(r"([A-Za-z0-9_]+):(.*)")

SYNTAX_DOCUMENTATION = """\
# Tool Use Formatting

Tools are invoked with triple-caret fenced blocks. The opening fence is
followed by the tool name on the same line; a line with only the fence closes
the block. Parameters use `key: value`. Multi-line values start with a
`key ---` line and end with a `--- key` line. Arrays open with `key: [`, list
one item per line and close with `]`:

^^^tool_name
first_param: value
long_param ---
a value that
spans lines
--- long_param
array_param: [
item1
item2
]
^^^

Use at most one tool per message and stop writing after its closing fence."""


def _is_simple(text: str) -> bool:
    """Whether *text* survives a ``key: value`` line unchanged."""
    return "\n" not in text and "\r" not in text and text == text.strip() and text != "["


def _is_simple_item(text: str) -> bool:
    return _is_simple(text) and text not in ("", "]")


class CaretParser(TextSyntaxParser):
    """Incremental, line-oriented parser for ``^^^NAME`` blocks."""

    syntax = ToolSyntax.CARET

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._line_start = True
        self._multiline_key: str | None = None
        self._multiline: list[str] = []
        self._array_key: str | None = None

    def _drain(self, out: list[DisplayFragment], final: bool) -> None:
        while self._buffer and not self._stop_requested:
            if self.in_tool:
                if not self._drain_tool_line(out, final):
                    return
            elif not self._drain_text(out, final):
                return

    def _drain_text(self, out: list[DisplayFragment], final: bool) -> bool:
        buf = self._buffer
        nl = buf.find("\n")
        if self._line_start and _FENCE.startswith(buf[:3]):
            if nl == -1 and not final:
                return False
            line = buf if nl == -1 else buf[:nl]
            m = _TOOL_START.fullmatch(line.rstrip("\r"))
            if m:
                return self._begin_tool(out, m.group(1), len(buf) if nl == -1 else nl + 1)
        self._plain(out, len(buf) if nl == -1 else nl + 1)
        self._line_start = nl != -1
        return nl != -1

    def _drain_tool_line(self, out: list[DisplayFragment], final: bool) -> bool:
        buf = self._buffer
        nl = buf.find("\n")
        if nl == -1 and not final:
            return False
        size = len(buf) if nl == -1 else nl + 1
        line = buf[: size - 1] if nl != -1 else buf
        if nl == -1 and (
            self._multiline_key is not None or self._array_key is not None or line.strip() != _FENCE
        ):
            # The stream ended inside the block, which finalize() discards.
            self._consume(size)
            return True

        if self._multiline_key is not None:
            key = self._multiline_key
            self._consume(size)
            if line.strip() == f"--- {key}":
                self._multiline_key = None
                self._add_param(out, key, "\n".join(self._multiline))
                self._multiline = []
            else:
                self._multiline.append(line)
            return True

        stripped = line.strip()
        if self._array_key is not None:
            key = self._array_key
            self._consume(size)
            if stripped == "]":
                self._array_key = None
            elif stripped:
                self._add_param(out, key, stripped)
            return True

        if stripped == _FENCE:
            self._end_tool(out, size)
            self._line_start = True
            return True
        m = _TOOL_START.fullmatch(stripped)
        if m:
            # A second tool starting before the first one closed.
            self._begin_tool(out, m.group(1), size)
            return False

        self._consume(size)
        if not stripped:
            return True
        if m := _MULTILINE_START.fullmatch(stripped):
            self._multiline_key = m.group(1)
            self._multiline = []
        elif m := _ARRAY_START.fullmatch(stripped):
            self._array_key = m.group(1)
            self._params.setdefault(self._array_key, [])
        elif m := _PARAM.fullmatch(stripped):
            self._add_param(out, m.group(1), m.group(2).strip())
        else:
            self._fail_open_tool(
                f"Unexpected line in tool block '{self._tool_name}': {stripped!r}",
            )
        return True

    def _discard_open_tool(self) -> None:
        self._multiline_key = None
        self._multiline = []
        self._array_key = None
        super()._discard_open_tool()

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def render_request(self, request: ToolRequest) -> str:
        lines = [f"{_FENCE}{request.name}"]
        for key, value in request.input.items():
            if isinstance(value, list):
                items = [format_scalar(v) for v in value]
                if all(_is_simple_item(item) for item in items):
                    lines.append(f"{key}: [")
                    lines.extend(items)
                    lines.append("]")
                else:
                    for item in items:
                        lines.extend([f"{key} ---", *item.split("\n"), f"--- {key}"])
                continue
            text = format_scalar(value)
            if _is_simple(text):
                lines.append(f"{key}: {text}".rstrip())
            else:
                lines.extend([f"{key} ---", *text.split("\n"), f"--- {key}"])
        lines.append(_FENCE)
        return "\n".join(lines)

    def syntax_documentation(self) -> str:
        return SYNTAX_DOCUMENTATION
