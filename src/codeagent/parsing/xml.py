"""Tag-delimited tool syntax.

    <tool:read_files>
    <param:path>src/main.py</param:path>
    <param:path>src/utils.py</param:path>
    </tool:read_files>
"""

from __future__ import annotations

import logging
import re

from codeagent.parsing.base import TextSyntaxParser, format_scalar
from codeagent.types.config import ToolSyntax
from codeagent.types.fragments import DisplayFragment
from codeagent.types.tools import ToolRequest

logger = logging.getLogger(__name__)

_NAME = r"[A-Za-z0-9_\-]+"
_TOOL_OPEN = re.compile(rf"<tool:({_NAME})>")
_TOOL_CLOSE = re.compile(rf"</tool:({_NAME})>")
_PARAM_OPEN = re.compile(rf"<param:({_NAME})>")
_PARTIAL_NAMED_TAG = re.compile(rf"</?(?:tool|param):(?:{_NAME})?\Z")
_THINKING_OPEN = "<thinking>"
_THINKING_CLOSE = "</thinking>"
_TAG_STARTS = ("<tool:", "</tool:", "<param:", "</param:", _THINKING_OPEN, _THINKING_CLOSE)

SYNTAX_DOCUMENTATION = """\
# Tool Use Formatting

Tools are invoked with XML-style tags. Wrap the invocation in <tool:NAME> and
</tool:NAME>, and put each parameter in its own <param:KEY>...</param:KEY>
pair. Values may span several lines. For array parameters, repeat the
parameter once per item:

<tool:tool_name>
<param:first_param>value</param:first_param>
<param:long_param>
a value that
spans lines
</param:long_param>
<param:array_param>item1</param:array_param>
<param:array_param>item2</param:array_param>
</tool:tool_name>

Use at most one tool per message and stop writing after its closing tag."""


def _partial_suffix(text: str, marker: str) -> int:
    """Length of the longest proper prefix of *marker* that *text* ends with."""
    for k in range(min(len(marker) - 1, len(text)), 0, -1):
        if text.endswith(marker[:k]):
            return k
    return 0


def _could_be_tag(text: str) -> bool:
    """Whether *text* (starting with '<') may still grow into a known tag."""
    if any(start.startswith(text) for start in _TAG_STARTS):
        return True
    return _PARTIAL_NAMED_TAG.match(text) is not None


def _strip_value(value: str) -> str:
    if value.startswith("\n"):
        value = value[1:]
    if value.endswith("\n"):
        value = value[:-1]
    return value


class XmlParser(TextSyntaxParser):
    """Incremental parser for ``<tool:NAME>`` / ``<param:KEY>`` markup."""

    syntax = ToolSyntax.XML

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._param_key: str | None = None
        self._param_value = ""
        self._in_thinking = False

    def _drain(self, out: list[DisplayFragment], final: bool) -> None:
        while self._buffer and not self._stop_requested:
            if self._param_key is not None:
                if not self._drain_param(out, final):
                    return
            elif self.in_tool:
                if not self._drain_tool(out, final):
                    return
            elif self._in_thinking:
                if not self._drain_thinking(out, final):
                    return
            elif not self._drain_text(out, final):
                return

    # Each _drain_* returns False when it needs more input.

    def _drain_text(self, out: list[DisplayFragment], final: bool) -> bool:
        buf = self._buffer
        idx = buf.find("<")
        if idx == -1:
            self._plain(out, len(buf))
            return False
        if idx > 0:
            self._plain(out, idx)
            return True
        m = _TOOL_OPEN.match(buf)
        if m:
            return self._begin_tool(out, m.group(1), m.end())
        if buf.startswith(_THINKING_OPEN):
            self._consume(len(_THINKING_OPEN))
            self._in_thinking = True
            return True
        if not final and _could_be_tag(buf):
            return False
        self._plain(out, 1)
        return True

    def _drain_thinking(self, out: list[DisplayFragment], final: bool) -> bool:
        buf = self._buffer
        idx = buf.find(_THINKING_CLOSE)
        if idx == -1:
            keep = 0 if final else _partial_suffix(buf, _THINKING_CLOSE)
            self._emit_thinking(out, self._consume(len(buf) - keep))
            return False
        self._emit_thinking(out, self._consume(idx))
        self._consume(len(_THINKING_CLOSE))
        self._in_thinking = False
        return True

    def _drain_tool(self, out: list[DisplayFragment], final: bool) -> bool:
        buf = self._buffer
        stripped = len(buf) - len(buf.lstrip())
        if stripped:
            self._consume(stripped)
            return True
        if not buf.startswith("<"):
            # Stray text between parameters carries no meaning.
            idx = buf.find("<")
            self._consume(len(buf) if idx == -1 else idx)
            return idx != -1
        m = _PARAM_OPEN.match(buf)
        if m:
            self._consume(m.end())
            self._param_key = m.group(1)
            self._param_value = ""
            return True
        m = _TOOL_CLOSE.match(buf)
        if m:
            if m.group(1) != self._tool_name:
                self._fail_open_tool(
                    f"Mismatched closing tag: expected </tool:{self._tool_name}>, "
                    f"got </tool:{m.group(1)}>",
                )
            self._end_tool(out, m.end())
            return True
        m = _TOOL_OPEN.match(buf)
        if m:
            # A second tool starting before the first one closed.
            self._begin_tool(out, m.group(1), m.end())
            return False
        if not final and _could_be_tag(buf):
            return False
        end = buf.find(">")
        tag = buf if end == -1 else buf[: end + 1]
        self._fail_open_tool(f"Unexpected tag inside tool '{self._tool_name}': {tag}")
        self._consume(1)
        return True

    def _drain_param(self, out: list[DisplayFragment], final: bool) -> bool:
        key = self._param_key or ""
        close = f"</param:{key}>"
        buf = self._buffer
        idx = buf.find(close)
        if idx == -1:
            keep = 0 if final else _partial_suffix(buf, close)
            self._param_value += self._consume(len(buf) - keep)
            return False
        self._param_value += self._consume(idx)
        self._consume(len(close))
        self._param_key = None
        self._add_param(out, key, _strip_value(self._param_value))
        self._param_value = ""
        return True

    def _discard_open_tool(self) -> None:
        self._param_key = None
        self._param_value = ""
        super()._discard_open_tool()

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def render_request(self, request: ToolRequest) -> str:
        lines = [f"<tool:{request.name}>"]
        for key, value in request.input.items():
            values = value if isinstance(value, list) else [value]
            for item in values:
                text = format_scalar(item)
                if "\n" in text:
                    lines.append(f"<param:{key}>\n{text}\n</param:{key}>")
                else:
                    lines.append(f"<param:{key}>{text}</param:{key}>")
        lines.append(f"</tool:{request.name}>")
        return "\n".join(lines)

    def syntax_documentation(self) -> str:
        return SYNTAX_DOCUMENTATION
