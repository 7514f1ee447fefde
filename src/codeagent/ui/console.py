"""Rich-powered terminal observer."""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler
from rich.text import Text

from codeagent.types.events import (
    ContextCompacted,
    RateLimitCleared,
    RateLimited,
    ResponseDiscarded,
    StopReason,
    SubAgentProgress,
    ToolStatusChanged,
    TurnEnded,
    UiEvent,
)
from codeagent.types.fragments import (
    CompactionFragment,
    DisplayFragment,
    ReasoningSummaryFragment,
    TextFragment,
    ThinkingFragment,
    ToolEndFragment,
    ToolNameFragment,
    ToolParameterFragment,
)
from codeagent.types.tools import ToolStatus

# ── Palette ──────────────────────────────────────────────────────────────────

TOOL_ICONS: dict[str, str] = {
    "spawn_agent": "\u25c6",  # ◆  diamond, sub-agent
}
DEFAULT_ICON = "\u25b8"  # ▸

STYLE_TOOL_NAME = "bold #a78bfa"
STYLE_TOOL_DETAIL = "#7c7c8a"
STYLE_THINKING = "dim italic"
STYLE_ERROR_LABEL = "bold #f87171"
STYLE_ERROR_BODY = "#f87171"
STYLE_NOTICE = "dim italic #94a3b8"
STYLE_SUB_AGENT = "dim #7c7c8a"

_MAX_DETAIL = 80


def configure_logging(level: int | str = logging.WARNING, console: Console | None = None) -> None:
    """Send codeagent log records to a Rich handler on stderr."""
    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    logger = logging.getLogger("codeagent")
    logger.handlers = [handler]
    logger.setLevel(level)
    logger.propagate = False


class ConsoleObserver:
    """Renders fragments and events from an agent loop on the terminal.

    Assistant text streams to stdout line by line; tool activity and notices
    go to stderr.
    """

    def __init__(self, console: Console | None = None, stdout: Console | None = None) -> None:
        self._console = console or Console(stderr=True)
        self._stdout = stdout or Console()
        self._line_buffer = ""
        self._thinking = False
        self._tool_names: dict[str, str] = {}

    # ── Fragments ────────────────────────────────────────────────────────────

    def display_fragment(self, fragment: DisplayFragment) -> None:
        match fragment:
            case TextFragment(text=text):
                self._end_thinking()
                self._feed(text)
            case ThinkingFragment(text=text) | ReasoningSummaryFragment(text=text):
                self._flush()
                self._thinking = True
                self._console.print(Text(text, style=STYLE_THINKING), end="")
            case ToolNameFragment(name=name, id=tool_id):
                self._end_thinking()
                self._flush()
                self._tool_names[tool_id] = name
                line = Text()
                line.append(f"  {TOOL_ICONS.get(name, DEFAULT_ICON)} ", style=STYLE_TOOL_NAME)
                line.append(name, style=STYLE_TOOL_NAME)
                self._console.print(line)
            case ToolParameterFragment(name=name, value=value):
                detail = value if len(value) <= _MAX_DETAIL else value[: _MAX_DETAIL - 1] + "…"
                detail = detail.replace("\n", " ")
                self._console.print(Text(f"    {name}: {detail}", style=STYLE_TOOL_DETAIL))
            case ToolEndFragment():
                pass
            case CompactionFragment(sequence_number=seq):
                self._flush()
                self._console.print(
                    Text(f"  ── Context compacted (#{seq})", style=STYLE_NOTICE),
                )

    # ── Events ───────────────────────────────────────────────────────────────

    def send_event(self, event: UiEvent) -> None:
        match event:
            case ToolStatusChanged(tool_id=tool_id, status=ToolStatus.ERROR, message=message):
                label = Text("    ✗ ", style=STYLE_ERROR_LABEL)
                label.append(
                    f"{self._tool_names.get(tool_id, tool_id)}: {message[:300]}",
                    style=STYLE_ERROR_BODY,
                )
                self._console.print(label)
            case ToolStatusChanged(tool_id=tool_id, status=ToolStatus.CANCELLED):
                name = self._tool_names.get(tool_id, tool_id)
                self._console.print(Text(f"    {name} cancelled", style=STYLE_NOTICE))
            case ToolStatusChanged():
                pass
            case ContextCompacted(messages_archived=archived, context_size_before=before):
                self._console.print(
                    Text(f"     {archived} messages archived at {before:,} tokens", style=STYLE_NOTICE),
                )
            case ResponseDiscarded():
                self._end_thinking()
                self._flush()
                self._console.print(Text("  Partial response discarded", style=STYLE_NOTICE))
            case RateLimited(seconds=seconds, attempt=attempt):
                self._console.print(
                    Text(f"  Rate limited, retrying in {seconds:.1f}s (attempt {attempt})", style=STYLE_NOTICE),
                )
            case RateLimitCleared():
                pass
            case SubAgentProgress(parent_tool_id=parent, item=ToolNameFragment(name=name)):
                self._console.print(Text(f"    │ [{parent}] {name}", style=STYLE_SUB_AGENT))
            case SubAgentProgress():
                pass
            case TurnEnded(stop_reason=reason):
                self._end_thinking()
                self._flush()
                if reason not in (StopReason.END_TURN, StopReason.CANCELLED):
                    self._console.print(Text(f"  Stopped: {reason.value}", style=STYLE_NOTICE))

    # ── Text buffering ───────────────────────────────────────────────────────

    def _feed(self, text: str) -> None:
        self._line_buffer += text
        while "\n" in self._line_buffer:
            line, self._line_buffer = self._line_buffer.split("\n", 1)
            self._stdout.print(line, highlight=False, markup=False)

    def _flush(self) -> None:
        if self._line_buffer:
            self._stdout.print(self._line_buffer, highlight=False, markup=False)
            self._line_buffer = ""

    def _end_thinking(self) -> None:
        if self._thinking:
            self._console.print()
            self._thinking = False
