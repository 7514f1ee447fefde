"""Provider protocol, request and streaming chunk types."""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from codeagent.types.messages import Message, Usage
from codeagent.types.tools import ToolDef


@dataclass(frozen=True, slots=True)
class TextDelta:
    text: str


@dataclass(frozen=True, slots=True)
class ThinkingDelta:
    text: str = ""
    signature: str = ""


@dataclass(frozen=True, slots=True)
class ToolCallDelta:
    """A fragment of a structured tool call.

    The first delta for a call carries ``id`` and ``name``; later deltas for
    the same ``index`` only carry argument JSON fragments.
    """

    index: int
    id: str | None = None
    name: str | None = None
    arguments: str = ""


@dataclass(frozen=True, slots=True)
class ReasoningSummaryDelta:
    text: str
    item: int = 0


@dataclass(frozen=True, slots=True)
class UsageReport:
    usage: Usage


@dataclass(frozen=True, slots=True)
class RateLimitSignal:
    """The provider asked us to back off before retrying."""

    retry_after: float | None = None


@dataclass(frozen=True, slots=True)
class StreamEnd:
    """Terminal chunk of a response."""

    stop_reason: str = "end_turn"  # "end_turn", "tool_use", "max_tokens", "refusal"
    opaque_reasoning: str = ""


StreamingChunk = (
    TextDelta
    | ThinkingDelta
    | ToolCallDelta
    | ReasoningSummaryDelta
    | UsageReport
    | RateLimitSignal
    | StreamEnd
)


@dataclass(frozen=True, slots=True)
class LLMRequest:
    """Everything a provider needs to produce one response."""

    messages: tuple[Message, ...]
    system: str = ""
    tools: tuple[ToolDef, ...] = ()
    max_tokens: int = 8192
    request_id: int = 0


@dataclass(frozen=True, slots=True)
class ModelInfo:
    """Information about a supported model."""

    id: str
    context_window: int
    max_output_tokens: int = 8192
    display_name: str = ""


@runtime_checkable
class Provider(Protocol):
    """Protocol that all provider adapters must implement."""

    def stream(self, request: LLMRequest) -> AsyncIterator[StreamingChunk]:
        """Send *request* and yield chunks until a StreamEnd."""
        ...

    @property
    def model_info(self) -> ModelInfo | None:
        """Metadata for the configured model, if known."""
        ...
