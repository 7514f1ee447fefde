"""UI events and loop outcomes."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from codeagent.types.tools import ToolStatus


class StopReason(Enum):
    """Why a run of the agent loop ended."""

    END_TURN = "end_turn"
    MAX_TOKENS = "max_tokens"
    MAX_TURN_REQUESTS = "max_turn_requests"
    REFUSAL = "refusal"
    CANCELLED = "cancelled"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class ToolStatusChanged:
    tool_id: str
    status: ToolStatus
    message: str = ""


@dataclass(frozen=True, slots=True)
class ContextCompacted:
    sequence_number: int
    messages_archived: int
    context_size_before: int


@dataclass(frozen=True, slots=True)
class RateLimited:
    seconds: float
    attempt: int


@dataclass(frozen=True, slots=True)
class RateLimitCleared:
    pass


@dataclass(frozen=True, slots=True)
class ResponseDiscarded:
    """Fragments already shown for this request will be streamed again."""

    request_id: int


@dataclass(frozen=True, slots=True)
class TurnEnded:
    stop_reason: StopReason


@dataclass(frozen=True, slots=True)
class SubAgentProgress:
    """Activity of a sub-agent, attached to the parent's pending tool call."""

    parent_tool_id: str
    item: Any  # A DisplayFragment or UiEvent from the nested loop


UiEvent = (
    ToolStatusChanged
    | ContextCompacted
    | RateLimited
    | RateLimitCleared
    | ResponseDiscarded
    | TurnEnded
    | SubAgentProgress
)


@dataclass(frozen=True, slots=True)
class TurnOutcome:
    """Terminal state of AgentLoop.run()."""

    stop_reason: StopReason
    text: str = ""
    iterations: int = 0
    tool_calls: int = 0
    error: BaseException | None = None
