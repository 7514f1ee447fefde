"""Type definitions for codeagent."""

from codeagent.types.config import ContextWindowConfig, LoopConfig, ToolSyntax
from codeagent.types.events import (
    ContextCompacted,
    RateLimitCleared,
    RateLimited,
    ResponseDiscarded,
    StopReason,
    SubAgentProgress,
    ToolStatusChanged,
    TurnEnded,
    TurnOutcome,
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
from codeagent.types.messages import (
    ContentBlock,
    ContextCompactionBlock,
    Message,
    MessageRole,
    RedactedThinkingBlock,
    TextBlock,
    ThinkingBlock,
    ToolResultBlock,
    ToolUseBlock,
    Usage,
)
from codeagent.types.providers import LLMRequest, ModelInfo, Provider, StreamingChunk
from codeagent.types.tools import (
    Tool,
    ToolContext,
    ToolDef,
    ToolParam,
    ToolRequest,
    ToolResultData,
    ToolScope,
    ToolStatus,
)

__all__ = [
    "CompactionFragment",
    "ContentBlock",
    "ContextCompacted",
    "ContextCompactionBlock",
    "ContextWindowConfig",
    "DisplayFragment",
    "LLMRequest",
    "LoopConfig",
    "Message",
    "MessageRole",
    "ModelInfo",
    "Provider",
    "RateLimitCleared",
    "RateLimited",
    "ReasoningSummaryFragment",
    "RedactedThinkingBlock",
    "ResponseDiscarded",
    "StopReason",
    "StreamingChunk",
    "SubAgentProgress",
    "TextBlock",
    "TextFragment",
    "ThinkingBlock",
    "ThinkingFragment",
    "Tool",
    "ToolContext",
    "ToolDef",
    "ToolEndFragment",
    "ToolNameFragment",
    "ToolParam",
    "ToolParameterFragment",
    "ToolRequest",
    "ToolResultBlock",
    "ToolResultData",
    "ToolScope",
    "ToolStatus",
    "ToolStatusChanged",
    "ToolSyntax",
    "ToolUseBlock",
    "TurnEnded",
    "TurnOutcome",
    "UiEvent",
    "Usage",
]
