"""Conversation message and content block types."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class MessageRole(Enum):
    """Who authored a message."""

    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True, slots=True)
class Usage:
    """Token usage reported for one provider response."""

    input_tokens: int = 0
    output_tokens: int = 0
    cached_input_tokens: int = 0

    @property
    def context_size(self) -> int:
        """Tokens occupied by the prompt that produced this response."""
        return self.input_tokens + self.cached_input_tokens


@dataclass(frozen=True, slots=True)
class TextBlock:
    """Plain text content."""

    text: str


@dataclass(frozen=True, slots=True)
class ToolUseBlock:
    """A tool invocation realized from assistant output."""

    id: str
    name: str
    input: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ToolResultBlock:
    """The result of a tool invocation, sent back in a user message."""

    tool_use_id: str
    content: str
    is_error: bool = False


@dataclass(frozen=True, slots=True)
class ThinkingBlock:
    """Visible model reasoning."""

    text: str
    signature: str = ""


@dataclass(frozen=True, slots=True)
class RedactedThinkingBlock:
    """Reasoning the provider only exposes as summaries plus opaque data."""

    summary_items: tuple[str, ...] = ()
    opaque_data: str = ""


@dataclass(frozen=True, slots=True)
class ContextCompactionBlock:
    """Marker that starts a new active history slice."""

    sequence_number: int
    summary: str
    messages_archived: int
    context_size_before: int


ContentBlock = (
    TextBlock
    | ToolUseBlock
    | ToolResultBlock
    | ThinkingBlock
    | RedactedThinkingBlock
    | ContextCompactionBlock
)


@dataclass(frozen=True, slots=True)
class Message:
    """One entry in the append-only conversation history."""

    role: MessageRole
    content: str | tuple[ContentBlock, ...]
    usage: Usage | None = None
    request_id: int | None = None

    @property
    def blocks(self) -> tuple[ContentBlock, ...]:
        """Content as blocks; plain string content becomes one TextBlock."""
        if isinstance(self.content, str):
            return (TextBlock(self.content),) if self.content else ()
        return self.content

    @property
    def text(self) -> str:
        """Concatenated text of all TextBlocks."""
        if isinstance(self.content, str):
            return self.content
        return "\n\n".join(b.text for b in self.content if isinstance(b, TextBlock) and b.text)

    def tool_uses(self) -> list[ToolUseBlock]:
        return [b for b in self.blocks if isinstance(b, ToolUseBlock)]

    @property
    def compaction(self) -> ContextCompactionBlock | None:
        """The compaction block if this message starts a new active slice."""
        blocks = self.blocks
        if blocks and isinstance(blocks[0], ContextCompactionBlock):
            return blocks[0]
        return None


def user_message(text: str) -> Message:
    return Message(role=MessageRole.USER, content=text)


# ---------------------------------------------------------------------------
# JSON (de)serialization for persistence
# ---------------------------------------------------------------------------


def block_to_dict(block: ContentBlock) -> dict[str, Any]:
    match block:
        case TextBlock(text=text):
            return {"type": "text", "text": text}
        case ToolUseBlock(id=id_, name=name, input=input_):
            return {"type": "tool_use", "id": id_, "name": name, "input": input_}
        case ToolResultBlock(tool_use_id=tid, content=content, is_error=is_error):
            return {
                "type": "tool_result",
                "tool_use_id": tid,
                "content": content,
                "is_error": is_error,
            }
        case ThinkingBlock(text=text, signature=signature):
            return {"type": "thinking", "text": text, "signature": signature}
        case RedactedThinkingBlock(summary_items=items, opaque_data=data):
            return {"type": "redacted_thinking", "summary_items": list(items), "opaque_data": data}
        case ContextCompactionBlock():
            return {
                "type": "context_compaction",
                "sequence_number": block.sequence_number,
                "summary": block.summary,
                "messages_archived": block.messages_archived,
                "context_size_before": block.context_size_before,
            }
    raise TypeError(f"Unsupported content block: {block!r}")


def block_from_dict(data: dict[str, Any]) -> ContentBlock:
    match data.get("type"):
        case "text":
            return TextBlock(data["text"])
        case "tool_use":
            return ToolUseBlock(id=data["id"], name=data["name"], input=data.get("input", {}))
        case "tool_result":
            return ToolResultBlock(
                tool_use_id=data["tool_use_id"],
                content=data["content"],
                is_error=data.get("is_error", False),
            )
        case "thinking":
            return ThinkingBlock(text=data["text"], signature=data.get("signature", ""))
        case "redacted_thinking":
            return RedactedThinkingBlock(
                summary_items=tuple(data.get("summary_items", ())),
                opaque_data=data.get("opaque_data", ""),
            )
        case "context_compaction":
            return ContextCompactionBlock(
                sequence_number=data["sequence_number"],
                summary=data["summary"],
                messages_archived=data["messages_archived"],
                context_size_before=data["context_size_before"],
            )
        case other:
            raise ValueError(f"Unknown content block type: {other!r}")


def message_to_dict(message: Message) -> dict[str, Any]:
    data: dict[str, Any] = {"role": message.role.value}
    if isinstance(message.content, str):
        data["content"] = message.content
    else:
        data["content"] = [block_to_dict(b) for b in message.content]
    if message.usage is not None:
        data["usage"] = {
            "input_tokens": message.usage.input_tokens,
            "output_tokens": message.usage.output_tokens,
            "cached_input_tokens": message.usage.cached_input_tokens,
        }
    if message.request_id is not None:
        data["request_id"] = message.request_id
    return data


def message_from_dict(data: dict[str, Any]) -> Message:
    content = data["content"]
    if not isinstance(content, str):
        content = tuple(block_from_dict(b) for b in content)
    usage = data.get("usage")
    return Message(
        role=MessageRole(data["role"]),
        content=content,
        usage=Usage(**usage) if usage else None,
        request_id=data.get("request_id"),
    )
