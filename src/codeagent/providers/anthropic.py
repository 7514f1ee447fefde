"""Anthropic/Claude provider adapter."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import Any

from codeagent.errors import ProviderError
from codeagent.providers.base import BaseProvider, translate_error
from codeagent.providers.registry import DEFAULT_MODEL, resolve_model
from codeagent.types.messages import (
    Message,
    RedactedThinkingBlock,
    TextBlock,
    ThinkingBlock,
    ToolResultBlock,
    ToolUseBlock,
    Usage,
)
from codeagent.types.providers import (
    LLMRequest,
    StreamEnd,
    StreamingChunk,
    TextDelta,
    ThinkingDelta,
    ToolCallDelta,
    UsageReport,
)

logger = logging.getLogger(__name__)


class AnthropicProvider(BaseProvider):
    """Streams Claude responses through ``anthropic.AsyncAnthropic``.

    Tool-use blocks in the SDK's event stream become indexed
    :class:`ToolCallDelta` fragments. Usage and the stop reason are read from
    the final message once ``message_stop`` arrives.
    """

    def __init__(self, api_key: str | None = None, model: str = DEFAULT_MODEL) -> None:
        super().__init__(resolve_model(model))
        from anthropic import AsyncAnthropic

        # Without a key the SDK reads ANTHROPIC_API_KEY itself.
        self._client = AsyncAnthropic(api_key=api_key) if api_key else AsyncAnthropic()

    async def stream(self, request: LLMRequest) -> AsyncIterator[StreamingChunk]:
        """Stream a response from the Anthropic Messages API."""
        kwargs: dict[str, Any] = {
            "model": self._model,
            "max_tokens": request.max_tokens,
            "messages": self._to_anthropic_messages(request.messages),
        }
        if request.system:
            kwargs["system"] = request.system
        if request.tools:
            kwargs["tools"] = self._make_tool_defs(request.tools)

        logger.debug(
            "Anthropic request %d: %d messages, %d tools",
            request.request_id, len(request.messages), len(request.tools),
        )
        try:
            async with self._client.messages.stream(**kwargs) as stream:
                async for event in stream:
                    for chunk in self._translate_event(event):
                        yield chunk
                    if event.type == "message_stop":
                        final_message = await stream.get_final_message()
                        yield UsageReport(self._usage(final_message.usage))
                        yield StreamEnd(stop_reason=final_message.stop_reason or "end_turn")
        except ProviderError:
            raise
        except Exception as exc:
            error = translate_error(exc)
            logger.warning("Anthropic request %d failed: %s", request.request_id, error)
            raise error from exc

    # ------------------------------------------------------------------
    # Conversion helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _translate_event(event: Any) -> list[StreamingChunk]:
        """Map one SDK stream event onto zero or more chunks."""
        event_type: str = event.type
        if event_type == "content_block_start":
            block = event.content_block
            if block.type == "tool_use":
                return [ToolCallDelta(index=event.index, id=block.id, name=block.name)]
            return []
        if event_type != "content_block_delta":
            return []

        delta = event.delta
        match delta.type:
            case "text_delta":
                return [TextDelta(delta.text)]
            case "input_json_delta":
                return [ToolCallDelta(index=event.index, arguments=delta.partial_json)]
            case "thinking_delta":
                return [ThinkingDelta(text=delta.thinking)]
            case "signature_delta":
                return [ThinkingDelta(signature=delta.signature)]
        return []

    @staticmethod
    def _usage(usage_obj: Any) -> Usage:
        # Cache token fields may not be present on all accounts.
        cache_read = getattr(usage_obj, "cache_read_input_tokens", 0) or 0
        cache_write = getattr(usage_obj, "cache_creation_input_tokens", 0) or 0
        return Usage(
            input_tokens=usage_obj.input_tokens,
            output_tokens=usage_obj.output_tokens,
            cached_input_tokens=cache_read + cache_write,
        )

    @staticmethod
    def _to_anthropic_messages(messages: tuple[Message, ...]) -> list[dict[str, Any]]:
        """Convert history messages to Anthropic's messages format."""
        result: list[dict[str, Any]] = []
        for msg in messages:
            role = msg.role.value
            if isinstance(msg.content, str):
                result.append({"role": role, "content": msg.content})
                continue

            content: list[dict[str, Any]] = []
            for block in msg.content:
                match block:
                    case TextBlock(text=text) if text:
                        content.append({"type": "text", "text": text})
                    case ThinkingBlock(text=text, signature=signature):
                        content.append({"type": "thinking", "thinking": text, "signature": signature})
                    case RedactedThinkingBlock(opaque_data=data) if data:
                        content.append({"type": "redacted_thinking", "data": data})
                    case ToolUseBlock(id=tool_id, name=name, input=args):
                        content.append({"type": "tool_use", "id": tool_id, "name": name, "input": args})
                    case ToolResultBlock(tool_use_id=tool_id, content=text, is_error=is_error):
                        item: dict[str, Any] = {
                            "type": "tool_result",
                            "tool_use_id": tool_id,
                            "content": text,
                        }
                        if is_error:
                            item["is_error"] = True
                        content.append(item)
            if content:
                result.append({"role": role, "content": content})
        return result
