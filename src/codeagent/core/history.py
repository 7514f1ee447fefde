"""Append-only conversation history with a compaction-bounded active slice."""

from __future__ import annotations

import dataclasses
from collections.abc import Callable, Iterable
from typing import Any

from codeagent.types.messages import (
    ContentBlock,
    Message,
    MessageRole,
    TextBlock,
    ToolUseBlock,
)
from codeagent.types.tools import ToolExecution, ToolRequest


class History:
    """The message log and tool execution log of one agent loop.

    Nothing is ever removed. The *active slice*, the part sent to the model,
    starts at the most recent message opening with a compaction block.
    """

    def __init__(
        self,
        messages: Iterable[Message] = (),
        executions: Iterable[ToolExecution] = (),
    ) -> None:
        self._messages: list[Message] = list(messages)
        self._executions: list[ToolExecution] = list(executions)

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def append(self, message: Message) -> int:
        """Append *message* and return its index."""
        self._messages.append(message)
        return len(self._messages) - 1

    def record_execution(self, execution: ToolExecution) -> None:
        self._executions.append(execution)

    def revise_tool_input(
        self,
        tool_use_id: str,
        revised_input: dict[str, Any],
        render: Callable[[ToolRequest], str] | None = None,
        span: tuple[int, int] | None = None,
    ) -> int | None:
        """Record that the tool *tool_use_id* actually ran with *revised_input*.

        The assistant message holding the tool use is replaced by a copy with
        the new input; the original Message object is left untouched. For
        tools encoded in text, *render* and the block's character *span* let
        the markup be rewritten too. Returns the index of the replaced
        message, or None if no such tool use exists.
        """
        for index in range(len(self._messages) - 1, -1, -1):
            message = self._messages[index]
            if message.role is not MessageRole.ASSISTANT or isinstance(message.content, str):
                continue
            use = next((b for b in message.content if isinstance(b, ToolUseBlock) and b.id == tool_use_id), None)
            if use is None:
                continue
            blocks: list[ContentBlock] = []
            for block in message.content:
                if block is use:
                    block = ToolUseBlock(use.id, use.name, dict(revised_input))
                elif isinstance(block, TextBlock) and render is not None and span is not None:
                    start, end = span
                    markup = render(ToolRequest(id=use.id, name=use.name, input=revised_input))
                    block = TextBlock(block.text[:start] + markup + block.text[end:])
                blocks.append(block)
            self._messages[index] = dataclasses.replace(message, content=tuple(blocks))
            return index
        return None

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    @property
    def messages(self) -> tuple[Message, ...]:
        """The full history, including everything before the last compaction."""
        return tuple(self._messages)

    @property
    def executions(self) -> tuple[ToolExecution, ...]:
        return tuple(self._executions)

    def active_start(self) -> int:
        """Index of the first message of the active slice."""
        for index in range(len(self._messages) - 1, -1, -1):
            if self._messages[index].compaction is not None:
                return index
        return 0

    def active_slice(self) -> list[Message]:
        return self._messages[self.active_start():]

    def count_compactions(self) -> int:
        return sum(1 for m in self._messages if m.compaction is not None)

    def last_assistant(self) -> Message | None:
        for message in reversed(self._messages):
            if message.role is MessageRole.ASSISTANT:
                return message
        return None

    def last_assistant_text(self) -> str:
        message = self.last_assistant()
        return message.text if message is not None else ""

    def current_context_size(self) -> int:
        """Prompt size reported for the latest assistant reply in the active slice."""
        for message in reversed(self.active_slice()):
            if message.role is MessageRole.ASSISTANT and message.usage is not None:
                return message.usage.context_size
        return 0

    def next_request_id(self) -> int:
        ids = [m.request_id for m in self._messages if m.request_id is not None]
        return max(ids, default=0) + 1

    def __len__(self) -> int:
        return len(self._messages)

    def __repr__(self) -> str:
        return f"History(messages={len(self._messages)}, compactions={self.count_compactions()})"
