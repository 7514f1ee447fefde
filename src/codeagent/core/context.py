"""Context management: when to compact and what a compaction records."""

from __future__ import annotations

from codeagent.core.history import History
from codeagent.types.config import ContextWindowConfig
from codeagent.types.messages import ContextCompactionBlock, Message, MessageRole

COMPACTION_PROMPT = """\
The conversation is about to be compacted to free up context space. Write a \
complete summary of the work so far so that you can continue from it alone. \
Do not call any tools in this reply.

Include:
- the user's goals and any constraints or preferences they stated;
- what has been done, with the files, functions and commands involved;
- important findings, decisions and their reasons;
- what is still open, and the next steps you intended to take."""


def should_compact(history: History, config: ContextWindowConfig) -> bool:
    """Whether the latest reported prompt size reached the compaction threshold.

    The size is ``input_tokens + cached_input_tokens`` of the most recent
    assistant reply in the active slice.
    """
    if not config.enabled or config.limit is None:
        return False
    current = history.current_context_size()
    return current > 0 and current >= config.limit * config.threshold


def compaction_message(history: History, summary: str, context_size_before: int) -> Message:
    """Build the message that opens the next active slice.

    Call this before appending it: every message currently in the active
    slice counts as archived.
    """
    block = ContextCompactionBlock(
        sequence_number=history.count_compactions() + 1,
        summary=summary,
        messages_archived=len(history.active_slice()),
        context_size_before=context_size_before,
    )
    return Message(role=MessageRole.USER, content=(block,))


def render_compaction(block: ContextCompactionBlock) -> str:
    """Text the model sees in place of a compaction block."""
    return (
        f"[Context compacted (#{block.sequence_number}): {block.messages_archived} earlier "
        f"messages were summarized.]\n\n{block.summary}"
    )
