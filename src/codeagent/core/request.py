"""Turn the active history slice into a provider request."""

from __future__ import annotations

from codeagent.core.context import render_compaction
from codeagent.parsing.base import ToolInvocationParser
from codeagent.types.config import ToolSyntax
from codeagent.types.messages import (
    ContentBlock,
    ContextCompactionBlock,
    Message,
    MessageRole,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
)
from codeagent.types.providers import LLMRequest
from codeagent.types.tools import ToolDef

DEFAULT_SYSTEM_PROMPT = """\
You are an expert software engineering agent working in a code repository.

Use the available tools to inspect and change the project. Be action-oriented: \
when asked to build, fix or change something, start doing it. Keep text replies \
concise and let tool calls do the work.

Working directory: {cwd}
"""


def format_tool_result(block: ToolResultBlock) -> str:
    status = "error" if block.is_error else "success"
    return f"Tool result for {block.tool_use_id} ({status}):\n{block.content}"


def _convert_blocks(message: Message, syntax: ToolSyntax) -> Message:
    if isinstance(message.content, str):
        return message
    blocks: list[ContentBlock] = []
    changed = False
    for block in message.content:
        match block:
            case ContextCompactionBlock():
                blocks.append(TextBlock(render_compaction(block)))
                changed = True
            case ToolUseBlock() if syntax is not ToolSyntax.NATIVE:
                # The invocation is already part of the assistant's text.
                changed = True
            case ToolResultBlock() if syntax is not ToolSyntax.NATIVE:
                blocks.append(TextBlock(format_tool_result(block)))
                changed = True
            case _:
                blocks.append(block)
    if not changed:
        return message
    return Message(message.role, tuple(blocks), message.usage, message.request_id)


def build_system_prompt(
    base: str,
    parser: ToolInvocationParser,
    definitions: list[ToolDef],
) -> str:
    """Append syntax and tool documentation for syntaxes that need it."""
    syntax_docs = parser.syntax_documentation()
    if not syntax_docs:
        return base
    sections = [base.rstrip(), syntax_docs]
    tool_docs = parser.tool_documentation(definitions)
    if tool_docs:
        sections.append("# Tools\n\n" + tool_docs)
    return "\n\n".join(sections)


def build_request(
    active: list[Message],
    *,
    parser: ToolInvocationParser,
    definitions: list[ToolDef],
    system: str,
    max_tokens: int,
    include_tools: bool = True,
) -> LLMRequest:
    """Build the request for one model call.

    Native tool calls send schemas with the request. The text syntaxes get
    their documentation in the system prompt instead, and tool traffic in the
    history is presented as plain text.
    """
    syntax = parser.syntax
    messages = tuple(_convert_blocks(m, syntax) for m in active)
    messages = tuple(m for m in messages if m.blocks or m.role is MessageRole.USER)
    tools: tuple[ToolDef, ...] = ()
    if include_tools and syntax is ToolSyntax.NATIVE:
        tools = tuple(definitions)
    return LLMRequest(
        messages=messages,
        system=build_system_prompt(system, parser, definitions if include_tools else []),
        tools=tools,
        max_tokens=max_tokens,
        request_id=parser.request_id,
    )
