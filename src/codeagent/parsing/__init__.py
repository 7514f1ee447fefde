"""Streaming tool-invocation parsers, one per tool syntax."""

from __future__ import annotations

from typing import TYPE_CHECKING

from codeagent.parsing.base import ToolInvocationParser, convert_params, tool_id
from codeagent.parsing.caret import CaretParser
from codeagent.parsing.filters import ParallelSpawnFilter, SingleToolFilter, ToolUseFilter
from codeagent.parsing.native import NativeParser
from codeagent.parsing.xml import XmlParser
from codeagent.types.config import ToolSyntax

if TYPE_CHECKING:
    from codeagent.tools.registry import ToolRegistry


def create_parser(
    syntax: ToolSyntax,
    registry: ToolRegistry | None = None,
    request_id: int = 0,
    *,
    tool_filter: ToolUseFilter | None = None,
) -> ToolInvocationParser:
    """Return a fresh parser for one assistant response.

    With a registry and no explicit filter, read-only sub-agent spawns may be
    chained within one message.
    """
    if tool_filter is None and registry is not None:
        tool_filter = ParallelSpawnFilter(registry)
    match syntax:
        case ToolSyntax.NATIVE:
            return NativeParser(registry, request_id, tool_filter=tool_filter)
        case ToolSyntax.XML:
            return XmlParser(registry, request_id, tool_filter=tool_filter)
        case ToolSyntax.CARET:
            return CaretParser(registry, request_id, tool_filter=tool_filter)
    raise ValueError(f"Unsupported tool syntax: {syntax!r}")


__all__ = [
    "CaretParser",
    "NativeParser",
    "ParallelSpawnFilter",
    "SingleToolFilter",
    "ToolInvocationParser",
    "ToolUseFilter",
    "XmlParser",
    "convert_params",
    "create_parser",
    "tool_id",
]
