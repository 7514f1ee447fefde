"""Policies deciding whether more than one tool may appear in a message."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

from codeagent.types.tools import ToolRequest

if TYPE_CHECKING:
    from codeagent.tools.registry import ToolRegistry


class ToolUseFilter(Protocol):
    """Decides how a parser treats output following a completed tool block."""

    def allow_tool(self, name: str, index: int, previous: list[ToolRequest]) -> bool:
        """Whether a tool named *name* may start as the *index*-th tool."""
        ...

    def allow_content_after(self, request: ToolRequest) -> bool:
        """Whether output after *request* may still be kept."""
        ...


class SingleToolFilter:
    """Exactly one tool per assistant message, nothing after it."""

    def allow_tool(self, name: str, index: int, previous: list[ToolRequest]) -> bool:
        return index == 0

    def allow_content_after(self, request: ToolRequest) -> bool:
        return False


class ParallelSpawnFilter:
    """Like SingleToolFilter, but read-only sub-agent spawns may be chained.

    A message may hold several spawns so the dispatcher can run them
    concurrently. Any other tool still ends the message.
    """

    def __init__(self, registry: ToolRegistry) -> None:
        self._registry = registry

    def _spawns(self, name: str) -> bool:
        definition = self._registry.definition(name)
        return definition is not None and definition.spawns_agents

    def is_read_only_spawn(self, request: ToolRequest) -> bool:
        return self._spawns(request.name) and request.input.get("mode", "read_only") == "read_only"

    def allow_tool(self, name: str, index: int, previous: list[ToolRequest]) -> bool:
        if index == 0:
            return True
        return self._spawns(name) and all(self.is_read_only_spawn(r) for r in previous)

    def allow_content_after(self, request: ToolRequest) -> bool:
        return self.is_read_only_spawn(request)
