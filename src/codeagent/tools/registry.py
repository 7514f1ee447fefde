"""ToolRegistry: tool definitions, scopes and input validation."""

from __future__ import annotations

from typing import Any

from codeagent.errors import ScopeViolation
from codeagent.tools.base import BaseTool
from codeagent.types.tools import ToolDef, ToolScope


class ToolRegistry:
    """Holds the tools an agent may call and the scopes each is offered in.

    Usage::

        registry = ToolRegistry()
        registry.register(ReadFilesTool())
        defs = registry.definitions(ToolScope.SUB_AGENT_READ_ONLY)
    """

    def __init__(self) -> None:
        self._registry: dict[str, BaseTool] = {}

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, tool: BaseTool) -> None:
        """Add a tool to the registry under its definition name.

        Raises ValueError for a tool that spawns sub-agents but is offered in
        a sub-agent scope.
        """
        definition = tool.definition
        if definition.spawns_agents:
            nested = sorted(s.value for s in definition.scopes if s.is_sub_agent)
            if nested:
                raise ValueError(
                    f"Tool '{definition.name}' spawns sub-agents and cannot be "
                    f"offered in sub-agent scopes: {nested}"
                )
        self._registry[definition.name] = tool

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, name: str) -> BaseTool | None:
        """Return the tool with the given name, or None."""
        return self._registry.get(name)

    def definition(self, name: str) -> ToolDef | None:
        tool = self._registry.get(name)
        return tool.definition if tool is not None else None

    def definitions(self, scope: ToolScope | None = None) -> list[ToolDef]:
        """Return tool definitions, limited to *scope* when given."""
        defs = [tool.definition for tool in self._registry.values()]
        if scope is None:
            return defs
        return [d for d in defs if scope in d.scopes]

    def resolve(self, name: str, scope: ToolScope) -> BaseTool:
        """Return the tool for *name* if it may run in *scope*.

        Raises KeyError for an unknown tool and ScopeViolation for a tool not
        offered in *scope*.
        """
        tool = self._registry.get(name)
        if tool is None:
            raise KeyError(
                f"Unknown tool: '{name}'. Available tools: {sorted(self._registry)}"
            )
        if scope not in tool.definition.scopes:
            raise ScopeViolation(f"Tool '{name}' is not available in scope '{scope.value}'")
        return tool

    def validate(self, name: str, args: dict[str, Any]) -> dict[str, Any]:
        """Validate *args* for tool *name*; raises KeyError or SchemaError."""
        tool = self._registry.get(name)
        if tool is None:
            raise KeyError(f"Unknown tool: '{name}'")
        return tool.validate(args)

    # ------------------------------------------------------------------
    # Dunder helpers
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._registry)

    def __contains__(self, name: object) -> bool:
        return name in self._registry

    def __repr__(self) -> str:
        return f"ToolRegistry(tools={sorted(self._registry)})"
