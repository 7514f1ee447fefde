"""Base tool class with shared logic."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from codeagent.errors import SchemaError
from codeagent.types.tools import ToolContext, ToolDef, ToolResultData

_JSON_TYPES: dict[str, tuple[type, ...]] = {
    "string": (str,),
    "integer": (int,),
    "number": (int, float),
    "boolean": (bool,),
    "array": (list,),
    "object": (dict,),
}


def validate_input(definition: ToolDef, args: dict[str, Any]) -> dict[str, Any]:
    """Check *args* against the parameter schema and fill in defaults.

    Raises SchemaError on a missing required parameter, a value of the wrong
    type, or a value outside the parameter's enum.
    """
    validated = dict(args)
    for param in definition.parameters:
        if param.name not in validated:
            if param.required:
                raise SchemaError(
                    f"Missing required parameter '{param.name}' for tool '{definition.name}'"
                )
            if param.default is not None:
                validated[param.name] = param.default
            continue
        value = validated[param.name]
        expected = _JSON_TYPES.get(param.type)
        # bool is an int subclass; don't let True pass as a number.
        wrong_bool = isinstance(value, bool) and param.type in ("integer", "number")
        if expected is not None and (wrong_bool or not isinstance(value, expected)):
            raise SchemaError(
                f"Parameter '{param.name}' of tool '{definition.name}' must be "
                f"{param.type}, got {type(value).__name__}"
            )
        if param.enum is not None and value not in param.enum:
            raise SchemaError(
                f"Parameter '{param.name}' of tool '{definition.name}' must be one of "
                f"{list(param.enum)}, got {value!r}"
            )
    return validated


class BaseTool(ABC):
    """Base class for all tools."""

    @property
    @abstractmethod
    def definition(self) -> ToolDef:
        ...

    @abstractmethod
    async def execute(self, args: dict[str, Any], ctx: ToolContext) -> ToolResultData:
        ...

    def validate(self, args: dict[str, Any]) -> dict[str, Any]:
        """Return structured input for :meth:`execute` or raise SchemaError."""
        return validate_input(self.definition, args)

    def _error(self, msg: str) -> ToolResultData:
        return ToolResultData(content=msg, is_error=True)

    def _ok(self, content: str, revised_input: dict[str, Any] | None = None) -> ToolResultData:
        return ToolResultData(content=content, revised_input=revised_input)
