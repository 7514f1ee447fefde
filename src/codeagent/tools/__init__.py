"""Tool registry, dispatch and built-in tools."""

from codeagent.tools.base import BaseTool, validate_input
from codeagent.tools.dispatcher import ToolDispatcher
from codeagent.tools.registry import ToolRegistry
from codeagent.tools.spawn_agent import SpawnAgentTool

__all__ = [
    "BaseTool",
    "SpawnAgentTool",
    "ToolDispatcher",
    "ToolRegistry",
    "validate_input",
]
