"""spawn_agent tool: delegate a task to a sub-agent."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from codeagent.tools.base import BaseTool
from codeagent.types.tools import (
    TOP_LEVEL_SCOPES,
    ToolContext,
    ToolDef,
    ToolParam,
    ToolResultData,
)

if TYPE_CHECKING:
    from codeagent.agents.runner import SubAgentRunner


class SpawnAgentTool(BaseTool):
    """Run a sub-agent with fresh context and return its final answer.

    Several read-only spawns in one assistant message run concurrently.
    """

    def __init__(self, runner: SubAgentRunner) -> None:
        self._runner = runner

    @property
    def definition(self) -> ToolDef:
        return ToolDef(
            name="spawn_agent",
            description=(
                "Launch a sub-agent to work on a task autonomously with its own context. "
                "It returns only its final answer. Read-only sub-agents can be launched "
                "several at once to investigate in parallel; 'default' mode may modify files."
            ),
            parameters=(
                ToolParam(
                    name="instructions",
                    type="string",
                    description="Complete, self-contained task description for the sub-agent.",
                ),
                ToolParam(
                    name="require_file_references",
                    type="boolean",
                    description="Require the answer to cite file paths with line ranges.",
                    required=False,
                    default=False,
                ),
                ToolParam(
                    name="mode",
                    type="string",
                    description="'read_only' (default) or 'default' for full tool access.",
                    required=False,
                    enum=("read_only", "default"),
                    default="read_only",
                ),
            ),
            scopes=TOP_LEVEL_SCOPES,
            spawns_agents=True,
        )

    async def execute(self, args: dict[str, Any], ctx: ToolContext) -> ToolResultData:
        instructions = args.get("instructions")
        if not instructions:
            return self._error("'instructions' parameter is required.")

        try:
            result = await self._runner.run(
                instructions,
                parent_tool_id=ctx.tool_use_id,
                mode=args.get("mode", "read_only"),
                require_file_references=bool(args.get("require_file_references", False)),
                cancel_token=ctx.cancel_token,
                observer=ctx.observer,
            )
        except Exception as e:  # noqa: BLE001
            return self._error(f"Sub-agent failed: {type(e).__name__}: {e}")
        if result.cancelled:
            return self._error(result.text)
        return self._ok(result.text)
