"""Sub-agent lifecycle: nested loops with a fresh history and a restricted scope."""

from __future__ import annotations

import dataclasses
import logging
import re
from dataclasses import dataclass

from codeagent.core.cancellation import CancellationToken
from codeagent.core.history import History
from codeagent.core.observer import NullObserver, Observer, SubAgentProgressObserver
from codeagent.permissions.mediator import PermissionGate
from codeagent.tools.registry import ToolRegistry
from codeagent.types.config import LoopConfig
from codeagent.types.events import StopReason
from codeagent.types.providers import Provider
from codeagent.types.tools import ToolScope

logger = logging.getLogger(__name__)

FILE_REFERENCE_RE = re.compile(
    r"[\w./-]+\.(?:rs|ts|tsx|js|jsx|py|go|java|kt|swift|c|cc|cpp|h|hpp|md|toml|json|yaml|yml)"
    r":\d+(?:-\d+)?"
)

MAX_REFERENCE_REVISIONS = 2

REVISION_PROMPT = (
    "Please revise your last answer to include exact file references with line "
    "ranges (e.g. `path/to/file.py:10-20`)."
)
MISSING_REFERENCES_WARNING = (
    "(Warning: requested file references with line ranges, but the sub-agent "
    "did not include them.)"
)
CANCELLED_TEXT = "Sub-agent cancelled by user."
EMPTY_TEXT = "(No response from sub-agent)"

SUB_AGENT_SYSTEM_PROMPT = """\
You are a sub-agent working on one delegated task inside a code repository.
Work autonomously with the tools you have and finish with a concise, \
self-contained answer for the agent that delegated to you. It cannot see \
your intermediate steps, only your final message.

Working directory: {cwd}
"""

_MODE_SCOPES = {
    "read_only": ToolScope.SUB_AGENT_READ_ONLY,
    "default": ToolScope.SUB_AGENT_DEFAULT,
}


def has_file_references(text: str) -> bool:
    return FILE_REFERENCE_RE.search(text) is not None


@dataclass(frozen=True, slots=True)
class SubAgentResult:
    """Final answer of a sub-agent run."""

    text: str
    stop_reason: StopReason
    revisions: int = 0
    references_missing: bool = False

    @property
    def cancelled(self) -> bool:
        return self.stop_reason is StopReason.CANCELLED


class SubAgentRunner:
    """Runs sub-agents as nested agent loops.

    Each sub-agent gets its own history, a child of the caller's cancellation
    token and an observer that reports its output as progress of the tool
    call that spawned it. Sub-agent scopes never offer spawning tools, so
    nesting stops at one level.
    """

    def __init__(
        self,
        provider: Provider,
        registry: ToolRegistry,
        *,
        config: LoopConfig | None = None,
        permissions: PermissionGate | None = None,
    ) -> None:
        self._provider = provider
        self._registry = registry
        self._config = config or LoopConfig()
        self._permissions = permissions
        self._active: dict[str, CancellationToken] = {}

    @property
    def active(self) -> list[str]:
        """Parent tool ids of the sub-agents currently running."""
        return list(self._active)

    def cancel(self, parent_tool_id: str) -> bool:
        """Cancel the sub-agent started by *parent_tool_id*, if it is running."""
        token = self._active.get(parent_tool_id)
        if token is None:
            return False
        token.cancel()
        return True

    async def run(
        self,
        instructions: str,
        *,
        parent_tool_id: str,
        mode: str = "read_only",
        require_file_references: bool = False,
        cancel_token: CancellationToken | None = None,
        observer: Observer | None = None,
    ) -> SubAgentResult:
        """Run one sub-agent to completion and return its final answer.

        Args:
            instructions: The task for the sub-agent.
            parent_tool_id: Id of the spawning tool call; progress is tagged with it.
            mode: "read_only" or "default", selecting the sub-agent tool scope.
            require_file_references: Ask for revisions until the answer cites
                ``path:line`` ranges, at most twice.
            cancel_token: The caller's token; the sub-agent uses a child of it.
            observer: The caller's observer.
        """
        from codeagent.core.loop import AgentLoop

        scope = _MODE_SCOPES.get(mode)
        if scope is None:
            raise ValueError(f"Unknown sub-agent mode {mode!r}; expected one of {list(_MODE_SCOPES)}")

        token = cancel_token.child() if cancel_token is not None else CancellationToken()
        progress = SubAgentProgressObserver(observer or NullObserver(), parent_tool_id)
        cwd = self._config.cwd or "."
        config = dataclasses.replace(
            self._config,
            system_prompt=SUB_AGENT_SYSTEM_PROMPT.format(cwd=cwd),
        )
        loop = AgentLoop(
            self._provider,
            self._registry,
            config,
            history=History(),
            observer=progress,
            scope=scope,
            cancel_token=token,
            permissions=self._permissions,
        )

        self._active[parent_tool_id] = token
        logger.info("Starting %s sub-agent for %s", mode, parent_tool_id)
        try:
            outcome = await loop.run(instructions)
            revisions = 0
            while (
                require_file_references
                and outcome.stop_reason is StopReason.END_TURN
                and not has_file_references(outcome.text)
                and revisions < MAX_REFERENCE_REVISIONS
            ):
                revisions += 1
                logger.debug("Asking sub-agent %s for file references (%d)", parent_tool_id, revisions)
                outcome = await loop.run(REVISION_PROMPT)
        finally:
            self._active.pop(parent_tool_id, None)

        if outcome.stop_reason is StopReason.CANCELLED:
            return SubAgentResult(CANCELLED_TEXT, outcome.stop_reason, revisions)
        if outcome.error is not None:
            raise outcome.error

        text = outcome.text.strip() or EMPTY_TEXT
        missing = require_file_references and not has_file_references(text)
        if missing:
            text = f"{text}\n\n{MISSING_REFERENCES_WARNING}"
        logger.info(
            "Sub-agent %s finished: %s after %d request(s)",
            parent_tool_id, outcome.stop_reason.value, outcome.iterations,
        )
        return SubAgentResult(text, outcome.stop_reason, revisions, missing)
