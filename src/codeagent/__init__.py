"""codeagent: execution core of an autonomous coding agent.

Usage:
    import codeagent

    registry = codeagent.ToolRegistry()
    registry.register(MyTool())
    loop = codeagent.AgentLoop(provider, registry, codeagent.load_loop_config())
    outcome = await loop.run("Fix the bug")
    print(outcome.stop_reason, outcome.text)
"""

from codeagent.agents.runner import SubAgentResult, SubAgentRunner
from codeagent.core.cancellation import CancellationToken
from codeagent.core.config import load_loop_config
from codeagent.core.history import History
from codeagent.core.loop import AgentLoop
from codeagent.core.observer import NullObserver, Observer, ObserverChannel
from codeagent.core.session import JsonlSessionStore
from codeagent.core.steering import SteeringChannel
from codeagent.errors import (
    CodeAgentError,
    ProviderError,
    RateLimitError,
    SchemaError,
    ScopeViolation,
    ToolExecutionError,
    ToolParseError,
)
from codeagent.parsing import create_parser
from codeagent.permissions.mediator import PermissionDecision, PermissionGate
from codeagent.tools import BaseTool, SpawnAgentTool, ToolDispatcher, ToolRegistry
from codeagent.types.config import ContextWindowConfig, LoopConfig, ToolSyntax
from codeagent.types.events import StopReason, TurnOutcome
from codeagent.types.messages import Message, MessageRole, Usage
from codeagent.types.tools import ToolContext, ToolDef, ToolParam, ToolResultData, ToolScope

__version__ = "0.1.0"

__all__ = [
    # Core API
    "AgentLoop",
    "CancellationToken",
    "History",
    "SteeringChannel",
    "SubAgentResult",
    "SubAgentRunner",
    "TurnOutcome",
    "StopReason",
    "create_parser",
    # Configuration
    "ContextWindowConfig",
    "LoopConfig",
    "ToolSyntax",
    "load_loop_config",
    # Observers, persistence and permissions
    "JsonlSessionStore",
    "NullObserver",
    "Observer",
    "ObserverChannel",
    "PermissionDecision",
    "PermissionGate",
    # Messages
    "Message",
    "MessageRole",
    "Usage",
    # Tools
    "BaseTool",
    "SpawnAgentTool",
    "ToolContext",
    "ToolDef",
    "ToolDispatcher",
    "ToolParam",
    "ToolRegistry",
    "ToolResultData",
    "ToolScope",
    # Errors
    "CodeAgentError",
    "ProviderError",
    "RateLimitError",
    "SchemaError",
    "ScopeViolation",
    "ToolExecutionError",
    "ToolParseError",
]
