"""Tool declarations, invocation requests and execution results."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from codeagent.core.cancellation import CancellationToken
    from codeagent.core.observer import Observer


class ToolScope(Enum):
    """Execution context a tool may be offered in."""

    DEFAULT = "default"
    READ_ONLY = "read_only"
    SUB_AGENT_READ_ONLY = "sub_agent_read_only"
    SUB_AGENT_DEFAULT = "sub_agent_default"

    @property
    def is_sub_agent(self) -> bool:
        return self in (ToolScope.SUB_AGENT_READ_ONLY, ToolScope.SUB_AGENT_DEFAULT)


ALL_SCOPES = frozenset(ToolScope)
TOP_LEVEL_SCOPES = frozenset({ToolScope.DEFAULT, ToolScope.READ_ONLY})


@dataclass(frozen=True, slots=True)
class ToolParam:
    """One named input of a tool, described as JSON Schema."""

    name: str
    type: str  # JSON Schema type name
    description: str
    required: bool = True
    enum: tuple[str, ...] | None = None
    default: Any = None
    items: dict[str, Any] | None = None  # element schema when type is "array"


@dataclass(frozen=True, slots=True)
class ToolDef:
    """What the model is told about a tool, plus where it may run."""

    name: str
    description: str
    parameters: tuple[ToolParam, ...] = ()
    scopes: frozenset[ToolScope] = ALL_SCOPES
    requires_permission: bool = False
    spawns_agents: bool = False

    def param(self, name: str) -> ToolParam | None:
        for p in self.parameters:
            if p.name == name:
                return p
        return None


@dataclass(frozen=True, slots=True)
class ToolRequest:
    """A finalized tool invocation extracted from model output."""

    id: str
    name: str
    input: dict[str, Any] = field(default_factory=dict)
    order: int = 0
    start_offset: int | None = None  # Span of the tool block in the raw text
    end_offset: int | None = None


@dataclass(slots=True)
class ToolResultData:
    """What a tool hands back to the dispatcher."""

    content: str
    is_error: bool = False
    revised_input: dict[str, Any] | None = None  # Input as actually applied, if it changed


class ToolStatus(Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"
    CANCELLED = "cancelled"


@dataclass(frozen=True, slots=True)
class ToolOutcome:
    """Dispatcher result for one request, in request order."""

    request: ToolRequest
    status: ToolStatus
    content: str
    revised_input: dict[str, Any] | None = None

    @property
    def is_error(self) -> bool:
        return self.status is not ToolStatus.SUCCESS


@dataclass(frozen=True, slots=True)
class ToolExecution:
    """A completed request paired with its result, kept for re-rendering."""

    request: ToolRequest
    status: ToolStatus
    result: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "request": {
                "id": self.request.id,
                "name": self.request.name,
                "input": self.request.input,
                "order": self.request.order,
            },
            "status": self.status.value,
            "result": self.result,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ToolExecution:
        req = data["request"]
        return cls(
            request=ToolRequest(
                id=req["id"], name=req["name"], input=req.get("input", {}),
                order=req.get("order", 0),
            ),
            status=ToolStatus(data["status"]),
            result=data["result"],
        )

    @classmethod
    def from_outcome(cls, outcome: ToolOutcome) -> ToolExecution:
        request = outcome.request
        if outcome.revised_input is not None:
            request = ToolRequest(
                id=request.id, name=request.name, input=outcome.revised_input,
                order=request.order, start_offset=request.start_offset,
            )
        return cls(request=request, status=outcome.status, result=outcome.content)


@dataclass(slots=True)
class ToolContext:
    """Per-call environment: working directory, scope and cancellation."""

    cwd: Path
    scope: ToolScope = ToolScope.DEFAULT
    session_id: str = ""
    tool_use_id: str = ""
    cancel_token: CancellationToken | None = None
    observer: Observer | None = None
    extra: dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class Tool(Protocol):
    """Anything with a definition and an async execute."""

    @property
    def definition(self) -> ToolDef:
        """Declaration offered to the model."""
        ...

    async def execute(self, args: dict[str, Any], ctx: ToolContext) -> ToolResultData:
        """Run with validated *args*; failures come back as is_error results."""
        ...
