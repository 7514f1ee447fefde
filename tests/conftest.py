"""Shared fixtures: scripted providers, a recording observer and sample tools."""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from typing import Any

import pytest

from codeagent.errors import ToolExecutionError
from codeagent.tools.base import BaseTool
from codeagent.tools.registry import ToolRegistry
from codeagent.types.messages import Usage
from codeagent.types.providers import (
    LLMRequest,
    ModelInfo,
    StreamEnd,
    StreamingChunk,
    TextDelta,
    ToolCallDelta,
    UsageReport,
)
from codeagent.types.tools import (
    TOP_LEVEL_SCOPES,
    ToolContext,
    ToolDef,
    ToolParam,
    ToolResultData,
    ToolScope,
)


@dataclass
class MockTurn:
    """A scripted response for MockProvider.

    Specify text and/or tool_uses, or give the raw ``chunks`` directly.
    """

    text: str = ""
    tool_uses: list[dict[str, Any]] = field(default_factory=list)
    # Each tool_use: {"id": "tu1", "name": "echo", "args": {"text": "hi"}}
    chunks: list[StreamingChunk] | None = None
    usage: Usage = field(default_factory=lambda: Usage(input_tokens=100, output_tokens=50))
    stop_reason: str | None = None
    error: Exception | None = None  # raised instead of streaming
    on_chunk: Callable[[int], None] | None = None  # called before yielding chunk i

    def to_chunks(self) -> list[StreamingChunk]:
        if self.chunks is not None:
            return list(self.chunks)
        chunks: list[StreamingChunk] = []
        if self.text:
            chunks.append(TextDelta(self.text))
        for index, tu in enumerate(self.tool_uses):
            chunks.append(ToolCallDelta(index=index, id=tu.get("id"), name=tu["name"]))
            chunks.append(ToolCallDelta(index=index, arguments=json.dumps(tu.get("args", {}))))
        chunks.append(UsageReport(self.usage))
        stop_reason = self.stop_reason or ("tool_use" if self.tool_uses else "end_turn")
        chunks.append(StreamEnd(stop_reason))
        return chunks


class MockProvider:
    """Replays one scripted MockTurn per stream() call.

    Usage:
        provider = MockProvider(turns=[
            MockTurn(tool_uses=[{"id": "tu1", "name": "echo", "args": {"text": "hi"}}]),
            MockTurn(text="Done."),
        ])
    """

    def __init__(
        self,
        turns: list[MockTurn],
        model: str = "mock-model",
        context_window: int = 200_000,
    ):
        self._turns = list(turns)
        self._turn_index = 0
        self._info = ModelInfo(id=model, context_window=context_window)
        self.requests: list[LLMRequest] = []
        self.closed_streams = 0

    @property
    def model_info(self) -> ModelInfo:
        return self._info

    @property
    def calls(self) -> int:
        return len(self.requests)

    async def stream(self, request: LLMRequest) -> AsyncIterator[StreamingChunk]:
        """Yield scripted chunks for the current turn."""
        self.requests.append(request)
        if self._turn_index >= len(self._turns):
            # No more turns, just end
            yield UsageReport(Usage(input_tokens=10, output_tokens=5))
            yield StreamEnd("end_turn")
            return

        turn = self._turns[self._turn_index]
        self._turn_index += 1
        if turn.error is not None:
            raise turn.error
        try:
            for i, chunk in enumerate(turn.to_chunks()):
                if turn.on_chunk is not None:
                    turn.on_chunk(i)
                yield chunk
        finally:
            self.closed_streams += 1


class FailingMockProvider(MockProvider):
    """Raises ConnectionError for the first ``fail_count`` streams, then replays turns."""

    def __init__(
        self,
        turns: list[MockTurn],
        fail_count: int = 1,
        model: str = "mock-model",
    ):
        super().__init__(turns, model=model)
        self._fail_count = fail_count
        self._call_count = 0

    async def stream(self, request: LLMRequest) -> AsyncIterator[StreamingChunk]:
        self._call_count += 1
        if self._call_count <= self._fail_count:
            self.requests.append(request)
            raise ConnectionError(f"Simulated failure #{self._call_count}")
        async for chunk in super().stream(request):
            yield chunk


class RecordingObserver:
    """Collects everything a loop or dispatcher reports."""

    def __init__(self) -> None:
        self.fragments: list[Any] = []
        self.events: list[Any] = []

    def display_fragment(self, fragment: Any) -> None:
        self.fragments.append(fragment)

    def send_event(self, event: Any) -> None:
        self.events.append(event)

    def events_of(self, kind: type) -> list[Any]:
        return [e for e in self.events if isinstance(e, kind)]


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


class EchoTool(BaseTool):
    """Returns its text argument; available everywhere."""

    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []

    @property
    def definition(self) -> ToolDef:
        return ToolDef(
            name="echo",
            description="Echo the given text.",
            parameters=(ToolParam(name="text", type="string", description="Text to echo."),),
        )

    async def execute(self, args: dict[str, Any], ctx: ToolContext) -> ToolResultData:
        self.calls.append(args)
        return self._ok(args["text"])


class ReadFilesTool(BaseTool):
    """Array and integer parameters for conversion tests."""

    @property
    def definition(self) -> ToolDef:
        return ToolDef(
            name="read_files",
            description="Read one or more files.",
            parameters=(
                ToolParam(name="paths", type="array", description="Files to read."),
                ToolParam(
                    name="limit", type="integer", description="Max lines per file.",
                    required=False,
                ),
                ToolParam(
                    name="verbose", type="boolean", description="Show line numbers.",
                    required=False, default=False,
                ),
            ),
        )

    async def execute(self, args: dict[str, Any], ctx: ToolContext) -> ToolResultData:
        return self._ok("\n".join(f"contents of {p}" for p in args["paths"]))


class WriteFileTool(BaseTool):
    """A gated, top-level-only tool that normalizes its path."""

    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []

    @property
    def definition(self) -> ToolDef:
        return ToolDef(
            name="write_file",
            description="Write a file.",
            parameters=(
                ToolParam(name="path", type="string", description="Destination path."),
                ToolParam(name="content", type="string", description="File content."),
            ),
            scopes=frozenset({ToolScope.DEFAULT, ToolScope.SUB_AGENT_DEFAULT}),
            requires_permission=True,
        )

    async def execute(self, args: dict[str, Any], ctx: ToolContext) -> ToolResultData:
        self.calls.append(args)
        path = args["path"].removeprefix("./")
        revised = {**args, "path": path} if path != args["path"] else None
        return self._ok(f"Wrote {len(args['content'])} bytes to {path}", revised_input=revised)


class FailingTool(BaseTool):
    def __init__(self, exc: Exception | None = None) -> None:
        self._exc = exc or RuntimeError("boom")

    @property
    def definition(self) -> ToolDef:
        return ToolDef(name="fail", description="Always fails.")

    async def execute(self, args: dict[str, Any], ctx: ToolContext) -> ToolResultData:
        raise self._exc


class FakeSpawnTool(BaseTool):
    """Spawning tool whose 'sub-agents' just sleep for ``delay`` seconds."""

    def __init__(self) -> None:
        self.started: list[str] = []
        self.finished: list[str] = []
        self.running = 0
        self.max_running = 0

    @property
    def definition(self) -> ToolDef:
        return ToolDef(
            name="spawn_agent",
            description="Spawn a sub-agent.",
            parameters=(
                ToolParam(name="instructions", type="string", description="Task."),
                ToolParam(
                    name="mode", type="string", description="Mode.", required=False,
                    enum=("read_only", "default"), default="read_only",
                ),
                ToolParam(name="delay", type="number", description="Delay.", required=False),
            ),
            scopes=TOP_LEVEL_SCOPES,
            spawns_agents=True,
        )

    async def execute(self, args: dict[str, Any], ctx: ToolContext) -> ToolResultData:
        name = args["instructions"]
        self.started.append(name)
        self.running += 1
        self.max_running = max(self.max_running, self.running)
        try:
            await asyncio.sleep(args.get("delay") or 0)
        finally:
            self.running -= 1
        self.finished.append(name)
        if name == "explode":
            raise ToolExecutionError("sub-agent exploded")
        return self._ok(f"result of {name}")


@pytest.fixture
def echo_tool() -> EchoTool:
    return EchoTool()


@pytest.fixture
def registry(echo_tool: EchoTool) -> ToolRegistry:
    """Registry with echo, read_files, write_file and spawn_agent."""
    reg = ToolRegistry()
    reg.register(echo_tool)
    reg.register(ReadFilesTool())
    reg.register(WriteFileTool())
    reg.register(FakeSpawnTool())
    return reg


@pytest.fixture
def mock_provider() -> MockProvider:
    """One plain text turn and no tool calls."""
    return MockProvider(turns=[
        MockTurn(text="I can help with that."),
    ])


@pytest.fixture
def failing_mock_provider() -> FailingMockProvider:
    return FailingMockProvider(
        turns=[MockTurn(text="Recovered!")],
        fail_count=1,
    )
