"""Configuration types for codeagent."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from codeagent.types.providers import ModelInfo

DEFAULT_COMPACTION_THRESHOLD = 0.85


class ToolSyntax(Enum):
    """How tool invocations are encoded in model output."""

    NATIVE = "native"  # Structured tool calls from the provider
    XML = "xml"  # <tool:name><param:key>value</param:key></tool:name>
    CARET = "caret"  # ^^^name ... ^^^ fenced blocks


@dataclass(frozen=True, slots=True)
class ContextWindowConfig:
    """Token budget for the active history slice."""

    limit: int | None = None
    threshold: float = DEFAULT_COMPACTION_THRESHOLD
    enabled: bool = True

    def __post_init__(self) -> None:
        if not 0.0 < self.threshold <= 1.0:
            raise ValueError(f"threshold must be in (0, 1], got {self.threshold}")
        if self.limit is not None and self.limit <= 0:
            raise ValueError(f"limit must be positive, got {self.limit}")

    @classmethod
    def for_model(
        cls,
        info: ModelInfo,
        threshold: float = DEFAULT_COMPACTION_THRESHOLD,
        enabled: bool = True,
    ) -> ContextWindowConfig:
        return cls(limit=info.context_window, threshold=threshold, enabled=enabled)


@dataclass(frozen=True, slots=True)
class LoopConfig:
    """Configuration for one agent loop."""

    model: str | None = None
    tool_syntax: ToolSyntax = ToolSyntax.NATIVE
    max_tokens: int = 8192
    max_turn_requests: int = 50
    context: ContextWindowConfig = field(default_factory=ContextWindowConfig)
    max_parallel_sub_agents: int = 4
    max_rate_limit_retries: int = 3
    rate_limit_backoff: float = 1.0
    system_prompt: str | None = None
    cwd: str | None = None

    def __post_init__(self) -> None:
        if self.max_turn_requests < 1:
            raise ValueError("max_turn_requests must be at least 1")
        if self.max_parallel_sub_agents < 1:
            raise ValueError("max_parallel_sub_agents must be at least 1")
        if self.max_rate_limit_retries < 0:
            raise ValueError("max_rate_limit_retries must not be negative")
