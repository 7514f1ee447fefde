"""Exception types for codeagent.

Cancellation is not an exception here: a cancelled run ends with
``StopReason.CANCELLED``. An early stop requested by the parser's tool-use
filter is likewise a flag, not an error.
"""

from __future__ import annotations


class CodeAgentError(Exception):
    """Base class for all codeagent errors."""


class ToolParseError(CodeAgentError):
    """A tool block in model output was malformed or named an unknown tool."""

    def __init__(self, message: str, tool_name: str | None = None) -> None:
        super().__init__(message)
        self.tool_name = tool_name


class SchemaError(CodeAgentError):
    """Tool input does not match the tool's parameter schema."""


class ScopeViolation(CodeAgentError):
    """A tool was requested outside the scopes it is permitted in."""


class ToolExecutionError(CodeAgentError):
    """A tool failed at runtime."""


class ProviderError(CodeAgentError):
    """Transport or API failure talking to the model provider."""


class RateLimitError(ProviderError):
    """The provider is rate limiting us; the request may be retried."""

    def __init__(self, message: str = "Rate limited", retry_after: float | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after
