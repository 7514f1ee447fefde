"""Base provider with shared error classification and tool schema conversion."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Any

from codeagent.errors import ProviderError, RateLimitError
from codeagent.providers.registry import get_model_info
from codeagent.types.providers import LLMRequest, ModelInfo, StreamingChunk
from codeagent.types.tools import ToolDef, ToolParam

logger = logging.getLogger(__name__)

# Rate limits and server overload are worth retrying.
_RETRYABLE_STATUS_CODES: frozenset[int] = frozenset({429, 529})


def _is_retryable(exc: BaseException) -> bool:
    """Return True when *exc* represents a transient error worth retrying."""
    # Anthropic SDK raises RateLimitError (429) and OverloadedError (529).
    if type(exc).__name__ in {"RateLimitError", "OverloadedError"}:
        return True
    status_code: int | None = getattr(exc, "status_code", None)
    return status_code is not None and status_code in _RETRYABLE_STATUS_CODES


def _retry_after(exc: BaseException) -> float | None:
    """Read a ``retry-after`` header (seconds) from an SDK error, if present."""
    response = getattr(exc, "response", None)
    headers = getattr(response, "headers", None)
    if not headers:
        return None
    raw = headers.get("retry-after")
    if raw is None:
        return None
    try:
        return max(0.0, float(raw))
    except (TypeError, ValueError):
        return None


def translate_error(exc: Exception) -> ProviderError:
    """Map an SDK exception onto RateLimitError or ProviderError."""
    if isinstance(exc, ProviderError):
        return exc
    if _is_retryable(exc):
        error: ProviderError = RateLimitError(
            f"{type(exc).__name__}: {exc}", retry_after=_retry_after(exc),
        )
    else:
        error = ProviderError(f"{type(exc).__name__}: {exc}")
    error.__cause__ = exc
    return error


def param_schema(param: ToolParam) -> dict[str, Any]:
    """JSON Schema for one tool parameter.

    Arrays without an explicit item schema are taken to hold strings, which
    matches how the text syntaxes deliver repeated values.
    """
    schema: dict[str, Any] = {"type": param.type, "description": param.description}
    if param.enum is not None:
        schema["enum"] = list(param.enum)
    if param.default is not None:
        schema["default"] = param.default
    if param.type == "array":
        schema["items"] = param.items or {"type": "string"}
    return schema


def tool_schema(definition: ToolDef) -> dict[str, Any]:
    """Native tool declaration with an ``object`` input schema.

    Returns
    -------
    dict[str, Any]
        ``{"name", "description", "input_schema"}``; ``required`` is omitted
        from the schema when no parameter is required.
    """
    input_schema: dict[str, Any] = {
        "type": "object",
        "properties": {p.name: param_schema(p) for p in definition.parameters},
    }
    required = [p.name for p in definition.parameters if p.required]
    if required:
        input_schema["required"] = required
    return {
        "name": definition.name,
        "description": definition.description,
        "input_schema": input_schema,
    }


class BaseProvider(ABC):
    """Shared plumbing for provider adapters.

    Subclasses implement :meth:`stream` and translate their SDK's failures
    with :func:`translate_error`.

    Parameters
    ----------
    model:
        Full model id; aliases are resolved by the subclass before calling
        ``super().__init__``.
    """

    def __init__(self, model: str) -> None:
        self._model = model

    @property
    def model_id(self) -> str:
        return self._model

    @property
    def model_info(self) -> ModelInfo | None:
        """Catalogue entry for the model, or None for unknown models."""
        return get_model_info(self._model)

    @abstractmethod
    def stream(self, request: LLMRequest) -> AsyncIterator[StreamingChunk]:
        """Stream one response, yielding chunks and ending with a StreamEnd.

        Transient failures must surface as :class:`RateLimitError` so the
        agent loop can back off and retry; other failures as
        :class:`ProviderError`.
        """
        ...

    def _make_tool_defs(self, tools: list[ToolDef] | tuple[ToolDef, ...]) -> list[dict[str, Any]]:
        return [tool_schema(tool) for tool in tools]
