"""ToolDispatcher: scope checks, permission mediation and ordered execution."""

from __future__ import annotations

import asyncio
import dataclasses
import logging

from codeagent.core.observer import NullObserver, Observer
from codeagent.errors import SchemaError, ScopeViolation, ToolExecutionError
from codeagent.permissions.mediator import PermissionDecision, PermissionGate, PermissionRequest
from codeagent.tools.registry import ToolRegistry
from codeagent.types.events import ToolStatusChanged
from codeagent.types.tools import ToolContext, ToolOutcome, ToolRequest, ToolStatus

logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = "Tool execution cancelled by user."


class ToolDispatcher:
    """Executes the tool requests of one assistant message.

    Every failure mode short of task cancellation comes back as a failed
    :class:`ToolOutcome` the model can react to. Outcomes are returned in
    request order.

    Usage::

        dispatcher = ToolDispatcher(registry, observer=observer)
        outcomes = await dispatcher.dispatch(requests, ctx)
    """

    def __init__(
        self,
        registry: ToolRegistry,
        *,
        observer: Observer | None = None,
        permissions: PermissionGate | None = None,
        max_parallel: int = 4,
    ) -> None:
        self._registry = registry
        self._observer = observer or NullObserver()
        self._permissions = permissions
        self._max_parallel = max_parallel

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    def _is_read_only_spawn(self, request: ToolRequest) -> bool:
        definition = self._registry.definition(request.name)
        return (
            definition is not None
            and definition.spawns_agents
            and request.input.get("mode", "read_only") == "read_only"
        )

    def is_parallel_batch(self, requests: list[ToolRequest]) -> bool:
        """Whether *requests* may run concurrently: only read-only sub-agent spawns."""
        return len(requests) > 1 and all(self._is_read_only_spawn(r) for r in requests)

    async def dispatch(self, requests: list[ToolRequest], ctx: ToolContext) -> list[ToolOutcome]:
        """Run *requests* and return their outcomes in request order."""
        for request in requests:
            self._observer.send_event(ToolStatusChanged(request.id, ToolStatus.PENDING))

        if not self.is_parallel_batch(requests):
            outcomes: list[ToolOutcome] = []
            for request in requests:
                outcomes.append(await self.execute(request, ctx))
            return outcomes

        logger.info("Running %d sub-agents concurrently", len(requests))
        semaphore = asyncio.Semaphore(self._max_parallel)

        async def _bounded(request: ToolRequest) -> ToolOutcome:
            async with semaphore:
                return await self.execute(request, ctx)

        # gather() keeps argument order whatever the completion order.
        return list(await asyncio.gather(*(_bounded(r) for r in requests)))

    # ------------------------------------------------------------------
    # Single request
    # ------------------------------------------------------------------

    async def execute(self, request: ToolRequest, ctx: ToolContext) -> ToolOutcome:
        """Validate, authorize and run one request."""
        if ctx.cancel_token is not None and ctx.cancel_token.cancelled:
            return self._finish(request, ToolStatus.CANCELLED, CANCELLED_MESSAGE)

        try:
            tool = self._registry.resolve(request.name, ctx.scope)
            args = tool.validate(request.input)
        except KeyError as exc:
            return self._finish(request, ToolStatus.ERROR, str(exc.args[0]))
        except (ScopeViolation, SchemaError) as exc:
            return self._finish(request, ToolStatus.ERROR, str(exc))

        if tool.definition.requires_permission and self._permissions is not None:
            decision = await self._permissions.check(
                PermissionRequest(request.id, request.name, args),
            )
            match decision:
                case PermissionDecision.DENY:
                    return self._finish(
                        request, ToolStatus.ERROR,
                        f"Permission denied for tool '{request.name}'.",
                    )
                case PermissionDecision.CANCELLED:
                    return self._finish(request, ToolStatus.CANCELLED, CANCELLED_MESSAGE)
            if ctx.cancel_token is not None and ctx.cancel_token.cancelled:
                return self._finish(request, ToolStatus.CANCELLED, CANCELLED_MESSAGE)

        self._observer.send_event(ToolStatusChanged(request.id, ToolStatus.RUNNING))
        tool_ctx = dataclasses.replace(ctx, tool_use_id=request.id)
        try:
            result = await tool.execute(args, tool_ctx)
        except ToolExecutionError as exc:
            return self._finish(request, ToolStatus.ERROR, str(exc))
        except Exception as exc:  # noqa: BLE001
            logger.warning("Tool '%s' raised %s", request.name, type(exc).__name__, exc_info=True)
            return self._finish(
                request, ToolStatus.ERROR,
                f"Tool '{request.name}' raised an unexpected error: {exc}",
            )

        revised = result.revised_input
        if revised is not None and revised == request.input:
            revised = None
        status = ToolStatus.ERROR if result.is_error else ToolStatus.SUCCESS
        return self._finish(request, status, result.content, revised)

    def _finish(
        self,
        request: ToolRequest,
        status: ToolStatus,
        content: str,
        revised_input: dict | None = None,
    ) -> ToolOutcome:
        message = content if status is not ToolStatus.SUCCESS else ""
        self._observer.send_event(ToolStatusChanged(request.id, status, message))
        return ToolOutcome(request, status, content, revised_input)
