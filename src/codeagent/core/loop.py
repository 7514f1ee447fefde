"""The core agent loop: model request, streamed parsing, tool dispatch, compaction."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from codeagent.core.cancellation import CancellationToken
from codeagent.core.context import COMPACTION_PROMPT, compaction_message, should_compact
from codeagent.core.history import History
from codeagent.core.observer import NullObserver, Observer
from codeagent.core.request import DEFAULT_SYSTEM_PROMPT, build_request
from codeagent.core.session import SessionStore
from codeagent.core.steering import SteeringChannel
from codeagent.errors import ProviderError, RateLimitError, ToolParseError
from codeagent.parsing import ToolInvocationParser, create_parser
from codeagent.permissions.mediator import PermissionGate
from codeagent.tools.dispatcher import CANCELLED_MESSAGE, ToolDispatcher
from codeagent.tools.registry import ToolRegistry
from codeagent.types.config import ContextWindowConfig, LoopConfig, ToolSyntax
from codeagent.types.events import (
    ContextCompacted,
    RateLimitCleared,
    RateLimited,
    ResponseDiscarded,
    StopReason,
    TurnEnded,
    TurnOutcome,
)
from codeagent.types.fragments import CompactionFragment
from codeagent.types.messages import (
    Message,
    MessageRole,
    TextBlock,
    ToolResultBlock,
    user_message,
)
from codeagent.types.providers import LLMRequest, Provider, RateLimitSignal
from codeagent.types.tools import (
    ToolContext,
    ToolExecution,
    ToolOutcome,
    ToolRequest,
    ToolScope,
    ToolStatus,
)

logger = logging.getLogger(__name__)

_PROVIDER_STOP_REASONS = {
    "max_tokens": StopReason.MAX_TOKENS,
    "refusal": StopReason.REFUSAL,
}


@dataclass(slots=True)
class _Response:
    """How one model call ended."""

    parser: ToolInvocationParser
    cancelled: bool = False
    error: ProviderError | None = None


def _provider_error(exc: Exception) -> ProviderError:
    error = ProviderError(f"Provider request failed: {type(exc).__name__}: {exc}")
    error.__cause__ = exc
    return error


class AgentLoop:
    """Drives one conversation: prompt -> model -> tools -> model -> ... -> stop.

    The loop owns its :class:`History` exclusively. Observers only receive
    fragments and events; nothing they do feeds back into the loop.

    Usage::

        loop = AgentLoop(provider, registry, LoopConfig(), observer=console)
        outcome = await loop.run("Fix the failing test")
        print(outcome.stop_reason, outcome.text)
    """

    def __init__(
        self,
        provider: Provider,
        registry: ToolRegistry,
        config: LoopConfig,
        *,
        history: History | None = None,
        observer: Observer | None = None,
        scope: ToolScope = ToolScope.DEFAULT,
        cancel_token: CancellationToken | None = None,
        permissions: PermissionGate | None = None,
        store: SessionStore | None = None,
        steering: SteeringChannel | None = None,
        session_id: str = "",
    ) -> None:
        self._provider = provider
        self._registry = registry
        self._config = config
        self._history = history if history is not None else History()
        self._observer = observer or NullObserver()
        self._scope = scope
        self._cancel = cancel_token or CancellationToken()
        self._store = store
        self._steering = steering
        self._session_id = session_id
        self._cwd = Path(config.cwd or ".").resolve()
        self._system = config.system_prompt or DEFAULT_SYSTEM_PROMPT.format(cwd=str(self._cwd))
        self._dispatcher = ToolDispatcher(
            registry,
            observer=self._observer,
            permissions=permissions,
            max_parallel=config.max_parallel_sub_agents,
        )

        context = config.context
        model_info = getattr(provider, "model_info", None)
        if context.limit is None and model_info is not None:
            context = ContextWindowConfig.for_model(model_info, context.threshold, context.enabled)
        self._context = context
        self._shown = 0  # fragments forwarded for the current attempt

    # ------------------------------------------------------------------
    # Public state
    # ------------------------------------------------------------------

    @property
    def history(self) -> History:
        return self._history

    @property
    def scope(self) -> ToolScope:
        return self._scope

    @property
    def cancel_token(self) -> CancellationToken:
        return self._cancel

    @property
    def context_config(self) -> ContextWindowConfig:
        return self._context

    def cancel(self) -> None:
        """Ask the loop to stop at its next checkpoint."""
        self._cancel.cancel()

    def should_compact(self) -> bool:
        return should_compact(self._history, self._context)

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    async def run(self, prompt: str | None = None) -> TurnOutcome:
        """Run until the model ends its turn or another stop condition hits."""
        if prompt is not None:
            self._append(user_message(prompt))

        iterations = 0
        tool_calls = 0
        while True:
            self._drain_steering()
            if self._cancel.cancelled:
                return self._end(StopReason.CANCELLED, iterations, tool_calls)

            if self.should_compact():
                error = await self._compact()
                if error is not None:
                    return self._end(StopReason.ERROR, iterations, tool_calls, error)
                continue

            if iterations >= self._config.max_turn_requests:
                return self._end(StopReason.MAX_TURN_REQUESTS, iterations, tool_calls)
            iterations += 1

            response = await self._request_response(include_tools=True)
            if response.error is not None:
                return self._end(StopReason.ERROR, iterations, tool_calls, response.error)
            parser = response.parser
            if response.cancelled:
                self._append_partial(parser)
                return self._end(StopReason.CANCELLED, iterations, tool_calls)

            try:
                requests = parser.finalize()
                parse_error: ToolParseError | None = None
            except ToolParseError as exc:
                requests, parse_error = [], exc
            self._append(
                Message(
                    role=MessageRole.ASSISTANT,
                    content=parser.content_blocks(include_tools=parse_error is None),
                    usage=parser.usage,
                    request_id=parser.request_id,
                ),
            )

            if parse_error is not None:
                self._append(user_message(
                    f"Tool parse error: {parse_error}\n"
                    "Please correct the tool invocation and try again.",
                ))
                continue

            if not requests:
                reason = _PROVIDER_STOP_REASONS.get(parser.stop_reason or "", StopReason.END_TURN)
                return self._end(reason, iterations, tool_calls)

            outcomes = await self._dispatch(requests, parser)
            tool_calls += len(outcomes)
            if self._cancel.cancelled:
                return self._end(StopReason.CANCELLED, iterations, tool_calls)

    # ------------------------------------------------------------------
    # Model calls
    # ------------------------------------------------------------------

    def _new_parser(self) -> ToolInvocationParser:
        return create_parser(
            self._config.tool_syntax, self._registry, self._history.next_request_id(),
        )

    async def _request_response(self, include_tools: bool) -> _Response:
        """Send the active slice and stream the reply through a fresh parser.

        Rate limits are retried with exponential back-off; every other
        provider failure is returned as an error.
        """
        attempt = 0
        while True:
            parser = self._new_parser()
            request = build_request(
                self._history.active_slice(),
                parser=parser,
                definitions=self._registry.definitions(self._scope),
                system=self._system,
                max_tokens=self._config.max_tokens,
                include_tools=include_tools,
            )
            retry_after: float | None = None
            try:
                signal = await self._consume_stream(request, parser)
            except RateLimitError as exc:
                signal = RateLimitSignal(exc.retry_after)
                last_error: ProviderError = exc
            except ProviderError as exc:
                return _Response(parser, error=exc)
            except Exception as exc:  # noqa: BLE001
                return _Response(parser, error=_provider_error(exc))
            else:
                last_error = RateLimitError("Rate limit retries exhausted")

            if signal is None:
                return _Response(parser, cancelled=self._cancel.cancelled)

            if attempt >= self._config.max_rate_limit_retries:
                return _Response(parser, error=last_error)
            attempt += 1
            retry_after = signal.retry_after
            delay = (
                retry_after
                if retry_after is not None
                else self._config.rate_limit_backoff * 2 ** (attempt - 1)
            )
            logger.warning(
                "Rate limited on attempt %d/%d. Retrying in %.1fs.",
                attempt, self._config.max_rate_limit_retries + 1, delay,
            )
            if self._shown:
                self._observer.send_event(ResponseDiscarded(request.request_id))
            self._observer.send_event(RateLimited(delay, attempt))
            if await self._cancel.sleep(delay):
                return _Response(parser, cancelled=True)
            self._observer.send_event(RateLimitCleared())

    async def _consume_stream(
        self, request: LLMRequest, parser: ToolInvocationParser,
    ) -> RateLimitSignal | None:
        """Feed the provider stream into *parser*, forwarding fragments.

        Returns a rate-limit signal if the provider sent one instead of a
        reply, otherwise None. Stops early on cancellation or when the parser
        asks for it.
        """
        self._shown = 0
        stream = self._provider.stream(request)
        try:
            async for chunk in stream:
                if self._cancel.cancelled:
                    logger.debug("Cancelled while streaming response %d", request.request_id)
                    break
                if isinstance(chunk, RateLimitSignal):
                    return chunk
                for fragment in parser.process_chunk(chunk):
                    self._observer.display_fragment(fragment)
                    self._shown += 1
                if parser.stop_requested or parser.ended:
                    break
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()
        return None

    def _append_partial(self, parser: ToolInvocationParser) -> None:
        """Keep what was streamed before a cancellation, minus any tool use."""
        blocks = parser.content_blocks(include_tools=False, until_first_tool=True)
        if blocks:
            self._append(
                Message(
                    role=MessageRole.ASSISTANT,
                    content=blocks,
                    usage=parser.usage,
                    request_id=parser.request_id,
                ),
            )

    # ------------------------------------------------------------------
    # Tools
    # ------------------------------------------------------------------

    async def _dispatch(
        self, requests: list[ToolRequest], parser: ToolInvocationParser,
    ) -> list[ToolOutcome]:
        if self._cancel.cancelled:
            outcomes = [ToolOutcome(r, ToolStatus.CANCELLED, CANCELLED_MESSAGE) for r in requests]
        else:
            ctx = ToolContext(
                cwd=self._cwd,
                scope=self._scope,
                session_id=self._session_id,
                cancel_token=self._cancel,
                observer=self._observer,
            )
            outcomes = await self._dispatcher.dispatch(requests, ctx)

        self._reconcile(outcomes, parser)
        self._append(
            Message(
                role=MessageRole.USER,
                content=tuple(
                    ToolResultBlock(o.request.id, o.content, o.is_error) for o in outcomes
                ),
            ),
        )
        for outcome in outcomes:
            execution = ToolExecution.from_outcome(outcome)
            self._history.record_execution(execution)
            if self._store is not None:
                self._store.append_execution(execution)
        return outcomes

    def _reconcile(self, outcomes: list[ToolOutcome], parser: ToolInvocationParser) -> None:
        """Rewrite recorded tool inputs that a tool reports it changed."""
        revised = [o for o in outcomes if o.revised_input is not None]
        # Later blocks first so earlier character offsets stay valid.
        revised.sort(key=lambda o: o.request.start_offset or 0, reverse=True)
        text_syntax = self._config.tool_syntax is not ToolSyntax.NATIVE
        for outcome in revised:
            request = outcome.request
            span = None
            if text_syntax and request.start_offset is not None and request.end_offset is not None:
                span = (request.start_offset, request.end_offset)
            index = self._history.revise_tool_input(
                request.id,
                outcome.revised_input or {},
                render=parser.render_request if span is not None else None,
                span=span,
            )
            if index is None:
                logger.warning("No recorded tool use %s to reconcile", request.id)
                continue
            logger.debug("Reconciled input of tool use %s", request.id)
            if self._store is not None:
                self._store.replace_message(index, self._history.messages[index])

    # ------------------------------------------------------------------
    # Compaction
    # ------------------------------------------------------------------

    async def _compact(self) -> ProviderError | None:
        """Ask the model for a summary and start a new active slice after it."""
        size_before = self._history.current_context_size()
        logger.info(
            "Compacting context at %d tokens (limit %s, threshold %.2f)",
            size_before, self._context.limit, self._context.threshold,
        )
        self._append(user_message(COMPACTION_PROMPT))
        response = await self._request_response(include_tools=False)
        if response.error is not None:
            return response.error
        parser = response.parser
        if response.cancelled:
            self._append_partial(parser)
            return None

        reply = Message(
            role=MessageRole.ASSISTANT,
            content=parser.content_blocks(include_tools=False),
            usage=parser.usage,
            request_id=parser.request_id,
        )
        self._append(reply)
        summary = reply.text.strip()
        if not summary:
            logger.warning("Model returned an empty summary for compaction")

        marker = compaction_message(self._history, summary, size_before)
        self._append(marker)
        block = marker.compaction
        assert block is not None
        self._observer.display_fragment(CompactionFragment(block.sequence_number, summary))
        self._observer.send_event(
            ContextCompacted(block.sequence_number, block.messages_archived, size_before),
        )
        return None

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _append(self, message: Message) -> None:
        index = self._history.append(message)
        if self._store is not None:
            self._store.append_message(index, message)

    def _drain_steering(self) -> None:
        if self._steering is None:
            return
        for text in self._steering.drain():
            logger.debug("Steering message received (%d chars)", len(text))
            self._append(Message(role=MessageRole.USER, content=(TextBlock(text),)))

    def _end(
        self,
        reason: StopReason,
        iterations: int,
        tool_calls: int,
        error: ProviderError | None = None,
    ) -> TurnOutcome:
        if error is not None:
            logger.error("Agent loop stopped: %s", error)
        else:
            logger.debug("Agent loop stopped: %s", reason.value)
        self._observer.send_event(TurnEnded(reason))
        return TurnOutcome(
            stop_reason=reason,
            text=self._history.last_assistant_text(),
            iterations=iterations,
            tool_calls=tool_calls,
            error=error,
        )
