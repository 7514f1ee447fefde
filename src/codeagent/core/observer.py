"""Observer sinks for display fragments and UI events.

Observers are one-way: the loop pushes notifications and never reads
anything back.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Protocol, runtime_checkable

import anyio
from anyio.abc import ObjectReceiveStream, ObjectSendStream

from codeagent.types.events import SubAgentProgress, UiEvent
from codeagent.types.fragments import DisplayFragment

logger = logging.getLogger(__name__)

ObserverItem = DisplayFragment | UiEvent


@runtime_checkable
class Observer(Protocol):
    """Receives live output and state transitions from an agent loop."""

    def display_fragment(self, fragment: DisplayFragment) -> None:
        ...

    def send_event(self, event: UiEvent) -> None:
        ...


class NullObserver:
    """Discards everything."""

    def display_fragment(self, fragment: DisplayFragment) -> None:
        pass

    def send_event(self, event: UiEvent) -> None:
        pass


class ObserverChannel:
    """Forwards notifications over an anyio memory object stream.

    A consumer task iterates the channel::

        channel = ObserverChannel()
        async with anyio.create_task_group() as tg:
            tg.start_soon(render, channel)
            await loop.run("Fix the bug")
            channel.close()
    """

    def __init__(self, max_buffer_size: float = math.inf) -> None:
        send: ObjectSendStream[Any]
        recv: ObjectReceiveStream[Any]
        send, recv = anyio.create_memory_object_stream[Any](max_buffer_size=max_buffer_size)
        self._send = send
        self._recv = recv

    def _push(self, item: ObserverItem) -> None:
        try:
            self._send.send_nowait(item)
        except (anyio.BrokenResourceError, anyio.ClosedResourceError):
            logger.debug("Observer channel closed, dropping %s", type(item).__name__)
        except anyio.WouldBlock:
            logger.warning("Observer channel full, dropping %s", type(item).__name__)

    def display_fragment(self, fragment: DisplayFragment) -> None:
        self._push(fragment)

    def send_event(self, event: UiEvent) -> None:
        self._push(event)

    async def receive(self) -> ObserverItem:
        """Wait for the next item; raises anyio.EndOfStream once closed and drained."""
        return await self._recv.receive()

    def close(self) -> None:
        """Stop accepting items; consumers finish after draining."""
        self._send.close()

    def __aiter__(self) -> ObserverChannel:
        return self

    async def __anext__(self) -> ObserverItem:
        try:
            return await self._recv.receive()
        except anyio.EndOfStream:
            raise StopAsyncIteration from None


class SubAgentProgressObserver:
    """Re-labels a sub-agent's output as progress of the parent's tool call."""

    def __init__(self, parent: Observer, parent_tool_id: str) -> None:
        self._parent = parent
        self._parent_tool_id = parent_tool_id

    def display_fragment(self, fragment: DisplayFragment) -> None:
        self._parent.send_event(SubAgentProgress(self._parent_tool_id, fragment))

    def send_event(self, event: UiEvent) -> None:
        self._parent.send_event(SubAgentProgress(self._parent_tool_id, event))
