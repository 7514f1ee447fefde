"""Steering: user messages typed while a run is in progress."""

from __future__ import annotations

import anyio
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream


class SteeringChannel:
    """Queue of user messages the loop appends between iterations.

    The UI side writes, the loop side drains; the two only meet through an
    anyio memory object stream. ``sender()`` hands out independent send
    handles, so several input sources can feed one loop.
    """

    def __init__(self, buffer_size: int = 16) -> None:
        self._writer: MemoryObjectSendStream[str]
        self._reader: MemoryObjectReceiveStream[str]
        self._writer, self._reader = anyio.create_memory_object_stream[str](buffer_size)

    def sender(self) -> MemoryObjectSendStream[str]:
        """A send handle of its own; closing it leaves the channel open."""
        return self._writer.clone()

    async def send(self, message: str) -> None:
        """Queue *message*, waiting while the buffer is full."""
        await self._writer.send(message)

    def send_nowait(self, message: str) -> None:
        """Queue *message*; raises anyio.WouldBlock when the buffer is full."""
        self._writer.send_nowait(message)

    def receive_nowait(self) -> str | None:
        try:
            return self._reader.receive_nowait()
        except (anyio.WouldBlock, anyio.EndOfStream, anyio.ClosedResourceError):
            return None

    def drain(self) -> list[str]:
        """Everything queued so far, oldest first."""
        pending: list[str] = []
        while (message := self.receive_nowait()) is not None:
            pending.append(message)
        return pending

    def has_pending(self) -> bool:
        return self._reader.statistics().current_buffer_used > 0

    async def close(self) -> None:
        await self._writer.aclose()
        await self._reader.aclose()
