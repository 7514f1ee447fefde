"""Cooperative cancellation shared between a loop, its tools and sub-agents."""

from __future__ import annotations

import asyncio


class CancellationToken:
    """A flag that can be set from outside and observed at suspension points.

    Tokens form a tree: cancelling a token cancels every token derived from
    it with :meth:`child`, never the other way round.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._event: asyncio.Event | None = None
        self._children: list[CancellationToken] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Request cancellation of this token and all of its children."""
        if self._cancelled:
            return
        self._cancelled = True
        if self._event is not None:
            self._event.set()
        children, self._children = self._children, []
        for child in children:
            child.cancel()

    def child(self) -> CancellationToken:
        """Return a token cancelled together with this one."""
        token = CancellationToken()
        if self._cancelled:
            token.cancel()
        else:
            self._children.append(token)
        return token

    async def wait(self) -> None:
        """Block until the token is cancelled."""
        if self._cancelled:
            return
        if self._event is None:
            self._event = asyncio.Event()
        await self._event.wait()

    async def sleep(self, seconds: float) -> bool:
        """Sleep up to *seconds*; return True if cancelled meanwhile."""
        try:
            await asyncio.wait_for(self.wait(), timeout=seconds)
        except TimeoutError:
            return False
        return True

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self._cancelled})"
