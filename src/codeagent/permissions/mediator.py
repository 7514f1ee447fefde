"""Permission mediation for scope-gated tools.

Evaluation order: deny patterns > allow patterns > tools approved for the
session > the external mediator (usually a prompt in the UI).
"""

from __future__ import annotations

import fnmatch
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


class PermissionDecision(Enum):
    """Answer to a permission request."""

    ALLOW = "allow"
    ALLOW_SESSION = "allow_session"  # Allow this tool for the rest of the session
    DENY = "deny"
    CANCELLED = "cancelled"  # The request was withdrawn, e.g. the user cancelled the run


@dataclass(frozen=True, slots=True)
class PermissionRequest:
    tool_id: str
    tool_name: str
    input: dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class PermissionMediator(Protocol):
    """Asks someone outside the loop whether a tool may run."""

    async def request_permission(self, request: PermissionRequest) -> PermissionDecision:
        ...


class PermissionGate:
    """Decides whether a gated tool call may run, consulting a mediator if needed.

    Without a mediator every call that no pattern denies is allowed.
    """

    def __init__(
        self,
        mediator: PermissionMediator | None = None,
        *,
        allow: tuple[str, ...] = (),
        deny: tuple[str, ...] = (),
    ) -> None:
        self._mediator = mediator
        self._allow = allow
        self._deny = deny
        self._session_allowed: set[str] = set()

    @property
    def session_allowed(self) -> frozenset[str]:
        return frozenset(self._session_allowed)

    async def check(self, request: PermissionRequest) -> PermissionDecision:
        name = request.tool_name
        if any(fnmatch.fnmatch(name, pattern) for pattern in self._deny):
            return PermissionDecision.DENY
        if any(fnmatch.fnmatch(name, pattern) for pattern in self._allow):
            return PermissionDecision.ALLOW
        if name in self._session_allowed or self._mediator is None:
            return PermissionDecision.ALLOW

        decision = await self._mediator.request_permission(request)
        logger.debug("Permission for %s (%s): %s", name, request.tool_id, decision.value)
        if decision is PermissionDecision.ALLOW_SESSION:
            self._session_allowed.add(name)
        return decision
