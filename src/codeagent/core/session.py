"""JSONL append-only persistence of messages and tool executions."""

from __future__ import annotations

import json
import logging
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from codeagent.core.history import History
from codeagent.types.messages import Message, message_from_dict, message_to_dict
from codeagent.types.tools import ToolExecution

logger = logging.getLogger(__name__)


def default_sessions_dir() -> Path:
    return Path.home() / ".codeagent" / "sessions"


def new_session_id() -> str:
    return uuid.uuid4().hex[:12]


@runtime_checkable
class SessionStore(Protocol):
    """Where the loop writes its history. Entries are only ever appended."""

    def append_message(self, index: int, message: Message) -> None:
        ...

    def replace_message(self, index: int, message: Message) -> None:
        ...

    def append_execution(self, execution: ToolExecution) -> None:
        ...

    def load(self) -> History:
        ...


class JsonlSessionStore:
    """Append-only JSONL session file.

    A revised message is written as a new ``revision`` entry; loading applies
    revisions in file order, so the file itself is never rewritten.
    """

    def __init__(
        self,
        session_id: str | None = None,
        directory: Path | None = None,
        cwd: str = ".",
    ) -> None:
        self.session_id = session_id or new_session_id()
        base = directory if directory is not None else default_sessions_dir()
        base.mkdir(parents=True, exist_ok=True)
        self._path = base / f"{self.session_id}.jsonl"
        if not self._path.exists():
            self._append({
                "type": "metadata",
                "data": {
                    "session_id": self.session_id,
                    "cwd": cwd,
                    "created_at": datetime.now(UTC).isoformat(),
                },
            })

    @property
    def path(self) -> Path:
        return self._path

    def _append(self, entry: dict[str, Any]) -> None:
        line = json.dumps(entry, default=str)
        with self._path.open("a", encoding="utf-8") as fh:
            fh.write(line + "\n")

    def append_message(self, index: int, message: Message) -> None:
        self._append({"type": "message", "index": index, "data": message_to_dict(message)})

    def replace_message(self, index: int, message: Message) -> None:
        self._append({"type": "revision", "index": index, "data": message_to_dict(message)})

    def append_execution(self, execution: ToolExecution) -> None:
        self._append({"type": "tool_execution", "data": execution.to_dict()})

    def load(self) -> History:
        """Rebuild the history from the file."""
        messages: list[Message] = []
        executions: list[ToolExecution] = []
        with self._path.open(encoding="utf-8") as fh:
            for lineno, line in enumerate(fh, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    entry = json.loads(line)
                except json.JSONDecodeError:
                    logger.warning("Skipping corrupt line %d in %s", lineno, self._path)
                    continue
                match entry.get("type"):
                    case "message":
                        messages.append(message_from_dict(entry["data"]))
                    case "revision":
                        index = entry["index"]
                        if 0 <= index < len(messages):
                            messages[index] = message_from_dict(entry["data"])
                        else:
                            logger.warning("Revision for unknown message %d in %s", index, self._path)
                    case "tool_execution":
                        executions.append(ToolExecution.from_dict(entry["data"]))
        return History(messages, executions)
