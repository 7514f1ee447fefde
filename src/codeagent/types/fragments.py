"""Display fragments emitted while model output streams in.

Fragments are observational only. The loop never reads them back.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any


@dataclass(frozen=True, slots=True)
class TextFragment:
    text: str


@dataclass(frozen=True, slots=True)
class ThinkingFragment:
    text: str


@dataclass(frozen=True, slots=True)
class ToolNameFragment:
    name: str
    id: str


@dataclass(frozen=True, slots=True)
class ToolParameterFragment:
    name: str
    value: str
    tool_id: str


@dataclass(frozen=True, slots=True)
class ToolEndFragment:
    id: str


@dataclass(frozen=True, slots=True)
class ReasoningSummaryFragment:
    text: str
    item: int = 0


@dataclass(frozen=True, slots=True)
class CompactionFragment:
    sequence_number: int
    summary: str


DisplayFragment = (
    TextFragment
    | ThinkingFragment
    | ToolNameFragment
    | ToolParameterFragment
    | ToolEndFragment
    | ReasoningSummaryFragment
    | CompactionFragment
)


def merge_fragments(fragments: list[Any]) -> list[DisplayFragment]:
    """Coalesce adjacent text, thinking and same-item summary deltas.

    Live streaming splits deltas wherever chunk boundaries fall; merging makes
    a live sequence comparable with a replayed one.
    """
    merged: list[DisplayFragment] = []
    for frag in fragments:
        prev = merged[-1] if merged else None
        if isinstance(frag, TextFragment) and isinstance(prev, TextFragment):
            merged[-1] = TextFragment(prev.text + frag.text)
        elif isinstance(frag, ThinkingFragment) and isinstance(prev, ThinkingFragment):
            merged[-1] = ThinkingFragment(prev.text + frag.text)
        elif (
            isinstance(frag, ReasoningSummaryFragment)
            and isinstance(prev, ReasoningSummaryFragment)
            and prev.item == frag.item
        ):
            merged[-1] = replace(prev, text=prev.text + frag.text)
        else:
            merged.append(frag)
    return [f for f in merged if not (isinstance(f, TextFragment) and not f.text)]
