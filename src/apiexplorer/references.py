"""``[[Name]]`` reference tokens in assistant replies.

Assistant text cites catalogue entries inline as ``[[API Name]]``.  Rendering
splits the text into plain segments and reference segments; each reference is
resolved against the catalogue and marked clickable, already added, or
unavailable.  Rendering is pure: it never touches the workspace.
"""

from __future__ import annotations

import re
from collections.abc import Container, Iterable
from dataclasses import dataclass
from enum import Enum

from .models import CatalogueEntry

REFERENCE_RE = re.compile(r"\[\[([^\]]+)\]\]")


class ReferenceStatus(str, Enum):
    available = "available"
    added = "added"
    unavailable = "unavailable"


@dataclass(frozen=True)
class TextSegment:
    text: str


@dataclass(frozen=True)
class ReferenceSegment:
    token: str  # name as written inside the brackets
    status: ReferenceStatus
    entry: CatalogueEntry | None = None

    @property
    def clickable(self) -> bool:
        return self.status is ReferenceStatus.available

    @property
    def label(self) -> str:
        if self.entry is None:
            return f"{self.token} (Unavailable)"
        if self.status is ReferenceStatus.added:
            return f"{self.entry.name} (Added)"
        return self.entry.name


Segment = TextSegment | ReferenceSegment


def find_references(text: str) -> list[str]:
    """Names inside every ``[[...]]`` token, in order of appearance."""
    return REFERENCE_RE.findall(text)


def resolve_reference(name: str, entries: Iterable[CatalogueEntry]) -> CatalogueEntry | None:
    """Resolve a cited name against the catalogue.

    Exact match beats case-insensitive match, which beats substring
    containment in either direction.  Within a pass the first entry wins.
    """
    candidates = list(entries)
    for entry in candidates:
        if entry.name == name:
            return entry

    wanted = name.lower()
    for entry in candidates:
        if entry.name.lower() == wanted:
            return entry

    for entry in candidates:
        have = entry.name.lower()
        if have and (wanted in have or have in wanted):
            return entry
    return None


def render_references(
    text: str,
    entries: Iterable[CatalogueEntry],
    workspace_names: Container[str] = (),
) -> list[Segment]:
    """Split *text* into plain and reference segments."""
    candidates = list(entries)
    segments: list[Segment] = []
    cursor = 0
    for match in REFERENCE_RE.finditer(text):
        if match.start() > cursor:
            segments.append(TextSegment(text[cursor:match.start()]))
        token = match.group(1)
        entry = resolve_reference(token, candidates)
        if entry is None:
            status = ReferenceStatus.unavailable
        elif entry.name in workspace_names:
            status = ReferenceStatus.added
        else:
            status = ReferenceStatus.available
        segments.append(ReferenceSegment(token=token, status=status, entry=entry))
        cursor = match.end()
    if cursor < len(text):
        segments.append(TextSegment(text[cursor:]))
    return segments


def reference_segments(segments: Iterable[Segment]) -> list[ReferenceSegment]:
    return [s for s in segments if isinstance(s, ReferenceSegment)]


def to_markdown(segments: Iterable[Segment]) -> str:
    """Flatten rendered segments back to text with bracketed labels."""
    parts = []
    for seg in segments:
        if isinstance(seg, TextSegment):
            parts.append(seg.text)
        else:
            parts.append(f"[{seg.label}]")
    return "".join(parts)
