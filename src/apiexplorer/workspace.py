"""Ordered set of workspace nodes selected by the user."""

from __future__ import annotations

import hashlib
import json
from collections.abc import Iterable, Iterator, Sequence

from .models import CatalogueEntry, WorkspaceNode


def fingerprint(nodes: Sequence[WorkspaceNode]) -> str:
    """Stable content hash of an ordered node list."""
    payload = json.dumps([n.model_dump() for n in nodes], sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:16]


class Workspace:
    """Insertion-ordered workspace; node names are unique."""

    def __init__(self, nodes: Iterable[WorkspaceNode] = ()) -> None:
        self._nodes: list[WorkspaceNode] = []
        for node in nodes:
            self.add(node)

    def __iter__(self) -> Iterator[WorkspaceNode]:
        return iter(self._nodes)

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, name: object) -> bool:
        return any(n.name == name for n in self._nodes)

    @property
    def nodes(self) -> tuple[WorkspaceNode, ...]:
        return tuple(self._nodes)

    @property
    def names(self) -> list[str]:
        return [n.name for n in self._nodes]

    def add(self, item: WorkspaceNode | CatalogueEntry) -> bool:
        """Add a node; returns False (and changes nothing) for a duplicate name."""
        node = item.to_node() if isinstance(item, CatalogueEntry) else item
        if node.name in self:
            return False
        self._nodes.append(node)
        return True

    def remove(self, name: str) -> bool:
        before = len(self._nodes)
        self._nodes = [n for n in self._nodes if n.name != name]
        return len(self._nodes) != before

    def clear(self) -> None:
        self._nodes = []

    def fingerprint(self) -> str:
        return fingerprint(self._nodes)
