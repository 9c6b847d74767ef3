"""Scoped ownership of platform node handles.

Every handle obtained during a pass is adopted by one ``HandleScope`` and
released exactly once when the scope closes, whether the pass finished,
short-circuited on a match, or raised.
"""

from typing import Iterator, List, Optional, Set

from loguru import logger

from claimwatch.tree.node import ContentNode, child_at, child_count_of, node_key, parent_of


class HandleScope:
    """Own the node handles acquired during one pass."""

    def __init__(self, label: str = "pass"):
        self.label = label
        self._handles: List[ContentNode] = []
        self._adopted: Set[int] = set()
        self._closed = False

    # ── Acquisition ──────────────────────────────────────────────────────

    def adopt(self, node: Optional[ContentNode]) -> Optional[ContentNode]:
        """Take ownership of ``node`` and hand it back (None passes through)."""
        if node is None:
            return None
        if id(node) in self._adopted:
            return node
        if self._closed:
            logger.warning(f"[HandleScope] {self.label}: handle adopted after close, releasing now")
            self._release_one(node)
            return None
        self._adopted.add(id(node))
        self._handles.append(node)
        return node

    def child(self, node: ContentNode, index: int) -> Optional[ContentNode]:
        return self.adopt(child_at(node, index))

    def parent(self, node: ContentNode) -> Optional[ContentNode]:
        return self.adopt(parent_of(node))

    def children(self, node: ContentNode) -> Iterator[ContentNode]:
        """Yield live children in order; null and vanished children are skipped."""
        for index in range(child_count_of(node)):
            child = self.child(node, index)
            if child is not None:
                yield child

    def siblings(self, node: ContentNode, parent: ContentNode) -> List[ContentNode]:
        """Children of ``parent`` other than ``node``."""
        own = node_key(node)
        return [c for c in self.children(parent) if node_key(c) != own]

    # ── Release ──────────────────────────────────────────────────────────

    @property
    def open_count(self) -> int:
        return len(self._handles)

    @property
    def closed(self) -> bool:
        return self._closed

    def release_all(self) -> int:
        """Release every adopted handle, newest first. Idempotent."""
        released = 0
        while self._handles:
            if self._release_one(self._handles.pop()):
                released += 1
        self._adopted.clear()
        self._closed = True
        return released

    def _release_one(self, node: ContentNode) -> bool:
        try:
            node.release()
            return True
        except Exception as exc:
            logger.debug(f"[HandleScope] {self.label}: release failed: {exc}")
            return False

    # ── Context managers ─────────────────────────────────────────────────

    def __enter__(self) -> "HandleScope":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release_all()

    async def __aenter__(self) -> "HandleScope":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.release_all()
