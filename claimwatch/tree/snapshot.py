"""In-memory content-tree snapshots with platform-style handle semantics.

A ``Snapshot`` owns a tree of ``SnapshotElement`` objects. Reading it goes
through ``SnapshotNode`` handles which behave like the handles a real
introspection API hands out:

- every ``get_child`` / ``get_parent`` call returns a *fresh* handle
- a handle must be released exactly once; double release raises
- elements can vanish, after which reading any attribute raises
- children may be null, and one element may be exposed more than once

The CDP backend builds its snapshots with this module, and so do the tests.
"""

import itertools
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Optional, Set, Tuple

from loguru import logger

Bounds = Tuple[int, int, int, int]
Activator = Callable[["SnapshotElement"], Awaitable[bool]]


class NodeVanishedError(RuntimeError):
    """The element behind a handle is no longer on screen."""


class HandleReleasedError(RuntimeError):
    """A handle was used or released after it had already been released."""


@dataclass(eq=False)
class SnapshotElement:
    """One element of a snapshot tree."""

    uid: str
    text: Optional[str] = None
    content_description: Optional[str] = None
    identifier: Optional[str] = None
    class_name: Optional[str] = None
    clickable: bool = False
    enabled: bool = True
    bounds: Optional[Bounds] = None
    children: List[Optional["SnapshotElement"]] = field(default_factory=list)
    parent: Optional["SnapshotElement"] = field(default=None, repr=False)
    vanished: bool = False
    backend_id: Optional[int] = None
    clicks: int = 0

    def add(self, child: Optional["SnapshotElement"]) -> Optional["SnapshotElement"]:
        """Append ``child``; the first parent an element is added to wins."""
        self.children.append(child)
        if child is not None and child.parent is None:
            child.parent = self
        return child


class SnapshotNode:
    """Handle onto a ``SnapshotElement``."""

    __slots__ = ("_snapshot", "_element", "_released")

    def __init__(self, snapshot: "Snapshot", element: SnapshotElement):
        self._snapshot = snapshot
        self._element = element
        self._released = False

    def _live(self) -> SnapshotElement:
        if self._released:
            raise HandleReleasedError(f"handle for {self._element.uid} already released")
        if self._element.vanished:
            raise NodeVanishedError(f"element {self._element.uid} vanished")
        return self._element

    @property
    def node_id(self) -> str:
        return self._element.uid

    @property
    def element(self) -> SnapshotElement:
        return self._element

    @property
    def released(self) -> bool:
        return self._released

    @property
    def text(self) -> Optional[str]:
        return self._live().text

    @property
    def content_description(self) -> Optional[str]:
        return self._live().content_description

    @property
    def identifier(self) -> Optional[str]:
        return self._live().identifier

    @property
    def class_name(self) -> Optional[str]:
        return self._live().class_name

    @property
    def clickable(self) -> bool:
        return self._live().clickable

    @property
    def enabled(self) -> bool:
        return self._live().enabled

    @property
    def bounds(self) -> Optional[Bounds]:
        return self._live().bounds

    @property
    def child_count(self) -> int:
        return len(self._live().children)

    def get_child(self, index: int) -> Optional["SnapshotNode"]:
        child = self._live().children[index]
        if child is None:
            return None
        return self._snapshot._acquire(child)

    def get_parent(self) -> Optional["SnapshotNode"]:
        parent = self._live().parent
        if parent is None:
            return None
        return self._snapshot._acquire(parent)

    async def perform_click(self) -> bool:
        return await self._snapshot.activate(self._live())

    def release(self) -> None:
        if self._released:
            raise HandleReleasedError(f"handle for {self._element.uid} released twice")
        self._released = True
        self._snapshot._release(self)

    def __repr__(self) -> str:
        state = "released" if self._released else "open"
        return f"SnapshotNode({self._element.uid!r}, {state})"


class Snapshot:
    """A point-in-time content tree plus bookkeeping of open handles."""

    def __init__(
        self,
        root: Optional[SnapshotElement],
        activator: Optional[Activator] = None,
        source_app: Optional[str] = None,
    ):
        self._root = root
        self._activator = activator
        self.source_app = source_app
        self._open: Set[int] = set()
        self.acquired_total = 0

    # ── Handles ──────────────────────────────────────────────────────────

    def root(self) -> Optional[SnapshotNode]:
        """Acquire a handle on the root element (None for an empty window)."""
        if self._root is None:
            return None
        return self._acquire(self._root)

    def handle(self, uid: str) -> Optional[SnapshotNode]:
        """Acquire a handle on the element with ``uid``."""
        element = self.find(uid)
        if element is None:
            return None
        return self._acquire(element)

    def _acquire(self, element: SnapshotElement) -> SnapshotNode:
        handle = SnapshotNode(self, element)
        self._open.add(id(handle))
        self.acquired_total += 1
        return handle

    def _release(self, handle: SnapshotNode) -> None:
        self._open.discard(id(handle))

    @property
    def open_handles(self) -> int:
        """Handles acquired and not yet released."""
        return len(self._open)

    # ── Elements ─────────────────────────────────────────────────────────

    @property
    def root_element(self) -> Optional[SnapshotElement]:
        return self._root

    def elements(self) -> Iterator[SnapshotElement]:
        """Each distinct element once, pre-order."""
        seen: Set[int] = set()
        stack = [self._root] if self._root is not None else []
        while stack:
            element = stack.pop()
            if id(element) in seen:
                continue
            seen.add(id(element))
            yield element
            stack.extend(c for c in reversed(element.children) if c is not None)

    def find(self, uid: str) -> Optional[SnapshotElement]:
        return next((e for e in self.elements() if e.uid == uid), None)

    async def activate(self, element: SnapshotElement) -> bool:
        """Activate ``element`` through the backend (or locally when there is none)."""
        element.clicks += 1
        if self._activator is None:
            return element.clickable and element.enabled
        return await self._activator(element)

    # ── (De)serialisation ────────────────────────────────────────────────

    def to_dict(self) -> Optional[Dict[str, Any]]:
        """Dump the tree; repeated elements become ``{"ref": uid}``."""
        if self._root is None:
            return None
        seen: Set[int] = set()

        def dump(element: Optional[SnapshotElement]) -> Optional[Dict[str, Any]]:
            if element is None:
                return None
            if id(element) in seen:
                return {"ref": element.uid}
            seen.add(id(element))
            data: Dict[str, Any] = {"id": element.uid}
            for key in ("text", "content_description", "identifier", "class_name", "bounds"):
                value = getattr(element, key)
                if value is not None:
                    data[key] = list(value) if key == "bounds" else value
            if element.clickable:
                data["clickable"] = True
            if not element.enabled:
                data["enabled"] = False
            if element.children:
                data["children"] = [dump(c) for c in element.children]
            return data

        return dump(self._root)


_FIELD_ALIASES = {
    "description": "content_description",
    "content_description": "content_description",
    "resource_id": "identifier",
    "identifier": "identifier",
    "class": "class_name",
    "class_name": "class_name",
    "role": "class_name",
}


def build_snapshot(
    data: Optional[Dict[str, Any]],
    activator: Optional[Activator] = None,
    source_app: Optional[str] = None,
) -> Snapshot:
    """Build a ``Snapshot`` from nested dicts.

    Recognised keys: ``id``, ``text``, ``description``, ``identifier`` (or
    ``resource_id``), ``class`` (or ``role``), ``clickable``, ``enabled``,
    ``bounds``, ``vanished`` and ``children``. A child may be ``None`` (a null
    child) or ``{"ref": "<id>"}`` to expose an existing element again, which
    is how duplicated nodes and cycles are described.
    """
    if data is None:
        return Snapshot(None, activator=activator, source_app=source_app)

    counter = itertools.count()
    by_uid: Dict[str, SnapshotElement] = {}
    pending: List[Tuple[SnapshotElement, int, str]] = []

    def make(node: Dict[str, Any]) -> SnapshotElement:
        uid = str(node.get("id") or f"n{next(counter)}")
        kwargs: Dict[str, Any] = {}
        for key, target in _FIELD_ALIASES.items():
            if key in node and node[key] is not None:
                kwargs[target] = node[key]
        element = SnapshotElement(
            uid=uid,
            text=node.get("text"),
            clickable=bool(node.get("clickable", False)),
            enabled=bool(node.get("enabled", True)),
            bounds=tuple(node["bounds"]) if node.get("bounds") else None,
            vanished=bool(node.get("vanished", False)),
            **kwargs,
        )
        by_uid[uid] = element
        for child in node.get("children") or []:
            if child is None:
                element.add(None)
            elif "ref" in child:
                element.children.append(None)
                pending.append((element, len(element.children) - 1, str(child["ref"])))
            else:
                element.add(make(child))
        return element

    root = make(data)
    for owner, index, ref in pending:
        target = by_uid.get(ref)
        if target is None:
            logger.warning(f"[Snapshot] Unknown ref '{ref}' left as null child")
            continue
        owner.children[index] = target
    return Snapshot(root, activator=activator, source_app=source_app)
