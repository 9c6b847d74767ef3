"""Content-tree node protocol and null-safe accessors.

Platform node handles are flaky: an element can disappear between two
attribute reads while the host UI keeps mutating. Every accessor here turns a
platform failure into ``None`` so traversal code can treat "node gone" as an
ordinary outcome.
"""

from dataclasses import dataclass
from typing import Any, Hashable, Optional, Protocol, Tuple, runtime_checkable

from loguru import logger

Bounds = Tuple[int, int, int, int]


@runtime_checkable
class ContentNode(Protocol):
    """A handle to one element of a point-in-time content tree.

    Handles are owned by the platform and must be released exactly once.
    """

    @property
    def node_id(self) -> Hashable: ...

    @property
    def text(self) -> Optional[str]: ...

    @property
    def content_description(self) -> Optional[str]: ...

    @property
    def identifier(self) -> Optional[str]: ...

    @property
    def class_name(self) -> Optional[str]: ...

    @property
    def clickable(self) -> bool: ...

    @property
    def enabled(self) -> bool: ...

    @property
    def bounds(self) -> Optional[Bounds]: ...

    @property
    def child_count(self) -> int: ...

    def get_child(self, index: int) -> Optional["ContentNode"]: ...

    def get_parent(self) -> Optional["ContentNode"]: ...

    async def perform_click(self) -> bool: ...

    def release(self) -> None: ...


@dataclass(frozen=True)
class NodeInfo:
    """Attributes of a node read in one go."""

    key: Hashable
    text: Optional[str] = None
    content_description: Optional[str] = None
    identifier: Optional[str] = None
    class_name: Optional[str] = None
    clickable: bool = False
    enabled: bool = True
    bounds: Optional[Bounds] = None
    child_count: int = 0

    def describe(self) -> str:
        """One-line summary used when logging matched nodes."""
        return (
            f"text={self.text!r} class={self.class_name or '-'} "
            f"id={self.identifier or 'no-id'} clickable={self.clickable} "
            f"enabled={self.enabled} bounds={self.bounds}"
        )


def node_key(node: Any) -> Hashable:
    """Identity used to deduplicate nodes within one pass."""
    try:
        key = node.node_id
    except Exception:
        key = None
    return key if key is not None else ("obj", id(node))


def read_node(node: Optional[ContentNode]) -> Optional[NodeInfo]:
    """Read every attribute the engine consumes, or None if the node is gone."""
    if node is None:
        return None
    try:
        return NodeInfo(
            key=node_key(node),
            text=_opt_str(node.text),
            content_description=_opt_str(node.content_description),
            identifier=_opt_str(node.identifier),
            class_name=_opt_str(node.class_name),
            clickable=bool(node.clickable),
            enabled=bool(node.enabled),
            bounds=node.bounds,
            child_count=max(0, int(node.child_count)),
        )
    except Exception as exc:
        logger.debug(f"[NodeAccessor] Node unreadable, treating as gone: {exc}")
        return None


def child_at(node: ContentNode, index: int) -> Optional[ContentNode]:
    """Return the child handle at ``index`` or None (null child or vanished)."""
    try:
        return node.get_child(index)
    except Exception as exc:
        logger.debug(f"[NodeAccessor] Child {index} unavailable: {exc}")
        return None


def parent_of(node: ContentNode) -> Optional[ContentNode]:
    """Return the parent handle or None."""
    try:
        return node.get_parent()
    except Exception as exc:
        logger.debug(f"[NodeAccessor] Parent unavailable: {exc}")
        return None


def child_count_of(node: ContentNode) -> int:
    try:
        return max(0, int(node.child_count))
    except Exception:
        return 0


def _opt_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value)
    return text if text != "" else None
