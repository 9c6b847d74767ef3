"""CDP Tree Provider — content-tree snapshots of a page over the DevTools Protocol.

``Accessibility.getFullAXTree`` returns a flat node list linked by
``childIds``. It is folded into a ``Snapshot`` so the matcher and the
dispatcher see the page the same way they would see any other window.
Element identifiers (``id`` / ``data-testid``) come from one
``DOM.getDocument`` call keyed by backend node id.
"""

from typing import Any, Dict, List, Optional, Sequence, Set
from urllib.parse import urlparse

from loguru import logger

from claimwatch.tree.snapshot import Snapshot, SnapshotElement

CLICKABLE_ROLES = {
    "button", "link", "menuitem", "menuitemcheckbox", "menuitemradio",
    "tab", "option", "checkbox", "radio", "switch",
}

# Text boxes repeat the text of their StaticText parent line by line.
SKIPPED_ROLES = {"InlineTextBox"}

CLICK_FUNCTION = "function() { this.click(); return true; }"


def _value(field: Optional[Dict[str, Any]]) -> Optional[str]:
    if not field:
        return None
    value = field.get("value")
    if value is None or value == "":
        return None
    return str(value)


def _properties(node: Dict[str, Any]) -> Dict[str, Any]:
    props = {}
    for prop in node.get("properties") or []:
        props[prop.get("name")] = (prop.get("value") or {}).get("value")
    return props


def collect_identifiers(
    document: Dict[str, Any],
    attributes: Sequence[str] = ("id", "data-testid"),
) -> Dict[int, str]:
    """Map backend node ids to the first identifier attribute they carry.

    Args:
        document: ``root`` of a ``DOM.getDocument`` result
        attributes: Attribute names to read, in order of preference
    """
    identifiers: Dict[int, str] = {}
    stack = [document] if document else []
    while stack:
        node = stack.pop()
        raw = node.get("attributes") or []
        attrs = dict(zip(raw[::2], raw[1::2]))
        for name in attributes:
            if attrs.get(name):
                identifiers[node["backendNodeId"]] = attrs[name]
                break
        stack.extend(node.get("children") or [])
        stack.extend(node.get("shadowRoots") or [])
        if node.get("contentDocument"):
            stack.append(node["contentDocument"])
    return identifiers


def build_elements(
    ax_nodes: List[Dict[str, Any]],
    identifiers: Optional[Dict[int, str]] = None,
) -> Optional[SnapshotElement]:
    """Fold a flat AX node list into a ``SnapshotElement`` tree.

    Ignored nodes are transparent: their children are attached to the
    nearest kept ancestor.
    """
    if not ax_nodes:
        return None
    identifiers = identifiers or {}
    by_id = {str(n["nodeId"]): n for n in ax_nodes}
    root_node = next((n for n in ax_nodes if not n.get("parentId")), ax_nodes[0])
    seen: Set[str] = set()

    def convert(node: Dict[str, Any]) -> List[SnapshotElement]:
        node_id = str(node["nodeId"])
        if node_id in seen:
            return []
        seen.add(node_id)

        children: List[SnapshotElement] = []
        for child_id in node.get("childIds") or []:
            child = by_id.get(str(child_id))
            if child is not None:
                children.extend(convert(child))

        role = _value(node.get("role"))
        if role in SKIPPED_ROLES:
            return []
        if node.get("ignored"):
            return children

        props = _properties(node)
        backend_id = node.get("backendDOMNodeId")
        element = SnapshotElement(
            uid=f"ax-{node_id}",
            text=_value(node.get("name")),
            content_description=_value(node.get("description")),
            identifier=identifiers.get(backend_id) if backend_id is not None else None,
            class_name=role,
            clickable=role in CLICKABLE_ROLES or bool(props.get("focusable")),
            enabled=not props.get("disabled"),
            backend_id=backend_id,
        )
        for child in children:
            element.add(child)
        return [element]

    top = convert(root_node)
    if len(top) == 1:
        return top[0]
    root = SnapshotElement(uid="ax-root", class_name="RootWebArea")
    for element in top:
        root.add(element)
    return root


class CDPTreeProvider:
    """Snapshot provider backed by a Playwright page's CDP session."""

    def __init__(self, page, id_attributes: Sequence[str] = ("id", "data-testid")):
        self.page = page
        self.id_attributes = tuple(id_attributes)
        self._cdp = None
        self.last_snapshot: Optional[Snapshot] = None

    async def get_cdp_session(self):
        """Create (or return cached) CDP session for the current page."""
        if self._cdp is None:
            self._cdp = await self.page.context.new_cdp_session(self.page)
            await self._cdp.send("DOM.enable")
            await self._cdp.send("Accessibility.enable")
        return self._cdp

    # ── Snapshot provider ────────────────────────────────────────────────

    def is_available(self) -> bool:
        """Whether the watched page is still there."""
        try:
            return self.page is not None and not self.page.is_closed()
        except Exception:
            return False

    @property
    def source_app(self) -> Optional[str]:
        """Hostname of the watched page, used as the event source identity."""
        try:
            return urlparse(self.page.url).hostname
        except Exception:
            return None

    async def current_root(self):
        """Snapshot the page and return a handle on its root (None if unavailable)."""
        if not self.is_available():
            return None
        try:
            snapshot = await self.snapshot()
        except Exception as exc:
            logger.warning(f"[CDPTreeProvider] Snapshot failed: {exc}")
            return None
        return snapshot.root()

    async def snapshot(self) -> Snapshot:
        """Fetch the accessibility tree and identifiers and build a ``Snapshot``."""
        cdp = await self.get_cdp_session()
        tree = await cdp.send("Accessibility.getFullAXTree")
        document = await cdp.send("DOM.getDocument", {"depth": -1, "pierce": True})
        identifiers = collect_identifiers(document.get("root") or {}, self.id_attributes)
        root = build_elements(tree.get("nodes") or [], identifiers)
        snapshot = Snapshot(root, activator=self._click, source_app=self.source_app)
        self.last_snapshot = snapshot
        logger.trace(
            f"[CDPTreeProvider] {len(tree.get('nodes') or [])} AX nodes, "
            f"{len(identifiers)} identified"
        )
        return snapshot

    # ── Activation ───────────────────────────────────────────────────────

    async def _click(self, element: SnapshotElement) -> bool:
        if element.backend_id is None:
            logger.warning(f"[CDPTreeProvider] {element.uid} has no DOM node to click")
            return False
        if not element.enabled:
            logger.info(f"[CDPTreeProvider] {element.uid} is disabled, not clicking")
            return False

        cdp = await self.get_cdp_session()
        resolved = await cdp.send("DOM.resolveNode", {"backendNodeId": element.backend_id})
        object_id = (resolved.get("object") or {}).get("objectId")
        if not object_id:
            logger.warning(f"[CDPTreeProvider] Could not resolve {element.uid}")
            return False
        try:
            result = await cdp.send(
                "Runtime.callFunctionOn",
                {
                    "objectId": object_id,
                    "functionDeclaration": CLICK_FUNCTION,
                    "returnByValue": True,
                },
            )
        finally:
            try:
                await cdp.send("Runtime.releaseObject", {"objectId": object_id})
            except Exception as exc:
                logger.debug(f"[CDPTreeProvider] releaseObject failed: {exc}")

        if result.get("exceptionDetails"):
            logger.warning(f"[CDPTreeProvider] Click threw: {result['exceptionDetails'].get('text')}")
            return False
        return bool((result.get("result") or {}).get("value"))

    # ── Cleanup ──────────────────────────────────────────────────────────

    async def close(self):
        """Detach the CDP session."""
        if self._cdp:
            try:
                await self._cdp.detach()
            except Exception as exc:
                logger.debug(f"[CDPTreeProvider] Detach failed: {exc}")
            self._cdp = None
