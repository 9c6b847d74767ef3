"""Action Dispatcher — finds the claim control near a match and activates it.

The search is bounded on purpose: first the subtree of the matched node,
then the subtrees of at most ``max_ancestor_levels`` ancestors, with a shared
node budget across the whole search. Subtrees already searched are not
searched again when the search widens to an ancestor.
"""

import time
from collections import deque
from dataclasses import dataclass, field
from typing import Hashable, Optional, Set

from loguru import logger

from claimwatch.tree.handles import HandleScope
from claimwatch.tree.node import ContentNode, NodeInfo, node_key, read_node


@dataclass
class ClaimAttempt:
    """What happened during the last ``activate_near`` call."""

    success: bool
    observation: str
    found: bool = False
    level: Optional[int] = None
    search_ms: float = 0.0
    click_ms: float = 0.0
    error: Optional[str] = None


@dataclass
class _SearchBudget:
    remaining: int
    searched: Set[Hashable] = field(default_factory=set)


class ActionDispatcher:
    """Locate and press the claim control closest to a matched node."""

    def __init__(
        self,
        claim_label: str = "Claim",
        claim_id_suffix: str = "claim-offer-button",
        max_ancestor_levels: int = 3,
        max_search_nodes: int = 400,
    ):
        """Initialise the dispatcher.

        Args:
            claim_label: Exact text or accessible description of the control
            claim_id_suffix: Identifier suffix of the control
            max_ancestor_levels: How many ancestors the search may widen to
            max_search_nodes: Node budget shared by the whole search
        """
        self.claim_label = claim_label
        self.claim_id_suffix = claim_id_suffix
        self.max_ancestor_levels = max_ancestor_levels
        self.max_search_nodes = max_search_nodes
        self.last_attempt: Optional[ClaimAttempt] = None
        self._found_level: Optional[int] = None

    @classmethod
    def from_settings(cls, settings) -> "ActionDispatcher":
        return cls(
            claim_label=settings.claim_label,
            claim_id_suffix=settings.claim_id_suffix,
            max_ancestor_levels=settings.max_ancestor_levels,
            max_search_nodes=settings.max_claim_search_nodes,
        )

    # ── Identification ───────────────────────────────────────────────────

    def carries_claim_label(self, info: NodeInfo) -> bool:
        if info.text is not None and info.text.strip() == self.claim_label:
            return True
        if info.content_description is not None and info.content_description.strip() == self.claim_label:
            return True
        return bool(
            self.claim_id_suffix
            and info.identifier is not None
            and info.identifier.endswith(self.claim_id_suffix)
        )

    def is_claim_control(self, info: NodeInfo) -> bool:
        return info.clickable and self.carries_claim_label(info)

    # ── Search ───────────────────────────────────────────────────────────

    def find_claim(self, node: ContentNode, scope: HandleScope) -> Optional[ContentNode]:
        """Return the claim control near ``node`` or None."""
        budget = _SearchBudget(remaining=self.max_search_nodes)
        found = self._search_subtree(node, scope, budget)
        if found is not None:
            self._found_level = 0
            return found

        current = node
        for level in range(1, self.max_ancestor_levels + 1):
            if budget.remaining <= 0:
                break
            parent = scope.parent(current)
            if parent is None:
                break
            found = self._search_subtree(parent, scope, budget)
            if found is not None:
                logger.debug(f"[ActionDispatcher] Claim control found {level} level(s) up")
                self._found_level = level
                return found
            current = parent
        return None

    def _search_subtree(
        self,
        start: ContentNode,
        scope: HandleScope,
        budget: _SearchBudget,
    ) -> Optional[ContentNode]:
        queue = deque([start])
        while queue and budget.remaining > 0:
            current = queue.popleft()
            key = node_key(current)
            if key in budget.searched:
                continue
            budget.searched.add(key)
            budget.remaining -= 1

            info = read_node(current)
            if info is None:
                continue
            if self.is_claim_control(info):
                logger.debug(f"[ActionDispatcher] Claim control: {info.describe()}")
                return current
            queue.extend(scope.children(current))
        return None

    # ── Activation ───────────────────────────────────────────────────────

    async def activate_near(
        self,
        node: Optional[ContentNode],
        scope: Optional[HandleScope] = None,
    ) -> bool:
        """Find the claim control near ``node`` and press it once.

        Args:
            node: Matched node to search around
            scope: Handle scope of the current pass (a private one otherwise)

        Returns:
            True if the control was found and the activation succeeded
        """
        own_scope = scope is None
        scope = scope or HandleScope("claim")
        started = time.perf_counter()
        self._found_level = None
        try:
            if node is None:
                self.last_attempt = ClaimAttempt(success=False, observation="No node to search around")
                return False

            target = self.find_claim(node, scope)
            found_at = time.perf_counter()
            search_ms = (found_at - started) * 1000
            if target is None:
                logger.info(f"[ActionDispatcher] No claim control near match ({search_ms:.1f}ms)")
                self.last_attempt = ClaimAttempt(
                    success=False,
                    observation="No claim control found",
                    search_ms=search_ms,
                )
                return False

            error = None
            try:
                clicked = bool(await target.perform_click())
            except Exception as exc:
                logger.error(f"[ActionDispatcher] Activation failed: {exc}")
                clicked, error = False, str(exc)

            click_ms = (time.perf_counter() - found_at) * 1000
            logger.info(
                f"[ActionDispatcher] Claim {'pressed' if clicked else 'rejected'} "
                f"(search {search_ms:.1f}ms, click {click_ms:.1f}ms, "
                f"total {search_ms + click_ms:.1f}ms)"
            )
            self.last_attempt = ClaimAttempt(
                success=clicked,
                observation="Claim pressed" if clicked else "Claim activation rejected",
                found=True,
                level=self._found_level,
                search_ms=search_ms,
                click_ms=click_ms,
                error=error,
            )
            return clicked
        finally:
            if own_scope:
                scope.release_all()
