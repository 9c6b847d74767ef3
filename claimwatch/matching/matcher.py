"""Tree Matcher — multi-criteria matching over a content-tree snapshot.

Walks the tree depth-first (pre-order), extracts price / zone / start-time /
duration signals from node text and decides whether every active criterion
is satisfied at the same time.

Prices are not always rendered as one token: some layouts draw the currency
marker and the amount as two sibling views. The walk remembers a marker-only
node and glues it to the numeric node processed right after it.

Secondary signals rarely share a node with the price, so once a qualifying
price is found its siblings and its parent are inspected before the walk
moves on.
"""

import time
from dataclasses import dataclass, field
from typing import Dict, Hashable, List, Optional, Sequence, Set

from loguru import logger

from claimwatch.matching.criteria import Criteria, MatchFlags
from claimwatch.matching.extractors import SignalExtractor
from claimwatch.tree.handles import HandleScope
from claimwatch.tree.node import ContentNode, NodeInfo, node_key, read_node

_SOURCE_ORDER = ("price", "zone", "start_time", "duration")


@dataclass
class MatchState:
    """Ephemeral state of one pass."""

    price_found: bool = False
    zone_matched: bool = False
    start_time_matched: bool = False
    duration_matched: bool = False
    visited_node_ids: Set[Hashable] = field(default_factory=set)
    processed_texts: Set[str] = field(default_factory=set)
    pending_marker: Optional[Hashable] = None
    sources: Dict[str, ContentNode] = field(default_factory=dict)

    def satisfied(self, criteria: Criteria) -> bool:
        """Logical AND over the criteria that have a target."""
        return (
            (criteria.min_price is None or self.price_found)
            and (criteria.zone is None or self.zone_matched)
            and (criteria.min_start_hour is None or self.start_time_matched)
            and (criteria.max_duration_hours is None or self.duration_matched)
        )

    def flags(self) -> MatchFlags:
        return MatchFlags(
            price_found=self.price_found,
            zone_matched=self.zone_matched,
            start_time_matched=self.start_time_matched,
            duration_matched=self.duration_matched,
        )


@dataclass
class MatchResult:
    """Outcome of one pass."""

    satisfied: bool
    nodes: List[ContentNode] = field(default_factory=list)
    flags: MatchFlags = field(default_factory=MatchFlags)
    visited: int = 0
    elapsed_ms: float = 0.0

    @property
    def anchor(self) -> Optional[ContentNode]:
        """Node the claim search starts from (the price node when there is one)."""
        return self.nodes[0] if self.nodes else None

    def __bool__(self) -> bool:
        return self.satisfied


class TreeMatcher:
    """Match the active criteria against a content tree."""

    def __init__(
        self,
        extractor: Optional[SignalExtractor] = None,
        price_container_ids: Sequence[str] = (),
    ):
        self.extractor = extractor or SignalExtractor()
        self.price_container_ids = tuple(i.lower() for i in price_container_ids)

    @classmethod
    def from_settings(cls, settings) -> "TreeMatcher":
        return cls(
            SignalExtractor(settings.currency_marker, settings.zone_marker),
            price_container_ids=settings.price_container_ids,
        )

    # ── Public API ───────────────────────────────────────────────────────

    def match(
        self,
        root: Optional[ContentNode],
        criteria: Optional[Criteria],
        scope: Optional[HandleScope] = None,
    ) -> MatchResult:
        """Walk ``root`` and report whether ``criteria`` are all satisfied.

        Handles acquired during the walk are adopted by ``scope``. Pass the
        caller's scope to keep the returned nodes usable afterwards; without
        one, a private scope is used and released before returning.

        Args:
            root: Root handle of the snapshot (owned by the caller)
            criteria: Active criteria, None when no search is running
            scope: Handle scope of the current pass

        Returns:
            MatchResult with the satisfying nodes, price node first
        """
        if root is None or criteria is None:
            return MatchResult(satisfied=False)
        if criteria.is_empty():
            return MatchResult(satisfied=True, nodes=[root])

        own_scope = scope is None
        scope = scope or HandleScope("match")
        state = MatchState()
        started = time.perf_counter()
        try:
            satisfied = self._walk(root, criteria, state, scope)
        finally:
            if own_scope:
                scope.release_all()

        elapsed_ms = (time.perf_counter() - started) * 1000
        nodes = self._result_nodes(state)
        logger.debug(
            f"[TreeMatcher] Pass done in {elapsed_ms:.1f}ms: visited={len(state.visited_node_ids)} "
            f"satisfied={satisfied} flags={state.flags()}"
        )
        return MatchResult(
            satisfied=satisfied,
            nodes=nodes,
            flags=state.flags(),
            visited=len(state.visited_node_ids),
            elapsed_ms=elapsed_ms,
        )

    # ── Traversal ────────────────────────────────────────────────────────

    def _walk(
        self,
        root: ContentNode,
        criteria: Criteria,
        state: MatchState,
        scope: HandleScope,
    ) -> bool:
        stack: List[ContentNode] = [root]
        while stack:
            node = stack.pop()
            key = node_key(node)
            if key in state.visited_node_ids:
                continue
            state.visited_node_ids.add(key)

            info = read_node(node)
            if info is None:
                logger.debug(f"[TreeMatcher] Skipping vanished node {key}")
            else:
                try:
                    self._process(node, info, criteria, state, scope)
                except Exception as exc:
                    logger.warning(f"[TreeMatcher] Error processing node {key}: {exc}")
                if state.satisfied(criteria):
                    return True

            children = list(scope.children(node))
            stack.extend(reversed(children))
        return state.satisfied(criteria)

    def _process(
        self,
        node: ContentNode,
        info: NodeInfo,
        criteria: Criteria,
        state: MatchState,
        scope: HandleScope,
    ):
        if self.price_container_ids and info.identifier:
            ident = info.identifier.lower()
            if any(hint in ident for hint in self.price_container_ids):
                logger.debug(f"[TreeMatcher] Price container: {info.describe()}")

        pending, state.pending_marker = state.pending_marker, None
        text = (info.text or "").strip()
        if not text:
            return

        extractor = self.extractor
        if extractor.is_marker_only(text):
            logger.debug(f"[TreeMatcher] Currency marker node {info.key}")
            state.pending_marker = info.key
            return

        candidate = text
        if pending is not None and extractor.is_numeric_fragment(text):
            candidate = extractor.combine(text)
            logger.debug(f"[TreeMatcher] Combined split price: {candidate}")

        if candidate in state.processed_texts:
            return
        state.processed_texts.add(candidate)

        self._check_price(node, info, candidate, criteria, state, scope)
        self._check_secondary(node, candidate, criteria, state)

    # ── Signals ──────────────────────────────────────────────────────────

    def _check_price(
        self,
        node: ContentNode,
        info: NodeInfo,
        text: str,
        criteria: Criteria,
        state: MatchState,
        scope: HandleScope,
    ):
        if criteria.min_price is None or state.price_found:
            return
        price = self.extractor.price(text)
        if price is None:
            return
        if not price.satisfies(criteria.min_price):
            logger.debug(
                f"[TreeMatcher] Price {price.text} below target "
                f"({price.lower:g} < {criteria.min_price})"
            )
            return

        logger.info(
            f"[TreeMatcher] Price match {price.text} (lower bound {price.lower:g} >= "
            f"{criteria.min_price}) at {info.describe()}"
        )
        state.price_found = True
        state.sources["price"] = node
        if not state.satisfied(criteria):
            self._inspect_neighbourhood(node, criteria, state, scope)

    def _check_secondary(
        self,
        node: ContentNode,
        text: str,
        criteria: Criteria,
        state: MatchState,
    ):
        extractor = self.extractor

        if criteria.zone is not None and not state.zone_matched:
            zone = extractor.zone(text)
            if zone is not None:
                if zone == criteria.zone:
                    logger.info(f"[TreeMatcher] Zone match: {text!r}")
                    state.zone_matched = True
                    state.sources["zone"] = node
                else:
                    logger.debug(f"[TreeMatcher] Zone {zone} != {criteria.zone}")

        if criteria.min_start_hour is not None and not state.start_time_matched:
            hour = extractor.start_hour(text)
            if hour is not None and hour >= criteria.min_start_hour:
                logger.info(f"[TreeMatcher] Start time match: {text!r} (hour {hour})")
                state.start_time_matched = True
                state.sources["start_time"] = node

        if criteria.max_duration_hours is not None and not state.duration_matched:
            hours = extractor.duration_hours(text)
            if hours is not None and hours <= criteria.max_duration_hours:
                logger.info(f"[TreeMatcher] Duration match: {text!r} ({hours}h)")
                state.duration_matched = True
                state.sources["duration"] = node

    def _inspect_neighbourhood(
        self,
        node: ContentNode,
        criteria: Criteria,
        state: MatchState,
        scope: HandleScope,
    ):
        """Look one level outward from a price node: its siblings, then its parent."""
        parent = scope.parent(node)
        if parent is None:
            return
        for neighbour in scope.siblings(node, parent) + [parent]:
            info = read_node(neighbour)
            if info is None or not info.text:
                continue
            text = info.text.strip()
            if text in state.processed_texts:
                continue
            self._check_secondary(neighbour, text, criteria, state)
            if state.satisfied(criteria):
                return

    @staticmethod
    def _result_nodes(state: MatchState) -> List[ContentNode]:
        nodes: List[ContentNode] = []
        seen: Set[Hashable] = set()
        for name in _SOURCE_ORDER:
            node = state.sources.get(name)
            if node is None:
                continue
            key = node_key(node)
            if key not in seen:
                seen.add(key)
                nodes.append(node)
        return nodes
