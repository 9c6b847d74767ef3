"""Event Gate — debounces content-change events and runs one pass per accepted event.

A pass is: snapshot the tree, match the active criteria, and on a match press
the claim control. Rejected events are dropped, never queued, so at most one
pass is in flight at any time.
"""

import inspect
from typing import Any, Callable, Optional, Protocol

from loguru import logger

from claimwatch.agent.action_dispatcher import ActionDispatcher
from claimwatch.matching.criteria import Criteria, CriteriaStore
from claimwatch.matching.matcher import MatchResult, TreeMatcher
from claimwatch.observability.tracing import record_claim, record_pass, record_rejected, timed_pass
from claimwatch.tree.handles import HandleScope
from claimwatch.tree.node import ContentNode


class SnapshotProvider(Protocol):
    """Source of content-tree snapshots (the watching capability)."""

    async def current_root(self) -> Optional[ContentNode]: ...

    def is_available(self) -> bool: ...


ClaimedCallback = Callable[[Criteria], Any]


class EventGate:
    """Gate between the content-change stream and the matcher."""

    def __init__(
        self,
        provider: SnapshotProvider,
        matcher: TreeMatcher,
        dispatcher: ActionDispatcher,
        store: CriteriaStore,
        min_interval_ms: float = 500,
        target_app: Optional[str] = None,
        restrict_to_target_app: bool = False,
        on_claimed: Optional[ClaimedCallback] = None,
    ):
        """Initialise the gate.

        Args:
            provider: Snapshot provider for the watched window
            matcher: TreeMatcher used for every pass
            dispatcher: ActionDispatcher used after a match
            store: Shared criteria store
            min_interval_ms: Minimum spacing between accepted events
            target_app: Source app identity used when restricting
            restrict_to_target_app: Drop events from any other source app
            on_claimed: Called with the satisfied criteria after a claim
        """
        self.provider = provider
        self.matcher = matcher
        self.dispatcher = dispatcher
        self.store = store
        self.min_interval_ms = min_interval_ms
        self.target_app = target_app
        self._restrict = restrict_to_target_app
        self.on_claimed = on_claimed
        self._last_accepted_ms: Optional[float] = None
        self._busy = False
        self.passes = 0
        self.last_result: Optional[MatchResult] = None

    @classmethod
    def from_settings(
        cls,
        settings,
        provider: SnapshotProvider,
        matcher: TreeMatcher,
        dispatcher: ActionDispatcher,
        store: CriteriaStore,
        restrict_to_target_app: Optional[bool] = None,
    ) -> "EventGate":
        if restrict_to_target_app is None:
            restrict_to_target_app = settings.restrict_to_target_app
        return cls(
            provider,
            matcher,
            dispatcher,
            store,
            min_interval_ms=settings.debounce_ms,
            target_app=settings.target_app,
            restrict_to_target_app=restrict_to_target_app,
        )

    # ── Source-app restriction ───────────────────────────────────────────

    @property
    def restrict_to_target_app(self) -> bool:
        return self._restrict

    @restrict_to_target_app.setter
    def restrict_to_target_app(self, enabled: bool):
        self._restrict = bool(enabled)
        logger.info(
            f"[EventGate] Only {self.target_app or '<unset>'}: "
            f"{'ENABLED' if self._restrict else 'DISABLED'}"
        )

    @property
    def last_accepted_ms(self) -> Optional[float]:
        return self._last_accepted_ms

    @property
    def busy(self) -> bool:
        return self._busy

    # ── Events ───────────────────────────────────────────────────────────

    async def accept(self, event_timestamp_ms: float, source_app: Optional[str]) -> bool:
        """Offer one content-change event to the gate.

        Args:
            event_timestamp_ms: Event time in milliseconds (monotonic)
            source_app: Identity of the app that produced the event

        Returns:
            True if the event was accepted, False if it was dropped
        """
        if self._restrict and source_app != self.target_app:
            logger.trace(f"[EventGate] Ignoring event from {source_app}")
            record_rejected("foreign_app")
            return False

        last = self._last_accepted_ms
        if last is not None and event_timestamp_ms - last < self.min_interval_ms:
            record_rejected("debounce")
            return False

        if self._busy:
            record_rejected("busy")
            return False

        self._last_accepted_ms = event_timestamp_ms
        self._busy = True
        try:
            await self._run_pass(source_app)
        finally:
            self._busy = False
        return True

    async def _run_pass(self, source_app: Optional[str]):
        view = self.store.snapshot()
        if view.criteria is None:
            return

        self.passes += 1
        satisfied: Optional[Criteria] = None
        with timed_pass():
            try:
                async with HandleScope("pass") as scope:
                    root = scope.adopt(await self.provider.current_root())
                    if root is None:
                        logger.debug("[EventGate] No active window")
                        record_pass("no_match")
                        return

                    result = self.matcher.match(root, view.criteria, scope)
                    self.last_result = result
                    self.store.record_flags(view.generation, result.flags)
                    if not result.satisfied:
                        record_pass("no_match")
                        return

                    if not self.store.is_current(view.generation):
                        logger.info("[EventGate] Criteria changed during pass, not claiming")
                        record_pass("stale")
                        return

                    logger.info(
                        f"[EventGate] All criteria satisfied ({view.criteria.summary()}) "
                        f"in {source_app or 'unknown app'}"
                    )
                    clicked = await self.dispatcher.activate_near(result.anchor, scope)
                    record_claim(clicked)
                    if not clicked:
                        logger.info("[EventGate] No action taken this pass")
                        record_pass("match")
                        return

                    satisfied = self.store.complete(view.generation)
                    if satisfied is None:
                        logger.info("[EventGate] Search ended while claiming, result discarded")
                        record_pass("stale")
                        return
                    record_pass("claimed")
            except Exception:
                logger.exception("[EventGate] Pass failed, treating as no match")
                record_pass("error")
                return

        await self._notify_claimed(satisfied)

    async def _notify_claimed(self, criteria: Criteria):
        if self.on_claimed is None:
            return
        try:
            outcome = self.on_claimed(criteria)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as exc:
            logger.error(f"[EventGate] Claimed callback failed: {exc}")
