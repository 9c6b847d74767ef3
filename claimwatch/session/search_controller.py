"""Search Controller — lifecycle of one search.

``Idle -> Searching -> (Found | Cancelled | ServiceUnavailable) -> Idle``

While searching, a poll task wakes up every ``poll_interval`` seconds to check
whether the watching capability is still available and whether the event
gate has claimed a match. Every terminal transition clears the criteria
store before anything else happens, so no later event can act on stale
targets.
"""

import asyncio
import inspect
from enum import Enum
from typing import Any, Callable, Optional, Set

from loguru import logger

from claimwatch.matching.criteria import Criteria, CriteriaStore
from claimwatch.notifications.status import StatusNotifier
from claimwatch.observability.tracing import record_search
from claimwatch.session.event_gate import EventGate
from claimwatch.utils.preferences import PreferenceStore


class SearchState(str, Enum):
    IDLE = "idle"
    SEARCHING = "searching"
    FOUND = "found"
    CANCELLED = "cancelled"
    SERVICE_UNAVAILABLE = "service_unavailable"


CANCELLED_REASON = "The search was cancelled"
UNAVAILABLE_REASON = "Accessibility service is disabled. Please enable it to keep searching."
ERROR_REASON = "The search was interrupted"


class SearchInProgressError(RuntimeError):
    """Raised when a search is started while another one is running."""


CompletionCallback = Callable[[SearchState], Any]


class SearchController:
    """Start, watch and stop searches."""

    def __init__(
        self,
        store: CriteriaStore,
        gate: EventGate,
        notifier: StatusNotifier,
        capability: Callable[[], bool],
        poll_interval: float = 1.0,
        preferences: Optional[PreferenceStore] = None,
        on_complete: Optional[CompletionCallback] = None,
    ):
        """Initialise the controller.

        Args:
            store: Shared criteria store
            gate: Event gate whose claims end a search
            notifier: Status surface for start/success/interruption reports
            capability: Returns False once the watching capability is gone
            poll_interval: Seconds between liveness polls
            preferences: Where the source-app restriction flag is persisted
            on_complete: Called once per search with its terminal state
        """
        self.store = store
        self.gate = gate
        self.notifier = notifier
        self.capability = capability
        self.poll_interval = poll_interval
        self.preferences = preferences
        self.on_complete = on_complete

        self._state = SearchState.IDLE
        self._outcome: Optional[SearchState] = None
        self._criteria: Optional[Criteria] = None
        self._task: Optional[asyncio.Task] = None
        self._done: Optional[asyncio.Future] = None
        self._callbacks: Set[asyncio.Task] = set()

        gate.on_claimed = self._on_claimed

    # ── State ────────────────────────────────────────────────────────────

    @property
    def state(self) -> SearchState:
        return self._state

    @property
    def outcome(self) -> Optional[SearchState]:
        """Terminal state of the most recent search."""
        return self._outcome

    @property
    def criteria(self) -> Optional[Criteria]:
        """Criteria of the running search."""
        return self._criteria

    @property
    def is_searching(self) -> bool:
        return self._state is SearchState.SEARCHING

    # ── Commands ─────────────────────────────────────────────────────────

    def start(self, criteria: Criteria):
        """Publish ``criteria`` and start polling. Needs a running event loop."""
        if self._state is SearchState.SEARCHING:
            raise SearchInProgressError("A search is already running")

        loop = asyncio.get_running_loop()
        self._criteria = criteria
        self._outcome = None
        self._done = loop.create_future()
        self.store.set(criteria)
        self._state = SearchState.SEARCHING
        logger.info(f"[SearchController] Search started: {criteria.summary()}")
        self.notifier.search_started(criteria)
        self._task = asyncio.create_task(self._poll_loop())

    def cancel(self) -> bool:
        """Stop the running search. Returns False when nothing was running."""
        if self._state is not SearchState.SEARCHING:
            return False
        self._finish(SearchState.CANCELLED, CANCELLED_REASON)
        return True

    async def wait(self) -> SearchState:
        """Wait for the running (or last) search to reach its terminal state."""
        if self._done is None:
            return self._outcome or SearchState.IDLE
        return await asyncio.shield(self._done)

    def set_restrict_to_target_app(self, enabled: bool):
        """Toggle the source-app restriction and persist it."""
        self.gate.restrict_to_target_app = enabled
        if self.preferences is not None:
            self.preferences.set_restrict_to_target_app(enabled)

    async def shutdown(self):
        """Cancel any running search and wait for the poll task and completion callbacks."""
        task = self._task
        self.cancel()
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass
        if self._callbacks:
            await asyncio.gather(*self._callbacks, return_exceptions=True)

    # ── Internals ────────────────────────────────────────────────────────

    def _on_claimed(self, criteria: Criteria):
        if self._state is SearchState.SEARCHING:
            self._finish(SearchState.FOUND, criteria=criteria)

    def _capability_available(self) -> bool:
        try:
            return bool(self.capability())
        except Exception as exc:
            logger.warning(f"[SearchController] Capability check failed: {exc}")
            return False

    async def _poll_loop(self):
        """Background loop: liveness and completion checks at the poll interval."""
        try:
            while self._state is SearchState.SEARCHING:
                await asyncio.sleep(self.poll_interval)
                if self._state is not SearchState.SEARCHING:
                    break
                if not self._capability_available():
                    self._finish(SearchState.SERVICE_UNAVAILABLE, UNAVAILABLE_REASON)
                    break
                if self.store.claimed:
                    self._finish(SearchState.FOUND)
                    break
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception("[SearchController] Poll loop failed")
            self._finish(SearchState.CANCELLED, ERROR_REASON)

    def _finish(
        self,
        state: SearchState,
        reason: Optional[str] = None,
        criteria: Optional[Criteria] = None,
    ):
        if self._state is not SearchState.SEARCHING:
            return
        self._state = state
        self.store.clear()

        task, self._task = self._task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

        if state is SearchState.FOUND:
            self.notifier.search_found(criteria or self._criteria)
        else:
            self.notifier.search_interrupted(reason or ERROR_REASON)
        logger.info(f"[SearchController] Search ended: {state.value}")
        record_search(state.value)

        self._outcome = state
        self._criteria = None
        self._state = SearchState.IDLE
        self._run_completion(state)
        if self._done is not None and not self._done.done():
            self._done.set_result(state)

    def _run_completion(self, state: SearchState):
        if self.on_complete is None:
            return
        try:
            outcome = self.on_complete(state)
            if inspect.isawaitable(outcome):
                task = asyncio.ensure_future(outcome)
                self._callbacks.add(task)
                task.add_done_callback(self._completion_done)
        except Exception as exc:
            logger.error(f"[SearchController] Completion callback failed: {exc}")

    def _completion_done(self, task: asyncio.Task):
        self._callbacks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"[SearchController] Completion callback failed: {exc}")
