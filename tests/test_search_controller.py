"""Tests for SearchController."""

import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from claimwatch.agent.action_dispatcher import ActionDispatcher
from claimwatch.matching.criteria import Criteria
from claimwatch.matching.matcher import TreeMatcher
from claimwatch.notifications.status import NotificationKind
from claimwatch.session.event_gate import EventGate
from claimwatch.session.search_controller import (
    CANCELLED_REASON,
    UNAVAILABLE_REASON,
    SearchController,
    SearchInProgressError,
    SearchState,
)
from claimwatch.tree.snapshot import build_snapshot
from conftest import offer_card


# ── Fixtures ─────────────────────────────────────────────────────────────────


def _controller(store, notifier, capability=None, gate=None, **kwargs):
    gate = gate or MagicMock()
    capability = capability or MagicMock(return_value=True)
    return SearchController(
        store,
        gate,
        notifier,
        capability=capability,
        poll_interval=0.01,
        **kwargs,
    )


# ── Tests ────────────────────────────────────────────────────────────────────


class TestSearchController:
    @pytest.mark.asyncio
    async def test_start(self, store, notifier):
        controller = _controller(store, notifier)
        criteria = Criteria(min_price=25)
        controller.start(criteria)

        assert controller.state is SearchState.SEARCHING
        assert controller.is_searching
        assert store.get() == criteria
        note = notifier.recent()[-1]
        assert note.kind is NotificationKind.STARTED
        assert note.message == "Searching: price >= $25"
        controller.cancel()

    @pytest.mark.asyncio
    async def test_start_while_searching(self, store, notifier):
        controller = _controller(store, notifier)
        controller.start(Criteria(min_price=25))
        with pytest.raises(SearchInProgressError):
            controller.start(Criteria(min_price=30))
        assert store.get() == Criteria(min_price=25)
        controller.cancel()

    @pytest.mark.asyncio
    async def test_found_by_poll(self, store, notifier):
        on_complete = MagicMock()
        controller = _controller(store, notifier, on_complete=on_complete)
        controller.start(Criteria(zone="3"))

        store.complete(store.snapshot().generation)
        assert await asyncio.wait_for(controller.wait(), 1) is SearchState.FOUND
        assert controller.state is SearchState.IDLE
        assert controller.outcome is SearchState.FOUND
        on_complete.assert_called_once_with(SearchState.FOUND)
        assert notifier.recent()[-1].kind is NotificationKind.FOUND

    @pytest.mark.asyncio
    async def test_found_by_gate_callback_completes_once(self, store, notifier):
        gate = MagicMock()
        on_complete = MagicMock()
        controller = _controller(store, notifier, gate=gate, on_complete=on_complete)
        criteria = Criteria(zone="3")
        controller.start(criteria)

        store.complete(store.snapshot().generation)
        gate.on_claimed(criteria)
        await asyncio.sleep(0.05)

        on_complete.assert_called_once_with(SearchState.FOUND)
        assert notifier.recent()[-1].message == "Found: zone 3"
        assert [n.kind for n in notifier.recent()].count(NotificationKind.FOUND) == 1

    @pytest.mark.asyncio
    async def test_cancel(self, store, notifier):
        on_complete = MagicMock()
        controller = _controller(store, notifier, on_complete=on_complete)
        controller.start(Criteria(min_price=25))

        assert controller.cancel() is True
        assert store.get() is None
        assert controller.state is SearchState.IDLE
        assert controller.outcome is SearchState.CANCELLED
        assert notifier.recent()[-1].message == CANCELLED_REASON
        assert controller.cancel() is False
        await asyncio.sleep(0.03)
        on_complete.assert_called_once_with(SearchState.CANCELLED)

    @pytest.mark.asyncio
    async def test_capability_lost(self, store, notifier):
        capability = MagicMock(return_value=True)
        controller = _controller(store, notifier, capability=capability)
        controller.start(Criteria(min_price=25))

        capability.return_value = False
        assert await asyncio.wait_for(controller.wait(), 1) is SearchState.SERVICE_UNAVAILABLE
        assert store.get() is None
        assert notifier.recent()[-1].message == UNAVAILABLE_REASON

    @pytest.mark.asyncio
    async def test_capability_check_error_counts_as_lost(self, store, notifier):
        capability = MagicMock(side_effect=RuntimeError("service died"))
        controller = _controller(store, notifier, capability=capability)
        controller.start(Criteria(min_price=25))
        assert await asyncio.wait_for(controller.wait(), 1) is SearchState.SERVICE_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_restart_after_finish(self, store, notifier):
        controller = _controller(store, notifier)
        controller.start(Criteria(min_price=25))
        controller.cancel()
        controller.start(Criteria(min_price=30))
        assert store.get() == Criteria(min_price=30)
        assert controller.outcome is None
        controller.cancel()

    @pytest.mark.asyncio
    async def test_wait_without_search(self, store, notifier):
        assert await _controller(store, notifier).wait() is SearchState.IDLE

    @pytest.mark.asyncio
    async def test_async_completion_callback(self, store, notifier):
        on_complete = AsyncMock()
        controller = _controller(store, notifier, on_complete=on_complete)
        controller.start(Criteria(min_price=25))
        controller.cancel()
        await asyncio.sleep(0)
        on_complete.assert_awaited_once_with(SearchState.CANCELLED)
        await controller.shutdown()
        assert controller._callbacks == set()

    @pytest.mark.asyncio
    async def test_async_completion_failure_is_logged(self, store, notifier):
        on_complete = AsyncMock(side_effect=RuntimeError("hook down"))
        controller = _controller(store, notifier, on_complete=on_complete)
        with patch("claimwatch.session.search_controller.logger") as log:
            controller.start(Criteria(min_price=25))
            controller.cancel()
            assert len(controller._callbacks) == 1
            await controller.shutdown()
        assert controller._callbacks == set()
        assert any("hook down" in str(call) for call in log.error.call_args_list)

    @pytest.mark.asyncio
    async def test_shutdown(self, store, notifier):
        controller = _controller(store, notifier)
        controller.start(Criteria(min_price=25))
        await controller.shutdown()
        assert controller.outcome is SearchState.CANCELLED

    def test_set_restrict_persists(self, store, notifier):
        gate = MagicMock()
        preferences = MagicMock()
        controller = _controller(store, notifier, gate=gate, preferences=preferences)
        controller.set_restrict_to_target_app(True)
        assert gate.restrict_to_target_app is True
        preferences.set_restrict_to_target_app.assert_called_once_with(True)


class TestEndToEnd:
    @pytest.mark.asyncio
    async def test_claim_through_gate(self, store, notifier):
        snapshot = build_snapshot(offer_card())
        provider = MagicMock()
        provider.current_root = AsyncMock(side_effect=lambda: snapshot.root())
        provider.is_available.return_value = True
        gate = EventGate(provider, TreeMatcher(), ActionDispatcher(), store)
        controller = SearchController(
            store, gate, notifier, capability=provider.is_available, poll_interval=0.01
        )

        controller.start(Criteria(min_price=20, zone="3", min_start_hour=9, max_duration_hours=4))
        assert await gate.accept(1000, "com.vehotechnologies.Driver") is True

        assert await asyncio.wait_for(controller.wait(), 1) is SearchState.FOUND
        assert snapshot.find("claim").clicks == 1
        assert snapshot.open_handles == 0
        assert store.get() is None

        # A later event finds no criteria and does nothing.
        assert await gate.accept(2000, "com.vehotechnologies.Driver") is True
        assert snapshot.find("claim").clicks == 1
