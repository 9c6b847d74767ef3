"""Tests for the in-memory snapshot backend."""

import pytest
from unittest.mock import AsyncMock

from claimwatch.tree.node import ContentNode, read_node
from claimwatch.tree.snapshot import (
    HandleReleasedError,
    NodeVanishedError,
    build_snapshot,
)


class TestSnapshotHandles:
    def test_handles_are_fresh(self):
        snapshot = build_snapshot({"id": "root", "children": [{"id": "a"}]})
        root = snapshot.root()
        first = root.get_child(0)
        second = root.get_child(0)
        assert first is not second
        assert first.node_id == second.node_id == "a"
        assert snapshot.open_handles == 3
        for handle in (root, first, second):
            handle.release()
        assert snapshot.open_handles == 0

    def test_double_release_raises(self):
        snapshot = build_snapshot({"id": "root"})
        root = snapshot.root()
        root.release()
        with pytest.raises(HandleReleasedError):
            root.release()

    def test_released_handle_unreadable(self):
        snapshot = build_snapshot({"id": "root", "text": "hi"})
        root = snapshot.root()
        root.release()
        with pytest.raises(HandleReleasedError):
            _ = root.text

    def test_vanished_element(self):
        snapshot = build_snapshot({"id": "root", "children": [{"id": "a", "text": "x", "vanished": True}]})
        root = snapshot.root()
        child = root.get_child(0)
        with pytest.raises(NodeVanishedError):
            _ = child.text
        assert read_node(child) is None
        assert child.node_id == "a"

    def test_handle_satisfies_protocol(self):
        snapshot = build_snapshot({"id": "root"})
        assert isinstance(snapshot.root(), ContentNode)

    def test_parent(self):
        snapshot = build_snapshot({"id": "root", "children": [{"id": "a"}]})
        child = snapshot.handle("a")
        assert child.get_parent().node_id == "root"
        assert snapshot.root().get_parent() is None

    def test_empty_window(self):
        assert build_snapshot(None).root() is None


class TestBuildSnapshot:
    def test_field_aliases(self):
        snapshot = build_snapshot({
            "id": "b",
            "text": "Claim",
            "description": "Claim offer",
            "resource_id": "app:id/claim-offer-button",
            "role": "button",
            "clickable": True,
            "enabled": False,
            "bounds": [0, 0, 10, 10],
        })
        info = read_node(snapshot.root())
        assert info.content_description == "Claim offer"
        assert info.identifier == "app:id/claim-offer-button"
        assert info.class_name == "button"
        assert info.clickable is True
        assert info.enabled is False
        assert info.bounds == (0, 0, 10, 10)

    def test_unknown_ref_becomes_null_child(self):
        snapshot = build_snapshot({"id": "root", "children": [{"ref": "missing"}]})
        root = snapshot.root()
        assert root.child_count == 1
        assert root.get_child(0) is None

    def test_to_dict_marks_repeats(self):
        data = {"id": "root", "children": [{"id": "a", "text": "x"}, {"ref": "a"}]}
        dumped = build_snapshot(data).to_dict()
        assert dumped["children"][0] == {"id": "a", "text": "x"}
        assert dumped["children"][1] == {"ref": "a"}

    def test_elements_distinct(self):
        data = {"id": "root", "children": [{"id": "a"}, {"ref": "a"}, {"ref": "root"}]}
        assert [e.uid for e in build_snapshot(data).elements()] == ["root", "a"]


class TestActivation:
    @pytest.mark.asyncio
    async def test_local_activation(self):
        snapshot = build_snapshot({"id": "root", "children": [
            {"id": "ok", "clickable": True},
            {"id": "off", "clickable": True, "enabled": False},
        ]})
        assert await snapshot.handle("ok").perform_click() is True
        assert await snapshot.handle("off").perform_click() is False
        assert snapshot.find("ok").clicks == 1

    @pytest.mark.asyncio
    async def test_activator_used(self):
        activator = AsyncMock(return_value=True)
        snapshot = build_snapshot({"id": "root"}, activator=activator)
        assert await snapshot.root().perform_click() is True
        activator.assert_awaited_once_with(snapshot.root_element)
