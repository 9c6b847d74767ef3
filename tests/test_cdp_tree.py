"""Tests for the CDP tree provider."""

import pytest
from unittest.mock import AsyncMock, MagicMock

from claimwatch.browser.cdp_tree import CDPTreeProvider, build_elements, collect_identifiers
from claimwatch.matching.criteria import Criteria
from claimwatch.matching.matcher import TreeMatcher
from claimwatch.tree.handles import HandleScope
from claimwatch.tree.node import read_node


# ── Fixtures ─────────────────────────────────────────────────────────────────


def _prop(name, value):
    return {"name": name, "value": {"type": "boolean", "value": value}}


AX_NODES = [
    {
        "nodeId": "1",
        "ignored": False,
        "role": {"type": "internalRole", "value": "RootWebArea"},
        "name": {"type": "computedString", "value": "Offers"},
        "childIds": ["2", "3", "6"],
        "backendDOMNodeId": 1,
    },
    {
        "nodeId": "2",
        "parentId": "1",
        "ignored": True,
        "role": {"type": "role", "value": "none"},
        "childIds": ["4", "7"],
        "backendDOMNodeId": 2,
    },
    {
        "nodeId": "4",
        "parentId": "2",
        "ignored": False,
        "role": {"type": "internalRole", "value": "StaticText"},
        "name": {"type": "computedString", "value": "$"},
        "childIds": ["5"],
        "backendDOMNodeId": 40,
    },
    {
        "nodeId": "5",
        "parentId": "4",
        "ignored": False,
        "role": {"type": "internalRole", "value": "InlineTextBox"},
        "name": {"type": "computedString", "value": "$"},
        "childIds": [],
    },
    {
        "nodeId": "7",
        "parentId": "2",
        "ignored": False,
        "role": {"type": "internalRole", "value": "StaticText"},
        "name": {"type": "computedString", "value": "30"},
        "childIds": [],
        "backendDOMNodeId": 41,
    },
    {
        "nodeId": "3",
        "parentId": "1",
        "ignored": False,
        "role": {"type": "role", "value": "button"},
        "name": {"type": "computedString", "value": "Claim"},
        "properties": [_prop("focusable", True)],
        "childIds": [],
        "backendDOMNodeId": 42,
    },
    {
        "nodeId": "6",
        "parentId": "1",
        "ignored": False,
        "role": {"type": "role", "value": "button"},
        "name": {"type": "computedString", "value": "Decline"},
        "description": {"type": "computedString", "value": "Decline offer"},
        "properties": [_prop("focusable", True), _prop("disabled", True)],
        "childIds": [],
        "backendDOMNodeId": 43,
    },
]

DOCUMENT = {
    "root": {
        "backendNodeId": 1,
        "attributes": [],
        "children": [
            {"backendNodeId": 42, "attributes": ["id", "claim-offer-button", "class", "btn"]},
            {
                "backendNodeId": 50,
                "attributes": [],
                "shadowRoots": [
                    {"backendNodeId": 43, "attributes": ["data-testid", "decline-button"]},
                ],
            },
        ],
    }
}


def _mock_page(send=None, closed=False):
    cdp = MagicMock()

    async def default_send(method, params=None):
        if method == "Accessibility.getFullAXTree":
            return {"nodes": AX_NODES}
        if method == "DOM.getDocument":
            return DOCUMENT
        if method == "DOM.resolveNode":
            return {"object": {"objectId": "obj-1"}}
        if method == "Runtime.callFunctionOn":
            return {"result": {"type": "boolean", "value": True}}
        return {}

    cdp.send = AsyncMock(side_effect=send or default_send)
    cdp.detach = AsyncMock()
    page = MagicMock()
    page.is_closed.return_value = closed
    page.url = "https://driver.example.com/offers"
    page.context.new_cdp_session = AsyncMock(return_value=cdp)
    return page, cdp


# ── Tests ────────────────────────────────────────────────────────────────────


class TestConversion:
    def test_ignored_nodes_are_transparent(self):
        root = build_elements(AX_NODES)
        assert root.class_name == "RootWebArea"
        assert [c.text for c in root.children] == ["$", "30", "Claim", "Decline"]

    def test_inline_text_boxes_dropped(self):
        root = build_elements(AX_NODES)
        assert root.children[0].children == []

    def test_roles_and_states(self):
        root = build_elements(AX_NODES, collect_identifiers(DOCUMENT["root"]))
        claim, decline = root.children[2], root.children[3]
        assert claim.clickable is True
        assert claim.identifier == "claim-offer-button"
        assert claim.backend_id == 42
        assert decline.enabled is False
        assert decline.content_description == "Decline offer"
        assert decline.identifier == "decline-button"
        assert root.children[0].clickable is False

    def test_empty_tree(self):
        assert build_elements([]) is None

    def test_identifiers_prefer_first_attribute(self):
        doc = {"backendNodeId": 1, "attributes": ["data-testid", "t", "id", "i"]}
        assert collect_identifiers(doc) == {1: "i"}
        assert collect_identifiers(doc, ("data-testid",)) == {1: "t"}


class TestCDPTreeProvider:
    @pytest.mark.asyncio
    async def test_current_root(self):
        page, cdp = _mock_page()
        provider = CDPTreeProvider(page)
        root = await provider.current_root()

        assert read_node(root).class_name == "RootWebArea"
        assert provider.last_snapshot.source_app == "driver.example.com"
        methods = [c.args[0] for c in cdp.send.await_args_list]
        assert methods[:2] == ["DOM.enable", "Accessibility.enable"]
        root.release()

    @pytest.mark.asyncio
    async def test_split_price_matches_on_page(self):
        page, _ = _mock_page()
        provider = CDPTreeProvider(page)
        with HandleScope() as scope:
            root = scope.adopt(await provider.current_root())
            result = TreeMatcher().match(root, Criteria(min_price=30), scope)
            assert result.satisfied is True
            assert result.anchor.text == "30"
        assert provider.last_snapshot.open_handles == 0

    @pytest.mark.asyncio
    async def test_click_resolves_calls_and_releases(self):
        page, cdp = _mock_page()
        provider = CDPTreeProvider(page)
        await provider.current_root()
        claim = provider.last_snapshot.handle("ax-3")

        assert await claim.perform_click() is True
        methods = [c.args[0] for c in cdp.send.await_args_list]
        assert methods[-3:] == ["DOM.resolveNode", "Runtime.callFunctionOn", "Runtime.releaseObject"]
        assert cdp.send.await_args_list[-3].args[1] == {"backendNodeId": 42}
        assert cdp.send.await_args_list[-1].args[1] == {"objectId": "obj-1"}

    @pytest.mark.asyncio
    async def test_disabled_element_not_clicked(self):
        page, cdp = _mock_page()
        provider = CDPTreeProvider(page)
        await provider.current_root()
        decline = provider.last_snapshot.handle("ax-6")

        assert await decline.perform_click() is False
        methods = [c.args[0] for c in cdp.send.await_args_list]
        assert "DOM.resolveNode" not in methods

    @pytest.mark.asyncio
    async def test_click_exception_reported(self):
        async def send(method, params=None):
            if method == "Accessibility.getFullAXTree":
                return {"nodes": AX_NODES}
            if method == "DOM.getDocument":
                return DOCUMENT
            if method == "DOM.resolveNode":
                return {"object": {"objectId": "obj-9"}}
            if method == "Runtime.callFunctionOn":
                return {"exceptionDetails": {"text": "Uncaught"}}
            return {}

        page, cdp = _mock_page(send=send)
        provider = CDPTreeProvider(page)
        await provider.current_root()
        assert await provider.last_snapshot.handle("ax-3").perform_click() is False
        assert cdp.send.await_args_list[-1].args == ("Runtime.releaseObject", {"objectId": "obj-9"})

    @pytest.mark.asyncio
    async def test_closed_page(self):
        page, cdp = _mock_page(closed=True)
        provider = CDPTreeProvider(page)
        assert provider.is_available() is False
        assert await provider.current_root() is None
        cdp.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_snapshot_failure_returns_none(self):
        async def send(method, params=None):
            raise RuntimeError("Target closed")

        page, _ = _mock_page(send=send)
        provider = CDPTreeProvider(page)
        assert await provider.current_root() is None

    @pytest.mark.asyncio
    async def test_close_detaches(self):
        page, cdp = _mock_page()
        provider = CDPTreeProvider(page)
        await provider.get_cdp_session()
        await provider.close()
        cdp.detach.assert_awaited_once()
