"""Pytest configuration and fixtures."""
import pytest

from claimwatch.config import Settings
from claimwatch.matching.criteria import CriteriaStore
from claimwatch.notifications.status import StatusNotifier
from claimwatch.tree.snapshot import build_snapshot


def offer_card(
    price="$25",
    zone="Delivery Area 3",
    start="10:00 AM",
    duration="4 hrs",
    claim=True,
):
    """One offer card: price, zone, start time, duration and a claim button."""
    children = [
        {"id": "price", "text": price},
        {"id": "zone", "text": zone},
        {"id": "time", "text": start},
        {"id": "duration", "text": duration},
    ]
    if claim:
        children.append({
            "id": "claim",
            "text": "Claim",
            "class": "android.widget.Button",
            "identifier": "com.vehotechnologies.Driver:id/claim-offer-button",
            "clickable": True,
        })
    return {
        "id": "root",
        "class": "android.widget.FrameLayout",
        "children": [{"id": "card", "class": "android.view.ViewGroup", "children": children}],
    }


@pytest.fixture
def settings():
    """Settings with defaults only (no .env)."""
    return Settings(_env_file=None)


@pytest.fixture
def store():
    return CriteriaStore()


@pytest.fixture
def notifier():
    return StatusNotifier(history=10)


@pytest.fixture
def offer_snapshot():
    return build_snapshot(offer_card())
