"""Shared fixtures: an in-memory store, a hand-driven clock and a manager."""

import pytest

from anchor_helpers import ManualClock
from chore_anchors.services.anchor_manager import AnchorManager
from chore_anchors.services.anchor_store import InMemoryAnchorStore


@pytest.fixture()
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture()
def store() -> InMemoryAnchorStore:
    return InMemoryAnchorStore()


@pytest.fixture()
def manager(store, clock) -> AnchorManager:
    return AnchorManager(store, clock=clock)
