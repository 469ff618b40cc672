"""Shared fixtures: fixed clock, fast KDF, in-memory storage."""

from datetime import datetime, timezone

import pytest

from checkin_tracker.backends import MemoryStorage
from checkin_tracker.config import TrackerConfig
from checkin_tracker.crypto import CryptoEnvelope
from checkin_tracker.self_test import SteppingClock
from checkin_tracker.state import StateFacade
from checkin_tracker.store import PersistenceStore

FAST_ITERATIONS = 1_000


@pytest.fixture()
def clock():
    return SteppingClock(datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc))


@pytest.fixture()
def config():
    return TrackerConfig(kdf_iterations=FAST_ITERATIONS)


@pytest.fixture()
def crypto():
    return CryptoEnvelope(FAST_ITERATIONS)


@pytest.fixture()
def storage():
    return MemoryStorage()


@pytest.fixture()
def store(storage, config, clock):
    s = PersistenceStore(storage, config=config, clock=clock)
    assert s.init()
    return s


@pytest.fixture()
def facade(store):
    f = StateFacade(store)
    assert f.init()
    return f


@pytest.fixture()
def site(store):
    """A site with two credentials."""
    return store.add_site({
        "name": "Bank",
        "url": "https://bank.example/login",
        "category": "Finance",
        "tags": ["money", "daily"],
        "credentials": [
            {"email": "me@example.com", "label": "Personal", "password": "hunter2"},
            {"email": "work@example.com", "label": "Work"},
        ],
    })
