import os

# Must be set before nearby.core.config is imported.
os.environ.setdefault("SEED_DEMO_USERS", "false")
os.environ.setdefault("LOG_FILE", "")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from nearby.engine.store import PresenceStore


class FakeClock:
    """Advances one second per reading so timestamps are strictly ordered."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 10, 19, 1, 0, tzinfo=timezone.utc))


@pytest.fixture
def published():
    return []


@pytest.fixture
def store(clock, published):
    return PresenceStore(publish=published.append, clock=clock)


@pytest.fixture
def client():
    from nearby.main import app

    with TestClient(app) as c:
        yield c
