"""Pytest fixtures: test settings, in-memory database and push fakes."""

import asyncio
import json
import os

import pytest

# Must be set before the application modules are imported
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("VAPID_PUBLIC_KEY", "")
os.environ.setdefault("VAPID_PRIVATE_KEY", "")

from pickup_push.db import build_engine, build_session_maker, create_tables  # noqa: E402
from pickup_push.services.keys import KeyManager  # noqa: E402
from pickup_push.services.push import FanoutDispatcher  # noqa: E402
from pickup_push.settings import Settings  # noqa: E402

TEST_PUBLIC_KEY = "BNcRdreALRFXTkOOUHK1EtK2wtaz5Ry4YfYCA_0QTpQtUbVlUls0VJXg7A8u-Ts1XbjhazAkj7I99e8QcYP7DkM"
TEST_PRIVATE_KEY = "tUxbf-Mxhj3OiGMIGIEpswENDKqxPAXUuAb6PVE3wEc"


async def _run_with_session(test_fn):
    engine = build_engine("sqlite+aiosqlite:///:memory:")
    await create_tables(engine)
    session_maker = build_session_maker(engine)
    try:
        async with session_maker() as session:
            return await test_fn(session)
    finally:
        await engine.dispose()


@pytest.fixture
def run_db():
    """Run an async test body against a fresh in-memory database.

    Usage: run_db(async_fn) where async_fn(session) does the work.
    """
    def runner(test_fn):
        return asyncio.run(_run_with_session(test_fn))
    return runner


def make_settings(**overrides) -> Settings:
    values = {
        "vapid_public_key": TEST_PUBLIC_KEY,
        "vapid_private_key": TEST_PRIVATE_KEY,
        "vapid_subject": "mailto:test@pickup.app",
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def key_manager():
    return KeyManager(make_settings())


@pytest.fixture
def unconfigured_key_manager():
    return KeyManager(make_settings(vapid_public_key=None, vapid_private_key=None))


class FakeTransport:
    """Records deliveries; per-endpoint failures and delays."""

    def __init__(self, failures=None, delays=None):
        self.failures = failures or {}
        self.delays = delays or {}
        self.attempts = []
        self.delivered = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def send(self, subscription_info, data, identity, timeout):
        endpoint = subscription_info["endpoint"]
        self.attempts.append(endpoint)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delays.get(endpoint, 0))
            error = self.failures.get(endpoint)
            if error is not None:
                raise error
            self.delivered.append((endpoint, json.loads(data)))
        finally:
            self.in_flight -= 1


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def dispatcher(key_manager, transport):
    return FanoutDispatcher(key_manager, transport=transport, max_concurrency=4, timeout=1.0)
