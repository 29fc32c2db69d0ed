"""
Delivery layer test fixtures.

The aiohttp session is replaced by a scripted fake: each post() pops the
next outcome, either an (status, body) pair or an exception to raise.
Backoff sleeps are recorded instead of awaited.
"""
import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from drop_relay.delivery import (
    DeliveryService,
    FailureTracker,
    RetryConfig,
    RetryQueue,
    WebhookClient,
    WebhookClientConfig,
)
from drop_relay.routing import Embed, WebhookBody


class FakeClock:
    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeResponse:
    def __init__(self, status, body=""):
        self.status = status
        self._body = body

    async def text(self):
        return self._body


class FakeSession:
    """Stands in for aiohttp.ClientSession.post()."""

    def __init__(self, outcomes=None, delay=0.0):
        self.outcomes = list(outcomes or [])
        self.delay = delay
        self.posts = []
        self.closed = False

    def post(self, url, data=None):
        self.posts.append((url, data))
        outcome = self.outcomes.pop(0) if self.outcomes else (200, "")
        delay = self.delay

        class MockRequest:
            async def __aenter__(self):
                if delay:
                    await asyncio.sleep(delay)
                if isinstance(outcome, BaseException):
                    raise outcome
                return FakeResponse(*outcome)

            async def __aexit__(self, *args):
                pass

        return MockRequest()

    async def close(self):
        self.closed = True


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def retry_config():
    return RetryConfig()


@pytest.fixture
def tracker(retry_config, clock):
    # rng pinned to zero so backoff delays are exact
    return FailureTracker(retry_config, clock=clock, rng=lambda: 0.0)


@pytest.fixture
def queue(retry_config, clock):
    return RetryQueue(retry_config, clock=clock)


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def client(session):
    return WebhookClient(WebhookClientConfig(url="https://hooks.example.com/webhook"), session=session)


@pytest.fixture
def sleeps():
    """List that collects every backoff delay slept."""
    return []


@pytest.fixture
def notices():
    sink = MagicMock()
    sink.notice = MagicMock()
    return sink


@pytest.fixture
def service(client, retry_config, tracker, queue, notices, sleeps):
    async def record_sleep(delay):
        sleeps.append(delay)

    return DeliveryService(
        client,
        config=retry_config,
        tracker=tracker,
        queue=queue,
        notices=notices,
        sleep=AsyncMock(side_effect=record_sleep),
    )


@pytest.fixture
def payload():
    embed = Embed(title="Zezima received some drops:")
    embed.add_field("type", "drop")
    embed.add_field("guid", "test-000001")
    return WebhookBody(content="Zezima received some drops:", embeds=[embed])
