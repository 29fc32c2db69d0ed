"""
Core layer test fixtures.

Core tests drive the correlator with a ManualScheduler so timers and the
clock only move when a test says so. Emitted events are collected in a
plain list.
"""
import pytest
from unittest.mock import MagicMock

from drop_relay.core import (
    CacheConfig,
    CorrelatorConfig,
    EventFactory,
    KillCorrelator,
    KillCountCache,
    ManualScheduler,
    TokenSource,
)
from drop_relay.ingestion import SignalParser


# =============================================================================
# Infrastructure Fixtures
# =============================================================================


@pytest.fixture
def scheduler():
    """Virtual-time scheduler starting at t=1000."""
    return ManualScheduler(start=1000.0)


@pytest.fixture
def cache(scheduler):
    return KillCountCache(CacheConfig(ttl_seconds=600, max_entries=64), clock=scheduler.now)


@pytest.fixture
def events():
    return EventFactory("Zezima", account_hash="123", tokens=TokenSource(session="test"))


@pytest.fixture
def emitted():
    """List that collects every emitted DomainEvent."""
    return []


@pytest.fixture
def correlator_config():
    return CorrelatorConfig()


@pytest.fixture
def correlator(emitted, cache, scheduler, events, correlator_config):
    return KillCorrelator(
        emit=emitted.append,
        cache=cache,
        scheduler=scheduler,
        events=events,
        config=correlator_config,
    )


@pytest.fixture
def parser():
    return SignalParser()


@pytest.fixture
def feed(correlator, parser):
    """Parse a chat line and feed its signals to the correlator."""
    def _feed(line):
        correlator.on_signals(parser.parse(line))
    return _feed


@pytest.fixture
def tick(correlator, scheduler):
    """Advance n game ticks (0.6s each)."""
    def _tick(n=1):
        for _ in range(n):
            scheduler.advance(0.6)
            correlator.on_tick()
    return _tick


# =============================================================================
# Collaborator Fixtures
# =============================================================================


@pytest.fixture
def pricer():
    """Item pricer with a few known items."""
    prices = {11286: 5_000_000, 536: 2_000, 995: 1}
    names = {11286: "Draconic visage", 536: "Dragon bones", 995: "Coins"}
    pricer = MagicMock()
    pricer.price = MagicMock(side_effect=lambda item_id: prices.get(item_id, 0))
    pricer.name = MagicMock(side_effect=lambda item_id: names.get(item_id, f"Item {item_id}"))
    return pricer
