"""
Routing layer test fixtures.

Events are built directly with EventFactory rather than through the
correlator, and the dispatch callable is a MagicMock.
"""
from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from drop_relay.core import EventCategory, EventFactory, TokenSource
from drop_relay.routing import (
    GroupConfig,
    RouterConfig,
    ScreenshotPolicy,
    SubmissionHistory,
    SubmissionRouter,
)


# =============================================================================
# Event Fixtures
# =============================================================================


@pytest.fixture
def events():
    return EventFactory("Zezima", account_hash="123", tokens=TokenSource(session="test"))


@pytest.fixture
def make_drop(events):
    """Create a drop event of the given total value."""
    def _make(value=5_000, single_value=None, subject="Vorkath", count=120):
        single = value if single_value is None else single_value
        return events.create(
            EventCategory.DROP,
            subject,
            count=count,
            value=value,
            fields={
                "source_type": "npc",
                "single_value": single,
                "items": [{"item": "Dragon bones", "id": 536, "quantity": 1, "value": value}],
            },
        )
    return _make


@pytest.fixture
def make_kill(events):
    """Create a boss kill, optionally with a time."""
    def _make(subject="Vorkath", count=120, seconds=None, pb=False, team_size="Solo"):
        duration = timedelta(seconds=seconds) if seconds is not None else None
        return events.create(
            EventCategory.NPC_KILL,
            subject,
            count=count,
            duration=duration,
            best_duration=duration if pb else None,
            is_personal_best=pb,
            team_size=team_size,
        )
    return _make


# =============================================================================
# Router Fixtures
# =============================================================================


@pytest.fixture
def dispatch():
    return MagicMock()


@pytest.fixture
def history():
    return SubmissionHistory(max_entries=50)


@pytest.fixture
def screenshots():
    provider = MagicMock()
    provider.capture = MagicMock(return_value=b"\xff\xd8jpeg")
    return provider


@pytest.fixture
def router_config():
    return RouterConfig(account_hash="123", plugin_version="1.2.3")


@pytest.fixture
def router(dispatch, router_config, history):
    return SubmissionRouter(
        dispatch=dispatch,
        config=router_config,
        screenshot_policy=ScreenshotPolicy(),
        history=history,
    )


@pytest.fixture
def groups():
    return [
        GroupConfig(group_id="1", minimum_drop_value=0),
        GroupConfig(group_id="2", minimum_drop_value=1_000),
        GroupConfig(group_id="3", minimum_drop_value=1_000_000),
    ]
