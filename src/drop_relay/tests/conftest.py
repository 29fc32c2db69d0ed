"""
Fixtures for the entry point and top-level configuration.

Replays run against a ManualScheduler and a MagicMock dispatch, so no
timers or network calls are involved.
"""
import json

import pytest
from unittest.mock import MagicMock

from drop_relay.config import RelayConfig
from drop_relay.core import ManualScheduler


@pytest.fixture
def relay_config():
    return RelayConfig(player_name="Zezima", account_hash="123", dry_run=True)


@pytest.fixture
def scheduler():
    return ManualScheduler(start=1000.0)


@pytest.fixture
def dispatch():
    return MagicMock()


@pytest.fixture
def replay_file(tmp_path):
    """Write replay lines to a file and return its path."""

    def write(*lines):
        path = tmp_path / "session.log"
        path.write_text("\n".join(lines) + "\n")
        return str(path)

    return write


@pytest.fixture
def groups_file(tmp_path):
    path = tmp_path / "groups.json"
    path.write_text(json.dumps([
        {"group_id": 1, "group_name": "Clan", "minimum_drop_value": 0},
        {"group_name": "missing id"},
    ]))
    return str(path)


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every relay variable from the environment."""
    for name in (
        "WEBHOOK_URL",
        "PLAYER_NAME",
        "ACCOUNT_HASH",
        "LOG_LEVEL",
        "DRY_RUN",
        "GROUP_CONFIGS_PATH",
        "SEND_UNQUALIFIED",
        "WEBHOOK_TIMEOUT_SECONDS",
        "RETRY_ENABLED",
        "RETRY_QUEUE_CAPACITY",
        "RETRY_MAX_ATTEMPTS",
        "RETRY_MAX_AGE_SECONDS",
        "RETRY_DRAIN_INTERVAL_SECONDS",
        "CORRELATOR_FLUSH_WINDOW_SECONDS",
        "CORRELATOR_SETTLE_TICKS",
        "SCREENSHOT_DROP_VALUE",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch
