"""
Test fixtures for the ingestion layer.

Lines below are copied from real game chat so regexes are tested against
the exact wording the client prints.
"""

import pytest

from drop_relay.ingestion.parser import SignalParser


@pytest.fixture
def parser():
    """Fresh stateless parser."""
    return SignalParser()


# =============================================================================
# Sample chat lines
# =============================================================================


@pytest.fixture
def kill_count_line():
    return "Your Vorkath kill count is: 1,204."


@pytest.fixture
def pb_line():
    return "Fight duration: <col=ff0000>1:12.60</col> (new personal best)"


@pytest.fixture
def time_line():
    return "Fight duration: <col=ff0000>1:20.40</col>. Personal best: 1:12.60"


@pytest.fixture
def cox_line():
    return (
        "Congratulations - your raid is complete! "
        "Team size: 3 players Duration: 24:33.60 Personal best: 22:10.20"
    )
