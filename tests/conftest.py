"""
conftest.py - Shared pytest fixtures for market ledger tests

Provides common fixtures used across unit and functional tests:
- Height clock and funded custody ledger
- Market ledgers (empty, with an open market, staked, settled)

Hypothesis tests build their own ledgers with tests.ledger_factory.
"""

import pytest

from parimutuel import ParimutuelLedger, ManualClock, LedgerStore
from tests.ledger_factory import CREATOR, make_custody


# =============================================================================
# BASIC FIXTURES
# =============================================================================

@pytest.fixture
def clock():
    """Height clock starting at 0."""
    return ManualClock()


@pytest.fixture
def custody():
    """Custody ledger with escrow, creator and backer wallets, each backer funded."""
    return make_custody()


@pytest.fixture
def ledger(custody, clock):
    """Empty market ledger over the funded custody ledger."""
    return ParimutuelLedger(custody, clock, store=LedgerStore(), verbose=False)


# =============================================================================
# MARKET FIXTURES
# =============================================================================

@pytest.fixture
def open_market(ledger, clock):
    """Id of a Yes/No market closing 100 blocks from now."""
    return ledger.create_market(
        "Will it rain tomorrow?", ["Yes", "No"], clock.current_height + 100, CREATOR
    )


@pytest.fixture
def staked_market(ledger, open_market):
    """
    Open market with stakes on both options.

    Yes: alice 300
    No:  bob 500, carol 200
    """
    ledger.stake(open_market, 0, 300, "alice")
    ledger.stake(open_market, 1, 500, "bob")
    ledger.stake(open_market, 1, 200, "carol")
    return open_market


@pytest.fixture
def settled_market(ledger, clock, staked_market):
    """The staked market, closed and settled with "No" (option 1) winning."""
    clock.advance_to(ledger.get_market(staked_market).deadline)
    ledger.settle(staked_market, 1, CREATOR)
    return staked_market
