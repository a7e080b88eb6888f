"""
Conservation Law Conformance Tests

INVARIANT: For every market m, at all times:
    Σ_{o ∈ options} option_total(m, o) = total_staked(m)
    Σ_{bets on o} amount = option_total(m, o)      (fully claimed bets included)

and for the ledger as a whole:
    balance(escrow) = Σ_m total_staked(m) - Σ claims paid out

Stakes and claims move value between custody wallets; they never create
or destroy it. These tests drive random operation sequences through the
ledger and check the invariants after every step.
"""

from hypothesis import given, settings, note
from hypothesis import strategies as st

from parimutuel import MarketError
from tests.ledger_factory import CREATOR, make_ledger


BACKERS = ["alice", "bob", "carol", "dave"]
NUM_OPTIONS = 3
DEADLINE = 50


# =============================================================================
# STRATEGIES FOR PROPERTY-BASED TESTING
# =============================================================================

@st.composite
def stake_action(draw):
    return (
        "stake",
        draw(st.sampled_from(BACKERS)),
        draw(st.integers(min_value=0, max_value=NUM_OPTIONS - 1)),
        draw(st.integers(min_value=1, max_value=5000)),
    )


@st.composite
def claim_action(draw):
    backer = draw(st.sampled_from(BACKERS))
    option = draw(st.integers(min_value=0, max_value=NUM_OPTIONS - 1))
    if draw(st.booleans()):
        return ("claim_all", backer, option)
    return ("claim", backer, option, draw(st.integers(min_value=1, max_value=3000)))


@st.composite
def market_history(draw):
    """
    Generate a full market history: stakes, settlement, claims.

    Returns: (stakes, winning_option, claims)
    """
    stakes = draw(st.lists(stake_action(), min_size=1, max_size=25))
    winning_option = draw(st.integers(min_value=0, max_value=NUM_OPTIONS - 1))
    claims = draw(st.lists(claim_action(), max_size=25))
    return stakes, winning_option, claims


def run_action(ledger, market_id, action):
    """Apply one action; rejected actions are expected and ignored."""
    kind, backer, option, *rest = action
    try:
        if kind == "stake":
            ledger.stake(market_id, option, rest[0], backer)
        elif kind == "claim":
            ledger.claim(market_id, option, rest[0], backer)
        else:
            ledger.claim_all(market_id, option, backer)
    except MarketError as e:
        note(f"{action} rejected: {e.code}")
        return False
    return True


def assert_conserved(ledger, custody, market_id):
    market = ledger.get_market(market_id)
    totals = [
        ledger.get_option_total(market_id, option)
        for option in range(NUM_OPTIONS)
    ]
    assert sum(t.total_amount for t in totals if t is not None) == market.total_staked

    audit = ledger.verify_all()
    assert audit['valid'], audit
    assert custody.get_balance("escrow") == market.total_staked - ledger.total_paid_out()
    assert custody.verify_double_entry()['valid']


# =============================================================================
# CONSERVATION PROPERTY TESTS
# =============================================================================

class TestConservationProperties:
    """Property-based tests for pool conservation."""

    @given(market_history())
    @settings(max_examples=75, deadline=None)
    def test_invariants_hold_after_every_operation(self, history):
        """
        PROPERTY: Pool and escrow invariants hold after every step of any history.
        """
        stakes, winning_option, claims = history
        ledger, custody, clock = make_ledger(wallets=BACKERS, balance=20_000)
        market_id = ledger.create_market("Q", ["A", "B", "C"], DEADLINE, CREATOR)

        for action in stakes:
            run_action(ledger, market_id, action)
            assert_conserved(ledger, custody, market_id)

        clock.advance_to(DEADLINE)
        ledger.settle(market_id, winning_option, CREATOR)
        assert_conserved(ledger, custody, market_id)

        for action in claims:
            run_action(ledger, market_id, action)
            assert_conserved(ledger, custody, market_id)

    @given(market_history())
    @settings(max_examples=75, deadline=None)
    def test_full_payout_leaves_only_rounding_dust(self, history):
        """
        PROPERTY: Once every winner has claimed everything, escrow keeps less
        than one unit per winning bet. If the winning option had no stakes,
        escrow keeps the whole pool.
        """
        stakes, winning_option, _ = history
        ledger, custody, clock = make_ledger(wallets=BACKERS, balance=20_000)
        market_id = ledger.create_market("Q", ["A", "B", "C"], DEADLINE, CREATOR)
        for action in stakes:
            run_action(ledger, market_id, action)

        clock.advance_to(DEADLINE)
        ledger.settle(market_id, winning_option, CREATOR)

        winners = [
            backer for backer in BACKERS
            if ledger.get_bet(market_id, backer, winning_option) is not None
        ]
        for backer in winners:
            ledger.claim_all(market_id, winning_option, backer)

        total_staked = ledger.get_market(market_id).total_staked
        dust = custody.get_balance("escrow")
        note(f"staked={total_staked} winners={winners} dust={dust}")
        if winners:
            assert 0 <= dust < len(winners)
        else:
            assert dust == total_staked

    @given(st.lists(stake_action(), min_size=1, max_size=30))
    @settings(max_examples=50, deadline=None)
    def test_every_stake_lands_in_escrow(self, stakes):
        """
        PROPERTY: Escrow holds exactly the sum of accepted stakes before settlement.
        """
        ledger, custody, _ = make_ledger(wallets=BACKERS, balance=20_000)
        market_id = ledger.create_market("Q", ["A", "B", "C"], DEADLINE, CREATOR)

        accepted = 0
        for action in stakes:
            if run_action(ledger, market_id, action):
                accepted += action[3]

        assert ledger.get_market(market_id).total_staked == accepted
        assert custody.get_balance("escrow") == accepted
