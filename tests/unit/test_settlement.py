"""
Tests for settlement.py - Pari-mutuel Settlement Engine

Tests:
- compute_winnings arithmetic, floor rounding and its missing-record errors
- compute_claim gates, claimed_amount bookkeeping and bet removal
- compute_claim_all delegation and the AlreadyClaimed gate
- get_unclaimed_amount
"""

import pytest

from parimutuel import (
    Market, Bet, OptionTotal,
    compute_winnings, compute_claim, compute_claim_all, get_unclaimed_amount,
    NotFound, Unauthorized, MarketNotActive, InvalidInput,
    InsufficientBalance, AlreadyClaimed,
)
from parimutuel.core import RECORD_BET, OP_CLAIM
from tests.fake_view import FakeView


def settled_view(bets=None, totals=None, total_staked=1000, winning_option=1, settled=True):
    """
    Settled Yes/No market 0, "No" winning by default.

    Default pool: alice 300 on Yes, bob 500 and carol 200 on No.
    """
    if totals is None:
        totals = {0: 300, 1: 700}
    if bets is None:
        bets = {("alice", 0): Bet(300), ("bob", 1): Bet(500), ("carol", 1): Bet(200)}
    market = Market(
        market_id=0,
        creator="deployer",
        description="Will it rain tomorrow?",
        options=("Yes", "No"),
        deadline=100,
        total_staked=total_staked,
        settled=settled,
        winning_option=winning_option if settled else None,
    )
    return FakeView(
        markets={0: market},
        bets={(0, backer, option): bet for (backer, option), bet in bets.items()},
        option_totals={(0, option): OptionTotal(amount) for option, amount in totals.items()},
        height=150,
    )


# ============================================================================
# compute_winnings
# ============================================================================

class TestComputeWinnings:

    def test_single_sided_pool_pays_back_stake(self):
        view = settled_view(
            bets={("alice", 1): Bet(500), ("bob", 1): Bet(500)},
            totals={1: 1000},
        )
        assert compute_winnings(view, 0, 1, 250) == 250

    def test_winner_takes_share_of_losing_pool(self):
        view = settled_view()
        # 1000 * 500 / 700 = 714.28...
        assert compute_winnings(view, 0, 1, 500) == 714
        assert compute_winnings(view, 0, 1, 200) == 285

    def test_whole_option_total_pays_whole_pool(self):
        assert compute_winnings(settled_view(), 0, 1, 700) == 1000

    def test_rounds_down(self):
        view = settled_view(bets={}, totals={0: 7, 1: 3}, total_staked=10)
        assert compute_winnings(view, 0, 1, 1) == 3
        assert compute_winnings(view, 0, 1, 2) == 6
        assert compute_winnings(view, 0, 1, 3) == 10

    def test_partial_claims_pay_no_more_than_one_claim(self):
        view = settled_view(bets={}, totals={0: 7, 1: 3}, total_staked=10)
        partial = sum(compute_winnings(view, 0, 1, 1) for _ in range(3))
        assert partial == 9
        assert partial < compute_winnings(view, 0, 1, 3)

    def test_works_before_settlement(self):
        view = settled_view(settled=False)
        assert compute_winnings(view, 0, 0, 300) == 1000

    def test_missing_market(self):
        with pytest.raises(NotFound):
            compute_winnings(FakeView(), 0, 1, 10)

    def test_option_without_stakes(self):
        view = settled_view(bets={}, totals={1: 1000})
        with pytest.raises(NotFound):
            compute_winnings(view, 0, 0, 10)


# ============================================================================
# get_unclaimed_amount
# ============================================================================

class TestUnclaimedAmount:

    def test_fresh_bet(self):
        assert get_unclaimed_amount(settled_view(), 0, "bob", 1) == 500

    def test_partially_claimed(self):
        view = settled_view(bets={("bob", 1): Bet(500, claimed_amount=120)})
        assert get_unclaimed_amount(view, 0, "bob", 1) == 380

    def test_no_bet(self):
        assert get_unclaimed_amount(settled_view(), 0, "dave", 1) is None


# ============================================================================
# compute_claim
# ============================================================================

class TestClaim:

    def test_partial_claim(self):
        pending = compute_claim(settled_view(), 0, 1, 100, "bob")

        assert pending.operation == OP_CLAIM
        assert pending.result == 1000 * 100 // 700
        assert pending.transfer.quantity == pending.result
        assert pending.transfer.source == "escrow"
        assert pending.transfer.dest == "bob"

        (change,) = pending.changes
        assert change.kind == RECORD_BET
        assert change.key == (0, "bob", 1)
        assert change.old == Bet(500)
        assert change.new == Bet(500, claimed_amount=100)

    def test_final_claim_removes_bet(self):
        view = settled_view(bets={("bob", 1): Bet(500, claimed_amount=400)})
        (change,) = compute_claim(view, 0, 1, 100, "bob").changes
        assert change.old == Bet(500, claimed_amount=400)
        assert change.new is None

    def test_claim_exact_unclaimed_balance(self):
        pending = compute_claim(settled_view(), 0, 1, 500, "bob")
        assert pending.result == 714
        assert pending.changes[0].new is None

    def test_zero_winnings_moves_nothing(self):
        view = settled_view(bets={("bob", 1): Bet(5)}, totals={1: 5}, total_staked=0)
        pending = compute_claim(view, 0, 1, 1, "bob")
        assert pending.result == 0
        assert pending.transfer is None
        assert pending.changes[0].new == Bet(5, claimed_amount=1)

    def test_missing_market(self):
        with pytest.raises(NotFound):
            compute_claim(FakeView(), 0, 1, 10, "bob")

    def test_unsettled_market(self):
        with pytest.raises(MarketNotActive):
            compute_claim(settled_view(settled=False), 0, 1, 10, "bob")

    def test_missing_bet(self):
        with pytest.raises(NotFound):
            compute_claim(settled_view(), 0, 1, 10, "dave")

    def test_losing_option(self):
        with pytest.raises(Unauthorized):
            compute_claim(settled_view(), 0, 0, 10, "alice")

    @pytest.mark.parametrize("caller", ["escrow", "system"])
    def test_reserved_wallet_cannot_claim(self, caller):
        view = settled_view(bets={(caller, 1): Bet(700)})
        with pytest.raises(Unauthorized, match="reserved custody wallet"):
            compute_claim(view, 0, 1, 100, caller)

    def test_losing_option_beats_bad_amount(self):
        with pytest.raises(Unauthorized):
            compute_claim(settled_view(), 0, 0, -1, "alice")

    @pytest.mark.parametrize("amount", [0, -5, 2.5, None, True])
    def test_bad_amount(self, amount):
        with pytest.raises(InvalidInput):
            compute_claim(settled_view(), 0, 1, amount, "bob")

    def test_over_claim(self):
        view = settled_view(bets={("bob", 1): Bet(500, claimed_amount=450)})
        with pytest.raises(InsufficientBalance, match="unclaimed balance 50"):
            compute_claim(view, 0, 1, 51, "bob")


# ============================================================================
# compute_claim_all
# ============================================================================

class TestClaimAll:

    def test_claims_remaining_balance(self):
        view = settled_view(bets={("bob", 1): Bet(500, claimed_amount=150)})
        pending = compute_claim_all(view, 0, 1, "bob")
        assert pending.result == 1000 * 350 // 700
        assert pending.changes[0].new is None

    def test_full_bet(self):
        assert compute_claim_all(settled_view(), 0, 1, "carol").result == 285

    def test_missing_market(self):
        with pytest.raises(NotFound):
            compute_claim_all(FakeView(), 0, 1, "bob")

    def test_missing_bet(self):
        with pytest.raises(NotFound):
            compute_claim_all(settled_view(), 0, 1, "dave")

    def test_nothing_left(self):
        # Only reachable with a record left behind at its full claimed amount
        view = settled_view(bets={("bob", 1): Bet(500, claimed_amount=500)})
        with pytest.raises(AlreadyClaimed):
            compute_claim_all(view, 0, 1, "bob")

    def test_losing_option(self):
        with pytest.raises(Unauthorized):
            compute_claim_all(settled_view(), 0, 0, "alice")

    def test_unsettled_market(self):
        with pytest.raises(MarketNotActive):
            compute_claim_all(settled_view(settled=False), 0, 1, "bob")
