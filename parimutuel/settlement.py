"""
settlement.py - Pari-mutuel Settlement Engine

Proportional payout arithmetic and incremental withdrawal against a Bet:
1. compute_winnings() - Pure payout formula for an amount of winning stake
2. compute_claim() - Redeem part of a winning bet for its share of the pool
3. compute_claim_all() - Redeem everything still unclaimed on a winning bet
4. get_unclaimed_amount() - Remaining redeemable stake on a bet

Payout formula (pari-mutuel, entire pool):

    winnings = floor(market.total_staked * claim_amount / option_total)

A winner's share of the whole pool, losing stakes included, is proportional
to their share of the stakes on the winning option. Integer floor division
loses less than one unit per claim. Claiming a balance in several partial
calls can therefore pay slightly less in total than claiming it at once:

    compute_winnings(a1) + compute_winnings(a2) <= compute_winnings(a1 + a2)

The engine does not track fractional remainders; that loss stays in escrow.

Claims are replay-safe: claimed_amount only grows, a claim can never push it
past amount, and a fully claimed Bet is removed from storage.

All functions take a MarketView (read-only) and return immutable results.
"""

from __future__ import annotations
from dataclasses import replace
from typing import Optional

from .core import (
    MarketView, Market, Bet, Move, RecordChange, PendingOperation,
    build_operation,
    RECORD_BET, OP_CLAIM,
    NotFound, Unauthorized, MarketNotActive, InvalidInput,
    InsufficientBalance, AlreadyClaimed,
    _is_amount,
)
from .lifecycle import _require_backer


def compute_winnings(view: MarketView, market_id: int, option: int, claim_amount: int) -> int:
    """
    Payout owed for claim_amount of stake on an option.

    Args:
        view: Read-only ledger access
        market_id: Market identifier
        option: Option index whose stake is being redeemed
        claim_amount: Amount of stake being redeemed

    Returns:
        floor(total_staked * claim_amount / option total)

    Raises:
        NotFound: Market or the option's OptionTotal does not exist

    Example:
        # 1000 staked in total, all of it on option 1
        compute_winnings(view, 0, 1, 250)  # 250
    """
    market = view.get_market(market_id)
    option_total = view.get_option_total(market_id, option)
    if market is None or option_total is None or option_total.total_amount == 0:
        raise NotFound(f"no stakes recorded for market {market_id} option {option}")
    return market.total_staked * claim_amount // option_total.total_amount


def get_unclaimed_amount(
    view: MarketView,
    market_id: int,
    backer: str,
    option: int,
) -> Optional[int]:
    """Remaining redeemable stake on a bet, or None if no Bet record exists."""
    bet = view.get_bet(market_id, backer, option)
    if bet is None:
        return None
    return bet.unclaimed


def _require_settled_market(view: MarketView, market_id: int) -> Market:
    market = view.get_market(market_id)
    if market is None:
        raise NotFound(f"market {market_id} not found")
    if not market.settled:
        raise MarketNotActive(f"market {market_id} is not settled yet")
    return market


def _require_bet(view: MarketView, market_id: int, backer: str, option: int) -> Bet:
    bet = view.get_bet(market_id, backer, option)
    if bet is None:
        raise NotFound(f"no bet by {backer} on market {market_id} option {option}")
    return bet


def compute_claim(
    view: MarketView,
    market_id: int,
    option: int,
    amount_to_claim: int,
    caller: str,
) -> PendingOperation:
    """
    Describe redeeming amount_to_claim of the caller's winning stake.

    The operation moves the computed winnings from escrow to the caller and
    then increments the Bet's claimed_amount. When the bet is fully claimed
    the record is removed.

    Args:
        view: Read-only ledger access
        market_id: Settled market
        option: Option the caller backed; must be the winning option
        amount_to_claim: Stake to redeem (positive, at most the unclaimed balance)
        caller: Backer redeeming their own stake

    Returns:
        PendingOperation whose result is the winnings transferred.

    Raises:
        NotFound: Market or bet does not exist
        MarketNotActive: Market not settled yet
        Unauthorized: Option is not the winning option, or the caller is the
            escrow or system wallet
        InvalidInput: amount_to_claim is not a positive integer
        InsufficientBalance: amount_to_claim exceeds the unclaimed balance
    """
    _require_backer(view, caller)
    market = _require_settled_market(view, market_id)
    bet = _require_bet(view, market_id, caller, option)
    if option != market.winning_option:
        raise Unauthorized(
            f"option {option} did not win market {market_id}; nothing to claim"
        )
    if not _is_amount(amount_to_claim) or amount_to_claim <= 0:
        raise InvalidInput(f"claim amount must be a positive integer, got {amount_to_claim!r}")
    if bet.claimed_amount + amount_to_claim > bet.amount:
        raise InsufficientBalance(
            f"claim of {amount_to_claim} exceeds unclaimed balance {bet.unclaimed}"
        )

    winnings = compute_winnings(view, market_id, option, amount_to_claim)

    new_bet = replace(bet, claimed_amount=bet.claimed_amount + amount_to_claim)
    if new_bet.fully_claimed:
        new_bet = None
    changes = [RecordChange(RECORD_BET, (market_id, caller, option), bet, new_bet)]

    move = None
    if winnings > 0:
        move = Move(
            quantity=winnings,
            source=view.escrow_wallet,
            dest=caller,
            reference=f"claim_{market_id}_{option}",
        )
    return build_operation(view, OP_CLAIM, caller, changes, transfer=move, result=winnings)


def compute_claim_all(
    view: MarketView,
    market_id: int,
    option: int,
    caller: str,
) -> PendingOperation:
    """
    Describe redeeming the caller's entire unclaimed stake on an option.

    Raises:
        NotFound: Market or bet does not exist
        AlreadyClaimed: Nothing left to redeem
        (plus everything compute_claim() raises)
    """
    if view.get_market(market_id) is None:
        raise NotFound(f"market {market_id} not found")
    bet = _require_bet(view, market_id, caller, option)
    if bet.unclaimed == 0:
        raise AlreadyClaimed(f"bet on market {market_id} option {option} is fully claimed")
    return compute_claim(view, market_id, option, bet.unclaimed, caller)
