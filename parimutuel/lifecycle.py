"""
lifecycle.py - Market Lifecycle Manager

Owns the market state machine and every validation gate in front of it:
1. compute_create_market() - Validate a new market and allocate its id
2. compute_stake() - Add value to a backer's position while the market is OPEN
3. compute_settlement() - Declare the winning option once the market is CLOSED

State machine (derived from the record and the clock, see market_state()):

    OPEN  --(height reaches deadline)-->  CLOSED  --(creator settles)-->  SETTLED

No transition skips a state and none reverses. Staking is only possible in
OPEN; settlement only in CLOSED.

All functions take a MarketView (read-only) and return a PendingOperation.
They raise a MarketError before describing any change, so a rejected
request never reaches the executor.
"""

from __future__ import annotations
from dataclasses import replace
from typing import Sequence

from .core import (
    MarketView, Market, Bet, OptionTotal, Move, RecordChange, PendingOperation,
    MarketState, market_state, build_operation,
    RECORD_MARKET, RECORD_BET, RECORD_OPTION_TOTAL,
    OP_CREATE_MARKET, OP_STAKE, OP_SETTLE,
    NotFound, Unauthorized, AlreadySettled, MarketNotActive, InvalidInput,
    SYSTEM_WALLET, _is_amount,
)


def _require_caller(caller: str) -> None:
    if not isinstance(caller, str) or not caller.strip():
        raise InvalidInput("caller cannot be empty")


def _require_backer(view: MarketView, caller: str) -> None:
    # Stakes and payouts move value between the backer and escrow
    if caller in (view.escrow_wallet, SYSTEM_WALLET):
        raise Unauthorized(f"{caller!r} is a reserved custody wallet and cannot back a market")


def _require_market(view: MarketView, market_id: int) -> Market:
    market = view.get_market(market_id)
    if market is None:
        raise NotFound(f"market {market_id} not found")
    return market


def _require_option(market: Market, option: int) -> None:
    if not market.has_option(option):
        raise InvalidInput(
            f"option {option!r} out of range for market {market.market_id} "
            f"({len(market.options)} options)"
        )


def _validate_options(view: MarketView, options: Sequence[str]) -> tuple:
    config = view.config
    if isinstance(options, str) or not isinstance(options, (list, tuple)):
        raise InvalidInput("options must be a list of labels")
    if not config.min_options <= len(options) <= config.max_options:
        raise InvalidInput(
            f"a market needs between {config.min_options} and "
            f"{config.max_options} options, got {len(options)}"
        )
    for label in options:
        if not isinstance(label, str) or not label.strip():
            raise InvalidInput(f"option labels must be non-empty strings, got {label!r}")
        if len(label) > config.max_option_length:
            raise InvalidInput(
                f"option {label!r} exceeds {config.max_option_length} characters"
            )
    if len(set(options)) != len(options):
        raise InvalidInput("option labels must be distinct")
    return tuple(options)


def compute_create_market(
    view: MarketView,
    description: str,
    options: Sequence[str],
    deadline: int,
    caller: str,
) -> PendingOperation:
    """
    Validate a new market and describe its creation.

    Args:
        view: Read-only ledger access
        description: The question being predicted (non-empty, bounded length)
        options: Outcome labels, between min_options and max_options, distinct
        deadline: Height at which staking closes; must be in the future
        caller: Creator of the market, the only account allowed to settle it

    Returns:
        PendingOperation creating the Market record; its result is the new
        market id.

    Raises:
        InvalidInput: On any validation failure

    Example:
        pending = compute_create_market(view, "Will it rain tomorrow?",
                                        ["Yes", "No"], view.current_height + 100,
                                        "deployer")
        market_id = ledger.execute(pending)
    """
    _require_caller(caller)
    if not isinstance(description, str) or not description.strip():
        raise InvalidInput("description cannot be empty")
    if len(description) > view.config.max_description_length:
        raise InvalidInput(
            f"description exceeds {view.config.max_description_length} characters"
        )
    labels = _validate_options(view, options)
    if not _is_amount(deadline):
        raise InvalidInput(f"deadline must be an integer height, got {deadline!r}")
    height = view.current_height
    if deadline <= height:
        raise InvalidInput(f"deadline {deadline} must be after current height {height}")

    market_id = view.next_market_id
    market = Market(
        market_id=market_id,
        creator=caller,
        description=description,
        options=labels,
        deadline=deadline,
    )
    changes = [RecordChange(RECORD_MARKET, market_id, None, market)]
    return build_operation(
        view, OP_CREATE_MARKET, caller, changes,
        result=market_id, allocates_market_id=market_id,
    )


def compute_stake(
    view: MarketView,
    market_id: int,
    option: int,
    amount: int,
    caller: str,
) -> PendingOperation:
    """
    Describe a stake of amount on one option, on behalf of the caller.

    The stake moves amount from the caller into escrow and then increments,
    in one step, the caller's Bet, the option's OptionTotal and the market's
    total_staked. The backer is always the caller.

    Raises:
        NotFound: Market does not exist
        AlreadySettled: Market has been settled
        MarketNotActive: Deadline has been reached
        InvalidInput: Option out of range, or amount not a positive integer
        Unauthorized: Caller is the escrow or system wallet
    """
    _require_caller(caller)
    _require_backer(view, caller)
    market = _require_market(view, market_id)
    state = market_state(market, view.current_height)
    if state == MarketState.SETTLED:
        raise AlreadySettled(f"market {market_id} is already settled")
    if state != MarketState.OPEN:
        raise MarketNotActive(
            f"market {market_id} closed for staking at height {market.deadline}"
        )
    _require_option(market, option)
    if not _is_amount(amount) or amount <= 0:
        raise InvalidInput(f"stake amount must be a positive integer, got {amount!r}")

    old_bet = view.get_bet(market_id, caller, option)
    if old_bet is None:
        new_bet = Bet(amount=amount)
    else:
        new_bet = replace(old_bet, amount=old_bet.amount + amount)

    old_total = view.get_option_total(market_id, option)
    if old_total is None:
        new_total = OptionTotal(total_amount=amount)
    else:
        new_total = replace(old_total, total_amount=old_total.total_amount + amount)

    new_market = replace(market, total_staked=market.total_staked + amount)

    changes = [
        RecordChange(RECORD_BET, (market_id, caller, option), old_bet, new_bet),
        RecordChange(RECORD_OPTION_TOTAL, (market_id, option), old_total, new_total),
        RecordChange(RECORD_MARKET, market_id, market, new_market),
    ]
    move = Move(
        quantity=amount,
        source=caller,
        dest=view.escrow_wallet,
        reference=f"stake_{market_id}_{option}",
    )
    return build_operation(view, OP_STAKE, caller, changes, transfer=move)


def compute_settlement(
    view: MarketView,
    market_id: int,
    winning_option: int,
    caller: str,
) -> PendingOperation:
    """
    Describe the declaration of a market's winning option.

    Settlement is a single trusted-party action by the market creator, only
    allowed once the deadline has been reached, and irrevocable.

    Raises:
        NotFound: Market does not exist
        Unauthorized: Caller is not the market creator
        MarketNotActive: Deadline not yet reached
        AlreadySettled: Market already settled
        InvalidInput: Winning option out of range
    """
    _require_caller(caller)
    market = _require_market(view, market_id)
    if caller != market.creator:
        raise Unauthorized(f"only the creator of market {market_id} may settle it")
    state = market_state(market, view.current_height)
    if state == MarketState.OPEN:
        raise MarketNotActive(
            f"market {market_id} cannot settle before height {market.deadline}"
        )
    if state == MarketState.SETTLED:
        raise AlreadySettled(f"market {market_id} is already settled")
    _require_option(market, winning_option)

    new_market = replace(market, settled=True, winning_option=winning_option)
    changes = [RecordChange(RECORD_MARKET, market_id, market, new_market)]
    return build_operation(view, OP_SETTLE, caller, changes, result=winning_option)
