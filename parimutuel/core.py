"""
Core types and pure functions for the pari-mutuel market ledger.

This module provides the foundational data structures and protocols:
1. Protocols: MarketView for read-only ledger access, HeightClock and
   ValueTransfer for the external collaborators
2. Immutable records: Market, Bet, OptionTotal
3. Immutable operation types: Move, RecordChange, PendingOperation, OperationRecord
4. Exceptions: MarketError and the settlement error taxonomy
5. Configuration: MarketConfig and its default limits

All functions in this module are pure and operate on read-only views.
No function can mutate ledger state directly.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import (
    Any, Dict, Optional, Protocol, Sequence, Tuple, runtime_checkable
)


# ============================================================================
# CONSTANTS
# ============================================================================

# Reserved wallet for issuance in the custody ledger.
# The system wallet is exempt from balance validation and can hold any balance.
SYSTEM_WALLET = "system"

# Wallet that holds staked value on behalf of every market.
DEFAULT_ESCROW_WALLET = "escrow"

# Market shape limits.
MIN_OPTIONS = 1
MAX_OPTIONS = 10
MAX_DESCRIPTION_LENGTH = 256
MAX_OPTION_LENGTH = 50

# Record kind constants (strings, matching the unit type convention).
RECORD_MARKET = "MARKET"
RECORD_BET = "BET"
RECORD_OPTION_TOTAL = "OPTION_TOTAL"

# Operation names recorded in the audit log.
OP_CREATE_MARKET = "create_market"
OP_STAKE = "stake"
OP_SETTLE = "settle"
OP_CLAIM = "claim"


# ============================================================================
# TYPE ALIASES
# ============================================================================

# (market_id, backer, option)
BetKey = Tuple[int, str, int]

# (market_id, option)
OptionKey = Tuple[int, int]


# ============================================================================
# ENUMS
# ============================================================================

class MarketState(Enum):
    """
    Lifecycle state of a market, derived from the record and the current height.

    OPEN: Accepting stakes (height < deadline, unsettled).
    CLOSED: Deadline reached, waiting for the creator to settle.
    SETTLED: Winning option declared; terminal.
    """
    OPEN = "open"
    CLOSED = "closed"
    SETTLED = "settled"


class ErrorKind(Enum):
    """Classification of a rejected market operation."""
    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    ALREADY_SETTLED = "already_settled"
    MARKET_NOT_ACTIVE = "market_not_active"
    INVALID_INPUT = "invalid_input"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    ALREADY_CLAIMED = "already_claimed"
    TRANSFER_FAILED = "transfer_failed"
    STALE_OPERATION = "stale_operation"


# ============================================================================
# EXCEPTIONS
# ============================================================================

class MarketError(Exception):
    """
    Base exception for all rejected market operations.

    Every rejection is raised before any record is written, so catching a
    MarketError always leaves the ledger exactly as it was.
    """
    kind: ErrorKind = None
    code: str = "ERR_MARKET"


class NotFound(MarketError):
    """Raised when a market, bet or option-total record is absent."""
    kind = ErrorKind.NOT_FOUND
    code = "ERR_NOT_FOUND"


class Unauthorized(MarketError):
    """Raised when the caller lacks the privilege, or claims a losing option."""
    kind = ErrorKind.UNAUTHORIZED
    code = "ERR_UNAUTHORIZED"


class AlreadySettled(MarketError):
    """Raised on a duplicate resolution, or a stake against a settled market."""
    kind = ErrorKind.ALREADY_SETTLED
    code = "ERR_ALREADY_SETTLED"


class MarketNotActive(MarketError):
    """Raised when an operation is attempted outside its lifecycle state."""
    kind = ErrorKind.MARKET_NOT_ACTIVE
    code = "ERR_MARKET_ACTIVE"


class InvalidInput(MarketError):
    """Raised for a malformed description, option list, deadline, option index or amount."""
    kind = ErrorKind.INVALID_INPUT
    code = "ERR_INVALID_INPUT"


class InsufficientBalance(MarketError):
    """Raised when a claim exceeds the bet's remaining entitlement."""
    kind = ErrorKind.INSUFFICIENT_BALANCE
    code = "ERR_INSUFFICIENT_BALANCE"


class AlreadyClaimed(MarketError):
    """Raised when claim_all finds nothing left to withdraw."""
    kind = ErrorKind.ALREADY_CLAIMED
    code = "ERR_ALREADY_CLAIMED"


class TransferFailed(MarketError):
    """Raised when the value-transfer primitive rejects a move."""
    kind = ErrorKind.TRANSFER_FAILED
    code = "ERR_TRANSFER_FAILED"


class StaleOperation(MarketError):
    """Raised when a pending operation was computed against outdated records."""
    kind = ErrorKind.STALE_OPERATION
    code = "ERR_STALE_OPERATION"


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass(frozen=True, slots=True)
class MarketConfig:
    """
    Limits applied when validating new markets.

    Attributes:
        max_description_length: Longest accepted market description.
        max_option_length: Longest accepted outcome label.
        min_options: Fewest outcome labels a market may have.
        max_options: Most outcome labels a market may have.
    """
    max_description_length: int = MAX_DESCRIPTION_LENGTH
    max_option_length: int = MAX_OPTION_LENGTH
    min_options: int = MIN_OPTIONS
    max_options: int = MAX_OPTIONS

    def __post_init__(self):
        if self.max_description_length < 1:
            raise ValueError("max_description_length must be at least 1")
        if self.max_option_length < 1:
            raise ValueError("max_option_length must be at least 1")
        if self.min_options < 1:
            raise ValueError("min_options must be at least 1")
        if self.max_options < self.min_options:
            raise ValueError(
                f"max_options ({self.max_options}) < min_options ({self.min_options})"
            )


DEFAULT_CONFIG = MarketConfig()


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class HeightClock(Protocol):
    """Monotonic height counter used as the deadline clock."""

    @property
    def current_height(self) -> int:
        """Return the current height. Never decreases."""
        ...


@runtime_checkable
class ValueTransfer(Protocol):
    """
    Atomic value-transfer primitive.

    transfer() either moves the full amount and returns True, or moves
    nothing and returns False.
    """

    def transfer(self, amount: int, source: str, dest: str) -> bool:
        ...


@runtime_checkable
class MarketView(Protocol):
    """
    Read-only interface to market ledger state.

    The compute functions in lifecycle.py and settlement.py accept a
    MarketView and declare their read-only intent by doing so. The
    ParimutuelLedger implements this protocol but also provides mutation
    methods. For testing, FakeView provides a plain implementation.
    """

    @property
    def current_height(self) -> int:
        """Return the current height of the deadline clock."""
        ...

    @property
    def next_market_id(self) -> int:
        """Return the id the next created market will receive."""
        ...

    @property
    def config(self) -> MarketConfig:
        """Return the limits used to validate new markets."""
        ...

    @property
    def escrow_wallet(self) -> str:
        """Return the wallet that holds staked value."""
        ...

    def get_market(self, market_id: int) -> Optional['Market']:
        """Return the Market record, or None if absent."""
        ...

    def get_bet(self, market_id: int, backer: str, option: int) -> Optional['Bet']:
        """Return the Bet record, or None if absent."""
        ...

    def get_option_total(self, market_id: int, option: int) -> Optional['OptionTotal']:
        """Return the OptionTotal record, or None if absent."""
        ...


# ============================================================================
# RECORDS
# ============================================================================

def _is_amount(value: Any) -> bool:
    # bool is an int subclass; True is not a stake
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass(frozen=True, slots=True)
class Market:
    """
    A prediction market over a fixed set of outcome labels.

    Attributes:
        market_id: Sequentially assigned identifier.
        creator: Account that created the market; the only one allowed to settle it.
        description: Human-readable question.
        options: Ordered outcome labels; an option is referred to by its index.
        deadline: Height at which staking closes and settlement opens.
        total_staked: Sum of every stake ever placed on the market.
        settled: Whether the winning option has been declared.
        winning_option: Index of the winning option, None until settled.

    Instances are immutable. Staking and settlement replace the record.
    """
    market_id: int
    creator: str
    description: str
    options: Tuple[str, ...]
    deadline: int
    total_staked: int = 0
    settled: bool = False
    winning_option: Optional[int] = None

    def __post_init__(self):
        if not isinstance(self.options, tuple):
            object.__setattr__(self, 'options', tuple(self.options))
        if not _is_amount(self.total_staked) or self.total_staked < 0:
            raise ValueError(f"total_staked must be a non-negative int, got {self.total_staked!r}")
        if self.settled != (self.winning_option is not None):
            raise ValueError("winning_option must be set if and only if the market is settled")
        if self.winning_option is not None and not self.has_option(self.winning_option):
            raise ValueError(f"winning_option {self.winning_option} out of range")

    def has_option(self, option: int) -> bool:
        """Return True if option is a valid index into this market's options."""
        return _is_amount(option) and 0 <= option < len(self.options)

    def option_index(self, label: str) -> int:
        """
        Resolve an outcome label to its option index.

        Raises:
            InvalidInput: If the label is not one of the market's options.
        """
        try:
            return self.options.index(label)
        except ValueError:
            raise InvalidInput(f"market {self.market_id} has no option {label!r}") from None

    def __repr__(self) -> str:
        status = f"settled={self.options[self.winning_option]!r}" if self.settled else "unsettled"
        return (
            f"Market({self.market_id}: {self.description!r}, "
            f"staked={self.total_staked}, deadline={self.deadline}, {status})"
        )


@dataclass(frozen=True, slots=True)
class Bet:
    """
    Cumulative stake of one backer on one option of one market.

    Attributes:
        amount: Total staked by this backer on this option.
        claimed_amount: Portion of amount already redeemed for winnings.
    """
    amount: int
    claimed_amount: int = 0

    def __post_init__(self):
        if not _is_amount(self.amount) or self.amount < 0:
            raise ValueError(f"Bet amount must be a non-negative int, got {self.amount!r}")
        if not _is_amount(self.claimed_amount) or self.claimed_amount < 0:
            raise ValueError(f"Bet claimed_amount must be a non-negative int, got {self.claimed_amount!r}")
        if self.claimed_amount > self.amount:
            raise ValueError(
                f"Bet claimed_amount {self.claimed_amount} exceeds amount {self.amount}"
            )

    @property
    def unclaimed(self) -> int:
        return self.amount - self.claimed_amount

    @property
    def fully_claimed(self) -> bool:
        return self.claimed_amount == self.amount


@dataclass(frozen=True, slots=True)
class OptionTotal:
    """Gross historical stake on one option; the payout denominator."""
    total_amount: int

    def __post_init__(self):
        if not _is_amount(self.total_amount) or self.total_amount < 0:
            raise ValueError(f"total_amount must be a non-negative int, got {self.total_amount!r}")


def market_state(market: Market, height: int) -> MarketState:
    """
    Derive a market's lifecycle state at a given height.

    The state is never stored; it is recomputed on every call so that
    deadline checks always see the current height.
    """
    if market.settled:
        return MarketState.SETTLED
    if height < market.deadline:
        return MarketState.OPEN
    return MarketState.CLOSED


# ============================================================================
# OPERATIONS
# ============================================================================

@dataclass(frozen=True, slots=True)
class Move:
    """
    A single transfer of value between two wallets.

    Attributes:
        quantity: The amount to transfer (positive int).
        source: The wallet ID from which value is debited.
        dest: The wallet ID to which value is credited.
        reference: Identifier of the operation generating this move.

    All fields are validated in __post_init__.
    """
    quantity: int
    source: str
    dest: str
    reference: str

    def __post_init__(self):
        if not self.source or not self.source.strip():
            raise ValueError("Move source cannot be empty")
        if not self.dest or not self.dest.strip():
            raise ValueError("Move dest cannot be empty")
        if not self.reference or not self.reference.strip():
            raise ValueError("Move reference cannot be empty")
        if not _is_amount(self.quantity):
            raise ValueError(f"Move quantity must be int, got {type(self.quantity)}")
        if self.quantity <= 0:
            raise ValueError(f"Move quantity must be positive, got {self.quantity}")
        if self.source == self.dest:
            raise ValueError("Source and dest must be different")

    def __repr__(self) -> str:
        return f"Move({self.quantity}: {self.source}→{self.dest})"


@dataclass(frozen=True, slots=True)
class RecordChange:
    """
    Before/after snapshot of one stored record.

    old is None when the record is created; new is None when it is removed.
    The executor compares old against the stored record before applying
    anything, which rejects operations computed against stale state.

    Attributes:
        kind: RECORD_MARKET, RECORD_BET or RECORD_OPTION_TOTAL
        key: market_id, BetKey or OptionKey depending on kind
        old: Record before the change
        new: Record after the change
    """
    kind: str
    key: Any
    old: Any
    new: Any

    def __post_init__(self):
        if self.kind not in (RECORD_MARKET, RECORD_BET, RECORD_OPTION_TOTAL):
            raise ValueError(f"Unknown record kind: {self.kind}")
        if self.old is None and self.new is None:
            raise ValueError("RecordChange must have an old or a new record")

    def changed_fields(self) -> Dict[str, Tuple[Any, Any]]:
        """
        Compute fields that differ between old and new record.

        Returns:
            Dict mapping field name to (old_value, new_value) tuples.
        """
        template = self.new if self.new is not None else self.old
        changes = {}
        for name in template.__slots__:
            old_val = getattr(self.old, name, None) if self.old is not None else None
            new_val = getattr(self.new, name, None) if self.new is not None else None
            if old_val != new_val:
                changes[name] = (old_val, new_val)
        return changes


@dataclass(frozen=True, slots=True)
class PendingOperation:
    """
    An operation specification before execution - represents INTENT.

    Created by the compute functions and submitted to the ledger for
    execution. At most one transfer is carried, so the value-transfer
    primitive's own atomicity covers the whole operation.

    Attributes:
        operation: Operation name (OP_* constant)
        caller: Account that requested the operation
        height: Clock height the operation was computed at
        transfer: Value movement to perform before writing records, if any
        changes: Record writes to apply after the transfer succeeds
        result: Value returned to the caller (market id, winnings, ...)
        allocates_market_id: Market id this operation creates, if any
    """
    operation: str
    caller: str
    height: int
    transfer: Optional[Move] = None
    changes: Tuple[RecordChange, ...] = ()
    result: Any = None
    allocates_market_id: Optional[int] = None

    def is_empty(self) -> bool:
        """Return True if this operation has no transfer and no record changes."""
        return self.transfer is None and not self.changes

    def __repr__(self) -> str:
        return (
            f"PendingOperation({self.operation} by {self.caller}, "
            f"{len(self.changes)} changes, transfer={self.transfer})"
        )


@dataclass(frozen=True, slots=True)
class OperationRecord:
    """
    An executed, immutable record of a ledger operation - represents FACT.

    Attributes:
        sequence_number: Monotonic sequence within the ledger
        operation: Operation name
        caller: Account that requested the operation
        height: Clock height at execution
        transfer: The value movement performed, if any
        changes: Record writes applied
        result: Value returned to the caller
    """
    sequence_number: int
    operation: str
    caller: str
    height: int
    transfer: Optional[Move]
    changes: Tuple[RecordChange, ...]
    result: Any = None

    def __repr__(self) -> str:
        return (
            f"OperationRecord(#{self.sequence_number} {self.operation} by {self.caller} "
            f"@ {self.height}, result={self.result!r})"
        )


def build_operation(
    view: MarketView,
    operation: str,
    caller: str,
    changes: Sequence[RecordChange],
    transfer: Optional[Move] = None,
    result: Any = None,
    allocates_market_id: Optional[int] = None,
) -> PendingOperation:
    """
    Build a PendingOperation stamped with the view's current height.

    This is the standard way for compute functions to describe their effect.

    Example:
        def compute_settlement(view, market_id, winning_option, caller):
            market = view.get_market(market_id)
            new_market = replace(market, settled=True, winning_option=winning_option)
            changes = [RecordChange(RECORD_MARKET, market_id, market, new_market)]
            return build_operation(view, OP_SETTLE, caller, changes)
    """
    return PendingOperation(
        operation=operation,
        caller=caller,
        height=view.current_height,
        transfer=transfer,
        changes=tuple(changes),
        result=result,
        allocates_market_id=allocates_market_id,
    )
