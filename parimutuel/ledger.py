"""
ledger.py - Stateful Pari-mutuel Market Ledger

The ParimutuelLedger class is the central state manager for the market system.
It is the only module that mutates market records, ensuring controlled and
auditable changes.

Key responsibilities:
    - Implements MarketView protocol for safe read-only access by pure functions
    - Exposes the public operation surface (create_market, stake, settle,
      claim, claim_all) and the read-only accessors
    - Executes pending operations atomically: the value transfer happens
      first, and records are written only if it succeeds
    - Rejects operations computed against stale records
    - Always logs - every executed operation lands in operation_log
"""

from __future__ import annotations
from collections import defaultdict
import threading
from typing import Any, Callable, Dict, List, Optional, Sequence

from .core import (
    # Types
    Market, Bet, OptionTotal, MarketConfig, MarketState,
    PendingOperation, OperationRecord, RecordChange,
    HeightClock, ValueTransfer,
    market_state,
    # Constants
    DEFAULT_CONFIG, DEFAULT_ESCROW_WALLET,
    RECORD_MARKET, RECORD_BET, RECORD_OPTION_TOTAL, OP_CLAIM,
    # Exceptions
    MarketError, NotFound, TransferFailed, StaleOperation,
)
from .store import LedgerStore
from .lifecycle import compute_create_market, compute_stake, compute_settlement
from .settlement import (
    compute_claim, compute_claim_all, compute_winnings, get_unclaimed_amount,
)


class ParimutuelLedger:
    """
    Pari-mutuel market ledger with atomic execution and audit trail.

    Implements the MarketView protocol, allowing the ledger to be passed to
    the pure compute functions in lifecycle.py and settlement.py.

    Design Principles:
        - Validate first: compute functions raise before describing any change.
        - Transfer before write: a failed transfer aborts with no record touched.
        - Always logs: every executed operation is recorded in operation_log.

    Thread Safety:
        Each public mutating operation computes and executes under one
        re-entrant lock, so read-modify-write sequences on a Bet or
        OptionTotal cannot interleave.

    Example:
        custody = CustodyLedger("bank")
        custody.register_wallet("escrow")
        clock = ManualClock()
        ledger = ParimutuelLedger(custody, clock)

        market_id = ledger.create_market("Will it rain tomorrow?", ["Yes", "No"],
                                         deadline=100, caller="deployer")
        ledger.stake(market_id, 1, 500, caller="alice")
    """

    def __init__(
        self,
        custody: ValueTransfer,
        clock: HeightClock,
        store: Optional[LedgerStore] = None,
        config: Optional[MarketConfig] = None,
        escrow_wallet: str = DEFAULT_ESCROW_WALLET,
        verbose: bool = True,
    ):
        """
        Create a market ledger.

        Args:
            custody: Value-transfer primitive holding the staked funds
            clock: Height clock used for deadline checks
            store: Record storage (default: a new empty LedgerStore)
            config: Market validation limits (default: DEFAULT_CONFIG)
            escrow_wallet: Custody wallet that holds staked value
            verbose: Print one line per applied or rejected operation
        """
        if not escrow_wallet or not escrow_wallet.strip():
            raise ValueError("escrow_wallet cannot be empty")
        self.custody = custody
        self.clock = clock
        self.store = store if store is not None else LedgerStore()
        self._config = config or DEFAULT_CONFIG
        self._escrow_wallet = escrow_wallet
        self.verbose = verbose
        self.operation_log: List[OperationRecord] = []
        self._next_sequence: int = 0
        self._lock = threading.RLock()
        # Height pinned by _run for the operation the current thread is running
        self._pinned = threading.local()

    # ========================================================================
    # MarketView PROTOCOL IMPLEMENTATION (read-only methods)
    # ========================================================================

    @property
    def current_height(self) -> int:
        """
        Current height of the deadline clock.

        Read fresh on every call, except inside a public operation, which
        sees one height from compute through execute.
        """
        height = getattr(self._pinned, 'height', None)
        if height is not None:
            return height
        return self.clock.current_height

    @property
    def next_market_id(self) -> int:
        return self.store.next_market_id

    @property
    def config(self) -> MarketConfig:
        return self._config

    @property
    def escrow_wallet(self) -> str:
        return self._escrow_wallet

    def get_market(self, market_id: int) -> Optional[Market]:
        """Return the Market record, or None if absent."""
        return self.store.get_market(market_id)

    def get_bet(self, market_id: int, backer: str, option: int) -> Optional[Bet]:
        """Return the Bet record, or None if absent or fully claimed."""
        return self.store.get_bet(market_id, backer, option)

    def get_option_total(self, market_id: int, option: int) -> Optional[OptionTotal]:
        """Return the OptionTotal record, or None if nobody staked on the option."""
        return self.store.get_option_total(market_id, option)

    # ========================================================================
    # READ-ONLY ACCESSORS
    # ========================================================================

    def get_unclaimed_amount(self, market_id: int, backer: str, option: int) -> Optional[int]:
        """Remaining redeemable stake on a bet, or None if no Bet record exists."""
        return get_unclaimed_amount(self, market_id, backer, option)

    def compute_winnings(self, market_id: int, option: int, claim_amount: int) -> int:
        """Payout owed for claim_amount of stake on an option (see settlement.py)."""
        return compute_winnings(self, market_id, option, claim_amount)

    def get_market_state(self, market_id: int) -> MarketState:
        """
        Lifecycle state of a market at the current height.

        Raises:
            NotFound: If the market does not exist
        """
        market = self.store.get_market(market_id)
        if market is None:
            raise NotFound(f"market {market_id} not found")
        return market_state(market, self.current_height)

    def list_markets(self) -> List[int]:
        """List all market ids in ascending order."""
        return self.store.list_markets()

    # ========================================================================
    # PUBLIC OPERATIONS (Mutating)
    # ========================================================================

    def create_market(
        self,
        description: str,
        options: Sequence[str],
        deadline: int,
        caller: str,
    ) -> int:
        """
        Create a market and return its id.

        Raises:
            InvalidInput: On any validation failure
        """
        return self._run(compute_create_market, description, options, deadline, caller)

    def stake(self, market_id: int, option: int, amount: int, caller: str) -> None:
        """
        Stake amount on an option on behalf of the caller.

        Raises:
            NotFound, AlreadySettled, MarketNotActive, InvalidInput, TransferFailed
        """
        self._run(compute_stake, market_id, option, amount, caller)

    def settle(self, market_id: int, winning_option: int, caller: str) -> None:
        """
        Declare the winning option. Only the creator, only after the deadline, only once.

        Raises:
            NotFound, Unauthorized, MarketNotActive, AlreadySettled, InvalidInput
        """
        self._run(compute_settlement, market_id, winning_option, caller)

    def claim(self, market_id: int, option: int, amount: int, caller: str) -> int:
        """
        Redeem amount of the caller's winning stake and return the winnings paid.

        Raises:
            NotFound, MarketNotActive, Unauthorized, InvalidInput,
            InsufficientBalance, TransferFailed
        """
        return self._run(compute_claim, market_id, option, amount, caller)

    def claim_all(self, market_id: int, option: int, caller: str) -> int:
        """
        Redeem the caller's entire unclaimed stake and return the winnings paid.

        Raises:
            NotFound, AlreadyClaimed, plus everything claim() raises
        """
        return self._run(compute_claim_all, market_id, option, caller)

    def _run(self, compute: Callable[..., PendingOperation], *args) -> Any:
        """
        Compute and execute one operation under the ledger lock.

        The clock is read once; compute and execute both see that height,
        so a clock advancing mid-operation cannot make the operation stale.
        """
        with self._lock:
            self._pinned.height = self.clock.current_height
            try:
                pending = compute(self, *args)
                return self.execute(pending)
            except MarketError as e:
                if self.verbose:
                    print(f"✗ REJECTED: {e.code}: {e}")
                raise
            finally:
                self._pinned.height = None

    # ========================================================================
    # EXECUTION (Mutating)
    # ========================================================================

    def execute(self, pending: PendingOperation) -> Any:
        """
        Execute a PendingOperation atomically.

        Steps:
        1. Check the operation was computed at the current height against
           the records currently stored (optimistic concurrency)
        2. Perform the value transfer, if any
        3. Apply record changes and allocate the market id, if any
        4. Append an OperationRecord to the audit log

        Nothing is written unless steps 1 and 2 succeed.

        Args:
            pending: PendingOperation to execute

        Returns:
            The operation's result (new market id, winnings paid, ...)

        Raises:
            StaleOperation: If the operation no longer matches ledger state
            TransferFailed: If the value-transfer primitive rejected the move
        """
        with self._lock:
            if pending.is_empty():
                return pending.result

            self._check_current(pending)

            move = pending.transfer
            if move is not None:
                if not self.custody.transfer(move.quantity, move.source, move.dest):
                    raise TransferFailed(
                        f"{pending.operation}: transfer of {move.quantity} "
                        f"from {move.source} to {move.dest} failed"
                    )

            if pending.allocates_market_id is not None:
                self.store.allocate_market_id()
            for change in pending.changes:
                self._apply_change(change)

            record = OperationRecord(
                sequence_number=self._next_sequence,
                operation=pending.operation,
                caller=pending.caller,
                height=pending.height,
                transfer=move,
                changes=pending.changes,
                result=pending.result,
            )
            self._next_sequence += 1
            self.operation_log.append(record)

            if self.verbose:
                print(f"✓ APPLIED: {record}")
                for change in record.changes:
                    fields = ", ".join(
                        f"{name}: {old!r} → {new!r}"
                        for name, (old, new) in change.changed_fields().items()
                    )
                    print(f"    [{change.kind} {change.key}] {fields}")
            return pending.result

    def _check_current(self, pending: PendingOperation) -> None:
        height = self.current_height
        if pending.height != height:
            raise StaleOperation(
                f"{pending.operation} computed at height {pending.height}, "
                f"ledger is at {height}"
            )
        if (pending.allocates_market_id is not None
                and pending.allocates_market_id != self.store.next_market_id):
            raise StaleOperation(
                f"market id {pending.allocates_market_id} already allocated"
            )
        for change in pending.changes:
            current = self._stored_record(change)
            if current != change.old:
                raise StaleOperation(
                    f"{change.kind} {change.key}: expected {change.old!r}, found {current!r}"
                )

    def _stored_record(self, change: RecordChange) -> Any:
        if change.kind == RECORD_MARKET:
            return self.store.get_market(change.key)
        if change.kind == RECORD_BET:
            return self.store.get_bet(*change.key)
        return self.store.get_option_total(*change.key)

    def _apply_change(self, change: RecordChange) -> None:
        if change.kind == RECORD_MARKET:
            self.store.put_market(change.new)
        elif change.kind == RECORD_BET:
            if change.new is None:
                self.store.delete_bet(*change.key)
            else:
                self.store.put_bet(*change.key, change.new)
        elif change.kind == RECORD_OPTION_TOTAL:
            self.store.put_option_total(*change.key, change.new)

    # ========================================================================
    # AUDIT
    # ========================================================================

    def total_paid_out(self, market_id: Optional[int] = None) -> int:
        """
        Sum of winnings transferred out of escrow, from the operation log.

        Args:
            market_id: Restrict to one market (default: all markets)
        """
        total = 0
        for record in self.operation_log:
            if record.operation != OP_CLAIM or record.transfer is None:
                continue
            if market_id is not None and record.changes[0].key[0] != market_id:
                continue
            total += record.transfer.quantity
        return total

    def _removed_bet_amounts(self, market_id: int) -> Dict[int, int]:
        # Fully claimed bets leave the store; their stake is still in the option total
        removed: Dict[int, int] = defaultdict(int)
        for record in self.operation_log:
            for change in record.changes:
                if change.kind == RECORD_BET and change.new is None and change.key[0] == market_id:
                    removed[change.key[2]] += change.old.amount
        return removed

    def verify_market(self, market_id: int) -> Dict[str, Any]:
        """
        Verify the accounting invariants of one market.

        Checks:
        - sum of OptionTotal amounts == Market.total_staked
        - per option, outstanding bet amounts plus fully claimed (removed)
          bet amounts == OptionTotal amount
        - no bet on a losing or unsettled option has claimed anything
        - total paid out never exceeds total staked

        claimed_amount <= amount and winning_option-iff-settled are enforced
        by the Bet and Market constructors and need no check here.

        Returns:
            Dict with keys:
            - 'valid': bool - True if all invariants hold
            - 'total_staked': int
            - 'option_totals': Dict[int, int]
            - 'paid_out': int
            - 'discrepancies': List[Dict] - description of each violation

        Raises:
            NotFound: If the market does not exist
        """
        market = self.store.get_market(market_id)
        if market is None:
            raise NotFound(f"market {market_id} not found")

        discrepancies = []
        option_totals = {
            option: total.total_amount
            for option, total in self.store.option_totals_for_market(market_id)
        }
        if sum(option_totals.values()) != market.total_staked:
            discrepancies.append({
                'check': 'option_totals',
                'expected': market.total_staked,
                'actual': sum(option_totals.values()),
            })

        bet_sums: Dict[int, int] = self._removed_bet_amounts(market_id)
        for (_, backer, option), bet in self.store.bets_for_market(market_id):
            bet_sums[option] += bet.amount
            if bet.claimed_amount and option != market.winning_option:
                discrepancies.append({
                    'check': 'claim_on_losing_option',
                    'backer': backer,
                    'option': option,
                    'claimed': bet.claimed_amount,
                })
        for option in sorted(set(option_totals) | set(bet_sums)):
            expected = option_totals.get(option, 0)
            actual = bet_sums.get(option, 0)
            if expected != actual:
                discrepancies.append({
                    'check': 'bet_sum',
                    'option': option,
                    'expected': expected,
                    'actual': actual,
                })

        paid_out = self.total_paid_out(market_id)
        if paid_out > market.total_staked:
            discrepancies.append({
                'check': 'paid_out',
                'expected': market.total_staked,
                'actual': paid_out,
            })

        return {
            'valid': len(discrepancies) == 0,
            'total_staked': market.total_staked,
            'option_totals': option_totals,
            'paid_out': paid_out,
            'discrepancies': discrepancies,
        }

    def verify_all(self) -> Dict[str, Any]:
        """
        Verify every market, and escrow holdings when the custody exposes balances.

        Escrow must hold exactly what was staked minus what was paid out.

        Returns:
            Dict with keys 'valid', 'markets' (market id -> verify_market result)
            and 'discrepancies' (ledger-wide violations).
        """
        markets = {market_id: self.verify_market(market_id) for market_id in self.list_markets()}
        discrepancies = []

        get_balance = getattr(self.custody, 'get_balance', None)
        if get_balance is not None:
            expected = sum(m['total_staked'] for m in markets.values()) - self.total_paid_out()
            actual = get_balance(self._escrow_wallet)
            if actual != expected:
                discrepancies.append({
                    'check': 'escrow_balance',
                    'expected': expected,
                    'actual': actual,
                })

        return {
            'valid': not discrepancies and all(m['valid'] for m in markets.values()),
            'markets': markets,
            'discrepancies': discrepancies,
        }
