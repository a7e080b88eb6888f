"""
custody.py - Integer Double-Entry Custody Ledger

Reference implementation of the value-transfer primitive the market ledger
depends on. Balances are integer amounts of a single unit of account held
in registered wallets; value moves only through validated, atomic moves.

Key responsibilities:
    - Implements the ValueTransfer protocol (transfer() -> bool)
    - Executes batches of moves atomically (all moves succeed or all fail)
    - Issues new value only from the SYSTEM_WALLET
    - Always validates and always logs
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from .core import Move, SYSTEM_WALLET


class ExecuteResult(Enum):
    """
    Outcome of a custody transaction attempt.

    APPLIED: All moves were validated and applied.
    REJECTED: Validation failed; no move was applied.
    """
    APPLIED = "applied"
    REJECTED = "rejected"


class LedgerError(Exception):
    """Base exception for custody ledger misuse."""
    pass


class WalletNotRegistered(LedgerError):
    """Raised when querying a wallet that has not been registered."""
    pass


@dataclass(frozen=True, slots=True)
class CustodyTransaction:
    """
    An executed batch of moves.

    Attributes:
        sequence_number: Monotonic sequence within the custody ledger
        moves: The moves applied, in order
    """
    sequence_number: int
    moves: Tuple[Move, ...]

    def __repr__(self) -> str:
        moves = ", ".join(repr(m) for m in self.moves)
        return f"CustodyTransaction(#{self.sequence_number}: {moves})"


class CustodyLedger:
    """
    Double-entry wallet ledger with integer balances.

    Design Principles:
        - Always validates: every move is checked against wallet registration
          and the no-overdraft rule before anything is applied.
        - Always logs: every applied batch is recorded in transaction_log.

    Thread Safety:
        Not thread-safe. ParimutuelLedger calls transfer() while holding its lock.

    Example:
        custody = CustodyLedger("bank")
        custody.register_wallet("alice")
        custody.register_wallet("escrow")
        custody.issue("alice", 1000)
        custody.transfer(100, "alice", "escrow")  # True
    """

    def __init__(self, name: str, verbose: bool = True, test_mode: bool = False):
        """
        Create a custody ledger.

        Args:
            name: Ledger identifier
            verbose: Print one line per applied or rejected transaction
            test_mode: Allow set_balance() calls
        """
        self.name = name
        self.balances: Dict[str, int] = {}
        self.registered_wallets: Set[str] = set()
        self.transaction_log: List[CustodyTransaction] = []
        self.verbose = verbose
        self._test_mode = test_mode
        self._next_sequence: int = 0

        # Auto-register the system wallet (used for issuance/redemption)
        self.registered_wallets.add(SYSTEM_WALLET)
        self.balances[SYSTEM_WALLET] = 0

    # ========================================================================
    # READS
    # ========================================================================

    def get_balance(self, wallet_id: str) -> int:
        """
        Get a wallet's balance.

        Raises:
            WalletNotRegistered: If wallet is not registered
        """
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        return self.balances[wallet_id]

    def is_registered(self, wallet_id: str) -> bool:
        """Check if a wallet is registered."""
        return wallet_id in self.registered_wallets

    def list_wallets(self) -> Set[str]:
        """List all registered wallet IDs."""
        return self.registered_wallets.copy()

    def total_supply(self) -> int:
        """
        Sum of all balances across all wallets, including the system wallet.

        Always zero for a ledger whose balances only changed through moves,
        since the system wallet goes negative by exactly what it issued.
        """
        return sum(self.balances[w] for w in sorted(self.registered_wallets))

    def verify_double_entry(self, expected_supply: Optional[int] = None) -> Dict[str, Any]:
        """
        Verify the conservation law: total supply is constant.

        Args:
            expected_supply: Supply to compare against. Defaults to 0, the
                             supply of a ledger funded only through issue().

        Returns:
            Dict with keys:
            - 'valid': bool - True if the supply matches
            - 'supply': int - Current total supply
            - 'discrepancies': List[Dict] - expected/actual/difference if invalid

        Example:
            result = custody.verify_double_entry()
            assert result['valid'], f"Conservation violated: {result['discrepancies']}"
        """
        expected = 0 if expected_supply is None else expected_supply
        supply = self.total_supply()
        discrepancies = []
        if supply != expected:
            discrepancies.append({
                'expected': expected,
                'actual': supply,
                'difference': supply - expected,
            })
        return {
            'valid': len(discrepancies) == 0,
            'supply': supply,
            'discrepancies': discrepancies,
        }

    # ========================================================================
    # REGISTRATION (Mutating)
    # ========================================================================

    def register_wallet(self, wallet_id: str) -> str:
        """
        Register a new wallet.

        Raises:
            ValueError: If wallet is already registered or the id is empty
        """
        if not wallet_id or not wallet_id.strip():
            raise ValueError("Wallet id cannot be empty")
        if wallet_id in self.registered_wallets:
            raise ValueError(f"Wallet {wallet_id} already registered")
        self.registered_wallets.add(wallet_id)
        self.balances[wallet_id] = 0
        return wallet_id

    def set_balance(self, wallet_id: str, quantity: int) -> None:
        """
        Set a wallet's balance directly.

        WARNING: This method bypasses double-entry accounting and is only
        available in test mode. Use issue() or transfer() otherwise.

        Raises:
            LedgerError: If called when test_mode is False
        """
        if not self._test_mode:
            raise LedgerError(
                "set_balance() is disabled in production mode. "
                "Use issue() or transfer() to modify balances. "
                "Set test_mode=True when creating CustodyLedger for testing."
            )
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        self.balances[wallet_id] = quantity

    # ========================================================================
    # EXECUTION (Mutating)
    # ========================================================================

    def issue(self, wallet_id: str, amount: int) -> ExecuteResult:
        """Credit a wallet with newly issued value from the system wallet."""
        return self.execute([Move(amount, SYSTEM_WALLET, wallet_id, f"issue_{wallet_id}")])

    def transfer(self, amount: int, source: str, dest: str) -> bool:
        """
        Move value between two wallets atomically.

        Malformed requests (non-positive amount, same wallet on both sides)
        are reported as failures rather than raised.

        Returns:
            True if the move was applied, False if nothing changed.
        """
        try:
            move = Move(amount, source, dest, f"transfer_{source}_{dest}")
        except ValueError as e:
            if self.verbose:
                print(f"✗ REJECTED: {e}")
            return False
        return self.execute([move]) == ExecuteResult.APPLIED

    def execute(self, moves: Iterable[Move]) -> ExecuteResult:
        """
        Execute a batch of moves atomically.

        All moves succeed together or all fail together.

        Returns:
            ExecuteResult.APPLIED if successful
            ExecuteResult.REJECTED if validation failed
        """
        moves = tuple(moves)
        if not moves:
            return ExecuteResult.APPLIED

        valid, reason = self._validate(moves)
        if not valid:
            if self.verbose:
                print(f"✗ REJECTED: {reason}")
            return ExecuteResult.REJECTED

        for move in moves:
            self.balances[move.source] -= move.quantity
            self.balances[move.dest] += move.quantity

        tx = CustodyTransaction(sequence_number=self._next_sequence, moves=moves)
        self._next_sequence += 1
        self.transaction_log.append(tx)

        if self.verbose:
            print(f"✓ APPLIED: {tx}")
        return ExecuteResult.APPLIED

    def _validate(self, moves: Tuple[Move, ...]) -> Tuple[bool, str]:
        """
        Validate a batch of moves against registration and balance constraints.

        Net changes are accumulated per wallet first, so a batch may spend
        value it receives earlier in the same batch.

        Returns:
            Tuple of (success, reason); reason is empty on success
        """
        for move in moves:
            if move.source not in self.registered_wallets:
                return False, f"wallet not registered: {move.source}"
            if move.dest not in self.registered_wallets:
                return False, f"wallet not registered: {move.dest}"

        net: Dict[str, int] = {}
        for move in moves:
            net[move.source] = net.get(move.source, 0) - move.quantity
            net[move.dest] = net.get(move.dest, 0) + move.quantity

        # SYSTEM_WALLET is exempt - it can hold any balance
        for wallet, delta in sorted(net.items()):
            if wallet == SYSTEM_WALLET:
                continue
            proposed = self.balances[wallet] + delta
            if proposed < 0:
                return False, f"{wallet}: {proposed} < min 0"

        return True, ""

    def clone(self) -> CustodyLedger:
        """Create an independent copy of this custody ledger."""
        cloned = CustodyLedger.__new__(CustodyLedger)
        cloned.name = self.name
        cloned.balances = dict(self.balances)
        cloned.registered_wallets = self.registered_wallets.copy()
        cloned.transaction_log = list(self.transaction_log)
        cloned.verbose = self.verbose
        cloned._test_mode = self._test_mode
        cloned._next_sequence = self._next_sequence
        return cloned
