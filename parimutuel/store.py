"""
store.py - Ledger Store

Durable mapping from identifiers to Market, Bet and OptionTotal records,
plus the sequential market id counter. Pure storage: no business rules,
no validation beyond what the record types enforce themselves.
"""

from __future__ import annotations
from typing import Dict, Iterator, List, Optional, Tuple

from .core import Bet, BetKey, Market, OptionKey, OptionTotal


class LedgerStore:
    """
    In-memory record storage for the market ledger.

    Records are immutable, so reads hand out the stored instances directly
    and writes replace them.

    Thread Safety:
        Not thread-safe. ParimutuelLedger serializes all access.
    """

    def __init__(self):
        self.markets: Dict[int, Market] = {}
        self.bets: Dict[BetKey, Bet] = {}
        self.option_totals: Dict[OptionKey, OptionTotal] = {}
        # Monotonic market id counter; never reset or decremented
        self._next_market_id: int = 0

    # ========================================================================
    # MARKET ID COUNTER
    # ========================================================================

    @property
    def next_market_id(self) -> int:
        """Id the next allocated market will receive."""
        return self._next_market_id

    def allocate_market_id(self) -> int:
        """Return the current counter value and advance the counter."""
        market_id = self._next_market_id
        self._next_market_id += 1
        return market_id

    # ========================================================================
    # READS
    # ========================================================================

    def get_market(self, market_id: int) -> Optional[Market]:
        return self.markets.get(market_id)

    def get_bet(self, market_id: int, backer: str, option: int) -> Optional[Bet]:
        return self.bets.get((market_id, backer, option))

    def get_option_total(self, market_id: int, option: int) -> Optional[OptionTotal]:
        return self.option_totals.get((market_id, option))

    def list_markets(self) -> List[int]:
        """List all stored market ids in ascending order."""
        return sorted(self.markets.keys())

    def bets_for_market(self, market_id: int) -> Iterator[Tuple[BetKey, Bet]]:
        """Iterate (key, bet) pairs for one market in sorted key order."""
        for key in sorted(k for k in self.bets if k[0] == market_id):
            yield key, self.bets[key]

    def option_totals_for_market(self, market_id: int) -> Iterator[Tuple[int, OptionTotal]]:
        """Iterate (option, total) pairs for one market in option order."""
        for key in sorted(k for k in self.option_totals if k[0] == market_id):
            yield key[1], self.option_totals[key]

    # ========================================================================
    # WRITES
    # ========================================================================

    def put_market(self, market: Market) -> None:
        self.markets[market.market_id] = market

    def put_bet(self, market_id: int, backer: str, option: int, bet: Bet) -> None:
        self.bets[(market_id, backer, option)] = bet

    def delete_bet(self, market_id: int, backer: str, option: int) -> None:
        """Remove a bet record. Missing records are ignored."""
        self.bets.pop((market_id, backer, option), None)

    def put_option_total(self, market_id: int, option: int, total: OptionTotal) -> None:
        self.option_totals[(market_id, option)] = total

    # ========================================================================
    # SNAPSHOTS
    # ========================================================================

    def clone(self) -> LedgerStore:
        """
        Create an independent copy of this store.

        Records are immutable, so copying the mappings is a full copy.
        """
        cloned = LedgerStore.__new__(LedgerStore)
        cloned.markets = dict(self.markets)
        cloned.bets = dict(self.bets)
        cloned.option_totals = dict(self.option_totals)
        cloned._next_market_id = self._next_market_id
        return cloned

    def __eq__(self, other) -> bool:
        if not isinstance(other, LedgerStore):
            return NotImplemented
        return (
            self.markets == other.markets
            and self.bets == other.bets
            and self.option_totals == other.option_totals
            and self._next_market_id == other._next_market_id
        )

    def __repr__(self) -> str:
        return (
            f"LedgerStore({len(self.markets)} markets, {len(self.bets)} bets, "
            f"next_id={self._next_market_id})"
        )
