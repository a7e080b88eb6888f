"""
Tests for store.py - LedgerStore record storage and the market id counter.
"""

from parimutuel import LedgerStore, Market, Bet, OptionTotal


def make_market(market_id):
    return Market(market_id, "deployer", f"Question {market_id}", ("Yes", "No"), 100)


class TestMarketIdCounter:

    def test_starts_at_zero(self):
        assert LedgerStore().next_market_id == 0

    def test_allocate_is_sequential(self):
        store = LedgerStore()
        assert [store.allocate_market_id() for _ in range(3)] == [0, 1, 2]
        assert store.next_market_id == 3

    def test_reading_does_not_advance(self):
        store = LedgerStore()
        store.next_market_id
        store.next_market_id
        assert store.allocate_market_id() == 0


class TestRecords:

    def test_missing_records_are_none(self):
        store = LedgerStore()
        assert store.get_market(0) is None
        assert store.get_bet(0, "alice", 1) is None
        assert store.get_option_total(0, 1) is None

    def test_put_and_get(self):
        store = LedgerStore()
        store.put_market(make_market(0))
        store.put_bet(0, "alice", 1, Bet(500))
        store.put_option_total(0, 1, OptionTotal(500))
        assert store.get_market(0).description == "Question 0"
        assert store.get_bet(0, "alice", 1) == Bet(500)
        assert store.get_option_total(0, 1) == OptionTotal(500)

    def test_bets_keyed_by_option(self):
        store = LedgerStore()
        store.put_bet(0, "alice", 0, Bet(100))
        store.put_bet(0, "alice", 1, Bet(200))
        assert store.get_bet(0, "alice", 0).amount == 100
        assert store.get_bet(0, "alice", 1).amount == 200

    def test_delete_bet(self):
        store = LedgerStore()
        store.put_bet(0, "alice", 1, Bet(500))
        store.delete_bet(0, "alice", 1)
        assert store.get_bet(0, "alice", 1) is None

    def test_delete_missing_bet_is_ignored(self):
        LedgerStore().delete_bet(7, "nobody", 0)

    def test_iteration_is_sorted_and_scoped(self):
        store = LedgerStore()
        for market_id in (2, 0, 1):
            store.put_market(make_market(market_id))
        store.put_bet(1, "carol", 0, Bet(3))
        store.put_bet(1, "alice", 1, Bet(1))
        store.put_bet(0, "bob", 0, Bet(2))
        store.put_option_total(1, 1, OptionTotal(1))
        store.put_option_total(1, 0, OptionTotal(3))
        store.put_option_total(0, 0, OptionTotal(2))

        assert store.list_markets() == [0, 1, 2]
        assert [key for key, _ in store.bets_for_market(1)] == [(1, "alice", 1), (1, "carol", 0)]
        assert [option for option, _ in store.option_totals_for_market(1)] == [0, 1]


class TestClone:

    def test_clone_is_equal_and_independent(self):
        store = LedgerStore()
        store.put_market(make_market(store.allocate_market_id()))
        store.put_bet(0, "alice", 1, Bet(500))

        cloned = store.clone()
        assert cloned == store

        cloned.put_bet(0, "bob", 1, Bet(1))
        cloned.allocate_market_id()
        assert store.get_bet(0, "bob", 1) is None
        assert store.next_market_id == 1
        assert cloned != store
