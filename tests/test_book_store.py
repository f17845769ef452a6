"""
Unit tests for scanner/book_store.py -- local orderbook store.
"""

import threading
import time
from decimal import Decimal

from scanner.book_store import OrderBookStore
from scanner.models import Market, PriceLevel, Token


def _make_market(cid="c1", yes="y1", no="n1", active=True):
    return Market(cid, f"Question {cid}?", (Token(yes, "Yes"), Token(no, "No")), active=active)


def _lvl(price, size):
    return PriceLevel(Decimal(price), Decimal(size))


class TestRegisterMarkets:
    def test_builds_token_index(self):
        store = OrderBookStore()
        assert store.register_markets([_make_market()]) == 1
        assert store.market_for_token("y1") == "c1"
        assert store.market_for_token("n1") == "c1"
        assert store.market_tokens("c1") == ("y1", "n1")
        assert sorted(store.token_ids()) == ["n1", "y1"]

    def test_skips_non_actionable(self):
        store = OrderBookStore()
        inactive = _make_market("c2", "y2", "n2", active=False)
        assert store.register_markets([_make_market(), inactive]) == 1
        assert store.market_ids() == ["c1"]
        assert store.market_for_token("y2") is None
        assert store.get_market("c2") is None

    def test_unknown_market_tokens(self):
        assert OrderBookStore().market_tokens("nope") is None


class TestIngest:
    def test_sorts_levels(self):
        store = OrderBookStore()
        book = store.ingest(
            "y1",
            bids=[_lvl("0.30", "5"), _lvl("0.35", "5")],
            asks=[_lvl("0.50", "5"), _lvl("0.40", "5"), _lvl("0.45", "5")],
        )
        assert [b.price for b in book.bids] == [Decimal("0.35"), Decimal("0.30")]
        assert [a.price for a in book.asks] == [Decimal("0.40"), Decimal("0.45"), Decimal("0.50")]

    def test_drops_zero_size_levels(self):
        store = OrderBookStore()
        store.ingest("y1", bids=[], asks=[_lvl("0.30", "0"), _lvl("0.40", "10")])
        assert store.best_ask("y1").price == Decimal("0.40")

    def test_replaces_whole_book(self):
        store = OrderBookStore()
        store.ingest("y1", bids=[], asks=[_lvl("0.40", "10")])
        store.ingest("y1", bids=[], asks=[_lvl("0.60", "10")])
        book = store.get_book("y1")
        assert len(book.asks) == 1
        assert book.asks[0].price == Decimal("0.60")

    def test_timestamp_defaults_to_now(self):
        store = OrderBookStore()
        before = time.time()
        book = store.ingest("y1", bids=[], asks=[])
        assert book.timestamp >= before

    def test_explicit_timestamp(self):
        store = OrderBookStore()
        store.ingest("y1", bids=[], asks=[], timestamp=1_700_000_000.0)
        assert store.get_book("y1").timestamp == 1_700_000_000.0


class TestQueries:
    def test_best_ask_is_minimum(self):
        store = OrderBookStore()
        store.ingest("y1", bids=[], asks=[_lvl("0.47", "1"), _lvl("0.41", "1"), _lvl("0.44", "1")])
        assert store.best_ask("y1").price == Decimal("0.41")

    def test_best_ask_none_when_unknown_or_empty(self):
        store = OrderBookStore()
        assert store.best_ask("y1") is None
        store.ingest("y1", bids=[_lvl("0.40", "1")], asks=[])
        assert store.best_ask("y1") is None

    def test_best_asks_requires_both_legs(self):
        store = OrderBookStore()
        store.ingest("y1", bids=[], asks=[_lvl("0.40", "100")])
        assert store.best_asks("y1", "n1") is None
        store.ingest("n1", bids=[], asks=[_lvl("0.55", "100")])
        assert store.best_asks("y1", "n1") == (Decimal("0.40"), Decimal("0.55"))

    def test_has_liquidity_uses_top_level_only(self):
        store = OrderBookStore()
        store.ingest("y1", bids=[], asks=[_lvl("0.40", "30"), _lvl("0.41", "100")])
        assert store.has_liquidity("y1", Decimal("30")) is True
        assert store.has_liquidity("y1", Decimal("50")) is False
        assert store.has_liquidity("n1", Decimal("1")) is False

    def test_book_age(self):
        store = OrderBookStore()
        assert store.book_age("y1") == float("inf")
        store.ingest("y1", bids=[], asks=[], timestamp=time.time() - 5)
        assert 4.5 < store.book_age("y1") < 10

    def test_token_count(self):
        store = OrderBookStore()
        store.ingest("y1", bids=[], asks=[])
        store.ingest("n1", bids=[], asks=[])
        assert store.token_count() == 2


class TestConcurrency:
    def test_concurrent_ingest_and_read(self):
        store = OrderBookStore()
        errors = []

        def writer():
            for i in range(500):
                price = Decimal(i % 90 + 1) / 100
                store.ingest("y1", bids=[], asks=[PriceLevel(price, Decimal("1"))])

        def reader():
            for _ in range(500):
                try:
                    ask = store.best_ask("y1")
                    if ask is not None:
                        assert Decimal("0") < ask.price <= Decimal("0.90")
                except AssertionError as e:
                    errors.append(e)

        threads = [threading.Thread(target=writer), threading.Thread(target=reader)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert errors == []
