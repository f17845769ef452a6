"""
Local orderbook store fed by WebSocket book snapshots.
Maintains the latest book per token_id plus the static market table and
token -> market index built once at discovery.

Thread-safe for concurrent feed-writer + strategy-reader via threading.Lock.
Critical sections only copy references; no I/O happens under the lock.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable

from scanner.models import Market, OrderBook, PriceLevel

logger = logging.getLogger(__name__)


@dataclass
class OrderBookStore:
    """
    In-memory orderbook store. Every ingest replaces the whole book for a
    token: the feed delivers full snapshots, never deltas.
    """
    _books: dict[str, OrderBook] = field(default_factory=dict)
    _markets: dict[str, Market] = field(default_factory=dict)
    _token_to_market: dict[str, str] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def register_markets(self, markets: Iterable[Market]) -> int:
        """
        Build the market table and token -> market index.
        Non-actionable markets are skipped. Returns the number registered.
        """
        count = 0
        with self._lock:
            for market in markets:
                if not market.is_actionable:
                    logger.debug("Skipping non-actionable market %s", market.condition_id)
                    continue
                self._markets[market.condition_id] = market
                for token in market.tokens:
                    self._token_to_market[token.token_id] = market.condition_id
                count += 1
        logger.info("OrderBookStore: registered %d markets (%d tokens)", count, len(self._token_to_market))
        return count

    def ingest(
        self,
        asset_id: str,
        bids: Iterable[PriceLevel],
        asks: Iterable[PriceLevel],
        timestamp: float | None = None,
    ) -> OrderBook:
        """
        Replace the entire book for asset_id.
        Zero-size levels are dropped; bids are stored descending and asks
        ascending so index 0 is always top-of-book.
        """
        sorted_bids = tuple(sorted(
            (lvl for lvl in bids if lvl.size > 0),
            key=lambda lvl: lvl.price,
            reverse=True,
        ))
        sorted_asks = tuple(sorted(
            (lvl for lvl in asks if lvl.size > 0),
            key=lambda lvl: lvl.price,
        ))
        book = OrderBook(
            token_id=asset_id,
            bids=sorted_bids,
            asks=sorted_asks,
            timestamp=timestamp if timestamp is not None else time.time(),
        )
        with self._lock:
            self._books[asset_id] = book
        return book

    def get_book(self, asset_id: str) -> OrderBook | None:
        with self._lock:
            return self._books.get(asset_id)

    def best_ask(self, asset_id: str) -> PriceLevel | None:
        """Minimum-price ask level, or None if the token has no asks."""
        with self._lock:
            book = self._books.get(asset_id)
        if book is None:
            return None
        return book.best_ask

    def best_asks(self, yes_token: str, no_token: str) -> tuple[Decimal, Decimal] | None:
        """
        Best ask prices for both legs read under a single lock acquisition.
        Returns None unless both legs are quoted.
        """
        with self._lock:
            yes_book = self._books.get(yes_token)
            no_book = self._books.get(no_token)
        if not yes_book or not no_book:
            return None
        yes_ask = yes_book.best_ask
        no_ask = no_book.best_ask
        if yes_ask is None or no_ask is None:
            return None
        return yes_ask.price, no_ask.price

    def has_liquidity(self, asset_id: str, required_size: Decimal) -> bool:
        """
        True iff the single best ask level holds at least required_size.
        Depth beyond top-of-book is not counted.
        """
        best = self.best_ask(asset_id)
        return best is not None and best.size >= required_size

    def market_for_token(self, asset_id: str) -> str | None:
        return self._token_to_market.get(asset_id)

    def market_tokens(self, market_id: str) -> tuple[str, str] | None:
        """(yes_token_id, no_token_id) for a registered market."""
        market = self._markets.get(market_id)
        if market is None or len(market.tokens) < 2:
            return None
        return market.yes_token_id, market.no_token_id

    def get_market(self, market_id: str) -> Market | None:
        return self._markets.get(market_id)

    def market_ids(self) -> list[str]:
        return list(self._markets)

    def token_ids(self) -> list[str]:
        return list(self._token_to_market)

    def book_age(self, asset_id: str) -> float:
        """Seconds since the last snapshot. Returns inf if never seen."""
        book = self.get_book(asset_id)
        if book is None:
            return float("inf")
        return time.time() - book.timestamp

    def token_count(self) -> int:
        """Number of tokens with a stored book."""
        return len(self._books)
