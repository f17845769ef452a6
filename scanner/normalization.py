"""
Per-market re-entry state machine.

A market starts UNNORMALIZED. Each book update with both legs quoted computes
sum = best_ask_yes + best_ask_no. Consecutive updates with
sum >= threshold accumulate; after `required_updates` of them the market
latches NORMALIZED. A qualifying streak broken by a cheap update resets the
counter but does not clear the latch. Only reset() (called after a filled
trade) disarms the market and starts its cooldown clock.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import replace
from decimal import Decimal
from typing import Callable

from scanner.book_store import OrderBookStore
from scanner.models import MarketState

logger = logging.getLogger(__name__)

_ONE = Decimal("1")


class NormalizationTracker:
    def __init__(
        self,
        store: OrderBookStore,
        threshold: Decimal = Decimal("0.99"),
        required_updates: int = 3,
        clock: Callable[[], float] = time.time,
    ):
        self._store = store
        self._threshold = threshold
        self._required = required_updates
        self._clock = clock
        self._states: dict[str, MarketState] = {}
        self._lock = threading.Lock()

    def register(self, market_id: str) -> None:
        """Create state for a newly discovered market. Existing state is kept."""
        with self._lock:
            self._states.setdefault(market_id, MarketState())

    def update(self, market_id: str) -> MarketState | None:
        """
        Advance the state machine from the store's current best asks.
        Returns a copy of the new state, or None if the market is unknown or
        a leg has no asks.
        """
        tokens = self._store.market_tokens(market_id)
        if tokens is None:
            return None
        asks = self._store.best_asks(*tokens)
        if asks is None:
            return None

        total = asks[0] + asks[1]
        with self._lock:
            state = self._states.setdefault(market_id, MarketState())
            if total >= self._threshold:
                state.consecutive_normalized_updates += 1
                if (
                    not state.is_normalized
                    and state.consecutive_normalized_updates >= self._required
                ):
                    state.is_normalized = True
                    logger.info(
                        "Market %s normalized (sum=%s after %d updates)",
                        market_id, total, state.consecutive_normalized_updates,
                    )
            else:
                state.consecutive_normalized_updates = 0
            state.last_edge = _ONE - total
            return replace(state)

    def reset(self, market_id: str) -> None:
        """Disarm after a filled trade and start the cooldown clock."""
        with self._lock:
            state = self._states.setdefault(market_id, MarketState())
            state.is_normalized = False
            state.consecutive_normalized_updates = 0
            state.last_trade_time = self._clock()
        logger.info("Market %s reset after trade; waiting for re-normalization", market_id)

    def snapshot(self, market_id: str) -> MarketState | None:
        with self._lock:
            state = self._states.get(market_id)
            return replace(state) if state is not None else None

    def is_normalized(self, market_id: str) -> bool:
        with self._lock:
            state = self._states.get(market_id)
            return state is not None and state.is_normalized
