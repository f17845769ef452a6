"""
Event-driven strategy loop. Consumes market-changed notifications and runs
each market through the gates in order:

  1. Resolve the YES/NO tokens
  2. Top-of-book liquidity on both legs
  3. Re-entry: market NORMALIZED and past its trade cooldown
  4. Edge after taker fees >= min_edge
  5. Same edge check again on freshly read prices
  6. Execute; on FILLED, reset the market's normalization state
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable

from config import Config
from executor.engine import ExecutionEngine
from scanner.book_store import OrderBookStore
from scanner.broadcast import ChannelClosed, Lagged, UpdateChannel
from scanner.models import TradeStatus
from scanner.normalization import NormalizationTracker

logger = logging.getLogger(__name__)

_ONE = Decimal("1")


@dataclass(frozen=True)
class StrategyParams:
    trade_size: Decimal = Decimal("10")
    min_liquidity_multiplier: Decimal = Decimal("5")
    min_edge: Decimal = Decimal("0.05")
    taker_fee_rate: Decimal = Decimal("0")
    trade_cooldown_ms: int = 30_000

    @classmethod
    def from_config(cls, cfg: Config) -> StrategyParams:
        return cls(
            trade_size=cfg.trade_size,
            min_liquidity_multiplier=cfg.min_liquidity_multiplier,
            min_edge=cfg.min_edge,
            taker_fee_rate=cfg.taker_fee_rate,
            trade_cooldown_ms=cfg.trade_cooldown_ms,
        )

    @property
    def required_liquidity(self) -> Decimal:
        return self.trade_size * self.min_liquidity_multiplier


def compute_edge(price_yes: Decimal, price_no: Decimal, fee_rate: Decimal) -> Decimal:
    """Guaranteed profit per set after taker fees: 1 - fee-adjusted cost of both legs."""
    fee_multiplier = _ONE + fee_rate
    return _ONE - (price_yes * fee_multiplier + price_no * fee_multiplier)


class StrategyEngine:
    def __init__(
        self,
        store: OrderBookStore,
        tracker: NormalizationTracker,
        execution: ExecutionEngine,
        channel: UpdateChannel[str],
        params: StrategyParams,
        clock: Callable[[], float] = time.time,
    ):
        self._store = store
        self._tracker = tracker
        self._execution = execution
        self._channel = channel
        self._params = params
        self._clock = clock
        self._in_flight: set[str] = set()
        self.trades_attempted = 0
        self.updates_missed = 0

    async def run(self) -> None:
        """Consume notifications until the channel closes."""
        logger.info("Strategy engine started. Waiting for book updates...")
        sub = self._channel.subscribe()
        try:
            while True:
                try:
                    market_id = await sub.recv()
                except Lagged as e:
                    self.updates_missed += e.missed
                    logger.warning("Strategy lagged behind %d updates", e.missed)
                    continue
                except ChannelClosed:
                    logger.info("Update channel closed; strategy engine stopping")
                    break
                await self.process_market_update(market_id)
        finally:
            sub.unsubscribe()

    def check_opportunity(self, price_yes: Decimal, price_no: Decimal) -> bool:
        return compute_edge(price_yes, price_no, self._params.taker_fee_rate) >= self._params.min_edge

    async def process_market_update(self, market_id: str) -> TradeStatus | None:
        """
        Evaluate one market. Returns the execution status, or None if a gate
        stopped the evaluation before dispatch.
        """
        tokens = self._store.market_tokens(market_id)
        if tokens is None:
            return None
        yes_token, no_token = tokens

        if market_id in self._in_flight:
            logger.debug("Execution already in flight for %s", market_id)
            return None

        required = self._params.required_liquidity
        if not (
            self._store.has_liquidity(yes_token, required)
            and self._store.has_liquidity(no_token, required)
        ):
            return None

        if not self._reentry_allowed(market_id):
            return None

        asks = self._store.best_asks(yes_token, no_token)
        if asks is None or not self.check_opportunity(*asks):
            return None

        # Prices may have moved while the gates ran; confirm on a fresh read.
        fresh = self._store.best_asks(yes_token, no_token)
        if fresh is None or not self.check_opportunity(*fresh):
            logger.warning("Pre-flight check failed for market %s", market_id)
            return None
        price_yes, price_no = fresh

        logger.info(
            "EXECUTING TRADE on %s: YES @ %s, NO @ %s (edge=%s)",
            market_id, price_yes, price_no,
            compute_edge(price_yes, price_no, self._params.taker_fee_rate),
        )
        self._in_flight.add(market_id)
        self.trades_attempted += 1
        try:
            status = await self._execution.execute_arb(
                market_id, yes_token, no_token,
                price_yes, price_no, self._params.trade_size,
            )
        finally:
            self._in_flight.discard(market_id)

        if status == TradeStatus.FILLED:
            self._tracker.reset(market_id)
            logger.info("Trade filled. Cooldown started for %s", market_id)
        else:
            logger.warning("Trade on %s ended %s; market state left unchanged", market_id, status.value)
        return status

    def _reentry_allowed(self, market_id: str) -> bool:
        state = self._tracker.snapshot(market_id)
        if state is None or not state.is_normalized:
            return False
        if state.last_trade_time is not None:
            elapsed_ms = (self._clock() - state.last_trade_time) * 1000
            if elapsed_ms < self._params.trade_cooldown_ms:
                return False
        return True
