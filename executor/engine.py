"""
Trade execution engine. Submits both hedge legs concurrently, classifies the
outcome and flattens a naked leg when only one side fills.

The venue has no cross-leg atomicity. Consistency after a one-sided fill is
restored only by the compensating SELL, never by rollback.
"""

from __future__ import annotations

import asyncio
import logging
import time
from decimal import Decimal

from client.clob import OrderClient, OrderSubmissionError
from executor.risk import RiskManager
from scanner.models import OrderRequest, Side, TradeStatus

logger = logging.getLogger(__name__)

_ONE = Decimal("1")


class ExecutionEngine:
    """
    execute_arb() never raises. Every fault (risk rejection, transport error,
    timeout, rejected order) comes back as a TradeStatus.
    """

    def __init__(
        self,
        order_client: OrderClient,
        risk_manager: RiskManager,
        order_timeout_sec: float = 5.0,
        emergency_pause_sec: float = 60.0,
    ):
        self._orders = order_client
        self._risk = risk_manager
        self._order_timeout_sec = order_timeout_sec
        self._emergency_pause_sec = emergency_pause_sec
        self._paused_until = 0.0

    @property
    def paused(self) -> bool:
        return time.monotonic() < self._paused_until

    async def execute_arb(
        self,
        market_id: str,
        yes_token: str,
        no_token: str,
        price_yes: Decimal,
        price_no: Decimal,
        size: Decimal,
    ) -> TradeStatus:
        start_time = time.time()

        if self.paused:
            logger.warning("Execution paused after emergency; skipping %s", market_id)
            return TradeStatus.FAILED

        total_cost = (price_yes + price_no) * size
        if not self._risk.check_trade_size(total_cost):
            return TradeStatus.FAILED

        logger.info(
            "Executing arb: market=%s size=%s YES@%s NO@%s cost=%s",
            market_id, size, price_yes, price_no, total_cost,
        )

        order_yes = OrderRequest(market_id, yes_token, Side.BUY, price_yes, size)
        order_no = OrderRequest(market_id, no_token, Side.BUY, price_no, size)

        oid_yes, oid_no = await asyncio.gather(
            self._place_order(order_yes),
            self._place_order(order_no),
        )
        filled_yes = oid_yes is not None
        filled_no = oid_no is not None

        elapsed_ms = (time.time() - start_time) * 1000

        if filled_yes and filled_no:
            profit = (_ONE - (price_yes + price_no)) * size
            logger.info(
                "ARBITRAGE FILLED: market=%s orders=%s,%s profit=%s elapsed=%.0fms",
                market_id, oid_yes, oid_no, profit, elapsed_ms,
                extra={"market": market_id, "status": TradeStatus.FILLED.value},
            )
            self._risk.record_pnl(profit)
            return TradeStatus.FILLED

        if not filled_yes and not filled_no:
            logger.info(
                "Both legs unfilled on %s (elapsed=%.0fms). No exposure.",
                market_id, elapsed_ms,
                extra={"market": market_id, "status": TradeStatus.CANCELLED.value},
            )
            return TradeStatus.CANCELLED

        logger.error(
            "PARTIAL FILL EMERGENCY: market=%s YES=%s NO=%s",
            market_id, filled_yes, filled_no,
            extra={"market": market_id, "status": TradeStatus.PARTIAL_FILL_EMERGENCY.value},
        )
        filled_token = yes_token if filled_yes else no_token
        await self._handle_emergency(market_id, filled_token, size)
        return TradeStatus.PARTIAL_FILL_EMERGENCY

    async def _place_order(self, order: OrderRequest) -> str | None:
        """
        Submit one leg. Returns the venue order id, or None if the leg did not
        fill. Acceptance of a FOK order is taken as proof of fill.

        A leg slower than order_timeout_sec is not abandoned: the submission
        may still reach the venue, so it is awaited to its real outcome. The
        transport timeout bounds that wait.
        """
        submission = asyncio.ensure_future(self._orders.submit(order))
        try:
            try:
                return await asyncio.wait_for(
                    asyncio.shield(submission), timeout=self._order_timeout_sec,
                )
            except asyncio.TimeoutError:
                logger.warning(
                    "Order submission still pending after %.1fs: %s %s; awaiting venue outcome",
                    self._order_timeout_sec, order.side.value, order.token_id,
                )
                return await submission
        except OrderSubmissionError as e:
            logger.warning("Order not filled: %s", e)
        except Exception as e:
            logger.error("Order submission failed for %s: %s", order.token_id, e)
        return None

    async def _handle_emergency(self, market_id: str, token_id: str, size: Decimal) -> None:
        """
        Halt approvals, dump the filled leg with a market SELL, then pause all
        submissions so an operator can inspect the position.
        """
        self._risk.enter_safe_mode(f"partial fill on {market_id}")
        self._paused_until = time.monotonic() + self._emergency_pause_sec

        logger.warning("EMERGENCY: dumping %s shares of %s", size, token_id)
        dump = OrderRequest(
            market_id, token_id, Side.SELL, Decimal("0"), size, market=True,
        )
        oid = await self._place_order(dump)
        if oid is None:
            logger.critical(
                "Emergency unwind FAILED: naked position %s x %s needs manual flattening",
                token_id, size,
            )
        else:
            logger.error("Emergency unwind sent (order %s). Trading HALTED.", oid)

        if self._emergency_pause_sec > 0:
            await asyncio.sleep(self._emergency_pause_sec)
