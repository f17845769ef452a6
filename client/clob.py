"""
CLOB order submission. Thin async layer over py_clob_client, which builds the
EIP-712 order, signs it and posts it. Every leg is sent fill-or-kill.

A submission "succeeds" when the venue returns an order id. Anything else
(HTTP error, rejected order, signing failure) is an OrderSubmissionError.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Protocol

from py_clob_client.client import ClobClient
from py_clob_client.clob_types import (
    MarketOrderArgs,
    OrderArgs,
    OrderType,
    PartialCreateOrderOptions,
)
from py_clob_client.order_builder.constants import BUY, SELL

from scanner.models import OrderRequest, Side

logger = logging.getLogger(__name__)

# Patch py_clob_client's shared httpx client:
#   - Disable HTTP/2: the CLOB server sends GOAWAY frames that crash the shared
#     connection pool (httpcore.RemoteProtocolError: ConnectionTerminated)
#   - Bound every request with a timeout (the SDK default has none)
import httpx as _httpx
from py_clob_client.http_helpers import helpers as _clob_helpers

DEFAULT_HTTP_TIMEOUT = 4.0
_clob_helpers._http_client = _httpx.Client(http2=False, timeout=DEFAULT_HTTP_TIMEOUT)


def configure_http_timeout(seconds: float) -> None:
    """
    Replace the SDK transport with one bounded by `seconds`. Must stay below
    the engine's per-leg timeout so every submission settles soon after it.
    """
    old = _clob_helpers._http_client
    _clob_helpers._http_client = _httpx.Client(http2=False, timeout=seconds)
    old.close()


class OrderSubmissionError(Exception):
    """A single order leg was not accepted by the venue."""
    pass


class OrderClient(Protocol):
    async def submit(self, order: OrderRequest) -> str:
        """Submit one order. Returns the venue order id or raises OrderSubmissionError."""
        ...


def create_limit_order(
    client: ClobClient,
    token_id: str,
    side: Side,
    price: float,
    size: float,
    tick_size: str = "0.01",
) -> object:
    """Create and sign a limit order. Returns a SignedOrder ready to post."""
    args = OrderArgs(
        token_id=token_id,
        price=price,
        size=size,
        side=BUY if side == Side.BUY else SELL,
    )
    options = PartialCreateOrderOptions(tick_size=tick_size, neg_risk=False)
    return client.create_order(args, options)


def create_market_order(
    client: ClobClient,
    token_id: str,
    side: Side,
    amount: float,
    tick_size: str = "0.01",
) -> object:
    """
    Create and sign a FOK market order. SDK semantics: BUY amounts are dollar
    notional, SELL amounts are share counts.
    """
    args = MarketOrderArgs(
        token_id=token_id,
        amount=amount,
        side=BUY if side == Side.BUY else SELL,
    )
    options = PartialCreateOrderOptions(tick_size=tick_size, neg_risk=False)
    return client.create_market_order(args, options)


def post_order(
    client: ClobClient,
    signed_order: object,
    order_type: OrderType = OrderType.FOK,
) -> dict:
    """Post a signed order to the CLOB. Returns the response dict."""
    return client.post_order(signed_order, order_type)


def order_id_from_response(resp: object) -> str | None:
    """
    Extract the venue order id from a post_order response.
    Returns None for rejected orders (success=false or an error message).
    """
    if not isinstance(resp, dict):
        return None
    if resp.get("success") is False or resp.get("errorMsg"):
        return None
    oid = resp.get("orderID") or resp.get("order_id") or resp.get("id")
    return str(oid) if oid else None


class ClobOrderClient:
    """
    Live order client. py_clob_client is synchronous, so signing and posting
    run in a worker thread to keep the event loop free for the other leg.
    """

    def __init__(self, client: ClobClient, tick_size: str = "0.01"):
        self._client = client
        self._tick_size = tick_size

    async def submit(self, order: OrderRequest) -> str:
        try:
            resp = await asyncio.to_thread(self._sign_and_post, order)
        except OrderSubmissionError:
            raise
        except Exception as e:
            raise OrderSubmissionError(
                f"{order.side.value} {order.token_id}: {type(e).__name__}: {e}"
            ) from e

        oid = order_id_from_response(resp)
        if oid is None:
            raise OrderSubmissionError(f"{order.side.value} {order.token_id} rejected: {resp}")
        logger.info("Order accepted: %s %s size=%s id=%s", order.side.value, order.token_id, order.size, oid)
        return oid

    def _sign_and_post(self, order: OrderRequest) -> dict:
        if order.market:
            signed = create_market_order(
                self._client,
                token_id=order.token_id,
                side=order.side,
                amount=float(order.size),
                tick_size=self._tick_size,
            )
        else:
            signed = create_limit_order(
                self._client,
                token_id=order.token_id,
                side=order.side,
                price=float(order.price),
                size=float(order.size),
                tick_size=self._tick_size,
            )
        return post_order(self._client, signed, OrderType.FOK)


class PaperOrderClient:
    """Simulated venue: accepts every order and records it."""

    def __init__(self) -> None:
        self.orders: list[OrderRequest] = []
        self._ids = itertools.count()

    async def submit(self, order: OrderRequest) -> str:
        self.orders.append(order)
        oid = f"paper_{next(self._ids)}"
        logger.info(
            "[PAPER] %s %s size=%s price=%s -> %s",
            order.side.value, order.token_id, order.size,
            "market" if order.market else order.price, oid,
        )
        return oid
