"""
WebSocket market feed. Keeps one connection open at a time, reconnecting
forever with exponential backoff (1s, 2s, 4s ... capped, reset after a
successful connect). Each book snapshot is written to the OrderBookStore,
advances the market's NormalizationTracker state and is announced on the
UpdateChannel.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from decimal import Decimal

import websockets
from websockets.asyncio.client import connect

from scanner.book_store import OrderBookStore
from scanner.broadcast import UpdateChannel
from scanner.models import PriceLevel
from scanner.normalization import NormalizationTracker
from scanner.validation import parse_price, parse_size

logger = logging.getLogger(__name__)

BACKOFF_BASE = 1.0  # seconds
BACKOFF_MAX = 60.0
HEARTBEAT_INTERVAL = 20.0
SUBSCRIBE_BATCH_SIZE = 50
BOOK_CHANNEL = "book"

# Feed timestamps above this are milliseconds
_MS_TIMESTAMP_CUTOFF = 2_000_000_000


class MalformedMessage(Exception):
    """Feed payload that cannot be parsed. Dropped by the reader."""
    pass


@dataclass
class BookUpdate:
    token_id: str
    bids: list[PriceLevel]
    asks: list[PriceLevel]
    hash: str
    timestamp: float


def next_backoff(current: float, maximum: float = BACKOFF_MAX) -> float:
    """Double the reconnect delay, capped at maximum."""
    return min(current * 2, maximum)


def build_subscribe_messages(token_ids: list[str], batch_size: int = SUBSCRIBE_BATCH_SIZE) -> list[str]:
    """One subscribe control message per batch of at most batch_size assets."""
    return [
        json.dumps({
            "type": "subscribe",
            "asset_ids": token_ids[i:i + batch_size],
            "channels": [BOOK_CHANNEL],
        })
        for i in range(0, len(token_ids), batch_size)
    ]


def _parse_levels(raw_levels: object, token_id: str, side: str) -> list[PriceLevel]:
    """
    Parse feed levels given as ["price", "size"] pairs or
    {"price": ..., "size": ...} objects. Invalid levels are skipped.
    """
    if not isinstance(raw_levels, list):
        raise MalformedMessage(f"{side} for {token_id} is not a list")
    levels: list[PriceLevel] = []
    for raw in raw_levels:
        try:
            if isinstance(raw, dict):
                raw_price, raw_size = raw["price"], raw.get("size", 0)
            else:
                raw_price, raw_size = raw[0], raw[1]
            levels.append(PriceLevel(
                price=parse_price(raw_price, context=f"WS {side} price ({token_id})"),
                size=parse_size(raw_size, context=f"WS {side} size ({token_id})"),
            ))
        except (KeyError, IndexError, TypeError, ValueError) as e:
            logger.debug("Skipping bad %s level for %s: %s", side, token_id, e)
    return levels


def _parse_timestamp(raw: object) -> float:
    """Feed timestamp in seconds or milliseconds -> epoch seconds. Falls back to now."""
    try:
        ts = int(Decimal(str(raw)))
    except (ArithmeticError, ValueError, TypeError):
        return time.time()
    if ts <= 0:
        return time.time()
    return ts / 1000.0 if ts > _MS_TIMESTAMP_CUTOFF else float(ts)


def parse_message(raw_msg: str | bytes) -> list[BookUpdate]:
    """
    Parse one feed frame into book updates.
    Empty arrays are heartbeats; non-book events are ignored.
    Raises MalformedMessage if the frame is not usable JSON.
    """
    try:
        data = json.loads(raw_msg)
    except (ValueError, TypeError, RecursionError) as e:
        raise MalformedMessage(f"Unparseable feed message: {e}") from e

    events = data if isinstance(data, list) else [data]
    updates: list[BookUpdate] = []
    for event in events:
        if not isinstance(event, dict):
            raise MalformedMessage(f"Unexpected feed event: {str(event)[:100]}")
        if event.get("event_type") != BOOK_CHANNEL:
            continue
        asset_id = event.get("asset_id")
        if not asset_id:
            raise MalformedMessage("Book event without asset_id")
        updates.append(BookUpdate(
            token_id=str(asset_id),
            bids=_parse_levels(event.get("bids", []), asset_id, "bid"),
            asks=_parse_levels(event.get("asks", []), asset_id, "ask"),
            hash=str(event.get("hash", "")),
            timestamp=_parse_timestamp(event.get("timestamp")),
        ))
    return updates


@dataclass
class MarketFeed:
    """
    Feed reader task plus a per-connection heartbeat task. Server pings are
    answered with pongs by the websockets library.
    """
    url: str
    store: OrderBookStore
    tracker: NormalizationTracker
    channel: UpdateChannel[str]
    heartbeat_interval_sec: float = HEARTBEAT_INTERVAL
    backoff_max_sec: float = BACKOFF_MAX
    subscribe_batch_size: int = SUBSCRIBE_BATCH_SIZE
    _running: bool = False
    _ws: object = None
    # Health tracking
    _last_message_time: float = field(default_factory=lambda: 0.0)
    _connect_time: float = field(default_factory=lambda: 0.0)
    books_received: int = 0
    malformed_messages: int = 0
    reconnects: int = 0

    async def run(self) -> None:
        """Connect and listen until stop(), reconnecting on every failure."""
        self._running = True
        backoff = BACKOFF_BASE
        while self._running:
            try:
                async with connect(self.url, ping_interval=None) as ws:
                    self._ws = ws
                    self._connect_time = time.time()
                    self._last_message_time = 0.0
                    backoff = BACKOFF_BASE  # reset on successful connection
                    logger.info("WebSocket connected to %s", self.url)

                    await self._subscribe(ws)
                    heartbeat = asyncio.create_task(self._heartbeat(ws))
                    try:
                        async for raw_msg in ws:
                            if not self._running:
                                break
                            self._record_message()
                            self.handle_message(raw_msg)
                    finally:
                        heartbeat.cancel()
                        await asyncio.gather(heartbeat, return_exceptions=True)
                        self._ws = None
                    if self._running:
                        logger.warning("WebSocket stream ended")

            except (websockets.ConnectionClosed, websockets.InvalidHandshake, OSError, TimeoutError) as e:
                self._ws = None
                logger.warning("WebSocket connection error: %s", e)
            except Exception as e:
                self._ws = None
                logger.exception("WebSocket reader failed: %s", e)

            if not self._running:
                break
            self.reconnects += 1
            wait = min(backoff, self.backoff_max_sec)
            logger.warning("Reconnecting in %.0fs...", wait)
            await asyncio.sleep(wait)
            backoff = next_backoff(backoff, self.backoff_max_sec)

        logger.info(
            "WebSocket feed stopped (books=%d malformed=%d reconnects=%d)",
            self.books_received, self.malformed_messages, self.reconnects,
        )

    async def stop(self) -> None:
        self._running = False
        if self._ws is not None:
            await self._ws.close()

    async def _subscribe(self, ws) -> None:
        token_ids = self.store.token_ids()
        for msg in build_subscribe_messages(token_ids, self.subscribe_batch_size):
            await ws.send(msg)
        logger.info("Subscribed to %d tokens", len(token_ids))

    async def _heartbeat(self, ws) -> None:
        """Ping on a fixed interval. A failed ping closes the connection."""
        while True:
            await asyncio.sleep(self.heartbeat_interval_sec)
            try:
                await ws.ping()
            except websockets.ConnectionClosed:
                return
            logger.debug("Heartbeat ping sent")

    def handle_message(self, raw_msg: str | bytes) -> int:
        """
        Apply one feed frame. Returns the number of markets notified.
        Malformed frames are logged and dropped.
        """
        try:
            updates = parse_message(raw_msg)
        except MalformedMessage as e:
            self.malformed_messages += 1
            logger.warning("%s | %s", e, str(raw_msg)[:200])
            return 0

        notified = 0
        for update in updates:
            market_id = self.store.market_for_token(update.token_id)
            if market_id is None:
                logger.debug("Book for unknown token %s, ignoring", update.token_id)
                continue
            self.store.ingest(update.token_id, update.bids, update.asks, update.timestamp)
            self.books_received += 1
            self.tracker.update(market_id)
            self.channel.publish(market_id)
            notified += 1
        return notified

    def is_healthy(self, max_silence_sec: float = 60.0) -> bool:
        """
        Connected and receiving messages. A fresh connection gets a grace
        period of max_silence_sec before its first message.
        """
        if not self._running or not self._ws:
            return False
        now = time.time()
        if self._last_message_time == 0.0:
            return now - self._connect_time <= max_silence_sec
        return now - self._last_message_time <= max_silence_sec

    def _record_message(self) -> None:
        self._last_message_time = time.time()
