"""
Data models for the binary arbitrage engine. Pure data, no behavior beyond
simple derived properties.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum


class Side(Enum):
    BUY = "BUY"
    SELL = "SELL"


class TradeStatus(Enum):
    PENDING = "pending"
    FILLED = "filled"
    PARTIAL_FILL_EMERGENCY = "partial_fill_emergency"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Token:
    token_id: str
    outcome: str  # "Yes" or "No"
    price: Decimal = Decimal("0")
    winner: bool = False


@dataclass(frozen=True)
class Market:
    condition_id: str
    question: str
    tokens: tuple[Token, ...]
    active: bool
    closed: bool = False
    accepting_orders: bool = True
    end_date_iso: str = ""
    tags: tuple[str, ...] = ()

    @property
    def is_actionable(self) -> bool:
        """Exactly two tokens, active and accepting orders."""
        return len(self.tokens) == 2 and self.active and self.accepting_orders

    def token_for(self, outcome: str) -> Token | None:
        for token in self.tokens:
            if token.outcome.strip().lower() == outcome.lower():
                return token
        return None

    @property
    def yes_token_id(self) -> str:
        token = self.token_for("yes") or self.tokens[0]
        return token.token_id

    @property
    def no_token_id(self) -> str:
        token = self.token_for("no") or self.tokens[1]
        return token.token_id


@dataclass(frozen=True)
class PriceLevel:
    price: Decimal
    size: Decimal


@dataclass(frozen=True)
class OrderBook:
    token_id: str
    bids: tuple[PriceLevel, ...]  # best (highest) first
    asks: tuple[PriceLevel, ...]  # best (lowest) first
    timestamp: float = field(default_factory=time.time)

    @property
    def best_bid(self) -> PriceLevel | None:
        return self.bids[0] if self.bids else None

    @property
    def best_ask(self) -> PriceLevel | None:
        return self.asks[0] if self.asks else None

    @property
    def spread(self) -> Decimal | None:
        if self.best_bid and self.best_ask:
            return self.best_ask.price - self.best_bid.price
        return None


@dataclass
class MarketState:
    """Per-market re-entry state. Mutated under NormalizationTracker's lock."""
    is_normalized: bool = False
    consecutive_normalized_updates: int = 0
    last_trade_time: float | None = None
    last_edge: Decimal = Decimal("0")


@dataclass(frozen=True)
class OrderRequest:
    market_id: str
    token_id: str
    side: Side
    price: Decimal
    size: Decimal
    order_type: str = "FOK"
    # Market orders carry no limit price; the venue sweeps the book.
    market: bool = False
    nonce: int = field(default_factory=lambda: int(time.time() * 1000))
