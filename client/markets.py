"""
CLOB REST client for market discovery. Pure httpx, no SDK dependency.
Discovery is one-shot: transport failures are logged and whatever was
fetched so far is returned.
"""

from __future__ import annotations

import logging

import httpx

from scanner.models import Market, Token
from scanner.validation import to_decimal

logger = logging.getLogger(__name__)

_TIMEOUT = 30.0
# Cursor the CLOB returns after the last page
END_CURSOR = "LTE="
DEFAULT_CRYPTO_TAGS = ("Crypto", "Bitcoin", "Ethereum", "Solana")


class TransportError(Exception):
    """HTTP or payload failure talking to the REST API."""
    pass


def _get(base_url: str, path: str, params: dict | None = None) -> dict | list:
    """GET a JSON document. Raises TransportError on HTTP or decoding failure."""
    url = f"{base_url}{path}"
    try:
        resp = httpx.get(url, params=params, timeout=_TIMEOUT)
        resp.raise_for_status()
        return resp.json()
    except (httpx.HTTPError, ValueError) as e:
        raise TransportError(f"GET {url} failed: {e}") from e


def parse_market(raw: dict) -> Market | None:
    """Convert one raw CLOB market to our Market model. None if unusable."""
    condition_id = raw.get("condition_id") or raw.get("conditionId")
    raw_tokens = raw.get("tokens")
    if not condition_id or not isinstance(raw_tokens, list):
        return None

    tokens = []
    for t in raw_tokens:
        if not isinstance(t, dict) or not t.get("token_id"):
            return None
        try:
            price = to_decimal(t.get("price", 0) or 0, context="token price")
        except ValueError:
            price = to_decimal(0)
        tokens.append(Token(
            token_id=str(t["token_id"]),
            outcome=str(t.get("outcome", "")),
            price=price,
            winner=bool(t.get("winner", False)),
        ))

    return Market(
        condition_id=str(condition_id),
        question=str(raw.get("question", "")),
        tokens=tuple(tokens),
        active=bool(raw.get("active", False)),
        closed=bool(raw.get("closed", False)),
        accepting_orders=bool(raw.get("accepting_orders", False)),
        end_date_iso=str(raw.get("end_date_iso") or ""),
        tags=tuple(str(tag) for tag in (raw.get("tags") or [])),
    )


def is_valid_crypto_market(market: Market, crypto_tags: tuple[str, ...] = DEFAULT_CRYPTO_TAGS) -> bool:
    """Binary, active, accepting orders and tagged with a crypto category."""
    if not market.is_actionable:
        return False
    return any(tag in crypto_tags for tag in market.tags)


def get_markets_page(http_url: str, limit: int = 100, cursor: str = "") -> tuple[list[Market], str]:
    """Fetch one page of active markets. Returns (markets, next_cursor)."""
    params: dict = {"active": "true", "limit": limit}
    if cursor:
        params["next_cursor"] = cursor
    body = _get(http_url, "/markets", params)
    if isinstance(body, list):
        raw_markets, next_cursor = body, END_CURSOR
    elif isinstance(body, dict):
        raw_markets = body.get("data") or []
        next_cursor = str(body.get("next_cursor") or END_CURSOR)
    else:
        raise TransportError(f"Unexpected /markets payload: {type(body).__name__}")

    markets = []
    for raw in raw_markets:
        market = parse_market(raw) if isinstance(raw, dict) else None
        if market is None:
            logger.debug("Skipping unparseable market entry")
            continue
        markets.append(market)
    return markets, next_cursor


def discover_markets(
    http_url: str,
    crypto_tags: tuple[str, ...] = DEFAULT_CRYPTO_TAGS,
    limit: int = 100,
    max_pages: int = 20,
) -> list[Market]:
    """
    Page through active markets and keep the binary crypto ones.
    A transport failure ends discovery early; it never raises.
    """
    found: list[Market] = []
    seen: set[str] = set()
    cursor = ""
    for page_num in range(max_pages):
        try:
            page, cursor = get_markets_page(http_url, limit=limit, cursor=cursor)
        except TransportError as e:
            logger.error("Market discovery failed on page %d: %s", page_num + 1, e)
            break
        for market in page:
            if market.condition_id in seen or not is_valid_crypto_market(market, crypto_tags):
                continue
            seen.add(market.condition_id)
            found.append(market)
        if not page or cursor == END_CURSOR:
            break

    logger.info("Discovered %d valid crypto markets", len(found))
    return found
