"""
Integration tests for client/markets.py -- market discovery with mocked HTTP.
"""

from decimal import Decimal

import httpx
import pytest
import respx

from client.markets import (
    END_CURSOR,
    TransportError,
    discover_markets,
    get_markets_page,
    is_valid_crypto_market,
    parse_market,
)


CLOB_HOST = "https://clob.polymarket.com"


def _market_json(cid, yes_id="y", no_id="n", tags=("Crypto",), active=True, accepting=True, outcomes=None):
    outcomes = outcomes or [("Yes", yes_id), ("No", no_id)]
    return {
        "condition_id": cid,
        "question": f"Question for {cid}?",
        "tokens": [
            {"token_id": tid, "outcome": outcome, "price": 0.5, "winner": False}
            for outcome, tid in outcomes
        ],
        "active": active,
        "closed": False,
        "accepting_orders": accepting,
        "end_date_iso": "2026-12-31T00:00:00Z",
        "tags": list(tags),
    }


class TestParseMarket:
    def test_basic(self):
        m = parse_market(_market_json("c1", "y1", "n1"))
        assert m.condition_id == "c1"
        assert m.yes_token_id == "y1"
        assert m.no_token_id == "n1"
        assert m.tokens[0].price == Decimal("0.5")
        assert m.tags == ("Crypto",)
        assert m.is_actionable is True

    def test_camel_case_condition_id(self):
        raw = _market_json("c1")
        raw["conditionId"] = raw.pop("condition_id")
        assert parse_market(raw).condition_id == "c1"

    def test_missing_tokens_returns_none(self):
        raw = _market_json("c1")
        del raw["tokens"]
        assert parse_market(raw) is None

    def test_token_without_id_returns_none(self):
        raw = _market_json("c1")
        raw["tokens"][0]["token_id"] = ""
        assert parse_market(raw) is None


class TestCryptoFilter:
    def test_accepts_tagged_binary(self):
        assert is_valid_crypto_market(parse_market(_market_json("c1", tags=("Bitcoin",)))) is True

    def test_rejects_untagged(self):
        assert is_valid_crypto_market(parse_market(_market_json("c1", tags=("Politics",)))) is False

    def test_rejects_not_accepting_orders(self):
        assert is_valid_crypto_market(parse_market(_market_json("c1", accepting=False))) is False

    def test_rejects_three_outcomes(self):
        raw = _market_json("c1", outcomes=[("A", "a"), ("B", "b"), ("C", "c")])
        assert is_valid_crypto_market(parse_market(raw)) is False


class TestGetMarketsPage:
    @respx.mock
    def test_paged_response(self):
        route = respx.get(f"{CLOB_HOST}/markets").mock(
            return_value=httpx.Response(200, json={
                "data": [_market_json("c1"), {"garbage": True}],
                "next_cursor": "MTAw",
            })
        )
        markets, cursor = get_markets_page(CLOB_HOST, limit=100)
        assert [m.condition_id for m in markets] == ["c1"]
        assert cursor == "MTAw"
        params = route.calls.last.request.url.params
        assert params["active"] == "true"
        assert params["limit"] == "100"

    @respx.mock
    def test_list_response_is_last_page(self):
        respx.get(f"{CLOB_HOST}/markets").mock(
            return_value=httpx.Response(200, json=[_market_json("c1")])
        )
        markets, cursor = get_markets_page(CLOB_HOST)
        assert len(markets) == 1
        assert cursor == END_CURSOR

    @respx.mock
    def test_http_error_raises_transport_error(self):
        respx.get(f"{CLOB_HOST}/markets").mock(return_value=httpx.Response(500))
        with pytest.raises(TransportError):
            get_markets_page(CLOB_HOST)

    @respx.mock
    def test_bad_json_raises_transport_error(self):
        respx.get(f"{CLOB_HOST}/markets").mock(return_value=httpx.Response(200, content=b"<html>"))
        with pytest.raises(TransportError):
            get_markets_page(CLOB_HOST)


class TestDiscoverMarkets:
    @respx.mock
    def test_follows_cursor_and_filters(self):
        route = respx.get(f"{CLOB_HOST}/markets")
        route.side_effect = [
            httpx.Response(200, json={
                "data": [_market_json("c1"), _market_json("c2", tags=("Sports",))],
                "next_cursor": "MQ==",
            }),
            httpx.Response(200, json={
                "data": [_market_json("c3", tags=("Solana",)), _market_json("c1")],
                "next_cursor": END_CURSOR,
            }),
        ]
        markets = discover_markets(CLOB_HOST)
        assert [m.condition_id for m in markets] == ["c1", "c3"]
        assert route.call_count == 2
        assert route.calls[1].request.url.params["next_cursor"] == "MQ=="

    @respx.mock
    def test_transport_failure_returns_partial(self):
        route = respx.get(f"{CLOB_HOST}/markets")
        route.side_effect = [
            httpx.Response(200, json={"data": [_market_json("c1")], "next_cursor": "MQ=="}),
            httpx.ConnectError("connection refused"),
        ]
        markets = discover_markets(CLOB_HOST)
        assert [m.condition_id for m in markets] == ["c1"]

    @respx.mock
    def test_max_pages_bound(self):
        route = respx.get(f"{CLOB_HOST}/markets").mock(
            return_value=httpx.Response(200, json={"data": [_market_json("c1")], "next_cursor": "more"})
        )
        discover_markets(CLOB_HOST, max_pages=3)
        assert route.call_count == 3

    @respx.mock
    def test_empty_page_stops(self):
        route = respx.get(f"{CLOB_HOST}/markets").mock(
            return_value=httpx.Response(200, json={"data": [], "next_cursor": "more"})
        )
        assert discover_markets(CLOB_HOST) == []
        assert route.call_count == 1
