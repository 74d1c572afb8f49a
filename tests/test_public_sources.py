from __future__ import annotations

import asyncio
from datetime import date

import httpx
import pytest

from strikegold.core.errors import NoDataError, ParseError
from strikegold.data.stooq import StooqSource, price_from_csv, stooq_symbol
from strikegold.data.yahoo import (
    YahooFinanceSource,
    parse_options_payload,
    price_from_chart_payload,
    price_from_quote_payload,
)

JAN17 = 1737072000  # 2025-01-17 00:00 UTC
JAN24 = 1737676800


def test_quote_payload_price_order() -> None:
    assert price_from_quote_payload({"quoteResponse": {"result": [{"regularMarketPrice": 10.0, "postMarketPrice": 11.0}]}}) == 10.0
    assert price_from_quote_payload({"quoteResponse": {"result": [{"preMarketPrice": 9.5, "regularMarketOpen": 9.0}]}}) == 9.5
    assert price_from_quote_payload({"quoteResponse": {"result": [{"bid": 1.0, "ask": 2.0}]}}) == 1.5
    assert price_from_quote_payload({"quoteResponse": {"result": []}}) is None
    with pytest.raises(ParseError):
        price_from_quote_payload({"finance": {"error": "x"}})


def test_chart_payload_price_order() -> None:
    base = {"chart": {"result": [{"meta": {"previousClose": 90.0}, "indicators": {"quote": [{"close": [91.0, None]}]}}]}}
    assert price_from_chart_payload(base) == 91.0
    base["chart"]["result"][0]["meta"]["regularMarketPrice"] = 92.0
    assert price_from_chart_payload(base) == 92.0
    only_prev = {"chart": {"result": [{"meta": {"previousClose": 90.0}, "indicators": {"quote": [{"close": [None]}]}}]}}
    assert price_from_chart_payload(only_prev) == 90.0


def test_options_payload_raw_strikes_and_strike_only_sides() -> None:
    payload = {
        "optionChain": {
            "result": [
                {
                    "expirationDates": [JAN24, JAN17],
                    "strikes": [100, 105],
                    "options": [
                        {
                            "calls": [
                                {"strike": {"raw": 105.0, "fmt": "105.00"}, "bid": 1.0, "ask": 1.2, "lastPrice": 1.1},
                                {"strike": 100.0, "bid": 3.0, "ask": 3.3},
                            ],
                            "puts": [],
                        }
                    ],
                }
            ]
        }
    }
    parsed = parse_options_payload(payload)
    assert parsed.expirations == [date(2025, 1, 17), date(2025, 1, 24)]
    assert parsed.call_strikes == [100.0, 105.0]
    assert parsed.put_strikes == [100.0, 105.0]
    chain = parsed.to_chain()
    assert [c.strike for c in chain.calls] == [100.0, 105.0]
    assert chain.find("call", 105.0).last == 1.1
    # puts only known by strike: present but unpriced
    assert [c.strike for c in chain.puts] == [100.0, 105.0]
    assert not any(c.is_priced for c in chain.puts)


def test_yahoo_two_pass_chain(make_client) -> None:
    requested = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.host == "query2.finance.yahoo.com"
        assert "Mozilla" in request.headers["User-Agent"]
        requested.append(request.url.params.get("date"))
        if request.url.params.get("date") is None:
            return httpx.Response(
                200,
                json={"optionChain": {"result": [{"expirationDates": [JAN17, JAN24], "strikes": [], "options": []}]}},
            )
        return httpx.Response(
            200,
            json={
                "optionChain": {
                    "result": [
                        {
                            "expirationDates": [],
                            "options": [{"calls": [{"strike": 150, "bid": 1.0, "ask": 1.1}], "puts": []}],
                        }
                    ]
                }
            },
        )

    yahoo = YahooFinanceSource(client=make_client(handler))
    chain = asyncio.run(yahoo.fetch_option_chain("aapl"))
    assert requested == [None, str(JAN17)]
    # second pass reported no expirations, so the first pass's list is kept
    assert chain.expirations == [date(2025, 1, 17), date(2025, 1, 24)]
    assert chain.call_strikes == [150.0]


def test_yahoo_explicit_expiration_is_single_call(make_client) -> None:
    requested = []

    def handler(request: httpx.Request) -> httpx.Response:
        requested.append(request.url.params.get("date"))
        return httpx.Response(200, json={"optionChain": {"result": [{"expirationDates": [JAN24], "options": []}]}})

    chain = asyncio.run(YahooFinanceSource(client=make_client(handler)).fetch_option_chain("AAPL", date(2025, 1, 24)))
    assert requested == [str(JAN24)]
    assert not chain.has_contracts


def test_yahoo_quote_and_chart_endpoints(make_client) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/v7/finance/quote":
            assert request.url.params["symbols"] == "MSFT"
            return httpx.Response(200, json={"quoteResponse": {"result": [{"regularMarketPrice": 410.0}]}})
        assert request.url.path == "/v8/finance/chart/MSFT"
        assert request.url.params["range"] == "1d"
        return httpx.Response(200, json={"chart": {"result": []}})

    yahoo = YahooFinanceSource(client=make_client(handler))
    assert asyncio.run(yahoo.fetch_quote_price("msft")) == 410.0
    with pytest.raises(NoDataError):
        asyncio.run(yahoo.fetch_chart_price("msft"))


CSV = "Symbol,Date,Time,Open,High,Low,Close,Volume\nAAPL.US,2025-01-10,22:00:00,190.1,192,189,191.25,1000\n"


def test_stooq_symbol_suffix() -> None:
    assert stooq_symbol(" AAPL ") == "aapl.us"
    assert stooq_symbol("vod.uk") == "vod.uk"


def test_price_from_csv() -> None:
    assert price_from_csv(CSV) == 191.25
    nd = "Symbol,Date,Time,Open,High,Low,Close,Volume\nAAPL.US,N/D,N/D,190.10,N/D,N/D,N/D,N/D\n"
    assert price_from_csv(nd) == 190.1
    assert price_from_csv("Symbol,Close\n") is None


def test_stooq_tries_second_host(make_client) -> None:
    hosts = []

    def handler(request: httpx.Request) -> httpx.Response:
        hosts.append(request.url.host)
        assert request.url.params["s"] == "aapl.us"
        if request.url.host == "stooq.com":
            return httpx.Response(503)
        return httpx.Response(200, text=CSV)

    assert asyncio.run(StooqSource(client=make_client(handler)).fetch_price("AAPL")) == 191.25
    assert hosts == ["stooq.com", "stooq.pl"]


def test_stooq_no_data_anywhere(make_client) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("down", request=request)

    with pytest.raises(NoDataError):
        asyncio.run(StooqSource(client=make_client(handler)).fetch_price("AAPL"))
