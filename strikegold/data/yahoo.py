from __future__ import annotations

from calendar import timegm
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from strikegold.core.errors import InvalidSymbolError, NoDataError, ParseError
from strikegold.core.logging import get_logger
from strikegold.core.types import OptionChain, OptionContract, OptionKind
from strikegold.core.utils import normalize_symbol, to_float
from strikegold.data.http import DEFAULT_TIMEOUT, HttpFetcher

log = get_logger("yahoo")

YAHOO_BASE = "https://query2.finance.yahoo.com"

BROWSER_HEADERS = {
    "Accept-Language": "en-US,en;q=0.9",
    "User-Agent": (
        "Mozilla/5.0 (iPhone; CPU iPhone OS 18_2 like Mac OS X) AppleWebKit/605.1.15 "
        "(KHTML, like Gecko) Version/18.2 Mobile/15E148 Safari/604.1"
    ),
}

_LOCALE = {"lang": "en-US", "region": "US"}


def _first(items: Any) -> Optional[Dict[str, Any]]:
    if isinstance(items, list) and items and isinstance(items[0], dict):
        return items[0]
    return None


def _unix_to_date(value: Any) -> Optional[date]:
    ts = to_float(value)
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).date()


def _date_to_unix(d: date) -> int:
    return timegm(d.timetuple())


def price_from_quote_payload(data: Any) -> Optional[float]:
    """quoteResponse.result[0]: regular, post, pre, open, previous close, else bid/ask mid."""
    qr = data.get("quoteResponse") if isinstance(data, dict) else None
    if not isinstance(qr, dict):
        raise ParseError("yahoo quote: missing quoteResponse")
    item = _first(qr.get("result"))
    if item is None:
        return None
    for key in (
        "regularMarketPrice",
        "postMarketPrice",
        "preMarketPrice",
        "regularMarketOpen",
        "regularMarketPreviousClose",
    ):
        price = to_float(item.get(key))
        if price is not None:
            return price
    bid, ask = to_float(item.get("bid")), to_float(item.get("ask"))
    if bid is not None and ask is not None and bid > 0 and ask > 0:
        return (bid + ask) / 2.0
    return None


def price_from_chart_payload(data: Any) -> Optional[float]:
    """chart.result[0]: meta price, else last non-null daily close, else previous close."""
    chart = data.get("chart") if isinstance(data, dict) else None
    if not isinstance(chart, dict):
        raise ParseError("yahoo chart: missing chart")
    result = _first(chart.get("result"))
    if result is None:
        return None
    meta = result.get("meta") or {}
    price = to_float(meta.get("regularMarketPrice"))
    if price is not None:
        return price
    quote = _first((result.get("indicators") or {}).get("quote"))
    closes = [to_float(c) for c in (quote or {}).get("close") or []]
    closes = [c for c in closes if c is not None]
    if closes:
        return closes[-1]
    return to_float(meta.get("previousClose"))


@dataclass
class ParsedYahooChain:
    expirations: List[date] = field(default_factory=list)
    call_strikes: List[float] = field(default_factory=list)
    put_strikes: List[float] = field(default_factory=list)
    calls: List[OptionContract] = field(default_factory=list)
    puts: List[OptionContract] = field(default_factory=list)

    @property
    def has_strikes(self) -> bool:
        return bool(self.call_strikes or self.put_strikes)

    def to_chain(self, expirations: Optional[List[date]] = None) -> OptionChain:
        # A side with strikes but no contract rows is rendered as unpriced contracts
        calls = self.calls or [OptionContract(kind="call", strike=k) for k in self.call_strikes]
        puts = self.puts or [OptionContract(kind="put", strike=k) for k in self.put_strikes]
        return OptionChain(
            expirations=list(expirations if expirations is not None else self.expirations),
            calls=calls,
            puts=puts,
        )


def _contracts(rows: Any, kind: OptionKind) -> List[OptionContract]:
    out: List[OptionContract] = []
    for row in rows or []:
        if not isinstance(row, dict):
            continue
        strike = to_float(row.get("strike"))
        if strike is None:
            continue
        out.append(
            OptionContract(
                kind=kind,
                strike=strike,
                bid=to_float(row.get("bid")),
                ask=to_float(row.get("ask")),
                last=to_float(row.get("lastPrice")),
            )
        )
    return sorted(out, key=lambda c: c.strike)


def parse_options_payload(data: Any) -> ParsedYahooChain:
    oc = data.get("optionChain") if isinstance(data, dict) else None
    if not isinstance(oc, dict):
        raise ParseError("yahoo options: missing optionChain")
    result = _first(oc.get("result"))
    if result is None:
        return ParsedYahooChain()

    expirations = sorted({d for d in (_unix_to_date(v) for v in result.get("expirationDates") or []) if d})
    opts = _first(result.get("options")) or {}
    calls = _contracts(opts.get("calls"), "call")
    puts = _contracts(opts.get("puts"), "put")

    all_strikes = sorted({s for s in (to_float(v) for v in result.get("strikes") or []) if s is not None})
    call_strikes = sorted({c.strike for c in calls}) or all_strikes
    put_strikes = sorted({c.strike for c in puts}) or all_strikes
    return ParsedYahooChain(
        expirations=expirations,
        call_strikes=call_strikes,
        put_strikes=put_strikes,
        calls=calls,
        puts=puts,
    )


class YahooFinanceSource:
    """Keyless Yahoo Finance endpoints: v7 quote, v8 chart, v7 options."""

    name = "yahoo"

    def __init__(
        self,
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_TIMEOUT,
        base_url: str = YAHOO_BASE,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.http = HttpFetcher(source=self.name, client=client, timeout=timeout, headers=BROWSER_HEADERS)

    @staticmethod
    def _symbol(symbol: str) -> str:
        s = normalize_symbol(symbol)
        if not s:
            raise InvalidSymbolError("empty symbol")
        return s

    async def fetch_quote_price(self, symbol: str) -> float:
        s = self._symbol(symbol)
        data = await self.http.get_json(f"{self.base_url}/v7/finance/quote", params={"symbols": s, **_LOCALE})
        price = price_from_quote_payload(data)
        if price is None:
            raise NoDataError(f"yahoo quote: no price for {s}")
        return price

    async def fetch_chart_price(self, symbol: str) -> float:
        s = self._symbol(symbol)
        data = await self.http.get_json(
            f"{self.base_url}/v8/finance/chart/{s}",
            params={"range": "1d", "interval": "1d", **_LOCALE},
        )
        price = price_from_chart_payload(data)
        if price is None:
            raise NoDataError(f"yahoo chart: no price for {s}")
        return price

    async def _options(self, s: str, expiration: Optional[date]) -> ParsedYahooChain:
        params: Dict[str, Any] = dict(_LOCALE)
        if expiration is not None:
            params["date"] = _date_to_unix(expiration)
        data = await self.http.get_json(f"{self.base_url}/v7/finance/options/{s}", params=params)
        return parse_options_payload(data)

    async def fetch_option_chain(self, symbol: str, expiration: Optional[date] = None) -> OptionChain:
        """Two-pass fetch: without an expiration, the first call may only list dates;
        the nearest one is then requested explicitly."""
        s = self._symbol(symbol)
        first = await self._options(s, expiration)
        log.debug(
            f"[yahoo] options {s} exp={expiration}: expirations={len(first.expirations)} "
            f"calls={len(first.calls)} puts={len(first.puts)}"
        )
        if expiration is not None or first.has_strikes or not first.expirations:
            return first.to_chain()

        pinned = first.expirations[0]
        second = await self._options(s, pinned)
        log.debug(f"[yahoo] options {s} second pass exp={pinned}: calls={len(second.calls)} puts={len(second.puts)}")
        return second.to_chain(second.expirations or first.expirations)
