from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple

import httpx

from strikegold.core.errors import NoDataError, ParseError, QuoteError, UnauthorizedError
from strikegold.core.logging import get_logger
from strikegold.core.types import OptionChain, OptionContract, OptionKind, compute_mid
from strikegold.core.utils import to_float
from strikegold.data.http import DEFAULT_TIMEOUT
from strikegold.data.providers.base import HttpQuoteProvider

log = get_logger("quotes")

# ROOT + YYMMDD + C|P + strike * 1000 zero-padded to 8 digits
_OCC_RE = re.compile(r"^(?P<root>[A-Z0-9.]{1,6}?)(?P<ymd>\d{6})(?P<cp>[CP])(?P<strike>\d{8})$")


@dataclass(frozen=True)
class OccSymbol:
    root: str
    expiration: date
    kind: OptionKind
    strike: float


def parse_occ_symbol(symbol: str) -> Optional[OccSymbol]:
    """Decode an OCC option symbol, e.g. ``AAPL250117C00150000``. Returns None when malformed."""
    m = _OCC_RE.match(symbol.strip().upper())
    if not m:
        return None
    try:
        exp = datetime.strptime(m.group("ymd"), "%y%m%d").date()
    except ValueError:
        return None
    kind: OptionKind = "call" if m.group("cp") == "C" else "put"
    return OccSymbol(root=m.group("root"), expiration=exp, kind=kind, strike=int(m.group("strike")) / 1000.0)


class AlpacaProvider(HttpQuoteProvider):
    """Alpaca market data v2 (stocks) and v1beta1 (options snapshots)."""

    name = "alpaca"
    base_url = "https://data.alpaca.markets"

    def __init__(
        self,
        key_id: str,
        secret: str,
        *,
        options_feed: str = "indicative",
        max_pages: int = 5,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.key_id = key_id
        self.secret = secret
        self.options_feed = options_feed
        self.max_pages = max(1, int(max_pages))
        super().__init__(client=client, timeout=timeout)

    def auth_headers(self) -> Dict[str, str]:
        return {"APCA-API-KEY-ID": self.key_id, "APCA-API-SECRET-KEY": self.secret}

    def validation_request(self) -> Tuple[str, Dict[str, Any]]:
        return "/v2/stocks/trades/latest", {"symbols": "AAPL"}

    async def fetch_price(self, symbol: str) -> float:
        s = self.clean_symbol(symbol)
        try:
            data = await self.http.get_json(self.url("/v2/stocks/trades/latest"), params={"symbols": s})
            trade = ((data or {}).get("trades") or {}).get(s) if isinstance(data, dict) else None
            if isinstance(trade, dict):
                price = to_float(trade.get("p"))
                if price is None:
                    price = to_float(trade.get("price"))
                if price is not None and price > 0:
                    return price
            raise NoDataError(f"alpaca: no latest trade for {s}")
        except UnauthorizedError:
            raise
        except QuoteError as e:
            log.debug(f"[alpaca] latest trade failed for {s}: {e}; trying latest quote")
        return await self._quote_mid(s)

    async def _quote_mid(self, s: str) -> float:
        data = await self.http.get_json(self.url("/v2/stocks/quotes/latest"), params={"symbols": s})
        quote = ((data or {}).get("quotes") or {}).get(s) if isinstance(data, dict) else None
        if not isinstance(quote, dict):
            raise NoDataError(f"alpaca: no latest quote for {s}")
        bid = to_float(quote.get("bp"))
        if bid is None:
            bid = to_float(quote.get("bid_price"))
        ask = to_float(quote.get("ap"))
        if ask is None:
            ask = to_float(quote.get("ask_price"))
        mid = compute_mid(bid, ask)
        if mid is None or mid <= 0:
            raise NoDataError(f"alpaca: empty quote for {s}")
        return mid

    async def _snapshots(self, s: str) -> Dict[str, Any]:
        """All option snapshots for the underlying, following next_page_token up to max_pages."""
        out: Dict[str, Any] = {}
        page_token: Optional[str] = None
        for _ in range(self.max_pages):
            params: Dict[str, Any] = {"feed": self.options_feed, "limit": 1000}
            if page_token:
                params["page_token"] = page_token
            data = await self.http.get_json(self.url(f"/v1beta1/options/snapshots/{s}"), params=params)
            if not isinstance(data, dict):
                raise ParseError("alpaca snapshots: unexpected payload")
            snaps = data.get("snapshots") or {}
            if isinstance(snaps, dict):
                out.update(snaps)
            page_token = data.get("next_page_token")
            if not page_token:
                break
        return out

    async def fetch_chain(self, symbol: str, expiration: Optional[date] = None) -> OptionChain:
        s = self.clean_symbol(symbol)
        snapshots = await self._snapshots(s)

        parsed: List[Tuple[OccSymbol, Optional[float], Optional[float]]] = []
        for occ, snap in snapshots.items():
            info = parse_occ_symbol(str(occ))
            if info is None or info.root != s:
                continue
            quote = (snap.get("latestQuote") if isinstance(snap, dict) else None) or {}
            bid = to_float(quote.get("bp"))
            if bid is None:
                bid = to_float(quote.get("bid_price"))
            ask = to_float(quote.get("ap"))
            if ask is None:
                ask = to_float(quote.get("ask_price"))
            parsed.append((info, bid, ask))

        expirations = sorted({p[0].expiration for p in parsed})
        target = expiration or (expirations[0] if expirations else None)
        if target is None:
            return OptionChain(expirations=expirations)

        calls: Dict[float, OptionContract] = {}
        puts: Dict[float, OptionContract] = {}
        for info, bid, ask in parsed:
            if info.expiration != target:
                continue
            bucket = calls if info.kind == "call" else puts
            bucket.setdefault(info.strike, OptionContract(kind=info.kind, strike=info.strike, bid=bid, ask=ask))

        chain = OptionChain(
            expirations=expirations,
            calls=[calls[k] for k in sorted(calls)],
            puts=[puts[k] for k in sorted(puts)],
        )
        log.debug(
            f"[alpaca] chain {s} feed={self.options_feed} snapshots={len(snapshots)} selected={target} "
            f"calls={len(chain.calls)} puts={len(chain.puts)}"
        )
        return chain
