from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

import httpx

from strikegold.core.errors import NoDataError, ParseError
from strikegold.core.types import compute_mid
from strikegold.core.utils import to_float
from strikegold.data.http import DEFAULT_TIMEOUT
from strikegold.data.providers.base import QuoteOnlyProvider


class TradeStationProvider(QuoteOnlyProvider):
    name = "tradestation"
    base_url = "https://api.tradestation.com"

    def __init__(
        self,
        token: str,
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.token = token
        super().__init__(client=client, timeout=timeout)

    def auth_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}

    def validation_request(self) -> Tuple[str, Dict[str, Any]]:
        return "/v3/marketdata/quotes", {"symbols": "AAPL"}

    async def fetch_price(self, symbol: str) -> float:
        s = self.clean_symbol(symbol)
        data = await self.http.get_json(self.url("/v3/marketdata/quotes"), params={"symbols": s})
        quotes = data.get("Quotes") if isinstance(data, dict) else None
        if not isinstance(quotes, list):
            raise ParseError("tradestation quotes: unexpected payload")
        if not quotes or not isinstance(quotes[0], dict):
            raise NoDataError(f"tradestation: no quote for {s}")
        q = quotes[0]
        for key in ("Last", "Close"):
            price = to_float(q.get(key))
            if price is not None and price > 0:
                return price
        bid, ask = to_float(q.get("Bid")), to_float(q.get("Ask"))
        if bid is not None and ask is not None and bid > 0 and ask > 0:
            return compute_mid(bid, ask)  # type: ignore[return-value]
        raise NoDataError(f"tradestation: no price for {s}")
