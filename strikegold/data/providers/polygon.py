from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

import httpx

from strikegold.core.errors import NoDataError, ParseError, QuoteError
from strikegold.core.logging import get_logger
from strikegold.core.utils import to_float
from strikegold.data.http import DEFAULT_TIMEOUT
from strikegold.data.providers.base import QuoteOnlyProvider

log = get_logger("quotes")


class PolygonProvider(QuoteOnlyProvider):
    """Polygon stocks snapshot, falling back to the previous-day aggregate.

    Any snapshot failure (401/403 on lower plans, non-200, empty payload) retries
    against /v2/aggs/ticker/{SYM}/prev before giving up.
    """

    name = "polygon"
    base_url = "https://api.polygon.io"

    def __init__(
        self,
        token: str,
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.token = token
        super().__init__(client=client, timeout=timeout)

    def validation_request(self) -> Tuple[str, Dict[str, Any]]:
        return "/v3/reference/tickers", {"limit": 1, "apiKey": self.token}

    async def fetch_price(self, symbol: str) -> float:
        s = self.clean_symbol(symbol)
        try:
            return await self._snapshot_price(s)
        except QuoteError as e:
            log.debug(f"[polygon] snapshot failed for {s} ({e.kind}); trying prev close")
        return await self._prev_close(s)

    async def _snapshot_price(self, s: str) -> float:
        data = await self.http.get_json(
            self.url(f"/v2/snapshot/locale/us/markets/stocks/tickers/{s}"),
            params={"apiKey": self.token},
        )
        ticker = data.get("ticker") if isinstance(data, dict) else None
        if not isinstance(ticker, dict):
            raise ParseError("polygon snapshot: missing ticker")
        last_trade = ticker.get("lastTrade") or {}
        day = ticker.get("day") or {}
        for value in (last_trade.get("p"), day.get("c"), day.get("o")):
            price = to_float(value)
            if price is not None and price > 0:
                return price
        raise NoDataError(f"polygon: empty snapshot for {s}")

    async def _prev_close(self, s: str) -> float:
        data = await self.http.get_json(
            self.url(f"/v2/aggs/ticker/{s}/prev"),
            params={"adjusted": "true", "apiKey": self.token},
        )
        results = data.get("results") if isinstance(data, dict) else None
        if not isinstance(results, list):
            raise NoDataError(f"polygon prev close: no results for {s}")
        for row in results[:1]:
            if not isinstance(row, dict):
                continue
            for value in (row.get("c"), row.get("o")):
                price = to_float(value)
                if price is not None and price > 0:
                    return price
        raise NoDataError(f"polygon: no prev close for {s}")
