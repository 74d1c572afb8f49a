from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

import httpx

from strikegold.core.errors import NoDataError, ParseError
from strikegold.core.utils import to_float
from strikegold.data.http import DEFAULT_TIMEOUT
from strikegold.data.providers.base import QuoteOnlyProvider


class FinnhubProvider(QuoteOnlyProvider):
    """Finnhub /quote. Token travels as a query parameter."""

    name = "finnhub"
    base_url = "https://finnhub.io/api/v1"

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
        return "/quote", {"symbol": "AAPL", "token": self.token}

    async def fetch_price(self, symbol: str) -> float:
        s = self.clean_symbol(symbol)
        data = await self.http.get_json(self.url("/quote"), params={"symbol": s, "token": self.token})
        if not isinstance(data, dict):
            raise ParseError("finnhub quote: unexpected payload")
        # current, last, open, previous close
        for key in ("c", "lp", "o", "pc"):
            price = to_float(data.get(key))
            if price is not None and price > 0:
                return price
        raise NoDataError(f"finnhub: no price for {s}")
