from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Literal, Optional, Tuple

import httpx

from strikegold.core.errors import NoDataError, ParseError
from strikegold.core.logging import get_logger
from strikegold.core.types import OptionChain, OptionContract, compute_mid
from strikegold.core.utils import to_float
from strikegold.data.http import DEFAULT_TIMEOUT
from strikegold.data.providers.base import HttpQuoteProvider

log = get_logger("quotes")

_BASE_URLS = {
    "production": "https://api.tradier.com",
    "sandbox": "https://sandbox.tradier.com",
}


def _as_list(value: Any) -> List[Any]:
    # Tradier collapses single-element arrays into a bare object
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


class TradierProvider(HttpQuoteProvider):
    """Tradier REST (bearer token). Quotes plus expirations/chains endpoints."""

    name = "tradier"

    def __init__(
        self,
        token: str,
        *,
        environment: Literal["production", "sandbox"] = "production",
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.token = token
        self.environment = environment
        self.base_url = _BASE_URLS[environment]
        super().__init__(client=client, timeout=timeout)

    def auth_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}

    def validation_request(self) -> Tuple[str, Dict[str, Any]]:
        return "/v1/markets/quotes", {"symbols": "AAPL", "greeks": "false"}

    async def fetch_price(self, symbol: str) -> float:
        s = self.clean_symbol(symbol)
        data = await self.http.get_json(self.url("/v1/markets/quotes"), params={"symbols": s, "greeks": "false"})
        if not isinstance(data, dict):
            raise ParseError("tradier quotes: unexpected payload")
        inner = data.get("quotes")
        if not isinstance(inner, dict):
            raise NoDataError(f"tradier: no quote for {s}")
        for q in _as_list(inner.get("quote")):
            if not isinstance(q, dict):
                continue
            price = to_float(q.get("last"))
            if price is None:
                price = to_float(q.get("close"))
            if price is not None:
                return price
            bid, ask = to_float(q.get("bid")), to_float(q.get("ask"))
            if bid is not None and ask is not None and bid > 0 and ask > 0:
                return compute_mid(bid, ask)  # type: ignore[return-value]
        raise NoDataError(f"tradier: no price for {s}")

    async def fetch_expirations(self, symbol: str) -> List[date]:
        s = self.clean_symbol(symbol)
        data = await self.http.get_json(
            self.url("/v1/markets/options/expirations"),
            params={"symbol": s, "includeAllRoots": "true", "strikes": "false"},
        )
        out: set[date] = set()
        exp_obj = data.get("expirations") if isinstance(data, dict) else None
        if isinstance(exp_obj, dict):
            for raw in _as_list(exp_obj.get("date")):
                try:
                    out.add(date.fromisoformat(str(raw)[:10]))
                except ValueError:
                    continue
        return sorted(out)

    async def fetch_chain(self, symbol: str, expiration: Optional[date] = None) -> OptionChain:
        s = self.clean_symbol(symbol)
        expirations = await self.fetch_expirations(s)
        target = expiration or (expirations[0] if expirations else None)
        if target is None:
            return OptionChain(expirations=expirations)

        data = await self.http.get_json(
            self.url("/v1/markets/options/chains"),
            params={"symbol": s, "expiration": target.isoformat()},
        )
        if not isinstance(data, dict):
            raise ParseError("tradier chains: unexpected payload")
        options = data.get("options")
        rows = _as_list(options.get("option")) if isinstance(options, dict) else []

        calls: List[OptionContract] = []
        puts: List[OptionContract] = []
        for o in rows:
            if not isinstance(o, dict):
                continue
            strike = to_float(o.get("strike"))
            kind = str(o.get("option_type") or "").lower()
            if strike is None or kind not in ("call", "put"):
                continue
            contract = OptionContract(
                kind=kind,  # type: ignore[arg-type]
                strike=strike,
                bid=to_float(o.get("bid")),
                ask=to_float(o.get("ask")),
                last=to_float(o.get("last")),
            )
            (calls if kind == "call" else puts).append(contract)

        chain = OptionChain(
            expirations=expirations,
            calls=sorted(calls, key=lambda c: c.strike),
            puts=sorted(puts, key=lambda c: c.strike),
        )
        log.debug(
            f"[tradier] chain {s} {target}: expirations={len(expirations)} calls={len(chain.calls)} "
            f"puts={len(chain.puts)} priced={chain.priced_count()}"
        )
        return chain
