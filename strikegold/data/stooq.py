from __future__ import annotations

import csv
import io
from typing import Optional, Sequence

import httpx

from strikegold.core.errors import InvalidSymbolError, NoDataError, QuoteError
from strikegold.core.logging import get_logger
from strikegold.core.utils import to_float
from strikegold.data.http import DEFAULT_TIMEOUT, HttpFetcher

log = get_logger("stooq")

STOOQ_HOSTS = ("https://stooq.com", "https://stooq.pl")


def stooq_symbol(symbol: str) -> str:
    """US tickers need the .us suffix; anything already suffixed is left alone."""
    s = symbol.strip().lower()
    if not s:
        raise InvalidSymbolError("empty symbol")
    return s if "." in s else f"{s}.us"


def price_from_csv(text: str) -> Optional[float]:
    rows = list(csv.reader(io.StringIO(text.strip())))
    if len(rows) < 2:
        return None
    header = [h.strip().lower() for h in rows[0]]
    values = [v.strip() for v in rows[1]]
    for column in ("close", "open"):
        if column in header:
            idx = header.index(column)
            if idx < len(values):
                price = to_float(values[idx])
                if price is not None:
                    return price
    return None


class StooqSource:
    """Stooq light CSV quote, tried against each mirror in turn."""

    name = "stooq"

    def __init__(
        self,
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_TIMEOUT,
        hosts: Sequence[str] = STOOQ_HOSTS,
    ) -> None:
        self.hosts = tuple(hosts)
        self.http = HttpFetcher(source=self.name, client=client, timeout=timeout, headers={"Accept": "text/csv"})

    async def _from_host(self, host: str, sym: str) -> Optional[float]:
        # the bare "h" flag asks for the header row
        url = f"{host.rstrip('/')}/q/l/?s={sym}&f=sd2t2ohlcv&h&e=csv"
        response = await self.http.get(url)
        if response.status_code != 200:
            log.debug(f"[stooq] {host} status={response.status_code}")
            return None
        return price_from_csv(response.text)

    async def fetch_price(self, symbol: str) -> float:
        sym = stooq_symbol(symbol)
        for host in self.hosts:
            try:
                price = await self._from_host(host, sym)
            except QuoteError as e:
                log.debug(f"[stooq] {host} failed for {sym}: {e}")
                continue
            if price is not None:
                return price
        raise NoDataError(f"stooq: no price for {sym}")
