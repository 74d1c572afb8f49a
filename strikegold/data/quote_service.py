from __future__ import annotations

from datetime import date
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple

import httpx

from strikegold.core.errors import InvalidSymbolError, NoDataError, QuoteError
from strikegold.core.logging import get_logger
from strikegold.core.types import OptionChain
from strikegold.core.utils import normalize_symbol
from strikegold.data.http import DEFAULT_TIMEOUT
from strikegold.data.providers.base import QuoteProvider
from strikegold.data.stooq import StooqSource
from strikegold.data.yahoo import YahooFinanceSource

log = get_logger("quotes")

PriceResolver = Callable[[str], Awaitable[float]]


async def first_success(symbol: str, resolvers: Sequence[Tuple[str, PriceResolver]]) -> float:
    """Try each named resolver in order; return the first price, else raise the last error."""
    last_error: QuoteError = NoDataError(f"no sources for {symbol}")
    for name, resolve in resolvers:
        try:
            price = await resolve(symbol)
        except QuoteError as e:
            log.debug(f"[quotes] {name} failed for {symbol}: {e.kind} {e}")
            last_error = e
            continue
        log.debug(f"[quotes] {symbol} -> {price} via {name}")
        return price
    raise last_error


class QuoteService:
    """Facade over at most one configured provider plus the keyless public sources.

    Price order: provider, Yahoo quote, Yahoo chart, Stooq CSV.
    Chains: provider (only if it returned contracts), else Yahoo options.
    """

    def __init__(
        self,
        provider: Optional[QuoteProvider] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_TIMEOUT,
        yahoo: Optional[YahooFinanceSource] = None,
        stooq: Optional[StooqSource] = None,
    ) -> None:
        self.provider = provider
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout)
        self.yahoo = yahoo or YahooFinanceSource(client=self.client, timeout=timeout)
        self.stooq = stooq or StooqSource(client=self.client, timeout=timeout)

    @property
    def provider_name(self) -> str:
        return self.provider.name if self.provider is not None else "public"

    def price_resolvers(self) -> List[Tuple[str, PriceResolver]]:
        resolvers: List[Tuple[str, PriceResolver]] = []
        if self.provider is not None:
            resolvers.append((self.provider.name, self.provider.fetch_price))
        resolvers.extend(
            [
                ("yahoo_quote", self.yahoo.fetch_quote_price),
                ("yahoo_chart", self.yahoo.fetch_chart_price),
                ("stooq", self.stooq.fetch_price),
            ]
        )
        return resolvers

    async def fetch_delayed_price(self, symbol: str) -> float:
        s = normalize_symbol(symbol)
        if not s:
            raise InvalidSymbolError("empty symbol")
        return await first_success(s, self.price_resolvers())

    async def fetch_option_chain(self, symbol: str, expiration: Optional[date] = None) -> OptionChain:
        s = normalize_symbol(symbol)
        if not s:
            raise InvalidSymbolError("empty symbol")

        if self.provider is not None:
            try:
                chain = await self.provider.fetch_chain(s, expiration)
            except QuoteError as e:
                log.debug(f"[quotes] {self.provider.name} chain failed for {s}: {e.kind} {e}; using yahoo")
            else:
                log.debug(
                    f"[quotes] {self.provider.name} chain {s}: expirations={len(chain.expirations)} "
                    f"calls={len(chain.calls)} puts={len(chain.puts)} priced={chain.priced_count()}"
                )
                if chain.has_contracts:
                    return chain
                log.debug(f"[quotes] {self.provider.name} chain for {s} is empty; using yahoo")

        return await self.yahoo.fetch_option_chain(s, expiration)

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()
