from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Optional, Tuple

import httpx

from strikegold.core.errors import ChainUnsupportedError, InvalidSymbolError, NetworkError
from strikegold.core.types import OptionChain
from strikegold.core.utils import normalize_symbol
from strikegold.data.http import DEFAULT_TIMEOUT, HttpFetcher


@dataclass
class TokenValidationResult:
    ok: bool
    status_code: Optional[int] = None
    error_description: Optional[str] = None


_VALIDATION_MESSAGES = {
    401: "Unauthorized: Invalid or expired token.",
    403: "Forbidden: Token recognized but your plan doesn't include this endpoint.",
}


class QuoteProvider(ABC):
    """One market-data source able to price an underlying and, optionally, build a chain."""

    name: str = "provider"

    @abstractmethod
    async def fetch_price(self, symbol: str) -> float:
        ...

    @abstractmethod
    async def fetch_chain(self, symbol: str, expiration: Optional[date] = None) -> OptionChain:
        ...

    async def validate_token(self) -> TokenValidationResult:
        return TokenValidationResult(ok=True)

    @staticmethod
    def clean_symbol(symbol: str) -> str:
        s = normalize_symbol(symbol)
        if not s:
            raise InvalidSymbolError("empty symbol")
        return s


class HttpQuoteProvider(QuoteProvider):
    """Base for BYO-key REST vendors."""

    base_url: str = ""

    def __init__(
        self,
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.http = HttpFetcher(source=self.name, client=client, timeout=timeout, headers=self.auth_headers())

    def auth_headers(self) -> Dict[str, str]:
        return {}

    def url(self, path: str) -> str:
        return self.base_url.rstrip("/") + path

    def validation_request(self) -> Tuple[str, Dict[str, Any]]:
        """(path, query params) of a cheap authorized request."""
        raise NotImplementedError

    async def validate_token(self) -> TokenValidationResult:
        path, params = self.validation_request()
        try:
            response = await self.http.get(self.url(path), params=params)
        except NetworkError as e:
            return TokenValidationResult(ok=False, status_code=None, error_description=str(e))
        code = response.status_code
        if code == 200:
            return TokenValidationResult(ok=True, status_code=200)
        msg = _VALIDATION_MESSAGES.get(code, f"HTTP {code}.")
        return TokenValidationResult(ok=False, status_code=code, error_description=msg)


class QuoteOnlyProvider(HttpQuoteProvider):
    """Vendor without a usable chain endpoint: chain requests always defer to the next source."""

    async def fetch_chain(self, symbol: str, expiration: Optional[date] = None) -> OptionChain:
        raise ChainUnsupportedError(f"{self.name} does not provide option chains")
