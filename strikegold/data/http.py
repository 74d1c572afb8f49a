from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from strikegold.core.errors import NetworkError, ParseError, UnauthorizedError
from strikegold.core.logging import get_logger

DEFAULT_TIMEOUT = 12.0

# Quotes must never come from a client-side cache
NO_CACHE_HEADERS = {
    "Accept": "application/json",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
}

log = get_logger("http")


def check_status(response: httpx.Response, source: str = "") -> None:
    code = response.status_code
    if code in (401, 403):
        raise UnauthorizedError(f"{source} HTTP {code}", status_code=code)
    if code != 200:
        raise NetworkError(f"{source} HTTP {code}", status_code=code)


def decode_json(response: httpx.Response, source: str = "") -> Any:
    try:
        return response.json()
    except ValueError as e:
        raise ParseError(f"{source} undecodable JSON: {e}") from e


class HttpFetcher:
    """Thin wrapper over httpx.AsyncClient applying the timeout and no-cache policy.

    When no client is injected, a short-lived client is opened per request.
    """

    def __init__(
        self,
        *,
        source: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = DEFAULT_TIMEOUT,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        self.source = source
        self.client = client
        self.timeout = timeout
        self.headers = {**NO_CACHE_HEADERS, **(headers or {})}

    async def get(
        self,
        url: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        merged = {**self.headers, **(headers or {})}
        log.debug(f"[{self.source}] GET {url} params={_redact(params)}")
        try:
            if self.client is not None:
                return await self.client.get(url, params=params, headers=merged, timeout=self.timeout)
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                return await client.get(url, params=params, headers=merged)
        except httpx.HTTPError as e:
            raise NetworkError(f"{self.source} transport error: {e}") from e

    async def get_json(
        self,
        url: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        response = await self.get(url, params=params, headers=headers)
        if response.status_code != 200:
            log.debug(f"[{self.source}] status={response.status_code} body={response.text[:400]}")
        check_status(response, self.source)
        return decode_json(response, self.source)


_SECRET_PARAMS = {"token", "apikey", "apiKey"}


def _redact(params: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not params:
        return params
    return {k: ("***" if k in _SECRET_PARAMS else v) for k, v in params.items()}
