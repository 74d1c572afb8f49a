from __future__ import annotations


class QuoteError(Exception):
    """Base class for every quote/chain failure surfaced by providers and the quote service."""

    kind: str = "quote"
    user_message: str = "Quote unavailable."

    def __init__(self, detail: str = "") -> None:
        super().__init__(detail or self.user_message)
        self.detail = detail


class InvalidSymbolError(QuoteError):
    kind = "invalid_symbol"
    user_message = "Invalid symbol."


class NetworkError(QuoteError):
    kind = "network"
    user_message = "Network error."

    def __init__(self, detail: str = "", status_code: int | None = None) -> None:
        super().__init__(detail)
        self.status_code = status_code


class UnauthorizedError(QuoteError):
    kind = "unauthorized"
    user_message = "Not authorized for this data. Check your provider credentials."

    def __init__(self, detail: str = "", status_code: int | None = None) -> None:
        super().__init__(detail)
        self.status_code = status_code


class ChainUnsupportedError(UnauthorizedError):
    # Same kind as UnauthorizedError so fallback logic treats both as "try the next source"
    user_message = "Option chain not available from the configured provider. Falling back."


class ParseError(QuoteError):
    kind = "parse"
    user_message = "Failed to parse data."


class NoDataError(QuoteError):
    kind = "no_data"
    user_message = "No data available."


class InvalidTransitionError(ValueError):
    """Raised when a ledger write would reopen a terminal order."""
