from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple

import httpx
import pytest

from strikegold.core.errors import QuoteError
from strikegold.core.types import OptionChain, OptionContract, SavedOrder
from strikegold.monitor.storage import StorageManager

Handler = Callable[[httpx.Request], httpx.Response]


@pytest.fixture
def make_client() -> Callable[[Handler], httpx.AsyncClient]:
    """httpx client whose every request is answered by ``handler``."""

    def _make(handler: Handler) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return _make


@pytest.fixture
def storage(tmp_path) -> StorageManager:
    sm = StorageManager(db_path=str(tmp_path / "strikegold.db"))
    yield sm
    sm.close()


class FakeQuotes:
    """Stands in for QuoteService: serves canned chains per symbol and records calls."""

    def __init__(
        self,
        chains: Optional[Dict[str, OptionChain]] = None,
        errors: Optional[Dict[str, QuoteError]] = None,
    ) -> None:
        self.chains = chains or {}
        self.errors = errors or {}
        self.calls: List[Tuple[str, Optional[date]]] = []

    async def fetch_option_chain(self, symbol: str, expiration: Optional[date] = None) -> OptionChain:
        self.calls.append((symbol, expiration))
        if symbol in self.errors:
            raise self.errors[symbol]
        return self.chains.get(symbol, OptionChain())


@pytest.fixture
def fake_quotes() -> Callable[..., FakeQuotes]:
    return FakeQuotes


def chain_with(*contracts: OptionContract, expirations: Optional[List[date]] = None) -> OptionChain:
    return OptionChain(
        expirations=expirations or [date(2025, 1, 17)],
        calls=[c for c in contracts if c.kind == "call"],
        puts=[c for c in contracts if c.kind == "put"],
    )


@pytest.fixture
def make_chain() -> Callable[..., OptionChain]:
    return chain_with


def saved_order(**overrides) -> SavedOrder:
    fields = dict(
        id="ord-1",
        placed_at=datetime(2025, 1, 10, 15, 0, tzinfo=timezone.utc),
        symbol="AAPL",
        expiration=date(2025, 1, 17),
        right="call",
        strike=100.0,
        side="buy",
        quantity=2,
        limit=2.60,
        tif="day",
        status="working",
    )
    fields.update(overrides)
    return SavedOrder(**fields)


@pytest.fixture
def make_order() -> Callable[..., SavedOrder]:
    return saved_order
