from __future__ import annotations

import threading
from datetime import date
from typing import Any, Dict, List, Optional

from strikegold.core.errors import NoDataError
from strikegold.core.logging import get_logger
from strikegold.core.types import OptionChain, OptionContract, OptionKind, strikes_match
from strikegold.core.utils import normalize_symbol, to_float
from strikegold.data.providers.base import QuoteProvider
from strikegold.monitor.storage import StorageManager

log = get_logger("manual")

UNDERLYINGS_KEY = "manual_underlyings_v1"
CHAINS_KEY = "manual_option_chains_v1"


def _contract_to_dict(c: OptionContract) -> Dict[str, Any]:
    return {"kind": c.kind, "strike": c.strike, "bid": c.bid, "ask": c.ask, "last": c.last}


def _contract_from_dict(d: Dict[str, Any], kind: OptionKind) -> Optional[OptionContract]:
    strike = to_float(d.get("strike"))
    if strike is None:
        return None
    return OptionContract(
        kind=kind,
        strike=strike,
        bid=to_float(d.get("bid")),
        ask=to_float(d.get("ask")),
        last=to_float(d.get("last")),
    )


class ManualMarketDataStore:
    """User-entered underlying prices and option chains, persisted in the kv store.

    Layout:
      manual_underlyings_v1   -> {"AAPL": 190.5, ...}
      manual_option_chains_v1 -> {"AAPL": {"2025-01-17": {"calls": [...], "puts": [...]}}}
    """

    def __init__(self, storage: StorageManager) -> None:
        self.storage = storage
        self._lock = threading.Lock()
        self._underlyings: Dict[str, float] = {}
        self._chains: Dict[str, Dict[str, Dict[str, List[Dict[str, Any]]]]] = {}
        self._load()

    def _load(self) -> None:
        raw_prices = self.storage.get_json(UNDERLYINGS_KEY, {})
        if isinstance(raw_prices, dict):
            for sym, price in raw_prices.items():
                value = to_float(price)
                if value is not None:
                    self._underlyings[str(sym)] = value
        raw_chains = self.storage.get_json(CHAINS_KEY, {})
        if isinstance(raw_chains, dict):
            self._chains = {str(k): v for k, v in raw_chains.items() if isinstance(v, dict)}

    def _save(self) -> None:
        self.storage.set_json(UNDERLYINGS_KEY, self._underlyings)
        self.storage.set_json(CHAINS_KEY, self._chains)

    def set_underlying(self, symbol: str, price: float) -> None:
        s = normalize_symbol(symbol)
        if not s:
            return
        with self._lock:
            self._underlyings[s] = float(price)
            self._save()

    def get_underlying(self, symbol: str) -> Optional[float]:
        with self._lock:
            return self._underlyings.get(normalize_symbol(symbol))

    def set_chain(
        self,
        symbol: str,
        expiration: date,
        calls: List[OptionContract],
        puts: List[OptionContract],
    ) -> None:
        s = normalize_symbol(symbol)
        if not s:
            return
        entry = {
            "calls": [_contract_to_dict(c) for c in sorted(calls, key=lambda c: c.strike)],
            "puts": [_contract_to_dict(c) for c in sorted(puts, key=lambda c: c.strike)],
        }
        with self._lock:
            self._chains.setdefault(s, {})[expiration.isoformat()] = entry
            self._save()

    def upsert_contract(self, symbol: str, expiration: date, contract: OptionContract) -> None:
        """Replace the contract at the same kind/strike (within tolerance) or add it."""
        s = normalize_symbol(symbol)
        if not s:
            return
        side = "calls" if contract.kind == "call" else "puts"
        with self._lock:
            by_date = self._chains.setdefault(s, {})
            entry = by_date.setdefault(expiration.isoformat(), {"calls": [], "puts": []})
            rows = [r for r in entry.get(side, []) if not strikes_match(to_float(r.get("strike")) or 0.0, contract.strike)]
            rows.append(_contract_to_dict(contract))
            entry[side] = sorted(rows, key=lambda r: to_float(r.get("strike")) or 0.0)
            self._save()
        log.info(f"Manual contract {s} {expiration} {contract.kind} {contract.strike} bid={contract.bid} ask={contract.ask}")

    def get_expirations(self, symbol: str) -> List[date]:
        with self._lock:
            keys = list(self._chains.get(normalize_symbol(symbol), {}).keys())
        out: List[date] = []
        for k in keys:
            try:
                out.append(date.fromisoformat(k))
            except ValueError:
                continue
        return sorted(out)

    def get_chain(self, symbol: str, expiration: date) -> Optional[OptionChain]:
        with self._lock:
            entry = self._chains.get(normalize_symbol(symbol), {}).get(expiration.isoformat())
        if not isinstance(entry, dict):
            return None
        calls = [c for c in (_contract_from_dict(r, "call") for r in entry.get("calls", [])) if c]
        puts = [c for c in (_contract_from_dict(r, "put") for r in entry.get("puts", [])) if c]
        return OptionChain(
            calls=sorted(calls, key=lambda c: c.strike),
            puts=sorted(puts, key=lambda c: c.strike),
        )

    def clear_all(self) -> None:
        with self._lock:
            self._underlyings = {}
            self._chains = {}
            self._save()


class ManualDataProvider(QuoteProvider):
    """Serves whatever the user entered into the manual store. No network."""

    name = "manual"

    def __init__(self, store: ManualMarketDataStore) -> None:
        self.store = store

    async def fetch_price(self, symbol: str) -> float:
        s = self.clean_symbol(symbol)
        price = self.store.get_underlying(s)
        if price is None:
            raise NoDataError(f"manual: no price entered for {s}")
        return price

    async def fetch_chain(self, symbol: str, expiration: Optional[date] = None) -> OptionChain:
        s = self.clean_symbol(symbol)
        expirations = self.store.get_expirations(s)
        if expiration is not None:
            # An unentered expiration is served empty so callers can fall back
            selected: Optional[date] = expiration if expiration in expirations else None
        else:
            selected = expirations[0] if expirations else None
        if selected is None:
            return OptionChain(expirations=expirations)
        chain = self.store.get_chain(s, selected) or OptionChain()
        chain.expirations = expirations
        return chain
