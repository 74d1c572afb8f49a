from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from strikegold.core.utils import to_float

OptionKind = Literal["call", "put"]
Side = Literal["buy", "sell"]
TimeInForce = Literal["day", "gtc"]
OrderStatus = Literal["working", "filled", "failed", "canceled"]
PlacementStatus = Literal["accepted", "rejected"]

ORDER_STATUSES = ("working", "filled", "failed", "canceled")
TERMINAL_STATUSES = frozenset({"filled", "failed", "canceled"})

# Absorbs float noise between vendors (e.g. 100.0 vs 100.00009) without merging adjacent strikes
STRIKE_TOLERANCE = 1e-4


def strikes_match(a: float, b: float) -> bool:
    return abs(float(a) - float(b)) < STRIKE_TOLERANCE


def compute_mid(bid: Optional[float], ask: Optional[float], last: Optional[float] = None) -> Optional[float]:
    if bid is not None and ask is not None and bid > 0 and ask > 0:
        return (bid + ask) / 2.0
    if bid is not None and bid > 0:
        return bid
    if ask is not None and ask > 0:
        return ask
    return last


@dataclass(frozen=True)
class OptionContract:
    kind: OptionKind
    strike: float
    bid: Optional[float] = None
    ask: Optional[float] = None
    last: Optional[float] = None

    @property
    def mid(self) -> Optional[float]:
        return compute_mid(self.bid, self.ask, self.last)

    @property
    def is_priced(self) -> bool:
        return self.bid is not None or self.ask is not None or self.last is not None


@dataclass
class OptionChain:
    expirations: List[date] = field(default_factory=list)
    calls: List[OptionContract] = field(default_factory=list)
    puts: List[OptionContract] = field(default_factory=list)

    @property
    def call_strikes(self) -> List[float]:
        return sorted({c.strike for c in self.calls})

    @property
    def put_strikes(self) -> List[float]:
        return sorted({c.strike for c in self.puts})

    @property
    def has_contracts(self) -> bool:
        return bool(self.calls or self.puts)

    def contracts(self, kind: OptionKind) -> List[OptionContract]:
        return self.calls if kind == "call" else self.puts

    def find(self, kind: OptionKind, strike: float) -> Optional[OptionContract]:
        for c in self.contracts(kind):
            if strikes_match(c.strike, strike):
                return c
        return None

    def priced_count(self) -> int:
        return sum(1 for c in self.calls + self.puts if c.is_priced)


@dataclass(frozen=True)
class OptionSpec:
    expiration: date
    right: OptionKind
    strike: float


@dataclass
class OrderRequest:
    symbol: str
    option: OptionSpec
    side: Side
    quantity: int
    limit: float
    tif: TimeInForce = "day"


@dataclass
class PlacedOrder:
    id: str
    status: PlacementStatus = "accepted"
    reason: Optional[str] = None


@dataclass
class OrderFill:
    price: float
    quantity: int
    timestamp: datetime


@dataclass
class OrderResult:
    placed: PlacedOrder
    fill: Optional[OrderFill] = None


@dataclass
class SavedOrder:
    id: str
    placed_at: datetime
    symbol: str
    expiration: Optional[date]
    right: OptionKind
    strike: float
    side: Side
    quantity: int
    limit: Optional[float]
    tif: TimeInForce = "day"
    status: OrderStatus = "working"
    fill_price: Optional[float] = None
    fill_quantity: Optional[int] = None
    note: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["placed_at"] = self.placed_at.isoformat()
        d["expiration"] = self.expiration.isoformat() if self.expiration else None
        return d

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "SavedOrder":
        """Tolerant decode of a persisted record. Raises ValueError/KeyError on unusable rows."""
        placed_at = datetime.fromisoformat(str(d["placed_at"]).replace("Z", "+00:00"))
        if placed_at.tzinfo is None:
            placed_at = placed_at.replace(tzinfo=timezone.utc)
        exp_raw = d.get("expiration")
        expiration = date.fromisoformat(str(exp_raw)[:10]) if exp_raw else None

        right = str(d.get("right", "")).lower()
        side = str(d.get("side", "")).lower()
        tif = str(d.get("tif", "day")).lower()
        status = str(d.get("status", "working")).lower()
        if right not in ("call", "put") or side not in ("buy", "sell"):
            raise ValueError(f"bad right/side in order {d.get('id')}")
        if tif not in ("day", "gtc") or status not in ORDER_STATUSES:
            raise ValueError(f"bad tif/status in order {d.get('id')}")
        strike = to_float(d.get("strike"))
        if strike is None:
            raise ValueError(f"missing strike in order {d.get('id')}")

        fill_qty = d.get("fill_quantity")
        return SavedOrder(
            id=str(d["id"]),
            placed_at=placed_at,
            symbol=str(d.get("symbol", "")),
            expiration=expiration,
            right=right,  # type: ignore[arg-type]
            strike=strike,
            side=side,  # type: ignore[arg-type]
            quantity=int(d.get("quantity", 0)),
            limit=to_float(d.get("limit")),
            tif=tif,  # type: ignore[arg-type]
            status=status,  # type: ignore[arg-type]
            fill_price=to_float(d.get("fill_price")),
            fill_quantity=int(fill_qty) if fill_qty is not None else None,
            note=d.get("note"),
        )
