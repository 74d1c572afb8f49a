from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Callable, Optional

from strikegold.core.logging import get_logger
from strikegold.core.types import (
    OptionContract,
    OrderFill,
    OrderRequest,
    OrderResult,
    PlacedOrder,
    SavedOrder,
    Side,
)
from strikegold.core.utils import normalize_symbol, round_to_cent
from strikegold.data.quote_service import QuoteService

log = get_logger("broker")

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _quoted(value: Optional[float]) -> bool:
    return value is not None and value > 0


def evaluate_crossing(contract: OptionContract, side: Side, limit: float) -> Optional[float]:
    """Execution price if a limit order would trade against this quote, else None.

    Buy crosses at or below the ask (mid when there is no ask) and pays
    min(ask, limit). Sell crosses at or above the bid (mid when there is no bid)
    and receives max(bid, limit). A side quoted at zero or below is treated as
    missing. Prices are rounded half-up to the cent.
    """
    if side == "buy":
        reference = contract.ask if _quoted(contract.ask) else contract.mid
        if not _quoted(reference) or reference > limit:
            return None
        return round_to_cent(min(reference, limit))
    reference = contract.bid if _quoted(contract.bid) else contract.mid
    if not _quoted(reference) or reference < limit:
        return None
    return round_to_cent(max(reference, limit))


def _rejection_reason(request: OrderRequest) -> Optional[str]:
    if not normalize_symbol(request.symbol):
        return "Symbol is required."
    if int(request.quantity) <= 0:
        return "Quantity must be positive."
    if request.limit is None or float(request.limit) <= 0:
        return "Limit price must be positive."
    return None


class TradingService(ABC):
    @abstractmethod
    async def place_option_order(self, request: OrderRequest) -> OrderResult:
        ...


class PaperTradingService(TradingService):
    """Simulated execution: fills immediately when the fresh chain crosses the limit."""

    def __init__(self, quotes: QuoteService, clock: Optional[Clock] = None) -> None:
        self.quotes = quotes
        self.clock = clock or utc_now

    async def place_option_order(self, request: OrderRequest) -> OrderResult:
        order_id = uuid.uuid4().hex
        reason = _rejection_reason(request)
        if reason is not None:
            log.info(f"Order rejected | sym={request.symbol!r} qty={request.quantity} limit={request.limit} reason={reason}")
            return OrderResult(placed=PlacedOrder(id=order_id, status="rejected", reason=reason))

        symbol = normalize_symbol(request.symbol)
        opt = request.option
        # Chain network/parse errors propagate to the caller
        chain = await self.quotes.fetch_option_chain(symbol, opt.expiration)
        placed = PlacedOrder(id=order_id, status="accepted")

        contract = chain.find(opt.right, opt.strike)
        if contract is None:
            log.info(f"Order working (contract not quoted) | {symbol} {opt.expiration} {opt.right} {opt.strike}")
            return OrderResult(placed=placed)

        price = evaluate_crossing(contract, request.side, float(request.limit))
        if price is None:
            log.info(
                f"Order working | {request.side} {request.quantity} {symbol} {opt.expiration} {opt.right} {opt.strike} "
                f"limit={request.limit} bid={contract.bid} ask={contract.ask}"
            )
            return OrderResult(placed=placed)

        fill = OrderFill(price=price, quantity=int(request.quantity), timestamp=self.clock())
        log.info(
            f"Order filled | {request.side} {request.quantity} {symbol} {opt.expiration} {opt.right} {opt.strike} "
            f"@ {price:.2f} (limit {request.limit})"
        )
        return OrderResult(placed=placed, fill=fill)


def saved_order_from_result(
    request: OrderRequest,
    result: OrderResult,
    note: Optional[str] = None,
    placed_at: Optional[datetime] = None,
) -> SavedOrder:
    """Ledger record for an accepted order. Rejected placements are stored as failed."""
    if result.placed.status == "rejected":
        status = "failed"
    elif result.fill is not None:
        status = "filled"
    else:
        status = "working"
    return SavedOrder(
        id=result.placed.id,
        placed_at=placed_at or utc_now(),
        symbol=normalize_symbol(request.symbol),
        expiration=request.option.expiration,
        right=request.option.right,
        strike=float(request.option.strike),
        side=request.side,
        quantity=int(request.quantity),
        limit=float(request.limit),
        tif=request.tif,
        status=status,  # type: ignore[arg-type]
        fill_price=result.fill.price if result.fill else None,
        fill_quantity=result.fill.quantity if result.fill else None,
        note=note if note is not None else result.placed.reason,
    )
