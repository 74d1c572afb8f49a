from __future__ import annotations

import asyncio
from datetime import date, datetime, timezone, tzinfo
from typing import Callable, Optional, Tuple
from zoneinfo import ZoneInfo

from strikegold.broker.ledger import OrderLedger
from strikegold.broker.paper import evaluate_crossing, utc_now
from strikegold.core.events import EventChannel
from strikegold.core.logging import get_logger
from strikegold.core.types import OptionKind, SavedOrder
from strikegold.data.quote_service import QuoteService
from strikegold.monitor.storage import StorageManager

log = get_logger("monitor")

HEARTBEAT_KEY = "order_monitor_last_tick"
DEFAULT_INTERVAL_SEC = 30.0
DEFAULT_STALE_AFTER_SEC = 180.0
MARKET_TIMEZONE = "America/New_York"


def is_heartbeat_stale(last: Optional[datetime], now: datetime, max_age_sec: float = DEFAULT_STALE_AFTER_SEC) -> bool:
    if last is None:
        return True
    return (now - last).total_seconds() > max_age_sec


class OrderMonitor:
    """Background reconciliation of working orders against fresh chains.

    Each tick walks the working orders one at a time: expired orders are
    canceled, crossing orders are filled, stale day orders are canceled.
    A heartbeat is written after every tick so the UI can flag a stalled loop.
    """

    def __init__(
        self,
        *,
        quotes: QuoteService,
        ledger: OrderLedger,
        storage: StorageManager,
        interval_sec: float = DEFAULT_INTERVAL_SEC,
        stale_after_sec: float = DEFAULT_STALE_AFTER_SEC,
        tz: Optional[tzinfo] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.quotes = quotes
        self.ledger = ledger
        self.storage = storage
        self.interval_sec = float(interval_sec)
        self.stale_after_sec = float(stale_after_sec)
        self.tz = tz or ZoneInfo(MARKET_TIMEZONE)
        self.clock = clock or utc_now
        self.heartbeat = EventChannel("monitor.heartbeat")
        self._task: Optional[asyncio.Task] = None
        self._stop = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def market_date(self, when: datetime) -> date:
        return when.astimezone(self.tz).date()

    # Lifecycle
    def start(self) -> None:
        """Spawn the loop on the running event loop. A second call while running is a no-op.

        Starting while a stop is still winding down keeps the existing loop alive.
        """
        if self.running:
            self._stop.clear()
            return
        self._stop = asyncio.Event()
        self._task = asyncio.get_running_loop().create_task(self._run_loop(), name="order-monitor")
        log.info(f"Order monitor started (interval={self.interval_sec:.0f}s)")

    def stop(self) -> None:
        # An in-flight tick finishes; the interval sleep wakes immediately
        self._stop.set()

    async def join(self) -> None:
        if self._task is not None:
            await self._task

    async def _run_loop(self) -> None:
        while not self._stop.is_set():
            await self.tick()
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.interval_sec)
            except asyncio.TimeoutError:
                pass
        log.info("Order monitor stopped")

    # Tick
    async def tick(self) -> int:
        """Reconcile every working order once. Returns how many orders changed status."""
        changed = 0
        try:
            now = self.clock()
            today = self.market_date(now)
            for order in self.ledger.working():
                try:
                    if await self._reconcile(order, today):
                        changed += 1
                except Exception as e:
                    log.warning(f"Monitor skipped order {order.id} ({order.symbol}): {type(e).__name__}: {e}")
        except Exception as e:
            log.warning(f"Monitor tick failed: {type(e).__name__}: {e}")
        finally:
            self._beat()
        return changed

    async def _reconcile(self, order: SavedOrder, today: date) -> bool:
        if order.expiration is None or order.limit is None:
            return False

        if order.expiration < today:
            return self._finish(order.id, "canceled", note="Expired")

        chain = await self.quotes.fetch_option_chain(order.symbol, order.expiration)
        contract = chain.find(order.right, order.strike)
        price = evaluate_crossing(contract, order.side, order.limit) if contract is not None else None
        if price is not None:
            return self._finish(order.id, "filled", fill_price=price, fill_quantity=order.quantity)

        if order.tif == "day" and self.market_date(order.placed_at) < today:
            return self._finish(order.id, "canceled", note="Day order expired")
        return False

    def _finish(
        self,
        order_id: str,
        status: str,
        *,
        fill_price: Optional[float] = None,
        fill_quantity: Optional[int] = None,
        note: Optional[str] = None,
    ) -> bool:
        applied = []

        def mutate(o: SavedOrder) -> None:
            # Someone else may have settled the order since the tick started
            if o.status != "working":
                return
            o.status = status  # type: ignore[assignment]
            if fill_price is not None:
                o.fill_price = fill_price
                o.fill_quantity = fill_quantity
            if note and not o.note:
                o.note = note
            applied.append(True)

        self.ledger.update(order_id, mutate)
        if applied:
            log.info(f"Monitor: order {order_id} -> {status}" + (f" @ {fill_price:.2f}" if fill_price is not None else ""))
        return bool(applied)

    # Heartbeat
    def _beat(self) -> None:
        now = self.clock()
        self.storage.set(HEARTBEAT_KEY, repr(now.timestamp()))
        self.heartbeat.publish(now)

    def get_last_heartbeat(self) -> Optional[datetime]:
        raw = self.storage.get(HEARTBEAT_KEY)
        if raw is None:
            return None
        try:
            return datetime.fromtimestamp(float(raw), tz=timezone.utc)
        except ValueError:
            return None

    def is_stale(self, now: Optional[datetime] = None, max_age_sec: Optional[float] = None) -> bool:
        return is_heartbeat_stale(
            self.get_last_heartbeat(),
            now or self.clock(),
            self.stale_after_sec if max_age_sec is None else max_age_sec,
        )

    async def fetch_market_references(
        self,
        symbol: str,
        expiration: date,
        right: OptionKind,
        strike: float,
    ) -> Tuple[Optional[float], Optional[float], Optional[float]]:
        """(bid, ask, mid) of one contract from a fresh chain; all None when it is not listed."""
        chain = await self.quotes.fetch_option_chain(symbol, expiration)
        contract = chain.find(right, strike)
        if contract is None:
            return None, None, None
        return contract.bid, contract.ask, contract.mid
