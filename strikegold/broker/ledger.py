from __future__ import annotations

import copy
import threading
from typing import Callable, List, Optional

from strikegold.core.errors import InvalidTransitionError
from strikegold.core.events import EventChannel
from strikegold.core.logging import get_logger
from strikegold.core.types import SavedOrder
from strikegold.monitor.storage import StorageManager

log = get_logger("ledger")

LEDGER_KEY = "saved_orders_v1"

Mutator = Callable[[SavedOrder], None]


def _check_transition(old: SavedOrder, new: SavedOrder) -> None:
    if old.is_terminal and new.status != old.status:
        raise InvalidTransitionError(f"order {old.id} is {old.status}; cannot move to {new.status}")


class OrderLedger:
    """Persisted list of saved orders, keyed by id.

    Every read-modify-write runs under one re-entrant lock, so the UI and the
    monitor never interleave. ``changed`` fires after each committed mutation
    with the full order list.
    """

    def __init__(self, storage: StorageManager, key: str = LEDGER_KEY) -> None:
        self.storage = storage
        self.key = key
        self._lock = threading.RLock()
        self.changed = EventChannel("ledger.changed")

    def _read(self) -> List[SavedOrder]:
        raw = self.storage.get_json(self.key, [])
        if not isinstance(raw, list):
            log.warning(f"Ledger payload under {self.key} is not a list; ignoring")
            return []
        orders: List[SavedOrder] = []
        for row in raw:
            try:
                orders.append(SavedOrder.from_dict(row))
            except (KeyError, TypeError, ValueError) as e:
                log.warning(f"Skipping undecodable ledger row: {e}")
        return orders

    def _write(self, orders: List[SavedOrder]) -> None:
        self.storage.set_json(self.key, [o.to_dict() for o in orders])

    def _commit(self, orders: List[SavedOrder]) -> None:
        self._write(orders)
        self.changed.publish(list(orders))

    def load(self) -> List[SavedOrder]:
        with self._lock:
            return self._read()

    def get(self, order_id: str) -> Optional[SavedOrder]:
        with self._lock:
            for o in self._read():
                if o.id == order_id:
                    return o
        return None

    def working(self) -> List[SavedOrder]:
        return [o for o in self.load() if o.status == "working"]

    def append(self, order: SavedOrder) -> None:
        """Insert, or replace in place when the id already exists."""
        with self._lock:
            orders = self._read()
            for i, existing in enumerate(orders):
                if existing.id == order.id:
                    _check_transition(existing, order)
                    orders[i] = order
                    break
            else:
                orders.append(order)
            self._commit(orders)
        log.info(f"Ledger saved order {order.id} {order.symbol} {order.right} {order.strike} status={order.status}")

    def update(self, order_id: str, mutator: Mutator) -> Optional[SavedOrder]:
        """Apply ``mutator`` to a copy of the order and persist it. No-op when the id is unknown."""
        with self._lock:
            orders = self._read()
            for i, existing in enumerate(orders):
                if existing.id != order_id:
                    continue
                updated = copy.deepcopy(existing)
                mutator(updated)
                updated.id = existing.id
                _check_transition(existing, updated)
                orders[i] = updated
                self._commit(orders)
                if updated.status != existing.status:
                    log.info(f"Ledger order {order_id}: {existing.status} -> {updated.status}")
                return updated
        return None

    def remove(self, order_id: str) -> bool:
        with self._lock:
            orders = self._read()
            kept = [o for o in orders if o.id != order_id]
            if len(kept) == len(orders):
                return False
            self._commit(kept)
        log.info(f"Ledger removed order {order_id}")
        return True

    def clear(self) -> None:
        with self._lock:
            self._commit([])
        log.info("Ledger cleared")
