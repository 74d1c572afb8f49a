from __future__ import annotations

import asyncio
from datetime import date, datetime, timedelta, timezone

import pytest

from strikegold.broker.ledger import OrderLedger
from strikegold.core.errors import NetworkError
from strikegold.core.types import OptionContract
from strikegold.monitor.engine import HEARTBEAT_KEY, OrderMonitor, is_heartbeat_stale

NOW = datetime(2025, 1, 10, 15, 0, tzinfo=timezone.utc)
YESTERDAY = NOW - timedelta(days=1)


@pytest.fixture
def setup(storage, fake_quotes, make_chain):
    quotes = fake_quotes(
        chains={
            "AAPL": make_chain(
                OptionContract("call", 100.0, bid=2.30, ask=2.50),
                OptionContract("put", 100.0, bid=1.10, ask=1.30),
            )
        }
    )
    ledger = OrderLedger(storage)
    monitor = OrderMonitor(
        quotes=quotes,
        ledger=ledger,
        storage=storage,
        interval_sec=3600,
        tz=timezone.utc,
        clock=lambda: NOW,
    )
    return monitor, ledger, quotes


def test_crossing_order_is_filled(setup, make_order) -> None:
    monitor, ledger, _ = setup
    ledger.append(make_order(id="a", limit=2.60, quantity=4))
    assert asyncio.run(monitor.tick()) == 1
    order = ledger.get("a")
    assert order.status == "filled"
    assert order.fill_price == 2.50
    assert order.fill_quantity == 4


def test_non_crossing_day_order_from_prior_day_is_canceled(setup, make_order) -> None:
    monitor, ledger, _ = setup
    ledger.append(make_order(id="day", limit=2.00, placed_at=YESTERDAY, tif="day"))
    ledger.append(make_order(id="gtc", limit=2.00, placed_at=YESTERDAY, tif="gtc"))
    ledger.append(make_order(id="today", limit=2.00, placed_at=NOW, tif="day"))
    asyncio.run(monitor.tick())
    assert ledger.get("day").status == "canceled"
    assert ledger.get("gtc").status == "working"
    assert ledger.get("today").status == "working"


def test_expired_order_is_canceled_even_if_it_would_cross(setup, make_order) -> None:
    monitor, ledger, quotes = setup
    ledger.append(make_order(id="old", expiration=date(2025, 1, 9), limit=5.00, tif="gtc"))
    asyncio.run(monitor.tick())
    assert ledger.get("old").status == "canceled"
    assert ledger.get("old").fill_price is None
    assert quotes.calls == []


def test_expiring_today_is_still_evaluated(setup, make_order) -> None:
    monitor, ledger, _ = setup
    ledger.append(make_order(id="a", expiration=NOW.date(), limit=2.60))
    asyncio.run(monitor.tick())
    assert ledger.get("a").status == "filled"


def test_orders_without_expiration_or_limit_are_skipped(setup, make_order) -> None:
    monitor, ledger, quotes = setup
    ledger.append(make_order(id="no-exp", expiration=None, placed_at=YESTERDAY))
    ledger.append(make_order(id="no-limit", limit=None, placed_at=YESTERDAY))
    assert asyncio.run(monitor.tick()) == 0
    assert ledger.get("no-exp").status == "working"
    assert ledger.get("no-limit").status == "working"
    assert quotes.calls == []


def test_one_failing_order_does_not_stop_the_tick(setup, make_order) -> None:
    monitor, ledger, quotes = setup
    quotes.errors["BAD"] = NetworkError("down")
    ledger.append(make_order(id="bad", symbol="BAD"))
    ledger.append(make_order(id="good", limit=2.60))
    assert asyncio.run(monitor.tick()) == 1
    assert ledger.get("bad").status == "working"
    assert ledger.get("good").status == "filled"


def test_terminal_orders_are_not_touched(setup, make_order) -> None:
    monitor, ledger, quotes = setup
    ledger.append(make_order(id="done", status="canceled", limit=2.60))
    asyncio.run(monitor.tick())
    assert ledger.get("done").status == "canceled"
    assert quotes.calls == []


def test_heartbeat_written_every_tick(setup, storage) -> None:
    monitor, _, _ = setup
    beats = []
    monitor.heartbeat.subscribe(beats.append)
    assert monitor.get_last_heartbeat() is None
    assert monitor.is_stale(NOW)
    asyncio.run(monitor.tick())
    assert storage.get(HEARTBEAT_KEY) is not None
    assert monitor.get_last_heartbeat() == NOW
    assert beats == [NOW]
    assert not monitor.is_stale(NOW + timedelta(seconds=100))
    assert monitor.is_stale(NOW + timedelta(seconds=181))


def test_is_heartbeat_stale() -> None:
    assert is_heartbeat_stale(None, NOW)
    assert not is_heartbeat_stale(NOW, NOW + timedelta(seconds=180))
    assert is_heartbeat_stale(NOW, NOW + timedelta(seconds=180.5))


def test_start_is_idempotent_and_stop_is_cooperative(setup) -> None:
    monitor, _, _ = setup

    async def scenario() -> None:
        monitor.start()
        first = monitor._task
        monitor.start()
        assert monitor._task is first
        await asyncio.sleep(0)
        assert monitor.running
        monitor.stop()
        await asyncio.wait_for(monitor.join(), timeout=5)
        assert not monitor.running

    asyncio.run(scenario())
    assert monitor.get_last_heartbeat() == NOW


def test_start_right_after_stop_keeps_running(setup) -> None:
    monitor, _, _ = setup

    async def scenario() -> None:
        monitor.start()
        await asyncio.sleep(0)
        monitor.stop()
        monitor.start()
        await asyncio.sleep(0.05)
        assert monitor.running
        monitor.stop()
        await asyncio.wait_for(monitor.join(), timeout=5)

    asyncio.run(scenario())
    assert not monitor.running


def test_monitor_restarts_on_a_new_event_loop(setup) -> None:
    monitor, _, _ = setup
    beats = []
    monitor.heartbeat.subscribe(beats.append)

    async def scenario() -> None:
        monitor.start()
        await asyncio.sleep(0)
        assert monitor.running
        monitor.stop()
        await asyncio.wait_for(monitor.join(), timeout=5)

    asyncio.run(scenario())
    asyncio.run(scenario())
    assert not monitor.running
    assert len(beats) == 2


def test_fetch_market_references(setup) -> None:
    monitor, _, _ = setup
    bid, ask, mid = asyncio.run(monitor.fetch_market_references("AAPL", date(2025, 1, 17), "put", 100.0))
    assert (bid, ask) == (1.10, 1.30)
    assert mid == pytest.approx(1.20)
    assert asyncio.run(monitor.fetch_market_references("AAPL", date(2025, 1, 17), "put", 95.0)) == (None, None, None)


def test_market_timezone_decides_the_day(storage, fake_quotes, make_order) -> None:
    from zoneinfo import ZoneInfo

    # 02:00 UTC on Jan 11 is still Jan 10 in New York
    late = datetime(2025, 1, 11, 2, 0, tzinfo=timezone.utc)
    ledger = OrderLedger(storage)
    ledger.append(make_order(id="a", limit=2.00, placed_at=NOW, tif="day"))
    monitor = OrderMonitor(
        quotes=fake_quotes(),
        ledger=ledger,
        storage=storage,
        tz=ZoneInfo("America/New_York"),
        clock=lambda: late,
    )
    asyncio.run(monitor.tick())
    assert ledger.get("a").status == "working"
