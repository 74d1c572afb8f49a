from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from strikegold.core.types import OptionChain, OptionContract, SavedOrder, compute_mid, strikes_match
from strikegold.core.utils import normalize_symbol, round_to_cent, to_float


def test_strike_tolerance() -> None:
    assert strikes_match(100.0, 100.00009)
    assert not strikes_match(100.0, 100.01)


def test_mid_prefers_both_sides_then_either_then_last() -> None:
    assert compute_mid(2.0, 3.0) == 2.5
    assert compute_mid(2.0, None) == 2.0
    assert compute_mid(0.0, 3.0) == 3.0
    assert compute_mid(None, None, 1.75) == 1.75
    assert compute_mid(None, None) is None


def test_chain_find_and_derived_strikes() -> None:
    chain = OptionChain(
        calls=[OptionContract("call", 105.0), OptionContract("call", 100.0, bid=1.0, ask=1.2)],
        puts=[OptionContract("put", 100.0)],
    )
    assert chain.call_strikes == [100.0, 105.0]
    assert chain.put_strikes == [100.0]
    found = chain.find("call", 100.00009)
    assert found is not None and found.bid == 1.0
    assert chain.find("put", 105.0) is None
    assert chain.priced_count() == 1
    assert chain.has_contracts
    assert not OptionChain().has_contracts


def test_to_float_is_tolerant() -> None:
    assert to_float("1,234.5") == 1234.5
    assert to_float({"raw": 2.5, "fmt": "2.50"}) == 2.5
    assert to_float("N/D") is None
    assert to_float(float("nan")) is None
    assert to_float(True) is None
    assert to_float(3) == 3.0


def test_round_to_cent_half_up() -> None:
    assert round_to_cent(2.345) == 2.35
    assert round_to_cent(1.004) == 1.0


def test_normalize_symbol() -> None:
    assert normalize_symbol("  brk.b ") == "BRK.B"


def test_saved_order_decodes_loose_rows() -> None:
    row = {
        "id": "abc",
        "placed_at": "2025-01-10T15:00:00Z",
        "symbol": "AAPL",
        "expiration": "2025-01-17",
        "right": "CALL",
        "strike": "150",
        "side": "Buy",
        "quantity": 1,
        "limit": 2.5,
        "tif": "GTC",
        "status": "Working",
        "unknown_field": "ignored",
    }
    order = SavedOrder.from_dict(row)
    assert order.placed_at == datetime(2025, 1, 10, 15, 0, tzinfo=timezone.utc)
    assert order.expiration == date(2025, 1, 17)
    assert (order.right, order.side, order.tif, order.status) == ("call", "buy", "gtc", "working")
    assert order.strike == 150.0
    assert SavedOrder.from_dict(order.to_dict()) == order


def test_saved_order_rejects_bad_side() -> None:
    with pytest.raises(ValueError):
        SavedOrder.from_dict({"id": "x", "placed_at": "2025-01-10T00:00:00", "right": "call", "side": "hold", "strike": 1})
