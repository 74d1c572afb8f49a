from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from strikegold.core.types import OptionChain, OptionContract, SavedOrder


console = Console()

_STATUS_STYLE = {
    "working": "[yellow]WORKING[/yellow]",
    "filled": "[green]FILLED[/green]",
    "canceled": "[dim]CANCELED[/dim]",
    "failed": "[red]FAILED[/red]",
}


def _px(value: Optional[float]) -> str:
    return "-" if value is None else f"{value:,.2f}"


def _fmt_dt(when: Optional[datetime]) -> str:
    if when is None:
        return "-"
    return when.astimezone().strftime("%Y-%m-%d %H:%M:%S")


def render_price(symbol: str, price: float, source: str) -> None:
    table = Table(title=f"{symbol} delayed quote")
    table.add_column("Metric")
    table.add_column("Value")
    table.add_row("Price", f"${price:,.2f}")
    table.add_row("Provider", source)
    console.print(table)


def _contract_rows(table: Table, contracts: List[OptionContract]) -> None:
    for c in contracts:
        table.add_row(f"{c.strike:,.2f}", _px(c.bid), _px(c.ask), _px(c.last), _px(c.mid))


def render_chain(symbol: str, chain: OptionChain, *, limit: int = 40) -> None:
    exps = ", ".join(d.isoformat() for d in chain.expirations[:8])
    more = f" (+{len(chain.expirations) - 8} more)" if len(chain.expirations) > 8 else ""
    console.print(Panel(exps + more if exps else "No expirations listed", title=f"{symbol} expirations"))
    if not chain.has_contracts:
        console.print(Panel("No contracts", title=f"{symbol} chain"))
        return
    for kind, contracts in (("Calls", chain.calls), ("Puts", chain.puts)):
        table = Table(title=f"{symbol} {kind} ({len(contracts)}, priced {sum(1 for c in contracts if c.is_priced)})")
        table.add_column("Strike", justify="right")
        table.add_column("Bid", justify="right")
        table.add_column("Ask", justify="right")
        table.add_column("Last", justify="right")
        table.add_column("Mid", justify="right")
        _contract_rows(table, contracts[:limit])
        console.print(table)


def render_orders(orders: List[SavedOrder], *, title: str = "Saved Orders") -> None:
    if not orders:
        console.print(Panel("No saved orders", title=title))
        return
    table = Table(title=title)
    table.add_column("Id")
    table.add_column("Placed")
    table.add_column("Symbol")
    table.add_column("Contract")
    table.add_column("Side")
    table.add_column("Qty", justify="right")
    table.add_column("Limit", justify="right")
    table.add_column("TIF")
    table.add_column("Status")
    table.add_column("Fill", justify="right")
    table.add_column("Note")
    for o in sorted(orders, key=lambda x: x.placed_at, reverse=True):
        exp = o.expiration.isoformat() if o.expiration else "-"
        table.add_row(
            o.id[:8],
            _fmt_dt(o.placed_at),
            o.symbol,
            f"{exp} {o.right.upper()} {o.strike:g}",
            o.side,
            str(o.quantity),
            _px(o.limit),
            o.tif.upper(),
            _STATUS_STYLE.get(o.status, o.status),
            _px(o.fill_price),
            (o.note or "")[:40],
        )
    console.print(table)


def render_monitor_status(last: Optional[datetime], stale: bool, working: int) -> None:
    table = Table(title="Order Monitor")
    table.add_column("Metric")
    table.add_column("Value")
    table.add_row("Last Tick", _fmt_dt(last))
    table.add_row("State", "[red]STALE[/red]" if stale else "[green]OK[/green]")
    table.add_row("Working Orders", str(working))
    console.print(table)
