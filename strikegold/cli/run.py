from __future__ import annotations

import argparse
import asyncio
from datetime import date, datetime, timezone
from typing import Awaitable, Callable, Optional

from strikegold.broker.paper import saved_order_from_result
from strikegold.core.config import AppConfig
from strikegold.core.env import load_local_environment
from strikegold.core.errors import QuoteError
from strikegold.core.logging import get_logger, setup_logging
from strikegold.core.runtime import Runtime, build_runtime
from strikegold.core.types import OptionContract, OptionSpec, OrderRequest
from strikegold.monitor.display import (
    console,
    render_chain,
    render_monitor_status,
    render_orders,
    render_price,
)


def _date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM-DD, got {value!r}") from e


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="strikegold", description="StrikeGold options paper trader")
    parser.add_argument("--config", type=str, default=None, help="Path to YAML config")
    parser.add_argument("--env-file", type=str, default=None, help="Path to a .env file with provider credentials")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("price", help="Delayed underlying price")
    p.add_argument("symbol")

    p = sub.add_parser("chain", help="Option chain for an expiration (nearest when omitted)")
    p.add_argument("symbol")
    p.add_argument("--expiration", type=_date, default=None)
    p.add_argument("--limit", type=int, default=40, help="Rows per side")

    p = sub.add_parser("order", help="Place a paper limit order")
    p.add_argument("symbol")
    p.add_argument("expiration", type=_date)
    p.add_argument("right", choices=["call", "put"])
    p.add_argument("strike", type=float)
    p.add_argument("side", choices=["buy", "sell"])
    p.add_argument("--qty", type=int, default=1)
    p.add_argument("--limit", type=float, required=True)
    p.add_argument("--tif", choices=["day", "gtc"], default="day")
    p.add_argument("--note", type=str, default=None)

    p = sub.add_parser("orders", help="List saved orders")
    p.add_argument("--status", choices=["working", "filled", "failed", "canceled"], default=None)

    p = sub.add_parser("remove", help="Delete a saved order")
    p.add_argument("order_id")

    sub.add_parser("clear", help="Delete all saved orders")

    p = sub.add_parser("monitor", help="Run the order monitor in the foreground")
    p.add_argument("--once", action="store_true", help="Run a single tick and exit")

    sub.add_parser("status", help="Monitor heartbeat and staleness")
    sub.add_parser("validate", help="Check the configured provider credentials")

    p = sub.add_parser("manual-price", help="Set a manual underlying price")
    p.add_argument("symbol")
    p.add_argument("price", type=float)

    p = sub.add_parser("manual-contract", help="Upsert a manual option quote")
    p.add_argument("symbol")
    p.add_argument("expiration", type=_date)
    p.add_argument("right", choices=["call", "put"])
    p.add_argument("strike", type=float)
    p.add_argument("--bid", type=float, default=None)
    p.add_argument("--ask", type=float, default=None)
    p.add_argument("--last", type=float, default=None)

    p = sub.add_parser("serve", help="Serve the web API with uvicorn")
    p.add_argument("--host", type=str, default=None)
    p.add_argument("--port", type=int, default=None)
    return parser


async def _price(rt: Runtime, args: argparse.Namespace) -> None:
    price = await rt.quotes.fetch_delayed_price(args.symbol)
    render_price(args.symbol.strip().upper(), price, rt.quotes.provider_name)


async def _chain(rt: Runtime, args: argparse.Namespace) -> None:
    chain = await rt.quotes.fetch_option_chain(args.symbol, args.expiration)
    render_chain(args.symbol.strip().upper(), chain, limit=args.limit)


async def _order(rt: Runtime, args: argparse.Namespace) -> None:
    request = OrderRequest(
        symbol=args.symbol,
        option=OptionSpec(expiration=args.expiration, right=args.right, strike=args.strike),
        side=args.side,
        quantity=args.qty,
        limit=args.limit,
        tif=args.tif,
    )
    result = await rt.trading.place_option_order(request)
    if result.placed.status == "rejected":
        console.print(f"[red]Rejected:[/red] {result.placed.reason}")
        return
    saved = saved_order_from_result(request, result, note=args.note)
    rt.ledger.append(saved)
    render_orders([saved], title="Order placed")


async def _monitor(rt: Runtime, args: argparse.Namespace) -> None:
    if args.once:
        changed = await rt.monitor.tick()
        console.print(f"Tick complete: {changed} order(s) updated")
        render_orders(rt.ledger.load())
        return
    rt.ledger.changed.subscribe(lambda orders: render_orders(orders))
    rt.monitor.start()
    try:
        await rt.monitor.join()
    finally:
        rt.monitor.stop()


async def _validate(rt: Runtime, args: argparse.Namespace) -> None:
    if rt.provider is None:
        console.print("No provider configured; public sources need no credentials.")
        return
    result = await rt.provider.validate_token()
    if result.ok:
        console.print(f"[green]{rt.provider.name}: credentials OK[/green]")
    else:
        code = result.status_code if result.status_code is not None else "-"
        console.print(f"[red]{rt.provider.name}: {result.error_description} (status {code})[/red]")


def _sync(fn: Callable[[Runtime, argparse.Namespace], None]) -> Callable[[Runtime, argparse.Namespace], Awaitable[None]]:
    async def wrapper(rt: Runtime, args: argparse.Namespace) -> None:
        fn(rt, args)

    return wrapper


def _orders(rt: Runtime, args: argparse.Namespace) -> None:
    orders = rt.ledger.load()
    if args.status:
        orders = [o for o in orders if o.status == args.status]
    render_orders(orders)


def _remove(rt: Runtime, args: argparse.Namespace) -> None:
    matches = [o.id for o in rt.ledger.load() if o.id.startswith(args.order_id)]
    if len(matches) != 1:
        console.print(f"[red]No unique order matches {args.order_id!r}[/red]")
        return
    rt.ledger.remove(matches[0])
    console.print(f"Removed {matches[0]}")


def _clear(rt: Runtime, args: argparse.Namespace) -> None:
    rt.ledger.clear()
    console.print("All saved orders removed")


def _status(rt: Runtime, args: argparse.Namespace) -> None:
    now = datetime.now(timezone.utc)
    render_monitor_status(rt.monitor.get_last_heartbeat(), rt.monitor.is_stale(now), len(rt.ledger.working()))


def _manual_price(rt: Runtime, args: argparse.Namespace) -> None:
    rt.manual_store.set_underlying(args.symbol, args.price)
    console.print(f"Manual price {args.symbol.strip().upper()} = {args.price:,.2f}")


def _manual_contract(rt: Runtime, args: argparse.Namespace) -> None:
    contract = OptionContract(kind=args.right, strike=args.strike, bid=args.bid, ask=args.ask, last=args.last)
    rt.manual_store.upsert_contract(args.symbol, args.expiration, contract)
    console.print(f"Manual contract saved: {args.symbol.strip().upper()} {args.expiration} {args.right} {args.strike:g}")


COMMANDS = {
    "price": _price,
    "chain": _chain,
    "order": _order,
    "monitor": _monitor,
    "validate": _validate,
    "orders": _sync(_orders),
    "remove": _sync(_remove),
    "clear": _sync(_clear),
    "status": _sync(_status),
    "manual-price": _sync(_manual_price),
    "manual-contract": _sync(_manual_contract),
}


async def _dispatch(cfg: AppConfig, args: argparse.Namespace) -> None:
    rt = build_runtime(cfg)
    try:
        await COMMANDS[args.command](rt, args)
    finally:
        await rt.aclose()


def _serve(cfg: AppConfig, args: argparse.Namespace) -> None:  # pragma: no cover - server glue
    import uvicorn

    from strikegold.webapp.api import create_app

    app = create_app(build_runtime(cfg))
    uvicorn.run(app, host=args.host or cfg.web.host, port=args.port or cfg.web.port, log_level="info")


def main(argv: Optional[list] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    load_local_environment(args.env_file)
    cfg = AppConfig.load_or_default(args.config)
    setup_logging(log_dir=cfg.logging.log_dir, level=cfg.logging.level)
    log = get_logger("cli")

    if args.command == "serve":
        _serve(cfg, args)
        return 0
    try:
        asyncio.run(_dispatch(cfg, args))
    except QuoteError as e:
        log.debug(f"{args.command} failed: {e.kind} {e}")
        console.print(f"[red]{e.user_message}[/red]")
        return 1
    except KeyboardInterrupt:
        console.print("Interrupted")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
