from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from typing import Literal, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from strikegold.broker.paper import saved_order_from_result
from strikegold.core.errors import QuoteError
from strikegold.core.logging import get_logger
from strikegold.core.runtime import Runtime
from strikegold.core.types import OptionChain, OptionContract, OptionSpec, OrderRequest

log = get_logger("web")

_STATUS_BY_KIND = {"invalid_symbol": 400, "no_data": 404}


class OrderIn(BaseModel):
    symbol: str
    expiration: date
    right: Literal["call", "put"]
    strike: float
    side: Literal["buy", "sell"]
    quantity: int = Field(default=1)
    limit: float
    tif: Literal["day", "gtc"] = "day"
    note: Optional[str] = None


def _contract_json(c: OptionContract) -> dict:
    return {"kind": c.kind, "strike": c.strike, "bid": c.bid, "ask": c.ask, "last": c.last, "mid": c.mid}


def _chain_json(symbol: str, chain: OptionChain) -> dict:
    return {
        "symbol": symbol,
        "expirations": [d.isoformat() for d in chain.expirations],
        "call_strikes": chain.call_strikes,
        "put_strikes": chain.put_strikes,
        "calls": [_contract_json(c) for c in chain.calls],
        "puts": [_contract_json(c) for c in chain.puts],
    }


def create_app(runtime: Runtime) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if runtime.config.monitor.enabled:
            runtime.monitor.start()
        try:
            yield
        finally:
            runtime.monitor.stop()
            await runtime.monitor.join()

    app = FastAPI(title="StrikeGold Paper Trading", lifespan=lifespan)
    app.state.runtime = runtime

    @app.exception_handler(QuoteError)
    async def quote_error_handler(request: Request, exc: QuoteError):
        status = _STATUS_BY_KIND.get(exc.kind, 502)
        log.debug(f"{request.url.path} -> {status} {exc.kind}: {exc}")
        return JSONResponse(status_code=status, content={"error": exc.kind, "message": exc.user_message})

    @app.get("/api/price/{symbol}")
    async def get_price(symbol: str):
        price = await runtime.quotes.fetch_delayed_price(symbol)
        return {"symbol": symbol.strip().upper(), "price": price, "provider": runtime.quotes.provider_name}

    @app.get("/api/chain/{symbol}")
    async def get_chain(symbol: str, expiration: Optional[date] = None):
        chain = await runtime.quotes.fetch_option_chain(symbol, expiration)
        return _chain_json(symbol.strip().upper(), chain)

    @app.post("/api/orders")
    async def place_order(body: OrderIn):
        request = OrderRequest(
            symbol=body.symbol,
            option=OptionSpec(expiration=body.expiration, right=body.right, strike=body.strike),
            side=body.side,
            quantity=body.quantity,
            limit=body.limit,
            tif=body.tif,
        )
        result = await runtime.trading.place_option_order(request)
        if result.placed.status == "rejected":
            raise HTTPException(status_code=422, detail=result.placed.reason)
        saved = saved_order_from_result(request, result, note=body.note)
        runtime.ledger.append(saved)
        return saved.to_dict()

    @app.get("/api/orders")
    async def list_orders(status: Optional[str] = None):
        orders = runtime.ledger.load()
        if status:
            orders = [o for o in orders if o.status == status.lower()]
        return [o.to_dict() for o in orders]

    @app.delete("/api/orders/{order_id}")
    async def delete_order(order_id: str):
        if not runtime.ledger.remove(order_id):
            raise HTTPException(status_code=404, detail="order not found")
        return {"removed": order_id}

    @app.get("/api/monitor")
    async def monitor_status():
        last = runtime.monitor.get_last_heartbeat()
        return {
            "running": runtime.monitor.running,
            "last_tick": last.isoformat() if last else None,
            "stale": runtime.monitor.is_stale(datetime.now(timezone.utc)),
            "working_orders": len(runtime.ledger.working()),
        }

    return app
