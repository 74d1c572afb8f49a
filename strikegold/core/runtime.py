from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from zoneinfo import ZoneInfo

import httpx

from strikegold.broker.ledger import OrderLedger
from strikegold.broker.paper import PaperTradingService
from strikegold.core.config import AppConfig
from strikegold.core.logging import get_logger
from strikegold.core.secrets import EnvSecretStore, SecretStore
from strikegold.data.providers.base import QuoteProvider
from strikegold.data.providers.factory import build_provider
from strikegold.data.providers.manual import ManualMarketDataStore
from strikegold.data.quote_service import QuoteService
from strikegold.monitor.engine import OrderMonitor
from strikegold.monitor.storage import StorageManager

log = get_logger("runtime")


@dataclass
class Runtime:
    """Everything a front end needs, built once per process."""

    config: AppConfig
    storage: StorageManager
    client: httpx.AsyncClient
    manual_store: ManualMarketDataStore
    provider: Optional[QuoteProvider]
    quotes: QuoteService
    trading: PaperTradingService
    ledger: OrderLedger
    monitor: OrderMonitor

    async def aclose(self) -> None:
        self.monitor.stop()
        await self.monitor.join()
        await self.client.aclose()
        self.storage.close()


def build_runtime(
    cfg: AppConfig,
    *,
    secrets: Optional[SecretStore] = None,
    client: Optional[httpx.AsyncClient] = None,
    storage: Optional[StorageManager] = None,
) -> Runtime:
    timeout = float(cfg.quotes.timeout_sec)
    storage = storage or StorageManager(cfg.storage.resolved_path())
    client = client or httpx.AsyncClient(timeout=timeout)
    manual_store = ManualMarketDataStore(storage)
    provider = build_provider(cfg.quotes, secrets or EnvSecretStore(), manual_store=manual_store, client=client)
    quotes = QuoteService(provider, client=client, timeout=timeout)
    ledger = OrderLedger(storage)
    monitor = OrderMonitor(
        quotes=quotes,
        ledger=ledger,
        storage=storage,
        interval_sec=cfg.monitor.interval_sec,
        stale_after_sec=cfg.monitor.stale_after_sec,
        tz=ZoneInfo(cfg.monitor.market_timezone),
    )
    log.info(f"Runtime ready | provider={quotes.provider_name} db={storage.db_path}")
    return Runtime(
        config=cfg,
        storage=storage,
        client=client,
        manual_store=manual_store,
        provider=provider,
        quotes=quotes,
        trading=PaperTradingService(quotes),
        ledger=ledger,
        monitor=monitor,
    )
