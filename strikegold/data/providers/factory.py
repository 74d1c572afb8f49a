from __future__ import annotations

from typing import Optional

import httpx

from strikegold.core.config import QuotesConfig
from strikegold.core.logging import get_logger
from strikegold.core.secrets import SecretKeys, SecretStore
from strikegold.data.providers.alpaca import AlpacaProvider
from strikegold.data.providers.base import QuoteProvider
from strikegold.data.providers.finnhub import FinnhubProvider
from strikegold.data.providers.manual import ManualDataProvider, ManualMarketDataStore
from strikegold.data.providers.polygon import PolygonProvider
from strikegold.data.providers.tradestation import TradeStationProvider
from strikegold.data.providers.tradier import TradierProvider

log = get_logger("quotes")


def build_provider(
    cfg: QuotesConfig,
    secrets: SecretStore,
    *,
    manual_store: Optional[ManualMarketDataStore] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> Optional[QuoteProvider]:
    """Instantiate the configured provider, or None to use the public sources only.

    Credentials are read once here. A missing credential disables the provider
    with a warning instead of failing startup.
    """
    name = cfg.provider
    timeout = float(cfg.timeout_sec)
    if name == "none":
        return None

    if name == "manual":
        if manual_store is None:
            log.warning("Manual provider selected without a store; using public sources")
            return None
        return ManualDataProvider(manual_store)

    if name == "alpaca":
        key_id = secrets.get(SecretKeys.ALPACA_KEY_ID)
        secret = secrets.get(SecretKeys.ALPACA_SECRET)
        if not key_id or not secret:
            log.warning("Alpaca selected but key id/secret are missing; using public sources")
            return None
        return AlpacaProvider(
            key_id,
            secret,
            options_feed=cfg.alpaca_options_feed,
            max_pages=cfg.alpaca_max_pages,
            client=client,
            timeout=timeout,
        )

    token_keys = {
        "tradier": SecretKeys.TRADIER_TOKEN,
        "finnhub": SecretKeys.FINNHUB_TOKEN,
        "polygon": SecretKeys.POLYGON_TOKEN,
        "tradestation": SecretKeys.TRADESTATION_TOKEN,
    }
    token = secrets.get(token_keys[name])
    if not token:
        log.warning(f"{name} selected but no token is stored; using public sources")
        return None

    if name == "tradier":
        return TradierProvider(token, environment=cfg.tradier_environment, client=client, timeout=timeout)
    if name == "finnhub":
        return FinnhubProvider(token, client=client, timeout=timeout)
    if name == "polygon":
        return PolygonProvider(token, client=client, timeout=timeout)
    return TradeStationProvider(token, client=client, timeout=timeout)
