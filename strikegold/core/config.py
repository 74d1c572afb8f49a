from __future__ import annotations

import os
from pathlib import Path
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field, PositiveFloat, PositiveInt


ProviderName = Literal["none", "tradier", "finnhub", "polygon", "tradestation", "alpaca", "manual"]


class QuotesConfig(BaseModel):
    provider: ProviderName = "none"
    timeout_sec: PositiveFloat = 12.0
    tradier_environment: Literal["production", "sandbox"] = "production"
    alpaca_options_feed: str = "indicative"  # "indicative" | "opra"
    alpaca_max_pages: PositiveInt = 5


class StorageConfig(BaseModel):
    path: str = "~/.strikegold/strikegold.db"

    def resolved_path(self) -> str:
        # Allow overriding the DB path via environment to share state across sessions
        return os.getenv("STRIKEGOLD_DB") or self.path


class MonitorConfig(BaseModel):
    enabled: bool = True
    interval_sec: PositiveFloat = 30.0
    stale_after_sec: PositiveFloat = 180.0
    market_timezone: str = "America/New_York"


class LoggingConfig(BaseModel):
    log_dir: str = "logs"
    level: str = "INFO"


class WebConfig(BaseModel):
    host: str = "127.0.0.1"
    port: int = 8000


class AppConfig(BaseModel):
    quotes: QuotesConfig = Field(default_factory=QuotesConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    monitor: MonitorConfig = Field(default_factory=MonitorConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    web: WebConfig = Field(default_factory=WebConfig)

    @staticmethod
    def load(path: str | Path) -> "AppConfig":
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        return AppConfig(**(data or {}))

    @staticmethod
    def default() -> "AppConfig":
        return AppConfig()

    @staticmethod
    def load_or_default(path: Optional[str | Path]) -> "AppConfig":
        if path:
            return AppConfig.load(path)
        return AppConfig.default()
