from __future__ import annotations

import os
import re
from abc import ABC, abstractmethod
from typing import Dict, Optional


class SecretKeys:
    TRADIER_TOKEN = "tradier.token"
    FINNHUB_TOKEN = "finnhub.token"
    POLYGON_TOKEN = "polygon.token"
    TRADESTATION_TOKEN = "tradestation.token"
    ALPACA_KEY_ID = "alpaca.key_id"
    ALPACA_SECRET = "alpaca.secret"


class SecretStore(ABC):
    """Scoped secret storage. Read only when a provider is built, never mid-request."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    def put(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        ...


class EnvSecretStore(SecretStore):
    """Secrets from the process environment (populated from .env by load_local_environment).

    ``tradier.token`` maps to ``STRIKEGOLD_TRADIER_TOKEN``.
    """

    def __init__(self, prefix: str = "STRIKEGOLD_") -> None:
        self.prefix = prefix

    def env_name(self, key: str) -> str:
        return self.prefix + re.sub(r"[^A-Za-z0-9]+", "_", key).upper()

    def get(self, key: str) -> Optional[str]:
        value = os.getenv(self.env_name(key), "").strip()
        return value or None

    def put(self, key: str, value: str) -> None:
        os.environ[self.env_name(key)] = value

    def delete(self, key: str) -> None:
        os.environ.pop(self.env_name(key), None)


class MemorySecretStore(SecretStore):
    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._values: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        value = (self._values.get(key) or "").strip()
        return value or None

    def put(self, key: str, value: str) -> None:
        self._values[key] = value

    def delete(self, key: str) -> None:
        self._values.pop(key, None)
