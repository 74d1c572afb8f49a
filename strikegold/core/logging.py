from __future__ import annotations

import os
from pathlib import Path

from loguru import logger as _logger


def setup_logging(log_dir: str = "logs", level: str = "INFO") -> None:
    Path(log_dir).mkdir(parents=True, exist_ok=True)

    # Allow env override for log level (e.g., DEBUG)
    level = str(os.getenv("STRIKEGOLD_LOG_LEVEL", level)).upper()

    _logger.remove()
    # Console sink can be turned off when the CLI renders tables on stdout
    disable_console = str(os.getenv("STRIKEGOLD_DISABLE_CONSOLE_LOG", "0")).lower() in {"1", "true", "yes"}
    if not disable_console:
        _logger.add(
            sink=lambda msg: print(msg, end=""),
            level=level,
            colorize=True,
            backtrace=False,
            diagnose=False,
        )
    _logger.add(
        Path(log_dir) / "strikegold.log",
        rotation="10 MB",
        retention=10,
        level=level,
        enqueue=True,
        backtrace=False,
        diagnose=False,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {extra[component]} | {message}",
        filter=_with_component,
    )


def _with_component(record: dict) -> bool:
    record["extra"].setdefault("component", "core")
    return True


def get_logger(component: str | None = None) -> _logger.__class__:
    """Return the shared logger, optionally bound to a component name (quotes, ledger, monitor...)."""
    if component:
        return _logger.bind(component=component)
    return _logger
