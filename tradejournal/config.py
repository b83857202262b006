"""
config.py
---------

Environment driven configuration for the journal. Values are read once
via ``AppConfig.from_env()`` and handed to the app factory, so nothing
else in the package touches ``os.environ``.
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .logger import log

DEFAULT_CURRENCY = "USD"
DEFAULT_STARTING_CAPITAL = 10000.0


def _float_env(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        log.warning(f"Ignoring {name}={raw!r}: not a number, using {default}")
        return default


@dataclass
class AppConfig:
    """Runtime settings for the storage, web and market-data layers."""

    db_path: str = "tradejournal.db"
    secret_key: str = "dev-secret"
    default_currency: str = DEFAULT_CURRENCY
    default_starting_capital: float = DEFAULT_STARTING_CAPITAL
    log_level: str = "INFO"
    log_file: Optional[str] = None
    market_timeout: float = 10.0

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "AppConfig":
        env = os.environ if env is None else env
        return cls(
            db_path=env.get("TJ_DB", "tradejournal.db"),
            secret_key=env.get("SECRET_KEY", "dev-secret"),
            default_currency=env.get("TJ_CURRENCY", DEFAULT_CURRENCY).strip().upper(),
            default_starting_capital=_float_env(env, "TJ_STARTING_CAPITAL", DEFAULT_STARTING_CAPITAL),
            log_level=env.get("TJ_LOG_LEVEL", "INFO"),
            log_file=env.get("TJ_LOG_FILE") or None,
            market_timeout=_float_env(env, "TJ_MARKET_TIMEOUT", 10.0),
        )
