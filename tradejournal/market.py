"""
market.py
---------

Best effort daily candles for the trade chart. Crypto pairs are looked up
on Binance first; anything Binance does not know is tried against the
Yahoo Finance chart API. Every failure (network, HTTP status, unexpected
payload) is logged and turned into an empty list, so the journal keeps
working offline. No guarantee is made about the data itself.
"""

import re
from typing import Any, Dict, List, Optional

import requests

from .logger import log

BINANCE_KLINES_URL = "https://api.binance.com/api/v3/klines"
YAHOO_CHART_URL = "https://query1.finance.yahoo.com/v8/finance/chart/{symbol}"
DEFAULT_TIMEOUT = 10


def fetch_binance_klines(
    symbol: str,
    interval: str = "1d",
    limit: int = 1000,
    session: Optional[requests.Session] = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> List[Dict[str, Any]]:
    """
    Fetch klines from Binance and map to the chart's candle shape.
    Returns a list[dict]: { time (sec), open, high, low, close }.
    Tries the symbol as given, then with a USDT quote appended.
    """
    http = session or requests
    clean = re.sub(r"[^A-Za-z0-9]", "", symbol).upper()
    limit = max(1, min(int(limit), 1000))

    for pair in (clean, f"{clean}USDT"):
        try:
            r = http.get(
                BINANCE_KLINES_URL,
                params={"symbol": pair, "interval": interval, "limit": limit},
                timeout=timeout,
            )
            r.raise_for_status()
            raw = r.json()
        except (requests.RequestException, ValueError) as e:
            log.warning(f"Binance fetch failed for {pair}: {e}")
            continue
        if not isinstance(raw, list) or not raw:
            continue

        # Each kline: [ openTime, open, high, low, close, volume, closeTime, ... ]
        out = [
            {
                "time": k[0] // 1000,
                "open": float(k[1]),
                "high": float(k[2]),
                "low": float(k[3]),
                "close": float(k[4]),
            }
            for k in raw
        ]
        out.sort(key=lambda x: x["time"])
        return out
    return []


def fetch_yahoo_candles(
    symbol: str,
    session: Optional[requests.Session] = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> List[Dict[str, Any]]:
    """One year of daily candles from Yahoo; incomplete candles are skipped."""
    http = session or requests
    try:
        r = http.get(
            YAHOO_CHART_URL.format(symbol=symbol.upper()),
            params={"interval": "1d", "range": "1y"},
            timeout=timeout,
            headers={"User-Agent": "tradejournal/1.0"},
        )
        r.raise_for_status()
        payload = r.json()
    except (requests.RequestException, ValueError) as e:
        log.warning(f"Yahoo fetch failed for {symbol}: {e}")
        return []

    result = ((payload or {}).get("chart") or {}).get("result") or []
    if not result:
        return []
    timestamps = result[0].get("timestamp") or []
    quotes = (result[0].get("indicators") or {}).get("quote") or []
    if not timestamps or not quotes:
        return []
    quote = quotes[0]

    def at(key: str, i: int):
        series = quote.get(key) or []
        return series[i] if i < len(series) else None

    candles = []
    for i, ts in enumerate(timestamps):
        o, h, l, c = (at(k, i) for k in ("open", "high", "low", "close"))
        if None in (o, h, l, c):
            continue
        candles.append({"time": int(ts), "open": float(o), "high": float(h), "low": float(l), "close": float(c)})
    return candles


def fetch_candles(
    symbol: str,
    session: Optional[requests.Session] = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> List[Dict[str, Any]]:
    """Daily candles for ``symbol`` from the first source that has them, else []."""
    if not symbol:
        return []
    candles = fetch_binance_klines(symbol, session=session, timeout=timeout)
    if candles:
        return candles
    candles = fetch_yahoo_candles(symbol, session=session, timeout=timeout)
    if not candles:
        log.warning(f"No market data found for {symbol} on Binance or Yahoo")
    return candles
