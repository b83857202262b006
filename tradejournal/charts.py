"""
charts.py
---------

Turns a metrics snapshot (or raw trades) into series a chart component
can draw directly. Nothing in here renders; every function is a small
deterministic transform, and anything time dependent (which calendar cell
is "today") takes the date as an argument.
"""

from datetime import date
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pandas as pd

from .analytics import PROFIT_FACTOR_CAP, MetricsSnapshot, daily_buckets
from .models import Trade

DAILY_WINDOW = 30
BAR_MIN_SCALE = 100.0
AREA_MIN_SPAN = 100.0
RADAR_CEILING = 3.0
RECENT_LIMIT = 5

_CURRENCY_SYMBOLS = {"USD": "$", "EUR": "€", "GBP": "£", "INR": "₹", "JPY": "¥"}


def _clamp01(value: float) -> float:
    return min(max(value, 0.0), 1.0)


# ---------- daily bars / cumulative area ----------
def daily_pnl_series(daily: Dict[str, Dict[str, Any]], limit: Optional[int] = DAILY_WINDOW) -> List[Dict[str, Any]]:
    """``[{date, pnl}]`` in chronological order, keeping the last ``limit`` days."""
    series = [{"date": key, "pnl": bucket["pnl"]} for key, bucket in sorted(daily.items())]
    if limit is None:
        return series
    return series[-limit:] if limit > 0 else []


def cumulative_pnl_series(series: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Running sum over a daily series, same order and dates."""
    if not series:
        return []
    frame = pd.DataFrame(list(series), columns=["date", "pnl"])
    frame["cumulative_pnl"] = frame["pnl"].cumsum()
    return [
        {"date": d, "cumulative_pnl": float(c)}
        for d, c in zip(frame["date"], frame["cumulative_pnl"])
    ]


def bar_chart_series(series: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
    """Signed bars around a fixed zero baseline.

    ``height`` is ``|pnl|`` relative to the scale, which is the largest
    absolute value but never below ``BAR_MIN_SCALE`` so quiet days do not
    render as full-height bars.
    """
    scale = max([abs(point["pnl"]) for point in series] + [BAR_MIN_SCALE])
    bars = [
        {
            "date": point["date"],
            "pnl": point["pnl"],
            "height": abs(point["pnl"]) / scale,
            "positive": point["pnl"] >= 0,
        }
        for point in series
    ]
    return {"baseline": 0.0, "scale": scale, "bars": bars}


def area_chart_bounds(cumulative: Sequence[Dict[str, Any]]) -> Tuple[float, float]:
    """(low, high) of the cumulative area chart, spanning at least -100..100."""
    values = [point["cumulative_pnl"] for point in cumulative]
    return min(values + [-AREA_MIN_SPAN]), max(values + [AREA_MIN_SPAN])


# ---------- score ----------
def radar_chart(snapshot: MetricsSnapshot) -> Dict[str, float]:
    """Three radar axes, each clamped into [0, 1].

    win rate against 100, profit factor against ``RADAR_CEILING`` and the
    average win / average loss ratio against the same ceiling.
    """
    avg_ratio = snapshot.avg_win / (snapshot.avg_loss or 1)
    return {
        "win_rate": _clamp01(snapshot.win_rate / 100),
        "profit_factor": _clamp01(snapshot.profit_factor / RADAR_CEILING),
        "avg_win_loss": _clamp01(avg_ratio / RADAR_CEILING),
    }


# ---------- calendar ----------
def calendar_month(trades: Sequence[Trade], year: int, month: int, today: date) -> Dict[str, Any]:
    """Month grid for the calendar heat-map.

    ``leading_blanks`` is the number of empty cells before day 1 in a
    Sunday-first week. Days without trades have ``count == 0``.
    """
    stats = daily_buckets(trades)
    first = pd.Timestamp(year=year, month=month, day=1)
    days = pd.date_range(first, periods=first.days_in_month, freq="D")
    today_key = today.isoformat()

    cells = []
    for day in days:
        key = day.strftime("%Y-%m-%d")
        bucket = stats.get(key, {"pnl": 0.0, "count": 0, "wins": 0, "losses": 0})
        count = bucket["count"]
        cells.append({
            "day": day.day,
            "date": key,
            "pnl": bucket["pnl"],
            "count": count,
            "wins": bucket["wins"],
            "losses": bucket["losses"],
            "win_rate": int(bucket["wins"] / count * 100 + 0.5) if count else 0,
            "is_today": key == today_key,
        })
    return {
        "year": year,
        "month": month,
        "leading_blanks": (first.weekday() + 1) % 7,
        "days": cells,
    }


# ---------- widgets ----------
def recent_trades(trades: Sequence[Trade], limit: int = RECENT_LIMIT) -> List[Trade]:
    """Most recent trades by entry date, newest first."""
    return sorted(trades, key=lambda t: t.entry_date, reverse=True)[:limit]


def open_positions(trades: Sequence[Trade]) -> List[Trade]:
    return [t for t in trades if t.is_open]


# ---------- display ----------
def format_ratio(value: float) -> str:
    """Render a ratio; the cap sentinel is shown as infinity."""
    if value >= PROFIT_FACTOR_CAP:
        return "∞"
    return f"{value:.2f}"


def format_currency(value: float, currency: str) -> str:
    symbol = _CURRENCY_SYMBOLS.get(currency.upper(), currency.upper() + " ")
    sign = "-" if value < 0 else ""
    return f"{sign}{symbol}{abs(value):,.2f}"
