"""
analytics.py
-------------

This module contains functions to compute performance metrics from a list
of Trade objects, the account's capital adjustments and its settings.
Splitting analytics into its own module makes it easy to reuse these
functions in different contexts (web API, command line, tests) without
coupling them to UI or storage concerns.

Every function here is pure: inputs are never modified and the same
inputs always give the same output. No metric is ever NaN or infinite.
A ratio whose denominator is zero resolves to 0, or to
``PROFIT_FACTOR_CAP`` when the numerator is positive (a loss-free
profitable history); the presentation layer decides how to display it.
"""

import math
from collections import OrderedDict
from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any, Dict, List, Sequence, Tuple

import numpy as np

from .logger import log
from .models import CapitalAdjustment, Settings, Trade

PROFIT_FACTOR_CAP = 999.0
NO_STRATEGY = "No Strategy"
START_LABEL = "Start"


@dataclass
class MetricsSnapshot:
    """Everything the dashboard shows, derived from (trades, adjustments, settings).

    Never persisted; recompute it whenever any input changes.
    """

    currency: str = "USD"
    starting_capital: float = 0.0
    total_deposits: float = 0.0
    total_withdrawals: float = 0.0
    net_adjustments: float = 0.0
    adjusted_starting_capital: float = 0.0
    total_pnl: float = 0.0
    current_capital: float = 0.0
    roi: float = 0.0
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    break_even_trades: int = 0
    open_positions: int = 0
    win_rate: float = 0.0
    total_wins: float = 0.0
    total_losses: float = 0.0
    avg_win: float = 0.0
    avg_loss: float = 0.0
    average_pnl: float = 0.0
    largest_win: float = 0.0
    largest_loss: float = 0.0
    profit_factor: float = 0.0
    expectancy: float = 0.0
    risk_reward_ratio: float = 0.0
    max_drawdown: float = 0.0
    max_drawdown_percent: float = 0.0
    avg_duration_days: float = 0.0
    sharpe_ratio: float = 0.0
    trade_score: int = 0
    equity_curve: List[Dict[str, Any]] = field(default_factory=list)
    daily_pnl: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    monthly_pnl: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    strategy_breakdown: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ---------- ratio helpers ----------
def capped_ratio(numerator: float, denominator: float) -> float:
    """numerator / denominator, with the zero-denominator sentinel rule."""
    if denominator == 0:
        return PROFIT_FACTOR_CAP if numerator > 0 else 0.0
    return numerator / denominator


def _safe_div(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator else 0.0


# ---------- ordering ----------
def sort_key(trade: Trade) -> str:
    """Close date, falling back to entry date, then creation timestamp."""
    return trade.exit_date or trade.entry_date or trade.created_at


def bucket_key(trade: Trade) -> str:
    return trade.exit_date or trade.entry_date or trade.created_at[:10]


def sorted_by_close(trades: Sequence[Trade]) -> List[Trade]:
    """Ascending by ``sort_key``; ties keep their input order."""
    return sorted(trades, key=sort_key)


# ---------- capital ----------
def capital_totals(adjustments: Sequence[CapitalAdjustment]) -> Tuple[float, float]:
    """Return (total deposits, total withdrawals), both non-negative."""
    deposits = sum(a.amount for a in adjustments if a.type == "deposit")
    withdrawals = sum(a.amount for a in adjustments if a.type == "withdrawal")
    return float(deposits), float(withdrawals)


def adjusted_starting_capital(starting_capital: float, adjustments: Sequence[CapitalAdjustment]) -> float:
    deposits, withdrawals = capital_totals(adjustments)
    return starting_capital + deposits - withdrawals


# ---------- curves ----------
def equity_curve(trades: Sequence[Trade], starting_capital: float) -> List[Dict[str, Any]]:
    """Running capital after each trade, in close-date order.

    The first point is a ``"Start"`` marker at ``starting_capital``; each
    trade then contributes exactly one point.
    """
    capital = starting_capital
    curve = [{"date": START_LABEL, "capital": capital}]
    for trade in sorted_by_close(trades):
        capital += trade.pnl
        curve.append({"date": sort_key(trade), "capital": capital})
    return curve


def max_drawdown(trades: Sequence[Trade], starting_capital: float) -> Tuple[float, float]:
    """Largest peak-to-trough decline as (amount, percent of that peak).

    The peak starts at ``starting_capital`` and only moves when capital
    makes a new high; each drawdown is measured from the latest peak.
    """
    capital = peak = starting_capital
    worst, worst_pct = 0.0, 0.0
    for trade in sorted_by_close(trades):
        capital += trade.pnl
        if capital > peak:
            peak = capital
        elif capital < peak:
            drawdown = peak - capital
            if drawdown > worst:
                worst = drawdown
                worst_pct = drawdown / peak * 100 if peak > 0 else 0.0
    return worst, worst_pct


# ---------- buckets ----------
def _bucket(trades: Sequence[Trade], key_len: int) -> Dict[str, Dict[str, Any]]:
    buckets: Dict[str, Dict[str, Any]] = {}
    for trade in trades:
        key = bucket_key(trade)
        if key_len:
            key = key[:key_len]
        b = buckets.setdefault(key, {"pnl": 0.0, "count": 0, "wins": 0, "losses": 0})
        b["pnl"] += trade.pnl
        b["count"] += 1
        if trade.pnl > 0:
            b["wins"] += 1
        elif trade.pnl < 0:
            b["losses"] += 1
    return OrderedDict(sorted(buckets.items()))


def daily_buckets(trades: Sequence[Trade]) -> Dict[str, Dict[str, Any]]:
    """P/L, count, wins and losses per close date, chronologically ordered."""
    return _bucket(trades, 0)


def monthly_buckets(trades: Sequence[Trade]) -> Dict[str, Dict[str, Any]]:
    """Same as ``daily_buckets`` keyed by ``YYYY-MM``."""
    return _bucket(trades, 7)


def strategy_breakdown(trades: Sequence[Trade]) -> Dict[str, Dict[str, Any]]:
    """Count, P/L, wins and losses per strategy name, in first-seen order."""
    groups: Dict[str, Dict[str, Any]] = OrderedDict()
    for trade in trades:
        g = groups.setdefault(trade.strategy or NO_STRATEGY, {"count": 0, "pnl": 0.0, "wins": 0, "losses": 0})
        g["count"] += 1
        g["pnl"] += trade.pnl
        if trade.pnl > 0:
            g["wins"] += 1
        elif trade.pnl < 0:
            g["losses"] += 1
    return groups


# ---------- scalars ----------
def average_duration_days(trades: Sequence[Trade]) -> float:
    """Mean holding period in days over trades with parseable entry and exit dates."""
    durations = []
    for trade in trades:
        if not trade.entry_date or not trade.exit_date:
            continue
        try:
            entry = date.fromisoformat(trade.entry_date)
            exit_ = date.fromisoformat(trade.exit_date)
        except ValueError:
            continue
        durations.append((exit_ - entry).days)
    return sum(durations) / len(durations) if durations else 0.0


def sharpe_ratio(trades: Sequence[Trade], starting_capital: float) -> float:
    """mean / population stddev of per-trade returns ``pnl / starting_capital``."""
    if not trades or starting_capital == 0:
        return 0.0
    returns = np.array([t.pnl / starting_capital for t in trades], dtype=float)
    std = float(np.std(returns))
    if std < 1e-12:
        return 0.0
    return float(np.mean(returns)) / std


def trade_score(win_rate: float, profit_factor: float) -> int:
    """Dashboard heuristic in [0, 100]; not a financial metric.

    score = min(round(50 + win_rate / 4 + profit_factor * 5), 100),
    rounding halves up.
    """
    return min(int(math.floor(50 + win_rate / 4 + profit_factor * 5 + 0.5)), 100)


def compute_metrics(
    trades: Sequence[Trade],
    adjustments: Sequence[CapitalAdjustment],
    settings: Settings,
) -> MetricsSnapshot:
    """Compute performance statistics for the given trades.

    Parameters
    ----------
    trades: Sequence[Trade]
        Trades to analyse, in any order.
    adjustments: Sequence[CapitalAdjustment]
        Deposits and withdrawals; they move the capital baseline but are
        not P/L.
    settings: Settings
        Currency and starting capital.

    Returns
    -------
    MetricsSnapshot
        All derived figures. With no trades every figure is 0 (capital
        figures still reflect starting capital and adjustments).
    """
    deposits, withdrawals = capital_totals(adjustments)
    net_adjustments = deposits - withdrawals
    baseline = settings.starting_capital + net_adjustments

    snapshot = MetricsSnapshot(
        currency=settings.currency,
        starting_capital=settings.starting_capital,
        total_deposits=deposits,
        total_withdrawals=withdrawals,
        net_adjustments=net_adjustments,
        adjusted_starting_capital=baseline,
        current_capital=baseline,
        equity_curve=equity_curve([], baseline),
    )
    if not trades:
        snapshot.trade_score = trade_score(0.0, 0.0)
        return snapshot

    pnls = [t.pnl for t in trades]
    wins = [p for p in pnls if p > 0]
    losses = [p for p in pnls if p < 0]
    total_trades = len(trades)
    total_pnl = sum(pnls)
    total_wins = sum(wins)
    total_losses = abs(sum(losses))
    win_rate = len(wins) / total_trades * 100
    avg_win = total_wins / len(wins) if wins else 0.0
    avg_loss = total_losses / len(losses) if losses else 0.0
    profit_factor = capped_ratio(total_wins, total_losses)
    drawdown, drawdown_pct = max_drawdown(trades, baseline)

    snapshot.total_pnl = total_pnl
    snapshot.current_capital = baseline + total_pnl
    snapshot.roi = total_pnl / baseline * 100 if baseline > 0 else 0.0
    snapshot.total_trades = total_trades
    snapshot.winning_trades = len(wins)
    snapshot.losing_trades = len(losses)
    snapshot.break_even_trades = total_trades - len(wins) - len(losses)
    snapshot.open_positions = sum(1 for t in trades if t.is_open)
    snapshot.win_rate = win_rate
    snapshot.total_wins = total_wins
    snapshot.total_losses = total_losses
    snapshot.avg_win = avg_win
    snapshot.avg_loss = avg_loss
    snapshot.average_pnl = _safe_div(total_pnl, total_trades)
    snapshot.largest_win = max(pnls)
    snapshot.largest_loss = min(pnls)
    snapshot.profit_factor = profit_factor
    snapshot.expectancy = (win_rate / 100) * avg_win - (1 - win_rate / 100) * avg_loss
    snapshot.risk_reward_ratio = capped_ratio(avg_win, avg_loss)
    snapshot.max_drawdown = drawdown
    snapshot.max_drawdown_percent = drawdown_pct
    snapshot.avg_duration_days = average_duration_days(trades)
    snapshot.sharpe_ratio = sharpe_ratio(trades, settings.starting_capital)
    snapshot.trade_score = trade_score(win_rate, profit_factor)
    snapshot.equity_curve = equity_curve(trades, baseline)
    snapshot.daily_pnl = daily_buckets(trades)
    snapshot.monthly_pnl = monthly_buckets(trades)
    snapshot.strategy_breakdown = strategy_breakdown(trades)

    if total_losses == 0 and total_wins > 0:
        log.debug("No losing trades; profit factor resolved to the cap sentinel")
    return snapshot
