"""
journal.py
----------

Thin service layer between the storage collections and the pure core.
Each method loads what it needs from the store, hands plain records to
the model / codec / analytics functions, and writes the returned
collection back. The core never sees the store; the store never sees
P/L or metrics logic.
"""

from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional

from . import analytics, charts, csv_codec
from .database import (
    CAPITAL_ADJUSTMENTS,
    DEFAULT_OWNER,
    PLANNED_TRADES,
    STRATEGIES,
    TRADES,
    TradeJournalDB,
)
from .logger import log
from .models import (
    CapitalAdjustment,
    PlannedTrade,
    Settings,
    Strategy,
    Trade,
    execute_plan,
    generate_id,
    isoformat,
    merge_imported_trades,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RecordNotFound(LookupError):
    def __init__(self, kind: str, record_id: str) -> None:
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"No {kind} with id {record_id}")


class JournalService:
    """All journal operations for one owner.

    ``clock`` supplies "now" for ids and timestamps; tests pass a fixed one.
    """

    def __init__(
        self,
        db: TradeJournalDB,
        owner: str = DEFAULT_OWNER,
        default_settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.db = db
        self.owner = owner
        self.default_settings = default_settings or Settings()
        self.clock = clock or _utcnow

    # ---------- loading ----------
    def _docs(self, kind: str) -> List[Dict[str, Any]]:
        return self.db.collection(kind, self.owner).load()

    def _save(self, kind: str, records: Iterable[Any]) -> None:
        self.db.collection(kind, self.owner).save_all([r.to_dict() for r in records])

    def trades(self) -> List[Trade]:
        return [Trade.from_dict(d) for d in self._docs(TRADES)]

    def planned_trades(self) -> List[PlannedTrade]:
        return [PlannedTrade.from_dict(d) for d in self._docs(PLANNED_TRADES)]

    def strategies(self) -> List[Strategy]:
        return [Strategy.from_dict(d) for d in self._docs(STRATEGIES)]

    def capital_adjustments(self) -> List[CapitalAdjustment]:
        return [CapitalAdjustment.from_dict(d) for d in self._docs(CAPITAL_ADJUSTMENTS)]

    def settings(self) -> Settings:
        return Settings.from_dict(self.db.load_settings(self.owner), self.default_settings)

    def save_settings(self, data: Dict[str, Any]) -> Settings:
        settings = Settings.from_dict(data, self.settings())
        self.db.save_settings(settings.to_dict(), self.owner)
        log.info(f"Settings saved for {self.owner}: {settings.currency} {settings.starting_capital}")
        return settings

    # ---------- trades ----------
    def add_trade(self, data: Dict[str, Any]) -> Trade:
        """Store a new trade at the front of the list with a fresh id."""
        existing = self.trades()
        now = self.clock()
        trade = Trade.from_dict({
            **data,
            "id": generate_id(now, (t.id for t in existing)),
            "createdAt": isoformat(now),
        }).validate()
        self._save(TRADES, [trade] + existing)
        log.info(f"Added trade {trade.id} {trade.symbol} pnl={trade.pnl}")
        return trade

    def edit_trade(self, trade_id: str, data: Dict[str, Any]) -> Trade:
        """Replace a trade wholesale; id and creation time are kept."""
        existing = self.trades()
        current = next((t for t in existing if t.id == trade_id), None)
        if current is None:
            raise RecordNotFound("trade", trade_id)
        trade = Trade.from_dict({**data, "id": current.id, "createdAt": current.created_at}).validate()
        self._save(TRADES, [trade if t.id == trade_id else t for t in existing])
        log.info(f"Edited trade {trade.id}")
        return trade

    def delete_trade(self, trade_id: str) -> None:
        if not self.db.collection(TRADES, self.owner).delete(trade_id):
            raise RecordNotFound("trade", trade_id)
        log.info(f"Deleted trade {trade_id}")

    def delete_trades(self, trade_ids: Iterable[str]) -> int:
        """Bulk delete; unknown ids are ignored. Returns how many were removed."""
        ids = set(trade_ids)
        existing = self.trades()
        kept = [t for t in existing if t.id not in ids]
        self._save(TRADES, kept)
        removed = len(existing) - len(kept)
        log.info(f"Bulk deleted {removed} trades")
        return removed

    def delete_all_trades(self) -> None:
        self._save(TRADES, [])
        log.info(f"Deleted all trades for {self.owner}")

    # ---------- CSV ----------
    def import_csv(self, text: str) -> csv_codec.ImportResult:
        """Parse ``text`` and merge the accepted trades in front of the journal.

        Raises the codec's ``CSVImportError`` subclasses unchanged.
        """
        now = self.clock()
        result = csv_codec.import_trades_from_csv(text, now)
        existing = self.trades()
        merged = merge_imported_trades(existing, result.trades, now)
        self._save(TRADES, merged)
        imported = merged[: len(result.trades)]
        log.info(f"Imported {len(imported)} trades, {len(result.errors)} rows skipped")
        return csv_codec.ImportResult(trades=imported, errors=result.errors)

    def export_csv(self) -> str:
        return csv_codec.export_trades_to_csv(self.trades())

    # ---------- planned trades ----------
    def add_plan(self, data: Dict[str, Any]) -> PlannedTrade:
        existing = self.planned_trades()
        now = self.clock()
        stamp = isoformat(now)
        plan = PlannedTrade.from_dict({
            **data,
            "id": generate_id(now, (p.id for p in existing)),
            "createdAt": stamp,
            "updatedAt": stamp,
        }).validate()
        self._save(PLANNED_TRADES, [plan] + existing)
        log.info(f"Planned trade {plan.id} {plan.symbol}")
        return plan

    def edit_plan(self, plan_id: str, data: Dict[str, Any]) -> PlannedTrade:
        existing = self.planned_trades()
        current = next((p for p in existing if p.id == plan_id), None)
        if current is None:
            raise RecordNotFound("planned trade", plan_id)
        plan = PlannedTrade.from_dict({
            **data,
            "id": current.id,
            "createdAt": current.created_at,
            "updatedAt": isoformat(self.clock()),
        }).validate()
        self._save(PLANNED_TRADES, [plan if p.id == plan_id else p for p in existing])
        return plan

    def delete_plan(self, plan_id: str) -> None:
        if not self.db.collection(PLANNED_TRADES, self.owner).delete(plan_id):
            raise RecordNotFound("planned trade", plan_id)

    def execute_planned_trade(self, plan_id: str, fill: Optional[Dict[str, Any]] = None) -> Trade:
        """Move a plan into the journal as a trade; the plan is removed."""
        plan = next((p for p in self.planned_trades() if p.id == plan_id), None)
        if plan is None:
            raise RecordNotFound("planned trade", plan_id)
        existing = self.trades()
        trade = execute_plan(plan, fill, self.clock(), (t.id for t in existing))
        self._save(TRADES, [trade] + existing)
        self.delete_plan(plan_id)
        log.info(f"Executed plan {plan_id} as trade {trade.id}")
        return trade

    # ---------- strategies ----------
    def add_strategy(self, data: Dict[str, Any]) -> Strategy:
        existing = self.strategies()
        now = self.clock()
        strategy = Strategy.from_dict({
            **data,
            "id": generate_id(now, (s.id for s in existing)),
            "createdAt": isoformat(now),
        }).validate()
        self._save(STRATEGIES, existing + [strategy])
        return strategy

    def edit_strategy(self, strategy_id: str, data: Dict[str, Any]) -> Strategy:
        existing = self.strategies()
        current = next((s for s in existing if s.id == strategy_id), None)
        if current is None:
            raise RecordNotFound("strategy", strategy_id)
        strategy = Strategy.from_dict({
            **current.to_dict(),
            **data,
            "id": current.id,
            "createdAt": current.created_at,
        }).validate()
        self._save(STRATEGIES, [strategy if s.id == strategy_id else s for s in existing])
        return strategy

    def delete_strategy(self, strategy_id: str) -> None:
        """Trades that reference the strategy by name are left untouched."""
        if not self.db.collection(STRATEGIES, self.owner).delete(strategy_id):
            raise RecordNotFound("strategy", strategy_id)

    # ---------- capital ----------
    def add_adjustment(self, data: Dict[str, Any]) -> CapitalAdjustment:
        existing = self.capital_adjustments()
        now = self.clock()
        adjustment = CapitalAdjustment.from_dict({
            "date": now.date().isoformat(),
            **data,
            "id": generate_id(now, (a.id for a in existing)),
            "createdAt": isoformat(now),
        }).validate()
        self._save(CAPITAL_ADJUSTMENTS, [adjustment] + existing)
        log.info(f"Capital {adjustment.type} of {adjustment.amount}")
        return adjustment

    def delete_adjustment(self, adjustment_id: str) -> None:
        if not self.db.collection(CAPITAL_ADJUSTMENTS, self.owner).delete(adjustment_id):
            raise RecordNotFound("capital adjustment", adjustment_id)

    # ---------- analytics ----------
    def metrics(self) -> analytics.MetricsSnapshot:
        return analytics.compute_metrics(self.trades(), self.capital_adjustments(), self.settings())

    def chart_data(self, today: Optional[date] = None) -> Dict[str, Any]:
        """Dashboard chart payload built from a fresh snapshot."""
        trades = self.trades()
        snapshot = analytics.compute_metrics(trades, self.capital_adjustments(), self.settings())
        daily = charts.daily_pnl_series(snapshot.daily_pnl)
        cumulative = charts.cumulative_pnl_series(daily)
        low, high = charts.area_chart_bounds(cumulative)
        return {
            "daily": charts.bar_chart_series(daily),
            "cumulative": {"points": cumulative, "low": low, "high": high},
            "radar": charts.radar_chart(snapshot),
            "score": snapshot.trade_score,
            "profit_factor": charts.format_ratio(snapshot.profit_factor),
            "recent": [t.to_dict() for t in charts.recent_trades(trades)],
            "open": [t.to_dict() for t in charts.open_positions(trades)],
            "today": (today or self.clock().date()).isoformat(),
        }

    def calendar(self, year: int, month: int, today: Optional[date] = None) -> Dict[str, Any]:
        return charts.calendar_month(self.trades(), year, month, today or self.clock().date())
