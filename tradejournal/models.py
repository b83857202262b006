"""
models.py
---------

Defines the core data model of the journal: trades, planned trades,
strategies, capital adjustments and the settings singleton. Keeping the
records in a separate module lets the CSV codec, the metrics engine, the
storage layer and the web API share one canonical shape.

Records are plain dataclasses. Each one converts to and from the JSON
document shape used by the storage layer (``to_dict`` / ``from_dict``)
and validates itself at the boundary (``validate``). P/L of a trade is
never taken from outside: it is recomputed from the entry, exit,
quantity and side every time a ``Trade`` is constructed.
"""

import math
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Set
from urllib.parse import urlparse

from .logger import log

TRADE_TYPES = ("long", "short")
CONVICTIONS = ("", "A+", "A", "B")
BIASES = ("bullish", "bearish", "neutral")
ADJUSTMENT_TYPES = ("deposit", "withdrawal")


class TradeValidationError(ValueError):
    """Raised when a record fails boundary validation.

    ``problems`` lists every failed check so a form can show them all at
    once rather than one per submit.
    """

    def __init__(self, problems: Iterable[str]) -> None:
        self.problems = list(problems)
        super().__init__("; ".join(self.problems))


# -------------------------
# P/L helpers
# -------------------------
def compute_pnl(trade_type: str, entry_price: float, exit_price: float, quantity: float) -> float:
    """Profit or loss of a position in currency units.

    For long positions, PnL = (exit_price - entry_price) * quantity.
    For short positions, PnL = (entry_price - exit_price) * quantity.
    """
    if trade_type.lower() == "long":
        return (exit_price - entry_price) * quantity
    else:
        return (entry_price - exit_price) * quantity


def compute_pnl_percent(pnl: float, entry_price: float, quantity: float) -> str:
    """Return P/L as a percentage of the position cost, formatted to 2 decimals.

    A zero cost basis yields ``"0.00"`` instead of a division error.
    """
    cost = entry_price * quantity
    if cost == 0:
        return "0.00"
    return f"{pnl / cost * 100:.2f}"


# -------------------------
# small parse helpers
# -------------------------
def split_list(value: Any, sep: str) -> List[str]:
    """Accept a list or a ``sep`` separated string; trim entries, drop empties."""
    if value is None:
        return []
    if isinstance(value, str):
        items = value.split(sep)
    else:
        items = [str(v) for v in value]
    return [item.strip() for item in items if item and item.strip()]


def _number(data: Dict[str, Any], key: str, problems: List[str], required: bool = False) -> Optional[float]:
    raw = data.get(key)
    if raw is None or (isinstance(raw, str) and raw.strip() == ""):
        if required:
            problems.append(f"{key} is required")
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        problems.append(f"{key} must be a number")
        return None
    if not math.isfinite(value):
        problems.append(f"{key} must be a finite number")
        return None
    return value


def _text(data: Dict[str, Any], key: str, default: str = "") -> str:
    raw = data.get(key)
    if raw is None:
        return default
    return str(raw).strip()


def isoformat(now: datetime) -> str:
    """ISO-8601 timestamp with a ``Z`` suffix for UTC values."""
    text = now.isoformat(timespec="milliseconds")
    return text[:-6] + "Z" if text.endswith("+00:00") else text


def generate_id(now: datetime, taken: Iterable[str] = ()) -> str:
    """Return an id derived from ``now`` that does not collide with ``taken``.

    The id is the epoch time in milliseconds, suffixed with ``_<n>`` (the
    smallest free ``n``) when that token is already in use. ``now`` is an
    explicit argument so the result is reproducible.
    """
    taken = set(taken)
    base = str(int(now.timestamp() * 1000))
    if base not in taken:
        return base
    n = 1
    while f"{base}_{n}" in taken:
        n += 1
    return f"{base}_{n}"


def is_absolute_url(url: str) -> bool:
    parsed = urlparse(url)
    return bool(parsed.scheme) and bool(parsed.netloc)


# ============================================================
# Records
# ============================================================
@dataclass
class Screenshot:
    """An image attached to a trade, embedded as a data URL."""

    id: str
    name: str = ""
    mime_type: str = ""
    data: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "type": self.mime_type, "data": self.data}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Screenshot":
        return cls(
            id=str(d.get("id") or ""),
            name=str(d.get("name") or ""),
            mime_type=str(d.get("type") or d.get("mimeType") or ""),
            data=str(d.get("data") or ""),
        )


@dataclass
class Trade:
    """Represents a single journal entry, closed or still open.

    Attributes
    ----------
    id: str
        Stable unique token; preserved across edits.
    symbol: str
        Free text ticker or pair (e.g. 'BTCUSDT', 'AAPL').
    type: str
        Either 'long' or 'short'. Determines how PnL is calculated.
    entry_price, quantity: float
        Position cost basis.
    entry_date: str
        ``YYYY-MM-DD`` calendar date.
    exit_price: Optional[float]
        ``None`` while the position is open.
    exit_date: str
        Empty while the position is open.
    strategy: str
        Name of a Strategy. A soft reference: deleting the strategy
        leaves the name in place.
    pnl, pnl_percent:
        Derived, recomputed on construction; not accepted as input.
    """

    id: str
    symbol: str
    type: str
    entry_price: float
    quantity: float
    entry_date: str
    exit_price: Optional[float] = None
    exit_date: str = ""
    created_at: str = ""
    strategy: str = ""
    tags: List[str] = field(default_factory=list)
    conviction: str = ""
    mistakes: List[str] = field(default_factory=list)
    notes: str = ""
    urls: List[str] = field(default_factory=list)
    screenshots: List[Screenshot] = field(default_factory=list)
    pnl: float = field(init=False)
    pnl_percent: str = field(init=False)

    def __post_init__(self) -> None:
        self.tags = list(self.tags)
        self.mistakes = list(self.mistakes)
        self.urls = list(self.urls)
        self.screenshots = list(self.screenshots)
        if self.exit_price is None:
            self.pnl = 0.0
            self.pnl_percent = "0.00"
        else:
            self.pnl = compute_pnl(self.type, self.entry_price, self.exit_price, self.quantity)
            self.pnl_percent = compute_pnl_percent(self.pnl, self.entry_price, self.quantity)

    @property
    def is_open(self) -> bool:
        return self.exit_price is None or not self.exit_date

    def validate(self) -> "Trade":
        """Raise ``TradeValidationError`` unless every invariant holds."""
        problems = []
        if not self.id:
            problems.append("id is required")
        if not self.symbol:
            problems.append("symbol is required")
        if self.type not in TRADE_TYPES:
            problems.append(f"type must be one of {', '.join(TRADE_TYPES)}")
        if self.entry_price < 0:
            problems.append("entryPrice must be >= 0")
        if self.quantity < 0:
            problems.append("quantity must be >= 0")
        if self.exit_price is not None and self.exit_price < 0:
            problems.append("exitPrice must be >= 0")
        if not self.entry_date:
            problems.append("entryDate is required")
        if self.conviction not in CONVICTIONS:
            problems.append("conviction must be one of A+, A, B or empty")
        bad_urls = [u for u in self.urls if not is_absolute_url(u)]
        if bad_urls:
            problems.append(f"urls must be absolute: {', '.join(bad_urls)}")
        if problems:
            raise TradeValidationError(problems)
        return self

    def to_dict(self) -> Dict[str, Any]:
        """Document shape used by storage and the JSON API."""
        return {
            "id": self.id,
            "symbol": self.symbol,
            "type": self.type,
            "entryPrice": self.entry_price,
            "exitPrice": self.exit_price,
            "quantity": self.quantity,
            "entryDate": self.entry_date,
            "exitDate": self.exit_date,
            "strategy": self.strategy,
            "tags": list(self.tags),
            "conviction": self.conviction,
            "mistakes": list(self.mistakes),
            "notes": self.notes,
            "urls": list(self.urls),
            "screenshots": [s.to_dict() for s in self.screenshots],
            "pnl": self.pnl,
            "pnlPercent": self.pnl_percent,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Trade":
        """Build a trade from a document; any stored ``pnl`` is ignored.

        Raises ``TradeValidationError`` when a numeric field is missing or
        does not parse. Call ``validate()`` for the remaining invariants.
        """
        problems: List[str] = []
        entry_price = _number(d, "entryPrice", problems, required=True)
        exit_price = _number(d, "exitPrice", problems)
        quantity = _number(d, "quantity", problems, required=True)
        if problems:
            raise TradeValidationError(problems)
        return cls(
            id=_text(d, "id"),
            symbol=_text(d, "symbol"),
            type=_text(d, "type", "long").lower() or "long",
            entry_price=entry_price,
            exit_price=exit_price,
            quantity=quantity,
            entry_date=_text(d, "entryDate"),
            exit_date=_text(d, "exitDate"),
            created_at=_text(d, "createdAt"),
            strategy=_text(d, "strategy"),
            tags=split_list(d.get("tags"), ","),
            conviction=_text(d, "conviction"),
            mistakes=split_list(d.get("mistakes"), ","),
            notes=_text(d, "notes"),
            urls=split_list(d.get("urls"), ";"),
            screenshots=[Screenshot.from_dict(s) for s in d.get("screenshots") or []],
        )


@dataclass
class PlannedTrade:
    """A draft of a future trade. Has targets instead of fills and no P/L."""

    id: str
    symbol: str
    type: str = "long"
    target_entry: Optional[float] = None
    target_exit: Optional[float] = None
    stop_loss: Optional[float] = None
    quantity: Optional[float] = None
    planned_date: str = ""
    strategy: str = ""
    tags: List[str] = field(default_factory=list)
    conviction: str = ""
    notes: str = ""
    screenshots: List[Screenshot] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""

    def validate(self) -> "PlannedTrade":
        problems = []
        if not self.id:
            problems.append("id is required")
        if not self.symbol:
            problems.append("symbol is required")
        if self.type not in TRADE_TYPES:
            problems.append(f"type must be one of {', '.join(TRADE_TYPES)}")
        for name, value in (
            ("targetEntry", self.target_entry),
            ("targetExit", self.target_exit),
            ("stopLoss", self.stop_loss),
            ("quantity", self.quantity),
        ):
            if value is not None and value < 0:
                problems.append(f"{name} must be >= 0")
        if self.conviction not in CONVICTIONS:
            problems.append("conviction must be one of A+, A, B or empty")
        if problems:
            raise TradeValidationError(problems)
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "symbol": self.symbol,
            "type": self.type,
            "targetEntry": self.target_entry,
            "targetExit": self.target_exit,
            "stopLoss": self.stop_loss,
            "quantity": self.quantity,
            "plannedDate": self.planned_date,
            "strategy": self.strategy,
            "tags": list(self.tags),
            "conviction": self.conviction,
            "notes": self.notes,
            "screenshots": [s.to_dict() for s in self.screenshots],
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "PlannedTrade":
        problems: List[str] = []
        target_entry = _number(d, "targetEntry", problems)
        target_exit = _number(d, "targetExit", problems)
        stop_loss = _number(d, "stopLoss", problems)
        quantity = _number(d, "quantity", problems)
        if problems:
            raise TradeValidationError(problems)
        return cls(
            id=_text(d, "id"),
            symbol=_text(d, "symbol"),
            type=_text(d, "type", "long").lower() or "long",
            target_entry=target_entry,
            target_exit=target_exit,
            stop_loss=stop_loss,
            quantity=quantity,
            planned_date=_text(d, "plannedDate"),
            strategy=_text(d, "strategy"),
            tags=split_list(d.get("tags"), ","),
            conviction=_text(d, "conviction"),
            notes=_text(d, "notes"),
            screenshots=[Screenshot.from_dict(s) for s in d.get("screenshots") or []],
            created_at=_text(d, "createdAt"),
            updated_at=_text(d, "updatedAt"),
        )


@dataclass
class Strategy:
    id: str
    name: str
    description: str = ""
    bias: str = "neutral"
    created_at: str = ""

    def validate(self) -> "Strategy":
        problems = []
        if not self.id:
            problems.append("id is required")
        if not self.name:
            problems.append("name is required")
        if self.bias not in BIASES:
            problems.append(f"bias must be one of {', '.join(BIASES)}")
        if problems:
            raise TradeValidationError(problems)
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "bias": self.bias,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Strategy":
        return cls(
            id=_text(d, "id"),
            name=_text(d, "name"),
            description=_text(d, "description"),
            bias=_text(d, "bias", "neutral").lower() or "neutral",
            created_at=_text(d, "createdAt"),
        )


@dataclass
class CapitalAdjustment:
    """A deposit or withdrawal that moves capital without being trading P/L."""

    id: str
    type: str
    amount: float
    date: str = ""
    notes: str = ""
    created_at: str = ""

    @property
    def signed_amount(self) -> float:
        return self.amount if self.type == "deposit" else -self.amount

    def validate(self) -> "CapitalAdjustment":
        problems = []
        if not self.id:
            problems.append("id is required")
        if self.type not in ADJUSTMENT_TYPES:
            problems.append("type must be deposit or withdrawal")
        if not self.amount > 0:
            problems.append("amount must be > 0")
        if problems:
            raise TradeValidationError(problems)
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "amount": self.amount,
            "date": self.date,
            "notes": self.notes,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "CapitalAdjustment":
        problems: List[str] = []
        amount = _number(d, "amount", problems, required=True)
        if problems:
            raise TradeValidationError(problems)
        return cls(
            id=_text(d, "id"),
            type=_text(d, "type", "deposit").lower(),
            amount=amount,
            date=_text(d, "date"),
            notes=_text(d, "notes"),
            created_at=_text(d, "createdAt"),
        )


@dataclass
class Settings:
    currency: str = "USD"
    starting_capital: float = 10000.0

    def to_dict(self) -> Dict[str, Any]:
        return {"currency": self.currency, "startingCapital": self.starting_capital}

    @classmethod
    def from_dict(cls, d: Optional[Dict[str, Any]], defaults: Optional["Settings"] = None) -> "Settings":
        defaults = defaults or cls()
        d = d or {}
        problems: List[str] = []
        capital = _number(d, "startingCapital", problems)
        if problems:
            raise TradeValidationError(problems)
        return cls(
            currency=(_text(d, "currency") or defaults.currency).upper(),
            starting_capital=defaults.starting_capital if capital is None else capital,
        )


# ============================================================
# Collection level operations
# ============================================================
def merge_imported_trades(existing: List[Trade], imported: List[Trade], now: datetime) -> List[Trade]:
    """Merge an imported batch in front of ``existing``.

    An imported trade whose id is already used by an existing trade gets
    a freshly generated id; existing trades are never overwritten. Neither
    input list is modified.
    """
    existing_ids = {t.id for t in existing}
    taken: Set[str] = existing_ids | {t.id for t in imported}
    merged: List[Trade] = []
    for trade in imported:
        if trade.id in existing_ids:
            new_id = generate_id(now, taken)
            taken.add(new_id)
            log.debug(f"Imported trade id {trade.id} collides, reassigned to {new_id}")
            trade = replace(trade, id=new_id)
        merged.append(trade)
    return merged + list(existing)


def execute_plan(
    plan: PlannedTrade,
    fill: Optional[Dict[str, Any]],
    now: datetime,
    taken: Iterable[str] = (),
) -> Trade:
    """Turn a planned trade into a new ``Trade``.

    Targets become the fills (target entry -> entry price, target exit ->
    exit price, planned date -> entry date) and annotations are copied.
    Any key in ``fill`` (document field names) overrides the plan. The
    caller is responsible for deleting the plan once the trade is stored.
    """
    data: Dict[str, Any] = {
        "symbol": plan.symbol,
        "type": plan.type,
        "entryPrice": plan.target_entry,
        "exitPrice": plan.target_exit,
        "quantity": plan.quantity,
        "entryDate": plan.planned_date,
        "strategy": plan.strategy,
        "tags": list(plan.tags),
        "conviction": plan.conviction,
        "notes": plan.notes,
        "screenshots": [s.to_dict() for s in plan.screenshots],
    }
    data.update(fill or {})
    data["id"] = generate_id(now, taken)
    data["createdAt"] = isoformat(now)
    return Trade.from_dict(data).validate()
