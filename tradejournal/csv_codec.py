"""
csv_codec.py
------------

Reads and writes the journal's CSV interchange format.

Export writes a fixed set of 16 columns with RFC-4180 quoting. Import is
tolerant: header names are matched case-insensitively in any order,
dates in common formats are normalised to ``YYYY-MM-DD``, and a row that
fails validation is reported and skipped instead of aborting the whole
file. Only a missing required column or a file without a single usable
row aborts the import.

The two directions are inverse for every trade the importer accepts:
``import_trades_from_csv(export_trades_to_csv(trades))`` reproduces the
trades (P/L is recomputed, and recomputes to the same value).
"""

import csv
import io
import math
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from dateutil import parser as date_parser

from .logger import log
from .models import (
    CONVICTIONS,
    Trade,
    TradeValidationError,
    generate_id,
    is_absolute_url,
    isoformat,
    split_list,
)

EXPORT_COLUMNS = [
    "ID",
    "Symbol",
    "Type",
    "Entry Price",
    "Exit Price",
    "Quantity",
    "Entry Date",
    "Exit Date",
    "Strategy",
    "Tags",
    "Conviction",
    "P/L",
    "P/L %",
    "Notes",
    "URLs",
    "Created At",
]

REQUIRED_COLUMNS = ["symbol", "entry price", "exit price", "quantity", "entry date", "exit date"]

# Fill-ins for date parts the text omits; two different values reveal them.
_DATE_DEFAULT = datetime(1970, 1, 1)
_DATE_ALTERNATE = datetime(1971, 2, 2)


class CSVImportError(ValueError):
    """Base class for failures that abort a whole import."""


class MissingColumnsError(CSVImportError):
    def __init__(self, missing: Sequence[str]) -> None:
        self.missing = list(missing)
        super().__init__(f"Missing required columns: {', '.join(self.missing)}")


class NoValidRowsError(CSVImportError):
    def __init__(self, errors: Sequence["RowValidationError"] = ()) -> None:
        self.errors = list(errors)
        super().__init__("No valid trades found in CSV file")


@dataclass(frozen=True)
class RowValidationError:
    """A skipped row. Collected and returned, never raised."""

    row: int
    message: str = "Missing required fields"

    def __str__(self) -> str:
        return f"Row {self.row}: {self.message}"


@dataclass
class ImportResult:
    trades: List[Trade] = field(default_factory=list)
    errors: List[RowValidationError] = field(default_factory=list)


# ---------- export ----------
def _cell(value) -> str:
    if value is None:
        return ""
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else repr(value)
    return str(value)


def export_trades_to_csv(trades: Sequence[Trade]) -> str:
    """Serialise trades to CSV text.

    Returns an empty string when there is nothing to export; a file with
    only a header row is never produced.
    """
    if not trades:
        log.debug("Export requested with no trades")
        return ""

    out = io.StringIO()
    w = csv.writer(out, lineterminator="\n")
    w.writerow(EXPORT_COLUMNS)
    for t in trades:
        w.writerow([
            _cell(v)
            for v in (
                t.id,
                t.symbol,
                t.type,
                t.entry_price,
                t.exit_price,
                t.quantity,
                t.entry_date,
                t.exit_date,
                t.strategy,
                ", ".join(t.tags),
                t.conviction,
                t.pnl,
                t.pnl_percent,
                t.notes,
                "; ".join(t.urls),
                t.created_at,
            )
        ])
    # no terminator after the last row
    return out.getvalue()[:-1]


# ---------- import ----------
def normalize_date(raw: str) -> str:
    """Best effort conversion of a date string to ``YYYY-MM-DD``.

    A complete date (year, month and day all present in the text) is
    reformatted. A value the parser rejects that has three ``-``/``/``
    parts is read as ``M/D/YYYY``. Anything else, including a partial
    date such as ``1/2``, is returned unchanged.
    """
    if not raw:
        return ""
    try:
        parsed = date_parser.parse(raw, default=_DATE_DEFAULT).date()
        # a part filled in from the default differs between the two parses
        if parsed != date_parser.parse(raw, default=_DATE_ALTERNATE).date():
            return raw
        return parsed.isoformat()
    except (ValueError, OverflowError):
        parts = re.split(r"[-/]", raw)
        if len(parts) == 3:
            if len(parts[0]) == 4:
                return raw
            return f"{parts[2]}-{parts[0].zfill(2)}-{parts[1].zfill(2)}"
        return raw


def _parse_number(raw: str) -> Optional[float]:
    if not raw:
        return None
    try:
        value = float(raw)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def _conviction(raw: str, row_number: int) -> str:
    value = raw.upper()
    if value not in CONVICTIONS:
        log.debug(f"CSV row {row_number}: unknown conviction {raw!r} cleared")
        return ""
    return value


def _absolute_urls(raw: str, row_number: int) -> List[str]:
    urls = split_list(raw, ";")
    dropped = [u for u in urls if not is_absolute_url(u)]
    if dropped:
        log.debug(f"CSV row {row_number}: dropped non-absolute urls {dropped}")
    return [u for u in urls if is_absolute_url(u)]


def _header_map(header: Sequence[str]) -> Dict[str, int]:
    mapping: Dict[str, int] = {}
    for idx, name in enumerate(header):
        mapping.setdefault(name.strip().lower(), idx)
    return mapping


def import_trades_from_csv(text: str, now: datetime) -> ImportResult:
    """Parse CSV text into trades.

    Parameters
    ----------
    text: str
        Full file contents. The first non-blank record is the header.
    now: datetime
        Used for ids synthesised for rows without a usable ``ID`` and for
        ``createdAt`` when the file has no ``Created At`` value.

    Returns
    -------
    ImportResult
        Accepted trades in file order plus one ``RowValidationError`` per
        skipped row. Rows are numbered from 1 with the header as row 1.

    Raises
    ------
    MissingColumnsError
        A required header is absent.
    NoValidRowsError
        No row survived validation.
    """
    reader = csv.reader(io.StringIO(text.lstrip("\ufeff"), newline=""))
    records = [row for row in reader if any(cell.strip() for cell in row)]

    header = _header_map(records[0]) if records else {}
    missing = [name for name in REQUIRED_COLUMNS if name not in header]
    if missing:
        raise MissingColumnsError(missing)

    result = ImportResult()
    taken = set()
    for row_number, values in enumerate(records[1:], start=2):

        def get(name: str) -> str:
            idx = header.get(name)
            if idx is None or idx >= len(values):
                return ""
            return values[idx].strip()

        symbol = get("symbol")
        entry_price = _parse_number(get("entry price"))
        exit_price = _parse_number(get("exit price"))
        quantity = _parse_number(get("quantity"))
        entry_date = get("entry date")
        exit_date = get("exit date")
        if (
            not symbol
            or entry_price is None
            or exit_price is None
            or quantity is None
            or not entry_date
            or not exit_date
        ):
            result.errors.append(RowValidationError(row_number))
            log.debug(f"Skipping CSV row {row_number}: missing required fields")
            continue

        trade_id = get("id")
        if not trade_id or trade_id in taken:
            trade_id = generate_id(now, taken)

        trade = Trade(
            id=trade_id,
            symbol=symbol,
            type="short" if get("type").lower() == "short" else "long",
            entry_price=entry_price,
            exit_price=exit_price,
            quantity=quantity,
            entry_date=normalize_date(entry_date),
            exit_date=normalize_date(exit_date),
            created_at=get("created at") or isoformat(now),
            strategy=get("strategy"),
            tags=split_list(get("tags"), ","),
            conviction=_conviction(get("conviction"), row_number),
            notes=get("notes"),
            urls=_absolute_urls(get("urls"), row_number),
        )
        try:
            trade.validate()
        except TradeValidationError as e:
            result.errors.append(RowValidationError(row_number, str(e)))
            log.debug(f"Skipping CSV row {row_number}: {e}")
            continue

        taken.add(trade.id)
        result.trades.append(trade)

    if not result.trades:
        raise NoValidRowsError(result.errors)

    log.debug(f"Parsed {len(result.trades)} trades, skipped {len(result.errors)} rows")
    return result
