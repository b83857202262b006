"""
Pytest Configuration and Fixtures
==================================

Shared fixtures for the journal test suite.
"""

from datetime import datetime, timezone
from typing import Callable, Optional

import pytest

from tradejournal.app import create_app
from tradejournal.config import AppConfig
from tradejournal.database import TradeJournalDB
from tradejournal.journal import JournalService
from tradejournal.models import CapitalAdjustment, Settings, Trade

FIXED_NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


# =============================================================================
# RECORD FACTORIES
# =============================================================================

@pytest.fixture
def make_trade() -> Callable[..., Trade]:
    """Factory for trades; defaults describe a closed +100 long."""

    def _make(
        id: str = "t1",
        symbol: str = "AAPL",
        type: str = "long",
        entry_price: float = 100.0,
        exit_price: Optional[float] = 110.0,
        quantity: float = 10.0,
        entry_date: str = "2024-01-02",
        exit_date: str = "2024-01-05",
        **kwargs,
    ) -> Trade:
        return Trade(
            id=id,
            symbol=symbol,
            type=type,
            entry_price=entry_price,
            exit_price=exit_price,
            quantity=quantity,
            entry_date=entry_date,
            exit_date=exit_date,
            **kwargs,
        )

    return _make


@pytest.fixture
def trade_with_pnl(make_trade) -> Callable[..., Trade]:
    """Factory for a one-unit long whose P/L is exactly ``pnl``."""

    def _make(pnl: float, exit_date: str = "2024-01-05", id: Optional[str] = None, **kwargs) -> Trade:
        return make_trade(
            id=id or f"t-{exit_date}-{pnl}",
            entry_price=1000.0,
            exit_price=1000.0 + pnl,
            quantity=1.0,
            entry_date=exit_date,
            exit_date=exit_date,
            **kwargs,
        )

    return _make


@pytest.fixture
def settings() -> Settings:
    return Settings(currency="USD", starting_capital=10000.0)


@pytest.fixture
def deposit() -> CapitalAdjustment:
    return CapitalAdjustment(id="a1", type="deposit", amount=5000.0, date="2024-01-01")


@pytest.fixture
def withdrawal() -> CapitalAdjustment:
    return CapitalAdjustment(id="a2", type="withdrawal", amount=1000.0, date="2024-02-01")


# =============================================================================
# STORAGE / SERVICE / APP
# =============================================================================

@pytest.fixture
def db(tmp_path):
    store = TradeJournalDB(str(tmp_path / "journal.db"))
    yield store
    store.close()


@pytest.fixture
def service(db) -> JournalService:
    return JournalService(db, clock=lambda: FIXED_NOW)


@pytest.fixture
def app(tmp_path):
    config = AppConfig(db_path=str(tmp_path / "api.db"), log_level="WARNING")
    flask_app = create_app(config, clock=lambda: FIXED_NOW)
    flask_app.config["TESTING"] = True
    return flask_app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def sample_csv() -> str:
    return (
        "ID,Symbol,Type,Entry Price,Exit Price,Quantity,Entry Date,Exit Date,Strategy,Tags,Conviction,P/L,P/L %,Notes,URLs,Created At\n"
        "1,AAPL,long,100,110,10,2024-01-02,2024-01-05,Breakout,\"momentum, earnings\",A,100,10.00,Clean entry,https://example.com/a,2024-01-02T10:00:00.000Z\n"
        "2,TSLA,short,200,220,5,2024-01-08,2024-01-09,Fade,,B,-100,-10.00,\"Stopped out, \"\"late\"\"\",,2024-01-08T10:00:00.000Z\n"
    )
