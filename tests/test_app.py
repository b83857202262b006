"""
HTTP layer tests using Flask's test client.
"""

import io

import pytest

from tradejournal.app import USER_HEADER, allowed_file

TRADE = {
    "symbol": "AAPL",
    "type": "long",
    "entryPrice": 100,
    "exitPrice": 110,
    "quantity": 10,
    "entryDate": "2024-03-01",
    "exitDate": "2024-03-04",
}


def _upload(client, text: str, filename: str = "trades.csv"):
    return client.post(
        "/api/trades/import",
        data={"file": (io.BytesIO(text.encode("utf-8")), filename)},
        content_type="multipart/form-data",
    )


class TestTradeRoutes:

    def test_create_and_list(self, client):
        created = client.post("/api/trades", json=TRADE)
        assert created.status_code == 201
        assert created.get_json()["pnl"] == 100

        listed = client.get("/api/trades").get_json()
        assert [t["symbol"] for t in listed] == ["AAPL"]

    def test_validation_error_is_400(self, client):
        response = client.post("/api/trades", json={**TRADE, "quantity": None})
        assert response.status_code == 400
        assert "quantity is required" in response.get_json()["details"]

    def test_edit_and_delete(self, client):
        trade_id = client.post("/api/trades", json=TRADE).get_json()["id"]

        edited = client.put(f"/api/trades/{trade_id}", json={**TRADE, "exitPrice": 90})
        assert edited.get_json()["pnl"] == -100

        assert client.delete(f"/api/trades/{trade_id}").status_code == 204
        assert client.delete(f"/api/trades/{trade_id}").status_code == 404

    def test_unknown_trade_is_404(self, client):
        assert client.put("/api/trades/nope", json=TRADE).status_code == 404

    def test_bulk_and_full_delete(self, client):
        ids = [client.post("/api/trades", json={**TRADE, "symbol": s}).get_json()["id"] for s in "ABC"]
        response = client.post("/api/trades/bulk-delete", json={"ids": ids[:2]})
        assert response.get_json() == {"deleted": 2}

        assert client.delete("/api/trades").status_code == 204
        assert client.get("/api/trades").get_json() == []

    def test_users_are_isolated(self, client):
        client.post("/api/trades", json=TRADE, headers={USER_HEADER: "alice"})
        assert len(client.get("/api/trades", headers={USER_HEADER: "alice"}).get_json()) == 1
        assert client.get("/api/trades").get_json() == []


class TestCsvRoutes:

    def test_upload(self, client, sample_csv):
        response = _upload(client, sample_csv)
        body = response.get_json()
        assert response.status_code == 200
        assert [t["symbol"] for t in body["imported"]] == ["AAPL", "TSLA"]
        assert body["errors"] == []

    def test_raw_body_with_row_errors(self, client):
        text = "Symbol,Entry Price,Exit Price,Quantity,Entry Date,Exit Date\nAAPL,100,110,10,2024-01-02,2024-01-05\nMSFT,,1,1,2024-01-02,2024-01-05\n"
        body = client.post("/api/trades/import", data=text, content_type="text/csv").get_json()
        assert len(body["imported"]) == 1
        assert body["errors"] == ["Row 3: Missing required fields"]

    def test_wrong_extension(self, client, sample_csv):
        assert _upload(client, sample_csv, "trades.txt").status_code == 400

    def test_missing_columns(self, client):
        response = _upload(client, "Symbol,Quantity\nAAPL,1\n")
        assert response.status_code == 400
        assert "entry price" in response.get_json()["missing"]

    def test_no_valid_rows(self, client):
        response = _upload(client, "Symbol,Entry Price,Exit Price,Quantity,Entry Date,Exit Date\n,,,,,\nX,,,,,\n")
        assert response.status_code == 400
        assert response.get_json()["error"] == "No valid trades found in CSV file"

    def test_export(self, client, sample_csv):
        assert client.get("/api/trades/export").status_code == 204

        _upload(client, sample_csv)
        response = client.get("/api/trades/export")
        assert response.status_code == 200
        assert response.mimetype == "text/csv"
        assert "trades_export_2024-03-15.csv" in response.headers["Content-Disposition"]
        assert response.get_data(as_text=True).startswith("ID,Symbol,Type")


class TestAnalyticsRoutes:

    def test_metrics(self, client):
        client.post("/api/trades", json=TRADE)
        metrics = client.get("/api/metrics").get_json()
        assert metrics["total_pnl"] == 100
        assert metrics["current_capital"] == 10100
        assert metrics["profit_factor"] == 999

    def test_strategy_breakdown_keeps_first_seen_order(self, client):
        client.post("/api/trades", json={**TRADE, "strategy": "Alpha"})
        client.post("/api/trades", json={**TRADE, "strategy": "Zeta"})
        # newest first: Zeta, Alpha
        breakdown = client.get("/api/metrics").get_json()["strategy_breakdown"]
        assert list(breakdown) == ["Zeta", "Alpha"]

    def test_charts(self, client):
        client.post("/api/trades", json=TRADE)
        charts = client.get("/api/charts").get_json()
        assert charts["today"] == "2024-03-15"
        assert charts["profit_factor"] == "∞"
        assert set(charts) >= {"daily", "cumulative", "radar", "score", "recent", "open"}

    def test_calendar(self, client):
        grid = client.get("/api/charts/calendar?year=2024&month=2").get_json()
        assert len(grid["days"]) == 29
        assert client.get("/api/charts/calendar?month=13").status_code == 400

    def test_calendar_defaults_to_current_month(self, client):
        grid = client.get("/api/charts/calendar").get_json()
        assert (grid["year"], grid["month"]) == (2024, 3)


class TestOtherRoutes:

    def test_plan_execute(self, client):
        plan = client.post("/api/planned-trades", json={
            "symbol": "NVDA", "targetEntry": 400, "targetExit": 440, "quantity": 2, "plannedDate": "2024-03-18",
        })
        assert plan.status_code == 201
        plan_id = plan.get_json()["id"]

        trade = client.post(f"/api/planned-trades/{plan_id}/execute", json={"exitDate": "2024-03-19"})
        assert trade.status_code == 201
        assert trade.get_json()["pnl"] == 80
        assert client.get("/api/planned-trades").get_json() == []

    def test_strategies(self, client):
        created = client.post("/api/strategies", json={"name": "ORB"}).get_json()
        client.put(f"/api/strategies/{created['id']}", json={"bias": "bearish"})
        assert client.get("/api/strategies").get_json()[0]["bias"] == "bearish"
        assert client.delete(f"/api/strategies/{created['id']}").status_code == 204

    def test_capital_adjustments(self, client):
        created = client.post("/api/capital-adjustments", json={"type": "deposit", "amount": 500})
        assert created.status_code == 201
        assert client.get("/api/metrics").get_json()["adjusted_starting_capital"] == 10500
        assert client.post("/api/capital-adjustments", json={"type": "deposit", "amount": 0}).status_code == 400

    def test_settings(self, client):
        assert client.get("/api/settings").get_json() == {"currency": "USD", "startingCapital": 10000}
        client.put("/api/settings", json={"currency": "eur", "startingCapital": 2000})
        assert client.get("/api/settings").get_json() == {"currency": "EUR", "startingCapital": 2000}

    def test_candles(self, client, monkeypatch):
        calls = []

        def fake_fetch(symbol, timeout):
            calls.append(symbol)
            return [{"time": 1, "open": 1, "high": 2, "low": 0.5, "close": 1.5}]

        monkeypatch.setattr("tradejournal.app.fetch_candles", fake_fetch)
        assert client.get("/api/candles?symbol=btc").get_json()[0]["close"] == 1.5
        assert calls == ["btc"]

    def test_candles_need_symbol(self, client):
        assert client.get("/api/candles").status_code == 400


@pytest.mark.parametrize("name, ok", [("a.csv", True), ("A.CSV", True), ("a.txt", False), ("csv", False)])
def test_allowed_file(name, ok):
    assert allowed_file(name) is ok
