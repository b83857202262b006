"""
app.py
------

Flask application exposing the journal as a JSON API. The browser UI
(forms, charts, calendar) is a separate client; everything it needs is
served from here: trade CRUD, CSV import and export, planned trades,
strategies, capital adjustments, settings, the metrics snapshot and the
chart-ready series.

Requests are scoped per user through the ``X-Journal-User`` header; a
missing header means the single local user.

To run the application:
    1. Install the package (``pip install -e .``).
    2. Execute ``python -m tradejournal.app``.
    3. The API listens on http://localhost:5004.

Note: The Flask development server is intended for local use. For
production deployments consider using a production WSGI server
such as Gunicorn.
"""
from datetime import datetime
from typing import Callable, Optional

from flask import Flask, Response, jsonify, request
from werkzeug.utils import secure_filename

from .config import AppConfig
from .csv_codec import CSVImportError, MissingColumnsError, NoValidRowsError
from .database import DEFAULT_OWNER, TradeJournalDB
from .journal import JournalService, RecordNotFound
from .logger import log, setup_logging
from .market import fetch_candles
from .models import Settings, TradeValidationError

ALLOWED_CSV = {"csv"}
USER_HEADER = "X-Journal-User"


def allowed_file(filename: str) -> bool:
    return "." in filename and filename.rsplit(".", 1)[1].lower() in ALLOWED_CSV


def create_app(config: Optional[AppConfig] = None, clock: Optional[Callable[[], datetime]] = None) -> Flask:
    config = config or AppConfig.from_env()
    setup_logging(config.log_level, config.log_file)

    app = Flask(__name__)
    # strategy breakdown is in first-seen order
    app.json.sort_keys = False
    app.config["SECRET_KEY"] = config.secret_key
    db = TradeJournalDB(config.db_path)
    defaults = Settings(currency=config.default_currency, starting_capital=config.default_starting_capital)
    log.info(f"Journal store at {config.db_path}")

    def service() -> JournalService:
        owner = (request.headers.get(USER_HEADER) or DEFAULT_OWNER).strip() or DEFAULT_OWNER
        return JournalService(db, owner=owner, default_settings=defaults, clock=clock)

    def body() -> dict:
        return request.get_json(silent=True) or {}

    # ---------- errors ----------
    @app.errorhandler(TradeValidationError)
    def on_validation_error(e: TradeValidationError):
        return jsonify({"error": "Invalid record", "details": e.problems}), 400

    @app.errorhandler(MissingColumnsError)
    def on_missing_columns(e: MissingColumnsError):
        return jsonify({"error": str(e), "missing": e.missing}), 400

    @app.errorhandler(NoValidRowsError)
    def on_no_valid_rows(e: NoValidRowsError):
        return jsonify({"error": str(e), "details": [str(err) for err in e.errors]}), 400

    @app.errorhandler(CSVImportError)
    def on_csv_error(e: CSVImportError):
        return jsonify({"error": str(e)}), 400

    @app.errorhandler(RecordNotFound)
    def on_not_found(e: RecordNotFound):
        return jsonify({"error": str(e)}), 404

    # ---------- trades ----------
    @app.route("/api/trades", methods=["GET"])
    def list_trades():
        return jsonify([t.to_dict() for t in service().trades()])

    @app.route("/api/trades", methods=["POST"])
    def add_trade():
        return jsonify(service().add_trade(body()).to_dict()), 201

    @app.route("/api/trades/<trade_id>", methods=["PUT"])
    def edit_trade(trade_id: str):
        return jsonify(service().edit_trade(trade_id, body()).to_dict())

    @app.route("/api/trades/<trade_id>", methods=["DELETE"])
    def delete_trade(trade_id: str):
        service().delete_trade(trade_id)
        return "", 204

    @app.route("/api/trades/bulk-delete", methods=["POST"])
    def bulk_delete_trades():
        ids = body().get("ids") or []
        return jsonify({"deleted": service().delete_trades(str(i) for i in ids)})

    @app.route("/api/trades", methods=["DELETE"])
    def delete_all_trades():
        service().delete_all_trades()
        return "", 204

    # ---------- CSV ----------
    @app.route("/api/trades/import", methods=["POST"])
    def import_trades():
        f = request.files.get("file")
        if f is not None:
            filename = secure_filename(f.filename or "")
            if filename == "" or not allowed_file(filename):
                return jsonify({"error": "Only .csv files are supported."}), 400
            log.info(f"Importing {filename}")
            text = f.read().decode("utf-8", errors="ignore")
        else:
            text = request.get_data(as_text=True)
        result = service().import_csv(text)
        return jsonify({
            "imported": [t.to_dict() for t in result.trades],
            "errors": [str(err) for err in result.errors],
        })

    @app.route("/api/trades/export", methods=["GET"], endpoint="export")
    def export_trades():
        svc = service()
        text = svc.export_csv()
        if not text:
            return "", 204
        stamp = svc.clock().date().isoformat()
        return Response(
            text,
            mimetype="text/csv",
            headers={"Content-Disposition": f"attachment; filename=trades_export_{stamp}.csv"},
        )

    # ---------- analytics ----------
    @app.route("/api/metrics")
    def metrics():
        return jsonify(service().metrics().to_dict())

    @app.route("/api/charts")
    def charts():
        return jsonify(service().chart_data())

    @app.route("/api/charts/calendar")
    def calendar():
        svc = service()
        today = svc.clock().date()
        year = request.args.get("year", default=today.year, type=int)
        month = request.args.get("month", default=today.month, type=int)
        if not 1 <= month <= 12:
            return jsonify({"error": "month must be between 1 and 12"}), 400
        return jsonify(svc.calendar(year, month, today))

    # ---------- planned trades ----------
    @app.route("/api/planned-trades", methods=["GET"])
    def list_plans():
        return jsonify([p.to_dict() for p in service().planned_trades()])

    @app.route("/api/planned-trades", methods=["POST"])
    def add_plan():
        return jsonify(service().add_plan(body()).to_dict()), 201

    @app.route("/api/planned-trades/<plan_id>", methods=["PUT"])
    def edit_plan(plan_id: str):
        return jsonify(service().edit_plan(plan_id, body()).to_dict())

    @app.route("/api/planned-trades/<plan_id>", methods=["DELETE"])
    def delete_plan(plan_id: str):
        service().delete_plan(plan_id)
        return "", 204

    @app.route("/api/planned-trades/<plan_id>/execute", methods=["POST"])
    def execute_plan(plan_id: str):
        return jsonify(service().execute_planned_trade(plan_id, body()).to_dict()), 201

    # ---------- strategies ----------
    @app.route("/api/strategies", methods=["GET"])
    def list_strategies():
        return jsonify([s.to_dict() for s in service().strategies()])

    @app.route("/api/strategies", methods=["POST"])
    def add_strategy():
        return jsonify(service().add_strategy(body()).to_dict()), 201

    @app.route("/api/strategies/<strategy_id>", methods=["PUT"])
    def edit_strategy(strategy_id: str):
        return jsonify(service().edit_strategy(strategy_id, body()).to_dict())

    @app.route("/api/strategies/<strategy_id>", methods=["DELETE"])
    def delete_strategy(strategy_id: str):
        service().delete_strategy(strategy_id)
        return "", 204

    # ---------- capital / settings ----------
    @app.route("/api/capital-adjustments", methods=["GET"])
    def list_adjustments():
        return jsonify([a.to_dict() for a in service().capital_adjustments()])

    @app.route("/api/capital-adjustments", methods=["POST"])
    def add_adjustment():
        return jsonify(service().add_adjustment(body()).to_dict()), 201

    @app.route("/api/capital-adjustments/<adjustment_id>", methods=["DELETE"])
    def delete_adjustment(adjustment_id: str):
        service().delete_adjustment(adjustment_id)
        return "", 204

    @app.route("/api/settings", methods=["GET"])
    def get_settings():
        return jsonify(service().settings().to_dict())

    @app.route("/api/settings", methods=["PUT"])
    def save_settings():
        return jsonify(service().save_settings(body()).to_dict())

    # ---------- market data ----------
    @app.route("/api/candles")
    def candles():
        symbol = (request.args.get("symbol") or "").strip()
        if not symbol:
            return jsonify({"error": "symbol query param required"}), 400
        return jsonify(fetch_candles(symbol, timeout=config.market_timeout))

    return app


# Run directly
if __name__ == "__main__":
    app = create_app()
    app.run(host="0.0.0.0", port=5004, debug=False, use_reloader=False)
