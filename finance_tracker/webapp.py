"""Flask web interface for the finance tracker.

JSON endpoints for statement and CSV imports plus a dashboard summary. Every
route under ``/api`` works on the signed-in user's rows only.
"""

from __future__ import annotations

import datetime as dt
import os
from functools import wraps
from pathlib import Path
from typing import Any, Dict, List, Optional

from flask import Flask, g, jsonify, request, session
from werkzeug.exceptions import HTTPException
from werkzeug.security import check_password_hash

from .analytics import Entry, build_summary, month_floor, subtract_months
from .categorizer import Classifier
from .columns import ColumnMapping, MappingStore
from .config import MAX_CSV_ROWS, AppConfig
from .data_loader import detect_format
from .db import Gateway, init_db
from .errors import InvalidTransition, ParseError, PersistenceError
from .importer import StatementImport, import_reviewed_rows, import_statement
from .logging_setup import configure_logging, get_logger
from .materializer import (
    ImportDefaults,
    RowImportResult,
    materialize_expense_rows,
    materialize_income_rows,
)
from .models import Budget, Category, Expense, Income, User, db

PACKAGE_ROOT = Path(__file__).resolve().parent
PROJECT_ROOT = PACKAGE_ROOT.parent

SUPPORTED_LOCALES = ("es", "en")
DEFAULT_LOCALE = "es"

logger = get_logger("finance_tracker.webapp")


def normalize_locale(value: Optional[str]) -> str:
    value = (value or "").strip().lower()[:2]
    return value if value in SUPPORTED_LOCALES else DEFAULT_LOCALE


def _message(text: str, status: int = 400):
    return jsonify({"message": text}), status


def _json_body() -> Dict[str, Any]:
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


def _optional_int(value: Any) -> Optional[int]:
    text = str(value or "").strip()
    return int(text) if text.isdecimal() else None


def _parse_month(value: Optional[str]) -> dt.date:
    if value:
        try:
            year, month = (int(p) for p in value.split("-")[:2])
            return dt.date(year, month, 1)
        except ValueError:
            pass
    return month_floor(dt.date.today())


def login_required(view):
    @wraps(view)
    def wrapped_view(**kwargs):
        if g.user is None:
            return _message("Unauthorized", 401)
        return view(**kwargs)

    return wrapped_view


def _load_logged_in_user() -> None:
    user_id = session.get("user_id")
    g.user = db.session.get(User, user_id) if user_id is not None else None


def _resolve_config_path(config_path: Optional[str]) -> Optional[Path]:
    if not config_path:
        return None
    path = Path(config_path)
    if path.is_absolute():
        return path
    return PROJECT_ROOT / path


def _resolve_defaults(gateway: Gateway, cfg: AppConfig, category: Any, purpose: Any, merchant: Any = None):
    references = gateway.references()
    defaults = ImportDefaults(
        category_id=references.category_id(category),
        purpose_id=references.purpose_id(purpose),
        merchant_id=references.merchant_id(merchant),
        base_currency=cfg.base_currency,
        max_integer_digits=cfg.max_integer_digits,
    )
    return references, defaults


def _csv_import(rows: List[Any], materialize, insert, references, cfg: AppConfig):
    records, errors = materialize(rows[:MAX_CSV_ROWS], references, cfg.base_currency, cfg.max_integer_digits)
    inserted = insert(records)
    return RowImportResult.build(len(rows), inserted, errors)


def create_app(
    config_path: Optional[str] = None,
    database_uri: Optional[str] = None,
    testing: bool = False,
) -> Flask:
    configure_logging()
    app = Flask(__name__)
    app.config["SECRET_KEY"] = os.getenv("FINANCE_TRACKER_SECRET_KEY", "dev")
    app.config["SQLALCHEMY_DATABASE_URI"] = (
        database_uri
        or os.getenv("FINANCE_TRACKER_DATABASE_URI")
        or f"sqlite:///{PROJECT_ROOT / 'finance_tracker.db'}"
    )
    app.config["MAX_CONTENT_LENGTH"] = 10 * 1024 * 1024
    app.config["TESTING"] = testing

    cfg = AppConfig.load(_resolve_config_path(config_path))
    classifier = Classifier.from_config(cfg)
    mapping_store = MappingStore(cfg.mapping_store or Path(app.instance_path) / "mappings.json")
    app.extensions["finance_tracker.config"] = cfg
    app.extensions["finance_tracker.mapping_store"] = mapping_store

    db.init_app(app)
    app.before_request(_load_logged_in_user)
    with app.app_context():
        init_db()

    @app.errorhandler(ParseError)
    def handle_parse_error(exc: ParseError):
        return _message(str(exc))

    @app.errorhandler(PersistenceError)
    def handle_persistence_error(exc: PersistenceError):
        return _message(str(exc))

    @app.errorhandler(InvalidTransition)
    def handle_invalid_transition(exc: InvalidTransition):
        return _message(str(exc), 409)

    @app.errorhandler(HTTPException)
    def handle_http_error(exc: HTTPException):
        if request.path.startswith("/api/"):
            return _message(exc.description or exc.name, exc.code or 500)
        return exc

    @app.route("/login", methods=["POST"])
    def login():
        body = _json_body() or request.form
        username = (body.get("username") or "").strip()
        password = body.get("password") or ""
        user = db.session.execute(
            db.select(User).where((User.username == username) | (User.email == username))
        ).scalar_one_or_none()
        if user is None or not check_password_hash(user.password_hash, password):
            return _message("Invalid credentials.", 401)
        session.clear()
        session["user_id"] = user.id
        return jsonify({"id": user.id, "username": user.username})

    @app.route("/logout", methods=["POST"])
    @login_required
    def logout():
        session.clear()
        return jsonify({"ok": True})

    @app.route("/api/statements/import", methods=["POST"])
    @login_required
    def statement_import():
        locale = normalize_locale(request.form.get("locale"))
        file = request.files.get("file")
        if not file or not file.filename:
            return _message("Please choose a statement file to upload.")
        logger.info("statement upload %s (locale=%s, user=%s)", file.filename, locale, g.user.id)
        gateway = Gateway(g.user.id)
        _, defaults = _resolve_defaults(
            gateway,
            cfg,
            request.form.get("defaultCategoryId"),
            request.form.get("defaultPurposeId"),
        )
        if defaults.category_id is None or defaults.purpose_id is None:
            return _message("Select a default category and purpose.")
        result = import_statement(file.read(), detect_format(file.filename), gateway, defaults, classifier)
        return jsonify(result.to_dict())

    @app.route("/api/statements/preview", methods=["POST"])
    @login_required
    def statement_preview():
        file = request.files.get("file")
        if not file or not file.filename:
            return _message("Please choose a statement file to upload.")
        wizard = StatementImport(classifier=classifier, mapping_store=mapping_store)
        wizard.load(file.read(), detect_format(file.filename), merchant_id=request.form.get("merchantId"))
        return jsonify(
            {
                "state": wizard.state.value,
                "columns": wizard.columns,
                "mapping": wizard.mapping.to_dict(),
                "rows": wizard.preview(),
                "total": len(wizard.rows()),
            }
        )

    @app.route("/api/statements/rows", methods=["POST"])
    @login_required
    def statement_rows():
        body = _json_body()
        locale = normalize_locale(body.get("locale"))
        rows = body.get("rows")
        if not isinstance(rows, list) or not rows:
            return _message("No transactions found in the statement.")
        logger.info("reviewed statement rows: %d (locale=%s, user=%s)", len(rows), locale, g.user.id)
        gateway = Gateway(g.user.id)
        references, defaults = _resolve_defaults(
            gateway,
            cfg,
            body.get("defaultCategoryId"),
            body.get("defaultPurposeId"),
            body.get("merchantId"),
        )
        if defaults.category_id is None or defaults.purpose_id is None:
            return _message("Select a default category and purpose.")
        result = import_reviewed_rows(rows, gateway, defaults, classifier, merchant_id=body.get("merchantId"))
        merchant_id = _optional_int(body.get("merchantId"))
        if merchant_id in references.merchants and isinstance(body.get("mapping"), dict):
            mapping_store.save(merchant_id, ColumnMapping.from_dict(body["mapping"]))
        return jsonify(result.to_dict())

    @app.route("/api/expenses/import", methods=["POST"])
    @login_required
    def expenses_import():
        body = _json_body()
        locale = normalize_locale(body.get("locale"))
        rows = body.get("rows")
        if not isinstance(rows, list) or not rows:
            return _message("No rows to import.")
        gateway = Gateway(g.user.id)
        result = _csv_import(rows, materialize_expense_rows, gateway.insert_expenses, gateway.references(), cfg)
        logger.info("expense csv import (%s): %d inserted, %d skipped", locale, result.inserted, result.skipped)
        return jsonify(result.to_dict())

    @app.route("/api/incomes/import", methods=["POST"])
    @login_required
    def incomes_import():
        body = _json_body()
        locale = normalize_locale(body.get("locale"))
        rows = body.get("rows")
        if not isinstance(rows, list) or not rows:
            return _message("No rows to import.")
        gateway = Gateway(g.user.id)
        result = _csv_import(rows, materialize_income_rows, gateway.insert_incomes, gateway.references(), cfg)
        logger.info("income csv import (%s): %d inserted, %d skipped", locale, result.inserted, result.skipped)
        return jsonify(result.to_dict())

    @app.route("/api/summary")
    @login_required
    def api_summary():
        month = _parse_month(request.args.get("month"))
        months = max(1, min(_optional_int(request.args.get("months")) or 6, 24))
        start = subtract_months(month, months - 1)
        end = dt.date(month.year + (month.month == 12), month.month % 12 + 1, 1)
        user_id = g.user.id

        expenses = db.session.execute(
            db.select(Expense).where(
                Expense.user_id == user_id,
                Expense.expense_date >= start,
                Expense.expense_date < end,
            )
        ).scalars()
        incomes = db.session.execute(
            db.select(Income).where(
                Income.user_id == user_id,
                Income.income_date >= start,
                Income.income_date < end,
            )
        ).scalars()
        entries = [
            Entry("expense", e.expense_date, e.amount_dop, e.category.name if e.category else None)
            for e in expenses
        ]
        entries.extend(Entry("income", i.income_date, i.amount_dop) for i in incomes)

        budget_rows = db.session.execute(
            db.select(Budget, Category.name)
            .join(Category, Budget.category_id == Category.id)
            .where(Budget.user_id == user_id, Budget.month == month)
        ).all()
        budgets = {name: budget.amount for budget, name in budget_rows}
        return jsonify(build_summary(entries, month, budgets or None, months))

    return app


if __name__ == "__main__":
    create_app().run(debug=True)
