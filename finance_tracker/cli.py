"""Command-line interface for the finance tracker.

Usage:
  python -m finance_tracker.cli init-db
  python -m finance_tracker.cli seed --user ana --password secret
  python -m finance_tracker.cli preview statements/enero.xlsx
  python -m finance_tracker.cli import statements/enero.xlsx --user ana
"""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import List, Optional

from .categorizer import Classifier
from .config import AppConfig
from .data_loader import detect_format
from .db import Gateway, create_user, init_db, seed_defaults
from .errors import ParseError, PersistenceError
from .importer import StatementImport
from .logging_setup import configure_logging
from .materializer import ImportDefaults
from .models import User, db


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Household finance tracker")
    p.add_argument("--config", "-c", help="Path to JSON config with rules")
    p.add_argument("--database", help="SQLAlchemy database URI")
    p.add_argument("--log-level", help="Logging level (default INFO)")
    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create tables and base currencies")

    seed = sub.add_parser("seed", help="Create a user with default categories and purposes")
    seed.add_argument("--user", required=True)
    seed.add_argument("--password", required=True)
    seed.add_argument("--email")

    preview = sub.add_parser("preview", help="Show how a statement would be mapped and classified")
    preview.add_argument("file")
    preview.add_argument("--limit", type=int, default=20)

    imp = sub.add_parser("import", help="Import a statement for a user")
    imp.add_argument("file")
    imp.add_argument("--user", required=True)
    imp.add_argument("--default-category", default="Other")
    imp.add_argument("--default-purpose", default="Need")
    imp.add_argument("--exclude", type=int, nargs="*", default=[], help="Row indexes to skip")
    imp.add_argument("--json", dest="json_out", help="Write the import result to path")
    return p.parse_args(argv)


def _load(wizard: StatementImport, path: str) -> None:
    p = Path(path)
    wizard.load(p.read_bytes(), detect_format(p.name))


def _preview(args: argparse.Namespace, cfg: AppConfig) -> int:
    wizard = StatementImport(classifier=Classifier.from_config(cfg))
    _load(wizard, args.file)
    print("Columns: " + ", ".join(wizard.columns))
    for field, column in wizard.mapping.to_dict().items():
        print(f"  {field:<10} -> {column or '-'}")
    print()
    for row in wizard.preview(limit=args.limit):
        label = row.get("category") or "(default)"
        print(f"{row['index']:>4}  {row['date'] or '????-??-??'}  {row['type']:<7} {row['amount']:>14}  {label:<14} {row['detail']}")
    print(f"\n{len(wizard.rows())} row(s) ready to import")
    return 0


def _import(args: argparse.Namespace, cfg: AppConfig) -> int:
    user = db.session.execute(db.select(User).filter_by(username=args.user)).scalar_one_or_none()
    if user is None:
        print(f"Unknown user: {args.user}")
        return 1
    gateway = Gateway(user.id)
    references = gateway.references()
    defaults = ImportDefaults(
        category_id=references.category_id(args.default_category),
        purpose_id=references.purpose_id(args.default_purpose),
        base_currency=cfg.base_currency,
        max_integer_digits=cfg.max_integer_digits,
    )
    if defaults.category_id is None or defaults.purpose_id is None:
        print("Default category and purpose must exist for the user (run `seed` first).")
        return 1

    wizard = StatementImport(classifier=Classifier.from_config(cfg))
    _load(wizard, args.file)
    for index in args.exclude:
        wizard.exclude(index)
    try:
        result = wizard.submit(gateway, defaults)
    except PersistenceError as exc:
        print(f"Import failed: {exc}")
        return 1

    print(f"Inserted {result.inserted_expenses} expense(s) and {result.inserted_incomes} income(s); skipped {result.skipped}.")
    for err in result.errors:
        print(f"  row {err['row']}: {err['message']}")
    if args.json_out:
        Path(args.json_out).write_text(json.dumps(result.to_dict(), indent=2), encoding="utf-8")
        print(f"\nSaved import result to: {args.json_out}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level)
    cfg = AppConfig.load(args.config)

    if args.command == "preview":
        try:
            return _preview(args, cfg)
        except ParseError as exc:
            print(f"Unable to read statement: {exc}")
            return 1

    from .webapp import create_app

    config_path = str(Path(args.config).resolve()) if args.config else None
    app = create_app(config_path=config_path, database_uri=args.database)
    with app.app_context():
        if args.command == "init-db":
            init_db()
            print("Database ready.")
            return 0
        if args.command == "seed":
            user = create_user(args.user, args.password, args.email)
            seed_defaults(user, Classifier.from_config(cfg))
            print(f"Created user {user.username} with default categories.")
            return 0
        try:
            return _import(args, cfg)
        except ParseError as exc:
            print(f"Unable to read statement: {exc}")
            return 1


if __name__ == "__main__":
    raise SystemExit(main())
