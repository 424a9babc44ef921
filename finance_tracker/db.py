"""Persistence helpers on top of the Flask-SQLAlchemy models.

``Gateway`` is the only place the import pipeline touches the database: it
reads the user's reference tables and bulk-inserts materialized records.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from werkzeug.security import generate_password_hash

from .categorizer import Classifier
from .config import DEFAULT_CURRENCIES, DEFAULT_PURPOSES
from .errors import PersistenceError
from .logging_setup import get_logger
from .materializer import ReferenceData
from .models import Category, Currency, Expense, Income, Merchant, Purpose, User, db

logger = get_logger("finance_tracker.db")


def init_db() -> None:
    """Create tables and the base currencies. Requires an app context."""
    db.create_all()
    existing = {c.code for c in db.session.execute(db.select(Currency)).scalars()}
    for code, name in DEFAULT_CURRENCIES:
        if code not in existing:
            db.session.add(Currency(code=code, name=name, is_active=True))
    db.session.commit()


def create_user(username: str, password: str, email: Optional[str] = None) -> User:
    user = User(
        username=username,
        email=email or f"{username}@localhost",
        password_hash=generate_password_hash(password),
    )
    db.session.add(user)
    db.session.commit()
    return user


def seed_defaults(user: User, classifier: Optional[Classifier] = None) -> None:
    """Give a user one category per classification rule plus the purposes."""
    classifier = classifier or Classifier()
    category_names = []
    for rule in classifier.category_rules:
        if rule.name not in category_names:
            category_names.append(rule.name)
    category_names.append("Other")

    have_categories = {
        c.name.lower()
        for c in db.session.execute(db.select(Category).filter_by(user_id=user.id)).scalars()
    }
    for name in category_names:
        if name.lower() not in have_categories:
            db.session.add(Category(user_id=user.id, name=name))

    have_purposes = {
        p.name.lower()
        for p in db.session.execute(db.select(Purpose).filter_by(user_id=user.id)).scalars()
    }
    for name in DEFAULT_PURPOSES:
        if name.lower() not in have_purposes:
            db.session.add(Purpose(user_id=user.id, name=name))
    db.session.commit()


class Gateway:
    """Reads and writes scoped to a single user."""

    def __init__(self, user_id: int):
        self.user_id = user_id

    def _names(self, model) -> Dict[int, str]:
        rows = db.session.execute(db.select(model).filter_by(user_id=self.user_id)).scalars()
        return {row.id: row.name for row in rows}

    def references(self) -> ReferenceData:
        currencies = db.session.execute(db.select(Currency).filter_by(is_active=True)).scalars()
        return ReferenceData(
            categories=self._names(Category),
            purposes=self._names(Purpose),
            merchants=self._names(Merchant),
            currencies={c.code.upper() for c in currencies},
        )

    def _insert(self, model, records: Iterable[Dict[str, Any]]) -> int:
        objects: List[Any] = [model(user_id=self.user_id, **record) for record in records]
        if not objects:
            return 0
        try:
            db.session.add_all(objects)
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.error("insert into %s failed: %s", model.__tablename__, exc)
            raise PersistenceError(f"Unable to save {model.__tablename__}: {exc.__class__.__name__}") from exc
        logger.info("inserted %d %s for user %s", len(objects), model.__tablename__, self.user_id)
        return len(objects)

    def insert_expenses(self, records: Iterable[Dict[str, Any]]) -> int:
        return self._insert(Expense, records)

    def insert_incomes(self, records: Iterable[Dict[str, Any]]) -> int:
        return self._insert(Income, records)
