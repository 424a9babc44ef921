"""SQLAlchemy models for the finance tracker web application."""

from __future__ import annotations

import datetime as dt

from flask_sqlalchemy import SQLAlchemy


db = SQLAlchemy()

# NUMERIC(14, 2): twelve integer digits.
MONEY = db.Numeric(14, 2, asdecimal=True)
RATE = db.Numeric(18, 6, asdecimal=True)


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime, default=dt.datetime.utcnow, nullable=False)

    expenses = db.relationship("Expense", back_populates="user", cascade="all, delete-orphan")
    incomes = db.relationship("Income", back_populates="user", cascade="all, delete-orphan")
    budgets = db.relationship("Budget", back_populates="user", cascade="all, delete-orphan")


class Category(db.Model):
    __tablename__ = "categories"
    __table_args__ = (db.UniqueConstraint("user_id", "name", name="uq_categories_user_name"),)

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    name = db.Column(db.String(120), nullable=False)
    created_at = db.Column(db.DateTime, default=dt.datetime.utcnow, nullable=False)


class Purpose(db.Model):
    __tablename__ = "purposes"
    __table_args__ = (db.UniqueConstraint("user_id", "name", name="uq_purposes_user_name"),)

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    name = db.Column(db.String(120), nullable=False)
    created_at = db.Column(db.DateTime, default=dt.datetime.utcnow, nullable=False)


class Merchant(db.Model):
    __tablename__ = "merchants"
    __table_args__ = (db.UniqueConstraint("user_id", "name", name="uq_merchants_user_name"),)

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    name = db.Column(db.String(120), nullable=False)
    created_at = db.Column(db.DateTime, default=dt.datetime.utcnow, nullable=False)


class Currency(db.Model):
    __tablename__ = "currencies"

    code = db.Column(db.String(3), primary_key=True)
    name = db.Column(db.String(80), nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)


class Expense(db.Model):
    __tablename__ = "expenses"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    amount = db.Column(MONEY, nullable=False)
    currency = db.Column(db.String(3), db.ForeignKey("currencies.code"), nullable=False)
    fx_rate_to_dop = db.Column(RATE)
    amount_dop = db.Column(MONEY, nullable=False)
    expense_date = db.Column(db.Date, nullable=False)
    notes = db.Column(db.Text)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=False)
    purpose_id = db.Column(db.Integer, db.ForeignKey("purposes.id"))
    merchant_id = db.Column(db.Integer, db.ForeignKey("merchants.id"))
    created_at = db.Column(db.DateTime, default=dt.datetime.utcnow, nullable=False)

    user = db.relationship("User", back_populates="expenses")
    category = db.relationship("Category")
    purpose = db.relationship("Purpose")
    merchant = db.relationship("Merchant")


class Income(db.Model):
    __tablename__ = "incomes"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    amount = db.Column(MONEY, nullable=False)
    currency = db.Column(db.String(3), db.ForeignKey("currencies.code"), nullable=False)
    fx_rate_to_dop = db.Column(RATE)
    amount_dop = db.Column(MONEY, nullable=False)
    income_date = db.Column(db.Date, nullable=False)
    source = db.Column(db.String(255))
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=dt.datetime.utcnow, nullable=False)

    user = db.relationship("User", back_populates="incomes")


class Budget(db.Model):
    __tablename__ = "budgets"
    __table_args__ = (
        db.UniqueConstraint("user_id", "category_id", "month", name="uq_budgets_user_category_month"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=False)
    month = db.Column(db.Date, nullable=False)
    amount = db.Column(MONEY, nullable=False)
    created_at = db.Column(db.DateTime, default=dt.datetime.utcnow, nullable=False)

    user = db.relationship("User", back_populates="budgets")
    category = db.relationship("Category")
