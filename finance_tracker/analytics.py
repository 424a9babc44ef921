"""Analytics and trend calculations.

Summaries over stored expenses and incomes, always in the base currency
(``amount_dop``), for the dashboard endpoint.
"""

from __future__ import annotations

import datetime as dt
from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional

EXPENSE = "expense"
INCOME = "income"
CENT = Decimal("0.01")
UNCATEGORIZED = "Uncategorized"


@dataclass
class Entry:
    kind: str  # "expense" or "income"
    date: dt.date
    amount: Decimal  # base currency, unsigned
    category: Optional[str] = None


def month_key(d: dt.date) -> str:
    return f"{d.year:04d}-{d.month:02d}"


def month_floor(value: dt.date) -> dt.date:
    return dt.date(value.year, value.month, 1)


def subtract_months(value: dt.date, months: int) -> dt.date:
    year = value.year
    month = value.month - months
    while month <= 0:
        month += 12
        year -= 1
    return dt.date(year, month, 1)


def _money(value: Decimal) -> str:
    return str(Decimal(value).quantize(CENT))


def summarize_income_expense(entries: Iterable[Entry]) -> Dict[str, str]:
    entries = list(entries)
    income = sum((e.amount for e in entries if e.kind == INCOME), Decimal("0"))
    expense = sum((e.amount for e in entries if e.kind == EXPENSE), Decimal("0"))
    return {"income": _money(income), "expense": _money(expense), "net": _money(income - expense)}


def spending_by_category(entries: Iterable[Entry]) -> Dict[str, str]:
    totals: Dict[str, Decimal] = defaultdict(Decimal)
    for e in entries:
        if e.kind == EXPENSE:
            totals[e.category or UNCATEGORIZED] += e.amount
    ranked = sorted(totals.items(), key=lambda kv: kv[1], reverse=True)
    return {k: _money(v) for k, v in ranked}


def monthly_totals(entries: Iterable[Entry], months: Optional[List[str]] = None) -> Dict[str, Dict[str, str]]:
    """Income, expense and net per ``YYYY-MM``; ``months`` pre-seeds empty months."""
    buckets: Dict[str, Dict[str, Decimal]] = {
        m: {"income": Decimal("0"), "expense": Decimal("0")} for m in (months or [])
    }
    for e in entries:
        bucket = buckets.setdefault(month_key(e.date), {"income": Decimal("0"), "expense": Decimal("0")})
        bucket[e.kind] += e.amount
    return {
        m: {
            "income": _money(vals["income"]),
            "expense": _money(vals["expense"]),
            "net": _money(vals["income"] - vals["expense"]),
        }
        for m, vals in sorted(buckets.items())
    }


def budget_comparison(entries: Iterable[Entry], budgets: Mapping[str, Decimal], month: str) -> Dict[str, Dict[str, str]]:
    """Compare actual spend vs budgets per category for one month."""
    per_cat: Dict[str, Decimal] = defaultdict(Decimal)
    for e in entries:
        if e.kind == EXPENSE and month_key(e.date) == month:
            per_cat[e.category or UNCATEGORIZED] += e.amount
    result: Dict[str, Dict[str, str]] = {}
    for cat, limit in budgets.items():
        actual = per_cat.get(cat, Decimal("0"))
        limit = Decimal(limit)
        percent = (actual / limit * 100).quantize(Decimal("0.1")) if limit > 0 else Decimal("0")
        result[cat] = {
            "limit": _money(limit),
            "actual": _money(actual),
            "remaining": _money(limit - actual),
            "percent_used": str(percent),
            "over": actual > limit,
        }
    return result


def build_summary(
    entries: Iterable[Entry],
    month: dt.date,
    budgets: Optional[Mapping[str, Decimal]] = None,
    months: int = 6,
) -> Dict:
    """Dashboard payload: selected month totals, category split and trend."""
    entries = list(entries)
    current = month_key(month)
    previous = month_key(subtract_months(month_floor(month), 1))
    trend_months = [month_key(subtract_months(month_floor(month), n)) for n in range(months - 1, -1, -1)]
    this_month = [e for e in entries if month_key(e.date) == current]
    last_month = [e for e in entries if month_key(e.date) == previous]
    summary = {
        "month": current,
        "totals": summarize_income_expense(this_month),
        "previous_totals": summarize_income_expense(last_month),
        "category_spend": spending_by_category(this_month),
        "monthly": monthly_totals([e for e in entries if month_key(e.date) in trend_months], trend_months),
    }
    if budgets:
        summary["budget_status"] = budget_comparison(this_month, budgets, current)
    return summary
