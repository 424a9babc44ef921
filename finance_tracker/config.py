"""Configuration utilities for the finance tracker.

Provides the default classification rules, import limits and helpers to load
user-defined overrides (custom rules, base currency, mapping store location)
from a JSON file.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple


BASE_CURRENCY = "DOP"

# Destination columns are NUMERIC(14, 2).
MAX_INTEGER_DIGITS = 12
MAX_REPORTED_ERRORS = 20

# Row caps per entry point.
MAX_STATEMENT_ROWS = 1000
MAX_REVIEWED_ROWS = 2000
MAX_CSV_ROWS = 500
MAX_PREVIEW_ROWS = 50

# Ordered (regex, category) pairs. First match wins.
DEFAULT_CATEGORY_RULES: List[Tuple[str, str]] = [
    (r"supermerc|colmado|market|grocery", "Groceries"),
    (r"restaurant|restaurante|comida|caf[eé]|bar", "Restaurants"),
    (r"uber|taxi|metro|gas|combustible|peaje", "Transport"),
    (r"luz|agua|internet|tel[eé]fono|claro|altice|edenorte|edesur", "Utilities"),
    (r"renta|alquiler|lease", "Rent"),
    (r"farmacia|medic|cl[ií]nica|hospital|seguro", "Health"),
    (r"colegio|universidad|curso|clase", "Education"),
    (r"cine|netflix|spotify|hbo|disney", "Entertainment"),
    (r"hotel|airbnb|aerolinea|vuelo|avianca|american|delta", "Travel"),
    (r"comisi[oó]n|cargo|fee|impuesto", "Fees"),
]

DEFAULT_PURPOSE_RULES: List[Tuple[str, str]] = [
    (r"ahorro|savings", "Savings"),
    (r"inversi[oó]n|investment", "Investment"),
    (r"impuesto|tax", "Taxes"),
    (r"negocio|business", "Business"),
]

# Purpose inferred from the resolved category when no purpose rule matched.
DEFAULT_PURPOSE_BY_CATEGORY: Dict[str, str] = {
    "groceries": "Need",
    "utilities": "Need",
    "rent": "Need",
    "health": "Need",
    "education": "Need",
    "transport": "Need",
    "restaurants": "Want",
    "entertainment": "Want",
    "travel": "Want",
}

DEFAULT_PURPOSES = ["Need", "Want", "Savings", "Investment", "Taxes", "Business"]

DEFAULT_CURRENCIES = [
    ("DOP", "Dominican peso"),
    ("USD", "US dollar"),
    ("EUR", "Euro"),
]


def _rule_pairs(raw: object, key: str) -> Optional[List[Tuple[str, str]]]:
    if not isinstance(raw, list):
        return None
    pairs: List[Tuple[str, str]] = []
    for item in raw:
        if isinstance(item, dict) and item.get("pattern") and item.get(key):
            pairs.append((str(item["pattern"]), str(item[key])))
    return pairs


@dataclass
class AppConfig:
    category_rules: List[Tuple[str, str]] = field(default_factory=lambda: list(DEFAULT_CATEGORY_RULES))
    purpose_rules: List[Tuple[str, str]] = field(default_factory=lambda: list(DEFAULT_PURPOSE_RULES))
    purpose_by_category: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_PURPOSE_BY_CATEGORY))
    base_currency: str = BASE_CURRENCY
    max_integer_digits: int = MAX_INTEGER_DIGITS
    mapping_store: Optional[str] = None

    @staticmethod
    def load(config_path: Optional[str | Path] = None) -> "AppConfig":
        """Load config from JSON if provided, else use defaults.

        JSON format:
        {
          "category_rules": [{"pattern": "uber|taxi", "category": "Transport"}],
          "purpose_rules": [{"pattern": "ahorro", "purpose": "Savings"}],
          "purpose_by_category": {"Groceries": "Need"},
          "base_currency": "DOP",
          "mapping_store": "instance/mappings.json"
        }
        """

        cfg = AppConfig()
        if not config_path:
            config_path = os.getenv("FINANCE_TRACKER_CONFIG")
        if not config_path:
            return cfg

        p = Path(config_path)
        if not p.exists():
            return cfg
        with p.open("r", encoding="utf-8") as f:
            raw = json.load(f)
        if not isinstance(raw, dict):
            return cfg

        category_rules = _rule_pairs(raw.get("category_rules"), "category")
        if category_rules is not None:
            cfg.category_rules = category_rules
        purpose_rules = _rule_pairs(raw.get("purpose_rules"), "purpose")
        if purpose_rules is not None:
            cfg.purpose_rules = purpose_rules
        if isinstance(raw.get("purpose_by_category"), dict):
            # Category keys are matched case-insensitively
            cfg.purpose_by_category = {
                str(cat).lower(): str(purpose) for cat, purpose in raw["purpose_by_category"].items()
            }
        if raw.get("base_currency"):
            cfg.base_currency = str(raw["base_currency"]).upper()
        if raw.get("max_integer_digits"):
            cfg.max_integer_digits = int(raw["max_integer_digits"])
        if raw.get("mapping_store"):
            cfg.mapping_store = str(raw["mapping_store"])
        return cfg
