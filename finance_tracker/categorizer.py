"""Transaction classification logic.

Regex rule lists assign a category and a purpose to a statement line from its
detail text. Each list is an ordered sequence of ``(pattern, name)`` pairs
evaluated top to bottom; the first match wins. When no purpose rule matches,
the purpose is inferred from the category through a small lookup table
(e.g. groceries are a need, restaurants a want).
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, NamedTuple, Optional, Sequence, Tuple

from .config import (
    DEFAULT_CATEGORY_RULES,
    DEFAULT_PURPOSE_BY_CATEGORY,
    DEFAULT_PURPOSE_RULES,
    AppConfig,
)


class ClassificationRule(NamedTuple):
    pattern: re.Pattern
    name: str


@dataclass(frozen=True)
class Classification:
    category: Optional[str] = None
    purpose: Optional[str] = None


def compile_rules(pairs: Iterable[Tuple[str, str]]) -> List[ClassificationRule]:
    return [ClassificationRule(re.compile(pattern, re.IGNORECASE), name) for pattern, name in pairs]


def match_rule(text: str, rules: Sequence[ClassificationRule]) -> Optional[str]:
    """Name of the first rule whose pattern occurs in ``text``."""
    if not text:
        return None
    for rule in rules:
        if rule.pattern.search(text):
            return rule.name
    return None


class Classifier:
    def __init__(
        self,
        category_rules: Iterable[Tuple[str, str]] = DEFAULT_CATEGORY_RULES,
        purpose_rules: Iterable[Tuple[str, str]] = DEFAULT_PURPOSE_RULES,
        purpose_by_category: Optional[Mapping[str, str]] = None,
    ):
        self.category_rules = compile_rules(category_rules)
        self.purpose_rules = compile_rules(purpose_rules)
        table = DEFAULT_PURPOSE_BY_CATEGORY if purpose_by_category is None else purpose_by_category
        self.purpose_by_category: Dict[str, str] = {k.lower(): v for k, v in table.items()}

    @classmethod
    def from_config(cls, cfg: AppConfig) -> "Classifier":
        return cls(cfg.category_rules, cfg.purpose_rules, cfg.purpose_by_category)

    def category_for(self, detail: str) -> Optional[str]:
        return match_rule(detail, self.category_rules)

    def purpose_for(self, detail: str, category: Optional[str] = None) -> Optional[str]:
        purpose = match_rule(detail, self.purpose_rules)
        if purpose:
            return purpose
        if category:
            return self.purpose_by_category.get(category.lower())
        return None

    def classify(self, detail: str) -> Classification:
        category = self.category_for(detail)
        return Classification(category=category, purpose=self.purpose_for(detail, category))
