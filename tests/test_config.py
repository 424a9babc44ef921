import json
import logging

from finance_tracker.categorizer import Classifier
from finance_tracker.config import BASE_CURRENCY, DEFAULT_CATEGORY_RULES, AppConfig
from finance_tracker.logging_setup import resolve_level


def test_defaults_without_path(monkeypatch):
    monkeypatch.delenv("FINANCE_TRACKER_CONFIG", raising=False)
    cfg = AppConfig.load()
    assert cfg.base_currency == BASE_CURRENCY == "DOP"
    assert cfg.category_rules == DEFAULT_CATEGORY_RULES
    assert cfg.max_integer_digits == 12
    assert cfg.mapping_store is None


def test_missing_file_falls_back_to_defaults(tmp_path):
    assert AppConfig.load(tmp_path / "absent.json") == AppConfig()


def test_load_overrides(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps(
            {
                "category_rules": [{"pattern": "gym", "category": "Fitness"}, {"pattern": "", "category": "Ignored"}],
                "purpose_rules": [{"pattern": "club", "purpose": "Want"}],
                "purpose_by_category": {"Fitness": "Need"},
                "base_currency": "usd",
                "mapping_store": "maps.json",
            }
        ),
        encoding="utf-8",
    )
    cfg = AppConfig.load(path)
    assert cfg.category_rules == [("gym", "Fitness")]
    assert cfg.purpose_by_category == {"fitness": "Need"}
    assert cfg.base_currency == "USD"
    assert cfg.mapping_store == "maps.json"
    assert Classifier.from_config(cfg).classify("SMART GYM").purpose == "Need"
    assert Classifier.from_config(cfg).classify("GOLF CLUB").purpose == "Want"


def test_load_from_env(tmp_path, monkeypatch):
    path = tmp_path / "env.json"
    path.write_text(json.dumps({"base_currency": "eur"}), encoding="utf-8")
    monkeypatch.setenv("FINANCE_TRACKER_CONFIG", str(path))
    assert AppConfig.load().base_currency == "EUR"


def test_log_level_parsing(monkeypatch):
    monkeypatch.delenv("FINANCE_TRACKER_LOG_LEVEL", raising=False)
    assert resolve_level("debug") == logging.DEBUG
    assert resolve_level(logging.WARNING) == logging.WARNING
    assert resolve_level(None) == logging.INFO
    monkeypatch.setenv("FINANCE_TRACKER_LOG_LEVEL", "error")
    assert resolve_level(None) == logging.ERROR
    assert resolve_level("nonsense") == logging.ERROR
    monkeypatch.setenv("FINANCE_TRACKER_LOG_LEVEL", "nonsense")
    assert resolve_level(None) == logging.INFO
