"""Shared fixtures: an app bound to a throwaway SQLite database, a seeded
user with a signed-in test client, and statement workbooks."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Dict

import pytest

from finance_tracker.db import Gateway, create_user, seed_defaults
from finance_tracker.webapp import create_app

from .helpers import bank_statement_xlsx, build_xlsx


@pytest.fixture
def app(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("FINANCE_TRACKER_CONFIG", raising=False)
    monkeypatch.delenv("FINANCE_TRACKER_DATABASE_URI", raising=False)
    config_file = tmp_path / "config.json"
    config_file.write_text(json.dumps({"mapping_store": str(tmp_path / "mappings.json")}), encoding="utf-8")
    return create_app(
        config_path=str(config_file),
        database_uri=f"sqlite:///{tmp_path / 'test.db'}",
        testing=True,
    )


@pytest.fixture
def user_id(app) -> int:
    with app.app_context():
        user = create_user("ana", "secret")
        seed_defaults(user)
        return user.id


@pytest.fixture
def ids(app, user_id) -> Dict[str, int]:
    """Category ids by lowercase name, purposes as ``purpose:<name>``."""
    with app.app_context():
        refs = Gateway(user_id).references()
    out = {name.lower(): key for key, name in refs.categories.items()}
    out.update({f"purpose:{name.lower()}": key for key, name in refs.purposes.items()})
    return out


@pytest.fixture
def client(app, user_id):
    client = app.test_client()
    with client.session_transaction() as sess:
        sess["user_id"] = user_id
    return client


@pytest.fixture
def make_xlsx():
    return build_xlsx


@pytest.fixture
def bank_statement() -> bytes:
    return bank_statement_xlsx()
