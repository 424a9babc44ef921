import json

import pytest

from finance_tracker.cli import main


@pytest.fixture
def statement_file(tmp_path, bank_statement):
    path = tmp_path / "mayo.xlsx"
    path.write_bytes(bank_statement)
    return path


@pytest.fixture
def database(tmp_path, monkeypatch):
    monkeypatch.delenv("FINANCE_TRACKER_CONFIG", raising=False)
    return f"sqlite:///{tmp_path / 'cli.db'}"


def test_preview(statement_file, capsys):
    assert main(["preview", str(statement_file), "--limit", "2"]) == 0
    out = capsys.readouterr().out
    assert "debit      -> Débitos" in out
    assert "UBER*TRIP" in out
    assert "4 row(s) ready to import" in out


def test_preview_unreadable_file(tmp_path, capsys):
    path = tmp_path / "broken.xlsx"
    path.write_bytes(b"nope")
    assert main(["preview", str(path)]) == 1
    assert "Unable to read statement" in capsys.readouterr().out


def test_seed_and_import(database, statement_file, tmp_path, capsys):
    assert main(["--database", database, "init-db"]) == 0
    assert main(["--database", database, "seed", "--user", "ana", "--password", "secret"]) == 0
    out_file = tmp_path / "result.json"
    code = main(
        ["--database", database, "import", str(statement_file), "--user", "ana", "--exclude", "3", "--json", str(out_file)]
    )
    assert code == 0
    assert "Inserted 2 expense(s) and 1 income(s); skipped 0." in capsys.readouterr().out
    assert json.loads(out_file.read_text(encoding="utf-8"))["insertedExpenses"] == 2


def test_import_unknown_user(database, statement_file, capsys):
    assert main(["--database", database, "import", str(statement_file), "--user", "ghost"]) == 1
    assert "Unknown user: ghost" in capsys.readouterr().out
