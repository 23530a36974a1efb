"""Tests for the operational CLI against a throwaway SQLite file."""

import json

import pytest

from freight_ledger.cli import LedgerCli


@pytest.fixture
def database_url(tmp_path) -> str:
    url = f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}"
    assert LedgerCli().run(["--database-url", url, "create-tables"]) == 0
    return url


def run_json(capsys, *args: str) -> dict:
    capsys.readouterr()
    assert LedgerCli().run(list(args)) == 0
    return json.loads(capsys.readouterr().out)


class TestLedgerCli:
    def test_no_command_prints_help(self, capsys):
        assert LedgerCli().run([]) == 1
        assert "next-number" in capsys.readouterr().out

    def test_create_tables(self, tmp_path, capsys):
        url = f"sqlite+aiosqlite:///{tmp_path / 'fresh.db'}"
        result = run_json(capsys, "--database-url", url, "create-tables")
        assert "sequence_counter" in result["tables"]
        assert "invoice" in result["tables"]

    def test_next_number_allocates_in_order(self, database_url, capsys):
        args = ["--database-url", database_url, "next-number", "--tenant-id", "t1", "--kind", "invoice", "--year", "2025"]
        first = run_json(capsys, *args)
        second = run_json(capsys, *args)
        assert first["number"] == "INV-2025-1000"
        assert second["number"] == "INV-2025-1001"

    def test_preview_does_not_allocate(self, database_url, capsys):
        preview = ["--database-url", database_url, "preview-number", "--tenant-id", "t1", "--kind", "load", "--year", "2025"]
        assert run_json(capsys, *preview)["number"] == "LD-2025-1"
        assert run_json(capsys, *preview)["number"] == "LD-2025-1"

    def test_resync_on_empty_database(self, database_url, capsys):
        result = run_json(
            capsys,
            "--database-url", database_url,
            "resync-counter", "--tenant-id", "t1", "--kind", "settlement", "--year", "2025",
        )
        assert result["issued"] == 0
        assert result["stored"] == 999
        assert result["next_number"] == "SET-2025-1000"

    def test_ar_aging_on_empty_ledger(self, database_url, capsys):
        result = run_json(
            capsys,
            "--database-url", database_url,
            "ar-aging", "--tenant-id", "t1", "--as-of", "2025-03-31",
        )
        assert result == {
            "as_of": "2025-03-31",
            "current": "0.00",
            "31-60": "0.00",
            "61-90": "0.00",
            "90+": "0.00",
            "total": "0.00",
        }

    def test_refresh_invoices_on_empty_ledger(self, database_url, capsys):
        result = run_json(
            capsys,
            "--database-url", database_url,
            "refresh-invoices", "--tenant-id", "t1",
        )
        assert result["changed"] == 0

    def test_unknown_kind_is_rejected(self, database_url):
        with pytest.raises(SystemExit):
            LedgerCli().run(["--database-url", database_url, "next-number", "--tenant-id", "t1", "--kind", "bill"])
