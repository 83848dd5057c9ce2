"""
End-to-end tests for the command-line interface.

Each test drives main.run() against a temporary config.yaml with a file
backend and inspects the printed output and the persisted ledger document.
"""

import json

import pytest

from main import build_parser, run


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv("BUDGET_APP_DATA_DIR", raising=False)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)


@pytest.fixture
def cli(config_file, capsys):
    """Run a CLI command and return (exit_code, stdout, stderr)."""
    def _run(*argv):
        code = run(["--config", str(config_file), *argv])
        captured = capsys.readouterr()
        return code, captured.out, captured.err
    return _run


@pytest.fixture
def ledger_document(config_file):
    def _load():
        return json.loads((config_file.parent / "data" / "ledger.json").read_text(encoding="utf-8"))
    return _load


def _add_expense(cli, name="Coffee", amount="4.50", category="Food & Dining", date="2024-03-15"):
    return cli("item", "add", "--name", name, "--amount", amount, "--category", category,
               "--type", "expense", "--date", date)


class TestParser:
    def test_no_command_prints_help(self, capsys):
        assert run([]) == 1
        assert "usage" in capsys.readouterr().out.lower()

    def test_aliases(self):
        parser = build_parser()
        assert parser.parse_args(["cat", "list"]).command == "cat"
        assert parser.parse_args(["bud", "status"]).command == "bud"
        assert parser.parse_args(["analyze"]).command == "analyze"


class TestItemCommands:
    def test_add_and_list(self, cli, ledger_document):
        code, out, _ = _add_expense(cli)
        assert code == 0
        assert "Added expense 'Coffee' ($4.50)" in out

        document = ledger_document()
        assert [item["name"] for item in document["items"]] == ["Coffee"]

        code, out, _ = cli("item", "list")
        assert code == 0
        assert "Coffee" in out
        assert "ITEMS (1 of 1 shown)" in out

    def test_add_with_unknown_category_rejected(self, cli, config_file):
        code, _, err = _add_expense(cli, category="Travel")
        assert code == 1
        assert err.startswith("Error:")
        assert "Unknown category 'Travel'" in err
        assert not (config_file.parent / "data" / "ledger.json").exists()

    def test_update_to_unknown_category_rejected(self, cli, ledger_document):
        _add_expense(cli)
        item_id = ledger_document()["items"][0]["id"]

        code, _, err = cli("item", "update", item_id, "--category", "Travel")
        assert code == 1
        assert "Unknown category 'Travel'" in err
        assert ledger_document()["items"][0]["category"] == "Food & Dining"

    def test_update_keeps_dangling_category(self, cli, ledger_document):
        _add_expense(cli)
        document = ledger_document()
        item_id = document["items"][0]["id"]
        category_id = next(c["id"] for c in document["categories"] if c["name"] == "Food & Dining")
        cli("category", "update", category_id, "--name", "Food")

        code, _, _ = cli("item", "update", item_id, "--amount", "7")
        assert code == 0
        item = ledger_document()["items"][0]
        assert item["amount"] == 7.0
        assert item["category"] == "Food & Dining"

    def test_invalid_amount_is_reported(self, cli, config_file):
        code, out, err = _add_expense(cli, amount="lots")
        assert code == 1
        assert err.startswith("Error:")
        assert "  - " in err
        assert not (config_file.parent / "data" / "ledger.json").exists()

    def test_update_by_id_prefix(self, cli, ledger_document):
        _add_expense(cli)
        item_id = ledger_document()["items"][0]["id"]

        code, out, _ = cli("item", "update", item_id[:6], "--amount", "6", "--name", "Latte")
        assert code == 0
        assert f"Updated item {item_id}" in out

        item = ledger_document()["items"][0]
        assert item["name"] == "Latte"
        assert item["amount"] == 6.0
        assert item["category"] == "Food & Dining"

    def test_delete(self, cli, ledger_document):
        _add_expense(cli)
        item_id = ledger_document()["items"][0]["id"]

        code, out, _ = cli("item", "delete", item_id)
        assert code == 0
        assert f"Deleted item {item_id}" in out
        assert ledger_document()["items"] == []

    def test_missing_id_changes_nothing(self, cli):
        code, out, _ = cli("item", "delete", "doesnotexist")
        assert code == 0
        assert "nothing changed" in out

        code, out, _ = cli("item", "update", "doesnotexist", "--name", "x")
        assert code == 0
        assert "nothing changed" in out

    def test_list_filters(self, cli):
        _add_expense(cli, name="Coffee")
        cli("item", "add", "--name", "Salary", "--amount", "3000", "--type", "income", "--date", "2024-03-01")

        _, out, _ = cli("item", "list", "--type", "income")
        assert "Salary" in out
        assert "Coffee" not in out

        _, out, _ = cli("item", "list", "--category", "Food & Dining")
        assert "Coffee" in out
        assert "Salary" not in out


class TestCategoryAndBudgetCommands:
    def test_fresh_ledger_lists_default_categories(self, cli):
        code, out, _ = cli("category", "list")
        assert code == 0
        assert "Food & Dining" in out
        assert "Healthcare" in out

    def test_add_category(self, cli, ledger_document):
        code, out, _ = cli("cat", "add", "--name", "Travel", "--color", "#123456", "--limit", "250")
        assert code == 0
        assert "Added category 'Travel'" in out
        travel = next(c for c in ledger_document()["categories"] if c["name"] == "Travel")
        assert travel["limit"] == 250.0

    def test_duplicate_category_rejected(self, cli):
        code, _, err = cli("category", "add", "--name", "Shopping")
        assert code == 1
        assert "Error:" in err

    def test_rename_category_notes_orphaned_items(self, cli, ledger_document):
        _add_expense(cli)
        category_id = next(c["id"] for c in ledger_document()["categories"] if c["name"] == "Food & Dining")

        code, out, _ = cli("category", "update", category_id, "--name", "Food")
        assert code == 0
        assert "no longer counted" in out

    def test_delete_category_keeps_items(self, cli, ledger_document):
        _add_expense(cli)
        category_id = next(c["id"] for c in ledger_document()["categories"] if c["name"] == "Food & Dining")

        code, out, _ = cli("category", "delete", category_id)
        assert code == 0
        assert "its items are kept" in out
        document = ledger_document()
        assert len(document["items"]) == 1
        assert "Food & Dining" not in [c["name"] for c in document["categories"]]

    def test_budget_set_and_status(self, cli, ledger_document):
        code, out, _ = cli("budget", "set", "1500")
        assert code == 0
        assert "$1,500.00" in out
        assert ledger_document()["monthly_budget"] == 1500.0

        _add_expense(cli, amount="150")
        code, out, _ = cli("bud", "status")
        assert code == 0
        assert "Monthly budget used: 10.0%" in out

    def test_negative_budget_rejected(self, cli):
        code, _, err = cli("budget", "set", "-5")
        assert code == 1
        assert "Invalid monthly budget" in err


class TestReadCommands:
    def test_summary(self, cli):
        _add_expense(cli, amount="20")
        cli("item", "add", "--name", "Salary", "--amount", "100", "--type", "income")

        code, out, _ = cli("summary")
        assert code == 0
        assert "$100.00" in out
        assert "$80.00" in out

    def test_search(self, cli):
        _add_expense(cli, name="Coffee beans")
        _add_expense(cli, name="Bus ticket", category="Transportation")

        code, out, _ = cli("search", "coffee")
        assert code == 0
        assert "Coffee beans" in out
        assert "Bus ticket" not in out

    def test_search_with_filters(self, cli):
        _add_expense(cli, name="Coffee", amount="4")
        _add_expense(cli, name="Dinner", amount="60")

        _, out, _ = cli("search", "--amount-min", "10")
        assert "Dinner" in out
        assert "Coffee" not in out

    def test_search_suggestions(self, cli):
        _add_expense(cli, name="Coffee")
        code, out, _ = cli("search", "foo", "--suggest")
        assert code == 0
        assert out.splitlines()[0] == "Food & Dining"

    def test_reconcile(self, cli):
        _add_expense(cli)
        code, out, _ = cli("reconcile")
        assert code == 0
        assert "balanced" in out

    def test_report_with_exports(self, cli, tmp_path):
        _add_expense(cli, amount="25", date="2024-03-15")
        csv_path = tmp_path / "items.csv"
        chart_dir = tmp_path / "charts"

        code, out, _ = cli("report", "--export-csv", str(csv_path), "--chart-dir", str(chart_dir))
        assert code == 0
        assert "INCOME & EXPENSE SUMMARY" in out
        assert "TOP EXPENSES" in out
        assert csv_path.exists()
        assert (chart_dir / "category_breakdown.png").exists()
        assert (chart_dir / "monthly_trends.png").exists()

    def test_report_bad_time_frame(self, cli):
        code, _, err = cli("report", "--time-frame", "sometime")
        assert code == 1
        assert "Error:" in err


class TestAiAndBackupCommands:
    def test_ai_without_key(self, cli):
        code, _, err = cli("ai", "insights")
        assert code == 1
        assert "AI not enabled or API key missing" in err

    def test_backup_create_and_list(self, cli, config_file):
        _add_expense(cli)

        code, out, _ = cli("backup", "create")
        assert code == 0
        assert "Backup created:" in out
        assert len(list((config_file.parent / "backups").iterdir())) == 1

        code, out, _ = cli("backup", "list")
        assert code == 0
        assert "ledger_backup_" in out

    def test_backup_create_without_ledger(self, cli):
        code, _, err = cli("backup", "create")
        assert code == 1
        assert "not found" in err

    def test_backup_restore(self, cli, ledger_document):
        _add_expense(cli, name="Before")
        _, out, _ = cli("backup", "create")
        backup_path = out.split("Backup created: ")[1].strip()
        _add_expense(cli, name="After")

        code, out, _ = cli("backup", "restore", backup_path, "--force")
        assert code == 0
        assert [item["name"] for item in ledger_document()["items"]] == ["Before"]
