import os

from cryptography.fernet import Fernet

# Ensure the encryption layer has a deterministic key in test environments so
# config.yaml is not mutated during test runs.
os.environ.setdefault("BUDGET_APP_ENCRYPTION_KEY", Fernet.generate_key().decode("utf-8"))

from datetime import UTC, datetime

import pytest
import yaml

from ledger import LedgerStore
from ledger_models import BudgetCategory, ItemDraft, TransactionType


def make_draft(
    name: str = "Groceries",
    amount: float = 10.0,
    category: str = "Food",
    type: TransactionType = TransactionType.EXPENSE,
    date: datetime = datetime(2024, 3, 15, 12, 0, tzinfo=UTC),
    **extra
) -> ItemDraft:
    """Build an ItemDraft with sensible defaults for tests."""
    return ItemDraft(name=name, amount=amount, category=category, date=date, type=type, **extra)


@pytest.fixture()
def categories():
    return [
        BudgetCategory(id="c1", name="Food", color="#ef4444", limit=100.0),
        BudgetCategory(id="c2", name="Transport", color="#3b82f6", limit=50.0),
    ]


@pytest.fixture()
def ledger(categories):
    """Ledger with two categories and no items."""
    return LedgerStore(categories=categories, monthly_budget=1000.0)


@pytest.fixture()
def populated_ledger(ledger):
    """Ledger with income and expenses spread over two months."""
    ledger.add_item(make_draft("Salary", 3000.0, "", TransactionType.INCOME, datetime(2024, 2, 1, tzinfo=UTC)))
    ledger.add_item(make_draft("Market", 40.0, "Food", date=datetime(2024, 2, 10, tzinfo=UTC), tags=("weekly",)))
    ledger.add_item(make_draft("Bus pass", 30.0, "Transport", date=datetime(2024, 3, 2, tzinfo=UTC)))
    ledger.add_item(make_draft("Restaurant", 80.0, "Food", date=datetime(2024, 3, 20, tzinfo=UTC)))
    return ledger


@pytest.fixture()
def config_file(tmp_path):
    """Write a config.yaml with a file backend under tmp_path."""
    config = {
        "persistence": {"backend": "file", "data_dir": str(tmp_path / "data"), "key": "ledger"},
        "backup": {"backup_dir": str(tmp_path / "backups"), "max_backups": 3},
        "logging": {"level": "WARNING"},
    }
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(config), encoding="utf-8")
    return path
