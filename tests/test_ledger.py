"""
Unit tests for the LedgerStore.

Covers the aggregate-update rule for add, update and delete, category CRUD,
the silent no-op behavior for unknown ids, reconciliation, strict mode and
listener notification.
"""

import math
import random
import threading
from dataclasses import replace
from datetime import UTC, datetime

import pytest

from conftest import make_draft
from exceptions import LedgerValidationError, SnapshotFormatError
from ledger import (
    CATEGORY_DELETED,
    ITEM_ADDED,
    ITEM_DELETED,
    ITEM_UPDATED,
    LEDGER_RESET,
    MONTHLY_BUDGET_SET,
    LedgerStore,
)
from ledger_models import DEFAULT_MONTHLY_BUDGET, BudgetCategory, BudgetItem, TransactionType


def expected_aggregates(store: LedgerStore):
    """Recompute every aggregate from the current item collection."""
    income = sum(i.amount for i in store.items if i.type is TransactionType.INCOME)
    expenses = sum(i.amount for i in store.items if i.type is TransactionType.EXPENSE)
    spent = {}
    for category in store.categories:
        if category.name not in spent:
            spent[category.name] = sum(
                i.amount for i in store.items
                if i.type is TransactionType.EXPENSE and i.category == category.name
            )
    return income, expenses, spent


def assert_consistent(store: LedgerStore):
    income, expenses, spent = expected_aggregates(store)
    assert store.total_income == pytest.approx(income)
    assert store.total_expenses == pytest.approx(expenses)
    assert store.balance == pytest.approx(income - expenses)
    seen = set()
    for category in store.categories:
        if category.name in seen:
            continue
        seen.add(category.name)
        assert category.spent == pytest.approx(spent[category.name])


class TestInitialState:
    """Test a freshly created ledger."""

    def test_defaults_seed_six_categories(self):
        store = LedgerStore()
        names = [c.name for c in store.categories]
        assert len(names) == 6
        assert names[0] == "Food & Dining"
        assert [c.id for c in store.categories] == ["1", "2", "3", "4", "5", "6"]
        assert all(c.spent == 0 for c in store.categories)
        assert store.monthly_budget == DEFAULT_MONTHLY_BUDGET

    def test_empty_aggregates(self, ledger):
        assert ledger.total_income == 0
        assert ledger.total_expenses == 0
        assert ledger.balance == 0
        assert len(ledger) == 0

    def test_initial_categories_are_copied_and_zeroed(self, categories):
        categories[0].spent = 99.0
        store = LedgerStore(categories=categories)
        assert store.get_category("c1").spent == 0
        assert categories[0].spent == 99.0

    def test_duplicate_category_ids_rejected(self):
        with pytest.raises(SnapshotFormatError):
            LedgerStore(categories=[
                BudgetCategory(id="x", name="A", color="#000000"),
                BudgetCategory(id="x", name="B", color="#000000"),
            ])


class TestItemCommands:
    """Test add, update and delete of items."""

    def test_basic_flow(self):
        store = LedgerStore()
        store.add_item(make_draft("Salary", 1000, "", TransactionType.INCOME))
        assert store.total_income == 1000
        assert store.balance == 1000

        store.add_item(make_draft("Groceries", 120, "Food & Dining"))
        assert store.total_expenses == 120
        assert store.balance == 880
        assert store.find_category("Food & Dining").spent == 120

    def test_add_assigns_unique_ids_and_appends(self, ledger):
        first = ledger.add_item(make_draft("A"))
        second = ledger.add_item(make_draft("B"))
        assert first.id != second.id
        assert [i.id for i in ledger.items] == [first.id, second.id]

    def test_add_then_delete_restores_state(self, populated_ledger):
        before = populated_ledger.snapshot()
        item = populated_ledger.add_item(make_draft("Extra", 25.0, "Transport"))
        assert populated_ledger.delete_item(item.id) is True
        after = populated_ledger.snapshot()
        assert after.to_dict() == before.to_dict()

    def test_update_reverses_old_record(self, ledger):
        item = ledger.add_item(make_draft("Thing", 50.0, "Food"))
        updated = replace(item, category="Transport", amount=30.0)

        assert ledger.update_item(updated) is True
        assert ledger.get_category("c1").spent == 0
        assert ledger.get_category("c2").spent == 30
        assert ledger.total_expenses == 30
        assert ledger.total_income == 0

    def test_update_changes_type(self, ledger):
        item = ledger.add_item(make_draft("Refund", 20.0, "Food"))
        ledger.update_item(replace(item, type=TransactionType.INCOME))
        assert ledger.total_expenses == 0
        assert ledger.total_income == 20
        assert ledger.get_category("c1").spent == 0

    def test_missing_ids_are_no_ops(self, populated_ledger):
        before = populated_ledger.snapshot().to_dict()
        ghost = BudgetItem(
            id="missing", name="x", amount=5, category="Food",
            date=datetime(2024, 1, 1, tzinfo=UTC), type="expense"
        )
        assert populated_ledger.update_item(ghost) is False
        assert populated_ledger.delete_item("missing") is False
        assert populated_ledger.snapshot().to_dict() == before

    def test_dangling_category_counts_in_totals_only(self, ledger):
        ledger.add_item(make_draft("Mystery", 40.0, "Nonexistent"))
        assert ledger.total_expenses == 40
        assert all(c.spent == 0 for c in ledger.categories)
        report = ledger.reconcile()
        assert not report.is_balanced
        assert report.unassigned_expenses == pytest.approx(40)
        assert [i.name for i in report.dangling_items] == ["Mystery"]

    def test_random_command_sequence_stays_consistent(self, ledger):
        rng = random.Random(7)
        names = ["Food", "Transport", "Nowhere", ""]
        for _ in range(200):
            action = rng.choice(["add", "add", "update", "delete"])
            items = list(ledger.items)
            if action == "add" or not items:
                ledger.add_item(make_draft(
                    "x",
                    round(rng.uniform(0, 100), 2),
                    rng.choice(names),
                    rng.choice(list(TransactionType)),
                ))
            elif action == "update":
                target = rng.choice(items)
                ledger.update_item(replace(
                    target,
                    amount=round(rng.uniform(0, 100), 2),
                    category=rng.choice(names),
                    type=rng.choice(list(TransactionType)),
                ))
            else:
                ledger.delete_item(rng.choice(items).id)
            assert_consistent(ledger)


class TestCategoryCommands:
    """Test category CRUD and the name join."""

    def test_add_category_starts_at_zero(self, ledger):
        ledger.add_item(make_draft("Early", 15.0, "Pets"))
        category = ledger.add_category("Pets", "#10b981", 60)
        assert category.spent == 0
        assert category.limit == 60.0

        ledger.add_item(make_draft("Food bowl", 5.0, "Pets"))
        assert ledger.find_category("Pets").spent == 5

    def test_update_category_keeps_spent(self, ledger):
        ledger.add_item(make_draft("Lunch", 12.0, "Food"))
        changed = BudgetCategory(id="c1", name="Food", color="#000000", limit=10.0, spent=999.0)
        assert ledger.update_category(changed) is True
        stored = ledger.get_category("c1")
        assert stored.spent == 12
        assert stored.limit == 10
        assert stored.color == "#000000"

    def test_rename_detaches_items(self, ledger):
        item = ledger.add_item(make_draft("Lunch", 12.0, "Food"))
        ledger.update_category(BudgetCategory(id="c1", name="Meals", color="#ef4444", limit=100.0))
        ledger.delete_item(item.id)
        assert ledger.get_category("c1").spent == 12
        assert ledger.total_expenses == 0

    def test_delete_does_not_cascade(self):
        store = LedgerStore()
        utilities = store.find_category("Utilities")
        item = store.add_item(make_draft("Power", 70.0, "Utilities"))

        assert store.delete_category(utilities.id) is True
        assert "Utilities" not in store.category_names()
        assert store.get_item(item.id).category == "Utilities"
        assert store.total_expenses == 70

    def test_missing_category_ids_are_no_ops(self, ledger):
        ghost = BudgetCategory(id="nope", name="Ghost", color="#000000")
        assert ledger.update_category(ghost) is False
        assert ledger.delete_category("nope") is False
        assert len(ledger.categories) == 2

    def test_first_category_with_a_name_wins(self, ledger):
        duplicate = ledger.add_category("Food", "#111111")
        ledger.add_item(make_draft("Snack", 3.0, "Food"))
        assert ledger.get_category("c1").spent == 3
        assert ledger.get_category(duplicate.id).spent == 0

    def test_returned_categories_are_copies(self, ledger):
        ledger.categories[0].spent = 500
        ledger.get_category("c1").spent = 500
        assert ledger.get_category("c1").spent == 0


class TestBudgetAndQueries:
    """Test monthly budget, utilization and reset."""

    def test_set_monthly_budget(self, ledger):
        ledger.set_monthly_budget(1500)
        assert ledger.monthly_budget == 1500

    def test_budget_utilization(self, ledger):
        ledger.add_item(make_draft("Rent", 250.0, "Food"))
        assert ledger.budget_utilization() == pytest.approx(25.0)
        ledger.set_monthly_budget(0)
        assert ledger.budget_utilization() == 0.0

    def test_category_utilization(self):
        category = BudgetCategory(id="x", name="X", color="#000000", limit=200.0, spent=50.0)
        assert LedgerStore.category_utilization(category) == pytest.approx(25.0)
        category.limit = None
        assert LedgerStore.category_utilization(category) == 0.0

    def test_reset_restores_seeded_state(self, populated_ledger):
        populated_ledger.set_monthly_budget(10)
        populated_ledger.reset()
        assert len(populated_ledger) == 0
        assert populated_ledger.total_expenses == 0
        assert populated_ledger.monthly_budget == DEFAULT_MONTHLY_BUDGET
        assert len(populated_ledger.categories) == 6

    def test_reconcile_balanced(self, populated_ledger):
        report = populated_ledger.reconcile()
        assert report.is_balanced
        assert report.dangling_items == ()

    def test_snapshot_is_frozen_view(self, populated_ledger):
        snapshot = populated_ledger.snapshot()
        populated_ledger.add_item(make_draft("Later", 1.0))
        assert len(snapshot.items) == 4
        assert snapshot.balance == pytest.approx(3000 - 150)


class TestFromState:
    """Test rebuilding a ledger by replay."""

    def test_replay_recomputes_spent(self, populated_ledger):
        snapshot = populated_ledger.snapshot()
        stale = [replace(c, spent=12345.0) for c in snapshot.categories]
        rebuilt = LedgerStore.from_state(snapshot.items, stale, monthly_budget=snapshot.monthly_budget)
        assert rebuilt.snapshot().to_dict() == snapshot.to_dict()

    def test_duplicate_item_ids_rejected(self, populated_ledger):
        items = list(populated_ledger.items)
        with pytest.raises(SnapshotFormatError):
            LedgerStore.from_state(items + items[:1], populated_ledger.categories)


class TestStrictMode:
    """Test the optional amount validation."""

    def test_lenient_accepts_negative(self, ledger):
        ledger.add_item(make_draft("Odd", -5.0, "Food"))
        assert ledger.total_expenses == -5

    @pytest.mark.parametrize("amount", [-1.0, math.inf, math.nan])
    def test_strict_rejects_bad_amounts(self, categories, amount):
        store = LedgerStore(categories=categories, strict=True)
        with pytest.raises(LedgerValidationError):
            store.add_item(make_draft("Bad", amount))
        assert len(store) == 0
        assert store.total_expenses == 0

    def test_strict_update_leaves_state_unchanged(self, categories):
        store = LedgerStore(categories=categories, strict=True)
        item = store.add_item(make_draft("Good", 10.0, "Food"))
        with pytest.raises(LedgerValidationError):
            store.update_item(replace(item, amount=-3.0))
        assert store.get_item(item.id).amount == 10
        assert store.get_category("c1").spent == 10


class TestListeners:
    """Test change notification."""

    def test_events_are_delivered(self, ledger):
        events = []
        ledger.subscribe(lambda event, store: events.append(event))
        item = ledger.add_item(make_draft())
        ledger.update_item(replace(item, amount=1.0))
        ledger.delete_item(item.id)
        ledger.delete_item(item.id)
        ledger.delete_category("c2")
        ledger.set_monthly_budget(5)
        ledger.reset()
        assert events == [
            ITEM_ADDED, ITEM_UPDATED, ITEM_DELETED, CATEGORY_DELETED, MONTHLY_BUDGET_SET, LEDGER_RESET
        ]

    def test_failing_listener_does_not_break_command(self, ledger, caplog):
        def broken(event, store):
            raise RuntimeError("boom")

        ledger.subscribe(broken)
        item = ledger.add_item(make_draft())
        assert ledger.get_item(item.id) is not None
        assert "Ledger listener failed" in caplog.text

    def test_unsubscribe(self, ledger):
        events = []

        def listener(event, store):
            events.append(event)

        ledger.subscribe(listener)
        ledger.unsubscribe(listener)
        ledger.add_item(make_draft())
        assert events == []


class TestConcurrency:
    """Test that concurrent commands keep the aggregates consistent."""

    def test_parallel_adds(self, ledger):
        def worker():
            for _ in range(100):
                ledger.add_item(make_draft("t", 1.0, "Food"))

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(ledger) == 400
        assert ledger.total_expenses == pytest.approx(400)
        assert ledger.get_category("c1").spent == pytest.approx(400)
