"""
Ledger store for budget items and categories.

The LedgerStore owns the item collection, the category collection and the
derived aggregates (total income, total expenses, balance and each category's
spent total). Aggregates are maintained incrementally: every item command
applies the aggregate-update rule for the affected records instead of
recomputing from the item set.

Categories are joined to items by name, not by id. An expense item whose
category name matches no category still counts toward total expenses but
toward no category's spent total; ``reconcile()`` reports that gap.
"""

import logging
import math
import threading
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from exceptions import LedgerValidationError, SnapshotFormatError
from ledger_models import (
    DEFAULT_MONTHLY_BUDGET,
    BudgetCategory,
    BudgetItem,
    ItemDraft,
    LedgerSnapshot,
    ReconciliationReport,
    TransactionType,
    default_categories,
    new_id,
)

# Configure logging
logger = logging.getLogger(__name__)

ITEM_ADDED = "item_added"
ITEM_UPDATED = "item_updated"
ITEM_DELETED = "item_deleted"
CATEGORY_ADDED = "category_added"
CATEGORY_UPDATED = "category_updated"
CATEGORY_DELETED = "category_deleted"
MONTHLY_BUDGET_SET = "monthly_budget_set"
LEDGER_RESET = "ledger_reset"

LedgerListener = Callable[[str, "LedgerStore"], None]


class LedgerStore:
    """
    In-memory budget ledger with incrementally maintained aggregates.

    Every command runs under a single re-entrant lock, so a reader calling
    ``snapshot()`` never observes items and aggregates out of step. Listeners
    are notified after the lock is released.

    Missing ids are silent no-ops: ``update_item``, ``delete_item``,
    ``update_category`` and ``delete_category`` return False and change nothing.
    """

    def __init__(
        self,
        categories: Optional[Iterable[BudgetCategory]] = None,
        monthly_budget: float = DEFAULT_MONTHLY_BUDGET,
        strict: bool = False
    ):
        """
        Initialize an empty ledger.

        Args:
            categories: Initial categories (defaults to the seeded set). Their
                spent totals are reset to zero because no items exist yet.
            monthly_budget: Budget ceiling used for utilization display
            strict: Reject negative or non-finite amounts instead of accepting
                them silently
        """
        self._lock = threading.RLock()
        self._listeners: List[LedgerListener] = []
        self.strict = strict

        self._items: Dict[str, BudgetItem] = {}
        self._categories: List[BudgetCategory] = []
        self._category_by_name: Dict[str, BudgetCategory] = {}
        self._total_income = 0.0
        self._total_expenses = 0.0
        self._balance = 0.0
        self._monthly_budget = float(monthly_budget)

        initial = default_categories() if categories is None else [c.copy() for c in categories]
        self._load_categories(initial)
        logger.debug("Ledger initialized with %d categories", len(self._categories))

    @classmethod
    def from_state(
        cls,
        items: Iterable[BudgetItem],
        categories: Iterable[BudgetCategory],
        monthly_budget: float = DEFAULT_MONTHLY_BUDGET,
        strict: bool = False
    ) -> "LedgerStore":
        """
        Rebuild a ledger by replaying items onto an empty base.

        Persisted spent totals are ignored; aggregates are recomputed by
        applying each item with sign +1, in order.

        Raises:
            SnapshotFormatError: If item or category ids are not unique
        """
        store = cls(categories=categories, monthly_budget=monthly_budget, strict=strict)
        with store._lock:
            for item in items:
                if item.id in store._items:
                    raise SnapshotFormatError(
                        "Duplicate item id in persisted ledger",
                        details={"item_id": item.id}
                    )
                store._items[item.id] = item
                store._apply(item, 1)
        logger.debug("Ledger replayed %d items", len(store._items))
        return store

    # ------------------------------------------------------------------
    # Internal helpers (callers hold the lock)
    # ------------------------------------------------------------------

    def _load_categories(self, categories: List[BudgetCategory]) -> None:
        seen_ids = set()
        for category in categories:
            if category.id in seen_ids:
                raise SnapshotFormatError(
                    "Duplicate category id",
                    details={"category_id": category.id}
                )
            seen_ids.add(category.id)
            category.spent = 0.0
        self._categories = categories
        self._reindex_categories()

    def _reindex_categories(self) -> None:
        # First category with a given name wins, like a linear find.
        index: Dict[str, BudgetCategory] = {}
        for category in self._categories:
            index.setdefault(category.name, category)
        self._category_by_name = index

    def _apply(self, item: BudgetItem, sign: int) -> None:
        """Aggregate-update rule for one item record with sign +1 or -1."""
        if item.type is TransactionType.INCOME:
            self._total_income += sign * item.amount
        else:
            self._total_expenses += sign * item.amount
            category = self._category_by_name.get(item.category)
            if category is not None:
                category.spent += sign * item.amount
        self._balance = self._total_income - self._total_expenses

    def _check_amount(self, amount: float) -> None:
        if not self.strict:
            return
        if not math.isfinite(amount) or amount < 0:
            raise LedgerValidationError(
                "Amount must be a finite, non-negative number",
                details={"amount": amount}
            )

    def _find_category_position(self, category_id: str) -> Optional[int]:
        for position, category in enumerate(self._categories):
            if category.id == category_id:
                return position
        return None

    def _notify(self, event: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, self)
            except Exception as exc:
                logger.error("Ledger listener failed on %s: %s", event, exc, exc_info=True)

    # ------------------------------------------------------------------
    # Item commands
    # ------------------------------------------------------------------

    def add_item(self, draft: ItemDraft) -> BudgetItem:
        """
        Append a new item and apply its contribution to the aggregates.

        The category name is not checked against existing categories; an
        unknown name contributes to total expenses only.

        Args:
            draft: Item fields without an id

        Returns:
            The stored item with its assigned id

        Raises:
            LedgerValidationError: In strict mode, for a negative or non-finite amount
        """
        with self._lock:
            self._check_amount(draft.amount)
            item = BudgetItem.from_draft(draft, new_id())
            while item.id in self._items:
                item = BudgetItem.from_draft(draft, new_id())
            self._items[item.id] = item
            self._apply(item, 1)
            logger.debug("Added %s item %s (%s)", item.type.value, item.id, item.amount)
        self._notify(ITEM_ADDED)
        return item

    def update_item(self, item: BudgetItem) -> bool:
        """
        Replace a stored item wholesale.

        The old record's contribution is reversed before the new one is
        applied, so type, category and amount may all change.

        Args:
            item: Full replacement record carrying an existing id

        Returns:
            True if the item existed and was replaced, False for an unknown id
        """
        with self._lock:
            old_item = self._items.get(item.id)
            if old_item is None:
                logger.debug("Update ignored; no item with id %s", item.id)
                return False
            self._check_amount(item.amount)
            self._apply(old_item, -1)
            self._items[item.id] = item
            self._apply(item, 1)
            logger.debug("Updated item %s", item.id)
        self._notify(ITEM_UPDATED)
        return True

    def delete_item(self, item_id: str) -> bool:
        """
        Remove an item and reverse its contribution.

        Returns:
            True if the item existed and was removed, False for an unknown id
        """
        with self._lock:
            item = self._items.get(item_id)
            if item is None:
                logger.debug("Delete ignored; no item with id %s", item_id)
                return False
            self._apply(item, -1)
            del self._items[item_id]
            logger.debug("Deleted item %s", item_id)
        self._notify(ITEM_DELETED)
        return True

    # ------------------------------------------------------------------
    # Category commands
    # ------------------------------------------------------------------

    def add_category(self, name: str, color: str, limit: Optional[float] = None) -> BudgetCategory:
        """
        Add a category with spent initialized to zero.

        Existing items already tagged with this name are not back-filled:
        spent only moves when items are added, updated or deleted.

        Returns:
            A copy of the stored category
        """
        with self._lock:
            existing_ids = {category.id for category in self._categories}
            category_id = new_id()
            while category_id in existing_ids:
                category_id = new_id()
            category = BudgetCategory(
                id=category_id,
                name=name,
                color=color,
                limit=None if limit is None else float(limit),
                spent=0.0,
            )
            self._categories.append(category)
            self._reindex_categories()
            logger.debug("Added category %s (%s)", category.id, name)
            result = category.copy()
        self._notify(CATEGORY_ADDED)
        return result

    def update_category(self, category: BudgetCategory) -> bool:
        """
        Replace name, color and limit of a stored category.

        The stored spent total is kept; it is never settable through category
        commands. Renaming detaches items that reference the old name.

        Returns:
            True if the category existed, False for an unknown id
        """
        with self._lock:
            position = self._find_category_position(category.id)
            if position is None:
                logger.debug("Category update ignored; no category with id %s", category.id)
                return False
            stored = self._categories[position]
            self._categories[position] = BudgetCategory(
                id=stored.id,
                name=category.name,
                color=category.color,
                limit=None if category.limit is None else float(category.limit),
                spent=stored.spent,
            )
            self._reindex_categories()
            logger.debug("Updated category %s", category.id)
        self._notify(CATEGORY_UPDATED)
        return True

    def delete_category(self, category_id: str) -> bool:
        """
        Remove a category. Items referencing its name are left untouched.

        Returns:
            True if the category existed, False for an unknown id
        """
        with self._lock:
            position = self._find_category_position(category_id)
            if position is None:
                logger.debug("Category delete ignored; no category with id %s", category_id)
                return False
            removed = self._categories.pop(position)
            self._reindex_categories()
            logger.debug("Deleted category %s (%s)", category_id, removed.name)
        self._notify(CATEGORY_DELETED)
        return True

    def set_monthly_budget(self, value: float) -> None:
        """Replace the monthly budget ceiling."""
        with self._lock:
            self._monthly_budget = float(value)
            logger.debug("Monthly budget set to %s", self._monthly_budget)
        self._notify(MONTHLY_BUDGET_SET)

    def reset(self) -> None:
        """Return to the initial state: no items, seeded categories, default budget."""
        with self._lock:
            self._items = {}
            self._total_income = 0.0
            self._total_expenses = 0.0
            self._balance = 0.0
            self._monthly_budget = DEFAULT_MONTHLY_BUDGET
            self._load_categories(default_categories())
            logger.info("Ledger reset to initial state")
        self._notify(LEDGER_RESET)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def snapshot(self) -> LedgerSnapshot:
        """Return a consistent read-only view of items, categories and aggregates."""
        with self._lock:
            return LedgerSnapshot(
                items=tuple(self._items.values()),
                categories=tuple(category.copy() for category in self._categories),
                total_income=self._total_income,
                total_expenses=self._total_expenses,
                balance=self._balance,
                monthly_budget=self._monthly_budget,
            )

    @property
    def items(self) -> Tuple[BudgetItem, ...]:
        with self._lock:
            return tuple(self._items.values())

    @property
    def categories(self) -> Tuple[BudgetCategory, ...]:
        with self._lock:
            return tuple(category.copy() for category in self._categories)

    @property
    def total_income(self) -> float:
        return self._total_income

    @property
    def total_expenses(self) -> float:
        return self._total_expenses

    @property
    def balance(self) -> float:
        return self._balance

    @property
    def monthly_budget(self) -> float:
        return self._monthly_budget

    def __len__(self) -> int:
        return len(self._items)

    def get_item(self, item_id: str) -> Optional[BudgetItem]:
        with self._lock:
            return self._items.get(item_id)

    def get_category(self, category_id: str) -> Optional[BudgetCategory]:
        with self._lock:
            position = self._find_category_position(category_id)
            return None if position is None else self._categories[position].copy()

    def find_category(self, name: str) -> Optional[BudgetCategory]:
        """Look up the category an item with this category name is joined to."""
        with self._lock:
            category = self._category_by_name.get(name)
            return None if category is None else category.copy()

    def category_names(self) -> List[str]:
        with self._lock:
            return [category.name for category in self._categories]

    def budget_utilization(self) -> float:
        """Percentage of the monthly budget consumed by total expenses."""
        with self._lock:
            if self._monthly_budget <= 0:
                return 0.0
            return self._total_expenses / self._monthly_budget * 100

    @staticmethod
    def category_utilization(category: BudgetCategory) -> float:
        """Percentage of a category's limit consumed (0 when it has no positive limit)."""
        if not category.limit or category.limit <= 0:
            return 0.0
        return category.spent / category.limit * 100

    def reconcile(self) -> ReconciliationReport:
        """
        Compare total expenses with the sum of category spent totals.

        Expense items whose category name matches no category are listed as
        dangling; their amounts make up the unassigned difference.
        """
        with self._lock:
            spent_total = sum(category.spent for category in self._categories)
            dangling = tuple(
                item for item in self._items.values()
                if item.type is TransactionType.EXPENSE and item.category not in self._category_by_name
            )
            return ReconciliationReport(
                total_expenses=self._total_expenses,
                category_spent_total=spent_total,
                unassigned_expenses=self._total_expenses - spent_total,
                dangling_items=dangling,
            )

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def subscribe(self, listener: LedgerListener) -> None:
        """Register a callable invoked as ``listener(event, store)`` after each command."""
        with self._lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def unsubscribe(self, listener: LedgerListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)
