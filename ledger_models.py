"""
Record types for the budget ledger.

Defines transactions (budget items), categories, the immutable snapshot view
handed to readers, and the dictionary conversions used by persistence.
"""

from __future__ import annotations

import enum
import logging
import math
import uuid
from dataclasses import dataclass, field, replace
from datetime import UTC, date, datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_MONTHLY_BUDGET = 2000.0

# Seed categories for a fresh ledger: (name, color, limit)
DEFAULT_CATEGORIES: Tuple[Tuple[str, str, float], ...] = (
    ("Food & Dining", "#ef4444", 500.0),
    ("Transportation", "#3b82f6", 300.0),
    ("Entertainment", "#10b981", 200.0),
    ("Shopping", "#f59e0b", 400.0),
    ("Utilities", "#8b5cf6", 250.0),
    ("Healthcare", "#ec4899", 150.0),
)


def new_id() -> str:
    """Return a fresh unique identifier for items and categories."""
    return uuid.uuid4().hex


def utc_now() -> datetime:
    """Get current UTC datetime with timezone awareness."""
    return datetime.now(UTC)


def coerce_timestamp(value: Any) -> datetime:
    """
    Normalize a date-like value into a timezone-aware datetime.

    Accepts datetime, date and ISO-8601 strings (a trailing 'Z' is accepted).
    Naive values are treated as UTC.

    Args:
        value: Value to normalize

    Returns:
        Timezone-aware datetime

    Raises:
        ValueError: If the value cannot be interpreted as a timestamp
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            raise ValueError(f"Invalid timestamp: {value!r}") from exc
    else:
        raise ValueError(f"Unsupported timestamp type: {type(value).__name__}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


class TransactionType(enum.Enum):
    """Direction of a budget item. The sign of an amount is carried here."""
    INCOME = "income"
    EXPENSE = "expense"

    @classmethod
    def parse(cls, value: Any) -> "TransactionType":
        """Accept an enum member or its string value (case-insensitive)."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            raise ValueError(f"Unknown transaction type: {value!r}") from exc


def _normalize_tags(tags: Optional[Iterable[str]]) -> Tuple[str, ...]:
    if not tags:
        return ()
    seen: Dict[str, None] = {}
    for tag in tags:
        text = str(tag).strip()
        if text:
            seen.setdefault(text, None)
    return tuple(seen)


@dataclass(frozen=True)
class ItemDraft:
    """
    Input for adding a transaction: every BudgetItem field except the id.

    Attributes:
        name: Display label
        amount: Non-negative magnitude (not enforced here)
        category: Category name the item is joined to
        date: Timestamp of the transaction
        type: Income or expense
        description: Optional free text
        tags: Optional labels
    """
    name: str
    amount: float
    category: str
    date: datetime
    type: TransactionType
    description: Optional[str] = None
    tags: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", float(self.amount))
        object.__setattr__(self, "date", coerce_timestamp(self.date))
        object.__setattr__(self, "type", TransactionType.parse(self.type))
        object.__setattr__(self, "tags", _normalize_tags(self.tags))
        object.__setattr__(self, "category", self.category or "")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ItemDraft":
        return cls(
            name=data["name"],
            amount=data["amount"],
            category=data.get("category") or "",
            date=data["date"],
            type=data["type"],
            description=data.get("description"),
            tags=tuple(data.get("tags") or ()),
        )


@dataclass(frozen=True)
class BudgetItem:
    """
    A recorded income or expense transaction.

    Items are immutable; an update replaces the whole record.

    Attributes:
        id: Unique identifier assigned at creation
        name: Display label
        amount: Magnitude of the transaction
        category: Name of the category this item belongs to (joined by name)
        date: Timestamp of the transaction
        type: Income or expense
        description: Optional free text
        tags: Optional labels
    """
    id: str
    name: str
    amount: float
    category: str
    date: datetime
    type: TransactionType
    description: Optional[str] = None
    tags: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", float(self.amount))
        object.__setattr__(self, "date", coerce_timestamp(self.date))
        object.__setattr__(self, "type", TransactionType.parse(self.type))
        object.__setattr__(self, "tags", _normalize_tags(self.tags))
        object.__setattr__(self, "category", self.category or "")

    @property
    def is_income(self) -> bool:
        return self.type is TransactionType.INCOME

    @property
    def is_expense(self) -> bool:
        return self.type is TransactionType.EXPENSE

    @classmethod
    def from_draft(cls, draft: ItemDraft, item_id: str) -> "BudgetItem":
        """Create an item from a draft and an assigned id."""
        return cls(
            id=item_id,
            name=draft.name,
            amount=draft.amount,
            category=draft.category,
            date=draft.date,
            type=draft.type,
            description=draft.description,
            tags=draft.tags,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "amount": self.amount,
            "category": self.category,
            "date": self.date.isoformat(),
            "type": self.type.value,
            "description": self.description,
            "tags": list(self.tags),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BudgetItem":
        return cls(
            id=str(data["id"]),
            name=data["name"],
            amount=data["amount"],
            category=data.get("category") or "",
            date=data["date"],
            type=data["type"],
            description=data.get("description"),
            tags=tuple(data.get("tags") or ()),
        )


@dataclass
class BudgetCategory:
    """
    A named expense bucket.

    Attributes:
        id: Unique identifier
        name: Display label, also the join key used by items
        color: Display color token
        limit: Optional spending ceiling for the period
        spent: Running total of expense items with a matching category name
    """
    id: str
    name: str
    color: str
    limit: Optional[float] = None
    spent: float = 0.0

    def copy(self) -> "BudgetCategory":
        return replace(self)

    @property
    def remaining(self) -> Optional[float]:
        if self.limit is None:
            return None
        return self.limit - self.spent

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "color": self.color,
            "limit": self.limit,
            "spent": self.spent,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BudgetCategory":
        limit = data.get("limit")
        return cls(
            id=str(data["id"]),
            name=data["name"],
            color=data.get("color") or "",
            limit=None if limit is None else float(limit),
            spent=float(data.get("spent") or 0.0),
        )


def default_categories() -> List[BudgetCategory]:
    """Return fresh copies of the seeded categories (ids '1'..'6')."""
    return [
        BudgetCategory(id=str(index), name=name, color=color, limit=limit, spent=0.0)
        for index, (name, color, limit) in enumerate(DEFAULT_CATEGORIES, start=1)
    ]


@dataclass(frozen=True)
class LedgerSnapshot:
    """
    Read-only view of the ledger at one point in time.

    Attributes:
        items: Items in insertion order
        categories: Copies of the categories
        total_income: Sum of income amounts
        total_expenses: Sum of expense amounts
        balance: total_income - total_expenses
        monthly_budget: Budget ceiling used for utilization display
    """
    items: Tuple[BudgetItem, ...]
    categories: Tuple[BudgetCategory, ...]
    total_income: float
    total_expenses: float
    balance: float
    monthly_budget: float

    def category_named(self, name: str) -> Optional[BudgetCategory]:
        for category in self.categories:
            if category.name == name:
                return category
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "items": [item.to_dict() for item in self.items],
            "categories": [category.to_dict() for category in self.categories],
            "total_income": self.total_income,
            "total_expenses": self.total_expenses,
            "balance": self.balance,
            "monthly_budget": self.monthly_budget,
        }


@dataclass(frozen=True)
class ReconciliationReport:
    """
    Comparison of totalExpenses against the per-category spent totals.

    Attributes:
        total_expenses: Ledger totalExpenses
        category_spent_total: Sum of spent over all categories
        unassigned_expenses: Expense amount that belongs to no category
        dangling_items: Expense items whose category matches no category
    """
    total_expenses: float
    category_spent_total: float
    unassigned_expenses: float
    dangling_items: Tuple[BudgetItem, ...] = field(default_factory=tuple)

    @property
    def is_balanced(self) -> bool:
        return math.isclose(self.total_expenses, self.category_spent_total, abs_tol=1e-9)
