"""
Fuzzy search over budget items and AI-generated content.

Each searchable field is compared with rapidfuzz and turned into a distance
between 0 (perfect match) and 1. A field counts as matched when its distance
is within the threshold; a record's score is the product of its matched
field distances, each raised to the field weight. Lower scores rank first.
"""

import logging
import sys
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Generic, Iterable, List, Optional, Sequence, Tuple, TypeVar

from rapidfuzz import fuzz

from ai_state import AIGeneratedContent
from exceptions import SearchError
from ledger_models import BudgetItem, TransactionType

logger = logging.getLogger(__name__)

T = TypeVar("T")

# (field name, weight, accessor returning the text values of that field)
FieldSpec = Tuple[str, float, Callable[[Any], Sequence[str]]]

ITEM_FIELDS: Tuple[FieldSpec, ...] = (
    ("name", 0.4, lambda item: [item.name]),
    ("category", 0.3, lambda item: [item.category]),
    ("description", 0.2, lambda item: [item.description] if item.description else []),
    ("tags", 0.1, lambda item: list(item.tags)),
)
ITEM_THRESHOLD = 0.3

CONTENT_FIELDS: Tuple[FieldSpec, ...] = (
    ("title", 0.5, lambda content: [content.title]),
    ("content", 0.3, lambda content: [content.content]),
    ("tags", 0.2, lambda content: list(content.tags)),
)
CONTENT_THRESHOLD = 0.4

MAX_SUGGESTIONS = 5


@dataclass(frozen=True)
class SearchResult(Generic[T]):
    """A matched record and its score (0 is a perfect match)."""
    item: T
    score: float


def _field_distance(query: str, values: Sequence[str]) -> Optional[float]:
    """Best distance of query to any value; a query longer than the value is compared whole."""
    best = None
    for value in values:
        if not value:
            continue
        text = value.lower()
        scorer = fuzz.ratio if len(query) > len(text) else fuzz.partial_ratio
        distance = 1.0 - scorer(query, text) / 100.0
        if best is None or distance < best:
            best = distance
    return best


def _score(query: str, record: Any, fields: Sequence[FieldSpec], threshold: float) -> Optional[float]:
    """Combined score of a record, or None when no field is within the threshold."""
    total = 1.0
    matched = False
    for _, weight, accessor in fields:
        distance = _field_distance(query, accessor(record))
        if distance is None or distance > threshold:
            continue
        matched = True
        total *= max(distance, sys.float_info.epsilon) ** weight
    return total if matched else None


def _rank(query: str, records: Iterable[T], fields: Sequence[FieldSpec], threshold: float) -> List[SearchResult[T]]:
    normalized = query.strip().lower()
    results = []
    for record in records:
        score = _score(normalized, record, fields, threshold)
        if score is not None:
            results.append(SearchResult(item=record, score=score))
    results.sort(key=lambda result: result.score)
    return results


def _unique(values: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(value for value in values if value))


class SearchService:
    """Holds the item and content collections to search and answers queries over them."""

    def __init__(self) -> None:
        self._items: Tuple[BudgetItem, ...] = ()
        self._content: Tuple[AIGeneratedContent, ...] = ()

    def initialize(self, items: Iterable[BudgetItem], content: Iterable[AIGeneratedContent] = ()) -> None:
        self.update_budget_items(items)
        self.update_content(content)

    def update_budget_items(self, items: Iterable[BudgetItem]) -> None:
        self._items = tuple(items)
        logger.debug("Search index holds %d items", len(self._items))

    def update_content(self, content: Iterable[AIGeneratedContent]) -> None:
        self._content = tuple(content)
        logger.debug("Search index holds %d content entries", len(self._content))

    def search_budget_items(self, query: str) -> List[SearchResult[BudgetItem]]:
        """Fuzzy-match items by name, category, description and tags. A blank query matches nothing."""
        if not query.strip():
            return []
        return _rank(query, self._items, ITEM_FIELDS, ITEM_THRESHOLD)

    def search_content(self, query: str) -> List[SearchResult[AIGeneratedContent]]:
        """Fuzzy-match content by title, body and tags. A blank query matches nothing."""
        if not query.strip():
            return []
        return _rank(query, self._content, CONTENT_FIELDS, CONTENT_THRESHOLD)

    def advanced_search(
        self,
        query: str,
        type: Optional[TransactionType] = None,
        category: Optional[str] = None,
        date_range: Optional[Tuple[datetime, datetime]] = None,
        amount_range: Optional[Tuple[float, float]] = None
    ) -> List[SearchResult[BudgetItem]]:
        """
        Search items, then keep only those passing every given filter.

        A blank query selects every item with score 0 so the filters can be
        used on their own. Date and amount ranges are inclusive.
        """
        if query.strip():
            results = _rank(query, self._items, ITEM_FIELDS, ITEM_THRESHOLD)
        else:
            results = [SearchResult(item=item, score=0.0) for item in self._items]

        if type is not None:
            wanted = TransactionType.parse(type)
            results = [r for r in results if r.item.type is wanted]
        if category is not None:
            results = [r for r in results if r.item.category == category]
        if date_range is not None:
            start, end = date_range
            results = [r for r in results if start <= r.item.date <= end]
        if amount_range is not None:
            low, high = amount_range
            results = [r for r in results if low <= r.item.amount <= high]
        return results

    def get_suggestions(self, query: str, kind: str = "budget") -> List[str]:
        """
        Suggest completions containing the query, case-insensitively.

        Budget suggestions draw on item categories then names; content
        suggestions on tags then titles. At most five are returned.

        Raises:
            SearchError: For an unknown kind
        """
        if kind == "budget":
            candidates = _unique([item.category for item in self._items] + [item.name for item in self._items])
        elif kind == "content":
            candidates = _unique([tag for c in self._content for tag in c.tags])
            candidates += [c.title for c in self._content]
        else:
            raise SearchError(f"Unknown suggestion kind: {kind}", details={"kind": kind})

        needle = query.lower()
        return [candidate for candidate in candidates if needle in candidate.lower()][:MAX_SUGGESTIONS]
