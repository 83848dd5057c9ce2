"""
Command-line table rendering for the budget ledger.

Each renderer returns a string built with tabulate; main.py prints it.
"""

import logging
from typing import Iterable, Optional, Sequence

from tabulate import tabulate

from ai_state import AIInsight
from ledger import LedgerStore
from ledger_models import BudgetCategory, BudgetItem, LedgerSnapshot
from search import SearchResult

logger = logging.getLogger(__name__)

DESCRIPTION_WIDTH = 40


def format_amount(amount: Optional[float], currency_symbol: str = "$") -> str:
    """
    Format amount as currency string.

    Returns:
        Formatted string (e.g., "$1,234.56" or "-$123.45")
    """
    if amount is None:
        return f"{currency_symbol}0.00"
    sign = "-" if amount < 0 else ""
    return f"{sign}{currency_symbol}{abs(float(amount)):,.2f}"


def _truncate(text: Optional[str], width: int = DESCRIPTION_WIDTH) -> str:
    text = text or ""
    return text[:width] + "..." if len(text) > width else text


def render_items_table(
    items: Sequence[BudgetItem],
    limit: Optional[int] = None,
    currency_symbol: str = "$"
) -> str:
    """Render items newest first, optionally limited."""
    if not items:
        return "\nNo items found."

    ordered = sorted(items, key=lambda item: item.date, reverse=True)
    if limit:
        ordered = ordered[:limit]

    rows = [
        [
            item.id[:8],
            item.date.strftime("%Y-%m-%d"),
            _truncate(item.name),
            item.type.value,
            format_amount(item.amount, currency_symbol),
            item.category or "-",
            ", ".join(item.tags),
        ]
        for item in ordered
    ]
    table = tabulate(rows, headers=["ID", "Date", "Name", "Type", "Amount", "Category", "Tags"], tablefmt="grid",
                     disable_numparse=True)
    return f"\nITEMS ({len(ordered)} of {len(items)} shown)\n{table}"


def render_categories_table(categories: Iterable[BudgetCategory], currency_symbol: str = "$") -> str:
    """Render categories with limit, spent, remaining and percentage used."""
    rows = []
    for category in categories:
        rows.append([
            category.id[:8],
            category.name,
            category.color,
            format_amount(category.limit, currency_symbol) if category.limit is not None else "-",
            format_amount(category.spent, currency_symbol),
            format_amount(category.remaining, currency_symbol) if category.remaining is not None else "-",
            f"{LedgerStore.category_utilization(category):.1f}%",
        ])
    if not rows:
        return "\nNo categories defined."
    return tabulate(
        rows,
        headers=["ID", "Name", "Color", "Limit", "Spent", "Remaining", "Used"],
        tablefmt="grid",
        disable_numparse=True
    )


def render_summary(snapshot: LedgerSnapshot, currency_symbol: str = "$") -> str:
    """Render the ledger aggregates and monthly budget utilization."""
    utilization = (snapshot.total_expenses / snapshot.monthly_budget * 100) if snapshot.monthly_budget > 0 else 0.0
    rows = [
        ["Total Income", format_amount(snapshot.total_income, currency_symbol)],
        ["Total Expenses", format_amount(snapshot.total_expenses, currency_symbol)],
        ["Balance", format_amount(snapshot.balance, currency_symbol)],
        ["Monthly Budget", format_amount(snapshot.monthly_budget, currency_symbol)],
        ["Budget Used", f"{utilization:.1f}%"],
        ["Items", str(len(snapshot.items))],
    ]
    return tabulate(rows, tablefmt="simple")


def render_insights_table(insights: Sequence[AIInsight]) -> str:
    if not insights:
        return "\nNo insights yet."
    rows = [
        [
            insight.type.value,
            _truncate(insight.title),
            insight.impact.value,
            f"{insight.confidence:.0f}",
            insight.action_text or "-",
        ]
        for insight in insights
    ]
    return tabulate(rows, headers=["Type", "Title", "Impact", "Confidence", "Action"], tablefmt="grid")


def render_search_results(results: Sequence[SearchResult], currency_symbol: str = "$") -> str:
    """Render item search results in rank order."""
    if not results:
        return "\nNo matches."
    rows = [
        [
            f"{result.score:.3f}",
            result.item.id[:8],
            _truncate(result.item.name),
            result.item.category or "-",
            format_amount(result.item.amount, currency_symbol),
        ]
        for result in results
    ]
    return tabulate(rows, headers=["Score", "ID", "Name", "Category", "Amount"], tablefmt="grid",
                    disable_numparse=True)
