"""
Analytics module for budget ledger analysis.

This module provides data aggregation functions over a ledger snapshot,
including income/expense summaries, category breakdowns, budget status per
category and month-by-month trends. Everything here reads a snapshot; the
ledger itself is never modified.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

from exceptions import AnalyticsError
from ledger import LedgerStore
from ledger_models import LedgerSnapshot, TransactionType

logger = logging.getLogger(__name__)

ITEM_COLUMNS = ['id', 'date', 'name', 'amount', 'type', 'category', 'description', 'tags']


@dataclass
class BudgetStatus:
    """
    Status of a budget category.

    Attributes:
        category: Category name
        limit: Spending ceiling (0 when the category has none)
        spent: Amount spent in category
        remaining: Remaining budget (limit - spent)
        percentage_used: Percentage of the limit used
        color: Display color of the category
    """
    category: str
    limit: float
    spent: float
    remaining: float
    percentage_used: float
    color: str = ''

    @property
    def over_budget(self) -> bool:
        return self.limit > 0 and self.spent > self.limit


class LedgerAnalytics:
    """
    Analytics over a LedgerStore.

    Provides aggregation and filtering functions that are UI-agnostic and can
    be used by the CLI, the reports and the dashboard.
    """

    def __init__(self, ledger: LedgerStore):
        """
        Initialize the analytics engine.

        Args:
            ledger: Ledger to read snapshots from
        """
        self.ledger = ledger

    def parse_time_frame(self, time_frame: str) -> Tuple[datetime, datetime]:
        """
        Parse time frame string into start and end dates.

        Supports formats:
        - '1m', '3m', '6m', '12m' (months from now)
        - 'YYYY-MM-DD:YYYY-MM-DD' (custom date range)
        - 'all' (all time)

        Raises:
            AnalyticsError: If time frame format is invalid
        """
        now = datetime.now(UTC)

        if time_frame.lower() == 'all':
            return datetime.min.replace(tzinfo=UTC), datetime.max.replace(tzinfo=UTC)

        if ':' in time_frame:
            try:
                start_str, end_str = time_frame.split(':')
                start_date = datetime.strptime(start_str, '%Y-%m-%d').replace(tzinfo=UTC)
                end_date = datetime.strptime(end_str, '%Y-%m-%d').replace(tzinfo=UTC) + timedelta(days=1)
                return start_date, end_date
            except (ValueError, OverflowError) as e:
                raise AnalyticsError(
                    f"Invalid date range format. Use YYYY-MM-DD:YYYY-MM-DD: {e}",
                    details={"time_frame": time_frame},
                    original_error=e
                ) from e

        if time_frame.endswith('m'):
            try:
                months = int(time_frame[:-1])
                return now - timedelta(days=months * 30), now
            except (ValueError, OverflowError) as e:
                raise AnalyticsError(
                    f"Invalid month format: {time_frame}",
                    details={"time_frame": time_frame}
                ) from e

        raise AnalyticsError(
            f"Invalid time frame format: {time_frame}. Use '1m', '3m', '6m', '12m', 'all', or 'YYYY-MM-DD:YYYY-MM-DD'",
            details={"time_frame": time_frame}
        )

    def items_dataframe(self, snapshot: Optional[LedgerSnapshot] = None, time_frame: str = 'all') -> pd.DataFrame:
        """
        Return the ledger items as a DataFrame, oldest first.

        Args:
            snapshot: Snapshot to read (defaults to a fresh one)
            time_frame: Time frame filter, see parse_time_frame

        Returns:
            DataFrame with columns: id, date, name, amount, type, category,
            description, tags
        """
        snapshot = snapshot or self.ledger.snapshot()
        start_date, end_date = self.parse_time_frame(time_frame)

        rows = [
            {
                'id': item.id,
                'date': item.date,
                'name': item.name,
                'amount': item.amount,
                'type': item.type.value,
                'category': item.category,
                'description': item.description or '',
                'tags': ', '.join(item.tags),
            }
            for item in snapshot.items
            if start_date <= item.date < end_date
        ]
        if not rows:
            return pd.DataFrame(columns=ITEM_COLUMNS)

        df = pd.DataFrame(rows, columns=ITEM_COLUMNS)
        return df.sort_values('date', kind='stable').reset_index(drop=True)

    def get_income_expense_summary(self, time_frame: str = 'all') -> Dict[str, Any]:
        """
        Get summary of income, expenses and balance.

        For 'all' the totals come straight from the ledger aggregates;
        narrower time frames are summed from the filtered items.

        Returns:
            Dictionary with total_income, total_expenses, balance,
            income_count, expense_count, total_count, monthly_budget and
            budget_utilization
        """
        snapshot = self.ledger.snapshot()
        df = self.items_dataframe(snapshot, time_frame)

        income_mask = df['type'] == TransactionType.INCOME.value
        expense_mask = df['type'] == TransactionType.EXPENSE.value

        if time_frame.lower() == 'all':
            total_income = snapshot.total_income
            total_expenses = snapshot.total_expenses
        else:
            total_income = float(df.loc[income_mask, 'amount'].sum())
            total_expenses = float(df.loc[expense_mask, 'amount'].sum())

        utilization = (total_expenses / snapshot.monthly_budget * 100) if snapshot.monthly_budget > 0 else 0.0

        summary = {
            'total_income': total_income,
            'total_expenses': total_expenses,
            'balance': total_income - total_expenses,
            'income_count': int(income_mask.sum()),
            'expense_count': int(expense_mask.sum()),
            'total_count': len(df),
            'monthly_budget': snapshot.monthly_budget,
            'budget_utilization': utilization,
        }
        logger.debug(f"Income/expense summary for {time_frame}: {summary}")
        return summary

    def get_category_breakdown(self, time_frame: str = 'all', expense_only: bool = True) -> pd.DataFrame:
        """
        Get totals grouped by the category name carried on each item.

        Items whose category matches no category still appear under their
        own name; an empty name is shown as 'Uncategorized'.

        Returns:
            DataFrame with columns: category, total, count, percentage
        """
        df = self.items_dataframe(time_frame=time_frame)
        if expense_only:
            df = df[df['type'] == TransactionType.EXPENSE.value]

        if df.empty:
            return pd.DataFrame(columns=['category', 'total', 'count', 'percentage'])

        df = df.assign(category=df['category'].replace('', 'Uncategorized'))
        grouped = df.groupby('category')['amount'].agg(total='sum', count='count').reset_index()

        total_sum = grouped['total'].sum()
        grouped['percentage'] = (grouped['total'] / total_sum * 100) if total_sum > 0 else 0.0

        grouped = grouped.sort_values('total', ascending=False).reset_index(drop=True)
        logger.info(f"Generated category breakdown with {len(grouped)} categories")
        return grouped

    def get_category_status(self) -> List[BudgetStatus]:
        """
        Get limit, spent and remaining for every category, in category order.

        Spent totals are the ledger's maintained aggregates.
        """
        statuses = []
        for category in self.ledger.categories:
            limit = category.limit or 0.0
            statuses.append(BudgetStatus(
                category=category.name,
                limit=limit,
                spent=category.spent,
                remaining=limit - category.spent,
                percentage_used=LedgerStore.category_utilization(category),
                color=category.color,
            ))
        return statuses

    def get_monthly_trends(self, time_frame: str = 'all') -> pd.DataFrame:
        """
        Get monthly income and expense trends.

        Returns:
            DataFrame with columns: year, month, income, expenses, net, period
        """
        df = self.items_dataframe(time_frame=time_frame)
        if df.empty:
            return pd.DataFrame(columns=['year', 'month', 'income', 'expenses', 'net', 'period'])

        dates = pd.to_datetime(df['date'], utc=True)
        df = df.assign(year=dates.dt.year, month=dates.dt.month)

        monthly_data = []
        for (year, month), group in df.groupby(['year', 'month']):
            income = float(group.loc[group['type'] == TransactionType.INCOME.value, 'amount'].sum())
            expenses = float(group.loc[group['type'] == TransactionType.EXPENSE.value, 'amount'].sum())
            monthly_data.append({
                'year': int(year),
                'month': int(month),
                'income': income,
                'expenses': expenses,
                'net': income - expenses,
                'period': f"{int(year)}-{int(month):02d}"
            })

        result_df = pd.DataFrame(monthly_data).sort_values(['year', 'month']).reset_index(drop=True)
        logger.info(f"Generated monthly trends with {len(result_df)} months")
        return result_df

    def get_top_expenses(self, limit: int = 10, time_frame: str = 'all') -> pd.DataFrame:
        """
        Get the largest expense items.

        Returns:
            DataFrame with columns: date, name, amount, category
        """
        df = self.items_dataframe(time_frame=time_frame)
        df = df[df['type'] == TransactionType.EXPENSE.value]
        if df.empty:
            return pd.DataFrame(columns=['date', 'name', 'amount', 'category'])

        top = df.sort_values('amount', ascending=False, kind='stable').head(limit)
        top = top.assign(date=top['date'].map(lambda d: d.strftime('%Y-%m-%d')))
        return top[['date', 'name', 'amount', 'category']].reset_index(drop=True)
