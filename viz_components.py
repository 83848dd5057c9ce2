"""
Visualization components for the budget dashboard.

This module provides reusable Streamlit and Altair components for
displaying ledger data: KPI metrics, category progress bars and charts.
"""

import logging
from typing import Callable, Dict, Iterable, Optional

import altair as alt
import pandas as pd
import streamlit as st

from analytics import BudgetStatus

logger = logging.getLogger(__name__)

# Color scheme
COLORS = {
    'positive': '#10b981',  # Green
    'negative': '#ef4444',  # Red
    'neutral': '#95a5a6',   # Gray
    'primary': '#3b82f6',   # Blue
    'warning': '#f59e0b'    # Orange
}


def format_currency(amount: float, currency_symbol: str = '$') -> str:
    """Format amount as currency with proper sign."""
    sign = '-' if amount < 0 else ''
    return f"{sign}{currency_symbol}{abs(amount):,.2f}"


def utilization_color(percentage: float) -> str:
    """Green up to 60%, orange up to 80%, red above."""
    if percentage > 80:
        return COLORS['negative']
    if percentage > 60:
        return COLORS['warning']
    return COLORS['positive']


def _empty_chart() -> alt.Chart:
    return alt.Chart(pd.DataFrame({'message': ['No data']})).mark_text(size=20).encode(text='message:N')


def kpi_metric(
    label: str,
    value: float,
    currency_symbol: str = '$',
    color_logic: Optional[Callable[[float], str]] = None,
    help_text: Optional[str] = None
) -> None:
    """
    Display a KPI metric with a colored accent.

    Args:
        label: Metric label
        value: Metric value
        currency_symbol: Symbol shown before the amount
        color_logic: Optional function that returns color based on value
        help_text: Optional help text to display
    """
    if color_logic is None:
        def color_logic(v):
            if v > 0:
                return COLORS['positive']
            if v < 0:
                return COLORS['negative']
            return COLORS['neutral']

    color = color_logic(value)
    st.markdown(
        f"<div style='border-left: 4px solid {color}; padding-left: 0.5rem;'></div>",
        unsafe_allow_html=True
    )
    st.metric(label=label, value=format_currency(value, currency_symbol), help=help_text)


def category_progress(status: BudgetStatus, currency_symbol: str = '$') -> None:
    """Display one category's spent against its limit as a progress bar."""
    label = (
        f"**{status.category}**: {format_currency(status.spent, currency_symbol)}"
        f" of {format_currency(status.limit, currency_symbol)}"
    )
    if status.limit <= 0:
        st.markdown(f"{label} (no limit)")
        return

    st.markdown(label)
    st.progress(min(status.percentage_used / 100, 1.0))
    if status.over_budget:
        st.caption(f":red[Over budget by {format_currency(-status.remaining, currency_symbol)}]")
    else:
        st.caption(f"{status.percentage_used:.1f}% used, {format_currency(status.remaining, currency_symbol)} left")


def create_category_pie_chart(
    df: pd.DataFrame,
    colors: Optional[Dict[str, str]] = None,
    title: str = "Spending by Category"
) -> alt.Chart:
    """
    Create interactive donut chart for category breakdown.

    Args:
        df: Category breakdown DataFrame (category, total, percentage)
        colors: Optional mapping of category name to color
        title: Chart title
    """
    if df.empty:
        return _empty_chart()

    color = alt.Color(field='category', type='nominal', legend=alt.Legend(title='Category'))
    if colors:
        domain = list(df['category'])
        color = alt.Color(
            field='category',
            type='nominal',
            scale=alt.Scale(domain=domain, range=[colors.get(name, COLORS['neutral']) for name in domain]),
            legend=alt.Legend(title='Category')
        )

    return alt.Chart(df).mark_arc(innerRadius=50).encode(
        theta=alt.Theta(field='total', type='quantitative'),
        color=color,
        tooltip=[
            alt.Tooltip('category:N', title='Category'),
            alt.Tooltip('total:Q', title='Amount', format='$,.2f'),
            alt.Tooltip('percentage:Q', title='Percentage', format='.1f')
        ]
    ).properties(title=title, width=400, height=400)


def create_monthly_trend_chart(df: pd.DataFrame, title: str = "Monthly Income & Expenses") -> alt.Chart:
    """Grouped income/expense bars per month with a net line."""
    if df.empty:
        return _empty_chart()

    melted = df.melt(id_vars=['period'], value_vars=['income', 'expenses'], var_name='type', value_name='amount')
    bars = alt.Chart(melted).mark_bar(opacity=0.8).encode(
        x=alt.X('period:N', title='Period', axis=alt.Axis(labelAngle=-45)),
        xOffset='type:N',
        y=alt.Y('amount:Q', title='Amount'),
        color=alt.Color(
            'type:N',
            scale=alt.Scale(domain=['income', 'expenses'], range=[COLORS['positive'], COLORS['negative']]),
            legend=alt.Legend(title='Type')
        ),
        tooltip=[
            alt.Tooltip('period:N', title='Period'),
            alt.Tooltip('type:N', title='Type'),
            alt.Tooltip('amount:Q', title='Amount', format='$,.2f')
        ]
    )
    net_line = alt.Chart(df).mark_line(point=True, color=COLORS['primary']).encode(
        x='period:N',
        y='net:Q',
        tooltip=[alt.Tooltip('net:Q', title='Net', format='$,.2f')]
    )
    return (bars + net_line).properties(title=title, height=350)


def create_budget_status_chart(statuses: Iterable[BudgetStatus], title: str = "Spent vs Limit") -> alt.Chart:
    """Horizontal bars of spent per category with the limit as a tick."""
    rows = [
        {'category': s.category, 'spent': s.spent, 'limit': s.limit, 'color': s.color}
        for s in statuses
    ]
    if not rows:
        return _empty_chart()

    df = pd.DataFrame(rows)
    base = alt.Chart(df).encode(y=alt.Y('category:N', title=None, sort=None))
    spent = base.mark_bar().encode(
        x=alt.X('spent:Q', title='Amount'),
        color=alt.Color('color:N', scale=None),
        tooltip=[
            alt.Tooltip('category:N', title='Category'),
            alt.Tooltip('spent:Q', title='Spent', format='$,.2f'),
            alt.Tooltip('limit:Q', title='Limit', format='$,.2f')
        ]
    )
    limit = base.mark_tick(color='black', thickness=2, size=20).encode(x='limit:Q')
    return (spent + limit).properties(title=title)
