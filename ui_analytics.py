"""
Streamlit UI for the analytics page.

Charts and tables over the ledger for a chosen time frame: the income and
expense summary, spending by category, monthly trends, budget status per
category and the largest expenses.
"""

import logging
from datetime import date, timedelta

import streamlit as st

from analytics import LedgerAnalytics
from exceptions import AnalyticsError
from ledger import LedgerStore
from viz_components import (
    create_budget_status_chart,
    create_category_pie_chart,
    create_monthly_trend_chart,
    format_currency,
    kpi_metric,
)

logger = logging.getLogger(__name__)

TIME_FRAME_OPTIONS = {
    'Last Month': '1m',
    'Last 3 Months': '3m',
    'Last 6 Months': '6m',
    'Last 12 Months': '12m',
    'All Time': 'all',
    'Custom Range': 'custom'
}


def select_time_frame() -> tuple:
    """
    Sidebar time frame picker.

    Returns:
        Tuple of (time_frame string for LedgerAnalytics, display label)
    """
    st.sidebar.header("Filters")
    label = st.sidebar.selectbox("Time Frame", list(TIME_FRAME_OPTIONS.keys()), index=4)
    time_frame = TIME_FRAME_OPTIONS[label]

    if time_frame == 'custom':
        today = date.today()
        col1, col2 = st.sidebar.columns(2)
        with col1:
            start = st.date_input("Start", value=today - timedelta(days=30))
        with col2:
            end = st.date_input("End", value=today)
        time_frame = f"{start.isoformat()}:{end.isoformat()}"
        label = f"{start:%b %d, %Y} to {end:%b %d, %Y}"

    return time_frame, label


def render_summary(analytics: LedgerAnalytics, time_frame: str, currency_symbol: str) -> None:
    summary = analytics.get_income_expense_summary(time_frame)
    col1, col2, col3, col4 = st.columns(4)
    with col1:
        kpi_metric("Income", summary['total_income'], currency_symbol,
                   help_text=f"{summary['income_count']} income items")
    with col2:
        kpi_metric("Expenses", summary['total_expenses'], currency_symbol,
                   color_logic=lambda v: "#ef4444",
                   help_text=f"{summary['expense_count']} expense items")
    with col3:
        kpi_metric("Net", summary['balance'], currency_symbol)
    with col4:
        st.metric("Budget Used", f"{summary['budget_utilization']:.1f}%",
                  help=f"Of {format_currency(summary['monthly_budget'], currency_symbol)}")


def render_analytics_page(store: LedgerStore, currency_symbol: str = '$') -> None:
    """
    Render the Analytics page.

    Args:
        store: Session ledger
        currency_symbol: Symbol shown before amounts
    """
    st.header("📊 Analytics")
    analytics = LedgerAnalytics(store)
    time_frame, label = select_time_frame()
    st.caption(f"Showing: {label}")

    try:
        render_summary(analytics, time_frame, currency_symbol)
        breakdown = analytics.get_category_breakdown(time_frame)
        trends = analytics.get_monthly_trends(time_frame)
        top_expenses = analytics.get_top_expenses(limit=10, time_frame=time_frame)
    except AnalyticsError as e:
        st.error(str(e))
        logger.warning(f"Analytics query failed: {e}")
        return

    colors = {category.name: category.color for category in store.categories}

    tab_categories, tab_trends, tab_budget = st.tabs(["Categories", "Trends", "Budget Status"])

    with tab_categories:
        col1, col2 = st.columns([3, 2])
        with col1:
            st.altair_chart(create_category_pie_chart(breakdown, colors=colors), use_container_width=True)
        with col2:
            if breakdown.empty:
                st.info("No expenses in this period.")
            else:
                st.dataframe(
                    breakdown,
                    hide_index=True,
                    use_container_width=True,
                    column_config={
                        'total': st.column_config.NumberColumn('Total', format=f"{currency_symbol}%.2f"),
                        'percentage': st.column_config.NumberColumn('%', format="%.1f"),
                    }
                )
                st.download_button(
                    "Download CSV",
                    data=breakdown.to_csv(index=False).encode('utf-8'),
                    file_name="category_breakdown.csv",
                    mime="text/csv"
                )

        st.subheader("Top Expenses")
        if top_expenses.empty:
            st.caption("No expenses in this period.")
        else:
            st.dataframe(
                top_expenses,
                hide_index=True,
                use_container_width=True,
                column_config={
                    'amount': st.column_config.NumberColumn('Amount', format=f"{currency_symbol}%.2f"),
                }
            )

    with tab_trends:
        st.altair_chart(create_monthly_trend_chart(trends), use_container_width=True)
        if not trends.empty:
            st.download_button(
                "Download CSV",
                data=trends.to_csv(index=False).encode('utf-8'),
                file_name="monthly_trends.csv",
                mime="text/csv",
                key="download_trends"
            )

    with tab_budget:
        statuses = analytics.get_category_status()
        st.altair_chart(create_budget_status_chart(statuses), use_container_width=True)
        over = [s for s in statuses if s.over_budget]
        if over:
            st.warning("Over budget: " + ", ".join(s.category for s in over))
        reconciliation = store.reconcile()
        if reconciliation.is_balanced:
            st.success("Category totals match total expenses.")
        else:
            st.info(
                f"{format_currency(reconciliation.unassigned_expenses, currency_symbol)} of expenses "
                "belong to no category."
            )
