"""
Streamlit dashboard for the budget ledger.

Run with ``streamlit run dashboard_app.py``. The ledger, its persistence and
the AI state are created once per browser session and kept in
``st.session_state``; every page receives them as arguments.
"""

import logging
from typing import Any, Dict

import streamlit as st

from ai_service import resolve_api_key
from ai_state import AIState
from analytics import LedgerAnalytics
from config_manager import get_dashboard_preference, initialize_session_state, load_config
from exceptions import BudgetAppError
from ledger import LedgerStore
from persistence import LedgerPersistence, create_persistence
from ui_ai import render_ai_page
from ui_analytics import render_analytics_page
from ui_budgeting import render_budget_page
from viz_components import category_progress, kpi_metric, utilization_color

logger = logging.getLogger(__name__)

LEDGER_KEY = "ledger_store"
PERSISTENCE_KEY = "ledger_persistence"
AI_STATE_KEY = "ai_state"
CONFIG_KEY = "app_config"

PAGES = ("Dashboard", "Budget", "Analytics", "AI Insights")


def get_session_config() -> Dict[str, Any]:
    if CONFIG_KEY not in st.session_state:
        st.session_state[CONFIG_KEY] = load_config()
    return st.session_state[CONFIG_KEY]


def get_session_ledger(config: Dict[str, Any]) -> LedgerStore:
    """
    Return this session's ledger, loading it and attaching persistence on first use.

    Raises:
        BudgetAppError: If the stored ledger cannot be loaded
    """
    if LEDGER_KEY not in st.session_state:
        persistence = create_persistence(config)
        store = persistence.load()
        persistence.attach(store)
        st.session_state[PERSISTENCE_KEY] = persistence
        st.session_state[LEDGER_KEY] = store
        logger.info("Ledger loaded into session with %d items", len(store))
    return st.session_state[LEDGER_KEY]


def get_session_ai_state(config: Dict[str, Any]) -> AIState:
    if AI_STATE_KEY not in st.session_state:
        st.session_state[AI_STATE_KEY] = AIState.from_config(config, api_key=resolve_api_key(config))
    return st.session_state[AI_STATE_KEY]


def show_save_status() -> None:
    """Surface the last background save failure, if any."""
    persistence: LedgerPersistence = st.session_state.get(PERSISTENCE_KEY)
    if persistence is not None and persistence.last_error:
        st.sidebar.error(persistence.last_error)


def render_dashboard_page(store: LedgerStore, ai_state: AIState, currency: str) -> None:
    """Totals, budget utilization, category progress and the latest AI output."""
    st.header("Dashboard")
    snapshot = store.snapshot()
    utilization = store.budget_utilization()

    col1, col2, col3, col4 = st.columns(4)
    with col1:
        kpi_metric("Total Income", snapshot.total_income, currency)
    with col2:
        kpi_metric("Total Expenses", snapshot.total_expenses, currency, color_logic=lambda v: "#ef4444")
    with col3:
        kpi_metric("Balance", snapshot.balance, currency)
    with col4:
        st.metric("Budget Used", f"{utilization:.1f}%", help=f"Of a {currency}{snapshot.monthly_budget:,.2f} monthly budget")
        st.markdown(f"<span style='color:{utilization_color(utilization)}'>&#9679;</span>", unsafe_allow_html=True)

    st.subheader("Categories")
    statuses = LedgerAnalytics(store).get_category_status()
    if not statuses:
        st.info("No categories yet. Add some on the Budget page.")
    for status in statuses:
        category_progress(status, currency)

    reconciliation = store.reconcile()
    if not reconciliation.is_balanced:
        st.warning(
            f"{currency}{reconciliation.unassigned_expenses:,.2f} of expenses belong to no category "
            f"({len(reconciliation.dangling_items)} items)."
        )

    col_left, col_right = st.columns(2)
    with col_left:
        st.subheader("Recent Insights")
        insights = ai_state.insights[:3]
        if not insights:
            st.caption("No insights yet.")
        for insight in insights:
            st.markdown(f"**{insight.title}** ({insight.impact.value} impact)")
            st.caption(insight.description[:200])
    with col_right:
        st.subheader("Recent Content")
        content = ai_state.generated_content[:3]
        if not content:
            st.caption("No generated content yet.")
        for entry in content:
            st.markdown(f"**{entry.title}**")
            st.caption(", ".join(entry.tags))


def main_dashboard() -> None:
    """Main Streamlit UI for the budget dashboard."""
    st.set_page_config(
        page_title="Budget Ledger",
        page_icon="💰",
        layout="wide",
        initial_sidebar_state="expanded"
    )

    try:
        config = get_session_config()
    except BudgetAppError as e:
        st.error(f"Failed to load configuration: {e}")
        return

    initialize_session_state(config)
    currency = get_dashboard_preference("currency_symbol", "$")

    try:
        store = get_session_ledger(config)
    except BudgetAppError as e:
        st.error(f"Failed to load ledger: {e}")
        logger.error(f"Ledger load failed: {e}", exc_info=True)
        return
    ai_state = get_session_ai_state(config)

    st.sidebar.title("💰 Budget Ledger")
    page = st.sidebar.radio("Navigate", PAGES)
    show_save_status()

    if page == "Dashboard":
        render_dashboard_page(store, ai_state, currency)
    elif page == "Budget":
        render_budget_page(store, currency)
    elif page == "Analytics":
        render_analytics_page(store, currency)
    elif page == "AI Insights":
        render_ai_page(store, ai_state)


if __name__ == "__main__":
    main_dashboard()
