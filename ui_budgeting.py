"""
Streamlit UI components for managing the budget ledger.

This module provides the Budget page: the item entry form, the item list
with deletion, category management and the monthly budget setting.
"""

import logging
from datetime import date, datetime, time, timezone
from typing import Dict, List

import pandas as pd
import streamlit as st

from exceptions import LedgerValidationError
from ledger import LedgerStore
from ledger_models import BudgetCategory, BudgetItem, TransactionType
from validation import validate_category_input, validate_item_input
from viz_components import format_currency

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY_COLOR = "#3b82f6"


def show_validation_errors(error: LedgerValidationError) -> None:
    """Render every collected validation message."""
    messages: List[str] = error.details.get("errors") or [str(error)]
    for message in messages:
        st.error(message)


def _to_timestamp(value: date) -> datetime:
    return datetime.combine(value, time(12, 0), tzinfo=timezone.utc)


def render_item_form(store: LedgerStore, currency_symbol: str = '$') -> None:
    """Form for recording a new income or expense."""
    st.subheader("Add Transaction")
    category_names = store.category_names()

    with st.form("add_item_form", clear_on_submit=True):
        col1, col2 = st.columns(2)
        with col1:
            name = st.text_input("Name", placeholder="e.g. Weekly groceries")
            amount = st.text_input("Amount", placeholder="0.00")
            item_type = st.radio("Type", [t.value for t in TransactionType], horizontal=True, index=1)
        with col2:
            category = st.selectbox(
                "Category",
                options=category_names or [""],
                help="Income items may leave this as it is."
            )
            item_date = st.date_input("Date", value=date.today())
            tags = st.text_input("Tags", placeholder="comma, separated")
        description = st.text_area("Description", height=80)
        submitted = st.form_submit_button("Add", type="primary")

    if not submitted:
        return

    try:
        draft = validate_item_input(
            name=name,
            amount=amount,
            category=category,
            type=item_type,
            date=_to_timestamp(item_date),
            description=description,
            tags=tags,
            known_categories=category_names,
        )
    except LedgerValidationError as e:
        show_validation_errors(e)
        return

    try:
        item = store.add_item(draft)
    except LedgerValidationError as e:
        show_validation_errors(e)
        return
    st.success(f"Added **{item.name}** ({format_currency(item.amount, currency_symbol)})")


def items_to_dataframe(items: List[BudgetItem]) -> pd.DataFrame:
    """Flatten items for display, newest first."""
    rows = [
        {
            'id': item.id,
            'date': item.date.strftime('%Y-%m-%d'),
            'name': item.name,
            'type': item.type.value,
            'amount': item.amount,
            'category': item.category,
            'tags': ", ".join(item.tags),
        }
        for item in sorted(items, key=lambda i: i.date, reverse=True)
    ]
    return pd.DataFrame(rows, columns=['id', 'date', 'name', 'type', 'amount', 'category', 'tags'])


def delete_option_labels(df: pd.DataFrame, currency_symbol: str = '$') -> Dict[str, str]:
    """Map a selector label to each item id; the short id keeps identical rows apart."""
    return {
        f"{row['date']} · {row['name']} · {format_currency(row['amount'], currency_symbol)} · {row['id'][:8]}": row['id']
        for _, row in df.iterrows()
    }


def render_item_list(store: LedgerStore, currency_symbol: str = '$') -> None:
    """Recorded items with a delete action."""
    st.subheader("Transactions")
    items = list(store.items)
    if not items:
        st.info("No transactions recorded yet.")
        return

    df = items_to_dataframe(items)
    st.dataframe(
        df.drop(columns=['id']),
        use_container_width=True,
        hide_index=True,
        column_config={
            'amount': st.column_config.NumberColumn('Amount', format=f"{currency_symbol}%.2f"),
        }
    )

    labels = delete_option_labels(df, currency_symbol)
    col1, col2 = st.columns([4, 1])
    with col1:
        selected = st.selectbox("Select a transaction to delete", list(labels.keys()), key="delete_item_select")
    with col2:
        st.write("")
        if st.button("Delete", key="delete_item_button"):
            if store.delete_item(labels[selected]):
                st.success("Transaction deleted.")
                st.rerun()
            else:
                st.warning("Transaction no longer exists.")


def render_category_editor(store: LedgerStore, category: BudgetCategory) -> None:
    """Inline edit and delete controls for one category."""
    with st.expander(f"{category.name}"):
        with st.form(f"edit_category_{category.id}"):
            name = st.text_input("Name", value=category.name)
            color = st.color_picker("Color", value=category.color or DEFAULT_CATEGORY_COLOR)
            limit = st.text_input("Limit", value="" if category.limit is None else f"{category.limit:.2f}")
            col1, col2 = st.columns(2)
            with col1:
                save = st.form_submit_button("Save", type="primary")
            with col2:
                delete = st.form_submit_button("Delete")

        if save:
            others = [other for other in store.category_names() if other != category.name]
            try:
                clean_name, clean_color, clean_limit = validate_category_input(name, color, limit, others)
            except LedgerValidationError as e:
                show_validation_errors(e)
                return
            store.update_category(
                BudgetCategory(id=category.id, name=clean_name, color=clean_color, limit=clean_limit)
            )
            if clean_name != category.name:
                st.info("Existing transactions keep the old category name.")
            st.rerun()
        elif delete:
            store.delete_category(category.id)
            st.rerun()


def render_categories(store: LedgerStore, currency_symbol: str = '$') -> None:
    """Category table with add, edit and delete."""
    st.subheader("Categories")
    categories = list(store.categories)

    if categories:
        df = pd.DataFrame([
            {
                'name': c.name,
                'limit': c.limit,
                'spent': c.spent,
                'remaining': c.remaining,
                'used %': LedgerStore.category_utilization(c),
            }
            for c in categories
        ])
        st.dataframe(
            df,
            use_container_width=True,
            hide_index=True,
            column_config={
                'limit': st.column_config.NumberColumn('Limit', format=f"{currency_symbol}%.2f"),
                'spent': st.column_config.NumberColumn('Spent', format=f"{currency_symbol}%.2f"),
                'remaining': st.column_config.NumberColumn('Remaining', format=f"{currency_symbol}%.2f"),
                'used %': st.column_config.ProgressColumn('Used', format="%.0f%%", min_value=0, max_value=100),
            }
        )
        for category in categories:
            render_category_editor(store, category)
    else:
        st.info("No categories defined.")

    with st.form("add_category_form", clear_on_submit=True):
        st.markdown("**New category**")
        col1, col2, col3 = st.columns([3, 1, 2])
        with col1:
            name = st.text_input("Name")
        with col2:
            color = st.color_picker("Color", value=DEFAULT_CATEGORY_COLOR)
        with col3:
            limit = st.text_input("Limit", placeholder="optional")
        submitted = st.form_submit_button("Add Category")

    if submitted:
        try:
            clean_name, clean_color, clean_limit = validate_category_input(
                name, color, limit, store.category_names()
            )
        except LedgerValidationError as e:
            show_validation_errors(e)
            return
        store.add_category(clean_name, clean_color, clean_limit)
        st.success(f"Category **{clean_name}** added.")
        st.rerun()


def render_monthly_budget(store: LedgerStore, currency_symbol: str = '$') -> None:
    """Monthly budget ceiling and utilization."""
    st.subheader("Monthly Budget")
    col1, col2 = st.columns([2, 3])
    with col1:
        value = st.number_input(
            f"Budget ({currency_symbol})",
            min_value=0.0,
            value=float(store.monthly_budget),
            step=50.0,
            format="%.2f"
        )
        if st.button("Update Budget") and value != store.monthly_budget:
            store.set_monthly_budget(value)
            st.success("Monthly budget updated.")
            st.rerun()
    with col2:
        utilization = store.budget_utilization()
        st.metric(
            "Budget Utilization %",
            f"{utilization:.1f}%",
            help="Total expenses as a share of the monthly budget."
        )
        st.progress(min(utilization / 100.0, 1.0))


def render_budget_page(store: LedgerStore, currency_symbol: str = '$') -> None:
    """
    Render the Budget page.

    Args:
        store: Session ledger
        currency_symbol: Symbol shown before amounts
    """
    st.header("💰 Budget")
    render_monthly_budget(store, currency_symbol)
    st.markdown("---")
    tab_items, tab_categories = st.tabs(["Transactions", "Categories"])
    with tab_items:
        render_item_form(store, currency_symbol)
        render_item_list(store, currency_symbol)
    with tab_categories:
        render_categories(store, currency_symbol)
