"""
Streamlit UI for the AI assistant.

Settings for the assistant, buttons that run the generation flows, and
lists of the stored insights and generated content with fuzzy search.
"""

import logging
from dataclasses import replace

import streamlit as st

from ai_assistant import AIAssistant
from ai_service import BLOG_STYLES, SUMMARY_PERIODS
from ai_state import INSIGHT_FREQUENCIES, AIState, ContentStatus, InsightImpact
from config_manager import get_dashboard_preference, set_dashboard_preference
from ledger import LedgerStore
from search import SearchService

logger = logging.getLogger(__name__)

MODEL_OPTIONS = ("gpt-3.5-turbo", "gpt-4o-mini", "gpt-4o")
THEMES = ("light", "dark")

IMPACT_ICONS = {
    InsightImpact.HIGH: "🔴",
    InsightImpact.MEDIUM: "🟡",
    InsightImpact.LOW: "🟢",
}


def render_settings(state: AIState) -> None:
    """Assistant settings and display preferences."""
    with st.expander("⚙️ Settings", expanded=not state.enabled):
        enabled = st.toggle("Enable AI features", value=state.enabled)
        api_key = st.text_input(
            "OpenAI API key",
            value=state.api_key or "",
            type="password",
            help="Kept for this session only. Set OPENAI_API_KEY to load it automatically."
        )
        model = st.selectbox(
            "Model",
            MODEL_OPTIONS,
            index=MODEL_OPTIONS.index(state.model) if state.model in MODEL_OPTIONS else 0
        )

        settings = state.settings
        col1, col2 = st.columns(2)
        with col1:
            auto_analysis = st.checkbox("Automatic analysis", value=settings.auto_analysis)
            content_generation = st.checkbox("Content generation", value=settings.content_generation)
            personalized = st.checkbox("Personalized recommendations", value=settings.personalized_recommendations)
        with col2:
            frequency = st.selectbox(
                "Insight frequency",
                INSIGHT_FREQUENCIES,
                index=INSIGHT_FREQUENCIES.index(settings.insight_frequency)
            )
            current_theme = get_dashboard_preference("theme", "light")
            theme = st.selectbox("Theme", THEMES, index=THEMES.index(current_theme) if current_theme in THEMES else 0)

        if st.button("Save Settings", type="primary"):
            state.set_enabled(enabled)
            state.set_api_key(api_key.strip())
            state.set_model(model)
            state.update_settings(
                auto_analysis=auto_analysis,
                insight_frequency=frequency,
                content_generation=content_generation,
                personalized_recommendations=personalized,
            )
            if not set_dashboard_preference("theme", theme, save_to_file=True):
                st.warning("Theme applied for this session but could not be saved to config.yaml.")
            st.success("Settings saved.")


def render_actions(assistant: AIAssistant, state: AIState) -> None:
    """Buttons that run the insight, article and summary flows."""
    col1, col2, col3 = st.columns(3)

    with col1:
        st.markdown("**Insights**")
        if st.button("Analyze Ledger", disabled=not state.enabled):
            with st.spinner("Analyzing..."):
                insights = assistant.generate_insights()
            if insights:
                st.success(f"{len(insights)} new insights.")
        if state.last_analysis:
            st.caption(f"Last analysis: {state.last_analysis:%Y-%m-%d %H:%M} UTC")

    with col2:
        st.markdown("**Article**")
        topic = st.text_input("Topic", placeholder="e.g. Cutting grocery costs")
        style = st.selectbox("Style", BLOG_STYLES)
        generate_disabled = not state.enabled or not state.settings.content_generation
        if st.button("Write Article", disabled=generate_disabled) and topic.strip():
            with st.spinner("Writing..."):
                content = assistant.generate_blog_post(topic.strip(), style)
            if content:
                st.success(f"Saved draft: {content.title}")

    with col3:
        st.markdown("**Summary**")
        period = st.selectbox("Period", SUMMARY_PERIODS, index=1)
        if st.button("Summarize", disabled=not state.enabled):
            with st.spinner("Summarizing..."):
                st.session_state["ai_summary"] = assistant.generate_summary(period)
        if st.session_state.get("ai_summary"):
            st.info(st.session_state["ai_summary"])

    if state.error:
        st.error(state.error)


def render_insights(state: AIState) -> None:
    st.subheader("Insights")
    insights = state.insights
    if not insights:
        st.caption("No insights yet.")
        return
    if st.button("Clear All Insights"):
        state.clear_insights()
        st.rerun()
    for insight in insights:
        icon = IMPACT_ICONS.get(insight.impact, "")
        with st.expander(f"{icon} {insight.title}"):
            st.write(insight.description)
            st.caption(
                f"{insight.type.value.replace('_', ' ')} · confidence {insight.confidence:.0f}%"
                + (f" · {insight.category}" if insight.category else "")
            )
            if insight.actionable and insight.action_text:
                st.markdown(f"**Next step:** {insight.action_text}")
            if st.button("Dismiss", key=f"dismiss_{insight.id}"):
                state.remove_insight(insight.id)
                st.rerun()


def render_content(state: AIState) -> None:
    """Generated content with search, publish and delete."""
    st.subheader("Generated Content")
    content = state.generated_content
    if not content:
        st.caption("No generated content yet.")
        return

    query = st.text_input("Search content", key="content_search")
    search = SearchService()
    search.update_content(content)
    if query.strip():
        shown = [result.item for result in search.search_content(query)]
        suggestions = search.get_suggestions(query, kind="content")
        if suggestions:
            st.caption("Suggestions: " + ", ".join(suggestions))
    else:
        shown = content

    if not shown:
        st.caption("No matches.")
    for entry in shown:
        with st.expander(f"{entry.title} ({entry.status.value})"):
            st.markdown(entry.content)
            st.caption(", ".join(entry.tags))
            col1, col2 = st.columns(2)
            with col1:
                if entry.status is not ContentStatus.PUBLISHED and st.button("Publish", key=f"publish_{entry.id}"):
                    state.update_generated_content(replace(entry, status=ContentStatus.PUBLISHED))
                    st.rerun()
            with col2:
                if st.button("Delete", key=f"delete_content_{entry.id}"):
                    state.delete_generated_content(entry.id)
                    st.rerun()


def render_ai_page(store: LedgerStore, state: AIState) -> None:
    """
    Render the AI Insights page.

    Args:
        store: Session ledger
        state: Session AI state
    """
    st.header("🤖 AI Insights")
    render_settings(state)
    if not state.enabled or not state.api_key:
        st.info("Enable AI features and provide an API key to generate insights.")

    assistant = AIAssistant(store, state)
    render_actions(assistant, state)
    st.markdown("---")
    render_insights(state)
    st.markdown("---")
    render_content(state)
